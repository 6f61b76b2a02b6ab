"""Context Window tests — token budget enforcement across all eviction strategies.

Tests cover:
    - The 20-message / 100-token scenario under the recent strategy
    - Budget invariant and system-message preservation for every strategy
    - Idempotence of truncate_if_needed()
    - priority_based keeps tool-bearing messages; preserve_tool_results=False clears the log
    - Aggressive pass, force_truncation(), tightened() restore semantics
    - update_config(), clear(), get_stats(), snapshot()
"""

import pytest

from chatcore.core.context_window import (
    ContextConfig, ContextWindowManager, coding_profile,
)
from chatcore.core.domain_types import Role, TruncationStrategy
from chatcore.core.messages import Message, ToolCall, ToolExecutionMetadata, ToolResult


# --- Helpers ------------------------------------------------------------------

def _msg(tokens: int, role: Role = Role.USER, tag: str = "x", **kwargs) -> Message:
    """Plain message costing exactly `tokens` (no structured markers)."""
    return Message(role, tag * (tokens * 4), **kwargs)


def _tool_msg(tokens: int) -> Message:
    call = ToolCall(id="call-1", name="read_file", parameters={})
    return Message(Role.ASSISTANT, "t" * (tokens * 4), tool_calls=(call,))


def _result(tokens: int) -> ToolResult:
    meta = ToolExecutionMetadata(execution_time_ms=1, tool_name="read_file", parameters={})
    return ToolResult(success=True, output="r" * (tokens * 4), metadata=meta)


def _manager(**overrides) -> ContextWindowManager:
    config = ContextConfig(system_prompt="", **overrides)
    return ContextWindowManager(config)


ALL_STRATEGIES = list(TruncationStrategy)


# ==============================================================================
# Scenario + invariants
# ==============================================================================


def test_twenty_messages_fit_small_window():
    """maxTokens=100, minRecent=1, recent: 20 x 30-token messages end within budget."""
    cm = ContextWindowManager(ContextConfig(
        max_tokens=100, min_recent_messages=1,
        truncation_strategy=TruncationStrategy.RECENT,
    ))
    for i in range(20):
        role = Role.USER if i % 2 == 0 else Role.ASSISTANT
        cm.add_message(_msg(30, role))
    cm.truncate_if_needed()

    assert cm.get_token_count() <= 100
    assert cm.get_token_count() <= cm.target_tokens
    assert len(cm.messages) >= 1


@pytest.mark.parametrize("strategy", ALL_STRATEGIES)
def test_budget_invariant_and_system_preserved(strategy):
    cm = _manager(max_tokens=100, min_recent_messages=1, truncation_strategy=strategy)
    cm.add_message(_msg(10, Role.SYSTEM, tag="s"))
    for _ in range(10):
        cm.add_message(_msg(20))

    assert cm.get_token_count() <= cm.target_tokens
    assert sum(1 for m in cm.messages if m.is_system) == 1
    assert cm.messages[0].is_system


@pytest.mark.parametrize("strategy", ALL_STRATEGIES)
def test_truncate_is_idempotent(strategy):
    cm = _manager(max_tokens=1000, truncation_strategy=strategy)
    for i in range(8):
        cm.add_message(_msg(20, tag=chr(ord("a") + i)))
    cm.add_tool_result(_result(5))
    cm.update_config(max_tokens=100)

    messages, results = cm.messages, cm.tool_results
    assert cm.truncate_if_needed() is False
    assert cm.messages == messages
    assert cm.tool_results == results


def test_survivors_keep_insertion_order():
    cm = _manager(max_tokens=1000)
    tags = "abcdefgh"
    for tag in tags:
        cm.add_message(_msg(20, tag=tag))
    cm.update_config(max_tokens=100)

    kept = [m.content[0] for m in cm.messages]
    assert kept == sorted(kept)
    assert kept[-1] == "h"


def test_no_truncation_under_budget():
    cm = _manager(max_tokens=100)
    cm.add_message(_msg(20))
    assert cm.truncate_if_needed() is False
    assert len(cm.messages) == 1


# ==============================================================================
# Strategies
# ==============================================================================


def test_recent_aggressive_pass_drops_oversized_message():
    cm = _manager(max_tokens=100, min_recent_messages=1)
    cm.add_message(_msg(10, Role.SYSTEM, tag="s"))
    cm.add_message(_msg(200))

    assert [m.role for m in cm.messages] == [Role.SYSTEM]
    assert cm.get_token_count() <= cm.target_tokens


def test_priority_based_keeps_tool_messages():
    cm = _manager(max_tokens=1000, truncation_strategy=TruncationStrategy.PRIORITY_BASED)
    cm.add_message(_tool_msg(10))
    for tag in "abcde":
        cm.add_message(_msg(20, tag=tag))
    cm.update_config(max_tokens=100)

    assert cm.messages[0].carries_tools
    assert [m.content[0] for m in cm.messages[1:]] == ["d", "e"]
    assert cm.get_token_count() <= cm.target_tokens


def test_recent_drops_old_tool_message():
    cm = _manager(max_tokens=1000, truncation_strategy=TruncationStrategy.RECENT)
    cm.add_message(_tool_msg(10))
    for tag in "abcde":
        cm.add_message(_msg(20, tag=tag))
    cm.update_config(max_tokens=100)

    assert not any(m.carries_tools for m in cm.messages)


def test_priority_without_preserve_treats_tools_as_conversation():
    cm = _manager(
        max_tokens=1000, truncation_strategy=TruncationStrategy.PRIORITY_BASED,
        preserve_tool_results=False,
    )
    cm.add_message(_tool_msg(10))
    for tag in "abcde":
        cm.add_message(_msg(20, tag=tag))
    cm.add_tool_result(_result(5))
    cm.update_config(max_tokens=100)

    assert not any(m.carries_tools for m in cm.messages)
    assert cm.tool_results == ()


def test_preserved_tool_results_survive_truncation():
    cm = _manager(max_tokens=1000)
    cm.add_tool_result(_result(5))
    for _ in range(6):
        cm.add_message(_msg(20))
    cm.update_config(max_tokens=100)

    assert len(cm.tool_results) == 1


@pytest.mark.parametrize("strategy", [
    TruncationStrategy.RECENT,
    TruncationStrategy.SLIDING_WINDOW,
    TruncationStrategy.PRIORITY_BASED,
])
def test_evicted_owner_takes_its_tool_result_along(strategy):
    cm = _manager(max_tokens=1000, truncation_strategy=strategy)
    result = _result(1000)
    call = ToolCall(id="call-1", name="read_file", parameters={})
    cm.add_tool_result(result)
    cm.add_message(Message(
        Role.ASSISTANT, "t" * 40, tool_calls=(call,), tool_results=(result,),
    ))

    assert cm.tool_results == ()

    for _ in range(30):
        cm.add_message(_msg(20))
    assert cm.get_token_count() <= cm.target_tokens
    assert len(cm.messages) == 30
    assert not cm.get_stats().over_budget


def test_kept_owner_keeps_its_tool_result():
    cm = _manager(max_tokens=1000, truncation_strategy=TruncationStrategy.PRIORITY_BASED)
    result = _result(5)
    call = ToolCall(id="call-1", name="read_file", parameters={})
    cm.add_tool_result(result)
    cm.add_message(Message(
        Role.ASSISTANT, "t" * 40, tool_calls=(call,), tool_results=(result,),
    ))
    for tag in "abcde":
        cm.add_message(_msg(20, tag=tag))
    cm.update_config(max_tokens=100)

    assert cm.messages[0].carries_tools
    assert cm.tool_results == (result,)


def test_sliding_window_keeps_newest_fraction():
    cm = _manager(
        max_tokens=1000, truncation_strategy=TruncationStrategy.SLIDING_WINDOW,
    )
    for tag in "abcde":
        cm.add_message(_msg(10, tag=tag))
    cm.update_config(max_tokens=50)  # 50 tokens > 40 target

    # floor(0.6 * 5) = 3 newest survive, 30 tokens <= 40
    assert [m.content[0] for m in cm.messages] == ["c", "d", "e"]


def test_add_tool_result_never_truncates():
    cm = _manager(max_tokens=100)
    cm.add_message(_msg(20))
    for _ in range(10):
        cm.add_tool_result(_result(20))

    assert len(cm.tool_results) == 10
    assert len(cm.messages) == 1
    assert cm.get_stats().over_budget


# ==============================================================================
# Aggressive truncation
# ==============================================================================


def test_force_truncation_reserves_room_and_restores_config():
    cm = _manager(max_tokens=100, truncation_buffer=0.2, min_recent_messages=2)
    for tag in "abc":
        cm.add_message(_msg(20, tag=tag))

    freed = cm.force_truncation(reserve_tokens=40, min_recent_messages=1)

    assert freed == 20
    assert [m.content[0] for m in cm.messages] == ["b", "c"]
    assert cm.config.truncation_buffer == 0.2
    assert cm.config.min_recent_messages == 2


def test_force_truncation_buffer_is_capped():
    cm = _manager(max_tokens=100)
    for _ in range(3):
        cm.add_message(_msg(20))
    cm.force_truncation(reserve_tokens=10_000)

    # buffer capped at 0.9 -> target 10: nothing but an empty history fits
    assert cm.get_token_count() <= 10


def test_tightened_restores_on_error():
    cm = _manager(truncation_buffer=0.2, min_recent_messages=2)
    with pytest.raises(RuntimeError):
        with cm.tightened(buffer=0.5, min_recent_messages=0):
            assert cm.config.truncation_buffer == 0.5
            raise RuntimeError("boom")
    assert cm.config.truncation_buffer == 0.2
    assert cm.config.min_recent_messages == 2


# ==============================================================================
# Configuration and access
# ==============================================================================


def test_update_config_accepts_strategy_string():
    cm = _manager()
    cm.update_config(truncation_strategy="sliding_window")
    assert cm.config.truncation_strategy is TruncationStrategy.SLIDING_WINDOW


def test_config_property_is_a_copy():
    cm = _manager(max_tokens=100)
    cm.config.max_tokens = 5
    assert cm.max_tokens == 100


def test_system_prompt_counts_toward_budget():
    cm = ContextWindowManager(ContextConfig(system_prompt="x" * 40))
    assert cm.get_token_count() == 10
    cm.update_system_prompt("x" * 80)
    assert cm.get_token_count() == 20


def test_only_system_content_reports_over_budget():
    cm = _manager(max_tokens=100)
    cm.add_message(_msg(200, Role.SYSTEM, tag="s"))

    stats = cm.get_stats()
    assert len(cm.messages) == 1
    assert stats.over_budget
    assert stats.target_tokens == 80


def test_clear_resets_history():
    cm = _manager()
    cm.add_message(_msg(5))
    cm.add_tool_result(_result(5))
    cm.clear()
    assert cm.messages == ()
    assert cm.tool_results == ()


def test_snapshot_is_detached():
    cm = _manager()
    cm.add_message(_msg(5))
    snap = cm.snapshot()
    cm.add_message(_msg(5))
    assert len(snap.messages) == 1
    assert snap.stats.message_count == 1


def test_coding_profile_defaults():
    profile = coding_profile()
    assert profile.max_tokens == 6000
    assert profile.truncation_strategy is TruncationStrategy.PRIORITY_BASED
    assert profile.min_recent_messages == 4
