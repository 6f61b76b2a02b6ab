"""Context Window — per-conversation message history under a token budget.

Invariants:
    - Token count is recomputed on demand, never cached
    - After add_message()/truncate_if_needed() return: tokens <= max_tokens * (1 - buffer),
      unless only protected content remains (logged + ContextStats.over_budget)
    - System-role messages are never evicted, by any strategy
    - Surviving messages keep their original insertion order
    - add_tool_result() never truncates (avoids cutting mid tool-call sequence)
    - preserve_tool_results=False clears the tool-result log whenever truncation runs
    - A logged result whose owning message (by identity) is evicted leaves the log with it
    - truncate_if_needed() twice in a row changes nothing the second time

Design Decisions:
    - One target formula everywhere: max_tokens * (1 - buffer). Aggressive passes
      widen the buffer by the tokens to reserve instead of using a second formula
    - summarize is an explicit alias of recent (no model-generated summaries)
    - tightened() is a context manager so overrides are restored even on error
"""

import logging
import math
from contextlib import contextmanager
from dataclasses import dataclass, replace
from datetime import datetime

from chatcore.core.domain_types import TruncationStrategy
from chatcore.core.messages import Message, ToolResult, utc_now
from chatcore.core.tokens import estimate_tokens, message_tokens, tool_result_tokens

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = "You are a helpful AI coding assistant."
CODING_SYSTEM_PROMPT = (
    "You are an expert AI coding assistant. You help developers write, debug, "
    "and understand code. Use the available tools to read and modify files in "
    "the workspace when needed. Be concise and precise."
)
SLIDING_WINDOW_FRACTION = 0.6
MAX_AGGRESSIVE_BUFFER = 0.9


@dataclass
class ContextConfig:
    max_tokens: int = 4000
    truncation_strategy: TruncationStrategy = TruncationStrategy.RECENT
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    preserve_tool_results: bool = True
    min_recent_messages: int = 2
    truncation_buffer: float = 0.2  # 0.2 = leave 20% headroom


@dataclass(frozen=True)
class ContextStats:
    message_count: int
    tool_result_count: int
    token_count: int
    target_tokens: int
    over_budget: bool
    strategy: TruncationStrategy
    created_at: datetime
    last_updated: datetime


@dataclass(frozen=True)
class ConversationContext:
    """Read-only snapshot handed to callers outside the session lock."""
    messages: tuple[Message, ...]
    tool_results: tuple[ToolResult, ...]
    system_prompt: str
    max_tokens: int
    config: ContextConfig
    stats: ContextStats


class ContextWindowManager:
    """Owns one conversation's messages + tool-result log and its token budget."""

    def __init__(self, config: ContextConfig | None = None):
        self._config = replace(config) if config else ContextConfig()
        self._messages: list[Message] = []
        self._tool_results: list[ToolResult] = []
        self._created_at = utc_now()
        self._last_updated = self._created_at

    # === Read access ==========================================================

    @property
    def messages(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    @property
    def tool_results(self) -> tuple[ToolResult, ...]:
        return tuple(self._tool_results)

    @property
    def system_prompt(self) -> str:
        return self._config.system_prompt

    @property
    def max_tokens(self) -> int:
        return self._config.max_tokens

    @property
    def config(self) -> ContextConfig:
        return replace(self._config)

    @property
    def target_tokens(self) -> float:
        # rounded: 0.2 + 0.4 buffers must not yield 39.999... for a 100-token window
        return round(self._config.max_tokens * (1 - self._config.truncation_buffer), 6)

    def get_token_count(self) -> int:
        """System prompt + messages (content and tool calls) + tool-result log."""
        total = estimate_tokens(self._config.system_prompt)
        total += sum(message_tokens(m) for m in self._messages)
        total += sum(tool_result_tokens(r) for r in self._tool_results)
        return total

    def get_stats(self) -> ContextStats:
        tokens = self.get_token_count()
        return ContextStats(
            message_count=len(self._messages),
            tool_result_count=len(self._tool_results),
            token_count=tokens,
            target_tokens=math.floor(self.target_tokens),
            over_budget=tokens > self.target_tokens,
            strategy=self._config.truncation_strategy,
            created_at=self._created_at,
            last_updated=self._last_updated,
        )

    def snapshot(self) -> ConversationContext:
        return ConversationContext(
            messages=self.messages,
            tool_results=self.tool_results,
            system_prompt=self._config.system_prompt,
            max_tokens=self._config.max_tokens,
            config=self.config,
            stats=self.get_stats(),
        )

    # === Mutation =============================================================

    def add_message(self, message: Message) -> None:
        self._messages.append(message)
        self._touch()
        logger.debug("Message added to context", extra={
            "role": message.role.value, "total_messages": len(self._messages),
        })
        self.truncate_if_needed()

    def add_tool_result(self, result: ToolResult) -> None:
        self._tool_results.append(result)
        self._touch()
        logger.debug("Tool result added to context", extra={
            "tool_name": result.metadata.tool_name, "success": result.success,
        })

    def update_system_prompt(self, prompt: str) -> None:
        self._config.system_prompt = prompt
        self._touch()
        self.truncate_if_needed()

    def update_config(self, **changes) -> None:
        """Apply ContextConfig field overrides. Re-truncates if max_tokens changed."""
        old_max = self._config.max_tokens
        if "truncation_strategy" in changes:
            changes["truncation_strategy"] = TruncationStrategy(
                changes["truncation_strategy"],
            )
        self._config = replace(self._config, **changes)
        self._touch()
        if self._config.max_tokens != old_max:
            self.truncate_if_needed()

    def clear(self) -> None:
        cleared = len(self._messages)
        self._messages = []
        self._tool_results = []
        self._touch()
        logger.debug("Context cleared", extra={"cleared_messages": cleared})

    # === Truncation ===========================================================

    def truncate_if_needed(self) -> bool:
        """Evict per the configured strategy. Returns True if truncation ran."""
        current = self.get_token_count()
        target = self.target_tokens
        if current <= target:
            return False

        strategy = self._config.truncation_strategy
        previous = list(self._messages)
        before = len(previous)
        logger.info("Truncating conversation context", extra={
            "tokens": current, "target_tokens": target,
            "strategy": strategy.value, "message_count": before,
        })

        if not self._config.preserve_tool_results:
            self._tool_results = []

        if strategy == TruncationStrategy.SLIDING_WINDOW:
            self._truncate_sliding_window(target)
        elif strategy == TruncationStrategy.PRIORITY_BASED:
            self._truncate_priority_based(target)
        else:
            if strategy == TruncationStrategy.SUMMARIZE:
                logger.debug("summarize strategy falls back to recent")
            self._truncate_recent(target)

        if self._config.preserve_tool_results:
            self._drop_orphaned_results(previous)
        self._touch()
        after_tokens = self.get_token_count()
        if after_tokens > target:
            logger.warning("Context still over budget after truncation", extra={
                "tokens": after_tokens, "target_tokens": target,
                "message_count": len(self._messages),
            })
        else:
            logger.info("Context truncation completed", extra={
                "tokens": after_tokens, "evicted": before - len(self._messages),
            })
        return True

    @contextmanager
    def tightened(
        self, *, buffer: float | None = None,
        min_recent_messages: int | None = None,
    ):
        """Temporarily override buffer / min_recent_messages; restored on exit."""
        saved_buffer = self._config.truncation_buffer
        saved_min = self._config.min_recent_messages
        if buffer is not None:
            self._config.truncation_buffer = buffer
        if min_recent_messages is not None:
            self._config.min_recent_messages = min_recent_messages
        try:
            yield self
        finally:
            self._config.truncation_buffer = saved_buffer
            self._config.min_recent_messages = saved_min

    def force_truncation(
        self, reserve_tokens: int, min_recent_messages: int = 1,
    ) -> int:
        """Aggressive pass leaving room for reserve_tokens. Returns tokens freed."""
        before = self.get_token_count()
        max_tokens = max(self._config.max_tokens, 1)
        buffer = min(
            MAX_AGGRESSIVE_BUFFER,
            self._config.truncation_buffer + reserve_tokens / max_tokens,
        )
        with self.tightened(buffer=buffer, min_recent_messages=min_recent_messages):
            self.truncate_if_needed()
        return before - self.get_token_count()

    # === Strategies ===========================================================

    def _truncate_recent(self, target: float) -> None:
        indexed = list(enumerate(self._messages))
        used = self._protected_tokens()
        keep = {i for i, m in indexed if m.is_system}
        kept_recent = 0

        for i, msg in reversed(indexed):
            if msg.is_system:
                continue
            cost = message_tokens(msg)
            if used + cost <= target or kept_recent < self._config.min_recent_messages:
                keep.add(i)
                used += cost
                kept_recent += 1
            else:
                break

        self._messages = [m for i, m in indexed if i in keep]

        # Aggressive pass: a single oversized message can still blow the budget
        while self.get_token_count() > target:
            oldest = next(
                (i for i, m in enumerate(self._messages) if not m.is_system), None,
            )
            if oldest is None:
                break
            del self._messages[oldest]

    def _truncate_sliding_window(self, target: float) -> None:
        total = len(self._messages)
        start = total - math.floor(total * SLIDING_WINDOW_FRACTION)
        non_system = [i for i, m in enumerate(self._messages) if not m.is_system]
        floor_n = self._config.min_recent_messages
        if floor_n > 0 and non_system:
            # Never slide past the minimum number of recent messages
            start = min(start, non_system[-min(floor_n, len(non_system))])

        self._messages = [
            m for i, m in enumerate(self._messages)
            if m.is_system or i >= start
        ]
        if self.get_token_count() > target:
            self._truncate_recent(target)

    def _truncate_priority_based(self, target: float) -> None:
        preserve = self._config.preserve_tool_results
        indexed = list(enumerate(self._messages))
        keep = {i for i, m in indexed if m.is_system}
        used = self._protected_tokens()
        kept_non_system = 0

        if preserve:
            for i, msg in reversed(indexed):
                if msg.is_system or not msg.carries_tools:
                    continue
                cost = message_tokens(msg)
                if used + cost <= target:
                    keep.add(i)
                    used += cost
                    kept_non_system += 1

        for i, msg in reversed(indexed):
            if msg.is_system or (preserve and msg.carries_tools):
                continue
            cost = message_tokens(msg)
            if used + cost <= target or kept_non_system < self._config.min_recent_messages:
                keep.add(i)
                used += cost
                kept_non_system += 1
            else:
                break

        # Re-sort kept set into original (chronological) order
        self._messages = [m for i, m in indexed if i in keep]

    # === Helpers ==============================================================

    def _protected_tokens(self) -> int:
        """Tokens nothing can evict: prompt, system messages, preserved tool log."""
        total = estimate_tokens(self._config.system_prompt)
        total += sum(message_tokens(m) for m in self._messages if m.is_system)
        total += sum(tool_result_tokens(r) for r in self._tool_results)
        return total

    def _drop_orphaned_results(self, previous: list[Message]) -> None:
        """Drop log entries owned by a message this pass evicted."""
        kept = {id(m) for m in self._messages}
        orphaned = {
            id(r) for m in previous if id(m) not in kept for r in m.tool_results
        }
        if not orphaned:
            return
        before = len(self._tool_results)
        self._tool_results = [r for r in self._tool_results if id(r) not in orphaned]
        logger.debug("Tool results dropped with their message", extra={
            "dropped": before - len(self._tool_results),
        })

    def _touch(self) -> None:
        self._last_updated = utc_now()


def coding_profile() -> ContextConfig:
    """Profile for sessions driven by a coding assistant: larger window, tools kept."""
    return ContextConfig(
        max_tokens=6000,
        truncation_strategy=TruncationStrategy.PRIORITY_BASED,
        system_prompt=CODING_SYSTEM_PROMPT,
        preserve_tool_results=True,
        min_recent_messages=4,
        truncation_buffer=0.2,
    )
