"""Domain Types — verifies enum values and the retryable-kind partition.

Tests:
    - Enums serialize to the wire strings adapters and hosts rely on
    - RETRYABLE_KINDS matches the retry table exactly
    - Tool validation / configuration kinds are never retryable
"""

from chatcore.core.domain_types import (
    ErrorKind, ParameterType, PipelineState, Role, SessionId,
    TruncationStrategy, RETRYABLE_KINDS, is_retryable,
)


def test_session_id_wraps_str():
    assert SessionId("abc") == "abc"


def test_role_values():
    assert {r.value for r in Role} == {"user", "assistant", "system", "tool"}


def test_truncation_strategies():
    assert TruncationStrategy("priority_based") is TruncationStrategy.PRIORITY_BASED
    assert len(TruncationStrategy) == 4


def test_pipeline_states_include_retrying_and_failed():
    assert PipelineState.RETRYING.value == "retrying"
    assert PipelineState.FAILED.value == "failed"


def test_parameter_types():
    assert [p.value for p in ParameterType] == [
        "string", "number", "boolean", "array", "object",
    ]


def test_retryable_kinds_exact():
    assert {k.value for k in RETRYABLE_KINDS} == {
        "rate_limit_exceeded", "server_error", "server_overloaded",
        "bad_gateway", "service_unavailable", "gateway_timeout", "timeout",
        "network_error", "connection_refused", "connection_failed",
        "command_timeout", "tool_execution_error",
    }


def test_non_retryable_kinds():
    for kind in (
        ErrorKind.INVALID_API_KEY, ErrorKind.CONTEXT_LENGTH_EXCEEDED,
        ErrorKind.QUOTA_EXCEEDED, ErrorKind.MODEL_NOT_FOUND,
        ErrorKind.TOOL_NOT_FOUND, ErrorKind.INVALID_PARAMETERS,
        ErrorKind.FILE_NOT_FOUND, ErrorKind.MODEL_NOT_CONFIGURED,
        ErrorKind.UNKNOWN_ERROR,
    ):
        assert not is_retryable(kind), kind
