"""Domain Types — enums that replace bare strings across the codebase.

Invariants:
    - All valid states encoded as Enums, no raw string matching in pipeline logic
    - ErrorKind values are the wire-stable codes reported in ClassifiedError.kind
    - RETRYABLE_KINDS is the single source of truth for retry decisions

Design Decisions:
    - str Enums: serialize to JSON and compare equal to their string value
      (ADR: adapters and tools may still report plain string codes)
"""

from enum import Enum
from typing import NewType


# ─── Identity Types ──────────────────────────────────────────────

SessionId = NewType("SessionId", str)


# ─── Enums ───────────────────────────────────────────────────────

class Role(str, Enum):
    """Message author role."""
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"
    TOOL = "tool"


class Provider(str, Enum):
    """Known backend providers. Anything else is classified generically."""
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    OLLAMA = "ollama"
    HUGGINGFACE = "huggingface"
    CUSTOM = "custom"


class TruncationStrategy(str, Enum):
    """Eviction policy applied when the token budget is exceeded."""
    RECENT = "recent"
    SLIDING_WINDOW = "sliding_window"
    PRIORITY_BASED = "priority_based"
    SUMMARIZE = "summarize"


class PipelineState(str, Enum):
    """Message pipeline states. failed and completed are terminal."""
    IDLE = "idle"
    VALIDATING = "validating"
    AWAITING_CONNECTION = "awaiting_connection"
    BUDGET_CHECK = "budget_check"
    DISPATCHING = "dispatching"
    RETRYING = "retrying"
    TOOL_LOOP = "tool_loop"
    COMPLETED = "completed"
    FAILED = "failed"


class ParameterType(str, Enum):
    """Declared tool parameter types."""
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    ARRAY = "array"
    OBJECT = "object"


class ErrorKind(str, Enum):
    """Normalized failure kinds shared by providers, pipeline and tools."""
    # Pipeline / configuration
    MODEL_NOT_CONFIGURED = "model_not_configured"
    INVALID_REQUEST = "invalid_request"
    CONNECTION_FAILED = "connection_failed"
    STREAMING_IN_PROGRESS = "streaming_in_progress"
    STREAMING_ABORTED = "streaming_aborted"

    # Provider
    INVALID_API_KEY = "invalid_api_key"
    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"
    CONTEXT_LENGTH_EXCEEDED = "context_length_exceeded"
    QUOTA_EXCEEDED = "quota_exceeded"
    MODEL_NOT_FOUND = "model_not_found"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    CLIENT_ERROR = "client_error"
    OUT_OF_MEMORY = "out_of_memory"
    SERVER_ERROR = "server_error"
    SERVER_OVERLOADED = "server_overloaded"
    BAD_GATEWAY = "bad_gateway"
    SERVICE_UNAVAILABLE = "service_unavailable"
    GATEWAY_TIMEOUT = "gateway_timeout"
    TIMEOUT = "timeout"
    NETWORK_ERROR = "network_error"
    CONNECTION_REFUSED = "connection_refused"
    UNKNOWN_ERROR = "unknown_error"

    # Tools
    TOOL_NOT_FOUND = "tool_not_found"
    INVALID_PARAMETERS = "invalid_parameters"
    FILE_NOT_FOUND = "file_not_found"
    PERMISSION_DENIED = "permission_denied"
    DISK_FULL = "disk_full"
    COMMAND_NOT_FOUND = "command_not_found"
    COMMAND_TIMEOUT = "command_timeout"
    TOOL_EXECUTION_ERROR = "tool_execution_error"


RETRYABLE_KINDS = frozenset({
    ErrorKind.RATE_LIMIT_EXCEEDED,
    ErrorKind.SERVER_ERROR,
    ErrorKind.SERVER_OVERLOADED,
    ErrorKind.BAD_GATEWAY,
    ErrorKind.SERVICE_UNAVAILABLE,
    ErrorKind.GATEWAY_TIMEOUT,
    ErrorKind.TIMEOUT,
    ErrorKind.NETWORK_ERROR,
    ErrorKind.CONNECTION_REFUSED,
    ErrorKind.CONNECTION_FAILED,
    ErrorKind.COMMAND_TIMEOUT,
    ErrorKind.TOOL_EXECUTION_ERROR,
})


def is_retryable(kind: ErrorKind) -> bool:
    return kind in RETRYABLE_KINDS
