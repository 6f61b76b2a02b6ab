"""Error Hierarchy — typed, categorized exceptions for all chatcore failure modes.

Invariants:
    - Every error has a code (str), category (ErrorCategory), severity (ErrorSeverity)
    - ClassifiedError is derived per failure, never persisted
    - Pipeline-surfaced errors carry the last ClassifiedError (kind, fix, status)
    - to_response() produces the envelope handed to chat surfaces
    - Tool failures are never raised through this hierarchy (captured in ToolResult)

Design Decisions:
    - Single hierarchy with ChatCoreError base: callers catch one type
    - ErrorContext as dataclass: rich observability without coupling to logging framework
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from chatcore.core.domain_types import ErrorKind, is_retryable


class ErrorSeverity(str, Enum):
    """Error severity for observability and client handling."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    """High-level error categories for routing and handling."""
    VALIDATION = "validation"
    CONFIGURATION = "configuration"
    CONFLICT = "conflict"
    CANCELLED = "cancelled"
    EXTERNAL_API = "external_api"
    INTERNAL = "internal"


@dataclass(frozen=True)
class ClassifiedError:
    """Normalized, retry-aware representation of a raw failure."""
    kind: ErrorKind
    message: str
    provider: str
    retryable: bool
    retry_after_seconds: int | None = None
    suggested_fix: str | None = None
    status_code: int | None = None

    @classmethod
    def of(
        cls, kind: ErrorKind, message: str, provider: str = "chatcore",
        suggested_fix: str | None = None,
    ) -> "ClassifiedError":
        """Build with retryable derived from the kind."""
        return cls(
            kind=kind, message=message, provider=provider,
            retryable=is_retryable(kind), suggested_fix=suggested_fix,
        )


@dataclass
class ErrorContext:
    """Rich context for error observability and debugging."""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    session_id: str | None = None
    tool_name: str | None = None
    operation: str | None = None
    attempt: int | None = None
    debug_info: dict[str, Any] | None = None


class ChatCoreError(Exception):
    """Base exception for all chatcore errors."""

    def __init__(
        self,
        message: str,
        code: str,
        category: ErrorCategory,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        context: ErrorContext | None = None,
        classified: ClassifiedError | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.category = category
        self.severity = severity
        self.context = context or ErrorContext()
        self.classified = classified

    @property
    def retryable(self) -> bool:
        return bool(self.classified and self.classified.retryable)

    @property
    def suggested_fix(self) -> str | None:
        return self.classified.suggested_fix if self.classified else None

    def to_response(self) -> dict:
        """Convert to the standardized error envelope."""
        classified = self.classified
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "category": self.category.value,
                "severity": self.severity.value,
                "retryable": self.retryable,
                "suggested_fix": self.suggested_fix,
                "status_code": classified.status_code if classified else None,
                "provider": classified.provider if classified else None,
                "timestamp": self.context.timestamp.isoformat(),
                "context": {
                    "session_id": self.context.session_id,
                    "tool_name": self.context.tool_name,
                    "operation": self.context.operation,
                    "attempt": self.context.attempt,
                },
            }
        }


# ─── Fatal Errors (no retry) ────────────────────────────────────

class ConfigurationError(ChatCoreError):
    """No usable model configured, or the model config is invalid."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(
            message, ErrorKind.MODEL_NOT_CONFIGURED.value,
            ErrorCategory.CONFIGURATION, ErrorSeverity.ERROR, context,
            ClassifiedError.of(
                ErrorKind.MODEL_NOT_CONFIGURED, message,
                suggested_fix="Configure a model with set_model() before sending messages.",
            ),
        )


class InvalidRequestError(ChatCoreError):
    """Missing session id or empty message."""
    def __init__(self, message: str, field: str, context: ErrorContext | None = None):
        super().__init__(
            message, ErrorKind.INVALID_REQUEST.value,
            ErrorCategory.VALIDATION, ErrorSeverity.ERROR, context,
            ClassifiedError.of(ErrorKind.INVALID_REQUEST, message),
        )
        self.field = field


class StreamingInProgressError(ChatCoreError):
    """A second stream was requested while one is in flight."""
    def __init__(self, context: ErrorContext | None = None):
        message = "A streaming operation is already in progress"
        super().__init__(
            message, ErrorKind.STREAMING_IN_PROGRESS.value,
            ErrorCategory.CONFLICT, ErrorSeverity.ERROR, context,
            ClassifiedError.of(
                ErrorKind.STREAMING_IN_PROGRESS, message,
                suggested_fix="Wait for the current response or call abort_streaming().",
            ),
        )


class StreamingAbortedError(ChatCoreError):
    """The in-flight stream was cancelled by abort_streaming()."""
    def __init__(self, context: ErrorContext | None = None):
        message = "Streaming was aborted"
        super().__init__(
            message, ErrorKind.STREAMING_ABORTED.value,
            ErrorCategory.CANCELLED, ErrorSeverity.INFO, context,
            ClassifiedError.of(ErrorKind.STREAMING_ABORTED, message),
        )


# ─── Provider Errors (retried, then surfaced) ───────────────────

class ProviderError(ChatCoreError):
    """Backend call failed; carries the last classified error."""
    def __init__(
        self, classified: ClassifiedError, attempts: int = 1,
        context: ErrorContext | None = None,
    ):
        super().__init__(
            classified.message, classified.kind.value,
            ErrorCategory.EXTERNAL_API,
            ErrorSeverity.WARNING if classified.retryable else ErrorSeverity.ERROR,
            context, classified,
        )
        self.attempts = attempts
