"""Conversation Data Model — messages, tool calls and tool results.

Invariants:
    - Message, ToolCall and ToolResult are frozen: immutable once appended
    - Insertion order (not timestamp) is the basis for chronological reasoning
    - ToolResult.metadata.execution_time_ms >= 1 when produced by the coordinator

Design Decisions:
    - Dataclasses over Pydantic for the hot path: no validation cost per chunk
    - Tuples for nested sequences: frozen dataclasses stay truly immutable
"""

import json
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Any

from chatcore.core.domain_types import Role


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ToolCall:
    """A model-requested tool invocation. Produced only by adapter parsers."""
    id: str
    name: str
    parameters: dict[str, Any] = field(default_factory=dict)

    def to_json(self) -> str:
        return json.dumps(asdict(self), ensure_ascii=False, default=str)


@dataclass(frozen=True)
class ToolExecutionMetadata:
    execution_time_ms: int
    tool_name: str
    parameters: dict[str, Any]
    timestamp: datetime = field(default_factory=utc_now)
    retry_count: int | None = None
    error_code: str | None = None


@dataclass(frozen=True)
class ToolResult:
    """Outcome of one tool call. Exactly one per ToolCall."""
    success: bool
    metadata: ToolExecutionMetadata
    output: str | None = None
    error: str | None = None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["metadata"]["timestamp"] = self.metadata.timestamp.isoformat()
        return data


@dataclass(frozen=True)
class Message:
    role: Role
    content: str
    timestamp: datetime = field(default_factory=utc_now)
    tool_calls: tuple[ToolCall, ...] = ()
    tool_results: tuple[ToolResult, ...] = ()

    @property
    def is_system(self) -> bool:
        return self.role == Role.SYSTEM

    @property
    def carries_tools(self) -> bool:
        """True for tool-role messages and messages with tool calls/results."""
        return (
            self.role == Role.TOOL
            or bool(self.tool_calls)
            or bool(self.tool_results)
        )


@dataclass(frozen=True)
class StreamChunk:
    """One streamed delta. The final chunk carries accumulated tool calls."""
    content: str
    is_complete: bool = False
    tool_calls: tuple[ToolCall, ...] = ()


@dataclass(frozen=True)
class ParsedResponse:
    """Adapter-parsed model output."""
    content: str
    tool_calls: tuple[ToolCall, ...] = ()


@dataclass(frozen=True)
class ResponseMetadata:
    model: str
    tokens_used: int
    processing_time_ms: int
    timestamp: datetime = field(default_factory=utc_now)
    attempts: int = 1


@dataclass(frozen=True)
class OrchestratorResponse:
    """What send_message returns to the caller."""
    content: str
    metadata: ResponseMetadata
    tool_calls: tuple[ToolCall, ...] = ()
    tool_results: tuple[ToolResult, ...] = ()
