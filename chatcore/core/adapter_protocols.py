"""Boundary Protocols — contracts between the pipeline and its pluggable collaborators.

Invariants:
    - Core NEVER imports a concrete adapter or tool; dependency arrows point inward only
    - Backends are reached only through ModelAdapter; tools only through Tool/ToolRegistryLike
    - Implementations are injected by the host (bootstrap.build_orchestrator)

Design Decisions:
    - Protocol over ABC: structural subtyping, no inheritance hierarchy
    - ModelCapabilities is data, not methods: the pipeline gates features by flags
      (tool offering, streaming, connection probe) instead of isinstance checks
"""

from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Protocol, Sequence

from chatcore.core.messages import Message, ParsedResponse, StreamChunk, ToolResult
from chatcore.core.tool_validation import ToolParameter
from chatcore.schemas.model_config import ModelConfig

__all__ = [
    "CancellationSignal", "ModelAdapter", "ModelCapabilities",
    "Tool", "ToolParameter", "ToolRegistryLike",
]


@dataclass(frozen=True)
class ModelCapabilities:
    supports_tool_calling: bool = False
    supports_streaming: bool = False
    supports_connection_probe: bool = True
    max_context_length: int = 4096
    supported_formats: tuple[str, ...] = field(default_factory=lambda: ("text",))


class CancellationSignal(Protocol):
    """Read side of a cancellation token, as seen by adapters."""
    @property
    def is_cancelled(self) -> bool: ...


class ModelAdapter(Protocol):
    """Contract for one LLM backend, implemented by infrastructure."""
    async def initialize(self, config: ModelConfig) -> None: ...
    async def test_connection(self) -> bool: ...
    def format_prompt(
        self, messages: Sequence[Message], tools: Sequence["Tool"],
    ) -> Any: ...
    async def send_request(self, prompt: Any) -> str: ...
    def send_streaming_request(
        self, prompt: Any, cancel_token: CancellationSignal,
    ) -> AsyncIterator[StreamChunk]: ...
    def parse_response(self, raw: str) -> ParsedResponse: ...
    def supports_streaming(self) -> bool: ...
    def get_capabilities(self) -> ModelCapabilities: ...


class Tool(Protocol):
    """Contract for an executable tool."""
    name: str
    description: str
    parameters: Sequence[ToolParameter]

    async def execute(self, parameters: dict[str, Any]) -> ToolResult: ...


class ToolRegistryLike(Protocol):
    """Contract for tool lookup, implemented by services.tool_registry."""
    def get_tool(self, name: str) -> Tool | None: ...
    def get_all_tools(self) -> list[Tool]: ...
    def get_tool_schemas(self) -> list[dict]: ...
