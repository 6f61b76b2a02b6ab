"""Tool Registry — explicit name → Tool mapping and model-facing schemas.

Invariants:
    - Every registered tool has a non-empty name and description and an async execute
    - Re-registering a name replaces the previous tool (last write wins, logged)
    - get_tool_schemas() output order == registration order

Design Decisions:
    - Explicit registration, no auto-discovery: every tool visible at the wiring site
    - Registry does lookup only; validation and execution live in ToolExecutionCoordinator
"""

import inspect
import logging

from chatcore.core.adapter_protocols import Tool

logger = logging.getLogger(__name__)


def tool_schema(tool: Tool) -> dict:
    """JSON-schema style description consumed by model adapters."""
    return {
        "name": tool.name,
        "description": tool.description,
        "parameters": {
            "type": "object",
            "properties": {p.name: p.to_schema() for p in tool.parameters},
            "required": [p.name for p in tool.parameters if p.required],
        },
    }


class ToolRegistry:
    def __init__(self, tools: list[Tool] | None = None):
        self._tools: dict[str, Tool] = {}
        for tool in tools or []:
            self.register_tool(tool)

    def __len__(self) -> int:
        return len(self._tools)

    def register_tool(self, tool: Tool) -> None:
        if not getattr(tool, "name", None) or not isinstance(tool.name, str):
            raise ValueError("Tool name is required and must be a string")
        if not getattr(tool, "description", None):
            raise ValueError(f"Tool '{tool.name}' requires a description")
        if not inspect.iscoroutinefunction(getattr(tool, "execute", None)):
            raise ValueError(f"Tool '{tool.name}' must define async execute()")
        if tool.name in self._tools:
            logger.warning("Tool re-registered, replacing", extra={"tool_name": tool.name})
        self._tools[tool.name] = tool

    def unregister_tool(self, name: str) -> bool:
        return self._tools.pop(name, None) is not None

    def get_tool(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def get_all_tools(self) -> list[Tool]:
        return list(self._tools.values())

    def get_tool_schemas(self) -> list[dict]:
        return [tool_schema(t) for t in self._tools.values()]
