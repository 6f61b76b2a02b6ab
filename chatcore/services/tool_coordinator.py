"""Tool Execution Coordinator — validate, sanitize, invoke and recover one tool call.

Invariants:
    - execute() never raises (CancelledError excepted) and always returns a ToolResult
    - A tool returning anything but a ToolResult is a tool_execution_error
    - Unknown tool → tool_not_found; bad parameters → invalid_parameters; neither retryable
    - Validation and sanitization happen before any tool side effect
    - metadata.execution_time_ms >= 1; metadata.parameters are the sanitized parameters
    - A tool that returns success=False reported its own failure: no ClassifiedError,
      so the caller does not retry it

Design Decisions:
    - ToolOutcome pairs the ToolResult (always present) with the ClassifiedError
      (present on classified failure): retry decisions need the kind, context needs the result
    - Single attempt here; retry lives in Orchestrator.execute_tool_call so the
      backoff policy and sleep stay with the rest of the pipeline's retry handling
"""

import asyncio
import logging
import time
from dataclasses import dataclass, replace
from typing import Any

from chatcore.core.adapter_protocols import ToolRegistryLike
from chatcore.core.domain_types import ErrorKind
from chatcore.core.errors import ClassifiedError
from chatcore.core.messages import ToolCall, ToolExecutionMetadata, ToolResult
from chatcore.core.tool_validation import sanitize_parameters, validate_parameters
from chatcore.services.tool_recovery import recover

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolOutcome:
    result: ToolResult
    error: ClassifiedError | None = None

    @property
    def retryable(self) -> bool:
        return self.error is not None and self.error.retryable


class ToolExecutionCoordinator:
    def __init__(self, registry: ToolRegistryLike, timeout_seconds: float = 30.0):
        self._registry = registry
        self._timeout = timeout_seconds

    @property
    def registry(self) -> ToolRegistryLike:
        return self._registry

    async def execute(self, call: ToolCall) -> ToolOutcome:
        started = time.perf_counter()
        tool = self._registry.get_tool(call.name)
        if tool is None:
            return self._failure(call, started, call.parameters, ClassifiedError.of(
                ErrorKind.TOOL_NOT_FOUND, f"Tool '{call.name}' not found",
                provider="tool",
                suggested_fix="Use one of the registered tools.",
            ))

        issue = validate_parameters(tool.parameters, call.parameters)
        if issue is None:
            parameters, issue = sanitize_parameters(call.name, call.parameters)
        else:
            parameters = dict(call.parameters)
        if issue is not None:
            return self._failure(call, started, parameters, ClassifiedError.of(
                ErrorKind.INVALID_PARAMETERS,
                f"Parameter validation failed: {issue.message}",
                provider="tool",
            ))

        try:
            raw = await asyncio.wait_for(tool.execute(parameters), self._timeout)
            if not isinstance(raw, ToolResult):
                raise TypeError(f"returned {type(raw).__name__}, expected ToolResult")
        except asyncio.TimeoutError:
            error = recover(call.name, TimeoutError(
                f"timed out after {self._timeout:g}s",
            ))
            return self._failure(call, started, parameters, error)
        except Exception as exc:  # tool code is untrusted
            logger.warning("Tool raised", extra={
                "tool_name": call.name, "error_type": type(exc).__name__,
            })
            return self._failure(call, started, parameters, recover(call.name, exc))

        result = ToolResult(
            success=raw.success,
            output=raw.output,
            error=raw.error,
            metadata=self._metadata(call.name, parameters, started),
        )
        logger.info("Tool executed", extra={
            "tool_name": call.name, "success": result.success,
            "execution_time_ms": result.metadata.execution_time_ms,
        })
        return ToolOutcome(result)

    def _failure(
        self, call: ToolCall, started: float,
        parameters: dict[str, Any], error: ClassifiedError,
    ) -> ToolOutcome:
        logger.warning("Tool call failed", extra={
            "tool_name": call.name, "error_code": error.kind.value,
            "retryable": error.retryable,
        })
        metadata = replace(
            self._metadata(call.name, parameters, started),
            error_code=error.kind.value,
        )
        return ToolOutcome(
            ToolResult(success=False, error=error.message, metadata=metadata),
            error,
        )

    @staticmethod
    def _metadata(
        tool_name: str, parameters: dict[str, Any], started: float,
    ) -> ToolExecutionMetadata:
        elapsed_ms = int((time.perf_counter() - started) * 1000)
        return ToolExecutionMetadata(
            execution_time_ms=max(elapsed_ms, 1),
            tool_name=tool_name,
            parameters=dict(parameters),
        )
