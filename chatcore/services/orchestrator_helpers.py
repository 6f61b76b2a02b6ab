"""Orchestrator Helpers — pipeline run record, prompt assembly and chunk delivery.

Invariants:
    - PipelineRun.states starts at idle and ends at completed or failed once finished
    - build_prompt_messages() puts the system prompt first, then context messages in order
    - deliver_chunk() accepts sync and async sinks alike

Design Decisions:
    - Extracted from orchestrator.py to keep the state machine file readable
    - PipelineRun is a plain dataclass: tests assert on the state history directly
"""

import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Union

from chatcore.core.context_window import ContextWindowManager
from chatcore.core.domain_types import PipelineState, Role
from chatcore.core.errors import ClassifiedError
from chatcore.core.messages import Message, ParsedResponse, StreamChunk
from chatcore.core.tokens import estimate_tokens

logger = logging.getLogger(__name__)

ChunkSink = Callable[[StreamChunk], Union[None, Awaitable[None]]]


@dataclass
class PipelineRun:
    """State history of one send_message call."""
    session_id: str
    states: list[PipelineState] = field(default_factory=lambda: [PipelineState.IDLE])
    attempts: int = 0
    chunks_delivered: int = 0
    prompt_tokens: int = 0
    overflow_recovered: bool = False
    error: ClassifiedError | None = None

    @property
    def state(self) -> PipelineState:
        return self.states[-1]

    def enter(self, state: PipelineState) -> None:
        self.states.append(state)
        logger.debug("Pipeline state", extra={
            "session_id": self.session_id, "state": state.value,
            "attempt": self.attempts,
        })

    def fail(self, error: ClassifiedError | None) -> None:
        self.error = error
        self.enter(PipelineState.FAILED)


def build_prompt_messages(context: ContextWindowManager) -> list[Message]:
    """System prompt as a leading system message, then the history."""
    messages = list(context.messages)
    if context.system_prompt:
        messages.insert(0, Message(Role.SYSTEM, context.system_prompt))
    return messages


def response_tokens(parsed: ParsedResponse) -> int:
    return estimate_tokens(parsed.content) + sum(
        estimate_tokens(call.to_json()) for call in parsed.tool_calls
    )


async def deliver_chunk(sink: ChunkSink, chunk: StreamChunk) -> None:
    result: Any = sink(chunk)
    if inspect.isawaitable(result):
        await result
