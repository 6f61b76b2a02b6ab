"""Anthropic Adapter — ModelAdapter over the official AsyncAnthropic client.

Invariants:
    - No retry here: every SDK error propagates to the Orchestrator's classifier
    - format_prompt() emits strictly alternating user/assistant turns; system-role
      messages are folded into the top-level system parameter
    - Every assistant tool_use block is answered by a tool_result block in the next turn
    - The final streamed chunk is is_complete=True and carries the turn's tool calls

Design Decisions:
    - send_request() returns the SDK message serialized as JSON: the ModelAdapter
      contract keeps raw responses as strings, parse_response() owns decoding
    - Connection probe disabled in capabilities: hosted API, a probe costs a request;
      test_connection() stays available for hosts that want a health check
    - Client injectable for tests (no network)
"""

import json
import logging
from typing import Any, AsyncIterator, Sequence

import anthropic

from chatcore.core.adapter_protocols import CancellationSignal, ModelCapabilities, Tool
from chatcore.core.domain_types import Role
from chatcore.core.messages import Message, ParsedResponse, StreamChunk, ToolCall
from chatcore.schemas.model_config import ModelConfig
from chatcore.services.tool_registry import tool_schema

logger = logging.getLogger(__name__)

DEFAULT_CONTEXT_LENGTH = 200_000


class AnthropicAdapter:
    """Talks to the Anthropic Messages API."""

    def __init__(
        self,
        api_key: str | None = None,
        timeout_seconds: int = 300,
        max_output_tokens: int = 4096,
        client: anthropic.AsyncAnthropic | None = None,
    ):
        self._api_key = api_key
        self._timeout = timeout_seconds
        self._max_output_tokens = max_output_tokens
        self._client = client
        self._config: ModelConfig | None = None

    async def initialize(self, config: ModelConfig) -> None:
        self._config = config
        if self._client is None:
            self._client = anthropic.AsyncAnthropic(
                api_key=config.api_key or self._api_key,
                base_url=config.endpoint,
                timeout=self._timeout,
            )
        logger.info("Anthropic adapter initialized", extra={
            "provider": config.provider, "model": config.model,
        })

    async def test_connection(self) -> bool:
        try:
            await self._require_client().models.list(limit=1)
        except (anthropic.APIConnectionError, anthropic.APITimeoutError) as e:
            logger.warning("Anthropic connection probe failed", extra={
                "error_type": type(e).__name__,
            })
            return False
        return True

    def supports_streaming(self) -> bool:
        return True

    def get_capabilities(self) -> ModelCapabilities:
        return ModelCapabilities(
            supports_tool_calling=True,
            supports_streaming=True,
            supports_connection_probe=False,
            max_context_length=DEFAULT_CONTEXT_LENGTH,
            supported_formats=("text", "image"),
        )

    # === Prompt ===============================================================

    def format_prompt(
        self, messages: Sequence[Message], tools: Sequence[Tool],
    ) -> dict:
        system_parts = [m.content for m in messages if m.is_system and m.content]
        turns: list[dict] = []
        for msg in messages:
            if msg.is_system:
                continue
            for role, blocks in _to_turns(msg):
                if turns and turns[-1]["role"] == role:
                    turns[-1]["content"].extend(blocks)
                else:
                    turns.append({"role": role, "content": list(blocks)})
        if turns and turns[0]["role"] == "assistant":
            # Truncation can leave an assistant turn first; the API requires user
            turns.insert(0, {"role": "user", "content": _text_blocks("(continued)")})
        return {
            "system": "\n\n".join(system_parts),
            "messages": turns,
            "tools": [_tool_param(t) for t in tools],
        }

    # === Requests =============================================================

    async def send_request(self, prompt: dict) -> str:
        response = await self._require_client().messages.create(
            **self._request_kwargs(prompt),
        )
        self._log_success(response)
        return response.model_dump_json()

    async def send_streaming_request(
        self, prompt: dict, cancel_token: CancellationSignal,
    ) -> AsyncIterator[StreamChunk]:
        async with self._require_client().messages.stream(
            **self._request_kwargs(prompt),
        ) as stream:
            async for event in stream:
                if cancel_token.is_cancelled:
                    return
                text = _text_delta(event)
                if text:
                    yield StreamChunk(text)
            final = await stream.get_final_message()
        self._log_success(final)
        yield StreamChunk(
            "", is_complete=True,
            tool_calls=_tool_calls([b.model_dump() for b in final.content]),
        )

    def parse_response(self, raw: str) -> ParsedResponse:
        data = json.loads(raw)
        blocks = data.get("content") or []
        text = "".join(b.get("text", "") for b in blocks if b.get("type") == "text")
        return ParsedResponse(content=text, tool_calls=_tool_calls(blocks))

    # === Private ==============================================================

    def _require_client(self) -> anthropic.AsyncAnthropic:
        if self._client is None:
            raise RuntimeError("AnthropicAdapter.initialize() has not been called")
        return self._client

    def _request_kwargs(self, prompt: dict) -> dict[str, Any]:
        if self._config is None:
            raise RuntimeError("AnthropicAdapter.initialize() has not been called")
        kwargs: dict[str, Any] = {
            "model": self._config.model,
            "max_tokens": self._config.max_tokens or self._max_output_tokens,
            "messages": prompt["messages"],
        }
        if prompt.get("system"):
            kwargs["system"] = prompt["system"]
        if prompt.get("tools"):
            kwargs["tools"] = prompt["tools"]
        if self._config.temperature is not None:
            kwargs["temperature"] = self._config.temperature
        kwargs.update(self._config.additional_params)
        return kwargs

    def _log_success(self, response) -> None:
        usage = getattr(response, "usage", None)
        if usage is None:
            return
        logger.info("Anthropic API success", extra={
            "input_tokens": usage.input_tokens,
            "output_tokens": usage.output_tokens,
        })


# ─── Conversion helpers ─────────────────────────────────────────

def _to_turns(msg: Message) -> list[tuple[str, list[dict]]]:
    """One chatcore message → one or two API turns."""
    if msg.role == Role.ASSISTANT:
        blocks = _text_blocks(msg.content)
        blocks += [
            {"type": "tool_use", "id": c.id, "name": c.name, "input": c.parameters}
            for c in msg.tool_calls
        ]
        turns = [("assistant", blocks)] if blocks else []
        if msg.tool_calls:
            turns.append(("user", _tool_result_blocks(msg)))
        return turns
    # user and tool-role messages are both user turns
    blocks = _text_blocks(msg.content)
    return [("user", blocks)] if blocks else []


def _tool_result_blocks(msg: Message) -> list[dict]:
    blocks = []
    for i, call in enumerate(msg.tool_calls):
        result = msg.tool_results[i] if i < len(msg.tool_results) else None
        if result is None:
            blocks.append({
                "type": "tool_result", "tool_use_id": call.id,
                "content": "No result recorded", "is_error": True,
            })
            continue
        blocks.append({
            "type": "tool_result",
            "tool_use_id": call.id,
            "content": (result.output if result.success else result.error) or "",
            "is_error": not result.success,
        })
    return blocks


def _text_blocks(text: str) -> list[dict]:
    return [{"type": "text", "text": text}] if text else []


def _tool_param(tool: Tool) -> dict:
    schema = tool_schema(tool)
    return {
        "name": schema["name"],
        "description": schema["description"],
        "input_schema": schema["parameters"],
    }


def _text_delta(event: Any) -> str | None:
    if getattr(event, "type", None) != "content_block_delta":
        return None
    delta = getattr(event, "delta", None)
    if getattr(delta, "type", None) != "text_delta":
        return None
    return getattr(delta, "text", None)


def _tool_calls(blocks: list[dict]) -> tuple[ToolCall, ...]:
    return tuple(
        ToolCall(id=b["id"], name=b["name"], parameters=dict(b.get("input") or {}))
        for b in blocks if b.get("type") == "tool_use"
    )
