"""Orchestrator — the message pipeline between a chat surface and a model backend.

Invariants:
    - Pipeline: idle → validating → awaiting_connection → budget_check → dispatching
      → (tool_loop) → completed; retrying between attempts; failed on surfaced error
    - Adapter invocations for a retryable failure never exceed message_backoff.max_attempts
    - Non-retryable failures surface after the first attempt (no sleep, no redispatch)
    - At most one stream per Orchestrator; a concurrent stream is rejected before any await
    - The stream guard and cancellation token are released on every exit path
    - Context mutation for a session happens only while holding that session's lock
    - Tool failures never raise out of send_message (captured as ToolResults)
    - A streaming attempt that already delivered chunks is never retried
    - A user turn that truncation cannot keep surfaces context_length_exceeded
      without dispatching

Design Decisions:
    - Context overflow (context_length_exceeded) gets one forced truncation and a
      redispatch inside the same attempt budget, without backoff sleep
    - One dispatch per send_message: tool results are appended to the context and the
      reply; the next user turn carries them to the model
    - sleep and rng injectable: retry tests run instantly and deterministically
    - Pure helpers extracted to orchestrator_helpers.py
"""

import asyncio
import logging
import random
import time
from contextlib import nullcontext
from dataclasses import replace
from typing import Awaitable, Callable

from pydantic import ValidationError

from chatcore.core.adapter_protocols import ModelAdapter, Tool
from chatcore.core.context_window import (
    ContextWindowManager, ConversationContext, coding_profile,
)
from chatcore.core.domain_types import ErrorKind, PipelineState, Role
from chatcore.core.error_classifier import classify
from chatcore.core.error_fixes import context_length_suggestion
from chatcore.core.errors import (
    ChatCoreError, ClassifiedError, ConfigurationError, ErrorContext,
    InvalidRequestError, ProviderError, StreamingAbortedError,
)
from chatcore.core.messages import (
    Message, OrchestratorResponse, ParsedResponse, ResponseMetadata, StreamChunk,
    ToolCall, ToolResult,
)
from chatcore.core.retry_policy import BackoffPolicy, RetryState
from chatcore.core.tokens import estimate_tokens
from chatcore.schemas.model_config import ModelConfig
from chatcore.services.orchestrator_helpers import (
    ChunkSink, PipelineRun, build_prompt_messages, deliver_chunk, response_tokens,
)
from chatcore.services.session_store import Session, SessionStore
from chatcore.services.streaming import CancellationToken, StreamGuard
from chatcore.services.tool_coordinator import ToolExecutionCoordinator, ToolOutcome
from chatcore.services.tool_registry import ToolRegistry

logger = logging.getLogger(__name__)

AdapterFactory = Callable[[ModelConfig], ModelAdapter]

MESSAGE_BACKOFF = BackoffPolicy(max_attempts=3, base_delay_ms=1000, max_delay_ms=30_000, jitter=0.25)
TOOL_BACKOFF = BackoffPolicy(max_attempts=2, base_delay_ms=500, max_delay_ms=5_000, jitter=0.1)


class Orchestrator:
    """Runs the message pipeline for every session of one chat surface."""

    def __init__(
        self,
        registry: ToolRegistry,
        adapter_factory: AdapterFactory,
        *,
        sessions: SessionStore | None = None,
        message_backoff: BackoffPolicy = MESSAGE_BACKOFF,
        tool_backoff: BackoffPolicy = TOOL_BACKOFF,
        tool_timeout_seconds: float = 30.0,
        aggressive_min_recent_messages: int = 1,
        overflow_reserve_fraction: float = 0.3,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: Callable[[float, float], float] = random.uniform,
    ):
        self._registry = registry
        self._tools = ToolExecutionCoordinator(registry, tool_timeout_seconds)
        self._adapter_factory = adapter_factory
        if sessions is None:
            sessions = SessionStore(50, lambda: ContextWindowManager(coding_profile()))
        self._sessions = sessions
        self._message_backoff = message_backoff
        self._tool_backoff = tool_backoff
        self._aggressive_min_recent = aggressive_min_recent_messages
        self._overflow_reserve_fraction = overflow_reserve_fraction
        self._sleep = sleep
        self._rng = rng
        self._stream_guard = StreamGuard()
        self._adapter: ModelAdapter | None = None
        self._model_config: ModelConfig | None = None
        self._last_run: PipelineRun | None = None

    # === Model management =====================================================

    async def set_model(self, config: ModelConfig | dict) -> None:
        """Validate config, build its adapter and initialize it. Atomic on failure."""
        try:
            validated = (
                config if isinstance(config, ModelConfig)
                else ModelConfig.model_validate(config)
            )
        except ValidationError as e:
            raise ConfigurationError(
                f"Invalid model configuration: {e.errors()[0]['msg']}",
                ErrorContext(operation="set_model"),
            ) from e

        adapter = self._adapter_factory(validated)
        try:
            await adapter.initialize(validated)
        except ChatCoreError:
            raise
        except Exception as e:
            classified = classify(validated.provider, e)
            raise ProviderError(
                classified, context=ErrorContext(operation="set_model"),
            ) from e

        self._adapter = adapter
        self._model_config = validated
        logger.info("Model configured", extra={
            "provider": validated.provider, "model": validated.model,
        })

    def get_current_model(self) -> ModelConfig | None:
        if self._model_config is None:
            return None
        return self._model_config.model_copy(deep=True)

    # === Tools ================================================================

    def register_tool(self, tool: Tool) -> None:
        self._registry.register_tool(tool)

    def get_available_tools(self) -> list[Tool]:
        return self._registry.get_all_tools()

    def get_tool_schemas(self) -> list[dict]:
        return self._registry.get_tool_schemas()

    async def execute_tool_call(self, tool_call: ToolCall) -> ToolResult:
        """Run one tool call with the tool retry policy. Never raises."""
        return (await self._execute_tool_with_retry(tool_call)).result

    # === Conversation access ==================================================

    def get_conversation_context(self, session_id: str) -> ConversationContext | None:
        session = self._sessions.get(session_id)
        return session.context.snapshot() if session else None

    def clear_conversation_context(self, session_id: str) -> bool:
        session = self._sessions.get(session_id)
        if session is None:
            return False
        session.context.clear()
        logger.info("Conversation cleared", extra={"session_id": session_id})
        return True

    @property
    def last_run(self) -> PipelineRun | None:
        return self._last_run

    @property
    def is_streaming(self) -> bool:
        return self._stream_guard.is_streaming

    def abort_streaming(self) -> bool:
        return self._stream_guard.abort()

    # === Pipeline =============================================================

    async def send_message(
        self, session_id: str, text: str, on_chunk: ChunkSink | None = None,
    ) -> OrchestratorResponse:
        run = PipelineRun(session_id=session_id)
        self._last_run = run
        ctx = ErrorContext(session_id=session_id, operation="send_message")
        started = time.perf_counter()
        try:
            run.enter(PipelineState.VALIDATING)
            adapter = self._validate(session_id, text, ctx)
            use_stream = on_chunk is not None and adapter.supports_streaming()
            # No await between the guard check and its flag being set
            guard = self._stream_guard.acquire(ctx) if use_stream else nullcontext()
            with guard as cancel_token:
                session = self._sessions.get_or_create(session_id)
                async with session.lock:
                    response = await self._run(
                        run, session, adapter, text, on_chunk, cancel_token, ctx,
                    )
        except ChatCoreError as e:
            run.fail(e.classified)
            logger.warning("Message pipeline failed", extra={
                "session_id": session_id, "error_code": e.code,
                "attempt": run.attempts,
            })
            raise

        elapsed_ms = max(int((time.perf_counter() - started) * 1000), 1)
        response = replace(response, metadata=replace(
            response.metadata, processing_time_ms=elapsed_ms,
        ))
        logger.info("Message processed", extra={
            "session_id": session_id, "attempt": run.attempts,
            "tokens": response.metadata.tokens_used,
        })
        return response

    def _validate(self, session_id: str, text: str, ctx: ErrorContext) -> ModelAdapter:
        if not session_id or not session_id.strip():
            raise InvalidRequestError("Session ID is required", "session_id", ctx)
        if not text or not text.strip():
            raise InvalidRequestError("Message cannot be empty", "text", ctx)
        if self._adapter is None or self._model_config is None:
            raise ConfigurationError(
                "No model configured. Call set_model() first.", ctx,
            )
        return self._adapter

    async def _run(
        self, run: PipelineRun, session: Session, adapter: ModelAdapter,
        text: str, on_chunk: ChunkSink | None,
        cancel_token: CancellationToken | None, ctx: ErrorContext,
    ) -> OrchestratorResponse:
        context = session.context
        parsed = await self._dispatch_with_retry(
            run, context, adapter, text, on_chunk, cancel_token, ctx,
        )

        tool_results: list[ToolResult] = []
        if parsed.tool_calls:
            run.enter(PipelineState.TOOL_LOOP)
            for call in parsed.tool_calls:
                outcome = await self._execute_tool_with_retry(call, session.id)
                context.add_tool_result(outcome.result)
                tool_results.append(outcome.result)

        context.add_message(Message(
            role=Role.ASSISTANT,
            content=parsed.content,
            tool_calls=parsed.tool_calls,
            tool_results=tuple(tool_results),
        ))
        run.enter(PipelineState.COMPLETED)

        return OrchestratorResponse(
            content=parsed.content,
            tool_calls=parsed.tool_calls,
            tool_results=tuple(tool_results),
            metadata=ResponseMetadata(
                model=self._model_config.model if self._model_config else "",
                tokens_used=run.prompt_tokens + response_tokens(parsed),
                processing_time_ms=1,
                attempts=run.attempts,
            ),
        )

    async def _dispatch_with_retry(
        self, run: PipelineRun, context: ContextWindowManager,
        adapter: ModelAdapter, text: str, on_chunk: ChunkSink | None,
        cancel_token: CancellationToken | None, ctx: ErrorContext,
    ) -> ParsedResponse:
        retry = RetryState(self._message_backoff.max_attempts)
        connected = False
        user_appended = False

        while True:
            run.attempts = retry.begin_attempt()
            ctx.attempt = run.attempts
            try:
                if not connected:
                    run.enter(PipelineState.AWAITING_CONNECTION)
                    await self._probe_connection(adapter)
                    connected = True
                if not user_appended:
                    run.enter(PipelineState.BUDGET_CHECK)
                    self._ensure_budget(context, text, ctx)
                    self._append_user_message(run, context, text, ctx)
                    user_appended = True
                run.enter(PipelineState.DISPATCHING)
                return await self._dispatch(
                    run, context, adapter, on_chunk, cancel_token, ctx,
                )
            except ProviderError as e:
                if not user_appended and e.classified.kind == ErrorKind.CONTEXT_LENGTH_EXCEEDED:
                    raise
                classified = e.classified
            except ChatCoreError:
                raise
            except Exception as e:
                classified = classify(self._provider, e)
            retry.record(classified)
            logger.warning("Dispatch attempt failed", extra={
                "session_id": ctx.session_id, "attempt": run.attempts,
                "error_code": classified.kind.value, "provider": classified.provider,
            })

            if run.chunks_delivered:
                raise ProviderError(classified, run.attempts, ctx)
            if self._recover_overflow(run, context, classified, retry):
                continue
            if not retry.should_retry():
                raise ProviderError(classified, run.attempts, ctx)

            run.enter(PipelineState.RETRYING)
            delay_ms = self._message_backoff.delay_ms(
                run.attempts, classified.retry_after_seconds, self._rng,
            )
            logger.info("Retrying dispatch", extra={
                "session_id": ctx.session_id, "attempt": run.attempts,
                "delay_ms": delay_ms,
            })
            await self._sleep(delay_ms / 1000)

    async def _probe_connection(self, adapter: ModelAdapter) -> None:
        if not adapter.get_capabilities().supports_connection_probe:
            return
        if not await adapter.test_connection():
            raise ProviderError(ClassifiedError.of(
                ErrorKind.CONNECTION_FAILED,
                "Failed to connect to the model backend",
                provider=self._provider,
                suggested_fix="Check that the model server is running and the endpoint is correct.",
            ))

    def _ensure_budget(
        self, context: ContextWindowManager, text: str, ctx: ErrorContext,
    ) -> None:
        new_tokens = estimate_tokens(text)
        current = context.get_token_count()
        if current + new_tokens <= context.max_tokens:
            return
        freed = context.force_truncation(
            reserve_tokens=new_tokens,
            min_recent_messages=self._aggressive_min_recent,
        )
        logger.info("Context budget enforced before dispatch", extra={
            "session_id": ctx.session_id, "tokens": current,
            "reserve_tokens": new_tokens, "freed_tokens": freed,
        })

    def _append_user_message(
        self, run: PipelineRun, context: ContextWindowManager,
        text: str, ctx: ErrorContext,
    ) -> None:
        """Append the user turn; an oversized turn evicted by truncation is an error."""
        message = Message(Role.USER, text)
        context.add_message(message)
        if any(m is message for m in context.messages):
            return
        logger.warning("User message evicted by context truncation", extra={
            "session_id": ctx.session_id, "reserve_tokens": estimate_tokens(text),
            "max_tokens": context.max_tokens,
        })
        raise ProviderError(ClassifiedError.of(
            ErrorKind.CONTEXT_LENGTH_EXCEEDED,
            "Message does not fit the conversation context window",
            provider=self._provider,
            suggested_fix=context_length_suggestion(self._provider),
        ), run.attempts, ctx)

    def _recover_overflow(
        self, run: PipelineRun, context: ContextWindowManager,
        classified: ClassifiedError, retry: RetryState,
    ) -> bool:
        """One forced truncation per run on context overflow. True → redispatch."""
        if classified.kind != ErrorKind.CONTEXT_LENGTH_EXCEEDED or run.overflow_recovered:
            return False
        run.overflow_recovered = True
        reserve = int(context.max_tokens * self._overflow_reserve_fraction)
        freed = context.force_truncation(
            reserve_tokens=reserve, min_recent_messages=self._aggressive_min_recent,
        )
        logger.warning("Context length exceeded, forced truncation", extra={
            "session_id": run.session_id, "freed_tokens": freed,
        })
        return freed > 0 and not retry.exhausted

    async def _dispatch(
        self, run: PipelineRun, context: ContextWindowManager,
        adapter: ModelAdapter, on_chunk: ChunkSink | None,
        cancel_token: CancellationToken | None, ctx: ErrorContext,
    ) -> ParsedResponse:
        tools = (
            self._registry.get_all_tools()
            if adapter.get_capabilities().supports_tool_calling else []
        )
        prompt = adapter.format_prompt(build_prompt_messages(context), tools)
        run.prompt_tokens = context.get_token_count()

        if cancel_token is not None and on_chunk is not None:
            return await self._stream(run, adapter, prompt, on_chunk, cancel_token, ctx)

        raw = await adapter.send_request(prompt)
        parsed = adapter.parse_response(raw)
        if on_chunk is not None:
            # Sink without streaming support: one complete chunk
            await deliver_chunk(on_chunk, StreamChunk(
                parsed.content, is_complete=True, tool_calls=parsed.tool_calls,
            ))
            run.chunks_delivered += 1
        return parsed

    async def _stream(
        self, run: PipelineRun, adapter: ModelAdapter, prompt,
        on_chunk: ChunkSink, cancel_token: CancellationToken, ctx: ErrorContext,
    ) -> ParsedResponse:
        parts: list[str] = []
        tool_calls: tuple[ToolCall, ...] = ()
        stream = adapter.send_streaming_request(prompt, cancel_token)
        try:
            async for chunk in stream:
                if cancel_token.is_cancelled:
                    raise StreamingAbortedError(ctx)
                parts.append(chunk.content)
                if chunk.tool_calls:
                    tool_calls = chunk.tool_calls
                await deliver_chunk(on_chunk, chunk)
                run.chunks_delivered += 1
                if chunk.is_complete:
                    break
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()
        if cancel_token.is_cancelled:
            raise StreamingAbortedError(ctx)
        return ParsedResponse("".join(parts), tool_calls)

    async def _execute_tool_with_retry(
        self, call: ToolCall, session_id: str | None = None,
    ) -> ToolOutcome:
        retry = RetryState(self._tool_backoff.max_attempts)
        while True:
            attempt = retry.begin_attempt()
            outcome = await self._tools.execute(call)
            if outcome.error is None:
                break
            retry.record(outcome.error)
            if not retry.should_retry():
                break
            delay_ms = self._tool_backoff.delay_ms(
                attempt, outcome.error.retry_after_seconds, self._rng,
            )
            logger.info("Retrying tool call", extra={
                "session_id": session_id, "tool_name": call.name,
                "attempt": attempt, "delay_ms": delay_ms,
            })
            await self._sleep(delay_ms / 1000)

        if retry.attempt > 1:
            result = outcome.result
            outcome = replace(outcome, result=replace(result, metadata=replace(
                result.metadata, retry_count=retry.attempt - 1,
            )))
        return outcome

    @property
    def _provider(self) -> str:
        return self._model_config.provider if self._model_config else "unknown"
