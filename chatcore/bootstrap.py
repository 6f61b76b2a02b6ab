"""Bootstrap — wires settings, logging, tools, sessions and adapters into an Orchestrator.

Invariants:
    - Settings are read here and nowhere in core/ or services/
    - setup_logging() runs once per build_orchestrator() call (idempotent)
    - Unknown providers fail at set_model() with ConfigurationError, not at send time

Design Decisions:
    - Adapter factory keyed by provider name: hosts add backends by passing their own
      factories, the Anthropic reference adapter is registered by default
"""

import logging
from typing import Callable

from chatcore.config import Settings, get_settings
from chatcore.core.adapter_protocols import ModelAdapter, Tool
from chatcore.core.context_window import ContextWindowManager
from chatcore.core.domain_types import Provider
from chatcore.core.errors import ConfigurationError, ErrorContext
from chatcore.infrastructure.anthropic_adapter import AnthropicAdapter
from chatcore.infrastructure.observability import setup_logging
from chatcore.schemas.model_config import ModelConfig
from chatcore.services.builtin_tools import builtin_tools
from chatcore.services.orchestrator import Orchestrator
from chatcore.services.session_store import SessionStore
from chatcore.services.tool_registry import ToolRegistry

logger = logging.getLogger(__name__)

AdapterBuilder = Callable[[ModelConfig], ModelAdapter]


def default_adapter_builders(settings: Settings) -> dict[str, AdapterBuilder]:
    def anthropic_builder(config: ModelConfig) -> ModelAdapter:
        return AnthropicAdapter(
            api_key=settings.anthropic_api_key,
            timeout_seconds=settings.anthropic_timeout_seconds,
            max_output_tokens=settings.anthropic_max_output_tokens,
        )

    return {Provider.ANTHROPIC.value: anthropic_builder}


def make_adapter_factory(
    builders: dict[str, AdapterBuilder],
) -> Callable[[ModelConfig], ModelAdapter]:
    def factory(config: ModelConfig) -> ModelAdapter:
        builder = builders.get(config.provider)
        if builder is None:
            raise ConfigurationError(
                f"No adapter registered for provider '{config.provider}'. "
                f"Available: {', '.join(sorted(builders)) or 'none'}",
                ErrorContext(operation="set_model"),
            )
        return builder(config)

    return factory


def build_orchestrator(
    settings: Settings | None = None,
    *,
    adapter_builders: dict[str, AdapterBuilder] | None = None,
    extra_tools: list[Tool] | None = None,
    include_builtin_tools: bool = True,
    **overrides,
) -> Orchestrator:
    """Assemble an Orchestrator. overrides are passed to Orchestrator (sleep, rng)."""
    settings = settings or get_settings()
    setup_logging(settings.log_level, settings.log_format)

    builders = default_adapter_builders(settings)
    builders.update(adapter_builders or {})

    registry = ToolRegistry()
    if include_builtin_tools:
        for tool in builtin_tools(
            settings.workspace_root, settings.command_timeout_seconds,
        ):
            registry.register_tool(tool)
    for tool in extra_tools or []:
        registry.register_tool(tool)

    context_config = settings.context_config()
    sessions = SessionStore(
        settings.session_capacity,
        lambda: ContextWindowManager(context_config),
    )

    orchestrator = Orchestrator(
        registry,
        make_adapter_factory(builders),
        sessions=sessions,
        message_backoff=settings.message_backoff(),
        tool_backoff=settings.tool_backoff(),
        tool_timeout_seconds=settings.tool_timeout_seconds,
        aggressive_min_recent_messages=settings.aggressive_min_recent_messages,
        overflow_reserve_fraction=settings.overflow_reserve_fraction,
        **overrides,
    )
    logger.info("Orchestrator built with %d tools", len(registry))
    return orchestrator
