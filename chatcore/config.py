"""Application Configuration — environment-driven settings via pydantic-settings.

Invariants:
    - All secrets come from environment variables (never hardcoded)
    - get_settings() is cached (lru_cache): single instance per process
    - Every variable is read with the CHATCORE_ prefix (CHATCORE_LOG_LEVEL, ...)

Design Decisions:
    - pydantic-settings over raw os.environ: validation, type coercion, .env file support
    - Defaults provided for every knob: the library works with no environment at all
    - Settings are projected into core dataclasses (BackoffPolicy, ContextConfig) here,
      so core modules never import pydantic-settings
"""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from chatcore.core.context_window import CODING_SYSTEM_PROMPT, ContextConfig
from chatcore.core.domain_types import TruncationStrategy
from chatcore.core.retry_policy import BackoffPolicy


class Settings(BaseSettings):
    """Library settings from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env", env_prefix="CHATCORE_", case_sensitive=False,
        extra="ignore",
    )

    # Retry: model requests
    message_max_attempts: int = Field(3, ge=1)
    message_base_delay_ms: int = 1000
    message_max_delay_ms: int = 30_000
    message_jitter: float = Field(0.25, ge=0.0, lt=1.0)

    # Retry: tool calls
    tool_max_attempts: int = Field(2, ge=1)
    tool_base_delay_ms: int = 500
    tool_max_delay_ms: int = 5_000
    tool_jitter: float = Field(0.1, ge=0.0, lt=1.0)
    tool_timeout_seconds: float = 30.0

    # Context profile for orchestrator-created sessions
    context_max_tokens: int = Field(6000, gt=0)
    context_truncation_strategy: TruncationStrategy = TruncationStrategy.PRIORITY_BASED
    context_system_prompt: str = CODING_SYSTEM_PROMPT
    context_preserve_tool_results: bool = True
    context_min_recent_messages: int = Field(4, ge=0)
    context_truncation_buffer: float = Field(0.2, ge=0.0, lt=1.0)

    # Aggressive truncation (budget check / context overflow recovery)
    aggressive_min_recent_messages: int = Field(1, ge=0)
    overflow_reserve_fraction: float = Field(0.3, ge=0.0, lt=1.0)

    # Sessions
    session_capacity: int = Field(50, ge=1)

    # Built-in tools
    workspace_root: str = "."
    command_timeout_seconds: float = Field(20.0, gt=0)

    # Anthropic reference adapter
    anthropic_api_key: str = "sk-ant-placeholder"
    anthropic_timeout_seconds: int = 300
    anthropic_max_output_tokens: int = 4096

    # Observability
    log_level: str = "INFO"
    log_format: str = "json"

    @field_validator("log_format")
    @classmethod
    def known_log_format(cls, v: str) -> str:
        v = v.lower()
        if v not in ("json", "text"):
            raise ValueError("log_format must be 'json' or 'text'")
        return v

    def message_backoff(self) -> BackoffPolicy:
        return BackoffPolicy(
            self.message_max_attempts, self.message_base_delay_ms,
            self.message_max_delay_ms, self.message_jitter,
        )

    def tool_backoff(self) -> BackoffPolicy:
        return BackoffPolicy(
            self.tool_max_attempts, self.tool_base_delay_ms,
            self.tool_max_delay_ms, self.tool_jitter,
        )

    def context_config(self) -> ContextConfig:
        return ContextConfig(
            max_tokens=self.context_max_tokens,
            truncation_strategy=self.context_truncation_strategy,
            system_prompt=self.context_system_prompt,
            preserve_tool_results=self.context_preserve_tool_results,
            min_recent_messages=self.context_min_recent_messages,
            truncation_buffer=self.context_truncation_buffer,
        )


@lru_cache
def get_settings() -> Settings:
    return Settings()
