"""Model Config Schema — validated backend selection handed to Orchestrator.set_model().

Invariants:
    - provider and model are required and non-blank (stripped)
    - temperature within [0, 2]; max_tokens positive when given
    - additional_params is passed through to the adapter untouched

Design Decisions:
    - Pydantic at the boundary: set_model() is where host input enters the core
    - api_key is excluded from repr and never logged
"""

from typing import Any

from pydantic import BaseModel, Field, field_validator


class ModelConfig(BaseModel):
    """Which backend and model to talk to, plus per-model options."""
    provider: str
    model: str
    endpoint: str | None = None
    api_key: str | None = Field(None, repr=False)
    temperature: float | None = Field(None, ge=0.0, le=2.0)
    max_tokens: int | None = Field(None, gt=0)
    additional_params: dict[str, Any] = Field(default_factory=dict)

    @field_validator("provider", "model")
    @classmethod
    def strip_required(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("cannot be empty or whitespace")
        return v

    @field_validator("provider")
    @classmethod
    def lower_provider(cls, v: str) -> str:
        return v.lower()
