"""Service test fixtures — orchestrator wired to scripted doubles.

Invariants:
    - No network, no real sleeps: sleep is recorded, rng pinned to the midpoint
    - Every test gets a fresh ToolRegistry and SessionStore

Design Decisions:
    - make_orchestrator fixture returns a builder: tests pick adapter script and knobs
"""

import pytest

from chatcore.core.context_window import ContextConfig, ContextWindowManager
from chatcore.services.orchestrator import Orchestrator
from chatcore.services.session_store import SessionStore
from chatcore.services.tool_registry import ToolRegistry
from tests.services.mock_adapter import FakeTool


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def make_orchestrator(sleeps):
    """Build an Orchestrator around a MockAdapter. Returns (orchestrator, registry)."""

    async def fake_sleep(seconds):
        sleeps.append(seconds)

    async def build(adapter, *, tools=(), context_config=None, configure=True, **kwargs):
        registry = ToolRegistry(list(tools))
        config = context_config or ContextConfig(max_tokens=4000, system_prompt="")
        orchestrator = Orchestrator(
            registry,
            lambda model_config: adapter,
            sessions=SessionStore(10, lambda: ContextWindowManager(config)),
            sleep=fake_sleep,
            rng=lambda low, high: 1.0,
            **kwargs,
        )
        if configure:
            await orchestrator.set_model({"provider": "custom", "model": "mock-1"})
        return orchestrator

    return build


@pytest.fixture
def echo_tool():
    return FakeTool()
