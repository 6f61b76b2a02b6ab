"""Root conftest — shared test configuration."""

import os

import pytest

from chatcore.config import get_settings

# Ensure tests don't accidentally use real API keys
os.environ.setdefault("CHATCORE_ANTHROPIC_API_KEY", "sk-ant-test-fake-key")


@pytest.fixture(autouse=True)
def _fresh_settings():
    """Drop the cached Settings so monkeypatched env vars take effect."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
