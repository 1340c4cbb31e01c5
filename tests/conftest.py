"""Shared test fixtures and configuration for all tests.

This conftest.py provides common fixtures used across the unit test packages.
"""

import pytest
from typing import Any, Dict

from enrichment_layer.config import Settings


class FakeClock:
    """Manually advanced monotonic clock (seconds)."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def advance_ms(self, milliseconds: float) -> None:
        self.now += milliseconds / 1000.0


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def test_settings() -> Settings:
    """Test settings with safe defaults (mock provider only, no network).

    Override specific settings in individual tests as needed:
        def test_something(test_settings):
            test_settings.DEFAULT_RATE_LIMIT = 1
    """
    return Settings(
        _env_file=None,
        # === Application ===
        APP_NAME="AI Enrichment Layer (Test)",
        LOG_LEVEL="DEBUG",
        ENVIRONMENT="development",

        # === Providers ===
        PRIMARY_PROVIDER="mock",
        FALLBACK_PROVIDERS=[],
        MOCK_DELAY_MS=0,

        # === Rate Limiting ===
        DEFAULT_RATE_LIMIT=100,
        RATE_LIMIT_WINDOW_MS=60000,

        # === Caching ===
        ENABLE_CACHE=True,
        CACHE_TTL_SECONDS=60,
        CACHE_MAX_SIZE=100,

        # === Orchestration ===
        ANALYZE_TIMEOUT_MS=1000,
        BUILTIN_PLUGINS=["sentiment-analyzer", "priority-scorer"],
    )


@pytest.fixture
def sample_record() -> Dict[str, Any]:
    """A minimal email-like domain record."""
    return {
        "id": "item-1",
        "type": "email",
        "title": "Contract renewal",
        "content": "Thanks for the great work on the contract, the client is happy.",
        "tags": ["#client"],
        "author": "alice@example.com",
    }
