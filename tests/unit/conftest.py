"""Unit test fixtures (mock providers, gateways and plugins).

Provides ready-made objects for testing without any network access.
"""

import asyncio

import pytest

from enrichment_layer.llm.gateway import ModelGateway
from enrichment_layer.llm.mock_provider import MockProvider
from enrichment_layer.models.analysis_models import Record
from enrichment_layer.plugins.base import AIPlugin


@pytest.fixture
def mock_provider() -> MockProvider:
    return MockProvider()


@pytest.fixture
def gateway(mock_provider, clock) -> ModelGateway:
    """Gateway over a single mock provider, on the fake clock."""
    return ModelGateway(primary=mock_provider, default_rate_limit=100, clock=clock)


class StaticPlugin(AIPlugin):
    """Plugin that writes a fixed namespace, optionally after a delay."""

    def __init__(self, plugin_id: str, fields: dict | None = None, delay: float = 0.0, calls: list | None = None):
        self.id = plugin_id
        self.name = plugin_id
        self.fields = fields if fields is not None else {"source": plugin_id}
        self.delay = delay
        self.calls = calls if calls is not None else []

    async def analyze(self, record: Record) -> Record:
        self.calls.append(self.id)
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.enrich(record, **self.fields)


class FailingPlugin(AIPlugin):
    """Plugin whose analyze() always raises."""

    def __init__(self, plugin_id: str = "failing", error: Exception | None = None):
        self.id = plugin_id
        self.name = plugin_id
        self.error = error or RuntimeError("plugin exploded")

    async def analyze(self, record: Record) -> Record:
        raise self.error


class HangingPlugin(AIPlugin):
    """Plugin whose analyze() never resolves."""

    def __init__(self, plugin_id: str = "slow"):
        self.id = plugin_id
        self.name = plugin_id
        self.cancelled = False

    async def analyze(self, record: Record) -> Record:
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        return record


@pytest.fixture
def static_plugin_factory():
    return StaticPlugin


@pytest.fixture
def failing_plugin_factory():
    return FailingPlugin


@pytest.fixture
def hanging_plugin_factory():
    return HangingPlugin
