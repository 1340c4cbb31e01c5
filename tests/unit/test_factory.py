"""
Unit tests for settings, logging setup and the construction factory.
"""

import logging

import pytest
import structlog

from enrichment_layer.config import Settings
from enrichment_layer.factory import (
    build_gateway,
    build_orchestrator,
    build_provider,
    create_enrichment_layer,
)
from enrichment_layer.llm.mock_provider import MockProvider
from enrichment_layer.llm.ollama_provider import OllamaProvider
from enrichment_layer.llm.openai_provider import OpenAIProvider
from enrichment_layer.logging_config import (
    APP_CONTEXT,
    add_app_context,
    configure_logging,
    record_log_context,
)


@pytest.fixture
def restore_logging():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
    structlog.reset_defaults()


# ============================================================================
# Settings
# ============================================================================


class TestSettings:

    def test_defaults(self):
        settings = Settings(_env_file=None)
        assert settings.PRIMARY_PROVIDER == "ollama"
        assert settings.FALLBACK_PROVIDERS == []
        assert settings.BUILTIN_PLUGINS == ["sentiment-analyzer", "priority-scorer"]
        assert settings.ANALYZE_TIMEOUT_MS == 30000

    def test_environment_overrides(self, monkeypatch):
        """Lists and dicts are read from JSON-encoded environment variables."""
        monkeypatch.setenv("PRIMARY_PROVIDER", "openai")
        monkeypatch.setenv("FALLBACK_PROVIDERS", '["ollama", "mock"]')
        monkeypatch.setenv("PROVIDER_RATE_LIMITS", '{"openai": 5}')
        monkeypatch.setenv("analyze_parallel", "false")

        settings = Settings(_env_file=None)

        assert settings.PRIMARY_PROVIDER == "openai"
        assert settings.FALLBACK_PROVIDERS == ["ollama", "mock"]
        assert settings.PROVIDER_RATE_LIMITS == {"openai": 5}
        assert settings.ANALYZE_PARALLEL is False


# ============================================================================
# Logging
# ============================================================================


class TestLogging:

    def test_app_context_processor(self):
        event = add_app_context(None, "info", {"event": "hello"})
        assert event == {"event": "hello", "app": APP_CONTEXT}

    @pytest.mark.parametrize("environment", ["development", "production"])
    def test_configure_logging(self, restore_logging, environment):
        configure_logging("DEBUG", environment)

        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, structlog.stdlib.ProcessorFormatter)
        assert logging.getLogger("httpx").level == logging.WARNING

    def test_unknown_level_falls_back_to_info(self, restore_logging):
        configure_logging("VERBOSE")
        assert logging.getLogger().level == logging.INFO

    def test_record_log_context(self, sample_record):
        """Record fields are bound only inside the block."""
        with record_log_context(sample_record):
            bound = structlog.contextvars.get_contextvars()
            assert bound["record_id"] == "item-1"
            assert bound["record_type"] == "email"

        assert "record_id" not in structlog.contextvars.get_contextvars()


# ============================================================================
# Providers and gateway
# ============================================================================


class TestBuildProvider:

    def test_ollama(self, test_settings):
        provider = build_provider("ollama", test_settings)
        assert isinstance(provider, OllamaProvider)
        assert provider.base_url == test_settings.OLLAMA_BASE_URL
        assert provider.default_embedding_model == test_settings.OLLAMA_EMBEDDING_MODEL

    def test_openai(self, test_settings):
        provider = build_provider("OpenAI", test_settings)
        assert isinstance(provider, OpenAIProvider)
        assert provider.get_available_models() == [test_settings.OPENAI_MODEL]

    def test_mock(self, test_settings):
        assert isinstance(build_provider("mock", test_settings), MockProvider)

    def test_unknown_name(self, test_settings):
        with pytest.raises(ValueError, match="Unknown provider 'anthropic'"):
            build_provider("anthropic", test_settings)


class TestBuildGateway:

    def test_chain_and_limits(self, test_settings):
        test_settings.PRIMARY_PROVIDER = "ollama"
        test_settings.FALLBACK_PROVIDERS = ["ollama", "openai", "mock"]
        test_settings.PROVIDER_RATE_LIMITS = {"openai": 5}

        gateway = build_gateway(test_settings)

        assert gateway.primary_provider.name == "ollama"
        assert [p.name for p in gateway.fallback_providers] == ["openai", "mock"]
        capacities = {s.provider: s.capacity for s in gateway.rate_limit_status()}
        assert capacities == {"ollama": 100, "openai": 5, "mock": 100}

    def test_embedding_model_setting(self, test_settings):
        test_settings.EMBEDDING_MODEL = "custom-embedding"
        assert build_gateway(test_settings).embedding_model == "custom-embedding"


# ============================================================================
# Orchestrator and application
# ============================================================================


class TestBuildOrchestrator:

    @pytest.mark.asyncio
    async def test_builtins_registered_and_active(self, test_settings):
        orchestrator = await build_orchestrator(test_settings)

        assert [p.id for p in orchestrator.active_plugins] == test_settings.BUILTIN_PLUGINS
        assert orchestrator.default_options.timeout_ms == test_settings.ANALYZE_TIMEOUT_MS

    @pytest.mark.asyncio
    async def test_registered_only(self, test_settings):
        orchestrator = await build_orchestrator(test_settings, activate=False)

        stats = orchestrator.stats()
        assert stats.total_plugins == 2
        assert stats.active_plugins == 0

    @pytest.mark.asyncio
    async def test_unknown_builtin(self, test_settings):
        test_settings.BUILTIN_PLUGINS = ["tagger"]
        with pytest.raises(ValueError, match="Unknown built-in plugin 'tagger'"):
            await build_orchestrator(test_settings)

    @pytest.mark.asyncio
    async def test_no_builtins(self, test_settings):
        test_settings.BUILTIN_PLUGINS = []
        orchestrator = await build_orchestrator(test_settings)
        assert orchestrator.plugins == []


@pytest.mark.asyncio
async def test_create_enrichment_layer_end_to_end(test_settings, sample_record):
    """Mock provider chain: both built-in plugins enrich the record."""
    layer = await create_enrichment_layer(test_settings, setup_logging=False)

    result = await layer.orchestrator.analyze(sample_record)

    assert result.succeeded == ["sentiment-analyzer", "priority-scorer"]
    insights = result.enriched_record["ai_insights"]
    assert insights["sentiment"] == 0.8
    assert insights["priority_score"] == 0.7

    await layer.aclose()
    assert layer.orchestrator.active_plugins == []
