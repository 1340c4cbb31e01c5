"""
Construction of gateways and orchestrators from Settings.

Nothing here is cached at module level: each call builds fresh instances,
and the caller owns their lifecycle (close the gateway with aclose()).

Usage:
    settings = Settings()
    gateway = build_gateway(settings)
    orchestrator = await build_orchestrator(settings, gateway)

or, for the whole application (logging included):
    layer = await create_enrichment_layer(settings)
    ...
    await layer.aclose()
"""

from dataclasses import dataclass
from typing import Optional

import structlog

from enrichment_layer.config import Settings
from enrichment_layer.llm.base_provider import BaseLLMProvider
from enrichment_layer.llm.embedding_cache import EmbeddingCache
from enrichment_layer.llm.gateway import ModelGateway
from enrichment_layer.llm.mock_provider import MockProvider
from enrichment_layer.llm.ollama_provider import OllamaProvider
from enrichment_layer.llm.openai_provider import OpenAIProvider
from enrichment_layer.logging_config import configure_logging
from enrichment_layer.models.analysis_models import AnalyzeOptions
from enrichment_layer.models.enums import ProviderName
from enrichment_layer.plugins.builtin import BUILTIN_PLUGINS
from enrichment_layer.plugins.orchestrator import PluginOrchestrator


logger = structlog.get_logger(__name__)


def build_provider(name: str, settings: Settings) -> BaseLLMProvider:
    """
    Build one provider by identity.

    Raises:
        ValueError: Unknown provider name
    """
    try:
        provider_name = ProviderName(name.lower())
    except ValueError:
        raise ValueError(
            f"Unknown provider '{name}', expected one of {[p.value for p in ProviderName]}"
        ) from None

    if provider_name == ProviderName.OLLAMA:
        return OllamaProvider(
            base_url=settings.OLLAMA_BASE_URL,
            default_model=settings.OLLAMA_MODEL,
            timeout=settings.OLLAMA_TIMEOUT,
            models=settings.OLLAMA_MODELS or None,
            embedding_model=settings.OLLAMA_EMBEDDING_MODEL,
        )
    if provider_name == ProviderName.OPENAI:
        return OpenAIProvider(
            api_key=settings.OPENAI_API_KEY,
            base_url=settings.OPENAI_BASE_URL,
            default_model=settings.OPENAI_MODEL,
            timeout=settings.OPENAI_TIMEOUT,
            models=settings.OPENAI_MODELS or None,
            embedding_model=settings.OPENAI_EMBEDDING_MODEL,
            organization=settings.OPENAI_ORGANIZATION,
        )
    return MockProvider(delay_ms=settings.MOCK_DELAY_MS)


def build_gateway(settings: Settings) -> ModelGateway:
    """Primary + fallback providers with rate limits and caches from settings."""
    primary = build_provider(settings.PRIMARY_PROVIDER, settings)
    fallbacks = [
        build_provider(name, settings)
        for name in settings.FALLBACK_PROVIDERS
        if name.lower() != primary.name
    ]

    return ModelGateway(
        primary=primary,
        fallbacks=fallbacks,
        rate_limits=settings.PROVIDER_RATE_LIMITS,
        default_rate_limit=settings.DEFAULT_RATE_LIMIT,
        rate_limit_window_ms=settings.RATE_LIMIT_WINDOW_MS,
        enable_cache=settings.ENABLE_CACHE,
        cache_ttl_seconds=settings.CACHE_TTL_SECONDS,
        cache_max_size=settings.CACHE_MAX_SIZE,
        embedding_cache=EmbeddingCache(
            max_size=settings.EMBEDDING_CACHE_MAX_SIZE,
            ttl_seconds=settings.EMBEDDING_CACHE_TTL_SECONDS,
        ),
        embedding_model=settings.EMBEDDING_MODEL,
    )


async def build_orchestrator(
    settings: Settings,
    gateway: Optional[ModelGateway] = None,
    activate: bool = True,
) -> PluginOrchestrator:
    """
    Orchestrator with the BUILTIN_PLUGINS from settings registered.

    Args:
        settings: Application settings
        gateway: Gateway handed to the built-in plugins (built from settings if None)
        activate: Activate every registered built-in plugin

    Raises:
        ValueError: Unknown built-in plugin id
    """
    orchestrator = PluginOrchestrator(
        default_options=AnalyzeOptions(
            parallel=settings.ANALYZE_PARALLEL,
            timeout_ms=settings.ANALYZE_TIMEOUT_MS,
            continue_on_error=settings.ANALYZE_CONTINUE_ON_ERROR,
        )
    )
    if not settings.BUILTIN_PLUGINS:
        return orchestrator

    gateway = gateway or build_gateway(settings)
    for plugin_id in settings.BUILTIN_PLUGINS:
        plugin_class = BUILTIN_PLUGINS.get(plugin_id)
        if plugin_class is None:
            raise ValueError(f"Unknown built-in plugin '{plugin_id}', expected one of {sorted(BUILTIN_PLUGINS)}")
        await orchestrator.register(plugin_class(gateway))
        if activate:
            await orchestrator.activate(plugin_id)

    logger.info(
        "Orchestrator built",
        plugins=settings.BUILTIN_PLUGINS,
        active=activate,
    )
    return orchestrator


@dataclass
class EnrichmentLayer:
    """Gateway and orchestrator built together; close with aclose()."""

    settings: Settings
    gateway: ModelGateway
    orchestrator: PluginOrchestrator

    async def aclose(self) -> None:
        for plugin in self.orchestrator.active_plugins:
            await self.orchestrator.deactivate(plugin.id)
        await self.gateway.aclose()
        logger.info("Enrichment layer shut down", app=self.settings.APP_NAME)


async def create_enrichment_layer(
    settings: Settings,
    setup_logging: bool = True,
) -> EnrichmentLayer:
    """
    Application startup: logging, provider chain and built-in plugins.

    Args:
        settings: Application settings
        setup_logging: Call configure_logging() with LOG_LEVEL/ENVIRONMENT first
    """
    if setup_logging:
        configure_logging(settings.LOG_LEVEL, settings.ENVIRONMENT)

    logger.info(
        "Starting enrichment layer",
        app=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
        primary_provider=settings.PRIMARY_PROVIDER,
        fallback_providers=settings.FALLBACK_PROVIDERS,
    )

    gateway = build_gateway(settings)
    orchestrator = await build_orchestrator(settings, gateway)
    return EnrichmentLayer(settings=settings, gateway=gateway, orchestrator=orchestrator)
