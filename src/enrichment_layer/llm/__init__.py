"""
Model gateway and provider implementations.

Components:
- ModelGateway: Cache + rate limit + fallback chain in front of providers
- BaseLLMProvider / EmbeddingProvider: Provider contracts
- OllamaProvider, OpenAIProvider, MockProvider: Concrete providers
- RateLimiter: Fixed-window token bucket
- ResponseCache / EmbeddingCache: TTL + LRU memoization
- exceptions: Gateway/provider exceptions
"""

from enrichment_layer.llm.base_provider import BaseLLMProvider, EmbeddingProvider
from enrichment_layer.llm.embedding_cache import EmbeddingCache
from enrichment_layer.llm.gateway import ModelGateway
from enrichment_layer.llm.mock_provider import MockProvider
from enrichment_layer.llm.ollama_provider import OllamaProvider
from enrichment_layer.llm.openai_provider import OpenAIProvider
from enrichment_layer.llm.rate_limiter import RateLimiter
from enrichment_layer.llm.response_cache import ResponseCache, fingerprint
from enrichment_layer.llm.exceptions import (
    AllProvidersFailedError,
    LLMError,
    LLMTimeoutError,
    ModelNotAvailableError,
    ParseError,
    ProviderInvocationError,
    ProviderUnavailableError,
    RateLimitError,
)

__all__ = [
    "BaseLLMProvider",
    "EmbeddingProvider",
    "EmbeddingCache",
    "ModelGateway",
    "MockProvider",
    "OllamaProvider",
    "OpenAIProvider",
    "RateLimiter",
    "ResponseCache",
    "fingerprint",
    "AllProvidersFailedError",
    "LLMError",
    "LLMTimeoutError",
    "ModelNotAvailableError",
    "ParseError",
    "ProviderInvocationError",
    "ProviderUnavailableError",
    "RateLimitError",
]
