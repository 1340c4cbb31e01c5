"""
Abstract base provider for model invocation.

Defines the capability set every backend (local runtime, hosted API,
deterministic test double) must implement. The Model Gateway only talks to
this interface, so backends can be swapped or chained as fallbacks without
touching the gateway or the plugins.
"""

from abc import ABC, abstractmethod
from typing import Optional

import structlog

from enrichment_layer.models.llm_models import InvocationOptions, InvocationResult, Message


logger = structlog.get_logger(__name__)


class BaseLLMProvider(ABC):
    """
    Abstract base class for model providers.

    Responsibilities:
    - Translate messages/options into the backend's request format
    - Send the request and parse the answer into an InvocationResult
    - Convert every failure into an LLMError subclass
    - Provide a cheap liveness check and a static model list

    Does NOT handle:
    - Rate limiting (that's the gateway's RateLimiter)
    - Response caching (that's the gateway's ResponseCache)
    - Fallback to other providers (that's the gateway's chain)
    - Retrying the same call (the gateway falls back instead)
    """

    def __init__(
        self,
        name: str,
        default_model: str,
        timeout: float = 30.0,
        models: Optional[list[str]] = None,
    ):
        """
        Initialize base provider.

        Args:
            name: Provider identity (rate-limit bucket key, reported in results)
            default_model: Model used when InvocationOptions.model is None
            timeout: Default request timeout in seconds
            models: Models this instance can serve (defaults to [default_model])
        """
        self.name = name
        self.default_model = default_model
        self.timeout = timeout
        self._models = list(models) if models else [default_model]

        logger.info(
            "Initialized model provider",
            provider_class=self.__class__.__name__,
            provider=name,
            default_model=default_model,
            timeout=timeout,
        )

    @abstractmethod
    async def complete(
        self,
        messages: list[Message],
        options: Optional[InvocationOptions] = None,
    ) -> InvocationResult:
        """
        Generate a completion for a conversation.

        Implementations should:

        1. Resolve the model (options.model or default_model)
        2. Send the request, bounded by options.timeout_ms or self.timeout
        3. Parse content and token usage
        4. Return an InvocationResult or raise an LLMError subclass

        Raises:
            LLMTimeoutError: Request exceeded timeout
            ModelNotAvailableError: Model not found
            RateLimitError: Remote API rate-limited the request
            ProviderInvocationError: Any other transport/auth/server failure
        """
        pass

    @abstractmethod
    async def is_available(self) -> bool:
        """
        Cheap liveness check.

        Must not raise (return False on error) and must not consume
        rate-limit tokens.
        """
        pass

    def get_available_models(self) -> list[str]:
        """Models served by this instance. Static for the instance's lifetime."""
        return list(self._models)

    def resolve_model(self, options: Optional[InvocationOptions]) -> str:
        if options is not None and options.model:
            return options.model
        return self.default_model

    def resolve_timeout(self, options: Optional[InvocationOptions]) -> float:
        """Timeout in seconds for one call."""
        if options is not None and options.timeout_ms:
            return options.timeout_ms / 1000.0
        return self.timeout

    async def aclose(self) -> None:
        """
        Close connections and cleanup resources.

        Default implementation does nothing. Subclasses holding persistent
        connections should override.
        """
        logger.debug("Closing model provider", provider=self.name)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"name={self.name}, "
            f"default_model={self.default_model}, "
            f"timeout={self.timeout}s)"
        )


class EmbeddingProvider(ABC):
    """
    Optional capability: vector embeddings.

    Providers that can embed text inherit from this in addition to
    BaseLLMProvider; the gateway probes it with isinstance().
    """

    default_embedding_model: str = ""

    @abstractmethod
    async def embed(self, texts: list[str], model: Optional[str] = None) -> list[list[float]]:
        """
        Embed a batch of texts.

        Returns:
            One vector per input text, in input order

        Raises:
            ProviderInvocationError: On any backend failure
        """
        pass
