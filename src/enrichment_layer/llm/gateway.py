"""
Model Gateway: one entry point for every model call made by plugins.

Wraps an ordered chain of providers (primary first, then fallbacks) with:
    1. Response cache: identical requests are answered without a provider call
    2. Rate limiting: one fixed-window bucket per provider identity
    3. Availability probe: unavailable providers are skipped
    4. Fallback: any provider failure moves on to the next provider

Only exhaustion of the whole chain is fatal (AllProvidersFailedError).
A provider is never retried within a single request.

Admission and token spending are separate steps (admit before the
availability probe, consume after the invocation), so concurrent requests
can all be admitted before any of them spends a token: a bucket bounds
sequential traffic exactly and concurrent bursts only approximately.

Cached results are stored without fallback_errors; those describe the
request that reached the providers, and a cache hit reaches none.

Usage:
    gateway = ModelGateway(primary=OllamaProvider(...), fallbacks=[OpenAIProvider(...)])
    result = await gateway.complete([Message.user("Hello")])
"""

import asyncio
import time
from typing import Any, Awaitable, Callable, Optional, Type, TypeVar, Union

import structlog
from pydantic import BaseModel

from enrichment_layer.llm.base_provider import BaseLLMProvider, EmbeddingProvider
from enrichment_layer.llm.embedding_cache import EmbeddingCache, Vector
from enrichment_layer.llm.exceptions import (
    AllProvidersFailedError,
    LLMError,
    LLMTimeoutError,
    ParseError,
    ProviderInvocationError,
    ProviderUnavailableError,
    RateLimitError,
)
from enrichment_layer.llm.json_utils import parse_json_content, validate_json_payload
from enrichment_layer.llm.rate_limiter import RateLimiter
from enrichment_layer.llm.response_cache import ResponseCache, fingerprint
from enrichment_layer.models.cache_models import CacheStats, RateLimitStatus
from enrichment_layer.models.llm_models import InvocationOptions, InvocationResult, Message
from enrichment_layer.monitoring.metrics import (
    llm_fallbacks_total,
    llm_latency_seconds,
    llm_requests_total,
    llm_tokens_total,
    rate_limit_rejections_total,
)


logger = structlog.get_logger(__name__)

M = TypeVar("M", bound=BaseModel)
T = TypeVar("T")

JSON_INSTRUCTION = "IMPORTANT: Return ONLY valid JSON, no markdown, no explanation."


class ModelGateway:
    """
    Provider-agnostic model invocation with caching, rate limiting and fallback.

    Attributes:
        providers: Full chain, primary first
        enable_cache: Whether complete() results are memoized
    """

    def __init__(
        self,
        primary: BaseLLMProvider,
        fallbacks: Optional[list[BaseLLMProvider]] = None,
        rate_limits: Optional[dict[str, int]] = None,
        default_rate_limit: int = 60,
        rate_limit_window_ms: int = 60000,
        enable_cache: bool = True,
        cache_ttl_seconds: float = 3600,
        cache_max_size: int = 1000,
        cache: Optional[ResponseCache[InvocationResult]] = None,
        embedding_cache: Optional[EmbeddingCache] = None,
        embedding_model: Optional[str] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the gateway.

        Args:
            primary: Provider tried first
            fallbacks: Providers tried in order when the previous one failed
            rate_limits: Requests per window keyed by provider name
            default_rate_limit: Requests per window for providers not in rate_limits
            rate_limit_window_ms: Refill interval shared by every bucket
            enable_cache: Memoize successful completions
            cache_ttl_seconds: Response cache entry lifetime
            cache_max_size: Response cache capacity
            cache: Pre-built response cache (overrides ttl/size)
            embedding_cache: Pre-built embedding cache
            embedding_model: Default model for embed() calls (None = first embedding provider's default)
            clock: Monotonic clock for caches and buckets (tests inject a fake)
        """
        self.providers: list[BaseLLMProvider] = [primary, *(fallbacks or [])]
        names = [p.name for p in self.providers]
        if len(set(names)) != len(names):
            raise ValueError(f"Provider names must be unique, got {names}")

        self.enable_cache = enable_cache
        self._cache: ResponseCache[InvocationResult] = cache if cache is not None else ResponseCache(
            ttl_seconds=cache_ttl_seconds,
            max_size=cache_max_size,
            name="response",
            clock=clock,
        )
        self._embedding_cache = (
            embedding_cache if embedding_cache is not None else EmbeddingCache(clock=clock)
        )
        self.embedding_model = embedding_model

        rate_limits = rate_limits or {}
        self._limiters: dict[str, RateLimiter] = {
            p.name: RateLimiter(
                capacity=rate_limits.get(p.name, default_rate_limit),
                refill_interval_ms=rate_limit_window_ms,
                clock=clock,
            )
            for p in self.providers
        }

        logger.info(
            "ModelGateway initialized",
            primary=primary.name,
            fallbacks=names[1:],
            cache_enabled=enable_cache,
            rate_limits={name: limiter.capacity for name, limiter in self._limiters.items()},
        )

    @property
    def primary_provider(self) -> BaseLLMProvider:
        return self.providers[0]

    @property
    def fallback_providers(self) -> list[BaseLLMProvider]:
        return self.providers[1:]

    # ------------------------------------------------------------------
    # Completion
    # ------------------------------------------------------------------

    @staticmethod
    def cache_key(messages: list[Message], options: Optional[InvocationOptions]) -> str:
        """Fingerprint of the request fields that influence the output."""
        return fingerprint(
            [m.model_dump(mode="json") for m in messages],
            options.output_fields() if options is not None else {},
        )

    async def complete(
        self,
        messages: list[Message],
        options: Optional[InvocationOptions] = None,
    ) -> InvocationResult:
        """
        Complete a conversation through the provider chain.

        Args:
            messages: Ordered conversation
            options: Generation options (model, temperature, timeout_ms, ...)

        Returns:
            InvocationResult from the cache or from the first provider that succeeded

        Raises:
            AllProvidersFailedError: Every provider in the chain failed
        """
        key = self.cache_key(messages, options)
        if self.enable_cache:
            cached = self._cache.get(key)
            if cached is not None:
                logger.debug("Response cache hit", key=key[:16], provider=cached.provider)
                return cached

        async def invoke(provider: BaseLLMProvider) -> InvocationResult:
            return await provider.complete(messages, options)

        result, errors = await self._run_chain(
            self.providers,
            invoke,
            timeout=options.timeout_ms / 1000.0 if options and options.timeout_ms else None,
            operation="complete",
        )

        if result.usage is not None:
            llm_tokens_total.labels(provider=result.provider, token_type="prompt").inc(result.usage.prompt)
            llm_tokens_total.labels(provider=result.provider, token_type="completion").inc(result.usage.completion)

        if self.enable_cache:
            self._cache.set(key, result)

        if errors:
            result = result.model_copy(
                update={"fallback_errors": [f"{e.provider}: {e.message}" for e in errors]}
            )
        return result

    async def complete_prompt(
        self,
        system_prompt: str,
        user_prompt: str,
        options: Optional[InvocationOptions] = None,
    ) -> str:
        """Single system + user exchange; returns the answer text."""
        result = await self.complete(
            [Message.system(system_prompt), Message.user(user_prompt)],
            options,
        )
        return result.content

    async def complete_json(
        self,
        system_prompt: str,
        user_prompt: str,
        options: Optional[InvocationOptions] = None,
        response_model: Optional[Type[M]] = None,
    ) -> Union[M, Any]:
        """
        Ask for a JSON answer and parse it.

        A strict-JSON instruction is appended to the system prompt and
        markdown fences are stripped before parsing.

        Args:
            system_prompt: System instructions
            user_prompt: User content
            options: Generation options
            response_model: Optional pydantic model to validate the payload against

        Returns:
            Parsed JSON value, or a response_model instance when given

        Raises:
            ParseError: Answer is not valid JSON (or does not match response_model)
            AllProvidersFailedError: Every provider in the chain failed
        """
        messages = [
            Message.system(f"{system_prompt}\n\n{JSON_INSTRUCTION}"),
            Message.user(user_prompt),
        ]
        result = await self.complete(messages, options)

        try:
            payload = parse_json_content(result.content, provider=result.provider)
            if response_model is not None:
                return validate_json_payload(payload, response_model, result.content, result.provider)
            return payload
        except ParseError:
            # A malformed answer must not be served again from the cache.
            self._cache.delete(self.cache_key(messages, options))
            logger.warning(
                "Model returned malformed JSON",
                provider=result.provider,
                model=result.model,
                content_length=len(result.content),
            )
            raise

    # ------------------------------------------------------------------
    # Embeddings
    # ------------------------------------------------------------------

    def _embedding_providers(self) -> list[BaseLLMProvider]:
        return [p for p in self.providers if isinstance(p, EmbeddingProvider)]

    async def embed(self, text: str, model: Optional[str] = None) -> Vector:
        """Embed one text (cached)."""
        vectors = await self.embed_batch([text], model)
        return vectors[0]

    async def embed_batch(self, texts: list[str], model: Optional[str] = None) -> list[Vector]:
        """
        Embed several texts, fetching only the ones not already cached.

        Cache misses go through the same admit -> available -> invoke chain as
        completions, restricted to embedding-capable providers.

        Raises:
            LLMError: No provider in the chain supports embeddings
            AllProvidersFailedError: Every embedding provider failed
        """
        if not texts:
            return []

        capable = self._embedding_providers()
        if not capable:
            raise LLMError("No embedding-capable provider configured")

        model = model or self.embedding_model
        label = model or capable[0].default_embedding_model

        async def fetch(missing: list[str]) -> list[Vector]:
            async def invoke(provider: BaseLLMProvider) -> list[Vector]:
                return await provider.embed(missing, model)

            vectors, _ = await self._run_chain(capable, invoke, timeout=None, operation="embed")
            return vectors

        return await self._embedding_cache.embed_batch(texts, label, fetch)

    # ------------------------------------------------------------------
    # Fallback chain
    # ------------------------------------------------------------------

    async def _run_chain(
        self,
        providers: list[BaseLLMProvider],
        invoke: Callable[[BaseLLMProvider], Awaitable[T]],
        timeout: Optional[float],
        operation: str,
    ) -> tuple[T, list[LLMError]]:
        """
        Try each provider in order until one succeeds.

        Returns:
            (result, errors of the providers that failed before it)

        Raises:
            AllProvidersFailedError: Chained from the first provider's failure
        """
        errors: list[LLMError] = []

        for index, provider in enumerate(providers):
            try:
                result = await self._call_provider(provider, invoke, timeout)
            except LLMError as e:
                errors.append(e)
                logger.warning(
                    "Provider failed, trying next",
                    operation=operation,
                    provider=provider.name,
                    error_type=type(e).__name__,
                    error=e.message,
                    remaining=len(providers) - index - 1,
                )
                continue

            if index > 0:
                llm_fallbacks_total.labels(provider=provider.name).inc()
                logger.info(
                    "Served by fallback provider",
                    operation=operation,
                    provider=provider.name,
                    failed=[e.provider for e in errors],
                )
            return result, errors

        logger.error(
            "All providers failed",
            operation=operation,
            attempts=len(errors),
            errors=[f"{e.provider}: {e.message}" for e in errors],
        )
        raise AllProvidersFailedError(providers[0].name, errors) from errors[0]

    async def _call_provider(
        self,
        provider: BaseLLMProvider,
        invoke: Callable[[BaseLLMProvider], Awaitable[T]],
        timeout: Optional[float],
    ) -> T:
        """
        admit -> is_available -> invoke -> consume, for one provider.

        A token is spent for every invocation, successful or not. Denied and
        unavailable providers are never invoked and spend nothing.
        """
        limiter = self._limiters[provider.name]
        if not limiter.try_admit():
            rate_limit_rejections_total.labels(provider=provider.name).inc()
            llm_requests_total.labels(provider=provider.name, outcome="rate_limited").inc()
            raise RateLimitError(provider.name, limiter.reset_in_ms())

        try:
            available = await provider.is_available()
        except Exception as e:
            logger.warning("Availability check raised", provider=provider.name, error=str(e))
            available = False
        if not available:
            llm_requests_total.labels(provider=provider.name, outcome="unavailable").inc()
            raise ProviderUnavailableError(provider.name)

        start_time = time.monotonic()
        success = False
        try:
            if timeout is not None:
                result = await asyncio.wait_for(invoke(provider), timeout=timeout)
            else:
                result = await invoke(provider)
            success = True
            return result
        except asyncio.TimeoutError as e:
            raise LLMTimeoutError(
                f"Request timeout after {timeout}s",
                provider=provider.name,
                details={"timeout": timeout},
            ) from e
        except LLMError:
            raise
        except Exception as e:
            raise ProviderInvocationError(
                f"Unexpected provider error: {e}",
                provider=provider.name,
                details={"error_type": type(e).__name__},
            ) from e
        finally:
            limiter.consume()
            llm_latency_seconds.labels(provider=provider.name, success=str(success).lower()).observe(
                time.monotonic() - start_time
            )
            llm_requests_total.labels(
                provider=provider.name,
                outcome="success" if success else "error",
            ).inc()

    # ------------------------------------------------------------------
    # Introspection & maintenance
    # ------------------------------------------------------------------

    def get_available_models(self) -> dict[str, list[str]]:
        """Static model list of every provider, keyed by provider name."""
        return {p.name: p.get_available_models() for p in self.providers}

    def rate_limit_status(self) -> list[RateLimitStatus]:
        return [
            RateLimitStatus(
                provider=name,
                capacity=limiter.capacity,
                remaining=limiter.remaining(),
                reset_in_ms=limiter.reset_in_ms(),
            )
            for name, limiter in self._limiters.items()
        ]

    def cache_stats(self) -> CacheStats:
        return self._cache.stats()

    def embedding_cache_stats(self) -> CacheStats:
        return self._embedding_cache.stats()

    def clear_cache(self) -> None:
        """Drop every cached response and embedding."""
        self._cache.clear()
        self._embedding_cache.clear()
        logger.info("Gateway caches cleared")

    def prune_cache(self) -> int:
        """Remove expired entries from both caches. Returns the number removed."""
        return self._cache.prune() + self._embedding_cache.prune()

    async def aclose(self) -> None:
        """Close every provider's transport."""
        for provider in self.providers:
            await provider.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()
