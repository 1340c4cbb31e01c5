"""
Custom exceptions for the model gateway and provider layer.

Providers raise only these types (never untyped errors), which lets the
gateway's fallback loop treat every provider failure uniformly and only
surface AllProvidersFailedError once the whole chain is exhausted.
"""

from typing import Any, Optional


class LLMError(Exception):
    """
    Base exception for all gateway/provider errors.

    All LLM-specific exceptions inherit from this to allow catching
    any LLM-related error with a single except clause.
    """
    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.provider = provider
        self.details = details or {}


class RateLimitError(LLMError):
    """
    Raised when admission to a provider is denied.

    Raised by the gateway when the provider's local rate bucket is empty, and
    by HTTP providers when the remote API answers 429. Never queued: the
    gateway moves on to the next provider in the chain.
    """
    def __init__(self, provider: str, reset_in_ms: Optional[int] = None):
        super().__init__(
            f"Rate limit exceeded for {provider}",
            provider=provider,
            details={"reset_in_ms": reset_in_ms},
        )
        self.reset_in_ms = reset_in_ms


class ProviderUnavailableError(LLMError):
    """
    Raised when a provider's liveness check fails.

    The provider is skipped without being invoked.
    """
    def __init__(self, provider: str):
        super().__init__(f"Provider {provider} is not available", provider=provider)


class ProviderInvocationError(LLMError):
    """
    Raised when a provider call fails.

    Wraps transport, authentication, quota and server-side failures. The
    original exception is kept in __cause__.
    """
    pass


class LLMTimeoutError(ProviderInvocationError):
    """
    Raised when a provider call exceeds its timeout.

    Separate from generic invocation errors so callers can tell a slow
    provider from a broken one.
    """
    pass


class ModelNotAvailableError(ProviderInvocationError):
    """
    Raised when the requested model does not exist on the provider.
    """
    pass


class AllProvidersFailedError(LLMError):
    """
    Raised by the gateway after the primary and every fallback failed.

    This is the only fatal outcome of ModelGateway.complete(). __cause__ is
    the primary provider's failure; errors holds every failure in chain order.
    """
    def __init__(self, provider: str, errors: list[LLMError]):
        summary = "; ".join(f"{e.provider}: {e.message}" for e in errors)
        super().__init__(
            f"All LLM providers failed ({summary})",
            provider=provider,
            details={"attempts": len(errors)},
        )
        self.errors = errors


class ParseError(LLMError):
    """
    Raised when a model's textual output is not the JSON we asked for.

    Carries the raw content so callers can log or inspect it.
    """
    def __init__(
        self,
        message: str,
        raw_content: str,
        provider: Optional[str] = None,
        parse_error: Optional[str] = None,
    ):
        details = {"content_snippet": raw_content[:500]}
        if parse_error:
            details["parse_error"] = parse_error
        super().__init__(message, provider=provider, details=details)
        self.raw_content = raw_content
