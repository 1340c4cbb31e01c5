"""
OpenAI-compatible provider implementation (hosted model API).

Speaks the /v1/chat/completions dialect, which is also served by vLLM,
LiteLLM and most hosted gateways. Authentication is a bearer API key.
"""

import time
from typing import Any, Dict, Optional

import httpx
import structlog

from enrichment_layer.llm.base_provider import BaseLLMProvider, EmbeddingProvider
from enrichment_layer.llm.exceptions import (
    LLMTimeoutError,
    ModelNotAvailableError,
    ProviderInvocationError,
    RateLimitError,
)
from enrichment_layer.models.enums import ProviderName
from enrichment_layer.models.llm_models import (
    InvocationOptions,
    InvocationResult,
    Message,
    TokenUsage,
)


logger = structlog.get_logger(__name__)


def _retry_after_ms(response: httpx.Response) -> Optional[int]:
    """Parse a numeric Retry-After header (seconds) into milliseconds."""
    value = response.headers.get("retry-after")
    if value is None:
        return None
    try:
        return int(float(value) * 1000)
    except ValueError:
        return None


class OpenAIProvider(BaseLLMProvider, EmbeddingProvider):
    """
    Provider for OpenAI-compatible HTTP APIs.

    API Endpoints (relative to base_url, e.g. https://api.openai.com/v1):
    - POST /chat/completions
    - GET /models (liveness check)
    - POST /embeddings
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = "https://api.openai.com/v1",
        default_model: str = "gpt-4o-mini",
        timeout: float = 30.0,
        models: Optional[list[str]] = None,
        embedding_model: str = "text-embedding-3-small",
        organization: Optional[str] = None,
        name: str = ProviderName.OPENAI.value,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(name=name, default_model=default_model, timeout=timeout, models=models)
        self.base_url = base_url.rstrip('/')
        self.default_embedding_model = embedding_model
        self._api_key = api_key
        self._organization = organization
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        if self._organization:
            headers["OpenAI-Organization"] = self._organization
        return headers

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the async HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=self._headers(),
                timeout=httpx.Timeout(self.timeout),
                transport=self._transport,
            )
        return self._client

    def _build_payload(
        self,
        messages: list[Message],
        model: str,
        options: Optional[InvocationOptions],
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": model,
            "messages": [{"role": m.role.value, "content": m.content} for m in messages],
        }
        if options is not None:
            if options.temperature is not None:
                payload["temperature"] = options.temperature
            if options.max_tokens is not None:
                payload["max_tokens"] = options.max_tokens
            if options.top_p is not None:
                payload["top_p"] = options.top_p
            if options.stop_sequences:
                payload["stop"] = options.stop_sequences
        return payload

    def _raise_for_status(self, error: httpx.HTTPStatusError, model: str) -> None:
        status_code = error.response.status_code
        if status_code == 429:
            raise RateLimitError(self.name, _retry_after_ms(error.response)) from error
        if status_code == 404:
            raise ModelNotAvailableError(
                f"Model not found: {model}",
                provider=self.name,
                details={"model": model, "status": status_code},
            ) from error
        if status_code in (401, 403):
            raise ProviderInvocationError(
                f"Authentication failed ({status_code})",
                provider=self.name,
                details={"status": status_code},
            ) from error
        raise ProviderInvocationError(
            f"HTTP error: {status_code}",
            provider=self.name,
            details={"status": status_code, "error": error.response.text[:500]},
        ) from error

    async def complete(
        self,
        messages: list[Message],
        options: Optional[InvocationOptions] = None,
    ) -> InvocationResult:
        """
        POST /chat/completions and map the first choice to an InvocationResult.
        """
        start_time = time.monotonic()
        model = self.resolve_model(options)
        timeout = self.resolve_timeout(options)

        logger.info(
            "Sending chat request to OpenAI-compatible API",
            provider=self.name,
            model=model,
            messages_count=len(messages),
        )

        try:
            client = await self._get_client()
            response = await client.post(
                "/chat/completions",
                json=self._build_payload(messages, model, options),
                timeout=timeout,
            )
            response.raise_for_status()
            data = response.json()
        except httpx.TimeoutException as e:
            raise LLMTimeoutError(
                f"Request timeout after {timeout}s",
                provider=self.name,
                details={"timeout": timeout},
            ) from e
        except httpx.HTTPStatusError as e:
            self._raise_for_status(e, model)
            raise
        except httpx.HTTPError as e:
            raise ProviderInvocationError(
                f"Network error: {e}",
                provider=self.name,
                details={"error_type": type(e).__name__},
            ) from e
        except ValueError as e:
            raise ProviderInvocationError(
                "Invalid JSON response",
                provider=self.name,
                details={"parse_error": str(e)},
            ) from e

        choices = data.get("choices") or []
        message = (choices[0].get("message") or {}) if choices else {}
        content = str(message.get("content") or "")
        if not content:
            raise ProviderInvocationError(
                "Empty response from provider",
                provider=self.name,
                details={"response": data},
            )

        usage_data = data.get("usage") or {}
        usage = None
        if usage_data:
            usage = TokenUsage(
                prompt=usage_data.get("prompt_tokens", 0),
                completion=usage_data.get("completion_tokens", 0),
                total=usage_data.get("total_tokens", 0),
            )

        duration_ms = int((time.monotonic() - start_time) * 1000)
        logger.info(
            "OpenAI-compatible completion successful",
            provider=self.name,
            model=data.get("model", model),
            duration_ms=duration_ms,
            total_tokens=usage.total if usage else None,
        )

        return InvocationResult(
            content=content,
            model=data.get("model", model),
            provider=self.name,
            usage=usage,
            duration_ms=duration_ms,
        )

    async def is_available(self) -> bool:
        """Liveness check via GET /models. Never raises."""
        if not self._api_key:
            logger.warning("No API key configured", provider=self.name)
            return False
        try:
            client = await self._get_client()
            response = await client.get("/models", timeout=5.0)
            response.raise_for_status()
            return True
        except httpx.HTTPError as e:
            logger.warning("Liveness check failed", provider=self.name, error=str(e))
            return False

    async def embed(self, texts: list[str], model: Optional[str] = None) -> list[list[float]]:
        """
        Embed texts via POST /embeddings.

        Response items carry an "index" field; vectors are returned in input order.
        """
        model = model or self.default_embedding_model
        try:
            client = await self._get_client()
            response = await client.post("/embeddings", json={"model": model, "input": texts})
            response.raise_for_status()
            items = response.json().get("data", [])
        except httpx.TimeoutException as e:
            raise LLMTimeoutError(f"Embedding timeout after {self.timeout}s", provider=self.name) from e
        except httpx.HTTPStatusError as e:
            self._raise_for_status(e, model)
            raise
        except (httpx.HTTPError, ValueError) as e:
            raise ProviderInvocationError(f"Embedding request failed: {e}", provider=self.name) from e

        if len(items) != len(texts):
            raise ProviderInvocationError(
                f"Expected {len(texts)} embeddings, got {len(items)}",
                provider=self.name,
            )
        ordered = sorted(items, key=lambda item: item.get("index", 0))
        return [item["embedding"] for item in ordered]

    async def aclose(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            logger.debug("Closed HTTP client", provider=self.name)
