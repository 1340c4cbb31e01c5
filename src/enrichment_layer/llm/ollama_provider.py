"""
Ollama provider implementation (local model runtime).

Communicates with the Ollama API using httpx AsyncClient. Supports:
- Chat completions (POST /api/chat)
- Liveness check and model listing (GET /api/tags)
- Batch embeddings (POST /api/embed)
- Connection pooling via a persistent client
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


class OllamaProvider(BaseLLMProvider, EmbeddingProvider):
    """
    Ollama-specific provider using httpx for async HTTP communication.

    API Endpoints:
    - POST /api/chat: Chat completion
    - GET /api/tags: List installed models (used as liveness check)
    - POST /api/embed: Embeddings

    Each call is a single attempt: on failure the gateway moves on to the
    next provider instead of retrying here.
    """

    def __init__(
        self,
        base_url: str = "http://ollama:11434",
        default_model: str = "qwen2.5:7b",
        timeout: float = 60.0,
        models: Optional[list[str]] = None,
        embedding_model: str = "nomic-embed-text",
        name: str = ProviderName.OLLAMA.value,
        connection_limits: Optional[httpx.Limits] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize Ollama provider.

        Args:
            base_url: Ollama server URL
            default_model: Model used when options.model is None
            timeout: Request timeout in seconds
            models: Models this instance serves
            embedding_model: Default model for embed()
            name: Provider identity
            connection_limits: httpx connection pool limits (default: 10 max connections)
            transport: Custom httpx transport (tests use httpx.MockTransport)
        """
        super().__init__(name=name, default_model=default_model, timeout=timeout, models=models)
        self.base_url = base_url.rstrip('/')
        self.default_embedding_model = embedding_model

        if connection_limits is None:
            connection_limits = httpx.Limits(
                max_keepalive_connections=5,
                max_connections=10,
                keepalive_expiry=30.0
            )

        self._client: Optional[httpx.AsyncClient] = None
        self._connection_limits = connection_limits
        self._transport = transport

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the async HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self.timeout),
                limits=self._connection_limits,
                transport=self._transport,
                follow_redirects=True
            )
            logger.debug("Created new httpx AsyncClient", provider=self.name)
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
            "stream": False,
        }

        model_options: Dict[str, Any] = {}
        if options is not None:
            if options.temperature is not None:
                model_options["temperature"] = options.temperature
            if options.max_tokens is not None:
                model_options["num_predict"] = options.max_tokens
            if options.top_p is not None:
                model_options["top_p"] = options.top_p
            if options.stop_sequences:
                model_options["stop"] = options.stop_sequences
        if model_options:
            payload["options"] = model_options
        return payload

    async def complete(
        self,
        messages: list[Message],
        options: Optional[InvocationOptions] = None,
    ) -> InvocationResult:
        """
        Generate a chat completion using the Ollama API.

        POST /api/chat with payload:
        {
            "model": "qwen2.5:7b",
            "messages": [{"role": "system", "content": "..."}, ...],
            "stream": false,
            "options": {"temperature": 0.2, "num_predict": 300}
        }

        Response:
        {
            "model": "qwen2.5:7b",
            "message": {"role": "assistant", "content": "..."},
            "done": true,
            "prompt_eval_count": 50,
            "eval_count": 150
        }
        """
        start_time = time.monotonic()
        model = self.resolve_model(options)
        timeout = self.resolve_timeout(options)
        payload = self._build_payload(messages, model, options)

        logger.info(
            "Sending chat request to Ollama",
            model=model,
            messages_count=len(messages),
            timeout=timeout,
        )

        try:
            client = await self._get_client()
            response = await client.post("/api/chat", json=payload, timeout=timeout)
            response.raise_for_status()
            data = response.json()
        except httpx.TimeoutException as e:
            raise LLMTimeoutError(
                f"Request timeout after {timeout}s",
                provider=self.name,
                details={"timeout": timeout},
            ) from e
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            if status_code == 404:
                raise ModelNotAvailableError(
                    f"Model not found: {model}",
                    provider=self.name,
                    details={"model": model, "status": status_code},
                ) from e
            if status_code == 429:
                raise RateLimitError(self.name) from e
            raise ProviderInvocationError(
                f"Ollama HTTP error: {status_code}",
                provider=self.name,
                details={"status": status_code, "error": e.response.text[:500]},
            ) from e
        except httpx.HTTPError as e:
            raise ProviderInvocationError(
                f"Network error: {e}",
                provider=self.name,
                details={"error_type": type(e).__name__},
            ) from e
        except ValueError as e:
            raise ProviderInvocationError(
                "Invalid JSON response from Ollama",
                provider=self.name,
                details={"parse_error": str(e)},
            ) from e

        content = (data.get("message") or {}).get("content", "")
        if not content:
            raise ProviderInvocationError(
                "Empty response from Ollama",
                provider=self.name,
                details={"response": data},
            )

        prompt_tokens = data.get("prompt_eval_count") or 0
        completion_tokens = data.get("eval_count") or 0
        duration_ms = int((time.monotonic() - start_time) * 1000)

        logger.info(
            "Ollama completion successful",
            model=data.get("model", model),
            duration_ms=duration_ms,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
        )

        return InvocationResult(
            content=content,
            model=data.get("model", model),
            provider=self.name,
            usage=TokenUsage(
                prompt=prompt_tokens,
                completion=completion_tokens,
                total=prompt_tokens + completion_tokens,
            ),
            duration_ms=duration_ms,
        )

    async def is_available(self) -> bool:
        """
        Check Ollama server liveness via GET /api/tags.

        Returns True if server responds, False otherwise.
        """
        try:
            client = await self._get_client()
            response = await client.get("/api/tags", timeout=5.0)
            response.raise_for_status()
            return True
        except httpx.HTTPError as e:
            logger.warning("Ollama liveness check failed", provider=self.name, error=str(e))
            return False

    async def list_installed_models(self) -> list[str]:
        """
        List models installed on the server via GET /api/tags.

        Unlike get_available_models() this queries the server.
        """
        try:
            client = await self._get_client()
            response = await client.get("/api/tags", timeout=10.0)
            response.raise_for_status()
            return [m["name"] for m in response.json().get("models", [])]
        except (httpx.HTTPError, ValueError, KeyError) as e:
            raise ProviderInvocationError(
                f"Failed to list models: {e}",
                provider=self.name,
            ) from e

    async def embed(self, texts: list[str], model: Optional[str] = None) -> list[list[float]]:
        """
        Embed texts via POST /api/embed.

        Payload: {"model": "nomic-embed-text", "input": ["...", "..."]}
        Response: {"embeddings": [[0.1, ...], [0.2, ...]]}
        """
        model = model or self.default_embedding_model
        try:
            client = await self._get_client()
            response = await client.post(
                "/api/embed",
                json={"model": model, "input": texts},
                timeout=self.timeout,
            )
            response.raise_for_status()
            embeddings = response.json().get("embeddings", [])
        except httpx.TimeoutException as e:
            raise LLMTimeoutError(
                f"Embedding timeout after {self.timeout}s",
                provider=self.name,
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise ProviderInvocationError(
                f"Embedding request failed: {e}",
                provider=self.name,
                details={"model": model},
            ) from e

        if len(embeddings) != len(texts):
            raise ProviderInvocationError(
                f"Expected {len(texts)} embeddings, got {len(embeddings)}",
                provider=self.name,
            )
        return embeddings

    async def aclose(self) -> None:
        """Close the HTTP client connection."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            logger.debug("Closed Ollama client connection", provider=self.name)
