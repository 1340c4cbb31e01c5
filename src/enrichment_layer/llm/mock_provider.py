"""
Deterministic mock provider.

Simulates model answers without any network call. Useful for:
- Unit tests (forced failures, availability toggles, call counting)
- Local development without an API key or a model runtime
- Demos
"""

import asyncio
import hashlib
import json
import math
import time
from typing import Dict, Optional

import structlog

from enrichment_layer.llm.base_provider import BaseLLMProvider, EmbeddingProvider
from enrichment_layer.llm.exceptions import LLMError
from enrichment_layer.models.enums import MessageRole, ProviderName
from enrichment_layer.models.llm_models import (
    InvocationOptions,
    InvocationResult,
    Message,
    TokenUsage,
)


logger = structlog.get_logger(__name__)

DEFAULT_RESPONSES: Dict[str, str] = {
    "sentiment": json.dumps({
        "sentiment": "positive",
        "sentiment_score": 0.8,
        "emotional_tones": ["satisfaction"],
        "toxicity": 0.0,
        "urgency": 0.1,
        "confidence": 0.9,
        "reasoning": "Mock analysis: friendly and appreciative tone.",
    }),
    "priority": json.dumps({
        "score": 7,
        "level": "high",
        "reasoning": "Mock analysis: important task with a close deadline.",
        "suggested_actions": ["Handle today"],
        "factors": [{"factor": "Deadline", "impact": 3, "description": "Deadline mentioned"}],
    }),
    "tags": json.dumps({"tags": ["#important", "#client"], "confidence": 0.85}),
    "summary": "Mock summary: the content concerns a client project with an important deadline.",
}

FALLBACK_CONTENT = "Mock response: no predefined response found."


class MockProvider(BaseLLMProvider, EmbeddingProvider):
    """
    Provider that answers from a pattern -> response table.

    Matching: the first pattern contained in the last user message wins;
    otherwise the system prompt is checked for a pattern; otherwise a fixed
    fallback sentence is returned.

    Attributes:
        call_count: Number of complete() invocations (including failed ones)
        available: Value returned by is_available()
        fail_with: When set, complete() raises this error
    """

    def __init__(
        self,
        name: str = ProviderName.MOCK.value,
        default_model: str = "mock",
        delay_ms: int = 0,
        responses: Optional[Dict[str, str]] = None,
        fail_with: Optional[LLMError] = None,
        available: bool = True,
        embedding_dim: int = 8,
    ):
        super().__init__(name=name, default_model=default_model, timeout=30.0)
        self.delay_ms = delay_ms
        self.fail_with = fail_with
        self.available = available
        self.embedding_dim = embedding_dim
        self.default_embedding_model = "mock-embedding"
        self.call_count = 0
        self.embed_call_count = 0
        self._responses: Dict[str, str] = dict(responses) if responses else dict(DEFAULT_RESPONSES)

    def add_response(self, pattern: str, response: str) -> None:
        """Register (or replace) a canned response for a pattern."""
        self._responses[pattern] = response

    def clear_responses(self) -> None:
        """Restore the default response table."""
        self._responses = dict(DEFAULT_RESPONSES)

    def _match(self, messages: list[Message]) -> str:
        user_content = next(
            (m.content.lower() for m in reversed(messages) if m.role == MessageRole.USER),
            "",
        )
        for pattern, response in self._responses.items():
            if pattern.lower() in user_content:
                return response

        system_content = next(
            (m.content.lower() for m in messages if m.role == MessageRole.SYSTEM),
            "",
        )
        for pattern, response in self._responses.items():
            if pattern.lower() in system_content:
                return response
        return FALLBACK_CONTENT

    @staticmethod
    def _count_tokens(text: str) -> int:
        # ~4 characters per token
        return math.ceil(len(text) / 4)

    async def complete(
        self,
        messages: list[Message],
        options: Optional[InvocationOptions] = None,
    ) -> InvocationResult:
        start_time = time.monotonic()
        self.call_count += 1

        if self.delay_ms:
            await asyncio.sleep(self.delay_ms / 1000.0)

        if self.fail_with is not None:
            logger.debug("Mock provider failing on purpose", provider=self.name)
            raise self.fail_with

        content = self._match(messages)
        prompt_tokens = self._count_tokens("".join(m.content for m in messages))
        completion_tokens = self._count_tokens(content)

        return InvocationResult(
            content=content,
            model=self.resolve_model(options),
            provider=self.name,
            usage=TokenUsage(
                prompt=prompt_tokens,
                completion=completion_tokens,
                total=prompt_tokens + completion_tokens,
            ),
            duration_ms=int((time.monotonic() - start_time) * 1000),
        )

    async def is_available(self) -> bool:
        return self.available

    def _vector(self, text: str, model: str) -> list[float]:
        digest = hashlib.sha256(f"{model}:{text}".encode("utf-8")).digest()
        raw = [(digest[i % len(digest)] / 255.0) * 2 - 1 for i in range(self.embedding_dim)]
        norm = math.sqrt(sum(x * x for x in raw)) or 1.0
        return [x / norm for x in raw]

    async def embed(self, texts: list[str], model: Optional[str] = None) -> list[list[float]]:
        """Deterministic unit vectors derived from a hash of (model, text)."""
        self.embed_call_count += 1
        if self.fail_with is not None:
            raise self.fail_with
        model = model or self.default_embedding_model
        return [self._vector(text, model) for text in texts]
