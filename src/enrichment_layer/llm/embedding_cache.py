"""
Memoization of vector embeddings.

Same caching discipline as the response cache (TTL + LRU, see
ResponseCache), keyed by (model, text). Batch lookups split cached and
missing texts so only the missing ones reach a provider.
"""

import time
from typing import Awaitable, Callable, Optional

import structlog

from enrichment_layer.llm.response_cache import ResponseCache, fingerprint
from enrichment_layer.models.cache_models import CacheStats


logger = structlog.get_logger(__name__)

Vector = list[float]
EmbedFetcher = Callable[[list[str]], Awaitable[list[Vector]]]


class EmbeddingCache:
    """
    TTL/LRU cache of embeddings in front of an embedding fetcher.

    The fetcher is supplied per call (the gateway passes its fallback chain),
    so the cache holds no reference to any provider.
    """

    def __init__(
        self,
        max_size: int = 10000,
        ttl_seconds: float = 86400,
        cache: Optional[ResponseCache[Vector]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._cache: ResponseCache[Vector] = cache if cache is not None else ResponseCache(
            ttl_seconds=ttl_seconds,
            max_size=max_size,
            name="embedding",
            clock=clock,
        )
        # Raw keys are kept for export(); the cache itself stores hashed keys.
        self._raw_keys: dict[str, tuple[str, str]] = {}

    @staticmethod
    def key(model: str, text: str) -> str:
        return fingerprint("embedding", model, text)

    def get(self, model: str, text: str) -> Optional[Vector]:
        return self._cache.get(self.key(model, text))

    def set(self, model: str, text: str, vector: Vector) -> None:
        key = self.key(model, text)
        self._cache.set(key, vector)
        self._raw_keys[key] = (model, text)
        if len(self._raw_keys) > 2 * self._cache.max_size:
            self._drop_stale_keys()

    def _drop_stale_keys(self) -> None:
        for stale in [k for k in self._raw_keys if k not in self._cache]:
            del self._raw_keys[stale]

    async def embed_batch(self, texts: list[str], model: str, fetch: EmbedFetcher) -> list[Vector]:
        """
        Return one embedding per text, fetching only cache misses.

        Duplicate texts inside the batch are fetched once. Result order
        matches input order.

        Args:
            texts: Texts to embed
            model: Model label used in the cache key
            fetch: Coroutine embedding a list of texts (in order)
        """
        results: list[Optional[Vector]] = [None] * len(texts)
        missing: dict[str, list[int]] = {}

        for index, text in enumerate(texts):
            cached = self.get(model, text)
            if cached is not None:
                results[index] = cached
            else:
                missing.setdefault(text, []).append(index)

        if missing:
            to_fetch = list(missing)
            logger.debug(
                "Embedding cache misses",
                model=model,
                requested=len(texts),
                fetching=len(to_fetch),
            )
            vectors = await fetch(to_fetch)
            for text, vector in zip(to_fetch, vectors):
                self.set(model, text, vector)
                for index in missing[text]:
                    results[index] = vector

        return [vector for vector in results if vector is not None]

    def preload(self, entries: list[tuple[str, Vector]], model: str) -> None:
        """Warm the cache with known (text, embedding) pairs."""
        for text, vector in entries:
            self.set(model, text, vector)

    def export(self) -> list[dict]:
        """Snapshot of live entries as {"model", "text", "embedding"} dicts."""
        exported = []
        for key, (model, text) in list(self._raw_keys.items()):
            vector = self._cache.peek(key)
            if vector is None:
                self._raw_keys.pop(key, None)
            else:
                exported.append({"model": model, "text": text, "embedding": vector})
        return exported

    def import_entries(self, entries: list[dict]) -> None:
        """Load entries previously produced by export()."""
        for entry in entries:
            self.set(entry["model"], entry["text"], entry["embedding"])

    def clear(self) -> None:
        self._cache.clear()
        self._raw_keys.clear()

    def prune(self) -> int:
        removed = self._cache.prune()
        self._drop_stale_keys()
        return removed

    def stats(self) -> CacheStats:
        return self._cache.stats()
