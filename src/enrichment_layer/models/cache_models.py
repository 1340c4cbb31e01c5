"""
Bookkeeping models for the in-memory caches and rate limiter.
"""

from dataclasses import dataclass
from typing import Generic, TypeVar

from pydantic import BaseModel, Field


V = TypeVar("V")


@dataclass
class CacheEntry(Generic[V]):
    """
    A cached value with its lifetime.

    Timestamps come from the owning cache's clock (monotonic seconds).
    """

    value: V
    created_at: float
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now > self.expires_at


class CacheStats(BaseModel):
    """Hit/miss statistics for a cache instance."""

    size: int = Field(..., ge=0)
    hits: int = Field(..., ge=0)
    misses: int = Field(..., ge=0)
    hit_rate: float = Field(..., ge=0.0, le=1.0, description="hits / (hits + misses), 2 decimals")


class RateLimitStatus(BaseModel):
    """Current state of a provider's rate bucket."""

    provider: str
    capacity: int
    remaining: int
    reset_in_ms: int
