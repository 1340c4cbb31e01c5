"""
Enumerations for the AI Enrichment Layer data models.

All enums are closed taxonomies - no values outside these sets are permitted.
"""

from enum import Enum


class MessageRole(str, Enum):
    """Role of a message inside a conversation sent to a model provider."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class ProviderName(str, Enum):
    """
    Known model provider identities.

    Used as rate-limit bucket keys and in InvocationResult.provider.
    """

    OLLAMA = "ollama"
    OPENAI = "openai"
    MOCK = "mock"


class PluginType(str, Enum):
    """Kind of work an enrichment plugin performs."""

    ANALYZER = "analyzer"
    CLASSIFIER = "classifier"
    PREDICTOR = "predictor"
    GENERATOR = "generator"


class InsightType(str, Enum):
    """Category of an insight produced by a plugin."""

    CONNECTION = "connection"
    CLUSTER = "cluster"
    TREND = "trend"
    ANOMALY = "anomaly"
    SUGGESTION = "suggestion"


class SentimentLabel(str, Enum):
    """
    Sentiment classification for a domain record.

    URGENT is kept separate from NEGATIVE: an urgent message is not
    necessarily a negative one.
    """

    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"
    URGENT = "urgent"


class PriorityLevel(str, Enum):
    """
    Priority level of a domain record.

    Ordered from low to critical.
    """

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @classmethod
    def from_score(cls, score: float) -> "PriorityLevel":
        """Map a 0-10 priority score to a level."""
        if score >= 9:
            return cls.CRITICAL
        if score >= 6:
            return cls.HIGH
        if score >= 3:
            return cls.MEDIUM
        return cls.LOW
