"""
Pydantic data models for the AI Enrichment Layer.

Includes:
- Enums (MessageRole, ProviderName, PluginType, InsightType, SentimentLabel, PriorityLevel)
- LLM models (Message, InvocationOptions, TokenUsage, InvocationResult)
- Analysis models (Insight, AnalyzeOptions, PluginOutcome, AnalysisResult, RegistryStats)
- Cache models (CacheEntry, CacheStats, RateLimitStatus)
"""

from enrichment_layer.models.enums import (
    InsightType,
    MessageRole,
    PluginType,
    PriorityLevel,
    ProviderName,
    SentimentLabel,
)
from enrichment_layer.models.llm_models import (
    InvocationOptions,
    InvocationResult,
    Message,
    TokenUsage,
)
from enrichment_layer.models.analysis_models import (
    ENRICHMENT_KEY,
    INSIGHTS_KEY,
    AnalysisResult,
    AnalyzeOptions,
    Insight,
    PluginOutcome,
    Record,
    RegistryStats,
)
from enrichment_layer.models.cache_models import CacheEntry, CacheStats, RateLimitStatus

__all__ = [
    # Enums
    "InsightType",
    "MessageRole",
    "PluginType",
    "PriorityLevel",
    "ProviderName",
    "SentimentLabel",
    # LLM models
    "InvocationOptions",
    "InvocationResult",
    "Message",
    "TokenUsage",
    # Analysis models
    "ENRICHMENT_KEY",
    "INSIGHTS_KEY",
    "AnalysisResult",
    "AnalyzeOptions",
    "Insight",
    "PluginOutcome",
    "Record",
    "RegistryStats",
    # Cache models
    "CacheEntry",
    "CacheStats",
    "RateLimitStatus",
]
