"""Monitoring and metrics instrumentation for the AI Enrichment Layer.

Exports custom Prometheus metrics for operational monitoring and alerting.
"""

from enrichment_layer.monitoring.metrics import (
    cache_events_total,
    llm_fallbacks_total,
    llm_latency_seconds,
    llm_requests_total,
    llm_tokens_total,
    plugin_executions_total,
    plugin_latency_seconds,
    rate_limit_rejections_total,
)

__all__ = [
    "cache_events_total",
    "llm_fallbacks_total",
    "llm_latency_seconds",
    "llm_requests_total",
    "llm_tokens_total",
    "plugin_executions_total",
    "plugin_latency_seconds",
    "rate_limit_rejections_total",
]
