"""Custom Prometheus metrics for the AI Enrichment Layer.

These collectors are registered on the default prometheus_client registry and
are exposed by whatever process embeds this package (e.g. via
prometheus_client.start_http_server or an ASGI /metrics route).
Alert rules should be configured for:
- llm_requests_total{outcome="error"} (provider instability)
- llm_fallbacks_total (primary provider degraded)
- rate_limit_rejections_total (budget too small for the workload)
- plugin_executions_total{outcome="timeout"} (slow plugins)
"""

from prometheus_client import Counter, Histogram

# === Gateway Metrics ===

llm_requests_total = Counter(
    "llm_requests_total",
    "Total provider invocations by provider and outcome",
    ["provider", "outcome"],
)
"""
Provider invocation counter.

Labels:
- provider: ollama, openai, mock, ...
- outcome: success, error, rate_limited, unavailable
"""

llm_latency_seconds = Histogram(
    "llm_latency_seconds",
    "Provider call latency in seconds",
    ["provider", "success"],
    buckets=[0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0],
)
"""
Provider latency histogram.

Alert thresholds:
- WARN: p95 > 10s
- CRITICAL: p95 > 30s
"""

llm_tokens_total = Counter(
    "llm_tokens_total",
    "Total tokens consumed by provider and type",
    ["provider", "token_type"],
)
"""
Token consumption counter.

Labels:
- token_type: prompt (input tokens), completion (output tokens)

Used for cost estimation and capacity planning.
"""

llm_fallbacks_total = Counter(
    "llm_fallbacks_total",
    "Requests served by a fallback provider",
    ["provider"],
)

rate_limit_rejections_total = Counter(
    "rate_limit_rejections_total",
    "Admissions denied by the local rate bucket",
    ["provider"],
)

# === Cache Metrics ===

cache_events_total = Counter(
    "cache_events_total",
    "Cache lookups and evictions",
    ["cache", "event"],
)
"""
Cache event counter.

Labels:
- cache: response, embedding
- event: hit, miss, eviction, expired
"""

# === Plugin Metrics ===

plugin_executions_total = Counter(
    "plugin_executions_total",
    "Plugin analyze() executions by plugin and outcome",
    ["plugin", "outcome"],
)
"""
Plugin execution counter.

Labels:
- outcome: success, error, timeout
"""

plugin_latency_seconds = Histogram(
    "plugin_latency_seconds",
    "Plugin analyze() latency in seconds",
    ["plugin"],
    buckets=[0.05, 0.1, 0.5, 1.0, 5.0, 10.0, 30.0],
)
