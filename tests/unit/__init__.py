"""
Unit tests for the AI Enrichment Layer.

Test individual components in isolation:
- Rate limiter, response cache and embedding cache (fake clock)
- Provider adapters (httpx.MockTransport, no network)
- Model gateway fallback chain, caching and JSON completions
- Plugin orchestrator lifecycle, fan-out, timeouts and merging
- Built-in sentiment and priority plugins
- Settings, logging and factory wiring
"""
