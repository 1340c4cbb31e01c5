"""
AI Enrichment Layer.

Enriches domain records (emails, tasks, documents) with model-generated
insights:
- Model Gateway: provider fallback chain with rate limiting and response caching
- Plugin Orchestrator: lifecycle management and concurrent fan-out of analysis plugins
- Built-in plugins: sentiment analysis and priority scoring

Architecture: asyncio + httpx providers (Ollama, OpenAI-compatible, mock)
"""

__version__ = "0.1.0"
