"""
Configuration settings for the AI Enrichment Layer.

All settings are loaded from environment variables with sensible defaults.
Use .env file for local development.

Components never read the module-level `settings` implicitly: the factory
functions in enrichment_layer.factory receive a Settings instance and build
every gateway/orchestrator from it.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # === Application ===
    APP_NAME: str = "AI Enrichment Layer"
    APP_VERSION: str = "0.1.0"
    LOG_LEVEL: str = "INFO"
    ENVIRONMENT: str = "development"  # "production" switches logs to JSON

    # === Provider Chain ===
    PRIMARY_PROVIDER: str = "ollama"  # ollama | openai | mock
    FALLBACK_PROVIDERS: list[str] = []  # e.g., ["openai", "mock"]

    # === Ollama ===
    OLLAMA_BASE_URL: str = "http://ollama:11434"
    OLLAMA_MODEL: str = "qwen2.5:7b"
    OLLAMA_MODELS: list[str] = []  # Static model list (defaults to [OLLAMA_MODEL])
    OLLAMA_EMBEDDING_MODEL: str = "nomic-embed-text"
    OLLAMA_TIMEOUT: int = 60  # seconds

    # === OpenAI-compatible API ===
    OPENAI_API_KEY: Optional[str] = None
    OPENAI_BASE_URL: str = "https://api.openai.com/v1"
    OPENAI_MODEL: str = "gpt-4o-mini"
    OPENAI_MODELS: list[str] = []
    OPENAI_EMBEDDING_MODEL: str = "text-embedding-3-small"
    OPENAI_ORGANIZATION: Optional[str] = None
    OPENAI_TIMEOUT: int = 30  # seconds

    # === Mock Provider ===
    MOCK_DELAY_MS: int = 0

    # === Rate Limiting ===
    DEFAULT_RATE_LIMIT: int = 60  # requests per window
    PROVIDER_RATE_LIMITS: dict[str, int] = {}  # e.g., {"openai": 500, "ollama": 1000}
    RATE_LIMIT_WINDOW_MS: int = 60000

    # === Caching ===
    ENABLE_CACHE: bool = True
    CACHE_TTL_SECONDS: int = 3600  # 1 hour
    CACHE_MAX_SIZE: int = 1000
    EMBEDDING_CACHE_MAX_SIZE: int = 10000
    EMBEDDING_CACHE_TTL_SECONDS: int = 86400  # 24 hours
    EMBEDDING_MODEL: Optional[str] = None  # None = first embedding provider's default

    # === Orchestration ===
    ANALYZE_TIMEOUT_MS: int = 30000  # per plugin
    ANALYZE_PARALLEL: bool = True
    ANALYZE_CONTINUE_ON_ERROR: bool = True
    BUILTIN_PLUGINS: list[str] = ["sentiment-analyzer", "priority-scorer"]


# Global settings instance
settings = Settings()
