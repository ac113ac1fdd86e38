"""
Centralized Configuration for the StudyHub backend.

All environment variables are managed here using Pydantic Settings.

Usage:
    from studyhub.config import settings

    db_url = settings.database_url
    api_key = settings.anthropic_api_key
"""

import os
from typing import Optional, Literal
from pydantic import Field, field_validator, ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Environment variables are prefixed with STUDYHUB_ where applicable.
    See .env.example for all available options.
    """

    # =============================================================================
    # Application Environment
    # =============================================================================

    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Application environment",
        validation_alias="STUDYHUB_ENVIRONMENT"
    )

    testing: bool = Field(
        default=False,
        description="Enable testing mode",
        validation_alias="TESTING"
    )

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
        validation_alias="STUDYHUB_LOG_LEVEL"
    )

    allowed_origins: str = Field(
        default="*",
        description="CORS allowed origins (comma-separated or '*')",
        validation_alias="STUDYHUB_ALLOWED_ORIGINS"
    )

    # =============================================================================
    # Database & Storage
    # =============================================================================

    database_url: str = Field(
        default="sqlite:///./studyhub.db",
        description="Database connection URL (PostgreSQL or SQLite)",
        validation_alias="DATABASE_URL"
    )

    storage_path: str = Field(
        default="storage",
        description="Directory where uploaded file blobs are stored",
        validation_alias="STUDYHUB_STORAGE_PATH"
    )

    max_upload_size_bytes: int = Field(
        default=50 * 1024 * 1024,
        description="Hard cap on request upload size in bytes",
        validation_alias="STUDYHUB_MAX_UPLOAD_SIZE_BYTES"
    )

    # =============================================================================
    # Authentication (tokens issued by the hosted identity provider)
    # =============================================================================

    jwt_secret: str = Field(
        ...,  # Required field
        description="Shared secret used by the identity provider to sign access tokens",
        validation_alias="STUDYHUB_JWT_SECRET"
    )

    jwt_algorithm: str = Field(
        default="HS256",
        description="JWT signing algorithm",
        validation_alias="STUDYHUB_JWT_ALGORITHM"
    )

    jwt_audience: str = Field(
        default="authenticated",
        description="Expected 'aud' claim of access tokens",
        validation_alias="STUDYHUB_JWT_AUDIENCE"
    )

    token_expire_minutes: int = Field(
        default=60,
        description="Lifetime of locally minted tokens (development/testing)",
        validation_alias="STUDYHUB_TOKEN_EXPIRE_MINUTES"
    )

    # =============================================================================
    # Redis & Celery
    # =============================================================================

    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL",
        validation_alias="REDIS_URL"
    )

    celery_broker_url: Optional[str] = Field(
        default=None,
        description="Celery broker URL (defaults to redis_url)",
        validation_alias="CELERY_BROKER_URL"
    )

    celery_result_backend: Optional[str] = Field(
        default=None,
        description="Celery result backend URL (defaults to redis_url)",
        validation_alias="CELERY_RESULT_BACKEND"
    )

    celery_task_always_eager: bool = Field(
        default=False,
        description="Run Celery tasks inline (no worker needed)",
        validation_alias="CELERY_TASK_ALWAYS_EAGER"
    )

    # =============================================================================
    # LLM Providers
    # =============================================================================

    openai_api_key: Optional[str] = Field(
        default=None,
        description="OpenAI API key",
        validation_alias="OPENAI_API_KEY"
    )

    anthropic_api_key: Optional[str] = Field(
        default=None,
        description="Anthropic API key",
        validation_alias="ANTHROPIC_API_KEY"
    )

    preferred_ai_provider: Optional[Literal["openai", "anthropic", "mock"]] = Field(
        default=None,
        description="Provider to use when a request does not name one",
        validation_alias="STUDYHUB_AI_PROVIDER"
    )

    llm_timeout_seconds: float = Field(
        default=60.0,
        description="Timeout for a single LLM request",
        validation_alias="STUDYHUB_LLM_TIMEOUT"
    )

    max_generation_chunks: int = Field(
        default=4,
        description="Max content chunks (and LLM calls) for one generation request",
        validation_alias="STUDYHUB_MAX_GENERATION_CHUNKS"
    )

    generation_rate_limit: str = Field(
        default="10/minute",
        description="slowapi rate limit for AI generation endpoints",
        validation_alias="STUDYHUB_GENERATION_RATE_LIMIT"
    )

    ai_cache_enabled: bool = Field(
        default=True,
        description="Cache AI responses in Redis",
        validation_alias="STUDYHUB_AI_CACHE_ENABLED"
    )

    ai_cache_ttl_seconds: int = Field(
        default=3600,
        description="Lifetime of a cached AI response",
        validation_alias="STUDYHUB_AI_CACHE_TTL"
    )

    # =============================================================================
    # Embeddings & Vector Search
    # =============================================================================

    openai_embedding_model: str = Field(
        default="text-embedding-3-small",
        description="OpenAI embedding model",
        validation_alias="OPENAI_EMBEDDING_MODEL"
    )

    embedding_chunk_size: int = Field(
        default=1800,
        description="Target characters per embedded chunk",
        validation_alias="EMBEDDING_CHUNK_SIZE"
    )

    embedding_chunk_overlap: int = Field(
        default=300,
        description="Characters of overlap between chunks",
        validation_alias="EMBEDDING_CHUNK_OVERLAP"
    )

    embedding_max_chunks: int = Field(
        default=200,
        description="Maximum chunks embedded per file",
        validation_alias="EMBEDDING_MAX_CHUNKS"
    )

    search_default_threshold: float = Field(
        default=0.7,
        description="Default similarity threshold for vector search",
        validation_alias="SEARCH_DEFAULT_THRESHOLD"
    )

    search_default_limit: int = Field(
        default=10,
        description="Default result limit for vector search",
        validation_alias="SEARCH_DEFAULT_LIMIT"
    )

    # =============================================================================
    # Computed Properties
    # =============================================================================

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == "development"

    @property
    def effective_celery_broker_url(self) -> str:
        """Get Celery broker URL (falls back to redis_url)."""
        return self.celery_broker_url or self.redis_url

    @property
    def effective_celery_result_backend(self) -> str:
        """Get Celery result backend URL (falls back to redis_url)."""
        return self.celery_result_backend or self.redis_url

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # =============================================================================
    # Validators
    # =============================================================================

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v):
        """Convert postgres:// to postgresql:// for SQLAlchemy compatibility."""
        if v.startswith("postgres://"):
            return v.replace("postgres://", "postgresql://", 1)
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        """Ensure log level is uppercase and valid."""
        v = v.upper()
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v

    @field_validator("environment", mode="before")
    @classmethod
    def validate_environment(cls, v):
        """Ensure environment is lowercase."""
        return v.lower() if isinstance(v, str) else v


# =============================================================================
# Global Settings Instance
# =============================================================================

try:
    settings = Settings()
except Exception as e:
    if os.getenv("TESTING") == "true":
        os.environ.setdefault("STUDYHUB_JWT_SECRET", "test-secret-key-for-testing-only")
        settings = Settings()
    else:
        raise RuntimeError(
            f"Failed to load application settings: {e}\n\n"
            "Required environment variables:\n"
            "- STUDYHUB_JWT_SECRET (the identity provider's JWT signing secret)\n\n"
            "See .env.example for all available configuration options."
        ) from e


def get_settings() -> Settings:
    """
    Get settings instance (for dependency injection).

    Usage:
        @router.get("/endpoint")
        def endpoint(settings: Settings = Depends(get_settings)):
            ...
    """
    return settings
