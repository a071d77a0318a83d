"""Application configuration using Pydantic Settings.

All configuration is loaded from environment variables (or a local .env file).
"""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False, extra="ignore"
    )

    # ============================================
    # Application
    # ============================================
    app_name: str = "Notes RAG Service"
    app_version: str = "0.1.0"
    environment: str = "development"
    debug: bool = False

    # API Server
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_prefix: str = "/api"
    allowed_origins: list[str] = ["http://localhost:3000"]

    # ============================================
    # LLM provider (OpenAI-compatible endpoint)
    # ============================================
    llm_base_url: str = "https://dashscope.aliyuncs.com/compatible-mode/v1"
    llm_api_key: str = ""
    llm_chat_model: str = "qwen-max"
    llm_temperature: float = 0.7

    # ============================================
    # Embeddings
    # ============================================
    embedding_model: str = Field(
        default="text-embedding-v2", description="Embedding model name at the LLM provider"
    )
    # "runtime" calls the LLM provider in-process, "http" calls embedding_url
    embedding_backend: str = "runtime"
    embedding_url: str = "http://localhost:8000/api/embeddings"
    embedding_max_concurrency: int = Field(
        default=4, ge=1, description="Maximum embedding calls in flight per batch"
    )

    # ============================================
    # Generation
    # ============================================
    # "runtime" calls the LLM provider in-process, "http" calls generation_url
    generation_backend: str = "runtime"
    generation_url: str = "http://localhost:8000/api/chat"

    # ============================================
    # Document corpus provider
    # ============================================
    corpus_url: str = "http://localhost:3210"
    corpus_api_key: str | None = None

    http_timeout_seconds: float = 120.0

    # ============================================
    # Retrieval
    # ============================================
    chunking_strategy: str = "recursive"
    chunk_size: int = Field(default=1000, gt=0)
    chunk_overlap: int = Field(default=200, ge=0)
    retrieval_top_k: int = Field(default=3, ge=1)

    @field_validator("embedding_backend", "generation_backend")
    @classmethod
    def validate_backend(cls, v: str) -> str:
        """Backends are either in-process ("runtime") or remote ("http")."""
        v = v.lower()
        if v not in ("runtime", "http"):
            raise ValueError(f"Unknown backend '{v}', expected 'runtime' or 'http'")
        return v

    # ============================================
    # Langfuse (Observability)
    # ============================================
    langfuse_host: str = "http://localhost:3000"
    langfuse_public_key: str = ""
    langfuse_secret_key: str = ""

    # ============================================
    # Logging
    # ============================================
    log_level: str = "INFO"
    log_format: str = "console"  # "json" or "console"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
