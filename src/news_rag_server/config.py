"""
Application Settings

All tunables are read from the environment (or a local `.env` file) through
pydantic-settings. Every external credential is optional: a missing key turns
the corresponding capability off instead of failing startup.
"""

from __future__ import annotations

from typing import List, Optional

from pydantic import Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Server
    port: int = 5050
    environment: str = "development"
    log_level: str = "INFO"

    # Text generation (OpenAI-compatible chat completions)
    llm_api_key: Optional[SecretStr] = None
    llm_model: str = "gpt-4o-mini"
    llm_base_url: str = "https://api.openai.com/v1/chat/completions"
    llm_timeout: float = 60.0

    # Embeddings
    jina_api_key: Optional[SecretStr] = None
    embedding_model: str = "jina-embeddings-v2-base-en"
    embedding_base_url: str = "https://api.jina.ai/v1/embeddings"
    embedding_dimension: int = Field(default=768, ge=1)
    embedding_batch_size: int = Field(default=20, ge=1)
    embedding_max_retries: int = Field(default=3, ge=0)
    embedding_retry_base_delay: float = Field(default=1.0, ge=0.0)
    embedding_batch_delay: float = Field(default=0.5, ge=0.0)
    embedding_timeout: float = 30.0

    # Vector index (PostgreSQL + pgvector)
    database_url: Optional[str] = None
    vector_collection: str = Field(default="news_articles", pattern=r"^[a-z_][a-z0-9_]{0,62}$")
    vector_batch_size: int = Field(default=100, ge=1)
    vector_search_limit: int = Field(default=5, ge=1)
    vector_score_threshold: float = Field(default=0.3, ge=0.0, le=1.0)

    # Sessions
    redis_url: Optional[str] = None
    chat_history_ttl: int = Field(default=86400, ge=1)
    chat_history_max_messages: int = Field(default=100, ge=1)
    session_cleanup_interval: float = Field(default=60.0, gt=0.0)

    # Chunking
    chunk_size: int = Field(default=500, ge=1)
    chunk_overlap: int = Field(default=50, ge=0)

    # Ingestion sources
    news_api_key: Optional[SecretStr] = None
    guardian_api_key: Optional[SecretStr] = None
    rss_feeds: str = ""
    rss_countries: str = "us,uk,world,tech"
    rss_max_per_feed: int = Field(default=1000, ge=1)
    rss_max_total: int = Field(default=100000, ge=1)
    rss_timeout: float = 15.0
    ingest_max_articles: int = Field(default=100000, ge=1)

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )

    @model_validator(mode="after")
    def _check_chunking(self) -> "Settings":
        if self.chunk_overlap >= self.chunk_size:
            raise ValueError(
                f"chunk_overlap ({self.chunk_overlap}) must be less than "
                f"chunk_size ({self.chunk_size})"
            )
        return self

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @staticmethod
    def split_csv(raw: str) -> List[str]:
        return [part.strip() for part in raw.split(",") if part.strip()]


settings = Settings()
