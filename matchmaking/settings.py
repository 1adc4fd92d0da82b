"""
Centralized settings management using pydantic-settings.

Every value can be overridden through the environment or a local `.env` file.
Use get_settings() to access the cached instance.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Matching engine settings.

    Optional integrations:
        - OPENAI_API_KEY: enables generative explanations
        - PINECONE_API_KEY: queries a Pinecone index instead of the in-memory one
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==========================================================================
    # Environment
    # ==========================================================================
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Debug logging")

    @property
    def is_production(self) -> bool:
        return self.environment.lower() in ("production", "prod")

    # ==========================================================================
    # Generative text backend
    # ==========================================================================
    openai_api_key: Optional[str] = Field(default=None, description="OpenAI API key")
    openai_model: str = Field(default="gpt-4o-mini", description="Chat model for explanations")
    generation_timeout_s: float = Field(default=15.0, gt=0, description="Timeout per generation call")

    # ==========================================================================
    # Similarity index
    # ==========================================================================
    pinecone_api_key: Optional[str] = Field(default=None, description="Pinecone API key")
    pinecone_index: str = Field(default="users", description="Pinecone index name")
    pinecone_namespace: str = Field(default="user-embeddings", description="Namespace holding user vectors")
    similarity_timeout_s: float = Field(default=5.0, gt=0, description="Timeout per similarity query")

    # ==========================================================================
    # Ranking
    # ==========================================================================
    candidate_limit: int = Field(default=1000, ge=1, description="Upper bound on the eligible pool")
    tag_backstop: int = Field(default=20, ge=0, description="Zero-overlap candidates kept for sparse pools")
    max_page_size: int = Field(default=20, ge=1, description="Largest accepted page size")

    # ==========================================================================
    # Local data
    # ==========================================================================
    data_dir: Path = Field(default=Path("data"), description="Directory with users/tags/thoughts CSVs")

    @field_validator("openai_api_key", "pinecone_api_key", mode="before")
    @classmethod
    def blank_to_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @property
    def generation_enabled(self) -> bool:
        return self.openai_api_key is not None

    @property
    def pinecone_enabled(self) -> bool:
        return self.pinecone_api_key is not None


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    return Settings()
