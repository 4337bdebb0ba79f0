"""
LeaseWise Configuration Module
==============================
Centralized configuration management using Pydantic Settings.
All environment variables are validated and typed.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Uses Pydantic v2 settings management for type safety and validation.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # === API Keys ===
    openai_api_key: str = Field(default="", description="OpenAI API key")

    # === LLM Configuration ===
    llm_model: str = Field(
        default="gpt-4o-mini",
        description="OpenAI model identifier"
    )
    llm_timeout_seconds: float = Field(default=120.0, description="Per-request LLM timeout")

    # === Embeddings ===
    embedding_provider: str = Field(
        default="local",
        description="Embedding backend: 'local' (sentence-transformers) or 'openai'"
    )
    embedding_model: str = Field(
        default="all-MiniLM-L6-v2",
        description="sentence-transformers model name"
    )
    openai_embedding_model: str = Field(
        default="text-embedding-3-small",
        description="OpenAI embedding model name"
    )

    # === Database ===
    database_url: str = Field(
        default="sqlite+aiosqlite:///./leasewise.db",
        description="SQLAlchemy async database URL"
    )

    # === Document Storage ===
    upload_dir: Path = Field(default=Path("./uploads"), description="Upload directory")
    max_file_size_mb: int = Field(default=50, description="Maximum file size in MB")

    # === Clause Indexing ===
    chunk_max_chars: int = Field(default=1200, description="Maximum clause chunk size")
    classifier_max_chars: int = Field(default=2500, description="Classifier input budget")
    classifier_delay_ms: int = Field(default=200, description="Delay between classifier calls")

    # === Clause Retrieval ===
    qa_top_k: int = Field(default=10, description="Clauses retrieved per question")
    qa_min_similarity: float = Field(default=0.25, description="Similarity floor for clause Q&A")
    citation_limit: int = Field(default=8, description="Citations returned per answer")
    brute_force_warn_candidates: int = Field(
        default=5000,
        description="Candidate count above which exact search logs a scaling warning"
    )

    # === Document Q&A ===
    document_chunk_chars: int = Field(default=3500, description="Generic document chunk size")
    document_chunk_overlap: int = Field(default=350, description="Generic document chunk overlap")
    document_top_k: int = Field(default=5, description="Document chunks retrieved per question")

    # === Server Configuration ===
    api_host: str = Field(default="0.0.0.0", description="API host")
    api_port: int = Field(default=8000, description="API port")
    debug: bool = Field(default=False, description="Debug mode")

    # === Logging ===
    log_level: str = Field(default="INFO", description="Logging level")

    @field_validator("upload_dir", mode="before")
    @classmethod
    def ensure_upload_dir(cls, v: str | Path) -> Path:
        """Ensure upload directory exists."""
        path = Path(v)
        path.mkdir(parents=True, exist_ok=True)
        return path

    @field_validator("embedding_provider")
    @classmethod
    def check_embedding_provider(cls, v: str) -> str:
        value = v.strip().lower()
        if value not in ("local", "openai"):
            raise ValueError("EMBEDDING_PROVIDER must be 'local' or 'openai'")
        return value

    @property
    def max_file_size_bytes(self) -> int:
        """Get max file size in bytes."""
        return self.max_file_size_mb * 1024 * 1024

    @property
    def classifier_delay_seconds(self) -> float:
        return self.classifier_delay_ms / 1000.0

    def validate_llm_config(self) -> None:
        """Validate that the required API keys are set."""
        if not self.openai_api_key:
            raise ValueError("OPENAI_API_KEY is required")


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Uses lru_cache to ensure settings are loaded only once.
    """
    settings = Settings()
    return settings
