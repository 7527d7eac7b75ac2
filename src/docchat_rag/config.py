"""Shared configuration loaded from environment / ``.env``."""

from __future__ import annotations

import logging
from functools import lru_cache

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings

PLACEHOLDER_CHAT_TITLE = "New Chat"


class Settings(BaseSettings):
    """Application-wide settings, populated from env vars or .env file.

    The instance is built once at process start and handed to
    :func:`docchat_rag.bootstrap.build_container`; components never read
    the environment themselves.
    """

    # LLM
    openai_api_key: str = Field(default="", description="API key (or blank for local endpoints)")
    llm_base_url: str = Field(
        default="http://localhost:11434/v1",
        description=(
            "Base URL of an OpenAI-compatible API. Defaults to a local "
            "Ollama server; point it at OpenAI or a vLLM service instead."
        ),
    )
    llm_model_name: str = Field(default="llama3.2", description="Chat model identifier")

    # Embedding
    embedding_base_url: str = Field(default="", description="Embedding endpoint; blank reuses llm_base_url")
    embedding_model: str = "nomic-embed-text"
    embedding_dimension: int = 768
    embedding_concurrency: int = Field(default=4, ge=1)

    request_timeout: float = Field(default=60.0, gt=0)

    # Vector store
    chroma_host: str = "localhost"
    chroma_port: int = 8000
    chroma_collection: str = "documents_collection"

    # Relational store / uploads
    database_url: str = "sqlite:///./docchat.db"
    upload_dir: str = "./uploads"
    max_file_size: int = 10 * 1024 * 1024

    # Chunking & retrieval
    chunk_size: int = 1000
    chunk_overlap: int = 200
    retrieval_top_k: int = Field(default=5, ge=1)
    history_window: int = Field(default=10, ge=0)

    # Generation
    chat_temperature: float = 0.7
    chat_top_p: float = 0.9
    chat_max_tokens: int = 2000

    # Workers
    ingestion_workers: int = Field(default=2, ge=1)

    # HTTP server
    api_host: str = "0.0.0.0"
    api_port: int = 8080

    log_level: str = "INFO"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    @model_validator(mode="after")
    def _check_consistency(self) -> Settings:
        if self.chunk_overlap < 0 or self.chunk_size <= self.chunk_overlap:
            raise ValueError(
                f"chunk_size ({self.chunk_size}) must be greater than "
                f"chunk_overlap ({self.chunk_overlap}) and overlap must be >= 0"
            )
        if self.embedding_dimension <= 0:
            raise ValueError("embedding_dimension must be positive")
        return self

    @property
    def resolved_embedding_base_url(self) -> str:
        return self.embedding_base_url or self.llm_base_url


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    return Settings()


def configure_logging(level: str = "INFO") -> None:
    """Apply the root logging configuration once at process start."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
