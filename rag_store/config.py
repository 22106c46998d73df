"""Library settings loaded from environment / .env file."""

import logging
from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

LOG_FORMAT = "[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="RAG_STORE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Chunking ──────────────────────────────────────────
    chunk_size: int = 500  # tokens
    chunk_overlap: int = 50  # tokens

    # ── Vector store ──────────────────────────────────────
    vector_dimensions: Optional[int] = 384  # 0 or None: fixed by the first insert
    default_top_k: int = 5
    max_top_k: int = 100
    default_threshold: float = 0.0
    max_metadata_bytes: int = 64 * 1024

    # ── Ingestion ─────────────────────────────────────────
    extraction_cache_size: int = 100
    embed_batch_size: int = 32
    embed_max_retries: int = 3

    # ── Logging ───────────────────────────────────────────
    log_level: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    return Settings()


def configure_logging(level: Optional[str] = None) -> logging.Logger:
    """Attach one stream handler to the ``rag_store`` logger."""
    logger = logging.getLogger("rag_store")
    logger.setLevel((level or get_settings().log_level).upper())

    if not any(getattr(handler, "_rag_store", False) for handler in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._rag_store = True
        logger.addHandler(handler)
    return logger
