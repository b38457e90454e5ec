"""Runtime configuration for career-memory."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True, slots=True)
class Config:
    """Server configuration with sensible defaults."""

    db_path: Path = Path(
        os.environ.get("CAREER_MEMORY_DB_PATH", Path.home() / ".career-memory" / "lancedb")
    )
    table_name: str = os.environ.get("CAREER_MEMORY_TABLE", "career_memory")
    embedding_provider: str = os.environ.get("EMBEDDING_PROVIDER", "google")  # google | ollama
    embedding_model: str = os.environ.get("EMBEDDING_MODEL", "text-embedding-004")
    embedding_dim: int = int(os.environ.get("EMBEDDING_DIM", "768"))
    ollama_base_url: str = os.environ.get("OLLAMA_BASE_URL", "http://localhost:11434")
    distance_metric: str = "cosine"
    embed_timeout: float = float(os.environ.get("EMBED_TIMEOUT_SECONDS", "30"))
    store_timeout: float = float(os.environ.get("STORE_TIMEOUT_SECONDS", "30"))
    read_consistency_seconds: float = 0.0  # 0 = always see writes from other processes
    embed_concurrency: int = 4
    default_limit: int = 5
    max_limit: int = 50
    max_embed_chars: int = 16_000
    min_message_chars: int = 50
    max_result_text: int = 500


CONFIG = Config()
