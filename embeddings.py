"""Embedding provider adapter: text in, fixed-dimension unit vector out.

Two providers are supported:
- google: Google GenAI ``embed_content`` (text-embedding-004, 768-dim)
- ollama: a local Ollama server's ``/api/embeddings`` endpoint

Provider failures always surface as :class:`EmbeddingUnavailable`. There is no
fallback chain and no synthetic vector: mixing vectors from two models (or a
hash) in one table would silently corrupt similarity search.
"""

from __future__ import annotations

import logging
import os
from collections import OrderedDict
from pathlib import Path
from threading import Lock
from typing import TYPE_CHECKING

import numpy as np
import requests

from config import Config
from errors import EmbeddingUnavailable
from utils import run_blocking

if TYPE_CHECKING:
    from google.genai import Client as GenAIClient

logger = logging.getLogger(__name__)

PROVIDERS = frozenset({"google", "ollama"})
CACHE_SIZE = 128


def _get_api_key() -> str:
    """Get API key from environment or secrets file."""
    key = os.environ.get("GOOGLE_API_KEY") or os.environ.get("GEMINI_API_KEY")
    if key:
        return key
    secrets_path = Path.home() / ".secrets" / "GOOGLE_API_KEY"
    if secrets_path.exists():
        return secrets_path.read_text().strip()
    raise EmbeddingUnavailable(
        "GOOGLE_API_KEY not found. Set environment variable or create ~/.secrets/GOOGLE_API_KEY"
    )


def _normalize(values: list[float]) -> list[float]:
    embedding = np.asarray(values, dtype=np.float64)
    norm = np.linalg.norm(embedding)
    if not norm > 0:
        raise EmbeddingUnavailable("provider returned a zero vector")
    return (embedding / norm).tolist()


class EmbeddingProvider:
    """Explicitly constructed embedding client; one per process."""

    def __init__(self, config: Config, *, genai_client: GenAIClient | None = None) -> None:
        provider = config.embedding_provider.lower()
        if provider not in PROVIDERS:
            raise ValueError(f"Unsupported embedding provider '{config.embedding_provider}'")
        self.config = config
        self.provider = provider
        self._genai_client = genai_client
        self._session: requests.Session | None = None
        self._cache: OrderedDict[str, tuple[float, ...]] = OrderedDict()
        self._lock = Lock()

    @property
    def dimension(self) -> int:
        return self.config.embedding_dim

    # ------------------------------------------------------------------
    # Providers (blocking, run in a worker thread)
    # ------------------------------------------------------------------
    def _get_genai_client(self) -> GenAIClient:
        if self._genai_client is None:
            with self._lock:
                if self._genai_client is None:  # Double-check after acquiring lock
                    from google import genai

                    self._genai_client = genai.Client(api_key=_get_api_key())
        return self._genai_client

    def _embed_google(self, text: str) -> list[float]:
        from google.genai import types

        response = self._get_genai_client().models.embed_content(
            model=self.config.embedding_model,
            contents=text,
            config=types.EmbedContentConfig(
                task_type="SEMANTIC_SIMILARITY",
                output_dimensionality=self.config.embedding_dim,
            ),
        )
        if not response.embeddings or not response.embeddings[0].values:
            raise EmbeddingUnavailable("Google returned an empty embedding")
        return list(response.embeddings[0].values)

    def _embed_ollama(self, text: str) -> list[float]:
        if self._session is None:
            self._session = requests.Session()
        response = self._session.post(
            f"{self.config.ollama_base_url}/api/embeddings",
            json={"model": self.config.embedding_model, "prompt": text},
            timeout=self.config.embed_timeout,
        )
        response.raise_for_status()
        values = response.json().get("embedding") or []
        if not values:
            raise EmbeddingUnavailable("Ollama returned an empty embedding")
        return values

    def _embed_sync(self, text: str) -> tuple[float, ...]:
        # Manual LRU instead of lru_cache: failed or zero embeddings must never be cached.
        with self._lock:
            cached = self._cache.get(text)
            if cached is not None:
                self._cache.move_to_end(text)
                return cached

        if self.provider == "google":
            values = self._embed_google(text)
        else:
            values = self._embed_ollama(text)
        result = tuple(_normalize(values))

        with self._lock:
            self._cache[text] = result
            if len(self._cache) > CACHE_SIZE:
                self._cache.popitem(last=False)
        return result

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    async def embed(self, text: str) -> list[float]:
        """Embed ``text``; callers pre-truncate to the provider's input limit."""
        if not text or not text.strip():
            raise ValueError("Cannot embed empty text")
        try:
            vector = await run_blocking(
                self._embed_sync,
                text,
                timeout=self.config.embed_timeout,
                error=EmbeddingUnavailable,
                what=f"{self.provider} embedding",
            )
        except EmbeddingUnavailable as e:
            logger.warning("Embedding failed for content length=%d: %s", len(text), e)
            raise
        return list(vector)

    def close(self) -> None:
        if self._session is not None:
            self._session.close()
            self._session = None
