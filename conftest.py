"""Shared fixtures: an isolated LanceDB per test and a deterministic embedder."""

import hashlib
import re

import numpy as np
import pytest

from career_memory import CareerMemory
from collection import CollectionManager
from config import Config
from errors import EmbeddingUnavailable
from memory_store import MemoryStore

TEST_DIM = 64


class FakeEmbedder:
    """Bag-of-words hashing embedder: shared words mean higher cosine similarity."""

    def __init__(self, dim: int = TEST_DIM):
        self.dim = dim
        self.calls: list[str] = []
        self.fail_on: str | None = None
        self.wrong_dim: int | None = None

    async def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        if self.fail_on is not None and self.fail_on in text:
            raise EmbeddingUnavailable(f"fake provider refused '{self.fail_on}'")
        dim = self.wrong_dim or self.dim
        vector = np.zeros(dim)
        for token in re.findall(r"[a-z0-9]+", text.lower()):
            bucket = int(hashlib.md5(token.encode()).hexdigest(), 16) % dim
            vector[bucket] += 1.0
        norm = np.linalg.norm(vector)
        if norm == 0:
            vector[0] = 1.0
            norm = 1.0
        return (vector / norm).tolist()


def item_data(item: str, text: str, type_: str = "project", **extra) -> dict:
    data = {
        "item": item,
        "type": type_,
        "embeddingText": text,
        "milestones": [{"date": "2024-05-01", "description": f"Started {item}"}],
    }
    data.update(extra)
    return data


@pytest.fixture
def config(tmp_path) -> Config:
    return Config(db_path=tmp_path / "lancedb", table_name="test_memory", embedding_dim=TEST_DIM)


@pytest.fixture
def embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def collection(config) -> CollectionManager:
    return CollectionManager(config)


@pytest.fixture
def store(collection, embedder, config) -> MemoryStore:
    return MemoryStore(collection, embedder, config)


@pytest.fixture
async def memory(collection, embedder, config):
    memory = CareerMemory(config, collection=collection, embedder=embedder)
    await memory.start()
    yield memory
    memory.close()
