"""Tests for collection bootstrap."""

import asyncio
import time
from dataclasses import replace

import lancedb
import pytest

from collection import CollectionManager
from conftest import TEST_DIM
from errors import DimensionMismatch, StoreUnavailable
from models import record_model


async def test_ensure_is_idempotent_under_concurrency(collection, config):
    tables = await asyncio.gather(*(collection.ensure() for _ in range(10)))
    assert all(t is tables[0] for t in tables)

    db = lancedb.connect(str(config.db_path))
    table = db.open_table(config.table_name)
    assert table.count_rows() == 0
    assert table.schema.field("vector").type.list_size == TEST_DIM


async def test_second_manager_reuses_existing_table(config):
    first = await CollectionManager(config).ensure()
    first.add(
        [
            record_model(TEST_DIM)(
                id="x",
                vector=[0.0] * TEST_DIM,
                user_id="u1",
                record_type="skills",
                data="{}",
                timestamp="2024-01-01T00:00:00",
            ).model_dump()
        ]
    )
    second = await CollectionManager(config).ensure()
    assert second.count_rows() == 1


async def test_existing_table_with_other_dimension_is_rejected(config):
    await CollectionManager(config).ensure()
    other = CollectionManager(replace(config, embedding_dim=TEST_DIM * 2))
    with pytest.raises(DimensionMismatch):
        await other.ensure()


class _RacingDB:
    """Table appears only after our create attempt loses a race."""

    def __init__(self, real_db, name):
        self.real_db = real_db
        self.name = name
        self.created = False

    def open_table(self, name):
        if not self.created:
            raise FileNotFoundError(name)
        return self.real_db.open_table(name)

    def create_table(self, name, schema=None, exist_ok=False):
        # the other process wins
        self.real_db.create_table(name, schema=schema)
        self.created = True
        raise OSError("Dataset already exists")


async def test_losing_a_create_race_is_success(config):
    real_db = lancedb.connect(str(config.db_path))
    manager = CollectionManager(config)
    manager._db = _RacingDB(real_db, config.table_name)
    table = await manager.ensure()
    assert table.count_rows() == 0


class _BrokenDB:
    def open_table(self, name):
        raise ConnectionError("unreachable")

    def create_table(self, name, schema=None, exist_ok=False):
        raise ConnectionError("unreachable")


async def test_unreachable_store_raises_store_unavailable(config):
    manager = CollectionManager(config, db=_BrokenDB())
    with pytest.raises(StoreUnavailable):
        await manager.ensure()


class _SlowDB:
    def __init__(self, delay):
        self.delay = delay

    def open_table(self, name):
        time.sleep(self.delay)
        raise ValueError(f"Table '{name}' was not found")

    def create_table(self, name, schema=None, exist_ok=False):
        raise ConnectionError("unreachable")


async def test_slow_store_raises_store_unavailable(config):
    manager = CollectionManager(replace(config, store_timeout=0.05), db=_SlowDB(0.5))
    with pytest.raises(StoreUnavailable, match="timed out"):
        await manager.ensure()
