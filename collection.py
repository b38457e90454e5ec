"""Collection manager: owns the LanceDB table and its vector-size contract."""

from __future__ import annotations

import asyncio
import logging
from datetime import timedelta
from typing import Any

import lancedb
import pyarrow as pa

from config import Config
from errors import DimensionMismatch, StoreUnavailable
from models import record_model
from utils import run_blocking

logger = logging.getLogger(__name__)


def _vector_size(schema: pa.Schema) -> int | None:
    try:
        field = schema.field("vector")
    except KeyError:
        return None
    return getattr(field.type, "list_size", None)


class CollectionManager:
    """Ensure the shared table exists with vector size D before any operation.

    Safe to call repeatedly and concurrently. In-process callers share one
    lock; a cold-start race against another process is resolved by treating
    "create failed but the table now opens" as success.
    """

    def __init__(self, config: Config, *, db: Any | None = None) -> None:
        self.config = config
        self.model = record_model(config.embedding_dim)
        self._db = db
        self._table: lancedb.table.Table | None = None
        self._lock = asyncio.Lock()

    @property
    def dimension(self) -> int:
        return self.config.embedding_dim

    def _get_db(self):
        if self._db is None:
            self.config.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._db = lancedb.connect(
                str(self.config.db_path),
                read_consistency_interval=timedelta(seconds=self.config.read_consistency_seconds),
            )
        return self._db

    def _open_or_create(self) -> lancedb.table.Table:
        db = self._get_db()
        name = self.config.table_name
        try:
            table = db.open_table(name)
        except Exception:
            try:
                table = db.create_table(name, schema=self.model, exist_ok=True)
                logger.info("Created table '%s' (dim=%d)", name, self.dimension)
            except Exception as create_error:
                # Another process may have created it between our open and create
                try:
                    table = db.open_table(name)
                except Exception:
                    raise create_error from None
                logger.info("Table '%s' created concurrently; reusing it", name)

        size = _vector_size(table.schema)
        if size != self.dimension:
            raise DimensionMismatch(self.dimension, size or 0, where=f"table '{name}'")
        return table

    async def ensure(self) -> lancedb.table.Table:
        """Return the table, creating it on first use."""
        if self._table is not None:
            return self._table
        async with self._lock:
            if self._table is None:  # Double-check after acquiring lock
                self._table = await run_blocking(
                    self._open_or_create,
                    timeout=self.config.store_timeout,
                    error=StoreUnavailable,
                    what="ensure collection",
                )
        return self._table

    def reset(self) -> None:
        """Forget the cached handle so the next ``ensure`` reopens the table."""
        self._table = None
