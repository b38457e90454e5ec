"""Memory store: per-user create / update / complete / search over one table.

Every read and write is scoped by ``user_id`` through :func:`utils.build_filter`;
the table itself is shared by all users.

Tracked-item lifecycle::

    nonexistent -> in-progress (create) -> in-progress (update)* -> removed (complete)

There is no way back from complete. A reopened item is a new create.
"""

from __future__ import annotations

import json
import logging
from collections import Counter
from typing import Any, Callable, Iterable, Mapping, Protocol, Sequence, TypeVar

import pyarrow as pa

from collection import CollectionManager
from config import Config
from errors import (
    DimensionMismatch,
    InvalidAction,
    RecordNotFound,
    StoreUnavailable,
    StoreWriteFailed,
)
from models import (
    IN_PROGRESS,
    RECORD_TYPES,
    TRACKABLE_TYPES,
    PendingRecord,
    SearchHit,
    StoredRecord,
)
from utils import build_filter, new_record_id, now_iso, run_blocking

logger = logging.getLogger(__name__)

T = TypeVar("T")

SCAN_LIMIT = 1000
PAYLOAD_COLUMNS = ["id", "user_id", "record_type", "status", "data", "timestamp"]


class Embedder(Protocol):
    async def embed(self, text: str) -> list[float]: ...


def _require_user(user_id: str) -> None:
    if not user_id or not user_id.strip():
        raise InvalidAction("userId is required")


def _embedding_text(data: Mapping[str, Any]) -> str:
    text = data.get("embedding_text") or data.get("embeddingText")
    if not isinstance(text, str) or not text.strip():
        raise InvalidAction("itemData.embeddingText is required")
    return text


def _require_trackable(record_type: str) -> None:
    if record_type not in TRACKABLE_TYPES:
        raise InvalidAction(
            f"Invalid item type '{record_type}'. Valid: {sorted(TRACKABLE_TYPES)}"
        )


class MemoryStore:
    """Read/write protocol over the vector table for one deployment."""

    def __init__(self, collection: CollectionManager, embedder: Embedder, config: Config) -> None:
        self.collection = collection
        self.embedder = embedder
        self.config = config

    @property
    def dimension(self) -> int:
        return self.collection.dimension

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    async def _run(
        self,
        fn: Callable[..., T],
        *args: Any,
        what: str,
        error: type[StoreUnavailable] = StoreUnavailable,
    ) -> T:
        return await run_blocking(
            fn, *args, timeout=self.config.store_timeout, error=error, what=what
        )

    def _check_vector(self, vector: Sequence[float]) -> None:
        if len(vector) != self.dimension:
            raise DimensionMismatch(self.dimension, len(vector))

    def _limit(self, limit: int | None) -> int:
        if limit is None:
            return self.config.default_limit
        if limit <= 0:
            raise InvalidAction(f"limit must be positive, got {limit}")
        return min(limit, self.config.max_limit)

    def _row(
        self,
        record_id: str,
        user_id: str,
        record_type: str,
        status: str | None,
        data: Mapping[str, Any],
        vector: Sequence[float],
    ) -> dict[str, Any]:
        record = self.collection.model(
            id=record_id,
            vector=list(vector),
            user_id=user_id,
            record_type=record_type,
            status=status,
            data=json.dumps(dict(data), ensure_ascii=False),
            timestamp=now_iso(),
        )
        return record.model_dump()

    # ------------------------------------------------------------------
    # Tracked items
    # ------------------------------------------------------------------
    async def create(self, user_id: str, record_type: str, data: Mapping[str, Any]) -> str:
        """Create a new in-progress record and return its id.

        The write is acknowledged before returning, so an immediate search
        sees the new record.
        """
        _require_user(user_id)
        _require_trackable(record_type)
        text = _embedding_text(data)

        table = await self.collection.ensure()
        vector = await self.embedder.embed(text)
        self._check_vector(vector)

        record_id = new_record_id()
        row = self._row(record_id, user_id, record_type, IN_PROGRESS, data, vector)
        await self._run(table.add, [row], what="create", error=StoreWriteFailed)
        logger.info("Created %s %s for user %s", record_type, record_id[:8], user_id)
        return record_id

    async def update(
        self, user_id: str, record_id: str, record_type: str, data: Mapping[str, Any]
    ) -> None:
        """Replace the payload and vector of an existing in-progress record.

        Never creates: an id that does not exist for this user raises
        :class:`RecordNotFound`.
        """
        _require_user(user_id)
        if not record_id:
            raise InvalidAction("itemId is required for update")
        _require_trackable(record_type)
        text = _embedding_text(data)

        table = await self.collection.ensure()
        existing = await self.get(user_id, record_id)
        if existing is None or existing.status != IN_PROGRESS:
            raise RecordNotFound(record_id, user_id)

        vector = await self.embedder.embed(text)
        self._check_vector(vector)
        row = self._row(record_id, user_id, record_type, IN_PROGRESS, data, vector)
        batch = pa.Table.from_pylist([row], schema=self.collection.model.to_arrow_schema())

        def replace() -> None:
            (
                table.merge_insert("id")
                .when_matched_update_all()
                .execute(batch)
            )

        await self._run(replace, what="update", error=StoreWriteFailed)
        logger.info("Updated %s %s for user %s", record_type, record_id[:8], user_id)

    async def complete(self, user_id: str, record_id: str) -> bool:
        """Remove an in-progress record. Returns False if it was already gone."""
        _require_user(user_id)
        if not record_id:
            raise InvalidAction("itemId is required for complete")

        table = await self.collection.ensure()
        flt = build_filter(user_id, record_id=record_id, status=IN_PROGRESS)
        count = await self._run(table.count_rows, flt, what="complete")
        if count == 0:
            logger.info("Record %s already complete for user %s", record_id[:8], user_id)
            return False
        await self._run(table.delete, flt, what="complete", error=StoreWriteFailed)
        logger.info("Completed and removed %s for user %s", record_id[:8], user_id)
        return True

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    async def search(
        self,
        user_id: str,
        query: str,
        *,
        record_type: str | None = None,
        in_progress_only: bool = True,
        limit: int | None = None,
    ) -> list[SearchHit]:
        """Similarity search restricted to ``user_id``, best match first."""
        _require_user(user_id)
        if not query or not query.strip():
            raise InvalidAction("query is required")
        limit = self._limit(limit)

        table = await self.collection.ensure()
        vector = await self.embedder.embed(query)
        self._check_vector(vector)
        flt = build_filter(
            user_id,
            record_types=[record_type] if record_type else None,
            status=IN_PROGRESS if in_progress_only else None,
        )

        def run_search() -> list[dict[str, Any]]:
            return (
                table.search(vector)
                .distance_type(self.config.distance_metric)
                .where(flt, prefilter=True)
                .select(PAYLOAD_COLUMNS)
                .limit(limit)
                .to_list()
            )

        rows = await self._run(run_search, what="search")
        hits = [
            SearchHit(
                id=row["id"],
                payload=StoredRecord.from_row(row).payload(),
                score=1.0 - float(row.get("_distance", 1.0)),
            )
            for row in rows
        ]
        hits.sort(key=lambda hit: hit.score, reverse=True)
        return hits

    async def list_by_filter(
        self,
        user_id: str,
        *,
        record_types: Iterable[str] | None = None,
        status: str | None = None,
        limit: int = SCAN_LIMIT,
    ) -> list[StoredRecord]:
        """Metadata-only scan: no embedding call, no similarity ordering."""
        _require_user(user_id)
        table = await self.collection.ensure()
        flt = build_filter(user_id, record_types=record_types, status=status)

        def scan() -> list[dict[str, Any]]:
            return table.search().where(flt).select(PAYLOAD_COLUMNS).limit(limit).to_list()

        rows = await self._run(scan, what="list")
        return [StoredRecord.from_row(row) for row in rows]

    async def get(self, user_id: str, record_id: str) -> StoredRecord | None:
        _require_user(user_id)
        table = await self.collection.ensure()
        flt = build_filter(user_id, record_id=record_id)

        def fetch() -> list[dict[str, Any]]:
            return table.search().where(flt).select(PAYLOAD_COLUMNS).limit(1).to_list()

        rows = await self._run(fetch, what="get")
        return StoredRecord.from_row(rows[0]) if rows else None

    # ------------------------------------------------------------------
    # Bulk
    # ------------------------------------------------------------------
    async def append_many(self, user_id: str, pending: Sequence[PendingRecord]) -> int:
        """Write a batch of append-only records in one call; returns rows written."""
        _require_user(user_id)
        if not pending:
            return 0
        for item in pending:
            if item.record_type not in RECORD_TYPES:
                raise InvalidAction(f"Invalid record type '{item.record_type}'")
            self._check_vector(item.vector)

        table = await self.collection.ensure()
        rows = [
            self._row(new_record_id(), user_id, item.record_type, None, item.data, item.vector)
            for item in pending
        ]
        await self._run(table.add, rows, what="bulk append", error=StoreWriteFailed)
        return len(rows)

    async def delete_all(self, user_id: str) -> int:
        """Remove every record owned by ``user_id`` (account reset)."""
        _require_user(user_id)
        table = await self.collection.ensure()
        flt = build_filter(user_id)
        count = await self._run(table.count_rows, flt, what="delete all")
        if count:
            await self._run(table.delete, flt, what="delete all", error=StoreWriteFailed)
        logger.info("Deleted %d records for user %s", count, user_id)
        return count

    async def count_by_type(self, user_id: str | None = None) -> dict[str, int]:
        """Record counts per type, for one user or the whole table."""
        table = await self.collection.ensure()
        if user_id is not None:
            _require_user(user_id)
            flt: str | None = build_filter(user_id)
        else:
            flt = None

        def count() -> list[dict[str, Any]]:
            total = table.count_rows(flt) if flt else table.count_rows()
            if total == 0:
                return []
            query = table.search()
            if flt:
                query = query.where(flt)
            return query.select(["record_type"]).limit(total).to_list()

        rows = await self._run(count, what="count")
        return dict(Counter(row["record_type"] for row in rows))

    async def total_rows(self) -> int:
        table = await self.collection.ensure()
        return await self._run(table.count_rows, what="count")
