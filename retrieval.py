"""Named read views composed from metadata scans over the memory store."""

from __future__ import annotations

from typing import Any

from config import Config
from errors import InvalidAction
from memory_store import MemoryStore
from models import StoredRecord
from utils import truncate


VIEW_NAMES = (
    "speech_pattern",
    "skills",
    "projects",
    "work_experience",
    "insights",
    "recent_messages",
)
RECENT_MESSAGES_LIMIT = 10
HISTORY_LIMIT = 10
TRUNCATED_FIELDS = ("description", "embedding_text", "content", "summary")


def _data_list(records: list[StoredRecord]) -> list[dict[str, Any]]:
    return [record.data for record in records if record.data]


def _message_time(record: StoredRecord) -> str:
    return record.data.get("timestamp") or record.timestamp


class RetrievalAggregator:
    """Higher-level read views consumed by resume, post and dashboard flows.

    Views never call the embedding provider; they rely on payload filters
    only. Result order from the table is unspecified, so any ordering a view
    promises is applied here.
    """

    def __init__(self, store: MemoryStore, config: Config) -> None:
        self.store = store
        self.config = config

    async def get_view(self, user_id: str, view_name: str, limit: int | None = None) -> Any:
        if view_name not in VIEW_NAMES:
            raise InvalidAction(f"Invalid view '{view_name}'. Valid: {list(VIEW_NAMES)}")
        if view_name == "recent_messages":
            limit = limit if limit is not None else RECENT_MESSAGES_LIMIT
            return await self.recent_messages(user_id, limit)
        view = getattr(self, view_name)
        return await view(user_id)

    async def speech_pattern(self, user_id: str) -> dict[str, Any] | None:
        """Most recently written speech pattern, or None."""
        records = await self.store.list_by_filter(user_id, record_types=["speech_pattern"])
        if not records:
            return None
        latest = max(records, key=lambda record: record.timestamp)
        return latest.data

    async def skills(self, user_id: str) -> list[str]:
        """De-duplicated union of profile skills and skills extracted from chat."""
        records = await self.store.list_by_filter(
            user_id, record_types=["skills", "extracted_skills"]
        )
        seen: dict[str, None] = {}
        for record in records:
            skills = record.data.get("skills")
            if not isinstance(skills, list):
                continue
            for skill in skills:
                if isinstance(skill, str) and skill:
                    seen.setdefault(skill, None)
        return list(seen)

    async def projects(self, user_id: str) -> list[dict[str, Any]]:
        return _data_list(await self.store.list_by_filter(user_id, record_types=["project"]))

    async def work_experience(self, user_id: str) -> list[dict[str, Any]]:
        return _data_list(
            await self.store.list_by_filter(user_id, record_types=["work_experience"])
        )

    async def insights(self, user_id: str) -> list[dict[str, Any]]:
        return _data_list(
            await self.store.list_by_filter(user_id, record_types=["conversation_summary"])
        )

    async def recent_messages(
        self, user_id: str, limit: int = RECENT_MESSAGES_LIMIT
    ) -> list[dict[str, Any]]:
        """User messages, newest first by message time (write time as fallback)."""
        if limit <= 0:
            raise InvalidAction(f"limit must be positive, got {limit}")
        records = await self.store.list_by_filter(user_id, record_types=["user_message"])
        records.sort(key=_message_time, reverse=True)
        return _data_list(records[:limit])

    async def search_history(
        self,
        user_id: str,
        query: str,
        *,
        limit: int = HISTORY_LIMIT,
        record_type: str | None = None,
    ) -> list[dict[str, Any]]:
        """Semantic search over everything a user has stored, any status.

        Long text fields are cut to ``max_result_text`` characters so results
        stay prompt-sized.
        """
        hits = await self.store.search(
            user_id, query, record_type=record_type, in_progress_only=False, limit=limit
        )
        results = []
        for hit in hits:
            payload = dict(hit.payload)
            data = dict(payload.get("data") or {})
            for key in TRUNCATED_FIELDS:
                if isinstance(data.get(key), str):
                    data[key] = truncate(data[key], self.config.max_result_text)
            payload["data"] = data
            results.append({"id": hit.id, "score": hit.score, "payload": payload})
        return results
