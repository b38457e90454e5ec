"""Shared data models for career-memory."""

import json
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Literal

from lancedb.pydantic import LanceModel, Vector
from pydantic import BaseModel, ConfigDict, Field

IN_PROGRESS = "in-progress"

TRACKABLE_TYPES = frozenset({"skill", "project", "work_experience", "education", "leadership"})
RECORD_TYPES = TRACKABLE_TYPES | frozenset(
    {"speech_pattern", "conversation_summary", "user_message", "extracted_skills", "skills"}
)
TrackableType = Literal["skill", "project", "work_experience", "education", "leadership"]


@lru_cache(maxsize=None)
def record_model(dim: int) -> type[LanceModel]:
    """LanceDB schema for one stored point, with vector dimension ``dim``.

    IMPORTANT: Any changes to this schema require migration of existing data.
    """

    class MemoryRecord(LanceModel):
        id: str  # UUID hex
        vector: Vector(dim)  # type: ignore[valid-type]
        user_id: str
        record_type: str
        status: str | None = None
        data: str  # JSON object as string
        timestamp: str

    return MemoryRecord


@dataclass(frozen=True)
class StoredRecord:
    """A row read back from the table, with ``data`` decoded."""

    id: str
    user_id: str
    record_type: str
    status: str | None
    data: dict[str, Any]
    timestamp: str

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "StoredRecord":
        raw = row.get("data") or "{}"
        return cls(
            id=row["id"],
            user_id=row["user_id"],
            record_type=row["record_type"],
            status=row.get("status"),
            data=json.loads(raw),
            timestamp=row.get("timestamp") or "",
        )

    def payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "userId": self.user_id,
            "type": self.record_type,
            "data": self.data,
            "timestamp": self.timestamp,
        }
        if self.status is not None:
            payload["status"] = self.status
        return payload


@dataclass(frozen=True)
class SearchHit:
    id: str
    payload: dict[str, Any]
    score: float

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "payload": self.payload, "score": self.score}


@dataclass(frozen=True)
class PendingRecord:
    """An embedded record waiting to be appended in a batch write."""

    record_type: str
    vector: list[float]
    data: dict[str, Any]


# =============================================================================
# Caller-facing input models
# =============================================================================


class Milestone(BaseModel):
    date: str = Field(description="The date of the milestone in YYYY-MM-DD format.")
    description: str = Field(description="A brief description of the progress made.")
    progress_percentage: float | None = Field(default=None, ge=0, le=100)


class ItemData(BaseModel):
    """Tracked-item payload accepted by create and update."""

    model_config = ConfigDict(populate_by_name=True)

    item: str = Field(min_length=1, description="Name of the skill, project, or experience.")
    type: TrackableType
    embedding_text: str = Field(alias="embeddingText", min_length=1)
    milestones: list[Milestone] = Field(default_factory=list)
    skills_used: list[str] | None = Field(default=None, alias="skillsUsed")

    def to_data(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)
