"""Batch upload of a user's profile and conversation data.

Each non-empty section becomes one or more short descriptive texts; every text
is embedded and the whole batch is written with a single append. If any
embedding fails the batch is aborted and nothing is written.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from config import Config
from errors import EmbeddingUnavailable, InvalidAction
from memory_store import Embedder, MemoryStore
from models import PendingRecord
from utils import truncate

logger = logging.getLogger(__name__)


# =============================================================================
# Input sections
# =============================================================================


class _Section(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", coerce_numbers_to_str=True)


class Education(_Section):
    institution: str = ""
    degree: str = ""
    period: str = ""
    details: str | None = None


class WorkExperience(_Section):
    company: str = ""
    role: str = ""
    period: str = ""
    details: list[str] = Field(default_factory=list)


class Project(_Section):
    name: str = ""
    description: str = ""
    technologies: list[str] = Field(default_factory=list)


class Leadership(_Section):
    organization: str = ""
    role: str = ""
    period: str = ""
    details: list[str] | None = None


class Profile(_Section):
    education: list[Education] = Field(default_factory=list)
    work_experience: list[WorkExperience] = Field(default_factory=list, alias="workExperience")
    projects: list[Project] = Field(default_factory=list)
    leadership_and_activities: list[Leadership] = Field(
        default_factory=list, alias="leadershipAndActivities"
    )
    skills: list[str] = Field(default_factory=list)


class SpeechPattern(_Section):
    communication_style: str | None = None
    vocabulary_complexity: str | None = None
    sentence_length: str | None = None
    emotional_tone: str | None = None
    technical_depth: str | None = None
    common_phrases: list[str] = Field(default_factory=list)
    preferred_topics: list[str] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return not any(self.model_dump().values())


class Message(_Section):
    role: str | None = None
    content: Any = None
    timestamp: str | None = None


class IngestSections(_Section):
    profile: Profile | None = Field(default=None, alias="profileData")
    speech_pattern: SpeechPattern | None = Field(default=None, alias="speechPattern")
    summary: str | None = None
    key_insights: list[str] | None = Field(default=None, alias="keyInsights")
    extracted_skills: list[str] = Field(default_factory=list, alias="extractedSkills")
    raw_messages: list[Message] = Field(default_factory=list, alias="rawMessages")

    @classmethod
    def parse(cls, sections: Mapping[str, Any] | None) -> IngestSections:
        try:
            return cls.model_validate(dict(sections or {}))
        except ValidationError as e:
            raise InvalidAction(f"Malformed ingestion sections: {e}") from e


@dataclass(frozen=True)
class IngestResult:
    vectors_created: int
    sections_found: int

    @property
    def empty(self) -> bool:
        """True when there was nothing to ingest (as opposed to a failed write)."""
        return self.sections_found == 0

    def to_payload(self) -> dict[str, Any]:
        return {"vectorsCreated": self.vectors_created, "empty": self.empty}


# =============================================================================
# Text synthesis
# =============================================================================


def speech_pattern_text(sp: SpeechPattern) -> str:
    return "\n".join(
        [
            f"Communication Style: {sp.communication_style}",
            f"Vocabulary Complexity: {sp.vocabulary_complexity}",
            f"Sentence Length: {sp.sentence_length}",
            f"Emotional Tone: {sp.emotional_tone}",
            f"Technical Depth: {sp.technical_depth}",
            f"Common Phrases: {', '.join(sp.common_phrases)}",
            f"Preferred Topics: {', '.join(sp.preferred_topics)}",
        ]
    )


def education_text(edu: Education) -> str:
    text = f"Education: {edu.institution}, {edu.degree}, {edu.period}"
    return f"{text}, {edu.details}" if edu.details else text


def work_text(work: WorkExperience) -> str:
    return f"Work Experience: {work.company}, {work.role}, {work.period}. {'. '.join(work.details)}"


def project_text(project: Project) -> str:
    return (
        f"Project: {project.name}. {project.description}. "
        f"Technologies: {', '.join(project.technologies)}"
    )


def leadership_text(lead: Leadership) -> str:
    text = f"Leadership: {lead.organization}, {lead.role}, {lead.period}"
    return f"{text}. {'. '.join(lead.details)}" if lead.details else text


@dataclass(frozen=True)
class _Chunk:
    record_type: str
    text: str
    data: dict[str, Any]


def build_chunks(sections: IngestSections, min_message_chars: int) -> tuple[list[_Chunk], int]:
    """Turn sections into embeddable chunks; also returns the non-empty section count."""
    chunks: list[_Chunk] = []
    found = 0

    sp = sections.speech_pattern
    if sp is not None and not sp.is_empty():
        found += 1
        chunks.append(_Chunk("speech_pattern", speech_pattern_text(sp), sp.model_dump()))

    profile = sections.profile
    if profile is not None:
        for entries, record_type, render in (
            (profile.education, "education", education_text),
            (profile.work_experience, "work_experience", work_text),
            (profile.projects, "project", project_text),
            (profile.leadership_and_activities, "leadership", leadership_text),
        ):
            if entries:
                found += 1
            for entry in entries:
                chunks.append(
                    _Chunk(record_type, render(entry), entry.model_dump(exclude_none=True))
                )
        if profile.skills:
            found += 1
            chunks.append(
                _Chunk("skills", f"Skills: {', '.join(profile.skills)}", {"skills": profile.skills})
            )

    if sections.extracted_skills:
        found += 1
        skills = sections.extracted_skills
        chunks.append(
            _Chunk(
                "extracted_skills",
                f"Extracted Skills from Chat: {', '.join(skills)}",
                {"skills": skills},
            )
        )

    if sections.summary and sections.summary.strip():
        found += 1
        data: dict[str, Any] = {"summary": sections.summary}
        if sections.key_insights:
            data["keyInsights"] = sections.key_insights
        chunks.append(_Chunk("conversation_summary", sections.summary, data))

    if sections.raw_messages:
        found += 1
        # Only substantive messages; "ok" and "thanks" are noise
        for message in sections.raw_messages:
            if message.role != "user" or not isinstance(message.content, str):
                continue
            if len(message.content) <= min_message_chars:
                continue
            chunks.append(
                _Chunk(
                    "user_message",
                    message.content,
                    {"content": message.content, "timestamp": message.timestamp},
                )
            )

    return chunks, found


# =============================================================================
# Pipeline
# =============================================================================


class IngestionPipeline:
    def __init__(self, store: MemoryStore, embedder: Embedder, config: Config) -> None:
        self.store = store
        self.embedder = embedder
        self.config = config

    async def ingest(self, user_id: str, sections: Mapping[str, Any] | None) -> IngestResult:
        if not user_id or not user_id.strip():
            raise InvalidAction("userId is required")
        parsed = IngestSections.parse(sections)
        chunks, found = build_chunks(parsed, self.config.min_message_chars)
        if not chunks:
            logger.info("Nothing to ingest for user %s (%d sections)", user_id, found)
            return IngestResult(vectors_created=0, sections_found=found)

        semaphore = asyncio.Semaphore(self.config.embed_concurrency)

        async def embed(chunk: _Chunk) -> PendingRecord:
            async with semaphore:
                vector = await self.embedder.embed(
                    truncate(chunk.text, self.config.max_embed_chars)
                )
            return PendingRecord(record_type=chunk.record_type, vector=vector, data=chunk.data)

        try:
            pending = await asyncio.gather(*(embed(chunk) for chunk in chunks))
        except EmbeddingUnavailable:
            logger.error(
                "Aborting ingestion for user %s: embedding failed, 0 of %d written",
                user_id,
                len(chunks),
            )
            raise

        written = await self.store.append_many(user_id, pending)
        logger.info("Ingested %d vectors for user %s", written, user_id)
        return IngestResult(vectors_created=written, sections_found=found)
