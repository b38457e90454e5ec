"""Tests for bulk ingestion of profile and conversation data."""

import pytest

from errors import EmbeddingUnavailable, InvalidAction
from ingestion import IngestionPipeline, IngestSections, build_chunks

LONG_MESSAGE = "Today I finished wiring the retrieval layer into the chatbot and it works end to end."

PROFILE = {
    "education": [
        {"institution": "State University", "degree": "BSc Computer Science", "period": "2016-2020"}
    ],
    "work_experience": [
        {
            "company": "Acme",
            "role": "Backend Engineer",
            "period": "2020-2023",
            "details": ["Built billing APIs", "Led migration to Postgres"],
        }
    ],
    "projects": [
        {"name": "Chatbot", "description": "Retrieval chatbot", "technologies": ["Python", "LanceDB"]}
    ],
    "skills": ["Python", "Go"],
}


@pytest.fixture
def pipeline(store, embedder, config):
    return IngestionPipeline(store, embedder, config)


async def test_empty_batch_writes_nothing(pipeline, store, embedder):
    result = await pipeline.ingest("u1", {})
    assert result.vectors_created == 0
    assert result.empty
    assert result.to_payload() == {"vectorsCreated": 0, "empty": True}
    assert embedder.calls == []
    assert await store.total_rows() == 0


async def test_none_sections_is_empty(pipeline):
    result = await pipeline.ingest("u1", None)
    assert result.empty


async def test_only_short_messages_is_not_empty_but_writes_nothing(pipeline, store):
    result = await pipeline.ingest("u1", {"rawMessages": [{"role": "user", "content": "ok"}]})
    assert result.vectors_created == 0
    assert not result.empty
    assert await store.total_rows() == 0


async def test_full_batch(pipeline, store):
    sections = {
        "profile": PROFILE,
        "speechPattern": {
            "communication_style": "technical",
            "common_phrases": ["ship it"],
            "preferred_topics": ["databases"],
        },
        "summary": "User is building a retrieval chatbot.",
        "keyInsights": ["Enjoys backend work"],
        "extractedSkills": ["Go", "Rust"],
        "rawMessages": [
            {"role": "user", "content": LONG_MESSAGE, "timestamp": "2024-05-01T10:00:00"},
            {"role": "assistant", "content": LONG_MESSAGE},
            {"role": "user", "content": "thanks"},
        ],
    }
    result = await pipeline.ingest("u1", sections)
    assert result.vectors_created == 8
    assert await store.count_by_type("u1") == {
        "speech_pattern": 1,
        "education": 1,
        "work_experience": 1,
        "project": 1,
        "skills": 1,
        "extracted_skills": 1,
        "conversation_summary": 1,
        "user_message": 1,
    }
    [summary] = await store.list_by_filter("u1", record_types=["conversation_summary"])
    assert summary.data == {
        "summary": "User is building a retrieval chatbot.",
        "keyInsights": ["Enjoys backend work"],
    }
    assert all(r.status is None for r in await store.list_by_filter("u1"))


async def test_message_without_role_is_not_embedded(pipeline, store, embedder):
    result = await pipeline.ingest("u1", {"rawMessages": [{"content": "x" * 80}]})
    assert result.vectors_created == 0
    assert embedder.calls == []
    assert await store.total_rows() == 0


async def test_numeric_fields_are_accepted_as_text(pipeline, store):
    profile = {
        "education": [{"institution": "State University", "degree": "BSc", "period": 2020}],
        "leadershipAndActivities": [{"organization": "Chess Club", "role": "President", "period": 2019}],
    }
    result = await pipeline.ingest("u1", {"profile": profile})
    assert result.vectors_created == 2
    [education] = await store.list_by_filter("u1", record_types=["education"])
    assert education.data["period"] == "2020"


async def test_embedding_failure_aborts_whole_batch(pipeline, store, embedder):
    embedder.fail_on = "Work Experience"
    with pytest.raises(EmbeddingUnavailable):
        await pipeline.ingest("u1", {"profile": PROFILE})
    assert await store.total_rows() == 0


async def test_long_text_is_truncated_before_embedding(pipeline, embedder, config):
    message = "word " * (config.max_embed_chars // 2)
    await pipeline.ingest("u1", {"rawMessages": [{"role": "user", "content": message}]})
    assert len(embedder.calls[0]) == config.max_embed_chars


async def test_requires_user(pipeline):
    with pytest.raises(InvalidAction):
        await pipeline.ingest("", {"summary": "x"})


async def test_malformed_sections(pipeline, embedder):
    with pytest.raises(InvalidAction):
        await pipeline.ingest("u1", {"extractedSkills": "Python"})
    assert embedder.calls == []


def test_chunk_texts_follow_profile_formats():
    sections = IngestSections.parse({"profileData": PROFILE})
    chunks, found = build_chunks(sections, min_message_chars=50)
    texts = {chunk.record_type: chunk.text for chunk in chunks}
    assert found == 4
    assert texts["education"] == "Education: State University, BSc Computer Science, 2016-2020"
    assert texts["work_experience"] == (
        "Work Experience: Acme, Backend Engineer, 2020-2023. "
        "Built billing APIs. Led migration to Postgres"
    )
    assert texts["project"] == "Project: Chatbot. Retrieval chatbot. Technologies: Python, LanceDB"
    assert texts["skills"] == "Skills: Python, Go"


def test_empty_speech_pattern_is_skipped():
    sections = IngestSections.parse({"speechPattern": {"common_phrases": []}})
    chunks, found = build_chunks(sections, min_message_chars=50)
    assert chunks == []
    assert found == 0
