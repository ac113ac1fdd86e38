"""
Tests for task records, text chunking and relevant-section lookup.
"""

import asyncio
from datetime import datetime, timedelta

import pytest

from studyhub import task_records
from studyhub.db_models import DBFile, DBFileEmbedding
from studyhub.exceptions import NotFoundError, TaskStateError
from studyhub.file_embeddings import chunk_text, find_relevant_sections

from conftest import OTHER_USER_ID, USER_ID


# =============================================================================
# Task State Machine
# =============================================================================

class TestTaskRecords:

    def test_lifecycle(self, db_session):
        task, created = task_records.start_task(db_session, "file_embeddings", "file-1", USER_ID)
        assert created is True
        assert task.status == "pending"

        task_records.mark_running(db_session, task)
        assert task.started_at is not None
        task_records.mark_succeeded(db_session, task, {"count": 3})
        assert task.status == "succeeded"
        assert task_records.task_to_dict(task)["result"] == {"count": 3}

    def test_start_coalesces_active_task(self, db_session):
        first, _ = task_records.start_task(db_session, "file_embeddings", "file-1", USER_ID)
        task_records.mark_running(db_session, first)

        again, created = task_records.start_task(db_session, "file_embeddings", "file-1", USER_ID)
        assert created is False
        assert again.id == first.id

        other, created = task_records.start_task(db_session, "file_embeddings", "file-2", USER_ID)
        assert created is True
        assert other.id != first.id

    def test_finished_task_does_not_block(self, db_session):
        first, _ = task_records.start_task(db_session, "file_embeddings", "file-1", USER_ID)
        task_records.mark_failed(db_session, first, "Dispatch failed: broker down")

        second, created = task_records.start_task(db_session, "file_embeddings", "file-1", USER_ID)
        assert created is True
        assert task_records.latest_task(db_session, "file_embeddings", "file-1").id == second.id

    @pytest.mark.parametrize("steps", [
        ["mark_succeeded"],
        ["mark_running", "mark_running"],
        ["mark_running", "mark_succeeded", "mark_failed"],
    ])
    def test_illegal_transitions(self, db_session, steps):
        task, _ = task_records.start_task(db_session, "file_embeddings", "file-1", USER_ID)
        *allowed, illegal = steps
        for step in allowed:
            if step == "mark_failed":
                task_records.mark_failed(db_session, task, "boom")
            else:
                getattr(task_records, step)(db_session, task)

        with pytest.raises(TaskStateError) as exc_info:
            if illegal == "mark_failed":
                task_records.mark_failed(db_session, task, "boom")
            else:
                getattr(task_records, illegal)(db_session, task)
        assert exc_info.value.status_code == 409

    @pytest.mark.parametrize("running", [True, False])
    def test_stale_task_no_longer_blocks(self, db_session, running):
        first, _ = task_records.start_task(db_session, "file_embeddings", "file-1", USER_ID)
        long_ago = datetime.utcnow() - task_records.STALE_AFTER - timedelta(minutes=1)
        if running:
            task_records.mark_running(db_session, first)
            first.started_at = long_ago
        else:
            first.created_at = long_ago
        db_session.flush()
        assert task_records.is_stale(first)

        second, created = task_records.start_task(db_session, "file_embeddings", "file-1", USER_ID)
        assert created is True
        assert second.id != first.id
        assert first.status == "failed"
        assert "timed out" in first.error

    def test_recent_running_task_is_not_stale(self, db_session):
        task, _ = task_records.start_task(db_session, "file_embeddings", "file-1", USER_ID)
        task_records.mark_running(db_session, task)
        assert not task_records.is_stale(task)

    def test_resume_requires_running(self, db_session):
        task, _ = task_records.start_task(db_session, "file_embeddings", "file-1", USER_ID)
        with pytest.raises(TaskStateError):
            task_records.resume_running(db_session, task)

        task_records.mark_running(db_session, task)
        task.started_at = datetime.utcnow() - timedelta(hours=1)
        task_records.resume_running(db_session, task)
        assert task.status == "running"
        assert not task_records.is_stale(task)

    def test_get_task_is_owner_scoped(self, db_session):
        task, _ = task_records.start_task(db_session, "file_embeddings", "file-1", USER_ID)
        assert task_records.get_task(db_session, task.id, USER_ID).id == task.id
        with pytest.raises(NotFoundError):
            task_records.get_task(db_session, task.id, OTHER_USER_ID)


def test_task_endpoint_rejects_unknown_id(client, auth_headers):
    response = client.get("/tasks/6f1c2a57-0d4e-4b8a-9c3e-2f1a0b9c8d7e", headers=auth_headers)
    assert response.status_code == 404


# =============================================================================
# Chunking
# =============================================================================

class TestChunkText:

    def test_short_text_is_one_chunk(self):
        chunks = chunk_text("One sentence. Another sentence.", chunk_size=500, overlap=50)
        assert len(chunks) == 1
        assert chunks[0]["pageNumber"] == 1
        assert chunks[0]["chunkIndex"] == 0
        assert chunks[0]["totalChunks"] == 1

    def test_pages_are_split_on_markers(self):
        text = "==== Page 1 ====\nCells divide.\n==== Page 2 ====\nPlants photosynthesize."
        chunks = chunk_text(text, chunk_size=500, overlap=50)
        assert [(c["pageNumber"], c["content"]) for c in chunks] == [
            (1, "Cells divide."),
            (2, "Plants photosynthesize."),
        ]
        assert text[chunks[1]["startChar"]:chunks[1]["endChar"]].strip() == "Plants photosynthesize."

    def test_latin_text_cuts_at_sentence_end(self):
        text = " ".join(f"Sentence number {i} is here." for i in range(20))
        chunks = chunk_text(text, chunk_size=120, overlap=20)
        assert len(chunks) > 1
        assert all(c["content"].endswith(".") for c in chunks[:-1])
        assert chunks[0]["endChar"] > chunks[1]["startChar"]

    def test_rtl_text_uses_fixed_windows(self):
        text = "שלום עולם " * 30
        chunks = chunk_text(text, chunk_size=100, overlap=10)
        assert chunks[0]["endChar"] - chunks[0]["startChar"] == 100
        assert chunks[1]["startChar"] == 90

    def test_max_chunks(self):
        chunks = chunk_text("word " * 500, chunk_size=100, overlap=0, max_chunks=3)
        assert len(chunks) == 3
        assert chunks[-1]["totalChunks"] == 3

    def test_overlap_must_be_smaller_than_chunk(self):
        with pytest.raises(ValueError):
            chunk_text("text", chunk_size=100, overlap=100)

    def test_empty_text(self):
        assert chunk_text("   ", chunk_size=100, overlap=10) == []


# =============================================================================
# Relevant Sections
# =============================================================================

def test_find_relevant_sections(db_session, workspace, fake_embeddings):
    file = DBFile(
        workspace_id=workspace["id"], user_id=USER_ID, name="notes.txt", mime_type="text/plain", content="x"
    )
    db_session.add(file)
    db_session.flush()
    for index, content in enumerate(["the calvin cycle fixes carbon", "mitochondria make atp"]):
        db_session.add(DBFileEmbedding(
            file_id=file.id,
            chunk_index=index,
            content=content,
            embedding=fake_embeddings.vector(content),
            chunk_metadata={"pageNumber": index + 1},
        ))
    db_session.commit()

    sections = asyncio.run(find_relevant_sections(db_session, "the calvin cycle fixes carbon", file.id))
    assert sections[0]["content"] == "the calvin cycle fixes carbon"
    assert sections[0]["similarity"] == pytest.approx(1.0)
    assert sections[0]["pageNumber"] == 1
    assert all(s["similarity"] >= 0.65 for s in sections)
