"""
Tests for file upload, text extraction and background embedding generation.
"""

import io

import pytest
from docx import Document

from studyhub.db_models import DBBackgroundTask, DBFileEmbedding

from conftest import LECTURE_TEXT


def _docx_bytes(*paragraphs) -> bytes:
    document = Document()
    for text in paragraphs:
        document.add_paragraph(text)
    buffer = io.BytesIO()
    document.save(buffer)
    return buffer.getvalue()


# =============================================================================
# Upload & Extraction
# =============================================================================

class TestUpload:

    def test_upload_text_file(self, uploaded_file, workspace):
        assert uploaded_file["workspaceId"] == workspace["id"]
        assert uploaded_file["name"] == "lecture.txt"
        assert uploaded_file["mimeType"] == "text/plain"
        assert uploaded_file["sizeBytes"] == len(LECTURE_TEXT.encode())
        assert uploaded_file["metadata"]["detectedLanguage"] == "en"
        assert uploaded_file["metadata"]["embeddingsGenerated"] is False

    def test_upload_docx(self, client, auth_headers, workspace):
        response = client.post(
            "/files",
            data={"workspaceId": workspace["id"]},
            files={"file": ("notes.docx", _docx_bytes("Mitosis has four phases."), "application/octet-stream")},
            headers=auth_headers,
        )
        assert response.status_code == 201
        assert response.json()["mimeType"].endswith("wordprocessingml.document")

    def test_unsupported_type(self, client, auth_headers, workspace):
        response = client.post(
            "/files",
            data={"workspaceId": workspace["id"]},
            files={"file": ("photo.gif", b"GIF89a", "image/gif")},
            headers=auth_headers,
        )
        assert response.status_code == 400
        assert "Unsupported file type" in response.json()["error"]

    def test_upload_to_foreign_workspace(self, client, other_headers, workspace):
        response = client.post(
            "/files",
            data={"workspaceId": workspace["id"]},
            files={"file": ("lecture.txt", LECTURE_TEXT.encode(), "text/plain")},
            headers=other_headers,
        )
        assert response.status_code == 404

    def test_extract_text_stores_nothing(self, client, auth_headers, workspace):
        response = client.post(
            "/files/extract-text",
            files={"file": ("notes.docx", _docx_bytes("שלום עולם, זהו שיעור בביולוגיה"), "application/octet-stream")},
            headers=auth_headers,
        )
        assert response.status_code == 200
        data = response.json()
        assert data["language"] == "he"
        assert data["pageCount"] == 1
        assert data["fileName"] == "notes.docx"
        assert client.get(f"/files?workspaceId={workspace['id']}", headers=auth_headers).json() == []

    def test_download_returns_original_bytes(self, client, auth_headers, uploaded_file):
        response = client.get(f"/files/{uploaded_file['id']}/download", headers=auth_headers)
        assert response.status_code == 200
        assert response.content == LECTURE_TEXT.encode()
        assert "filename*=UTF-8''lecture.txt" in response.headers["content-disposition"]

    def test_rename(self, client, auth_headers, uploaded_file):
        response = client.patch(
            f"/files/{uploaded_file['id']}", json={"name": "week1.txt"}, headers=auth_headers
        )
        assert response.status_code == 200
        assert response.json()["name"] == "week1.txt"

    def test_custom_metadata_is_merged(self, client, auth_headers, uploaded_file):
        response = client.patch(
            f"/files/{uploaded_file['id']}", json={"metadata": {"course": "BIO101"}}, headers=auth_headers
        )
        assert response.status_code == 200
        assert response.json()["metadata"]["course"] == "BIO101"
        assert response.json()["metadata"]["detectedLanguage"] == "en"

    def test_embedding_flags_cannot_be_patched(self, client, auth_headers, uploaded_file):
        response = client.patch(
            f"/files/{uploaded_file['id']}",
            json={"name": "renamed.txt", "metadata": {"embeddingsGenerating": True, "embeddingsGenerated": True}},
            headers=auth_headers,
        )
        assert response.status_code == 400
        assert "embeddingsGenerated, embeddingsGenerating" in response.json()["error"]

        status = client.get(f"/files/{uploaded_file['id']}/embeddings", headers=auth_headers).json()
        assert status["hasEmbeddings"] is False
        assert status["isGenerating"] is False
        assert client.get(f"/files/{uploaded_file['id']}", headers=auth_headers).json()["name"] == "lecture.txt"

    def test_other_user_cannot_read(self, client, other_headers, uploaded_file):
        response = client.get(f"/files/{uploaded_file['id']}", headers=other_headers)
        assert response.status_code == 404


# =============================================================================
# Embedding Dispatch
# =============================================================================

class TestEmbeddingDispatch:

    def test_start_then_coalesce(self, client, auth_headers, uploaded_file, dispatched):
        url = f"/files/{uploaded_file['id']}/embeddings"

        first = client.post(url, headers=auth_headers)
        assert first.status_code == 202
        assert first.json()["status"] == "started"
        task_id = first.json()["taskId"]
        dispatched.delay.assert_called_once_with(task_id)

        second = client.post(url, headers=auth_headers)
        assert second.status_code == 200
        assert second.json() == {"status": "processing", "taskId": task_id, "fileId": uploaded_file["id"]}
        assert dispatched.delay.call_count == 1

        status = client.get(url, headers=auth_headers).json()
        assert status["isGenerating"] is True
        assert status["taskStatus"] == "pending"

    def test_dispatch_failure_marks_task_failed(self, client, auth_headers, db_session, uploaded_file, dispatched):
        dispatched.delay.side_effect = ConnectionError("broker down")

        response = client.post(f"/files/{uploaded_file['id']}/embeddings", headers=auth_headers)
        assert response.status_code == 500
        assert "Background worker unavailable" in response.json()["error"]

        task = db_session.query(DBBackgroundTask).one()
        assert task.status == "failed"
        assert "broker down" in task.error

        status = client.get(f"/files/{uploaded_file['id']}/embeddings", headers=auth_headers).json()
        assert status["isGenerating"] is False
        assert "broker down" in status["error"]

    def test_task_status_is_owner_scoped(self, client, auth_headers, other_headers, uploaded_file, dispatched):
        task_id = client.post(f"/files/{uploaded_file['id']}/embeddings", headers=auth_headers).json()["taskId"]

        assert client.get(f"/tasks/{task_id}", headers=auth_headers).json()["status"] == "pending"
        assert client.get(f"/tasks/{task_id}", headers=other_headers).status_code == 404


# =============================================================================
# Embedding Worker
# =============================================================================

class TestEmbeddingWorker:

    def test_worker_generates_embeddings(self, client, auth_headers, db_session, uploaded_file,
                                         dispatched, run_worker, fake_embeddings):
        task_id = client.post(f"/files/{uploaded_file['id']}/embeddings", headers=auth_headers).json()["taskId"]

        result = run_worker(task_id)
        assert result["fileId"] == uploaded_file["id"]
        assert result["count"] >= 1
        assert db_session.query(DBFileEmbedding).count() == result["count"]

        task = client.get(f"/tasks/{task_id}", headers=auth_headers).json()
        assert task["status"] == "succeeded"
        assert task["result"] == result
        assert task["startedAt"] and task["finishedAt"]

        status = client.get(f"/files/{uploaded_file['id']}/embeddings", headers=auth_headers).json()
        assert status["hasEmbeddings"] is True
        assert status["isGenerating"] is False
        assert status["count"] == result["count"]

        # a finished task no longer blocks a new one
        again = client.post(f"/files/{uploaded_file['id']}/embeddings", headers=auth_headers)
        assert again.status_code == 202
        assert again.json()["taskId"] != task_id

    def test_redelivered_running_task_is_resumed(self, client, auth_headers, db_session, uploaded_file,
                                                 dispatched, run_worker):
        task_id = client.post(f"/files/{uploaded_file['id']}/embeddings", headers=auth_headers).json()["taskId"]
        # the first worker died after picking the task up
        task = db_session.query(DBBackgroundTask).filter(DBBackgroundTask.id == task_id).one()
        task.status = "running"
        db_session.commit()

        result = run_worker(task_id)
        assert result["count"] >= 1
        assert client.get(f"/tasks/{task_id}", headers=auth_headers).json()["status"] == "succeeded"
        status = client.get(f"/files/{uploaded_file['id']}/embeddings", headers=auth_headers).json()
        assert status["hasEmbeddings"] is True
        assert status["isGenerating"] is False

        # a duplicate delivery of a finished task does nothing
        assert run_worker(task_id) == result

    def test_worker_records_failure(self, client, auth_headers, workspace, dispatched, run_worker):
        tiny = client.post(
            "/files",
            data={"workspaceId": workspace["id"]},
            files={"file": ("tiny.txt", b"too short", "text/plain")},
            headers=auth_headers,
        ).json()
        task_id = client.post(f"/files/{tiny['id']}/embeddings", headers=auth_headers).json()["taskId"]

        with pytest.raises(Exception, match="Not enough text"):
            run_worker(task_id)

        task = client.get(f"/tasks/{task_id}", headers=auth_headers).json()
        assert task["status"] == "failed"
        status = client.get(f"/files/{tiny['id']}/embeddings", headers=auth_headers).json()
        assert status["hasEmbeddings"] is False
        assert "Not enough text" in status["error"]
