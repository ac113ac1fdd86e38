"""
Tests for the workspaces router and workspace deletion cascade.
"""

from pathlib import Path

from studyhub.config import settings
from studyhub.db_models import (
    DBFile,
    DBFileEmbedding,
    DBFlashcard,
    DBQuiz,
    DBQuizSubmission,
    DBSubject,
    DBWorkspace,
)


# =============================================================================
# CRUD
# =============================================================================

def test_create_and_list(client, auth_headers):
    response = client.post(
        "/workspaces", json={"name": "  Physics  ", "description": "Mechanics"}, headers=auth_headers
    )
    assert response.status_code == 201
    created = response.json()
    assert created["name"] == "Physics"
    assert set(created) >= {"id", "userId", "createdAt", "updatedAt"}

    listed = client.get("/workspaces", headers=auth_headers).json()
    assert [w["id"] for w in listed] == [created["id"]]


def test_empty_name_rejected(client, auth_headers):
    response = client.post("/workspaces", json={"name": "   "}, headers=auth_headers)
    assert response.status_code == 400
    assert response.json()["error"] == "Workspace name cannot be empty"


def test_update(client, auth_headers, workspace):
    response = client.patch(
        f"/workspaces/{workspace['id']}", json={"description": "Intro course"}, headers=auth_headers
    )
    assert response.status_code == 200
    assert response.json()["description"] == "Intro course"
    assert response.json()["name"] == "Biology 101"


def test_other_users_workspace_is_invisible(client, other_headers, workspace):
    response = client.get(f"/workspaces/{workspace['id']}", headers=other_headers)
    assert response.status_code == 404
    assert client.get("/workspaces", headers=other_headers).json() == []


def test_invalid_workspace_id(client, auth_headers):
    response = client.get("/workspaces/not-a-uuid", headers=auth_headers)
    assert response.status_code == 400


# =============================================================================
# Cascade
# =============================================================================

def test_delete_removes_everything(client, auth_headers, db_session, workspace, uploaded_file):
    workspace_id = workspace["id"]
    client.post("/subjects", json={"workspaceId": workspace_id, "name": "Photosynthesis"}, headers=auth_headers)
    client.post(
        "/flashcards",
        json={"workspaceId": workspace_id, "question": "What is ATP?", "answer": "Energy carrier"},
        headers=auth_headers,
    )
    quiz = DBQuiz(
        title="Quiz",
        questions=[],
        file_id=uploaded_file["id"],
        workspace_id=workspace_id,
        user_id=uploaded_file["userId"],
    )
    db_session.add(quiz)
    db_session.flush()
    db_session.add(DBQuizSubmission(
        quiz_id=quiz.id, user_id=quiz.user_id, workspace_id=workspace_id, answers=[], score=0.0
    ))
    db_session.add(DBFileEmbedding(file_id=uploaded_file["id"], chunk_index=0, content="x", embedding=[1.0]))
    db_session.commit()

    blob_dir = Path(settings.storage_path) / workspace_id
    assert blob_dir.is_dir()

    response = client.delete(f"/workspaces/{workspace_id}", headers=auth_headers)
    assert response.status_code == 204

    db_session.expire_all()
    for model in (DBWorkspace, DBFile, DBFileEmbedding, DBSubject, DBQuiz, DBQuizSubmission, DBFlashcard):
        assert db_session.query(model).count() == 0, model.__name__
    assert not blob_dir.exists()


def test_deleting_file_keeps_its_quizzes(client, auth_headers, db_session, workspace, uploaded_file):
    quiz = DBQuiz(
        title="Kept",
        questions=[],
        file_id=uploaded_file["id"],
        workspace_id=workspace["id"],
        user_id=uploaded_file["userId"],
    )
    db_session.add(quiz)
    db_session.commit()
    quiz_id = quiz.id

    response = client.delete(f"/files/{uploaded_file['id']}", headers=auth_headers)
    assert response.status_code == 204

    db_session.expire_all()
    kept = db_session.query(DBQuiz).filter(DBQuiz.id == quiz_id).one()
    assert kept.file_id is None
