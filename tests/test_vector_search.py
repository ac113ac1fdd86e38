"""
Tests for subject/question indexing and the vector search endpoint.
"""

import pytest

from studyhub.db_models import DBQuiz
from studyhub.embedding_service import cosine_similarity, find_similar

from conftest import USER_ID


def _search(client, headers, query, content_type, **extra):
    return client.post("/search/vector", json={"query": query, "contentType": content_type, **extra}, headers=headers)


@pytest.fixture
def indexed_subjects(client, auth_headers, workspace):
    for name in ("Photosynthesis", "Mendelian Genetics Basics"):
        client.post("/subjects", json={"workspaceId": workspace["id"], "name": name}, headers=auth_headers)
    response = client.post("/subjects/embeddings", json={"workspaceId": workspace["id"]}, headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["count"] == 2


# =============================================================================
# Similarity Helpers
# =============================================================================

def test_cosine_similarity():
    assert cosine_similarity([1.0, 0.0], [1.0, 0.0]) == pytest.approx(1.0)
    assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)
    assert cosine_similarity([0.0, 0.0], [1.0, 1.0]) == 0.0


def test_find_similar_orders_and_filters():
    candidates = [("far", [0.0, 1.0]), ("near", [1.0, 0.1]), ("exact", [1.0, 0.0]), ("empty", [])]
    matches = find_similar([1.0, 0.0], candidates, threshold=0.5, top_k=5)
    assert [key for key, _ in matches] == ["exact", "near"]


# =============================================================================
# Search Endpoint
# =============================================================================

class TestVectorSearch:

    def test_subjects(self, client, auth_headers, workspace, indexed_subjects):
        response = _search(
            client, auth_headers, "photosynthesis", "subjects",
            workspaceId=workspace["id"], options={"threshold": 0.9},
        )
        assert response.status_code == 200
        data = response.json()
        assert [r["item"]["name"] for r in data["results"]] == ["Photosynthesis"]
        assert data["results"][0]["similarity"] == pytest.approx(1.0)
        assert data["metadata"] == {
            "query": "photosynthesis",
            "contentType": "subjects",
            "workspaceId": workspace["id"],
            "count": 1,
        }

    def test_limit(self, client, auth_headers, indexed_subjects):
        data = _search(client, auth_headers, "photosynthesis", "subjects", options={"limit": 1, "threshold": 0}).json()
        assert data["metadata"]["count"] == 1

    def test_other_users_content_is_not_searched(self, client, other_headers, indexed_subjects):
        data = _search(client, other_headers, "photosynthesis", "subjects", options={"threshold": 0}).json()
        assert data["results"] == []

    def test_quiz_questions(self, client, auth_headers, db_session, workspace):
        quiz = DBQuiz(
            title="Cells",
            questions=[
                {"id": "q1", "question": "What is a cell?", "options": [{"id": "a", "text": "Unit"}],
                 "correctAnswer": "a"},
                {"id": "q2", "question": "Do plants have walls?", "options": [{"id": "a", "text": "Yes"}],
                 "correctAnswer": "a"},
            ],
            workspace_id=workspace["id"],
            user_id=USER_ID,
        )
        db_session.add(quiz)
        db_session.commit()
        quiz_id = quiz.id

        indexed = client.post(f"/quizzes/{quiz_id}/embeddings", headers=auth_headers).json()
        assert indexed == {"quizId": quiz_id, "count": 2}

        data = _search(client, auth_headers, "cell", "quiz_questions", options={"threshold": 0}).json()
        assert {r["item"]["questionId"] for r in data["results"]} == {"q1", "q2"}
        assert all(r["item"]["quizId"] == quiz_id for r in data["results"])

    def test_deleted_subject_leaves_the_index(self, client, auth_headers, workspace, indexed_subjects):
        subjects = client.get(f"/subjects?workspaceId={workspace['id']}", headers=auth_headers).json()
        photosynthesis = next(s for s in subjects if s["name"] == "Photosynthesis")

        assert client.delete(f"/subjects/{photosynthesis['id']}", headers=auth_headers).status_code == 204

        data = _search(client, auth_headers, "photosynthesis", "subjects", options={"threshold": 0}).json()
        assert [r["item"]["name"] for r in data["results"]] == ["Mendelian Genetics Basics"]

    def test_renamed_subject_is_dropped_until_reindexed(self, client, auth_headers, workspace, indexed_subjects):
        subjects = client.get(f"/subjects?workspaceId={workspace['id']}", headers=auth_headers).json()
        photosynthesis = next(s for s in subjects if s["name"] == "Photosynthesis")
        client.patch(f"/subjects/{photosynthesis['id']}", json={"name": "Light Reactions"}, headers=auth_headers)

        data = _search(client, auth_headers, "photosynthesis", "subjects", options={"threshold": 0}).json()
        assert "Photosynthesis" not in [r["item"]["name"] for r in data["results"]]

        client.post("/subjects/embeddings", json={"workspaceId": workspace["id"]}, headers=auth_headers)
        data = _search(client, auth_headers, "light reactions", "subjects", options={"threshold": 0.9}).json()
        assert [r["item"]["name"] for r in data["results"]] == ["Light Reactions"]

    def test_deleted_quiz_leaves_the_index(self, client, auth_headers, db_session, workspace):
        quiz = DBQuiz(
            title="Cells",
            questions=[{"id": "q1", "question": "What is a cell?", "options": [], "correctAnswer": "a"}],
            workspace_id=workspace["id"],
            user_id=USER_ID,
        )
        db_session.add(quiz)
        db_session.commit()
        quiz_id = quiz.id
        client.post(f"/quizzes/{quiz_id}/embeddings", headers=auth_headers)

        assert client.delete(f"/quizzes/{quiz_id}", headers=auth_headers).status_code == 204

        data = _search(client, auth_headers, "cell", "quiz_questions", options={"threshold": 0}).json()
        assert data["results"] == []

    def test_file_chunks(self, client, auth_headers, uploaded_file, dispatched, run_worker):
        task_id = client.post(f"/files/{uploaded_file['id']}/embeddings", headers=auth_headers).json()["taskId"]
        run_worker(task_id)

        data = _search(client, auth_headers, "Calvin cycle carbon dioxide", "files", options={"threshold": 0}).json()
        assert data["results"]
        assert data["results"][0]["item"]["fileId"] == uploaded_file["id"]
        assert data["results"][0]["item"]["fileName"] == "lecture.txt"

    def test_no_candidates(self, client, auth_headers, workspace):
        data = _search(client, auth_headers, "anything", "files", workspaceId=workspace["id"]).json()
        assert data["results"] == []
        assert data["metadata"]["count"] == 0

    @pytest.mark.parametrize("payload,message", [
        ({"contentType": "subjects"}, "Search query is required"),
        ({"query": "  ", "contentType": "subjects"}, "Search query is required"),
        ({"query": "cells"}, "Content type is required"),
        ({"query": "cells", "contentType": "videos"}, "Invalid content type"),
        ({"query": "cells", "contentType": "subjects", "workspaceId": "nope"}, "Invalid UUID format"),
    ])
    def test_invalid_requests(self, client, auth_headers, payload, message):
        response = client.post("/search/vector", json=payload, headers=auth_headers)
        assert response.status_code == 400
        assert message in response.json()["error"]
