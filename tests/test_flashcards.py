"""
Tests for the flashcards router.
"""

from studyhub.db_models import DBFlashcard


def _create(client, headers, workspace_id, **extra):
    payload = {"workspaceId": workspace_id, "question": "What is ATP?", "answer": "Energy carrier"}
    payload.update(extra)
    return client.post("/flashcards", json=payload, headers=headers)


class TestFlashcards:

    def test_create_defaults(self, client, auth_headers, workspace):
        response = _create(client, auth_headers, workspace["id"], pages=[3, 4], fileName="lecture.txt")
        assert response.status_code == 201
        card = response.json()
        assert card["status"] == "dont_know"
        assert card["pages"] == [3, 4]
        assert card["fileName"] == "lecture.txt"

    def test_list_newest_first(self, client, auth_headers, workspace):
        first = _create(client, auth_headers, workspace["id"]).json()
        second = _create(client, auth_headers, workspace["id"], question="What is NADPH?").json()
        listed = client.get(f"/flashcards?workspaceId={workspace['id']}", headers=auth_headers).json()
        assert {c["id"] for c in listed} == {first["id"], second["id"]}

    def test_update_status(self, client, auth_headers, workspace):
        card = _create(client, auth_headers, workspace["id"]).json()
        response = client.patch(
            f"/flashcards/{card['id']}", json={"status": "know_for_sure"}, headers=auth_headers
        )
        assert response.status_code == 200
        assert response.json()["status"] == "know_for_sure"
        assert response.json()["question"] == "What is ATP?"

    def test_invalid_status(self, client, auth_headers, workspace):
        card = _create(client, auth_headers, workspace["id"]).json()
        response = client.patch(f"/flashcards/{card['id']}", json={"status": "maybe"}, headers=auth_headers)
        assert response.status_code == 400

    def test_invalid_pages(self, client, auth_headers, workspace):
        response = _create(client, auth_headers, workspace["id"], pages=[0])
        assert response.status_code == 400
        assert "positive page numbers" in response.json()["error"]

    def test_empty_question(self, client, auth_headers, workspace):
        response = _create(client, auth_headers, workspace["id"], question="   ")
        assert response.status_code == 400

    def test_delete(self, client, auth_headers, workspace):
        card = _create(client, auth_headers, workspace["id"]).json()
        assert client.delete(f"/flashcards/{card['id']}", headers=auth_headers).status_code == 204
        assert client.get(f"/flashcards?workspaceId={workspace['id']}", headers=auth_headers).json() == []

    def test_other_user_cannot_update(self, client, auth_headers, other_headers, workspace):
        card = _create(client, auth_headers, workspace["id"]).json()
        response = client.patch(f"/flashcards/{card['id']}", json={"answer": "x"}, headers=other_headers)
        assert response.status_code == 404


class TestBatch:

    def test_batch_create(self, client, auth_headers, db_session, workspace):
        cards = [
            {"workspaceId": workspace["id"], "question": f"Question {i}", "answer": f"Answer {i}"}
            for i in range(3)
        ]
        response = client.post("/flashcards/batch", json={"flashcards": cards}, headers=auth_headers)
        assert response.status_code == 201
        assert response.json() == {"count": 3}
        assert db_session.query(DBFlashcard).count() == 3

    def test_missing_workspace_names_index(self, client, auth_headers, db_session, workspace):
        cards = [
            {"workspaceId": workspace["id"], "question": "Q", "answer": "A"},
            {"question": "Q", "answer": "A"},
        ]
        response = client.post("/flashcards/batch", json={"flashcards": cards}, headers=auth_headers)
        assert response.status_code == 400
        assert response.json()["error"] == "Workspace ID is required for flashcard at index 1"
        assert db_session.query(DBFlashcard).count() == 0

    def test_invalid_status_names_index(self, client, auth_headers, workspace):
        cards = [{"workspaceId": workspace["id"], "question": "Q", "answer": "A", "status": "maybe"}]
        response = client.post("/flashcards/batch", json={"flashcards": cards}, headers=auth_headers)
        assert response.status_code == 400
        assert "flashcard at index 0" in response.json()["error"]

    def test_empty_batch(self, client, auth_headers):
        response = client.post("/flashcards/batch", json={"flashcards": []}, headers=auth_headers)
        assert response.status_code == 400
        assert response.json()["error"] == "Flashcards array is empty"

    def test_foreign_workspace(self, client, other_headers, workspace):
        cards = [{"workspaceId": workspace["id"], "question": "Q", "answer": "A"}]
        response = client.post("/flashcards/batch", json={"flashcards": cards}, headers=other_headers)
        assert response.status_code == 404
