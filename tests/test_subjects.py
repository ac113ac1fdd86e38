"""
Tests for subject CRUD and AI subject extraction.
"""

import json

import pytest

from studyhub import llm_providers
from studyhub.llm_providers import LLMResponse
from studyhub.subject_service import are_too_similar


class StubProvider:
    """Provider returning a fixed response and recording prompts."""

    def __init__(self, content: str):
        self.content = content
        self.prompts = []

    async def chat_completion(self, messages, model, temperature=0.7, max_tokens=2000, system=None):
        self.prompts.append(messages[0]["content"])
        return LLMResponse(content=self.content, model=model, provider="mock")


@pytest.fixture
def stub_provider(monkeypatch):
    def install(content):
        stub = StubProvider(content)
        monkeypatch.setattr(llm_providers, "get_provider", lambda name: stub)
        return stub
    return install


def _create(client, headers, workspace_id, name, **extra):
    return client.post("/subjects", json={"workspaceId": workspace_id, "name": name, **extra}, headers=headers)


# =============================================================================
# CRUD
# =============================================================================

class TestSubjectCrud:

    def test_create_assigns_increasing_order(self, client, auth_headers, workspace):
        first = _create(client, auth_headers, workspace["id"], "Genetics")
        second = _create(client, auth_headers, workspace["id"], "Ecology")
        assert first.status_code == 201
        assert (first.json()["order"], second.json()["order"]) == (0, 1)
        assert first.json()["source"] == "manual"

    def test_duplicate_name_returns_existing(self, client, auth_headers, workspace):
        created = _create(client, auth_headers, workspace["id"], "Genetics").json()
        again = _create(client, auth_headers, workspace["id"], "  GENETICS ")
        assert again.status_code == 200
        assert again.json()["id"] == created["id"]

    def test_list_is_ordered(self, client, auth_headers, workspace):
        _create(client, auth_headers, workspace["id"], "Last", order=5)
        _create(client, auth_headers, workspace["id"], "First", order=1)
        names = [s["name"] for s in client.get(f"/subjects?workspaceId={workspace['id']}", headers=auth_headers).json()]
        assert names == ["First", "Last"]

    def test_rename_to_existing_name_rejected(self, client, auth_headers, workspace):
        _create(client, auth_headers, workspace["id"], "Genetics")
        ecology = _create(client, auth_headers, workspace["id"], "Ecology").json()

        response = client.patch(f"/subjects/{ecology['id']}", json={"name": "genetics"}, headers=auth_headers)
        assert response.status_code == 400
        assert "already exists" in response.json()["error"]

    def test_delete(self, client, auth_headers, workspace):
        subject = _create(client, auth_headers, workspace["id"], "Genetics").json()
        assert client.delete(f"/subjects/{subject['id']}", headers=auth_headers).status_code == 204
        assert client.get(f"/subjects?workspaceId={workspace['id']}", headers=auth_headers).json() == []

    def test_other_user_cannot_edit(self, client, auth_headers, other_headers, workspace):
        subject = _create(client, auth_headers, workspace["id"], "Genetics").json()
        response = client.patch(f"/subjects/{subject['id']}", json={"name": "Mine"}, headers=other_headers)
        assert response.status_code == 404


# =============================================================================
# AI Extraction
# =============================================================================

@pytest.mark.parametrize("a,b,expected", [
    ("Cell Biology", "cell biology", True),
    ("Biology", "Cell Biology", True),
    ("Genetics", "Ecology", False),
    ("", "Ecology", False),
])
def test_are_too_similar(a, b, expected):
    assert are_too_similar(a, b) is expected


class TestGenerateSubjects:

    def _generate(self, client, headers, workspace, uploaded_file, **extra):
        return client.post(
            "/subjects/generate",
            json={"workspaceId": workspace["id"], "fileId": uploaded_file["id"], **extra},
            headers=headers,
        )

    def test_generates_new_subjects(self, client, auth_headers, workspace, uploaded_file):
        response = self._generate(client, auth_headers, workspace, uploaded_file)
        assert response.status_code == 200
        data = response.json()
        assert data["unrelatedContent"] is False
        assert data["existingSubjects"] == []
        assert [s["name"] for s in data["newSubjects"]] == ["Mock Subject A", "Mock Subject B"]
        assert all(s["source"] == "auto" for s in data["newSubjects"])
        assert [s["order"] for s in data["newSubjects"]] == [0, 1]

    def test_similar_names_are_filtered(self, client, auth_headers, workspace, uploaded_file):
        _create(client, auth_headers, workspace["id"], "mock subject a")

        data = self._generate(client, auth_headers, workspace, uploaded_file).json()
        assert [s["name"] for s in data["existingSubjects"]] == ["mock subject a"]
        assert [s["name"] for s in data["newSubjects"]] == ["Mock Subject B"]
        assert data["newSubjects"][0]["order"] == 1

    def test_existing_names_reach_the_prompt(self, client, auth_headers, workspace, uploaded_file, stub_provider):
        _create(client, auth_headers, workspace["id"], "Plant Anatomy")
        stub = stub_provider(json.dumps([{"name": "Calvin Cycle"}]))

        self._generate(client, auth_headers, workspace, uploaded_file, countRange="small")
        assert "- Plant Anatomy" in stub.prompts[0]

    def test_unrelated_content(self, client, auth_headers, workspace, uploaded_file, stub_provider):
        stub_provider('[{"status": "unrelated_content", "message": "This is a shopping list."}]')

        data = self._generate(client, auth_headers, workspace, uploaded_file).json()
        assert data["unrelatedContent"] is True
        assert data["unrelatedMessage"] == "This is a shopping list."
        assert data["newSubjects"] == []

    def test_non_array_response_is_parse_error(self, client, auth_headers, workspace, uploaded_file, stub_provider):
        stub_provider('{"subjects": ["Calvin Cycle"]}')

        response = self._generate(client, auth_headers, workspace, uploaded_file)
        assert response.status_code == 500
        assert "not a valid array" in response.json()["error"]

    def test_too_little_text(self, client, auth_headers, workspace):
        tiny = client.post(
            "/files",
            data={"workspaceId": workspace["id"]},
            files={"file": ("tiny.txt", b"hello", "text/plain")},
            headers=auth_headers,
        ).json()

        response = client.post(
            "/subjects/generate",
            json={"workspaceId": workspace["id"], "fileId": tiny["id"]},
            headers=auth_headers,
        )
        assert response.status_code == 400
        assert "Not enough text" in response.json()["error"]

    def test_invalid_count_range(self, client, auth_headers, workspace, uploaded_file):
        response = self._generate(client, auth_headers, workspace, uploaded_file, countRange="huge")
        assert response.status_code == 400

    def test_file_from_another_workspace_is_not_found(self, client, auth_headers, uploaded_file):
        other = client.post("/workspaces", json={"name": "Chemistry"}, headers=auth_headers).json()

        response = client.post(
            "/subjects/generate",
            json={"workspaceId": other["id"], "fileId": uploaded_file["id"]},
            headers=auth_headers,
        )
        assert response.status_code == 404
        assert client.get(f"/subjects?workspaceId={other['id']}", headers=auth_headers).json() == []
