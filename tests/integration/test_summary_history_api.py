"""Integration tests for summary edits, regeneration and version history."""

import uuid
from collections.abc import Iterator
from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from backend.app.errors import VersionWriteConflictError

pytestmark = pytest.mark.integration


def _history(client: TestClient, document_id: str) -> list[dict]:
    response = client.get(f"/documents/{document_id}/summary-history")
    assert response.status_code == 200
    versions: list[dict] = response.json()["versions"]
    return versions


class TestSummaryEdits:
    def test_edit_creates_active_version(
        self, client: TestClient, processed_document_id: str
    ) -> None:
        response = client.patch(
            f"/documents/{processed_document_id}/summary",
            json={"summary": "  [Agent Notes] Reviewed with client.  "},
        )

        assert response.status_code == 200
        assert response.json()["summary"] == "[Agent Notes] Reviewed with client."
        versions = _history(client, processed_document_id)
        assert [(v["versionNumber"], v["source"], v["isActive"]) for v in versions] == [
            (2, "edit", True),
            (1, "extraction", False),
        ]

    def test_unchanged_edit_adds_no_version(
        self, client: TestClient, processed_document_id: str
    ) -> None:
        summary = client.get(f"/documents/{processed_document_id}").json()["summary"]

        response = client.patch(
            f"/documents/{processed_document_id}/summary", json={"summary": summary}
        )

        assert response.status_code == 200
        assert len(_history(client, processed_document_id)) == 1

    def test_empty_edit_is_rejected(self, client: TestClient, processed_document_id: str) -> None:
        response = client.patch(
            f"/documents/{processed_document_id}/summary", json={"summary": "   "}
        )

        assert response.status_code == 400
        assert len(_history(client, processed_document_id)) == 1

    def test_edit_of_unknown_document(self, client: TestClient) -> None:
        response = client.patch(f"/documents/{uuid.uuid4()}/summary", json={"summary": "text"})

        assert response.status_code == 404


class TestRegenerate:
    def test_regenerate_with_new_options(
        self, client: TestClient, processed_document_id: str
    ) -> None:
        response = client.post(
            f"/documents/{processed_document_id}/regenerate",
            json={"processingOptions": {"detailLevel": "basic"}},
        )

        assert response.status_code == 200
        document = response.json()
        assert document["summary"].startswith("[Your Coverage Summary]")
        assert document["processingOptions"]["detailLevel"] == "basic"
        versions = _history(client, processed_document_id)
        assert versions[0]["source"] == "regeneration"
        assert versions[0]["isActive"] is True
        assert versions[0]["processingOptions"]["detailLevel"] == "basic"

    def test_regenerate_without_body_reuses_options(
        self, client: TestClient, processed_document_id: str
    ) -> None:
        response = client.post(f"/documents/{processed_document_id}/regenerate")

        assert response.status_code == 200
        assert response.json()["processingOptions"]["detailLevel"] == "comprehensive"
        assert len(_history(client, processed_document_id)) == 2

    def test_regenerate_rejects_unknown_option(
        self, client: TestClient, processed_document_id: str
    ) -> None:
        response = client.post(
            f"/documents/{processed_document_id}/regenerate",
            json={"processingOptions": {"summaryLength": "short"}},
        )

        assert response.status_code == 422

    def test_regenerate_unknown_document(self, client: TestClient) -> None:
        assert client.post(f"/documents/{uuid.uuid4()}/regenerate").status_code == 404


class TestVersionHistory:
    @pytest.fixture
    def document_with_edits(self, client: TestClient, processed_document_id: str) -> str:
        for text in ("[Notes] First edit.", "[Notes] Second edit."):
            response = client.patch(
                f"/documents/{processed_document_id}/summary", json={"summary": text}
            )
            assert response.status_code == 200
        return processed_document_id

    def test_history_is_newest_first(self, client: TestClient, document_with_edits: str) -> None:
        versions = _history(client, document_with_edits)

        assert [v["versionNumber"] for v in versions] == [3, 2, 1]
        assert sum(v["isActive"] for v in versions) == 1
        assert versions[0]["summary"] == "[Notes] Second edit."
        assert versions[0]["documentId"] == document_with_edits

    def test_activate_older_version(self, client: TestClient, document_with_edits: str) -> None:
        original = _history(client, document_with_edits)[-1]

        response = client.post(
            f"/documents/{document_with_edits}/summary-history/{original['id']}/activate"
        )

        assert response.status_code == 200
        assert response.json()["summary"] == original["summary"]
        versions = _history(client, document_with_edits)
        assert [v["isActive"] for v in versions] == [False, False, True]
        assert client.get(f"/documents/{document_with_edits}").json()["summary"] == (
            original["summary"]
        )

    def test_delete_inactive_version(self, client: TestClient, document_with_edits: str) -> None:
        inactive = _history(client, document_with_edits)[1]

        response = client.delete(
            f"/documents/{document_with_edits}/summary-history/{inactive['id']}"
        )

        assert response.status_code == 204
        assert [v["versionNumber"] for v in _history(client, document_with_edits)] == [3, 1]

    def test_active_version_cannot_be_deleted(
        self, client: TestClient, document_with_edits: str
    ) -> None:
        active = _history(client, document_with_edits)[0]

        response = client.delete(
            f"/documents/{document_with_edits}/summary-history/{active['id']}"
        )

        assert response.status_code == 409
        assert len(_history(client, document_with_edits)) == 3

    def test_unknown_and_malformed_version_ids(
        self, client: TestClient, document_with_edits: str
    ) -> None:
        base = f"/documents/{document_with_edits}/summary-history"

        assert client.post(f"{base}/{uuid.uuid4()}/activate").status_code == 404
        assert client.delete(f"{base}/{uuid.uuid4()}").status_code == 404
        malformed = client.post(f"{base}/not-a-uuid/activate")
        assert malformed.status_code == 400
        assert malformed.json()["detail"] == "Invalid version_id format"

    def test_history_of_another_agents_document(
        self, client: TestClient, document_with_edits: str
    ) -> None:
        response = client.get(
            f"/documents/{document_with_edits}/summary-history",
            headers={"Authorization": f"Bearer {uuid.uuid4()}"},
        )

        assert response.status_code == 404


class TestVersionWriteConflicts:
    @pytest.fixture
    def lost_race(self) -> Iterator[AsyncMock]:
        conflict = VersionWriteConflictError("Could not assign a summary version")
        with patch(
            "backend.app.processing.orchestrator.write_summary_version",
            AsyncMock(side_effect=conflict),
        ) as write:
            yield write

    def test_edit_conflict_returns_409(
        self, client: TestClient, processed_document_id: str, lost_race: AsyncMock
    ) -> None:
        response = client.patch(
            f"/documents/{processed_document_id}/summary", json={"summary": "[Notes] Mine."}
        )

        assert response.status_code == 409
        assert response.json()["detail"] == "Could not assign a summary version"
        assert lost_race.await_count == 1

    def test_regenerate_conflict_returns_409(
        self, client: TestClient, processed_document_id: str, lost_race: AsyncMock
    ) -> None:
        response = client.post(f"/documents/{processed_document_id}/regenerate")

        assert response.status_code == 409
        assert len(_history(client, processed_document_id)) == 1
