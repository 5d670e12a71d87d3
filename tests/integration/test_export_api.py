"""Integration tests for PDF export."""

import io
import re
from collections.abc import Callable
from typing import Any

import pytest
from fastapi.testclient import TestClient
from pypdf import PdfReader

pytestmark = pytest.mark.integration


def _pdf_text(content: bytes) -> str:
    reader = PdfReader(io.BytesIO(content))
    return "\n".join(page.extract_text() or "" for page in reader.pages)


def test_export_returns_pdf_download(client: TestClient, processed_document_id: str) -> None:
    response = client.post(
        f"/documents/{processed_document_id}/export", json={"clientName": "Jane Smith"}
    )

    assert response.status_code == 200
    assert response.headers["content-type"] == "application/pdf"
    assert re.fullmatch(
        r'attachment; filename="policy-summary-\d{8}-\d{4}\.pdf"',
        response.headers["content-disposition"],
    )
    assert response.content.startswith(b"%PDF")
    text = _pdf_text(response.content)
    assert "Prepared for: Jane Smith" in text
    assert "Policy Overview" in text


def test_export_updates_counters(client: TestClient, processed_document_id: str) -> None:
    client.post(f"/documents/{processed_document_id}/export")
    client.post(f"/documents/{processed_document_id}/export")

    documents = client.get("/documents").json()["documents"]

    assert documents[0]["pdfExportCount"] == 2
    assert documents[0]["lastExportedAt"] is not None


def test_export_falls_back_to_document_and_settings(
    client: TestClient, processed_document_id: str
) -> None:
    client.patch(f"/documents/{processed_document_id}", json={"policyReference": "POL-77"})
    client.put(
        "/settings",
        json={
            "agentProfile": {"name": "Dana Agent", "firmName": "Acme Brokers"},
            "exportPreferences": {"defaultClientName": "Default Client"},
        },
    )

    response = client.post(f"/documents/{processed_document_id}/export")

    text = _pdf_text(response.content)
    assert "Prepared for: Default Client" in text
    assert "Policy reference: POL-77" in text
    assert "Acme Brokers" in text
    assert "Dana Agent" in text


def test_export_uses_custom_summary(client: TestClient, processed_document_id: str) -> None:
    response = client.post(
        f"/documents/{processed_document_id}/export",
        json={"customSummary": "[Agent Notes] Renew before June.", "includeExplanations": False},
    )

    text = _pdf_text(response.content)
    assert "Agent Notes" in text
    assert "Policy Overview" not in text


def test_export_of_failed_document_conflicts(
    client: TestClient,
    upload_file: Callable[..., Any],
    wait_processed: Callable[..., dict[str, Any]],
) -> None:
    document_id = upload_file(text="Too short.").json()["documentId"]
    wait_processed(document_id)

    response = client.post(f"/documents/{document_id}/export")

    assert response.status_code == 409
    assert response.json()["detail"] == "Document not processed or no data available"
