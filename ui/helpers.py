"""Helper functions for the UI - API calls and display formatting."""

import re
from datetime import datetime
from typing import Any

import httpx

DEV_AGENT_ID = "00000000-0000-0000-0000-000000000002"

_FILENAME_PATTERN = re.compile(r'filename="?([^";]+)"?')


def get_auth_header(agent_id: str = DEV_AGENT_ID) -> dict[str, str]:
    """Get auth header for API calls (stub auth: the bearer token is the agent id)."""
    return {"Authorization": f"Bearer {agent_id}"}


def _request(
    method: str, backend_url: str, path: str, timeout: float = 30.0, **kwargs: Any
) -> httpx.Response:
    """Send a request to the backend and raise on 4xx/5xx.

    Raises:
        httpx.HTTPStatusError: If request fails
    """
    response = httpx.request(
        method,
        f"{backend_url}{path}",
        headers=get_auth_header(),
        timeout=timeout,
        **kwargs,
    )
    response.raise_for_status()
    return response


def error_detail(error: httpx.HTTPStatusError) -> str:
    """Human-readable message from a failed API response."""
    try:
        body = error.response.json()
    except ValueError:
        return error.response.text or str(error)
    if isinstance(body, dict):
        return str(body.get("detail") or body.get("error") or body)
    return str(body)


def list_documents(
    backend_url: str,
    query: str | None = None,
    status: str = "all",
    favorites: bool = False,
    sort: str = "uploaded",
) -> list[dict[str, Any]]:
    """Call GET /documents with dashboard filters."""
    params: dict[str, Any] = {"status": status, "sort": sort}
    if query:
        params["q"] = query
    if favorites:
        params["favorites"] = "true"
    response = _request("GET", backend_url, "/documents", params=params)
    documents: list[dict[str, Any]] = response.json()["documents"]
    return documents


def get_document(backend_url: str, document_id: str) -> tuple[int, dict[str, Any]]:
    """Call GET /documents/{id}.

    Returns:
        (status_code, body) - 200 full document, 202 still processing, 422 failed
    """
    response = httpx.get(
        f"{backend_url}/documents/{document_id}", headers=get_auth_header(), timeout=30.0
    )
    if response.status_code not in (200, 202, 422):
        response.raise_for_status()
    body: dict[str, Any] = response.json()
    return response.status_code, body


def update_summary(backend_url: str, document_id: str, summary: str) -> dict[str, Any]:
    response = _request(
        "PATCH", backend_url, f"/documents/{document_id}/summary", json={"summary": summary}
    )
    result: dict[str, Any] = response.json()
    return result


def regenerate_summary(
    backend_url: str, document_id: str, processing_options: dict[str, Any] | None = None
) -> dict[str, Any]:
    """Call POST /documents/{id}/regenerate (runs synchronously, allow for the AI timeout)."""
    response = _request(
        "POST",
        backend_url,
        f"/documents/{document_id}/regenerate",
        timeout=180.0,
        json={"processingOptions": processing_options},
    )
    result: dict[str, Any] = response.json()
    return result


def get_summary_history(backend_url: str, document_id: str) -> list[dict[str, Any]]:
    response = _request("GET", backend_url, f"/documents/{document_id}/summary-history")
    versions: list[dict[str, Any]] = response.json()["versions"]
    return versions


def activate_version(backend_url: str, document_id: str, version_id: str) -> dict[str, Any]:
    response = _request(
        "POST", backend_url, f"/documents/{document_id}/summary-history/{version_id}/activate"
    )
    result: dict[str, Any] = response.json()
    return result


def delete_version(backend_url: str, document_id: str, version_id: str) -> None:
    _request("DELETE", backend_url, f"/documents/{document_id}/summary-history/{version_id}")


def set_favorite(backend_url: str, document_id: str, is_favorite: bool) -> dict[str, Any]:
    response = _request(
        "POST",
        backend_url,
        f"/documents/{document_id}/favorite",
        json={"isFavorite": is_favorite},
    )
    result: dict[str, Any] = response.json()
    return result


def update_tags(backend_url: str, document_id: str, tags: list[str]) -> dict[str, Any]:
    response = _request("PATCH", backend_url, f"/documents/{document_id}/tags", json={"tags": tags})
    result: dict[str, Any] = response.json()
    return result


def update_metadata(
    backend_url: str, document_id: str, client_name: str, policy_reference: str
) -> dict[str, Any]:
    response = _request(
        "PATCH",
        backend_url,
        f"/documents/{document_id}",
        json={"clientName": client_name, "policyReference": policy_reference},
    )
    result: dict[str, Any] = response.json()
    return result


def delete_document(backend_url: str, document_id: str) -> None:
    _request("DELETE", backend_url, f"/documents/{document_id}")


def export_pdf(
    backend_url: str, document_id: str, export_options: dict[str, Any]
) -> tuple[bytes, str]:
    """Call POST /documents/{id}/export.

    Returns:
        (pdf_bytes, filename)
    """
    response = _request(
        "POST", backend_url, f"/documents/{document_id}/export", json=export_options
    )
    return response.content, filename_from_disposition(
        response.headers.get("content-disposition", "")
    )


def get_settings(backend_url: str) -> dict[str, Any]:
    response = _request("GET", backend_url, "/settings")
    result: dict[str, Any] = response.json()
    return result


def put_settings(backend_url: str, changes: dict[str, Any]) -> dict[str, Any]:
    response = _request("PUT", backend_url, "/settings", json=changes)
    result: dict[str, Any] = response.json()
    return result


# --- Formatting ---


def filename_from_disposition(header: str, default: str = "policy-summary.pdf") -> str:
    """Extract the filename from a Content-Disposition header."""
    match = _FILENAME_PATTERN.search(header)
    return match.group(1) if match else default


def format_file_size(size_bytes: int) -> str:
    """Format a byte count as B / KB / MB."""
    if size_bytes < 1024:
        return f"{size_bytes} B"
    if size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KB"
    return f"{size_bytes / (1024 * 1024):.1f} MB"


def format_timestamp(value: str | None) -> str:
    """Format an ISO8601 timestamp for display; empty values render as a dash."""
    if not value:
        return "-"
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return value
    return parsed.strftime("%b %d, %Y %H:%M")


def document_status_label(document: dict[str, Any]) -> str:
    """Dashboard status label for a document list item."""
    if not document.get("processed"):
        return "Processing"
    if document.get("hasError") or document.get("processingError"):
        return "Failed"
    return "Ready"


def parse_tags(raw: str) -> list[str]:
    """Split a comma-separated tag input, dropping blanks."""
    return [tag.strip() for tag in raw.split(",") if tag.strip()]
