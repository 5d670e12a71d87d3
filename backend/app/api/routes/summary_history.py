"""Summary version history endpoints."""

import uuid
from datetime import datetime
from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.api.auth import get_current_context
from backend.app.api.routes.documents import (
    DocumentResponse,
    parse_document_id,
    to_document_response,
)
from backend.app.db.context import RequestContext
from backend.app.db.engine import get_session
from backend.app.db.models import SummaryVersion as SummaryVersionDB
from backend.app.db.summary_versions import (
    activate_summary_version,
    delete_summary_version,
    list_summary_versions,
)
from backend.app.errors import (
    ActiveVersionDeleteError,
    DocumentNotFoundError,
    SummaryVersionNotFoundError,
)
from backend.app.models.common import CamelModel, VersionSource

router = APIRouter(prefix="/documents/{document_id}/summary-history", tags=["summary-history"])


class SummaryVersionResponse(CamelModel):
    """One summary version."""

    id: str
    document_id: str
    version_number: int
    summary: str
    processing_options: dict[str, Any]
    source: VersionSource
    is_active: bool
    created_at: datetime


class SummaryHistoryResponse(CamelModel):
    """Response for GET /documents/{document_id}/summary-history (newest first)."""

    versions: list[SummaryVersionResponse]


def _parse_version_id(version_id: str) -> uuid.UUID:
    try:
        return uuid.UUID(version_id)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid version_id format",
        ) from e


def _to_response(version: SummaryVersionDB) -> SummaryVersionResponse:
    return SummaryVersionResponse(
        id=str(version.version_id),
        document_id=str(version.document_id),
        version_number=version.version_number,
        summary=version.summary,
        processing_options=version.processing_options or {},
        source=VersionSource(version.source),
        is_active=version.is_active,
        created_at=version.created_at,
    )


@router.get("", response_model=SummaryHistoryResponse)
async def get_summary_history(
    document_id: str,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    session: Annotated[AsyncSession, Depends(get_session)],
) -> SummaryHistoryResponse:
    """List every summary version of a document."""
    try:
        versions = await list_summary_versions(session, ctx, parse_document_id(document_id))
    except DocumentNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    return SummaryHistoryResponse(versions=[_to_response(version) for version in versions])


@router.post("/{version_id}/activate", response_model=DocumentResponse)
async def activate_version(
    document_id: str,
    version_id: str,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    session: Annotated[AsyncSession, Depends(get_session)],
) -> DocumentResponse:
    """Make an older version the active summary again.

    Returns:
        The document with its summary replaced by the activated version's text
    """
    try:
        document = await activate_summary_version(
            session, ctx, parse_document_id(document_id), _parse_version_id(version_id)
        )
    except (DocumentNotFoundError, SummaryVersionNotFoundError) as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    return to_document_response(document)


@router.delete("/{version_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_version(
    document_id: str,
    version_id: str,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    session: Annotated[AsyncSession, Depends(get_session)],
) -> None:
    """Delete a non-active version.

    Raises:
        HTTPException: 409 when the target is the active version
    """
    try:
        await delete_summary_version(
            session, ctx, parse_document_id(document_id), _parse_version_id(version_id)
        )
    except (DocumentNotFoundError, SummaryVersionNotFoundError) as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    except ActiveVersionDeleteError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e
