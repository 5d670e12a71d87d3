"""Document endpoints - upload, status, reads, metadata, summary edits, regenerate and export."""

import uuid
from datetime import UTC, datetime
from typing import Annotated

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status
from fastapi.responses import JSONResponse, Response
from pydantic import Field, ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.api.auth import get_current_context
from backend.app.db.context import RequestContext
from backend.app.db.documents import (
    delete_document,
    get_document,
    list_documents,
    normalize_tags,
    record_export,
    touch_viewed,
)
from backend.app.db.engine import get_session
from backend.app.db.models import PolicyDocument as PolicyDocumentDB
from backend.app.db.user_settings import get_or_create_settings, to_agent_settings
from backend.app.errors import (
    DocumentNotFoundError,
    DocumentNotReadyError,
    EmptySummaryError,
    ExtractionError,
    UploadValidationError,
    VersionWriteConflictError,
)
from backend.app.export.pdf import export_filename, render_policy_pdf, resolve_export_options
from backend.app.models.common import CamelModel
from backend.app.models.policy import PolicyData, ProcessingOptions
from backend.app.processing.orchestrator import (
    DocumentOrchestrator,
    UploadedFile,
    get_orchestrator,
)
from backend.app.utils.metrics import pdf_exports_total

router = APIRouter(prefix="/documents", tags=["documents"])

UPLOAD_ACCEPTED_MESSAGE = "Document uploaded successfully and processing started"


class UploadResponse(CamelModel):
    """Response for POST /documents/upload."""

    document_id: str
    message: str


class DocumentStatusResponse(CamelModel):
    """Response for GET /documents/{document_id}/status."""

    id: str
    original_name: str
    processed: bool
    processing_error: str | None = None
    has_data: bool
    has_summary: bool


class DocumentListItem(CamelModel):
    """Document fields shown on the dashboard."""

    id: str
    original_name: str
    file_size: int
    file_type: str
    processed: bool
    uploaded_at: datetime
    has_error: bool
    processing_error: str | None = None
    pdf_export_count: int
    last_exported_at: datetime | None = None
    last_viewed_at: datetime | None = None
    client_name: str | None = None
    policy_reference: str | None = None
    is_favorite: bool
    tags: list[str]


class DocumentResponse(DocumentListItem):
    """Full document including extraction output."""

    filename: str
    extracted_data: PolicyData | None = None
    summary: str | None = None
    processing_options: ProcessingOptions | None = None


class DocumentListResponse(CamelModel):
    """Response for GET /documents."""

    documents: list[DocumentListItem]


class DocumentMetadataUpdate(CamelModel):
    """Request body for PATCH /documents/{document_id}."""

    client_name: str | None = Field(None, max_length=200)
    policy_reference: str | None = Field(None, max_length=200)


class FavoriteRequest(CamelModel):
    """Request body for POST /documents/{document_id}/favorite (omit to toggle)."""

    is_favorite: bool | None = None


class TagsUpdate(CamelModel):
    """Request body for PATCH /documents/{document_id}/tags."""

    tags: list[str]


class SummaryUpdate(CamelModel):
    """Request body for PATCH /documents/{document_id}/summary."""

    summary: str


class RegenerateRequest(CamelModel):
    """Request body for POST /documents/{document_id}/regenerate."""

    processing_options: ProcessingOptions | None = None


class ExportRequest(CamelModel):
    """Request body for POST /documents/{document_id}/export.

    Values left out fall back to the document, then to the agent's export preferences.
    """

    client_name: str | None = None
    policy_reference: str | None = None
    include_branding: bool | None = None
    include_explanations: bool | None = None
    include_technical_details: bool | None = None
    include_agent_signature: bool | None = None
    custom_summary: str | None = None


def parse_document_id(document_id: str) -> uuid.UUID:
    """Parse a path id, rejecting malformed values with 400."""
    try:
        return uuid.UUID(document_id)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid document_id format",
        ) from e


def _not_found(e: Exception) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


def _conflict(e: Exception) -> HTTPException:
    return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))


async def _load(
    session: AsyncSession, ctx: RequestContext, document_id: str
) -> PolicyDocumentDB:
    try:
        return await get_document(session, ctx, parse_document_id(document_id))
    except DocumentNotFoundError as e:
        raise _not_found(e) from e


def to_list_item(document: PolicyDocumentDB) -> DocumentListItem:
    return DocumentListItem(
        id=str(document.document_id),
        original_name=document.original_name,
        file_size=document.file_size,
        file_type=document.file_type,
        processed=document.processed,
        uploaded_at=document.uploaded_at,
        has_error=document.processing_error is not None,
        processing_error=document.processing_error,
        pdf_export_count=document.pdf_export_count or 0,
        last_exported_at=document.last_exported_at,
        last_viewed_at=document.last_viewed_at,
        client_name=document.client_name,
        policy_reference=document.policy_reference,
        is_favorite=document.is_favorite,
        tags=list(document.tags or []),
    )


def to_document_response(document: PolicyDocumentDB) -> DocumentResponse:
    item = to_list_item(document)
    return DocumentResponse(
        **item.model_dump(),
        filename=document.filename,
        extracted_data=(
            PolicyData.model_validate(document.extracted_data)
            if document.extracted_data is not None
            else None
        ),
        summary=document.summary,
        processing_options=(
            ProcessingOptions.model_validate(document.processing_options)
            if document.processing_options
            else None
        ),
    )


@router.post("/upload", response_model=UploadResponse, status_code=status.HTTP_202_ACCEPTED)
async def upload_document(
    document: Annotated[UploadFile, File(description="Policy PDF or DOCX")],
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    session: Annotated[AsyncSession, Depends(get_session)],
    orchestrator: Annotated[DocumentOrchestrator, Depends(get_orchestrator)],
    options: Annotated[str | None, Form(description="JSON-encoded processing options")] = None,
) -> UploadResponse:
    """Accept an upload and start background extraction.

    Returns as soon as the pending document exists; poll the status endpoint
    for the outcome.

    Args:
        document: Uploaded file
        ctx: Request context
        session: Database session
        orchestrator: Processing orchestrator
        options: Processing options (defaults to the agent's saved defaults)

    Returns:
        New document id
    """
    if options:
        try:
            processing_options = ProcessingOptions.model_validate_json(options)
        except ValidationError as e:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Invalid processing options: {e.errors()[0]['msg']}",
            ) from e
    else:
        settings_row = await get_or_create_settings(session, ctx)
        processing_options = to_agent_settings(settings_row).default_processing_options

    # One byte over the limit is enough to reject
    content = await document.read(orchestrator.settings.max_upload_bytes + 1)
    upload = UploadedFile(
        content=content,
        filename=document.filename or "document",
        content_type=document.content_type,
    )

    try:
        document_id = await orchestrator.submit(session, ctx, upload, processing_options)
    except UploadValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e

    return UploadResponse(document_id=str(document_id), message=UPLOAD_ACCEPTED_MESSAGE)


@router.get("", response_model=DocumentListResponse)
async def list_documents_endpoint(
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    session: Annotated[AsyncSession, Depends(get_session)],
    q: Annotated[str | None, Query(max_length=200)] = None,
    status_filter: Annotated[
        str, Query(alias="status", pattern="^(all|processed|pending|failed)$")
    ] = "all",
    favorites: bool = False,
    sort: Annotated[str, Query(pattern="^(uploaded|name|size|last_viewed)$")] = "uploaded",
) -> DocumentListResponse:
    """List the caller's documents with search, filter and sort."""
    documents = await list_documents(
        session, ctx, query=q, status=status_filter, favorites_only=favorites, sort=sort
    )
    return DocumentListResponse(documents=[to_list_item(document) for document in documents])


@router.get("/{document_id}/status", response_model=DocumentStatusResponse)
async def get_document_status(
    document_id: str,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    session: Annotated[AsyncSession, Depends(get_session)],
) -> DocumentStatusResponse:
    """Lightweight processing status for polling clients."""
    document = await _load(session, ctx, document_id)
    return DocumentStatusResponse(
        id=str(document.document_id),
        original_name=document.original_name,
        processed=document.processed,
        processing_error=document.processing_error,
        has_data=document.extracted_data is not None,
        has_summary=document.summary is not None,
    )


@router.get("/{document_id}", response_model=DocumentResponse)
async def get_document_endpoint(
    document_id: str,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    session: Annotated[AsyncSession, Depends(get_session)],
) -> DocumentResponse | JSONResponse:
    """Full document.

    Returns:
        200 with the document once processed successfully
        202 while processing is still running
        422 with the processing error if processing failed
    """
    document = await _load(session, ctx, document_id)
    touch_viewed(document)
    await session.commit()

    if not document.processed:
        return JSONResponse(
            status_code=status.HTTP_202_ACCEPTED,
            content={"message": "Document is still being processed", "processed": False},
        )
    if document.processing_error is not None:
        return JSONResponse(
            status_code=422,
            content={"error": document.processing_error, "processed": True},
        )
    return to_document_response(document)


@router.patch("/{document_id}", response_model=DocumentListItem)
async def update_document_metadata(
    document_id: str,
    request: DocumentMetadataUpdate,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    session: Annotated[AsyncSession, Depends(get_session)],
) -> DocumentListItem:
    """Set client name and/or policy reference; empty strings clear them."""
    document = await _load(session, ctx, document_id)
    if "client_name" in request.model_fields_set:
        document.client_name = (request.client_name or "").strip() or None
    if "policy_reference" in request.model_fields_set:
        document.policy_reference = (request.policy_reference or "").strip() or None
    await session.commit()
    return to_list_item(document)


@router.delete("/{document_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_document_endpoint(
    document_id: str,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    session: Annotated[AsyncSession, Depends(get_session)],
) -> None:
    """Delete a document and its summary history."""
    try:
        await delete_document(session, ctx, parse_document_id(document_id))
    except DocumentNotFoundError as e:
        raise _not_found(e) from e
    await session.commit()


@router.post("/{document_id}/favorite", response_model=DocumentListItem)
async def set_favorite(
    document_id: str,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    session: Annotated[AsyncSession, Depends(get_session)],
    request: FavoriteRequest | None = None,
) -> DocumentListItem:
    """Set the favorite flag, or toggle it when no value is given."""
    document = await _load(session, ctx, document_id)
    if request is None or request.is_favorite is None:
        document.is_favorite = not document.is_favorite
    else:
        document.is_favorite = request.is_favorite
    await session.commit()
    return to_list_item(document)


@router.patch("/{document_id}/tags", response_model=DocumentListItem)
async def update_tags(
    document_id: str,
    request: TagsUpdate,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    session: Annotated[AsyncSession, Depends(get_session)],
) -> DocumentListItem:
    """Replace the document's tags (trimmed, de-duplicated, empties dropped)."""
    document = await _load(session, ctx, document_id)
    document.tags = normalize_tags(request.tags)
    await session.commit()
    return to_list_item(document)


@router.patch("/{document_id}/summary", response_model=DocumentResponse)
async def update_summary(
    document_id: str,
    request: SummaryUpdate,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    session: Annotated[AsyncSession, Depends(get_session)],
    orchestrator: Annotated[DocumentOrchestrator, Depends(get_orchestrator)],
) -> DocumentResponse:
    """Save an edited summary as a new active version."""
    try:
        document = await orchestrator.save_summary_edit(
            session, ctx, parse_document_id(document_id), request.summary
        )
    except EmptySummaryError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    except DocumentNotFoundError as e:
        raise _not_found(e) from e
    except (DocumentNotReadyError, VersionWriteConflictError) as e:
        raise _conflict(e) from e
    return to_document_response(document)


@router.post("/{document_id}/regenerate", response_model=DocumentResponse)
async def regenerate_summary(
    document_id: str,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    session: Annotated[AsyncSession, Depends(get_session)],
    orchestrator: Annotated[DocumentOrchestrator, Depends(get_orchestrator)],
    request: RegenerateRequest | None = None,
) -> DocumentResponse:
    """Re-run extraction on the stored text with (optionally) new options.

    Raises:
        HTTPException: 409 if the document is not ready or a concurrent write won,
            502 if extraction fails
    """
    options = request.processing_options if request else None
    try:
        document = await orchestrator.regenerate(
            session, ctx, parse_document_id(document_id), options
        )
    except DocumentNotFoundError as e:
        raise _not_found(e) from e
    except (DocumentNotReadyError, VersionWriteConflictError) as e:
        raise _conflict(e) from e
    except ExtractionError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e)) from e
    return to_document_response(document)


@router.post("/{document_id}/export")
async def export_document(
    document_id: str,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    session: Annotated[AsyncSession, Depends(get_session)],
    request: ExportRequest | None = None,
) -> Response:
    """Render the document's summary as a PDF download.

    Raises:
        HTTPException: 409 if the document has no successful extraction
    """
    request = request or ExportRequest()
    document = await _load(session, ctx, document_id)
    if (
        not document.processed
        or document.processing_error is not None
        or document.extracted_data is None
    ):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Document not processed or no data available",
        )

    agent_settings = to_agent_settings(await get_or_create_settings(session, ctx))
    options = resolve_export_options(
        preferences=agent_settings.export_preferences,
        document_client_name=document.client_name,
        document_policy_reference=document.policy_reference,
        **request.model_dump(),
    )

    generated_at = datetime.now(UTC)
    pdf_bytes = render_policy_pdf(
        policy_data=PolicyData.model_validate(document.extracted_data),
        summary=document.summary or "",
        options=options,
        profile=agent_settings.agent_profile,
        generated_at=generated_at,
    )

    record_export(document)
    await session.commit()
    pdf_exports_total.inc()

    return Response(
        content=pdf_bytes,
        media_type="application/pdf",
        headers={
            "Content-Disposition": f'attachment; filename="{export_filename(generated_at)}"'
        },
    )
