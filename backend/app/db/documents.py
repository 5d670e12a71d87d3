"""Helper functions for PolicyDocument database operations.

Helpers flush but do not commit; callers own the transaction.
"""

import uuid
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.db.context import RequestContext
from backend.app.db.models import PolicyDocument as PolicyDocumentDB
from backend.app.db.models import SummaryVersion as SummaryVersionDB
from backend.app.errors import DocumentNotFoundError

DOCUMENT_STATUSES = ("all", "processed", "pending", "failed")
DOCUMENT_SORTS = ("uploaded", "name", "size", "last_viewed")


async def create_document(
    session: AsyncSession,
    ctx: RequestContext,
    *,
    original_name: str,
    file_size: int,
    file_type: str,
    processing_options: dict[str, Any],
) -> PolicyDocumentDB:
    """Create a pending document row.

    Args:
        session: Database session
        ctx: Request context (owner)
        original_name: Filename as uploaded
        file_size: Size in bytes
        file_type: Validated MIME type
        processing_options: Options the extraction will run with

    Returns:
        New PolicyDocument with processed=False
    """
    now = datetime.now(UTC)
    document = PolicyDocumentDB(
        document_id=uuid.uuid4(),
        user_id=ctx.user_id,
        filename=f"{int(now.timestamp() * 1000)}-{original_name}",
        original_name=original_name,
        file_size=file_size,
        file_type=file_type,
        uploaded_at=now,
        processed=False,
        processing_options=processing_options,
        tags=[],
    )
    session.add(document)
    await session.flush()
    return document


async def get_document(
    session: AsyncSession,
    ctx: RequestContext,
    document_id: uuid.UUID,
    *,
    for_update: bool = False,
) -> PolicyDocumentDB:
    """Load a document owned by the caller.

    Raises:
        DocumentNotFoundError: If the document does not exist or belongs to another agent
    """
    stmt = select(PolicyDocumentDB).where(
        PolicyDocumentDB.document_id == document_id,
        PolicyDocumentDB.user_id == ctx.user_id,
    )
    if for_update:
        stmt = stmt.with_for_update()
    result = await session.execute(stmt.execution_options(populate_existing=True))
    document = result.scalar_one_or_none()
    if document is None:
        raise DocumentNotFoundError(f"Document {document_id} not found")
    return document


async def load_document(
    session: AsyncSession, document_id: uuid.UUID, *, for_update: bool = False
) -> PolicyDocumentDB:
    """Load a document by id without an ownership check (background processing).

    Raises:
        DocumentNotFoundError: If the document no longer exists
    """
    stmt = select(PolicyDocumentDB).where(PolicyDocumentDB.document_id == document_id)
    if for_update:
        stmt = stmt.with_for_update()
    result = await session.execute(stmt.execution_options(populate_existing=True))
    document = result.scalar_one_or_none()
    if document is None:
        raise DocumentNotFoundError(f"Document {document_id} not found")
    return document


async def list_documents(
    session: AsyncSession,
    ctx: RequestContext,
    *,
    query: str | None = None,
    status: str = "all",
    favorites_only: bool = False,
    sort: str = "uploaded",
) -> list[PolicyDocumentDB]:
    """List the caller's documents with optional search, filter and sort.

    Args:
        session: Database session
        ctx: Request context (owner)
        query: Case-insensitive substring of name, client name or policy reference
        status: One of DOCUMENT_STATUSES
        favorites_only: Only return favorites
        sort: One of DOCUMENT_SORTS

    Returns:
        Matching documents
    """
    stmt = select(PolicyDocumentDB).where(PolicyDocumentDB.user_id == ctx.user_id)

    if query and query.strip():
        pattern = f"%{query.strip().lower()}%"
        stmt = stmt.where(
            or_(
                func.lower(PolicyDocumentDB.original_name).like(pattern),
                func.lower(PolicyDocumentDB.client_name).like(pattern),
                func.lower(PolicyDocumentDB.policy_reference).like(pattern),
            )
        )

    if status == "processed":
        stmt = stmt.where(
            PolicyDocumentDB.processed.is_(True), PolicyDocumentDB.processing_error.is_(None)
        )
    elif status == "pending":
        stmt = stmt.where(PolicyDocumentDB.processed.is_(False))
    elif status == "failed":
        stmt = stmt.where(
            PolicyDocumentDB.processed.is_(True), PolicyDocumentDB.processing_error.is_not(None)
        )

    if favorites_only:
        stmt = stmt.where(PolicyDocumentDB.is_favorite.is_(True))

    if sort == "name":
        stmt = stmt.order_by(func.lower(PolicyDocumentDB.original_name))
    elif sort == "size":
        stmt = stmt.order_by(PolicyDocumentDB.file_size.desc())
    elif sort == "last_viewed":
        stmt = stmt.order_by(
            PolicyDocumentDB.last_viewed_at.is_(None), PolicyDocumentDB.last_viewed_at.desc()
        )
    else:
        stmt = stmt.order_by(PolicyDocumentDB.uploaded_at.desc())

    result = await session.execute(stmt)
    return list(result.scalars().all())


async def delete_document(
    session: AsyncSession, ctx: RequestContext, document_id: uuid.UUID
) -> None:
    """Delete a document and its summary history.

    Raises:
        DocumentNotFoundError: If the document does not exist or belongs to another agent
    """
    document = await get_document(session, ctx, document_id)
    # History first; SQLite does not enforce ON DELETE CASCADE without a pragma
    await session.execute(
        delete(SummaryVersionDB).where(SummaryVersionDB.document_id == document.document_id)
    )
    await session.delete(document)
    await session.flush()


def normalize_tags(tags: list[str]) -> list[str]:
    """Trim tags, drop empties and de-duplicate keeping the first occurrence."""
    seen: set[str] = set()
    normalized = []
    for tag in tags:
        cleaned = tag.strip()
        if cleaned and cleaned not in seen:
            seen.add(cleaned)
            normalized.append(cleaned)
    return normalized


def mark_failed(document: PolicyDocumentDB, message: str) -> None:
    """Resolve a document into the failed terminal state."""
    document.processed = True
    document.processing_error = message
    document.extracted_data = None
    document.summary = None


def touch_viewed(document: PolicyDocumentDB) -> None:
    document.last_viewed_at = datetime.now(UTC)


def record_export(document: PolicyDocumentDB) -> None:
    document.pdf_export_count = (document.pdf_export_count or 0) + 1
    document.last_exported_at = datetime.now(UTC)
