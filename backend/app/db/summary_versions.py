"""Summary version history - numbering, activation and deletion.

Invariants maintained here:
- version_number is assigned as max+1 per document inside one transaction
- at most one version per document is active
- PolicyDocument.summary mirrors the active version's text
"""

import logging
import uuid
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.db.context import RequestContext
from backend.app.db.documents import get_document, load_document
from backend.app.db.models import PolicyDocument as PolicyDocumentDB
from backend.app.db.models import SummaryVersion as SummaryVersionDB
from backend.app.errors import (
    ActiveVersionDeleteError,
    SummaryVersionNotFoundError,
    VersionWriteConflictError,
)

logger = logging.getLogger(__name__)


async def write_summary_version(
    session: AsyncSession,
    document_id: uuid.UUID,
    *,
    summary: str,
    processing_options: dict[str, Any],
    source: str,
    extracted_data: dict[str, Any] | None = None,
    retries: int = 3,
) -> SummaryVersionDB:
    """Create a new active summary version and mirror it onto the document.

    When extracted_data is given, the document is also resolved into the
    processed state in the same transaction, so extracted data, summary and
    processed=True are only ever committed together.

    Commits on success. The session must not hold other uncommitted changes:
    a version-number collision rolls back and retries the whole write.

    Args:
        session: Database session
        document_id: Document to version
        summary: Summary text for the new version
        processing_options: Options that produced the summary
        source: extraction | regeneration | edit
        extracted_data: Structured policy data to store alongside (generation only)
        retries: Attempts before giving up on concurrent collisions

    Returns:
        The new active SummaryVersion

    Raises:
        DocumentNotFoundError: If the document was deleted meanwhile
        VersionWriteConflictError: If every attempt collided with another writer
    """
    for attempt in range(1, retries + 1):
        document = await load_document(session, document_id, for_update=True)

        result = await session.execute(
            select(func.max(SummaryVersionDB.version_number)).where(
                SummaryVersionDB.document_id == document_id
            )
        )
        next_number = (result.scalar_one_or_none() or 0) + 1

        await session.execute(
            update(SummaryVersionDB)
            .where(
                SummaryVersionDB.document_id == document_id,
                SummaryVersionDB.is_active.is_(True),
            )
            .values(is_active=False)
        )

        version = SummaryVersionDB(
            version_id=uuid.uuid4(),
            document_id=document_id,
            version_number=next_number,
            summary=summary,
            processing_options=processing_options,
            source=source,
            is_active=True,
        )
        session.add(version)

        if extracted_data is not None:
            document.extracted_data = extracted_data
            document.processed = True
            document.processing_error = None
            document.processing_options = processing_options
        document.summary = summary

        try:
            await session.commit()
        except IntegrityError:
            await session.rollback()
            logger.warning(
                "Summary version collision, retrying",
                extra={
                    "structured": {
                        "document_id": str(document_id),
                        "version_number": next_number,
                        "attempt": attempt,
                    }
                },
            )
            continue

        return version

    raise VersionWriteConflictError(
        f"Could not assign a summary version for document {document_id} after {retries} attempts"
    )


async def list_summary_versions(
    session: AsyncSession, ctx: RequestContext, document_id: uuid.UUID
) -> list[SummaryVersionDB]:
    """List a document's versions, newest first.

    Raises:
        DocumentNotFoundError: If the document does not exist or belongs to another agent
    """
    await get_document(session, ctx, document_id)
    result = await session.execute(
        select(SummaryVersionDB)
        .where(SummaryVersionDB.document_id == document_id)
        .order_by(SummaryVersionDB.version_number.desc())
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def _get_version(
    session: AsyncSession, document_id: uuid.UUID, version_id: uuid.UUID
) -> SummaryVersionDB:
    result = await session.execute(
        select(SummaryVersionDB)
        .where(
            SummaryVersionDB.version_id == version_id,
            SummaryVersionDB.document_id == document_id,
        )
        .execution_options(populate_existing=True)
    )
    version = result.scalar_one_or_none()
    if version is None:
        raise SummaryVersionNotFoundError(f"Summary version {version_id} not found")
    return version


async def activate_summary_version(
    session: AsyncSession,
    ctx: RequestContext,
    document_id: uuid.UUID,
    version_id: uuid.UUID,
) -> PolicyDocumentDB:
    """Make a version active and mirror its text onto the document.

    Deactivation of the previous version and activation of the target are
    committed in one transaction.

    Raises:
        DocumentNotFoundError: Unknown document
        SummaryVersionNotFoundError: Unknown version for this document
    """
    document = await get_document(session, ctx, document_id, for_update=True)
    version = await _get_version(session, document_id, version_id)

    if not version.is_active:
        await session.execute(
            update(SummaryVersionDB)
            .where(
                SummaryVersionDB.document_id == document_id,
                SummaryVersionDB.is_active.is_(True),
            )
            .values(is_active=False)
        )
        await session.execute(
            update(SummaryVersionDB)
            .where(SummaryVersionDB.version_id == version_id)
            .values(is_active=True)
        )
    document.summary = version.summary
    await session.commit()
    return document


async def delete_summary_version(
    session: AsyncSession,
    ctx: RequestContext,
    document_id: uuid.UUID,
    version_id: uuid.UUID,
) -> None:
    """Delete an inactive version.

    Raises:
        DocumentNotFoundError: Unknown document
        SummaryVersionNotFoundError: Unknown version for this document
        ActiveVersionDeleteError: Target is the active version
    """
    await get_document(session, ctx, document_id)
    version = await _get_version(session, document_id, version_id)
    if version.is_active:
        raise ActiveVersionDeleteError("The active summary version cannot be deleted")
    await session.delete(version)
    await session.commit()
