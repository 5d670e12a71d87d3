"""Processing orchestrator - upload intake, background extraction, regeneration and edits.

Pipeline for one upload (runs after the upload response has been sent):
1. Raw text extraction from the binary (thread pool, with timeout)
2. Extraction service call (structured policy data + narrative summary, with timeout)
3. Success: extracted data, summary and processed=True committed together with a
   new active summary version
4. Failure: processed=True with a human-readable processing_error; nothing else stored

No stage is retried; a failed document stays failed until the agent uploads again
or regenerates from stored text.
"""

import asyncio
import logging
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backend.app.config import Settings, get_settings
from backend.app.db.context import RequestContext
from backend.app.db.documents import create_document, get_document, load_document, mark_failed
from backend.app.db.engine import create_session_factory, get_async_engine
from backend.app.db.models import PolicyDocument as PolicyDocumentDB
from backend.app.db.summary_versions import write_summary_version
from backend.app.errors import (
    DocumentNotFoundError,
    DocumentNotReadyError,
    EmptySummaryError,
    ExtractionError,
    ExtractionTimeoutError,
    UploadValidationError,
)
from backend.app.extraction.text import extract_raw_text, resolve_mime_type
from backend.app.llm.client import ExtractionResult, ExtractionService, get_extraction_client
from backend.app.models.common import VersionSource
from backend.app.models.policy import ProcessingOptions
from backend.app.utils.logging import StructuredPipelineLogger
from backend.app.utils.metrics import PrometheusPipelineMetrics

logger = logging.getLogger(__name__)

UNEXPECTED_ERROR_MESSAGE = "An unexpected error occurred while processing the document."
TOO_SHORT_MESSAGE = (
    "Document appears to be too short or contains insufficient text for analysis."
)


# Metrics interface (implemented by backend.app.utils.metrics)
class PipelineMetrics:
    """Interface for pipeline metrics."""

    def record_latency(self, stage: str, outcome: str, latency_ms: float) -> None:
        pass

    def inc_failure(self, stage: str, reason: str) -> None:
        pass

    def inc_version(self, source: str) -> None:
        pass

    def inc_upload(self, mime_type: str) -> None:
        pass

    def inc_rejected(self, reason: str) -> None:
        pass


# Logging interface (implemented by backend.app.utils.logging)
class PipelineLogger:
    """Interface for structured pipeline logging."""

    def log_stage(
        self,
        document_id: uuid.UUID,
        stage: str,
        outcome: str,
        latency_ms: float,
        error_reason: str | None = None,
    ) -> None:
        pass


@dataclass(frozen=True)
class UploadedFile:
    """An uploaded file as received from the client."""

    content: bytes
    filename: str
    content_type: str | None


class DocumentOrchestrator:
    """Accepts uploads and drives documents to a terminal state."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        extraction_client: ExtractionService,
        settings: Settings | None = None,
        *,
        metrics: PipelineMetrics | None = None,
        pipeline_logger: PipelineLogger | None = None,
        text_extractor: Callable[[bytes, str], str] = extract_raw_text,
    ) -> None:
        """Initialize orchestrator.

        Args:
            session_factory: Creates sessions for background work
            extraction_client: Extraction service implementation
            settings: Settings (defaults to get_settings())
            metrics: Metrics recorder (optional, defaults to no-op)
            pipeline_logger: Structured logger (optional, defaults to no-op)
            text_extractor: Raw text extraction function (injectable for tests)
        """
        self._session_factory = session_factory
        self._client = extraction_client
        self._settings = settings or get_settings()
        self._metrics = metrics or PipelineMetrics()
        self._pipeline_logger = pipeline_logger or PipelineLogger()
        self._extract_text = text_extractor
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def settings(self) -> Settings:
        return self._settings

    def validate_upload(self, upload: UploadedFile) -> str:
        """Check size and type of an upload.

        Returns:
            Resolved MIME type

        Raises:
            UploadValidationError: Empty, too large, or unsupported type
        """
        if not upload.content:
            raise UploadValidationError("The uploaded file is empty.", reason="empty")

        if len(upload.content) > self._settings.max_upload_bytes:
            limit_mb = self._settings.max_upload_bytes // (1024 * 1024)
            raise UploadValidationError(
                f"File too large. Maximum size is {limit_mb} MB.", reason="too_large"
            )

        mime_type = resolve_mime_type(upload.filename, upload.content_type)
        if mime_type not in self._settings.allowed_mime_types:
            raise UploadValidationError(
                "Invalid file type. Only PDF and DOCX files are allowed.",
                reason="unsupported_type",
            )
        return mime_type

    async def submit(
        self,
        session: AsyncSession,
        ctx: RequestContext,
        upload: UploadedFile,
        options: ProcessingOptions,
    ) -> uuid.UUID:
        """Validate an upload, create the pending document and start processing.

        Returns as soon as the pending row is committed; extraction runs in the
        background.

        Raises:
            UploadValidationError: Upload rejected, no document created
        """
        try:
            mime_type = self.validate_upload(upload)
        except UploadValidationError as e:
            self._metrics.inc_rejected(e.reason)
            raise

        document = await create_document(
            session,
            ctx,
            original_name=upload.filename,
            file_size=len(upload.content),
            file_type=mime_type,
            processing_options=options.to_storage(),
        )
        await session.commit()
        self._metrics.inc_upload(mime_type)

        logger.info(
            "Document accepted for processing",
            extra={
                "structured": {
                    "document_id": str(document.document_id),
                    "user_id": str(ctx.user_id),
                    "mime_type": mime_type,
                    "file_size": len(upload.content),
                }
            },
        )

        self._schedule(document.document_id, upload.content, mime_type, options)
        return document.document_id

    def _schedule(
        self,
        document_id: uuid.UUID,
        content: bytes,
        mime_type: str,
        options: ProcessingOptions,
    ) -> None:
        task = asyncio.create_task(self.process_document(document_id, content, mime_type, options))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def drain(self) -> None:
        """Wait for all in-flight background processing to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    async def process_document(
        self,
        document_id: uuid.UUID,
        content: bytes,
        mime_type: str,
        options: ProcessingOptions,
    ) -> None:
        """Run the extraction pipeline for one document.

        Never raises: every outcome resolves the document into a terminal state
        (or is logged if the document was deleted meanwhile).
        """
        async with self._session_factory() as session:
            try:
                raw_text = await self._extract_raw_text(document_id, content, mime_type)

                document = await load_document(session, document_id)
                document.raw_text = raw_text
                await session.commit()

                result = await self._run_extraction(document_id, raw_text, options)
                await self._store_result(
                    session, document_id, result, options, VersionSource.extraction
                )
            except DocumentNotFoundError:
                logger.warning(
                    "Document deleted before processing finished",
                    extra={"structured": {"document_id": str(document_id)}},
                )
            except ExtractionError as e:
                self._metrics.inc_failure(e.stage, e.reason)
                await self._record_failure(session, document_id, str(e))
            except Exception:
                logger.exception(
                    "Unexpected failure while processing document",
                    extra={"structured": {"document_id": str(document_id)}},
                )
                self._metrics.inc_failure("pipeline", "unexpected")
                await self._record_failure(session, document_id, UNEXPECTED_ERROR_MESSAGE)

    async def regenerate(
        self,
        session: AsyncSession,
        ctx: RequestContext,
        document_id: uuid.UUID,
        options: ProcessingOptions | None = None,
    ) -> PolicyDocumentDB:
        """Re-run extraction against stored raw text and activate a new version.

        On failure the document and its versions are left untouched.

        Args:
            session: Database session
            ctx: Request context
            document_id: Document to regenerate
            options: New processing options (defaults to the document's last options)

        Returns:
            Updated document

        Raises:
            DocumentNotFoundError: Unknown document
            DocumentNotReadyError: Still processing, or no stored text to work from
            ExtractionError: Extraction service failure (nothing was changed)
            VersionWriteConflictError: Concurrent writers kept taking the next version number
        """
        document = await get_document(session, ctx, document_id)
        if not document.processed:
            raise DocumentNotReadyError("Document is still being processed")
        if not document.raw_text:
            raise DocumentNotReadyError("Document has no extracted text to regenerate from")

        if options is None:
            options = ProcessingOptions.model_validate(document.processing_options or {})
        raw_text = document.raw_text
        # End the read transaction before the long-running service call
        await session.commit()

        try:
            result = await self._run_extraction(document_id, raw_text, options)
        except ExtractionError as e:
            self._metrics.inc_failure(e.stage, e.reason)
            raise

        await self._store_result(session, document_id, result, options, VersionSource.regeneration)
        return await get_document(session, ctx, document_id)

    async def save_summary_edit(
        self,
        session: AsyncSession,
        ctx: RequestContext,
        document_id: uuid.UUID,
        summary: str,
    ) -> PolicyDocumentDB:
        """Store an edited summary as a new active version.

        An edit identical to the current summary is a no-op.

        Raises:
            EmptySummaryError: Summary is empty or whitespace-only
            DocumentNotFoundError: Unknown document
            DocumentNotReadyError: Document has no summary to edit
            VersionWriteConflictError: Concurrent writers kept taking the next version number
        """
        cleaned = summary.strip()
        if not cleaned:
            raise EmptySummaryError("Summary cannot be empty")

        document = await get_document(session, ctx, document_id)
        if document.summary is None:
            raise DocumentNotReadyError("Document has no summary to edit")
        if cleaned == document.summary:
            return document

        await write_summary_version(
            session,
            document_id,
            summary=cleaned,
            processing_options=document.processing_options,
            source=VersionSource.edit.value,
            retries=self._settings.version_write_retries,
        )
        self._metrics.inc_version(VersionSource.edit.value)
        return await get_document(session, ctx, document_id)

    async def _extract_raw_text(
        self, document_id: uuid.UUID, content: bytes, mime_type: str
    ) -> str:
        start = time.monotonic()
        try:
            raw_text = await asyncio.wait_for(
                asyncio.to_thread(self._extract_text, content, mime_type),
                timeout=self._settings.text_extraction_timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            self._log_stage(document_id, "text_extraction", "timeout", start, "timeout")
            raise ExtractionTimeoutError(
                "Timed out while reading the document.", stage="text_extraction"
            ) from e
        except ExtractionError as e:
            self._log_stage(document_id, "text_extraction", "error", start, e.reason)
            raise

        if len(raw_text) < self._settings.min_document_chars:
            self._log_stage(document_id, "text_extraction", "error", start, "too_short")
            raise ExtractionError(TOO_SHORT_MESSAGE, stage="text_extraction", reason="too_short")

        if len(raw_text) > self._settings.max_document_chars:
            logger.warning(
                "Document text truncated",
                extra={
                    "structured": {
                        "document_id": str(document_id),
                        "original_chars": len(raw_text),
                        "kept_chars": self._settings.max_document_chars,
                    }
                },
            )
            raw_text = raw_text[: self._settings.max_document_chars]

        self._log_stage(document_id, "text_extraction", "ok", start)
        return raw_text

    async def _run_extraction(
        self, document_id: uuid.UUID, raw_text: str, options: ProcessingOptions
    ) -> ExtractionResult:
        start = time.monotonic()
        try:
            result = await asyncio.wait_for(
                self._client.extract(raw_text=raw_text, options=options),
                timeout=self._settings.extraction_timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            self._log_stage(document_id, "ai_extraction", "timeout", start, "timeout")
            raise ExtractionTimeoutError(
                "The AI service timed out while analyzing the document."
            ) from e
        except ExtractionError as e:
            outcome = "timeout" if isinstance(e, ExtractionTimeoutError) else "error"
            self._log_stage(document_id, "ai_extraction", outcome, start, e.reason)
            raise

        if not result.summary.strip():
            self._log_stage(document_id, "ai_extraction", "error", start, "empty_summary")
            raise ExtractionError("The AI service returned an empty summary.", reason="malformed")

        self._log_stage(document_id, "ai_extraction", "ok", start)
        return result

    async def _store_result(
        self,
        session: AsyncSession,
        document_id: uuid.UUID,
        result: ExtractionResult,
        options: ProcessingOptions,
        source: VersionSource,
    ) -> None:
        start = time.monotonic()
        version = await write_summary_version(
            session,
            document_id,
            summary=result.summary,
            processing_options=options.to_storage(),
            source=source.value,
            extracted_data=result.policy_data.model_dump(by_alias=True, mode="json"),
            retries=self._settings.version_write_retries,
        )
        self._metrics.inc_version(source.value)
        self._log_stage(document_id, "version_write", "ok", start)
        logger.info(
            "Summary version created",
            extra={
                "structured": {
                    "document_id": str(document_id),
                    "version_number": version.version_number,
                    "source": source.value,
                    "extraction_source": result.source,
                }
            },
        )

    async def _record_failure(
        self, session: AsyncSession, document_id: uuid.UUID, message: str
    ) -> None:
        try:
            await session.rollback()
            document = await load_document(session, document_id)
            mark_failed(document, message)
            await session.commit()
        except DocumentNotFoundError:
            logger.warning(
                "Document deleted before failure could be recorded",
                extra={"structured": {"document_id": str(document_id)}},
            )
        except Exception:
            logger.exception(
                "Could not record processing failure",
                extra={"structured": {"document_id": str(document_id), "error": message}},
            )

    def _log_stage(
        self,
        document_id: uuid.UUID,
        stage: str,
        outcome: str,
        start: float,
        error_reason: str | None = None,
    ) -> None:
        latency_ms = (time.monotonic() - start) * 1000
        self._metrics.record_latency(stage, outcome, latency_ms)
        self._pipeline_logger.log_stage(document_id, stage, outcome, latency_ms, error_reason)


_orchestrator: DocumentOrchestrator | None = None


def get_orchestrator() -> DocumentOrchestrator:
    """FastAPI dependency returning the process-wide orchestrator."""
    global _orchestrator
    if _orchestrator is None:
        settings = get_settings()
        _orchestrator = DocumentOrchestrator(
            session_factory=create_session_factory(get_async_engine()),
            extraction_client=get_extraction_client(settings),
            settings=settings,
            metrics=PrometheusPipelineMetrics(),
            pipeline_logger=StructuredPipelineLogger(),
        )
    return _orchestrator
