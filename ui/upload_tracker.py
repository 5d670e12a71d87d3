"""Per-file upload and status-polling state machine.

Each file gets its own UploadTracker:

    UPLOADING -> PROCESSING(stage) -> SUCCESS | ERROR
    UPLOADING -> RETRYING -> UPLOADING (transport errors and 5xx, bounded)

Stage labels advance one step per poll tick and are purely cosmetic; only the
server's processed/processingError fields decide the outcome. A tracker whose
cancel token is set stops touching its record.
"""

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import httpx

from backend.app.config import Settings

logger = logging.getLogger(__name__)

PROCESSING_STAGES = (
    "Processing document...",
    "Analyzing coverage...",
    "Summarizing policy...",
)

TIMEOUT_MESSAGE = (
    "Processing is taking longer than expected. "
    "Check the dashboard later or try uploading again."
)


class UploadState(str, Enum):
    uploading = "uploading"
    retrying = "retrying"
    processing = "processing"
    success = "success"
    error = "error"


class FailureKind(str, Enum):
    """Why a tracker ended in the error state."""

    upload = "upload"
    processing = "processing"
    timeout = "timeout"
    status_check = "status_check"


class TransientNetworkError(Exception):
    """Request failed in transit or with a 5xx; worth retrying."""

    pass


class UploadRejectedError(Exception):
    """Server refused the upload (4xx) or acknowledged it unreadably; do not re-send."""

    pass


class TrackerCancelledError(Exception):
    """Tracker was cancelled; its record must not change any more."""

    pass


@dataclass
class CancelToken:
    """Token for cancellation signaling."""

    cancelled: bool = False

    def cancel(self) -> None:
        self.cancelled = True

    def throw_if_cancelled(self) -> None:
        """Raise TrackerCancelledError if cancelled."""
        if self.cancelled:
            raise TrackerCancelledError("upload removed")


@dataclass
class PollingConfig:
    """Timing and retry budget for one tracker."""

    poll_interval_seconds: float = 10.0
    poll_max_attempts: int = 18
    upload_retries: int = 2
    upload_retry_backoff_seconds: float = 2.0
    status_error_threshold: int = 3

    @classmethod
    def from_settings(cls, settings: Settings) -> "PollingConfig":
        return cls(
            poll_interval_seconds=settings.poll_interval_seconds,
            poll_max_attempts=settings.poll_max_attempts,
            upload_retries=settings.upload_retries,
            upload_retry_backoff_seconds=settings.upload_retry_backoff_seconds,
            status_error_threshold=settings.status_error_threshold,
        )


@dataclass
class UploadRecord:
    """Everything the UI shows about one file."""

    filename: str
    content: bytes
    content_type: str | None = None
    options: dict[str, Any] | None = None
    state: UploadState = UploadState.uploading
    progress: int = 0
    stage: str | None = None
    document_id: str | None = None
    document: dict[str, Any] | None = None
    error: str | None = None
    failure_kind: FailureKind | None = None
    upload_attempts: int = 0
    poll_attempts: int = 0
    history: list[UploadState] = field(default_factory=list)


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(body, dict):
        return str(body.get("detail") or body.get("error") or body)
    return str(body)


class UploadTracker:
    """Drives one file from upload to a terminal state."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        record: UploadRecord,
        config: PollingConfig | None = None,
        *,
        sleep_fn: Callable[[float], Awaitable[None]] | None = None,
        on_change: Callable[[UploadRecord], None] | None = None,
    ) -> None:
        """Initialize tracker.

        Args:
            client: HTTP client with base_url and auth headers set
            record: Record to drive (mutated in place)
            config: Polling configuration (defaults to PollingConfig())
            sleep_fn: Injectable sleep function (default: asyncio.sleep)
            on_change: Called after every record update
        """
        self._client = client
        self.record = record
        self._config = config or PollingConfig()
        self._sleep = sleep_fn or asyncio.sleep
        self._on_change = on_change
        self.token = CancelToken()

    def cancel(self) -> None:
        """Stop all further updates to the record."""
        self.token.cancel()

    async def run(self) -> UploadRecord:
        """Upload, then poll until success, failure or timeout."""
        try:
            document_id = await self._upload()
            if document_id is not None:
                await self._poll(document_id)
        except TrackerCancelledError:
            logger.info(
                "Upload tracker cancelled",
                extra={"structured": {"filename": self.record.filename}},
            )
        return self.record

    async def retry(self) -> UploadRecord:
        """Restart a failed tracker from the upload step.

        Raises:
            ValueError: If the tracker has not failed
        """
        if self.record.state != UploadState.error:
            raise ValueError("Only failed uploads can be retried")
        self._update(
            state=UploadState.uploading,
            progress=0,
            stage=None,
            document_id=None,
            document=None,
            error=None,
            failure_kind=None,
            upload_attempts=0,
            poll_attempts=0,
        )
        return await self.run()

    def _update(self, **changes: Any) -> None:
        self.token.throw_if_cancelled()
        previous_state = self.record.state
        for name, value in changes.items():
            setattr(self.record, name, value)
        if self.record.state != previous_state:
            self.record.history.append(self.record.state)
        if self._on_change is not None:
            self._on_change(self.record)

    def _fail(self, kind: FailureKind, message: str) -> None:
        self._update(state=UploadState.error, failure_kind=kind, error=message, stage=None)
        logger.warning(
            "Upload failed",
            extra={
                "structured": {
                    "filename": self.record.filename,
                    "document_id": self.record.document_id,
                    "failure_kind": kind.value,
                    "error": message,
                }
            },
        )

    async def _upload(self) -> str | None:
        """Upload with bounded retries.

        Returns:
            Document id, or None if the upload failed terminally
        """
        max_attempts = self._config.upload_retries + 1
        for attempt in range(1, max_attempts + 1):
            self._update(
                state=UploadState.uploading,
                upload_attempts=attempt,
                progress=max(self.record.progress, 30),
            )
            try:
                document_id = await self._send_upload()
            except UploadRejectedError as e:
                self._fail(FailureKind.upload, str(e))
                return None
            except TransientNetworkError as e:
                self.token.throw_if_cancelled()
                if attempt == max_attempts:
                    self._fail(FailureKind.upload, f"Upload failed: {e}")
                    return None
                self._update(state=UploadState.retrying)
                await self._sleep(self._config.upload_retry_backoff_seconds)
                continue

            self._update(
                state=UploadState.processing,
                document_id=document_id,
                progress=100,
                stage=PROCESSING_STAGES[0],
            )
            return document_id
        return None

    async def _send_upload(self) -> str:
        files = {"document": (self.record.filename, self.record.content, self.record.content_type)}
        data = {"options": json.dumps(self.record.options)} if self.record.options else None
        try:
            response = await self._client.post("/documents/upload", files=files, data=data)
        except httpx.TransportError as e:
            raise TransientNetworkError(str(e) or type(e).__name__) from e

        self.token.throw_if_cancelled()
        self._update(progress=90)

        if response.status_code >= 500:
            raise TransientNetworkError(f"server error {response.status_code}")
        if response.status_code >= 400:
            raise UploadRejectedError(_error_message(response))

        try:
            document_id = response.json()["documentId"]
        except (ValueError, KeyError, TypeError) as e:
            raise UploadRejectedError("Upload failed: malformed upload response") from e
        return str(document_id)

    async def _poll(self, document_id: str) -> None:
        consecutive_errors = 0
        for attempt in range(1, self._config.poll_max_attempts + 1):
            await self._sleep(self._config.poll_interval_seconds)
            self.token.throw_if_cancelled()

            try:
                status_body = await self._fetch_status(document_id)
            except TransientNetworkError as e:
                self.token.throw_if_cancelled()
                consecutive_errors += 1
                self._update(poll_attempts=attempt)
                if consecutive_errors >= self._config.status_error_threshold:
                    self._fail(FailureKind.status_check, f"Could not check status: {e}")
                    return
                continue

            consecutive_errors = 0
            if status_body.get("processed"):
                error = status_body.get("processingError")
                if error:
                    self._update(poll_attempts=attempt)
                    self._fail(FailureKind.processing, str(error))
                    return
                document = await self._fetch_document(document_id)
                self._update(
                    state=UploadState.success,
                    poll_attempts=attempt,
                    document=document,
                    stage=None,
                    progress=100,
                )
                return

            stage_index = min(attempt, len(PROCESSING_STAGES) - 1)
            self._update(poll_attempts=attempt, stage=PROCESSING_STAGES[stage_index])

        self._fail(FailureKind.timeout, TIMEOUT_MESSAGE)

    async def _fetch_status(self, document_id: str) -> dict[str, Any]:
        try:
            response = await self._client.get(f"/documents/{document_id}/status")
        except httpx.TransportError as e:
            raise TransientNetworkError(str(e) or type(e).__name__) from e
        if not response.is_success:
            raise TransientNetworkError(f"status check returned {response.status_code}")
        try:
            body = response.json()
        except ValueError as e:
            raise TransientNetworkError("malformed status response") from e
        if not isinstance(body, dict) or "processed" not in body:
            raise TransientNetworkError("malformed status response")
        return body

    async def _fetch_document(self, document_id: str) -> dict[str, Any] | None:
        """Full document after success; the outcome is already decided, so misses are tolerated."""
        try:
            response = await self._client.get(f"/documents/{document_id}")
        except httpx.TransportError:
            logger.warning(
                "Could not fetch processed document",
                extra={"structured": {"document_id": document_id}},
            )
            return None
        self.token.throw_if_cancelled()
        if response.status_code != 200:
            return None
        try:
            document = response.json()
        except ValueError:
            logger.warning(
                "Malformed document response",
                extra={"structured": {"document_id": document_id}},
            )
            return None
        if not isinstance(document, dict):
            return None
        return document


class UploadManager:
    """Runs one tracker per file concurrently."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        config: PollingConfig | None = None,
        *,
        sleep_fn: Callable[[float], Awaitable[None]] | None = None,
        on_change: Callable[[UploadRecord], None] | None = None,
    ) -> None:
        self._client = client
        self._config = config
        self._sleep = sleep_fn
        self._on_change = on_change
        self.trackers: dict[str, UploadTracker] = {}

    def add(self, key: str, record: UploadRecord) -> UploadTracker:
        tracker = UploadTracker(
            self._client,
            record,
            self._config,
            sleep_fn=self._sleep,
            on_change=self._on_change,
        )
        self.trackers[key] = tracker
        return tracker

    def remove(self, key: str) -> None:
        """Cancel and forget a tracker; its record stops changing."""
        tracker = self.trackers.pop(key, None)
        if tracker is not None:
            tracker.cancel()

    async def run_all(self) -> dict[str, UploadRecord]:
        """Run every tracker to completion concurrently."""
        keys = list(self.trackers)
        records = await asyncio.gather(*(self.trackers[key].run() for key in keys))
        return dict(zip(keys, records, strict=True))

    async def retry(self, key: str) -> UploadRecord:
        return await self.trackers[key].retry()
