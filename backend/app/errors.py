"""Error taxonomy for document intake, extraction and summary versioning."""


class PolicyIntakeError(Exception):
    """Base class for all domain errors."""

    pass


# Validation errors - rejected synchronously, no state change
class UploadValidationError(PolicyIntakeError):
    """Uploaded file has an unsupported type, is empty, or is too large."""

    def __init__(self, message: str, reason: str) -> None:
        super().__init__(message)
        self.reason = reason


class EmptySummaryError(PolicyIntakeError):
    """Summary edit is empty or whitespace-only."""

    pass


# Extraction errors - recorded on the document as processing_error
class ExtractionError(PolicyIntakeError):
    """Raw text extraction or AI extraction failed.

    The message is user-facing: it becomes the document's processing_error.
    """

    def __init__(self, message: str, stage: str = "ai_extraction", reason: str = "error") -> None:
        super().__init__(message)
        self.stage = stage
        self.reason = reason


class TextExtractionError(ExtractionError):
    """The uploaded binary could not be turned into usable text."""

    def __init__(self, message: str, reason: str = "unreadable") -> None:
        super().__init__(message, stage="text_extraction", reason=reason)


class ExtractionTimeoutError(ExtractionError):
    """A pipeline stage exceeded its timeout."""

    def __init__(self, message: str, stage: str = "ai_extraction") -> None:
        super().__init__(message, stage=stage, reason="timeout")


# Not-found errors - surfaced directly, no retry
class DocumentNotFoundError(PolicyIntakeError):
    pass


class SummaryVersionNotFoundError(PolicyIntakeError):
    pass


# Conflicts with the current document state
class ActiveVersionDeleteError(PolicyIntakeError):
    """The active summary version cannot be deleted."""

    pass


class DocumentNotReadyError(PolicyIntakeError):
    """Document has no usable extraction (still pending, or failed)."""

    pass


class VersionWriteConflictError(PolicyIntakeError):
    """Concurrent writers kept colliding on the same version number."""

    pass
