"""Structured logging for the document processing pipeline."""

import logging
from typing import Any
from uuid import UUID

logger = logging.getLogger(__name__)


class StructuredPipelineLogger:
    """Structured logger for pipeline stages."""

    def log_stage(
        self,
        document_id: UUID,
        stage: str,
        outcome: str,
        latency_ms: float,
        error_reason: str | None = None,
    ) -> None:
        """Log one pipeline stage with structured data."""
        log_data: dict[str, Any] = {
            "document_id": str(document_id),
            "stage": stage,
            "outcome": outcome,
            "latency_ms": round(latency_ms, 2),
        }

        if error_reason:
            log_data["error_reason"] = error_reason

        log_msg = f"Pipeline stage: {stage} - {outcome}"

        if outcome == "ok":
            logger.info(log_msg, extra={"structured": log_data})
        else:
            logger.warning(log_msg, extra={"structured": log_data})
