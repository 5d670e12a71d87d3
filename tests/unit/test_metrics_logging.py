"""Tests for Prometheus pipeline metrics and structured stage logging."""

import logging
import uuid

import pytest
from prometheus_client import REGISTRY

from backend.app.utils.logging import StructuredPipelineLogger
from backend.app.utils.metrics import PrometheusPipelineMetrics


def _sample(name: str, **labels: str) -> float:
    return REGISTRY.get_sample_value(name, labels) or 0.0


def test_failure_counter_increments() -> None:
    labels = {"stage": "ai_extraction", "reason": "timeout"}
    before = _sample("extraction_failures_total", **labels)

    PrometheusPipelineMetrics().inc_failure("ai_extraction", "timeout")

    assert _sample("extraction_failures_total", **labels) == before + 1


def test_latency_histogram_observes() -> None:
    labels = {"stage": "text_extraction", "outcome": "ok"}
    count_before = _sample("extraction_latency_ms_count", **labels)
    sum_before = _sample("extraction_latency_ms_sum", **labels)

    PrometheusPipelineMetrics().record_latency("text_extraction", "ok", 42.0)

    assert _sample("extraction_latency_ms_count", **labels) == count_before + 1
    assert _sample("extraction_latency_ms_sum", **labels) == sum_before + 42.0


def test_upload_counters() -> None:
    metrics = PrometheusPipelineMetrics()
    accepted = _sample("documents_uploaded_total", mime_type="application/pdf")
    rejected = _sample("uploads_rejected_total", reason="too_large")

    metrics.inc_upload("application/pdf")
    metrics.inc_rejected("too_large")
    metrics.inc_rejected("too_large")

    assert _sample("documents_uploaded_total", mime_type="application/pdf") == accepted + 1
    assert _sample("uploads_rejected_total", reason="too_large") == rejected + 2


def test_version_counter() -> None:
    before = _sample("summary_versions_created_total", source="edit")

    PrometheusPipelineMetrics().inc_version("edit")

    assert _sample("summary_versions_created_total", source="edit") == before + 1


def test_successful_stage_logs_info(caplog: pytest.LogCaptureFixture) -> None:
    document_id = uuid.uuid4()

    with caplog.at_level(logging.INFO, logger="backend.app.utils.logging"):
        StructuredPipelineLogger().log_stage(document_id, "ai_extraction", "ok", 12.3456)

    record = caplog.records[-1]
    assert record.levelno == logging.INFO
    assert record.getMessage() == "Pipeline stage: ai_extraction - ok"
    assert record.structured == {
        "document_id": str(document_id),
        "stage": "ai_extraction",
        "outcome": "ok",
        "latency_ms": 12.35,
    }


def test_failed_stage_logs_warning_with_reason(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.INFO, logger="backend.app.utils.logging"):
        StructuredPipelineLogger().log_stage(
            uuid.uuid4(), "ai_extraction", "error", 5.0, error_reason="rate_limit"
        )

    record = caplog.records[-1]
    assert record.levelno == logging.WARNING
    assert record.structured["error_reason"] == "rate_limit"
