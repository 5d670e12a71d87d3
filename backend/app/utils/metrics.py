"""Prometheus metrics for document intake and extraction."""

from prometheus_client import Counter, Histogram

# Intake metrics
documents_uploaded_total = Counter(
    "documents_uploaded_total",
    "Total documents accepted for processing",
    ["mime_type"],
)

uploads_rejected_total = Counter(
    "uploads_rejected_total",
    "Total uploads rejected before a document was created",
    ["reason"],
)

# Pipeline metrics
extraction_latency_ms = Histogram(
    "extraction_latency_ms",
    "Pipeline stage latency in milliseconds",
    ["stage", "outcome"],
    buckets=[50, 100, 500, 1000, 5000, 10000, 30000, 60000, 120000],
)

extraction_failures_total = Counter(
    "extraction_failures_total",
    "Total pipeline failures recorded as processing errors",
    ["stage", "reason"],
)

summary_versions_created_total = Counter(
    "summary_versions_created_total",
    "Total summary versions created",
    ["source"],
)

pdf_exports_total = Counter(
    "pdf_exports_total",
    "Total PDF summaries exported",
)


class PrometheusPipelineMetrics:
    """Prometheus-based pipeline metrics implementation."""

    def record_latency(self, stage: str, outcome: str, latency_ms: float) -> None:
        """Record pipeline stage latency."""
        extraction_latency_ms.labels(stage=stage, outcome=outcome).observe(latency_ms)

    def inc_failure(self, stage: str, reason: str) -> None:
        """Increment failure counter."""
        extraction_failures_total.labels(stage=stage, reason=reason).inc()

    def inc_version(self, source: str) -> None:
        """Increment summary version counter."""
        summary_versions_created_total.labels(source=source).inc()

    def inc_upload(self, mime_type: str) -> None:
        """Increment accepted upload counter."""
        documents_uploaded_total.labels(mime_type=mime_type).inc()

    def inc_rejected(self, reason: str) -> None:
        """Increment rejected upload counter."""
        uploads_rejected_total.labels(reason=reason).inc()
