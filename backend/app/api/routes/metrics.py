"""Prometheus metrics endpoint."""

from fastapi import APIRouter, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

router = APIRouter()


@router.get("/metrics")
async def metrics() -> Response:
    """Prometheus metrics endpoint.

    Exposes all registered Prometheus metrics including:
    - documents_uploaded_total{mime_type}, uploads_rejected_total{reason}
    - extraction_latency_ms{stage, outcome}, extraction_failures_total{stage, reason}
    - summary_versions_created_total{source}, pdf_exports_total
    """
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
