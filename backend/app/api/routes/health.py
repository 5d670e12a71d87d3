"""Health check endpoints.

- /health: liveness, always ok while the process is up
- /healthz: readiness, checks the database and reports the extraction backend
"""

import logging
from typing import Any

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from backend.app.config import Settings, get_settings
from backend.app.db.engine import get_async_engine

logger = logging.getLogger(__name__)

router = APIRouter()


async def check_db() -> tuple[bool, str]:
    """Check database connectivity.

    Returns:
        (is_ok, status_message)
    """
    try:
        async with get_async_engine().connect() as conn:
            await conn.execute(text("SELECT 1"))
        return (True, "ok")
    except (SQLAlchemyError, OSError, ValueError) as e:
        logger.warning("Database health check failed", extra={"structured": {"error": repr(e)}})
        return (False, f"error: {type(e).__name__}")


def extraction_backend(settings: Settings) -> str:
    """Which extraction service the orchestrator is wired to."""
    api_key = settings.openai_api_key
    return "openai" if api_key and api_key.get_secret_value() else "offline"


@router.get("/health")
async def health() -> dict[str, str]:
    """Simple health check for Docker/k8s.

    Returns:
        200 OK always (application is running)
    """
    return {"status": "ok"}


@router.get("/healthz", response_model=None)
async def healthz() -> dict[str, Any] | JSONResponse:
    """Readiness check.

    Returns:
        200 with component status if the database is reachable
        503 otherwise
    """
    settings = get_settings()
    db_ok, db_status = await check_db()

    response_body = {
        "status": "ok" if db_ok else "degraded",
        "components": {
            "db": db_status,
            "extraction": extraction_backend(settings),
        },
    }

    if not db_ok:
        return JSONResponse(content=response_body, status_code=status.HTTP_503_SERVICE_UNAVAILABLE)

    return response_body
