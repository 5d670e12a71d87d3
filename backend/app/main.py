"""FastAPI application."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from backend.app.api.routes.documents import router as documents_router
from backend.app.api.routes.health import router as health_router
from backend.app.api.routes.metrics import router as metrics_router
from backend.app.api.routes.settings import router as settings_router
from backend.app.api.routes.summary_history import router as summary_history_router
from backend.app.config import get_settings
from backend.app.processing.orchestrator import get_orchestrator


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    yield
    # Let in-flight extractions resolve their documents before shutdown
    orchestrator_factory = app.dependency_overrides.get(get_orchestrator, get_orchestrator)
    await orchestrator_factory().drain()


app = FastAPI(title="Policy Intake API", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[get_settings().ui_origin],
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routes
app.include_router(health_router, tags=["health"])
app.include_router(metrics_router, tags=["metrics"])
app.include_router(documents_router)
app.include_router(summary_history_router)
app.include_router(settings_router)


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {"message": "Policy Intake API", "version": "0.1.0"}
