"""Shared pytest fixtures for all test suites."""

import asyncio
import os
import time
from collections.abc import AsyncGenerator, Callable, Iterator
from pathlib import Path
from typing import Any

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.pool import NullPool

from backend.app.api.auth import DEV_USER_ID
from backend.app.config import Settings
from backend.app.db.context import RequestContext
from backend.app.db.engine import create_session_factory, get_session
from backend.app.db.models import Base
from backend.app.errors import ExtractionError
from backend.app.llm.client import DeterministicExtractionClient, ExtractionResult
from backend.app.main import app
from backend.app.models.policy import (
    CoverageDetail,
    ImportantContacts,
    PolicyData,
    ProcessingOptions,
)
from backend.app.processing.orchestrator import DocumentOrchestrator, get_orchestrator

PDF_MIME = "application/pdf"

SAMPLE_POLICY_TEXT = """Acme Insurance Company
Travel Insurance Policy - Certificate of Coverage
Emergency Medical: $1,000,000 per trip
Trip Cancellation: $5,000 per insured person
Baggage: $2,500 (deductible of $100)
Travellers aged 75 or under are eligible for a maximum 30 days per trip.
Pre-existing conditions are not covered unless stable for 90 days.
Emergency assistance: 1-800-555-0100
"""

SAMPLE_SUMMARY = (
    "[Policy Overview] This Travel Insurance Policy from Acme Insurance Company covers "
    "medical emergencies and trip cancellation.\n\n"
    "[Coverage Details] Your policy includes the following protection:\n"
    "• **Emergency Medical**: $1,000,000\n"
    "• **Trip Cancellation**: $5,000\n\n"
    "[Next Steps] Contact your agent with any questions."
)


def make_policy_data(**overrides: Any) -> PolicyData:
    """Build a valid PolicyData with sensible travel-policy defaults."""
    fields: dict[str, Any] = {
        "policy_type": "Travel Insurance Policy",
        "insurer": "Acme Insurance Company",
        "coverage_details": [
            CoverageDetail(type="Emergency Medical", limit="$1,000,000"),
            CoverageDetail(type="Trip Cancellation", limit="$5,000", deductible="$100"),
        ],
        "exclusions": ["Pre-existing conditions"],
        "important_contacts": ImportantContacts(emergency_line="1-800-555-0100"),
        "key_benefits": ["Emergency medical care abroad"],
        "why_it_matters": "Medical care abroad can cost more than the trip itself.",
    }
    fields.update(overrides)
    return PolicyData(**fields)


class FakeExtractionClient:
    """Extraction client returning a canned result, raising, or stalling."""

    def __init__(
        self,
        result: ExtractionResult | None = None,
        error: ExtractionError | None = None,
        delay: float = 0.0,
    ) -> None:
        self.result = result or ExtractionResult(
            policy_data=make_policy_data(), summary=SAMPLE_SUMMARY, source="fake"
        )
        self.error = error
        self.delay = delay
        self.calls: list[tuple[str, ProcessingOptions]] = []

    async def extract(self, *, raw_text: str, options: ProcessingOptions) -> ExtractionResult:
        self.calls.append((raw_text, options))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.result


def decode_text(content: bytes, mime_type: str) -> str:
    """Text extractor for tests: uploads carry plain UTF-8 text."""
    return content.decode("utf-8")


def make_settings(**overrides: Any) -> Settings:
    fields: dict[str, Any] = {
        "openai_api_key": None,
        "extraction_timeout_seconds": 5.0,
        "text_extraction_timeout_seconds": 5.0,
    }
    fields.update(overrides)
    return Settings(**fields)


@pytest.fixture
def ctx() -> RequestContext:
    return RequestContext(user_id=DEV_USER_ID)


@pytest.fixture
def policy_text() -> str:
    return SAMPLE_POLICY_TEXT


@pytest.fixture
def sample_summary() -> str:
    return SAMPLE_SUMMARY


@pytest.fixture
def policy_data() -> PolicyData:
    return make_policy_data()


@pytest_asyncio.fixture
async def sqlite_engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine, None]:
    """File-backed SQLite engine; every NullPool connection sees the same database."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        poolclass=NullPool,
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def session(sqlite_engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSession(sqlite_engine, expire_on_commit=False) as session:
        yield session


@pytest.fixture
def fake_client() -> FakeExtractionClient:
    return FakeExtractionClient()


@pytest.fixture
def make_orchestrator(
    sqlite_engine: AsyncEngine, fake_client: FakeExtractionClient
) -> Callable[..., DocumentOrchestrator]:
    """Build orchestrators over the test database; settings overrides as keywords."""

    def _make(
        extraction_client: Any | None = None,
        *,
        metrics: Any | None = None,
        pipeline_logger: Any | None = None,
        **settings_overrides: Any,
    ) -> DocumentOrchestrator:
        return DocumentOrchestrator(
            session_factory=create_session_factory(sqlite_engine),
            extraction_client=extraction_client or fake_client,
            settings=make_settings(**settings_overrides),
            metrics=metrics,
            pipeline_logger=pipeline_logger,
            text_extractor=decode_text,
        )

    return _make


@pytest.fixture
def orchestrator(make_orchestrator: Callable[..., DocumentOrchestrator]) -> DocumentOrchestrator:
    """Orchestrator over the test database with the fake extraction client."""
    return make_orchestrator()


# --- HTTP-level fixtures ---


@pytest.fixture
def api_settings() -> Settings:
    """Settings used by the app under test (override per module)."""
    return make_settings()


@pytest.fixture
def extraction_client() -> Any:
    """Extraction client wired into the app under test (override per module)."""
    return DeterministicExtractionClient()


@pytest.fixture
def api_engine(tmp_path: Path) -> Iterator[AsyncEngine]:
    """Engine for TestClient-based tests, with tables created up front."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'api.db'}",
        poolclass=NullPool,
        echo=False,
    )

    async def create_tables() -> None:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    asyncio.run(create_tables())
    yield engine
    asyncio.run(engine.dispose())


@pytest.fixture
def api_orchestrator(
    api_engine: AsyncEngine, extraction_client: Any, api_settings: Settings
) -> DocumentOrchestrator:
    return DocumentOrchestrator(
        session_factory=create_session_factory(api_engine),
        extraction_client=extraction_client,
        settings=api_settings,
        text_extractor=decode_text,
    )


@pytest.fixture
def client(
    api_engine: AsyncEngine, api_orchestrator: DocumentOrchestrator
) -> Iterator[TestClient]:
    """TestClient wired to the test database and orchestrator.

    Runs inside the lifespan context so background extraction tasks keep running
    between requests and are drained on exit.
    """
    factory = create_session_factory(api_engine)

    async def override_session() -> AsyncGenerator[AsyncSession, None]:
        async with factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_session
    app.dependency_overrides[get_orchestrator] = lambda: api_orchestrator
    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def upload_file(client: TestClient) -> Callable[..., Any]:
    """POST a plain-text payload to /documents/upload as if it were a PDF."""

    def _upload(
        text: str = SAMPLE_POLICY_TEXT,
        filename: str = "policy.pdf",
        content_type: str = PDF_MIME,
        options: str | None = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        data = {"options": options} if options is not None else None
        return client.post(
            "/documents/upload",
            files={"document": (filename, text.encode("utf-8"), content_type)},
            data=data,
            headers=headers,
        )

    return _upload


@pytest.fixture
def wait_processed(client: TestClient) -> Callable[..., dict[str, Any]]:
    """Poll the status endpoint until a document reaches a terminal state."""

    def _wait(
        document_id: str, headers: dict[str, str] | None = None, timeout: float = 10.0
    ) -> dict[str, Any]:
        deadline = time.monotonic() + timeout
        while True:
            response = client.get(f"/documents/{document_id}/status", headers=headers)
            assert response.status_code == 200
            body: dict[str, Any] = response.json()
            if body["processed"]:
                return body
            if time.monotonic() > deadline:
                raise AssertionError(f"Document {document_id} still pending after {timeout}s")
            time.sleep(0.02)

    return _wait


@pytest.fixture
def processed_document_id(
    upload_file: Callable[..., Any], wait_processed: Callable[..., dict[str, Any]]
) -> str:
    """Id of a document uploaded with the sample policy text and fully processed."""
    response = upload_file()
    assert response.status_code == 202, response.text
    document_id: str = response.json()["documentId"]
    status_body = wait_processed(document_id)
    assert status_body["processingError"] is None
    return document_id


# --- PostgreSQL fixtures ---


@pytest_asyncio.fixture
async def postgres_engine() -> AsyncGenerator[AsyncEngine, None]:
    """Create async engine for PostgreSQL integration tests.

    Requires DATABASE_URL to be set to a real PostgreSQL connection string.
    Tests using this fixture should be marked with @pytest.mark.postgres.
    """
    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        pytest.skip("DATABASE_URL not set - skipping postgres test")

    if not database_url.startswith(("postgresql://", "postgresql+asyncpg://")):
        pytest.skip(f"DATABASE_URL is not PostgreSQL: {database_url}")

    if database_url.startswith("postgresql://"):
        database_url = database_url.replace("postgresql://", "postgresql+asyncpg://", 1)

    engine = create_async_engine(database_url, poolclass=NullPool, echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture
async def postgres_session(postgres_engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSession(postgres_engine, expire_on_commit=False) as session:
        yield session
        await session.rollback()
