"""Typed settings configuration - single source of truth."""

from functools import lru_cache

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

PDF_MIME_TYPE = "application/pdf"
DOCX_MIME_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Database
    database_url: str | None = "sqlite+aiosqlite:///./policy_intake.db"

    # UI
    ui_origin: str = "http://localhost:8501"
    api_base_url: str = "http://localhost:8000"

    # Extraction service
    openai_api_key: SecretStr | None = None
    openai_model: str = "gpt-4o"
    openai_base_url: str | None = None

    # Timeouts (seconds)
    extraction_timeout_seconds: float = 120.0
    text_extraction_timeout_seconds: float = 30.0

    # Upload limits
    max_upload_bytes: int = 10 * 1024 * 1024
    allowed_mime_types: list[str] = [PDF_MIME_TYPE, DOCX_MIME_TYPE]

    # Text limits (characters)
    max_document_chars: int = 100_000
    min_document_chars: int = 100

    # Summary versioning
    version_write_retries: int = 3

    # Status polling (UI)
    poll_interval_seconds: float = 10.0
    poll_max_attempts: int = 18
    upload_retries: int = 2
    upload_retry_backoff_seconds: float = 2.0
    status_error_threshold: int = 3


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
