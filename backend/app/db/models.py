"""SQLAlchemy ORM models for agents, policy documents, summary versions and settings."""

import uuid
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Text,
    UniqueConstraint,
    Uuid,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.sql import expression, func

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests and local dev)
JSONType = JSON().with_variant(JSONB(), "postgresql")


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class Agent(Base):
    """Agent table - the insurance agent who owns documents and settings."""

    __tablename__ = "agent"

    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    display_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False
    )

    # Relationships
    documents: Mapped[list["PolicyDocument"]] = relationship(
        "PolicyDocument", back_populates="owner", cascade="all, delete-orphan"
    )
    settings: Mapped["UserSettings | None"] = relationship(
        "UserSettings", back_populates="owner", cascade="all, delete-orphan", uselist=False
    )


class PolicyDocument(Base):
    """Uploaded policy document and its extraction state.

    State invariant:
    - processed=False: extracted_data and summary are NULL (pending)
    - processed=True, processing_error set: extracted_data and summary are NULL (failed)
    - processed=True, no error: extracted_data and summary are both set
    """

    __tablename__ = "policy_document"
    __table_args__ = (
        Index("idx_document_user_uploaded", "user_id", "uploaded_at"),
        Index("idx_document_user_favorite", "user_id", "is_favorite"),
    )

    document_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("agent.user_id", ondelete="CASCADE"), nullable=False
    )
    filename: Mapped[str] = mapped_column(Text, nullable=False)
    original_name: Mapped[str] = mapped_column(Text, nullable=False)
    file_size: Mapped[int] = mapped_column(BigInteger, nullable=False)
    file_type: Mapped[str] = mapped_column(Text, nullable=False)
    uploaded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False
    )

    processed: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default=expression.false(), nullable=False
    )
    processing_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    extracted_data: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    summary: Mapped[str | None] = mapped_column(Text, nullable=True)
    raw_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    processing_options: Mapped[dict[str, Any]] = mapped_column(
        JSONType, nullable=False, default=dict
    )

    is_favorite: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default=expression.false(), nullable=False
    )
    tags: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)
    client_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    policy_reference: Mapped[str | None] = mapped_column(Text, nullable=True)

    last_viewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    pdf_export_count: Mapped[int] = mapped_column(
        Integer, default=0, server_default="0", nullable=False
    )
    last_exported_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Relationships
    owner: Mapped["Agent"] = relationship("Agent", back_populates="documents")
    versions: Mapped[list["SummaryVersion"]] = relationship(
        "SummaryVersion",
        back_populates="document",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="SummaryVersion.version_number",
    )


class SummaryVersion(Base):
    """Summary history row - one per successful generation or saved edit.

    At most one row per document has is_active=True; the partial unique index
    makes a second concurrent activation fail instead of silently succeeding.
    """

    __tablename__ = "summary_version"
    __table_args__ = (
        UniqueConstraint("document_id", "version_number", name="uq_summary_version_number"),
        Index(
            "uq_summary_version_active",
            "document_id",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active"),
        ),
    )

    version_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    document_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("policy_document.document_id", ondelete="CASCADE"), nullable=False
    )
    version_number: Mapped[int] = mapped_column(Integer, nullable=False)
    summary: Mapped[str] = mapped_column(Text, nullable=False)
    processing_options: Mapped[dict[str, Any]] = mapped_column(
        JSONType, nullable=False, default=dict
    )
    source: Mapped[str] = mapped_column(Text, nullable=False)  # extraction | regeneration | edit
    is_active: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False
    )

    # Relationships
    document: Mapped["PolicyDocument"] = relationship("PolicyDocument", back_populates="versions")


class UserSettings(Base):
    """Per-agent settings - created lazily on first access, unique per agent."""

    __tablename__ = "user_settings"

    settings_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("agent.user_id", ondelete="CASCADE"), nullable=False, unique=True
    )
    default_processing_options: Mapped[dict[str, Any]] = mapped_column(
        JSONType, nullable=False, default=dict
    )
    agent_profile: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    export_preferences: Mapped[dict[str, Any]] = mapped_column(
        JSONType, nullable=False, default=dict
    )
    ui_preferences: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow,
        server_default=func.now(),
        onupdate=_utcnow,
        nullable=False,
    )

    # Relationships
    owner: Mapped["Agent"] = relationship("Agent", back_populates="settings")
