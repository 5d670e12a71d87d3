"""Initial schema

Revision ID: 001
Revises:
Create Date: 2026-10-17

Creates:
- agent
- policy_document
- summary_version (unique version number per document, partial unique index on the active row)
- user_settings
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

JSONType = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def _timestamp(name: str, nullable: bool = False) -> sa.Column:
    if nullable:
        return sa.Column(name, sa.DateTime(timezone=True), nullable=True)
    return sa.Column(
        name, sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
    )


def upgrade() -> None:
    """Create all tables."""
    # agent table
    op.create_table(
        "agent",
        sa.Column("user_id", sa.Uuid(), primary_key=True),
        sa.Column("email", sa.Text(), nullable=False),
        sa.Column("display_name", sa.Text(), nullable=True),
        _timestamp("created_at"),
        sa.UniqueConstraint("email", name="uq_agent_email"),
    )

    # policy_document table
    op.create_table(
        "policy_document",
        sa.Column("document_id", sa.Uuid(), primary_key=True),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("filename", sa.Text(), nullable=False),
        sa.Column("original_name", sa.Text(), nullable=False),
        sa.Column("file_size", sa.BigInteger(), nullable=False),
        sa.Column("file_type", sa.Text(), nullable=False),
        _timestamp("uploaded_at"),
        sa.Column("processed", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("processing_error", sa.Text(), nullable=True),
        sa.Column("extracted_data", JSONType, nullable=True),
        sa.Column("summary", sa.Text(), nullable=True),
        sa.Column("raw_text", sa.Text(), nullable=True),
        sa.Column("processing_options", JSONType, nullable=False),
        sa.Column("is_favorite", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("tags", JSONType, nullable=False),
        sa.Column("client_name", sa.Text(), nullable=True),
        sa.Column("policy_reference", sa.Text(), nullable=True),
        _timestamp("last_viewed_at", nullable=True),
        sa.Column("pdf_export_count", sa.Integer(), server_default="0", nullable=False),
        _timestamp("last_exported_at", nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["agent.user_id"], ondelete="CASCADE"),
    )
    op.create_index("idx_document_user_uploaded", "policy_document", ["user_id", "uploaded_at"])
    op.create_index("idx_document_user_favorite", "policy_document", ["user_id", "is_favorite"])

    # summary_version table
    op.create_table(
        "summary_version",
        sa.Column("version_id", sa.Uuid(), primary_key=True),
        sa.Column("document_id", sa.Uuid(), nullable=False),
        sa.Column("version_number", sa.Integer(), nullable=False),
        sa.Column("summary", sa.Text(), nullable=False),
        sa.Column("processing_options", JSONType, nullable=False),
        sa.Column("source", sa.Text(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        _timestamp("created_at"),
        sa.ForeignKeyConstraint(
            ["document_id"], ["policy_document.document_id"], ondelete="CASCADE"
        ),
        sa.UniqueConstraint("document_id", "version_number", name="uq_summary_version_number"),
    )
    op.create_index(
        "uq_summary_version_active",
        "summary_version",
        ["document_id"],
        unique=True,
        postgresql_where=sa.text("is_active"),
        sqlite_where=sa.text("is_active"),
    )

    # user_settings table
    op.create_table(
        "user_settings",
        sa.Column("settings_id", sa.Uuid(), primary_key=True),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("default_processing_options", JSONType, nullable=False),
        sa.Column("agent_profile", JSONType, nullable=False),
        sa.Column("export_preferences", JSONType, nullable=False),
        sa.Column("ui_preferences", JSONType, nullable=False),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.ForeignKeyConstraint(["user_id"], ["agent.user_id"], ondelete="CASCADE"),
        sa.UniqueConstraint("user_id", name="uq_user_settings_user"),
    )


def downgrade() -> None:
    """Drop all tables."""
    op.drop_table("user_settings")
    op.drop_index("uq_summary_version_active", table_name="summary_version")
    op.drop_table("summary_version")
    op.drop_index("idx_document_user_favorite", table_name="policy_document")
    op.drop_index("idx_document_user_uploaded", table_name="policy_document")
    op.drop_table("policy_document")
    op.drop_table("agent")
