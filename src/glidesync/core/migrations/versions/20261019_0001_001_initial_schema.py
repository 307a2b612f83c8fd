"""Initial schema with connections, mappings, sync logs and sync errors.

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# Revision identifiers, used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "gl_connections",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("app_id", sa.String(length=255), nullable=False),
        sa.Column("api_key", sa.String(length=512), nullable=False),
        sa.Column("app_name", sa.String(length=255), nullable=True),
        sa.Column("source_type", sa.String(length=50), nullable=False, server_default="glide"),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="active"),
        sa.Column("last_sync_at", sa.DateTime(), nullable=True),
        sa.Column("settings", sa.JSON(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_gl_connections_app_id", "gl_connections", ["app_id"])

    op.create_table(
        "gl_mappings",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("connection_id", sa.Integer(), nullable=False),
        sa.Column("source_table", sa.String(length=255), nullable=False),
        sa.Column("source_table_display_name", sa.String(length=255), nullable=False),
        sa.Column("sink_table", sa.String(length=255), nullable=False),
        sa.Column(
            "sync_direction", sa.String(length=20), nullable=False, server_default="to_sink"
        ),
        sa.Column("enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("column_mappings", sa.JSON(), nullable=False),
        sa.Column("current_status", sa.String(length=20), nullable=True),
        sa.Column("last_sync_completed_at", sa.DateTime(), nullable=True),
        sa.Column("error_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_records", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ["connection_id"],
            ["gl_connections.id"],
            ondelete="RESTRICT",
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_gl_mappings_connection_id", "gl_mappings", ["connection_id"])
    op.create_index("ix_gl_mappings_sink_table", "gl_mappings", ["sink_table"])

    op.create_table(
        "gl_sync_logs",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("mapping_id", sa.Integer(), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="running"),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column("records_processed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("failed_records", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("cancel_requested", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "started_at",
            sa.DateTime(),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["mapping_id"], ["gl_mappings.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_gl_sync_logs_mapping_id", "gl_sync_logs", ["mapping_id"])
    # At most one running log per mapping
    op.create_index(
        "uq_gl_sync_logs_running_mapping",
        "gl_sync_logs",
        ["mapping_id"],
        unique=True,
        sqlite_where=sa.text("status = 'running'"),
        postgresql_where=sa.text("status = 'running'"),
    )

    op.create_table(
        "gl_sync_errors",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("mapping_id", sa.Integer(), nullable=True),
        sa.Column("log_id", sa.Integer(), nullable=True),
        sa.Column("error_type", sa.String(length=30), nullable=False),
        sa.Column("error_message", sa.Text(), nullable=False),
        sa.Column("record_data", sa.JSON(), nullable=True),
        sa.Column("retryable", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "created_at",
            sa.DateTime(),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.Column("resolved_at", sa.DateTime(), nullable=True),
        sa.Column("resolution_notes", sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(["mapping_id"], ["gl_mappings.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["log_id"], ["gl_sync_logs.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_gl_sync_errors_mapping_id", "gl_sync_errors", ["mapping_id"])


def downgrade() -> None:
    op.drop_index("ix_gl_sync_errors_mapping_id", table_name="gl_sync_errors")
    op.drop_table("gl_sync_errors")
    op.drop_index("uq_gl_sync_logs_running_mapping", table_name="gl_sync_logs")
    op.drop_index("ix_gl_sync_logs_mapping_id", table_name="gl_sync_logs")
    op.drop_table("gl_sync_logs")
    op.drop_index("ix_gl_mappings_sink_table", table_name="gl_mappings")
    op.drop_index("ix_gl_mappings_connection_id", table_name="gl_mappings")
    op.drop_table("gl_mappings")
    op.drop_index("ix_gl_connections_app_id", table_name="gl_connections")
    op.drop_table("gl_connections")
