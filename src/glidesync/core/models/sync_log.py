"""Sync log and sync error models."""

from datetime import date, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text, text
from sqlalchemy.dialects.sqlite import JSON
from sqlalchemy.orm import Mapped, mapped_column

from glidesync.core.models.base import Base


# =============================================================================
# Type Aliases
# =============================================================================

RunStatus = Literal["running", "success", "partial_failure", "failure"]
TerminalStatus = Literal["success", "partial_failure", "failure"]
SyncErrorType = Literal["TRANSFORM_ERROR", "WRITE_ERROR", "CONNECTION_ERROR"]

TERMINAL_STATUSES: tuple[str, ...] = ("success", "partial_failure", "failure")


# =============================================================================
# SQLAlchemy Models
# =============================================================================


class SyncLog(Base):
    """Record of one sync run for a mapping.

    Created in the running state and transitioned to a terminal state exactly
    once. The partial unique index on mapping_id for running rows is the
    per-mapping run slot.
    """

    __tablename__ = "gl_sync_logs"
    __table_args__ = (
        Index(
            "uq_gl_sync_logs_running_mapping",
            "mapping_id",
            unique=True,
            sqlite_where=text("status = 'running'"),
            postgresql_where=text("status = 'running'"),
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    mapping_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("gl_mappings.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="running")
    message: Mapped[str | None] = mapped_column(Text, nullable=True)
    records_processed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    failed_records: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    cancel_requested: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    started_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        default=datetime.utcnow,
    )
    completed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def __repr__(self) -> str:
        return f"<SyncLog(id={self.id}, mapping_id={self.mapping_id}, status={self.status!r})>"


class SyncError(Base):
    """A single failed record or connection failure recorded during a run."""

    __tablename__ = "gl_sync_errors"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    mapping_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("gl_mappings.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    log_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("gl_sync_logs.id", ondelete="SET NULL"),
        nullable=True,
    )
    error_type: Mapped[str] = mapped_column(String(30), nullable=False)
    error_message: Mapped[str] = mapped_column(Text, nullable=False)
    record_data: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    retryable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        default=datetime.utcnow,
    )
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    resolution_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<SyncError(id={self.id}, type={self.error_type!r})>"


# =============================================================================
# Pydantic Schemas
# =============================================================================


class SyncLogResponse(BaseModel):
    """Response for a sync log."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    mapping_id: int | None
    status: str
    message: str | None
    records_processed: int
    failed_records: int
    cancel_requested: bool
    started_at: datetime
    completed_at: datetime | None


class SyncErrorResponse(BaseModel):
    """Response for a recorded sync error."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    mapping_id: int | None
    log_id: int | None
    error_type: str
    error_message: str
    record_data: dict[str, Any] | None
    retryable: bool
    created_at: datetime
    resolved_at: datetime | None
    resolution_notes: str | None


class SyncErrorResolve(BaseModel):
    """Request to resolve a sync error."""

    notes: str | None = Field(None, description="Resolution notes")


class SyncStatsEntry(BaseModel):
    """Aggregated sync activity for one day."""

    sync_date: date
    syncs: int = 0
    successful_syncs: int = 0
    failed_syncs: int = 0
    total_records_processed: int = 0


class ForceCompleteRequest(BaseModel):
    """Request to force-complete a stale run."""

    reason: str | None = Field(None, description="Why the run is being reclaimed")
