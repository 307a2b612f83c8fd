"""Repositories for SyncLog and SyncError operations."""

from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import case, func, select, update

from glidesync.core.models import SyncError, SyncLog
from glidesync.core.repositories.base import BaseRepository


class SyncLogRepository(BaseRepository[SyncLog]):
    """Repository for SyncLog operations.

    Logs are append-only from the engine's point of view: they are created
    running and transitioned once. Nothing here deletes them.
    """

    model = SyncLog

    def create_running(self, mapping_id: int) -> SyncLog:
        """Insert a running log for a mapping.

        The insert is flushed immediately so the running-slot index is
        checked now rather than at commit.

        Raises:
            sqlalchemy.exc.IntegrityError: If a running log already exists.
        """
        log = SyncLog(
            mapping_id=mapping_id,
            status="running",
            records_processed=0,
            failed_records=0,
            cancel_requested=False,
            started_at=datetime.utcnow(),
        )
        self.add(log)
        self.flush()
        return log

    def create_terminal(self, mapping_id: int | None, status: str, message: str) -> SyncLog:
        """Insert a log that is already terminal, for runs that never started."""
        now = datetime.utcnow()
        log = SyncLog(
            mapping_id=mapping_id,
            status=status,
            message=message,
            records_processed=0,
            failed_records=0,
            cancel_requested=False,
            started_at=now,
            completed_at=now,
        )
        self.add(log)
        self.flush()
        return log

    def mark_terminal(
        self,
        log_id: int,
        status: str,
        records_processed: int,
        failed_records: int,
        message: str | None,
        completed_at: datetime,
    ) -> bool:
        """Move a running log to a terminal status.

        The update only matches while the log is still running, so of two
        concurrent completions exactly one performs the transition.

        Returns:
            True if this call performed the transition.
        """
        stmt = (
            update(SyncLog)
            .where(SyncLog.id == log_id, SyncLog.status == "running")
            .values(
                status=status,
                records_processed=records_processed,
                failed_records=failed_records,
                message=message,
                completed_at=completed_at,
            )
        )
        result = self.session.execute(stmt)
        return result.rowcount == 1

    def set_cancel_requested(self, log: SyncLog) -> SyncLog:
        """Flag a running log for cooperative cancellation."""
        log.cancel_requested = True
        return log

    def get_running(self, mapping_id: int) -> SyncLog | None:
        """Get the running log for a mapping, if any."""
        stmt = select(SyncLog).where(
            SyncLog.mapping_id == mapping_id,
            SyncLog.status == "running",
        )
        return self.session.scalar(stmt)

    def is_cancel_requested(self, log_id: int) -> bool:
        """Read the cancellation flag straight from the database."""
        stmt = select(SyncLog.cancel_requested).where(SyncLog.id == log_id)
        return bool(self.session.scalar(stmt))

    def list_for_mapping(
        self,
        mapping_id: int,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[SyncLog]:
        """List logs for a mapping, newest first."""
        stmt = (
            select(SyncLog)
            .where(SyncLog.mapping_id == mapping_id)
            .order_by(SyncLog.started_at.desc(), SyncLog.id.desc())
            .offset(offset)
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        return list(self.session.scalars(stmt))

    def list_recent(self, limit: int = 50, status: str | None = None) -> list[SyncLog]:
        """List the most recent logs across all mappings."""
        stmt = select(SyncLog).order_by(SyncLog.started_at.desc(), SyncLog.id.desc())
        if status is not None:
            stmt = stmt.where(SyncLog.status == status)
        stmt = stmt.limit(limit)
        return list(self.session.scalars(stmt))

    def daily_stats(self, days: int = 30) -> list[dict[str, Any]]:
        """Aggregate runs per calendar day of their start time.

        Args:
            days: How many days back to include.

        Returns:
            List of dicts ordered by day, newest first.
        """
        since = datetime.utcnow() - timedelta(days=days)
        day = func.date(SyncLog.started_at)
        stmt = (
            select(
                day.label("sync_date"),
                func.count(SyncLog.id).label("syncs"),
                func.sum(case((SyncLog.status == "success", 1), else_=0)).label(
                    "successful_syncs"
                ),
                func.sum(case((SyncLog.status == "failure", 1), else_=0)).label("failed_syncs"),
                func.coalesce(func.sum(SyncLog.records_processed), 0).label(
                    "total_records_processed"
                ),
            )
            .where(SyncLog.started_at >= since)
            .group_by(day)
            .order_by(day.desc())
        )
        return [dict(row._mapping) for row in self.session.execute(stmt)]


class SyncErrorRepository(BaseRepository[SyncError]):
    """Repository for recorded sync errors."""

    model = SyncError

    def create(
        self,
        error_type: str,
        error_message: str,
        mapping_id: int | None = None,
        log_id: int | None = None,
        record_data: dict[str, Any] | None = None,
        retryable: bool = False,
    ) -> SyncError:
        """Record a sync error."""
        error = SyncError(
            mapping_id=mapping_id,
            log_id=log_id,
            error_type=error_type,
            error_message=error_message,
            record_data=record_data,
            retryable=retryable,
            created_at=datetime.utcnow(),
        )
        self.add(error)
        return error

    def list_errors(
        self,
        mapping_id: int | None = None,
        log_id: int | None = None,
        include_resolved: bool = False,
        limit: int = 100,
    ) -> list[SyncError]:
        """List recorded errors, newest first."""
        stmt = select(SyncError).order_by(SyncError.created_at.desc(), SyncError.id.desc())
        if mapping_id is not None:
            stmt = stmt.where(SyncError.mapping_id == mapping_id)
        if log_id is not None:
            stmt = stmt.where(SyncError.log_id == log_id)
        if not include_resolved:
            stmt = stmt.where(SyncError.resolved_at.is_(None))
        stmt = stmt.limit(limit)
        return list(self.session.scalars(stmt))

    def resolve(self, error: SyncError, notes: str | None = None) -> SyncError:
        """Mark an error as resolved."""
        error.resolved_at = datetime.utcnow()
        error.resolution_notes = notes
        return error
