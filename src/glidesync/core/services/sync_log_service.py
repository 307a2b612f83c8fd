"""Service for sync logs, run slots and recorded sync errors."""

import logging
from datetime import datetime
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from glidesync.core.exceptions import (
    MappingNotFoundError,
    RunConflictError,
    RunNotActiveError,
    SyncErrorNotFoundError,
    SyncLogNotFoundError,
)
from glidesync.core.models import TERMINAL_STATUSES, Mapping, SyncError, SyncLog, SyncStatsEntry
from glidesync.core.repositories import (
    ConnectionRepository,
    MappingRepository,
    SyncErrorRepository,
    SyncLogRepository,
)

logger = logging.getLogger(__name__)


class SyncLogService:
    """Service for the sync run history of mappings.

    Handles:
    - Claiming the per-mapping run slot (a running log)
    - Completing runs and folding their outcome into the mapping
    - Cooperative cancellation and force-completion of stale runs
    - Log history, daily statistics and recorded row errors

    Unlike the CRUD services, `start_run`, `complete_run`, `force_complete`
    and `request_cancel` commit immediately: other sessions and processes
    must see the run slot and the cancellation flag as soon as they change.
    """

    def __init__(self, session: Session) -> None:
        """Initialize sync log service.

        Args:
            session: SQLAlchemy database session.
        """
        self.session = session
        self.repo = SyncLogRepository(session)
        self.error_repo = SyncErrorRepository(session)
        self.mapping_repo = MappingRepository(session)
        self.connection_repo = ConnectionRepository(session)

    # -------------------------------------------------------------------------
    # Run lifecycle
    # -------------------------------------------------------------------------

    def start_run(self, mapping_id: int) -> SyncLog:
        """Claim the run slot for a mapping by inserting a running log.

        The unique index on running logs makes this an atomic
        insert-if-absent across sessions and processes.

        Raises:
            MappingNotFoundError: If the mapping does not exist.
            RunConflictError: If a run is already in progress for the mapping.
        """
        if self.mapping_repo.get_by_id(mapping_id) is None:
            raise MappingNotFoundError(mapping_id)

        try:
            log = self.repo.create_running(mapping_id)
        except IntegrityError as e:
            self.session.rollback()
            # The foreign key fails too when the mapping was deleted meanwhile
            if self.mapping_repo.get_by_id(mapping_id) is None:
                raise MappingNotFoundError(mapping_id) from e
            logger.info(f"Run already in progress for mapping {mapping_id}")
            raise RunConflictError(mapping_id) from e

        self.session.commit()
        logger.info(f"Started sync log {log.id} for mapping {mapping_id}")
        return log

    def record_failed_run(self, mapping_id: int | None, message: str) -> SyncLog:
        """Record a run that failed before it could claim the run slot."""
        log = self.repo.create_terminal(mapping_id, "failure", message)
        self.session.commit()
        logger.warning(f"Sync log {log.id} recorded as failed: {message}")
        return log

    def complete_run(
        self,
        log_id: int,
        status: str,
        records_processed: int,
        failed_records: int,
        message: str | None = None,
        errors: list[dict[str, Any]] | None = None,
    ) -> SyncLog:
        """Transition a running log to a terminal status.

        In the same transaction the mapping's status and counters are updated,
        the connection's last sync time is stamped on success or partial
        failure, and the run's errors are recorded. Completing a log that is
        already terminal changes nothing and returns the stored log.

        Args:
            log_id: ID of the running log.
            status: success, partial_failure or failure.
            records_processed: Rows attempted.
            failed_records: Rows that failed.
            message: Human-readable outcome.
            errors: Keyword arguments for SyncErrorRepository.create, one per error.

        Raises:
            SyncLogNotFoundError: If the log does not exist.
            ValueError: If the status or counts are invalid.
        """
        if status not in TERMINAL_STATUSES:
            raise ValueError(f"Not a terminal status: {status!r}")
        if records_processed < 0 or failed_records < 0 or failed_records > records_processed:
            raise ValueError(
                f"Invalid counts: processed={records_processed}, failed={failed_records}"
            )

        log = self.get_log(log_id)
        if log.is_terminal:
            logger.info(f"Sync log {log_id} already completed as {log.status}; ignoring")
            return log

        completed_at = datetime.utcnow()
        transitioned = self.repo.mark_terminal(
            log_id,
            status=status,
            records_processed=records_processed,
            failed_records=failed_records,
            message=message,
            completed_at=completed_at,
        )
        if not transitioned:
            # Another completion won the race
            self.session.rollback()
            log = self.get_log(log_id)
            logger.info(f"Sync log {log_id} was completed concurrently as {log.status}")
            return log

        mapping = self.mapping_repo.get_by_id(log.mapping_id) if log.mapping_id else None
        if mapping is not None:
            self.mapping_repo.record_run_outcome(
                mapping,
                status=status,
                records_processed=records_processed,
                failed_records=failed_records,
                completed_at=completed_at,
            )
            if status in ("success", "partial_failure"):
                connection = self.connection_repo.get_by_id(mapping.connection_id)
                if connection is not None:
                    self.connection_repo.stamp_last_sync(connection, completed_at)

        for error in errors or []:
            self.error_repo.create(mapping_id=log.mapping_id, log_id=log_id, **error)

        self.session.commit()
        self.session.refresh(log)
        logger.info(
            f"Sync log {log_id} completed: {status} "
            f"({records_processed} processed, {failed_records} failed)"
        )
        return log

    def force_complete(self, log_id: int, reason: str | None = None) -> SyncLog:
        """Complete a stale running log as a failure.

        Used to reclaim the run slot after a run crashed without completing.

        Raises:
            SyncLogNotFoundError: If the log does not exist.
            RunNotActiveError: If the log is already terminal.
        """
        log = self.get_log(log_id)
        if log.is_terminal:
            raise RunNotActiveError(log_id, log.status)

        message = f"Force-completed: {reason}" if reason else "Force-completed as stale"
        processed = log.records_processed or 0
        logger.warning(f"Force-completing sync log {log_id}: {message}")
        return self.complete_run(
            log_id,
            status="failure",
            records_processed=processed,
            failed_records=processed,
            message=message,
        )

    def request_cancel(self, log_id: int) -> SyncLog:
        """Ask a running sync to stop at its next batch boundary.

        Raises:
            SyncLogNotFoundError: If the log does not exist.
            RunNotActiveError: If the log is already terminal.
        """
        log = self.get_log(log_id)
        if log.is_terminal:
            raise RunNotActiveError(log_id, log.status)
        self.repo.set_cancel_requested(log)
        self.session.commit()
        logger.info(f"Cancellation requested for sync log {log_id}")
        return log

    def is_cancel_requested(self, log_id: int) -> bool:
        """Check the cancellation flag of a log."""
        return self.repo.is_cancel_requested(log_id)

    # -------------------------------------------------------------------------
    # History
    # -------------------------------------------------------------------------

    def get_log(self, log_id: int) -> SyncLog:
        """Get a sync log by id.

        Raises:
            SyncLogNotFoundError: If the log does not exist.
        """
        log = self.repo.get_by_id(log_id)
        if log is None:
            raise SyncLogNotFoundError(log_id)
        return log

    def get_running_log(self, mapping_id: int) -> SyncLog | None:
        """Get the running log for a mapping, if any."""
        return self.repo.get_running(mapping_id)

    def list_for_mapping(
        self,
        mapping_id: int,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[SyncLog]:
        """List a mapping's logs, newest first.

        Raises:
            MappingNotFoundError: If the mapping does not exist.
        """
        if self.session.get(Mapping, mapping_id) is None:
            raise MappingNotFoundError(mapping_id)
        return self.repo.list_for_mapping(mapping_id, limit=limit, offset=offset)

    def list_recent(self, limit: int = 50, status: str | None = None) -> list[SyncLog]:
        """List recent logs across all mappings, newest first."""
        return self.repo.list_recent(limit=limit, status=status)

    def get_stats(self, days: int = 30) -> list[SyncStatsEntry]:
        """Get per-day run totals for the last `days` days."""
        return [SyncStatsEntry.model_validate(row) for row in self.repo.daily_stats(days)]

    # -------------------------------------------------------------------------
    # Sync errors
    # -------------------------------------------------------------------------

    def record_error(
        self,
        error_type: str,
        error_message: str,
        mapping_id: int | None = None,
        log_id: int | None = None,
        record_data: dict[str, Any] | None = None,
        retryable: bool = False,
    ) -> SyncError:
        """Record a single sync error outside of run completion."""
        error = self.error_repo.create(
            error_type=error_type,
            error_message=error_message,
            mapping_id=mapping_id,
            log_id=log_id,
            record_data=record_data,
            retryable=retryable,
        )
        self.error_repo.flush()
        return error

    def list_errors(
        self,
        mapping_id: int | None = None,
        log_id: int | None = None,
        include_resolved: bool = False,
        limit: int = 100,
    ) -> list[SyncError]:
        """List recorded sync errors, newest first."""
        return self.error_repo.list_errors(
            mapping_id=mapping_id,
            log_id=log_id,
            include_resolved=include_resolved,
            limit=limit,
        )

    def resolve_error(self, error_id: int, notes: str | None = None) -> SyncError:
        """Mark a recorded sync error as resolved.

        Raises:
            SyncErrorNotFoundError: If the error does not exist.
        """
        error = self.error_repo.get_by_id(error_id)
        if error is None:
            raise SyncErrorNotFoundError(error_id)
        self.error_repo.resolve(error, notes)
        self.error_repo.flush()
        return error
