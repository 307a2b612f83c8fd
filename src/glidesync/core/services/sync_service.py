"""Sync orchestration: one run of one mapping."""

import asyncio
import json
import logging
import time
from contextlib import AsyncExitStack
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from glidesync.config import get_settings
from glidesync.core.coercion import CoercionError, coerce_value
from glidesync.core.endpoints import (
    ROW_ID_COLUMN,
    EndpointConnectionError,
    EndpointError,
    EndpointProvider,
    EndpointWriteError,
    SyncEndpoint,
)
from glidesync.core.events import EventBus, SyncRunCompletedEvent, get_event_bus
from glidesync.core.exceptions import MappingNotFoundError
from glidesync.core.models import ColumnMapping, Mapping, RowWriteResult, SyncLog, SyncRunResult
from glidesync.core.services.mapping_service import MappingService
from glidesync.core.services.sync_log_service import SyncLogService

logger = logging.getLogger(__name__)


def compute_terminal_status(records_processed: int, failed_records: int, aborted: bool) -> str:
    """Derive a run's terminal status from its tallies.

    Any abort is a failure. Otherwise a run with no failed rows is a success
    (including a run over an empty table), a run where every row failed is a
    failure, and anything in between is a partial failure.
    """
    if aborted:
        return "failure"
    if failed_records == 0:
        return "success"
    if failed_records >= records_processed:
        return "failure"
    return "partial_failure"


def _jsonable(row: dict[str, Any]) -> dict[str, Any]:
    return json.loads(json.dumps(row, default=str))


@dataclass
class _RunTally:
    """Counts and recorded errors accumulated across the passes of a run."""

    records_processed: int = 0
    failed_records: int = 0
    aborted: bool = False
    abort_reason: str | None = None
    cancelled: bool = False
    errors: list[dict[str, Any]] = field(default_factory=list)

    def abort(self, reason: str, cancelled: bool = False) -> None:
        self.aborted = True
        self.cancelled = cancelled
        self.abort_reason = reason

    def message(self) -> str:
        succeeded = self.records_processed - self.failed_records
        counts = (
            f"{succeeded} of {self.records_processed} record(s) synced, "
            f"{self.failed_records} failed"
        )
        if self.aborted:
            return f"{self.abort_reason} ({counts})"
        return f"Sync completed: {counts}"


@dataclass
class _Pass:
    """One directional pass: where rows come from, where they go, and how."""

    direction: str
    reader: SyncEndpoint
    read_table: str
    writer: SyncEndpoint
    write_table: str
    # (read column, write column, data type)
    columns: list[tuple[str, str, str]]
    key_column: str | None


class SyncOrchestrator:
    """Executes sync runs for mappings.

    A run claims the mapping's run slot by creating a running log, reads the
    read side in batches, projects and coerces each row through the column
    mappings, writes each batch to the write side, and completes the log with
    tallies and a terminal status. Batches are processed strictly one after
    another.

    Failure handling:
    - a row that fails coercion is counted as failed and the batch goes on
    - a rejected batch write counts every row of the batch as failed
    - a connection failure on either side aborts the run; the batch in flight
      is not counted
    - a cancellation request is honoured at the next batch boundary

    Every run that claims a slot ends in a terminal log, whatever happens.

    Usage:
        orchestrator = SyncOrchestrator(session)
        result = orchestrator.run_mapping(mapping_id)
    """

    def __init__(
        self,
        session: Session,
        endpoints: EndpointProvider | None = None,
        batch_size: int | None = None,
        mapping_service: MappingService | None = None,
        log_service: SyncLogService | None = None,
        event_bus: EventBus | None = None,
        finalize_retries: int | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            session: SQLAlchemy database session.
            endpoints: Builds source and sink endpoints for a connection.
            batch_size: Rows per batch. Defaults to GLIDESYNC_SYNC_BATCH_SIZE.
            mapping_service: Mapping store.
            log_service: Sync log store.
            event_bus: Receives a SyncRunCompletedEvent per run.
            finalize_retries: Attempts to commit the completion of a run.
        """
        settings = get_settings()
        self.session = session
        self.endpoints = endpoints or EndpointProvider(settings)
        self.batch_size = batch_size or settings.sync_batch_size
        self.mapping_service = mapping_service or MappingService(session, endpoints=self.endpoints)
        self.log_service = log_service or SyncLogService(session)
        self.event_bus = event_bus or get_event_bus()
        self.finalize_retries = finalize_retries or settings.finalize_retries
        self.finalize_wait = wait_exponential(multiplier=0.1, max=2)

        if self.batch_size < 1:
            raise ValueError(f"batch_size must be positive, got {self.batch_size}")

    def run_mapping(self, mapping_id: int) -> SyncRunResult:
        """Run a mapping synchronously.

        Raises:
            RunConflictError: If a run is already in progress for the mapping.
        """
        return asyncio.run(self.execute(mapping_id))

    async def execute(self, mapping_id: int) -> SyncRunResult:
        """Run a mapping.

        A missing mapping is recorded as a failed run without a mapping
        reference. A disabled mapping claims the slot and fails immediately
        with zero records.

        Raises:
            RunConflictError: If a run is already in progress for the mapping.
        """
        started = time.perf_counter()

        mapping = self.mapping_service.repo.get_with_connection(mapping_id)
        if mapping is None:
            log = self.log_service.record_failed_run(None, f"Mapping {mapping_id} not found")
            return self._result(log, started)

        try:
            log = self.log_service.start_run(mapping_id)
        except MappingNotFoundError:
            # Deleted after it was loaded
            log = self.log_service.record_failed_run(None, f"Mapping {mapping_id} not found")
            return self._result(log, started)
        log_id = log.id
        tally = _RunTally()

        if not mapping.enabled:
            tally.abort(f"Mapping {mapping_id} is disabled")
        else:
            logger.info(
                f"Sync log {log_id}: running mapping {mapping_id} "
                f"({mapping.source_table} {mapping.sync_direction} {mapping.sink_table})"
            )
            try:
                await self._run_passes(mapping, log_id, tally)
            except EndpointError as e:
                logger.error(f"Sync log {log_id}: connection failure: {e}")
                self._record_connection_failure(tally, e)
            except Exception as e:
                logger.exception(f"Sync log {log_id}: unexpected error: {e}")
                tally.abort(f"Sync aborted by unexpected error: {e}")

        log = self._finalize(log_id, tally)
        result = self._result(log, started)
        logger.info(
            f"Sync log {log_id} finished {result.status}: "
            f"{result.records_processed} processed, {result.failed_records} failed"
        )
        return result

    # -------------------------------------------------------------------------
    # Passes
    # -------------------------------------------------------------------------

    async def _run_passes(self, mapping: Mapping, log_id: int, tally: _RunTally) -> None:
        column_mappings = mapping.get_column_mappings()
        connection = mapping.connection

        async with AsyncExitStack() as stack:
            source = await stack.enter_async_context(self.endpoints.source_for(connection))
            sink = await stack.enter_async_context(self.endpoints.sink_for(connection))

            for direction in self._directions(mapping.sync_direction):
                sync_pass = self._build_pass(direction, mapping, column_mappings, source, sink)
                await self._run_pass(sync_pass, log_id, mapping.id, tally)
                if tally.aborted:
                    break

    @staticmethod
    def _directions(sync_direction: str) -> list[str]:
        if sync_direction == "bidirectional":
            return ["to_sink", "to_source"]
        return [sync_direction]

    @staticmethod
    def _build_pass(
        direction: str,
        mapping: Mapping,
        column_mappings: list[ColumnMapping],
        source: SyncEndpoint,
        sink: SyncEndpoint,
    ) -> _Pass:
        row_id_sink = next(
            (cm.sink_column for cm in column_mappings if cm.source_column == ROW_ID_COLUMN),
            None,
        )
        if direction == "to_sink":
            return _Pass(
                direction=direction,
                reader=source,
                read_table=mapping.source_table,
                writer=sink,
                write_table=mapping.sink_table,
                columns=[
                    (cm.source_column, cm.sink_column, cm.data_type) for cm in column_mappings
                ],
                key_column=row_id_sink,
            )
        return _Pass(
            direction=direction,
            reader=sink,
            read_table=mapping.sink_table,
            writer=source,
            write_table=mapping.source_table,
            columns=[(cm.sink_column, cm.source_column, cm.data_type) for cm in column_mappings],
            key_column=ROW_ID_COLUMN if row_id_sink else None,
        )

    async def _run_pass(
        self,
        sync_pass: _Pass,
        log_id: int,
        mapping_id: int,
        tally: _RunTally,
    ) -> None:
        cursor: str | None = None
        batch_number = 0

        while True:
            if self.log_service.is_cancel_requested(log_id):
                logger.info(f"Sync log {log_id}: cancelled before batch {batch_number + 1}")
                tally.abort("Sync cancelled", cancelled=True)
                return

            try:
                page = await sync_pass.reader.read_rows(
                    sync_pass.read_table, cursor, self.batch_size
                )
            except EndpointError as e:
                logger.error(f"Sync log {log_id}: read from {sync_pass.read_table} failed: {e}")
                self._record_connection_failure(tally, e)
                return

            batch_number += 1
            batch_failed = 0
            batch_errors: list[dict[str, Any]] = []
            projected: list[tuple[dict[str, Any], dict[str, Any]]] = []

            for row in page.rows:
                try:
                    projected.append((row, self._project(row, sync_pass.columns)))
                except CoercionError as e:
                    batch_failed += 1
                    batch_errors.append(self._row_error("TRANSFORM_ERROR", str(e), row))
                    logger.debug(f"Sync log {log_id}: row skipped: {e}")

            if projected:
                try:
                    results = await sync_pass.writer.write_rows(
                        sync_pass.write_table,
                        [values for _, values in projected],
                        key_column=sync_pass.key_column,
                    )
                except EndpointWriteError as e:
                    logger.warning(f"Sync log {log_id}: batch {batch_number} rejected: {e}")
                    batch_failed += len(projected)
                    batch_errors.extend(
                        self._row_error("WRITE_ERROR", e.message, row, retryable=True)
                        for row, _ in projected
                    )
                except EndpointError as e:
                    # The batch in flight is dropped from the tally
                    logger.error(f"Sync log {log_id}: write to {sync_pass.write_table} failed: {e}")
                    self._record_connection_failure(tally, e)
                    return
                else:
                    missing = len(projected) - len(results)
                    if missing > 0:
                        results = list(results) + [
                            RowWriteResult(success=False, error="No result returned for row")
                        ] * missing
                    for (row, _), outcome in zip(projected, results):
                        if not outcome.success:
                            batch_failed += 1
                            batch_errors.append(
                                self._row_error(
                                    "WRITE_ERROR",
                                    outcome.error or "Write failed",
                                    row,
                                    retryable=True,
                                )
                            )

            tally.records_processed += len(page.rows)
            tally.failed_records += batch_failed
            tally.errors.extend(batch_errors)
            logger.debug(
                f"Sync log {log_id}: {sync_pass.direction} batch {batch_number}: "
                f"{len(page.rows)} row(s), {batch_failed} failed"
            )

            if page.next_cursor is None:
                return
            cursor = page.next_cursor

    @staticmethod
    def _project(row: dict[str, Any], columns: list[tuple[str, str, str]]) -> dict[str, Any]:
        """Map a read-side row to write-side column names, coercing each value.

        Raises:
            CoercionError: If any value does not fit its declared type.
        """
        return {
            write_column: coerce_value(row.get(read_column), data_type)
            for read_column, write_column, data_type in columns
        }

    @staticmethod
    def _row_error(
        error_type: str,
        message: str,
        row: dict[str, Any] | None,
        retryable: bool = False,
    ) -> dict[str, Any]:
        return {
            "error_type": error_type,
            "error_message": message,
            "record_data": _jsonable(row) if row is not None else None,
            "retryable": retryable,
        }

    def _record_connection_failure(self, tally: _RunTally, error: EndpointError) -> None:
        if isinstance(error, EndpointConnectionError):
            tally.abort(f"Connection failure: {error.message}")
        else:
            tally.abort(f"Sync aborted: {error.message}")
        tally.errors.append(
            self._row_error("CONNECTION_ERROR", error.message, None, retryable=True)
        )

    # -------------------------------------------------------------------------
    # Completion
    # -------------------------------------------------------------------------

    def _finalize(self, log_id: int, tally: _RunTally) -> SyncLog:
        """Complete the log and fold the run into the mapping, with retries."""
        status = compute_terminal_status(
            tally.records_processed,
            tally.failed_records,
            tally.aborted,
        )
        message = tally.message()

        def _before_retry(state: RetryCallState) -> None:
            self.session.rollback()
            logger.warning(
                f"Sync log {log_id}: completion attempt {state.attempt_number} failed: "
                f"{state.outcome.exception()}"
            )

        retrying = Retrying(
            stop=stop_after_attempt(self.finalize_retries),
            wait=self.finalize_wait,
            retry=retry_if_exception_type(SQLAlchemyError),
            before_sleep=_before_retry,
            reraise=True,
        )
        try:
            return retrying(
                self.log_service.complete_run,
                log_id,
                status=status,
                records_processed=tally.records_processed,
                failed_records=tally.failed_records,
                message=message,
                errors=tally.errors,
            )
        except SQLAlchemyError:
            self.session.rollback()
            logger.exception(
                f"Sync log {log_id}: could not record completion after "
                f"{self.finalize_retries} attempts"
            )
            raise

    def _result(self, log: SyncLog, started: float) -> SyncRunResult:
        result = SyncRunResult(
            log_id=log.id,
            mapping_id=log.mapping_id,
            status=log.status,
            records_processed=log.records_processed,
            failed_records=log.failed_records,
            message=log.message or "",
        )
        self.event_bus.emit(
            SyncRunCompletedEvent.create(
                log_id=result.log_id,
                mapping_id=result.mapping_id,
                status=result.status,
                records_processed=result.records_processed,
                failed_records=result.failed_records,
                message=result.message,
                duration_seconds=round(time.perf_counter() - started, 3),
            )
        )
        return result
