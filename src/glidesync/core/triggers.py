"""Debounced wiring from sink change notifications to sync runs."""

import logging
import threading
from collections.abc import Callable, Iterable
from datetime import datetime, timedelta, timezone
from typing import Any

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler

from glidesync.core.exceptions import RunConflictError
from glidesync.core.models import Mapping
from glidesync.core.notifier import ChangeNotifier, RowChangeEvent, Subscription

logger = logging.getLogger(__name__)

# Only these directions carry sink changes anywhere
PROPAGATING_DIRECTIONS: tuple[str, ...] = ("to_source", "bidirectional")

JOB_PREFIX = "mapping-"


def _job_id(mapping_id: int) -> str:
    return f"{JOB_PREFIX}{mapping_id}"


class SyncTrigger:
    """Starts sync runs when watched sink tables change.

    Events are coalesced per mapping: the first change schedules a one-off
    APScheduler job at the end of the debounce window, and further changes
    are absorbed while that job is pending. A run refused because one is
    already in progress is logged and dropped; the running pass will pick
    the change up or the next change will schedule a new job.

    Usage:
        trigger = SyncTrigger(notifier, lambda mapping_id: orchestrator.run_mapping(mapping_id))
        trigger.watch_mappings(mapping_service.list_mappings(enabled=True))
        ...
        trigger.close()
    """

    def __init__(
        self,
        notifier: ChangeNotifier,
        run_mapping: Callable[[int], Any],
        debounce_seconds: float = 2.0,
        scheduler: BackgroundScheduler | None = None,
    ) -> None:
        self.notifier = notifier
        self.run_mapping = run_mapping
        self.debounce_seconds = debounce_seconds
        self._owns_scheduler = scheduler is None
        self.scheduler = scheduler or BackgroundScheduler(timezone="UTC")
        if not self.scheduler.running:
            self.scheduler.start()
        self._subscriptions: dict[int, Subscription] = {}
        self._lock = threading.Lock()

    def watch(self, mapping_id: int, sink_table: str, predicate: str | None = None) -> None:
        """Start watching a sink table on behalf of a mapping."""
        self.unwatch(mapping_id)
        subscription = self.notifier.subscribe(
            sink_table,
            "all",
            lambda event: self._on_change(mapping_id, event),
            predicate=predicate,
        )
        with self._lock:
            self._subscriptions[mapping_id] = subscription
        logger.info(f"Watching {sink_table} for mapping {mapping_id}")

    def watch_mappings(
        self,
        mappings: Iterable[Mapping],
        directions: tuple[str, ...] = PROPAGATING_DIRECTIONS,
    ) -> int:
        """Watch the sink tables of enabled mappings.

        Returns:
            Number of mappings now watched.
        """
        count = 0
        for mapping in mappings:
            if mapping.enabled and mapping.sync_direction in directions:
                self.watch(mapping.id, mapping.sink_table)
                count += 1
        return count

    def unwatch(self, mapping_id: int) -> None:
        """Stop watching for a mapping and drop any pending run."""
        with self._lock:
            subscription = self._subscriptions.pop(mapping_id, None)
            self._cancel_job(mapping_id)
        if subscription is not None:
            subscription.unsubscribe()

    @property
    def pending(self) -> list[int]:
        """Mapping ids with a run waiting for its debounce window."""
        return sorted(
            int(job.id[len(JOB_PREFIX) :])
            for job in self.scheduler.get_jobs()
            if job.id.startswith(JOB_PREFIX)
        )

    def _cancel_job(self, mapping_id: int) -> bool:
        try:
            self.scheduler.remove_job(_job_id(mapping_id))
        except JobLookupError:
            # Nothing pending, or the job has just started
            return False
        return True

    def _on_change(self, mapping_id: int, event: RowChangeEvent) -> None:
        with self._lock:
            if self.scheduler.get_job(_job_id(mapping_id)) is not None:
                return
            self.scheduler.add_job(
                self._fire,
                "date",
                run_date=datetime.now(timezone.utc) + timedelta(seconds=self.debounce_seconds),
                args=[mapping_id],
                id=_job_id(mapping_id),
                replace_existing=False,
                misfire_grace_time=None,
            )
        logger.debug(f"{event.event_type} on {event.table} scheduled a run of mapping {mapping_id}")

    def _fire(self, mapping_id: int) -> None:
        try:
            self.run_mapping(mapping_id)
        except RunConflictError:
            logger.info(f"Mapping {mapping_id} is already syncing; change-triggered run skipped")
        except Exception as e:
            logger.exception(f"Change-triggered run of mapping {mapping_id} failed: {e}")

    def flush(self) -> None:
        """Run every pending mapping now instead of waiting for its job."""
        for mapping_id in self.pending:
            with self._lock:
                cancelled = self._cancel_job(mapping_id)
            if cancelled:
                self._fire(mapping_id)

    def close(self) -> None:
        """Unsubscribe everything and cancel pending runs."""
        with self._lock:
            mapping_ids = list(self._subscriptions)
        for mapping_id in mapping_ids:
            self.unwatch(mapping_id)
        if self._owns_scheduler and self.scheduler.running:
            self.scheduler.shutdown(wait=False)
