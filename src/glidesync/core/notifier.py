"""Row change notifications for sink tables.

The notifier is the in-process end of the sink's change feed: whatever
listens to the database (a Supabase realtime channel, a Postgres LISTEN
loop, or a test) calls `publish`, and subscribers registered for that
table receive the event.
"""

import itertools
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Literal

logger = logging.getLogger(__name__)

EventFilter = Literal["insert", "update", "delete", "all"]
ROW_EVENT_TYPES: tuple[str, ...] = ("insert", "update", "delete")

_PREDICATE_OPERATORS = ("eq", "neq", "gt", "gte", "lt", "lte", "in")


@dataclass(frozen=True)
class RowChangeEvent:
    """One row-level change on a sink table.

    `record` is the new state of the row (None for deletes) and
    `old_record` the previous state when the feed provides it.
    """

    table: str
    event_type: str
    row_id: Any = None
    record: dict[str, Any] | None = None
    old_record: dict[str, Any] | None = None


RowChangeCallback = Callable[[RowChangeEvent], None]


@dataclass(frozen=True)
class RowPredicate:
    """Filter of the form `column=op.value`, e.g. `status=eq.active`.

    Supported operators: eq, neq, gt, gte, lt, lte and in (`id=in.(1,2,3)`).
    """

    column: str
    operator: str
    values: tuple[str, ...]

    @classmethod
    def parse(cls, text: str) -> "RowPredicate":
        """Parse a predicate string.

        Raises:
            ValueError: If the predicate is malformed.
        """
        column, sep, rest = text.partition("=")
        operator, dot, raw_value = rest.partition(".")
        column = column.strip()
        if not sep or not dot or not column:
            raise ValueError(f"Invalid predicate {text!r}: expected 'column=op.value'")
        if operator not in _PREDICATE_OPERATORS:
            raise ValueError(f"Invalid predicate {text!r}: unknown operator {operator!r}")

        if operator == "in":
            if not (raw_value.startswith("(") and raw_value.endswith(")")):
                raise ValueError(f"Invalid predicate {text!r}: 'in' expects (a,b,...)")
            values = tuple(v.strip() for v in raw_value[1:-1].split(",") if v.strip())
        else:
            values = (raw_value,)
        return cls(column=column, operator=operator, values=values)

    def matches(self, record: dict[str, Any] | None) -> bool:
        """Check whether a row satisfies the predicate."""
        if not record or self.column not in record:
            return False
        actual = record[self.column]

        if self.operator == "in":
            return any(_compare(actual, value) == 0 for value in self.values)

        result = _compare(actual, self.values[0])
        if result is None:
            return self.operator == "neq"
        return {
            "eq": result == 0,
            "neq": result != 0,
            "gt": result > 0,
            "gte": result >= 0,
            "lt": result < 0,
            "lte": result <= 0,
        }[self.operator]


def _compare(actual: Any, expected: str) -> int | None:
    """Three-way compare a row value with a predicate literal.

    Numbers compare numerically and everything else as text. Returns None
    when the row value is null.
    """
    if actual is None:
        return None
    if isinstance(actual, bool):
        left: Any = str(actual).lower()
        right: Any = expected.lower()
    elif isinstance(actual, (int, float)):
        try:
            left, right = float(actual), float(expected)
        except ValueError:
            left, right = str(actual), expected
    else:
        left, right = str(actual), expected
    return (left > right) - (left < right)


@dataclass(eq=False)
class Subscription:
    """Handle for one registration with a ChangeNotifier.

    Calling `unsubscribe` more than once is harmless. Used as a context
    manager, the subscription is removed on exit.
    """

    id: int
    sink_table: str
    event_filter: str
    callback: RowChangeCallback
    predicate: RowPredicate | None = None
    _notifier: "ChangeNotifier | None" = field(default=None, repr=False)

    @property
    def active(self) -> bool:
        return self._notifier is not None

    def accepts(self, event: RowChangeEvent) -> bool:
        if event.table != self.sink_table:
            return False
        if self.event_filter != "all" and event.event_type != self.event_filter:
            return False
        if self.predicate is None:
            return True
        record = event.old_record if event.event_type == "delete" else event.record
        return self.predicate.matches(record)

    def unsubscribe(self) -> None:
        notifier, self._notifier = self._notifier, None
        if notifier is not None:
            notifier._remove(self)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.unsubscribe()


class ChangeNotifier:
    """Dispatches sink row change events to subscribers.

    The notifier never starts a sync itself; SyncTrigger wires it to the
    orchestrator. Delivery is synchronous on the publishing thread. A failing
    callback is logged and does not stop delivery to the others.
    """

    def __init__(self) -> None:
        self._subscriptions: dict[str, list[Subscription]] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def subscribe(
        self,
        sink_table: str,
        event_filter: str,
        callback: RowChangeCallback,
        predicate: str | None = None,
    ) -> Subscription:
        """Register a callback for changes on a sink table.

        Args:
            sink_table: Table to watch.
            event_filter: insert, update, delete or all.
            callback: Called with each matching RowChangeEvent.
            predicate: Optional row filter such as `status=eq.active`.

        Returns:
            Subscription handle used to unsubscribe.

        Raises:
            ValueError: If the event filter or predicate is invalid.
        """
        if event_filter != "all" and event_filter not in ROW_EVENT_TYPES:
            raise ValueError(f"Invalid event filter: {event_filter!r}")
        parsed = RowPredicate.parse(predicate) if predicate else None

        with self._lock:
            subscription = Subscription(
                id=next(self._ids),
                sink_table=sink_table,
                event_filter=event_filter,
                callback=callback,
                predicate=parsed,
                _notifier=self,
            )
            self._subscriptions.setdefault(sink_table, []).append(subscription)

        logger.debug(
            f"Subscription {subscription.id} registered for {event_filter} on {sink_table}"
        )
        return subscription

    def _remove(self, subscription: Subscription) -> None:
        with self._lock:
            subscriptions = self._subscriptions.get(subscription.sink_table, [])
            if subscription in subscriptions:
                subscriptions.remove(subscription)
            if not subscriptions:
                self._subscriptions.pop(subscription.sink_table, None)
        logger.debug(f"Subscription {subscription.id} removed")

    def subscriptions(self, sink_table: str | None = None) -> list[Subscription]:
        """List active subscriptions, optionally for one table."""
        with self._lock:
            if sink_table is not None:
                return list(self._subscriptions.get(sink_table, []))
            return [sub for subs in self._subscriptions.values() for sub in subs]

    def publish(self, event: RowChangeEvent) -> int:
        """Deliver an event to every matching subscription.

        Returns:
            Number of callbacks invoked.
        """
        delivered = 0
        for subscription in self.subscriptions(event.table):
            if not subscription.accepts(event):
                continue
            delivered += 1
            try:
                subscription.callback(event)
            except Exception as e:
                logger.exception(
                    f"Error in change callback for subscription {subscription.id}: {e}"
                )
        return delivered
