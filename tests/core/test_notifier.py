"""Tests for the change notifier."""

import pytest

from glidesync.core.notifier import ChangeNotifier, RowChangeEvent, RowPredicate


def _insert(table: str = "orders", **record) -> RowChangeEvent:
    return RowChangeEvent(table=table, event_type="insert", row_id=record.get("id"), record=record)


class TestRowPredicate:
    """Test cases for predicate parsing and matching."""

    def test_parse_eq(self):
        predicate = RowPredicate.parse("status=eq.active")
        assert predicate.column == "status"
        assert predicate.operator == "eq"
        assert predicate.values == ("active",)

    def test_parse_in(self):
        predicate = RowPredicate.parse("id=in.(1, 2,3)")
        assert predicate.values == ("1", "2", "3")

    @pytest.mark.parametrize("text", ["status", "status=active", "status=like.a%", "=eq.1"])
    def test_parse_rejects_malformed(self, text):
        with pytest.raises(ValueError):
            RowPredicate.parse(text)

    def test_numeric_comparison(self):
        predicate = RowPredicate.parse("total=gt.10")
        assert predicate.matches({"total": 11})
        assert not predicate.matches({"total": 9.5})
        # "9" > "10" as text, but not as numbers
        assert not predicate.matches({"total": 9})

    def test_in_matches_any_value(self):
        predicate = RowPredicate.parse("id=in.(1,2,3)")
        assert predicate.matches({"id": 2})
        assert not predicate.matches({"id": 4})

    def test_null_only_matches_neq(self):
        assert RowPredicate.parse("status=neq.active").matches({"status": None})
        assert not RowPredicate.parse("status=eq.active").matches({"status": None})

    def test_missing_column_never_matches(self):
        assert not RowPredicate.parse("status=neq.active").matches({"other": 1})


class TestChangeNotifier:
    """Test cases for ChangeNotifier."""

    def test_publish_to_matching_table(self):
        notifier = ChangeNotifier()
        received = []
        notifier.subscribe("orders", "all", received.append)
        notifier.subscribe("customers", "all", received.append)

        delivered = notifier.publish(_insert(id=1))

        assert delivered == 1
        assert received[0].table == "orders"

    def test_event_filter(self):
        notifier = ChangeNotifier()
        received = []
        notifier.subscribe("orders", "update", received.append)

        notifier.publish(_insert(id=1))
        notifier.publish(
            RowChangeEvent(table="orders", event_type="update", row_id=1, record={"id": 1})
        )

        assert [e.event_type for e in received] == ["update"]

    def test_predicate_filter_uses_old_record_for_deletes(self):
        notifier = ChangeNotifier()
        received = []
        notifier.subscribe("orders", "all", received.append, predicate="status=eq.open")

        notifier.publish(_insert(id=1, status="closed"))
        notifier.publish(
            RowChangeEvent(
                table="orders",
                event_type="delete",
                row_id=2,
                record=None,
                old_record={"id": 2, "status": "open"},
            )
        )

        assert [e.row_id for e in received] == [2]

    def test_invalid_filter_raises(self):
        notifier = ChangeNotifier()
        with pytest.raises(ValueError):
            notifier.subscribe("orders", "truncate", lambda event: None)
        with pytest.raises(ValueError):
            notifier.subscribe("orders", "all", lambda event: None, predicate="bad")

    def test_unsubscribe_is_idempotent(self):
        notifier = ChangeNotifier()
        received = []
        subscription = notifier.subscribe("orders", "all", received.append)

        subscription.unsubscribe()
        subscription.unsubscribe()
        notifier.publish(_insert(id=1))

        assert received == []
        assert not subscription.active
        assert notifier.subscriptions() == []

    def test_subscription_as_context_manager(self):
        notifier = ChangeNotifier()
        with notifier.subscribe("orders", "all", lambda event: None) as subscription:
            assert notifier.subscriptions("orders") == [subscription]
        assert notifier.subscriptions("orders") == []

    def test_failing_callback_does_not_block_others(self):
        notifier = ChangeNotifier()
        received = []

        def broken(event):
            raise RuntimeError("boom")

        notifier.subscribe("orders", "all", broken)
        notifier.subscribe("orders", "all", received.append)

        assert notifier.publish(_insert(id=1)) == 2
        assert len(received) == 1
