"""Tests for SyncLogRepository and SyncErrorRepository."""

from datetime import datetime, timedelta

import pytest
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from glidesync.core.models import Mapping
from glidesync.core.repositories import SyncErrorRepository, SyncLogRepository


class TestSyncLogRepository:
    """Test cases for SyncLogRepository."""

    def test_create_running(self, test_db: Session, sample_mapping: Mapping):
        """A running log starts with zero counts."""
        repo = SyncLogRepository(test_db)

        log = repo.create_running(sample_mapping.id)
        test_db.commit()

        assert log.status == "running"
        assert log.records_processed == 0
        assert log.failed_records == 0
        assert log.cancel_requested is False
        assert log.completed_at is None
        assert repo.get_running(sample_mapping.id).id == log.id

    def test_second_running_log_violates_index(self, test_db: Session, sample_mapping: Mapping):
        """Only one running log may exist per mapping."""
        repo = SyncLogRepository(test_db)
        repo.create_running(sample_mapping.id)
        test_db.commit()

        with pytest.raises(IntegrityError):
            repo.create_running(sample_mapping.id)
        test_db.rollback()

    def test_terminal_logs_do_not_block_running(self, test_db: Session, sample_mapping: Mapping):
        """Any number of terminal logs may coexist with one running log."""
        repo = SyncLogRepository(test_db)
        repo.create_terminal(sample_mapping.id, "success", "ok")
        repo.create_terminal(sample_mapping.id, "failure", "bad")

        log = repo.create_running(sample_mapping.id)
        test_db.commit()

        assert log.id is not None

    def test_mark_terminal_only_once(self, test_db: Session, sample_mapping: Mapping):
        """The conditional update matches a running log exactly once."""
        repo = SyncLogRepository(test_db)
        log = repo.create_running(sample_mapping.id)
        test_db.commit()
        now = datetime.utcnow()

        assert repo.mark_terminal(log.id, "success", 10, 0, "done", now) is True
        assert repo.mark_terminal(log.id, "failure", 99, 99, "late", now) is False
        test_db.commit()
        test_db.refresh(log)

        assert log.status == "success"
        assert log.records_processed == 10

    def test_cancel_flag(self, test_db: Session, sample_mapping: Mapping):
        """The cancellation flag is read from the database."""
        repo = SyncLogRepository(test_db)
        log = repo.create_running(sample_mapping.id)
        test_db.commit()

        assert repo.is_cancel_requested(log.id) is False
        repo.set_cancel_requested(log)
        test_db.commit()
        assert repo.is_cancel_requested(log.id) is True

    def test_list_for_mapping_newest_first(self, test_db: Session, sample_mapping: Mapping):
        """Logs list newest first."""
        repo = SyncLogRepository(test_db)
        older = repo.create_terminal(sample_mapping.id, "success", "first")
        older.started_at = datetime.utcnow() - timedelta(hours=1)
        newer = repo.create_terminal(sample_mapping.id, "failure", "second")
        test_db.commit()

        assert [log.id for log in repo.list_for_mapping(sample_mapping.id)] == [newer.id, older.id]
        assert [log.id for log in repo.list_recent(status="success")] == [older.id]

    def test_daily_stats(self, test_db: Session, sample_mapping: Mapping):
        """Runs aggregate per day."""
        repo = SyncLogRepository(test_db)
        for status, processed in (("success", 10), ("failure", 5), ("partial_failure", 7)):
            log = repo.create_terminal(sample_mapping.id, status, status)
            log.records_processed = processed
        test_db.commit()

        stats = repo.daily_stats(days=7)

        assert len(stats) == 1
        assert stats[0]["syncs"] == 3
        assert stats[0]["successful_syncs"] == 1
        assert stats[0]["failed_syncs"] == 1
        assert stats[0]["total_records_processed"] == 22


class TestSyncErrorRepository:
    """Test cases for SyncErrorRepository."""

    def test_list_and_resolve(self, test_db: Session, sample_mapping: Mapping):
        """Resolved errors are hidden unless requested."""
        repo = SyncErrorRepository(test_db)
        first = repo.create(
            error_type="TRANSFORM_ERROR",
            error_message="bad number",
            mapping_id=sample_mapping.id,
            record_data={"Total Amount": "abc"},
        )
        repo.create(error_type="WRITE_ERROR", error_message="rejected", retryable=True)
        test_db.commit()

        assert len(repo.list_errors()) == 2
        assert [e.id for e in repo.list_errors(mapping_id=sample_mapping.id)] == [first.id]

        repo.resolve(first, notes="fixed in Glide")
        test_db.commit()

        assert len(repo.list_errors()) == 1
        assert len(repo.list_errors(include_resolved=True)) == 2
        assert first.resolution_notes == "fixed in Glide"
        assert first.resolved_at is not None
