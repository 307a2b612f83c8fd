"""Tests for sync log and sync error endpoints."""

from typing import Any

import pytest
from fastapi.testclient import TestClient

from glidesync.core.services import SyncLogService


@pytest.fixture
def running_log(test_session_factory, api_enabled_mapping: dict[str, Any]) -> int:
    """Claim the run slot of the API mapping and return the log id."""
    with test_session_factory() as session:
        return SyncLogService(session).start_run(api_enabled_mapping["id"]).id


@pytest.fixture
def failed_run(
    client: TestClient, api_enabled_mapping: dict[str, Any], fake_source
) -> dict[str, Any]:
    """Run the API mapping with two rows that cannot be converted."""
    rows = fake_source.tables["native-table-orders"]
    rows[0]["Total Amount"] = "n/a"
    rows[1]["Total Amount"] = "twelve"
    response = client.post(f"/api/v1/mappings/{api_enabled_mapping['id']}/run")
    assert response.status_code == 200
    return response.json()


class TestSyncLogs:
    """Tests for /api/v1/sync/logs."""

    def test_list_logs_empty(self, client: TestClient):
        response = client.get("/api/v1/sync/logs")

        assert response.status_code == 200
        assert response.json() == []

    def test_list_logs(self, client: TestClient, failed_run: dict[str, Any], running_log: int):
        all_logs = client.get("/api/v1/sync/logs").json()
        running = client.get("/api/v1/sync/logs", params={"status": "running"}).json()

        assert {log["id"] for log in all_logs} == {failed_run["log_id"], running_log}
        assert [log["id"] for log in running] == [running_log]

    def test_get_log(self, client: TestClient, failed_run: dict[str, Any]):
        response = client.get(f"/api/v1/sync/logs/{failed_run['log_id']}")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "partial_failure"
        assert data["records_processed"] == 100
        assert data["failed_records"] == 2
        assert data["completed_at"] is not None

    def test_get_log_not_found(self, client: TestClient):
        response = client.get("/api/v1/sync/logs/999")

        assert response.status_code == 404
        assert response.json()["error"] == "sync_log_not_found"


class TestRunControl:
    """Tests for cancelling and force-completing runs."""

    def test_cancel_running(self, client: TestClient, running_log: int):
        response = client.post(f"/api/v1/sync/logs/{running_log}/cancel")

        assert response.status_code == 200
        data = response.json()
        assert data["cancel_requested"] is True
        assert data["status"] == "running"

    def test_cancel_finished(self, client: TestClient, failed_run: dict[str, Any]):
        response = client.post(f"/api/v1/sync/logs/{failed_run['log_id']}/cancel")

        assert response.status_code == 409
        assert response.json()["error"] == "sync_not_running"

    def test_force_complete(
        self, client: TestClient, running_log: int, api_enabled_mapping: dict[str, Any]
    ):
        response = client.post(
            f"/api/v1/sync/logs/{running_log}/force-complete",
            json={"reason": "worker crashed"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "failure"
        assert "worker crashed" in data["message"]

        run = client.post(f"/api/v1/mappings/{api_enabled_mapping['id']}/run")
        assert run.status_code == 200
        assert run.json()["status"] == "success"

    def test_force_complete_without_reason(self, client: TestClient, running_log: int):
        response = client.post(f"/api/v1/sync/logs/{running_log}/force-complete")

        assert response.status_code == 200
        assert response.json()["message"] == "Force-completed as stale"

    def test_force_complete_finished(self, client: TestClient, failed_run: dict[str, Any]):
        response = client.post(f"/api/v1/sync/logs/{failed_run['log_id']}/force-complete")

        assert response.status_code == 409


class TestSyncStats:
    """Tests for /api/v1/sync/stats."""

    def test_stats(self, client: TestClient, failed_run: dict[str, Any]):
        response = client.get("/api/v1/sync/stats", params={"days": 7})

        assert response.status_code == 200
        entries = response.json()
        assert len(entries) == 1
        assert entries[0]["syncs"] == 1
        assert entries[0]["successful_syncs"] == 0
        assert entries[0]["total_records_processed"] == 100

    def test_stats_invalid_days(self, client: TestClient):
        assert client.get("/api/v1/sync/stats", params={"days": 0}).status_code == 422


class TestSyncErrors:
    """Tests for /api/v1/sync/errors."""

    def test_list_errors(self, client: TestClient, failed_run: dict[str, Any]):
        response = client.get("/api/v1/sync/errors", params={"log_id": failed_run["log_id"]})

        assert response.status_code == 200
        errors = response.json()
        assert len(errors) == 2
        assert {e["error_type"] for e in errors} == {"TRANSFORM_ERROR"}
        assert all(e["resolved_at"] is None for e in errors)
        assert {e["record_data"]["Total Amount"] for e in errors} == {"n/a", "twelve"}

    def test_list_errors_other_log(self, client: TestClient, failed_run: dict[str, Any]):
        response = client.get("/api/v1/sync/errors", params={"log_id": failed_run["log_id"] + 1})

        assert response.json() == []

    def test_resolve_error(self, client: TestClient, failed_run: dict[str, Any]):
        error = client.get("/api/v1/sync/errors").json()[0]

        response = client.post(
            f"/api/v1/sync/errors/{error['id']}/resolve",
            json={"notes": "Fixed the amount in Glide"},
        )

        assert response.status_code == 200
        assert response.json()["resolution_notes"] == "Fixed the amount in Glide"
        assert response.json()["resolved_at"] is not None

        unresolved = client.get("/api/v1/sync/errors").json()
        everything = client.get("/api/v1/sync/errors", params={"include_resolved": True}).json()
        assert [e["id"] for e in unresolved] != [e["id"] for e in everything]
        assert len(unresolved) == 1
        assert len(everything) == 2

    def test_resolve_missing_error(self, client: TestClient):
        response = client.post("/api/v1/sync/errors/404/resolve")

        assert response.status_code == 404
        assert response.json()["error"] == "sync_error_not_found"
