"""API test fixtures."""

from collections.abc import Generator
from typing import Any

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from glidesync.api.app import create_app
from glidesync.api.dependencies import get_db, get_endpoint_provider

# Import all models to ensure they're registered with Base before creating tables
from glidesync.core.models import (  # noqa: F401
    Base,
    Connection,
    Mapping,
    SyncError,
    SyncLog,
)


@pytest.fixture
def test_engine():
    """Create an in-memory SQLite engine for testing.

    Uses StaticPool to ensure all connections share the same in-memory database.
    """
    engine = create_engine(
        "sqlite:///:memory:",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Enable foreign keys for SQLite
    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(engine)

    yield engine

    engine.dispose()


@pytest.fixture
def test_session_factory(test_engine):
    """Create a session factory bound to the test engine."""
    return sessionmaker(bind=test_engine, autocommit=False, autoflush=False)


@pytest.fixture
def client(test_session_factory, fake_endpoints) -> Generator[TestClient, None, None]:
    """Create a test client with database and endpoint overrides.

    Glide and the sink database are replaced by the in-memory fakes, so
    routes that reach the endpoints run against `fake_source` and `fake_sink`.

    Yields:
        FastAPI TestClient configured with test database.
    """
    app = create_app()

    def override_get_db() -> Generator[Session, None, None]:
        session = test_session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_endpoint_provider] = lambda: fake_endpoints

    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def api_connection(client: TestClient) -> dict[str, Any]:
    """Create a connection through the API."""
    response = client.post(
        "/api/v1/connections",
        json={"app_id": "app-123", "api_key": "glide-secret-key-9876", "app_name": "Orders"},
    )
    assert response.status_code == 201, f"Failed to create connection: {response.json()}"
    return response.json()


@pytest.fixture
def api_mapping(
    client: TestClient, api_connection: dict[str, Any], order_columns
) -> dict[str, Any]:
    """Create a disabled orders mapping through the API."""
    response = client.post(
        "/api/v1/mappings",
        json={
            "connection_id": api_connection["id"],
            "source_table": "native-table-orders",
            "source_table_display_name": "Orders",
            "sink_table": "orders",
            "column_mappings": [c.model_dump() for c in order_columns],
        },
    )
    assert response.status_code == 201, f"Failed to create mapping: {response.json()}"
    return response.json()


@pytest.fixture
def api_enabled_mapping(client: TestClient, api_mapping: dict[str, Any]) -> dict[str, Any]:
    """The API mapping, validated against the fakes and enabled."""
    response = client.post(f"/api/v1/mappings/{api_mapping['id']}/enable")
    assert response.status_code == 200, f"Failed to enable mapping: {response.json()}"
    return response.json()
