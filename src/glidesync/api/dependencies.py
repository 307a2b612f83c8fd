"""FastAPI dependency injection for services and database sessions."""

from collections.abc import Generator
from typing import Annotated

from fastapi import Depends
from sqlalchemy.orm import Session

from glidesync.core.database import get_session, init_database
from glidesync.core.endpoints import EndpointProvider
from glidesync.core.services import (
    ConnectionService,
    MappingService,
    SyncLogService,
    SyncOrchestrator,
)

# Flag to track if database has been initialized
_db_initialized = False


def get_db() -> Generator[Session, None, None]:
    """Yield database session with auto-commit/rollback.

    Initializes the database on first call and provides a session
    that commits on success or rolls back on exception.
    """
    global _db_initialized
    if not _db_initialized:
        init_database()
        _db_initialized = True

    session = get_session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def reset_db_initialized() -> None:
    """Reset the database initialized flag.

    Used for testing to ensure clean state.
    """
    global _db_initialized
    _db_initialized = False


def get_endpoint_provider() -> EndpointProvider:
    """Get the provider that builds Glide and sink endpoints."""
    return EndpointProvider()


# Type aliases for shared dependencies
DbSession = Annotated[Session, Depends(get_db)]
Endpoints = Annotated[EndpointProvider, Depends(get_endpoint_provider)]


def get_connection_service(session: DbSession, endpoints: Endpoints) -> ConnectionService:
    """Get a ConnectionService instance with the current session."""
    return ConnectionService(session, endpoints=endpoints)


def get_mapping_service(session: DbSession, endpoints: Endpoints) -> MappingService:
    """Get a MappingService instance with the current session."""
    return MappingService(session, endpoints=endpoints)


def get_sync_log_service(session: DbSession) -> SyncLogService:
    """Get a SyncLogService instance with the current session."""
    return SyncLogService(session)


def get_sync_orchestrator(session: DbSession, endpoints: Endpoints) -> SyncOrchestrator:
    """Get a SyncOrchestrator bound to the current session."""
    return SyncOrchestrator(session, endpoints=endpoints)


# Type aliases for service dependencies
ConnectionServiceDep = Annotated[ConnectionService, Depends(get_connection_service)]
MappingServiceDep = Annotated[MappingService, Depends(get_mapping_service)]
SyncLogServiceDep = Annotated[SyncLogService, Depends(get_sync_log_service)]
SyncOrchestratorDep = Annotated[SyncOrchestrator, Depends(get_sync_orchestrator)]
