"""Glide connection endpoints."""

from typing import Any

from fastapi import APIRouter, Query, status

from glidesync.api.dependencies import ConnectionServiceDep
from glidesync.core.endpoints import EndpointRegistry
from glidesync.core.models import (
    ConnectionCreate,
    ConnectionResponse,
    ConnectionTestResult,
    ConnectionUpdate,
    TableInfo,
)

router = APIRouter(prefix="/connections", tags=["connections"])


@router.get("", response_model=list[ConnectionResponse])
async def list_connections(
    service: ConnectionServiceDep,
    status_filter: str | None = Query(None, alias="status", description="Filter by status"),
) -> list[ConnectionResponse]:
    """List connections. API keys are masked."""
    connections = service.list_connections(status=status_filter)
    return [ConnectionResponse.model_validate(c) for c in connections]


@router.get("/kinds")
async def list_source_kinds() -> list[dict[str, Any]]:
    """List the endpoint kinds a connection's source_type may name."""
    return [
        {"kind": info.kind, "display_name": info.display_name}
        for info in EndpointRegistry.list_endpoints()
    ]


@router.post("", response_model=ConnectionResponse, status_code=status.HTTP_201_CREATED)
async def create_connection(
    request: ConnectionCreate,
    service: ConnectionServiceDep,
) -> ConnectionResponse:
    """Create a connection.

    Raises:
        400: If source_type is not a registered endpoint kind.
    """
    connection = service.create_connection(request)
    return ConnectionResponse.model_validate(connection)


@router.get("/{connection_id}", response_model=ConnectionResponse)
async def get_connection(
    connection_id: int,
    service: ConnectionServiceDep,
) -> ConnectionResponse:
    """Get a connection by id.

    Raises:
        404: If the connection does not exist.
    """
    return ConnectionResponse.model_validate(service.get_connection(connection_id))


@router.patch("/{connection_id}", response_model=ConnectionResponse)
async def update_connection(
    connection_id: int,
    request: ConnectionUpdate,
    service: ConnectionServiceDep,
) -> ConnectionResponse:
    """Update a connection. Omitted fields are left unchanged."""
    connection = service.update_connection(connection_id, request)
    return ConnectionResponse.model_validate(connection)


@router.delete("/{connection_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_connection(
    connection_id: int,
    service: ConnectionServiceDep,
) -> None:
    """Delete a connection.

    Raises:
        404: If the connection does not exist.
        409: If mappings still reference the connection.
    """
    service.delete_connection(connection_id)


@router.post("/{connection_id}/activate", response_model=ConnectionResponse)
async def activate_connection(
    connection_id: int,
    service: ConnectionServiceDep,
) -> ConnectionResponse:
    """Mark a connection active."""
    return ConnectionResponse.model_validate(service.activate_connection(connection_id))


@router.post("/{connection_id}/deactivate", response_model=ConnectionResponse)
async def deactivate_connection(
    connection_id: int,
    service: ConnectionServiceDep,
) -> ConnectionResponse:
    """Mark a connection inactive."""
    return ConnectionResponse.model_validate(service.deactivate_connection(connection_id))


@router.post("/{connection_id}/test", response_model=ConnectionTestResult)
def test_connection(
    connection_id: int,
    service: ConnectionServiceDep,
) -> ConnectionTestResult:
    """Check that the Glide app is reachable with the stored credentials.

    The connection's status is updated to active or error.
    """
    return service.test_connection(connection_id)


@router.get("/{connection_id}/tables", response_model=list[TableInfo])
def list_tables(
    connection_id: int,
    service: ConnectionServiceDep,
    side: str = Query("source", pattern="^(source|sink)$", description="source or sink"),
) -> list[TableInfo]:
    """List the tables a mapping on this connection can use.

    Raises:
        404: If the connection does not exist.
        502: If the endpoint cannot be reached.
    """
    return service.list_tables(connection_id, side=side)
