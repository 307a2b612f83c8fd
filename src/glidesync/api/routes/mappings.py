"""Table mapping endpoints.

Routes that reach Glide or the sink database are plain `def` handlers so they
run in the threadpool, where the services are free to drive their own event
loop.
"""

from fastapi import APIRouter, Query, status

from glidesync.api.dependencies import (
    MappingServiceDep,
    SyncLogServiceDep,
    SyncOrchestratorDep,
)
from glidesync.api.schemas import MappingSchemasResponse
from glidesync.core.models import (
    ColumnMappingSuggestion,
    MappingCreate,
    MappingResponse,
    MappingUpdate,
    SuggestRequest,
    SyncErrorResponse,
    SyncLogResponse,
    SyncRunResult,
    ValidationResult,
)

router = APIRouter(prefix="/mappings", tags=["mappings"])


@router.get("", response_model=list[MappingResponse])
async def list_mappings(
    service: MappingServiceDep,
    connection_id: int | None = Query(None, description="Filter by connection"),
    enabled: bool | None = Query(None, description="Filter by enabled flag"),
    limit: int | None = Query(None, ge=1, le=1000, description="Maximum results"),
    offset: int = Query(0, ge=0, description="Number to skip"),
) -> list[MappingResponse]:
    """List mappings ordered by source table display name."""
    mappings = service.list_mappings(
        connection_id=connection_id,
        enabled=enabled,
        limit=limit,
        offset=offset,
    )
    return [MappingResponse.model_validate(m) for m in mappings]


@router.post("", response_model=MappingResponse, status_code=status.HTTP_201_CREATED)
async def create_mapping(
    request: MappingCreate,
    service: MappingServiceDep,
) -> MappingResponse:
    """Create a mapping. New mappings start disabled.

    Raises:
        404: If the connection does not exist.
        422: If two column mappings share a source column.
    """
    return MappingResponse.model_validate(service.create_mapping(request))


@router.get("/{mapping_id}", response_model=MappingResponse)
async def get_mapping(
    mapping_id: int,
    service: MappingServiceDep,
) -> MappingResponse:
    """Get a mapping by id."""
    return MappingResponse.model_validate(service.get_mapping(mapping_id))


@router.patch("/{mapping_id}", response_model=MappingResponse)
async def update_mapping(
    mapping_id: int,
    request: MappingUpdate,
    service: MappingServiceDep,
) -> MappingResponse:
    """Update a mapping.

    Changing tables, direction or column mappings disables an enabled
    mapping until it is validated again.

    Raises:
        409: If a sync is running for the mapping.
    """
    return MappingResponse.model_validate(service.update_mapping(mapping_id, request))


@router.delete("/{mapping_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_mapping(
    mapping_id: int,
    service: MappingServiceDep,
) -> None:
    """Delete a mapping. Its sync history is kept without the mapping reference.

    Raises:
        409: If a sync is running for the mapping.
    """
    service.delete_mapping(mapping_id)


@router.get("/{mapping_id}/schemas", response_model=MappingSchemasResponse)
def get_mapping_schemas(
    mapping_id: int,
    service: MappingServiceDep,
) -> MappingSchemasResponse:
    """Fetch the live column lists of the mapping's Glide and sink tables."""
    source, sink = service.fetch_schemas(service.get_mapping(mapping_id))
    return MappingSchemasResponse(source=source, sink=sink)


@router.post("/{mapping_id}/validate", response_model=ValidationResult)
def validate_mapping(
    mapping_id: int,
    service: MappingServiceDep,
) -> ValidationResult:
    """Validate the mapping against live schemas without changing it."""
    return service.validate_mapping(mapping_id)


@router.post("/{mapping_id}/enable", response_model=MappingResponse)
def enable_mapping(
    mapping_id: int,
    service: MappingServiceDep,
) -> MappingResponse:
    """Validate and enable a mapping.

    Raises:
        409: If a run is in progress.
        422: If validation fails. The mapping stays disabled.
    """
    return MappingResponse.model_validate(service.enable_mapping(mapping_id))


@router.post("/{mapping_id}/disable", response_model=MappingResponse)
async def disable_mapping(
    mapping_id: int,
    service: MappingServiceDep,
) -> MappingResponse:
    """Disable a mapping.

    Raises:
        409: If a run is in progress.
    """
    return MappingResponse.model_validate(service.disable_mapping(mapping_id))


@router.post("/{mapping_id}/suggest", response_model=list[ColumnMappingSuggestion])
def suggest_columns(
    mapping_id: int,
    service: MappingServiceDep,
    request: SuggestRequest | None = None,
) -> list[ColumnMappingSuggestion]:
    """Suggest column mappings by matching column names. Nothing is saved."""
    source_columns = request.source_columns if request else None
    return service.suggest_columns(mapping_id, source_columns=source_columns)


@router.post("/{mapping_id}/run", response_model=SyncRunResult)
def run_mapping(
    mapping_id: int,
    orchestrator: SyncOrchestratorDep,
) -> SyncRunResult:
    """Run a sync for the mapping and wait for it to finish.

    Raises:
        409: If a sync is already running for the mapping.
    """
    return orchestrator.run_mapping(mapping_id)


@router.get("/{mapping_id}/logs", response_model=list[SyncLogResponse])
async def list_mapping_logs(
    mapping_id: int,
    service: SyncLogServiceDep,
    limit: int | None = Query(None, ge=1, le=1000, description="Maximum results"),
    offset: int = Query(0, ge=0, description="Number to skip"),
) -> list[SyncLogResponse]:
    """List the mapping's sync logs, newest first."""
    logs = service.list_for_mapping(mapping_id, limit=limit, offset=offset)
    return [SyncLogResponse.model_validate(log) for log in logs]


@router.get("/{mapping_id}/errors", response_model=list[SyncErrorResponse])
async def list_mapping_errors(
    mapping_id: int,
    mapping_service: MappingServiceDep,
    service: SyncLogServiceDep,
    include_resolved: bool = False,
    limit: int = Query(100, ge=1, le=1000, description="Maximum results"),
) -> list[SyncErrorResponse]:
    """List errors recorded for the mapping, newest first."""
    mapping_service.get_mapping(mapping_id)
    errors = service.list_errors(
        mapping_id=mapping_id,
        include_resolved=include_resolved,
        limit=limit,
    )
    return [SyncErrorResponse.model_validate(e) for e in errors]
