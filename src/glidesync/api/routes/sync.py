"""Sync log, run control and error endpoints."""

from fastapi import APIRouter, Query

from glidesync.api.dependencies import SyncLogServiceDep
from glidesync.core.models import (
    ForceCompleteRequest,
    SyncErrorResolve,
    SyncErrorResponse,
    SyncLogResponse,
    SyncStatsEntry,
)

router = APIRouter(prefix="/sync", tags=["sync"])


@router.get("/logs", response_model=list[SyncLogResponse])
async def list_logs(
    service: SyncLogServiceDep,
    status: str | None = Query(None, description="Filter by run status"),
    limit: int = Query(50, ge=1, le=1000, description="Maximum results"),
) -> list[SyncLogResponse]:
    """List recent sync logs across all mappings."""
    return [SyncLogResponse.model_validate(log) for log in service.list_recent(limit, status)]


@router.get("/logs/{log_id}", response_model=SyncLogResponse)
async def get_log(
    log_id: int,
    service: SyncLogServiceDep,
) -> SyncLogResponse:
    """Get a sync log by id."""
    return SyncLogResponse.model_validate(service.get_log(log_id))


@router.post("/logs/{log_id}/cancel", response_model=SyncLogResponse)
async def cancel_run(
    log_id: int,
    service: SyncLogServiceDep,
) -> SyncLogResponse:
    """Ask a running sync to stop at its next batch boundary.

    Raises:
        409: If the run has already finished.
    """
    return SyncLogResponse.model_validate(service.request_cancel(log_id))


@router.post("/logs/{log_id}/force-complete", response_model=SyncLogResponse)
async def force_complete_run(
    log_id: int,
    service: SyncLogServiceDep,
    request: ForceCompleteRequest | None = None,
) -> SyncLogResponse:
    """Mark a stale running log as failed and free the mapping's run slot.

    Raises:
        409: If the run has already finished.
    """
    reason = request.reason if request else None
    return SyncLogResponse.model_validate(service.force_complete(log_id, reason))


@router.get("/stats", response_model=list[SyncStatsEntry])
async def get_stats(
    service: SyncLogServiceDep,
    days: int = Query(30, ge=1, le=365, description="Days of history"),
) -> list[SyncStatsEntry]:
    """Get per-day run totals."""
    return service.get_stats(days)


@router.get("/errors", response_model=list[SyncErrorResponse])
async def list_errors(
    service: SyncLogServiceDep,
    mapping_id: int | None = Query(None, description="Filter by mapping"),
    log_id: int | None = Query(None, description="Filter by sync log"),
    include_resolved: bool = False,
    limit: int = Query(100, ge=1, le=1000, description="Maximum results"),
) -> list[SyncErrorResponse]:
    """List recorded sync errors, newest first."""
    errors = service.list_errors(
        mapping_id=mapping_id,
        log_id=log_id,
        include_resolved=include_resolved,
        limit=limit,
    )
    return [SyncErrorResponse.model_validate(e) for e in errors]


@router.post("/errors/{error_id}/resolve", response_model=SyncErrorResponse)
async def resolve_error(
    error_id: int,
    service: SyncLogServiceDep,
    request: SyncErrorResolve | None = None,
) -> SyncErrorResponse:
    """Mark a sync error as resolved."""
    notes = request.notes if request else None
    return SyncErrorResponse.model_validate(service.resolve_error(error_id, notes))
