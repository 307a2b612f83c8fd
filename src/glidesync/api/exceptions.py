"""Exception handlers for the API layer."""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from glidesync.core.endpoints.exceptions import (
    EndpointError,
    EndpointNotFoundError,
    TableNotFoundError,
)
from glidesync.core.exceptions import (
    ConnectionInUseError,
    ConnectionNotFoundError,
    MappingBusyError,
    MappingNotFoundError,
    MappingValidationError,
    RunConflictError,
    RunNotActiveError,
    SyncErrorNotFoundError,
    SyncLogNotFoundError,
)
from glidesync.core.services import ConfigLoadError


async def connection_not_found_handler(
    request: Request, exc: ConnectionNotFoundError
) -> JSONResponse:
    """Handle ConnectionNotFoundError exceptions."""
    return JSONResponse(
        status_code=404,
        content={
            "error": "connection_not_found",
            "message": str(exc),
            "detail": {"connection_id": exc.connection_id},
        },
    )


async def mapping_not_found_handler(request: Request, exc: MappingNotFoundError) -> JSONResponse:
    """Handle MappingNotFoundError exceptions."""
    return JSONResponse(
        status_code=404,
        content={
            "error": "mapping_not_found",
            "message": str(exc),
            "detail": {"mapping_id": exc.mapping_id},
        },
    )


async def sync_log_not_found_handler(request: Request, exc: SyncLogNotFoundError) -> JSONResponse:
    """Handle SyncLogNotFoundError exceptions."""
    return JSONResponse(
        status_code=404,
        content={
            "error": "sync_log_not_found",
            "message": str(exc),
            "detail": {"log_id": exc.log_id},
        },
    )


async def sync_error_not_found_handler(
    request: Request, exc: SyncErrorNotFoundError
) -> JSONResponse:
    """Handle SyncErrorNotFoundError exceptions."""
    return JSONResponse(
        status_code=404,
        content={
            "error": "sync_error_not_found",
            "message": str(exc),
            "detail": {"error_id": exc.error_id},
        },
    )


async def connection_in_use_handler(request: Request, exc: ConnectionInUseError) -> JSONResponse:
    """Handle ConnectionInUseError exceptions."""
    return JSONResponse(
        status_code=409,
        content={
            "error": "connection_in_use",
            "message": str(exc),
            "detail": {
                "connection_id": exc.connection_id,
                "mapping_count": exc.mapping_count,
            },
        },
    )


async def mapping_busy_handler(request: Request, exc: MappingBusyError) -> JSONResponse:
    """Handle MappingBusyError exceptions."""
    return JSONResponse(
        status_code=409,
        content={
            "error": "mapping_busy",
            "message": str(exc),
            "detail": {"mapping_id": exc.mapping_id},
        },
    )


async def run_conflict_handler(request: Request, exc: RunConflictError) -> JSONResponse:
    """Handle RunConflictError exceptions."""
    return JSONResponse(
        status_code=409,
        content={
            "error": "sync_in_progress",
            "message": str(exc),
            "detail": {"mapping_id": exc.mapping_id},
        },
    )


async def run_not_active_handler(request: Request, exc: RunNotActiveError) -> JSONResponse:
    """Handle RunNotActiveError exceptions."""
    return JSONResponse(
        status_code=409,
        content={
            "error": "sync_not_running",
            "message": str(exc),
            "detail": {"log_id": exc.log_id, "status": exc.status},
        },
    )


async def mapping_validation_handler(
    request: Request, exc: MappingValidationError
) -> JSONResponse:
    """Handle MappingValidationError exceptions."""
    return JSONResponse(
        status_code=422,
        content={
            "error": "invalid_mapping",
            "message": exc.message,
            "detail": {"mapping_id": exc.mapping_id},
        },
    )


async def config_load_handler(request: Request, exc: ConfigLoadError) -> JSONResponse:
    """Handle ConfigLoadError exceptions."""
    return JSONResponse(
        status_code=422,
        content={
            "error": "invalid_definition",
            "message": str(exc),
            "detail": None,
        },
    )


async def endpoint_not_found_handler(
    request: Request, exc: EndpointNotFoundError
) -> JSONResponse:
    """Handle EndpointNotFoundError exceptions."""
    return JSONResponse(
        status_code=400,
        content={
            "error": "invalid_source_type",
            "message": str(exc),
            "detail": {"source_type": exc.kind},
        },
    )


async def table_not_found_handler(request: Request, exc: TableNotFoundError) -> JSONResponse:
    """Handle TableNotFoundError exceptions."""
    return JSONResponse(
        status_code=404,
        content={
            "error": "table_not_found",
            "message": exc.message,
            "detail": {"table": exc.table, "kind": exc.kind},
        },
    )


async def endpoint_error_handler(request: Request, exc: EndpointError) -> JSONResponse:
    """Handle general EndpointError exceptions."""
    return JSONResponse(
        status_code=502,
        content={
            "error": "endpoint_error",
            "message": exc.message,
            "detail": {"kind": exc.kind} if exc.kind else None,
        },
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers on the FastAPI app."""
    app.add_exception_handler(ConnectionNotFoundError, connection_not_found_handler)
    app.add_exception_handler(MappingNotFoundError, mapping_not_found_handler)
    app.add_exception_handler(SyncLogNotFoundError, sync_log_not_found_handler)
    app.add_exception_handler(SyncErrorNotFoundError, sync_error_not_found_handler)
    app.add_exception_handler(ConnectionInUseError, connection_in_use_handler)
    app.add_exception_handler(MappingBusyError, mapping_busy_handler)
    app.add_exception_handler(RunConflictError, run_conflict_handler)
    app.add_exception_handler(RunNotActiveError, run_not_active_handler)
    app.add_exception_handler(MappingValidationError, mapping_validation_handler)
    app.add_exception_handler(ConfigLoadError, config_load_handler)
    # Endpoint errors, most specific first
    app.add_exception_handler(EndpointNotFoundError, endpoint_not_found_handler)
    app.add_exception_handler(TableNotFoundError, table_not_found_handler)
    app.add_exception_handler(EndpointError, endpoint_error_handler)
