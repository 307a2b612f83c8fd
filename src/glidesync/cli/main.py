"""Main CLI entry point for glidesync."""

import json
import logging
from enum import Enum
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from glidesync import __version__
from glidesync.cli.helpers import get_session, handle_error, serialize_for_json
from glidesync.config import get_settings
from glidesync.core.endpoints import EndpointRegistry
from glidesync.core.exceptions import RunConflictError
from glidesync.core.models import (
    ConnectionResponse,
    ConnectionUpdate,
    MappingResponse,
    MappingUpdate,
    SyncErrorResponse,
    SyncLogResponse,
)
from glidesync.core.services import (
    ConnectionService,
    MappingService,
    SyncLogService,
    SyncOrchestrator,
    mask_sensitive_values,
)

# Console instances for stdout/stderr
console = Console()
err_console = Console(stderr=True)


class OutputFormat(str, Enum):
    """Output format options."""

    json = "json"
    table = "table"


# Main app
app = typer.Typer(
    name="glidesync",
    help="Keep Glide tables and Supabase tables in sync through column mappings.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

# Command groups
connection_app = typer.Typer(
    help="Manage Glide app connections.",
    no_args_is_help=True,
)
mapping_app = typer.Typer(
    help="Manage table mappings.",
    no_args_is_help=True,
)
sync_app = typer.Typer(
    help="Run and control syncs.",
    no_args_is_help=True,
)
logs_app = typer.Typer(
    help="Inspect sync logs.",
    no_args_is_help=True,
)
errors_app = typer.Typer(
    help="Inspect and resolve sync errors.",
    no_args_is_help=True,
)

app.add_typer(connection_app, name="connection")
app.add_typer(mapping_app, name="mapping")
app.add_typer(sync_app, name="sync")
app.add_typer(logs_app, name="logs")
app.add_typer(errors_app, name="errors")


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"glidesync {__version__}")
        raise typer.Exit()


def output_result(data: dict | list, format: OutputFormat) -> None:
    """Output data in the specified format."""
    if format == OutputFormat.json:
        console.print_json(json.dumps(serialize_for_json(data)))
    else:
        if isinstance(data, list) and data:
            table = Table()
            for key in data[0]:
                table.add_column(key)
            for row in data:
                table.add_row(*[str(v) if v is not None else "" for v in row.values()])
            console.print(table)
        elif isinstance(data, dict):
            table = Table(show_header=False)
            table.add_column("Key", style="bold")
            table.add_column("Value")
            for key, value in data.items():
                table.add_row(key, str(value) if value is not None else "")
            console.print(table)
        else:
            console.print(data)


FormatOption = Annotated[
    OutputFormat, typer.Option("--format", "-f", help="Output format.")
]


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-v",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """glidesync - Glide to Supabase table sync."""
    logging.basicConfig(
        level=get_settings().log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# =============================================================================
# Connection commands
# =============================================================================


def _connection_output(connection) -> dict:
    """Connection details with the API key and secret settings masked."""
    result = ConnectionResponse.model_validate(connection).model_dump()
    result["settings"] = mask_sensitive_values(result["settings"])
    return result


@connection_app.command("add")
def connection_add(
    config_file: Annotated[
        Path, typer.Argument(help="Connection definition YAML (app_id, api_key, ...).")
    ],
    format: FormatOption = OutputFormat.json,
) -> None:
    """Add a connection from a definition file."""
    try:
        with get_session() as session:
            service = ConnectionService(session)
            connection = service.create_from_file(config_file)
            session.commit()
            output_result(_connection_output(connection), format)
    except Exception as e:
        code = handle_error(e)
        raise typer.Exit(code) from None


@connection_app.command("list")
def connection_list(
    status: Annotated[
        str | None, typer.Option("--status", "-s", help="Filter by status.")
    ] = None,
    format: FormatOption = OutputFormat.json,
) -> None:
    """List connections."""
    try:
        with get_session() as session:
            service = ConnectionService(session)
            result = [
                {
                    "id": c.id,
                    "app_id": c.app_id,
                    "app_name": c.app_name,
                    "source_type": c.source_type,
                    "status": c.status,
                    "last_sync_at": c.last_sync_at,
                }
                for c in service.list_connections(status=status)
            ]
            output_result(result, format)
    except Exception as e:
        code = handle_error(e)
        raise typer.Exit(code) from None


@connection_app.command("show")
def connection_show(
    connection_id: Annotated[int, typer.Argument(help="Connection id.")],
    format: FormatOption = OutputFormat.json,
) -> None:
    """Show a connection. The API key is masked."""
    try:
        with get_session() as session:
            connection = ConnectionService(session).get_connection(connection_id)
            output_result(_connection_output(connection), format)
    except Exception as e:
        code = handle_error(e)
        raise typer.Exit(code) from None


@connection_app.command("rename")
def connection_rename(
    connection_id: Annotated[int, typer.Argument(help="Connection id.")],
    app_name: Annotated[str, typer.Argument(help="New display name.")],
    format: FormatOption = OutputFormat.json,
) -> None:
    """Change a connection's display name."""
    try:
        with get_session() as session:
            service = ConnectionService(session)
            connection = service.update_connection(
                connection_id, ConnectionUpdate(app_name=app_name)
            )
            session.commit()
            output_result(_connection_output(connection), format)
    except Exception as e:
        code = handle_error(e)
        raise typer.Exit(code) from None


@connection_app.command("test")
def connection_test(
    connection_id: Annotated[int, typer.Argument(help="Connection id.")],
    format: FormatOption = OutputFormat.json,
) -> None:
    """Test that the Glide app is reachable."""
    try:
        with get_session() as session:
            service = ConnectionService(session)

            with console.status(f"Testing connection [bold]{connection_id}[/bold]..."):
                result = service.test_connection(connection_id)
            session.commit()

            output_result(result.model_dump(), format)

            if not result.connected:
                raise typer.Exit(1)
    except typer.Exit:
        raise
    except Exception as e:
        code = handle_error(e)
        raise typer.Exit(code) from None


@connection_app.command("tables")
def connection_tables(
    connection_id: Annotated[int, typer.Argument(help="Connection id.")],
    sink: Annotated[
        bool, typer.Option("--sink", help="List sink database tables instead of Glide tables.")
    ] = False,
    format: FormatOption = OutputFormat.json,
) -> None:
    """List the tables reachable through a connection."""
    try:
        with get_session() as session:
            service = ConnectionService(session)
            with console.status(f"Listing tables for connection [bold]{connection_id}[/bold]..."):
                tables = service.list_tables(connection_id, side="sink" if sink else "source")
            output_result([t.model_dump() for t in tables], format)
    except Exception as e:
        code = handle_error(e)
        raise typer.Exit(code) from None


@connection_app.command("activate")
def connection_activate(
    connection_id: Annotated[int, typer.Argument(help="Connection id.")],
) -> None:
    """Mark a connection active."""
    try:
        with get_session() as session:
            ConnectionService(session).activate_connection(connection_id)
            session.commit()
            console.print(f"[green]Activated connection:[/green] {connection_id}")
    except Exception as e:
        code = handle_error(e)
        raise typer.Exit(code) from None


@connection_app.command("deactivate")
def connection_deactivate(
    connection_id: Annotated[int, typer.Argument(help="Connection id.")],
) -> None:
    """Mark a connection inactive."""
    try:
        with get_session() as session:
            ConnectionService(session).deactivate_connection(connection_id)
            session.commit()
            console.print(f"[yellow]Deactivated connection:[/yellow] {connection_id}")
    except Exception as e:
        code = handle_error(e)
        raise typer.Exit(code) from None


@connection_app.command("remove")
def connection_remove(
    connection_id: Annotated[int, typer.Argument(help="Connection id.")],
    force: Annotated[bool, typer.Option("--force", help="Skip confirmation.")] = False,
) -> None:
    """Remove a connection that no mapping references."""
    try:
        with get_session() as session:
            service = ConnectionService(session)
            service.get_connection(connection_id)

            if not force:
                confirm = typer.confirm(f"Remove connection {connection_id}?")
                if not confirm:
                    raise typer.Abort()

            service.delete_connection(connection_id)
            session.commit()
            console.print(f"[green]Removed connection:[/green] {connection_id}")
    except typer.Abort:
        raise
    except Exception as e:
        code = handle_error(e)
        raise typer.Exit(code) from None


@connection_app.command("kinds")
def connection_kinds(
    format: FormatOption = OutputFormat.json,
) -> None:
    """List the endpoint kinds a connection can use."""
    result = [
        {"kind": info.kind, "display_name": info.display_name}
        for info in EndpointRegistry.list_endpoints()
    ]
    output_result(result, format)


# =============================================================================
# Mapping commands
# =============================================================================


def _mapping_summary(mapping) -> dict:
    return {
        "id": mapping.id,
        "connection_id": mapping.connection_id,
        "source_table": mapping.source_table_display_name,
        "sink_table": mapping.sink_table,
        "direction": mapping.sync_direction,
        "enabled": mapping.enabled,
        "status": mapping.current_status,
        "last_sync_completed_at": mapping.last_sync_completed_at,
    }


@mapping_app.command("add")
def mapping_add(
    config_file: Annotated[Path, typer.Argument(help="Mapping definition YAML.")],
    connection_id: Annotated[
        int | None,
        typer.Option("--connection", "-c", help="Connection id (overrides the file)."),
    ] = None,
    format: FormatOption = OutputFormat.json,
) -> None:
    """Add a mapping from a definition file. New mappings start disabled."""
    try:
        with get_session() as session:
            service = MappingService(session)
            mapping = service.create_from_file(config_file, connection_id=connection_id)
            session.commit()
            output_result(MappingResponse.model_validate(mapping).model_dump(), format)
    except Exception as e:
        code = handle_error(e)
        raise typer.Exit(code) from None


@mapping_app.command("list")
def mapping_list(
    connection_id: Annotated[
        int | None, typer.Option("--connection", "-c", help="Filter by connection.")
    ] = None,
    enabled_only: Annotated[
        bool, typer.Option("--enabled", help="Only enabled mappings.")
    ] = False,
    limit: Annotated[int | None, typer.Option("--limit", "-l", help="Maximum results.")] = None,
    format: FormatOption = OutputFormat.json,
) -> None:
    """List mappings."""
    try:
        with get_session() as session:
            mappings = MappingService(session).list_mappings(
                connection_id=connection_id,
                enabled=True if enabled_only else None,
                limit=limit,
            )
            output_result([_mapping_summary(m) for m in mappings], format)
    except Exception as e:
        code = handle_error(e)
        raise typer.Exit(code) from None


@mapping_app.command("show")
def mapping_show(
    mapping_id: Annotated[int, typer.Argument(help="Mapping id.")],
    format: FormatOption = OutputFormat.json,
) -> None:
    """Show a mapping with its column mappings."""
    try:
        with get_session() as session:
            mapping = MappingService(session).get_mapping(mapping_id)
            result = MappingResponse.model_validate(mapping)

            if format == OutputFormat.table:
                output_result(_mapping_summary(mapping), format)
                table = Table(title="Column mappings")
                table.add_column("Source column")
                table.add_column("Sink column")
                table.add_column("Type")
                for column in result.column_mappings:
                    table.add_row(column.source_column, column.sink_column, column.data_type)
                console.print(table)
            else:
                output_result(result.model_dump(), format)
    except Exception as e:
        code = handle_error(e)
        raise typer.Exit(code) from None


@mapping_app.command("validate")
def mapping_validate(
    mapping_id: Annotated[int, typer.Argument(help="Mapping id.")],
    format: FormatOption = OutputFormat.json,
) -> None:
    """Validate a mapping against the live table schemas."""
    try:
        with get_session() as session:
            with console.status(f"Validating mapping [bold]{mapping_id}[/bold]..."):
                result = MappingService(session).validate_mapping(mapping_id)
            output_result(result.model_dump(), format)

            if not result.is_valid:
                raise typer.Exit(1)
    except typer.Exit:
        raise
    except Exception as e:
        code = handle_error(e)
        raise typer.Exit(code) from None


@mapping_app.command("enable")
def mapping_enable(
    mapping_id: Annotated[int, typer.Argument(help="Mapping id.")],
) -> None:
    """Validate a mapping and enable it."""
    try:
        with get_session() as session:
            with console.status(f"Validating mapping [bold]{mapping_id}[/bold]..."):
                MappingService(session).enable_mapping(mapping_id)
            session.commit()
            console.print(f"[green]Enabled mapping:[/green] {mapping_id}")
    except Exception as e:
        code = handle_error(e)
        raise typer.Exit(code) from None


@mapping_app.command("disable")
def mapping_disable(
    mapping_id: Annotated[int, typer.Argument(help="Mapping id.")],
) -> None:
    """Disable a mapping."""
    try:
        with get_session() as session:
            MappingService(session).disable_mapping(mapping_id)
            session.commit()
            console.print(f"[yellow]Disabled mapping:[/yellow] {mapping_id}")
    except Exception as e:
        code = handle_error(e)
        raise typer.Exit(code) from None


@mapping_app.command("suggest")
def mapping_suggest(
    mapping_id: Annotated[int, typer.Argument(help="Mapping id.")],
    apply: Annotated[
        bool,
        typer.Option("--apply", help="Add suggestions for unmapped source columns."),
    ] = False,
    format: FormatOption = OutputFormat.json,
) -> None:
    """Suggest column mappings by matching column names."""
    try:
        with get_session() as session:
            service = MappingService(session)
            with console.status("Fetching table schemas..."):
                suggestions = service.suggest_columns(mapping_id)

            output_result([s.model_dump() for s in suggestions], format)

            if apply and suggestions:
                mapping = service.get_mapping(mapping_id)
                merged = service.merge_suggestions(mapping.get_column_mappings(), suggestions)
                service.update_mapping(mapping_id, MappingUpdate(column_mappings=merged))
                session.commit()
                err_console.print(
                    f"[green]Saved {len(merged)} column mapping(s).[/green] "
                    "Run 'glidesync mapping enable' after reviewing them."
                )
    except Exception as e:
        code = handle_error(e)
        raise typer.Exit(code) from None


@mapping_app.command("remove")
def mapping_remove(
    mapping_id: Annotated[int, typer.Argument(help="Mapping id.")],
    force: Annotated[bool, typer.Option("--force", help="Skip confirmation.")] = False,
) -> None:
    """Remove a mapping. Its sync history is kept."""
    try:
        with get_session() as session:
            service = MappingService(session)
            service.get_mapping(mapping_id)

            if not force:
                confirm = typer.confirm(f"Remove mapping {mapping_id}?")
                if not confirm:
                    raise typer.Abort()

            service.delete_mapping(mapping_id)
            session.commit()
            console.print(f"[green]Removed mapping:[/green] {mapping_id}")
    except typer.Abort:
        raise
    except Exception as e:
        code = handle_error(e)
        raise typer.Exit(code) from None


# =============================================================================
# Sync commands
# =============================================================================


@sync_app.command("run")
def sync_run(
    mapping_id: Annotated[int, typer.Argument(help="Mapping id.")],
    batch_size: Annotated[
        int | None, typer.Option("--batch-size", "-b", help="Rows per batch.")
    ] = None,
    format: FormatOption = OutputFormat.json,
) -> None:
    """Run a sync for a mapping and wait for it to finish."""
    try:
        with get_session() as session:
            orchestrator = SyncOrchestrator(session, batch_size=batch_size)

            with console.status(f"Syncing mapping [bold]{mapping_id}[/bold]..."):
                result = orchestrator.run_mapping(mapping_id)

            output_result(result.model_dump(), format)

            if result.status == "failure":
                raise typer.Exit(1)
    except typer.Exit:
        raise
    except Exception as e:
        code = handle_error(e)
        raise typer.Exit(code) from None


@sync_app.command("run-all")
def sync_run_all(
    connection_id: Annotated[
        int | None, typer.Option("--connection", "-c", help="Only this connection.")
    ] = None,
    format: FormatOption = OutputFormat.json,
) -> None:
    """Run every enabled mapping one after another.

    Mappings that already have a run in progress are skipped.
    """
    try:
        with get_session() as session:
            mappings = MappingService(session).list_mappings(
                connection_id=connection_id, enabled=True
            )
            mapping_ids = [m.id for m in mappings]
            orchestrator = SyncOrchestrator(session)

            results = []
            for mapping_id in mapping_ids:
                try:
                    with console.status(f"Syncing mapping [bold]{mapping_id}[/bold]..."):
                        result = orchestrator.run_mapping(mapping_id)
                except RunConflictError as e:
                    err_console.print(f"[yellow]Skipped:[/yellow] {e}")
                    continue
                results.append(result.model_dump())

            output_result(results, format)

            if any(r["status"] == "failure" for r in results):
                raise typer.Exit(1)
    except typer.Exit:
        raise
    except Exception as e:
        code = handle_error(e)
        raise typer.Exit(code) from None


@sync_app.command("cancel")
def sync_cancel(
    log_id: Annotated[int, typer.Argument(help="Sync log id of the running sync.")],
) -> None:
    """Ask a running sync to stop at its next batch boundary."""
    try:
        with get_session() as session:
            SyncLogService(session).request_cancel(log_id)
            console.print(f"[yellow]Cancellation requested for sync log:[/yellow] {log_id}")
    except Exception as e:
        code = handle_error(e)
        raise typer.Exit(code) from None


@sync_app.command("force-complete")
def sync_force_complete(
    log_id: Annotated[int, typer.Argument(help="Sync log id of the stale run.")],
    reason: Annotated[
        str | None, typer.Option("--reason", "-r", help="Why the run is reclaimed.")
    ] = None,
    format: FormatOption = OutputFormat.json,
) -> None:
    """Fail a stale running sync and free its mapping."""
    try:
        with get_session() as session:
            log = SyncLogService(session).force_complete(log_id, reason)
            output_result(SyncLogResponse.model_validate(log).model_dump(), format)
    except Exception as e:
        code = handle_error(e)
        raise typer.Exit(code) from None


@sync_app.command("stats")
def sync_stats(
    days: Annotated[int, typer.Option("--days", "-d", help="Days of history.")] = 30,
    format: FormatOption = OutputFormat.json,
) -> None:
    """Show per-day run totals."""
    try:
        with get_session() as session:
            stats = SyncLogService(session).get_stats(days)
            output_result([s.model_dump() for s in stats], format)
    except Exception as e:
        code = handle_error(e)
        raise typer.Exit(code) from None


# =============================================================================
# Log commands
# =============================================================================


def _log_summary(log) -> dict:
    return {
        "id": log.id,
        "mapping_id": log.mapping_id,
        "status": log.status,
        "processed": log.records_processed,
        "failed": log.failed_records,
        "started_at": log.started_at,
        "completed_at": log.completed_at,
        "message": log.message,
    }


@logs_app.command("list")
def logs_list(
    mapping_id: Annotated[
        int | None, typer.Option("--mapping", "-m", help="Only this mapping.")
    ] = None,
    status: Annotated[
        str | None, typer.Option("--status", "-s", help="Filter by status.")
    ] = None,
    limit: Annotated[int, typer.Option("--limit", "-l", help="Maximum results.")] = 50,
    format: FormatOption = OutputFormat.json,
) -> None:
    """List sync logs, newest first."""
    try:
        with get_session() as session:
            service = SyncLogService(session)
            if mapping_id is not None:
                logs = service.list_for_mapping(mapping_id, limit=limit)
                if status:
                    logs = [log for log in logs if log.status == status]
            else:
                logs = service.list_recent(limit=limit, status=status)
            output_result([_log_summary(log) for log in logs], format)
    except Exception as e:
        code = handle_error(e)
        raise typer.Exit(code) from None


@logs_app.command("show")
def logs_show(
    log_id: Annotated[int, typer.Argument(help="Sync log id.")],
    format: FormatOption = OutputFormat.json,
) -> None:
    """Show a sync log."""
    try:
        with get_session() as session:
            log = SyncLogService(session).get_log(log_id)
            output_result(SyncLogResponse.model_validate(log).model_dump(), format)
    except Exception as e:
        code = handle_error(e)
        raise typer.Exit(code) from None


# =============================================================================
# Error commands
# =============================================================================


@errors_app.command("list")
def errors_list(
    mapping_id: Annotated[
        int | None, typer.Option("--mapping", "-m", help="Only this mapping.")
    ] = None,
    log_id: Annotated[int | None, typer.Option("--log", help="Only this sync log.")] = None,
    include_resolved: Annotated[
        bool, typer.Option("--all", "-a", help="Include resolved errors.")
    ] = False,
    limit: Annotated[int, typer.Option("--limit", "-l", help="Maximum results.")] = 100,
    format: FormatOption = OutputFormat.json,
) -> None:
    """List recorded sync errors, newest first."""
    try:
        with get_session() as session:
            errors = SyncLogService(session).list_errors(
                mapping_id=mapping_id,
                log_id=log_id,
                include_resolved=include_resolved,
                limit=limit,
            )
            if format == OutputFormat.table:
                result = [
                    {
                        "id": e.id,
                        "mapping_id": e.mapping_id,
                        "log_id": e.log_id,
                        "type": e.error_type,
                        "message": e.error_message,
                        "resolved_at": e.resolved_at,
                    }
                    for e in errors
                ]
            else:
                result = [SyncErrorResponse.model_validate(e).model_dump() for e in errors]
            output_result(result, format)
    except Exception as e:
        code = handle_error(e)
        raise typer.Exit(code) from None


@errors_app.command("resolve")
def errors_resolve(
    error_id: Annotated[int, typer.Argument(help="Sync error id.")],
    notes: Annotated[
        str | None, typer.Option("--notes", "-n", help="Resolution notes.")
    ] = None,
) -> None:
    """Mark a sync error as resolved."""
    try:
        with get_session() as session:
            SyncLogService(session).resolve_error(error_id, notes)
            session.commit()
            console.print(f"[green]Resolved sync error:[/green] {error_id}")
    except Exception as e:
        code = handle_error(e)
        raise typer.Exit(code) from None


# =============================================================================
# Server command
# =============================================================================


@app.command("serve")
def serve(
    host: Annotated[str, typer.Option("--host", help="Bind address.")] = "127.0.0.1",
    port: Annotated[int, typer.Option("--port", "-p", help="Bind port.")] = 8000,
    reload: Annotated[bool, typer.Option("--reload", help="Reload on code changes.")] = False,
) -> None:
    """Start the REST API server."""
    import uvicorn

    uvicorn.run("glidesync.api.app:app", host=host, port=port, reload=reload)


if __name__ == "__main__":
    app()
