"""CLI helper functions for session management and error handling."""

from collections.abc import Generator
from contextlib import contextmanager
from datetime import date, datetime
from typing import Any

from rich.console import Console
from sqlalchemy.orm import Session

from glidesync.core.database import init_database, session_scope
from glidesync.core.endpoints import (
    EndpointConnectionError,
    EndpointError,
    EndpointNotFoundError,
    EndpointRegistry,
)
from glidesync.core.exceptions import (
    ConflictError,
    ConnectionNotFoundError,
    MappingNotFoundError,
    MappingValidationError,
    NotFoundError,
    RunConflictError,
)
from glidesync.core.services import ConfigLoadError

err_console = Console(stderr=True)


@contextmanager
def get_session() -> Generator[Session, None, None]:
    """Get a database session, initializing the database if needed.

    The session commits on success and rolls back on exception.

    Yields:
        SQLAlchemy Session instance.
    """
    init_database()

    with session_scope() as session:
        yield session


def handle_error(error: Exception) -> int:
    """Print an error message for an exception.

    Args:
        error: The exception to handle.

    Returns:
        Exit code (1 for handled errors, 2 for unexpected errors).
    """
    if isinstance(error, ConnectionNotFoundError):
        err_console.print(f"[red]Error:[/red] {error}")
        err_console.print("[dim]Run 'glidesync connection list' to see connections.[/dim]")
        return 1

    elif isinstance(error, MappingNotFoundError):
        err_console.print(f"[red]Error:[/red] {error}")
        err_console.print("[dim]Run 'glidesync mapping list' to see mappings.[/dim]")
        return 1

    elif isinstance(error, NotFoundError):
        err_console.print(f"[red]Error:[/red] {error}")
        return 1

    elif isinstance(error, RunConflictError):
        err_console.print(f"[red]Error:[/red] {error}")
        err_console.print(
            "[dim]Wait for it to finish, or reclaim a stale run with "
            "'glidesync sync force-complete'.[/dim]"
        )
        return 1

    elif isinstance(error, ConflictError):
        err_console.print(f"[red]Error:[/red] {error}")
        return 1

    elif isinstance(error, MappingValidationError):
        err_console.print(f"[red]Invalid mapping:[/red] {error.message}")
        return 1

    elif isinstance(error, EndpointNotFoundError):
        err_console.print(f"[red]Error:[/red] Unknown source type: {error.kind!r}")
        available = [info.kind for info in EndpointRegistry.list_endpoints()]
        if available:
            err_console.print(f"[dim]Available types: {', '.join(available)}[/dim]")
        return 1

    elif isinstance(error, EndpointConnectionError):
        err_console.print(f"[red]Connection failure:[/red] {error.message}")
        return 1

    elif isinstance(error, EndpointError):
        err_console.print(f"[red]Error:[/red] {error.message}")
        return 1

    elif isinstance(error, ConfigLoadError):
        err_console.print(f"[red]Configuration error:[/red] {error}")
        return 1

    elif isinstance(error, FileNotFoundError):
        err_console.print(f"[red]Error:[/red] File not found: {error.filename}")
        return 1

    else:
        err_console.print(f"[red]Unexpected error:[/red] {error}")
        err_console.print("[dim]This may be a bug. Please report it.[/dim]")
        return 2


def serialize_for_json(obj: Any) -> Any:
    """Serialize an object to a JSON-compatible value.

    Args:
        obj: Object to serialize.

    Returns:
        JSON-serializable object.
    """
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    elif hasattr(obj, "model_dump"):
        return obj.model_dump(mode="json")
    elif isinstance(obj, dict):
        return {k: serialize_for_json(v) for k, v in obj.items()}
    elif isinstance(obj, (list, tuple)):
        return [serialize_for_json(item) for item in obj]
    else:
        return obj
