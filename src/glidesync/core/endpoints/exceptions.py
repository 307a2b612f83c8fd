"""Endpoint-specific exceptions."""


class EndpointError(Exception):
    """Base exception for endpoint errors."""

    def __init__(self, message: str, kind: str | None = None) -> None:
        self.message = message
        self.kind = kind
        super().__init__(message)


class EndpointConnectionError(EndpointError):
    """Raised when an endpoint is unreachable or rejects the credentials.

    A sync run that hits this aborts instead of moving on to the next batch.
    """

    pass


class EndpointWriteError(EndpointError):
    """Raised when a whole batch write is rejected by a reachable endpoint."""

    pass


class EndpointNotFoundError(EndpointError):
    """Raised when a requested endpoint kind is not registered."""

    def __init__(self, kind: str) -> None:
        super().__init__(f"Unknown endpoint kind: {kind!r}", kind=kind)


class TableNotFoundError(EndpointError):
    """Raised when a table does not exist on the endpoint."""

    def __init__(self, table: str, kind: str | None = None) -> None:
        super().__init__(f"Table not found: {table!r}", kind=kind)
        self.table = table
