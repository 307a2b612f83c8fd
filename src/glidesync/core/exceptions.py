"""Exceptions raised by glidesync services."""


class GlideSyncError(Exception):
    """Base class for glidesync service errors."""

    pass


class NotFoundError(GlideSyncError):
    """Raised when an operation references a missing entity."""

    pass


class ConflictError(GlideSyncError):
    """Raised when an operation conflicts with a running sync.

    Callers should retry later. The engine never retries these itself.
    """

    pass


class MappingValidationError(GlideSyncError):
    """Raised when column mappings fail validation."""

    def __init__(self, mapping_id: int | None, message: str) -> None:
        super().__init__(message)
        self.mapping_id = mapping_id
        self.message = message


# =============================================================================
# Not Found
# =============================================================================


class ConnectionNotFoundError(NotFoundError):
    """Raised when a connection does not exist."""

    def __init__(self, connection_id: int) -> None:
        super().__init__(f"Connection not found: {connection_id}")
        self.connection_id = connection_id


class MappingNotFoundError(NotFoundError):
    """Raised when a mapping does not exist."""

    def __init__(self, mapping_id: int) -> None:
        super().__init__(f"Mapping not found: {mapping_id}")
        self.mapping_id = mapping_id


class SyncLogNotFoundError(NotFoundError):
    """Raised when a sync log does not exist."""

    def __init__(self, log_id: int) -> None:
        super().__init__(f"Sync log not found: {log_id}")
        self.log_id = log_id


class SyncErrorNotFoundError(NotFoundError):
    """Raised when a recorded sync error does not exist."""

    def __init__(self, error_id: int) -> None:
        super().__init__(f"Sync error not found: {error_id}")
        self.error_id = error_id


# =============================================================================
# Conflict
# =============================================================================


class ConnectionInUseError(ConflictError):
    """Raised when deleting a connection that mappings still reference."""

    def __init__(self, connection_id: int, mapping_count: int) -> None:
        super().__init__(
            f"Connection {connection_id} is referenced by {mapping_count} mapping(s); "
            "deactivate it instead"
        )
        self.connection_id = connection_id
        self.mapping_count = mapping_count


class MappingBusyError(ConflictError):
    """Raised when modifying a mapping that has a running sync."""

    def __init__(self, mapping_id: int) -> None:
        super().__init__(f"Mapping {mapping_id} has a sync in progress")
        self.mapping_id = mapping_id


class RunConflictError(ConflictError):
    """Raised when starting a run for a mapping that already has one running."""

    def __init__(self, mapping_id: int) -> None:
        super().__init__(f"A sync is already running for mapping {mapping_id}")
        self.mapping_id = mapping_id


class RunNotActiveError(ConflictError):
    """Raised when an operation needs a running log but the log is terminal."""

    def __init__(self, log_id: int, status: str) -> None:
        super().__init__(f"Sync log {log_id} is not running (status: {status})")
        self.log_id = log_id
        self.status = status
