"""SQLAlchemy models and pydantic schemas for glidesync."""

from glidesync.core.models.base import Base, TimestampMixin
from glidesync.core.models.connection import (
    Connection,
    ConnectionCreate,
    ConnectionResponse,
    ConnectionStatus,
    ConnectionTestResult,
    ConnectionUpdate,
)
from glidesync.core.models.mapping import (
    DATA_TYPES,
    ColumnMapping,
    ColumnMappingSuggestion,
    DataType,
    Mapping,
    MappingCreate,
    MappingResponse,
    MappingUpdate,
    SyncDirection,
    column_mappings_to_json,
)
from glidesync.core.models.schemas import (
    ColumnSchema,
    RowPage,
    RowWriteResult,
    SuggestRequest,
    SyncRunResult,
    TableInfo,
    ValidationResult,
)
from glidesync.core.models.sync_log import (
    TERMINAL_STATUSES,
    ForceCompleteRequest,
    RunStatus,
    SyncError,
    SyncErrorResolve,
    SyncErrorResponse,
    SyncErrorType,
    SyncLog,
    SyncLogResponse,
    SyncStatsEntry,
    TerminalStatus,
)

__all__ = [
    # Base
    "Base",
    "TimestampMixin",
    # Connection
    "Connection",
    "ConnectionCreate",
    "ConnectionResponse",
    "ConnectionStatus",
    "ConnectionTestResult",
    "ConnectionUpdate",
    # Mapping
    "DATA_TYPES",
    "ColumnMapping",
    "ColumnMappingSuggestion",
    "DataType",
    "Mapping",
    "MappingCreate",
    "MappingResponse",
    "MappingUpdate",
    "SyncDirection",
    "column_mappings_to_json",
    # Shared schemas
    "ColumnSchema",
    "RowPage",
    "RowWriteResult",
    "SuggestRequest",
    "SyncRunResult",
    "TableInfo",
    "ValidationResult",
    # Sync log
    "TERMINAL_STATUSES",
    "ForceCompleteRequest",
    "RunStatus",
    "SyncError",
    "SyncErrorResolve",
    "SyncErrorResponse",
    "SyncErrorType",
    "SyncLog",
    "SyncLogResponse",
    "SyncStatsEntry",
    "TerminalStatus",
]
