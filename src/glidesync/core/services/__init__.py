"""Business logic services for glidesync."""

from glidesync.core.services.config_loader import (
    ConfigLoadError,
    load_connection_config,
    load_mapping_config,
    load_yaml_config,
    mask_sensitive_values,
    substitute_env_vars,
)
from glidesync.core.services.connection_service import ConnectionService
from glidesync.core.services.mapping_service import MappingService
from glidesync.core.services.suggestion import normalize_column_name, suggest_column_mappings
from glidesync.core.services.sync_log_service import SyncLogService
from glidesync.core.services.sync_service import SyncOrchestrator, compute_terminal_status
from glidesync.core.services.validation import (
    TYPE_COMPATIBILITY,
    MappingValidator,
    infer_data_type,
    normalize_native_type,
)

__all__ = [
    # Config loading
    "ConfigLoadError",
    "load_connection_config",
    "load_mapping_config",
    "load_yaml_config",
    "mask_sensitive_values",
    "substitute_env_vars",
    # Connections and mappings
    "ConnectionService",
    "MappingService",
    # Validation and suggestions
    "MappingValidator",
    "TYPE_COMPATIBILITY",
    "infer_data_type",
    "normalize_native_type",
    "normalize_column_name",
    "suggest_column_mappings",
    # Sync runs
    "SyncLogService",
    "SyncOrchestrator",
    "compute_terminal_status",
]
