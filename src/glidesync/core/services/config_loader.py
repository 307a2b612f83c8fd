"""Connection and mapping definition files with environment variable substitution."""

import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from glidesync.core.exceptions import GlideSyncError
from glidesync.core.models import ConnectionCreate, MappingCreate

_ENV_PATTERN = re.compile(r"\$\{([^}:-]+)(?::-([^}]*))?\}")


class ConfigLoadError(GlideSyncError):
    """Raised when a definition file cannot be loaded."""

    pass


def substitute_env_vars(value: Any) -> Any:
    """Recursively substitute ${VAR} patterns with environment variables.

    Supports:
    - ${VAR} - Required variable (raises if not set)
    - ${VAR:-default} - Variable with default value

    Raises:
        ConfigLoadError: If a required variable is not set.
    """
    if isinstance(value, str):

        def replace(match: re.Match) -> str:
            var_name = match.group(1)
            default = match.group(2)

            env_value = os.environ.get(var_name)
            if env_value is not None:
                return env_value
            if default is not None:
                return default
            raise ConfigLoadError(
                f"Environment variable '{var_name}' is not set and no default provided"
            )

        return _ENV_PATTERN.sub(replace, value)

    if isinstance(value, dict):
        return {k: substitute_env_vars(v) for k, v in value.items()}

    if isinstance(value, list):
        return [substitute_env_vars(item) for item in value]

    return value


def load_yaml_config(path: Path) -> dict[str, Any]:
    """Load a YAML mapping file with environment variable substitution.

    Raises:
        ConfigLoadError: If the file is missing, empty, or not a YAML mapping.
    """
    if not path.exists():
        raise ConfigLoadError(f"Configuration file not found: {path}")

    try:
        with open(path) as f:
            config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigLoadError(f"Invalid YAML in {path}: {e}") from e

    if config is None:
        raise ConfigLoadError(f"Empty configuration file: {path}")
    if not isinstance(config, dict):
        raise ConfigLoadError(f"Expected a mapping at the top of {path}")

    return substitute_env_vars(config)


def load_connection_config(path: Path) -> ConnectionCreate:
    """Load a connection definition.

    Example file:
        app_id: ${GLIDE_APP_ID}
        api_key: ${GLIDE_API_KEY}
        app_name: Invoicing
        settings:
          sink_schema: public

    Raises:
        ConfigLoadError: If the file cannot be loaded or is invalid.
    """
    config = load_yaml_config(path)
    try:
        return ConnectionCreate.model_validate(config)
    except ValidationError as e:
        raise ConfigLoadError(f"Invalid connection definition in {path}: {e}") from e


def load_mapping_config(path: Path, connection_id: int | None = None) -> MappingCreate:
    """Load a mapping definition.

    Example file:
        source_table: native-table-abc123
        source_table_display_name: Invoices
        sink_table: invoices
        sync_direction: to_sink
        column_mappings:
          - source_column: $rowID
            sink_column: glide_row_id
            data_type: string
          - source_column: Total Amount
            sink_column: total_amount
            data_type: number

    Args:
        path: Path to the YAML file.
        connection_id: Owning connection; overrides any value in the file.

    Raises:
        ConfigLoadError: If the file cannot be loaded or is invalid.
    """
    config = load_yaml_config(path)
    if connection_id is not None:
        config["connection_id"] = connection_id
    try:
        return MappingCreate.model_validate(config)
    except ValidationError as e:
        raise ConfigLoadError(f"Invalid mapping definition in {path}: {e}") from e


def mask_sensitive_values(config: dict[str, Any]) -> dict[str, Any]:
    """Mask values whose keys look like secrets, for display."""
    sensitive_patterns = ["secret", "token", "password", "key", "credential", "database_url"]

    def should_mask(key: str) -> bool:
        key_lower = key.lower()
        return any(pattern in key_lower for pattern in sensitive_patterns)

    def mask_value(key: str, value: Any) -> Any:
        if isinstance(value, dict):
            return {k: mask_value(k, v) for k, v in value.items()}
        if isinstance(value, list):
            return [mask_value(key, item) for item in value]
        if should_mask(key) and value is not None:
            return "***"
        return value

    return {k: mask_value(k, v) for k, v in config.items()}
