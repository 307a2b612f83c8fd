"""Pydantic schemas shared by the validator, endpoints and sync runs."""

from typing import Any

from pydantic import BaseModel, Field

# =============================================================================
# Schema Snapshots
# =============================================================================


class ColumnSchema(BaseModel):
    """Description of one column on either side of a mapping."""

    name: str = Field(..., description="Column name")
    native_type: str = Field(..., description="Type name as reported by the endpoint")
    writable: bool = Field(True, description="Whether values can be written to the column")
    primary_key: bool = Field(False, description="Whether the column is part of the primary key")
    unique: bool = Field(False, description="Whether values are unique across the table")


class TableInfo(BaseModel):
    """A table an endpoint can read or write."""

    name: str = Field(..., description="Identifier used to address the table")
    display_name: str | None = Field(None, description="Human-readable name, if different")


class ValidationResult(BaseModel):
    """Outcome of validating a set of column mappings."""

    is_valid: bool
    message: str


# =============================================================================
# Row Transfer Schemas
# =============================================================================


class RowPage(BaseModel):
    """One page of rows read from an endpoint.

    `next_cursor` is None when the table is exhausted.
    """

    rows: list[dict[str, Any]] = Field(default_factory=list)
    next_cursor: str | None = None


class RowWriteResult(BaseModel):
    """Per-row outcome of a batch write."""

    success: bool
    row_id: str | None = None
    error: str | None = None


# =============================================================================
# Sync Run Schemas
# =============================================================================


class SyncRunResult(BaseModel):
    """Summary returned to the caller of a sync run."""

    log_id: int
    mapping_id: int | None
    status: str
    records_processed: int
    failed_records: int
    message: str


class SuggestRequest(BaseModel):
    """Request for column mapping suggestions."""

    source_columns: list[str] | None = Field(
        None, description="Source column names. Fetched from the source endpoint when omitted."
    )
