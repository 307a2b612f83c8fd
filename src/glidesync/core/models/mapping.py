"""Mapping model and column mapping schemas."""

from datetime import datetime
from typing import TYPE_CHECKING, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String
from sqlalchemy.dialects.sqlite import JSON
from sqlalchemy.orm import Mapped, mapped_column, relationship

from glidesync.core.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from glidesync.core.models.connection import Connection


# =============================================================================
# Type Aliases
# =============================================================================

SyncDirection = Literal["to_sink", "to_source", "bidirectional"]
DataType = Literal["string", "number", "boolean", "date", "json"]

DATA_TYPES: tuple[str, ...] = ("string", "number", "boolean", "date", "json")

# Names used by older mapping definitions
LEGACY_DATA_TYPES: dict[str, str] = {
    "date-time": "date",
    "datetime": "date",
    "image-uri": "string",
    "email-address": "string",
}
LEGACY_DIRECTIONS: dict[str, str] = {
    "to_supabase": "to_sink",
    "to_glide": "to_source",
    "both": "bidirectional",
}


# =============================================================================
# SQLAlchemy Models
# =============================================================================


class Mapping(Base, TimestampMixin):
    """Correspondence between one Glide table and one relational table.

    Column mappings are embedded as a JSON object keyed by source column name.
    Status and counter columns are written only when a sync run completes.
    """

    __tablename__ = "gl_mappings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    connection_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("gl_connections.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    source_table: Mapped[str] = mapped_column(String(255), nullable=False)
    source_table_display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    sink_table: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    sync_direction: Mapped[str] = mapped_column(String(20), nullable=False, default="to_sink")
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    column_mappings: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    current_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    last_sync_completed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    error_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_records: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Relationships
    connection: Mapped["Connection"] = relationship("Connection", back_populates="mappings")

    def get_column_mappings(self) -> list["ColumnMapping"]:
        """Parse the stored column mappings."""
        return [ColumnMapping.model_validate(value) for value in self.column_mappings.values()]

    def __repr__(self) -> str:
        return (
            f"<Mapping(id={self.id}, source={self.source_table!r}, "
            f"sink={self.sink_table!r}, direction={self.sync_direction!r})>"
        )


# =============================================================================
# Pydantic Schemas - Column Mapping
# =============================================================================


class ColumnMapping(BaseModel):
    """One field-level correspondence between a source and a sink column."""

    source_column: str = Field(..., description="Column name in the Glide table")
    sink_column: str = Field(..., description="Column name in the relational table")
    data_type: DataType = Field(..., description="Declared logical type")

    @model_validator(mode="before")
    @classmethod
    def _accept_legacy_keys(cls, data: Any) -> Any:
        if isinstance(data, dict):
            data = dict(data)
            if "glide_column_name" in data and "source_column" not in data:
                data["source_column"] = data.pop("glide_column_name")
            if "supabase_column_name" in data and "sink_column" not in data:
                data["sink_column"] = data.pop("supabase_column_name")
        return data

    @field_validator("data_type", mode="before")
    @classmethod
    def _normalize_data_type(cls, value: Any) -> Any:
        if isinstance(value, str):
            lowered = value.strip().lower()
            return LEGACY_DATA_TYPES.get(lowered, lowered)
        return value


def column_mappings_to_json(mappings: list[ColumnMapping]) -> dict[str, Any]:
    """Key column mappings by source column for storage.

    Raises:
        ValueError: If two mappings share a source column.
    """
    result: dict[str, Any] = {}
    for mapping in mappings:
        if mapping.source_column in result:
            raise ValueError(f"Duplicate source column: {mapping.source_column!r}")
        result[mapping.source_column] = mapping.model_dump()
    return result


def _normalize_direction(value: Any) -> Any:
    if isinstance(value, str):
        return LEGACY_DIRECTIONS.get(value, value)
    return value


# =============================================================================
# Pydantic Schemas - Mapping
# =============================================================================


class MappingCreate(BaseModel):
    """Request to create a mapping. Mappings are always created disabled."""

    connection_id: int = Field(..., description="Owning connection")
    source_table: str = Field(..., min_length=1, max_length=255, description="Glide table id")
    source_table_display_name: str | None = Field(
        None, max_length=255, description="Human-readable Glide table name"
    )
    sink_table: str = Field(..., min_length=1, max_length=255, description="Relational table")
    sync_direction: SyncDirection = Field("to_sink", description="Which side is authoritative")
    column_mappings: list[ColumnMapping] = Field(default_factory=list)

    @field_validator("sync_direction", mode="before")
    @classmethod
    def _legacy_direction(cls, value: Any) -> Any:
        return _normalize_direction(value)


class MappingUpdate(BaseModel):
    """Request to update a mapping."""

    source_table: str | None = Field(None, min_length=1, max_length=255)
    source_table_display_name: str | None = Field(None, max_length=255)
    sink_table: str | None = Field(None, min_length=1, max_length=255)
    sync_direction: SyncDirection | None = None
    column_mappings: list[ColumnMapping] | None = None

    @field_validator("sync_direction", mode="before")
    @classmethod
    def _legacy_direction(cls, value: Any) -> Any:
        return _normalize_direction(value)


class MappingResponse(BaseModel):
    """Response for a mapping."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    connection_id: int
    source_table: str
    source_table_display_name: str
    sink_table: str
    sync_direction: str
    enabled: bool
    column_mappings: list[ColumnMapping]
    current_status: str | None
    last_sync_completed_at: datetime | None
    error_count: int
    total_records: int
    created_at: datetime
    updated_at: datetime

    @field_validator("column_mappings", mode="before")
    @classmethod
    def _from_stored(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return list(value.values())
        return value


class ColumnMappingSuggestion(ColumnMapping):
    """A proposed column mapping with a heuristic confidence score."""

    confidence: float = Field(..., ge=0.0, le=1.0)
