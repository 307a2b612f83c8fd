"""API-specific request/response schemas."""

from typing import Any

from pydantic import BaseModel, Field

from glidesync.core.models import ColumnSchema


class ErrorResponse(BaseModel):
    """Standard error response schema."""

    error: str = Field(..., description="Error code")
    message: str = Field(..., description="Human-readable error message")
    detail: dict[str, Any] | None = Field(None, description="Additional error details")


class HealthResponse(BaseModel):
    """Health check response schema."""

    status: str = Field(..., description="Service status")
    version: str = Field(..., description="Application version")


class MappingSchemasResponse(BaseModel):
    """Live column snapshots of a mapping's two tables."""

    source: list[ColumnSchema] = Field(..., description="Columns of the Glide table")
    sink: list[ColumnSchema] = Field(..., description="Columns of the relational table")
