"""Connection model and schemas."""

from datetime import datetime
from typing import TYPE_CHECKING, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_serializer
from sqlalchemy import DateTime, Integer, String
from sqlalchemy.dialects.sqlite import JSON
from sqlalchemy.orm import Mapped, mapped_column, relationship

from glidesync.core.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from glidesync.core.models.mapping import Mapping

ConnectionStatus = Literal["active", "inactive", "error"]


class Connection(Base, TimestampMixin):
    """Credentials and identity for one external Glide app."""

    __tablename__ = "gl_connections"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    app_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    api_key: Mapped[str] = mapped_column(String(512), nullable=False)
    app_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    source_type: Mapped[str] = mapped_column(String(50), nullable=False, default="glide")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")
    last_sync_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    settings: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    # Relationships
    mappings: Mapped[list["Mapping"]] = relationship(
        "Mapping",
        back_populates="connection",
    )

    def __repr__(self) -> str:
        return f"<Connection(id={self.id}, app_id={self.app_id!r}, status={self.status!r})>"


# =============================================================================
# Pydantic Schemas
# =============================================================================


class ConnectionCreate(BaseModel):
    """Request to create a connection."""

    app_id: str = Field(..., min_length=1, max_length=255, description="Glide app identifier")
    api_key: SecretStr = Field(..., description="Glide API key")
    app_name: str | None = Field(None, max_length=255, description="Display name of the app")
    source_type: str = Field("glide", description="Endpoint kind used to reach the app")
    settings: dict[str, Any] = Field(default_factory=dict, description="Free-form settings")


class ConnectionUpdate(BaseModel):
    """Request to update a connection."""

    app_id: str | None = Field(None, min_length=1, max_length=255)
    api_key: SecretStr | None = None
    app_name: str | None = Field(None, max_length=255)
    status: ConnectionStatus | None = None
    settings: dict[str, Any] | None = None


class ConnectionResponse(BaseModel):
    """Response for a connection. The API key is always masked."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    app_id: str
    api_key: str
    app_name: str | None
    source_type: str
    status: str
    last_sync_at: datetime | None
    settings: dict[str, Any]
    created_at: datetime
    updated_at: datetime

    @field_serializer("api_key")
    def _mask_api_key(self, value: str) -> str:
        if len(value) <= 4:
            return "****"
        return f"****{value[-4:]}"


class ConnectionTestResult(BaseModel):
    """Result of testing a connection."""

    connection_id: int
    connected: bool
    message: str
    latency_ms: float | None = None
