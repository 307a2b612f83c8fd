"""Configuration schemas for sync endpoints."""

from pydantic import BaseModel, Field, SecretStr


class GlideConfig(BaseModel):
    """Configuration for the Glide Tables API."""

    app_id: str = Field(..., description="Glide app identifier")
    api_key: SecretStr = Field(..., description="Glide API key, sent as a bearer token")
    base_url: str = Field(
        default="https://api.glideapp.io/api/function",
        description="Base URL of the Glide function API",
    )
    timeout: float = Field(default=30.0, ge=1, le=300, description="Request timeout in seconds")


class SqlTableConfig(BaseModel):
    """Configuration for a relational database reached through SQLAlchemy.

    Supabase is addressed with its Postgres connection string.
    """

    database_url: str = Field(..., description="SQLAlchemy database URL")
    schema_name: str | None = Field(
        default=None,
        description="Database schema holding the tables (None for the default)",
    )
