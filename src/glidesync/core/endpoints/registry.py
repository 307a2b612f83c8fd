"""Endpoint registry for discovering and instantiating endpoints."""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel

from glidesync.core.endpoints.base import SyncEndpoint
from glidesync.core.endpoints.exceptions import EndpointNotFoundError


@dataclass
class EndpointInfo:
    """Metadata about a registered endpoint kind."""

    kind: str
    display_name: str
    endpoint_class: type[SyncEndpoint]
    config_schema: type[BaseModel]


class EndpointRegistry:
    """Registry of sync endpoint kinds.

    Endpoints register themselves with the @register decorator and are then
    instantiated by kind name from a plain config dict.

    Usage:
        @EndpointRegistry.register(
            kind="glide",
            display_name="Glide Tables",
            config_schema=GlideConfig,
        )
        class GlideEndpoint(SyncEndpoint):
            ...

        endpoint = EndpointRegistry.get_endpoint("glide", {"app_id": ..., "api_key": ...})
    """

    _endpoints: dict[str, EndpointInfo] = {}

    @classmethod
    def register(
        cls,
        kind: str,
        display_name: str,
        config_schema: type[BaseModel],
    ) -> Callable[[type[SyncEndpoint]], type[SyncEndpoint]]:
        """Decorator to register an endpoint class.

        Args:
            kind: Unique identifier for the endpoint kind (e.g., 'glide').
            display_name: Human-readable name for display.
            config_schema: Pydantic model class for configuration validation.

        Returns:
            Decorator function.
        """

        def decorator(endpoint_class: type[SyncEndpoint]) -> type[SyncEndpoint]:
            endpoint_class.kind = kind
            cls._endpoints[kind] = EndpointInfo(
                kind=kind,
                display_name=display_name,
                endpoint_class=endpoint_class,
                config_schema=config_schema,
            )
            return endpoint_class

        return decorator

    @classmethod
    def get_endpoint(cls, kind: str, config: dict[str, Any]) -> SyncEndpoint:
        """Instantiate an endpoint by kind.

        Args:
            kind: The registered endpoint kind.
            config: Configuration dict to validate and pass to the endpoint.

        Returns:
            Instantiated endpoint (not yet connected).

        Raises:
            EndpointNotFoundError: If kind is not registered.
            ValidationError: If config is invalid.
        """
        if kind not in cls._endpoints:
            raise EndpointNotFoundError(kind)

        info = cls._endpoints[kind]
        validated_config = info.config_schema(**config)
        return info.endpoint_class(validated_config)

    @classmethod
    def list_endpoints(cls) -> list[EndpointInfo]:
        """List all registered endpoint kinds."""
        return list(cls._endpoints.values())

    @classmethod
    def is_registered(cls, kind: str) -> bool:
        """Check if an endpoint kind is registered."""
        return kind in cls._endpoints
