"""
Shared configuration management for the Mirror service.
"""

from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="MIRROR_",
        env_file=".env",
        case_sensitive=False,
        extra="allow"
    )

    # Environment
    env: str = Field(default="local", description="Deployment environment")
    log_level: str = Field(default="info", description="Root log level")

    # Remote collection
    remote_base_url: str = Field(default="http://localhost:8080", description="Backend base URL")
    remote_endpoint: str = Field(default="/items", description="Collection path on the backend")
    request_timeout: float = Field(default=10.0, gt=0, description="Per-request timeout in seconds")

    # Retry policy (attempts include the first call)
    retry_max_attempts: int = Field(default=3, ge=1)
    retry_base_delay: float = Field(default=0.0, ge=0)

    # Lookup protocol
    lookup_budget: int = Field(default=2, ge=0)
    lookup_timeout: Optional[float] = Field(default=None, gt=0)
    lookup_id_is_integer: bool = Field(default=False, description="Parse route ids as integers")

    # Backend compatibility
    fetch_one_by_id: bool = Field(default=False, description="GET collection/<id> instead of the collection")
    update_method: Literal["POST", "PUT"] = Field(default="POST")

    # Streaming
    enable_sse: bool = Field(default=True)
    sse_heartbeat_seconds: float = Field(default=15.0, gt=0)


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int
    host: str = "0.0.0.0"

    def __init__(self, service_name: str, port: int, **kwargs):
        super().__init__(service_name=service_name, port=port, **kwargs)


def get_config(service_name: str, port: int, **overrides) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port, **overrides)
