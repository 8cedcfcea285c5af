"""
Shared configuration management for the portfolio cache layer.
"""

from typing import Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="PORTFOLIO_",
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore",
    )

    # Environment
    env: str = "local"
    log_level: str = "info"

    # Redis backend; unset means the in-process fallback is used
    redis_url: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("PORTFOLIO_REDIS_URL", "REDIS_URL"),
    )

    # Cache behaviour
    cache_default_ttl: Optional[int] = Field(default=None, ge=1)
    cache_connect_attempts: int = Field(default=3, ge=1)
    cache_connect_base_delay: float = Field(default=0.1, ge=0)
    cache_connect_max_delay: float = Field(default=3.0, ge=0)
    cache_socket_timeout: float = Field(default=5.0, gt=0)
    cache_reconnect: bool = True


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int
    host: str = "0.0.0.0"

    def __init__(self, service_name: str, port: int, **kwargs):
        super().__init__(service_name=service_name, port=port, **kwargs)


def get_config(service_name: str, port: int) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port)
