"""
Shared configuration management for the Contacts Service.
"""

from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="CONTACTS_",
        case_sensitive=False,
        extra="allow"
    )

    # Environment
    env: str = Field(default="local", description="Deployment environment")
    log_level: str = Field(default="info")

    # External services
    database_url: str = Field(default="postgresql://localhost:5432/contacts")
    redis_url: Optional[str] = Field(default=None, description="Shared cache; unset means in-process cache")

    # Database pool
    db_pool_min_size: int = Field(default=2)
    db_pool_max_size: int = Field(default=10)
    db_command_timeout: float = Field(default=30.0)

    # Caching
    cache_ttl_seconds: int = Field(default=300)
    idempotency_ttl_seconds: int = Field(default=86400)

    # HTTP
    cors_origins: List[str] = Field(default_factory=list)


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
