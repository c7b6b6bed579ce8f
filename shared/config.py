"""
Shared configuration management for the response cache layer.
"""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="EDGE_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # External services
    redis_url: str = Field(default="redis://localhost:6379/0")

    # Cache layer
    cache_backend: Literal["memory", "redis"] = Field(default="memory")
    cache_ttl_seconds: float = Field(default=60.0, gt=0)
    cache_max_entries: int = Field(default=10000, ge=1)
    cache_eviction_policy: Literal["lru", "ttl-only"] = Field(default="lru")
    cache_verify_keys: bool = Field(default=True)
    cache_namespace: str = Field(default="cache")
    cache_sweep_interval_seconds: float = Field(default=30.0, ge=0)

    # Store resilience
    store_failure_threshold: int = Field(default=5, ge=1)
    store_recovery_timeout_seconds: float = Field(default=30.0, gt=0)


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
