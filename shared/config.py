"""
Shared configuration management for the entitlement engine.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="ACCESS_",
        case_sensitive=False,
        extra="ignore"
    )

    # Environment
    env: str = Field(default="local", description="Deployment environment")
    log_level: str = Field(default="info", description="Log level name")


class EntitlementsConfig(BaseConfig):
    """Settings for the entitlement resolver and its collaborators."""

    # Remote entitlement authority
    authority_url: str = Field(default="http://localhost:8011/stripe")
    authority_timeout_seconds: float = Field(default=10.0, gt=0)
    authority_retry_attempts: int = Field(default=2, ge=1)
    authority_retry_base_delay: float = Field(default=0.25, ge=0)
    authority_failure_threshold: int = Field(default=3, ge=1)
    authority_recovery_timeout: float = Field(default=30.0, ge=0)

    # Local entitlement cache
    cache_backend: str = Field(default="redis", pattern="^(redis|memory)$")
    redis_url: str = Field(default="redis://localhost:6379/0")

    # Reverse trial
    trial_days: int = Field(default=14, ge=1)

    # Checkout redirects
    checkout_success_url: Optional[str] = Field(default=None)
    checkout_cancel_url: Optional[str] = Field(default=None)


class ServiceConfig(EntitlementsConfig):
    """Service-specific configuration."""

    service_name: str
    port: int
    host: str = "0.0.0.0"

    def __init__(self, service_name: str, port: int, **kwargs):
        super().__init__(service_name=service_name, port=port, **kwargs)


def get_config(service_name: str, port: int, **overrides) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port, **overrides)
