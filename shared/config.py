"""
Shared configuration management for the Library Gateway.
"""

from typing import Literal, Optional

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class GatewayConfig(BaseSettings):
    """Immutable gateway configuration.

    Values are read from ``LIBRARY_*`` environment variables (or a ``.env``
    file) and may be overridden by keyword arguments. Instances are frozen so
    one object can be shared by every component without defensive copies.
    """

    model_config = SettingsConfigDict(
        env_prefix="LIBRARY_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    # Environment
    env: str = "local"
    log_level: str = "info"
    metrics_port: Optional[int] = Field(default=None, gt=0)

    # Upstream
    base_url: str = "http://api"
    api_key: SecretStr = SecretStr("")
    request_timeout: float = Field(default=10.0, gt=0)

    # Cache
    default_cache_ttl: float = Field(default=300.0, gt=0)
    cache_backend: Literal["memory", "redis"] = "memory"
    redis_url: str = "redis://localhost:6379/0"
    cache_key_prefix: str = "library"

    # Retry
    max_retry_attempts: int = Field(default=3, ge=1)
    retry_base_delay: float = Field(default=0.1, ge=0)
    retry_max_delay: float = Field(default=5.0, ge=0)
    retry_jitter: bool = False

    # Fan-out
    unit_timeout: Optional[float] = Field(default=30.0, gt=0)
    batch_deadline: Optional[float] = Field(default=None, gt=0)

    @property
    def normalized_base_url(self) -> str:
        return self.base_url.rstrip("/")


def get_config(**overrides) -> GatewayConfig:
    """Build the gateway configuration, applying explicit overrides."""
    return GatewayConfig(**overrides)
