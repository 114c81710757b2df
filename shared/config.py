"""
Shared configuration management for the notification pipeline.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="NOTIFY_",
        env_file=".env",
        case_sensitive=False,
        extra="allow"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # External services
    kafka_bootstrap: str = Field(default="localhost:9092")
    redis_url: str = Field(default="redis://localhost:6379/0")

    # Topics and consumer groups
    notifications_topic: str = Field(default="notifications")
    dead_letter_topic: str = Field(default="notifications.DLT")
    notifications_partitions: int = Field(default=3, gt=0)
    dead_letter_partitions: int = Field(default=1, gt=0)
    replication_factor: int = Field(default=1, gt=0)
    consumer_group: str = Field(default="notification-group")
    dead_letter_group: str = Field(default="notification-dlt-group")
    auto_create_topics: bool = Field(default=True)

    # Rate limiting
    rate_limit_max_per_window: int = Field(default=5, gt=0)
    rate_limit_window_seconds: int = Field(default=60, gt=0)
    rate_limit_expiry_margin_seconds: int = Field(default=5, ge=0)
    limiter_timeout_seconds: float = Field(default=1.0, gt=0)

    # Producer / consumer tuning
    publish_timeout_seconds: float = Field(default=10.0, gt=0)
    poll_timeout_ms: int = Field(default=1000, gt=0)
    max_poll_records: int = Field(default=100, gt=0)
    redelivery_backoff_seconds: float = Field(default=1.0, ge=0)

    # Simulated delivery provider
    delivery_latency_ms: int = Field(default=50, ge=0)

    # Inbound surface
    burst_default_count: int = Field(default=8, gt=0)


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
