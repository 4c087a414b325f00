"""Application configuration loaded from environment variables.

All configuration is via environment variables (or a local .env file).
No hardcoded URLs, ports, or credentials.
"""

from functools import lru_cache

from pydantic import Field, PostgresDsn, RedisDsn
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="Content Analysis Pipeline")
    app_version: str = Field(default="1.0.0")
    debug: bool = Field(default=False)
    environment: str = Field(default="development")

    # Server
    port: int = Field(default=8000, description="Port to bind to")
    host: str = Field(default="0.0.0.0", description="Host to bind to")

    # Database
    database_url: PostgresDsn = Field(
        ...,
        description="PostgreSQL connection string",
    )
    db_pool_size: int = Field(default=5, description="Database connection pool size")
    db_max_overflow: int = Field(default=10, description="Max overflow connections")
    db_pool_timeout: int = Field(default=30, description="Pool timeout in seconds")
    db_slow_query_threshold_ms: int = Field(
        default=100, description="Threshold for slow query warnings (ms)"
    )
    db_connect_timeout: int = Field(
        default=60, description="Connection timeout in seconds"
    )
    db_command_timeout: int = Field(
        default=60, description="Command timeout in seconds"
    )

    # Redis (optional, used for cross-process analysis leases)
    redis_url: RedisDsn | None = Field(
        default=None,
        description="Redis connection string for analysis leases",
    )
    redis_pool_size: int = Field(default=10, description="Redis connection pool size")
    redis_connect_timeout: float = Field(
        default=10.0, description="Redis connection timeout in seconds"
    )
    redis_socket_timeout: float = Field(
        default=5.0, description="Redis socket timeout in seconds"
    )
    redis_retry_on_timeout: bool = Field(
        default=True, description="Retry Redis operations on timeout"
    )
    redis_health_check_interval: int = Field(
        default=30, description="Redis health check interval in seconds"
    )
    redis_circuit_failure_threshold: int = Field(
        default=5, description="Failures before circuit opens"
    )
    redis_circuit_recovery_timeout: float = Field(
        default=30.0, description="Seconds before attempting recovery"
    )

    # Logging
    log_level: str = Field(default="INFO", description="Log level")
    log_format: str = Field(default="json", description="Log format: json or text")

    # External AI inference service
    ai_service_url: str = Field(
        default="http://localhost:8000",
        description="Base URL of the AI content-analysis service",
    )
    ai_service_api_key: str | None = Field(
        default=None,
        description="API key sent as a bearer token to the AI service",
    )
    ai_service_timeout: float = Field(
        default=30.0, description="AI service request timeout in seconds"
    )
    ai_service_max_retries: int = Field(
        default=2, description="Maximum retry attempts inside a single AI call"
    )
    ai_service_retry_delay: float = Field(
        default=1.0, description="Base delay between AI call retries in seconds"
    )
    ai_service_circuit_failure_threshold: int = Field(
        default=5, description="Failures before circuit opens"
    )
    ai_service_circuit_recovery_timeout: float = Field(
        default=60.0, description="Seconds before attempting recovery"
    )

    # Analysis pipeline
    analysis_freshness_days: int = Field(
        default=7, description="Days a completed analysis result stays reusable"
    )
    analysis_lease_ttl_seconds: int = Field(
        default=300, description="Lifetime of a per-subject analysis lease"
    )
    analysis_lease_wait_timeout: float = Field(
        default=60.0,
        description="Seconds a caller waits for a busy subject before giving up",
    )
    bulk_analysis_max_items: int = Field(
        default=100, description="Maximum subjects accepted by one bulk analysis"
    )
    similarity_max_candidates: int = Field(
        default=50,
        description="Candidates compared when similarity is detected without explicit ids",
    )

    # Background job queues
    queue_workers_enabled: bool = Field(
        default=True, description="Start queue workers with the application"
    )
    queue_worker_concurrency: int = Field(
        default=2, description="Concurrent workers per analysis queue"
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
