"""Core utilities and configuration."""

from app.core.circuit_breaker import CircuitBreaker, CircuitBreakerConfig, CircuitState
from app.core.config import Settings, get_settings
from app.core.database import (
    Base,
    db_manager,
    session_scope,
)
from app.core.logging import (
    ai_service_logger,
    db_logger,
    get_logger,
    job_queue_logger,
    redis_logger,
    setup_logging,
)
from app.core.redis import redis_manager

__all__ = [
    # Circuit breaker
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitState",
    # Config
    "Settings",
    "get_settings",
    # Database
    "Base",
    "db_manager",
    "session_scope",
    # Logging
    "ai_service_logger",
    "db_logger",
    "get_logger",
    "job_queue_logger",
    "redis_logger",
    "setup_logging",
    # Redis
    "redis_manager",
]
