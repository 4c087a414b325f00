"""Integrations layer - External service clients.

Integrations handle communication with external APIs and services.
They abstract the details of external service protocols.
"""

from app.integrations.ai_service import (
    AIServiceAuthError,
    AIServiceCircuitOpenError,
    AIServiceClient,
    AIServiceError,
    AIServiceRateLimitError,
    AIServiceResponseError,
    AIServiceTimeoutError,
    close_ai_service,
    get_ai_service,
    init_ai_service,
)

__all__ = [
    "AIServiceAuthError",
    "AIServiceCircuitOpenError",
    "AIServiceClient",
    "AIServiceError",
    "AIServiceRateLimitError",
    "AIServiceResponseError",
    "AIServiceTimeoutError",
    "close_ai_service",
    "get_ai_service",
    "init_ai_service",
]
