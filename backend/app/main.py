"""FastAPI application shell for the content-analysis pipeline.

The app exposes health endpoints only; analyses run through the services and
the background queues started in the lifespan.

Error Logging Requirements:
- Every request logged with method, path, status, timing and request_id
- Request bodies logged at DEBUG with secrets redacted
- 4xx responses at WARNING, 5xx at ERROR
- Error responses shaped {"error": str, "code": str, "request_id": str}
"""

import json
import logging
import time
import uuid
from contextlib import asynccontextmanager
from typing import Any

from fastapi import APIRouter, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from app.core.config import get_settings
from app.core.database import db_manager
from app.core.job_queue import JobQueueError
from app.core.logging import get_logger, request_id_var, setup_logging
from app.core.redis import redis_manager
from app.integrations.ai_service import (
    AIServiceError,
    close_ai_service,
    get_ai_service,
    init_ai_service,
)
from app.services import analysis_jobs
from app.services.content_source import (
    AnalysisInProgressError,
    AnalysisNotFoundError,
    ContentAnalysisError,
    ContentAnalysisValidationError,
    ContentNotFoundError,
)

setup_logging()
logger = get_logger(__name__)

SENSITIVE_FIELDS = {"password", "token", "secret", "api_key", "authorization"}

# Most specific first; the first matching class decides status and code.
ERROR_CODES: list[tuple[type[Exception], int, str]] = [
    (ContentNotFoundError, status.HTTP_404_NOT_FOUND, "NOT_FOUND"),
    (AnalysisNotFoundError, status.HTTP_404_NOT_FOUND, "NOT_FOUND"),
    (ContentAnalysisValidationError, status.HTTP_400_BAD_REQUEST, "VALIDATION_ERROR"),
    (AnalysisInProgressError, status.HTTP_409_CONFLICT, "ANALYSIS_IN_PROGRESS"),
    (ContentAnalysisError, status.HTTP_400_BAD_REQUEST, "CONTENT_ANALYSIS_ERROR"),
    (AIServiceError, status.HTTP_502_BAD_GATEWAY, "AI_SERVICE_ERROR"),
    (JobQueueError, status.HTTP_404_NOT_FOUND, "JOB_NOT_FOUND"),
]


def sanitize_body(body: Any) -> Any:
    """Redact sensitive keys at any depth."""
    if isinstance(body, dict):
        return {
            key: "****" if key.lower() in SENSITIVE_FIELDS else sanitize_body(value)
            for key, value in body.items()
        }
    if isinstance(body, list):
        return [sanitize_body(item) for item in body]
    return body


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", "unknown")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Assigns a request id, logs the request and stamps X-Request-ID."""

    async def dispatch(self, request: Request, call_next: Any) -> Any:
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id
        token = request_id_var.set(request_id)
        started = time.monotonic()
        try:
            logger.info(
                "Request started",
                extra={"method": request.method, "path": request.url.path},
            )
            if request.method not in ("GET", "HEAD", "OPTIONS") and logger.isEnabledFor(
                logging.DEBUG
            ):
                await self._log_body(request)

            response = await call_next(request)
        finally:
            request_id_var.reset(token)

        response.headers["X-Request-ID"] = request_id
        level = (
            logging.ERROR
            if response.status_code >= 500
            else logging.WARNING
            if response.status_code >= 400
            else logging.INFO
        )
        logger.log(
            level,
            "Request finished",
            extra={
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "duration_ms": round((time.monotonic() - started) * 1000, 2),
            },
        )
        return response

    async def _log_body(self, request: Request) -> None:
        body = await request.body()
        if not body:
            return
        try:
            logger.debug("Request body", extra={"body": sanitize_body(json.loads(body))})
        except json.JSONDecodeError:
            logger.debug("Request body (non-JSON)", extra={"body_length": len(body)})


@asynccontextmanager
async def lifespan(app: FastAPI) -> Any:
    """Bring up database, Redis, the AI client and queue workers; tear down in reverse."""
    settings = get_settings()
    logger.info(
        "Starting application",
        extra={
            "app_name": settings.app_name,
            "version": settings.app_version,
            "environment": settings.environment,
        },
    )

    db_manager.init_db()
    redis_available = await redis_manager.init_redis()
    ai_client = await init_ai_service()
    analysis_jobs.init_queues(start_workers=settings.queue_workers_enabled)
    logger.info(
        "Application ready",
        extra={
            "redis_leases": redis_available,
            "ai_service_configured": ai_client.available,
            "queue_workers": settings.queue_workers_enabled,
        },
    )
    if not ai_client.available:
        logger.warning("AI_SERVICE_API_KEY is not set, AI calls will be rejected")

    yield

    logger.info("Shutting down application")
    await analysis_jobs.close_queues()
    await close_ai_service()
    await redis_manager.close()
    await db_manager.close()
    logger.info("Application shutdown complete")


def _error_response(
    request: Request, status_code: int, error: str, code: str
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": error, "code": code, "request_id": _request_id(request)},
    )


async def handle_known_error(request: Request, exc: Exception) -> JSONResponse:
    for error_type, status_code, code in ERROR_CODES:
        if isinstance(exc, error_type):
            break
    else:
        return await handle_unexpected_error(request, exc)

    extra = {
        "request_id": _request_id(request),
        "error_type": type(exc).__name__,
        "error_message": str(exc),
        "code": code,
    }
    if isinstance(exc, AIServiceError):
        extra["upstream_status"] = exc.status_code
    logger.log(
        logging.ERROR if status_code >= 500 else logging.WARNING,
        "Request rejected",
        extra=extra,
    )
    return _error_response(request, status_code, str(exc), code)


async def handle_validation_error(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = exc.errors()
    message = "; ".join(
        f"{'.'.join(str(loc) for loc in e['loc'])}: {e['msg']}" for e in errors
    )
    logger.warning(
        "Validation error",
        extra={"request_id": _request_id(request), "errors": errors},
    )
    return _error_response(
        request, status.HTTP_422_UNPROCESSABLE_ENTITY, message, "VALIDATION_ERROR"
    )


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "Unhandled exception",
        extra={
            "request_id": _request_id(request),
            "error_type": type(exc).__name__,
            "error_message": str(exc),
        },
        exc_info=exc,
    )
    return _error_response(
        request,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "An internal error occurred. Please try again later.",
        "INTERNAL_ERROR",
    )


health_router = APIRouter(prefix="/health", tags=["Health"])


@health_router.get("")
async def health_check() -> dict[str, str]:
    """Liveness check."""
    return {"status": "ok"}


@health_router.get("/db")
async def database_health() -> dict[str, str | bool]:
    is_healthy = await db_manager.check_connection()
    return {"status": "ok" if is_healthy else "error", "database": is_healthy}


@health_router.get("/redis")
async def redis_health() -> dict[str, str | bool]:
    """Redis is optional; "unavailable" means leases are process-local."""
    is_healthy = await redis_manager.check_health()
    breaker = redis_manager.circuit_breaker
    return {
        "status": "ok" if is_healthy else "unavailable",
        "redis": is_healthy,
        "circuit_breaker": breaker.state.value if breaker else "not_initialized",
    }


@health_router.get("/queues")
async def queues_health() -> dict[str, Any]:
    """Worker state and job counts per analysis queue."""
    queues = analysis_jobs.get_queue_registry().health()
    running = all(q["running"] for q in queues.values())
    return {"status": "ok" if running else "stopped", "queues": queues}


@health_router.get("/ai-service")
async def ai_service_health() -> dict[str, Any]:
    client = await get_ai_service()
    is_healthy = await client.health_check()
    return {
        "status": "ok" if is_healthy else "unavailable",
        "ai_service": is_healthy,
        "circuit_breaker": client.circuit_breaker.state.value,
    }


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )
    app.add_middleware(RequestLoggingMiddleware)

    app.add_exception_handler(RequestValidationError, handle_validation_error)  # type: ignore[arg-type]
    for error_type in (ContentAnalysisError, AIServiceError, JobQueueError):
        app.add_exception_handler(error_type, handle_known_error)
    app.add_exception_handler(Exception, handle_unexpected_error)

    app.include_router(health_router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run("app.main:app", host=settings.host, port=settings.port, reload=settings.debug)
