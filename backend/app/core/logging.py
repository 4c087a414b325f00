"""Structured logging for the analysis pipeline.

Everything goes to stdout: JSON in production (python-json-logger), plain
text in development. Context is passed with extra={...}; the request and job
ids of the current task are attached to every record automatically.

Component loggers below cover the events every dependency must report:
- Database: connection errors (masked URL), slow scopes, transaction failures,
  migrations
- Redis: connection state, per-command timing, timeouts, fallbacks
- AI service: call start/end with retry attempt, timeouts, 429s, auth
  failures, rejected responses, fallbacks; API keys are always masked
- Job queues: lifecycle, retries at WARNING, terminal failures at ERROR
"""

import logging
import re
import sys
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

from pythonjsonlogger import jsonlogger

from app.core.config import get_settings

request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)
job_id_var: ContextVar[str | None] = ContextVar("job_id", default=None)

_URL_PASSWORD = re.compile(r"(://[^:/@]+:)([^@]+)(@)")


class CustomJsonFormatter(jsonlogger.JsonFormatter):  # type: ignore[name-defined]
    def add_fields(
        self,
        log_record: dict[str, Any],
        record: logging.LogRecord,
        message_dict: dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(UTC).isoformat()
        log_record["level"] = record.levelname
        log_record["logger"] = record.name
        if record.exc_info:
            log_record["exception"] = self.formatException(record.exc_info)


class TaskContextFilter(logging.Filter):
    """Copy the current request/job id onto the record unless already set."""

    def filter(self, record: logging.LogRecord) -> bool:
        for attr, var in (("request_id", request_id_var), ("job_id", job_id_var)):
            value = var.get()
            if value is not None and not hasattr(record, attr):
                setattr(record, attr, value)
        return True


def mask_connection_string(conn_str: str) -> str:
    if not conn_str:
        return ""
    return _URL_PASSWORD.sub(r"\1****\3", conn_str)


def mask_api_key(api_key: str | None) -> str | None:
    """Keep the last four characters of keys long enough to hide the rest."""
    if not api_key:
        return None
    return "****" if len(api_key) <= 8 else f"****{api_key[-4:]}"


def truncate(text: str, max_length: int = 500) -> str:
    if len(text) <= max_length:
        return text
    return f"{text[:max_length]}... (truncated, {len(text)} chars)"


def setup_logging() -> None:
    settings = get_settings()

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(TaskContextFilter())
    if settings.log_format == "json":
        handler.setFormatter(
            CustomJsonFormatter("%(timestamp)s %(level)s %(name)s %(message)s")
        )
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )

    root_logger = logging.getLogger()
    root_logger.setLevel(settings.log_level.upper())
    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    for noisy in ("uvicorn.access", "httpx", "httpcore"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


class ComponentLogger:
    """Base for the per-dependency loggers.

    Durations are rounded to 0.01 ms and fields whose value is None are
    left out of the record.
    """

    channel = "app"

    def __init__(self) -> None:
        self.logger = get_logger(self.channel)

    def _emit(self, level: int, message: str, **fields: Any) -> None:
        if not self.logger.isEnabledFor(level):
            return
        extra = {key: value for key, value in fields.items() if value is not None}
        for key in ("duration_ms", "delay_seconds"):
            if isinstance(extra.get(key), float):
                extra[key] = round(extra[key], 2)
        self.logger.log(level, message, extra=extra)


class DatabaseLogger(ComponentLogger):
    channel = "database"

    def connection_error(self, error: Exception, connection_string: str) -> None:
        self._emit(
            logging.ERROR,
            "Database connection failed",
            connection_string=mask_connection_string(connection_string),
            error_type=type(error).__name__,
            error_message=str(error),
        )

    def slow_query(
        self, query: str, duration_ms: float, table: str | None = None
    ) -> None:
        self._emit(
            logging.WARNING,
            "Slow query detected",
            query=query[:500],
            duration_ms=duration_ms,
            table=table,
        )

    def transaction_failure(
        self, error: Exception, table: str | None = None, context: str | None = None
    ) -> None:
        self._emit(
            logging.ERROR,
            "Transaction failed, rolling back",
            table=table,
            rollback_context=context,
            error_type=type(error).__name__,
            error_message=str(error),
        )

    def migration_start(self, version: str, description: str) -> None:
        self._emit(
            logging.INFO,
            "Starting database migration",
            migration_version=version,
            description=description,
        )

    def migration_end(self, version: str, success: bool) -> None:
        self._emit(
            logging.INFO if success else logging.ERROR,
            "Database migration finished" if success else "Database migration failed",
            migration_version=version,
            success=success,
        )


class RedisLogger(ComponentLogger):
    channel = "redis"

    def connection_error(self, error: Exception, connection_string: str) -> None:
        self._emit(
            logging.ERROR,
            "Redis connection failed",
            connection_string=mask_connection_string(connection_string),
            error_type=type(error).__name__,
            error_message=str(error),
        )

    def connection_success(self) -> None:
        self._emit(logging.INFO, "Redis connection established")

    def operation(
        self, operation: str, key: str, duration_ms: float, success: bool
    ) -> None:
        self._emit(
            logging.DEBUG if success else logging.WARNING,
            f"Redis {operation}",
            operation=operation,
            key=key[:100] or None,
            duration_ms=duration_ms,
            success=success,
        )

    def timeout(self, operation: str, key: str, timeout_seconds: float) -> None:
        self._emit(
            logging.WARNING,
            "Redis operation timed out",
            operation=operation,
            key=key[:100] or None,
            timeout_seconds=timeout_seconds,
        )

    def graceful_fallback(self, operation: str, reason: str) -> None:
        self._emit(
            logging.INFO,
            "Redis unavailable, using in-process fallback",
            operation=operation,
            reason=reason,
        )


class AIServiceLogger(ComponentLogger):
    """AI service calls. Bodies are logged at DEBUG and truncated."""

    channel = "ai_service"

    def api_call_start(
        self,
        endpoint: str,
        content_id: str | None,
        retry_attempt: int = 0,
        api_key: str | None = None,
    ) -> None:
        self._emit(
            logging.DEBUG,
            f"AI service call: {endpoint}",
            endpoint=endpoint,
            content_id=content_id,
            retry_attempt=retry_attempt,
            api_key=mask_api_key(api_key),
        )

    def api_call_success(
        self,
        endpoint: str,
        duration_ms: float,
        content_id: str | None = None,
        model_version: str | None = None,
    ) -> None:
        self._emit(
            logging.DEBUG,
            f"AI service call completed: {endpoint}",
            endpoint=endpoint,
            duration_ms=duration_ms,
            content_id=content_id,
            model_version=model_version,
            success=True,
        )

    def api_call_error(
        self,
        endpoint: str,
        duration_ms: float,
        status_code: int | None,
        error: str,
        error_type: str,
        retry_attempt: int = 0,
    ) -> None:
        # client errors are the caller's problem, everything else is ours
        client_error = status_code is not None and 400 <= status_code < 500
        self._emit(
            logging.WARNING if client_error else logging.ERROR,
            f"AI service call failed: {endpoint}",
            endpoint=endpoint,
            duration_ms=duration_ms,
            status_code=status_code,
            error=error,
            error_type=error_type,
            retry_attempt=retry_attempt,
            success=False,
        )

    def timeout(self, endpoint: str, timeout_seconds: float) -> None:
        self._emit(
            logging.WARNING,
            "AI service request timed out",
            endpoint=endpoint,
            timeout_seconds=timeout_seconds,
        )

    def rate_limit(self, endpoint: str, retry_after: float | None = None) -> None:
        self._emit(
            logging.WARNING,
            "AI service rate limit hit (429)",
            endpoint=endpoint,
            retry_after_seconds=retry_after,
        )

    def auth_failure(self, status_code: int, api_key: str | None = None) -> None:
        self._emit(
            logging.WARNING,
            f"AI service rejected credentials ({status_code})",
            status_code=status_code,
            api_key=mask_api_key(api_key),
        )

    def request_body(self, endpoint: str, body: str) -> None:
        self._emit(
            logging.DEBUG, "AI service request body", endpoint=endpoint, body=truncate(body)
        )

    def response_body(self, endpoint: str, body: str, duration_ms: float) -> None:
        self._emit(
            logging.DEBUG,
            "AI service response body",
            endpoint=endpoint,
            body=truncate(body),
            duration_ms=duration_ms,
        )

    def unexpected_fields(self, endpoint: str, fields: list[str]) -> None:
        self._emit(
            logging.WARNING,
            "AI service response contained unexpected fields",
            endpoint=endpoint,
            unexpected_fields=fields[:20],
        )

    def invalid_response(self, endpoint: str, error: str) -> None:
        self._emit(
            logging.ERROR,
            "AI service response failed validation",
            endpoint=endpoint,
            error=truncate(error, 1000),
        )

    def graceful_fallback(self, operation: str, reason: str) -> None:
        self._emit(
            logging.WARNING,
            "AI service unavailable, using local fallback",
            operation=operation,
            reason=reason,
        )


class JobQueueLogger(ComponentLogger):
    channel = "job_queue"

    def queue_start(self, queue_name: str, concurrency: int) -> None:
        self._emit(
            logging.INFO, "Job queue started", queue=queue_name, concurrency=concurrency
        )

    def queue_stop(self, queue_name: str, pending_jobs: int) -> None:
        self._emit(
            logging.INFO, "Job queue stopped", queue=queue_name, pending_jobs=pending_jobs
        )

    def job_enqueued(self, queue_name: str, job_id: str, job_name: str) -> None:
        self._emit(
            logging.DEBUG, "Job enqueued", queue=queue_name, job_id=job_id, job_name=job_name
        )

    def job_execution_start(
        self, queue_name: str, job_id: str, job_name: str, attempt: int
    ) -> None:
        self._emit(
            logging.DEBUG,
            "Job attempt started",
            queue=queue_name,
            job_id=job_id,
            job_name=job_name,
            attempt=attempt,
        )

    def job_execution_success(
        self,
        queue_name: str,
        job_id: str,
        job_name: str,
        duration_ms: float,
        attempt: int,
    ) -> None:
        self._emit(
            logging.INFO,
            "Job completed",
            queue=queue_name,
            job_id=job_id,
            job_name=job_name,
            duration_ms=duration_ms,
            attempt=attempt,
        )

    def job_retry_scheduled(
        self,
        queue_name: str,
        job_id: str,
        job_name: str,
        attempt: int,
        max_attempts: int,
        delay_seconds: float,
        error: str,
        error_type: str,
    ) -> None:
        self._emit(
            logging.WARNING,
            f"Job attempt {attempt}/{max_attempts} failed, retrying",
            queue=queue_name,
            job_id=job_id,
            job_name=job_name,
            attempt=attempt,
            max_attempts=max_attempts,
            delay_seconds=delay_seconds,
            error=error,
            error_type=error_type,
        )

    def job_failed(
        self,
        queue_name: str,
        job_id: str,
        job_name: str,
        attempts: int,
        error: str,
        error_type: str,
        retryable: bool,
    ) -> None:
        self._emit(
            logging.ERROR,
            "Job failed permanently",
            queue=queue_name,
            job_id=job_id,
            job_name=job_name,
            attempts=attempts,
            error=error,
            error_type=error_type,
            retryable=retryable,
        )

    def slow_job_execution(
        self,
        queue_name: str,
        job_id: str,
        job_name: str,
        duration_ms: float,
        threshold_ms: int = 1000,
    ) -> None:
        self._emit(
            logging.WARNING,
            "Slow job detected",
            queue=queue_name,
            job_id=job_id,
            job_name=job_name,
            duration_ms=duration_ms,
            threshold_ms=threshold_ms,
        )


db_logger = DatabaseLogger()
redis_logger = RedisLogger()
ai_service_logger = AIServiceLogger()
job_queue_logger = JobQueueLogger()
