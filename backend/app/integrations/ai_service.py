"""AI content-analysis service integration client.

Features:
- Async HTTP client using httpx (JSON over HTTPS)
- Circuit breaker for fault tolerance
- Retry logic with exponential backoff
- Request/response logging per requirements
- Handles timeouts, rate limits (429), auth failures (401/403)
- Validates every response against its wire schema before use
- Masks API keys in all logs

ERROR LOGGING REQUIREMENTS:
- Log all outbound API calls with endpoint, content id, timing
- Log request/response bodies at DEBUG level (truncate large responses)
- Log and handle: timeouts, rate limits (429), auth failures (401/403)
- Include retry attempt number in logs
- Log unexpected response fields and rejected responses
- Mask API keys and tokens in all logs
- Log circuit breaker state changes

Unlike clients that return result objects, every failure here is raised as an
AIServiceError subclass so the analysis engines can decide between a local
fallback and marking the record failed.
"""

import asyncio
import json
import time
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from app.core.circuit_breaker import CircuitBreaker, CircuitBreakerConfig
from app.core.config import get_settings
from app.core.logging import ai_service_logger, get_logger
from app.schemas.ai_service import (
    AIPlagiarismRequest,
    AIPlagiarismResponse,
    AIQualityRequest,
    AIQualityResponse,
    AIQuizRequest,
    AIQuizResponse,
    AISimilarityRequest,
    AISimilarityResponse,
    AITaggingRequest,
    AITaggingResponse,
)

logger = get_logger(__name__)

TAGGING_ENDPOINT = "/ai/content/tagging"
SIMILARITY_ENDPOINT = "/ai/content/similarity"
QUALITY_ENDPOINT = "/ai/content/quality"
QUIZ_ENDPOINT = "/ai/content/quiz"
PLAGIARISM_ENDPOINT = "/ai/content/plagiarism"
HEALTH_ENDPOINT = "/health"

HEALTH_CHECK_TIMEOUT = 5.0

ResponseT = TypeVar("ResponseT", bound=BaseModel)


class AIServiceError(Exception):
    """Base exception for AI service errors."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_body: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body


class AIServiceTimeoutError(AIServiceError):
    """Raised when a request times out."""

    pass


class AIServiceRateLimitError(AIServiceError):
    """Raised when rate limited (429)."""

    def __init__(
        self,
        message: str,
        retry_after: float | None = None,
        response_body: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, status_code=429, response_body=response_body)
        self.retry_after = retry_after


class AIServiceAuthError(AIServiceError):
    """Raised when authentication fails (401/403)."""

    pass


class AIServiceCircuitOpenError(AIServiceError):
    """Raised when circuit breaker is open."""

    pass


class AIServiceResponseError(AIServiceError):
    """Raised when a 2xx response is not valid JSON or misses required fields."""

    pass


class AIServiceClient:
    """Async client for the external AI content-analysis service.

    One method per analysis type; each takes a typed wire request and returns
    a validated wire response or raises an AIServiceError.
    """

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        retry_delay: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize AI service client.

        Args:
            base_url: Service base URL. Defaults to settings.
            api_key: Bearer token. Defaults to settings.
            timeout: Request timeout in seconds. Defaults to settings.
            max_retries: Maximum attempts per call. Defaults to settings.
            retry_delay: Base delay between retries. Defaults to settings.
            transport: Optional httpx transport (used by tests).
        """
        settings = get_settings()

        self._base_url = (base_url or settings.ai_service_url).rstrip("/")
        self._api_key = api_key if api_key is not None else settings.ai_service_api_key
        self._timeout = timeout or settings.ai_service_timeout
        self._max_retries = max(1, max_retries or settings.ai_service_max_retries)
        self._retry_delay = (
            retry_delay if retry_delay is not None else settings.ai_service_retry_delay
        )
        self._transport = transport

        self._circuit_breaker = CircuitBreaker(
            CircuitBreakerConfig(
                failure_threshold=settings.ai_service_circuit_failure_threshold,
                recovery_timeout=settings.ai_service_circuit_recovery_timeout,
            ),
            name="ai_service",
        )

        # HTTP client (created lazily)
        self._client: httpx.AsyncClient | None = None

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def available(self) -> bool:
        """Check if an API key is configured."""
        return bool(self._api_key)

    @property
    def circuit_breaker(self) -> CircuitBreaker:
        """Get the circuit breaker instance."""
        return self._circuit_breaker

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            headers: dict[str, str] = {
                "Content-Type": "application/json",
                "Accept": "application/json",
            }
            if self._api_key:
                headers["Authorization"] = f"Bearer {self._api_key}"

            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                headers=headers,
                timeout=httpx.Timeout(self._timeout),
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None
        logger.info("AI service client closed")

    async def _post(
        self,
        endpoint: str,
        request: BaseModel,
        response_model: type[ResponseT],
        content_id: str | None = None,
    ) -> ResponseT:
        """POST a wire request and validate the response.

        Retries timeouts, transport errors and 5xx with exponential backoff.
        429 is retried only when Retry-After is given and at most 60s.
        Auth failures and other 4xx are raised immediately.
        """
        if not await self._circuit_breaker.can_execute():
            ai_service_logger.graceful_fallback(endpoint, "Circuit breaker open")
            raise AIServiceCircuitOpenError(
                f"Circuit breaker is open for {endpoint}"
            )

        client = await self._get_client()
        body = request.model_dump(mode="json", by_alias=True, exclude_none=True)
        ai_service_logger.request_body(endpoint, json.dumps(body))
        last_error: AIServiceError | None = None

        for attempt in range(self._max_retries):
            attempt_start = time.monotonic()
            has_next = attempt < self._max_retries - 1

            try:
                ai_service_logger.api_call_start(
                    endpoint, content_id, retry_attempt=attempt, api_key=self._api_key
                )
                response = await client.post(endpoint, json=body)
                duration_ms = (time.monotonic() - attempt_start) * 1000

                if response.status_code == 429:
                    retry_after_str = response.headers.get("retry-after")
                    try:
                        retry_after = float(retry_after_str) if retry_after_str else None
                    except ValueError:
                        retry_after = None
                    ai_service_logger.rate_limit(endpoint, retry_after=retry_after)
                    await self._circuit_breaker.record_failure()

                    if has_next and retry_after and retry_after <= 60:
                        await asyncio.sleep(retry_after)
                        continue

                    raise AIServiceRateLimitError(
                        "Rate limit exceeded", retry_after=retry_after
                    )

                if response.status_code in (401, 403):
                    ai_service_logger.auth_failure(response.status_code, self._api_key)
                    ai_service_logger.api_call_error(
                        endpoint,
                        duration_ms,
                        response.status_code,
                        "Authentication failed",
                        "AuthError",
                        retry_attempt=attempt,
                    )
                    await self._circuit_breaker.record_failure()
                    raise AIServiceAuthError(
                        f"Authentication failed ({response.status_code})",
                        status_code=response.status_code,
                    )

                if response.status_code >= 500:
                    error_msg = f"Server error ({response.status_code})"
                    ai_service_logger.api_call_error(
                        endpoint,
                        duration_ms,
                        response.status_code,
                        error_msg,
                        "ServerError",
                        retry_attempt=attempt,
                    )
                    await self._circuit_breaker.record_failure()

                    if has_next:
                        await self._backoff(endpoint, attempt, response.status_code)
                        continue

                    raise AIServiceError(error_msg, status_code=response.status_code)

                if response.status_code >= 400:
                    error_body = _json_or_none(response)
                    error_msg = (
                        str(error_body.get("detail") or error_body.get("error") or error_body)
                        if error_body
                        else "Client error"
                    )
                    ai_service_logger.api_call_error(
                        endpoint,
                        duration_ms,
                        response.status_code,
                        error_msg,
                        "ClientError",
                        retry_attempt=attempt,
                    )
                    raise AIServiceError(
                        f"Client error ({response.status_code}): {error_msg}",
                        status_code=response.status_code,
                        response_body=error_body,
                    )

                ai_service_logger.response_body(endpoint, response.text, duration_ms)
                parsed = self._validate(endpoint, response, response_model)
                await self._circuit_breaker.record_success()
                ai_service_logger.api_call_success(
                    endpoint,
                    duration_ms,
                    content_id=content_id,
                    model_version=getattr(parsed, "model_version", None),
                )
                return parsed

            except httpx.TimeoutException:
                duration_ms = (time.monotonic() - attempt_start) * 1000
                ai_service_logger.timeout(endpoint, self._timeout)
                ai_service_logger.api_call_error(
                    endpoint,
                    duration_ms,
                    None,
                    "Request timed out",
                    "TimeoutError",
                    retry_attempt=attempt,
                )
                await self._circuit_breaker.record_failure()

                if has_next:
                    await self._backoff(endpoint, attempt)
                    continue

                last_error = AIServiceTimeoutError(
                    f"Request timed out after {self._timeout}s"
                )

            except httpx.RequestError as e:
                duration_ms = (time.monotonic() - attempt_start) * 1000
                ai_service_logger.api_call_error(
                    endpoint,
                    duration_ms,
                    None,
                    str(e),
                    type(e).__name__,
                    retry_attempt=attempt,
                )
                await self._circuit_breaker.record_failure()

                if has_next:
                    await self._backoff(endpoint, attempt)
                    continue

                last_error = AIServiceError(f"Request failed: {e}")

        raise last_error or AIServiceError("Request failed after all retries")

    async def _backoff(
        self, endpoint: str, attempt: int, status_code: int | None = None
    ) -> None:
        delay = self._retry_delay * (2**attempt)
        logger.warning(
            f"AI service request attempt {attempt + 1} failed, retrying in {delay}s",
            extra={
                "endpoint": endpoint,
                "attempt": attempt + 1,
                "max_retries": self._max_retries,
                "delay_seconds": delay,
                "status_code": status_code,
            },
        )
        await asyncio.sleep(delay)

    def _validate(
        self,
        endpoint: str,
        response: httpx.Response,
        response_model: type[ResponseT],
    ) -> ResponseT:
        try:
            data = response.json()
        except ValueError as e:
            ai_service_logger.invalid_response(endpoint, f"Invalid JSON: {e}")
            raise AIServiceResponseError(
                "AI service returned invalid JSON", status_code=response.status_code
            ) from e

        if not isinstance(data, dict):
            ai_service_logger.invalid_response(endpoint, "Response is not an object")
            raise AIServiceResponseError(
                "AI service response is not a JSON object",
                status_code=response.status_code,
            )

        try:
            parsed = response_model.model_validate(data)
        except ValidationError as e:
            ai_service_logger.invalid_response(endpoint, str(e))
            raise AIServiceResponseError(
                f"AI service response rejected: {e.error_count()} validation error(s)",
                status_code=response.status_code,
                response_body=data,
            ) from e

        if parsed.model_extra:
            ai_service_logger.unexpected_fields(endpoint, sorted(parsed.model_extra))
        return parsed

    async def analyze_content_for_tagging(
        self, request: AITaggingRequest
    ) -> AITaggingResponse:
        return await self._post(
            TAGGING_ENDPOINT, request, AITaggingResponse, request.content.id
        )

    async def analyze_content_similarity(
        self, request: AISimilarityRequest
    ) -> AISimilarityResponse:
        return await self._post(
            SIMILARITY_ENDPOINT,
            request,
            AISimilarityResponse,
            request.target_content.id,
        )

    async def assess_content_quality(
        self, request: AIQualityRequest
    ) -> AIQualityResponse:
        return await self._post(
            QUALITY_ENDPOINT, request, AIQualityResponse, request.content.id
        )

    async def generate_quiz(self, request: AIQuizRequest) -> AIQuizResponse:
        return await self._post(
            QUIZ_ENDPOINT, request, AIQuizResponse, request.content.id
        )

    async def check_plagiarism(
        self, request: AIPlagiarismRequest
    ) -> AIPlagiarismResponse:
        return await self._post(
            PLAGIARISM_ENDPOINT, request, AIPlagiarismResponse, request.content.id
        )

    async def health_check(self) -> bool:
        """Check the service health endpoint.

        Returns False on any error instead of raising.
        """
        client = await self._get_client()
        try:
            response = await client.get(HEALTH_ENDPOINT, timeout=HEALTH_CHECK_TIMEOUT)
        except httpx.HTTPError as e:
            logger.warning(
                "AI service health check failed",
                extra={"error": str(e), "error_type": type(e).__name__},
            )
            return False
        return response.status_code == 200


def _json_or_none(response: httpx.Response) -> dict[str, Any] | None:
    if not response.content:
        return None
    try:
        data = response.json()
    except ValueError:
        return None
    return data if isinstance(data, dict) else {"error": data}


# Global AI service client instance
ai_service_client: AIServiceClient | None = None


async def init_ai_service() -> AIServiceClient:
    """Initialize the global AI service client.

    Returns:
        Initialized AIServiceClient instance
    """
    global ai_service_client
    if ai_service_client is None:
        ai_service_client = AIServiceClient()
        logger.info(
            "AI service client initialized",
            extra={"base_url": ai_service_client.base_url},
        )
    return ai_service_client


async def close_ai_service() -> None:
    """Close the global AI service client."""
    global ai_service_client
    if ai_service_client:
        await ai_service_client.close()
        ai_service_client = None


async def get_ai_service() -> AIServiceClient:
    """Dependency for getting the AI service client."""
    global ai_service_client
    if ai_service_client is None:
        await init_ai_service()
    return ai_service_client  # type: ignore[return-value]
