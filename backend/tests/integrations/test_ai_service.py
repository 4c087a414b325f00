"""Tests for the AI service client.

Uses httpx.MockTransport so requests never leave the process:
- Requests are sent with camelCase keys and a bearer token
- 5xx and timeouts are retried, 4xx and auth failures are not
- 429 is retried only with a short Retry-After
- Malformed 2xx bodies raise AIServiceResponseError
- An open circuit rejects calls without touching the network
"""

import json

import httpx
import pytest

from app.integrations.ai_service import (
    QUALITY_ENDPOINT,
    TAGGING_ENDPOINT,
    AIServiceAuthError,
    AIServiceCircuitOpenError,
    AIServiceClient,
    AIServiceError,
    AIServiceRateLimitError,
    AIServiceResponseError,
    AIServiceTimeoutError,
)
from app.schemas.ai_service import (
    AIContentPayload,
    AIQualityResponse,
    AITaggingPreferences,
    AITaggingRequest,
)

TAGGING_BODY = {
    "tags": [{"name": "Python", "category": "subject", "confidence": 0.9}],
    "model_version": "tagger-2.1",
}


def tagging_request() -> AITaggingRequest:
    return AITaggingRequest(
        content=AIContentPayload(
            id="c1", type="course", title="Python", text="Learn Python"
        ),
        preferences=AITaggingPreferences(max_tags=5, min_confidence=0.6),
    )


def make_client(handler, max_retries: int = 3) -> AIServiceClient:
    return AIServiceClient(
        base_url="http://ai.test",
        api_key="secret-key",
        timeout=1.0,
        max_retries=max_retries,
        retry_delay=0,
        transport=httpx.MockTransport(handler),
    )


class TestSuccessfulCalls:
    async def test_posts_camel_case_body_with_bearer_token(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=TAGGING_BODY)

        client = make_client(handler)
        response = await client.analyze_content_for_tagging(tagging_request())
        await client.close()

        assert response.tags[0].name == "Python"
        assert response.model_version == "tagger-2.1"
        request = seen[0]
        assert request.url.path == TAGGING_ENDPOINT
        assert request.headers["Authorization"] == "Bearer secret-key"
        body = json.loads(request.content)
        assert body["preferences"] == {
            "maxTags": 5,
            "categories": [],
            "minConfidence": 0.6,
        }

    async def test_unknown_fields_are_tolerated(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={**TAGGING_BODY, "experimental": True})

        client = make_client(handler)
        response = await client.analyze_content_for_tagging(tagging_request())

        assert response.model_extra == {"experimental": True}


class TestRetries:
    async def test_retries_server_errors(self) -> None:
        responses = iter(
            [httpx.Response(503), httpx.Response(502), httpx.Response(200, json=TAGGING_BODY)]
        )

        def handler(request: httpx.Request) -> httpx.Response:
            return next(responses)

        client = make_client(handler, max_retries=3)
        response = await client.analyze_content_for_tagging(tagging_request())

        assert len(response.tags) == 1

    async def test_server_errors_exhaust_retries(self) -> None:
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(500)

        client = make_client(handler, max_retries=2)
        with pytest.raises(AIServiceError) as exc_info:
            await client.analyze_content_for_tagging(tagging_request())

        assert exc_info.value.status_code == 500
        assert calls == 2

    async def test_timeouts_raise_timeout_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        client = make_client(handler, max_retries=2)
        with pytest.raises(AIServiceTimeoutError):
            await client.analyze_content_for_tagging(tagging_request())

    async def test_client_errors_are_not_retried(self) -> None:
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(422, json={"detail": "text too short"})

        client = make_client(handler)
        with pytest.raises(AIServiceError) as exc_info:
            await client.analyze_content_for_tagging(tagging_request())

        assert calls == 1
        assert "text too short" in str(exc_info.value)

    async def test_auth_failure_is_not_retried(self) -> None:
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(401)

        client = make_client(handler)
        with pytest.raises(AIServiceAuthError):
            await client.analyze_content_for_tagging(tagging_request())
        assert calls == 1

    async def test_rate_limit_without_retry_after_raises(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(429)

        client = make_client(handler)
        with pytest.raises(AIServiceRateLimitError):
            await client.analyze_content_for_tagging(tagging_request())

    async def test_rate_limit_with_short_retry_after_is_retried(self) -> None:
        responses = iter(
            [
                httpx.Response(429, headers={"Retry-After": "0.01"}),
                httpx.Response(200, json=TAGGING_BODY),
            ]
        )

        def handler(request: httpx.Request) -> httpx.Response:
            return next(responses)

        client = make_client(handler)
        response = await client.analyze_content_for_tagging(tagging_request())

        assert response.tags[0].category == "subject"


class TestResponseValidation:
    async def test_invalid_json(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b"<html>")

        client = make_client(handler)
        with pytest.raises(AIServiceResponseError):
            await client.analyze_content_for_tagging(tagging_request())

    async def test_missing_required_field(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"dimension_scores": {}})

        client = make_client(handler)
        with pytest.raises(AIServiceResponseError):
            await client._post(
                QUALITY_ENDPOINT,
                tagging_request(),
                AIQualityResponse,
            )


class TestCircuitBreaker:
    async def test_open_circuit_short_circuits(self) -> None:
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(200, json=TAGGING_BODY)

        client = make_client(handler)
        for _ in range(client.circuit_breaker._config.failure_threshold):
            await client.circuit_breaker.record_failure()

        with pytest.raises(AIServiceCircuitOpenError):
            await client.analyze_content_for_tagging(tagging_request())
        assert calls == 0


class TestHealthCheck:
    async def test_healthy(self) -> None:
        client = make_client(lambda request: httpx.Response(200, json={"status": "ok"}))

        assert await client.health_check() is True

    async def test_unreachable(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        client = make_client(handler)

        assert await client.health_check() is False
