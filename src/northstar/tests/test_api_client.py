"""Tests for the API client."""
import asyncio
import contextlib
import json
from typing import AsyncIterator, List
from unittest.mock import AsyncMock, patch

import httpx
import pytest
from prometheus_client import REGISTRY

from northstar.models.tracking_models import AttemptOutcome, RequestAttempt, RequestConfig
from northstar.services.api_client import PREFERENCES_ROUTE, APIClient, backoff_delay, log_attempt


@pytest.mark.asyncio
async def test_success_returns_immediately(make_client, sleep, notifications) -> None:
    """Test that the first successful attempt ends the request."""
    requests: List[httpx.Request] = []
    attempts: List[RequestAttempt] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"status": "ok"})

    client = make_client(handler, attempt_sink=attempts.append)
    response = await client.health_check()

    assert response.success is True
    assert response.data == {"status": "ok"}
    assert response.error is None
    assert len(requests) == 1
    assert str(requests[0].url) == "http://test/api/health"
    assert sleep.delays == []
    assert [a.outcome for a in attempts] == [AttemptOutcome.SUCCESS]
    assert attempts[0].attempt_number == 1
    assert notifications.get_notifications() == []


@pytest.mark.asyncio
@pytest.mark.parametrize("retries", [0, 1, 3])
async def test_persistent_failure_attempts_retries_plus_one(make_client, sleep, notifications, retries: int) -> None:
    """Test that a failing endpoint is tried exactly retries + 1 times."""
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        return httpx.Response(500)

    client = make_client(handler)
    response = await client.request("/track/session", "POST", RequestConfig(retries=retries, body={"a": 1}))

    assert response.success is False
    assert response.error == "HTTP 500: Internal Server Error"
    assert calls == retries + 1
    assert sleep.delays == [2 ** k for k in range(1, retries + 1)]

    errors = notifications.get_notifications(variant="destructive")
    assert len(errors) == 1
    assert errors[0].title == "Connection Error"
    assert errors[0].description == response.error


@pytest.mark.asyncio
async def test_recovers_after_transient_failures(make_client, sleep, notifications) -> None:
    """Test that a later success is returned without a notification."""
    statuses = iter([503, 502, 200])

    def handler(request: httpx.Request) -> httpx.Response:
        status = next(statuses)
        if status == 200:
            return httpx.Response(200, json={"id": 7})
        return httpx.Response(status)

    client = make_client(handler)
    response = await client.request("/recommendations", "POST", RequestConfig(body={"userId": "u"}))

    assert response.success is True
    assert response.data == {"id": 7}
    assert sleep.delays == [2, 4]
    assert notifications.get_notifications() == []


@pytest.mark.asyncio
async def test_timeout_exhausts_retries(make_client, sleep, notifications) -> None:
    """Test a never-responding endpoint with a short timeout."""
    calls = 0
    attempts: List[RequestAttempt] = []

    async def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        await asyncio.sleep(10)
        return httpx.Response(200, json={})

    client = make_client(handler, attempt_sink=attempts.append)
    response = await client.request("/health", "GET", RequestConfig(timeout=100, retries=2))

    assert response.success is False
    assert response.error == "Request timed out"
    assert calls == 3
    assert sum(sleep.delays) >= 2 ** 1 + 2 ** 2
    assert [a.outcome for a in attempts] == [AttemptOutcome.TIMEOUT] * 3
    assert [a.attempt_number for a in attempts] == [1, 2, 3]
    assert notifications.get_notifications()[0].description == "Request timed out"


@pytest.mark.asyncio
async def test_network_error_message(make_client) -> None:
    """Test that transport errors surface their message."""

    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused")

    client = make_client(handler)
    response = await client.request("/health", config=RequestConfig(retries=0))

    assert response.success is False
    assert response.error == "connection refused"


@pytest.mark.asyncio
async def test_unparseable_body_is_retried(make_client, sleep) -> None:
    """Test that a 2xx response with a broken body counts as a failure."""
    attempts: List[RequestAttempt] = []
    bodies = iter([b"<html>oops</html>", b'{"fine": true}'])

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=next(bodies))

    client = make_client(handler, attempt_sink=attempts.append)
    response = await client.request("/health", config=RequestConfig(retries=1))

    assert response.success is True
    assert response.data == {"fine": True}
    assert [a.outcome for a in attempts] == [AttemptOutcome.INVALID_BODY, AttemptOutcome.SUCCESS]
    assert sleep.delays == [2]


@pytest.mark.asyncio
async def test_empty_body_succeeds(make_client) -> None:
    """Test that a 204 response succeeds with no data."""
    client = make_client(lambda request: httpx.Response(204))
    response = await client.track_interaction({"action": "like"})

    assert response.success is True
    assert response.data is None


@pytest.mark.asyncio
async def test_headers_and_body(make_client) -> None:
    """Test that headers are merged and GET requests carry no body."""
    requests: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={})

    client = make_client(handler)
    await client.request("/health", "GET", RequestConfig(headers={"X-Trace": "abc"}, body={"ignored": True}))
    await client.request("/track/session", "post", RequestConfig(body={"action": "start"}))

    get_request, post_request = requests
    assert get_request.headers["X-Trace"] == "abc"
    assert get_request.headers["Content-Type"] == "application/json"
    assert get_request.content == b""
    assert post_request.method == "POST"
    assert json.loads(post_request.content) == {"action": "start"}


@pytest.mark.asyncio
async def test_invalid_config_raises(make_client) -> None:
    """Test that impossible retry and timeout values are rejected."""
    client = make_client(lambda request: httpx.Response(200, json={}))

    with pytest.raises(ValueError):
        await client.request("/health", config=RequestConfig(retries=-1))
    with pytest.raises(ValueError):
        await client.request("/health", config=RequestConfig(timeout=0))


@pytest.mark.asyncio
async def test_attempt_sink_failure_is_ignored(make_client) -> None:
    """Test that a broken observability sink does not break requests."""

    def broken_sink(attempt: RequestAttempt) -> None:
        raise RuntimeError("sink down")

    client = make_client(lambda request: httpx.Response(200, json={"ok": True}), attempt_sink=broken_sink)
    response = await client.health_check()

    assert response.success is True


@pytest.mark.asyncio
async def test_endpoint_timeouts(make_client) -> None:
    """Test that generation endpoints use their longer timeouts."""
    client = make_client(lambda request: httpx.Response(200, json={}))

    with patch.object(APIClient, "request", new_callable=AsyncMock) as request:
        await client.generate_meditation("calm", {"voice": "soft"})
        await client.generate_exercise("breathing", 5)
        await client.generate_personalized_tip("user-1")

    meditation, exercise, tip = request.await_args_list
    assert meditation.args[:2] == ("/generate/meditation", "POST")
    assert meditation.args[2].timeout == 30000
    assert exercise.args[2].timeout == 20000
    assert exercise.args[2].body == {"category": "breathing", "duration": 5}
    assert tip.args[2].timeout is None


@pytest.mark.asyncio
async def test_preferences_endpoints(make_client) -> None:
    """Test the preference endpoints' paths and methods."""
    requests: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"preferred_duration": 15})

    client = make_client(handler)
    loaded = await client.get_user_preferences("u1")
    await client.update_user_preferences("u1", {"preferred_duration": 20})

    assert loaded.data == {"preferred_duration": 15}
    assert [(r.method, r.url.path) for r in requests] == [
        ("GET", "/api/users/u1/preferences"),
        ("PUT", "/api/users/u1/preferences"),
    ]


@pytest.mark.asyncio
async def test_owned_client_is_closed() -> None:
    """Test that aclose closes an owned HTTP client only."""
    async with APIClient(base_url="http://test/api") as client:
        http = client._client
    assert http.is_closed

    injected = httpx.AsyncClient()
    client = APIClient(base_url="http://test/api", client=injected)
    await client.aclose()
    assert not injected.is_closed
    await injected.aclose()


@contextlib.asynccontextmanager
async def slow_json_server(delay: float) -> AsyncIterator[str]:
    """Serve a JSON reply on a real local socket after ``delay`` seconds."""

    async def handle(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        head = await reader.readuntil(b"\r\n\r\n")
        length = 0
        for line in head.decode("latin-1").split("\r\n"):
            name, _, value = line.partition(":")
            if name.strip().lower() == "content-length":
                length = int(value.strip())
        if length:
            await reader.readexactly(length)
        await asyncio.sleep(delay)
        body = b'{"ok": true}'
        writer.write(
            b"HTTP/1.1 200 OK\r\nContent-Type: application/json\r\n"
            b"Content-Length: " + str(len(body)).encode() + b"\r\nConnection: close\r\n\r\n" + body
        )
        try:
            await writer.drain()
        except ConnectionError:
            # The client gave up before the reply
            pass
        writer.close()

    server = await asyncio.start_server(handle, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    async with server:
        yield f"http://127.0.0.1:{port}/api"


@pytest.mark.asyncio
async def test_request_timeout_overrides_http_client_timeout(notifications, sleep) -> None:
    """Test that a request may run longer than the HTTP client's own timeout."""
    async with slow_json_server(0.3) as base_url:
        http = httpx.AsyncClient(timeout=0.05)
        client = APIClient(base_url=base_url, client=http, notifier=notifications, sleep=sleep)
        try:
            response = await client.request("/generate/meditation", "POST", RequestConfig(timeout=2000, retries=0, body={}))
        finally:
            await http.aclose()

    assert response.success is True
    assert response.data == {"ok": True}
    assert notifications.get_notifications() == []


@pytest.mark.asyncio
async def test_owned_client_uses_request_timeout(notifications, sleep) -> None:
    """Test that the built-in HTTP client adds no timeout of its own."""
    async with slow_json_server(0.3) as base_url:
        async with APIClient(base_url=base_url, notifier=notifications, sleep=sleep) as client:
            assert client._client.timeout == httpx.Timeout(None)
            slow_enough = await client.request("/health", config=RequestConfig(timeout=2000, retries=0))
            too_slow = await client.request("/health", config=RequestConfig(timeout=100, retries=0))

    assert slow_enough.success is True
    assert too_slow.success is False
    assert too_slow.error == "Request timed out"


@pytest.mark.asyncio
async def test_metrics_use_route_templates(make_client, user_id: str) -> None:
    """Test that user ids never become metric label values."""
    attempts: List[RequestAttempt] = []
    labels = {"endpoint": PREFERENCES_ROUTE, "method": "GET", "outcome": "success"}
    before = REGISTRY.get_sample_value("northstar_request_attempts_total", labels) or 0

    def sink(attempt: RequestAttempt) -> None:
        attempts.append(attempt)
        log_attempt(attempt)

    client = make_client(lambda request: httpx.Response(200, json={}), attempt_sink=sink)
    await client.get_user_preferences(user_id)

    assert attempts[0].endpoint == f"/users/{user_id}/preferences"
    assert attempts[0].route == PREFERENCES_ROUTE
    assert REGISTRY.get_sample_value("northstar_request_attempts_total", labels) == before + 1
    assert REGISTRY.get_sample_value(
        "northstar_request_attempts_total",
        {"endpoint": f"/users/{user_id}/preferences", "method": "GET", "outcome": "success"},
    ) is None


def test_backoff_delay() -> None:
    """Test the exponential backoff schedule."""
    assert [backoff_delay(k) for k in (1, 2, 3)] == [2, 4, 8]


if __name__ == "__main__":
    pytest.main([__file__])
