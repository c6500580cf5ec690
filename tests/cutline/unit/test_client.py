from __future__ import annotations

import errno
import json

import httpx
import pytest
from pytest_httpx import HTTPXMock

from cutline import Cutline, CutlineSettings
from cutline.circuit_breaker import CircuitBreakerConfig, CircuitOpenError
from cutline.retry import RetryConfig
from tests.cutline.support.fakes import FakeLogger, RecordingSleep

pytestmark = pytest.mark.asyncio

_BASE_URL = "https://api.example.com"
_ITEMS_URL = f"{_BASE_URL}/v1/items"


def _build_client(
    logger: FakeLogger,
    sleep: RecordingSleep,
    **overrides: object,
) -> Cutline:
    options: dict[str, object] = {
        "base_url": _BASE_URL,
        "retry": {"max_retries": 2, "retry_delay": 0.1},
        "circuit_breaker": {"failure_threshold": 3, "recovery_timeout": 1.0},
        "sleep": sleep,
        "logger": logger,
    }
    options.update(overrides)
    return Cutline(**options)  # type: ignore[arg-type]


def _connection_refused() -> httpx.ConnectError:
    exc = httpx.ConnectError("All connection attempts failed")
    exc.__cause__ = ConnectionRefusedError(errno.ECONNREFUSED, "Connection refused")
    return exc


async def test_get_returns_successful_response(
    httpx_mock: HTTPXMock,
    fake_logger: FakeLogger,
    recording_sleep: RecordingSleep,
) -> None:
    httpx_mock.add_response(method="GET", url=_ITEMS_URL, json={"items": [1, 2]})

    async with _build_client(fake_logger, recording_sleep) as client:
        response = await client.get("/v1/items")

    assert response.status_code == 200
    assert response.json() == {"items": [1, 2]}
    assert client.get_circuit_breaker_state() == "closed"
    assert recording_sleep.delays == []


@pytest.mark.parametrize(
    "method", ["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"]
)
async def test_verb_helpers_send_matching_method(
    method: str,
    httpx_mock: HTTPXMock,
    fake_logger: FakeLogger,
    recording_sleep: RecordingSleep,
) -> None:
    httpx_mock.add_response(method=method, url=_ITEMS_URL, status_code=204)

    async with _build_client(fake_logger, recording_sleep) as client:
        send = getattr(client, method.lower())
        response = await send("/v1/items")

    assert response.status_code == 204
    request = httpx_mock.get_request()
    assert request is not None
    assert request.method == method


async def test_request_forwards_body_and_headers(
    httpx_mock: HTTPXMock,
    fake_logger: FakeLogger,
    recording_sleep: RecordingSleep,
) -> None:
    httpx_mock.add_response(method="POST", url=_ITEMS_URL, status_code=201)

    async with _build_client(
        fake_logger, recording_sleep, headers={"X-Api-Key": "secret"}
    ) as client:
        await client.request(
            "POST",
            "/v1/items",
            json={"name": "widget"},
            headers={"X-Request-Id": "abc"},
        )

    request = httpx_mock.get_request()
    assert request is not None
    assert request.headers["x-api-key"] == "secret"
    assert request.headers["x-request-id"] == "abc"
    assert json.loads(request.content) == {"name": "widget"}


async def test_retryable_status_is_retried_until_success(
    httpx_mock: HTTPXMock,
    fake_logger: FakeLogger,
    recording_sleep: RecordingSleep,
) -> None:
    httpx_mock.add_response(method="GET", url=_ITEMS_URL, status_code=503)
    httpx_mock.add_response(method="GET", url=_ITEMS_URL, status_code=429)
    httpx_mock.add_response(method="GET", url=_ITEMS_URL, json={"ok": True})

    async with _build_client(fake_logger, recording_sleep) as client:
        response = await client.get("/v1/items")

    assert response.json() == {"ok": True}
    assert len(httpx_mock.get_requests()) == 3
    assert recording_sleep.delays == [0.1, 0.2]
    assert client.circuit_breaker.failure_count == 0


async def test_connection_refused_is_retried(
    httpx_mock: HTTPXMock,
    fake_logger: FakeLogger,
    recording_sleep: RecordingSleep,
) -> None:
    httpx_mock.add_exception(_connection_refused(), url=_ITEMS_URL)
    httpx_mock.add_response(method="GET", url=_ITEMS_URL, json={"ok": True})

    async with _build_client(fake_logger, recording_sleep) as client:
        response = await client.get("/v1/items")

    assert response.status_code == 200
    assert recording_sleep.delays == [0.1]
    assert "resilience.retry_scheduled" in fake_logger.events


async def test_client_error_is_not_retried(
    httpx_mock: HTTPXMock,
    fake_logger: FakeLogger,
    recording_sleep: RecordingSleep,
) -> None:
    httpx_mock.add_response(method="GET", url=_ITEMS_URL, status_code=404)

    async with _build_client(fake_logger, recording_sleep) as client:
        with pytest.raises(httpx.HTTPStatusError) as excinfo:
            await client.get("/v1/items")

    assert excinfo.value.response.status_code == 404
    assert len(httpx_mock.get_requests()) == 1
    assert recording_sleep.delays == []


async def test_exhausted_retries_open_breaker_and_fail_fast(
    httpx_mock: HTTPXMock,
    fake_logger: FakeLogger,
    recording_sleep: RecordingSleep,
) -> None:
    for _ in range(3):
        httpx_mock.add_response(method="GET", url=_ITEMS_URL, status_code=503)

    async with _build_client(fake_logger, recording_sleep) as client:
        with pytest.raises(httpx.HTTPStatusError):
            await client.get("/v1/items")
        assert client.get_circuit_breaker_state() == "open"

        with pytest.raises(CircuitOpenError):
            await client.get("/v1/items")

    assert len(httpx_mock.get_requests()) == 3
    assert recording_sleep.delays == [0.1, 0.2]
    assert "circuit_breaker.state_changed" in fake_logger.events
    assert fake_logger.events.count("resilience.call_rejected") == 1
    assert "circuit_breaker.call_rejected" not in fake_logger.events


async def test_reset_circuit_breaker_allows_requests_again(
    httpx_mock: HTTPXMock,
    fake_logger: FakeLogger,
    recording_sleep: RecordingSleep,
) -> None:
    httpx_mock.add_response(method="GET", url=_ITEMS_URL, status_code=500)
    httpx_mock.add_response(method="GET", url=_ITEMS_URL, json={"ok": True})

    async with _build_client(
        fake_logger,
        recording_sleep,
        retry={"max_retries": 0},
        circuit_breaker={"failure_threshold": 1, "recovery_timeout": 600.0},
    ) as client:
        with pytest.raises(httpx.HTTPStatusError):
            await client.get("/v1/items")
        assert client.get_circuit_breaker_state() == "open"

        client.reset_circuit_breaker()
        assert client.get_circuit_breaker_state() == "closed"
        response = await client.get("/v1/items")

    assert response.json() == {"ok": True}


async def test_partial_configs_merge_over_defaults(
    fake_logger: FakeLogger,
    recording_sleep: RecordingSleep,
) -> None:
    async with _build_client(
        fake_logger,
        recording_sleep,
        retry={"max_retries": 7},
        circuit_breaker={"recovery_timeout": 5.0},
    ) as client:
        retry_config = client.get_retry_config()
        breaker_config = client.get_circuit_breaker_config()

    assert retry_config == RetryConfig(max_retries=7)
    assert breaker_config == CircuitBreakerConfig(recovery_timeout=5.0)


async def test_unknown_config_key_is_rejected() -> None:
    with pytest.raises(TypeError):
        Cutline(retry={"max_retrys": 1})


async def test_injected_http_client_is_left_open(
    httpx_mock: HTTPXMock,
    fake_logger: FakeLogger,
    recording_sleep: RecordingSleep,
) -> None:
    httpx_mock.add_response(method="GET", url=_ITEMS_URL)

    async with httpx.AsyncClient(base_url=_BASE_URL) as http_client:
        client = Cutline(
            http_client=http_client,
            sleep=recording_sleep,
            logger=fake_logger,
        )
        await client.get("/v1/items")
        await client.aclose()

        assert client.http_client is http_client
        assert http_client.is_closed is False


async def test_owned_http_client_is_closed(
    fake_logger: FakeLogger,
    recording_sleep: RecordingSleep,
) -> None:
    client = _build_client(fake_logger, recording_sleep, timeout=2.5)

    assert client.http_client.timeout == httpx.Timeout(2.5)
    await client.aclose()

    assert client.http_client.is_closed is True


async def test_from_settings_uses_settings_configs(
    fake_logger: FakeLogger,
    recording_sleep: RecordingSleep,
) -> None:
    settings = CutlineSettings(
        retry_max_retries=1,
        retry_delay_seconds=0.25,
        breaker_failure_threshold=2,
        breaker_recovery_timeout_seconds=3.0,
    )

    async with Cutline.from_settings(
        settings,
        base_url=_BASE_URL,
        sleep=recording_sleep,
        logger=fake_logger,
    ) as client:
        assert client.get_retry_config().max_retries == 1
        assert client.get_retry_config().retry_delay == 0.25
        assert client.get_circuit_breaker_config().failure_threshold == 2
        assert client.get_circuit_breaker_config().recovery_timeout == 3.0


async def test_client_error_on_timeout_url_is_not_retried(
    httpx_mock: HTTPXMock,
    fake_logger: FakeLogger,
    recording_sleep: RecordingSleep,
) -> None:
    url = f"{_BASE_URL}/search?timeout=5"
    httpx_mock.add_response(method="GET", url=url, status_code=404)

    async with _build_client(
        fake_logger, recording_sleep, retry={"max_retries": 3, "retry_delay": 0.1}
    ) as client:
        with pytest.raises(httpx.HTTPStatusError):
            await client.get("/search", params={"timeout": 5})

    assert len(httpx_mock.get_requests()) == 1
    assert recording_sleep.delays == []
