import httpx
import pytest

from fiscalhost.services import http_service


@pytest.mark.asyncio
async def test_request_with_retries_retries_retryable_status(monkeypatch):
    monkeypatch.setattr(http_service, "_backoff_delay", lambda *_args: 0.0)
    responses = [httpx.Response(503), httpx.Response(200, json={"ok": True})]

    async def request_fn():
        return responses.pop(0)

    response = await http_service.request_with_retries(request_fn, max_attempts=3)
    assert response.status_code == 200
    assert responses == []


@pytest.mark.asyncio
async def test_request_with_retries_returns_last_response(monkeypatch):
    monkeypatch.setattr(http_service, "_backoff_delay", lambda *_args: 0.0)
    calls = 0

    async def request_fn():
        nonlocal calls
        calls += 1
        return httpx.Response(502)

    response = await http_service.request_with_retries(request_fn, max_attempts=2)
    assert response.status_code == 502
    assert calls == 2


@pytest.mark.asyncio
async def test_request_with_retries_does_not_retry_client_errors():
    calls = 0

    async def request_fn():
        nonlocal calls
        calls += 1
        return httpx.Response(400)

    response = await http_service.request_with_retries(request_fn, max_attempts=3)
    assert response.status_code == 400
    assert calls == 1


@pytest.mark.asyncio
async def test_request_with_retries_reraises_network_error(monkeypatch):
    monkeypatch.setattr(http_service, "_backoff_delay", lambda *_args: 0.0)

    async def request_fn():
        raise httpx.ConnectError("connection refused")

    with pytest.raises(httpx.ConnectError):
        await http_service.request_with_retries(request_fn, max_attempts=2)
