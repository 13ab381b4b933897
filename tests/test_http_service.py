"""Tests for HTTP retry helper."""

import httpx
import pytest

from swasthya.services import http_service
from swasthya.services.http_service import request_with_retries


@pytest.mark.asyncio
async def test_request_with_retries_retries_on_status():
    req = httpx.Request("POST", "https://example.com")
    responses = [
        httpx.Response(503, request=req),
        httpx.Response(200, json={"ok": True}, request=req),
    ]
    calls = {"count": 0}

    async def request_fn():
        calls["count"] += 1
        return responses.pop(0)

    response = await request_with_retries(request_fn, max_attempts=2, base_delay=0, max_delay=0)

    assert calls["count"] == 2
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_request_with_retries_retries_on_request_error():
    req = httpx.Request("POST", "https://example.com")
    calls = {"count": 0}

    async def request_fn():
        calls["count"] += 1
        if calls["count"] == 1:
            raise httpx.ConnectError("boom", request=req)
        return httpx.Response(200, request=req)

    response = await request_with_retries(request_fn, max_attempts=2, base_delay=0, max_delay=0)

    assert calls["count"] == 2
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_request_with_retries_raises_after_max_attempts():
    req = httpx.Request("POST", "https://example.com")
    calls = {"count": 0}

    async def request_fn():
        calls["count"] += 1
        raise httpx.ConnectError("boom", request=req)

    with pytest.raises(httpx.ConnectError):
        await request_with_retries(request_fn, max_attempts=3, base_delay=0, max_delay=0)

    assert calls["count"] == 3


@pytest.mark.asyncio
async def test_last_retryable_status_is_returned():
    req = httpx.Request("POST", "https://example.com")
    calls = {"count": 0}

    async def request_fn():
        calls["count"] += 1
        return httpx.Response(429, request=req)

    response = await request_with_retries(request_fn, max_attempts=2, base_delay=0, max_delay=0)

    assert calls["count"] == 2
    assert response.status_code == 429


@pytest.mark.asyncio
async def test_client_errors_are_not_retried():
    req = httpx.Request("POST", "https://example.com")
    calls = {"count": 0}

    async def request_fn():
        calls["count"] += 1
        return httpx.Response(422, request=req)

    response = await request_with_retries(request_fn, max_attempts=3, base_delay=0, max_delay=0)

    assert calls["count"] == 1
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_retry_after_header_sets_the_delay(monkeypatch):
    req = httpx.Request("POST", "https://example.com")
    responses = [
        httpx.Response(429, headers={"Retry-After": "2"}, request=req),
        httpx.Response(429, headers={"Retry-After": "3600"}, request=req),
        httpx.Response(200, request=req),
    ]
    slept = []

    async def fake_sleep(seconds):
        slept.append(seconds)

    async def request_fn():
        return responses.pop(0)

    monkeypatch.setattr(http_service.asyncio, "sleep", fake_sleep)

    response = await request_with_retries(request_fn, max_attempts=3, base_delay=0, max_delay=0)

    assert response.status_code == 200
    assert slept == [2.0, http_service.MAX_RETRY_AFTER]
