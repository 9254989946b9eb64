#!/usr/bin/env python3
"""Tests for RemoteSyncClient outcome mapping and retries.

Responses come from httpx.MockTransport handlers; no network is used.
"""

import json

import httpx
import pytest
from tenacity import wait_none

from conftest import make_record
from pastelist.errors import RemoteSyncError
from pastelist.models import MAX_CONTENT_LENGTH
from pastelist.sync_config import ServerSyncConfig
from pastelist.transport import RemoteSyncClient, TransportOutcome
from pastelist.wire import error_envelope, success_envelope

SYNC_DATA = {
    "syncTime": "2024-05-01T12:30:00+00:00",
    "uploaded": [
        {"localId": 1, "serverId": 10, "success": True},
        {"localId": 2, "success": False, "error": "too long"},
    ],
    "remoteItems": [
        {"id": 11, "content": "from b", "deviceId": "device-b",
         "createdAt": "2024-05-01T12:10:00Z", "updatedAt": "2024-05-01T12:10:00Z"},
    ],
}


def _config(retries: int = 0) -> ServerSyncConfig:
    return ServerSyncConfig(
        server_url="http://sync.test/",
        device_id="device-a",
        access_token="secret",
        max_retry_attempts=retries,
    )


async def _exchange(handler, retries: int = 0):
    client = RemoteSyncClient(_config(retries), transport=httpx.MockTransport(handler))
    client.retry_wait = wait_none()
    async with client:
        return await client.exchange([make_record("hello")], None)


class TestExchange:
    """Tests for the sync exchange."""

    @pytest.mark.asyncio
    async def test_success_parses_payload(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=success_envelope(SYNC_DATA))

        result = await _exchange(handler)

        assert result.success
        assert result.pushed_count == 1
        assert result.data.remote_items[0].content == "from b"
        request = seen[0]
        assert request.url == "http://sync.test/api/v1/clipboard/sync"
        assert request.headers["Authorization"] == "Bearer secret"
        assert request.headers["X-Device-ID"] == "device-a"
        assert "X-Client-Version" in request.headers
        body = json.loads(request.content)
        assert body["deviceId"] == "device-a"
        assert "lastSyncTime" not in body
        assert body["localItems"][0]["content"] == "hello"

    @pytest.mark.asyncio
    async def test_invalid_remote_item_is_skipped(self) -> None:
        data = dict(SYNC_DATA)
        data["remoteItems"] = SYNC_DATA["remoteItems"] + [
            {"id": 12, "content": "", "deviceId": "device-b"},
            {"id": 13, "content": "x" * (MAX_CONTENT_LENGTH + 1)},
        ]

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=success_envelope(data))

        result = await _exchange(handler)

        assert result.outcome is TransportOutcome.OK
        assert [r.content for r in result.data.remote_items] == ["from b"]
        assert result.data.invalid_remote_items == 2

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [401, 403])
    async def test_unauthorized(self, status: int) -> None:
        def handler(request):
            return httpx.Response(status, json=error_envelope("TOKEN_INVALID", "expired"))

        result = await _exchange(handler)
        assert result.outcome is TransportOutcome.UNAUTHORIZED
        assert result.error_code == "TOKEN_INVALID"
        assert not result.success

    @pytest.mark.asyncio
    async def test_client_error_is_http_error_without_retry(self) -> None:
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(400, json=error_envelope("VALIDATION_ERROR", "bad"))

        result = await _exchange(handler, retries=3)
        assert result.outcome is TransportOutcome.HTTP_ERROR
        assert result.status_code == 400
        assert "bad" in result.message
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_server_error_retried_then_reported(self) -> None:
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(503, text="unavailable")

        result = await _exchange(handler, retries=2)
        assert result.outcome is TransportOutcome.HTTP_ERROR
        assert result.status_code == 503
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_retry_recovers_from_transient_failure(self) -> None:
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) == 1:
                raise httpx.ConnectError("refused", request=request)
            return httpx.Response(200, json=success_envelope(SYNC_DATA))

        result = await _exchange(handler, retries=1)
        assert result.success
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_timeout(self) -> None:
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        result = await _exchange(handler)
        assert result.outcome is TransportOutcome.TIMEOUT

    @pytest.mark.asyncio
    async def test_transport_error(self) -> None:
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        result = await _exchange(handler)
        assert result.outcome is TransportOutcome.TRANSPORT_ERROR

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(200, text="<html>"),
            httpx.Response(200),
            httpx.Response(200, json={"unexpected": True}),
            httpx.Response(200, json=success_envelope({"uploaded": []})),
        ],
    )
    async def test_malformed(self, response: httpx.Response) -> None:
        result = await _exchange(lambda request: response)
        assert result.outcome is TransportOutcome.MALFORMED

    @pytest.mark.asyncio
    async def test_envelope_failure_is_server_error(self) -> None:
        def handler(request):
            return httpx.Response(200, json=error_envelope("INTERNAL_ERROR", "db down"))

        result = await _exchange(handler)
        assert result.outcome is TransportOutcome.SERVER_ERROR
        with pytest.raises(RemoteSyncError) as excinfo:
            result.raise_for_outcome()
        assert excinfo.value.outcome is TransportOutcome.SERVER_ERROR


class TestHealth:
    """Tests for check_health."""

    @pytest.mark.asyncio
    async def test_healthy(self) -> None:
        def handler(request):
            assert request.url.path == "/health"
            return httpx.Response(200, json={"status": "ok", "timestamp": "now"})

        async with RemoteSyncClient(_config(), transport=httpx.MockTransport(handler)) as client:
            result = await client.check_health()
        assert result.success

    @pytest.mark.asyncio
    async def test_unexpected_body(self) -> None:
        def handler(request):
            return httpx.Response(200, json={"status": "degraded"})

        async with RemoteSyncClient(_config(), transport=httpx.MockTransport(handler)) as client:
            result = await client.check_health()
        assert result.outcome is TransportOutcome.MALFORMED


def test_client_requires_context_manager() -> None:
    with pytest.raises(RuntimeError):
        RemoteSyncClient(_config()).client
