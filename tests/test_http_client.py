"""
Tests for the backend HTTP client.
"""

import json

import httpx
import pytest

from common.config import BridgeConfig
from bridge.http_client import USER_AGENT, BackendClient, BackendError


def make_client(handler, api_key="test-key") -> BackendClient:
    config = BridgeConfig(server_url="http://backend.test", api_key=api_key, timeout_ms=500)
    return BackendClient(config, transport=httpx.MockTransport(handler))


class TestBackendClient:
    """Header injection, JSON handling and error mapping."""

    @pytest.mark.asyncio
    async def test_get_sends_headers_and_decodes_json(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"tools": []})

        client = make_client(handler)
        assert await client.get("/tools") == {"tools": []}

        request = seen[0]
        assert str(request.url) == "http://backend.test/tools"
        assert request.headers["X-Api-Key"] == "test-key"
        assert request.headers["User-Agent"] == USER_AGENT
        await client.aclose()

    @pytest.mark.asyncio
    async def test_no_api_key_header_when_unset(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={})

        client = make_client(handler, api_key=None)
        await client.get("/tools")

        assert "X-Api-Key" not in seen[0].headers
        await client.aclose()

    @pytest.mark.asyncio
    async def test_post_sends_json_body(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"result": "done"})

        client = make_client(handler)
        result = await client.post("/", {"jsonrpc": "2.0", "id": 1, "method": "tools/call"})

        assert result == {"result": "done"}
        assert seen[0].method == "POST"
        assert json.loads(seen[0].content) == {"jsonrpc": "2.0", "id": 1, "method": "tools/call"}
        await client.aclose()

    @pytest.mark.asyncio
    async def test_empty_body_is_empty_dict(self):
        client = make_client(lambda request: httpx.Response(204))

        assert await client.get("/tools") == {}
        await client.aclose()

    @pytest.mark.asyncio
    async def test_http_error_status(self):
        client = make_client(lambda request: httpx.Response(500, text="database down"))

        with pytest.raises(BackendError, match="HTTP 500: database down"):
            await client.get("/tools")
        await client.aclose()

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        client = make_client(lambda request: httpx.Response(200, text="<html>"))

        with pytest.raises(BackendError, match="Response parse error"):
            await client.get("/tools")
        await client.aclose()

    @pytest.mark.asyncio
    async def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        client = make_client(handler)
        with pytest.raises(BackendError, match="Request timeout"):
            await client.get("/tools")
        await client.aclose()

    @pytest.mark.asyncio
    async def test_connection_failure(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = make_client(handler)
        with pytest.raises(BackendError, match="Request failed: connection refused"):
            await client.get("/tools")
        await client.aclose()
