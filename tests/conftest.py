"""
Shared fixtures: an in-memory PromptHub backend served through
httpx.MockTransport, and helpers to drive the stdio transport.
"""

import asyncio
import json
from typing import Any, Dict, List, Optional

import httpx
import pytest

from common.config import BridgeConfig
from bridge.dispatcher import Dispatcher
from bridge.http_client import BackendClient
from bridge.tool_registry import ToolRegistry
from bridge.transports.stdio import StdioTransport

BACKEND_URL = "http://backend.test"

GET_CATEGORIES = {"name": "get_categories", "description": "List prompt categories", "parameters": {}}

SEARCH_PROMPTS = {
    "name": "search_prompts",
    "description": "Search prompts by keyword",
    "parameters": {
        "query": {"type": "string", "description": "Search keyword", "required": True},
        "limit": {"type": "number", "description": "Max results", "required": False},
    },
}


class FakeBackend:
    """Records every request and answers like the PromptHub REST surface."""

    def __init__(self, tools: Optional[List[Dict[str, Any]]] = None):
        self.tools = tools if tools is not None else [GET_CATEGORIES]
        self.requests: List[httpx.Request] = []
        self.listing_status = 200
        self.rpc_reply: Dict[str, Any] = {"jsonrpc": "2.0", "id": 1, "result": "ok"}
        self.raise_on_call: Optional[Exception] = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)

        if request.method == "GET" and request.url.path == "/tools":
            if self.listing_status != 200:
                return httpx.Response(self.listing_status, text="backend unavailable")
            return httpx.Response(200, json={"tools": self.tools})

        if request.method == "POST" and request.url.path == "/":
            if self.raise_on_call is not None:
                raise self.raise_on_call
            return httpx.Response(200, json=self.rpc_reply)

        return httpx.Response(404, text="not found")

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def calls(self, method: str, path: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path == path]


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def bridge_config() -> BridgeConfig:
    return BridgeConfig(server_url=BACKEND_URL, api_key="test-key", timeout_ms=2000)


@pytest.fixture
def client(backend: FakeBackend, bridge_config: BridgeConfig) -> BackendClient:
    return BackendClient(bridge_config, transport=backend.transport)


@pytest.fixture
def registry(client: BackendClient) -> ToolRegistry:
    return ToolRegistry(client)


@pytest.fixture
def dispatcher(registry: ToolRegistry, client: BackendClient) -> Dispatcher:
    return Dispatcher(registry, client)


def encode_lines(*messages: Any) -> bytes:
    """Encode messages (dicts or raw strings) as newline-delimited frames."""
    lines = []
    for message in messages:
        lines.append(message if isinstance(message, str) else json.dumps(message))
    return ("\n".join(lines) + "\n").encode("utf-8")


async def run_transport(dispatcher: Dispatcher, *chunks: bytes) -> List[Dict[str, Any]]:
    """Feed chunks through a StdioTransport and return the decoded output frames."""
    reader = asyncio.StreamReader()
    for chunk in chunks:
        reader.feed_data(chunk)
    reader.feed_eof()

    written: List[bytes] = []
    transport = StdioTransport(dispatcher, reader, written.append)
    await transport.run()

    output = b"".join(written)
    assert output == b"" or output.endswith(b"\n")
    return [json.loads(line) for line in output.splitlines()]
