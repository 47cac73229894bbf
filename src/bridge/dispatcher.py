"""
JSON-RPC Dispatcher for the MCP bridge

Routes each validated request to its handler and converts the outcome into
exactly one response or error reply:

- initialize: static capability handshake
- ping: liveness check
- tools/list: refresh from the backend, falling back to the cached set
- tools/call: forward to the backend's JSON-RPC root endpoint
"""

import itertools
import json
from typing import Any, Dict

from pydantic import ValidationError

from common.logging import get_logger
from .http_client import BRIDGE_VERSION, BackendClient, BackendError
from .tool_registry import ToolRegistry
from .jsonrpc import (
    JSONRPCHandler,
    JSONRPCNotification,
    JSONRPCReply,
    JSONRPCRequest,
    MCPImplementation,
    MCPInitializeResult,
    MCPMethods,
    MCPTextContent,
    MCPToolsCallParams,
    MCPToolsCallResult,
    MCPToolsListResult,
    INTERNAL_ERROR,
    INVALID_PARAMS,
    METHOD_NOT_FOUND,
)

logger = get_logger(__name__)

# MCP Protocol version
MCP_PROTOCOL_VERSION = "2024-11-05"

SERVER_NAME = "prompthub-mcp-bridge"

BACKEND_RPC_PATH = "/"


def render_text(payload: Any) -> str:
    """Render a backend payload as tool-result text."""
    if isinstance(payload, str):
        return payload
    return json.dumps(payload, indent=2, ensure_ascii=False)


class Dispatcher:
    """
    Per-request MCP method router.

    The registry and client are passed in at construction; the dispatcher
    is the only writer of the registry.
    """

    def __init__(self, registry: ToolRegistry, client: BackendClient):
        self.registry = registry
        self.client = client
        self.server_info = MCPImplementation(name=SERVER_NAME, version=BRIDGE_VERSION)
        self._backend_ids = itertools.count(1)

    async def handle_request(self, request: JSONRPCRequest) -> JSONRPCReply:
        """Handle a JSON-RPC request."""
        try:
            logger.debug(event="jsonrpc_request", method=request.method, id=request.id)

            if request.method == MCPMethods.INITIALIZE:
                return self._handle_initialize(request)
            elif request.method == MCPMethods.PING:
                return JSONRPCHandler.create_response(request.id, {})
            elif request.method == MCPMethods.TOOLS_LIST:
                return await self._handle_tools_list(request)
            elif request.method == MCPMethods.TOOLS_CALL:
                return await self._handle_tools_call(request)
            else:
                logger.warning(event="unknown_method", method=request.method)
                return JSONRPCHandler.create_error_response(
                    request.id, METHOD_NOT_FOUND, f"Method not found: {request.method}"
                )

        except Exception as e:
            logger.exception(event="request_handler_error", method=request.method, error=str(e))
            return JSONRPCHandler.create_error_response(
                request.id, INTERNAL_ERROR, f"Internal error: {e}"
            )

    async def handle_notification(self, notification: JSONRPCNotification) -> None:
        """Notifications are acknowledged in the log only."""
        if notification.method == MCPMethods.INITIALIZED:
            logger.info(event="client_initialized")
        elif notification.method == MCPMethods.CANCEL:
            # Handlers cannot be cancelled once started
            logger.info(event="cancel_ignored", params=notification.params)
        elif notification.method.startswith(MCPMethods.NOTIFICATION_PREFIX):
            logger.debug(event="notification_ignored", method=notification.method)
        else:
            logger.warning(event="unknown_notification", method=notification.method)

    def _handle_initialize(self, request: JSONRPCRequest) -> JSONRPCReply:
        result = MCPInitializeResult(
            protocolVersion=MCP_PROTOCOL_VERSION,
            capabilities={"tools": {}},
            serverInfo=self.server_info,
        )
        return JSONRPCHandler.create_response(request.id, result.model_dump())

    async def _handle_tools_list(self, request: JSONRPCRequest) -> JSONRPCReply:
        try:
            tools = await self.registry.refresh()
        except BackendError as e:
            tools = self.registry.list_tools()
            logger.warning(event="tools_refresh_failed", error=str(e), cached_tools=len(tools))

        result = MCPToolsListResult(tools=[tool.to_mcp_tool() for tool in tools])
        return JSONRPCHandler.create_response(request.id, result.model_dump())

    async def _handle_tools_call(self, request: JSONRPCRequest) -> JSONRPCReply:
        try:
            params = MCPToolsCallParams.model_validate(request.params or {})
        except ValidationError as e:
            return JSONRPCHandler.create_error_response(
                request.id, INVALID_PARAMS, f"Invalid tools/call params: {e}"
            )

        if self.registry.lookup(params.name) is None:
            return JSONRPCHandler.create_error_response(
                request.id, INVALID_PARAMS, f"Tool not found: {params.name}"
            )

        envelope: Dict[str, Any] = {
            "jsonrpc": "2.0",
            "id": next(self._backend_ids),
            "method": MCPMethods.TOOLS_CALL,
            "params": {"name": params.name, "arguments": params.arguments or {}},
        }

        logger.info(event="tool_call_forwarded", tool_name=params.name)

        try:
            payload = await self.client.post(BACKEND_RPC_PATH, envelope)
            if isinstance(payload, dict) and "error" in payload:
                error = payload["error"]
                message = error.get("message") if isinstance(error, dict) else str(error)
                raise BackendError(message or "Tool execution failed")
        except BackendError as e:
            logger.error(event="tool_call_failed", tool_name=params.name, error=str(e))
            return JSONRPCHandler.create_error_response(
                request.id, INTERNAL_ERROR, f"Tool execution failed: {e}"
            )

        if isinstance(payload, dict) and "result" in payload:
            payload = payload["result"]

        result = MCPToolsCallResult(content=[MCPTextContent(text=render_text(payload))])
        return JSONRPCHandler.create_response(request.id, result.model_dump())
