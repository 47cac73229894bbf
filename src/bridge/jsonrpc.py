"""
JSON-RPC 2.0 Protocol Implementation for the MCP bridge

Message envelopes, standard error codes and MCP method names used on the
stdio side of the bridge, plus the wire serialization of responses.

Reference: https://www.jsonrpc.org/specification
MCP Spec: https://spec.modelcontextprotocol.io/specification/2024-11-05/basic/
"""

from typing import Any, Dict, List, Optional, Union, Literal
from pydantic import BaseModel, ConfigDict

# JSON-RPC version constant
JSONRPC_VERSION = "2.0"

# Standard JSON-RPC error codes
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603

RequestId = Union[str, int, None]


class JSONRPCError(BaseModel):
    """JSON-RPC 2.0 error object."""

    code: int
    message: str
    data: Optional[Any] = None


class JSONRPCRequest(BaseModel):
    """JSON-RPC 2.0 request message."""

    model_config = ConfigDict(strict=True)

    jsonrpc: Literal["2.0"] = "2.0"
    id: RequestId
    method: str
    params: Optional[Dict[str, Any]] = None


class JSONRPCResponse(BaseModel):
    """JSON-RPC 2.0 response message (success)."""

    jsonrpc: Literal["2.0"] = "2.0"
    id: RequestId
    result: Any


class JSONRPCErrorResponse(BaseModel):
    """JSON-RPC 2.0 response message (error)."""

    jsonrpc: Literal["2.0"] = "2.0"
    id: RequestId
    error: JSONRPCError


class JSONRPCNotification(BaseModel):
    """JSON-RPC 2.0 notification message (no response expected)."""

    model_config = ConfigDict(strict=True)

    jsonrpc: Literal["2.0"] = "2.0"
    method: str
    params: Optional[Dict[str, Any]] = None


JSONRPCMessage = Union[JSONRPCRequest, JSONRPCNotification]
JSONRPCReply = Union[JSONRPCResponse, JSONRPCErrorResponse]


class MCPMethods:
    """MCP method names handled by the bridge."""

    # Core protocol
    INITIALIZE = "initialize"
    INITIALIZED = "notifications/initialized"
    PING = "ping"

    # Tools
    TOOLS_LIST = "tools/list"
    TOOLS_CALL = "tools/call"

    # Cancellation
    CANCEL = "notifications/cancelled"

    NOTIFICATION_PREFIX = "notifications/"


class MCPImplementation(BaseModel):
    """MCP implementation info."""

    name: str
    version: str


class MCPInitializeResult(BaseModel):
    """Result for initialize response."""

    protocolVersion: str
    capabilities: Dict[str, Any]
    serverInfo: MCPImplementation


class MCPToolsListResult(BaseModel):
    """Result for tools/list response."""

    tools: List[Dict[str, Any]]


class MCPToolsCallParams(BaseModel):
    """Parameters for tools/call request."""

    name: str
    arguments: Optional[Dict[str, Any]] = None


class MCPTextContent(BaseModel):
    """Text content for tool results."""

    type: Literal["text"] = "text"
    text: str


class MCPToolsCallResult(BaseModel):
    """Result for tools/call response."""

    content: List[MCPTextContent]


class JSONRPCHandler:
    """Handler for JSON-RPC message processing."""

    @staticmethod
    def create_response(id: RequestId, result: Any) -> JSONRPCResponse:
        """Create a JSON-RPC success response."""
        return JSONRPCResponse(id=id, result=result)

    @staticmethod
    def create_error_response(
        id: RequestId, code: int, message: str, data: Optional[Any] = None
    ) -> JSONRPCErrorResponse:
        """Create a JSON-RPC error response."""
        error = JSONRPCError(code=code, message=message, data=data)
        return JSONRPCErrorResponse(id=id, error=error)

    @staticmethod
    def parse_message(data: Any) -> JSONRPCMessage:
        """
        Parse a decoded JSON value into a request or notification.

        A message with a ``method`` and an ``id`` key is a request (the id may
        be null); a ``method`` without ``id`` is a notification.

        Raises:
            ValueError: the value is not a valid JSON-RPC request or
                notification (pydantic's ValidationError is a ValueError).
        """
        if not isinstance(data, dict):
            raise ValueError(f"Expected a JSON object, got {type(data).__name__}")
        if "method" not in data:
            raise ValueError("Missing 'method'")

        if "id" in data:
            return JSONRPCRequest.model_validate(data)
        return JSONRPCNotification.model_validate(data)

    @staticmethod
    def salvage_id(data: Any) -> RequestId:
        """Best-effort id for an error reply to a message that failed validation."""
        if isinstance(data, dict):
            value = data.get("id")
            if isinstance(value, (str, int)) and not isinstance(value, bool):
                return value
        return None

    @staticmethod
    def to_wire(reply: JSONRPCReply) -> Dict[str, Any]:
        """Dump a reply as the exact object written to the wire."""
        if isinstance(reply, JSONRPCErrorResponse):
            return {
                "jsonrpc": reply.jsonrpc,
                "id": reply.id,
                "error": reply.error.model_dump(exclude_none=True),
            }
        return {"jsonrpc": reply.jsonrpc, "id": reply.id, "result": reply.result}
