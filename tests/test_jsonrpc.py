"""
Tests for the JSON-RPC 2.0 message layer.
"""

import pytest

from bridge.jsonrpc import (
    JSONRPCHandler,
    JSONRPCNotification,
    JSONRPCRequest,
    PARSE_ERROR,
)


class TestParseMessage:
    """Classification and validation of decoded messages."""

    def test_request_with_int_id(self):
        message = JSONRPCHandler.parse_message(
            {"jsonrpc": "2.0", "id": 7, "method": "tools/list"}
        )

        assert isinstance(message, JSONRPCRequest)
        assert message.id == 7
        assert isinstance(message.id, int)

    def test_request_with_string_id_keeps_type(self):
        message = JSONRPCHandler.parse_message({"jsonrpc": "2.0", "id": "7", "method": "ping"})

        assert message.id == "7"
        assert isinstance(message.id, str)

    def test_request_with_null_id(self):
        message = JSONRPCHandler.parse_message({"jsonrpc": "2.0", "id": None, "method": "ping"})

        assert isinstance(message, JSONRPCRequest)
        assert message.id is None

    def test_notification_has_no_id(self):
        message = JSONRPCHandler.parse_message(
            {"jsonrpc": "2.0", "method": "notifications/initialized"}
        )

        assert isinstance(message, JSONRPCNotification)

    @pytest.mark.parametrize(
        "data",
        [
            [{"jsonrpc": "2.0", "id": 1, "method": "ping"}],
            42,
            "initialize",
            {"jsonrpc": "2.0", "id": 1},
            {"jsonrpc": "1.0", "id": 1, "method": "ping"},
            {"jsonrpc": "2.0", "id": 1.5, "method": "ping"},
            {"jsonrpc": "2.0", "id": 1, "method": "ping", "params": [1, 2]},
        ],
    )
    def test_invalid_messages_raise_value_error(self, data):
        with pytest.raises(ValueError):
            JSONRPCHandler.parse_message(data)

    def test_salvage_id(self):
        assert JSONRPCHandler.salvage_id({"id": 3, "method": 5}) == 3
        assert JSONRPCHandler.salvage_id({"id": "x"}) == "x"
        assert JSONRPCHandler.salvage_id({"id": {"nested": 1}}) is None
        assert JSONRPCHandler.salvage_id({"id": True}) is None
        assert JSONRPCHandler.salvage_id([1, 2]) is None


class TestWireFormat:
    """Replies carry exactly one of result or error."""

    def test_response_wire_shape(self):
        wire = JSONRPCHandler.to_wire(JSONRPCHandler.create_response(1, {"ok": True}))

        assert wire == {"jsonrpc": "2.0", "id": 1, "result": {"ok": True}}

    def test_error_wire_shape_keeps_null_id(self):
        wire = JSONRPCHandler.to_wire(
            JSONRPCHandler.create_error_response(None, PARSE_ERROR, "Parse error")
        )

        assert wire == {
            "jsonrpc": "2.0",
            "id": None,
            "error": {"code": -32700, "message": "Parse error"},
        }
        assert "result" not in wire

    def test_error_data_included_when_present(self):
        wire = JSONRPCHandler.to_wire(
            JSONRPCHandler.create_error_response("a", -32603, "boom", data={"detail": 1})
        )

        assert wire["error"]["data"] == {"detail": 1}
