"""Transports for the MCP bridge."""
