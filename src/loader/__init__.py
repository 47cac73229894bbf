"""
Self-updating loader for the MCP bridge.

Fetches, validates and runs the latest bridge server module.
"""
