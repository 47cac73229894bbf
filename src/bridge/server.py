#!/usr/bin/env python3
"""
PromptHub MCP Bridge Server

Speaks MCP over stdio to an LLM client and forwards tool discovery and tool
calls to the PromptHub backend over HTTP.

This module is also the artifact the self-update loader downloads and runs:
it must keep exposing ``BridgeServer`` and a coroutine ``main()``. Only this
wiring module is updated that way; it imports the rest of the bridge from the
installed package, so ``REQUIRED_API_LEVEL`` must equal ``bridge.API_LEVEL``
of the package it was written against.

Usage:
    prompthub-bridge

Environment:
    MCP_SERVER_URL  backend base URL
    API_KEY         API key (MCP_API_KEY is accepted as a fallback)
    MCP_TIMEOUT     per-call timeout in milliseconds
"""

import asyncio
import sys
from typing import Optional

import httpx
from dotenv import load_dotenv

from common.config import Config, ConfigError, load_config
from common.logging import get_logger, setup_logging
from bridge.dispatcher import Dispatcher
from bridge.http_client import BackendClient, BackendError
from bridge.tool_registry import ToolRegistry
from bridge.transports.stdio import FrameWriter, StdioTransport, open_stdin_reader, stdout_writer

logger = get_logger(__name__)

REQUIRED_API_LEVEL = 1


class BridgeServer:
    """
    One bridge process: backend client, tool registry, dispatcher and stdio
    transport wired together.
    """

    def __init__(
        self,
        config: Config,
        http_transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config
        self.client = BackendClient(config.bridge, transport=http_transport)
        self.registry = ToolRegistry(self.client)
        self.dispatcher = Dispatcher(self.registry, self.client)

    async def discover(self) -> None:
        """Initial tool discovery; the bridge still starts if it fails."""
        try:
            await self.registry.refresh()
        except BackendError as e:
            logger.warning(event="initial_discovery_failed", error=str(e))

    async def serve(
        self, reader: asyncio.StreamReader, writer: FrameWriter = stdout_writer
    ) -> None:
        """Discover tools, then serve frames from ``reader`` until end of stream."""
        transport = StdioTransport(self.dispatcher, reader, writer)
        try:
            await self.discover()
            logger.info(
                event="bridge_ready",
                server_url=self.client.base_url,
                tool_count=len(self.registry),
            )
            await transport.run()
        finally:
            await self.client.aclose()


async def main(config: Optional[Config] = None) -> None:
    """Run the bridge on this process's stdin/stdout."""
    if config is None:
        config = load_config()
        setup_logging(config)

    server = BridgeServer(config)
    reader = await open_stdin_reader()
    await server.serve(reader)


def run() -> None:
    """Console entry point."""
    load_dotenv()
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info(event="bridge_interrupted")
    except ConfigError as e:
        print(f"[PromptHub MCP] Configuration error: {e}", file=sys.stderr)
        sys.exit(1)
    except Exception as e:
        logger.exception(event="bridge_error", error=str(e))
        sys.exit(1)


if __name__ == "__main__":
    run()
