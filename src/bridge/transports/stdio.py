"""
Standard I/O Transport for MCP

Reads newline-delimited JSON-RPC messages from a byte stream and writes one
reply line per request. MCP clients spawn the bridge as a subprocess and
talk to it over stdin/stdout.

Reference: https://modelcontextprotocol.io/specification/2024-11-05/basic/transports
"""

import asyncio
import json
import os
import stat
import sys
from typing import Any, BinaryIO, Callable, Dict, Optional, Set

from common.logging import get_logger
from ..dispatcher import Dispatcher
from ..jsonrpc import (
    JSONRPCHandler,
    JSONRPCReply,
    JSONRPCRequest,
    INVALID_REQUEST,
    PARSE_ERROR,
)
from .framing import FrameBuffer

logger = get_logger(__name__)

CHUNK_SIZE = 64 * 1024

FrameWriter = Callable[[bytes], None]

_pump_tasks: Set[asyncio.Task] = set()


def stdout_writer(data: bytes) -> None:
    """Write one encoded frame to the process stdout."""
    sys.stdout.buffer.write(data)
    sys.stdout.buffer.flush()


def _is_pipe_like(stream: BinaryIO) -> bool:
    try:
        mode = os.fstat(stream.fileno()).st_mode
    except (OSError, ValueError):
        return False
    return stat.S_ISFIFO(mode) or stat.S_ISSOCK(mode) or stat.S_ISCHR(mode)


async def _pump_file(stream: BinaryIO, reader: asyncio.StreamReader) -> None:
    """Feed a blocking byte stream into ``reader`` through the default executor."""
    loop = asyncio.get_running_loop()
    read = getattr(stream, "read1", stream.read)
    try:
        while True:
            chunk = await loop.run_in_executor(None, read, CHUNK_SIZE)
            if not chunk:
                break
            reader.feed_data(chunk)
    except OSError as e:
        logger.error(event="stdin_read_error", error=str(e))
    finally:
        reader.feed_eof()


async def open_stdin_reader(stream: Optional[BinaryIO] = None) -> asyncio.StreamReader:
    """
    Attach an asyncio StreamReader to the process stdin.

    Pipes, sockets and terminals are read through the event loop. Anything
    else, such as a regular file redirected into stdin, is read in the
    default executor.
    """
    if stream is None:
        stream = sys.stdin.buffer

    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader()

    if _is_pipe_like(stream):
        protocol = asyncio.StreamReaderProtocol(reader)
        await loop.connect_read_pipe(lambda: protocol, stream)
    else:
        logger.debug(event="stdin_not_a_pipe", reading="executor")
        task = asyncio.create_task(_pump_file(stream, reader))
        _pump_tasks.add(task)
        task.add_done_callback(_pump_tasks.discard)

    return reader


class StdioTransport:
    """
    Frame reader and reply writer for MCP over a byte stream.

    Framing and parse errors are answered inline, in input order. Each valid
    request is dispatched in its own task and its reply is written as soon
    as the handler settles.
    """

    def __init__(
        self,
        dispatcher: Dispatcher,
        reader: asyncio.StreamReader,
        writer: FrameWriter = stdout_writer,
        chunk_size: int = CHUNK_SIZE,
    ):
        self.dispatcher = dispatcher
        self.reader = reader
        self.writer = writer
        self.chunk_size = chunk_size
        self.frames = FrameBuffer()
        self._pending: Set[asyncio.Task] = set()

    async def run(self) -> None:
        """Read until end of stream, then wait for in-flight handlers."""
        logger.info(event="stdio_transport_started")

        while True:
            chunk = await self.reader.read(self.chunk_size)
            if not chunk:
                break
            for frame in self.frames.feed(chunk):
                self._handle_frame(frame)

        if self.frames.pending:
            remainder = self.frames.discard()
            logger.debug(event="trailing_bytes_discarded", size=len(remainder))

        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)

        logger.info(event="stdio_transport_stopped", reason="eof")

    def _handle_frame(self, frame: bytes) -> None:
        try:
            data = json.loads(frame.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.warning(event="frame_parse_error", error=str(e))
            self._write(JSONRPCHandler.create_error_response(None, PARSE_ERROR, "Parse error"))
            return

        try:
            message = JSONRPCHandler.parse_message(data)
        except ValueError as e:
            logger.warning(event="invalid_request", error=str(e))
            self._write(
                JSONRPCHandler.create_error_response(
                    JSONRPCHandler.salvage_id(data), INVALID_REQUEST, "Invalid Request"
                )
            )
            return

        if isinstance(message, JSONRPCRequest):
            self._spawn(self._dispatch_request(message))
        else:
            self._spawn(self.dispatcher.handle_notification(message))

    def _spawn(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _dispatch_request(self, request: JSONRPCRequest) -> None:
        reply = await self.dispatcher.handle_request(request)
        self._write(reply)

    def _write(self, reply: JSONRPCReply) -> None:
        data: Dict[str, Any] = JSONRPCHandler.to_wire(reply)
        try:
            line = json.dumps(data, separators=(",", ":"), ensure_ascii=False) + "\n"
            self.writer(line.encode("utf-8"))
        except (OSError, TypeError, ValueError) as e:
            logger.error(event="stdout_write_error", error=str(e), id=reply.id)
