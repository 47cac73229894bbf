"""Newline-delimited framing for the stdio transport."""

from typing import List

DELIMITER = b"\n"


class FrameBuffer:
    """
    Accumulates raw input chunks and yields complete frames.

    A frame is the stripped bytes preceding a delimiter. Empty lines are
    dropped. Bytes after the last delimiter stay buffered until the next
    chunk completes them, so the frames produced do not depend on how the
    input was chunked.
    """

    def __init__(self, delimiter: bytes = DELIMITER):
        self.delimiter = delimiter
        self._buffer = bytearray()

    def feed(self, chunk: bytes) -> List[bytes]:
        self._buffer.extend(chunk)
        frames: List[bytes] = []

        while True:
            index = self._buffer.find(self.delimiter)
            if index == -1:
                break
            line = bytes(self._buffer[:index]).strip()
            del self._buffer[: index + len(self.delimiter)]
            if line:
                frames.append(line)

        return frames

    @property
    def pending(self) -> int:
        """Number of buffered bytes not yet terminated by a delimiter."""
        return len(self._buffer)

    def discard(self) -> bytes:
        """Drop and return the unterminated remainder."""
        remainder = bytes(self._buffer)
        self._buffer.clear()
        return remainder
