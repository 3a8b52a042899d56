"""
Server-Sent Events framing.

A frame is everything between two blank lines.  Providers are free to send
either ``\\n\\n`` or ``\\r\\n\\r\\n`` boundaries and the network is free to
split them anywhere, so the parser buffers raw bytes and only ever emits
complete frames.  Bytes are decoded per frame, which keeps multi-byte UTF-8
sequences intact across chunk boundaries.
"""

from __future__ import annotations

from typing import AsyncIterable, AsyncIterator

DONE = "[DONE]"

_LF_BOUNDARY = b"\n\n"
_CRLF_BOUNDARY = b"\r\n\r\n"


class SSEFrameParser:
    """Incremental splitter turning a byte stream into raw frame strings."""

    def __init__(self) -> None:
        self._buffer = bytearray()

    def feed(self, data: bytes) -> list[str]:
        """Buffer *data* and return every frame completed by it."""
        self._buffer.extend(data)
        frames: list[str] = []
        while True:
            boundary = self._next_boundary()
            if boundary is None:
                break
            start, length = boundary
            raw = bytes(self._buffer[:start])
            del self._buffer[: start + length]
            frames.append(raw.decode("utf-8", errors="replace"))
        return frames

    async def iter_frames(self, chunks: AsyncIterable[bytes]) -> AsyncIterator[str]:
        """Lazily yield frames from an async byte iterator."""
        async for chunk in chunks:
            for frame in self.feed(chunk):
                yield frame

    @property
    def pending(self) -> int:
        """Number of buffered bytes not yet terminated by a boundary."""
        return len(self._buffer)

    def _next_boundary(self) -> tuple[int, int] | None:
        lf = self._buffer.find(_LF_BOUNDARY)
        crlf = self._buffer.find(_CRLF_BOUNDARY)
        if lf < 0 and crlf < 0:
            return None
        if crlf < 0 or (0 <= lf < crlf):
            return lf, len(_LF_BOUNDARY)
        return crlf, len(_CRLF_BOUNDARY)


def is_comment(frame: str) -> bool:
    """Heartbeats such as ``: OPENROUTER PROCESSING`` carry no payload."""
    return frame.startswith(":")


def extract_data_payload(frame: str) -> str | None:
    """
    Join the ``data:`` lines of *frame* into a single payload string.

    Lines end at ``\\n`` only, so separators such as U+2028 inside a JSON
    string stay part of the payload.  Returns ``None`` for comments and for
    frames without any data.
    """
    if is_comment(frame):
        return None
    parts = [
        line[len("data:"):].strip(" \t\r")
        for line in frame.split("\n")
        if line.startswith("data:")
    ]
    payload = "".join(parts)
    return payload or None
