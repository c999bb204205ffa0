"""
Server-Sent Events line framing.

Network reads do not line up with SSE lines: a frame may be split across
reads and one read may carry several frames.  ``SSEDecoder`` buffers partial
lines and returns only complete ``data:`` payloads.  ``iter_sse_batches``
drives it over an async byte iterator and yields one batch of payloads per
network read, so a consumer can tell which payloads were already buffered
when it decided to stop.

Each ``data:`` line is treated as one payload; some local servers omit the
blank line that should separate events.
"""

from __future__ import annotations

import codecs
import logging
from typing import AsyncIterator

logger = logging.getLogger(__name__)

DONE_SENTINEL = "[DONE]"


class SSEDecoder:
    """Incremental ``bytes`` -> ``data:`` payload framer."""

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""

    def feed(self, chunk: bytes) -> list[str]:
        """Add *chunk* and return the payloads of every line it completed."""
        self._buffer += self._decoder.decode(chunk)
        payloads: list[str] = []
        while "\n" in self._buffer:
            line, self._buffer = self._buffer.split("\n", 1)
            payload = self._parse_line(line)
            if payload is not None:
                payloads.append(payload)
        return payloads

    def flush(self) -> list[str]:
        """Return the payload of a final unterminated line, if any."""
        self._buffer += self._decoder.decode(b"", final=True)
        line, self._buffer = self._buffer, ""
        payload = self._parse_line(line)
        return [payload] if payload is not None else []

    @staticmethod
    def _parse_line(line: str) -> str | None:
        line = line.rstrip("\r")
        if not line or line.startswith(":"):
            # Event boundary or comment / keep-alive.
            return None
        field, sep, value = line.partition(":")
        if not sep or field != "data":
            # event:, id:, retry: and unknown fields carry nothing we use.
            return None
        if value.startswith(" "):
            value = value[1:]
        return value.strip() or None


async def iter_sse_batches(chunks: AsyncIterator[bytes]) -> AsyncIterator[list[str]]:
    """
    Yield the ``data:`` payloads completed by each network read.

    Reads that complete no line yield an empty batch, so the consumer still
    sees every read boundary.  Whatever is left in the buffer when the byte
    stream ends is flushed as a final batch.
    """
    decoder = SSEDecoder()
    async for chunk in chunks:
        yield decoder.feed(chunk)
    tail = decoder.flush()
    if tail:
        logger.debug("SSE stream ended without a trailing newline")
        yield tail
