"""
Reconstruction of a complete assistant turn from streaming deltas.

A ``StreamAccumulator`` belongs to exactly one in-flight streaming call.
Text fragments are appended in arrival order (vendors never revise content
they already sent) and forwarded to the live ``on_delta`` callback as they
arrive; tool-call fragments go to a ``ToolCallAssembler``.  The stream ends
at the out-of-band sentinel or at the first delta with a finish reason.
"""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, Callable

from chatwire.errors import raise_if_cancelled
from chatwire.llm.tool_call_assembler import ToolCallAssembler
from chatwire.llm.types import ChatResponse, StreamDelta, Usage

logger = logging.getLogger(__name__)

DeltaCallback = Callable[[str], None]


class StreamAccumulator:
    """
    Per-call mutable state for a streaming chat completion.

    Parameters
    ----------
    on_delta:
        Called synchronously with every text fragment.  Exceptions raised by
        the callback propagate and abort the stream.
    strict:
        Passed to the ``ToolCallAssembler``: raise instead of falling back to
        empty arguments when a tool call's JSON cannot be recovered.
    """

    def __init__(
        self,
        on_delta: DeltaCallback | None = None,
        *,
        strict: bool = False,
        model: str | None = None,
    ) -> None:
        self._on_delta = on_delta
        self._text: list[str] = []
        self._tools = ToolCallAssembler(strict=strict)
        self._model = model
        self.finish_reason: str | None = None
        self.usage: Usage | None = None
        self.terminated = False
        self._finished = False

    @property
    def tool_errors(self) -> list[str]:
        return self._tools.errors

    def feed(self, delta: StreamDelta) -> bool:
        """Merge one delta.  Returns ``True`` once the stream has terminated."""
        if self._finished:
            raise RuntimeError("StreamAccumulator already finished")

        if delta.text:
            self._text.append(delta.text)
            if self._on_delta is not None:
                self._on_delta(delta.text)

        if delta.tool_calls:
            for fragment in delta.tool_calls:
                self._tools.feed(fragment)

        if delta.usage is not None:
            self.usage = delta.usage
        if delta.finish_reason is not None and self.finish_reason is None:
            self.finish_reason = delta.finish_reason
        if delta.is_terminal:
            self.terminated = True
        return self.terminated

    async def consume(
        self,
        batches: AsyncIterator[list[StreamDelta]],
        cancel: asyncio.Event | None = None,
        endpoint: str | None = None,
    ) -> ChatResponse:
        """
        Drive the accumulator from *batches* and return the final response.

        Each batch holds the deltas decoded from one network read.  After a
        delta with a finish reason the rest of its batch (already buffered)
        is still merged, but no further batch is awaited.  The sentinel stops
        merging immediately.  *cancel* is checked before every batch.
        """
        async for batch in batches:
            raise_if_cancelled(cancel, endpoint)
            for delta in batch:
                self.feed(delta)
                if delta.done:
                    break
            if self.terminated:
                break
        else:
            raise_if_cancelled(cancel, endpoint)
            logger.debug("Stream ended without a terminal marker")
        return self.finish()

    def finish(self) -> ChatResponse:
        """Build the final ``ChatResponse``.  May only be called once."""
        if self._finished:
            raise RuntimeError("StreamAccumulator already finished")
        self._finished = True

        response = ChatResponse(
            usage=self.usage,
            finish_reason=self.finish_reason,
            model=self._model,
        )
        if self._text:
            response.text = "".join(self._text)
        if len(self._tools):
            response.tool_calls = self._tools.finish()
        if response.text is None and response.tool_calls is None:
            logger.info(
                "Stream finished with empty content (finish_reason=%s)",
                self.finish_reason,
            )
        return response
