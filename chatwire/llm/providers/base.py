"""Abstract base class for LLM providers."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from contextlib import aclosing, suppress
from typing import Any, AsyncIterator

import httpx

from chatwire.errors import (
    CancellationError,
    MalformedResponseError,
    error_from_response,
    error_from_transport,
    raise_if_cancelled,
)
from chatwire.llm.accumulator import DeltaCallback, StreamAccumulator
from chatwire.llm.content import content_to_text
from chatwire.llm.sse import iter_sse_batches
from chatwire.llm.token_counter import TokenCounter
from chatwire.llm.truncation import TruncationConfig, truncate_tool_result
from chatwire.llm.types import ChatRequest, ChatResponse, Message, ModelInfo, StreamDelta

logger = logging.getLogger(__name__)


class Provider(ABC):
    """
    A provider encapsulates access to a single vendor endpoint.

    Implementations must support:
      - Chat completions, streamed or not (``chat``).
      - Model listing (``list_models``).
      - Approximate token counting (``count_tokens``).

    An instance holds only immutable configuration and a pooled
    ``httpx.AsyncClient``; concurrent ``chat`` calls each get their own
    response stream and accumulator.  Nothing is retried here.
    """

    def __init__(
        self,
        base_url: str,
        model: str,
        *,
        timeout: float = 120.0,
        strict_tool_arguments: bool = False,
        truncation: TruncationConfig | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._model = model
        self._timeout = timeout
        self._strict = strict_tool_arguments
        self.truncation = truncation or TruncationConfig()
        self._counter = TokenCounter()
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    # ------------------------------------------------------------------
    # Provider interface
    # ------------------------------------------------------------------

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable provider name (e.g. ``"openai-compatible"``)."""
        ...

    @property
    def model(self) -> str:
        return self._model

    @property
    def base_url(self) -> str:
        return self._base_url

    @abstractmethod
    async def chat(
        self,
        request: ChatRequest,
        on_delta: DeltaCallback | None = None,
        cancel: asyncio.Event | None = None,
    ) -> ChatResponse:
        """
        Run a chat completion and return the assembled response.

        When ``request.stream`` is set the response is streamed and every
        text fragment is passed to *on_delta* as it arrives.  Setting
        *cancel* aborts the call with ``CancellationError``.
        """
        ...

    @abstractmethod
    async def list_models(self) -> list[ModelInfo]:
        """Return the models the endpoint advertises."""
        ...

    def count_tokens(self, messages: list[Message]) -> int:
        """
        Estimate the token count of *messages*.

        Approximate: about four characters per token, not the vendor's own
        tokenizer.
        """
        return self._counter.count_messages(messages)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Shared HTTP plumbing
    # ------------------------------------------------------------------

    def _endpoint(self, path: str) -> str:
        return f"{self._base_url}/{path.lstrip('/')}"

    def _headers(self) -> dict[str, str]:
        return {"Content-Type": "application/json"}

    def _tool_result_text(self, msg: Message) -> str:
        """Flatten a tool message's content and bound it by ``self.truncation``."""
        return truncate_tool_result(content_to_text(msg.content), self.truncation)

    @staticmethod
    def _validate(request: ChatRequest) -> None:
        for msg in request.messages:
            msg.validate()

    async def _request_json(
        self,
        method: str,
        path: str,
        body: dict | None = None,
        params: dict[str, str] | None = None,
        cancel: asyncio.Event | None = None,
    ) -> dict[str, Any]:
        """Send a request and return its decoded JSON object body."""
        url = self._endpoint(path)
        raise_if_cancelled(cancel, url)
        try:
            resp = await self._cancellable(
                self._client.request(
                    method, url, json=body, params=params, headers=self._headers()
                ),
                cancel,
                url,
            )
        except httpx.TransportError as exc:
            raise error_from_transport(exc, url) from exc

        if not resp.is_success:
            raise error_from_response(resp, url)

        try:
            data = resp.json()
        except ValueError as exc:
            raise MalformedResponseError.create_with_tip(
                f"Response body is not valid JSON: {exc}", resp.status_code, url
            ) from exc
        if not isinstance(data, dict):
            raise MalformedResponseError.create_with_tip(
                f"Expected a JSON object, got {type(data).__name__}",
                resp.status_code,
                url,
            )
        raise_if_cancelled(cancel, url)
        return data

    async def _stream_chat(
        self,
        path: str,
        body: dict,
        on_delta: DeltaCallback | None,
        cancel: asyncio.Event | None,
        params: dict[str, str] | None = None,
        model: str | None = None,
    ) -> ChatResponse:
        """
        POST *body* and accumulate the SSE response into a ``ChatResponse``.

        Leaving the ``client.stream`` block closes the response, so the
        connection goes back to the pool on completion, error or cancel.
        """
        url = self._endpoint(path)
        raise_if_cancelled(cancel, url)
        accumulator = StreamAccumulator(
            on_delta, strict=self._strict, model=model or body.get("model") or self._model
        )
        headers = self._headers() | {"Accept": "text/event-stream"}

        try:
            async with self._client.stream(
                "POST", url, json=body, params=params, headers=headers
            ) as response:
                if not response.is_success:
                    await response.aread()
                    raise error_from_response(response, url)

                async with aclosing(self._delta_batches(response, url, cancel)) as batches:
                    return await accumulator.consume(batches, cancel, url)
        except httpx.TransportError as exc:
            raise error_from_transport(exc, url) from exc

    async def _delta_batches(
        self,
        response: httpx.Response,
        url: str,
        cancel: asyncio.Event | None = None,
    ) -> AsyncIterator[list[StreamDelta]]:
        """
        Decode each network read's SSE payloads into ``StreamDelta`` objects.

        Every read is raced against *cancel*, so a stalled stream is abandoned
        as soon as the event fires.
        """
        state = self._new_stream_state()
        async with aclosing(iter_sse_batches(response.aiter_bytes())) as payload_batches:
            while True:
                payloads = await self._cancellable(
                    _next_or_none(payload_batches), cancel, url
                )
                if payloads is None:
                    return
                batch: list[StreamDelta] = []
                for payload in payloads:
                    logger.debug("%s SSE payload: %s", self.name, payload[:200])
                    delta = self._decode_stream_payload(payload, state, url)
                    if delta is not None:
                        batch.append(delta)
                yield batch

    def _new_stream_state(self) -> dict[str, Any]:
        """Per-stream scratch space handed to ``_decode_stream_payload``."""
        return {}

    @abstractmethod
    def _decode_stream_payload(
        self, payload: str, state: dict[str, Any], url: str
    ) -> StreamDelta | None:
        """Turn one SSE ``data:`` payload into a delta (``None`` to skip)."""
        ...

    @staticmethod
    async def _cancellable(coro, cancel: asyncio.Event | None, url: str):
        """Await *coro*, abandoning it with ``CancellationError`` if *cancel* fires first."""
        if cancel is None:
            return await coro
        task = asyncio.ensure_future(coro)
        waiter = asyncio.ensure_future(cancel.wait())
        try:
            done, _ = await asyncio.wait(
                {task, waiter}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            # the loser must finish unwinding before its resources are closed
            for loser in (waiter, task):
                if not loser.done():
                    loser.cancel()
                    with suppress(asyncio.CancelledError):
                        await loser
        if task not in done:
            raise CancellationError(endpoint=url)
        return task.result()


async def _next_or_none(iterator: AsyncIterator[Any]) -> Any:
    """``anext`` returning ``None`` at exhaustion, so it can run as a task."""
    try:
        return await iterator.__anext__()
    except StopAsyncIteration:
        return None
