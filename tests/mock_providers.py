"""
Mock transports and providers for testing.

Provides canned HTTP exchanges (via ``httpx.MockTransport``) so tests can
exercise the real adapters without hitting real APIs, plus a scripted
``MockProvider`` for code that only needs the ``Provider`` interface.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, AsyncIterator, Callable

import httpx

from chatwire.llm.accumulator import DeltaCallback, StreamAccumulator
from chatwire.llm.providers.base import Provider
from chatwire.llm.providers.gemini import GeminiProvider
from chatwire.llm.providers.openai_compat import OpenAICompatProvider
from chatwire.llm.types import ChatRequest, ChatResponse, ModelInfo, StreamDelta


# ---------------------------------------------------------------------------
# SSE bodies
# ---------------------------------------------------------------------------

def sse_frame(payload: Any) -> bytes:
    """Encode one ``data:`` frame.  Dicts are JSON-encoded."""
    text = payload if isinstance(payload, str) else json.dumps(payload)
    return f"data: {text}\n\n".encode()


def sse_body(*payloads: Any, done: bool = True) -> bytes:
    body = b"".join(sse_frame(p) for p in payloads)
    if done:
        body += sse_frame("[DONE]")
    return body


def byte_reads(*reads: bytes, delay: float = 0.0) -> Callable[[], AsyncIterator[bytes]]:
    """Return a factory for an async byte stream that yields *reads* one at a time."""

    async def _gen() -> AsyncIterator[bytes]:
        for chunk in reads:
            if delay:
                await asyncio.sleep(delay)
            yield chunk

    return _gen


class StalledStream(httpx.AsyncByteStream):
    """Yields *first*, then hangs for *stall* seconds before finishing."""

    def __init__(self, first: bytes, stall: float = 5.0) -> None:
        self._first = first
        self._stall = stall
        self.closed = False

    async def __aiter__(self) -> AsyncIterator[bytes]:
        yield self._first
        await asyncio.sleep(self._stall)
        yield b"data: [DONE]\n\n"

    async def aclose(self) -> None:
        self.closed = True


def openai_chunk(
    content: str | None = None,
    tool_calls: list[dict] | None = None,
    finish_reason: str | None = None,
    usage: dict | None = None,
) -> dict:
    delta: dict = {}
    if content is not None:
        delta["content"] = content
    if tool_calls is not None:
        delta["tool_calls"] = tool_calls
    chunk: dict = {
        "id": "chatcmpl-1",
        "object": "chat.completion.chunk",
        "choices": [{"index": 0, "delta": delta, "finish_reason": finish_reason}],
    }
    if usage is not None:
        chunk["usage"] = usage
    return chunk


def openai_tool_fragment(
    index: int,
    id: str | None = None,
    name: str | None = None,
    arguments: str | None = None,
) -> dict:
    func: dict = {}
    if name is not None:
        func["name"] = name
    if arguments is not None:
        func["arguments"] = arguments
    frag: dict = {"index": index, "function": func}
    if id is not None:
        frag["id"] = id
        frag["type"] = "function"
    return frag


# ---------------------------------------------------------------------------
# Provider builders
# ---------------------------------------------------------------------------

class RecordingHandler:
    """``MockTransport`` handler that records requests and replays responses."""

    def __init__(self, *responses: httpx.Response | Callable[[httpx.Request], httpx.Response]) -> None:
        self._responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self._responses.pop(0) if len(self._responses) > 1 else self._responses[0]
        if callable(response):
            return response(request)
        return response

    @property
    def last_json(self) -> dict:
        return json.loads(self.requests[-1].content)


def make_openai_provider(handler, **kwargs) -> OpenAICompatProvider:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    kwargs.setdefault("base_url", "http://test.local/v1")
    kwargs.setdefault("model", "test-model")
    return OpenAICompatProvider(client=client, **kwargs)


def make_gemini_provider(handler, **kwargs) -> GeminiProvider:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    kwargs.setdefault("api_key", "test-key")
    kwargs.setdefault("base_url", "http://gemini.test/v1beta")
    return GeminiProvider(client=client, **kwargs)


# ---------------------------------------------------------------------------
# Scripted provider
# ---------------------------------------------------------------------------

class MockProvider(Provider):
    """
    A provider that replays pre-configured ``StreamDelta`` batches.

    Usage::

        provider = MockProvider(batches=[
            [StreamDelta(text="Hello ")],
            [StreamDelta(text="world!", finish_reason="stop")],
        ])

    Non-streaming requests get the same batches, accumulated without a
    callback.
    """

    def __init__(
        self,
        batches: list[list[StreamDelta]] | None = None,
        models: list[ModelInfo] | None = None,
        model_name: str = "mock-model",
    ) -> None:
        super().__init__("http://mock.invalid", model_name)
        self._batches = batches or [[StreamDelta(done=True)]]
        self._models = models or [ModelInfo(id=model_name, name=model_name)]
        self.call_count = 0
        self.last_request: ChatRequest | None = None

    @property
    def name(self) -> str:
        return "mock"

    async def chat(
        self,
        request: ChatRequest,
        on_delta: DeltaCallback | None = None,
        cancel: asyncio.Event | None = None,
    ) -> ChatResponse:
        self._validate(request)
        self.call_count += 1
        self.last_request = request
        accumulator = StreamAccumulator(
            on_delta if request.stream else None, strict=self._strict, model=self._model
        )
        return await accumulator.consume(self._replay(), cancel, self._base_url)

    async def list_models(self) -> list[ModelInfo]:
        return list(self._models)

    def _decode_stream_payload(self, payload, state, url):
        raise NotImplementedError

    async def _replay(self) -> AsyncIterator[list[StreamDelta]]:
        for batch in self._batches:
            await asyncio.sleep(0)
            yield list(batch)


def make_text_provider(text: str, chunk_size: int = 5) -> MockProvider:
    """MockProvider that streams *text* in *chunk_size* pieces then stops."""
    batches = [[StreamDelta(text=text[i:i + chunk_size])] for i in range(0, len(text), chunk_size)]
    batches.append([StreamDelta(finish_reason="stop")])
    return MockProvider(batches=batches)
