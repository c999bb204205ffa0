"""
OpenAI-compatible chat-completion provider.

Works with any endpoint that speaks the OpenAI ``/v1/chat/completions`` wire
protocol -- OpenAI itself, LM Studio, vLLM, llama.cpp server, LocalAI, etc.

Dependencies: ``httpx`` (async HTTP client).  No ``openai`` SDK needed.

Lossy mapping: ``logprobs``, ``system_fingerprint``, refusal text and every
choice after the first are not represented in ``ChatResponse`` and are
dropped.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from chatwire.errors import HttpStatusError, MalformedResponseError
from chatwire.llm.accumulator import DeltaCallback
from chatwire.llm.content import to_openai_content
from chatwire.llm.json_repair import JsonParseError, safe_parse_json
from chatwire.llm.providers.base import Provider
from chatwire.llm.sse import DONE_SENTINEL
from chatwire.llm.tool_call_assembler import synthetic_call_id
from chatwire.llm.truncation import TruncationConfig
from chatwire.llm.types import (
    ChatRequest,
    ChatResponse,
    ModelInfo,
    Role,
    StreamDelta,
    ToolCall,
    ToolCallFragment,
    Usage,
)

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:1234/v1"

# Keys different servers use to advertise a model's context window.
_CONTEXT_LENGTH_KEYS = ("context_length", "max_model_len", "max_context_length")


class OpenAICompatProvider(Provider):
    """
    Stream-capable provider for any OpenAI-API-compatible endpoint.

    Parameters
    ----------
    base_url:
        Base URL of the API, e.g. ``"https://api.openai.com/v1"`` or
        ``"http://localhost:1234/v1"``.
    model:
        Default model identifier, used when a request does not name one.
    api_key:
        Bearer token.  Pass ``""`` for unauthenticated local endpoints.
    timeout:
        HTTP request timeout in seconds (transport-level only).
    strict_tool_arguments:
        Raise ``MalformedResponseError`` instead of substituting ``{}`` when a
        streamed tool call's arguments cannot be recovered.
    truncation:
        Limits applied to tool-result text before it is sent back to the
        model.  Defaults to ``TruncationConfig()``.
    client:
        Optional shared ``httpx.AsyncClient``.  When omitted the provider
        creates and owns one.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        model: str = "gpt-4o",
        api_key: str = "",
        *,
        timeout: float = 120.0,
        strict_tool_arguments: bool = False,
        truncation: TruncationConfig | None = None,
        client=None,
    ) -> None:
        super().__init__(
            base_url,
            model,
            timeout=timeout,
            strict_tool_arguments=strict_tool_arguments,
            truncation=truncation,
            client=client,
        )
        self._api_key = api_key

    # ------------------------------------------------------------------
    # Provider interface
    # ------------------------------------------------------------------

    @property
    def name(self) -> str:
        return "openai-compatible"

    async def chat(
        self,
        request: ChatRequest,
        on_delta: DeltaCallback | None = None,
        cancel: asyncio.Event | None = None,
    ) -> ChatResponse:
        self._validate(request)
        body = self._build_body(request)

        if request.stream:
            return await self._stream_chat("chat/completions", body, on_delta, cancel)

        data = await self._request_json("POST", "chat/completions", body, cancel=cancel)
        return self._parse_response(data, self._endpoint("chat/completions"))

    async def list_models(self) -> list[ModelInfo]:
        url = self._endpoint("models")
        data = await self._request_json("GET", "models")
        entries = data.get("data")
        if not isinstance(entries, list):
            raise MalformedResponseError.create_with_tip(
                "Model listing response has no 'data' array", None, url
            )

        models: list[ModelInfo] = []
        for entry in entries:
            if not isinstance(entry, dict) or not entry.get("id"):
                raise MalformedResponseError.create_with_tip(
                    f"Model entry without an id: {entry!r}", None, url
                )
            model_id = str(entry["id"])
            context_length = next(
                (entry[k] for k in _CONTEXT_LENGTH_KEYS if isinstance(entry.get(k), int)),
                None,
            )
            models.append(
                ModelInfo(
                    id=model_id,
                    name=model_id,
                    description=f"Model: {model_id}",
                    context_length=context_length,
                )
            )
        return models

    # ------------------------------------------------------------------
    # Request building
    # ------------------------------------------------------------------

    def _headers(self) -> dict[str, str]:
        headers = super()._headers()
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    def _build_body(self, request: ChatRequest) -> dict:
        wire_messages: list[dict] = []
        if request.system_instruction:
            wire_messages.append({"role": "system", "content": request.system_instruction})

        for msg in request.messages:
            if msg.role is Role.TOOL:
                content = self._tool_result_text(msg)
            else:
                content = to_openai_content(msg.content)
            m: dict = {"role": msg.role.value, "content": content}
            if msg.tool_calls:
                m["tool_calls"] = [
                    {
                        "id": tc.id,
                        "type": "function",
                        "function": {
                            "name": tc.name,
                            "arguments": json.dumps(tc.arguments),
                        },
                    }
                    for tc in msg.tool_calls
                ]
            if msg.tool_call_id:
                m["tool_call_id"] = msg.tool_call_id
            wire_messages.append(m)

        body: dict = {
            "model": request.model or self._model,
            "messages": wire_messages,
            "stream": request.stream,
        }
        if request.stream:
            # trailing usage-only chunk
            body["stream_options"] = {"include_usage": True}
        for key, value in (
            ("temperature", request.temperature),
            ("top_p", request.top_p),
            ("max_tokens", request.max_tokens),
        ):
            if value is not None:
                body[key] = value

        if request.tools:
            body["tools"] = [
                {
                    "type": "function",
                    "function": {
                        "name": spec.name,
                        "description": spec.description,
                        "parameters": spec.normalize_schema(),
                    },
                }
                for spec in request.tools
            ]
            body["tool_choice"] = "auto"

        logger.info(
            "REQUEST: provider=%s model=%s stream=%s tools=%d messages=%d api_key=%s",
            self.name,
            body["model"],
            request.stream,
            len(request.tools or ()),
            len(wire_messages),
            "(set)" if self._api_key else "(none)",
        )
        return body

    # ------------------------------------------------------------------
    # Streaming
    # ------------------------------------------------------------------

    def _decode_stream_payload(
        self, payload: str, state: dict[str, Any], url: str
    ) -> StreamDelta | None:
        """
        Convert one ``data:`` payload into a ``StreamDelta``.

        ``[DONE]`` becomes the sentinel delta.  Chunks without choices are
        skipped unless they carry usage.
        """
        if payload == DONE_SENTINEL:
            return StreamDelta(done=True)

        try:
            data = safe_parse_json(payload)
        except JsonParseError as exc:
            raise MalformedResponseError.create_with_tip(
                f"Unparseable stream chunk: {exc}", None, url
            ) from exc
        if not isinstance(data, dict):
            raise MalformedResponseError.create_with_tip(
                f"Stream chunk is not a JSON object: {payload[:100]}", None, url
            )
        _raise_embedded_error(data, url)

        usage = _parse_usage(data.get("usage"))
        choices = data.get("choices")
        if not choices:
            return StreamDelta(usage=usage) if usage else None

        choice = choices[0]
        if not isinstance(choice, dict):
            raise MalformedResponseError.create_with_tip(
                f"Stream choice is not an object: {choice!r}", None, url
            )
        delta = choice.get("delta") or {}
        if not isinstance(delta, dict):
            raise MalformedResponseError.create_with_tip(
                f"Stream delta is not an object: {delta!r}", None, url
            )
        raw_tcs = delta.get("tool_calls") or []
        if not isinstance(raw_tcs, list):
            raise MalformedResponseError.create_with_tip(
                f"Stream delta tool_calls is not a list: {raw_tcs!r}", None, url
            )

        fragments: list[ToolCallFragment] = []
        for position, raw_tc in enumerate(raw_tcs):
            if not isinstance(raw_tc, dict):
                raise MalformedResponseError.create_with_tip(
                    f"Tool call delta is not an object: {raw_tc!r}", None, url
                )
            idx = raw_tc.get("index", position)
            if not isinstance(idx, int):
                raise MalformedResponseError.create_with_tip(
                    f"Tool call delta has a non-integer index: {idx!r}", None, url
                )
            func = raw_tc.get("function") or {}
            if not isinstance(func, dict):
                raise MalformedResponseError.create_with_tip(
                    f"Tool call delta function is not an object: {func!r}", None, url
                )
            args = func.get("arguments") or ""
            if not isinstance(args, str):
                # Some local servers send the arguments object itself.
                args = json.dumps(args)
            fragments.append(
                ToolCallFragment(
                    index=idx,
                    id=raw_tc.get("id"),
                    name=func.get("name"),
                    arguments=args,
                )
            )

        content = delta.get("content")
        if content is not None and not isinstance(content, str):
            raise MalformedResponseError.create_with_tip(
                f"Stream delta content is not a string: {content!r}", None, url
            )
        return StreamDelta(
            text=content or None,
            tool_calls=fragments or None,
            finish_reason=choice.get("finish_reason"),
            usage=usage,
        )

    # ------------------------------------------------------------------
    # Non-streaming
    # ------------------------------------------------------------------

    def _parse_response(self, data: dict, url: str) -> ChatResponse:
        """Convert a non-streaming response into a ``ChatResponse``."""
        _raise_embedded_error(data, url)
        choices = data.get("choices")
        if not isinstance(choices, list) or not choices:
            raise MalformedResponseError.create_with_tip(
                "Chat completion response has no choices", None, url
            )
        choice = choices[0]
        message = choice.get("message") if isinstance(choice, dict) else None
        if not isinstance(message, dict):
            raise MalformedResponseError.create_with_tip(
                "Chat completion choice has no message", None, url
            )

        result = ChatResponse(
            text=message.get("content") or None,
            usage=_parse_usage(data.get("usage")),
            finish_reason=choice.get("finish_reason"),
            model=data.get("model"),
        )

        raw_tcs = message.get("tool_calls")
        if raw_tcs and not isinstance(raw_tcs, list):
            raise MalformedResponseError.create_with_tip(
                f"Message tool_calls is not a list: {raw_tcs!r}", None, url
            )
        if raw_tcs:
            result.tool_calls = [self._parse_tool_call(raw_tc, url) for raw_tc in raw_tcs]
        return result

    @staticmethod
    def _parse_tool_call(raw_tc: Any, url: str) -> ToolCall:
        func = raw_tc.get("function") if isinstance(raw_tc, dict) else None
        if not isinstance(func, dict):
            raise MalformedResponseError.create_with_tip(
                f"Tool call has no function object: {raw_tc!r}", None, url
            )
        name = func.get("name")
        if not name:
            raise MalformedResponseError.create_with_tip(
                f"Tool call without a function name: {raw_tc!r}", None, url
            )

        raw_args = func.get("arguments")
        if isinstance(raw_args, dict):
            args = raw_args
        else:
            try:
                args = safe_parse_json(raw_args or "{}")
            except JsonParseError as exc:
                raise MalformedResponseError.create_with_tip(
                    f"Invalid arguments for tool call {name!r}: {exc}", None, url
                ) from exc
            if not isinstance(args, dict):
                raise MalformedResponseError.create_with_tip(
                    f"Arguments for tool call {name!r} are not a JSON object", None, url
                )

        return ToolCall(id=raw_tc.get("id") or synthetic_call_id(), name=name, arguments=args)


def _parse_usage(raw: Any) -> Usage | None:
    if not isinstance(raw, dict):
        return None
    return Usage(
        prompt_tokens=raw.get("prompt_tokens"),
        completion_tokens=raw.get("completion_tokens"),
        total_tokens=raw.get("total_tokens"),
    )


def _raise_embedded_error(data: dict, url: str) -> None:
    """Some servers report failures as ``{"error": {...}}`` with a 200 status."""
    err = data.get("error")
    if not err:
        return
    if isinstance(err, dict):
        message = str(err.get("message") or err)
        code = err.get("code")
        status = code if isinstance(code, int) else None
    else:
        message = str(err)
        status = None
    raise HttpStatusError.create_with_tip(f"Server reported an error: {message}", status, url)
