"""
Google Gemini provider.

Talks to the Gemini REST API (``generativelanguage.googleapis.com``) directly:
``models/{model}:generateContent`` for single responses and
``models/{model}:streamGenerateContent?alt=sse`` for streaming.

Gemini sends function calls whole rather than as argument fragments, so each
``functionCall`` part is fed to the accumulator as one complete fragment at
the next free index.

Dependencies: ``httpx``.

Lossy mapping: safety ratings, citation metadata, "thought" parts and
candidates after the first are dropped.  System messages are merged into
``systemInstruction``.  Tool results are sent as ``functionResponse`` parts
whose ``response`` is ``{"content": <text>}``, bounded by the provider's
truncation policy.  JSON-schema keys that Gemini rejects (``$schema``,
``additionalProperties``) are removed from tool parameter schemas.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from chatwire.errors import HttpStatusError, MalformedResponseError
from chatwire.llm.accumulator import DeltaCallback
from chatwire.llm.content import content_to_text, to_gemini_parts
from chatwire.llm.json_repair import JsonParseError, safe_parse_json
from chatwire.llm.providers.base import Provider
from chatwire.llm.tool_call_assembler import synthetic_call_id
from chatwire.llm.truncation import TruncationConfig
from chatwire.llm.types import (
    ChatRequest,
    ChatResponse,
    Message,
    ModelInfo,
    Role,
    StreamDelta,
    ToolCall,
    ToolCallFragment,
    Usage,
)

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"

_UNSUPPORTED_SCHEMA_KEYS = frozenset({"$schema", "additionalProperties"})


class GeminiProvider(Provider):
    """
    Provider for the Google Gemini REST API.

    Parameters
    ----------
    api_key:
        Gemini API key, sent as ``x-goog-api-key``.
    model:
        Default model, e.g. ``"gemini-2.0-flash"`` (a ``models/`` prefix is
        accepted).
    base_url:
        API root, including the version segment.
    timeout:
        HTTP request timeout in seconds.
    strict_tool_arguments, truncation:
        See ``OpenAICompatProvider``.
    """

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-2.0-flash",
        base_url: str = DEFAULT_BASE_URL,
        *,
        timeout: float = 120.0,
        strict_tool_arguments: bool = False,
        truncation: TruncationConfig | None = None,
        client=None,
    ) -> None:
        super().__init__(
            base_url,
            _bare_model(model),
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
        return "google-gemini"

    async def chat(
        self,
        request: ChatRequest,
        on_delta: DeltaCallback | None = None,
        cancel: asyncio.Event | None = None,
    ) -> ChatResponse:
        self._validate(request)
        model = _bare_model(request.model or self._model)
        body = self._build_body(request, model)

        if request.stream:
            return await self._stream_chat(
                f"models/{model}:streamGenerateContent",
                body,
                on_delta,
                cancel,
                params={"alt": "sse"},
                model=model,
            )

        path = f"models/{model}:generateContent"
        data = await self._request_json("POST", path, body, cancel=cancel)
        return self._parse_response(data, self._endpoint(path), model)

    async def list_models(self) -> list[ModelInfo]:
        """List models that support ``generateContent``, following pagination."""
        url = self._endpoint("models")
        models: list[ModelInfo] = []
        page_token: str | None = None
        while True:
            params = {"pageToken": page_token} if page_token else None
            data = await self._request_json("GET", "models", params=params)
            entries = data.get("models", [])
            if not isinstance(entries, list):
                raise MalformedResponseError.create_with_tip(
                    "Model listing response has no 'models' array", None, url
                )
            for entry in entries:
                if not isinstance(entry, dict) or not entry.get("name"):
                    raise MalformedResponseError.create_with_tip(
                        f"Model entry without a name: {entry!r}", None, url
                    )
                methods = entry.get("supportedGenerationMethods")
                if methods is not None and "generateContent" not in methods:
                    continue
                model_id = _bare_model(entry["name"])
                models.append(
                    ModelInfo(
                        id=model_id,
                        name=entry.get("displayName") or model_id,
                        description=entry.get("description"),
                        context_length=entry.get("inputTokenLimit"),
                    )
                )
            page_token = data.get("nextPageToken")
            if not page_token:
                return models

    # ------------------------------------------------------------------
    # Request building
    # ------------------------------------------------------------------

    def _headers(self) -> dict[str, str]:
        headers = super()._headers()
        if self._api_key:
            headers["x-goog-api-key"] = self._api_key
        return headers

    def _build_body(self, request: ChatRequest, model: str) -> dict:
        system_texts: list[str] = []
        if request.system_instruction:
            system_texts.append(request.system_instruction)

        call_names: dict[str, str] = {}
        contents: list[dict] = []
        for msg in request.messages:
            if msg.role is Role.SYSTEM:
                system_texts.append(content_to_text(msg.content))
                continue
            if msg.tool_calls:
                for tc in msg.tool_calls:
                    call_names[tc.id] = tc.name
            contents.append(self._convert_message(msg, call_names))

        body: dict = {"contents": contents}
        if system_texts:
            body["systemInstruction"] = {
                "parts": [{"text": text} for text in system_texts]
            }

        generation_config: dict = {}
        for key, value in (
            ("temperature", request.temperature),
            ("topP", request.top_p),
            ("maxOutputTokens", request.max_tokens),
        ):
            if value is not None:
                generation_config[key] = value
        if generation_config:
            body["generationConfig"] = generation_config

        if request.tools:
            body["tools"] = [{
                "functionDeclarations": [
                    {
                        "name": spec.name,
                        "description": spec.description,
                        "parameters": _clean_schema(spec.normalize_schema()),
                    }
                    for spec in request.tools
                ]
            }]

        logger.info(
            "REQUEST: provider=%s model=%s stream=%s tools=%d contents=%d",
            self.name,
            model,
            request.stream,
            len(request.tools or ()),
            len(contents),
        )
        return body

    def _convert_message(self, msg: Message, call_names: dict[str, str]) -> dict:
        if msg.role is Role.TOOL:
            name = call_names.get(msg.tool_call_id or "")
            if name is None:
                logger.warning(
                    "Tool result %s does not match any earlier tool call", msg.tool_call_id
                )
                name = "unknown"
            return {
                "role": "user",
                "parts": [{
                    "functionResponse": {
                        "name": name,
                        "response": {"content": self._tool_result_text(msg)},
                    }
                }],
            }

        if msg.role is Role.ASSISTANT:
            parts = [] if msg.tool_calls and msg.content == "" else to_gemini_parts(msg.content)
            for tc in msg.tool_calls or ():
                parts.append({"functionCall": {"name": tc.name, "args": tc.arguments}})
            return {"role": "model", "parts": parts}

        return {"role": "user", "parts": to_gemini_parts(msg.content)}

    # ------------------------------------------------------------------
    # Response decoding
    # ------------------------------------------------------------------

    def _new_stream_state(self) -> dict[str, Any]:
        return {"next_index": 0}

    def _decode_stream_payload(
        self, payload: str, state: dict[str, Any], url: str
    ) -> StreamDelta | None:
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

        text, calls, finish_reason, usage = _read_candidate(data, url)
        fragments: list[ToolCallFragment] = []
        for call in calls:
            fragments.append(
                ToolCallFragment(
                    index=state["next_index"],
                    id=call.get("id"),
                    name=call.get("name"),
                    arguments=json.dumps(call.get("args") or {}),
                )
            )
            state["next_index"] += 1

        if not text and not fragments and finish_reason is None and usage is None:
            return None
        return StreamDelta(
            text=text or None,
            tool_calls=fragments or None,
            finish_reason=finish_reason,
            usage=usage,
        )

    def _parse_response(self, data: dict, url: str, model: str) -> ChatResponse:
        text, calls, finish_reason, usage = _read_candidate(data, url)
        result = ChatResponse(
            text=text or None,
            usage=usage,
            finish_reason=finish_reason,
            model=data.get("modelVersion") or model,
        )
        if calls:
            tool_calls: list[ToolCall] = []
            for call in calls:
                args = call.get("args") or {}
                if not isinstance(args, dict):
                    raise MalformedResponseError.create_with_tip(
                        f"functionCall args are not an object: {args!r}", None, url
                    )
                tool_calls.append(
                    ToolCall(
                        id=call.get("id") or synthetic_call_id(),
                        name=call["name"],
                        arguments=args,
                    )
                )
            result.tool_calls = tool_calls
        return result


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _bare_model(model: str) -> str:
    return model[len("models/"):] if model.startswith("models/") else model


def _clean_schema(schema: Any) -> Any:
    if isinstance(schema, dict):
        return {
            k: _clean_schema(v)
            for k, v in schema.items()
            if k not in _UNSUPPORTED_SCHEMA_KEYS
        }
    if isinstance(schema, list):
        return [_clean_schema(v) for v in schema]
    return schema


def _read_candidate(
    data: dict, url: str
) -> tuple[str, list[dict], str | None, Usage | None]:
    """
    Pull text, function calls, finish reason and usage out of a
    ``GenerateContentResponse`` (a whole response or one streamed chunk).
    """
    err = data.get("error")
    if err:
        status = err.get("code") if isinstance(err, dict) else None
        message = err.get("message") if isinstance(err, dict) else str(err)
        raise HttpStatusError.create_with_tip(
            f"Server reported an error: {message}",
            status if isinstance(status, int) else None,
            url,
        )

    usage = None
    raw_usage = data.get("usageMetadata")
    if isinstance(raw_usage, dict):
        usage = Usage(
            prompt_tokens=raw_usage.get("promptTokenCount"),
            completion_tokens=raw_usage.get("candidatesTokenCount"),
            total_tokens=raw_usage.get("totalTokenCount"),
        )

    candidates = data.get("candidates")
    if not candidates:
        # A blocked prompt has no candidates; the block reason ends the turn.
        feedback = data.get("promptFeedback")
        block_reason = feedback.get("blockReason") if isinstance(feedback, dict) else None
        return "", [], block_reason, usage
    if not isinstance(candidates, list) or not isinstance(candidates[0], dict):
        raise MalformedResponseError.create_with_tip(
            "Response 'candidates' is not a list of objects", None, url
        )

    candidate = candidates[0]
    content = candidate.get("content") or {}
    if not isinstance(content, dict):
        raise MalformedResponseError.create_with_tip(
            f"Candidate content is not an object: {content!r}", None, url
        )
    parts = content.get("parts") or []
    if not isinstance(parts, list):
        raise MalformedResponseError.create_with_tip(
            f"Candidate parts is not a list: {parts!r}", None, url
        )
    texts: list[str] = []
    calls: list[dict] = []
    for part in parts:
        if not isinstance(part, dict):
            raise MalformedResponseError.create_with_tip(
                f"Content part is not an object: {part!r}", None, url
            )
        if part.get("thought"):
            continue
        if "text" in part:
            if not isinstance(part["text"], str):
                raise MalformedResponseError.create_with_tip(
                    f"Text part is not a string: {part!r}", None, url
                )
            texts.append(part["text"])
        elif "functionCall" in part:
            call = part["functionCall"]
            if not isinstance(call, dict) or not call.get("name"):
                raise MalformedResponseError.create_with_tip(
                    f"functionCall part without a name: {part!r}", None, url
                )
            calls.append(call)

    return "".join(texts), calls, candidate.get("finishReason"), usage
