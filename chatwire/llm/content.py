"""
Translation of message content between the unified model and vendor shapes.

Images travel natively (a ``data:`` URI for OpenAI, ``inlineData`` for
Gemini).  Non-image inline data and file references are not supported by
every vendor/model combination, so they are sent as a short text description
of the artifact instead.  An empty part list is replaced by a placeholder
text part so a message is never sent without content.
"""

from __future__ import annotations

from typing import Any

from chatwire.llm.types import ContentPart, FileRefPart, InlineDataPart, TextPart

EMPTY_CONTENT_PLACEHOLDER = "[Empty content]"


def describe_inline_data(part: InlineDataPart) -> str:
    return f"[File: {part.mime_type or 'unknown type'}, {len(part.data or '')} bytes]"


def describe_file_ref(part: FileRefPart) -> str:
    return f"[File: {part.mime_type or 'unknown type'}, {part.uri}]"


def to_openai_content(content: str | list[ContentPart]) -> str | list[dict[str, Any]]:
    """Map unified content to the OpenAI ``content`` field."""
    if isinstance(content, str):
        return content

    wire: list[dict[str, Any]] = []
    for part in content:
        if isinstance(part, TextPart):
            wire.append({"type": "text", "text": part.text})
        elif isinstance(part, InlineDataPart):
            if part.is_image:
                wire.append({
                    "type": "image_url",
                    "image_url": {
                        "url": f"data:{part.mime_type};base64,{part.data}",
                        "detail": "auto",
                    },
                })
            else:
                wire.append({"type": "text", "text": describe_inline_data(part)})
        elif isinstance(part, FileRefPart):
            wire.append({"type": "text", "text": describe_file_ref(part)})
        else:
            raise TypeError(f"Unsupported content part: {type(part).__name__}")

    if not wire:
        return [{"type": "text", "text": EMPTY_CONTENT_PLACEHOLDER}]
    return wire


def to_gemini_parts(content: str | list[ContentPart]) -> list[dict[str, Any]]:
    """Map unified content to a list of Gemini ``parts``."""
    if isinstance(content, str):
        return [{"text": content}]

    parts: list[dict[str, Any]] = []
    for part in content:
        if isinstance(part, TextPart):
            parts.append({"text": part.text})
        elif isinstance(part, InlineDataPart):
            if part.is_image:
                parts.append({
                    "inlineData": {"mimeType": part.mime_type, "data": part.data}
                })
            else:
                parts.append({"text": describe_inline_data(part)})
        elif isinstance(part, FileRefPart):
            parts.append({"text": describe_file_ref(part)})
        else:
            raise TypeError(f"Unsupported content part: {type(part).__name__}")

    if not parts:
        return [{"text": EMPTY_CONTENT_PLACEHOLDER}]
    return parts


def from_gemini_parts(parts: list[dict[str, Any]]) -> list[ContentPart]:
    """
    Map native Gemini parts back to unified content parts.

    ``functionCall`` / ``functionResponse`` parts are not content and are
    skipped; callers read those separately.
    """
    out: list[ContentPart] = []
    for raw in parts:
        if "text" in raw:
            out.append(TextPart(raw["text"]))
        elif "inlineData" in raw:
            data = raw["inlineData"]
            out.append(InlineDataPart(data.get("mimeType", ""), data.get("data", "")))
        elif "fileData" in raw:
            data = raw["fileData"]
            out.append(FileRefPart(data.get("mimeType", ""), data.get("fileUri", "")))
    return out


def content_to_text(content: str | list[ContentPart]) -> str:
    """Flatten content into plain text (used for token estimates)."""
    if isinstance(content, str):
        return content
    chunks: list[str] = []
    for part in content:
        if isinstance(part, TextPart):
            chunks.append(part.text)
        elif isinstance(part, InlineDataPart):
            chunks.append(describe_inline_data(part))
        elif isinstance(part, FileRefPart):
            chunks.append(describe_file_ref(part))
    return "\n".join(chunks)
