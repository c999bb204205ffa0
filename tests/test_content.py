"""Tests for chatwire.llm.content."""

from __future__ import annotations

import pytest

from chatwire.llm.content import (
    EMPTY_CONTENT_PLACEHOLDER,
    content_to_text,
    from_gemini_parts,
    to_gemini_parts,
    to_openai_content,
)
from chatwire.llm.types import FileRefPart, InlineDataPart, TextPart

PNG = InlineDataPart("image/png", "iVBORw0KGgo=")
PDF = InlineDataPart("application/pdf", "JVBERi0xLjQ=")
REF = FileRefPart("video/mp4", "gs://bucket/clip.mp4")


class TestOpenAIContent:
    def test_plain_string_passes_through(self):
        assert to_openai_content("hello") == "hello"

    def test_text_and_image(self):
        wire = to_openai_content([TextPart("look"), PNG])
        assert wire == [
            {"type": "text", "text": "look"},
            {
                "type": "image_url",
                "image_url": {"url": "data:image/png;base64,iVBORw0KGgo=", "detail": "auto"},
            },
        ]

    def test_non_image_inline_data_degrades_to_text(self):
        wire = to_openai_content([PDF])
        assert wire == [{"type": "text", "text": "[File: application/pdf, 12 bytes]"}]

    def test_file_reference_degrades_to_text(self):
        wire = to_openai_content([REF])
        assert wire == [{"type": "text", "text": "[File: video/mp4, gs://bucket/clip.mp4]"}]

    def test_empty_parts_get_placeholder(self):
        assert to_openai_content([]) == [{"type": "text", "text": EMPTY_CONTENT_PLACEHOLDER}]

    def test_unknown_part_rejected(self):
        with pytest.raises(TypeError):
            to_openai_content([object()])


class TestGeminiParts:
    def test_plain_string(self):
        assert to_gemini_parts("hi") == [{"text": "hi"}]

    def test_image_stays_native(self):
        assert to_gemini_parts([PNG]) == [
            {"inlineData": {"mimeType": "image/png", "data": "iVBORw0KGgo="}}
        ]

    def test_non_image_degrades(self):
        assert to_gemini_parts([PDF, REF]) == [
            {"text": "[File: application/pdf, 12 bytes]"},
            {"text": "[File: video/mp4, gs://bucket/clip.mp4]"},
        ]

    def test_empty_parts_get_placeholder(self):
        assert to_gemini_parts([]) == [{"text": EMPTY_CONTENT_PLACEHOLDER}]

    def test_from_native_parts(self):
        parts = from_gemini_parts([
            {"text": "caption"},
            {"inlineData": {"mimeType": "image/png", "data": "abc"}},
            {"fileData": {"mimeType": "video/mp4", "fileUri": "gs://x"}},
            {"functionCall": {"name": "ignored", "args": {}}},
        ])
        assert parts == [
            TextPart("caption"),
            InlineDataPart("image/png", "abc"),
            FileRefPart("video/mp4", "gs://x"),
        ]


class TestContentToText:
    def test_string(self):
        assert content_to_text("abc") == "abc"

    def test_parts_joined_by_newline(self):
        assert content_to_text([TextPart("a"), PDF]) == "a\n[File: application/pdf, 12 bytes]"
