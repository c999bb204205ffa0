"""Core types for the LLM subsystem."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"
    TOOL = "tool"


# ---------------------------------------------------------------------------
# Content parts
# ---------------------------------------------------------------------------

@dataclass
class TextPart:
    text: str


@dataclass
class InlineDataPart:
    """Inline binary content.  *data* is the base64-encoded payload."""

    mime_type: str
    data: str

    @property
    def is_image(self) -> bool:
        return self.mime_type.startswith("image/")


@dataclass
class FileRefPart:
    """A reference to a file the vendor can fetch (e.g. a ``gs://`` URI)."""

    mime_type: str
    uri: str


ContentPart = Union[TextPart, InlineDataPart, FileRefPart]


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------

@dataclass
class ToolCall:
    """A resolved tool call with parsed arguments."""

    id: str
    name: str
    arguments: dict[str, Any]


@dataclass
class Message:
    """A single message in a conversation."""

    role: Role
    content: str | list[ContentPart]
    tool_calls: list[ToolCall] | None = None
    tool_call_id: str | None = None

    def __post_init__(self) -> None:
        self.role = Role(self.role)

    def validate(self) -> None:
        """Raise ``ValueError`` if the message breaks a role invariant."""
        if self.role is Role.TOOL and not self.tool_call_id:
            raise ValueError("tool message requires tool_call_id")
        if self.tool_calls:
            if self.role is not Role.ASSISTANT:
                raise ValueError(
                    f"tool_calls are only valid on assistant messages, got {self.role.value}"
                )
            for tc in self.tool_calls:
                if not tc.name:
                    raise ValueError(f"tool call {tc.id!r} has an empty name")


@dataclass
class ToolSpec:
    """A tool declaration offered to the model."""

    name: str
    description: str = ""
    parameters: dict[str, Any] = field(default_factory=dict)

    def normalize_schema(self) -> dict[str, Any]:
        s = dict(self.parameters or {})
        s.setdefault("type", "object")
        s.setdefault("properties", {})
        return s


# ---------------------------------------------------------------------------
# Requests and responses
# ---------------------------------------------------------------------------

@dataclass
class ChatRequest:
    """
    A vendor-neutral chat request.

    *model* falls back to the provider's configured default when ``None``.
    Sampling parameters left as ``None`` are omitted from the wire body.
    """

    messages: list[Message]
    model: str | None = None
    tools: list[ToolSpec] | None = None
    system_instruction: str | None = None
    temperature: float | None = None
    top_p: float | None = None
    max_tokens: int | None = None
    stream: bool = False


@dataclass
class Usage:
    prompt_tokens: int | None = None
    completion_tokens: int | None = None
    total_tokens: int | None = None


@dataclass
class ChatResponse:
    """
    The complete assistant turn.

    A response with neither *text* nor *tool_calls* is legitimate when the
    vendor finished with empty content; *finish_reason* then says why.
    """

    text: str | None = None
    tool_calls: list[ToolCall] | None = None
    usage: Usage | None = None
    finish_reason: str | None = None
    model: str | None = None


@dataclass
class ModelInfo:
    id: str
    name: str
    description: str | None = None
    context_length: int | None = None


# ---------------------------------------------------------------------------
# Streaming
# ---------------------------------------------------------------------------

@dataclass
class ToolCallFragment:
    """
    An incremental piece of a streaming tool call.

    *index* is the vendor's authoritative position of the call within the
    turn.  *id* and *name* usually arrive once, on the first fragment;
    *arguments* carries the next slice of the raw JSON argument string.
    """

    index: int
    id: str | None = None
    name: str | None = None
    arguments: str = ""


@dataclass
class StreamDelta:
    """
    One decoded streaming event.

    *done* is set for the out-of-band end-of-stream sentinel; a non-null
    *finish_reason* also terminates the stream.
    """

    text: str | None = None
    tool_calls: list[ToolCallFragment] | None = None
    finish_reason: str | None = None
    usage: Usage | None = None
    done: bool = False

    @property
    def is_terminal(self) -> bool:
        return self.done or self.finish_reason is not None
