"""LLM subsystem -- providers, registry, and streaming response assembly."""

from chatwire.llm.accumulator import StreamAccumulator
from chatwire.llm.json_repair import JsonParseError, repair_json, safe_parse_json
from chatwire.llm.registry import (
    ProviderRegistry,
    create_provider,
    default_registry,
    provider_help,
    validate_provider_config,
)
from chatwire.llm.token_counter import TokenCounter
from chatwire.llm.tool_call_assembler import ToolCallAssembler
from chatwire.llm.truncation import TruncationConfig, truncate_tool_result, truncate_tool_results
from chatwire.llm.types import (
    ChatRequest,
    ChatResponse,
    FileRefPart,
    InlineDataPart,
    Message,
    ModelInfo,
    Role,
    StreamDelta,
    TextPart,
    ToolCall,
    ToolCallFragment,
    ToolSpec,
    Usage,
)

__all__ = [
    "ChatRequest",
    "ChatResponse",
    "FileRefPart",
    "InlineDataPart",
    "JsonParseError",
    "Message",
    "ModelInfo",
    "ProviderRegistry",
    "Role",
    "StreamAccumulator",
    "StreamDelta",
    "TextPart",
    "TokenCounter",
    "ToolCall",
    "ToolCallAssembler",
    "ToolCallFragment",
    "ToolSpec",
    "TruncationConfig",
    "Usage",
    "create_provider",
    "default_registry",
    "provider_help",
    "repair_json",
    "safe_parse_json",
    "truncate_tool_result",
    "truncate_tool_results",
    "validate_provider_config",
]
