"""
Cheap token estimates.

Roughly four characters per token for English text.  This is an estimate
only; it does not reproduce any vendor's tokenizer, and callers should leave
headroom when sizing requests against a context window.
"""

from __future__ import annotations

import json
import math

from chatwire.llm.content import content_to_text
from chatwire.llm.types import Message, ToolSpec

CHARS_PER_TOKEN = 4


def estimate_tokens(text: str) -> int:
    """Estimated token count for *text*: ``ceil(len / 4)``."""
    if not text:
        return 0
    return math.ceil(len(text) / CHARS_PER_TOKEN)


class TokenCounter:
    """Estimate token counts for text and message lists."""

    def count_text(self, text: str) -> int:
        return estimate_tokens(text)

    def count_messages(
        self,
        messages: list[Message],
        tools: list[ToolSpec] | None = None,
    ) -> int:
        """
        Estimate the total token count for a conversation.

        Each message's content is estimated on its own and the results
        summed, together with any tool calls the assistant made.  If *tools*
        are given their JSON schema is counted too, since the model sees
        them in the prompt.
        """
        total = 0
        for msg in messages:
            total += self.count_text(content_to_text(msg.content))

            if msg.tool_calls:
                for tc in msg.tool_calls:
                    total += self.count_text(tc.name)
                    total += self.count_text(json.dumps(tc.arguments))

        if tools:
            total += self.count_text(
                json.dumps([
                    {"name": t.name, "description": t.description, "parameters": t.parameters}
                    for t in tools
                ])
            )

        return total
