"""
Bounding tool output before it goes back into a request.

A tool result is limited by two independent budgets: a character limit and
an estimated-token limit (``ceil(len / 4)``).  Whichever allows fewer
characters wins.  Truncated results keep their prefix and gain an annotation
saying how much was cut.  Results within both limits are returned unchanged.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

from chatwire.llm.token_counter import CHARS_PER_TOKEN, estimate_tokens

DEFAULT_CHAR_LIMIT = 4000
DEFAULT_TOKEN_LIMIT = 1000


@dataclass(frozen=True)
class TruncationConfig:
    char_limit: int = DEFAULT_CHAR_LIMIT
    token_limit: int = DEFAULT_TOKEN_LIMIT

    def __post_init__(self) -> None:
        if self.char_limit < 0 or self.token_limit < 0:
            raise ValueError("truncation limits must be non-negative")

    @property
    def max_chars(self) -> int:
        return min(self.char_limit, self.token_limit * CHARS_PER_TOKEN)


def truncation_annotation(removed_chars: int) -> str:
    removed_tokens = math.ceil(removed_chars / CHARS_PER_TOKEN)
    return f"\n\n[...truncated {removed_chars} characters (~{removed_tokens} tokens)]"


def truncate_tool_result(result: str, config: TruncationConfig | None = None) -> str:
    """Return *result* bounded by *config*, annotated if anything was cut."""
    if not result:
        return result
    config = config or TruncationConfig()

    if len(result) <= config.char_limit and estimate_tokens(result) <= config.token_limit:
        return result

    max_chars = config.max_chars
    if len(result) <= max_chars:
        return result

    removed = len(result) - max_chars
    return result[:max_chars] + truncation_annotation(removed)


def truncate_tool_results(
    results: list[tuple[str, str]],
    config: TruncationConfig | None = None,
) -> list[tuple[str, str]]:
    """Apply ``truncate_tool_result`` to each ``(tool_name, result)`` pair."""
    return [(name, truncate_tool_result(result, config)) for name, result in results]
