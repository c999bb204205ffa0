"""
Assembles streaming tool-call fragments into complete ToolCall objects.

Design goals:
  - Accumulate ``ToolCallFragment`` pieces in slots indexed directly by the
    vendor-supplied ``index``.  Slots are grown on demand, so iterating them
    yields calls in index order regardless of arrival order.
  - ``id`` and ``name`` are first-write-wins; argument text is appended in
    arrival order.
  - ``finish()`` runs exactly once, at stream end.  Each argument buffer goes
    through ``safe_parse_json``; a buffer that cannot be recovered becomes
    ``{}`` and a warning is logged (recorded in ``self.errors``), unless the
    assembler is *strict*, in which case ``MalformedResponseError`` is raised.
"""

from __future__ import annotations

import logging
import random
import string
import time
from dataclasses import dataclass
from typing import Any

from chatwire.errors import MalformedResponseError
from chatwire.llm.json_repair import JsonParseError, make_preview, safe_parse_json
from chatwire.llm.types import ToolCall, ToolCallFragment

logger = logging.getLogger(__name__)

_ID_ALPHABET = string.ascii_lowercase + string.digits


def synthetic_call_id() -> str:
    """Locally generated tool-call id: millisecond timestamp plus random suffix."""
    suffix = "".join(random.choices(_ID_ALPHABET, k=9))
    return f"call_{int(time.time() * 1000)}_{suffix}"


@dataclass
class _Slot:
    id: str | None = None
    name: str | None = None
    args: str = ""


class ToolCallAssembler:
    """Buffers tool-call fragments for one streaming call."""

    def __init__(self, *, strict: bool = False) -> None:
        self._slots: list[_Slot | None] = []
        self._strict = strict
        self._finished = False
        self.errors: list[str] = []

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def feed(self, fragment: ToolCallFragment) -> None:
        """Merge a single fragment into the slot at ``fragment.index``."""
        if self._finished:
            raise RuntimeError("ToolCallAssembler already finished")
        if fragment.index < 0:
            raise MalformedResponseError(
                f"Tool call fragment has negative index {fragment.index}"
            )

        slot = self._slot(fragment.index)
        if fragment.id and slot.id is None:
            slot.id = fragment.id
        if fragment.name and slot.name is None:
            slot.name = fragment.name
        if fragment.arguments:
            slot.args += fragment.arguments

    def __len__(self) -> int:
        return sum(1 for s in self._slots if s is not None)

    def finish(self) -> list[ToolCall]:
        """
        Convert every slot into a ``ToolCall``, ordered by ascending index.

        May only be called once.
        """
        if self._finished:
            raise RuntimeError("ToolCallAssembler already finished")
        self._finished = True

        calls: list[ToolCall] = []
        for idx, slot in enumerate(self._slots):
            if slot is None:
                continue
            calls.append(
                ToolCall(
                    id=slot.id or synthetic_call_id(),
                    name=slot.name or "unknown",
                    arguments=self._parse_args(idx, slot),
                )
            )
        return calls

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _slot(self, idx: int) -> _Slot:
        if idx >= len(self._slots):
            self._slots.extend([None] * (idx + 1 - len(self._slots)))
        slot = self._slots[idx]
        if slot is None:
            slot = self._slots[idx] = _Slot()
        return slot

    def _parse_args(self, idx: int, slot: _Slot) -> dict[str, Any]:
        raw = slot.args.strip() or "{}"
        try:
            parsed = safe_parse_json(raw)
        except JsonParseError as exc:
            return self._degrade(idx, slot, exc.message)

        if not isinstance(parsed, dict):
            return self._degrade(
                idx, slot, f"expected a JSON object, got {type(parsed).__name__}"
            )
        return parsed

    def _degrade(self, idx: int, slot: _Slot, reason: str) -> dict[str, Any]:
        if self._strict:
            raise MalformedResponseError(
                f"Invalid arguments for tool call {slot.name or idx!r}: {reason}"
            )
        self.errors.append(f"tool_call_json_parse_failed idx={idx} err={reason}")
        logger.warning(
            "Failed to parse tool call arguments after repair attempts: "
            "idx=%d name=%s source=%r error=%s",
            idx,
            slot.name,
            make_preview(slot.args),
            reason,
        )
        return {}
