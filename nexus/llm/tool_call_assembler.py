"""
Accumulates streamed tool-call fragments into finalized ``ToolCall`` objects.

Merge rules:
  - Fragments are keyed by ``index``; indices may interleave in any order.
  - ``id`` and ``name`` are first-write-wins (some providers repeat the id on
    every fragment).
  - ``arguments`` pieces are always appended in arrival order, never
    replaced; the JSON only becomes valid once every piece has arrived.
  - Finalizing keeps the order in which indices were first seen and drops
    entries still missing an id or a name.
"""

from __future__ import annotations

import logging
from dataclasses import replace

from nexus.llm.types import ToolCall, ToolCallFragment

logger = logging.getLogger(__name__)


class ToolCallAccumulator:
    """Buffers tool-call fragments per index."""

    def __init__(self) -> None:
        self._buf: dict[int, ToolCallFragment] = {}
        self._order: list[int] = []

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def ingest(self, fragment: ToolCallFragment) -> ToolCallFragment:
        """
        Merge *fragment* into the buffer and return a snapshot of the merged
        entry for that index.
        """
        entry = self._buf.get(fragment.index)
        if entry is None:
            entry = ToolCallFragment(index=fragment.index)
            self._buf[fragment.index] = entry
            self._order.append(fragment.index)

        if fragment.id and not entry.id:
            entry.id = fragment.id
        if fragment.name and not entry.name:
            entry.name = fragment.name
        if fragment.arguments:
            entry.arguments += fragment.arguments

        return replace(entry)

    def finalize(self, order: list[int] | None = None) -> list[ToolCall]:
        """
        Return complete tool calls in first-seen order.

        *order* overrides the tracked first-seen order.  Entries without an
        id or a name are skipped.
        """
        calls: list[ToolCall] = []
        for idx in self._order if order is None else order:
            entry = self._buf.get(idx)
            if entry is None:
                continue
            if not entry.id or not entry.name:
                logger.warning(
                    "Dropping incomplete tool call idx=%d id=%s name=%s",
                    idx, entry.id, entry.name,
                )
                continue
            calls.append(ToolCall(id=entry.id, name=entry.name, arguments=entry.arguments))
        return calls

    @property
    def order(self) -> list[int]:
        """Indices in the order they were first seen."""
        return list(self._order)

    @property
    def ids(self) -> list[str]:
        """Ids received so far, in numeric index order."""
        return [self._buf[i].id for i in sorted(self._buf) if self._buf[i].id]

    def __len__(self) -> int:
        return len(self._buf)

    def reset(self) -> None:
        """Discard all accumulated state."""
        self._buf.clear()
        self._order.clear()
