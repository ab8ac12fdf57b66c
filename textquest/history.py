"""Bounded conversation history.

History is a list of chunks; each chunk is the list of message items added
by one exchange (the player's input item, or the output items of one
response). Chunks are the unit of eviction: when the total item count goes
over the bound, the oldest whole chunk is dropped until the store fits.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Iterator
from typing import Any

from textquest.config import MAX_HISTORY_ITEMS

logger = logging.getLogger(__name__)

HistoryItem = dict[str, Any]
HistoryChunk = list[HistoryItem]


class ConversationStore:
    def __init__(self, max_items: int = MAX_HISTORY_ITEMS) -> None:
        self._max_items = max_items
        self._chunks: list[HistoryChunk] = []

    @property
    def max_items(self) -> int:
        return self._max_items

    def __len__(self) -> int:
        return len(self._chunks)

    def __iter__(self) -> Iterator[HistoryChunk]:
        return iter(self._chunks)

    def item_count(self) -> int:
        return sum(len(chunk) for chunk in self._chunks)

    def append_chunk(self, items: list[HistoryItem]) -> None:
        """Append one chunk and trim. Empty chunks are ignored."""
        if not items:
            return
        self._chunks.append(list(items))
        self.trim()

    def append_user_message(self, content: str) -> None:
        self.append_chunk([{"role": "user", "content": content}])

    def trim(self) -> None:
        while self.item_count() > self._max_items:
            if not self._chunks:
                break
            dropped = self._chunks.pop(0)
            logger.debug(
                "history evicted chunk items=%d remaining=%d",
                len(dropped), self.item_count(),
            )

    def flatten(self) -> list[HistoryItem]:
        """All items, oldest chunk first."""
        return [item for chunk in self._chunks for item in chunk]

    def snapshot(self) -> list[HistoryChunk]:
        """Deep copy of the chunks for a background worker."""
        return copy.deepcopy(self._chunks)

    def clear(self) -> None:
        self._chunks.clear()
