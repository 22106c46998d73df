"""Bounded least-recently-used cache for extracted document text.

Owned by whoever needs it (usually a ``DocumentIngestor``) rather than kept
at module level, so two ingestors never share or evict each other's entries.
"""

from __future__ import annotations

from collections import OrderedDict
from collections.abc import Hashable
from typing import Any, Optional


class ExtractionCache:
    """LRU mapping with a fixed capacity; the oldest entry is evicted first."""

    def __init__(self, capacity: int = 100) -> None:
        if capacity <= 0:
            raise ValueError("Cache capacity must be greater than 0")
        self.capacity = capacity
        self._entries: "OrderedDict[Hashable, Any]" = OrderedDict()

    def get(self, key: Hashable) -> Optional[Any]:
        """Return the cached value and mark it most recently used, else None."""
        if key not in self._entries:
            return None
        self._entries.move_to_end(key)
        return self._entries[key]

    def put(self, key: Hashable, value: Any) -> None:
        """Store a value, evicting the least recently used entry when full."""
        if key in self._entries:
            self._entries.move_to_end(key)
        self._entries[key] = value
        while len(self._entries) > self.capacity:
            self._entries.popitem(last=False)

    def invalidate(self, key: Hashable) -> None:
        """Remove a specific cache entry."""
        self._entries.pop(key, None)

    def clear(self) -> None:
        """Clear all cached entries."""
        self._entries.clear()

    def __contains__(self, key: Hashable) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)
