"""Bounded least-recently-used set of URLs that were already reported."""

from __future__ import annotations

from collections import OrderedDict


class SeenUrlCache:
    """LRU membership set; the only gate between a match and a report."""

    def __init__(self, capacity: int = 1000) -> None:
        if capacity < 1:
            raise ValueError("capacity must be a positive integer")
        self.capacity = capacity
        self._entries: "OrderedDict[str, None]" = OrderedDict()

    def has(self, key: str) -> bool:
        """Membership test that promotes ``key`` to most recently used."""

        if key not in self._entries:
            return False
        self._entries.move_to_end(key)
        return True

    def add(self, key: str) -> None:
        if key in self._entries:
            self._entries.move_to_end(key)
            return
        if len(self._entries) >= self.capacity:
            self._entries.popitem(last=False)
        self._entries[key] = None

    def check_and_add(self, key: str) -> bool:
        """Inserts ``key`` and returns ``True`` when it was not present."""

        if self.has(key):
            return False
        self.add(key)
        return True

    def clear(self) -> None:
        self._entries.clear()

    @property
    def size(self) -> int:
        return len(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self):
        return iter(self._entries)
