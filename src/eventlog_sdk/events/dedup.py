"""Bounded, insertion-ordered set of recently seen event ids."""

from collections import OrderedDict
from collections.abc import Hashable

DEFAULT_DEDUP_SIZE = 5000


class DedupCache:
    """
    Remembers the most recent ``capacity`` event ids.

    Once full, inserting a new id evicts the oldest one. Membership test and
    insert are O(1).
    """

    def __init__(self, capacity: int = DEFAULT_DEDUP_SIZE):
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self.capacity = capacity
        self._ids: OrderedDict[Hashable, None] = OrderedDict()

    def add(self, event_id: Hashable) -> bool:
        """
        Record an id.

        Returns:
            True if the id was new, False if it was already in the window
        """
        if event_id in self._ids:
            return False
        self._ids[event_id] = None
        if len(self._ids) > self.capacity:
            self._ids.popitem(last=False)
        return True

    def __contains__(self, event_id: object) -> bool:
        return event_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    def clear(self) -> None:
        self._ids.clear()


__all__ = ["DedupCache", "DEFAULT_DEDUP_SIZE"]
