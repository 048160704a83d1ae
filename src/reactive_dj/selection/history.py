"""Bounded most-recent-first record of played item ids."""

from __future__ import annotations

from collections import deque


class PlayHistory:
    """Recently played ids, newest first, capped at *capacity*.

    Used only to avoid repeats; it is not a play log.
    """

    def __init__(self, capacity: int = 10) -> None:
        self._ids: deque[str] = deque(maxlen=max(0, capacity))

    @property
    def capacity(self) -> int:
        return self._ids.maxlen or 0

    def record(self, item_id: str) -> None:
        """Prepend *item_id*, dropping the oldest entry on overflow."""
        if self.capacity == 0:
            return
        self._ids.appendleft(item_id)

    def recent(self, n: int) -> list[str]:
        """The *n* most recent ids, newest first."""
        return list(self._ids)[: max(0, n)]

    def snapshot(self) -> list[str]:
        return list(self._ids)

    def clear(self) -> None:
        self._ids.clear()

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)
