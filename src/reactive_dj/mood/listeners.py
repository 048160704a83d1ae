"""Mood-change subscriptions with per-listener fault isolation.

Listeners are plain callables invoked synchronously with the new
:class:`MoodState`.  Each registration gets a :class:`ListenerHandle`; a
listener can be removed either by handle or by the callable itself.  A
listener that raises is logged and reported in the :class:`BroadcastResult`
but never stops delivery to the remaining listeners.
"""

from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from typing import Callable

import structlog

from reactive_dj.mood.models import MoodState

logger = structlog.get_logger(__name__)

MoodListener = Callable[[MoodState], None]

_handle_ids = itertools.count(1)


@dataclass(frozen=True, slots=True)
class ListenerHandle:
    """Opaque subscription token returned by :meth:`MoodListenerRegistry.subscribe`."""

    id: int
    name: str


@dataclass(frozen=True, slots=True)
class BroadcastResult:
    """Outcome of a single broadcast."""

    delivered: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    @property
    def all_ok(self) -> bool:
        return not self.failed


def _listener_name(listener: MoodListener) -> str:
    return getattr(listener, "__qualname__", None) or repr(listener)


class MoodListenerRegistry:
    """Ordered mapping of handle → listener."""

    def __init__(self) -> None:
        self._listeners: dict[ListenerHandle, MoodListener] = {}

    def subscribe(self, listener: MoodListener) -> ListenerHandle:
        handle = ListenerHandle(id=next(_handle_ids), name=_listener_name(listener))
        self._listeners[handle] = listener
        return handle

    def unsubscribe(self, target: ListenerHandle | MoodListener) -> bool:
        """Remove a listener by handle or by callable.  Return ``True`` if found."""
        if isinstance(target, ListenerHandle):
            return self._listeners.pop(target, None) is not None
        for handle, listener in list(self._listeners.items()):
            if listener == target:
                del self._listeners[handle]
                return True
        return False

    def clear(self) -> None:
        self._listeners.clear()

    def __len__(self) -> int:
        return len(self._listeners)

    def broadcast(self, mood: MoodState) -> BroadcastResult:
        """Deliver *mood* to every listener in registration order."""
        delivered: list[str] = []
        failed: list[str] = []
        # Snapshot so listeners may (un)subscribe while being notified
        for handle, listener in list(self._listeners.items()):
            try:
                listener(mood)
                delivered.append(handle.name)
            except Exception:
                logger.exception("mood_listeners.listener_error", listener=handle.name)
                failed.append(handle.name)

        result = BroadcastResult(delivered=delivered, failed=failed)
        if result.failed:
            logger.warning("mood_listeners.partial_failure", failed=result.failed)
        return result
