"""Playback handlers — deliver engine commands to the playback collaborator.

Architecture
~~~~~~~~~~~~
* **PlaybackHandler** — abstract base for delivery channels.
* **LogHandler / QueueHandler / CallbackHandler** — concrete channels.
* **PlaybackDispatcher** — fan-out with error-isolation and results.
* **create_dispatcher()** — factory that wires handlers from settings.

Handlers are synchronous and must not block: the dispatcher is called from
timer callbacks and sample ingestion.  Transports that need I/O read from
the :class:`QueueHandler` outbox on their own task.

Adding a new channel
~~~~~~~~~~~~~~~~~~~~
1. Subclass ``PlaybackHandler``.
2. Implement ``send(command) -> bool``.
3. Optionally set ``name`` for debug output.
4. Register via ``dispatcher.add_handler(...)`` or add to the factory.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable

import structlog

from reactive_dj.playback.commands import MoodBroadcast

if TYPE_CHECKING:
    from reactive_dj.config import Settings
    from reactive_dj.playback.commands import PlaybackCommand

logger = structlog.get_logger(__name__)


# ── Dispatch result ───────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class DispatchResult:
    """Outcome summary for a single ``dispatch()`` call."""

    command_type: str
    sent: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    @property
    def all_ok(self) -> bool:
        return len(self.failed) == 0


# ── Abstract handler ──────────────────────────────────────────


class PlaybackHandler(ABC):
    """Contract for command delivery channels.

    Subclasses must implement :meth:`send`. They may optionally override
    :attr:`name` for logging/debug purposes and :meth:`should_handle` to
    filter commands (e.g. skip mood broadcasts).
    """

    name: str = "base"

    @abstractmethod
    def send(self, command: PlaybackCommand) -> bool:
        """Deliver a command.  Return ``True`` on success."""

    def should_handle(self, command: PlaybackCommand) -> bool:  # noqa: ARG002
        """Return ``False`` to skip this command (default: handle all)."""
        return True


# ── Concrete handlers ────────────────────────────────────────


class LogHandler(PlaybackHandler):
    """Write commands to the structured log (always enabled).

    Mood broadcasts arrive several times a second and are skipped unless
    *include_mood* is set.
    """

    name = "log"

    def __init__(self, *, include_mood: bool = False) -> None:
        self._include_mood = include_mood

    def should_handle(self, command: PlaybackCommand) -> bool:
        return self._include_mood or not isinstance(command, MoodBroadcast)

    def send(self, command: PlaybackCommand) -> bool:
        item = getattr(command, "item", None)
        logger.info(
            "playback.log",
            command=command.type,
            item_id=item.id if item is not None else None,
            reason=getattr(command, "reason", None),
        )
        return True


class QueueHandler(PlaybackHandler):
    """Put commands into an :class:`asyncio.Queue` outbox without waiting.

    The transport collaborator drains the queue on its own task.  A full
    queue is reported as a failed delivery, never awaited.
    """

    name = "queue"

    def __init__(self, outbox: asyncio.Queue[PlaybackCommand]) -> None:
        self._outbox = outbox

    @property
    def outbox(self) -> asyncio.Queue[PlaybackCommand]:
        return self._outbox

    def send(self, command: PlaybackCommand) -> bool:
        try:
            self._outbox.put_nowait(command)
        except asyncio.QueueFull:
            logger.warning("playback.outbox_full", command=command.type, size=self._outbox.qsize())
            return False
        return True


class CallbackHandler(PlaybackHandler):
    """Hand commands to a plain callable (tests, in-process players)."""

    def __init__(self, callback: Callable[[PlaybackCommand], object], *, name: str = "callback") -> None:
        self._callback = callback
        self.name = name

    def send(self, command: PlaybackCommand) -> bool:
        result = self._callback(command)
        return result is not False


# ── Dispatcher ────────────────────────────────────────────────


class PlaybackDispatcher:
    """Fan-out commands to registered handlers with error isolation.

    Each handler is invoked independently — a failure in one channel
    never blocks delivery to the others.
    """

    def __init__(self, *, handlers: list[PlaybackHandler] | None = None) -> None:
        self._handlers: list[PlaybackHandler] = handlers or [LogHandler()]

    # ── Handler management ────────────────────────────────────

    def add_handler(self, handler: PlaybackHandler) -> None:
        self._handlers.append(handler)

    def remove_handler(self, name: str) -> bool:
        """Remove the first handler matching *name*. Return ``True`` if found."""
        for i, h in enumerate(self._handlers):
            if h.name == name:
                self._handlers.pop(i)
                return True
        return False

    @property
    def handler_names(self) -> list[str]:
        """List registered handler names (useful for debugging / tests)."""
        return [h.name for h in self._handlers]

    # ── Dispatch ──────────────────────────────────────────────

    def dispatch(self, command: PlaybackCommand) -> DispatchResult:
        """Send *command* to every handler, collecting per-handler outcomes.

        A handler that raises is caught, logged, and marked as failed so
        remaining handlers still execute.
        """
        sent: list[str] = []
        failed: list[str] = []

        for handler in self._handlers:
            if not handler.should_handle(command):
                continue
            try:
                ok = handler.send(command)
                (sent if ok else failed).append(handler.name)
            except Exception:
                logger.exception(
                    "playback.handler_error",
                    handler=handler.name,
                    command=command.type,
                )
                failed.append(handler.name)

        result = DispatchResult(command_type=command.type, sent=sent, failed=failed)
        if result.failed:
            logger.warning(
                "playback.partial_failure",
                command=command.type,
                failed=result.failed,
            )
        return result

    def dispatch_many(self, commands: list[PlaybackCommand]) -> list[DispatchResult]:
        """Dispatch a batch of commands, returning per-command results."""
        return [self.dispatch(c) for c in commands]


# ── Factory ───────────────────────────────────────────────────


def create_dispatcher(
    settings: Settings,
    outbox: asyncio.Queue[PlaybackCommand] | None = None,
) -> PlaybackDispatcher:
    """Build a :class:`PlaybackDispatcher` wired from application settings.

    * **LogHandler** is always registered; it logs mood broadcasts only when
      ``settings.log_mood_broadcasts`` is set.
    * **QueueHandler** is added when an *outbox* queue is supplied.
    """
    dispatcher = PlaybackDispatcher(handlers=[LogHandler(include_mood=settings.log_mood_broadcasts)])

    if outbox is not None:
        dispatcher.add_handler(QueueHandler(outbox))

    return dispatcher
