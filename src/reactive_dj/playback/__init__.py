"""Playback sub-package — commands for the playback collaborator and their delivery."""

from reactive_dj.playback.commands import (
    EarlyTransitionCommand,
    MoodBroadcast,
    PauseCommand,
    PlaybackCommand,
    PlayItemCommand,
    QueuePosition,
    ResumeCommand,
    SessionStatus,
    StopCommand,
)
from reactive_dj.playback.handlers import (
    PlaybackDispatcher,
    PlaybackHandler,
    create_dispatcher,
)

__all__ = [
    "EarlyTransitionCommand",
    "MoodBroadcast",
    "PauseCommand",
    "PlayItemCommand",
    "PlaybackCommand",
    "PlaybackDispatcher",
    "PlaybackHandler",
    "QueuePosition",
    "ResumeCommand",
    "SessionStatus",
    "StopCommand",
    "create_dispatcher",
]
