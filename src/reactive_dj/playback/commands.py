"""Commands the engine sends to the playback collaborator.

Every command carries a literal ``type`` so any transport can encode it with
``model_dump(mode="json")`` and the receiving side can dispatch on it.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from reactive_dj.models import CatalogItem, LifecycleState
from reactive_dj.mood.models import MoodSourceKind, MoodState


class QueuePosition(str, Enum):
    IMMEDIATE = "immediate"  # start now (opening item)
    NEXT = "next"  # queue behind the current item


class _Command(BaseModel):
    model_config = ConfigDict(frozen=True)


class PlayItemCommand(_Command):
    type: Literal["play_item"] = "play_item"
    item: CatalogItem
    reason: str
    queue_position: QueuePosition = QueuePosition.NEXT


class EarlyTransitionCommand(_Command):
    """Cut the current item short and crossfade into *item* now."""

    type: Literal["early_transition"] = "early_transition"
    item: CatalogItem
    reason: str
    score: float


class MoodBroadcast(_Command):
    type: Literal["mood_update"] = "mood_update"
    mood: MoodState
    source: MoodSourceKind


class PauseCommand(_Command):
    type: Literal["pause"] = "pause"


class ResumeCommand(_Command):
    type: Literal["resume"] = "resume"


class StopCommand(_Command):
    type: Literal["stop"] = "stop"


class SessionStatus(_Command):
    """Point-in-time view of the session, for status requests."""

    type: Literal["status"] = "status"
    lifecycle_state: LifecycleState
    current_item: CatalogItem | None = None
    next_item: CatalogItem | None = None
    current_mood: MoodState
    uptime_seconds: float = 0.0
    mood_source: MoodSourceKind


PlaybackCommand = Annotated[
    Union[
        PlayItemCommand,
        EarlyTransitionCommand,
        MoodBroadcast,
        PauseCommand,
        ResumeCommand,
        StopCommand,
        SessionStatus,
    ],
    Field(discriminator="type"),
]
