"""Shared Pydantic models used across the engine.

These are the payloads exchanged with the external collaborators: activity
samples from the vision pipeline, catalog items from the catalog loader and
playback telemetry from the playback executor.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_serializer, field_validator

# ── Musical key ───────────────────────────────────────────────

_PITCH_CLASSES = {"C": 0, "D": 2, "E": 4, "F": 5, "G": 7, "A": 9, "B": 11}
_SHARP_NAMES = ["C", "C#", "D", "D#", "E", "F", "F#", "G", "G#", "A", "A#", "B"]
_MINOR_SUFFIXES = {"m", "min", "minor", "Min", "Minor"}
_MAJOR_SUFFIXES = {"", "M", "maj", "major", "Maj", "Major"}

_KEY_PATTERN = re.compile(r"^\s*([A-Ga-g])([#b♯♭]?)\s*([A-Za-z]*)\s*$")


class KeyMode(str, Enum):
    MAJOR = "major"
    MINOR = "minor"


class MusicalKey(BaseModel):
    """Tonic pitch class (0 = C … 11 = B) plus mode.

    Enharmonic spellings collapse to the same pitch class, so ``"Db"`` and
    ``"C#"`` are the same key.
    """

    model_config = ConfigDict(frozen=True)

    tonic: int = Field(ge=0, le=11)
    mode: KeyMode = KeyMode.MAJOR

    @classmethod
    def parse(cls, text: str) -> MusicalKey:
        """Parse ``"Am"``, ``"C#"``, ``"Eb minor"``, ``"F major"`` and similar."""
        match = _KEY_PATTERN.match(text)
        if match is None:
            raise ValueError(f"Unrecognised musical key: {text!r}")
        letter, accidental, suffix = match.groups()
        tonic = _PITCH_CLASSES[letter.upper()]
        if accidental in ("#", "♯"):
            tonic += 1
        elif accidental in ("b", "♭"):
            tonic -= 1
        if suffix in _MINOR_SUFFIXES:
            mode = KeyMode.MINOR
        elif suffix in _MAJOR_SUFFIXES:
            mode = KeyMode.MAJOR
        else:
            raise ValueError(f"Unrecognised key mode {suffix!r} in {text!r}")
        return cls(tonic=tonic % 12, mode=mode)

    @property
    def name(self) -> str:
        return _SHARP_NAMES[self.tonic] + ("m" if self.mode is KeyMode.MINOR else "")

    def __str__(self) -> str:
        return self.name


# ── Session lifecycle ─────────────────────────────────────────


class LifecycleState(str, Enum):
    """``idle → starting → playing ↔ paused → stopping → idle``"""

    IDLE = "idle"
    STARTING = "starting"
    PLAYING = "playing"
    PAUSED = "paused"
    STOPPING = "stopping"


# ── Catalog ───────────────────────────────────────────────────


class CatalogItem(BaseModel):
    """A playable item from the catalog.  Immutable once loaded."""

    model_config = ConfigDict(frozen=True)

    id: str
    bpm: float = Field(gt=0)
    key: MusicalKey
    energy: float = Field(ge=0.0, le=1.0)
    duration: float = Field(gt=0, description="Length in seconds.")
    genre: str | None = None
    title: str = ""
    artist: str = ""

    @field_validator("key", mode="before")
    @classmethod
    def parse_key(cls, value: Any) -> Any:
        if isinstance(value, str):
            return MusicalKey.parse(value)
        return value

    @field_serializer("key")
    def serialise_key(self, key: MusicalKey) -> str:
        return key.name

    @property
    def label(self) -> str:
        """Short display label for logs."""
        if self.title and self.artist:
            return f"{self.title} by {self.artist}"
        return self.title or self.id


# ── Inbound events ────────────────────────────────────────────


class ActivitySample(BaseModel):
    """One scalar activity reading (percentage of the frame in motion).

    Out-of-range values are clamped into 0–100 rather than rejected; the
    vision pipeline occasionally overshoots.  ``timestamp`` is in seconds on
    the session clock; when omitted the orchestrator stamps arrival time.
    """

    model_config = ConfigDict(frozen=True)

    type: Literal["activity_sample"] = "activity_sample"
    value: float
    timestamp: float | None = None

    @field_validator("value", mode="after")
    @classmethod
    def clamp_percentage(cls, value: float) -> float:
        return max(0.0, min(100.0, value))


class ItemStarted(BaseModel):
    """The playback executor started playing an item."""

    type: Literal["item_started"] = "item_started"
    item_id: str


class ItemEnding(BaseModel):
    """The current item is about to end; time to queue the next one."""

    type: Literal["item_ending"] = "item_ending"
    item_id: str
    remaining_seconds: float = Field(ge=0)


class ItemEnded(BaseModel):
    type: Literal["item_ended"] = "item_ended"
    item_id: str


InboundEvent = Annotated[
    Union[ActivitySample, ItemStarted, ItemEnding, ItemEnded],
    Field(discriminator="type"),
]

_INBOUND_ADAPTER: TypeAdapter[Any] = TypeAdapter(InboundEvent)


def parse_inbound_event(payload: dict[str, Any] | str | bytes) -> ActivitySample | ItemStarted | ItemEnding | ItemEnded:
    """Validate a decoded (or raw JSON) transport payload into an inbound event.

    Raises :class:`pydantic.ValidationError` for unknown or malformed payloads.
    """
    if isinstance(payload, (str, bytes)):
        return _INBOUND_ADAPTER.validate_json(payload)
    return _INBOUND_ADAPTER.validate_python(payload)
