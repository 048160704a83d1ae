"""Pydantic models for the mood estimation subsystem.

These models represent:
- Discrete mood levels and their canonical energy ranges
- Energy trend labels
- The frozen :class:`MoodState` snapshot owned by the stabilizer
- Which source (sensed or simulated) is currently feeding the stabilizer
"""

from __future__ import annotations

from enum import Enum
from typing import NamedTuple

from pydantic import BaseModel, ConfigDict, Field


# ── Enums ─────────────────────────────────────────────────────


class MoodLevel(str, Enum):
    """Discrete dance-floor energy level."""

    CHILL = "chill"  # low energy, ambient, warm-up
    WARMING_UP = "warming_up"  # building energy
    ENERGETIC = "energetic"  # main-floor energy
    PEAK = "peak"  # maximum energy
    COOLING_DOWN = "cooling_down"  # very high but falling


class Trend(str, Enum):
    RISING = "rising"
    FALLING = "falling"
    STABLE = "stable"


class MoodSourceKind(str, Enum):
    """Which producer currently owns mood updates."""

    SENSED = "sensed"  # activity samples from the vision collaborator
    SIMULATED = "simulated"  # fallback party-arc simulator


# ── Energy ranges ─────────────────────────────────────────────


class EnergyRange(NamedTuple):
    low: float
    high: float

    def contains(self, energy: float) -> bool:
        return self.low <= energy <= self.high


MOOD_ENERGY_RANGES: dict[MoodLevel, EnergyRange] = {
    MoodLevel.CHILL: EnergyRange(0.0, 0.25),
    MoodLevel.WARMING_UP: EnergyRange(0.2, 0.45),
    MoodLevel.ENERGETIC: EnergyRange(0.4, 0.7),
    MoodLevel.PEAK: EnergyRange(0.65, 1.0),
    MoodLevel.COOLING_DOWN: EnergyRange(0.25, 0.5),
}


# ── Mood state ────────────────────────────────────────────────


class MoodState(BaseModel):
    """Snapshot of the current mood estimate.

    ``level`` is always the hysteresis-stable classification of
    ``energy``; it is never re-derived from ``energy`` by consumers.
    Instances are frozen and replaced wholesale on every accepted update.
    """

    model_config = ConfigDict(frozen=True)

    level: MoodLevel = MoodLevel.WARMING_UP
    energy: float = Field(0.35, ge=0.0, le=1.0)
    trend: Trend = Trend.STABLE
    confidence: float = Field(1.0, ge=0.0, le=1.0)
    timestamp: float = Field(0.0, description="Seconds on the session clock.")


def neutral_mood(timestamp: float = 0.0) -> MoodState:
    """Mood used at engine start before any sample has been seen."""
    return MoodState(timestamp=timestamp)
