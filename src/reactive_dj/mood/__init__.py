"""Mood estimation — from a noisy activity signal to a stable mood state.

This package turns the scalar activity percentage delivered by the vision
collaborator into a categorical, hysteresis-stable :class:`MoodState`.

Architecture
------------
1. **Smoothing** (`smoothing.py`)
   - Time-windowed sample buffer (default 5 s)
   - Linear recency weighting
   - Concave energy curve (``x ** 0.8``)
   - Confidence from sample density and spread

2. **Stabilization** (`stabilizer.py`)
   - Minimum-change gate
   - Short-buffer trend detection
   - Boundary margin + dwell time before a level change
   - Staleness watchdog

3. **Fallback simulation** (`simulator.py`)
   - Scripted party arc or bounded random walk for sensorless sessions

4. **Sources** (`sources.py`)
   - Sensed / simulated producers; exactly one feeds the stabilizer

5. **Listeners** (`listeners.py`)
   - Fault-isolated mood-change subscriptions

Confidence & limitations
------------------------
- The estimate reflects *movement*, not emotion.  A packed but static
  crowd reads as ``chill``.
- Simulated moods are plausible, not observed; ``MoodBroadcast.source``
  tells consumers which one they are looking at.
"""

from reactive_dj.mood.listeners import BroadcastResult, ListenerHandle, MoodListenerRegistry
from reactive_dj.mood.models import (
    MOOD_ENERGY_RANGES,
    EnergyRange,
    MoodLevel,
    MoodSourceKind,
    MoodState,
    Trend,
    neutral_mood,
)
from reactive_dj.mood.simulator import FallbackMoodSimulator, SimulatorOptions
from reactive_dj.mood.smoothing import ActivitySmoother, ConfidenceEstimator, SmootherOptions
from reactive_dj.mood.sources import MoodSource, SensedMoodSource, SimulatedMoodSource
from reactive_dj.mood.stabilizer import MoodStabilizer, StabilizerOptions, StalenessWatchdog

__all__ = [
    "MOOD_ENERGY_RANGES",
    "ActivitySmoother",
    "BroadcastResult",
    "ConfidenceEstimator",
    "EnergyRange",
    "FallbackMoodSimulator",
    "ListenerHandle",
    "MoodLevel",
    "MoodListenerRegistry",
    "MoodSource",
    "MoodSourceKind",
    "MoodStabilizer",
    "MoodState",
    "SensedMoodSource",
    "SimulatedMoodSource",
    "SimulatorOptions",
    "SmootherOptions",
    "StabilizerOptions",
    "StalenessWatchdog",
    "Trend",
    "neutral_mood",
]
