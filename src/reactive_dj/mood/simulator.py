"""Fallback mood simulator — a synthetic party arc for sensorless sessions.

When no camera is feeding activity samples the engine still needs a mood
that moves.  The simulator produces ``(energy, confidence)`` readings on a
fixed period, following one of two targets:

* **progression** — elapsed time is mapped into a repeating arc
  (warm-up → build/peak → cool-down), with jitter on the target.
* **random walk** — bounded drift with a weak pull towards 0.5.

Either way the reading only moves 30 % of the way towards the target per
step, which keeps the simulated curve as smooth as a sensed one.
"""

from __future__ import annotations

import random
from typing import ClassVar

import structlog

from reactive_dj.tunables import POSITIVE, UNIT_INTERVAL, Bounds, Tunables

logger = structlog.get_logger(__name__)

# ── Arc shape ─────────────────────────────────────────────────

_WARMUP_END = 0.15
_PEAK_END = 0.70
_APPROACH_RATE = 0.3
_TARGET_JITTER = 0.2  # full width, i.e. ±0.1
_STEP_NOISE = 0.04  # full width, i.e. ±0.02
_CENTERING = 0.1


class SimulatorOptions(Tunables):
    interval_seconds: float = 2.0
    max_drift: float = 0.08
    initial_energy: float = 0.35
    cycle_seconds: float = 600.0
    simulate_progression: bool = True

    field_bounds: ClassVar[dict[str, Bounds]] = {
        "interval_seconds": POSITIVE,
        "max_drift": UNIT_INTERVAL,
        "initial_energy": UNIT_INTERVAL,
        "cycle_seconds": POSITIVE,
    }


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


def progression_target(position: float) -> float:
    """Noise-free arc energy for a cycle *position* in ``[0, 1)``."""
    if position < _WARMUP_END:
        # 0.2 → 0.5 over the first 15 %
        return 0.2 + position * 2.0
    if position < _PEAK_END:
        return 0.5 + ((position - _WARMUP_END) / (_PEAK_END - _WARMUP_END)) * 0.4
    return 0.9 - ((position - _PEAK_END) / (1.0 - _PEAK_END)) * 0.5


class FallbackMoodSimulator:
    """Stateful generator of simulated energy readings.

    The simulator keeps its own running energy; the stabilizer downstream
    decides what becomes the published :class:`MoodState`.
    """

    def __init__(
        self,
        options: SimulatorOptions | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._options = options or SimulatorOptions()
        self._rng = rng or random.Random()
        self._energy = self._options.initial_energy
        self._started_at: float | None = None

    @property
    def options(self) -> SimulatorOptions:
        return self._options

    @property
    def energy(self) -> float:
        return self._energy

    def start(self, now: float) -> None:
        """Anchor the progression arc at *now* (first call wins)."""
        if self._started_at is None:
            self._started_at = now

    def reset(self, now: float | None = None) -> None:
        self._energy = self._options.initial_energy
        self._started_at = now

    def target(self, now: float) -> float:
        if not self._options.simulate_progression:
            step = (self._rng.random() - 0.5) * 2.0 * self._options.max_drift
            return _clamp(self._energy + step + (0.5 - self._energy) * _CENTERING)

        self.start(now)
        elapsed = max(0.0, now - self._started_at)
        position = (elapsed % self._options.cycle_seconds) / self._options.cycle_seconds
        jitter = (self._rng.random() - 0.5) * _TARGET_JITTER
        return _clamp(progression_target(position) + jitter)

    def next_reading(self, now: float) -> tuple[float, float]:
        """Advance one step and return ``(energy, confidence)``."""
        target = self.target(now)
        energy = _clamp(self._energy + (target - self._energy) * _APPROACH_RATE)
        energy = _clamp(energy + (self._rng.random() - 0.5) * _STEP_NOISE)
        self._energy = energy

        confidence = 0.8 + self._rng.random() * 0.2
        logger.debug("simulator.reading", energy=round(energy, 3), target=round(target, 3))
        return energy, confidence
