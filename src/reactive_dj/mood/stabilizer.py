"""Mood stabilizer — hysteresis, dwell time, trend detection and staleness.

The stabilizer is the single owner of the current :class:`MoodState`.  Each
accepted update replaces the state with a new frozen snapshot and
broadcasts it to the listener registry.

Update order
------------
1. **Minimum-change gate** — an update whose energy is within
   ``min_energy_change`` of the current energy is dropped before anything
   is touched (no trend push, no broadcast).
2. **Trend** — energy goes into a short buffer; the mean of the newer half
   is compared with the mean of the older half.
3. **Level** — a boundary must be cleared by ``margin`` in the direction
   of travel, and ``dwell_seconds`` must have passed since the last level
   change.  A refused level change still updates energy, trend and
   confidence.

Level boundaries
----------------
=============================  =========
Boundary                       Energy
=============================  =========
chill | warming_up             0.20
warming_up | energetic         0.40
energetic | peak               0.65
peak → cooling_down (falling)  > 0.85
=============================  =========
"""

from __future__ import annotations

from collections import deque
from typing import Callable, ClassVar

import structlog

from reactive_dj.mood.listeners import BroadcastResult, MoodListenerRegistry
from reactive_dj.mood.models import MoodLevel, MoodState, Trend, neutral_mood
from reactive_dj.scheduler.tasks import TaskHandle, TaskScheduler
from reactive_dj.tunables import NON_NEGATIVE, POSITIVE, UNIT_INTERVAL, Bounds, Tunables

logger = structlog.get_logger(__name__)

# ── Level ladder ──────────────────────────────────────────────

# Ordered bands; the top band is split into peak / cooling_down by trend.
_LADDER = [MoodLevel.CHILL, MoodLevel.WARMING_UP, MoodLevel.ENERGETIC, MoodLevel.PEAK]
_BOUNDARIES = [0.2, 0.4, 0.65]  # _BOUNDARIES[i] separates _LADDER[i] and _LADDER[i + 1]
_COOLING_DOWN_ENERGY = 0.85


def _rung(level: MoodLevel) -> int:
    if level is MoodLevel.COOLING_DOWN:
        return len(_LADDER) - 1
    return _LADDER.index(level)


def classify_energy(energy: float, trend: Trend = Trend.STABLE) -> MoodLevel:
    """Raw (hysteresis-free) level for *energy*."""
    if energy <= _BOUNDARIES[0]:
        return MoodLevel.CHILL
    if energy <= _BOUNDARIES[1]:
        return MoodLevel.WARMING_UP
    if energy <= _BOUNDARIES[2]:
        return MoodLevel.ENERGETIC
    if energy > _COOLING_DOWN_ENERGY and trend is Trend.FALLING:
        return MoodLevel.COOLING_DOWN
    return MoodLevel.PEAK


def hysteresis_level(energy: float, current: MoodLevel, trend: Trend, margin: float) -> MoodLevel:
    """Level for *energy* given the *current* level and a boundary margin.

    Moving up past a boundary needs ``energy > boundary + margin``; moving
    down needs ``energy <= boundary - margin``.  Inside the margin the
    current band is kept.
    """
    rung = _rung(current)
    while rung < len(_BOUNDARIES) and energy > _BOUNDARIES[rung] + margin:
        rung += 1
    while rung > 0 and energy <= _BOUNDARIES[rung - 1] - margin:
        rung -= 1

    level = _LADDER[rung]
    if level is MoodLevel.PEAK and energy > _COOLING_DOWN_ENERGY and trend is Trend.FALLING:
        return MoodLevel.COOLING_DOWN
    return level


def detect_trend(values: list[float], threshold: float = 0.05) -> Trend:
    """Compare the mean of the newer half of *values* with the older half."""
    if len(values) < 3:
        return Trend.STABLE
    mid = len(values) // 2
    older = sum(values[:mid]) / mid
    newer = sum(values[mid:]) / (len(values) - mid)
    diff = newer - older
    if diff > threshold:
        return Trend.RISING
    if diff < -threshold:
        return Trend.FALLING
    return Trend.STABLE


# ── Options ───────────────────────────────────────────────────


class StabilizerOptions(Tunables):
    margin: float = 0.05
    dwell_seconds: float = 3.0
    min_energy_change: float = 0.05
    trend_buffer_size: int = 5
    trend_threshold: float = 0.05
    stale_timeout_seconds: float = 10.0

    field_bounds: ClassVar[dict[str, Bounds]] = {
        "margin": UNIT_INTERVAL,
        "dwell_seconds": NON_NEGATIVE,
        "min_energy_change": UNIT_INTERVAL,
        "trend_buffer_size": (3, None),
        "trend_threshold": UNIT_INTERVAL,
        "stale_timeout_seconds": POSITIVE,
    }


# ── Stabilizer ────────────────────────────────────────────────


class MoodStabilizer:
    """Owner of the current :class:`MoodState`.

    Parameters
    ----------
    options : StabilizerOptions
        Hysteresis, dwell and gate tunables.
    listeners : MoodListenerRegistry
        Registry notified after every accepted update.  Pass the
        orchestrator's registry so subscriptions share its lifetime.
    initial : MoodState
        Starting state (defaults to the neutral mood).
    """

    def __init__(
        self,
        options: StabilizerOptions | None = None,
        listeners: MoodListenerRegistry | None = None,
        initial: MoodState | None = None,
    ) -> None:
        self._options = options or StabilizerOptions()
        self._listeners = listeners if listeners is not None else MoodListenerRegistry()
        self._mood = initial or neutral_mood()
        self._trend_buffer: deque[float] = deque(maxlen=self._options.trend_buffer_size)
        self._last_level_change: float | None = None
        self._last_broadcast: BroadcastResult | None = None

    @property
    def options(self) -> StabilizerOptions:
        return self._options

    @property
    def listeners(self) -> MoodListenerRegistry:
        return self._listeners

    @property
    def current(self) -> MoodState:
        # Frozen model: handing out the instance is handing out a snapshot.
        return self._mood

    @property
    def last_broadcast(self) -> BroadcastResult | None:
        return self._last_broadcast

    def update(self, energy: float, confidence: float, timestamp: float) -> MoodState | None:
        """Offer a new energy reading.

        *timestamp* must come from one clock for every caller (the session
        scheduler); dwell timing subtracts successive values.  Returns the
        new :class:`MoodState`, or ``None`` when the reading was dropped by
        the minimum-change gate.
        """
        energy = max(0.0, min(1.0, energy))
        confidence = max(0.0, min(1.0, confidence))
        previous = self._mood

        if abs(energy - previous.energy) < self._options.min_energy_change:
            return None

        self._trend_buffer.append(energy)
        trend = detect_trend(list(self._trend_buffer), self._options.trend_threshold)

        level = hysteresis_level(energy, previous.level, trend, self._options.margin)
        if level is not previous.level:
            if self._dwell_elapsed(timestamp):
                self._last_level_change = timestamp
                logger.info(
                    "stabilizer.level_changed",
                    previous=previous.level.value,
                    level=level.value,
                    energy=round(energy, 3),
                    trend=trend.value,
                )
            else:
                logger.debug(
                    "stabilizer.level_change_deferred",
                    current=previous.level.value,
                    proposed=level.value,
                    energy=round(energy, 3),
                )
                level = previous.level

        self._mood = MoodState(
            level=level,
            energy=energy,
            trend=trend,
            confidence=confidence,
            timestamp=timestamp,
        )
        self._last_broadcast = self._listeners.broadcast(self._mood)
        return self._mood

    def reset(self, mood: MoodState | None = None) -> None:
        """Forget trend history and dwell timing; optionally replace the state."""
        self._trend_buffer.clear()
        self._last_level_change = None
        if mood is not None:
            self._mood = mood

    def _dwell_elapsed(self, now: float) -> bool:
        if self._last_level_change is None:
            return True
        return now - self._last_level_change >= self._options.dwell_seconds


# ── Staleness watchdog ────────────────────────────────────────


class StalenessWatchdog:
    """One-shot timer that fires when samples stop arriving.

    :meth:`kick` (called for every incoming sample) cancels and re-arms the
    timer.  When it expires, *on_stale* is called once; the watchdog then
    stays disarmed until the next kick.
    """

    def __init__(
        self,
        scheduler: TaskScheduler,
        timeout_seconds: float,
        on_stale: Callable[[], None],
    ) -> None:
        self._scheduler = scheduler
        self._timeout = timeout_seconds
        self._on_stale = on_stale
        self._handle: TaskHandle | None = None
        self._last_kick: float | None = None

    def kick(self) -> None:
        self.stop()
        self._last_kick = self._scheduler.now()
        self._handle = self._scheduler.call_later(self._timeout, self._expire, name="staleness_watchdog")

    def stop(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    @property
    def armed(self) -> bool:
        return self._handle is not None and not self._handle.cancelled

    @property
    def seconds_since_last_sample(self) -> float | None:
        if self._last_kick is None:
            return None
        return self._scheduler.now() - self._last_kick

    @property
    def is_receiving(self) -> bool:
        """``True`` while samples arrive more often than the timeout."""
        elapsed = self.seconds_since_last_sample
        return elapsed is not None and elapsed < self._timeout

    def _expire(self) -> None:
        self._handle = None
        logger.warning("stabilizer.samples_stale", timeout_seconds=self._timeout)
        self._on_stale()
