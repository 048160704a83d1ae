"""Mood sources — the producers that feed the stabilizer.

Exactly one source is active at a time.  Both write into the same
:class:`MoodStabilizer`, so hysteresis and dwell timing carry across a
fail-over and consumers never see two competing mood states.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable

import structlog

from reactive_dj.models import ActivitySample
from reactive_dj.mood.models import MoodSourceKind, MoodState
from reactive_dj.mood.simulator import FallbackMoodSimulator
from reactive_dj.mood.smoothing import ActivitySmoother, ConfidenceEstimator, SmootherOptions
from reactive_dj.mood.stabilizer import MoodStabilizer, StalenessWatchdog
from reactive_dj.scheduler.tasks import TaskHandle, TaskScheduler

logger = structlog.get_logger(__name__)


class MoodSource(ABC):
    """Contract shared by the sensed and simulated producers."""

    kind: MoodSourceKind

    def __init__(self, stabilizer: MoodStabilizer, scheduler: TaskScheduler) -> None:
        self._stabilizer = stabilizer
        self._scheduler = scheduler
        self._active = False

    @property
    def active(self) -> bool:
        return self._active

    @abstractmethod
    def start(self) -> None:
        """Begin producing mood updates."""

    @abstractmethod
    def stop(self) -> None:
        """Stop producing updates and cancel every timer the source owns."""


class SensedMoodSource(MoodSource):
    """Activity samples → smoother → confidence → stabilizer.

    Every accepted sample re-arms the staleness watchdog; when the watchdog
    expires *on_stale* is called so the owner can fail over.
    """

    kind = MoodSourceKind.SENSED

    def __init__(
        self,
        stabilizer: MoodStabilizer,
        scheduler: TaskScheduler,
        *,
        smoother_options: SmootherOptions | None = None,
        stale_timeout_seconds: float = 10.0,
        on_stale: Callable[[], None] | None = None,
    ) -> None:
        super().__init__(stabilizer, scheduler)
        self.smoother = ActivitySmoother(smoother_options)
        self.estimator = ConfidenceEstimator(smoother_options)
        self._on_stale = on_stale
        self.watchdog = StalenessWatchdog(scheduler, stale_timeout_seconds, self._handle_stale)
        self._samples_seen = 0

    @property
    def samples_seen(self) -> int:
        return self._samples_seen

    def start(self) -> None:
        if self._active:
            return
        self._active = True
        self.watchdog.kick()
        logger.info("mood_source.sensed_started")

    def stop(self) -> None:
        self.watchdog.stop()
        if self._active:
            self._active = False
            logger.info("mood_source.sensed_stopped", samples_seen=self._samples_seen)

    def accept(self, sample: ActivitySample) -> MoodState | None:
        """Feed one sample through the chain.

        A sample without a timestamp is stamped with the scheduler clock.
        Sample timestamps only age the smoothing window; the stabilizer is
        always driven by the scheduler clock so dwell timing stays valid
        across a fail-over to the simulator.
        Returns the new mood, or ``None`` if the stabilizer dropped it.
        """
        now = self._scheduler.now()
        if sample.timestamp is None:
            sample = sample.model_copy(update={"timestamp": now})

        self._samples_seen += 1
        self.watchdog.kick()

        energy = self.smoother.add(sample)
        confidence = self.estimator.estimate(self.smoother.window)
        return self._stabilizer.update(energy, confidence, now)

    def _handle_stale(self) -> None:
        logger.warning(
            "mood_source.sensed_stale",
            seconds_since_last_sample=self.watchdog.seconds_since_last_sample,
        )
        if self._on_stale is not None:
            self._on_stale()


class SimulatedMoodSource(MoodSource):
    """Periodic simulator ticks → stabilizer."""

    kind = MoodSourceKind.SIMULATED

    def __init__(
        self,
        stabilizer: MoodStabilizer,
        scheduler: TaskScheduler,
        simulator: FallbackMoodSimulator | None = None,
    ) -> None:
        super().__init__(stabilizer, scheduler)
        self.simulator = simulator or FallbackMoodSimulator()
        self._handle: TaskHandle | None = None

    def start(self) -> None:
        if self._active:
            return
        self._active = True
        self.simulator.start(self._scheduler.now())
        self._handle = self._scheduler.call_every(
            self.simulator.options.interval_seconds,
            self.tick,
            name="mood_simulator",
        )
        logger.info(
            "mood_source.simulated_started",
            interval_seconds=self.simulator.options.interval_seconds,
            progression=self.simulator.options.simulate_progression,
        )

    def stop(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        if self._active:
            self._active = False
            logger.info("mood_source.simulated_stopped")

    def tick(self) -> MoodState | None:
        # Same clock as SensedMoodSource.accept
        now = self._scheduler.now()
        energy, confidence = self.simulator.next_reading(now)
        return self._stabilizer.update(energy, confidence, now)
