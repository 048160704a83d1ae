"""Session orchestrator — lifecycle, mood sources, selection and reactive timing.

The orchestrator is the single owner of session state.  Everything that
mutates it arrives on one sequential timeline:

* inbound events (:meth:`SessionOrchestrator.handle_event`),
* the evaluation tick and wait-suppression timer,
* the staleness watchdog and simulator ticks.

All timers are created through the injected :class:`TaskScheduler`, so the
same code runs on the asyncio loop in production and on a virtual clock in
tests.

Integration::

    settings = get_settings()
    outbox: asyncio.Queue = asyncio.Queue()
    session = SessionOrchestrator.from_settings(catalog, settings, outbox=outbox)
    pipeline = EventPipeline(maxsize=settings.event_queue_maxsize)
    pipeline.add_consumer(session.handle_event)
    session.start()
"""

from __future__ import annotations

import asyncio
import random
from typing import Any, ClassVar

import structlog

from reactive_dj.config import Settings, get_settings
from reactive_dj.models import (
    ActivitySample,
    CatalogItem,
    ItemEnded,
    ItemEnding,
    ItemStarted,
    LifecycleState,
)
from reactive_dj.mood.listeners import ListenerHandle, MoodListener, MoodListenerRegistry
from reactive_dj.mood.models import MoodLevel, MoodSourceKind, MoodState
from reactive_dj.mood.simulator import FallbackMoodSimulator, SimulatorOptions
from reactive_dj.mood.smoothing import SmootherOptions
from reactive_dj.mood.sources import MoodSource, SensedMoodSource, SimulatedMoodSource
from reactive_dj.mood.stabilizer import MoodStabilizer, StabilizerOptions
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
from reactive_dj.playback.handlers import PlaybackDispatcher, create_dispatcher
from reactive_dj.scheduler.tasks import AsyncioTaskScheduler, TaskHandle, TaskScheduler
from reactive_dj.selection.catalog import Catalog
from reactive_dj.selection.selector import CatalogSelector, SelectionResult, SelectorOptions
from reactive_dj.selection.transition import (
    TransitionAction,
    TransitionContext,
    TransitionDecision,
    TransitionEvaluator,
    TransitionOptions,
)
from reactive_dj.tunables import POSITIVE, Bounds, Tunables

logger = structlog.get_logger(__name__)

# Evaluations scoring above this are logged at info level
_NOTEWORTHY_SCORE = 20.0


class SessionOptions(Tunables):
    reactivity_enabled: bool = True
    evaluation_interval_seconds: float = 3.0

    field_bounds: ClassVar[dict[str, Bounds]] = {
        "evaluation_interval_seconds": POSITIVE,
    }


class SessionOrchestrator:
    """Coordinates mood estimation, selection and playback for one session.

    Parameters
    ----------
    catalog : Catalog
        Items available for selection.
    scheduler : TaskScheduler
        Clock and timer source for every task the session owns.
    dispatcher : PlaybackDispatcher
        Where playback commands and mood broadcasts go.
    rng : random.Random
        Shared by the selector and the simulator; seed it for
        reproducible sessions.
    """

    def __init__(
        self,
        catalog: Catalog,
        *,
        scheduler: TaskScheduler,
        dispatcher: PlaybackDispatcher | None = None,
        session_options: SessionOptions | None = None,
        smoother_options: SmootherOptions | None = None,
        stabilizer_options: StabilizerOptions | None = None,
        simulator_options: SimulatorOptions | None = None,
        selector_options: SelectorOptions | None = None,
        transition_options: TransitionOptions | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._catalog = catalog
        self._scheduler = scheduler
        self._dispatcher = dispatcher or PlaybackDispatcher()
        self._options = session_options or SessionOptions()
        rng = rng or random.Random()

        # Mood: one stabilizer, two interchangeable producers
        self._listeners = MoodListenerRegistry()
        self._listeners.subscribe(self._handle_mood_change)
        self._stabilizer = MoodStabilizer(stabilizer_options, listeners=self._listeners)
        self._sensed = SensedMoodSource(
            self._stabilizer,
            scheduler,
            smoother_options=smoother_options,
            stale_timeout_seconds=self._stabilizer.options.stale_timeout_seconds,
            on_stale=self._handle_sensed_stale,
        )
        self._simulated = SimulatedMoodSource(
            self._stabilizer,
            scheduler,
            FallbackMoodSimulator(simulator_options, rng),
        )
        self._source: MoodSource = self._simulated

        self._selector = CatalogSelector(catalog, selector_options, rng)
        self._evaluator = TransitionEvaluator(transition_options)

        self._state = LifecycleState.IDLE
        self._reactivity_enabled = self._options.reactivity_enabled
        self._started_at: float | None = None
        self._current_item: CatalogItem | None = None
        self._next_item: CatalogItem | None = None
        self._item_started_at: float | None = None
        self._mood_at_item_start: MoodState | None = None
        self._last_transition_time: float | None = None
        self._last_level: MoodLevel = self._stabilizer.current.level
        self._mood_stable_since = scheduler.now()
        self._evaluation_handle: TaskHandle | None = None
        self._wait_handle: TaskHandle | None = None

    @classmethod
    def from_settings(
        cls,
        catalog: Catalog,
        settings: Settings | None = None,
        *,
        scheduler: TaskScheduler | None = None,
        dispatcher: PlaybackDispatcher | None = None,
        outbox: asyncio.Queue[PlaybackCommand] | None = None,
        rng: random.Random | None = None,
    ) -> SessionOrchestrator:
        """Build an orchestrator with every component configured from *settings*."""
        settings = settings or get_settings()
        return cls(
            catalog,
            scheduler=scheduler or AsyncioTaskScheduler(),
            dispatcher=dispatcher or create_dispatcher(settings, outbox),
            session_options=SessionOptions(
                reactivity_enabled=settings.reactivity_enabled,
                evaluation_interval_seconds=settings.evaluation_interval_seconds,
            ),
            smoother_options=SmootherOptions(
                window_seconds=settings.smoothing_window_seconds,
                sampling_period_seconds=settings.sampling_period_seconds,
                curve_exponent=settings.energy_curve_exponent,
            ),
            stabilizer_options=StabilizerOptions(
                margin=settings.hysteresis_margin,
                dwell_seconds=settings.hysteresis_seconds,
                min_energy_change=settings.min_energy_change,
                trend_buffer_size=settings.trend_buffer_size,
                trend_threshold=settings.trend_threshold,
                stale_timeout_seconds=settings.stale_timeout_seconds,
            ),
            simulator_options=SimulatorOptions(
                interval_seconds=settings.simulator_interval_seconds,
                max_drift=settings.simulator_max_drift,
                initial_energy=settings.simulator_initial_energy,
                cycle_seconds=settings.simulator_cycle_seconds,
                simulate_progression=settings.simulate_progression,
            ),
            selector_options=SelectorOptions(
                history_size=settings.history_size,
                energy_tolerance=settings.energy_tolerance,
                bpm_tolerance=settings.bpm_tolerance,
                prefer_similar_bpm=settings.prefer_similar_bpm,
                key_weight=settings.key_weight,
            ),
            transition_options=TransitionOptions(
                min_track_play_seconds=settings.min_track_play_seconds,
                cooldown_seconds=settings.cooldown_seconds,
                crossfade_seconds=settings.crossfade_seconds,
                let_play_threshold=settings.let_play_threshold,
                wait_threshold=settings.wait_threshold,
                wait_seconds=settings.wait_seconds,
            ),
            rng=rng,
        )

    # ── Read-only views ───────────────────────────────────────

    @property
    def state(self) -> LifecycleState:
        return self._state

    @property
    def mood_source(self) -> MoodSourceKind:
        return self._source.kind

    @property
    def current_item(self) -> CatalogItem | None:
        return self._current_item

    @property
    def next_item(self) -> CatalogItem | None:
        return self._next_item

    @property
    def selector(self) -> CatalogSelector:
        return self._selector

    @property
    def evaluator(self) -> TransitionEvaluator:
        return self._evaluator

    @property
    def reactivity_enabled(self) -> bool:
        return self._reactivity_enabled

    @property
    def wait_suppressed(self) -> bool:
        return self._wait_handle is not None

    # ── Lifecycle ─────────────────────────────────────────────

    def start(self) -> bool:
        """Start the session.  Only valid from ``idle``; returns ``False`` otherwise."""
        if self._state is not LifecycleState.IDLE:
            logger.warning("session.start_ignored", state=self._state.value)
            return False

        self._state = LifecycleState.STARTING
        now = self._scheduler.now()
        self._started_at = now
        self._mood_stable_since = now
        self._last_level = self._stabilizer.current.level

        # Simulated mood until the first sample arrives
        self._source = self._simulated
        self._source.start()
        if self._reactivity_enabled:
            self._start_evaluation()

        self._state = LifecycleState.PLAYING
        logger.info(
            "session.started",
            catalog_size=len(self._catalog),
            reactivity=self._reactivity_enabled,
            mood_source=self._source.kind.value,
        )
        return True

    def stop(self) -> None:
        """Cancel every timer and return to ``idle``.  Safe to call repeatedly."""
        if self._state is LifecycleState.IDLE:
            return

        self._state = LifecycleState.STOPPING
        self._stop_evaluation()
        self._cancel_wait()
        self._sensed.stop()
        self._simulated.stop()
        self._dispatch(StopCommand())

        self._current_item = None
        self._next_item = None
        self._item_started_at = None
        self._mood_at_item_start = None
        self._state = LifecycleState.IDLE
        logger.info("session.stopped")

    def pause(self) -> bool:
        if self._state is not LifecycleState.PLAYING:
            logger.warning("session.pause_ignored", state=self._state.value)
            return False

        self._state = LifecycleState.PAUSED
        self._stop_evaluation()
        self._cancel_wait()
        self._source.stop()
        self._dispatch(PauseCommand())
        logger.info("session.paused")
        return True

    def resume(self) -> bool:
        if self._state is not LifecycleState.PAUSED:
            logger.warning("session.resume_ignored", state=self._state.value)
            return False

        self._state = LifecycleState.PLAYING
        self._source.start()
        if self._reactivity_enabled:
            self._start_evaluation()
        self._dispatch(ResumeCommand())
        logger.info("session.resumed", mood_source=self._source.kind.value)
        return True

    # ── Mood ──────────────────────────────────────────────────

    def ingest_sample(self, sample: ActivitySample) -> MoodState | None:
        """Feed one activity sample.  Ignored unless the session is playing.

        The first sample switches the session to the sensed source.
        """
        if self._state is not LifecycleState.PLAYING:
            logger.debug("session.sample_ignored", state=self._state.value)
            return None

        if self._source is not self._sensed:
            self._switch_source(self._sensed)
        return self._sensed.accept(sample)

    def get_current_mood(self) -> MoodState:
        return self._stabilizer.current

    def on_mood_change(self, listener: MoodListener) -> ListenerHandle:
        return self._listeners.subscribe(listener)

    def off_mood_change(self, target: ListenerHandle | MoodListener) -> bool:
        return self._listeners.unsubscribe(target)

    def _switch_source(self, source: MoodSource) -> None:
        previous = self._source
        previous.stop()
        self._source = source
        source.start()
        logger.info(
            "session.mood_source_changed",
            previous=previous.kind.value,
            current=source.kind.value,
        )

    def _handle_sensed_stale(self) -> None:
        if self._source is self._sensed and self._state is LifecycleState.PLAYING:
            logger.warning("session.sensor_failover", fallback=MoodSourceKind.SIMULATED.value)
            self._switch_source(self._simulated)

    def _handle_mood_change(self, mood: MoodState) -> None:
        if mood.level is not self._last_level:
            self._last_level = mood.level
            self._mood_stable_since = self._scheduler.now()

        logger.debug(
            "session.mood",
            level=mood.level.value,
            energy=round(mood.energy, 2),
            trend=mood.trend.value,
            source=self._source.kind.value,
        )
        self._dispatch(MoodBroadcast(mood=mood, source=self._source.kind))

    # ── Selection & telemetry ─────────────────────────────────

    def select_next(
        self,
        mood: MoodState | None = None,
        current_item: CatalogItem | None = None,
    ) -> SelectionResult | None:
        return self._selector.select_next(mood or self.get_current_mood(), current_item)

    def play_opening_item(self) -> SelectionResult | None:
        """Pick the first item of the session and ask for it to start now."""
        if self._state is LifecycleState.IDLE:
            logger.warning("session.opening_ignored", state=self._state.value)
            return None

        selection = self.select_next()
        if selection is None:
            return None

        self._current_item = selection.item
        self._item_started_at = self._scheduler.now()
        self._dispatch(
            PlayItemCommand(
                item=selection.item,
                reason=selection.reason,
                queue_position=QueuePosition.IMMEDIATE,
            )
        )
        logger.info("session.opening_item", item=selection.item.label, reason=selection.reason)
        return selection

    def item_started(self, item_id: str) -> None:
        item = self._catalog.get(item_id)
        if item is None:
            logger.warning("session.unknown_item", event="item_started", item_id=item_id)
            return

        now = self._scheduler.now()
        mood = self.get_current_mood()
        self._current_item = item
        self._item_started_at = now
        self._mood_at_item_start = mood
        self._last_level = mood.level
        self._mood_stable_since = now
        self._selector.record_play(item_id)
        if self._next_item is not None and self._next_item.id == item_id:
            self._next_item = None

        logger.info(
            "session.item_started",
            item=item.label,
            mood=mood.level.value,
            energy=round(mood.energy, 2),
        )

    def item_ending(self, item_id: str, remaining_seconds: float = 0.0) -> SelectionResult | None:
        """Queue the next item behind *item_id*."""
        item = self._catalog.get(item_id)
        if item is None:
            logger.warning("session.unknown_item", event="item_ending", item_id=item_id)
            return None

        played = self._played_seconds()
        min_play = self._evaluator.options.min_track_play_seconds
        if played < min_play:
            logger.info(
                "session.short_play",
                item_id=item_id,
                played_seconds=round(played),
                min_play_seconds=min_play,
            )

        selection = self.select_next(current_item=item)
        if selection is None:
            return None

        self._next_item = selection.item
        self._dispatch(
            PlayItemCommand(
                item=selection.item,
                reason=selection.reason,
                queue_position=QueuePosition.NEXT,
            )
        )
        logger.info(
            "session.next_queued",
            item=selection.item.label,
            reason=selection.reason,
            remaining_seconds=remaining_seconds,
        )
        return selection

    def item_ended(self, item_id: str) -> None:
        if item_id not in self._catalog:
            logger.warning("session.unknown_item", event="item_ended", item_id=item_id)
            return
        logger.info("session.item_ended", item_id=item_id)

    def handle_event(self, event: ActivitySample | ItemStarted | ItemEnding | ItemEnded) -> None:
        """Route one inbound event to the matching handler."""
        if isinstance(event, ActivitySample):
            self.ingest_sample(event)
        elif isinstance(event, ItemStarted):
            self.item_started(event.item_id)
        elif isinstance(event, ItemEnding):
            self.item_ending(event.item_id, event.remaining_seconds)
        elif isinstance(event, ItemEnded):
            self.item_ended(event.item_id)
        else:
            logger.warning("session.unknown_event", event=type(event).__name__)

    # ── Reactive evaluation ───────────────────────────────────

    def set_reactivity_enabled(self, enabled: bool) -> None:
        self._reactivity_enabled = enabled
        if enabled and self._state is LifecycleState.PLAYING:
            self._start_evaluation()
        elif not enabled:
            self._stop_evaluation()
            self._cancel_wait()
        logger.info("session.reactivity", enabled=enabled)

    def evaluate_now(self) -> TransitionDecision | None:
        """Run one evaluation tick.  Returns ``None`` when the tick was skipped."""
        if self._state is not LifecycleState.PLAYING:
            return None
        if self._current_item is None or self._mood_at_item_start is None:
            return None
        if self._wait_handle is not None:
            logger.debug("session.evaluation_suppressed")
            return None

        decision = self._evaluator.evaluate(self._build_context())
        if decision.score > _NOTEWORTHY_SCORE:
            logger.info(
                "session.evaluation",
                score=round(decision.score),
                action=decision.action.value,
                reason=decision.reason,
            )

        if decision.action is TransitionAction.TRANSITION_NOW:
            self._trigger_early_transition(decision)
        elif decision.action is TransitionAction.WAIT and decision.wait_seconds:
            self._wait_handle = self._scheduler.call_later(
                decision.wait_seconds,
                self._clear_wait,
                name="wait_suppression",
            )
        return decision

    def reactive_stats(self) -> dict[str, Any]:
        return {
            "enabled": self._reactivity_enabled,
            "mood_at_item_start": self._mood_at_item_start,
            "played_seconds": self._played_seconds(),
            "seconds_since_last_transition": self._seconds_since_last_transition(),
            "mood_stable_seconds": self._mood_stable_seconds(),
            "wait_suppressed": self.wait_suppressed,
        }

    def status(self) -> SessionStatus:
        uptime = 0.0
        if self._started_at is not None and self._state is not LifecycleState.IDLE:
            uptime = self._scheduler.now() - self._started_at
        return SessionStatus(
            lifecycle_state=self._state,
            current_item=self._current_item,
            next_item=self._next_item,
            current_mood=self.get_current_mood(),
            uptime_seconds=uptime,
            mood_source=self._source.kind,
        )

    def _build_context(self) -> TransitionContext:
        item = self._current_item
        return TransitionContext(
            current_item=item,
            current_mood=self.get_current_mood(),
            mood_at_item_start=self._mood_at_item_start,
            played_seconds=self._played_seconds(),
            total_duration=item.duration if item is not None else 0.0,
            seconds_since_last_transition=self._seconds_since_last_transition(),
            mood_stable_seconds=self._mood_stable_seconds(),
        )

    def _trigger_early_transition(self, decision: TransitionDecision) -> None:
        self._last_transition_time = self._scheduler.now()
        selection = self.select_next(current_item=self._current_item)
        if selection is None:
            return

        self._next_item = selection.item
        self._dispatch(
            EarlyTransitionCommand(
                item=selection.item,
                reason=decision.reason,
                score=decision.score,
            )
        )
        logger.info(
            "session.early_transition",
            score=round(decision.score),
            reason=decision.reason,
            item=selection.item.label,
        )

    def _start_evaluation(self) -> None:
        if self._evaluation_handle is not None:
            return
        self._evaluation_handle = self._scheduler.call_every(
            self._options.evaluation_interval_seconds,
            self.evaluate_now,
            name="transition_evaluation",
        )

    def _stop_evaluation(self) -> None:
        if self._evaluation_handle is not None:
            self._evaluation_handle.cancel()
            self._evaluation_handle = None

    def _clear_wait(self) -> None:
        self._wait_handle = None

    def _cancel_wait(self) -> None:
        if self._wait_handle is not None:
            self._wait_handle.cancel()
            self._wait_handle = None

    # ── Clocks ────────────────────────────────────────────────

    def _played_seconds(self) -> float:
        if self._item_started_at is None:
            return 0.0
        return max(0.0, self._scheduler.now() - self._item_started_at)

    def _seconds_since_last_transition(self) -> float:
        if self._last_transition_time is None:
            return float("inf")
        return self._scheduler.now() - self._last_transition_time

    def _mood_stable_seconds(self) -> float:
        return max(0.0, self._scheduler.now() - self._mood_stable_since)

    def _dispatch(self, command: PlaybackCommand) -> None:
        self._dispatcher.dispatch(command)
