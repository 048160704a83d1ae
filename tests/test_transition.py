"""Tests for the transition evaluator and its hard rules."""

import random

import pytest

from conftest import make_item, make_mood
from reactive_dj.mood.models import MoodLevel, Trend
from reactive_dj.selection.rules import default_hard_rules
from reactive_dj.selection.transition import (
    TransitionAction,
    TransitionContext,
    TransitionEvaluator,
    TransitionOptions,
    TransitionPreconditionError,
    urgency_score,
)


def _context(**overrides) -> TransitionContext:
    fields = dict(
        current_item=make_item("cur", 0.2, duration=300.0),
        current_mood=make_mood(0.8, level=MoodLevel.PEAK, confidence=1.0),
        mood_at_item_start=make_mood(0.8, level=MoodLevel.PEAK),
        played_seconds=200.0,
        total_duration=300.0,
        seconds_since_last_transition=100.0,
        mood_stable_seconds=12.0,
    )
    fields.update(overrides)
    return TransitionContext(**fields)


class TestHardRules:
    def test_min_play_time(self):
        decision = TransitionEvaluator().evaluate(_context(played_seconds=10.0))
        assert decision.action is TransitionAction.LET_PLAY
        assert decision.score == 0.0
        assert decision.confidence == 1.0
        assert decision.reason == "Minimum play time not reached (10s / 30s)"

    def test_cooldown(self):
        decision = TransitionEvaluator().evaluate(_context(seconds_since_last_transition=20.0))
        assert decision.action is TransitionAction.LET_PLAY
        assert decision.reason.startswith("Cooldown active")

    def test_nearly_finished(self):
        decision = TransitionEvaluator().evaluate(_context(played_seconds=290.0))
        assert decision.action is TransitionAction.LET_PLAY
        assert decision.reason == "Track nearly finished (10s remaining)"

    def test_too_short(self):
        item = make_item("short", 0.2, duration=50.0)
        decision = TransitionEvaluator().evaluate(
            _context(current_item=item, total_duration=50.0, played_seconds=31.0)
        )
        assert decision.action is TransitionAction.LET_PLAY
        assert decision.reason.startswith("Track too short")

    def test_rules_are_ordered(self):
        assert [rule.rule_id for rule in default_hard_rules()] == [
            "min_play_time",
            "cooldown",
            "nearly_finished",
            "too_short",
        ]

    def test_never_transitioned_means_no_cooldown(self):
        decision = TransitionEvaluator().evaluate(_context(seconds_since_last_transition=float("inf")))
        assert decision.action is TransitionAction.TRANSITION_NOW


class TestUrgencyScore:
    def test_mismatch_scenario_triggers_transition(self):
        decision = TransitionEvaluator().evaluate(_context())
        assert decision.score >= 61
        assert decision.action is TransitionAction.TRANSITION_NOW
        assert decision.confidence == pytest.approx(min(1.0, 0.7 + (decision.score - 60) / 100))
        assert decision.reason.startswith("large energy mismatch (Δ0.60)")
        assert decision.reason.endswith(" - triggering early transition")

    def test_score_components(self):
        context = _context()
        # 0.6 * 40 + 20 + 10 + 5 + 200/300 * 15 + 0 trend + 0 shift
        assert urgency_score(context, context.current_item) == pytest.approx(24 + 20 + 15 + 10)

    def test_trend_and_shift_bonus(self):
        context = _context(
            current_mood=make_mood(0.8, level=MoodLevel.PEAK, trend=Trend.RISING),
            mood_at_item_start=make_mood(0.4),
        )
        assert urgency_score(context, context.current_item) == pytest.approx(69 + 10 + 4)

    def test_matching_item_lets_play(self):
        item = make_item("match", 0.78, duration=300.0)
        decision = TransitionEvaluator().evaluate(
            _context(
                current_item=item,
                current_mood=make_mood(0.8, level=MoodLevel.PEAK, confidence=0.2),
                played_seconds=40.0,
                mood_stable_seconds=0.0,
            )
        )
        assert decision.action is TransitionAction.LET_PLAY
        assert decision.confidence >= 0.5
        assert decision.reason == "track energy matches mood, low confidence - continuing current track"

    def test_wait_band(self):
        item = make_item("mid", 0.5, duration=300.0)
        decision = TransitionEvaluator().evaluate(
            _context(
                current_item=item,
                current_mood=make_mood(0.8, level=MoodLevel.PEAK, confidence=1.0),
                played_seconds=60.0,
                mood_stable_seconds=6.0,
            )
        )
        # 12 + 20 + 10 + 3 = 45
        assert decision.action is TransitionAction.WAIT
        assert decision.wait_seconds == 5.0
        assert decision.confidence == pytest.approx(0.4 + (45 - 30) / 30 * 0.3)
        assert decision.reason.endswith(" - monitoring")

    def test_missing_item_raises(self):
        with pytest.raises(TransitionPreconditionError):
            TransitionEvaluator().evaluate(_context(current_item=None))

    def test_precondition_error_is_value_error(self):
        assert issubclass(TransitionPreconditionError, ValueError)


class TestProperties:
    def _random_context(self, rng: random.Random) -> TransitionContext:
        duration = rng.uniform(10.0, 600.0)
        return _context(
            current_item=make_item("r", rng.random(), duration=duration),
            current_mood=make_mood(
                rng.random(),
                trend=rng.choice(list(Trend)),
                confidence=rng.random(),
            ),
            mood_at_item_start=make_mood(rng.random()),
            played_seconds=rng.uniform(0.0, duration),
            total_duration=duration,
            seconds_since_last_transition=rng.uniform(0.0, 300.0),
            mood_stable_seconds=rng.uniform(0.0, 60.0),
        )

    def test_never_transitions_before_min_play_time(self):
        rng = random.Random(1234)
        evaluator = TransitionEvaluator()
        for _ in range(2000):
            context = self._random_context(rng)
            decision = evaluator.evaluate(context)
            if context.played_seconds < evaluator.options.min_track_play_seconds:
                assert decision.action is not TransitionAction.TRANSITION_NOW

    def test_cooldown_always_lets_play(self):
        rng = random.Random(99)
        evaluator = TransitionEvaluator()
        for _ in range(2000):
            context = self._random_context(rng)
            decision = evaluator.evaluate(context)
            if context.seconds_since_last_transition < evaluator.options.cooldown_seconds:
                assert decision.action is TransitionAction.LET_PLAY

    def test_score_and_confidence_bounds(self):
        rng = random.Random(7)
        evaluator = TransitionEvaluator()
        for _ in range(2000):
            decision = evaluator.evaluate(self._random_context(rng))
            assert 0.0 <= decision.score <= 100.0
            assert 0.0 <= decision.confidence <= 1.0


class TestTransitionOptions:
    def test_inverted_thresholds_reset(self):
        options = TransitionOptions(let_play_threshold=70.0, wait_threshold=50.0)
        assert options.let_play_threshold == 30.0
        assert options.wait_threshold == 60.0

    def test_out_of_range_threshold_reset(self):
        options = TransitionOptions(wait_threshold=250.0, cooldown_seconds=-5.0)
        assert options.wait_threshold == 60.0
        assert options.cooldown_seconds == 45.0

    def test_clamping_cannot_invert_thresholds(self):
        # let_play falls back to 30 and would then sit above wait=20
        options = TransitionOptions(let_play_threshold=-5.0, wait_threshold=20.0)
        assert options.let_play_threshold == 30.0
        assert options.wait_threshold == 60.0

        decision = TransitionEvaluator(options).evaluate(
            _context(
                current_item=make_item("mid", 0.5, duration=300.0),
                played_seconds=60.0,
                mood_stable_seconds=6.0,
            )
        )
        assert decision.score == pytest.approx(45.0)
        assert decision.action is TransitionAction.WAIT
