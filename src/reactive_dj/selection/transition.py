"""Transition evaluator — decide *when* to preempt the current item.

Evaluation is two-staged:

1. **Hard rules** (:mod:`reactive_dj.selection.rules`) — minimum play
   time, cooldown, nearly finished, too short.  The first that fires
   returns ``let_play`` with score 0 and confidence 1.
2. **Urgency score** (0–100), mapped onto three bands:

   ==================  ==============  ===============================
   Score               Action          Confidence
   ==================  ==============  ===============================
   ≤ let_play (30)     let_play        ``max(0.5, 1 - score / 30)``
   ≤ wait (60)         wait            0.4 → 0.7 across the band
   > wait              transition_now  ``min(1, 0.7 + (score-60)/100)``
   ==================  ==============  ===============================
"""

from __future__ import annotations

from enum import Enum
from typing import ClassVar

import structlog
from pydantic import BaseModel, ConfigDict, Field, model_validator

from reactive_dj.models import CatalogItem
from reactive_dj.mood.models import MoodState, Trend
from reactive_dj.selection.rules import HardRule, default_hard_rules
from reactive_dj.tunables import NON_NEGATIVE, POSITIVE, SCORE_RANGE, Bounds, Tunables

logger = structlog.get_logger(__name__)


class TransitionPreconditionError(ValueError):
    """Raised when a transition is evaluated without a current item."""


class TransitionAction(str, Enum):
    TRANSITION_NOW = "transition_now"
    WAIT = "wait"
    LET_PLAY = "let_play"


class TransitionOptions(Tunables):
    min_track_play_seconds: float = 30.0
    cooldown_seconds: float = 45.0
    crossfade_seconds: float = 8.0
    let_play_threshold: float = 30.0
    wait_threshold: float = 60.0
    wait_seconds: float = 5.0

    field_bounds: ClassVar[dict[str, Bounds]] = {
        "min_track_play_seconds": NON_NEGATIVE,
        "cooldown_seconds": NON_NEGATIVE,
        "crossfade_seconds": NON_NEGATIVE,
        "let_play_threshold": SCORE_RANGE,
        "wait_threshold": SCORE_RANGE,
        "wait_seconds": POSITIVE,
    }

    @model_validator(mode="after")
    def reset_inverted_thresholds(self) -> TransitionOptions:
        # Runs after per-field clamping, which can itself invert the pair
        if self.wait_threshold <= self.let_play_threshold:
            fields = type(self).model_fields
            logger.warning(
                "tunables.inverted_thresholds",
                let_play_threshold=self.let_play_threshold,
                wait_threshold=self.wait_threshold,
            )
            # Frozen model: write the defaults straight into the instance
            for name in ("let_play_threshold", "wait_threshold"):
                object.__setattr__(self, name, fields[name].default)
        return self


class TransitionContext(BaseModel):
    """Everything the evaluator looks at, captured for a single tick."""

    model_config = ConfigDict(frozen=True)

    current_item: CatalogItem | None
    current_mood: MoodState
    mood_at_item_start: MoodState
    played_seconds: float = Field(ge=0.0)
    total_duration: float = Field(ge=0.0)
    seconds_since_last_transition: float = float("inf")
    mood_stable_seconds: float = Field(0.0, ge=0.0)


class TransitionDecision(BaseModel):
    model_config = ConfigDict(frozen=True)

    action: TransitionAction
    confidence: float = Field(ge=0.0, le=1.0)
    reason: str
    score: float = Field(ge=0.0, le=100.0)
    wait_seconds: float | None = None


# ── Scoring ───────────────────────────────────────────────────


def urgency_score(context: TransitionContext, item: CatalogItem) -> float:
    """How badly *item* mismatches the current mood, clamped to 0–100."""
    mood = context.current_mood
    score = abs(mood.energy - item.energy) * 40.0
    score += mood.confidence * 20.0

    # A sustained mood is not just a spike
    if context.mood_stable_seconds >= 5.0:
        score += 10.0
    if context.mood_stable_seconds >= 10.0:
        score += 5.0

    if context.total_duration > 0:
        score += (context.played_seconds / context.total_duration) * 15.0

    if mood.trend is Trend.RISING and item.energy < 0.5:
        score += 10.0
    elif mood.trend is Trend.FALLING and item.energy > 0.5:
        score += 10.0

    score += abs(mood.energy - context.mood_at_item_start.energy) * 10.0
    return max(0.0, min(100.0, score))


_SUFFIXES = {
    TransitionAction.TRANSITION_NOW: (" - triggering early transition", "Triggering early transition"),
    TransitionAction.WAIT: (" - monitoring", "Monitoring mood shift"),
    TransitionAction.LET_PLAY: (" - continuing current track", "Current track is appropriate"),
}


def describe_decision(context: TransitionContext, item: CatalogItem, action: TransitionAction) -> str:
    mood = context.current_mood
    delta = abs(mood.energy - item.energy)
    shift = mood.energy - context.mood_at_item_start.energy

    parts: list[str] = []
    if delta > 0.4:
        parts.append(f"large energy mismatch (Δ{delta:.2f})")
    elif delta > 0.25:
        parts.append(f"moderate energy mismatch (Δ{delta:.2f})")
    elif delta < 0.15:
        parts.append("track energy matches mood")

    if mood.trend is Trend.RISING and shift > 0.2:
        parts.append("crowd energy rising")
    elif mood.trend is Trend.FALLING and shift < -0.2:
        parts.append("crowd energy dropping")

    if context.mood_stable_seconds > 10:
        parts.append(f"mood stable {context.mood_stable_seconds:.0f}s")

    if mood.confidence < 0.5:
        parts.append("low confidence")

    suffix, default = _SUFFIXES[action]
    return ", ".join(parts) + suffix if parts else default


# ── Evaluator ─────────────────────────────────────────────────


class TransitionEvaluator:
    """Stateless decision engine; all state arrives in the context."""

    def __init__(
        self,
        options: TransitionOptions | None = None,
        rules: list[HardRule] | None = None,
    ) -> None:
        self._options = options or TransitionOptions()
        self._rules = rules if rules is not None else default_hard_rules()

    @property
    def options(self) -> TransitionOptions:
        return self._options

    @property
    def rules(self) -> list[HardRule]:
        return list(self._rules)

    def evaluate(self, context: TransitionContext) -> TransitionDecision:
        item = context.current_item
        if item is None:
            raise TransitionPreconditionError("Cannot evaluate a transition without a current item")

        for rule in self._rules:
            reason = rule.check(context, self._options)
            if reason is not None:
                return TransitionDecision(
                    action=TransitionAction.LET_PLAY,
                    confidence=1.0,
                    reason=reason,
                    score=0.0,
                )

        score = urgency_score(context, item)
        opts = self._options

        if score <= opts.let_play_threshold:
            action = TransitionAction.LET_PLAY
            confidence = max(0.5, 1.0 - score / opts.let_play_threshold) if opts.let_play_threshold > 0 else 1.0
            wait_seconds = None
        elif score <= opts.wait_threshold:
            action = TransitionAction.WAIT
            position = (score - opts.let_play_threshold) / (opts.wait_threshold - opts.let_play_threshold)
            confidence = 0.4 + position * 0.3
            wait_seconds = opts.wait_seconds
        else:
            action = TransitionAction.TRANSITION_NOW
            confidence = min(1.0, 0.7 + (score - opts.wait_threshold) / 100.0)
            wait_seconds = None

        return TransitionDecision(
            action=action,
            confidence=confidence,
            reason=describe_decision(context, item, action),
            score=score,
            wait_seconds=wait_seconds,
        )
