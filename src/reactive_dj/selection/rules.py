"""Hard rules — non-negotiable guards evaluated before any urgency scoring.

Each rule is a named predicate over a :class:`TransitionContext`.  The
evaluator walks the list top to bottom; the first rule that fires
short-circuits to ``let_play`` with its own reason.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable

if TYPE_CHECKING:
    from reactive_dj.selection.transition import TransitionContext, TransitionOptions

# Extra seconds, on top of the crossfade, below which an item counts as nearly done
NEARLY_FINISHED_MARGIN = 5.0


@dataclass(frozen=True)
class HardRule:
    """A guard that blocks reactive transitions while ``applies`` is true."""

    rule_id: str
    applies: Callable[[TransitionContext, TransitionOptions], bool]
    describe: Callable[[TransitionContext, TransitionOptions], str]

    def check(self, context: TransitionContext, options: TransitionOptions) -> str | None:
        """Return the blocking reason, or ``None`` if the rule does not fire."""
        if self.applies(context, options):
            return self.describe(context, options)
        return None


def _remaining(context: TransitionContext) -> float:
    return context.total_duration - context.played_seconds


def default_hard_rules() -> list[HardRule]:
    """Return the standard guards in evaluation order."""
    return [
        HardRule(
            rule_id="min_play_time",
            applies=lambda ctx, opts: ctx.played_seconds < opts.min_track_play_seconds,
            describe=lambda ctx, opts: (
                f"Minimum play time not reached "
                f"({ctx.played_seconds:.0f}s / {opts.min_track_play_seconds:g}s)"
            ),
        ),
        HardRule(
            rule_id="cooldown",
            applies=lambda ctx, opts: ctx.seconds_since_last_transition < opts.cooldown_seconds,
            describe=lambda ctx, opts: (
                f"Cooldown active "
                f"({ctx.seconds_since_last_transition:.0f}s / {opts.cooldown_seconds:g}s)"
            ),
        ),
        HardRule(
            rule_id="nearly_finished",
            applies=lambda ctx, opts: _remaining(ctx) < opts.crossfade_seconds + NEARLY_FINISHED_MARGIN,
            describe=lambda ctx, opts: f"Track nearly finished ({_remaining(ctx):.0f}s remaining)",
        ),
        HardRule(
            rule_id="too_short",
            applies=lambda ctx, opts: ctx.total_duration < 2 * opts.min_track_play_seconds,
            describe=lambda ctx, opts: f"Track too short for reactive mode ({ctx.total_duration:.0f}s)",
        ),
    ]
