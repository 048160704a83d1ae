"""Catalog selector — pick the next item for the current mood.

Selection runs in up to three tiers, each tried only when the previous one
produced no candidates:

1. **Mood match** — energy inside the mood level's canonical range,
   narrowed to ``energy ± tolerance``; nothing from the play history.
   With a current item, candidates are further narrowed to a BPM window
   around it, but only if that leaves at least three.
2. **Relaxed** — energy within ±0.3 of the mood; only the five most
   recent plays are excluded.
3. **Fallback** — any item not in the history (or any item at all),
   chosen at random with score 0.

Tier 1 and 2 candidates are scored (0–100), the top of the list forms a
small pool, and the pick is uniform within the pool so the same mood does
not always yield the same item.
"""

from __future__ import annotations

import math
import random
from typing import ClassVar

import structlog
from pydantic import BaseModel, ConfigDict, Field

from reactive_dj.models import CatalogItem
from reactive_dj.mood.models import MOOD_ENERGY_RANGES, MoodState, Trend
from reactive_dj.selection.catalog import Catalog
from reactive_dj.selection.harmony import key_compatibility
from reactive_dj.selection.history import PlayHistory
from reactive_dj.tunables import SCORE_RANGE, UNIT_INTERVAL, Bounds, Tunables

logger = structlog.get_logger(__name__)

# ── Constants ─────────────────────────────────────────────────

_RELAXED_ENERGY_SPAN = 0.3
_RELAXED_HISTORY_WINDOW = 5
_MIN_BPM_CANDIDATES = 3
_POOL_MAX = 5
_POOL_FRACTION = 0.3
FALLBACK_REASON = "fallback (no matching items)"


class SelectorOptions(Tunables):
    history_size: int = 10
    energy_tolerance: float = 0.15
    bpm_tolerance: float = 0.15
    prefer_similar_bpm: bool = True
    key_weight: float = 20.0

    field_bounds: ClassVar[dict[str, Bounds]] = {
        "history_size": (0, None),
        "energy_tolerance": UNIT_INTERVAL,
        "bpm_tolerance": UNIT_INTERVAL,
        "key_weight": SCORE_RANGE,
    }


class SelectionResult(BaseModel):
    """The chosen item with a score and a human-readable reason."""

    model_config = ConfigDict(frozen=True)

    item: CatalogItem
    reason: str
    score: float = Field(ge=0.0, le=100.0)
    tier: int = Field(ge=1, le=3)


# ── Scoring ───────────────────────────────────────────────────


def _bpm_distance(item: CatalogItem, current: CatalogItem) -> float:
    ratio = item.bpm / current.bpm
    # Same tempo, double time and half time all mix well
    return min(abs(ratio - 1.0), abs(ratio - 2.0), abs(ratio - 0.5))


def score_item(
    item: CatalogItem,
    mood: MoodState,
    current_item: CatalogItem | None = None,
    key_weight: float = 20.0,
) -> float:
    """Fit of *item* for *mood* (and *current_item*, if any) on a 0–100 scale.

    ======== ===========================================================
    Energy   ``max(0, 40 - |Δenergy| * 100)``
    BPM      ``max(0, 30 - 100 * ratio distance)``, 15 without context
    Key      ``key_weight * compatibility``, half weight without context
    Trend    +10 when the item follows the trend, +5 when stable
    ======== ===========================================================
    """
    score = max(0.0, 40.0 - abs(item.energy - mood.energy) * 100.0)

    if current_item is not None:
        score += max(0.0, 30.0 - _bpm_distance(item, current_item) * 100.0)
        score += key_weight * key_compatibility(item.key, current_item.key)
    else:
        score += 15.0
        score += key_weight / 2.0

    if mood.trend is Trend.RISING and item.energy > mood.energy:
        score += 10.0
    elif mood.trend is Trend.FALLING and item.energy < mood.energy:
        score += 10.0
    elif mood.trend is Trend.STABLE:
        score += 5.0

    return max(0.0, min(100.0, score))


def describe_choice(
    item: CatalogItem,
    mood: MoodState,
    current_item: CatalogItem | None = None,
) -> str:
    parts: list[str] = []

    energy_diff = abs(item.energy - mood.energy)
    if energy_diff < 0.1:
        parts.append("perfect energy match")
    elif energy_diff < 0.2:
        parts.append("good energy match")

    if current_item is not None:
        ratio = item.bpm / current_item.bpm
        if abs(ratio - 1.0) < 0.05:
            parts.append("matching BPM")
        elif abs(ratio - 2.0) < 0.1 or abs(ratio - 0.5) < 0.1:
            parts.append("compatible tempo")

    parts.append(f"{mood.level.value} mood")
    return ", ".join(parts)


# ── Selector ──────────────────────────────────────────────────


class CatalogSelector:
    """Stateful selector: owns the :class:`PlayHistory` and the RNG.

    Parameters
    ----------
    catalog : Catalog
        Items to choose from; never mutated.
    options : SelectorOptions
        Tolerances, history size and key weight.
    rng : random.Random
        Source of randomness for the pool pick and the fallback tier.
        Inject a seeded instance for reproducible selections.
    """

    def __init__(
        self,
        catalog: Catalog,
        options: SelectorOptions | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._catalog = catalog
        self._options = options or SelectorOptions()
        self._rng = rng or random.Random()
        self._history = PlayHistory(self._options.history_size)

    @property
    def catalog(self) -> Catalog:
        return self._catalog

    @property
    def options(self) -> SelectorOptions:
        return self._options

    # ── History ───────────────────────────────────────────────

    def record_play(self, item_id: str) -> None:
        self._history.record(item_id)

    def clear_history(self) -> None:
        self._history.clear()

    def history(self) -> list[str]:
        """Recently played ids, newest first (a copy)."""
        return self._history.snapshot()

    # ── Selection ─────────────────────────────────────────────

    def select_next(
        self,
        mood: MoodState,
        current_item: CatalogItem | None = None,
    ) -> SelectionResult | None:
        """Choose the next item, or ``None`` when the catalog is empty."""
        if len(self._catalog) == 0:
            logger.warning("selector.empty_catalog")
            return None

        tier, pool = self._ranked_pool(mood, current_item)
        if not pool:
            return self._fallback(mood)

        item, score = self._rng.choice(pool)
        reason = describe_choice(item, mood, current_item)
        if tier == 2:
            reason += ", relaxed search"

        logger.debug(
            "selector.selected",
            item_id=item.id,
            score=round(score, 1),
            tier=tier,
            pool=[i.id for i, _ in pool],
        )
        return SelectionResult(item=item, reason=reason, score=score, tier=tier)

    def candidate_pool(
        self,
        mood: MoodState,
        current_item: CatalogItem | None = None,
    ) -> list[CatalogItem]:
        """The pool :meth:`select_next` would pick from (empty in the fallback tier)."""
        _, pool = self._ranked_pool(mood, current_item)
        return [item for item, _ in pool]

    # ── Tiers ─────────────────────────────────────────────────

    def _ranked_pool(
        self,
        mood: MoodState,
        current_item: CatalogItem | None,
    ) -> tuple[int, list[tuple[CatalogItem, float]]]:
        candidates = self._mood_candidates(mood, current_item)
        tier = 1
        if not candidates:
            candidates = self._relaxed_candidates(mood)
            tier = 2
        if not candidates:
            return 3, []

        scored = [
            (item, score_item(item, mood, current_item, self._options.key_weight))
            for item in candidates
        ]
        scored.sort(key=lambda pair: (-pair[1], pair[0].id))
        size = min(_POOL_MAX, math.ceil(len(scored) * _POOL_FRACTION))
        return tier, scored[:size]

    def _mood_candidates(self, mood: MoodState, current_item: CatalogItem | None) -> list[CatalogItem]:
        band = MOOD_ENERGY_RANGES[mood.level]
        tolerance = self._options.energy_tolerance
        low = max(band.low, mood.energy - tolerance)
        high = min(band.high, mood.energy + tolerance)

        candidates = [
            item for item in self._catalog.in_energy_range(low, high) if item.id not in self._history
        ]

        if current_item is not None and self._options.prefer_similar_bpm:
            bpm_low = current_item.bpm * (1.0 - self._options.bpm_tolerance)
            bpm_high = current_item.bpm * (1.0 + self._options.bpm_tolerance)
            narrowed = [item for item in candidates if bpm_low <= item.bpm <= bpm_high]
            if len(narrowed) >= _MIN_BPM_CANDIDATES:
                candidates = narrowed

        return candidates

    def _relaxed_candidates(self, mood: MoodState) -> list[CatalogItem]:
        low = max(0.0, mood.energy - _RELAXED_ENERGY_SPAN)
        high = min(1.0, mood.energy + _RELAXED_ENERGY_SPAN)
        recent = set(self._history.recent(_RELAXED_HISTORY_WINDOW))
        return [item for item in self._catalog.in_energy_range(low, high) if item.id not in recent]

    def _fallback(self, mood: MoodState) -> SelectionResult:
        items = self._catalog.all()
        fresh = [item for item in items if item.id not in self._history]
        item = self._rng.choice(fresh or items)
        logger.warning(
            "selector.degraded",
            item_id=item.id,
            mood=mood.level.value,
            energy=round(mood.energy, 3),
            history_size=len(self._history),
        )
        return SelectionResult(item=item, reason=FALLBACK_REASON, score=0.0, tier=3)
