"""Activity smoothing — windowed aggregation and confidence estimation.

This module turns the raw :class:`ActivitySample` stream delivered by the
vision collaborator into a smoothed energy value and a trust score.

Key responsibilities
--------------------
1. **Time-windowed buffer** — keep only samples newer than ``now - W``.
2. **Recency weighting** — newer samples weigh more; weight decays
   linearly to zero at the window edge.
3. **Energy curve** — map the 0–100 activity percentage to 0–1 and apply a
   concave curve so mid-range activity is more responsive than a linear map.
4. **Confidence** — combine sample density with consistency (low spread ⇒
   more trustworthy).
"""

from __future__ import annotations

import statistics
from typing import ClassVar, Sequence

import structlog

from reactive_dj.models import ActivitySample
from reactive_dj.tunables import POSITIVE, Bounds, Tunables

logger = structlog.get_logger(__name__)

# ── Constants ─────────────────────────────────────────────────

_MIN_CONSISTENCY = 0.3
_STDDEV_SCALE = 50.0  # a 50-point spread means "no consistency"
_SPARSE_CONFIDENCE = 0.5  # fewer than 2 samples


class SmootherOptions(Tunables):
    """Options shared by :class:`ActivitySmoother` and :class:`ConfidenceEstimator`."""

    window_seconds: float = 5.0
    sampling_period_seconds: float = 0.1
    curve_exponent: float = 0.8

    field_bounds: ClassVar[dict[str, Bounds]] = {
        "window_seconds": POSITIVE,
        "sampling_period_seconds": POSITIVE,
        "curve_exponent": POSITIVE,
    }

    @property
    def expected_max_samples(self) -> float:
        return self.window_seconds / self.sampling_period_seconds


# ── Pure helpers ──────────────────────────────────────────────


def weighted_activity(samples: Sequence[ActivitySample], now: float, window_seconds: float) -> float:
    """Recency-weighted mean activity percentage (0–100).

    Weight is ``1 - age / window``; samples at or beyond the window edge get
    no weight.  Returns ``0.0`` when nothing carries weight.
    """
    weighted_sum = 0.0
    weight_sum = 0.0
    for sample in samples:
        age = max(0.0, now - sample.timestamp)
        weight = 1.0 - age / window_seconds
        if weight <= 0.0:
            continue
        weighted_sum += sample.value * weight
        weight_sum += weight
    return weighted_sum / weight_sum if weight_sum > 0 else 0.0


def activity_to_energy(percentage: float, exponent: float = 0.8) -> float:
    """Normalise a 0–100 percentage to 0–1 and apply the concave curve."""
    normalised = max(0.0, min(1.0, percentage / 100.0))
    return min(1.0, max(0.0, normalised**exponent))


# ── Smoother ──────────────────────────────────────────────────


class ActivitySmoother:
    """Sliding-window, recency-weighted smoother for activity samples.

    Every :meth:`add` prunes samples older than the window (relative to the
    new sample's timestamp) and recomputes the smoothed energy.
    """

    def __init__(self, options: SmootherOptions | None = None) -> None:
        self._options = options or SmootherOptions()
        self._window: list[ActivitySample] = []
        self._energy = 0.0
        self._smoothed_percentage = 0.0
        self._last_raw: float | None = None

    @property
    def options(self) -> SmootherOptions:
        return self._options

    def add(self, sample: ActivitySample) -> float:
        """Append *sample*, prune the window and return the smoothed energy."""
        if sample.timestamp is None:
            raise ValueError("ActivitySample.timestamp must be set before smoothing")

        now = sample.timestamp
        cutoff = now - self._options.window_seconds
        self._window.append(sample)
        self._window = [s for s in self._window if s.timestamp > cutoff]

        self._last_raw = sample.value
        self._smoothed_percentage = weighted_activity(self._window, now, self._options.window_seconds)
        self._energy = activity_to_energy(self._smoothed_percentage, self._options.curve_exponent)
        return self._energy

    def reset(self) -> None:
        self._window.clear()
        self._energy = 0.0
        self._smoothed_percentage = 0.0
        self._last_raw = None

    @property
    def energy(self) -> float:
        return self._energy

    @property
    def smoothed_percentage(self) -> float:
        return self._smoothed_percentage

    @property
    def last_raw(self) -> float | None:
        return self._last_raw

    @property
    def window(self) -> list[ActivitySample]:
        """Copy of the samples currently inside the window."""
        return list(self._window)


# ── Confidence ────────────────────────────────────────────────


class ConfidenceEstimator:
    """Score how trustworthy a sample window is.

    ``confidence = data_confidence * consistency_confidence`` where data
    confidence grows with sample count up to the number of samples the
    window can hold at the nominal sampling period, and consistency
    confidence falls with the population standard deviation.  Results for
    two or more samples are kept within ``[0.3, 1]``.
    """

    def __init__(self, options: SmootherOptions | None = None) -> None:
        self._options = options or SmootherOptions()

    def estimate(self, samples: Sequence[ActivitySample]) -> float:
        if len(samples) < 2:
            return _SPARSE_CONFIDENCE

        data_confidence = min(1.0, len(samples) / self._options.expected_max_samples)

        values = [s.value for s in samples]
        spread = statistics.pstdev(values)
        consistency_confidence = max(_MIN_CONSISTENCY, 1.0 - spread / _STDDEV_SCALE)

        confidence = data_confidence * consistency_confidence
        return max(_MIN_CONSISTENCY, min(1.0, confidence))
