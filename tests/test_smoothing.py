"""Tests for activity smoothing and confidence estimation."""

import random

import pytest

from reactive_dj.models import ActivitySample
from reactive_dj.mood.smoothing import (
    ActivitySmoother,
    ConfidenceEstimator,
    SmootherOptions,
    activity_to_energy,
    weighted_activity,
)


def _samples(values, start=0.0, step=0.1):
    return [ActivitySample(value=v, timestamp=start + i * step) for i, v in enumerate(values)]


class TestActivitySmoother:
    def test_constant_signal_maps_through_curve(self):
        smoother = ActivitySmoother()
        for sample in _samples([20.0] * 5):
            energy = smoother.add(sample)
        assert energy == pytest.approx(0.2**0.8, abs=1e-9)
        assert energy == pytest.approx(0.276, abs=1e-3)

    def test_zero_activity_is_zero_energy(self):
        smoother = ActivitySmoother()
        assert smoother.add(ActivitySample(value=0.0, timestamp=1.0)) == 0.0

    def test_full_activity_is_full_energy(self):
        smoother = ActivitySmoother()
        assert smoother.add(ActivitySample(value=100.0, timestamp=1.0)) == pytest.approx(1.0)

    def test_old_samples_are_pruned(self):
        smoother = ActivitySmoother(SmootherOptions(window_seconds=5.0))
        smoother.add(ActivitySample(value=90.0, timestamp=0.0))
        smoother.add(ActivitySample(value=10.0, timestamp=5.0))
        # The first sample sits exactly on the window edge and is dropped
        assert [s.value for s in smoother.window] == [10.0]
        assert smoother.smoothed_percentage == pytest.approx(10.0)

    def test_newer_samples_weigh_more(self):
        smoother = ActivitySmoother(SmootherOptions(window_seconds=5.0))
        smoother.add(ActivitySample(value=0.0, timestamp=0.0))
        smoother.add(ActivitySample(value=100.0, timestamp=4.0))
        # weights: 1 - 4/5 = 0.2 for the old sample, 1.0 for the new one
        assert smoother.smoothed_percentage == pytest.approx(100.0 / 1.2)

    def test_window_is_a_copy(self):
        smoother = ActivitySmoother()
        smoother.add(ActivitySample(value=50.0, timestamp=0.0))
        smoother.window.clear()
        assert len(smoother.window) == 1

    def test_last_raw_and_reset(self):
        smoother = ActivitySmoother()
        smoother.add(ActivitySample(value=42.0, timestamp=0.0))
        assert smoother.last_raw == 42.0
        smoother.reset()
        assert smoother.last_raw is None
        assert smoother.energy == 0.0
        assert smoother.window == []

    def test_missing_timestamp_rejected(self):
        with pytest.raises(ValueError):
            ActivitySmoother().add(ActivitySample(value=10.0))

    def test_energy_always_in_unit_interval(self):
        rng = random.Random(11)
        smoother = ActivitySmoother()
        t = 0.0
        for _ in range(500):
            t += rng.uniform(0.0, 2.0)
            energy = smoother.add(ActivitySample(value=rng.uniform(-50, 150), timestamp=t))
            assert 0.0 <= energy <= 1.0


class TestHelpers:
    def test_weighted_activity_empty(self):
        assert weighted_activity([], now=10.0, window_seconds=5.0) == 0.0

    def test_activity_to_energy_clamps(self):
        assert activity_to_energy(-10.0) == 0.0
        assert activity_to_energy(250.0) == 1.0

    def test_sample_value_is_clamped(self):
        assert ActivitySample(value=120.0, timestamp=0.0).value == 100.0
        assert ActivitySample(value=-3.0, timestamp=0.0).value == 0.0


class TestConfidenceEstimator:
    def test_sparse_window_is_half(self):
        estimator = ConfidenceEstimator()
        assert estimator.estimate([]) == 0.5
        assert estimator.estimate(_samples([30.0])) == 0.5

    def test_full_consistent_window_is_fully_trusted(self):
        estimator = ConfidenceEstimator(SmootherOptions(window_seconds=5.0, sampling_period_seconds=0.1))
        assert estimator.estimate(_samples([40.0] * 50)) == pytest.approx(1.0)

    def test_sparse_consistent_window_is_floored(self):
        estimator = ConfidenceEstimator()
        # 2 of 50 expected samples: 0.04 data confidence, floored to 0.3
        assert estimator.estimate(_samples([40.0, 40.0])) == pytest.approx(0.3)

    def test_spread_lowers_confidence(self):
        estimator = ConfidenceEstimator()
        steady = estimator.estimate(_samples([50.0] * 50))
        noisy = estimator.estimate(_samples([10.0, 90.0] * 25))
        assert noisy < steady

    def test_confidence_bounds_hold(self):
        rng = random.Random(3)
        estimator = ConfidenceEstimator()
        for _ in range(200):
            n = rng.randint(2, 80)
            values = [rng.uniform(0, 100) for _ in range(n)]
            confidence = estimator.estimate(_samples(values))
            assert 0.3 <= confidence <= 1.0


class TestSmootherOptions:
    def test_expected_max_samples(self):
        assert SmootherOptions().expected_max_samples == pytest.approx(50.0)

    def test_bad_values_fall_back_to_defaults(self):
        options = SmootherOptions(window_seconds=-1.0, sampling_period_seconds=0.0)
        assert options.window_seconds == 5.0
        assert options.sampling_period_seconds == 0.1
