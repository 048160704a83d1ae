"""Tests for settings, tunables and shared models."""

import pytest
from pydantic import ValidationError

from reactive_dj.config import Settings
from reactive_dj.models import (
    ActivitySample,
    CatalogItem,
    ItemEnding,
    KeyMode,
    MusicalKey,
    parse_inbound_event,
)
from reactive_dj.mood.models import MOOD_ENERGY_RANGES, MoodLevel
from reactive_dj.mood.stabilizer import StabilizerOptions
from reactive_dj.selection.selector import SelectorOptions


class TestSettings:
    def test_defaults(self):
        settings = Settings()
        assert settings.smoothing_window_seconds == 5.0
        assert settings.hysteresis_margin == 0.05
        assert settings.cooldown_seconds == 45.0
        assert settings.let_play_threshold < settings.wait_threshold

    def test_outbox_is_always_bounded(self):
        assert Settings().outbox_maxsize == 1_000
        assert Settings(outbox_maxsize=0).outbox_maxsize == 1_000

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("REACTIVE_DJ_COOLDOWN_SECONDS", "60")
        monkeypatch.setenv("REACTIVE_DJ_SIMULATE_PROGRESSION", "false")
        settings = Settings()
        assert settings.cooldown_seconds == 60.0
        assert settings.simulate_progression is False

    def test_out_of_range_values_fall_back(self, monkeypatch):
        monkeypatch.setenv("REACTIVE_DJ_MIN_TRACK_PLAY_SECONDS", "-10")
        monkeypatch.setenv("REACTIVE_DJ_HYSTERESIS_MARGIN", "3")
        settings = Settings()
        assert settings.min_track_play_seconds == 30.0
        assert settings.hysteresis_margin == 0.05


class TestTunables:
    def test_clamped_to_default(self):
        options = StabilizerOptions(margin=-0.1, trend_buffer_size=1, dwell_seconds=-3.0)
        assert options.margin == 0.05
        assert options.trend_buffer_size == 5
        assert options.dwell_seconds == 3.0

    def test_valid_values_kept(self):
        options = SelectorOptions(energy_tolerance=0.2, key_weight=0.0)
        assert options.energy_tolerance == 0.2
        assert options.key_weight == 0.0

    def test_options_are_frozen(self):
        with pytest.raises(ValidationError):
            SelectorOptions().history_size = 3


class TestModels:
    def test_catalog_item_parses_key(self):
        item = CatalogItem(id="x", bpm=128, key="Eb minor", energy=0.6, duration=240)
        assert item.key == MusicalKey(tonic=3, mode=KeyMode.MINOR)
        assert item.label == "x"

    def test_catalog_item_validation(self):
        with pytest.raises(ValidationError):
            CatalogItem(id="x", bpm=0, key="C", energy=0.5, duration=100)
        with pytest.raises(ValidationError):
            CatalogItem(id="x", bpm=120, key="C", energy=1.5, duration=100)
        with pytest.raises(ValidationError):
            CatalogItem(id="x", bpm=120, key="Z", energy=0.5, duration=100)

    def test_parse_inbound_event(self):
        event = parse_inbound_event({"type": "item_ending", "item_id": "a", "remaining_seconds": 12})
        assert isinstance(event, ItemEnding)
        sample = parse_inbound_event(b'{"type": "activity_sample", "value": 55}')
        assert isinstance(sample, ActivitySample)
        assert sample.timestamp is None

    def test_energy_ranges_cover_all_levels(self):
        assert set(MOOD_ENERGY_RANGES) == set(MoodLevel)
        assert MOOD_ENERGY_RANGES[MoodLevel.PEAK].contains(1.0)
