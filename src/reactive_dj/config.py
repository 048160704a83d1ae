"""Centralised application settings loaded from environment / .env file."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any, ClassVar, Literal

from pydantic import ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from reactive_dj.tunables import (
    NON_NEGATIVE,
    POSITIVE,
    SCORE_RANGE,
    UNIT_INTERVAL,
    Bounds,
    clamp_to_default,
)

_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent


class Settings(BaseSettings):
    """All runtime configuration for the reactive DJ engine.

    Values are read from environment variables first, then from a *.env* file
    located at the project root.  Every variable lives in the flat
    ``REACTIVE_DJ_`` namespace, e.g. ``REACTIVE_DJ_COOLDOWN_SECONDS=60``.

    Out-of-range values fall back to the default below instead of failing
    start-up (see :mod:`reactive_dj.tunables`).
    """

    model_config = SettingsConfigDict(
        env_prefix="REACTIVE_DJ_",
        env_file=str(_PROJECT_ROOT / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Logging ───────────────────────────────────────────────
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # ── Activity smoothing ────────────────────────────────────
    smoothing_window_seconds: float = 5.0
    sampling_period_seconds: float = 0.1  # vision collaborator runs at ~10 fps
    energy_curve_exponent: float = 0.8

    # ── Mood stabilizer ───────────────────────────────────────
    hysteresis_margin: float = 0.05
    hysteresis_seconds: float = 3.0
    min_energy_change: float = 0.05
    trend_buffer_size: int = 5
    trend_threshold: float = 0.05
    stale_timeout_seconds: float = 10.0

    # ── Fallback simulator ────────────────────────────────────
    simulator_interval_seconds: float = 2.0
    simulator_max_drift: float = 0.08
    simulator_initial_energy: float = 0.35
    simulator_cycle_seconds: float = 600.0
    simulate_progression: bool = True

    # ── Catalog selection ─────────────────────────────────────
    history_size: int = 10
    energy_tolerance: float = 0.15
    bpm_tolerance: float = 0.15
    prefer_similar_bpm: bool = True
    key_weight: float = 20.0

    # ── Transition evaluation ─────────────────────────────────
    reactivity_enabled: bool = True
    evaluation_interval_seconds: float = 3.0
    min_track_play_seconds: float = 30.0
    cooldown_seconds: float = 45.0
    crossfade_seconds: float = 8.0
    let_play_threshold: float = 30.0
    wait_threshold: float = 60.0
    wait_seconds: float = 5.0

    # ── Playback / transport ──────────────────────────────────
    log_mood_broadcasts: bool = False
    event_queue_maxsize: int = 10_000
    outbox_maxsize: int = 1_000

    field_bounds: ClassVar[dict[str, Bounds]] = {
        "smoothing_window_seconds": POSITIVE,
        "sampling_period_seconds": POSITIVE,
        "energy_curve_exponent": POSITIVE,
        "hysteresis_margin": UNIT_INTERVAL,
        "hysteresis_seconds": NON_NEGATIVE,
        "min_energy_change": UNIT_INTERVAL,
        "trend_buffer_size": (3, None),
        "trend_threshold": UNIT_INTERVAL,
        "stale_timeout_seconds": POSITIVE,
        "simulator_interval_seconds": POSITIVE,
        "simulator_max_drift": UNIT_INTERVAL,
        "simulator_initial_energy": UNIT_INTERVAL,
        "simulator_cycle_seconds": POSITIVE,
        "history_size": (0, None),
        "energy_tolerance": UNIT_INTERVAL,
        "bpm_tolerance": UNIT_INTERVAL,
        "key_weight": SCORE_RANGE,
        "evaluation_interval_seconds": POSITIVE,
        "min_track_play_seconds": NON_NEGATIVE,
        "cooldown_seconds": NON_NEGATIVE,
        "crossfade_seconds": NON_NEGATIVE,
        "let_play_threshold": SCORE_RANGE,
        "wait_threshold": SCORE_RANGE,
        "wait_seconds": POSITIVE,
        "event_queue_maxsize": (0, None),
        "outbox_maxsize": (1, None),
    }

    @field_validator("*", mode="after")
    @classmethod
    def clamp_out_of_range(cls, value: Any, info: ValidationInfo) -> Any:
        return clamp_to_default(cls, info.field_name, value, cls.field_bounds.get(info.field_name))


@lru_cache
def get_settings() -> Settings:
    """Return a cached :class:`Settings` singleton."""
    return Settings()
