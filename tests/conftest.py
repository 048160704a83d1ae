"""Shared pytest fixtures."""

from __future__ import annotations

import random

import pytest

from reactive_dj.models import CatalogItem
from reactive_dj.mood.models import MoodLevel, MoodState, Trend
from reactive_dj.playback.commands import PlaybackCommand
from reactive_dj.playback.handlers import CallbackHandler, LogHandler, PlaybackDispatcher
from reactive_dj.scheduler.tasks import ManualTaskScheduler
from reactive_dj.selection.catalog import Catalog
from reactive_dj.session.orchestrator import SessionOrchestrator


def make_item(item_id: str, energy: float, bpm: float = 124.0, key: str = "Am", duration: float = 300.0) -> CatalogItem:
    return CatalogItem(
        id=item_id,
        bpm=bpm,
        key=key,
        energy=energy,
        duration=duration,
        title=f"Track {item_id}",
        artist="Test Artist",
    )


def make_mood(
    energy: float,
    level: MoodLevel = MoodLevel.ENERGETIC,
    trend: Trend = Trend.STABLE,
    confidence: float = 1.0,
) -> MoodState:
    return MoodState(level=level, energy=energy, trend=trend, confidence=confidence)


@pytest.fixture
def catalog_items() -> list[CatalogItem]:
    return [
        make_item("chill-1", 0.10, bpm=100, key="C"),
        make_item("chill-2", 0.18, bpm=102, key="Am"),
        make_item("warm-1", 0.30, bpm=118, key="G"),
        make_item("warm-2", 0.35, bpm=120, key="Em"),
        make_item("warm-3", 0.40, bpm=122, key="D"),
        make_item("mid-1", 0.50, bpm=124, key="Am"),
        make_item("mid-2", 0.55, bpm=125, key="A"),
        make_item("mid-3", 0.60, bpm=126, key="F#m"),
        make_item("high-1", 0.75, bpm=128, key="Bm"),
        make_item("high-2", 0.85, bpm=130, key="E"),
        make_item("high-3", 0.95, bpm=140, key="C#m"),
    ]


@pytest.fixture
def catalog(catalog_items: list[CatalogItem]) -> Catalog:
    return Catalog(catalog_items)


@pytest.fixture
def scheduler() -> ManualTaskScheduler:
    return ManualTaskScheduler()


@pytest.fixture
def sent_commands() -> list[PlaybackCommand]:
    return []


@pytest.fixture
def dispatcher(sent_commands: list[PlaybackCommand]) -> PlaybackDispatcher:
    return PlaybackDispatcher(handlers=[LogHandler(), CallbackHandler(sent_commands.append, name="recorder")])


@pytest.fixture
def orchestrator(
    catalog: Catalog,
    scheduler: ManualTaskScheduler,
    dispatcher: PlaybackDispatcher,
) -> SessionOrchestrator:
    return SessionOrchestrator(
        catalog,
        scheduler=scheduler,
        dispatcher=dispatcher,
        rng=random.Random(7),
    )
