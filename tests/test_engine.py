"""Tests for the engine lifecycle wiring."""

import asyncio
import random

import pytest
import structlog

from reactive_dj.config import Settings
from reactive_dj.engine import running_engine
from reactive_dj.logger import session_context
from reactive_dj.models import ActivitySample, LifecycleState
from reactive_dj.mood.models import MoodSourceKind
from reactive_dj.playback.commands import MoodBroadcast, PlayItemCommand, StopCommand


@pytest.mark.asyncio
async def test_engine_routes_events_and_commands(catalog):
    settings = Settings(reactivity_enabled=False)

    async with running_engine(catalog, settings, rng=random.Random(3), configure_logging=False) as engine:
        assert engine.session.state is LifecycleState.PLAYING

        await engine.pipeline.publish_raw({"type": "item_started", "item_id": "mid-1"})
        await engine.pipeline.publish_raw({"type": "activity_sample", "value": 70})
        await engine.pipeline.publish_raw({"type": "item_ending", "item_id": "mid-1", "remaining_seconds": 10})
        await engine.pipeline.join()

        assert engine.session.current_item.id == "mid-1"
        assert engine.session.mood_source is MoodSourceKind.SENSED

        command = await asyncio.wait_for(engine.outbox.get(), timeout=1.0)
        while not isinstance(command, PlayItemCommand):
            command = await asyncio.wait_for(engine.outbox.get(), timeout=1.0)
        assert command.item.id != "mid-1"
        outbox = engine.outbox

    assert engine.session.state is LifecycleState.IDLE
    drained = []
    while not outbox.empty():
        drained.append(outbox.get_nowait())
    assert isinstance(drained[-1], StopCommand)


@pytest.mark.asyncio
async def test_outbox_is_bounded(catalog):
    settings = Settings(reactivity_enabled=False, outbox_maxsize=2)

    async with running_engine(catalog, settings, configure_logging=False) as engine:
        assert engine.outbox.maxsize == 2
        # Samples far apart so each one swings the mood and is broadcast
        for i in range(8):
            await engine.pipeline.publish(ActivitySample(value=100.0 * (i % 2), timestamp=i * 10.0))
        await engine.pipeline.join()

        assert engine.outbox.qsize() == 2
        assert all(isinstance(c, MoodBroadcast) for c in (engine.outbox.get_nowait(), engine.outbox.get_nowait()))


@pytest.mark.asyncio
async def test_session_id_bound_to_log_context(catalog):
    settings = Settings(reactivity_enabled=False)

    async with running_engine(catalog, settings, session_id="club-night", configure_logging=False) as engine:
        assert engine.session_id == "club-night"
        assert structlog.contextvars.get_contextvars()["session_id"] == "club-night"

    assert "session_id" not in structlog.contextvars.get_contextvars()


def test_session_context_restores_previous_values():
    with session_context("outer"):
        with session_context("inner", zone="main"):
            assert structlog.contextvars.get_contextvars() == {"session_id": "inner", "zone": "main"}
        assert structlog.contextvars.get_contextvars() == {"session_id": "outer"}
    assert "session_id" not in structlog.contextvars.get_contextvars()
