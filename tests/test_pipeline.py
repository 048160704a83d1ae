"""Tests for the inbound event pipeline."""

import asyncio

import pytest

from reactive_dj.models import ActivitySample, ItemStarted
from reactive_dj.streaming.pipeline import EventPipeline


@pytest.mark.asyncio
async def test_pipeline_publish_and_consume():
    """Events published to the pipeline reach registered consumers."""
    received = []

    pipeline = EventPipeline()
    pipeline.add_consumer(received.append)

    # Start pipeline in background
    task = asyncio.create_task(pipeline.start())

    await pipeline.publish(ActivitySample(value=40.0, timestamp=1.0))

    # Give the consumer loop time to process
    await asyncio.sleep(0.2)
    await pipeline.stop()
    task.cancel()

    assert len(received) == 1
    assert received[0].value == 40.0


@pytest.mark.asyncio
async def test_pipeline_raw_payloads():
    received = []

    pipeline = EventPipeline()
    pipeline.add_consumer(received.append)
    task = asyncio.create_task(pipeline.start())

    assert await pipeline.publish_raw({"type": "item_started", "item_id": "a"}) is True
    assert await pipeline.publish_raw('{"type": "activity_sample", "value": 12.5}') is True
    assert await pipeline.publish_raw({"type": "mystery"}) is False
    assert await pipeline.publish_raw({"type": "item_ending", "item_id": "a", "remaining_seconds": -1}) is False

    await pipeline.join()
    await pipeline.stop()
    task.cancel()

    assert isinstance(received[0], ItemStarted)
    assert isinstance(received[1], ActivitySample)
    assert len(received) == 2


@pytest.mark.asyncio
async def test_failing_consumer_is_isolated():
    received = []

    def broken(_event):
        raise RuntimeError("consumer down")

    pipeline = EventPipeline()
    pipeline.add_consumer(broken)
    pipeline.add_consumer(received.append)
    task = asyncio.create_task(pipeline.start())

    for i in range(3):
        await pipeline.publish(ActivitySample(value=float(i), timestamp=float(i)))

    await pipeline.join()
    await pipeline.stop()
    task.cancel()

    assert len(received) == 3
    assert pipeline.processed_total == 3


@pytest.mark.asyncio
async def test_publish_nowait_full_queue():
    pipeline = EventPipeline(maxsize=1)
    assert pipeline.publish_nowait(ActivitySample(value=1.0)) is True
    assert pipeline.publish_nowait(ActivitySample(value=2.0)) is False
    assert pipeline.pending == 1


@pytest.mark.asyncio
async def test_pipeline_drives_session(orchestrator):
    """The orchestrator consumes events straight from the pipeline."""
    pipeline = EventPipeline()
    pipeline.add_consumer(orchestrator.handle_event)
    orchestrator.start()
    task = asyncio.create_task(pipeline.start())

    await pipeline.publish(ItemStarted(item_id="mid-1"))
    await pipeline.publish(ActivitySample(value=90.0, timestamp=0.0))
    await pipeline.join()
    await pipeline.stop()
    task.cancel()

    assert orchestrator.current_item.id == "mid-1"
    assert orchestrator.mood_source.value == "sensed"
