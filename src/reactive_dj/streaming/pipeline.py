"""Async event pipeline connecting the transport → session orchestrator."""

from __future__ import annotations

import asyncio
import time
from typing import Any, Callable

import structlog
from pydantic import ValidationError

from reactive_dj.models import ActivitySample, ItemEnded, ItemEnding, ItemStarted, parse_inbound_event

logger = structlog.get_logger(__name__)

Event = ActivitySample | ItemStarted | ItemEnding | ItemEnded


class EventPipeline:
    """In-process async pipeline that buffers inbound events and forwards
    them, one at a time, to registered consumers (normally
    :meth:`SessionOrchestrator.handle_event`).

    The pipeline decouples the transport (producer) from the engine using an
    :class:`asyncio.Queue`, so the engine only ever sees one event at a time.
    """

    def __init__(self, maxsize: int = 10_000) -> None:
        self._queue: asyncio.Queue[Event] = asyncio.Queue(maxsize=maxsize)
        self._consumers: list[Callable[[Event], object]] = []
        self._running = False
        self._processed_total = 0
        self._rejected_total = 0

    # ── Configuration ─────────────────────────────────────────

    def add_consumer(self, fn: Callable[[Event], object]) -> None:
        """Register a synchronous callback that receives every event."""
        self._consumers.append(fn)

    # ── Producer side ─────────────────────────────────────────

    async def publish(self, event: Event) -> None:
        """Enqueue an event, waiting for room if the queue is full."""
        await self._queue.put(event)

    def publish_nowait(self, event: Event) -> bool:
        """Enqueue without waiting.  Return ``False`` if the queue is full."""
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.warning("event_pipeline.queue_full", event=event.type)
            return False
        return True

    async def publish_raw(self, payload: dict[str, Any] | str | bytes) -> bool:
        """Validate a transport payload and enqueue it.

        Malformed or unknown payloads are logged and dropped.
        """
        try:
            event = parse_inbound_event(payload)
        except ValidationError as exc:
            self._rejected_total += 1
            logger.warning("event_pipeline.invalid_payload", errors=exc.error_count())
            return False
        await self.publish(event)
        return True

    # ── Consumer loop ─────────────────────────────────────────

    async def start(self) -> None:
        """Start the consumer loop (run as a background task)."""
        self._running = True
        logger.info("event_pipeline.started", consumers=len(self._consumers))

        last_stats_time = time.monotonic()

        while self._running:
            try:
                event = await asyncio.wait_for(self._queue.get(), timeout=1.0)
            except asyncio.TimeoutError:
                continue

            for consumer in self._consumers:
                try:
                    consumer(event)
                except Exception:
                    logger.exception(
                        "event_pipeline.consumer_error",
                        consumer=getattr(consumer, "__qualname__", repr(consumer)),
                        event=event.type,
                    )

            self._processed_total += 1
            self._queue.task_done()

            # Periodic stats every 60 seconds
            now = time.monotonic()
            if now - last_stats_time >= 60:
                logger.info(
                    "event_pipeline.stats",
                    processed_total=self._processed_total,
                    rejected_total=self._rejected_total,
                    queue_pending=self._queue.qsize(),
                )
                last_stats_time = now

    async def stop(self) -> None:
        """Gracefully stop the consumer loop."""
        self._running = False
        logger.info("event_pipeline.stopped", processed_total=self._processed_total)

    async def join(self) -> None:
        """Wait until every queued event has been handed to the consumers."""
        await self._queue.join()

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    @property
    def processed_total(self) -> int:
        return self._processed_total

    @property
    def running(self) -> bool:
        return self._running
