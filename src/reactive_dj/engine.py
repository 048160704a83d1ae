"""Engine wiring — build, start and tear down one reactive session.

The transport collaborator owns the process; it enters :func:`running_engine`
on its asyncio loop, publishes inbound payloads into ``engine.pipeline`` and
drains playback commands from ``engine.outbox``::

    async with running_engine(catalog) as engine:
        await engine.pipeline.publish_raw(payload)
        command = await engine.outbox.get()

The outbox is bounded by ``settings.outbox_maxsize``; when the transport
stops draining it, further commands are dropped and logged as
``playback.outbox_full`` instead of piling up.
"""

from __future__ import annotations

import asyncio
import random
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

import structlog

from reactive_dj.config import Settings, get_settings
from reactive_dj.logger import session_context, setup_logging
from reactive_dj.playback.commands import PlaybackCommand
from reactive_dj.playback.handlers import create_dispatcher
from reactive_dj.scheduler.tasks import AsyncioTaskScheduler
from reactive_dj.selection.catalog import Catalog
from reactive_dj.session.orchestrator import SessionOrchestrator
from reactive_dj.streaming.pipeline import EventPipeline

logger = structlog.get_logger(__name__)


@dataclass
class Engine:
    session_id: str
    session: SessionOrchestrator
    pipeline: EventPipeline
    outbox: asyncio.Queue[PlaybackCommand]


@asynccontextmanager
async def running_engine(
    catalog: Catalog,
    settings: Settings | None = None,
    *,
    session_id: str | None = None,
    rng: random.Random | None = None,
    configure_logging: bool = True,
) -> AsyncIterator[Engine]:
    """Startup / shutdown lifecycle for one session.

    Every event logged while the engine runs, including those from timer
    callbacks and the pipeline task, carries ``session_id``.
    """
    settings = settings or get_settings()
    if configure_logging:
        setup_logging(settings.log_level)
    session_id = session_id or uuid.uuid4().hex[:12]

    with session_context(session_id):
        # 1. Playback outbox + dispatcher
        outbox: asyncio.Queue[PlaybackCommand] = asyncio.Queue(maxsize=settings.outbox_maxsize)
        dispatcher = create_dispatcher(settings, outbox)

        # 2. Session
        session = SessionOrchestrator.from_settings(
            catalog,
            settings,
            scheduler=AsyncioTaskScheduler(),
            dispatcher=dispatcher,
            rng=rng,
        )

        # 3. Inbound event pipeline
        pipeline = EventPipeline(maxsize=settings.event_queue_maxsize)
        pipeline.add_consumer(session.handle_event)
        pipeline_task = asyncio.create_task(pipeline.start())

        session.start()
        logger.info("engine.started", catalog_size=len(catalog), outbox_maxsize=settings.outbox_maxsize)

        try:
            yield Engine(session_id=session_id, session=session, pipeline=pipeline, outbox=outbox)
        finally:
            session.stop()
            await pipeline.stop()
            pipeline_task.cancel()
            logger.info("engine.stopped")
