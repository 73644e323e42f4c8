"""Periodic sync trigger: one asyncio loop per configured source.

Each loop wakes every ``SYNC_POLL_SECONDS`` (or immediately when its
``trigger`` event is set) and asks the runner for a scheduled sync. The
runner's interval gate decides whether anything is actually due, so a short
poll period does not mean frequent syncs.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Awaitable, Callable

import structlog

from carnivalsync.core.config import SyncConfig
from carnivalsync.engines.event_ingestor.models import SyncOptions
from carnivalsync.engines.event_ingestor.runner import SyncRunner

logger = structlog.get_logger("carnivalsync.scheduler")


class EngineLoop:
    def __init__(self, name: str, run_fn: Callable[[], Awaitable[int]], interval: float) -> None:
        self.name = name
        self.run_fn = run_fn
        self.interval = interval
        self.trigger = asyncio.Event()

    async def _wait(self) -> None:
        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(self.trigger.wait(), timeout=self.interval)
        self.trigger.clear()

    async def loop(self) -> None:
        """Never returns; a failing cycle is logged and the loop carries on."""
        while True:
            await self._wait()
            try:
                processed = await self.run_fn()
            except Exception:
                logger.exception("scheduler.cycle_failed", loop=self.name)
            else:
                logger.info("scheduler.cycle", loop=self.name, processed=processed)


class Scheduler:
    def __init__(self, loops: list[EngineLoop]) -> None:
        self._loops = loops
        self._tasks: list[asyncio.Task[None]] = []

    @property
    def loops(self) -> list[EngineLoop]:
        return list(self._loops)

    async def start(self) -> None:
        """Spawn every loop and fire its first cycle straight away."""
        for engine_loop in self._loops:
            engine_loop.trigger.set()
            self._tasks.append(asyncio.create_task(engine_loop.loop(), name=engine_loop.name))
        logger.info("scheduler.started", loops=[engine_loop.name for engine_loop in self._loops])

    async def stop(self) -> None:
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("scheduler.stopped")


def create_scheduler(runner: SyncRunner, config: SyncConfig) -> Scheduler:
    def scheduled_sync(source: str) -> Callable[[], Awaitable[int]]:
        options = SyncOptions(source=source, trigger_source="scheduled")

        async def _run() -> int:
            result = await runner.run_sync(options=options)
            return result.outcome.processed if result.outcome is not None else 0

        return _run

    return Scheduler(
        [
            EngineLoop(f"sync-{source}", scheduled_sync(source), config.poll_seconds)
            for source in config.source_names
        ]
    )
