"""SyncRunner — orchestrates source -> normalizer -> reconciler + sync log writes."""

from __future__ import annotations

from collections.abc import AsyncIterator
from datetime import date, datetime, timedelta

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from carnivalsync.core.clock import Clock, SystemClock, today
from carnivalsync.core.config import SyncConfig
from carnivalsync.dao.carnival_dao import CarnivalDAO
from carnivalsync.engines.event_ingestor import observer as actions
from carnivalsync.engines.event_ingestor.errors import (
    NormalizeRejected,
    SourceMalformed,
    SourceError,
)
from carnivalsync.engines.event_ingestor.models import (
    CandidateEvent,
    RawEvent,
    SyncOptions,
    SyncOutcome,
    SyncResult,
)
from carnivalsync.engines.event_ingestor.normalizer import normalize
from carnivalsync.engines.event_ingestor.observer import LoggingObserver, SyncObserver
from carnivalsync.engines.event_ingestor.reconciler import Reconciler
from carnivalsync.engines.event_ingestor.source import SourceRegistry, default_registry
from carnivalsync.models.sync_log import SyncLog
from carnivalsync.services.sync_log_service import SyncLogService

log = structlog.get_logger("carnivalsync.engine")

SYNC_TYPE_PREFIX = "external-events:"
DEADLINE_MESSAGE = "deadline exceeded"


def sync_type_for(source: str) -> str:
    return f"{SYNC_TYPE_PREFIX}{source}"


class SyncRunner:
    """Runs one sync of one source end to end.

    At most one run per ``sync_type`` is in flight inside this process; a
    second concurrent call returns ``already_running`` without touching
    the sync log.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        sync_log_service: SyncLogService,
        carnival_dao: CarnivalDAO,
        config: SyncConfig | None = None,
        *,
        clock: Clock | None = None,
        registry: SourceRegistry | None = None,
        observer: SyncObserver | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._sync_log_service = sync_log_service
        self._carnival_dao = carnival_dao
        self._config = config or SyncConfig()
        self._clock = clock or SystemClock()
        self._registry = registry or default_registry
        self._observer = observer or LoggingObserver()
        self._in_flight: set[str] = set()

    @property
    def config(self) -> SyncConfig:
        return self._config

    def is_running(self, sync_type: str) -> bool:
        return sync_type in self._in_flight

    async def run_sync(
        self, sync_type: str | None = None, options: SyncOptions | None = None
    ) -> SyncResult:
        """Gate, lock, log, fetch, normalize, reconcile, finish the log.

        Failures are returned as a :class:`SyncResult`; with
        ``options.raise_on_failure`` the error is re-raised after the log
        row has been marked failed.
        """
        options = options or SyncOptions()
        sync_type = sync_type or sync_type_for(options.source)

        if not options.force and not await self._is_due(sync_type):
            log.info("ingestor.sync_skipped", sync_type=sync_type, reason="interval")
            return SyncResult(status="skipped", sync_type=sync_type)

        # no await between the check and the add
        if sync_type in self._in_flight:
            log.info("ingestor.sync_already_running", sync_type=sync_type)
            return SyncResult(status="already_running", sync_type=sync_type)
        self._in_flight.add(sync_type)

        try:
            if self._config.advisory_lock and await self._held_elsewhere(sync_type):
                log.info("ingestor.sync_already_running", sync_type=sync_type, advisory=True)
                return SyncResult(status="already_running", sync_type=sync_type)
            return await self._run_locked(sync_type, options)
        finally:
            self._in_flight.discard(sync_type)

    # ── internal ───────────────────────────────────────────────────────────

    async def _is_due(self, sync_type: str) -> bool:
        async with self._session_factory() as session:
            async with session.begin():
                return await self._sync_log_service.should_run_sync(
                    session, sync_type, self._config.sync_interval_hours
                )

    async def _held_elsewhere(self, sync_type: str) -> bool:
        since = self._clock.now() - timedelta(seconds=self._config.sync_deadline_seconds)
        async with self._session_factory() as session:
            async with session.begin():
                rows = await self._sync_log_service.in_flight(session, sync_type, since)
        return bool(rows)

    async def _run_locked(self, sync_type: str, options: SyncOptions) -> SyncResult:
        deadline = options.deadline or (
            self._clock.now() + timedelta(seconds=self._config.sync_deadline_seconds)
        )
        run_metadata = {"source": options.source, "triggerSource": options.trigger_source}

        async with self._session_factory() as session:
            async with session.begin():
                sync_log = await self._sync_log_service.start_sync(
                    session, sync_type, run_metadata
                )

        structlog.contextvars.bind_contextvars(
            sync_type=sync_type, sync_log_id=str(sync_log.id)
        )
        self._observer.begin(sync_type, sync_log.id)
        log.info(
            "ingestor.sync_started",
            source=options.source,
            trigger_source=options.trigger_source,
            deadline=deadline.isoformat(),
        )

        outcome = SyncOutcome()
        try:
            adapter = self._registry.get(options.source)
            reconciler = Reconciler(self._carnival_dao, self._clock, self._observer)
            candidates = self._candidates(adapter.fetch(deadline), today(self._clock), outcome)
            await reconciler.reconcile(
                self._session_factory,
                options.source,
                candidates,
                deadline=deadline,
                outcome=outcome,
            )
        except Exception as exc:
            status = (
                "source_unavailable"
                if isinstance(exc, SourceError) and not isinstance(exc, SourceMalformed)
                else "failed"
            )
            error = str(exc) or type(exc).__name__
            log.error(
                "ingestor.sync_failed",
                status=status,
                error=error,
                error_type=type(exc).__name__,
            )
            try:
                await self._finish(sync_log, outcome, run_metadata, error=error)
            except Exception as store_exc:
                return self._log_write_failed(sync_type, sync_log, outcome, options, store_exc)
            result = SyncResult(
                status=status,
                sync_type=sync_type,
                outcome=outcome,
                sync_log_id=sync_log.id,
                error=error,
            )
            self._end(result)
            if options.raise_on_failure:
                raise
            return result

        error = DEADLINE_MESSAGE if outcome.partial else None
        try:
            await self._finish(sync_log, outcome, run_metadata, error=error)
        except Exception as store_exc:
            return self._log_write_failed(sync_type, sync_log, outcome, options, store_exc)

        result = SyncResult(
            status="partial" if outcome.partial else "completed",
            sync_type=sync_type,
            outcome=outcome,
            sync_log_id=sync_log.id,
            error=error,
        )
        if not outcome.partial:
            log.info("ingestor.sync_completed", **outcome.counters())
        self._end(result)
        return result

    def _log_write_failed(
        self,
        sync_type: str,
        sync_log: SyncLog,
        outcome: SyncOutcome,
        options: SyncOptions,
        exc: Exception,
    ) -> SyncResult:
        """The terminal sync log write failed; the run is reported as failed."""
        error = f"sync log update failed: {str(exc) or type(exc).__name__}"
        log.error("ingestor.sync_log_update_failed", error=error, error_type=type(exc).__name__)
        result = SyncResult(
            status="failed",
            sync_type=sync_type,
            outcome=outcome,
            sync_log_id=sync_log.id,
            error=error,
        )
        self._end(result)
        if options.raise_on_failure:
            raise exc
        return result

    async def _candidates(
        self,
        raws: AsyncIterator[RawEvent],
        run_day: date,
        outcome: SyncOutcome,
    ) -> AsyncIterator[CandidateEvent]:
        """Normalize lazily; rejected records are counted, never raised."""
        try:
            async for raw in raws:
                try:
                    yield normalize(raw, today=run_day)
                except NormalizeRejected as exc:
                    outcome.reject(exc.title or raw.title, exc.reason)
                    self._observer.record(raw.external_id, actions.REJECTED)
                    log.info(
                        "ingestor.record_rejected",
                        external_id=raw.external_id,
                        title=exc.title or raw.title,
                        reason=exc.reason,
                    )
        finally:
            aclose = getattr(raws, "aclose", None)
            if aclose is not None:
                await aclose()

    async def _finish(
        self,
        sync_log: SyncLog,
        outcome: SyncOutcome,
        run_metadata: dict,
        error: str | None = None,
    ) -> None:
        metadata = {**run_metadata, **outcome.metadata()}
        async with self._session_factory() as session:
            async with session.begin():
                if error is None:
                    await self._sync_log_service.mark_completed(
                        session, sync_log, outcome, metadata
                    )
                else:
                    await self._sync_log_service.mark_failed(
                        session, sync_log, error, outcome, metadata
                    )

    def _end(self, result: SyncResult) -> None:
        self._observer.end(result)
        structlog.contextvars.unbind_contextvars("sync_type", "sync_log_id")


async def run_sources(
    runner: SyncRunner,
    sources: list[str],
    *,
    force: bool = False,
    trigger_source: str = "manual",
    deadline: datetime | None = None,
) -> list[SyncResult]:
    """Run each source in turn (operator entry point)."""
    results = []
    for source in sources:
        results.append(
            await runner.run_sync(
                options=SyncOptions(
                    source=source, force=force, trigger_source=trigger_source, deadline=deadline
                )
            )
        )
    return results


def exit_code_for(results: list[SyncResult]) -> int:
    """First non-zero exit code, else 0."""
    for result in results:
        if result.exit_code != 0:
            return result.exit_code
    return 0
