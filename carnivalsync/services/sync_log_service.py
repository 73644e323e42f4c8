"""SyncLogService — append-only audit of sync attempts and the interval gate."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from carnivalsync.core.clock import Clock, SystemClock
from carnivalsync.dao.base import Page
from carnivalsync.dao.sync_log_dao import SyncLogDAO
from carnivalsync.models.sync_log import SYNC_COMPLETED, SYNC_FAILED, SYNC_STARTED, SyncLog
from carnivalsync.services import ConflictError, NotFoundError, ValidationError


class Counters(Protocol):
    """Anything carrying the four sync counters (e.g. ``SyncOutcome``)."""

    processed: int
    created: int
    updated: int
    retired: int


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


class SyncLogService:
    """Stateless service over the sync_logs table.

    A row is created in ``started`` and makes exactly one transition to
    ``completed`` or ``failed``; a second transition raises
    :class:`ConflictError`.
    """

    def __init__(self, sync_log_dao: SyncLogDAO, clock: Clock | None = None) -> None:
        self._dao = sync_log_dao
        self._clock = clock or SystemClock()

    # -- transitions -------------------------------------------------------

    async def start_sync(
        self,
        session: AsyncSession,
        sync_type: str,
        metadata: dict[str, Any] | None = None,
    ) -> SyncLog:
        if not sync_type:
            raise ValidationError("sync_type is required")
        now = self._clock.now()
        return await self._dao.create(
            session,
            sync_type=sync_type,
            status=SYNC_STARTED,
            started_at=now,
            events_processed=0,
            events_created=0,
            events_updated=0,
            events_retired=0,
            metadata_=dict(metadata or {}),
            created_at=now,
            updated_at=now,
        )

    async def mark_completed(
        self,
        session: AsyncSession,
        sync_log: SyncLog,
        outcome: Counters,
        metadata: dict[str, Any] | None = None,
    ) -> SyncLog:
        """``started`` -> ``completed`` with the final counters."""
        return await self._finish(session, sync_log, SYNC_COMPLETED, outcome, None, metadata)

    async def mark_failed(
        self,
        session: AsyncSession,
        sync_log: SyncLog,
        error_message: str,
        outcome: Counters | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> SyncLog:
        """``started`` -> ``failed``; counters reflect any partial work in *outcome*."""
        return await self._finish(
            session, sync_log, SYNC_FAILED, outcome, error_message or "unknown error", metadata
        )

    async def _finish(
        self,
        session: AsyncSession,
        sync_log: SyncLog,
        status: str,
        outcome: Counters | None,
        error_message: str | None,
        metadata: dict[str, Any] | None,
    ) -> SyncLog:
        values: dict[str, Any] = {"error_message": error_message}
        if outcome is not None:
            values.update(
                events_processed=outcome.processed,
                events_created=outcome.created,
                events_updated=outcome.updated,
                events_retired=outcome.retired,
            )
        if metadata is not None:
            merged = dict(sync_log.metadata_ or {})
            merged.update(metadata)
            values["metadata_"] = merged

        completed_at = max(self._clock.now(), sync_log.started_at)
        changed = await self._dao.finish(
            session, sync_log.id, status=status, completed_at=completed_at, **values
        )
        if changed == 0:
            existing = await self._dao.get_by_id(session, sync_log.id)
            if existing is None:
                raise NotFoundError("sync log not found")
            raise ConflictError(f"sync log already {existing.status}")

        row = await self._dao.get_by_id(session, sync_log.id)
        await session.refresh(row)
        return row

    # -- queries -----------------------------------------------------------

    async def last_successful(self, session: AsyncSession, sync_type: str) -> SyncLog | None:
        return await self._dao.latest_with_status(session, sync_type, SYNC_COMPLETED)

    async def should_run_sync(
        self, session: AsyncSession, sync_type: str, min_interval_hours: float
    ) -> bool:
        """True when no completed run exists or the last one finished at least
        *min_interval_hours* ago (inclusive). ``started`` orphans never block."""
        last = await self.last_successful(session, sync_type)
        if last is None or last.completed_at is None:
            return True
        elapsed = self._clock.now() - last.completed_at
        return elapsed >= timedelta(hours=min_interval_hours)

    async def in_flight(
        self, session: AsyncSession, sync_type: str, since: datetime
    ) -> list[SyncLog]:
        return await self._dao.list_in_flight(session, sync_type, since)

    async def stats(self, session: AsyncSession, sync_type: str, lookback_days: int = 30) -> dict:
        """Aggregate the last *lookback_days* of runs for *sync_type*."""
        if lookback_days < 0:
            raise ValidationError("lookback_days must be >= 0")
        since = self._clock.now() - timedelta(days=lookback_days)
        agg = await self._dao.aggregate(session, sync_type, since)
        last_ok = await self._dao.latest_with_status(session, sync_type, SYNC_COMPLETED, since)
        last_failed = await self._dao.latest_with_status(session, sync_type, SYNC_FAILED, since)
        return {
            "syncType": sync_type,
            "lookbackDays": lookback_days,
            "totalSyncs": agg["total"],
            "successfulSyncs": agg["completed"],
            "failedSyncs": agg["failed"],
            "totalEventsProcessed": agg["processed"],
            "totalEventsCreated": agg["created"],
            "totalEventsUpdated": agg["updated"],
            "totalEventsRetired": agg["retired"],
            "lastSuccessfulAt": _iso(last_ok.completed_at if last_ok else None),
            "lastFailedAt": _iso(last_failed.completed_at if last_failed else None),
        }

    async def list(
        self,
        session: AsyncSession,
        cursor: str | None = None,
        page_size: int = 20,
        sync_type: str | None = None,
    ) -> dict:
        page: Page[SyncLog] = await self._dao.list_paginated(
            session, cursor, page_size, sync_type=sync_type
        )
        return {
            "data": page.data,
            "next_cursor": page.next_cursor,
            "has_more": page.has_more,
        }

    # -- maintenance -------------------------------------------------------

    async def prune(self, session: AsyncSession, retention_days: int) -> int:
        """Delete terminal rows started more than *retention_days* ago."""
        if retention_days < 0:
            raise ValidationError("retention_days must be >= 0")
        before = self._clock.now() - timedelta(days=retention_days)
        return await self._dao.prune(session, before)
