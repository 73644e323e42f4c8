"""SyncLogDAO — sync_logs table operations."""

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import case, delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from carnivalsync.dao.base import BaseDAO, Page
from carnivalsync.models.sync_log import SYNC_COMPLETED, SYNC_FAILED, SYNC_STARTED, SyncLog


class SyncLogDAO(BaseDAO[SyncLog]):
    model = SyncLog
    order_column = "started_at"

    # ── read ──────────────────────────────────────────────────────────────

    async def list_paginated(
        self,
        session: AsyncSession,
        cursor: str | None = None,
        page_size: int = 20,
        sync_type: str | None = None,
    ) -> Page[SyncLog]:
        """Paginated history, newest first (API)."""
        query = select(SyncLog)
        if sync_type is not None:
            query = query.where(SyncLog.sync_type == sync_type)
        return await self.paginate(session, query, cursor, page_size)

    async def latest_with_status(
        self,
        session: AsyncSession,
        sync_type: str,
        status: str,
        since: datetime | None = None,
    ) -> SyncLog | None:
        """Most recently finished row of *sync_type* in *status*."""
        stmt = select(SyncLog).where(SyncLog.sync_type == sync_type, SyncLog.status == status)
        if since is not None:
            stmt = stmt.where(SyncLog.started_at >= since)
        stmt = stmt.order_by(SyncLog.completed_at.desc(), SyncLog.started_at.desc()).limit(1)
        result = await session.execute(stmt)
        return result.scalars().first()

    async def list_in_flight(
        self, session: AsyncSession, sync_type: str, since: datetime
    ) -> list[SyncLog]:
        """``started`` rows of *sync_type* whose ``started_at`` is at or after *since*."""
        stmt = (
            select(SyncLog)
            .where(
                SyncLog.sync_type == sync_type,
                SyncLog.status == SYNC_STARTED,
                SyncLog.started_at >= since,
            )
            .order_by(SyncLog.started_at.desc())
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    async def aggregate(self, session: AsyncSession, sync_type: str, since: datetime) -> dict:
        """Counts and counter sums for rows started at or after *since*."""

        def _count(status: str):
            return func.coalesce(func.sum(case((SyncLog.status == status, 1), else_=0)), 0)

        stmt = select(
            func.count(SyncLog.id),
            _count(SYNC_COMPLETED),
            _count(SYNC_FAILED),
            func.coalesce(func.sum(SyncLog.events_processed), 0),
            func.coalesce(func.sum(SyncLog.events_created), 0),
            func.coalesce(func.sum(SyncLog.events_updated), 0),
            func.coalesce(func.sum(SyncLog.events_retired), 0),
        ).where(SyncLog.sync_type == sync_type, SyncLog.started_at >= since)
        row = (await session.execute(stmt)).one()
        return {
            "total": int(row[0]),
            "completed": int(row[1]),
            "failed": int(row[2]),
            "processed": int(row[3]),
            "created": int(row[4]),
            "updated": int(row[5]),
            "retired": int(row[6]),
        }

    # ── write ─────────────────────────────────────────────────────────────

    async def finish(
        self,
        session: AsyncSession,
        pk: uuid.UUID,
        *,
        status: str,
        completed_at: datetime,
        **values: Any,
    ) -> int:
        """Apply the terminal transition to a ``started`` row.

        Returns the number of rows changed; 0 means the row is missing or
        already terminal.
        """
        self._require_pk(pk)
        changes = {getattr(SyncLog, key): val for key, val in values.items()}
        changes.update(
            {
                SyncLog.status: status,
                SyncLog.completed_at: completed_at,
                SyncLog.updated_at: completed_at,
            }
        )
        stmt = (
            update(SyncLog)
            .where(SyncLog.id == pk, SyncLog.status == SYNC_STARTED)
            .values(changes)
        )
        result = await session.execute(stmt)
        return result.rowcount

    async def prune(self, session: AsyncSession, before: datetime) -> int:
        """Delete terminal rows started before *before*. Returns rows deleted."""
        stmt = delete(SyncLog).where(
            SyncLog.status != SYNC_STARTED,
            SyncLog.started_at < before,
        )
        result = await session.execute(stmt)
        return result.rowcount
