"""CarnivalService — read access and out-of-band data hygiene for carnivals."""

from __future__ import annotations

import uuid
from datetime import date

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from carnivalsync.core.clock import Clock, SystemClock
from carnivalsync.dao.carnival_dao import CarnivalDAO
from carnivalsync.models.carnival import Carnival
from carnivalsync.services import NotFoundError

log = structlog.get_logger("carnivalsync.service")


class CarnivalService:
    """Stateless service for carnival lookups and maintenance jobs."""

    def __init__(self, carnival_dao: CarnivalDAO, clock: Clock | None = None) -> None:
        self._carnival_dao = carnival_dao
        self._clock = clock or SystemClock()

    async def get(self, session: AsyncSession, carnival_id: uuid.UUID) -> Carnival:
        """Raises :class:`NotFoundError` if not found."""
        carnival = await self._carnival_dao.get_by_id(session, carnival_id)
        if carnival is None:
            raise NotFoundError("event not found")
        return carnival

    async def deactivate_past(self, session: AsyncSession, today: date) -> int:
        """Retire active, unowned carnivals dated before *today*.

        Claimed carnivals are left for their owners. Never called from a sync run.
        """
        count = await self._carnival_dao.deactivate_past(session, today, self._clock.now())
        log.info("carnival.deactivated_past", today=today.isoformat(), count=count)
        return count
