"""CarnivalDAO — carnivals table operations."""

import uuid
from datetime import date, datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from carnivalsync.dao.base import BaseDAO
from carnivalsync.models.carnival import Carnival


class CarnivalDAO(BaseDAO[Carnival]):
    model = Carnival

    # ── read ──────────────────────────────────────────────────────────────

    async def list_active_by_origin(self, session: AsyncSession, origin: str) -> list[Carnival]:
        """Active rows imported from *origin* (Reconciler index)."""
        stmt = (
            select(Carnival)
            .where(Carnival.source_origin == origin, Carnival.is_active.is_(True))
            .order_by(Carnival.created_at)
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    async def get_by_external_key(
        self, session: AsyncSession, origin: str, external_key: str
    ) -> Carnival | None:
        """Row for (origin, external_key) regardless of ``is_active``."""
        stmt = select(Carnival).where(
            Carnival.source_origin == origin,
            Carnival.external_key == external_key,
        )
        result = await session.execute(stmt)
        return result.scalars().first()

    async def get_for_update(self, session: AsyncSession, pk: uuid.UUID) -> Carnival | None:
        """Load a row under ``SELECT ... FOR UPDATE`` with fresh attribute values."""
        self._require_pk(pk)
        stmt = (
            select(Carnival)
            .where(Carnival.id == pk)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await session.execute(stmt)
        return result.scalars().first()

    # ── write ─────────────────────────────────────────────────────────────

    async def deactivate_past(self, session: AsyncSession, today: date, now: datetime) -> int:
        """Retire active, unowned rows dated before *today*.

        Returns the number of rows updated.
        """
        stmt = (
            update(Carnival)
            .where(
                Carnival.is_active.is_(True),
                Carnival.owner_user_id.is_(None),
                Carnival.date < today,
            )
            .values(is_active=False, updated_at=now)
        )
        result = await session.execute(stmt)
        return result.rowcount
