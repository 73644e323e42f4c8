"""Shared fixtures for carnivalsync tests.

Runs against a throwaway SQLite file per test via aiosqlite. Point
``TEST_DATABASE_URL`` at an empty PostgreSQL database to run the same
suite against asyncpg.
"""

from __future__ import annotations

import os
import uuid
from datetime import date, datetime, timezone

import pytest
import pytest_asyncio

import carnivalsync.models  # noqa: F401
from carnivalsync.core.clock import ManualClock
from carnivalsync.core.database import Base, make_engine, make_session_factory
from carnivalsync.models.carnival import MANUAL_ORIGIN, Carnival, external_origin
from carnivalsync.models.club import Club
from carnivalsync.models.user import User

NOW = datetime(2025, 6, 1, 9, 0, 0, tzinfo=timezone.utc)
TEST_SECRET = "test-jwt-secret-for-unit-tests"


@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"


@pytest.fixture
def db_url(tmp_path):
    return os.environ.get("TEST_DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")


@pytest_asyncio.fixture
async def engine(db_url):
    eng = make_engine(db_url)
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest_asyncio.fixture
async def session(session_factory):
    """One open transaction for the whole test; the database file is per test."""
    async with session_factory() as sess:
        async with sess.begin():
            yield sess


@pytest.fixture
def clock():
    return ManualClock(NOW)


# ---------------------------------------------------------------------------
# Seed helpers: each runs in its own committed transaction
# ---------------------------------------------------------------------------


@pytest.fixture
def seed(session_factory, clock):
    """Insert rows with explicit timestamps and return them."""

    class _Seed:
        async def _add(self, obj):
            async with session_factory() as sess:
                async with sess.begin():
                    sess.add(obj)
            return obj

        async def club(self, *, name: str | None = None, state: str | None = "NSW", **kw) -> Club:
            now = clock.now()
            return await self._add(
                Club(
                    id=uuid.uuid4(),
                    club_name=name or f"Club {uuid.uuid4().hex[:6]}",
                    state=state,
                    is_active=kw.pop("is_active", True),
                    created_at=now,
                    updated_at=now,
                    **kw,
                )
            )

        async def user(
            self,
            *,
            club: Club | None = None,
            is_admin: bool = False,
            is_active: bool = True,
            first_name: str = "Sam",
            last_name: str = "Delegate",
        ) -> User:
            now = clock.now()
            return await self._add(
                User(
                    id=uuid.uuid4(),
                    email=f"{uuid.uuid4().hex[:8]}@example.com",
                    first_name=first_name,
                    last_name=last_name,
                    club_id=club.id if club else None,
                    is_active=is_active,
                    is_admin=is_admin,
                    created_at=now,
                    updated_at=now,
                )
            )

        async def carnival(
            self,
            *,
            source: str | None = "mysideline",
            external_key: str | None = None,
            title: str = "Masters Carnival",
            day: date = date(2025, 7, 19),
            state: str = "NSW",
            is_active: bool = True,
            owner: User | None = None,
            content_hash: str | None = "seeded",
        ) -> Carnival:
            now = clock.now()
            external = source is not None
            return await self._add(
                Carnival(
                    id=uuid.uuid4(),
                    title=title,
                    date=day,
                    state=state,
                    location_address="Somewhere Oval",
                    source_origin=external_origin(source) if external else MANUAL_ORIGIN,
                    external_key=(external_key or uuid.uuid4().hex) if external else None,
                    content_hash=content_hash if external else None,
                    last_external_sync_at=now if external else None,
                    owner_user_id=owner.id if owner else None,
                    claimed_at=now if owner else None,
                    is_active=is_active,
                    created_at=now,
                    updated_at=now,
                )
            )

    return _Seed()
