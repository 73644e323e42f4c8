"""FastAPI dependencies: request sessions, bearer identity and the shared services."""

from __future__ import annotations

from collections.abc import AsyncGenerator

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from carnivalsync.core.clock import SystemClock
from carnivalsync.core.config import SyncConfig
from carnivalsync.core.database import make_engine, make_session_factory
from carnivalsync.dao.carnival_dao import CarnivalDAO
from carnivalsync.dao.club_dao import ClubDAO
from carnivalsync.dao.sync_log_dao import SyncLogDAO
from carnivalsync.dao.user_dao import UserDAO
from carnivalsync.engines.event_ingestor.mysideline_client import MySidelineSource
from carnivalsync.engines.event_ingestor.runner import SyncRunner
from carnivalsync.engines.event_ingestor.source import default_registry
from carnivalsync.models.user import User
from carnivalsync.services import AuthenticationError
from carnivalsync.services.auth_service import AuthService
from carnivalsync.services.carnival_service import CarnivalService
from carnivalsync.services.ownership_service import OwnershipService
from carnivalsync.services.sync_log_service import SyncLogService

# Process-wide collaborators; the DAOs and services hold no per-request state.
_clock = SystemClock()
_carnival_dao = CarnivalDAO()
_sync_log_dao = SyncLogDAO()
_user_dao = UserDAO()
_club_dao = ClubDAO()
_auth_service = AuthService(_user_dao)
_carnival_service = CarnivalService(_carnival_dao, _clock)
_ownership_service = OwnershipService(_carnival_dao, _user_dao, _club_dao, _clock)
_sync_log_service = SyncLogService(_sync_log_dao, _clock)

# Set by init_session_factory() from the app lifespan or the CLI.
_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None
_sync_runner: SyncRunner | None = None


def init_session_factory(config: SyncConfig | None = None) -> async_sessionmaker[AsyncSession]:
    """Create the async engine, session factory and sync runner. Called once at startup."""
    global _engine, _session_factory, _sync_runner  # noqa: PLW0603
    config = config or SyncConfig.from_env()
    _engine = make_engine(config.database_url)
    _session_factory = make_session_factory(_engine)
    _sync_runner = build_sync_runner(_session_factory, config)
    return _session_factory


def build_sync_runner(
    session_factory: async_sessionmaker[AsyncSession], config: SyncConfig
) -> SyncRunner:
    """Wire a SyncRunner with the built-in sources registered."""
    default_registry.register(MySidelineSource.from_config(config, _clock))
    return SyncRunner(
        session_factory,
        _sync_log_service,
        _carnival_dao,
        config,
        clock=_clock,
        registry=default_registry,
    )


async def dispose_engine() -> None:
    """Dispose the async engine, closing all pooled connections."""
    global _engine  # noqa: PLW0603
    if _engine is not None:
        await _engine.dispose()
        _engine = None


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield a per-request session with automatic commit/rollback."""
    if _session_factory is None:
        raise RuntimeError("call init_session_factory() before handling requests")
    async with _session_factory() as session:
        async with session.begin():
            yield session


_bearer = HTTPBearer(auto_error=False)


async def get_current_user(
    session: AsyncSession = Depends(get_session),
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
) -> User:
    """Extract and validate Bearer token, return the authenticated User."""
    if credentials is None:
        raise AuthenticationError("missing authorization header")
    return await _auth_service.get_current_user(session, credentials.credentials)


async def get_admin_user(user: User = Depends(get_current_user)) -> User:
    return AuthService.require_admin(user)


def get_carnival_service() -> CarnivalService:
    return _carnival_service


def get_ownership_service() -> OwnershipService:
    return _ownership_service


def get_sync_log_service() -> SyncLogService:
    return _sync_log_service


def get_sync_runner() -> SyncRunner:
    if _sync_runner is None:
        raise RuntimeError("call init_session_factory() before handling requests")
    return _sync_runner
