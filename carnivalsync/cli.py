"""CLI entry point: carnivalsync.

Subcommands:
    carnivalsync run [--source NAME ...] [--force]   # one-shot sync, exit code per run status
    carnivalsync status [--sync-type T] [--days N]   # sync stats as JSON
    carnivalsync prune-logs [--days N]               # delete old terminal sync log rows
    carnivalsync deactivate-past                     # retire unowned carnivals dated before today
    carnivalsync init-db                             # create tables
    carnivalsync serve [--host H] [--port P]         # run the HTTP API
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import TypeVar

import click
from dotenv import load_dotenv
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from carnivalsync.core.clock import SystemClock, today
from carnivalsync.core.config import SyncConfig
from carnivalsync.core.database import Base, make_engine, make_session_factory
from carnivalsync.core.logging import setup_logging
from carnivalsync.dao.carnival_dao import CarnivalDAO
from carnivalsync.dao.sync_log_dao import SyncLogDAO
from carnivalsync.engines.event_ingestor.runner import (
    exit_code_for,
    run_sources,
    sync_type_for,
)
from carnivalsync.services.carnival_service import CarnivalService
from carnivalsync.services.sync_log_service import SyncLogService

# registers every table on Base.metadata
import carnivalsync.models  # noqa: F401

T = TypeVar("T")


def _config() -> SyncConfig:
    try:
        return SyncConfig.from_env()
    except ValueError as exc:
        raise click.UsageError(str(exc)) from exc


def _with_session_factory(
    config: SyncConfig, fn: Callable[[async_sessionmaker[AsyncSession]], Awaitable[T]]
) -> T:
    """Run *fn* against a fresh engine, disposing it afterwards."""

    async def _main() -> T:
        engine = make_engine(config.database_url)
        try:
            return await fn(make_session_factory(engine))
        finally:
            await engine.dispose()

    return asyncio.run(_main())


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Verbose logging")
def main(verbose: bool) -> None:
    """carnivalsync — external event ingestion and ownership reconciliation."""
    load_dotenv(Path.cwd() / ".env")
    setup_logging()
    if verbose:
        logging.getLogger("carnivalsync").setLevel(logging.DEBUG)


@main.command()
@click.option("--source", "sources", multiple=True, help="Source name (repeatable)")
@click.option("--force", is_flag=True, help="Bypass the interval gate (or set SYNC_FORCE)")
def run(sources: tuple[str, ...], force: bool) -> None:
    """Sync each source in turn; exit with the first non-zero status code."""
    from carnivalsync.api.deps import build_sync_runner

    config = _config()
    names = list(sources or config.source_names)
    force = force or config.force

    async def _run(factory: async_sessionmaker[AsyncSession]) -> int:
        runner = build_sync_runner(factory, config)
        results = await run_sources(runner, names, force=force, trigger_source="manual")
        for result in results:
            click.echo(json.dumps(result.to_dict()))
        return exit_code_for(results)

    sys.exit(_with_session_factory(config, _run))


@main.command()
@click.option("--sync-type", default=None, help="Sync type (default: first configured source)")
@click.option("--days", default=30, show_default=True, type=int, help="Lookback window")
def status(sync_type: str | None, days: int) -> None:
    """Print sync statistics as JSON."""
    config = _config()
    sync_type = sync_type or sync_type_for(config.source_names[0])
    service = SyncLogService(SyncLogDAO(), SystemClock())

    async def _stats(factory: async_sessionmaker[AsyncSession]) -> dict:
        async with factory() as session:
            async with session.begin():
                return await service.stats(session, sync_type, days)

    click.echo(json.dumps(_with_session_factory(config, _stats), indent=2))


@main.command("prune-logs")
@click.option("--days", default=None, type=int, help="Retention days (default: RETENTION_DAYS_SYNC_LOG)")
def prune_logs(days: int | None) -> None:
    """Delete terminal sync log rows older than the retention window."""
    config = _config()
    retention = config.retention_days_sync_log if days is None else days
    service = SyncLogService(SyncLogDAO(), SystemClock())

    async def _prune(factory: async_sessionmaker[AsyncSession]) -> int:
        async with factory() as session:
            async with session.begin():
                return await service.prune(session, retention)

    deleted = _with_session_factory(config, _prune)
    click.echo(f"pruned {deleted} sync log row(s) older than {retention} day(s)")


@main.command("deactivate-past")
def deactivate_past() -> None:
    """Retire active, unowned carnivals dated before today."""
    config = _config()
    clock = SystemClock()
    service = CarnivalService(CarnivalDAO(), clock)

    async def _deactivate(factory: async_sessionmaker[AsyncSession]) -> int:
        async with factory() as session:
            async with session.begin():
                return await service.deactivate_past(session, today(clock))

    count = _with_session_factory(config, _deactivate)
    click.echo(f"deactivated {count} past carnival(s)")


@main.command("init-db")
def init_db() -> None:
    """Create all tables."""
    config = _config()

    async def _create() -> None:
        engine = make_engine(config.database_url)
        try:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        finally:
            await engine.dispose()

    asyncio.run(_create())
    click.echo("tables created")


@main.command()
@click.option("--host", default="127.0.0.1", show_default=True)
@click.option("--port", default=8000, show_default=True, type=int)
def serve(host: str, port: int) -> None:
    """Run the HTTP API with uvicorn."""
    import uvicorn

    uvicorn.run("carnivalsync.api:create_app", factory=True, host=host, port=port)


if __name__ == "__main__":
    main()
