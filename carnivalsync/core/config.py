"""Sync configuration loaded from environment variables."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass

DEFAULT_DATABASE_URL = "postgresql+asyncpg://localhost/carnivalsync"
DEFAULT_MYSIDELINE_API_URL = (
    "https://api.mysideline.xyz/nrl/api/v1/portal-public/registration/search"
)
DEFAULT_MYSIDELINE_EVENT_URL = (
    "https://profile.mysideline.com.au/register/clubsearch/"
    "?source=rugby-league&entityType=team&isEntityIdSearch=true&entity=true&criteria="
)

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


def _env_float(env: Mapping[str, str], key: str, default: float) -> float:
    raw = env.get(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{key} must be a number, got {raw!r}") from None


def _env_bool(env: Mapping[str, str], key: str, default: bool) -> bool:
    raw = env.get(key)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ValueError(f"{key} must be a boolean, got {raw!r}")


def _env_list(env: Mapping[str, str], key: str, default: tuple[str, ...]) -> tuple[str, ...]:
    raw = env.get(key)
    if raw is None:
        return default
    return tuple(part.strip() for part in raw.split(",") if part.strip())


@dataclass(frozen=True)
class SyncConfig:
    """Tunable thresholds for the ingestor.

    Build with :meth:`from_env`; pass an explicit mapping to keep it pure.
    """

    sync_interval_hours: float = 24.0
    sync_deadline_seconds: float = 300.0
    source_names: tuple[str, ...] = ("mysideline",)
    force: bool = False
    retention_days_sync_log: int = 90
    advisory_lock: bool = False
    poll_seconds: float = 3600.0
    scheduler_enabled: bool = False
    database_url: str = DEFAULT_DATABASE_URL
    mysideline_api_url: str = DEFAULT_MYSIDELINE_API_URL
    mysideline_event_url: str = DEFAULT_MYSIDELINE_EVENT_URL
    mysideline_criteria: str = "Masters"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> SyncConfig:
        env = os.environ if environ is None else environ
        retention = _env_float(env, "RETENTION_DAYS_SYNC_LOG", 90)
        if retention < 0:
            raise ValueError("RETENTION_DAYS_SYNC_LOG must not be negative")
        return cls(
            sync_interval_hours=_env_float(env, "SYNC_INTERVAL_HOURS", 24.0),
            sync_deadline_seconds=_env_float(env, "SYNC_DEADLINE_SECONDS", 300.0),
            source_names=_env_list(env, "SYNC_SOURCE_NAMES", ("mysideline",)),
            force=_env_bool(env, "SYNC_FORCE", False),
            retention_days_sync_log=int(retention),
            advisory_lock=_env_bool(env, "SYNC_ADVISORY_LOCK", False),
            poll_seconds=_env_float(env, "SYNC_POLL_SECONDS", 3600.0),
            scheduler_enabled=_env_bool(env, "SYNC_SCHEDULER_ENABLED", False),
            database_url=env.get("CARNIVALSYNC_DATABASE_URL", DEFAULT_DATABASE_URL),
            mysideline_api_url=env.get("MYSIDELINE_API_URL", DEFAULT_MYSIDELINE_API_URL),
            mysideline_event_url=env.get("MYSIDELINE_EVENT_URL", DEFAULT_MYSIDELINE_EVENT_URL),
            mysideline_criteria=env.get("MYSIDELINE_SEARCH_CRITERIA", "Masters"),
        )
