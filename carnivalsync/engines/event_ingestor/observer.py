"""Per-run monitoring hooks."""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING, Protocol

import structlog

if TYPE_CHECKING:
    from carnivalsync.engines.event_ingestor.models import SyncResult

log = structlog.get_logger("carnivalsync.engine")

# record actions
CREATED = "created"
UPDATED = "updated"
UNCHANGED = "unchanged"
REACTIVATED = "reactivated"
DUPLICATE = "duplicate"
REJECTED = "rejected"
CONFLICT = "conflict"
RETIRED = "retired"
SURVIVED = "survived"


class SyncObserver(Protocol):
    def begin(self, sync_type: str, sync_log_id: uuid.UUID) -> None: ...

    def record(self, external_key: str | None, action: str) -> None: ...

    def end(self, result: SyncResult) -> None: ...


class LoggingObserver:
    """Default observer: per-record events at DEBUG, run summary at INFO."""

    def begin(self, sync_type: str, sync_log_id: uuid.UUID) -> None:
        log.debug("observer.begin", sync_type=sync_type, sync_log_id=str(sync_log_id))

    def record(self, external_key: str | None, action: str) -> None:
        log.debug("observer.record", external_key=external_key, action=action)

    def end(self, result: SyncResult) -> None:
        counters = result.outcome.counters() if result.outcome else {}
        log.info("observer.end", status=result.status, error=result.error, **counters)


class RecordingObserver:
    """Keeps every callback in memory; handy for tests and dry runs."""

    def __init__(self) -> None:
        self.begun: list[tuple[str, uuid.UUID]] = []
        self.records: list[tuple[str | None, str]] = []
        self.results: list[SyncResult] = []

    def begin(self, sync_type: str, sync_log_id: uuid.UUID) -> None:
        self.begun.append((sync_type, sync_log_id))

    def record(self, external_key: str | None, action: str) -> None:
        self.records.append((external_key, action))

    def end(self, result: SyncResult) -> None:
        self.results.append(result)

    def actions(self, action: str) -> list[str | None]:
        return [key for key, act in self.records if act == action]
