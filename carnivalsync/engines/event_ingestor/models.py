"""Data models for the event ingestor engine."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Literal

SyncStatus = Literal[
    "completed", "skipped", "already_running", "partial", "failed", "source_unavailable"
]
TriggerSource = Literal["scheduled", "manual", "api"]

# process exit codes per run status
EXIT_CODES: dict[str, int] = {
    "completed": 0,
    "skipped": 0,
    "already_running": 2,
    "source_unavailable": 3,
    "partial": 4,
    "failed": 1,
}

REJECTED_CAP = 100


@dataclass
class RawEvent:
    """One record as advertised by an external source.

    This is a pure data structure — no DB dependencies. ``date`` and
    ``end_date`` are left as the source's text; the normalizer parses them.
    """

    source: str
    external_id: str | None = None
    title: str | None = None
    date: str | None = None
    end_date: str | None = None
    state: str | None = None
    location_address: str | None = None
    contact_name: str | None = None
    contact_email: str | None = None
    contact_phone: str | None = None
    schedule_details: str | None = None
    registration_link: str | None = None
    fees_description: str | None = None
    parse_error: str | None = None


@dataclass(frozen=True)
class CandidateEvent:
    """Canonical form of a raw record, ready for reconciliation."""

    source: str
    external_key: str
    title: str
    date: date
    state: str
    location_address: str
    content_hash: str
    end_date: date | None = None
    contact_name: str | None = None
    contact_email: str | None = None
    contact_phone: str | None = None
    schedule_details: str | None = None
    registration_link: str | None = None
    fees_description: str | None = None

    def to_raw(self) -> RawEvent:
        """Re-serialize into a :class:`RawEvent` that normalizes back to ``self``."""
        return RawEvent(
            source=self.source,
            external_id=self.external_key,
            title=self.title,
            date=self.date.isoformat(),
            end_date=self.end_date.isoformat() if self.end_date else None,
            state=self.state,
            location_address=self.location_address,
            contact_name=self.contact_name,
            contact_email=self.contact_email,
            contact_phone=self.contact_phone,
            schedule_details=self.schedule_details,
            registration_link=self.registration_link,
            fees_description=self.fees_description,
        )

    def column_values(self) -> dict[str, Any]:
        """Content columns written to the carnivals row."""
        return {
            "title": self.title,
            "date": self.date,
            "end_date": self.end_date,
            "state": self.state,
            "location_address": self.location_address,
            "contact_name": self.contact_name,
            "contact_email": self.contact_email,
            "contact_phone": self.contact_phone,
            "schedule_details": self.schedule_details,
            "registration_link": self.registration_link,
            "fees_description": self.fees_description,
            "content_hash": self.content_hash,
        }


@dataclass
class SyncOutcome:
    """Counters and per-run findings of one reconciliation."""

    processed: int = 0
    created: int = 0
    updated: int = 0
    retired: int = 0
    duplicates: list[str] = field(default_factory=list)
    rejected: list[dict[str, Any]] = field(default_factory=list)
    rejected_count: int = 0
    conflicts: list[dict[str, Any]] = field(default_factory=list)
    owned_survivors: list[str] = field(default_factory=list)
    reactivated: list[str] = field(default_factory=list)
    partial: bool = False

    def reject(self, title: str | None, reason: str) -> None:
        self.rejected_count += 1
        if len(self.rejected) < REJECTED_CAP:
            self.rejected.append({"title": title, "reason": reason})

    def metadata(self) -> dict[str, Any]:
        return {
            "duplicates": list(self.duplicates),
            "rejected": list(self.rejected),
            "rejected_count": self.rejected_count,
            "conflicts": list(self.conflicts),
            "ownedSurvivors": list(self.owned_survivors),
            "reactivated": list(self.reactivated),
        }

    def counters(self) -> dict[str, int]:
        return {
            "eventsProcessed": self.processed,
            "eventsCreated": self.created,
            "eventsUpdated": self.updated,
            "eventsRetired": self.retired,
        }


@dataclass
class SyncOptions:
    """Per-call options for :meth:`SyncRunner.run_sync`."""

    source: str = "mysideline"
    force: bool = False
    deadline: datetime | None = None
    trigger_source: TriggerSource = "manual"
    raise_on_failure: bool = False


@dataclass
class SyncResult:
    """What one ``run_sync`` call did."""

    status: SyncStatus
    sync_type: str
    outcome: SyncOutcome | None = None
    sync_log_id: uuid.UUID | None = None
    error: str | None = None

    @property
    def exit_code(self) -> int:
        return EXIT_CODES[self.status]

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "syncType": self.sync_type,
            "syncLogId": str(self.sync_log_id) if self.sync_log_id else None,
            "error": self.error,
            "exitCode": self.exit_code,
            "outcome": (
                {**self.outcome.counters(), **self.outcome.metadata()} if self.outcome else None
            ),
        }
