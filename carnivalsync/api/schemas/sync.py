"""Sync history and operator schemas."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from pydantic import Field

from carnivalsync.api.schemas.common import CamelModel


class SyncLogItem(CamelModel):
    id: uuid.UUID
    sync_type: str
    status: str
    started_at: datetime
    completed_at: datetime | None
    events_processed: int
    events_created: int
    events_updated: int
    events_retired: int
    error_message: str | None
    metadata: dict[str, Any] | None = Field(default=None, validation_alias="metadata_")


class SyncStats(CamelModel):
    sync_type: str
    lookback_days: int
    total_syncs: int
    successful_syncs: int
    failed_syncs: int
    total_events_processed: int
    total_events_created: int
    total_events_updated: int
    total_events_retired: int
    last_successful_at: datetime | None
    last_failed_at: datetime | None


class SyncRunRequest(CamelModel):
    source: str = "mysideline"
    force: bool = False


class SyncRunResponse(CamelModel):
    status: str
    sync_type: str
    sync_log_id: uuid.UUID | None
    error: str | None
    exit_code: int
    outcome: dict[str, Any] | None
