"""sync_logs table."""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import CheckConstraint, Enum, Index, Integer, Text, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from carnivalsync.core.database import Base, PortableJSON, TimestampMixin, UTCDateTime

SYNC_STARTED = "started"
SYNC_COMPLETED = "completed"
SYNC_FAILED = "failed"

sync_status_enum = Enum(
    SYNC_STARTED,
    SYNC_COMPLETED,
    SYNC_FAILED,
    name="sync_status",
    native_enum=False,
    length=16,
)


class SyncLog(TimestampMixin, Base):
    __tablename__ = "sync_logs"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    sync_type: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(
        sync_status_enum, nullable=False, server_default=text("'started'")
    )
    started_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    completed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime())

    events_processed: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
    events_created: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
    events_updated: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
    events_retired: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))

    error_message: Mapped[Optional[str]] = mapped_column(Text)
    metadata_: Mapped[Optional[dict]] = mapped_column("metadata", PortableJSON)

    __table_args__ = (
        CheckConstraint(
            "(status = 'started' AND completed_at IS NULL) "
            "OR (status <> 'started' AND completed_at IS NOT NULL)",
            name="terminal_has_completed_at",
        ),
        CheckConstraint(
            "events_processed >= 0 AND events_created >= 0 "
            "AND events_updated >= 0 AND events_retired >= 0",
            name="counters_non_negative",
        ),
        Index("idx_sync_logs_type_status_started", "sync_type", "status", "started_at"),
    )
