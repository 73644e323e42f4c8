"""carnivals table (local events, manual or imported from an external source)."""

import datetime as dt
import uuid
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    Enum,
    ForeignKey,
    Index,
    Text,
    Uuid,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from carnivalsync.core.database import Base, PortableJSON, TimestampMixin, UTCDateTime

AUSTRALIAN_STATES = ("ACT", "NSW", "NT", "QLD", "SA", "TAS", "VIC", "WA")

AUSTRALIAN_STATE_NAMES = {
    "NSW": "New South Wales",
    "QLD": "Queensland",
    "VIC": "Victoria",
    "WA": "Western Australia",
    "SA": "South Australia",
    "TAS": "Tasmania",
    "NT": "Northern Territory",
    "ACT": "Australian Capital Territory",
}

MANUAL_ORIGIN = "manual"
EXTERNAL_PREFIX = "external:"

state_enum = Enum(*AUSTRALIAN_STATES, name="australian_state", native_enum=False, length=3)


def external_origin(source: str) -> str:
    """``external:<source>`` origin tag for rows imported from *source*."""
    return f"{EXTERNAL_PREFIX}{source}"


class Carnival(TimestampMixin, Base):
    __tablename__ = "carnivals"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    end_date: Mapped[Optional[dt.date]] = mapped_column(Date)
    state: Mapped[str] = mapped_column(state_enum, nullable=False)
    location_address: Mapped[str] = mapped_column(
        Text, nullable=False, server_default=text("''")
    )

    # organiser contact
    contact_name: Mapped[Optional[str]] = mapped_column(Text)
    contact_email: Mapped[Optional[str]] = mapped_column(Text)
    contact_phone: Mapped[Optional[str]] = mapped_column(Text)

    schedule_details: Mapped[Optional[str]] = mapped_column(Text)
    registration_link: Mapped[Optional[str]] = mapped_column(Text)
    fees_description: Mapped[Optional[str]] = mapped_column(Text)

    # provenance
    source_origin: Mapped[str] = mapped_column(
        Text, nullable=False, server_default=text("'manual'")
    )
    external_key: Mapped[Optional[str]] = mapped_column(Text)
    content_hash: Mapped[Optional[str]] = mapped_column(Text)
    last_external_sync_at: Mapped[Optional[dt.datetime]] = mapped_column(UTCDateTime())

    # ownership
    owner_user_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="RESTRICT")
    )
    claimed_at: Mapped[Optional[dt.datetime]] = mapped_column(UTCDateTime())
    ownership_audit: Mapped[Optional[list]] = mapped_column(PortableJSON)

    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=text("true")
    )

    __table_args__ = (
        CheckConstraint(
            "(owner_user_id IS NULL) = (claimed_at IS NULL)",
            name="owner_claimed_together",
        ),
        CheckConstraint(
            "(source_origin = 'manual' AND external_key IS NULL) "
            "OR (source_origin LIKE 'external:%' AND external_key IS NOT NULL "
            "AND external_key <> '' AND last_external_sync_at IS NOT NULL)",
            name="origin_key_consistent",
        ),
        CheckConstraint(
            "end_date IS NULL OR end_date >= date",
            name="end_date_after_start",
        ),
        Index(
            "uq_carnivals_origin_external_key",
            "source_origin",
            "external_key",
            unique=True,
            postgresql_where=text("external_key IS NOT NULL"),
            sqlite_where=text("external_key IS NOT NULL"),
        ),
        Index("idx_carnivals_origin_active", "source_origin", "is_active"),
        Index("idx_carnivals_date", "date"),
    )

    @property
    def is_external(self) -> bool:
        return self.source_origin.startswith(EXTERNAL_PREFIX)
