"""Carnival ownership request/response schemas."""

from __future__ import annotations

import datetime as dt
import uuid

from carnivalsync.api.schemas.common import CamelModel


class EventOut(CamelModel):
    id: uuid.UUID
    title: str
    date: dt.date
    end_date: dt.date | None
    state: str
    location_address: str
    contact_name: str | None
    contact_email: str | None
    contact_phone: str | None
    schedule_details: str | None
    registration_link: str | None
    fees_description: str | None
    source_origin: str
    external_key: str | None
    owner_user_id: uuid.UUID | None
    claimed_at: dt.datetime | None
    is_active: bool
    last_external_sync_at: dt.datetime | None
    created_at: dt.datetime
    updated_at: dt.datetime


class ClaimedBy(CamelModel):
    user_id: uuid.UUID
    user_name: str
    club_id: uuid.UUID
    club_name: str


class ClaimResponse(CamelModel):
    event: EventOut
    claimed_by: ClaimedBy


class ReleaseResponse(CamelModel):
    event: EventOut
    previous_owner_id: uuid.UUID


class AssignRequest(CamelModel):
    """``userId: null`` clears the owner."""

    user_id: uuid.UUID | None


class AssignResponse(CamelModel):
    event: EventOut
    assigned_to: ClaimedBy | None
    previous_owner_id: uuid.UUID | None
    warnings: list[str]
