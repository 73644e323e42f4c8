"""Event ownership router."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from carnivalsync.api.deps import (
    get_admin_user,
    get_carnival_service,
    get_current_user,
    get_ownership_service,
    get_session,
)
from carnivalsync.api.schemas.carnival import (
    AssignRequest,
    AssignResponse,
    ClaimedBy,
    ClaimResponse,
    EventOut,
    ReleaseResponse,
)
from carnivalsync.models.user import User
from carnivalsync.services.carnival_service import CarnivalService
from carnivalsync.services.ownership_service import OwnershipService

router = APIRouter()


@router.get("/{event_id}", response_model=EventOut)
async def get_event(
    event_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
    _user: User = Depends(get_current_user),
    svc: CarnivalService = Depends(get_carnival_service),
) -> EventOut:
    return EventOut.model_validate(await svc.get(session, event_id))


@router.post("/{event_id}/claim", response_model=ClaimResponse)
async def claim_event(
    event_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
    user: User = Depends(get_current_user),
    svc: OwnershipService = Depends(get_ownership_service),
) -> ClaimResponse:
    result = await svc.claim(session, event_id, user.id)
    return ClaimResponse(
        event=EventOut.model_validate(result.event),
        claimed_by=ClaimedBy.model_validate(result.claimed_by),
    )


@router.post("/{event_id}/release", response_model=ReleaseResponse)
async def release_event(
    event_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
    user: User = Depends(get_current_user),
    svc: OwnershipService = Depends(get_ownership_service),
) -> ReleaseResponse:
    result = await svc.release(session, event_id, user.id)
    return ReleaseResponse(
        event=EventOut.model_validate(result.event),
        previous_owner_id=result.previous_owner_id,
    )


@router.post("/{event_id}/owner", response_model=AssignResponse)
async def assign_owner(
    event_id: uuid.UUID,
    body: AssignRequest,
    session: AsyncSession = Depends(get_session),
    admin: User = Depends(get_admin_user),
    svc: OwnershipService = Depends(get_ownership_service),
) -> AssignResponse:
    result = await svc.admin_assign(session, event_id, body.user_id, admin.id)
    return AssignResponse(
        event=EventOut.model_validate(result.event),
        assigned_to=(
            ClaimedBy.model_validate(result.assigned_to) if result.assigned_to else None
        ),
        previous_owner_id=result.previous_owner_id,
        warnings=result.warnings,
    )
