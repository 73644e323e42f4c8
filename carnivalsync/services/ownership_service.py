"""OwnershipService — claim, release and admin assignment of imported carnivals."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from carnivalsync.core.clock import Clock, SystemClock
from carnivalsync.dao.carnival_dao import CarnivalDAO
from carnivalsync.dao.club_dao import ClubDAO
from carnivalsync.dao.user_dao import UserDAO
from carnivalsync.models.carnival import Carnival
from carnivalsync.models.club import Club
from carnivalsync.models.user import User
from carnivalsync.services import (
    BadRequestError,
    ConflictError,
    ForbiddenError,
    GoneError,
    NotFoundError,
)

log = structlog.get_logger("carnivalsync.service")


@dataclass
class Claimant:
    user_id: uuid.UUID
    user_name: str
    club_id: uuid.UUID
    club_name: str


@dataclass
class ClaimResult:
    event: Carnival
    claimed_by: Claimant


@dataclass
class ReleaseResult:
    event: Carnival
    previous_owner_id: uuid.UUID


@dataclass
class AssignResult:
    event: Carnival
    assigned_to: Claimant | None
    previous_owner_id: uuid.UUID | None
    warnings: list[str] = field(default_factory=list)


class OwnershipService:
    """Business rules for who may own an imported carnival.

    Every operation reads the carnival under a row lock, so concurrent
    ownership changes to one event are serialized by the database.
    """

    def __init__(
        self,
        carnival_dao: CarnivalDAO,
        user_dao: UserDAO,
        club_dao: ClubDAO,
        clock: Clock | None = None,
    ) -> None:
        self._carnival_dao = carnival_dao
        self._user_dao = user_dao
        self._club_dao = club_dao
        self._clock = clock or SystemClock()

    # -- operations --------------------------------------------------------

    async def claim(
        self, session: AsyncSession, event_id: uuid.UUID | None, user_id: uuid.UUID | None
    ) -> ClaimResult:
        """Make *user_id* the owner of an unowned, active, imported event.

        Raises BadRequestError, NotFoundError, GoneError, ForbiddenError or
        ConflictError("already claimed").
        """
        if not event_id or not user_id:
            raise BadRequestError("event id and user id are required")

        event = await self._load_event(session, event_id)
        if not event.is_active:
            raise GoneError("event is no longer active")
        self._require_imported(event)
        if event.owner_user_id is not None:
            raise ConflictError("already claimed")

        user, club = await self._eligible_delegate(session, user_id)
        if club.state and event.state and club.state != event.state:
            raise ForbiddenError(
                f"a {club.state} club cannot claim an event in {event.state}"
            )

        now = self._clock.now()
        event.owner_user_id = user.id
        event.claimed_at = now
        event.updated_at = now
        await session.flush()

        log.info(
            "ownership.claimed",
            event_id=str(event.id),
            user_id=str(user.id),
            club_id=str(club.id),
        )
        return ClaimResult(event=event, claimed_by=_claimant(user, club))

    async def release(
        self, session: AsyncSession, event_id: uuid.UUID | None, user_id: uuid.UUID | None
    ) -> ReleaseResult:
        """Give up ownership. Only the current owner may release.

        Allowed on inactive events so they can reach the terminal state.
        """
        if not event_id or not user_id:
            raise BadRequestError("event id and user id are required")

        event = await self._load_event(session, event_id)
        if not event.is_external:
            raise ForbiddenError("manual events are not claimable")
        if event.owner_user_id is None:
            raise ConflictError("not claimed")
        if event.owner_user_id != user_id:
            raise ForbiddenError("only the current owner can release this event")

        previous = event.owner_user_id
        event.owner_user_id = None
        event.claimed_at = None
        event.updated_at = self._clock.now()
        await session.flush()

        log.info("ownership.released", event_id=str(event.id), user_id=str(user_id))
        return ReleaseResult(event=event, previous_owner_id=previous)

    async def admin_assign(
        self,
        session: AsyncSession,
        event_id: uuid.UUID | None,
        target_user_id: uuid.UUID | None,
        admin_user_id: uuid.UUID | None,
    ) -> AssignResult:
        """Set or clear the owner on behalf of an administrator.

        May replace an existing owner. ``target_user_id=None`` clears the
        owner, which is also allowed on inactive events. The target must be
        an eligible delegate; a state mismatch is reported as a warning.
        Each call appends an entry to ``ownership_audit``.
        """
        if not event_id or not admin_user_id:
            raise BadRequestError("event id and admin user id are required")

        admin = await self._user_dao.get_by_id(session, admin_user_id)
        if admin is None or not admin.is_active or not admin.is_admin:
            raise ForbiddenError("administrator privilege required")

        event = await self._load_event(session, event_id)
        if not event.is_active and target_user_id is not None:
            raise GoneError("event is no longer active")
        self._require_imported(event)

        warnings: list[str] = []
        assigned_to: Claimant | None = None
        previous = event.owner_user_id
        now = self._clock.now()

        if target_user_id is not None:
            user, club = await self._eligible_delegate(session, target_user_id)
            if club.state and event.state and club.state != event.state:
                warnings.append(
                    f"club state {club.state} differs from event state {event.state}"
                )
            assigned_to = _claimant(user, club)
            if previous != user.id:
                event.owner_user_id = user.id
                event.claimed_at = now
        else:
            event.owner_user_id = None
            event.claimed_at = None

        entry = {
            "action": "assign" if target_user_id is not None else "clear",
            "adminUserId": str(admin.id),
            "previousOwnerId": str(previous) if previous else None,
            "newOwnerId": str(target_user_id) if target_user_id else None,
            "at": now.isoformat(),
        }
        # reassign so the JSON column is flagged dirty
        event.ownership_audit = [*(event.ownership_audit or []), entry]
        event.updated_at = now
        await session.flush()

        log.info(
            "ownership.admin_assigned",
            event_id=str(event.id),
            admin_user_id=str(admin.id),
            previous_owner_id=entry["previousOwnerId"],
            new_owner_id=entry["newOwnerId"],
            warnings=warnings,
        )
        return AssignResult(
            event=event,
            assigned_to=assigned_to,
            previous_owner_id=previous,
            warnings=warnings,
        )

    # -- checks ------------------------------------------------------------

    async def _load_event(self, session: AsyncSession, event_id: uuid.UUID) -> Carnival:
        event = await self._carnival_dao.get_for_update(session, event_id)
        if event is None:
            raise NotFoundError("event not found")
        return event

    @staticmethod
    def _require_imported(event: Carnival) -> None:
        if not event.is_external:
            raise ForbiddenError("manual events are not claimable")
        if event.last_external_sync_at is None:
            raise ForbiddenError("not from external source")

    async def _eligible_delegate(
        self, session: AsyncSession, user_id: uuid.UUID
    ) -> tuple[User, Club]:
        user = await self._user_dao.get_by_id(session, user_id)
        if user is None or not user.is_active:
            raise ForbiddenError("user is not an active delegate")
        if user.club_id is None:
            raise ForbiddenError("user is not associated with a club")
        club = await self._club_dao.get_by_id(session, user.club_id)
        if club is None or not club.is_active:
            raise ForbiddenError("user's club is not active")
        return user, club


def _claimant(user: User, club: Club) -> Claimant:
    return Claimant(
        user_id=user.id,
        user_name=user.full_name,
        club_id=club.id,
        club_name=club.club_name,
    )
