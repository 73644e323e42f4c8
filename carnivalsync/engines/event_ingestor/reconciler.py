"""Reconciler — converge one source's carnivals onto the candidate stream.

Every record is applied in its own short transaction; the retire pass runs
in one more. There is no all-or-nothing guarantee across a run: a failed or
partial run leaves committed records in place and the next run converges
the rest.
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import AsyncIterator
from dataclasses import dataclass
from datetime import datetime

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from carnivalsync.core.clock import Clock, today
from carnivalsync.dao.carnival_dao import CarnivalDAO
from carnivalsync.engines.event_ingestor import observer as actions
from carnivalsync.engines.event_ingestor.errors import StoreConflict
from carnivalsync.engines.event_ingestor.models import CandidateEvent, SyncOutcome
from carnivalsync.engines.event_ingestor.observer import LoggingObserver, SyncObserver
from carnivalsync.models.carnival import Carnival, external_origin

log = structlog.get_logger("carnivalsync.engine")


@dataclass
class _Indexed:
    id: uuid.UUID
    content_hash: str | None


class Reconciler:
    """Applies create / update / no-op per candidate, then retires what vanished.

    Rows with an owner are never retired; they are reported as
    ``ownedSurvivors`` instead.
    """

    def __init__(
        self,
        carnival_dao: CarnivalDAO,
        clock: Clock,
        observer: SyncObserver | None = None,
    ) -> None:
        self._dao = carnival_dao
        self._clock = clock
        self._observer = observer or LoggingObserver()

    async def reconcile(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        source: str,
        candidates: AsyncIterator[CandidateEvent],
        *,
        deadline: datetime,
        outcome: SyncOutcome | None = None,
    ) -> SyncOutcome:
        """Drive *candidates* into the store for *source*.

        The stream is read to the end first so that a duplicated key is
        written once, with its last occurrence. When *deadline* passes while
        reading or between writes the run stops, the retire pass is skipped,
        and ``outcome.partial`` is set.
        """
        outcome = outcome or SyncOutcome()
        origin = external_origin(source)

        async with session_factory() as session:
            async with session.begin():
                rows = await self._dao.list_active_by_origin(session, origin)
        index = {row.external_key: _Indexed(row.id, row.content_hash) for row in rows}
        pending = set(index)

        latest = await self._collect(source, candidates, deadline, outcome)

        for key, candidate in latest.items():
            if outcome.partial or self._clock.now() >= deadline:
                self._stop(source, outcome)
                break
            try:
                action = await self._apply(session_factory, origin, candidate, index)
            except StoreConflict as exc:
                outcome.conflicts.append({"key": key, "error": str(exc)})
                self._observer.record(key, actions.CONFLICT)
                log.warning("reconciler.store_conflict", source=source, external_key=key)
            else:
                self._count(outcome, key, action)
                self._observer.record(key, action)
            pending.discard(key)
            await asyncio.sleep(0)

        if not outcome.partial:
            await self._retire(session_factory, source, [index[key] for key in pending], outcome)
        return outcome

    def _stop(self, source: str, outcome: SyncOutcome) -> None:
        if not outcome.partial:
            outcome.partial = True
            log.warning("reconciler.deadline_exceeded", source=source, **outcome.counters())

    async def _collect(
        self,
        source: str,
        candidates: AsyncIterator[CandidateEvent],
        deadline: datetime,
        outcome: SyncOutcome,
    ) -> dict[str, CandidateEvent]:
        """Last occurrence of each key, ordered by that last occurrence.

        Earlier occurrences of a duplicated key are dropped before anything is
        written, so a repeated run never rewrites a row it is about to
        overwrite again.
        """
        latest: dict[str, CandidateEvent] = {}
        try:
            async for candidate in candidates:
                if self._clock.now() >= deadline:
                    self._stop(source, outcome)
                    break
                key = candidate.external_key
                if latest.pop(key, None) is not None:
                    if key not in outcome.duplicates:
                        outcome.duplicates.append(key)
                    self._observer.record(key, actions.DUPLICATE)
                latest[key] = candidate
        finally:
            aclose = getattr(candidates, "aclose", None)
            if aclose is not None:
                await aclose()
        return latest

    # ── per record ─────────────────────────────────────────────────────────

    @staticmethod
    def _count(outcome: SyncOutcome, key: str, action: str) -> None:
        outcome.processed += 1
        if action == actions.CREATED:
            outcome.created += 1
        elif action in (actions.UPDATED, actions.REACTIVATED):
            outcome.updated += 1
        if action == actions.REACTIVATED:
            outcome.reactivated.append(key)

    async def _apply(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        origin: str,
        candidate: CandidateEvent,
        index: dict[str, _Indexed],
    ) -> str:
        key = candidate.external_key
        try:
            async with session_factory() as session:
                async with session.begin():
                    now = self._clock.now()
                    row = None
                    known = index.get(key)
                    if known is not None:
                        row = await self._dao.get_for_update(session, known.id)
                    if row is None:
                        row = await self._dao.get_by_external_key(session, origin, key)

                    if row is None:
                        row = await self._dao.create(
                            session,
                            source_origin=origin,
                            external_key=key,
                            is_active=True,
                            last_external_sync_at=now,
                            created_at=now,
                            updated_at=now,
                            **candidate.column_values(),
                        )
                        action = actions.CREATED
                    elif not row.is_active:
                        action = self._revive(row, candidate, now)
                    else:
                        action = self._refresh(row, candidate, now)
                    await session.flush()
                    index[key] = _Indexed(row.id, row.content_hash)
                    return action
        except IntegrityError as exc:
            raise StoreConflict(key, str(exc.orig)) from exc

    @staticmethod
    def _refresh(row: Carnival, candidate: CandidateEvent, now: datetime) -> str:
        row.last_external_sync_at = now
        if row.content_hash == candidate.content_hash:
            return actions.UNCHANGED
        # owner, claimed_at, id and created_at are left alone
        for column, value in candidate.column_values().items():
            setattr(row, column, value)
        row.updated_at = now
        return actions.UPDATED

    def _revive(self, row: Carnival, candidate: CandidateEvent, now: datetime) -> str:
        row.last_external_sync_at = now
        if candidate.date < today(self._clock):
            return actions.UNCHANGED
        for column, value in candidate.column_values().items():
            setattr(row, column, value)
        row.is_active = True
        row.updated_at = now
        return actions.REACTIVATED

    # ── retire pass ────────────────────────────────────────────────────────

    async def _retire(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        source: str,
        pending: list[_Indexed],
        outcome: SyncOutcome,
    ) -> None:
        if not pending:
            return
        async with session_factory() as session:
            async with session.begin():
                now = self._clock.now()
                for item in pending:
                    # re-read under lock so a claim made during the run is honoured
                    row = await self._dao.get_for_update(session, item.id)
                    if row is None or not row.is_active:
                        continue
                    if row.owner_user_id is not None:
                        outcome.owned_survivors.append(row.external_key)
                        self._observer.record(row.external_key, actions.SURVIVED)
                        continue
                    row.is_active = False
                    row.updated_at = now
                    outcome.retired += 1
                    self._observer.record(row.external_key, actions.RETIRED)
        log.info(
            "reconciler.retire_pass",
            source=source,
            retired=outcome.retired,
            owned_survivors=len(outcome.owned_survivors),
        )
