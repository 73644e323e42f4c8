"""Tests for Reconciler against a real (SQLite) store."""

from __future__ import annotations

from dataclasses import replace
from datetime import date, timedelta

from sqlalchemy import select

from carnivalsync.dao.carnival_dao import CarnivalDAO
from carnivalsync.engines.event_ingestor import observer as actions
from carnivalsync.engines.event_ingestor.models import CandidateEvent, RawEvent, SyncOutcome
from carnivalsync.engines.event_ingestor.normalizer import normalize
from carnivalsync.engines.event_ingestor.observer import RecordingObserver
from carnivalsync.engines.event_ingestor.reconciler import Reconciler
from carnivalsync.models.carnival import Carnival

TODAY = date(2025, 6, 1)


def _cand(key: str, title: str = "Alpha", day: str = "2030-01-01", state: str = "NSW", **kw):
    raw = RawEvent(
        source="mysideline", external_id=key, title=title, date=day, state=state, **kw
    )
    return normalize(raw, today=TODAY)


async def _stream(items: list[CandidateEvent]):
    for item in items:
        yield item


async def _reconcile(session_factory, clock, items, *, observer=None, deadline=None):
    reconciler = Reconciler(CarnivalDAO(), clock, observer)
    return await reconciler.reconcile(
        session_factory,
        "mysideline",
        _stream(items) if isinstance(items, list) else items,
        deadline=deadline or clock.now() + timedelta(minutes=5),
    )


async def _rows(session_factory) -> dict[str | None, Carnival]:
    async with session_factory() as session:
        result = await session.execute(select(Carnival))
        return {row.external_key or row.title: row for row in result.scalars()}


class TestCreateUpdateRetire:
    async def test_empty_store_creates_all(self, session_factory, clock):
        outcome = await _reconcile(
            session_factory,
            clock,
            [_cand("k1", "Alpha"), _cand("k2", "Beta", "2030-02-01", "QLD")],
        )

        assert outcome.counters() == {
            "eventsProcessed": 2,
            "eventsCreated": 2,
            "eventsUpdated": 0,
            "eventsRetired": 0,
        }
        rows = await _rows(session_factory)
        assert set(rows) == {"k1", "k2"}
        k2 = rows["k2"]
        assert k2.is_active
        assert k2.source_origin == "external:mysideline"
        assert k2.state == "QLD"
        assert k2.date == date(2030, 2, 1)
        assert k2.owner_user_id is None
        assert k2.created_at == clock.now()
        assert k2.last_external_sync_at == clock.now()

    async def test_unchanged_hash_only_touches_sync_time(self, session_factory, clock, seed):
        cand = _cand("k1")
        await seed.carnival(external_key="k1", content_hash=cand.content_hash)
        seeded_at = clock.now()
        clock.advance(hours=1)

        outcome = await _reconcile(session_factory, clock, [cand])

        assert (outcome.processed, outcome.created, outcome.updated, outcome.retired) == (
            1,
            0,
            0,
            0,
        )
        row = (await _rows(session_factory))["k1"]
        assert row.last_external_sync_at == clock.now()
        assert row.updated_at == seeded_at
        assert row.title == "Masters Carnival"

    async def test_changed_content_updates_but_keeps_owner(self, session_factory, clock, seed):
        club = await seed.club()
        owner = await seed.user(club=club)
        existing = await seed.carnival(external_key="k1", owner=owner)
        clock.advance(hours=1)

        outcome = await _reconcile(session_factory, clock, [_cand("k1", "Alpha Renamed")])

        assert outcome.updated == 1
        row = (await _rows(session_factory))["k1"]
        assert row.id == existing.id
        assert row.title == "Alpha Renamed"
        assert row.owner_user_id == owner.id
        assert row.claimed_at == existing.claimed_at
        assert row.created_at == existing.created_at
        assert row.updated_at == clock.now()

    async def test_missing_unowned_row_is_retired(self, session_factory, clock, seed):
        await seed.carnival(external_key="k1")

        outcome = await _reconcile(session_factory, clock, [])

        assert outcome.retired == 1
        assert not (await _rows(session_factory))["k1"].is_active

    async def test_missing_owned_row_survives(self, session_factory, clock, seed):
        club = await seed.club()
        owner = await seed.user(club=club)
        await seed.carnival(external_key="k1", owner=owner)

        outcome = await _reconcile(session_factory, clock, [])

        assert outcome.retired == 0
        assert outcome.metadata()["ownedSurvivors"] == ["k1"]
        assert (await _rows(session_factory))["k1"].is_active

    async def test_manual_and_other_source_rows_untouched(self, session_factory, clock, seed):
        await seed.carnival(source=None, title="Manual Gala")
        await seed.carnival(source="othersource", external_key="o1")

        outcome = await _reconcile(session_factory, clock, [])

        assert outcome.retired == 0
        rows = await _rows(session_factory)
        assert rows["Manual Gala"].is_active
        assert rows["o1"].is_active

    async def test_second_identical_run_is_a_no_op(self, session_factory, clock):
        items = [_cand("k1"), _cand("k2", "Beta")]
        await _reconcile(session_factory, clock, items)
        clock.advance(hours=24)

        outcome = await _reconcile(session_factory, clock, items)

        assert outcome.counters() == {
            "eventsProcessed": 2,
            "eventsCreated": 0,
            "eventsUpdated": 0,
            "eventsRetired": 0,
        }


class TestEdgeCases:
    async def test_duplicate_key_last_wins_and_counts_once(self, session_factory, clock):
        observer = RecordingObserver()
        outcome = await _reconcile(
            session_factory,
            clock,
            [_cand("k1", "Alpha"), _cand("k1", "Alpha v2")],
            observer=observer,
        )

        assert outcome.processed == 1
        assert outcome.created == 1
        assert outcome.updated == 0
        assert outcome.duplicates == ["k1"]
        assert observer.actions(actions.DUPLICATE) == ["k1"]
        assert (await _rows(session_factory))["k1"].title == "Alpha v2"

    async def test_inactive_row_with_future_date_is_reactivated(
        self, session_factory, clock, seed
    ):
        await seed.carnival(external_key="k1", is_active=False)

        outcome = await _reconcile(session_factory, clock, [_cand("k1")])

        assert outcome.created == 0
        assert outcome.updated == 1
        assert outcome.reactivated == ["k1"]
        row = (await _rows(session_factory))["k1"]
        assert row.is_active
        assert row.title == "Alpha"

    async def test_inactive_row_with_past_date_stays_retired(self, session_factory, clock, seed):
        await seed.carnival(external_key="k1", is_active=False)

        outcome = await _reconcile(session_factory, clock, [_cand("k1", day="2025-01-01")])

        assert outcome.processed == 1
        assert outcome.updated == 0
        assert outcome.reactivated == []
        assert not (await _rows(session_factory))["k1"].is_active

    async def test_store_conflict_is_recorded_and_run_continues(self, session_factory, clock):
        broken = replace(_cand("bad"), end_date=date(2029, 1, 1))
        observer = RecordingObserver()

        outcome = await _reconcile(
            session_factory, clock, [broken, _cand("k2", "Beta")], observer=observer
        )

        assert [c["key"] for c in outcome.conflicts] == ["bad"]
        assert outcome.created == 1
        assert observer.actions(actions.CONFLICT) == ["bad"]
        assert set(await _rows(session_factory)) == {"k2"}

    async def test_deadline_between_writes_stops_and_skips_retire_pass(
        self, session_factory, clock, seed
    ):
        await seed.carnival(external_key="old")
        deadline = clock.now() + timedelta(minutes=5)

        class SlowWrites(RecordingObserver):
            def record(self, external_key, action):
                super().record(external_key, action)
                clock.advance(minutes=10)

        outcome = SyncOutcome()
        reconciler = Reconciler(CarnivalDAO(), clock, SlowWrites())
        await reconciler.reconcile(
            session_factory,
            "mysideline",
            _stream([_cand("k1"), _cand("k2", "Beta")]),
            deadline=deadline,
            outcome=outcome,
        )

        assert outcome.partial
        assert outcome.processed == 1
        assert outcome.retired == 0
        rows = await _rows(session_factory)
        assert set(rows) == {"old", "k1"}
        assert rows["old"].is_active

    async def test_deadline_while_reading_writes_nothing(self, session_factory, clock, seed):
        await seed.carnival(external_key="old")
        deadline = clock.now() + timedelta(minutes=5)
        closed = []

        async def slow_stream():
            try:
                yield _cand("k1")
                clock.advance(minutes=10)
                yield _cand("k2", "Beta")
                yield _cand("k3", "Gamma")
            finally:
                closed.append(True)

        outcome = await _reconcile(session_factory, clock, slow_stream(), deadline=deadline)

        assert outcome.partial
        assert outcome.processed == 0
        assert closed == [True]
        rows = await _rows(session_factory)
        assert set(rows) == {"old"}
        assert rows["old"].is_active


class TestDuplicateIdempotence:
    async def test_repeating_a_sequence_with_duplicates_changes_nothing(
        self, session_factory, clock
    ):
        items = [_cand("k1", "Alpha"), _cand("k2", "Beta"), _cand("k1", "Alpha v2")]

        first = await _reconcile(session_factory, clock, items)
        after_first = (await _rows(session_factory))["k1"]
        clock.advance(hours=1)
        second = await _reconcile(session_factory, clock, items)
        after_second = (await _rows(session_factory))["k1"]

        assert first.counters()["eventsCreated"] == 2
        assert second.counters() == {
            "eventsProcessed": 2,
            "eventsCreated": 0,
            "eventsUpdated": 0,
            "eventsRetired": 0,
        }
        assert second.duplicates == ["k1"]
        assert after_second.title == "Alpha v2"
        assert after_second.content_hash == after_first.content_hash
        assert after_second.updated_at == after_first.updated_at

    async def test_duplicate_keys_are_written_in_last_occurrence_order(
        self, session_factory, clock
    ):
        observer = RecordingObserver()

        await _reconcile(
            session_factory,
            clock,
            [_cand("k1"), _cand("k2", "Beta"), _cand("k1", "Alpha v2")],
            observer=observer,
        )

        assert observer.actions(actions.CREATED) == ["k2", "k1"]
