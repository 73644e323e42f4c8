"""Tests for the API layer.

Services are mocked to isolate routing, schemas and error mapping; the
auth tests at the bottom go through a real token and a SQLite session.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
import structlog
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from carnivalsync.api import deps
from carnivalsync.api.errors import register_error_handlers
from carnivalsync.api.middleware.request_id import RequestIDMiddleware
from carnivalsync.api.routers import events, sync
from carnivalsync.dao.base import InvalidCursorError
from carnivalsync.dao.user_dao import UserDAO
from carnivalsync.engines.event_ingestor.models import SyncOutcome, SyncResult
from carnivalsync.models.carnival import Carnival
from carnivalsync.models.sync_log import SyncLog
from carnivalsync.models.user import User
from carnivalsync.services import ConflictError, GoneError, NotFoundError
from carnivalsync.services.auth_service import AuthService
from carnivalsync.services.ownership_service import (
    AssignResult,
    Claimant,
    ClaimResult,
    ReleaseResult,
)

NOW = datetime(2025, 6, 1, 9, 0, 0, tzinfo=timezone.utc)
USER_ID = uuid.uuid4()
ADMIN_ID = uuid.uuid4()
CLUB_ID = uuid.uuid4()
TEST_SECRET = "test-jwt-secret-for-unit-tests"


def _user(*, admin: bool = False) -> User:
    return User(
        id=ADMIN_ID if admin else USER_ID,
        email="pat@example.com",
        first_name="Pat",
        last_name="Smith",
        club_id=CLUB_ID,
        is_active=True,
        is_admin=admin,
        created_at=NOW,
        updated_at=NOW,
    )


def _carnival(event_id: uuid.UUID | None = None, owner: uuid.UUID | None = None) -> Carnival:
    return Carnival(
        id=event_id or uuid.uuid4(),
        title="Central Coast Masters Carnival",
        date=date(2025, 7, 19),
        end_date=None,
        state="NSW",
        location_address="Morrie Breen Oval",
        contact_name="Pat Smith",
        contact_email="pat@example.com",
        contact_phone=None,
        schedule_details=None,
        registration_link="https://register.test/abc",
        fees_description=None,
        source_origin="external:mysideline",
        external_key="abc",
        content_hash="h",
        last_external_sync_at=NOW,
        owner_user_id=owner,
        claimed_at=NOW if owner else None,
        is_active=True,
        created_at=NOW,
        updated_at=NOW,
    )


def _claimant() -> Claimant:
    return Claimant(user_id=USER_ID, user_name="Pat Smith", club_id=CLUB_ID, club_name="Wests")


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


def _build_app() -> FastAPI:
    application = FastAPI()
    register_error_handlers(application)
    application.add_middleware(RequestIDMiddleware)
    application.include_router(events.router, prefix="/events")
    application.include_router(sync.router, prefix="/sync")
    return application


@pytest.fixture
def app():
    """Test app with a mocked session and a signed-in non-admin user."""
    application = _build_app()
    mock_session = MagicMock()

    async def _mock_session():
        yield mock_session

    async def _mock_user():
        return _user()

    application.dependency_overrides[deps.get_session] = _mock_session
    application.dependency_overrides[deps.get_current_user] = _mock_user
    return application


@pytest.fixture
def as_admin(app):
    async def _admin():
        return _user(admin=True)

    app.dependency_overrides[deps.get_current_user] = _admin
    return app


@pytest.fixture
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


class TestEventsRouter:
    async def test_get_event(self, app, client):
        event = _carnival()
        svc = MagicMock()
        svc.get = AsyncMock(return_value=event)
        app.dependency_overrides[deps.get_carnival_service] = lambda: svc

        resp = await client.get(f"/events/{event.id}")

        assert resp.status_code == 200
        body = resp.json()
        assert body["id"] == str(event.id)
        assert body["sourceOrigin"] == "external:mysideline"
        assert body["externalKey"] == "abc"
        assert body["ownerUserId"] is None
        assert body["isActive"] is True
        assert body["date"] == "2025-07-19"

    async def test_get_event_not_found(self, app, client):
        svc = MagicMock()
        svc.get = AsyncMock(side_effect=NotFoundError("event not found"))
        app.dependency_overrides[deps.get_carnival_service] = lambda: svc

        resp = await client.get(f"/events/{uuid.uuid4()}")

        assert resp.status_code == 404
        assert resp.json() == {"code": "not_found", "message": "event not found"}

    async def test_bad_event_id_is_validation_error(self, client):
        resp = await client.get("/events/not-a-uuid")
        assert resp.status_code == 422
        assert resp.json()["code"] == "validation_error"

    async def test_claim(self, app, client):
        event = _carnival(owner=USER_ID)
        svc = MagicMock()
        svc.claim = AsyncMock(return_value=ClaimResult(event=event, claimed_by=_claimant()))
        app.dependency_overrides[deps.get_ownership_service] = lambda: svc

        resp = await client.post(f"/events/{event.id}/claim")

        assert resp.status_code == 200
        body = resp.json()
        assert body["event"]["ownerUserId"] == str(USER_ID)
        assert body["claimedBy"] == {
            "userId": str(USER_ID),
            "userName": "Pat Smith",
            "clubId": str(CLUB_ID),
            "clubName": "Wests",
        }
        _, event_id, user_id = svc.claim.await_args.args
        assert (event_id, user_id) == (event.id, USER_ID)

    @pytest.mark.parametrize(
        "exc, status, code",
        [
            (ConflictError("already claimed"), 409, "conflict"),
            (GoneError("event is no longer active"), 410, "gone"),
        ],
    )
    async def test_claim_errors(self, app, client, exc, status, code):
        svc = MagicMock()
        svc.claim = AsyncMock(side_effect=exc)
        app.dependency_overrides[deps.get_ownership_service] = lambda: svc

        resp = await client.post(f"/events/{uuid.uuid4()}/claim")

        assert resp.status_code == status
        assert resp.json() == {"code": code, "message": exc.message}

    async def test_release(self, app, client):
        event = _carnival()
        svc = MagicMock()
        svc.release = AsyncMock(return_value=ReleaseResult(event=event, previous_owner_id=USER_ID))
        app.dependency_overrides[deps.get_ownership_service] = lambda: svc

        resp = await client.post(f"/events/{event.id}/release")

        assert resp.status_code == 200
        assert resp.json()["previousOwnerId"] == str(USER_ID)

    async def test_assign_requires_admin(self, app, client):
        svc = MagicMock()
        svc.admin_assign = AsyncMock()
        app.dependency_overrides[deps.get_ownership_service] = lambda: svc

        resp = await client.post(f"/events/{uuid.uuid4()}/owner", json={"userId": None})

        assert resp.status_code == 403
        assert resp.json()["code"] == "forbidden"
        svc.admin_assign.assert_not_awaited()

    async def test_admin_clears_owner(self, as_admin, client):
        event = _carnival()
        svc = MagicMock()
        svc.admin_assign = AsyncMock(
            return_value=AssignResult(
                event=event, assigned_to=None, previous_owner_id=USER_ID, warnings=[]
            )
        )
        as_admin.dependency_overrides[deps.get_ownership_service] = lambda: svc

        resp = await client.post(f"/events/{event.id}/owner", json={"userId": None})

        assert resp.status_code == 200
        body = resp.json()
        assert body["assignedTo"] is None
        assert body["previousOwnerId"] == str(USER_ID)
        assert svc.admin_assign.await_args.args[1:] == (event.id, None, ADMIN_ID)

    async def test_admin_assign_reports_warnings(self, as_admin, client):
        event = _carnival(owner=USER_ID)
        svc = MagicMock()
        svc.admin_assign = AsyncMock(
            return_value=AssignResult(
                event=event,
                assigned_to=_claimant(),
                previous_owner_id=None,
                warnings=["club state QLD differs from event state NSW"],
            )
        )
        as_admin.dependency_overrides[deps.get_ownership_service] = lambda: svc

        resp = await client.post(f"/events/{event.id}/owner", json={"userId": str(USER_ID)})

        assert resp.status_code == 200
        assert resp.json()["warnings"] == ["club state QLD differs from event state NSW"]
        assert resp.json()["assignedTo"]["userId"] == str(USER_ID)

    async def test_assign_body_requires_user_id(self, as_admin, client):
        resp = await client.post(f"/events/{uuid.uuid4()}/owner", json={})
        assert resp.status_code == 422
        assert resp.json()["code"] == "validation_error"


# ---------------------------------------------------------------------------
# Sync
# ---------------------------------------------------------------------------


class TestSyncRouter:
    async def test_stats(self, app, client):
        svc = MagicMock()
        svc.stats = AsyncMock(
            return_value={
                "syncType": "external-events:mysideline",
                "lookbackDays": 7,
                "totalSyncs": 3,
                "successfulSyncs": 2,
                "failedSyncs": 1,
                "totalEventsProcessed": 10,
                "totalEventsCreated": 4,
                "totalEventsUpdated": 1,
                "totalEventsRetired": 0,
                "lastSuccessfulAt": NOW.isoformat(),
                "lastFailedAt": None,
            }
        )
        app.dependency_overrides[deps.get_sync_log_service] = lambda: svc

        resp = await client.get("/sync/stats", params={"days": 7})

        assert resp.status_code == 200
        body = resp.json()
        assert body["totalSyncs"] == 3
        assert body["lastFailedAt"] is None
        assert svc.stats.await_args.args[1:] == ("external-events:mysideline", 7)

    async def test_stats_rejects_negative_days(self, client):
        resp = await client.get("/sync/stats", params={"days": -1})
        assert resp.status_code == 422

    async def test_logs_require_admin(self, client):
        resp = await client.get("/sync/logs")
        assert resp.status_code == 403

    async def test_logs(self, as_admin, client):
        row = SyncLog(
            id=uuid.uuid4(),
            sync_type="external-events:mysideline",
            status="completed",
            started_at=NOW,
            completed_at=NOW,
            events_processed=2,
            events_created=2,
            events_updated=0,
            events_retired=0,
            error_message=None,
            metadata_={"source": "mysideline"},
            created_at=NOW,
            updated_at=NOW,
        )
        svc = MagicMock()
        svc.list = AsyncMock(return_value={"data": [row], "next_cursor": "abc", "has_more": True})
        as_admin.dependency_overrides[deps.get_sync_log_service] = lambda: svc

        resp = await client.get("/sync/logs", params={"pageSize": 1})

        assert resp.status_code == 200
        body = resp.json()
        assert body["meta"] == {"nextCursor": "abc", "hasMore": True}
        assert body["data"][0]["eventsCreated"] == 2
        assert body["data"][0]["metadata"] == {"source": "mysideline"}
        assert svc.list.await_args.kwargs["page_size"] == 1

    async def test_logs_invalid_cursor(self, as_admin, client):
        svc = MagicMock()
        svc.list = AsyncMock(side_effect=InvalidCursorError("invalid cursor: 'x'"))
        as_admin.dependency_overrides[deps.get_sync_log_service] = lambda: svc

        resp = await client.get("/sync/logs", params={"cursor": "x"})

        assert resp.status_code == 422
        assert resp.json()["code"] == "validation_error"

    async def test_run(self, as_admin, client):
        sync_log_id = uuid.uuid4()
        runner = MagicMock()
        runner.run_sync = AsyncMock(
            return_value=SyncResult(
                status="completed",
                sync_type="external-events:mysideline",
                outcome=SyncOutcome(processed=2, created=2),
                sync_log_id=sync_log_id,
            )
        )
        as_admin.dependency_overrides[deps.get_sync_runner] = lambda: runner

        resp = await client.post("/sync/run", json={"force": True})

        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "completed"
        assert body["exitCode"] == 0
        assert body["syncLogId"] == str(sync_log_id)
        assert body["outcome"]["eventsCreated"] == 2
        options = runner.run_sync.await_args.kwargs["options"]
        assert options.force is True
        assert options.trigger_source == "api"


class TestRequestId:
    async def test_generated_when_missing(self, app, client):
        svc = MagicMock()
        svc.get = AsyncMock(side_effect=NotFoundError("event not found"))
        app.dependency_overrides[deps.get_carnival_service] = lambda: svc

        resp = await client.get(f"/events/{uuid.uuid4()}")

        uuid.UUID(resp.headers["X-Request-ID"])

    async def test_valid_id_echoed(self, app, client):
        svc = MagicMock()
        svc.get = AsyncMock(side_effect=NotFoundError("event not found"))
        app.dependency_overrides[deps.get_carnival_service] = lambda: svc
        request_id = str(uuid.uuid4())

        resp = await client.get(f"/events/{uuid.uuid4()}", headers={"X-Request-ID": request_id})

        assert resp.headers["X-Request-ID"] == request_id

    async def test_request_binding_keeps_outer_context(self, app, client):
        seen = {}

        async def _get(session, event_id):
            seen.update(structlog.contextvars.get_contextvars())
            raise NotFoundError("event not found")

        svc = MagicMock()
        svc.get = AsyncMock(side_effect=_get)
        app.dependency_overrides[deps.get_carnival_service] = lambda: svc
        structlog.contextvars.bind_contextvars(sync_type="external-events:mysideline")
        try:
            resp = await client.get(f"/events/{uuid.uuid4()}")
            after = structlog.contextvars.get_contextvars()
        finally:
            structlog.contextvars.clear_contextvars()

        assert seen["sync_type"] == "external-events:mysideline"
        assert seen["request_id"] == resp.headers["X-Request-ID"]
        assert after == {"sync_type": "external-events:mysideline"}


# ---------------------------------------------------------------------------
# Bearer auth against a real session
# ---------------------------------------------------------------------------


class TestBearerAuth:
    @pytest.fixture
    async def real_client(self, session_factory, monkeypatch):
        monkeypatch.setenv("CARNIVALSYNC_JWT_SECRET", TEST_SECRET)
        application = _build_app()

        async def _session():
            async with session_factory() as session:
                async with session.begin():
                    yield session

        application.dependency_overrides[deps.get_session] = _session
        transport = ASGITransport(app=application)
        async with AsyncClient(transport=transport, base_url="http://test") as c:
            yield c

    async def test_missing_header_is_401(self, real_client):
        resp = await real_client.get("/sync/stats")
        assert resp.status_code == 401
        assert resp.headers["WWW-Authenticate"] == "Bearer"
        assert resp.json()["code"] == "unauthenticated"

    async def test_garbage_token_is_401(self, real_client):
        resp = await real_client.get(
            "/sync/stats", headers={"Authorization": "Bearer not-a-token"}
        )
        assert resp.status_code == 401

    async def test_valid_token(self, real_client, seed):
        user = await seed.user()
        token = AuthService(UserDAO()).issue_token(user.id)

        resp = await real_client.get(
            "/sync/stats", headers={"Authorization": f"Bearer {token}"}
        )

        assert resp.status_code == 200
        assert resp.json()["totalSyncs"] == 0

    async def test_token_for_inactive_user(self, real_client, seed):
        user = await seed.user(is_active=False)
        token = AuthService(UserDAO()).issue_token(user.id)

        resp = await real_client.get(
            "/sync/stats", headers={"Authorization": f"Bearer {token}"}
        )

        assert resp.status_code == 401
