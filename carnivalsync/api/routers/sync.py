"""Sync history, stats and operator trigger router."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from carnivalsync.api.deps import (
    get_admin_user,
    get_current_user,
    get_session,
    get_sync_log_service,
    get_sync_runner,
)
from carnivalsync.api.schemas.common import PageMeta, PaginatedResponse
from carnivalsync.api.schemas.sync import SyncLogItem, SyncRunRequest, SyncRunResponse, SyncStats
from carnivalsync.engines.event_ingestor.models import SyncOptions
from carnivalsync.engines.event_ingestor.runner import SyncRunner, sync_type_for
from carnivalsync.models.user import User
from carnivalsync.services.sync_log_service import SyncLogService

router = APIRouter()


@router.get("/logs", response_model=PaginatedResponse[SyncLogItem])
async def list_sync_logs(
    cursor: str | None = Query(None),
    page_size: int = Query(20, ge=1, le=100, alias="pageSize"),
    sync_type: str | None = Query(None, alias="syncType"),
    session: AsyncSession = Depends(get_session),
    _admin: User = Depends(get_admin_user),
    svc: SyncLogService = Depends(get_sync_log_service),
) -> PaginatedResponse[SyncLogItem]:
    result = await svc.list(session, cursor=cursor, page_size=page_size, sync_type=sync_type)
    return PaginatedResponse(
        data=[SyncLogItem.model_validate(row) for row in result["data"]],
        meta=PageMeta(next_cursor=result["next_cursor"], has_more=result["has_more"]),
    )


@router.get("/stats", response_model=SyncStats)
async def sync_stats(
    sync_type: str = Query(sync_type_for("mysideline"), alias="syncType"),
    days: int = Query(30, ge=0, le=3650),
    session: AsyncSession = Depends(get_session),
    _user: User = Depends(get_current_user),
    svc: SyncLogService = Depends(get_sync_log_service),
) -> SyncStats:
    return SyncStats.model_validate(await svc.stats(session, sync_type, days))


@router.post("/run", response_model=SyncRunResponse)
async def run_sync(
    body: SyncRunRequest,
    _admin: User = Depends(get_admin_user),
    runner: SyncRunner = Depends(get_sync_runner),
) -> SyncRunResponse:
    result = await runner.run_sync(
        options=SyncOptions(source=body.source, force=body.force, trigger_source="api")
    )
    return SyncRunResponse.model_validate(result.to_dict())
