from typing import Annotated

from fastapi import APIRouter, Body, Depends, HTTPException, Query

from gachalog.schemas.common import APIResponse
from gachalog.schemas.gacha_log import (
    AccountLog,
    DisplayHints,
    IngestRequest,
    IngestResult,
    MigrateRequest,
    SourceDescriptor,
)
from gachalog.schemas.leaderboard import LeaderboardEntry
from gachalog.schemas.stats import GachaStats
from gachalog.services.gacha_log import GachaLogService

router = APIRouter(prefix="/gacha-logs", tags=["gacha-logs"])


@router.post("/import")
async def import_gacha_log(
    request: IngestRequest, service: Annotated[GachaLogService, Depends()]
) -> APIResponse[IngestResult]:
    try:
        source = SourceDescriptor.from_url(request.url, request.locale)
    except ValueError as e:
        raise HTTPException(status_code=400, detail="無效的抽卡紀錄網址") from e

    result = await service.ingest_and_merge(request.account_id, source, request.hints)
    return APIResponse(data=result, message="Gacha log imported successfully")


@router.get("/{account_id}")
async def get_gacha_log(
    account_id: str, service: Annotated[GachaLogService, Depends()]
) -> APIResponse[AccountLog]:
    log = await service.get_log_or_404(account_id)
    return APIResponse(data=log)


@router.get("/{account_id}/stats")
async def get_gacha_stats(
    account_id: str, service: Annotated[GachaLogService, Depends()]
) -> APIResponse[GachaStats]:
    log = await service.get_log_or_404(account_id)
    return APIResponse(data=await service.get_stats(log))


@router.post("/{account_id}/leaderboard")
async def update_leaderboard(
    account_id: str,
    service: Annotated[GachaLogService, Depends()],
    hints: Annotated[DisplayHints | None, Body()] = None,
) -> APIResponse[LeaderboardEntry]:
    log = await service.get_log_or_404(account_id)
    entry = await service.leaderboard.update_leaderboard(account_id, log, hints)
    if entry is None:
        return APIResponse(message="Guest accounts are not ranked")
    return APIResponse(data=entry, message="Leaderboard updated successfully")


@router.delete("/{account_id}")
async def clear_gacha_log(
    account_id: str,
    service: Annotated[GachaLogService, Depends()],
    start: Annotated[str | None, Query(description="YYYY-MM-DD, UTC+8")] = None,
    end: Annotated[str | None, Query(description="YYYY-MM-DD, UTC+8")] = None,
) -> APIResponse[AccountLog]:
    log = await service.clear_log(account_id, start, end)
    if log is None:
        return APIResponse(message="Gacha log deleted successfully")
    return APIResponse(data=log, message="Gacha records cleared successfully")


@router.post("/{source_id}/migrate")
async def migrate_gacha_log(
    source_id: str, request: MigrateRequest, service: Annotated[GachaLogService, Depends()]
) -> APIResponse[AccountLog]:
    log = await service.migrate_log(source_id, request.target_account_id, request.hints)
    if log is None:
        raise HTTPException(status_code=404, detail="找不到抽卡紀錄")
    return APIResponse(data=log, message="Gacha log migrated successfully")
