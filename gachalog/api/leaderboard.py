from typing import Annotated

from fastapi import APIRouter, Depends, Query

from gachalog.core.enums import LeaderboardGroup, SortMode
from gachalog.schemas.common import APIResponse
from gachalog.schemas.leaderboard import RankedEntry
from gachalog.services.leaderboard import LeaderboardService

router = APIRouter(prefix="/leaderboard", tags=["leaderboard"])


@router.get("/")
async def get_leaderboard(
    service: Annotated[LeaderboardService, Depends()],
    group_id: Annotated[str, Query(min_length=1)] = LeaderboardGroup.TOTAL,
    sort_mode: SortMode = SortMode.PULLS,
) -> APIResponse[list[RankedEntry]]:
    """Rank accounts by pull count or 6★ rate within one pity group or pool."""
    entries = await service.get_leaderboard(group_id, sort_mode)
    return APIResponse(data=entries)


@router.get("/pool-names")
async def get_pool_names(
    service: Annotated[LeaderboardService, Depends()],
) -> APIResponse[dict[str, str]]:
    return APIResponse(data=await service.get_pool_names())
