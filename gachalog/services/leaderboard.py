from collections.abc import Iterable
from typing import Annotated, Any

import httpx
from fastapi import Depends
from loguru import logger
from pydantic import ValidationError
from sqlmodel.ext.asyncio.session import AsyncSession

from gachalog.core.config import settings
from gachalog.core.db import get_db
from gachalog.core.enums import LeaderboardGroup, SortMode
from gachalog.core.http import get_http_client
from gachalog.schemas.gacha_log import AccountLog, DisplayHints
from gachalog.schemas.leaderboard import GroupStat, LeaderboardEntry, RankedEntry
from gachalog.schemas.stats import GachaStats, GroupSummary
from gachalog.services.pity import SPECIAL_GROUP, STANDARD_GROUP_PREFIX, reconstruct
from gachalog.services.pool_metadata import PoolMetadataProvider
from gachalog.services.record_store import RecordStore
from gachalog.utils.misc import get_epoch_ms

ENTRIES_KEY = "leaderboard:entries"
POOL_NAMES_KEY = "leaderboard:pool_names"
LOG_KEY_PREFIX = "log:"


def _sum_groups(groups: Iterable[GroupSummary]) -> GroupStat:
    result = GroupStat()
    for group in groups:
        result += GroupStat.from_counts(
            group.total, group.paid_six_star_count, group.paid_five_star_count
        )
    return result


def build_entry(
    account_id: str,
    stats: GachaStats,
    hints: DisplayHints | None = None,
    previous: LeaderboardEntry | None = None,
    fallback_nickname: str | None = None,
) -> LeaderboardEntry:
    """Flatten an account's pity summaries into one leaderboard row.

    Display fields missing from ``hints`` are carried over from ``previous``.
    """
    hints = hints or DisplayHints()
    char_groups = stats.char.summary
    weapon_groups = stats.weapon.summary

    group_stats: dict[str, GroupStat] = {}
    for summary in [*char_groups.values(), *weapon_groups.values()]:
        for pool_id, pool in summary.pools.items():
            group_stats[pool_id] = GroupStat.from_counts(
                pool.total, pool.six_star_count, pool.five_star_count
            )

    group_stats[LeaderboardGroup.SPECIAL] = _sum_groups(
        group for group_id, group in char_groups.items() if group_id == SPECIAL_GROUP
    )
    group_stats[LeaderboardGroup.STANDARD] = _sum_groups(
        group
        for group_id, group in char_groups.items()
        if group_id.startswith(STANDARD_GROUP_PREFIX)
    )
    group_stats[LeaderboardGroup.WEAPON] = _sum_groups(weapon_groups.values())
    group_stats[LeaderboardGroup.TOTAL] = _sum_groups(
        [*char_groups.values(), *weapon_groups.values()]
    )

    free_pulls = sum(
        group.free_total for group in [*char_groups.values(), *weapon_groups.values()]
    )
    paid_pulls = group_stats[LeaderboardGroup.TOTAL].total

    return LeaderboardEntry(
        uid=account_id,
        display_name=hints.display_name or (previous.display_name if previous else None),
        nickname=hints.nickname or fallback_nickname or (previous.nickname if previous else None),
        avatar_url=hints.avatar_url or (previous.avatar_url if previous else None),
        account_index=hints.account_index or (previous.account_index if previous else None),
        total_pulls=paid_pulls + free_pulls,
        paid_pulls=paid_pulls,
        free_pulls=free_pulls,
        stats={str(group_id): stat for group_id, stat in group_stats.items()},
        updated_at=get_epoch_ms(),
    )


def collect_pool_names(stats: GachaStats) -> dict[str, str]:
    """Pool names the records actually carried, pools only known by id are left out."""
    return {
        pool.id: pool.name
        for pool in [*stats.char.pools, *stats.weapon.pools]
        if pool.name and pool.name != pool.id
    }


def _parse_entry(value: Any) -> LeaderboardEntry | None:
    if value is None:
        return None
    try:
        return LeaderboardEntry.model_validate(value)
    except ValidationError:
        return None


def rank_entries(
    entries: Iterable[LeaderboardEntry], group_id: str, sort_mode: SortMode
) -> list[RankedEntry]:
    """Rank entries with activity in ``group_id``, ties keep their incoming order."""
    candidates = [
        (entry, entry.stats[group_id])
        for entry in entries
        if not settings.is_guest_account(entry.uid)
        and group_id in entry.stats
        and entry.stats[group_id].total > 0
    ]

    if sort_mode == SortMode.LUCK:
        candidates.sort(key=lambda item: item[1].probability, reverse=True)
    else:
        candidates.sort(key=lambda item: item[1].total, reverse=True)

    return [
        RankedEntry(
            rank=idx + 1,
            uid=entry.uid,
            display_name=entry.display_name,
            nickname=entry.nickname,
            avatar_url=entry.avatar_url,
            account_index=entry.account_index,
            stat=stat,
        )
        for idx, (entry, stat) in enumerate(candidates)
    ]


class LeaderboardService:
    def __init__(
        self,
        db: Annotated[AsyncSession, Depends(get_db)],
        http: Annotated[httpx.AsyncClient, Depends(get_http_client)],
    ) -> None:
        self.db = db
        self.store = RecordStore(db)
        self.metadata = PoolMetadataProvider(self.store, http)

    async def _load_entries(self) -> tuple[dict[str, LeaderboardEntry], int]:
        """Return parsed rows and how many stored rows were unreadable."""
        raw: dict[str, Any] = await self.store.get(ENTRIES_KEY) or {}
        entries: dict[str, LeaderboardEntry] = {}
        corrupt = 0
        for account_id, value in raw.items():
            entry = _parse_entry(value)
            if entry is None:
                corrupt += 1
                logger.warning(f"Skipping corrupt leaderboard row for {account_id}")
                continue
            entries[account_id] = entry
        return entries, corrupt

    async def get_entries(self) -> dict[str, LeaderboardEntry]:
        entries, _ = await self._load_entries()
        return entries

    async def get_pool_names(self) -> dict[str, str]:
        return await self.store.get(POOL_NAMES_KEY) or {}

    async def update_leaderboard(
        self, account_id: str, log: AccountLog, hints: DisplayHints | None = None
    ) -> LeaderboardEntry | None:
        """Recompute an account's row and fold it into the shared table.

        Guest identities are never written; an existing row for one is removed instead.
        """
        if settings.is_guest_account(account_id):
            await self.remove_entry(account_id)
            return None

        stats = reconstruct(log, await self.metadata.get_for_log(log))
        built: list[LeaderboardEntry] = []

        def fold_entry(current: dict[str, Any] | None) -> dict[str, Any]:
            table = current or {}
            previous = _parse_entry(table.get(account_id))
            entry = build_entry(account_id, stats, hints, previous, log.info.nickname)
            built.append(entry)
            table[account_id] = entry.model_dump(mode="json", by_alias=True)
            return table

        await self.store.update(ENTRIES_KEY, fold_entry)

        # Any single account may only have seen some pools, so names are merged
        pool_names = collect_pool_names(stats)
        if pool_names:
            await self.store.update(
                POOL_NAMES_KEY, lambda current: {**(current or {}), **pool_names}
            )

        logger.info(f"Updated leaderboard row for {account_id}")
        return built[-1]

    async def remove_entry(self, account_id: str) -> bool:
        removed: list[bool] = []

        def drop_entry(current: dict[str, Any] | None) -> dict[str, Any]:
            table = current or {}
            removed.append(table.pop(account_id, None) is not None)
            return table

        await self.store.update(ENTRIES_KEY, drop_entry)
        return removed[-1]

    async def sync_existing_logs(self) -> int:
        """Rebuild rows for every stored account log. Returns how many rows were written."""
        await self.store.update(
            ENTRIES_KEY,
            lambda current: {
                account_id: value
                for account_id, value in (current or {}).items()
                if _parse_entry(value) is not None
            },
        )

        synced = 0
        for key, value in await self.store.find_by_prefix(LOG_KEY_PREFIX):
            account_id = key.removeprefix(LOG_KEY_PREFIX)
            if settings.is_guest_account(account_id):
                continue
            try:
                log = AccountLog.model_validate(value)
            except ValidationError:
                logger.warning(f"Skipping unreadable gacha log {key}")
                continue
            if await self.update_leaderboard(account_id, log):
                synced += 1

        logger.info(f"Synced {synced} gacha logs to the leaderboard")
        return synced

    async def get_leaderboard(
        self, group_id: str = LeaderboardGroup.TOTAL, sort_mode: SortMode = SortMode.PULLS
    ) -> list[RankedEntry]:
        entries, corrupt = await self._load_entries()
        if not entries or corrupt:
            await self.sync_existing_logs()
            entries, _ = await self._load_entries()

        return rank_entries(entries.values(), group_id, sort_mode)
