import asyncio
import datetime
import functools
from collections.abc import Awaitable, Callable, Iterable
from typing import Annotated

import httpx
from fastapi import Depends, HTTPException
from loguru import logger
from pydantic import ValidationError
from sqlmodel.ext.asyncio.session import AsyncSession

from gachalog.core.config import settings
from gachalog.core.db import get_db
from gachalog.core.enums import CHARACTER_CATEGORIES
from gachalog.core.exceptions import StoreConflictError
from gachalog.core.http import get_http_client
from gachalog.schemas.gacha_log import (
    AccountLog,
    DisplayHints,
    IngestResult,
    PullPage,
    PullRecord,
    SourceDescriptor,
)
from gachalog.schemas.stats import GachaStats
from gachalog.services.leaderboard import LOG_KEY_PREFIX, LeaderboardService
from gachalog.services.pity import reconstruct
from gachalog.services.pool_metadata import PoolMetadataProvider
from gachalog.services.record_store import RecordStore
from gachalog.utils.misc import get_epoch_ms, parse_date_bound, parse_gacha_ts
from gachalog.utils.pull_source import PullSourceClient


def log_key(account_id: str) -> str:
    return f"{LOG_KEY_PREFIX}{account_id}"


def merge_records(
    existing: Iterable[PullRecord], incoming: Iterable[PullRecord]
) -> list[PullRecord]:
    """Merge two record lists by ``seqId``, newest first.

    Incoming records replace stored ones with the same ``seqId`` so a re-fetch can pick up
    corrected names or metadata.
    """
    by_seq: dict[str, PullRecord] = {record.seq_id: record for record in existing}
    for record in incoming:
        by_seq[record.seq_id] = record
    return sorted(by_seq.values(), key=lambda record: record.seq, reverse=True)


def _in_range(
    record: PullRecord, start: datetime.datetime | None, end: datetime.datetime | None
) -> bool:
    pulled_at = parse_gacha_ts(record.gacha_ts)
    if pulled_at is None:
        return False
    if start and pulled_at < start:
        return False
    return not (end and pulled_at > end)


class GachaLogService:
    def __init__(
        self,
        db: Annotated[AsyncSession, Depends(get_db)],
        http: Annotated[httpx.AsyncClient, Depends(get_http_client)],
    ) -> None:
        self.db = db
        self.http = http
        self.store = RecordStore(db)
        self.metadata = PoolMetadataProvider(self.store, http)
        self.leaderboard = LeaderboardService(db, http)

    async def get_log(self, account_id: str) -> AccountLog | None:
        raw = await self.store.get(log_key(account_id))
        if raw is None:
            return None

        try:
            return AccountLog.model_validate(raw)
        except ValidationError as e:
            logger.error(f"Stored gacha log for {account_id} is unreadable: {e}")
            raise HTTPException(status_code=500, detail="抽卡紀錄資料損毀") from e

    async def get_log_or_404(self, account_id: str) -> AccountLog:
        log = await self.get_log(account_id)
        if log is None:
            raise HTTPException(status_code=404, detail="找不到抽卡紀錄")
        return log

    async def save_log(self, log: AccountLog) -> None:
        await self.store.set(log_key(log.info.uid), log.to_store())

    async def _paginate(
        self, fetch_page: Callable[[str | None], Awaitable[PullPage]], label: str
    ) -> tuple[list[PullRecord], int]:
        """Walk one pool's pages until the source reports no more.

        Returns:
            Tuple of (records, number of rejected raw records)
        """
        records: list[PullRecord] = []
        rejected = 0
        cursor: str | None = None
        page_number = 1

        while True:
            logger.debug(f"Fetching {label} records, page {page_number}")
            page = await fetch_page(cursor)
            records.extend(page.records)
            rejected += page.rejected

            if not page.has_more:
                break
            if not page.records:
                logger.warning(f"{label} reported more pages without a usable cursor, stopping")
                break

            cursor = page.records[-1].seq_id
            page_number += 1
            await asyncio.sleep(settings.page_delay_seconds)

        return records, rejected

    async def ingest_and_merge(
        self,
        account_id: str | None,
        source: SourceDescriptor,
        hints: DisplayHints | None = None,
        client: PullSourceClient | None = None,
    ) -> IngestResult:
        """Fetch every page from the record service and merge it into the stored log.

        Each pool category is merged and persisted as soon as it is fetched, so a failure
        in a later category keeps the earlier ones.

        Raises:
            GachaSourceError: If a page fetch fails
        """
        account_id = account_id or source.default_account_id()
        hints = hints or DisplayHints()
        client = client or PullSourceClient(source, self.http)

        log = await self.get_log(account_id) or AccountLog.empty(account_id, source.lang)
        log.info.lang = source.lang
        log.info.server_id = source.server_id
        if hints.nickname:
            log.info.nickname = hints.nickname

        logger.info(f"Starting gacha log merge for {account_id}")
        rejected = 0

        for category in CHARACTER_CATEGORIES:
            records, dropped = await self._paginate(
                functools.partial(client.fetch_character_page, category), category.value
            )
            rejected += dropped
            log.character_list = merge_records(log.character_list, records)
            await self.save_log(log)

        for banner in await client.fetch_weapon_banners():
            records, dropped = await self._paginate(
                functools.partial(
                    client.fetch_weapon_page, banner.pool_id, pool_name=banner.pool_name
                ),
                banner.pool_name or banner.pool_id,
            )
            rejected += dropped
            log.weapon_list = merge_records(log.weapon_list, records)
            await self.save_log(log)

        log.info.export_timestamp = get_epoch_ms()
        await self.save_log(log)
        logger.info(
            f"Merged gacha log for {account_id}: {len(log.character_list)} character, "
            f"{len(log.weapon_list)} weapon records ({rejected} rejected)"
        )

        try:
            await self.leaderboard.update_leaderboard(account_id, log, hints)
        except StoreConflictError:
            # The log is already saved, the row is rebuilt on the next update
            logger.exception(f"Leaderboard update for {account_id} kept conflicting")

        return IngestResult(
            account_id=account_id,
            char_total=len(log.character_list),
            weapon_total=len(log.weapon_list),
            rejected=rejected,
        )

    async def get_stats(self, log: AccountLog) -> GachaStats:
        return reconstruct(log, await self.metadata.get_for_log(log))

    async def clear_log(
        self, account_id: str, start_time: str | None = None, end_time: str | None = None
    ) -> AccountLog | None:
        """Remove records pulled between two ``YYYY-MM-DD`` dates (inclusive, UTC+8).

        Without bounds the whole log is removed. Records whose timestamp cannot be read are
        kept. Returns the remaining log, or None when nothing is left.
        """
        log = await self.get_log_or_404(account_id)

        if start_time or end_time:
            try:
                start = parse_date_bound(start_time) if start_time else None
                end = parse_date_bound(end_time, end_of_day=True) if end_time else None
            except ValueError as e:
                msg = "日期格式必須為 YYYY-MM-DD"
                raise HTTPException(status_code=400, detail=msg) from e
            if start and end and start > end:
                raise HTTPException(status_code=400, detail="開始時間不能晚於結束時間")

            log.character_list = [r for r in log.character_list if not _in_range(r, start, end)]
            log.weapon_list = [r for r in log.weapon_list if not _in_range(r, start, end)]
        else:
            log.character_list = []
            log.weapon_list = []

        if log.is_empty:
            await self.store.delete(log_key(account_id))
            await self.leaderboard.remove_entry(account_id)
            logger.info(f"Cleared gacha log for {account_id}")
            return None

        await self.save_log(log)
        await self.leaderboard.update_leaderboard(account_id, log)
        logger.info(f"Cleared gacha records of {account_id} between {start_time} and {end_time}")
        return log

    async def migrate_log(
        self, source_id: str, target_id: str, hints: DisplayHints | None = None
    ) -> AccountLog | None:
        """Fold a guest log into a real account's log and drop the guest.

        Returns the merged log, or None when the source has no log.
        """
        if source_id == target_id:
            raise HTTPException(status_code=400, detail="來源與目標帳號不能相同")

        source = await self.get_log(source_id)
        if source is None:
            return None

        target = await self.get_log(target_id) or AccountLog.empty(target_id, source.info.lang)
        target.character_list = merge_records(target.character_list, source.character_list)
        target.weapon_list = merge_records(target.weapon_list, source.weapon_list)
        target.info.server_id = target.info.server_id or source.info.server_id
        if hints and hints.nickname:
            target.info.nickname = hints.nickname
        target.info.export_timestamp = get_epoch_ms()

        await self.save_log(target)
        await self.store.delete(log_key(source_id))
        await self.leaderboard.remove_entry(source_id)
        await self.leaderboard.update_leaderboard(target_id, target, hints)

        logger.info(f"Migrated gacha log {source_id} into {target_id}")
        return target
