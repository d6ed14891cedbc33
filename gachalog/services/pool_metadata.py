from collections.abc import Iterable
from typing import Any

import httpx
from loguru import logger
from pydantic import ValidationError

from gachalog.core.config import settings
from gachalog.schemas.gacha_log import AccountLog
from gachalog.schemas.stats import PoolMetadata
from gachalog.services.pity import collect_pool_ids
from gachalog.services.record_store import RecordStore
from gachalog.utils.misc import get_epoch_ms

POOL_METADATA_KEY_PREFIX = "pool_meta:"


class PoolMetadataProvider:
    """Banner rate-up details, fetched once per pool and cached in the record store."""

    def __init__(self, store: RecordStore, http: httpx.AsyncClient) -> None:
        self.store = store
        self.http = http

    async def _fetch(self, pool_id: str, lang: str, server_id: str) -> dict[str, Any] | None:
        try:
            response = await self.http.get(
                settings.pool_metadata_url,
                params={"lang": lang, "pool_id": pool_id, "server_id": server_id},
            )
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Failed to fetch pool metadata for {pool_id}: {e}")
            return None

        if not isinstance(payload, dict) or payload.get("code") != 0:
            return None
        pool = (payload.get("data") or {}).get("pool")
        return pool if isinstance(pool, dict) else None

    async def get_pool_metadata(
        self, pool_id: str, lang: str | None = None, server_id: str | None = None
    ) -> PoolMetadata | None:
        if not pool_id or pool_id == "unknown":
            return None

        key = f"{POOL_METADATA_KEY_PREFIX}{pool_id}"
        cached = await self.store.get(key)
        data = cached.get("data") if isinstance(cached, dict) else None

        if data is None:
            data = await self._fetch(
                pool_id, lang or settings.default_lang, server_id or settings.default_server_id
            )
            if data is None:
                return None
            await self.store.set(key, {"data": data, "lastFetch": get_epoch_ms()})

        try:
            return PoolMetadata.model_validate(data)
        except ValidationError as e:
            logger.warning(f"Ignoring malformed pool metadata for {pool_id}: {e}")
            return None

    async def get_many(
        self, pool_ids: Iterable[str], lang: str | None = None, server_id: str | None = None
    ) -> dict[str, PoolMetadata]:
        result: dict[str, PoolMetadata] = {}
        for pool_id in sorted(pool_ids):
            metadata = await self.get_pool_metadata(pool_id, lang, server_id)
            if metadata:
                result[pool_id] = metadata
        return result

    async def get_for_log(self, log: AccountLog) -> dict[str, PoolMetadata]:
        return await self.get_many(collect_pool_ids(log), log.info.lang, log.info.server_id)
