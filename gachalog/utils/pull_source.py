from typing import Any

import httpx
from loguru import logger
from pydantic import ValidationError

from gachalog.core.enums import PoolCategory
from gachalog.core.exceptions import GachaSourceError
from gachalog.schemas.gacha_log import PullPage, PullRecord, SourceDescriptor, WeaponBanner


def parse_records(
    raw_records: list[Any],
    pool_type: str,
    pool_id: str | None = None,
    pool_name: str | None = None,
) -> tuple[list[PullRecord], int]:
    """Validate raw upstream records, dropping the ones with a broken identity.

    Records missing a ``poolId`` or ``poolName`` inherit ``pool_id`` and ``pool_name``
    when those are given.

    Returns:
        Tuple of (valid records, number of rejected records)
    """
    records: list[PullRecord] = []
    rejected = 0
    for raw in raw_records:
        if not isinstance(raw, dict):
            rejected += 1
            logger.warning(f"Dropping non-object pull record: {raw!r}")
            continue

        try:
            record = PullRecord.model_validate(
                {**({"poolId": pool_id} if pool_id else {}), **raw, "poolType": pool_type}
            )
        except ValidationError as e:
            rejected += 1
            logger.warning(f"Dropping invalid pull record seqId={raw.get('seqId')!r}: {e}")
            continue

        if pool_name and not record.pool_name:
            record.pool_name = pool_name
        records.append(record)

    return records, rejected


class PullSourceClient:
    """Paginated access to one account's records on the record service."""

    def __init__(self, source: SourceDescriptor, http: httpx.AsyncClient) -> None:
        self.source = source
        self.http = http

    def _params(self, **extra: str | None) -> dict[str, str]:
        params = {
            "token": self.source.token,
            "lang": self.source.lang,
            "server_id": self.source.server_id,
        }
        params.update({key: value for key, value in extra.items() if value is not None})
        return params

    async def _get(self, path: str, **params: str | None) -> Any:
        """Fetch one endpoint and unwrap the ``{code, message, data}`` envelope.

        Raises:
            GachaSourceError: On transport errors, non-2xx responses or a non-zero code
        """
        url = f"{self.source.api_base}{path}"
        try:
            response = await self.http.get(url, params=self._params(**params))
            response.raise_for_status()
            payload: dict[str, Any] = response.json()
        except httpx.HTTPStatusError as e:
            msg = f"Record service returned HTTP {e.response.status_code} for {path}"
            raise GachaSourceError(msg, status_code=e.response.status_code) from e
        except httpx.HTTPError as e:
            msg = f"Record service request to {path} failed: {e}"
            raise GachaSourceError(msg) from e
        except ValueError as e:
            msg = f"Record service returned malformed JSON for {path}"
            raise GachaSourceError(msg) from e

        if not isinstance(payload, dict):
            msg = f"Record service returned an unexpected payload for {path}"
            raise GachaSourceError(msg)

        code = payload.get("code")
        if code != 0:
            raise GachaSourceError(payload.get("message") or "API Error", code=code)
        return payload.get("data")

    def _parse_page(
        self,
        data: Any,
        pool_type: str,
        pool_id: str | None = None,
        pool_name: str | None = None,
    ) -> PullPage:
        if not isinstance(data, dict) or not isinstance(data.get("list") or [], list):
            msg = "Record service returned a malformed page"
            raise GachaSourceError(msg)

        records, rejected = parse_records(data.get("list") or [], pool_type, pool_id, pool_name)
        return PullPage(records=records, has_more=bool(data.get("hasMore")), rejected=rejected)

    async def fetch_character_page(
        self, category: PoolCategory, cursor: str | None = None
    ) -> PullPage:
        data = await self._get("/api/record/char", pool_type=category.value, seq_id=cursor)
        return self._parse_page(data, category.value)

    async def fetch_weapon_banners(self) -> list[WeaponBanner]:
        data = await self._get("/api/record/weapon/pool")
        if not isinstance(data, list):
            msg = "Record service returned a malformed weapon pool list"
            raise GachaSourceError(msg)

        banners: list[WeaponBanner] = []
        for raw in data:
            try:
                banners.append(WeaponBanner.model_validate(raw))
            except ValidationError as e:
                logger.warning(f"Skipping malformed weapon pool {raw!r}: {e}")
        return banners

    async def fetch_weapon_page(
        self, pool_id: str, cursor: str | None = None, *, pool_name: str | None = None
    ) -> PullPage:
        data = await self._get("/api/record/weapon", pool_id=pool_id, seq_id=cursor)
        return self._parse_page(data, PoolCategory.WEAPON.value, pool_id, pool_name)
