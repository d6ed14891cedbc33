"""Builders for pull records and a canned upstream record service."""

from __future__ import annotations

from typing import Any

import httpx

from gachalog.core.enums import PoolCategory
from gachalog.schemas.gacha_log import AccountLog, PullRecord

SPECIAL_POOL = "special_1_0_1"
STANDARD_POOL = "standard_1_0_1"
WEAPON_POOL = "weapon_1_0_1"


def make_record(
    seq_id: int | str,
    rarity: int = 3,
    *,
    pool_type: str = PoolCategory.SPECIAL,
    pool_id: str = SPECIAL_POOL,
    pool_name: str = "熔火燎原",
    char_id: str | None = None,
    char_name: str | None = None,
    weapon_id: str | None = None,
    weapon_name: str | None = None,
    is_free: bool = False,
    gacha_ts: str = "1735689600000",
) -> PullRecord:
    if char_id is None and weapon_id is None:
        char_id = f"chr_{seq_id}"
    return PullRecord(
        seq_id=str(seq_id),
        rarity=rarity,
        pool_type=pool_type,
        pool_id=pool_id,
        pool_name=pool_name,
        char_id=char_id,
        char_name=char_name,
        weapon_id=weapon_id,
        weapon_name=weapon_name,
        is_free=is_free,
        gacha_ts=gacha_ts,
    )


def make_weapon(seq_id: int | str, rarity: int = 4, **kwargs: Any) -> PullRecord:
    kwargs.setdefault("pool_type", PoolCategory.WEAPON)
    kwargs.setdefault("pool_id", WEAPON_POOL)
    kwargs.setdefault("pool_name", "武器申領")
    kwargs.setdefault("weapon_id", f"wpn_{seq_id}")
    return make_record(seq_id, rarity, **kwargs)


def make_log(
    uid: str,
    characters: list[PullRecord] | None = None,
    weapons: list[PullRecord] | None = None,
) -> AccountLog:
    log = AccountLog.empty(uid, "zh-tw")
    log.character_list = sorted(characters or [], key=lambda r: r.seq, reverse=True)
    log.weapon_list = sorted(weapons or [], key=lambda r: r.seq, reverse=True)
    return log


def raw_record(seq_id: int | str, rarity: int = 3, **fields: Any) -> dict[str, Any]:
    """A record as the upstream service serializes it (camelCase, no poolType)."""
    return {
        "seqId": str(seq_id),
        "charId": f"chr_{seq_id}",
        "charName": f"Unit {seq_id}",
        "rarity": rarity,
        "gachaTs": "1735689600000",
        "poolId": SPECIAL_POOL,
        "poolName": "熔火燎原",
        "isFree": False,
        **fields,
    }


def raw_weapon(seq_id: int | str, rarity: int = 4, **fields: Any) -> dict[str, Any]:
    return {
        "seqId": str(seq_id),
        "weaponId": f"wpn_{seq_id}",
        "weaponName": f"Weapon {seq_id}",
        "rarity": rarity,
        "gachaTs": "1735689600000",
        "poolId": WEAPON_POOL,
        "poolName": "武器申領",
        **fields,
    }


def envelope(data: Any, code: int = 0, message: str = "") -> dict[str, Any]:
    return {"code": code, "message": message, "data": data}


class FakeRecordService:
    """Serves newest-first record pages keyed by ``seq_id`` cursors, like the record service."""

    def __init__(self, page_size: int = 2) -> None:
        self.page_size = page_size
        self.char_records: dict[str, list[dict[str, Any]]] = {}
        self.weapon_pools: list[dict[str, Any]] = []
        self.weapon_records: dict[str, list[dict[str, Any]]] = {}
        self.pool_metadata: dict[str, dict[str, Any]] = {}
        self.overrides: dict[str, httpx.Response] = {}
        self.requests: list[httpx.Request] = []

    @staticmethod
    def _seq(record: dict[str, Any]) -> int:
        seq_id = str(record.get("seqId"))
        return int(seq_id) if seq_id.isdigit() else -1

    def _page(self, records: list[dict[str, Any]], cursor: str | None) -> dict[str, Any]:
        ordered = sorted(records, key=self._seq, reverse=True)
        if cursor is not None:
            ordered = [r for r in ordered if self._seq(r) < int(cursor)]
        page = ordered[: self.page_size]
        return envelope({"list": page, "hasMore": len(ordered) > self.page_size})

    def requests_to(self, path: str) -> list[httpx.Request]:
        return [request for request in self.requests if request.url.path == path]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        params = request.url.params

        if path in self.overrides:
            return self.overrides[path]

        if path == "/api/record/char":
            records = self.char_records.get(params["pool_type"], [])
            return httpx.Response(200, json=self._page(records, params.get("seq_id")))
        if path == "/api/record/weapon/pool":
            return httpx.Response(200, json=envelope(self.weapon_pools))
        if path == "/api/record/weapon":
            records = self.weapon_records.get(params["pool_id"], [])
            return httpx.Response(200, json=self._page(records, params.get("seq_id")))
        if path == "/api/content":
            pool = self.pool_metadata.get(params["pool_id"])
            if pool is None:
                return httpx.Response(200, json=envelope(None, code=404, message="not found"))
            return httpx.Response(200, json=envelope({"pool": pool}))

        return httpx.Response(404)
