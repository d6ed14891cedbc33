from __future__ import annotations

import pytest

from gachalog.core.exceptions import StoreConflictError
from gachalog.services.record_store import RecordStore


async def test_set_and_get_round_trip(store: RecordStore) -> None:
    assert await store.get("missing") is None

    await store.set("log:EF_2", {"info": {"uid": "EF_2"}})
    await store.set("log:EF_2", {"info": {"uid": "EF_2", "lang": "ja-jp"}})

    value, version = await store.get_with_version("log:EF_2")
    assert value == {"info": {"uid": "EF_2", "lang": "ja-jp"}}
    assert version == 2


async def test_compare_and_set_detects_stale_version(store: RecordStore) -> None:
    await store.set("leaderboard:entries", {})
    _, version = await store.get_with_version("leaderboard:entries")
    await store.set("leaderboard:entries", {"EF_1": {}})

    with pytest.raises(StoreConflictError):
        await store.compare_and_set("leaderboard:entries", {"EF_2": {}}, version)

    assert await store.get("leaderboard:entries") == {"EF_1": {}}


async def test_compare_and_set_insert_conflicts_when_key_exists(store: RecordStore) -> None:
    await store.set("k", 1)

    with pytest.raises(StoreConflictError):
        await store.compare_and_set("k", 2, None)

    assert await store.get("k") == 1


async def test_update_retries_after_conflict(
    store: RecordStore, monkeypatch: pytest.MonkeyPatch
) -> None:
    await store.set("counter", 1)
    read_versions = store.get_with_version
    calls = 0

    async def stale_first_read(key: str):
        nonlocal calls
        calls += 1
        value, version = await read_versions(key)
        return value, (version - 1 if calls == 1 else version)

    monkeypatch.setattr(store, "get_with_version", stale_first_read)

    result = await store.update("counter", lambda current: current + 1)

    assert result == 2
    assert calls == 2
    assert await store.get("counter") == 2


async def test_update_gives_up_after_repeated_conflicts(
    store: RecordStore, monkeypatch: pytest.MonkeyPatch
) -> None:
    await store.set("counter", 1)
    read_versions = store.get_with_version

    async def always_stale(key: str):
        value, version = await read_versions(key)
        return value, version - 1

    monkeypatch.setattr(store, "get_with_version", always_stale)

    with pytest.raises(StoreConflictError):
        await store.update("counter", lambda current: current + 1)
    assert await store.get("counter") == 1


async def test_update_passes_a_copy_to_mutate(store: RecordStore) -> None:
    await store.set("names", {"a": "A"})
    seen: list[dict[str, str] | None] = []

    def add_name(current: dict[str, str] | None) -> dict[str, str]:
        seen.append(current)
        return {**(current or {}), "b": "B"}

    assert await store.update("names", add_name) == {"a": "A", "b": "B"}
    assert await store.update("fresh", add_name) == {"b": "B"}
    assert seen == [{"a": "A"}, None]


async def test_delete(store: RecordStore) -> None:
    await store.set("k", "v")

    assert await store.delete("k") is True
    assert await store.delete("k") is False
    assert await store.get("k") is None


async def test_find_by_prefix_escapes_wildcards(store: RecordStore) -> None:
    for key in ("log:EF_1", "log:EF_2", "logEF_3", "leaderboard:entries", "log%x"):
        await store.set(key, key)

    found = await store.find_by_prefix("log:")

    assert found == [("log:EF_1", "log:EF_1"), ("log:EF_2", "log:EF_2")]
    assert await store.find_by_prefix("log%") == [("log%x", "log%x")]
