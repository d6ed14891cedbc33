"""Pity reconstruction from a complete pull history.

Counters depend on arbitrarily distant history (e.g. the last featured hit), so every call replays
the full ordered record list of each pity group. Nothing here performs I/O: pool metadata must be
resolved beforehand and passed in.
"""

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field

from gachalog.core.config import settings
from gachalog.core.enums import Classification, GachaKind, HistoryEntryKind, PoolCategory
from gachalog.schemas.gacha_log import AccountLog, PullRecord
from gachalog.schemas.stats import (
    GachaStats,
    GroupSummary,
    HistoryEntry,
    PoolInfo,
    PoolMetadata,
    PoolPitySummary,
    TypeStats,
)

SPECIAL_GROUP = "SpecialShared"
BEGINNER_GROUP = "Beginner"
STANDARD_GROUP_PREFIX = "Standard_"

SOFT_PITY_CAP = 80
SHORT_SOFT_PITY_CAP = 40  # Beginner and weapon banners
FEATURED_GUARANTEE = 120
SPARK_INTERVAL = 240
WEAPON_GUARANTEE = 80


@dataclass(frozen=True)
class PityConfig:
    standard_six_stars: frozenset[str] = field(
        default_factory=lambda: frozenset(settings.standard_six_stars)
    )
    """Six-star ids only obtainable through the shared standard pool"""


def get_pity_group_id(record: PullRecord) -> str:
    """Return the id of the guarantee economy a record belongs to."""
    category = record.pool_type
    pool_id = record.pool_id
    pool_name = record.pool_name

    if "Special" in category or pool_id.startswith(("c_special", "special")):
        return SPECIAL_GROUP
    if "Beginner" in category or pool_id.startswith(("c_beginner", "beginner")):
        return BEGINNER_GROUP
    if (
        "Standard" in category
        or pool_id.startswith(("c_standard", "standard"))
        or "常駐" in pool_name
    ):
        return f"{STANDARD_GROUP_PREFIX}{pool_id}"
    if category == PoolCategory.WEAPON:
        return pool_id or "Unknown"

    # Category tagging missing, fall back to the localized pool title
    if "特選" in pool_name or "限定" in pool_name:
        return SPECIAL_GROUP
    if "新手" in pool_name:
        return BEGINNER_GROUP

    return pool_id or "Unknown"


def _normalize_item_id(item_id: str | None) -> str:
    return (item_id or "").replace("icon_", "")


def resolve_item_name(record: PullRecord, metadata: PoolMetadata | None) -> str | None:
    name = record.item_name
    if name or not metadata or not metadata.all_items:
        return name

    for item in metadata.all_items:
        if item.id in {record.char_id, record.weapon_id}:
            return item.name
    return None


def _match_rate_up_ids(record: PullRecord, metadata: PoolMetadata | None) -> Classification | None:
    if not metadata or not metadata.all_items:
        return None

    up_name = metadata.up6_name
    up_item_name = metadata.up6_item_name
    if not up_name and not up_item_name:
        return None

    candidates = {
        _normalize_item_id(item.id)
        for item in metadata.all_items
        if item.rarity >= 6
        and item.name
        and (
            item.name in {up_name, up_item_name} or (up_item_name and item.name in up_item_name)
        )
    }
    if not candidates:
        return None

    if _normalize_item_id(record.item_id) in candidates:
        return Classification.FEATURED
    return Classification.OFF_RATE


def _match_rate_up_name(
    record: PullRecord, name: str | None, metadata: PoolMetadata | None
) -> Classification | None:
    if not metadata:
        return None

    up_name = metadata.up6_item_name or metadata.up6_name
    if not up_name:
        return None

    if up_name in {name, record.char_name, record.weapon_name}:
        return Classification.FEATURED
    return Classification.OFF_RATE


def _match_pool_title(record: PullRecord, name: str | None) -> Classification | None:
    if name and name in record.pool_name:
        return Classification.FEATURED
    return None


def _match_standard_pool(item_ids: Iterable[str], config: PityConfig) -> Classification | None:
    if any(item_id in config.standard_six_stars for item_id in item_ids):
        return Classification.OFF_RATE
    return None


def classify_six_star(
    record: PullRecord, metadata: PoolMetadata | None, config: PityConfig
) -> Classification:
    """Decide whether a 6★ pull was the banner's rate-up unit or an off-rate loss.

    Steps are tried in order and the first conclusive one wins. When nothing is conclusive the
    pull counts as featured, so a standard unit missing from ``config`` would be misread.
    """
    name = resolve_item_name(record, metadata)
    result = (
        _match_rate_up_ids(record, metadata)
        or _match_rate_up_name(record, name, metadata)
        or _match_pool_title(record, name)
        or _match_standard_pool([_normalize_item_id(record.item_id)], config)
    )
    if result is None and metadata and metadata.all_items and name:
        # The record itself may lack an id, check ids the metadata knows for this name
        resolved_ids = [
            _normalize_item_id(item.id) for item in metadata.all_items if item.name == name
        ]
        result = _match_standard_pool(resolved_ids, config)
    return result or Classification.FEATURED


@dataclass
class _PoolCounters:
    pool_name: str = ""
    total: int = 0
    free_total: int = 0
    featured_pity: int = 0
    has_featured: bool = False
    six_star_count: int = 0
    five_star_count: int = 0


def _hard_guarantee(
    counters: _PoolCounters, group_id: str, kind: GachaKind
) -> tuple[int | None, int | None, bool]:
    """Return (threshold, remaining, is_spark) for one pool."""
    if kind == GachaKind.WEAPON:
        return WEAPON_GUARANTEE, max(0, WEAPON_GUARANTEE - counters.featured_pity), False
    if group_id != SPECIAL_GROUP:
        return None, None, False

    if not counters.has_featured and counters.total < FEATURED_GUARANTEE:
        return FEATURED_GUARANTEE, FEATURED_GUARANTEE - counters.total, False
    # Every SPARK_INTERVAL paid pulls in a pool grants a selection token
    return SPARK_INTERVAL, SPARK_INTERVAL - counters.total % SPARK_INTERVAL, True


class _GroupReplay:
    """Fold one pity group's records, oldest first, into history entries and a summary."""

    def __init__(
        self,
        group_id: str,
        kind: GachaKind,
        metadata: Mapping[str, PoolMetadata],
        config: PityConfig,
    ) -> None:
        self.group_id = group_id
        self.kind = kind
        self.metadata = metadata
        self.config = config

        self.soft_pity = 0
        self.label_pity = 0
        self.hard_guarantee = 0
        self.six_star_count = 0
        self.five_star_count = 0
        self.paid_six_star_count = 0
        self.paid_five_star_count = 0
        self.pools: dict[str, _PoolCounters] = {}

        self.history: list[HistoryEntry] = []
        self._block: HistoryEntry | None = None

    @property
    def classifies_rate_up(self) -> bool:
        return self.kind == GachaKind.WEAPON or self.group_id == SPECIAL_GROUP

    def _entry(self, record: PullRecord, pool: _PoolCounters, **counts: int) -> HistoryEntry:
        metadata = self.metadata.get(record.pool_id)
        classification = None
        if record.rarity >= 6 and self.classifies_rate_up:
            classification = classify_six_star(record, metadata, self.config)

        return HistoryEntry(
            seq_id=record.seq_id,
            item_id=record.item_id,
            name=resolve_item_name(record, metadata),
            rarity=record.rarity,
            gacha_ts=record.gacha_ts,
            pool_id=record.pool_id,
            pool_name=record.pool_name,
            pool_type=record.pool_type,
            is_free=record.is_free,
            group_id=self.group_id,
            pool_total_count=pool.total,
            is_featured=classification == Classification.FEATURED,
            is_off_rate=classification == Classification.OFF_RATE,
            **counts,
        )

    def _flush_block(self) -> None:
        if self._block is not None:
            self.history.append(self._block)
            self._block = None

    def _add_free(self, record: PullRecord, pool: _PoolCounters) -> None:
        pool.free_total += 1
        if self._block is None:
            self._block = HistoryEntry(
                kind=HistoryEntryKind.EXPEDITED,
                seq_id=record.seq_id,
                rarity=record.rarity,
                gacha_ts=record.gacha_ts,
                pool_id=record.pool_id,
                pool_name=record.pool_name,
                pool_type=record.pool_type,
                is_free=True,
                group_id=self.group_id,
                count=0,
            )

        block = self._block
        block.count += 1
        block.last_seq_id = record.seq_id
        block.rarity = max(block.rarity, record.rarity)
        if record.rarity >= 4:
            block.items.append(
                self._entry(
                    record,
                    pool,
                    pity_label_count=self.label_pity,
                    soft_pity_count_at_time=self.soft_pity,
                    hard_guarantee_count_at_time=self.hard_guarantee,
                )
            )

    def _add_paid(self, record: PullRecord, pool: _PoolCounters) -> None:
        self._flush_block()

        self.soft_pity += 1
        self.label_pity += 1
        self.hard_guarantee += 1
        pool.total += 1
        pool.featured_pity += 1
        label_count, soft_count = self.label_pity, self.soft_pity

        entry = self._entry(record, pool) if record.rarity >= 4 else None
        if record.rarity >= 6:
            self.paid_six_star_count += 1
            pool.six_star_count += 1
            self.soft_pity = 0
            self.label_pity = 0
            if entry is not None and entry.is_featured:
                self.hard_guarantee = 0
                pool.featured_pity = 0
                pool.has_featured = True
        elif record.rarity == 5:
            self.paid_five_star_count += 1
            pool.five_star_count += 1
            self.label_pity = 0

        if entry is not None:
            entry.pity_label_count = label_count
            entry.soft_pity_count_at_time = soft_count
            entry.hard_guarantee_count_at_time = self.hard_guarantee
            self.history.append(entry)

    def add(self, record: PullRecord) -> None:
        pool_id = record.pool_id or "unknown"
        pool = self.pools.setdefault(pool_id, _PoolCounters())
        if record.pool_name:
            pool.pool_name = record.pool_name

        if record.rarity >= 6:
            self.six_star_count += 1
        elif record.rarity == 5:
            self.five_star_count += 1

        if record.is_free:
            self._add_free(record, pool)
        else:
            self._add_paid(record, pool)

    def finish(self) -> GroupSummary:
        self._flush_block()

        cap = (
            SHORT_SOFT_PITY_CAP
            if self.kind == GachaKind.WEAPON or self.group_id == BEGINNER_GROUP
            else SOFT_PITY_CAP
        )
        pools: dict[str, PoolPitySummary] = {}
        for pool_id, counters in self.pools.items():
            threshold, remaining, is_spark = _hard_guarantee(counters, self.group_id, self.kind)
            pools[pool_id] = PoolPitySummary(
                pool_id=pool_id,
                pool_name=counters.pool_name,
                total=counters.total,
                free_total=counters.free_total,
                featured_pity=counters.featured_pity,
                has_featured=counters.has_featured,
                six_star_count=counters.six_star_count,
                five_star_count=counters.five_star_count,
                hard_threshold=threshold,
                hard_remaining=remaining,
                is_spark=is_spark,
            )

        return GroupSummary(
            group_id=self.group_id,
            current_pity=self.soft_pity,
            soft_pity_cap=cap,
            soft_remaining=max(0, cap - self.soft_pity),
            hard_guarantee=self.hard_guarantee,
            total=sum(pool.total for pool in self.pools.values()),
            free_total=sum(pool.free_total for pool in self.pools.values()),
            six_star_count=self.six_star_count,
            five_star_count=self.five_star_count,
            paid_six_star_count=self.paid_six_star_count,
            paid_five_star_count=self.paid_five_star_count,
            pools=pools,
        )


def _pool_rank(pool_type: str) -> int:
    if "Special" in pool_type:
        return 0
    if "Beginner" in pool_type:
        return 2
    return 1


def list_pools(records: Sequence[PullRecord]) -> list[PoolInfo]:
    """Pools seen in ``records``: limited newest first, then standard, then beginner."""
    by_pool: dict[str, list[PullRecord]] = {}
    for record in records:
        if record.pool_id:
            by_pool.setdefault(record.pool_id, []).append(record)

    ranked: list[tuple[int, int, PoolInfo]] = []
    for pool_id, pool_records in by_pool.items():
        ordered = sorted(pool_records, key=lambda r: r.seq)
        newest = ordered[-1]
        name = next((r.pool_name for r in reversed(ordered) if r.pool_name), pool_id)
        info = PoolInfo(
            id=pool_id,
            name=name,
            type=newest.pool_type,
            start_ts=ordered[0].gacha_ts,
            end_ts=newest.gacha_ts,
        )
        ranked.append((_pool_rank(newest.pool_type), -newest.seq, info))

    ranked.sort(key=lambda item: (item[0], item[1]))
    return [info for _, _, info in ranked]


def calculate_type_stats(
    records: Sequence[PullRecord],
    kind: GachaKind,
    metadata: Mapping[str, PoolMetadata] | None = None,
    config: PityConfig | None = None,
) -> TypeStats:
    """Replay one record list (characters or weapons) from scratch."""
    metadata = metadata or {}
    config = config or PityConfig()

    groups: dict[str, list[PullRecord]] = {}
    for record in records:
        groups.setdefault(get_pity_group_id(record), []).append(record)

    history: list[HistoryEntry] = []
    summary: dict[str, GroupSummary] = {}
    for group_id, group_records in groups.items():
        replay = _GroupReplay(group_id, kind, metadata, config)
        for record in sorted(group_records, key=lambda r: r.seq):
            replay.add(record)
        summary[group_id] = replay.finish()
        history.extend(replay.history)

    history.sort(key=lambda entry: int(entry.seq_id), reverse=True)
    return TypeStats(
        history=history,
        summary=summary,
        total=sum(group.total for group in summary.values()),
        pools=list_pools(records),
    )


def collect_pool_ids(log: AccountLog) -> set[str]:
    return {r.pool_id for r in [*log.character_list, *log.weapon_list] if r.pool_id}


def reconstruct(
    log: AccountLog,
    metadata: Mapping[str, PoolMetadata] | None = None,
    config: PityConfig | None = None,
) -> GachaStats:
    return GachaStats(
        uid=log.info.uid,
        char=calculate_type_stats(log.character_list, GachaKind.CHARACTER, metadata, config),
        weapon=calculate_type_stats(log.weapon_list, GachaKind.WEAPON, metadata, config),
    )
