from pydantic import BaseModel, ConfigDict, Field

from gachalog.core.enums import HistoryEntryKind
from gachalog.schemas.gacha_log import CamelModel


class PoolMetadataItem(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    name: str | None = None
    rarity: int = 0


class PoolMetadata(BaseModel):
    """Banner details from the content service, only the fields classification needs."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    up6_name: str | None = None
    up6_item_name: str | None = None
    all_items: list[PoolMetadataItem] | None = Field(default=None, alias="all")


class HistoryEntry(CamelModel):
    kind: HistoryEntryKind = HistoryEntryKind.PULL
    seq_id: str
    item_id: str | None = None
    name: str | None = None
    rarity: int
    gacha_ts: str = ""
    pool_id: str = ""
    pool_name: str = ""
    pool_type: str = ""
    is_free: bool = False
    group_id: str

    pity_label_count: int = 0
    """Paid pulls it took since the previous 5★ or 6★"""
    soft_pity_count_at_time: int = 0
    """Paid pulls it took since the previous 6★"""
    hard_guarantee_count_at_time: int = 0
    """Guarantee progress standing after this pull (0 right after a featured 6★)"""
    pool_total_count: int = 0
    is_featured: bool = False
    is_off_rate: bool = False

    # Expedited blocks only
    count: int = 1
    last_seq_id: str | None = None
    items: list["HistoryEntry"] = Field(default_factory=list)


class PoolPitySummary(CamelModel):
    pool_id: str
    pool_name: str = ""
    total: int = 0
    free_total: int = 0
    featured_pity: int = 0
    """Paid pulls in this pool since its last featured 6★"""
    has_featured: bool = False
    six_star_count: int = 0
    five_star_count: int = 0
    hard_threshold: int | None = None
    hard_remaining: int | None = None
    is_spark: bool = False


class GroupSummary(CamelModel):
    group_id: str
    current_pity: int = 0
    soft_pity_cap: int = 80
    soft_remaining: int = 80
    hard_guarantee: int = 0
    total: int = 0
    free_total: int = 0
    six_star_count: int = 0
    five_star_count: int = 0
    paid_six_star_count: int = 0
    paid_five_star_count: int = 0
    pools: dict[str, PoolPitySummary] = Field(default_factory=dict)


class PoolInfo(CamelModel):
    id: str
    name: str
    type: str = ""
    start_ts: str = ""
    end_ts: str = ""


class TypeStats(CamelModel):
    history: list[HistoryEntry] = Field(default_factory=list)
    summary: dict[str, GroupSummary] = Field(default_factory=dict)
    total: int = 0
    pools: list[PoolInfo] = Field(default_factory=list)


class GachaStats(CamelModel):
    uid: str
    char: TypeStats
    weapon: TypeStats
