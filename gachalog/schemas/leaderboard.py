from typing import Self

from pydantic import Field

from gachalog.schemas.gacha_log import CamelModel


def calc_probability(six_star_count: int, total: int) -> float:
    return six_star_count / total if total > 0 else 0.0


class GroupStat(CamelModel):
    total: int = Field(default=0, ge=0)
    six_star_count: int = Field(default=0, ge=0)
    five_star_count: int = Field(default=0, ge=0)
    probability: float = Field(default=0.0, ge=0)
    """6★ per paid pull"""

    @classmethod
    def from_counts(cls, total: int, six_star_count: int, five_star_count: int) -> Self:
        return cls(
            total=total,
            six_star_count=six_star_count,
            five_star_count=five_star_count,
            probability=calc_probability(six_star_count, total),
        )

    def __add__(self, other: "GroupStat") -> "GroupStat":
        return GroupStat.from_counts(
            self.total + other.total,
            self.six_star_count + other.six_star_count,
            self.five_star_count + other.five_star_count,
        )


class LeaderboardEntry(CamelModel):
    uid: str
    display_name: str | None = None
    nickname: str | None = None
    avatar_url: str | None = None
    account_index: int | None = None
    total_pulls: int = 0
    paid_pulls: int = 0
    free_pulls: int = 0
    stats: dict[str, GroupStat] = Field(default_factory=dict)
    updated_at: int = 0
    """Epoch milliseconds"""


class RankedEntry(CamelModel):
    """Leaderboard entry with its position for one group."""

    rank: int
    uid: str
    display_name: str | None = None
    nickname: str | None = None
    avatar_url: str | None = None
    account_index: int | None = None
    stat: GroupStat
