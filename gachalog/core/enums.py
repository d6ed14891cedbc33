from enum import StrEnum


class PoolCategory(StrEnum):
    STANDARD = "E_CharacterGachaPoolType_Standard"
    SPECIAL = "E_CharacterGachaPoolType_Special"
    BEGINNER = "E_CharacterGachaPoolType_Beginner"
    WEAPON = "WeaponPool"


CHARACTER_CATEGORIES = (PoolCategory.STANDARD, PoolCategory.SPECIAL, PoolCategory.BEGINNER)
"""Character pool categories in the order they are fetched"""


class GachaKind(StrEnum):
    CHARACTER = "char"
    WEAPON = "weapon"


class HistoryEntryKind(StrEnum):
    PULL = "pull"
    EXPEDITED = "expedited"
    """A coalesced run of consecutive free pulls"""


class SortMode(StrEnum):
    PULLS = "pulls"
    LUCK = "luck"


class LeaderboardGroup(StrEnum):
    TOTAL = "TOTAL"
    SPECIAL = "SpecialShared"
    STANDARD = "StandardShared"
    WEAPON = "WeaponShared"


class Classification(StrEnum):
    FEATURED = "featured"
    OFF_RATE = "off_rate"
