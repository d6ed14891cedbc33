from typing import Any, Self
from urllib.parse import parse_qs, urlsplit

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

LOCALE_LANGS = {
    "zh-TW": "zh-tw",
    "zh-HK": "zh-tw",
    "zh-CN": "zh-cn",
    "ja": "ja-jp",
    "ko": "ko-kr",
}


def map_locale_to_lang(locale: str | None) -> str:
    """Map a chat-client locale (e.g. ``zh-TW``) to a record-service language code."""
    if not locale:
        return "en-us"
    return LOCALE_LANGS.get(locale, "en-us")


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PullRecord(CamelModel):
    """One historical draw as reported by the record service."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    seq_id: str
    char_id: str | None = None
    char_name: str | None = None
    weapon_id: str | None = None
    weapon_name: str | None = None
    rarity: int = Field(ge=1, le=6)
    gacha_ts: str = ""
    pool_id: str = ""
    pool_name: str = ""
    pool_type: str = ""
    is_free: bool = False

    @field_validator("seq_id", mode="before")
    @classmethod
    def validate_seq_id(cls, value: Any) -> str:
        text = str(value).strip() if value is not None else ""
        if not (text.isascii() and text.isdigit()):
            msg = f"seqId must be a non-negative integer, got {value!r}"
            raise ValueError(msg)
        return text

    @field_validator("gacha_ts", mode="before")
    @classmethod
    def validate_gacha_ts(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @field_validator("char_id", "weapon_id", mode="before")
    @classmethod
    def validate_ids(cls, value: Any) -> str | None:
        return None if value is None else str(value)

    @field_validator("pool_id", "pool_name", mode="before")
    @classmethod
    def validate_pool(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @property
    def seq(self) -> int:
        return int(self.seq_id)

    @property
    def item_id(self) -> str | None:
        return self.char_id or self.weapon_id

    @property
    def item_name(self) -> str | None:
        return self.char_name or self.weapon_name


class AccountLogInfo(CamelModel):
    uid: str
    lang: str = "en-us"
    server_id: str | None = None
    nickname: str | None = None
    export_timestamp: int = 0
    """Epoch milliseconds of the last merge"""


class AccountLog(CamelModel):
    character_list: list[PullRecord] = Field(default_factory=list)
    weapon_list: list[PullRecord] = Field(default_factory=list)
    info: AccountLogInfo

    @classmethod
    def empty(cls, uid: str, lang: str = "en-us") -> Self:
        return cls(info=AccountLogInfo(uid=uid, lang=lang))

    @property
    def is_empty(self) -> bool:
        return not self.character_list and not self.weapon_list

    def to_store(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class DisplayHints(CamelModel):
    """Optional display identity supplied by the caller."""

    display_name: str | None = None
    nickname: str | None = None
    avatar_url: str | None = None
    account_index: int | None = Field(default=None, ge=1)


class SourceDescriptor(CamelModel):
    """Where and how to fetch an account's records from the record service."""

    api_base: str
    token: str
    server_id: str
    lang: str = "en-us"

    @classmethod
    def from_url(cls, url: str, locale: str | None = None) -> Self:
        """Build a descriptor from a record-service page URL.

        Raises:
            ValueError: If the URL carries no token or server id
        """
        parts = urlsplit(url.strip())
        params = {key: values[0] for key, values in parse_qs(parts.query).items() if values}

        token = params.get("token") or params.get("u8_token")
        server_id = params.get("server_id") or params.get("server")
        if not parts.scheme or not parts.netloc or not token or not server_id:
            msg = "Invalid URL: missing token or server_id"
            raise ValueError(msg)

        lang = map_locale_to_lang(locale) if locale else params.get("lang", "en-us")
        return cls(
            api_base=f"{parts.scheme}://{parts.netloc}", token=token, server_id=server_id, lang=lang
        )

    def default_account_id(self) -> str:
        if "hypergryph" in self.api_base:
            return f"EF_CN_{self.server_id}"
        return f"EF_{self.server_id}"


class PullPage(CamelModel):
    records: list[PullRecord] = Field(default_factory=list)
    has_more: bool = False
    rejected: int = 0
    """Raw records dropped for failing validation"""


class WeaponBanner(CamelModel):
    pool_id: str
    pool_name: str = ""


class IngestRequest(CamelModel):
    url: str
    account_id: str | None = None
    locale: str | None = None
    hints: DisplayHints = Field(default_factory=DisplayHints)


class IngestResult(CamelModel):
    account_id: str
    char_total: int
    weapon_total: int
    rejected: int = 0


class MigrateRequest(CamelModel):
    target_account_id: str
    hints: DisplayHints = Field(default_factory=DisplayHints)
