from typing import Literal

from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict


class Config(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="GACHALOG_", extra="ignore")

    db_url: str = "sqlite+aiosqlite:///gachalog.db"
    env: Literal["prod", "dev"] = "prod"

    # Upstream record service
    request_timeout: float = 30.0
    page_delay_seconds: float = 0.5  # pause between page fetches
    pool_metadata_url: str = "https://ef-webview.gryphline.com/api/content"
    default_lang: str = "zh-tw"
    default_server_id: str = "2"

    # Pity reconstruction
    standard_six_stars: list[str] = [
        "chr_0009_azrila",
        "chr_0015_lifeng",
        "chr_0025_ardelia",
        "chr_0026_lastrite",
        "chr_0029_pograni",
    ]
    """Six-star units only obtainable through the shared standard pool"""

    # Leaderboard
    guest_account_prefixes: list[str] = ["EF_GUEST_"]
    guest_account_ids: list[str] = ["EF_undefined"]

    # Record store
    store_update_attempts: int = 5

    @property
    def is_dev(self) -> bool:
        return self.env == "dev"

    def is_guest_account(self, account_id: str) -> bool:
        return account_id in self.guest_account_ids or any(
            account_id.startswith(prefix) for prefix in self.guest_account_prefixes
        )


load_dotenv()
settings = Config()
