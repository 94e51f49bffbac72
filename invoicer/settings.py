from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv

ROOT = Path(__file__).resolve().parents[1]

# Later files override earlier ones.
load_dotenv(ROOT / ".env")
load_dotenv(ROOT / ".env.local", override=True)


def _cors_origins() -> list[str]:
    origins_env = os.getenv("API_CORS_ORIGINS", "")
    origins = [origin.strip() for origin in origins_env.split(",") if origin.strip()]
    if not origins:
        origins = ["http://localhost:3000", "http://127.0.0.1:3000", "http://localhost:5173"]
    return origins


class Settings:
    def __init__(self) -> None:
        # Server
        self.CORS_ORIGINS: list[str] = _cors_origins()
        self.LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
        self.PROFILES_PATH: Path = Path(
            os.getenv("PROFILES_PATH", str(ROOT / "data" / "profiles.json"))
        ).expanduser()

        # Inventory API
        self.INVENTORY_API_BASE: str = os.getenv("INVENTORY_API_BASE", "https://www.zohoapis.com/inventory")
        self.INVENTORY_ACCOUNTS_URL: str = os.getenv("INVENTORY_ACCOUNTS_URL", "https://accounts.zoho.com")
        self.INVENTORY_TIMEOUT: float = float(os.getenv("INVENTORY_TIMEOUT", "30"))

        # Bulk engine
        self.SETTLE_DELAY_MS: int = int(os.getenv("SETTLE_DELAY_MS", "1000"))


@lru_cache
def get_settings() -> Settings:
    return Settings()
