from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv


DEFAULT_LIMIT = 1000
MIN_LIMIT = 1
MAX_LIMIT = 10000


def load_env(env_file: str | Path | None = None) -> None:
    """Load a project ``.env`` into ``os.environ`` without overriding real env vars."""
    path = Path(env_file) if env_file else Path(__file__).resolve().parent.parent / ".env"
    load_dotenv(path, override=False)


def default_db_path() -> str:
    return os.environ.get("REPORTOPS_DB_PATH", str(Path("data/dummy/reportops_demo.sqlite")))


@dataclass(frozen=True)
class Settings:
    ads_db_path: str
    crm_db_path: str
    timezone: str
    log_level: str
    log_json: bool


def get_settings() -> Settings:
    db_path = default_db_path()
    return Settings(
        ads_db_path=os.environ.get("REPORTOPS_ADS_DB_PATH", db_path),
        crm_db_path=os.environ.get("REPORTOPS_CRM_DB_PATH", db_path),
        timezone=os.environ.get("REPORTOPS_TIMEZONE", "UTC"),
        log_level=os.environ.get("REPORTOPS_LOG_LEVEL", "INFO").upper(),
        log_json=os.environ.get("REPORTOPS_LOG_JSON", "").strip().lower() in ("1", "true", "yes"),
    )
