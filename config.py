import os
from functools import lru_cache
from pathlib import Path
from typing import Optional


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        log_level: str,
        exclude_keywords: Optional[list[str]],
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.log_level = log_level
        # None means the built-in exclusion list applies
        self.exclude_keywords = exclude_keywords


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("BUDGET_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


def _parse_keyword_list(raw: Optional[str]) -> Optional[list[str]]:
    if raw is None:
        return None
    words = [w.strip() for w in raw.split(",")]
    return [w for w in words if w]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "budget.db"
    database_url = os.getenv("BUDGET_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("BUDGET_TIMEZONE", "Asia/Seoul")
    log_level = os.getenv("BUDGET_LOG_LEVEL", "INFO").upper()
    exclude_keywords = _parse_keyword_list(os.getenv("BUDGET_EXCLUDE_KEYWORDS"))
    return Settings(
        database_url=database_url,
        timezone=timezone,
        log_level=log_level,
        exclude_keywords=exclude_keywords,
    )
