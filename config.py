import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        log_level: str,
        page_size: int,
        max_page_size: int,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.log_level = log_level
        self.page_size = page_size
        self.max_page_size = max_page_size


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("LEDGER_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    database_url = os.getenv("LEDGER_DATABASE_URL")
    if not database_url:
        database_url = f"sqlite:///{_ensure_data_dir() / 'ledger.db'}"
    timezone = os.getenv("LEDGER_TIMEZONE", "UTC")
    log_level = os.getenv("LEDGER_LOG_LEVEL", "INFO").upper()
    page_size = int(os.getenv("LEDGER_PAGE_SIZE", "20"))
    max_page_size = int(os.getenv("LEDGER_MAX_PAGE_SIZE", "100"))
    return Settings(
        database_url=database_url,
        timezone=timezone,
        log_level=log_level,
        page_size=page_size,
        max_page_size=max_page_size,
    )
