import os
from datetime import date, datetime
from functools import lru_cache
from pathlib import Path
from zoneinfo import ZoneInfo


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        csrf_secret: str,
        log_level: str,
        scheduler_enabled: bool,
        recurring_cron_hour: int,
        recurring_cron_minute: int,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.csrf_secret = csrf_secret
        self.log_level = log_level
        self.scheduler_enabled = scheduler_enabled
        self.recurring_cron_hour = recurring_cron_hour
        self.recurring_cron_minute = recurring_cron_minute


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("BUDGETS_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "budgets.db"
    database_url = os.getenv("BUDGETS_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("BUDGETS_TIMEZONE", "Europe/Berlin")
    csrf_secret = os.getenv(
        "BUDGETS_CSRF_SECRET",
        "3f0c6be1d2a94e7c8b51f7aa09d4c2e65b8e1f3a7d92c04e6a1b5f8c3d7e9a20",
    )
    log_level = os.getenv("BUDGETS_LOG_LEVEL", "INFO").upper()
    return Settings(
        database_url=database_url,
        timezone=timezone,
        csrf_secret=csrf_secret,
        log_level=log_level,
        scheduler_enabled=_env_flag("BUDGETS_SCHEDULER_ENABLED", "true"),
        recurring_cron_hour=int(os.getenv("BUDGETS_RECURRING_CRON_HOUR", "3")),
        recurring_cron_minute=int(os.getenv("BUDGETS_RECURRING_CRON_MINUTE", "15")),
    )


def local_now() -> datetime:
    """Current wall-clock time in the configured zone, as a naive datetime."""
    tz = ZoneInfo(get_settings().timezone)
    return datetime.now(tz).replace(tzinfo=None)


def local_today() -> date:
    return local_now().date()
