import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent
ENV_PATH = BASE_DIR.parent / ".env"
load_dotenv(ENV_PATH)


@dataclass(frozen=True)
class Settings:
    database_url: str = f"sqlite:///{BASE_DIR.parent / 'taskpoints.sqlite'}"
    timezone: str = "Asia/Tokyo"
    retention_days: int = 7
    sweep_interval_minutes: int = 60
    log_level: str = "INFO"


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}") from exc
    if value <= 0:
        raise RuntimeError(f"{name} must be positive, got {value}")
    return value


def get_settings() -> Settings:
    return Settings(
        database_url=os.getenv("DATABASE_URL") or Settings.database_url,
        timezone=os.getenv("TZ") or Settings.timezone,
        retention_days=_int_env("RETENTION_DAYS", Settings.retention_days),
        sweep_interval_minutes=_int_env("SWEEP_INTERVAL_MINUTES", Settings.sweep_interval_minutes),
        log_level=(os.getenv("LOG_LEVEL") or Settings.log_level).upper(),
    )
