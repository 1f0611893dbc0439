# app/config.py
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    ENV: str = "dev"
    APP_NAME: str = "Slot Assignment Engine"

    # DB URL: SQLite local unless overridden
    DATABASE_URL: str = "sqlite:///./slot_engine.db"

    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False

    # Zone that decides which calendar day/week a slot falls on
    # (company holidays, daily/weekly caps)
    COMPANY_TIMEZONE: str = "America/New_York"
    DEFAULT_PATTERN_TIMEZONE: str = "America/New_York"

    # Event defaults when a column is left NULL
    DEFAULT_START_TIME_INCREMENT: int = 30
    DEFAULT_MIN_NOTICE_HOURS: int = 24
    DEFAULT_BOOKING_WINDOW_DAYS: int = 60

    # Host defaults when a cap is left NULL
    DEFAULT_HOST_MAX_DAILY: int = 8
    DEFAULT_HOST_MAX_WEEKLY: int = 30

    # Calendar sync
    CALENDAR_SYNC_TIMEOUT_SECONDS: float = 5.0
    CALENDAR_SYNC_LOOKAHEAD_DAYS: int = 30
    GOOGLE_CALENDAR_API_URL: str = "https://www.googleapis.com/calendar/v3"
    GOOGLE_CALENDAR_ID: Optional[str] = None  # defaults to "primary"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

_settings: Optional[Settings] = None

def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
