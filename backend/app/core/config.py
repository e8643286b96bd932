# app/core/config.py
"""
Application configuration using Pydantic Settings
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List
import json
from pydantic import field_validator


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables
    """

    # Application
    APP_NAME: str = "Judgment Sync"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str

    # CORS
    CORS_ORIGINS: str = '["http://localhost:3000"]'

    # Judicial registry (judgment open-data API)
    JUDICIAL_API_BASE_URL: str = "https://data.judicial.gov.tw/jdg/api"
    JUDICIAL_ACCOUNT: str = ""
    JUDICIAL_PASSWORD: str = ""
    JUDICIAL_API_TIMEOUT_SECONDS: float = 30.0
    JUDICIAL_TOKEN_TTL_HOURS: int = 6
    JUDICIAL_TIMEZONE: str = "Asia/Taipei"
    JUDICIAL_SERVICE_WINDOW_START_HOUR: int = 0
    JUDICIAL_SERVICE_WINDOW_END_HOUR: int = 6
    JUDICIAL_DEV_FORCE: bool = False  # bypasses the service window; testing only
    JUDICIAL_LIST_MAX_IDS: int = 50
    JUDICIAL_REQUEST_DELAY_SECONDS: float = 0.1

    # Retry policy for registry calls
    JUDICIAL_RETRY_MAX_ATTEMPTS: int = 3
    JUDICIAL_RETRY_BASE_DELAY_SECONDS: float = 1.0
    JUDICIAL_RETRY_BACKOFF_MULTIPLIER: float = 2.0
    JUDICIAL_RETRY_MAX_DELAY_SECONDS: float = 30.0
    JUDICIAL_RETRY_JITTER_SECONDS: float = 0.0

    # Sync runs
    JUDGMENT_SYNC_BATCH_SIZE: int = 10
    JUDGMENT_SYNC_BATCH_DELAY_SECONDS: float = 2.0
    JUDGMENT_SYNC_STALE_AFTER_MINUTES: int = 30
    JUDGMENT_SYNC_SCHEDULER_ENABLED: bool = True
    JUDGMENT_SYNC_CRON_HOURS: str = "1,3"  # primary run, then backup run
    JUDGMENT_SYNC_ADMIN_TOKEN: str = ""

    # Normalization limits
    JUDGMENT_TEXT_MAX_LENGTH: int = 5000
    JUDGMENT_SUMMARY_LENGTH: int = 200

    @field_validator("JUDICIAL_API_BASE_URL", mode="before")
    @classmethod
    def strip_base_url(cls, v: str) -> str:
        if isinstance(v, str):
            return v.strip().rstrip("/")
        return v

    @field_validator("JUDICIAL_SERVICE_WINDOW_START_HOUR", "JUDICIAL_SERVICE_WINDOW_END_HOUR")
    @classmethod
    def check_hour(cls, v: int) -> int:
        if not 0 <= v <= 24:
            raise ValueError("Service window hours must be between 0 and 24")
        return v

    @field_validator("JUDICIAL_LIST_MAX_IDS", "JUDICIAL_RETRY_MAX_ATTEMPTS", "JUDGMENT_SYNC_BATCH_SIZE")
    @classmethod
    def check_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Value must be a positive integer")
        return v

    # Pydantic v2 configuration
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins from string to list"""
        try:
            if isinstance(self.CORS_ORIGINS, str):
                return json.loads(self.CORS_ORIGINS)
            return self.CORS_ORIGINS
        except json.JSONDecodeError:
            return ["http://localhost:3000"]

    @property
    def sync_cron_hours(self) -> List[int]:
        """Parse comma-separated cron hours, e.g. "1,3" -> [1, 3]"""
        hours: List[int] = []
        for part in (self.JUDGMENT_SYNC_CRON_HOURS or "").split(","):
            part = part.strip()
            if not part.isdigit():
                continue
            hour = int(part)
            if 0 <= hour < 24 and hour not in hours:
                hours.append(hour)
        return hours


# Create settings instance
settings = Settings()
