"""
Application configuration.
All sensitive values loaded from environment variables.
"""
from typing import Optional
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # Database
    DATABASE_URL: str = "postgresql+asyncpg://postgres:postgres@db:5432/trainload"

    # Terra API credentials
    TERRA_API_KEY: Optional[str] = None
    TERRA_DEVELOPER_ID: Optional[str] = None
    TERRA_WEBHOOK_SECRET: Optional[str] = None
    TERRA_BASE_URL: str = "https://api.tryterra.co/v2"
    TERRA_TIMEOUT_SECONDS: float = 30.0

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"  # json or console

    # Raw payload logging - dumps inbound provider payloads at debug level
    # WARNING: payloads contain health data, enable only while debugging
    LOG_RAW_PAYLOADS: bool = False
    # Maximum length of payload content to log (0 = unlimited)
    LOG_PAYLOAD_MAX_LENGTH: int = 2000

    # Training load
    DEFAULT_DISTANCE_UNIT: str = "km"  # km or mi

    # What to do with a workout that has no start time at all:
    # "now" stamps it with the normalization time, "reject" drops it
    MISSING_START_TIME_POLICY: str = "now"

    # Upper bound on rows loaded for a single report
    WORKOUT_ROW_CAP: int = 1000

    # Sync windows (days)
    POLL_DEFAULT_LOOKBACK_DAYS: int = 30
    LINK_SYNC_DAYS: int = 28
    RESYNC_DAYS: int = 7

    def has_terra_credentials(self) -> bool:
        """Check whether the REST credentials are configured."""
        return bool(self.TERRA_API_KEY and self.TERRA_DEVELOPER_ID)

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
