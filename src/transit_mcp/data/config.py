from functools import lru_cache
from pathlib import Path
from typing import Literal
from zoneinfo import ZoneInfo

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration for the feed pipeline and the realtime clients.

    Automatically loads from environment variables and .env file.
    """

    model_config = SettingsConfigDict(env_file=".env", extra="ignore", populate_by_name=True)

    db_path: Path = Field(default=Path("data/transit.db"), alias="TRANSIT_DB_PATH")

    # Static feed
    feed_url: str = Field(
        default="https://svc.metrotransit.org/mtgtfs/gtfs.zip", alias="TRANSIT_FEED_URL"
    )
    feed_dir: Path = Field(default=Path("data"), alias="TRANSIT_FEED_DIR")
    feed_timezone: str = Field(default="America/Chicago", alias="TRANSIT_TIMEZONE")
    feed_check_hour: int = Field(default=3, ge=0, le=23, alias="TRANSIT_CHECK_HOUR")
    download_timeout_seconds: float = Field(default=300.0, alias="TRANSIT_DOWNLOAD_TIMEOUT")

    # Realtime predictions
    realtime_provider: Literal["nextrip", "gtfs-rt", "none"] = Field(
        default="nextrip", alias="TRANSIT_REALTIME_PROVIDER"
    )
    nextrip_base_url: str = Field(
        default="https://svc.metrotransit.org/nextrip", alias="TRANSIT_NEXTRIP_URL"
    )
    trip_updates_url: str | None = Field(default=None, alias="TRANSIT_TRIP_UPDATES_URL")
    api_key: str | None = Field(default=None, alias="TRANSIT_API_KEY")
    realtime_cache_ttl_seconds: float = Field(default=60.0, alias="TRANSIT_REALTIME_CACHE_TTL")
    realtime_timeout_seconds: float = Field(default=10.0, alias="TRANSIT_REALTIME_TIMEOUT")

    # Upper bound for one tool call (nearby search fans out to many stops)
    request_timeout_seconds: float = Field(default=20.0, alias="TRANSIT_REQUEST_TIMEOUT")

    @property
    def tz(self) -> ZoneInfo:
        """Operating timezone of the feed."""
        return ZoneInfo(self.feed_timezone)


@lru_cache
def get_settings() -> Settings:
    """Get runtime settings (cached singleton).

    Returns:
        Settings with values from .env file or environment variables.
    """
    return Settings()
