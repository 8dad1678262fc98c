from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration loaded from environment."""

    app_name: str = Field(default="Talent Verification Core", validation_alias="APP_NAME")
    environment: str = Field(default="local", validation_alias="APP_ENV")
    version: str = Field(default="0.1.0")

    # Remote authoritative store
    store_base_url: str = Field(
        default="http://localhost:5000/api",
        validation_alias="STORE_BASE_URL",
    )
    store_api_token: str = Field(default="", validation_alias="STORE_API_TOKEN")
    store_timeout_seconds: float = Field(default=30.0, validation_alias="STORE_TIMEOUT_SECONDS")
    store_max_retries: int = Field(default=3, validation_alias="STORE_MAX_RETRIES")
    store_read_your_writes: bool = Field(default=False, validation_alias="STORE_READ_YOUR_WRITES")

    # Verification workflow
    status_refresh_delay_seconds: float = Field(
        default=0.3, validation_alias="STATUS_REFRESH_DELAY_SECONDS"
    )
    eligibility_concurrency: int = Field(default=5, validation_alias="ELIGIBILITY_CONCURRENCY")
    editor_roles: tuple[str, ...] = Field(
        default=("ta_staff", "admin"), validation_alias="EDITOR_ROLES"
    )

    # Availability windows
    availability_horizon_months: int = Field(
        default=6, validation_alias="AVAILABILITY_HORIZON_MONTHS"
    )

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="allow")

    @property
    def refresh_delay(self) -> float:
        """Delay before re-reading status after a mutation (zero with read-your-writes)."""
        if self.store_read_your_writes:
            return 0.0
        return self.status_refresh_delay_seconds


@lru_cache
def get_settings() -> Settings:
    """Return cached application settings."""
    return Settings()
