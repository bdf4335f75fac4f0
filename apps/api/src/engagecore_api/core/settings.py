from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="allow")

    environment: Literal["development", "staging", "production"] = "development"
    database_url: str = "sqlite+aiosqlite:///./engagecore.db"
    database_echo: bool = False

    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # Internal API security
    admin_api_key: str = ""

    # Transaction sync job
    transaction_sync_enabled: bool = False
    transaction_sync_schedule: str = "*/15 * * * *"
    transaction_sync_timezone: str = "UTC"
    transaction_sync_timeout_seconds: float = 300.0

    # External transaction provider defaults (overridable per brand)
    external_api_timeout_seconds: float = 30.0
    external_api_retries: int = 3
    external_api_retry_delay_seconds: float = 1.0
    external_api_time_zone: str = "Asia/Kuala_Lumpur"
    external_api_default_interval_minutes: int = 5
    external_api_user_agent: str = "EngageCore-Sync/1.0"
    external_api_proxy_url: str | None = None

    # Ledger
    ledger_earning_types: list[str] = Field(
        default_factory=lambda: [
            "points_earned",
            "points_awarded",
            "wheel_win",
            "mission_reward",
            "bonus_points",
            "referral_bonus",
            "tier_upgrade_bonus",
        ]
    )

    @field_validator("ledger_earning_types", mode="before")
    @classmethod
    def _parse_type_list(cls, value: object) -> list[str]:
        if value is None:
            return []
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        if isinstance(value, (list, tuple, set)):
            return [str(item).strip() for item in value if str(item).strip()]
        return []

    @field_validator("external_api_retries")
    @classmethod
    def _clamp_retries(cls, value: int) -> int:
        return max(int(value), 1)


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[arg-type]


settings = get_settings()
