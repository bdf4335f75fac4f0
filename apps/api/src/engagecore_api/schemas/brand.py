"""Typed view over the ``external_api`` block stored in brand settings."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Mapping
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from engagecore_api.core.settings import settings

# The provider matches these strings as ranges server-side, so the layout is fixed.
WINDOW_FORMAT = "%Y-%m-%d %H:%M:%S"


class SyncWindowConfig(BaseModel):
    """Provider endpoint, credentials and the current sync window of a brand."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    url: str = Field(..., min_length=1)
    access_id: str = Field(..., alias="accessId")
    access_token: str = Field(..., alias="accessToken")
    query_start_date: str = Field(..., alias="queryStartDate")
    query_end_date: str = Field(..., alias="queryEndDate")
    sync_interval: int = Field(default_factory=lambda: settings.external_api_default_interval_minutes, gt=0)
    time_zone: str = Field(default_factory=lambda: settings.external_api_time_zone, alias="timezone")
    timeout_seconds: float | None = Field(default=None, gt=0)
    retries: int | None = Field(default=None, ge=1)
    retry_delay_seconds: float | None = Field(default=None, ge=0)
    last_sync_at: str | None = None

    @field_validator("access_id", "access_token", mode="before")
    @classmethod
    def _coerce_credential(cls, value: object) -> object:
        if isinstance(value, int):
            return str(value)
        return value

    @field_validator("query_start_date", "query_end_date")
    @classmethod
    def _check_window_format(cls, value: str) -> str:
        datetime.strptime(value, WINDOW_FORMAT)
        return value

    @field_validator("time_zone")
    @classmethod
    def _check_time_zone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown time zone: {value!r}") from exc
        return value

    @model_validator(mode="after")
    def _check_window_order(self) -> "SyncWindowConfig":
        start = datetime.strptime(self.query_start_date, WINDOW_FORMAT)
        end = datetime.strptime(self.query_end_date, WINDOW_FORMAT)
        if start > end:
            raise ValueError("queryStartDate must not be later than queryEndDate")
        return self

    @property
    def effective_timeout(self) -> float:
        return self.timeout_seconds or settings.external_api_timeout_seconds

    @property
    def effective_retries(self) -> int:
        return self.retries or settings.external_api_retries

    @property
    def effective_retry_delay(self) -> float:
        if self.retry_delay_seconds is None:
            return settings.external_api_retry_delay_seconds
        return self.retry_delay_seconds

    @classmethod
    def from_brand_settings(cls, brand_settings: Mapping[str, Any] | None) -> "SyncWindowConfig | None":
        """Return the parsed config, or ``None`` when the brand has no provider block."""

        if not brand_settings:
            return None
        block = brand_settings.get("external_api")
        if not isinstance(block, Mapping) or not block:
            return None
        return cls.model_validate(dict(block))

    def to_settings_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


__all__ = ["SyncWindowConfig", "WINDOW_FORMAT"]
