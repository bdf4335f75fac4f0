"""Sync window arithmetic and persistence."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from uuid import UUID
from zoneinfo import ZoneInfo

from loguru import logger
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from engagecore_api.repositories import BrandRepository
from engagecore_api.schemas.brand import WINDOW_FORMAT, SyncWindowConfig


class WindowAdvanceError(RuntimeError):
    """Raised when a brand window cannot be read back or advanced."""

    def __init__(self, message: str, *, brand_id: UUID | None = None) -> None:
        super().__init__(message)
        self.brand_id = brand_id


@dataclass(frozen=True)
class SyncWindow:
    start: str
    end: str
    interval_minutes: int


def parse_window_time(value: str, time_zone: str) -> datetime:
    """Interpret a provider window string as wall-clock time in ``time_zone``."""

    return datetime.strptime(value, WINDOW_FORMAT).replace(tzinfo=ZoneInfo(time_zone))


def format_window_time(moment: datetime, time_zone: str) -> str:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(ZoneInfo(time_zone)).strftime(WINDOW_FORMAT)


def next_window(config: SyncWindowConfig) -> SyncWindow:
    """``[old_end, old_end + interval]`` in the brand's time zone."""

    old_end = parse_window_time(config.query_end_date, config.time_zone)
    new_end = old_end + timedelta(minutes=config.sync_interval)
    return SyncWindow(
        start=format_window_time(old_end, config.time_zone),
        end=format_window_time(new_end, config.time_zone),
        interval_minutes=config.sync_interval,
    )


def is_window_due(config: SyncWindowConfig, now: datetime | None = None) -> bool:
    """False while the provider has not yet reached the window end."""

    current = now or datetime.now(timezone.utc)
    if current.tzinfo is None:
        current = current.replace(tzinfo=timezone.utc)
    return current >= parse_window_time(config.query_end_date, config.time_zone)


class WindowAdvancer:
    """Moves a brand's persisted window forward after its batch is processed."""

    def __init__(self, session: AsyncSession, *, brands: BrandRepository | None = None) -> None:
        self._db = session
        self._brands = brands or BrandRepository(session)

    async def advance(self, brand_id: UUID, *, now: datetime | None = None) -> SyncWindow:
        brand = await self._brands.get(brand_id, for_update=True)
        if brand is None:
            raise WindowAdvanceError("Brand disappeared before its window could advance", brand_id=brand_id)

        try:
            config = SyncWindowConfig.from_brand_settings(brand.settings)
        except ValidationError as exc:
            raise WindowAdvanceError(f"Stored sync window is invalid: {exc}", brand_id=brand_id) from exc
        if config is None:
            raise WindowAdvanceError("Brand has no external_api settings", brand_id=brand_id)

        window = next_window(config)
        synced_at = now or datetime.now(timezone.utc)
        payload = config.to_settings_payload()
        payload.update(
            {
                "queryStartDate": window.start,
                "queryEndDate": window.end,
                "last_sync_at": synced_at.isoformat(),
            }
        )
        await self._brands.update_sync_window(brand, payload)

        logger.info(
            "Advanced brand sync window",
            brand_id=str(brand_id),
            previous_start=config.query_start_date,
            previous_end=config.query_end_date,
            start=window.start,
            end=window.end,
            interval_minutes=window.interval_minutes,
        )
        return window


__all__ = [
    "SyncWindow",
    "WindowAdvanceError",
    "WindowAdvancer",
    "format_window_time",
    "is_window_due",
    "next_window",
    "parse_window_time",
]
