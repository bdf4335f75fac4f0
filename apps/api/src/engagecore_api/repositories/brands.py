from __future__ import annotations

from typing import Any, Mapping
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from engagecore_api.models.brand import Brand, BrandStatus

from .base import fetch_by_id, persist


class BrandRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._db = session

    async def get(self, entity_id: UUID, *, for_update: bool = False) -> Brand | None:
        return await fetch_by_id(self._db, Brand, entity_id, for_update=for_update)

    async def add(self, entity: Brand) -> Brand:
        return await persist(self._db, entity)

    async def list_syncable_brands(self) -> list[Brand]:
        """Active brands that carry an ``external_api`` settings block."""

        stmt = select(Brand).where(Brand.status == BrandStatus.ACTIVE).order_by(Brand.name.asc(), Brand.id.asc())
        result = await self._db.execute(stmt)
        brands = []
        for brand in result.scalars().all():
            block = (brand.settings or {}).get("external_api")
            if isinstance(block, Mapping) and block:
                brands.append(brand)
        return brands

    async def update_sync_window(self, brand: Brand, external_api: Mapping[str, Any]) -> Brand:
        """Replace the ``external_api`` block; the JSON column is reassigned so the change is tracked."""

        brand.settings = {**(brand.settings or {}), "external_api": dict(external_api)}
        await self._db.flush()
        return brand


__all__ = ["BrandRepository"]
