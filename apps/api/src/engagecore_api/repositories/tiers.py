from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from engagecore_api.models.loyalty import MembershipTier, TierHistory, TierStatus

from .base import fetch_by_id, persist


class TierRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._db = session

    async def get(self, entity_id: UUID, *, for_update: bool = False) -> MembershipTier | None:
        return await fetch_by_id(self._db, MembershipTier, entity_id, for_update=for_update)

    async def add(self, entity: MembershipTier) -> MembershipTier:
        return await persist(self._db, entity)

    async def list_active_tiers(self, brand_id: UUID) -> list[MembershipTier]:
        """Active tiers of a brand, highest sort_order first."""

        stmt = (
            select(MembershipTier)
            .where(
                MembershipTier.brand_id == brand_id,
                MembershipTier.status == TierStatus.ACTIVE,
            )
            .order_by(MembershipTier.sort_order.desc(), MembershipTier.min_points_required.desc())
        )
        result = await self._db.execute(stmt)
        return list(result.scalars().all())


class TierHistoryRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._db = session

    async def get(self, entity_id: UUID, *, for_update: bool = False) -> TierHistory | None:
        return await fetch_by_id(self._db, TierHistory, entity_id, for_update=for_update)

    async def add(self, entity: TierHistory) -> TierHistory:
        return await persist(self._db, entity)

    async def append(self, entry: TierHistory) -> TierHistory:
        return await self.add(entry)

    async def list_for_member(self, member_id: UUID, *, limit: int = 50) -> list[TierHistory]:
        stmt = (
            select(TierHistory)
            .where(TierHistory.member_id == member_id)
            .order_by(TierHistory.created_at.desc(), TierHistory.id.desc())
            .limit(max(1, min(limit, 200)))
        )
        result = await self._db.execute(stmt)
        return list(result.scalars().all())


__all__ = ["TierHistoryRepository", "TierRepository"]
