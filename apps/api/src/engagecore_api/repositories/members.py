from __future__ import annotations

from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from engagecore_api.models.loyalty import Member

from .base import fetch_by_id, persist


class MemberRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._db = session

    async def get(self, entity_id: UUID, *, for_update: bool = False) -> Member | None:
        return await fetch_by_id(self._db, Member, entity_id, for_update=for_update)

    async def add(self, entity: Member) -> Member:
        return await persist(self._db, entity)

    async def get_for_update(self, member_id: UUID) -> Member | None:
        return await self.get(member_id, for_update=True)

    async def find_by_external_user(self, external_user_id: str, brand_id: UUID) -> Member | None:
        stmt = select(Member).where(
            Member.brand_id == brand_id,
            Member.external_user_id == external_user_id,
        )
        result = await self._db.execute(stmt)
        return result.scalar_one_or_none()

    async def create(self, **fields: Any) -> Member:
        return await self.add(Member(**fields))


__all__ = ["MemberRepository"]
