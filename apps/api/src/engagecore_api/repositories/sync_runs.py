from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from engagecore_api.models.sync_run import SyncRun

from .base import fetch_by_id, persist


class SyncRunRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._db = session

    async def get(self, entity_id: UUID, *, for_update: bool = False) -> SyncRun | None:
        return await fetch_by_id(self._db, SyncRun, entity_id, for_update=for_update)

    async def add(self, entity: SyncRun) -> SyncRun:
        return await persist(self._db, entity)

    async def list_recent(self, *, limit: int = 20) -> list[SyncRun]:
        stmt = select(SyncRun).order_by(SyncRun.started_at.desc(), SyncRun.id.desc()).limit(max(1, min(limit, 100)))
        result = await self._db.execute(stmt)
        return list(result.scalars().all())


__all__ = ["SyncRunRepository"]
