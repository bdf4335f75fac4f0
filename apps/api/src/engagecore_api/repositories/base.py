"""Shared data-access contract implemented by each entity repository."""

from __future__ import annotations

from typing import Protocol, TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

ModelT = TypeVar("ModelT")


class DataAccess(Protocol[ModelT]):
    """Minimal per-entity persistence surface."""

    async def get(self, entity_id: UUID, *, for_update: bool = False) -> ModelT | None: ...

    async def add(self, entity: ModelT) -> ModelT: ...


async def fetch_by_id(
    session: AsyncSession,
    model: type[ModelT],
    entity_id: UUID,
    *,
    for_update: bool = False,
) -> ModelT | None:
    """Load a row by primary key, optionally locking it and overwriting stale identity-map state."""

    stmt = select(model).where(model.id == entity_id)  # type: ignore[attr-defined]
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def persist(session: AsyncSession, entity: ModelT) -> ModelT:
    session.add(entity)
    await session.flush()
    return entity


__all__ = ["DataAccess", "fetch_by_id", "persist"]
