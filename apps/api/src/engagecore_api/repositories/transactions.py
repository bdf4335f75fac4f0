from __future__ import annotations

from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from engagecore_api.models.transaction import Transaction

from .base import fetch_by_id, persist

# amount and reference_id are fixed once the ledger has posted the row.
MUTABLE_FIELDS = frozenset({"status", "description", "raw_data", "processed_at"})


class TransactionRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._db = session

    async def get(self, entity_id: UUID, *, for_update: bool = False) -> Transaction | None:
        return await fetch_by_id(self._db, Transaction, entity_id, for_update=for_update)

    async def add(self, entity: Transaction) -> Transaction:
        return await persist(self._db, entity)

    async def find_by_reference(self, reference_id: str, brand_id: UUID) -> Transaction | None:
        stmt = select(Transaction).where(
            Transaction.brand_id == brand_id,
            Transaction.reference_id == reference_id,
        )
        result = await self._db.execute(stmt)
        return result.scalar_one_or_none()

    async def create(self, **fields: Any) -> Transaction:
        return await self.add(Transaction(**fields))

    async def update(self, transaction: Transaction, **changes: Any) -> Transaction:
        illegal = set(changes) - MUTABLE_FIELDS
        if illegal:
            raise ValueError(f"Immutable transaction fields cannot be updated: {sorted(illegal)}")
        for key, value in changes.items():
            setattr(transaction, key, value)
        await self._db.flush()
        return transaction

    async def list_for_member(self, member_id: UUID, *, limit: int = 50) -> list[Transaction]:
        stmt = (
            select(Transaction)
            .where(Transaction.member_id == member_id)
            .order_by(Transaction.created_at.desc(), Transaction.id.desc())
            .limit(max(1, min(limit, 200)))
        )
        result = await self._db.execute(stmt)
        return list(result.scalars().all())


__all__ = ["MUTABLE_FIELDS", "TransactionRepository"]
