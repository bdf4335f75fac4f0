"""Idempotent merge of canonical provider transactions into the ledger."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Literal
from uuid import UUID

from loguru import logger
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from engagecore_api.models.loyalty import Member
from engagecore_api.models.transaction import Transaction, TransactionSource, TransactionType
from engagecore_api.repositories import TransactionRepository
from engagecore_api.services.loyalty.ledger import LedgerResult, PointsLedger

from .transformer import CanonicalTransaction

ReconcileOutcome = Literal["created", "updated", "unchanged"]

SYNCED_ENTRY_TYPE = TransactionType.POINTS_EARNED.value


class ReconciliationError(RuntimeError):
    """Raised when a provider record cannot be merged into the local store."""

    def __init__(self, message: str, *, reference_id: str | None = None) -> None:
        super().__init__(message)
        self.reference_id = reference_id


@dataclass(frozen=True)
class ReconciliationConflict:
    reference_id: str
    field: str
    stored: Any
    incoming: Any


@dataclass
class ReconcileResult:
    outcome: ReconcileOutcome
    transaction: Transaction
    ledger: LedgerResult | None = None
    conflicts: list[ReconciliationConflict] = field(default_factory=list)


class TransactionReconciler:
    """Creates unseen transactions once; later sightings only refresh mutable fields."""

    def __init__(
        self,
        session: AsyncSession,
        ledger: PointsLedger,
        *,
        transactions: TransactionRepository | None = None,
    ) -> None:
        self._db = session
        self._ledger = ledger
        self._transactions = transactions or TransactionRepository(session)

    async def reconcile(self, canonical: CanonicalTransaction, member: Member, brand_id: UUID) -> ReconcileResult:
        existing = await self._transactions.find_by_reference(canonical.reference_id, brand_id)
        if existing is None:
            return await self._create(canonical, member, brand_id)
        return await self._refresh(existing, canonical, member)

    async def _create(self, canonical: CanonicalTransaction, member: Member, brand_id: UUID) -> ReconcileResult:
        try:
            async with self._db.begin_nested():
                transaction = await self._transactions.create(
                    brand_id=brand_id,
                    member_id=member.id,
                    reference_id=canonical.reference_id,
                    type=canonical.type,
                    source=TransactionSource.EXTERNAL_SYNC,
                    amount=canonical.amount,
                    points_delta=Decimal("0"),
                    status=canonical.status,
                    description=canonical.description,
                    raw_data=canonical.raw_data,
                    provider_created_at=canonical.created_date_time,
                    processed_at=datetime.now(timezone.utc),
                    created_by="external_sync",
                )
        except IntegrityError as exc:
            existing = await self._transactions.find_by_reference(canonical.reference_id, brand_id)
            if existing is None:
                raise ReconciliationError(
                    f"Transaction {canonical.reference_id} could not be inserted: {exc.orig}",
                    reference_id=canonical.reference_id,
                ) from exc
            logger.info(
                "Synced transaction inserted concurrently, refreshing instead",
                brand_id=str(brand_id),
                reference_id=canonical.reference_id,
            )
            return await self._refresh(existing, canonical, member)

        result = await self._ledger.apply_delta(member.id, canonical.amount, SYNCED_ENTRY_TYPE)
        transaction.points_delta = result.applied_delta
        await self._db.flush()

        logger.info(
            "Created synced transaction",
            brand_id=str(brand_id),
            reference_id=canonical.reference_id,
            member_id=str(member.id),
            amount=str(canonical.amount),
            points_delta=str(result.applied_delta),
        )
        return ReconcileResult(outcome="created", transaction=transaction, ledger=result)

    async def _refresh(
        self,
        transaction: Transaction,
        canonical: CanonicalTransaction,
        member: Member,
    ) -> ReconcileResult:
        conflicts: list[ReconciliationConflict] = []
        if Decimal(transaction.amount) != canonical.amount:
            conflicts.append(
                ReconciliationConflict(canonical.reference_id, "amount", Decimal(transaction.amount), canonical.amount)
            )
        if transaction.member_id != member.id:
            conflicts.append(
                ReconciliationConflict(canonical.reference_id, "member_id", transaction.member_id, member.id)
            )
        for conflict in conflicts:
            logger.warning(
                "Provider changed an immutable transaction field",
                reference_id=conflict.reference_id,
                field=conflict.field,
                stored=str(conflict.stored),
                incoming=str(conflict.incoming),
            )

        changes: dict[str, Any] = {}
        if transaction.status != canonical.status:
            changes["status"] = canonical.status
        if transaction.description != canonical.description:
            changes["description"] = canonical.description
        if transaction.raw_data != canonical.raw_data:
            changes["raw_data"] = canonical.raw_data

        if not changes:
            return ReconcileResult(outcome="unchanged", transaction=transaction, conflicts=conflicts)

        changes["processed_at"] = datetime.now(timezone.utc)
        await self._transactions.update(transaction, **changes)
        logger.info(
            "Updated synced transaction",
            reference_id=canonical.reference_id,
            fields=sorted(key for key in changes if key != "processed_at"),
        )
        return ReconcileResult(outcome="updated", transaction=transaction, conflicts=conflicts)


__all__ = [
    "ReconcileOutcome",
    "ReconcileResult",
    "ReconciliationConflict",
    "ReconciliationError",
    "SYNCED_ENTRY_TYPE",
    "TransactionReconciler",
]
