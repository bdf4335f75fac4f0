"""Points ledger: the only writer of member balances."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Iterable
from uuid import UUID, uuid4

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from engagecore_api.core.settings import settings
from engagecore_api.models.loyalty import Member
from engagecore_api.models.transaction import Transaction, TransactionSource, TransactionType
from engagecore_api.repositories import MemberRepository, TransactionRepository

from .errors import LedgerError, MemberNotFoundError
from .tiers import AUTOMATIC_REASON, MANUAL_REASON, SYSTEM_ACTOR, TierChange, TierEngine

_ZERO = Decimal("0")


@dataclass(frozen=True)
class LedgerResult:
    member_id: UUID
    entry_type: str
    requested_amount: Decimal
    applied_delta: Decimal
    earned_delta: Decimal
    balance_before: Decimal
    balance_after: Decimal
    total_points_earned: Decimal
    tier_change: TierChange | None = None

    @property
    def clamped(self) -> bool:
        return self.applied_delta != self.requested_amount


def _type_value(entry_type: str | Enum) -> str:
    return str(entry_type.value if isinstance(entry_type, Enum) else entry_type)


class PointsLedger:
    """Applies point deltas under a member row lock.

    Callers own the surrounding transaction: the ledger flushes but never
    commits, so balance, lifetime total, tier change and any transaction row
    become durable together.
    """

    def __init__(
        self,
        session: AsyncSession,
        *,
        members: MemberRepository | None = None,
        transactions: TransactionRepository | None = None,
        tier_engine: TierEngine | None = None,
        earning_types: Iterable[str] | None = None,
    ) -> None:
        self._db = session
        self._members = members or MemberRepository(session)
        self._transactions = transactions or TransactionRepository(session)
        self._tiers = tier_engine or TierEngine(session, members=self._members)
        self._earning_types = frozenset(earning_types if earning_types is not None else settings.ledger_earning_types)

    def is_earning_type(self, entry_type: str | Enum) -> bool:
        return _type_value(entry_type) in self._earning_types

    async def apply_delta(
        self,
        member_id: UUID,
        amount: Decimal,
        entry_type: str | Enum,
        *,
        triggered_by: str = SYSTEM_ACTOR,
    ) -> LedgerResult:
        """Move ``amount`` points; the balance floors at zero and earnings grow the lifetime total."""

        return await self._apply(
            member_id,
            Decimal(amount),
            _type_value(entry_type),
            correct_total=False,
            tier_reason=AUTOMATIC_REASON,
            triggered_by=triggered_by,
        )

    async def post_transaction(
        self,
        member_id: UUID,
        amount: Decimal,
        entry_type: str | Enum,
        *,
        source: TransactionSource,
        description: str | None = None,
        reference_id: str | None = None,
        created_by: str = SYSTEM_ACTOR,
        raw_data: dict[str, Any] | None = None,
    ) -> tuple[Transaction, LedgerResult]:
        """Record an internally sourced movement (wheel, mission, admin) with its transaction row."""

        if source == TransactionSource.EXTERNAL_SYNC:
            raise LedgerError("Synced transactions are posted by the reconciler")
        return await self._post(
            member_id,
            Decimal(amount),
            _type_value(entry_type),
            source=source,
            description=description,
            reference_id=reference_id,
            created_by=created_by,
            raw_data=raw_data,
            correct_total=False,
            tier_reason=AUTOMATIC_REASON,
        )

    async def apply_admin_adjustment(
        self,
        member_id: UUID,
        amount: Decimal,
        *,
        admin_user_id: str,
        description: str | None = None,
        correct_total: bool = False,
    ) -> tuple[Transaction, LedgerResult]:
        """Admin credit or debit; ``correct_total`` also moves the lifetime total, floored at zero."""

        return await self._post(
            member_id,
            Decimal(amount),
            TransactionType.ADMIN_ADJUSTMENT.value,
            source=TransactionSource.ADMIN,
            description=description or f"Admin adjustment by {admin_user_id}",
            reference_id=None,
            created_by=str(admin_user_id),
            raw_data={"correct_total": correct_total},
            correct_total=correct_total,
            tier_reason=MANUAL_REASON,
        )

    async def _post(
        self,
        member_id: UUID,
        amount: Decimal,
        entry_type: str,
        *,
        source: TransactionSource,
        description: str | None,
        reference_id: str | None,
        created_by: str,
        raw_data: dict[str, Any] | None,
        correct_total: bool,
        tier_reason: str,
    ) -> tuple[Transaction, LedgerResult]:
        result = await self._apply(
            member_id,
            amount,
            entry_type,
            correct_total=correct_total,
            tier_reason=tier_reason,
            triggered_by=created_by,
        )
        member = await self._members.get(member_id)
        transaction = await self._transactions.create(
            brand_id=member.brand_id,
            member_id=member_id,
            reference_id=reference_id or f"{source.value}-{uuid4().hex}",
            type=entry_type,
            source=source,
            amount=amount,
            points_delta=result.applied_delta,
            status="completed",
            description=description,
            raw_data=raw_data,
            processed_at=datetime.now(timezone.utc),
            created_by=created_by,
        )
        return transaction, result

    async def _apply(
        self,
        member_id: UUID,
        amount: Decimal,
        entry_type: str,
        *,
        correct_total: bool,
        tier_reason: str,
        triggered_by: str,
    ) -> LedgerResult:
        member: Member | None = await self._members.get_for_update(member_id)
        if member is None:
            raise MemberNotFoundError(f"Member {member_id} not found")

        balance_before = Decimal(member.points_balance or _ZERO)
        balance_after = max(_ZERO, balance_before + amount)
        total_before = Decimal(member.total_points_earned or _ZERO)
        if correct_total:
            total_after = max(_ZERO, total_before + amount)
        elif entry_type in self._earning_types:
            total_after = total_before + max(_ZERO, amount)
        else:
            total_after = total_before

        if balance_before + amount < _ZERO:
            logger.info(
                "Debit clamped at zero balance",
                member_id=str(member_id),
                requested=str(amount),
                balance_before=str(balance_before),
            )

        member.points_balance = balance_after
        member.total_points_earned = total_after
        member.last_activity_at = datetime.now(timezone.utc)
        await self._db.flush()

        tier_change = await self._tiers.recheck(
            member,
            total_after,
            reason=tier_reason,
            triggered_by=triggered_by,
        )
        await self._db.flush()

        logger.info(
            "Applied ledger delta",
            member_id=str(member_id),
            entry_type=entry_type,
            amount=str(amount),
            balance_after=str(balance_after),
            total_points_earned=str(total_after),
        )
        return LedgerResult(
            member_id=member_id,
            entry_type=entry_type,
            requested_amount=amount,
            applied_delta=balance_after - balance_before,
            earned_delta=total_after - total_before,
            balance_before=balance_before,
            balance_after=balance_after,
            total_points_earned=total_after,
            tier_change=tier_change,
        )


__all__ = ["LedgerError", "LedgerResult", "MemberNotFoundError", "PointsLedger"]
