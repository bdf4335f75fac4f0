"""Tier selection and tier-change audit trail."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Sequence
from uuid import UUID

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from engagecore_api.models.loyalty import Member, MembershipTier, TierHistory
from engagecore_api.repositories import MemberRepository, TierHistoryRepository, TierRepository

from .errors import MemberNotFoundError

AUTOMATIC_REASON = "points_earned"
MANUAL_REASON = "admin_adjustment"
SYSTEM_ACTOR = "system"


class TierNotFoundError(LookupError):
    """Raised when a manual change targets a tier outside the member's brand."""


@dataclass(frozen=True)
class TierChange:
    member_id: UUID
    from_tier_id: UUID | None
    to_tier_id: UUID | None
    to_tier_name: str | None
    reason: str
    triggered_by: str
    history_id: UUID


def select_tier(tiers: Sequence[MembershipTier], total_points_earned: Decimal) -> MembershipTier | None:
    """Highest sort_order tier whose band contains ``total_points_earned``."""

    eligible = [
        tier
        for tier in tiers
        if Decimal(tier.min_points_required or 0) <= total_points_earned
        and (tier.max_points_required is None or Decimal(tier.max_points_required) >= total_points_earned)
    ]
    if not eligible:
        return None
    return max(eligible, key=lambda tier: (tier.sort_order or 0, Decimal(tier.min_points_required or 0)))


class TierEngine:
    """Keeps ``Member.current_tier_id`` aligned with lifetime points."""

    def __init__(
        self,
        session: AsyncSession,
        *,
        tiers: TierRepository | None = None,
        history: TierHistoryRepository | None = None,
        members: MemberRepository | None = None,
    ) -> None:
        self._db = session
        self._tiers = tiers or TierRepository(session)
        self._history = history or TierHistoryRepository(session)
        self._members = members or MemberRepository(session)

    async def recheck(
        self,
        member: Member,
        total_points_earned: Decimal | None = None,
        *,
        reason: str = AUTOMATIC_REASON,
        triggered_by: str = SYSTEM_ACTOR,
    ) -> TierChange | None:
        """Move the member to the eligible tier; no eligible tier leaves it unchanged."""

        total = Decimal(member.total_points_earned or 0) if total_points_earned is None else Decimal(total_points_earned)
        tiers = await self._tiers.list_active_tiers(member.brand_id)
        target = select_tier(tiers, total)
        if target is None:
            logger.debug("No eligible tier for member", member_id=str(member.id), total_points_earned=str(total))
            return None
        if member.current_tier_id == target.id:
            return None

        return await self._record_transition(
            member,
            target,
            reason=reason,
            triggered_by=triggered_by,
            notes=f"Automatic tier change to {target.name} based on {total} points earned",
        )

    async def change_tier_manually(
        self,
        member_id: UUID,
        tier_id: UUID | None,
        *,
        admin_user_id: str,
        reason: str = MANUAL_REASON,
        notes: str | None = None,
    ) -> TierChange | None:
        """Admin override that ignores eligibility; ``tier_id=None`` clears the tier."""

        member = await self._members.get_for_update(member_id)
        if member is None:
            raise MemberNotFoundError(f"Member {member_id} not found")

        target: MembershipTier | None = None
        if tier_id is not None:
            target = await self._tiers.get(tier_id)
            if target is None or target.brand_id != member.brand_id:
                raise TierNotFoundError(f"Tier {tier_id} not found for brand {member.brand_id}")

        if member.current_tier_id == (target.id if target else None):
            logger.info("Manual tier change is a no-op", member_id=str(member_id), tier_id=str(tier_id))
            return None

        return await self._record_transition(
            member,
            target,
            reason=reason or MANUAL_REASON,
            triggered_by=str(admin_user_id),
            notes=notes or f"Manual tier change by admin user {admin_user_id}",
            metadata={"admin_user_id": str(admin_user_id)},
        )

    async def _record_transition(
        self,
        member: Member,
        target: MembershipTier | None,
        *,
        reason: str,
        triggered_by: str,
        notes: str | None,
        metadata: dict[str, Any] | None = None,
    ) -> TierChange:
        previous_tier_id = member.current_tier_id
        member.current_tier_id = target.id if target else None
        member.tier_upgraded_at = datetime.now(timezone.utc)

        entry = await self._history.append(
            TierHistory(
                member_id=member.id,
                brand_id=member.brand_id,
                from_tier_id=previous_tier_id,
                to_tier_id=member.current_tier_id,
                reason=reason,
                points_at_change=Decimal(member.points_balance or 0),
                total_points_earned=Decimal(member.total_points_earned or 0),
                triggered_by=triggered_by,
                notes=notes,
                metadata_json=metadata or {},
            )
        )
        logger.info(
            "Member tier changed",
            member_id=str(member.id),
            from_tier_id=str(previous_tier_id) if previous_tier_id else None,
            to_tier_id=str(member.current_tier_id) if member.current_tier_id else None,
            reason=reason,
            triggered_by=triggered_by,
        )
        return TierChange(
            member_id=member.id,
            from_tier_id=previous_tier_id,
            to_tier_id=member.current_tier_id,
            to_tier_name=target.name if target else None,
            reason=reason,
            triggered_by=triggered_by,
            history_id=entry.id,
        )


__all__ = [
    "AUTOMATIC_REASON",
    "MANUAL_REASON",
    "SYSTEM_ACTOR",
    "TierChange",
    "TierEngine",
    "TierNotFoundError",
    "select_tier",
]
