"""Admin endpoints for member balances and tiers."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.ext.asyncio import AsyncSession

from engagecore_api.api.dependencies.security import require_admin_api_key
from engagecore_api.db.session import get_session
from engagecore_api.repositories import MemberRepository, TierHistoryRepository
from engagecore_api.services.loyalty import MemberNotFoundError, PointsLedger, TierEngine, TierNotFoundError

router = APIRouter(prefix="/members", tags=["members"], dependencies=[Depends(require_admin_api_key)])


class PointsAdjustmentRequest(BaseModel):
    amount: Decimal
    adminUserId: str = Field(..., min_length=1)
    description: Optional[str] = None
    correctTotal: bool = False

    @field_validator("amount")
    @classmethod
    def _non_zero(cls, value: Decimal) -> Decimal:
        if value == 0:
            raise ValueError("amount must be non-zero")
        return value


class PointsAdjustmentResponse(BaseModel):
    memberId: UUID
    transactionId: UUID
    appliedDelta: float
    pointsBalance: float
    totalPointsEarned: float
    currentTierId: Optional[UUID]
    tierChanged: bool


class TierChangeRequest(BaseModel):
    tierId: Optional[UUID] = None
    adminUserId: str = Field(..., min_length=1)
    reason: str = "admin_adjustment"
    notes: Optional[str] = None


class TierChangeResponse(BaseModel):
    memberId: UUID
    fromTierId: Optional[UUID]
    toTierId: Optional[UUID]
    changed: bool
    historyId: Optional[UUID]


class TierHistoryResponse(BaseModel):
    id: UUID
    fromTierId: Optional[UUID]
    toTierId: Optional[UUID]
    reason: str
    pointsAtChange: float
    totalPointsEarned: float
    triggeredBy: str
    notes: Optional[str]
    createdAt: datetime


@router.post("/{member_id}/points", response_model=PointsAdjustmentResponse)
async def adjust_member_points(
    member_id: UUID,
    payload: PointsAdjustmentRequest,
    session: AsyncSession = Depends(get_session),
) -> PointsAdjustmentResponse:
    ledger = PointsLedger(session)
    try:
        transaction, result = await ledger.apply_admin_adjustment(
            member_id,
            payload.amount,
            admin_user_id=payload.adminUserId,
            description=payload.description,
            correct_total=payload.correctTotal,
        )
    except MemberNotFoundError as exc:
        await session.rollback()
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    member = await MemberRepository(session).get(member_id)
    current_tier_id = member.current_tier_id if member else None
    await session.commit()

    tier_change = result.tier_change
    return PointsAdjustmentResponse(
        memberId=member_id,
        transactionId=transaction.id,
        appliedDelta=float(result.applied_delta),
        pointsBalance=float(result.balance_after),
        totalPointsEarned=float(result.total_points_earned),
        currentTierId=current_tier_id,
        tierChanged=tier_change is not None,
    )


@router.post("/{member_id}/tier", response_model=TierChangeResponse)
async def change_member_tier(
    member_id: UUID,
    payload: TierChangeRequest,
    session: AsyncSession = Depends(get_session),
) -> TierChangeResponse:
    engine = TierEngine(session)
    try:
        change = await engine.change_tier_manually(
            member_id,
            payload.tierId,
            admin_user_id=payload.adminUserId,
            reason=payload.reason,
            notes=payload.notes,
        )
    except (MemberNotFoundError, TierNotFoundError) as exc:
        await session.rollback()
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    await session.commit()

    if change is None:
        return TierChangeResponse(
            memberId=member_id,
            fromTierId=payload.tierId,
            toTierId=payload.tierId,
            changed=False,
            historyId=None,
        )
    return TierChangeResponse(
        memberId=member_id,
        fromTierId=change.from_tier_id,
        toTierId=change.to_tier_id,
        changed=True,
        historyId=change.history_id,
    )


@router.get("/{member_id}/tier-history", response_model=List[TierHistoryResponse])
async def list_member_tier_history(
    member_id: UUID,
    limit: int = Query(50, ge=1, le=200),
    session: AsyncSession = Depends(get_session),
) -> List[TierHistoryResponse]:
    entries = await TierHistoryRepository(session).list_for_member(member_id, limit=limit)
    return [
        TierHistoryResponse(
            id=entry.id,
            fromTierId=entry.from_tier_id,
            toTierId=entry.to_tier_id,
            reason=entry.reason,
            pointsAtChange=float(entry.points_at_change),
            totalPointsEarned=float(entry.total_points_earned),
            triggeredBy=entry.triggered_by,
            notes=entry.notes,
            createdAt=entry.created_at,
        )
        for entry in entries
    ]
