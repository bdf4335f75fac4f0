"""Points transaction model."""

from __future__ import annotations

from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Enum as SqlEnum,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import UUID

from engagecore_api.db.base import Base


class TransactionType(str, Enum):
    """Ledger categories; provider feeds may store their own type strings."""

    POINTS_EARNED = "points_earned"
    POINTS_SPENT = "points_spent"
    POINTS_AWARDED = "points_awarded"
    POINTS_DEDUCTED = "points_deducted"
    WHEEL_WIN = "wheel_win"
    MISSION_REWARD = "mission_reward"
    BONUS_POINTS = "bonus_points"
    REFERRAL_BONUS = "referral_bonus"
    TIER_UPGRADE_BONUS = "tier_upgrade_bonus"
    ADMIN_ADJUSTMENT = "admin_adjustment"


class TransactionSource(str, Enum):
    """Actor that produced the transaction row."""

    EXTERNAL_SYNC = "external_sync"
    WHEEL = "wheel"
    MISSION = "mission"
    ADMIN = "admin"


class Transaction(Base):
    """A points movement; reference_id is the per-brand idempotency key."""

    __tablename__ = "transactions"
    __table_args__ = (
        UniqueConstraint("brand_id", "reference_id", name="uq_transactions_brand_reference"),
        Index("ix_transactions_member_created", "member_id", "created_at"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    brand_id = Column(UUID(as_uuid=True), ForeignKey("brands.id", ondelete="CASCADE"), nullable=False, index=True)
    member_id = Column(UUID(as_uuid=True), ForeignKey("members.id", ondelete="CASCADE"), nullable=False)
    reference_id = Column(String, nullable=False)
    type = Column(String, nullable=False)
    source = Column(
        SqlEnum(TransactionSource, name="transaction_source", values_callable=lambda enum: [item.value for item in enum]),
        nullable=False,
    )
    amount = Column(Numeric(14, 2), nullable=False)
    # Balance change actually applied after the zero floor.
    points_delta = Column(Numeric(14, 2), nullable=False, default=0, server_default="0")
    status = Column(String, nullable=True)
    description = Column(Text, nullable=True)
    raw_data = Column(JSON, nullable=True)
    provider_created_at = Column(String, nullable=True)
    processed_at = Column(DateTime(timezone=True), nullable=True)
    created_by = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
