"""Membership, tier and tier history models."""

from __future__ import annotations

from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Column,
    DateTime,
    Enum as SqlEnum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import UUID

from engagecore_api.db.base import Base


class TierStatus(str, Enum):
    """Availability of a membership tier."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    DEPRECATED = "deprecated"


class MembershipTier(Base):
    """Brand-scoped points band; the highest eligible sort_order wins."""

    __tablename__ = "membership_tiers"
    __table_args__ = (UniqueConstraint("brand_id", "slug", name="uq_membership_tiers_brand_slug"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    brand_id = Column(UUID(as_uuid=True), ForeignKey("brands.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=False)
    slug = Column(String, nullable=False)
    status = Column(
        SqlEnum(TierStatus, name="membership_tier_status", values_callable=lambda enum: [item.value for item in enum]),
        nullable=False,
        default=TierStatus.ACTIVE,
        server_default=TierStatus.ACTIVE.value,
    )
    min_points_required = Column(Numeric(14, 2), nullable=False, default=0, server_default="0")
    # NULL means the band is unbounded above.
    max_points_required = Column(Numeric(14, 2), nullable=True)
    sort_order = Column(Integer, nullable=False, default=0, server_default="0")
    benefits = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class Member(Base):
    """Loyalty member of a brand, optionally linked to an external user."""

    __tablename__ = "members"
    __table_args__ = (
        UniqueConstraint("brand_id", "external_user_id", name="uq_members_brand_external_user"),
        CheckConstraint("points_balance >= 0", name="points_balance_non_negative"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    brand_id = Column(UUID(as_uuid=True), ForeignKey("brands.id", ondelete="CASCADE"), nullable=False, index=True)
    external_user_id = Column(String, nullable=True)
    display_name = Column(String, nullable=True)
    points_balance = Column(Numeric(14, 2), nullable=False, default=0, server_default="0")
    total_points_earned = Column(Numeric(14, 2), nullable=False, default=0, server_default="0")
    current_tier_id = Column(
        UUID(as_uuid=True),
        ForeignKey("membership_tiers.id", ondelete="SET NULL"),
        nullable=True,
    )
    tier_upgraded_at = Column(DateTime(timezone=True), nullable=True)
    achievements = Column(JSON, nullable=False, default=list)
    source = Column(String, nullable=True)
    last_activity_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class TierHistory(Base):
    """Append-only audit row written for every tier transition."""

    __tablename__ = "tier_history"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    member_id = Column(UUID(as_uuid=True), ForeignKey("members.id", ondelete="CASCADE"), nullable=False, index=True)
    brand_id = Column(UUID(as_uuid=True), ForeignKey("brands.id", ondelete="CASCADE"), nullable=False)
    from_tier_id = Column(UUID(as_uuid=True), ForeignKey("membership_tiers.id", ondelete="SET NULL"), nullable=True)
    to_tier_id = Column(UUID(as_uuid=True), ForeignKey("membership_tiers.id", ondelete="SET NULL"), nullable=True)
    reason = Column(String, nullable=False)
    points_at_change = Column(Numeric(14, 2), nullable=False)
    total_points_earned = Column(Numeric(14, 2), nullable=False)
    triggered_by = Column(String, nullable=False)
    notes = Column(Text, nullable=True)
    metadata_json = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
