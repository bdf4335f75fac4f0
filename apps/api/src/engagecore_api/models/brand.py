"""Brand (tenant) model."""

from __future__ import annotations

from enum import Enum
from uuid import uuid4

from sqlalchemy import JSON, Column, DateTime, Enum as SqlEnum, String, func
from sqlalchemy.dialects.postgresql import UUID

from engagecore_api.db.base import Base


class BrandStatus(str, Enum):
    """Lifecycle states for a brand tenant."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"
    PENDING_APPROVAL = "pending_approval"


class Brand(Base):
    """A tenant with its own members, tiers and external sync settings."""

    __tablename__ = "brands"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    name = Column(String, nullable=False)
    slug = Column(String, nullable=False, unique=True, index=True)
    status = Column(
        SqlEnum(BrandStatus, name="brand_status", values_callable=lambda enum: [item.value for item in enum]),
        nullable=False,
        default=BrandStatus.ACTIVE,
        server_default=BrandStatus.ACTIVE.value,
    )
    # external_api: sync window, provider endpoint and credentials
    settings = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
