"""Persisted history of transaction sync runs."""

from __future__ import annotations

from uuid import uuid4

from sqlalchemy import JSON, Column, DateTime, Integer, String, Text, func
from sqlalchemy.dialects.postgresql import UUID

from engagecore_api.db.base import Base


class SyncRun(Base):
    """One invocation of the transaction sync job."""

    __tablename__ = "sync_runs"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    job_name = Column(String, nullable=False, default="transaction_sync", server_default="transaction_sync")
    status = Column(String, nullable=False, default="running", server_default="running")
    triggered_by = Column(String, nullable=False, default="scheduler", server_default="scheduler")
    processed_count = Column(Integer, nullable=False, default=0, server_default="0")
    error_count = Column(Integer, nullable=False, default=0, server_default="0")
    brands_processed = Column(Integer, nullable=False, default=0, server_default="0")
    execution_time_ms = Column(Integer, nullable=True)
    error_message = Column(Text, nullable=True)
    metadata_json = Column("metadata", JSON, nullable=True)
    started_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
