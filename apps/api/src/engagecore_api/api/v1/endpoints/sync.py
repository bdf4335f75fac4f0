"""Operational endpoints for the transaction sync job."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from engagecore_api.api.dependencies.security import require_admin_api_key
from engagecore_api.db.session import get_session
from engagecore_api.jobs.transaction_sync import TransactionSyncJob
from engagecore_api.repositories import SyncRunRepository

router = APIRouter(prefix="/sync", tags=["sync"], dependencies=[Depends(require_admin_api_key)])


class SyncRunResponse(BaseModel):
    id: UUID
    status: str
    triggeredBy: str
    processedCount: int
    errorCount: int
    brandsProcessed: int
    executionTimeMs: Optional[int]
    errorMessage: Optional[str]
    startedAt: datetime
    completedAt: Optional[datetime]
    metadata: Dict[str, Any]


def _get_job(request: Request) -> TransactionSyncJob:
    job = getattr(request.app.state, "transaction_sync_job", None)
    if job is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Transaction sync job not configured")
    return job


@router.get("/status", summary="Transaction sync statistics")
async def sync_status(request: Request) -> Dict[str, Any]:
    job = _get_job(request)
    scheduler = getattr(request.app.state, "transaction_sync_scheduler", None)
    payload = job.get_stats()
    payload["scheduler"] = scheduler.health() if scheduler is not None else None
    return payload


@router.post("/run", summary="Trigger a transaction sync run")
async def trigger_sync(request: Request) -> Dict[str, Any]:
    job = _get_job(request)
    if job.is_running:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Transaction sync already running")
    result = await job.run_sync(trigger="manual")
    if result.status == "already_running":
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Transaction sync already running")
    return result.as_dict()


@router.get("/runs", response_model=List[SyncRunResponse], summary="Recent transaction sync runs")
async def list_sync_runs(
    limit: int = Query(20, ge=1, le=100),
    session: AsyncSession = Depends(get_session),
) -> List[SyncRunResponse]:
    runs = await SyncRunRepository(session).list_recent(limit=limit)
    return [
        SyncRunResponse(
            id=run.id,
            status=run.status,
            triggeredBy=run.triggered_by,
            processedCount=run.processed_count or 0,
            errorCount=run.error_count or 0,
            brandsProcessed=run.brands_processed or 0,
            executionTimeMs=run.execution_time_ms,
            errorMessage=run.error_message,
            startedAt=run.started_at,
            completedAt=run.completed_at,
            metadata=run.metadata_json or {},
        )
        for run in runs
    ]
