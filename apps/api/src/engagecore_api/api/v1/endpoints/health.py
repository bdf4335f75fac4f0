from __future__ import annotations

from typing import Dict, Literal

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

from engagecore_api.core.settings import settings

router = APIRouter()


class ComponentStatus(BaseModel):
    status: Literal["ready", "starting", "disabled", "error"]
    detail: str | None = Field(default=None, description="Human readable status detail")


class ReadinessPayload(BaseModel):
    status: Literal["ready", "degraded", "error"]
    components: Dict[str, ComponentStatus]


@router.get("/readyz", summary="Service readiness", response_model=ReadinessPayload)
async def service_readiness(request: Request) -> ReadinessPayload:
    components: Dict[str, ComponentStatus] = {}
    status: Literal["ready", "degraded", "error"] = "ready"

    scheduler = getattr(request.app.state, "transaction_sync_scheduler", None)
    if settings.transaction_sync_enabled and scheduler is not None:
        running = bool(getattr(scheduler, "is_running", False))
        detail = None if running else "Transaction sync scheduler not running"
        if not running:
            status = "degraded"
        components["transaction_sync_scheduler"] = ComponentStatus(
            status="ready" if running else "starting",
            detail=detail,
        )
    else:
        components["transaction_sync_scheduler"] = ComponentStatus(
            status="disabled",
            detail="Transaction sync disabled via settings",
        )

    job = getattr(request.app.state, "transaction_sync_job", None)
    last_run = job.get_stats().get("last_run") if job is not None else None
    if last_run and last_run.get("status") == "failed":
        components["transaction_sync_job"] = ComponentStatus(status="error", detail=last_run.get("error"))
        status = "degraded" if status == "ready" else status
    elif job is not None:
        components["transaction_sync_job"] = ComponentStatus(status="ready")

    return ReadinessPayload(status=status, components=components)
