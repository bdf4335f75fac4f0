"""Scheduler runtime for the transaction sync job."""

from __future__ import annotations

import inspect
from typing import Any, Dict

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from loguru import logger
from zoneinfo import ZoneInfo

from engagecore_api.core.settings import settings
from engagecore_api.jobs.transaction_sync import TransactionSyncJob

JOB_ID = "transaction-sync"


class TransactionSyncScheduler:
    """Fire ``TransactionSyncJob.run_sync`` on a cron schedule."""

    # meta: scheduler: transaction-sync

    def __init__(
        self,
        job: TransactionSyncJob,
        *,
        schedule: str | None = None,
        timezone: str | None = None,
    ) -> None:
        self._job = job
        self._schedule = schedule or job.schedule or settings.transaction_sync_schedule
        self._timezone = ZoneInfo(timezone or settings.transaction_sync_timezone)
        self._scheduler: AsyncIOScheduler | None = None
        self._is_running = False

    @property
    def is_running(self) -> bool:
        return self._is_running

    def start(self) -> None:
        if self._scheduler:
            return
        scheduler = AsyncIOScheduler(timezone=self._timezone)
        trigger = CronTrigger.from_crontab(self._schedule, timezone=self._timezone)
        scheduler.add_job(
            self._run,
            trigger=trigger,
            id=JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        scheduler.start()
        self._scheduler = scheduler
        self._is_running = True
        logger.info("Transaction sync scheduler started", schedule=self._schedule, timezone=str(self._timezone))

    async def stop(self) -> None:
        if not self._scheduler:
            return
        result = self._scheduler.shutdown(wait=False)
        if inspect.isawaitable(result):
            await result
        self._scheduler = None
        self._is_running = False
        logger.info("Transaction sync scheduler stopped")

    def health(self) -> Dict[str, Any]:
        next_run = None
        if self._scheduler:
            job = self._scheduler.get_job(JOB_ID)
            if job and job.next_run_time:
                next_run = job.next_run_time.isoformat()
        return {
            "running": self._is_running,
            "schedule": self._schedule,
            "timezone": str(self._timezone),
            "next_run_at": next_run,
        }

    async def _run(self) -> None:
        try:
            await self._job.run_sync(trigger="scheduler")
        except Exception as exc:  # pragma: no cover - scheduler keeps firing
            logger.exception("Scheduled transaction sync crashed", error=str(exc))


__all__ = ["JOB_ID", "TransactionSyncScheduler"]
