"""Scheduled synchronization of brand transaction feeds into the points ledger."""

# meta: job: transaction-sync

from __future__ import annotations

import asyncio
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Literal, Mapping
from uuid import UUID

import httpx
from loguru import logger
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from engagecore_api.core.settings import settings
from engagecore_api.models.sync_run import SyncRun
from engagecore_api.repositories import BrandRepository, SyncRunRepository
from engagecore_api.schemas.brand import SyncWindowConfig
from engagecore_api.services.loyalty import LedgerError, MemberResolver, PointsLedger
from engagecore_api.services.sync import (
    ExternalFeedClient,
    ReconciliationError,
    TransactionReconciler,
    TransformError,
    TransientProviderError,
    WindowAdvanceError,
    WindowAdvancer,
    is_window_due,
    transform_transaction,
)

SessionFactory = Callable[[], AsyncSession] | Callable[[], Awaitable[AsyncSession]]

JOB_NAME = "transaction_sync"


class SyncState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class SyncComponents:
    """Session-bound collaborators used for one brand."""

    members: MemberResolver
    reconciler: TransactionReconciler
    windows: WindowAdvancer


def build_sync_components(session: AsyncSession) -> SyncComponents:
    ledger = PointsLedger(session)
    return SyncComponents(
        members=MemberResolver(session),
        reconciler=TransactionReconciler(session, ledger),
        windows=WindowAdvancer(session),
    )


ComponentsFactory = Callable[[AsyncSession], SyncComponents]


@dataclass
class BrandSyncResult:
    brand_id: UUID
    brand_name: str
    status: Literal["synced", "skipped", "failed"] = "synced"
    fetched: int = 0
    processed: int = 0
    created: int = 0
    updated: int = 0
    unchanged: int = 0
    errors: int = 0
    window_start: str | None = None
    window_end: str | None = None
    error: str | None = None

    def as_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["brand_id"] = str(self.brand_id)
        return payload


@dataclass
class RunResult:
    status: Literal["completed", "failed", "already_running"]
    trigger: str
    run_id: UUID | None = None
    processed: int = 0
    errors: int = 0
    brands_processed: int = 0
    duration_ms: int = 0
    started_at: datetime | None = None
    completed_at: datetime | None = None
    error: str | None = None
    brands: List[BrandSyncResult] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "trigger": self.trigger,
            "run_id": str(self.run_id) if self.run_id else None,
            "processed": self.processed,
            "errors": self.errors,
            "brands_processed": self.brands_processed,
            "duration_ms": self.duration_ms,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "error": self.error,
            "brands": [brand.as_dict() for brand in self.brands],
        }


@dataclass
class _BrandSnapshot:
    id: UUID
    name: str
    settings: Dict[str, Any]


class TransactionSyncJob:
    """Pulls each brand's transaction window and merges it into the ledger.

    Runs are exclusive: a second ``run_sync`` while one is in flight returns an
    ``already_running`` result instead of waiting. Every provider record is
    committed on its own, and a brand's window only advances when its batch
    was fetched and walked to the end.
    """

    def __init__(
        self,
        session_factory: SessionFactory,
        feed_client: ExternalFeedClient,
        *,
        components_factory: ComponentsFactory = build_sync_components,
        timeout_seconds: float | None = None,
        enabled: bool | None = None,
        schedule: str | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._feed = feed_client
        self._components_factory = components_factory
        self._timeout = timeout_seconds or settings.transaction_sync_timeout_seconds
        self.enabled = settings.transaction_sync_enabled if enabled is None else enabled
        self.schedule = schedule or settings.transaction_sync_schedule
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._lock = asyncio.Lock()
        self._state = SyncState.IDLE
        self._stats: Dict[str, Any] = {
            "total_runs": 0,
            "successful_runs": 0,
            "failed_runs": 0,
            "skipped_runs": 0,
            "total_processed": 0,
            "total_errors": 0,
        }
        self._last_run: RunResult | None = None

    @property
    def feed_client(self) -> ExternalFeedClient:
        return self._feed

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    @property
    def state(self) -> SyncState:
        return self._state

    async def run_sync(self, *, trigger: str = "scheduler") -> RunResult:
        if self._lock.locked():
            logger.warning("Transaction sync already running, skipping", trigger=trigger)
            self._stats["skipped_runs"] += 1
            return RunResult(status="already_running", trigger=trigger)

        async with self._lock:
            self._state = SyncState.RUNNING
            try:
                result = await self._execute(trigger)
            except BaseException:
                self._state = SyncState.FAILED
                raise
            self._state = SyncState.COMPLETED if result.status == "completed" else SyncState.FAILED
            return result

    def get_stats(self) -> Dict[str, Any]:
        return {
            **self._stats,
            "is_running": self.is_running,
            "state": self._state.value,
            "enabled": self.enabled,
            "schedule": self.schedule,
            "last_run": self._last_run.as_dict() if self._last_run else None,
        }

    async def _execute(self, trigger: str) -> RunResult:
        started_at = datetime.now(timezone.utc)
        started = time.monotonic()
        result = RunResult(status="completed", trigger=trigger, started_at=started_at)

        try:
            result.run_id = await self._open_run(trigger)
            logger.info("Transaction sync started", trigger=trigger, run_id=str(result.run_id))
            await asyncio.wait_for(self._sync_brands(result), timeout=self._timeout)
        except asyncio.TimeoutError:
            result.status = "failed"
            result.error = f"Transaction sync timed out after {self._timeout}s"
            logger.error("Transaction sync timed out", run_id=str(result.run_id), timeout_seconds=self._timeout)
        except Exception as exc:
            result.status = "failed"
            result.error = str(exc) or type(exc).__name__
            logger.exception("Transaction sync failed", run_id=str(result.run_id), error=result.error)

        result.processed = sum(brand.processed for brand in result.brands)
        result.errors = sum(brand.errors for brand in result.brands)
        result.brands_processed = sum(1 for brand in result.brands if brand.status != "skipped")

        result.completed_at = datetime.now(timezone.utc)
        result.duration_ms = int((time.monotonic() - started) * 1000)
        self._record_stats(result)
        await self._close_run(result)
        logger.info(
            "Transaction sync finished",
            run_id=str(result.run_id),
            status=result.status,
            processed=result.processed,
            errors=result.errors,
            brands_processed=result.brands_processed,
            duration_ms=result.duration_ms,
        )
        return result

    def _record_stats(self, result: RunResult) -> None:
        self._stats["total_runs"] += 1
        self._stats["total_processed"] += result.processed
        self._stats["total_errors"] += result.errors
        if result.status == "completed":
            self._stats["successful_runs"] += 1
        else:
            self._stats["failed_runs"] += 1
        self._last_run = result

    async def _sync_brands(self, result: RunResult) -> None:
        session = await self._ensure_session()
        async with session as managed_session:
            brands = await BrandRepository(managed_session).list_syncable_brands()
            snapshots = [_BrandSnapshot(brand.id, brand.name, dict(brand.settings or {})) for brand in brands]
            await managed_session.commit()

        logger.info("Found brands to sync", count=len(snapshots))
        for snapshot in snapshots:
            # Appended up front so a timeout still reports partial counts.
            outcome = BrandSyncResult(brand_id=snapshot.id, brand_name=snapshot.name)
            result.brands.append(outcome)
            await self._sync_brand(snapshot, outcome)

    async def _sync_brand(self, brand: _BrandSnapshot, outcome: BrandSyncResult) -> BrandSyncResult:
        try:
            config = SyncWindowConfig.from_brand_settings(brand.settings)
        except ValidationError as exc:
            return self._fail_brand(outcome, f"Invalid external_api settings: {exc.error_count()} error(s)")
        if config is None:
            outcome.status = "skipped"
            return outcome

        outcome.window_start = config.query_start_date
        outcome.window_end = config.query_end_date
        now = self._clock()
        if not is_window_due(config, now):
            logger.debug(
                "Sync window not yet closed, skipping brand",
                brand_id=str(brand.id),
                window_end=config.query_end_date,
            )
            outcome.status = "skipped"
            return outcome

        try:
            fetch = await self._feed.fetch(config)
        except TransientProviderError as exc:
            return self._fail_brand(outcome, str(exc))
        if not fetch.success:
            return self._fail_brand(outcome, fetch.error or "External feed fetch failed")
        outcome.fetched = len(fetch.transactions)

        session = await self._ensure_session()
        async with session as managed_session:
            components = self._components_factory(managed_session)
            try:
                for record in fetch.transactions:
                    await self._process_record(managed_session, components, brand.id, record, outcome)
                window = await components.windows.advance(brand.id, now=now)
                await managed_session.commit()
            except (WindowAdvanceError, SQLAlchemyError) as exc:
                await managed_session.rollback()
                return self._fail_brand(outcome, str(exc) or type(exc).__name__)

        logger.info(
            "Brand transactions synced",
            brand_id=str(brand.id),
            brand=brand.name,
            fetched=outcome.fetched,
            created=outcome.created,
            updated=outcome.updated,
            unchanged=outcome.unchanged,
            errors=outcome.errors,
            next_window_start=window.start,
            next_window_end=window.end,
        )
        return outcome

    async def _process_record(
        self,
        session: AsyncSession,
        components: SyncComponents,
        brand_id: UUID,
        record: Mapping[str, Any],
        outcome: BrandSyncResult,
    ) -> None:
        try:
            canonical = transform_transaction(record)
        except TransformError as exc:
            outcome.errors += 1
            logger.warning(
                "Skipping malformed provider transaction",
                brand_id=str(brand_id),
                reference_id=exc.reference_id,
                error=str(exc),
            )
            return

        try:
            member = await components.members.resolve(canonical.external_user_id, brand_id)
            reconciled = await components.reconciler.reconcile(canonical, member, brand_id)
            await session.commit()
        except (ReconciliationError, LedgerError) as exc:
            await session.rollback()
            outcome.errors += 1
            logger.warning(
                "Failed to reconcile provider transaction",
                brand_id=str(brand_id),
                reference_id=canonical.reference_id,
                error=str(exc),
            )
            return

        outcome.processed += 1
        if reconciled.outcome == "created":
            outcome.created += 1
        elif reconciled.outcome == "updated":
            outcome.updated += 1
        else:
            outcome.unchanged += 1

    def _fail_brand(self, outcome: BrandSyncResult, error: str) -> BrandSyncResult:
        outcome.status = "failed"
        outcome.errors += 1
        outcome.error = error
        logger.error("Brand sync failed, window not advanced", brand_id=str(outcome.brand_id), error=error)
        return outcome

    async def _open_run(self, trigger: str) -> UUID:
        session = await self._ensure_session()
        async with session as managed_session:
            run = await SyncRunRepository(managed_session).add(
                SyncRun(job_name=JOB_NAME, status="running", triggered_by=trigger)
            )
            await managed_session.commit()
            return run.id

    async def _close_run(self, result: RunResult) -> None:
        if result.run_id is None:
            return
        try:
            session = await self._ensure_session()
            async with session as managed_session:
                run = await SyncRunRepository(managed_session).get(result.run_id)
                if run is None:
                    return
                run.status = result.status
                run.processed_count = result.processed
                run.error_count = result.errors
                run.brands_processed = result.brands_processed
                run.execution_time_ms = result.duration_ms
                run.error_message = result.error
                run.completed_at = result.completed_at
                run.metadata_json = {"brands": [brand.as_dict() for brand in result.brands]}
                await managed_session.commit()
        except SQLAlchemyError as exc:
            logger.error("Failed to record transaction sync run", run_id=str(result.run_id), error=str(exc))

    async def _ensure_session(self) -> AsyncSession:
        maybe_session = self._session_factory()
        if isinstance(maybe_session, AsyncSession):
            return maybe_session
        return await maybe_session


def build_transaction_sync_job(
    session_factory: SessionFactory,
    *,
    http_client: httpx.AsyncClient | None = None,
    **options: Any,
) -> TransactionSyncJob:
    """Wire the job with its feed client; extra options go to ``TransactionSyncJob``."""

    return TransactionSyncJob(session_factory, ExternalFeedClient(http_client), **options)


async def run_transaction_sync(*, session_factory: SessionFactory, trigger: str = "cli") -> Dict[str, Any]:
    """One-shot sync run outside the scheduler."""

    feed = ExternalFeedClient()
    try:
        job = TransactionSyncJob(session_factory, feed)
        result = await job.run_sync(trigger=trigger)
    finally:
        await feed.aclose()
    return result.as_dict()


__all__ = [
    "BrandSyncResult",
    "RunResult",
    "SyncComponents",
    "SyncState",
    "TransactionSyncJob",
    "build_sync_components",
    "build_transaction_sync_job",
    "run_transaction_sync",
]
