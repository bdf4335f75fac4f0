from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from decimal import Decimal

import httpx
import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from engagecore_api.jobs.transaction_sync import SyncState, TransactionSyncJob, run_transaction_sync
from engagecore_api.models import Brand, BrandStatus, Member, SyncRun, Transaction
from engagecore_api.services.sync.feed_client import ExternalFeedClient

# 11:00 Asia/Kuala_Lumpur, after the seeded 10:00-10:05 window has closed.
DUE_NOW = datetime(2026, 10, 18, 3, 0, tzinfo=timezone.utc)


def _record(reference_id: str, user_id: str, cash: str, **extra):
    record = {
        "id": reference_id,
        "type": "deposit",
        "cash": cash,
        "status": "approved",
        "createdDateTime": "2026-10-18 10:01:00",
        "user": {"id": user_id},
    }
    record.update(extra)
    return record


def _body(transactions):
    return {"status": "SUCCESS", "data": {"transactions": transactions, "totalCount": len(transactions)}}


async def _no_sleep(delay: float) -> None:
    return None


def _build_job(session_factory, http_client: httpx.AsyncClient, **options) -> TransactionSyncJob:
    options.setdefault("clock", lambda: DUE_NOW)
    options.setdefault("timeout_seconds", 30)
    return TransactionSyncJob(
        session_factory,
        ExternalFeedClient(http_client, sleep=_no_sleep),
        enabled=True,
        schedule="*/15 * * * *",
        **options,
    )


async def _seed_brand(session_factory, create_brand, external_api_block, **kwargs):
    async with session_factory() as session:
        brand, _ = await create_brand(session, external_api=external_api_block(**kwargs.pop("block", {})), **kwargs)
        await session.commit()
        return brand.id


async def _stored_window(session_factory, brand_id):
    async with session_factory() as session:
        block = (await session.get(Brand, brand_id)).settings["external_api"]
        return block["queryStartDate"], block["queryEndDate"]


@pytest.mark.asyncio
async def test_partial_failure_commits_valid_records_and_advances(
    session_factory, create_brand, external_api_block
) -> None:
    brand_id = await _seed_brand(session_factory, create_brand, external_api_block)
    records = [
        _record("tx-1", "u-1", "10"),
        _record("tx-2", "u-2", "20"),
        _record("tx-3", "u-3", "not-a-number"),
        _record("tx-4", "u-1", "5"),
        _record("tx-5", "u-4", "-3"),
    ]

    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=_body(records))

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http_client:
        job = _build_job(session_factory, http_client)
        result = await job.run_sync(trigger="manual")

    assert result.status == "completed"
    assert result.processed == 4
    assert result.errors == 1
    assert result.brands_processed == 1
    brand_result = result.brands[0]
    assert (brand_result.status, brand_result.created, brand_result.fetched) == ("synced", 4, 5)

    assert await _stored_window(session_factory, brand_id) == ("2026-10-18 10:05:00", "2026-10-18 10:10:00")

    async with session_factory() as session:
        references = sorted((await session.execute(select(Transaction.reference_id))).scalars().all())
        assert references == ["tx-1", "tx-2", "tx-4", "tx-5"]

        members = {
            member.external_user_id: member
            for member in (await session.execute(select(Member).where(Member.brand_id == brand_id))).scalars()
        }
        assert sorted(members) == ["u-1", "u-2", "u-4"]
        assert Decimal(members["u-1"].points_balance) == Decimal("15")
        assert Decimal(members["u-4"].points_balance) == Decimal("0")
        assert Decimal(members["u-4"].total_points_earned) == Decimal("0")

        run = (await session.execute(select(SyncRun))).scalar_one()
        assert run.status == "completed"
        assert run.triggered_by == "manual"
        assert (run.processed_count, run.error_count, run.brands_processed) == (4, 1, 1)
        assert run.completed_at is not None
        assert run.metadata_json["brands"][0]["brand_id"] == str(brand_id)

    stats = job.get_stats()
    assert stats["total_runs"] == 1
    assert stats["successful_runs"] == 1
    assert stats["total_processed"] == 4
    assert stats["total_errors"] == 1
    assert stats["state"] == "completed"
    assert stats["is_running"] is False
    assert stats["last_run"]["run_id"] == str(run.id)


@pytest.mark.asyncio
async def test_replayed_batch_does_not_double_credit(session_factory, create_brand, external_api_block) -> None:
    brand_id = await _seed_brand(session_factory, create_brand, external_api_block)
    records = [_record("tx-1", "u-1", "700"), _record("tx-2", "u-1", "400")]

    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=_body(records))

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http_client:
        job = _build_job(session_factory, http_client)
        first = await job.run_sync()
        second = await job.run_sync()

    assert first.brands[0].created == 2
    assert second.brands[0].created == 0
    assert second.brands[0].unchanged == 2
    assert await _stored_window(session_factory, brand_id) == ("2026-10-18 10:10:00", "2026-10-18 10:15:00")

    async with session_factory() as session:
        member = (await session.execute(select(Member))).scalar_one()
        assert Decimal(member.points_balance) == Decimal("1100")
        assert Decimal(member.total_points_earned) == Decimal("1100")
        assert member.current_tier_id is not None


@pytest.mark.asyncio
async def test_brand_is_skipped_until_window_closes(session_factory, create_brand, external_api_block) -> None:
    brand_id = await _seed_brand(session_factory, create_brand, external_api_block)
    calls = 0

    async def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        return httpx.Response(200, json=_body([]))

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http_client:
        job = _build_job(session_factory, http_client, clock=lambda: datetime(2026, 10, 18, 2, 0, tzinfo=timezone.utc))
        result = await job.run_sync()

    assert calls == 0
    assert result.status == "completed"
    assert result.brands[0].status == "skipped"
    assert result.brands_processed == 0
    assert await _stored_window(session_factory, brand_id) == ("2026-10-18 10:00:00", "2026-10-18 10:05:00")


@pytest.mark.asyncio
async def test_fetch_failure_keeps_window_and_other_brands_proceed(
    session_factory, create_brand, external_api_block
) -> None:
    broken_id = await _seed_brand(
        session_factory,
        create_brand,
        external_api_block,
        name="Broken Brand",
        block={"url": "https://broken.test/api"},
    )
    healthy_id = await _seed_brand(session_factory, create_brand, external_api_block, name="Healthy Brand")
    broken_calls = 0

    async def handler(request: httpx.Request) -> httpx.Response:
        nonlocal broken_calls
        if request.url.host == "broken.test":
            broken_calls += 1
            return httpx.Response(503, text="unavailable")
        return httpx.Response(200, json=_body([_record("tx-1", "u-1", "10")]))

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http_client:
        job = _build_job(session_factory, http_client)
        result = await job.run_sync()

    assert broken_calls == 2
    assert result.status == "completed"
    assert result.errors == 1
    assert result.processed == 1
    statuses = {brand.brand_name: brand.status for brand in result.brands}
    assert statuses == {"Broken Brand": "failed", "Healthy Brand": "synced"}
    assert await _stored_window(session_factory, broken_id) == ("2026-10-18 10:00:00", "2026-10-18 10:05:00")
    assert await _stored_window(session_factory, healthy_id) == ("2026-10-18 10:05:00", "2026-10-18 10:10:00")


@pytest.mark.asyncio
async def test_inactive_and_unconfigured_brands_are_ignored(session_factory, create_brand, external_api_block) -> None:
    async with session_factory() as session:
        await create_brand(session, name="Paused", status=BrandStatus.SUSPENDED, external_api=external_api_block())
        await create_brand(session, name="No Feed")
        await session.commit()

    async def handler(request: httpx.Request) -> httpx.Response:  # pragma: no cover - must not be called
        raise AssertionError("provider should not be called")

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http_client:
        result = await _build_job(session_factory, http_client).run_sync()

    assert result.status == "completed"
    assert result.brands == []


@pytest.mark.asyncio
async def test_concurrent_invocation_reports_already_running(
    session_factory, create_brand, external_api_block
) -> None:
    await _seed_brand(session_factory, create_brand, external_api_block)
    entered = asyncio.Event()
    release = asyncio.Event()

    async def handler(request: httpx.Request) -> httpx.Response:
        entered.set()
        await release.wait()
        return httpx.Response(200, json=_body([]))

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http_client:
        job = _build_job(session_factory, http_client)
        first = asyncio.create_task(job.run_sync(trigger="scheduler"))
        await entered.wait()

        assert job.is_running is True
        assert job.state == SyncState.RUNNING
        second = await job.run_sync(trigger="manual")

        release.set()
        completed = await first

    assert second.status == "already_running"
    assert completed.status == "completed"
    assert job.is_running is False
    assert job.get_stats()["skipped_runs"] == 1
    assert job.get_stats()["total_runs"] == 1


@pytest.mark.asyncio
async def test_timeout_aborts_run_without_advancing(session_factory, create_brand, external_api_block) -> None:
    brand_id = await _seed_brand(session_factory, create_brand, external_api_block)

    async def handler(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(5)
        return httpx.Response(200, json=_body([]))

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http_client:
        job = _build_job(session_factory, http_client, timeout_seconds=0.05)
        result = await job.run_sync()

    assert result.status == "failed"
    assert "timed out" in (result.error or "")
    assert job.state == SyncState.FAILED
    assert job.is_running is False
    assert await _stored_window(session_factory, brand_id) == ("2026-10-18 10:00:00", "2026-10-18 10:05:00")

    async with session_factory() as session:
        run = (await session.execute(select(SyncRun))).scalar_one()
        assert run.status == "failed"
        assert "timed out" in run.error_message


@pytest.mark.asyncio
async def test_unexpected_error_fails_run_and_releases_lock(session_factory, create_brand, external_api_block) -> None:
    await _seed_brand(session_factory, create_brand, external_api_block)

    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=_body([_record("tx-1", "u-1", "10")]))

    def broken_components(session):
        raise RuntimeError("component wiring failed")

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http_client:
        job = _build_job(session_factory, http_client, components_factory=broken_components)
        result = await job.run_sync()

    assert result.status == "failed"
    assert result.error == "component wiring failed"
    assert job.is_running is False
    assert job.get_stats()["failed_runs"] == 1


@pytest.mark.asyncio
async def test_one_shot_runner_returns_summary(session_factory) -> None:
    summary = await run_transaction_sync(session_factory=session_factory, trigger="cron")

    assert summary["status"] == "completed"
    assert summary["trigger"] == "cron"
    assert summary["brands"] == []
    assert summary["run_id"] is not None


@pytest.mark.asyncio
async def test_out_of_range_amount_only_fails_its_record(session_factory, create_brand, external_api_block) -> None:
    brand_id = await _seed_brand(session_factory, create_brand, external_api_block)
    records = [_record("tx-1", "u-1", "10"), _record("tx-2", "u-1", "1e30"), _record("tx-3", "u-1", "5")]

    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=_body(records))

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http_client:
        result = await _build_job(session_factory, http_client).run_sync()

    assert result.status == "completed"
    assert (result.processed, result.errors) == (2, 1)
    assert result.brands[0].status == "synced"
    assert await _stored_window(session_factory, brand_id) == ("2026-10-18 10:05:00", "2026-10-18 10:10:00")

    async with session_factory() as session:
        member = (await session.execute(select(Member))).scalar_one()
        assert Decimal(member.points_balance) == Decimal("15")


@pytest.mark.asyncio
async def test_misconfigured_brand_fails_alone(session_factory, create_brand, external_api_block) -> None:
    zone_id = await _seed_brand(
        session_factory, create_brand, external_api_block, name="A Bad Zone", block={"timezone": "Mars/Olympus"}
    )
    url_id = await _seed_brand(
        session_factory,
        create_brand,
        external_api_block,
        name="B Bad Url",
        block={"url": "https://provider.test/\x00api"},
    )
    good_id = await _seed_brand(session_factory, create_brand, external_api_block, name="C Good")

    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=_body([_record("tx-1", "u-1", "10")]))

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http_client:
        result = await _build_job(session_factory, http_client).run_sync()

    assert result.status == "completed"
    statuses = {brand.brand_name: brand.status for brand in result.brands}
    assert statuses == {"A Bad Zone": "failed", "B Bad Url": "failed", "C Good": "synced"}
    assert result.errors == 2
    assert result.processed == 1
    assert "Invalid external_api settings" in result.brands[0].error
    assert await _stored_window(session_factory, zone_id) == ("2026-10-18 10:00:00", "2026-10-18 10:05:00")
    assert await _stored_window(session_factory, url_id) == ("2026-10-18 10:00:00", "2026-10-18 10:05:00")
    assert await _stored_window(session_factory, good_id) == ("2026-10-18 10:05:00", "2026-10-18 10:10:00")


@pytest.mark.asyncio
async def test_unavailable_database_returns_failed_result() -> None:
    def unavailable_session():
        raise OperationalError("INSERT INTO sync_runs", {}, Exception("database is locked"))

    async def handler(request: httpx.Request) -> httpx.Response:  # pragma: no cover - must not be called
        raise AssertionError("provider should not be called")

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http_client:
        job = _build_job(unavailable_session, http_client)
        result = await job.run_sync()

    assert result.status == "failed"
    assert result.run_id is None
    assert "database is locked" in result.error
    assert job.is_running is False
    assert job.get_stats()["failed_runs"] == 1
