from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select

from engagecore_api.models import TierHistory, Transaction, TransactionSource, TransactionType
from engagecore_api.services.loyalty import LedgerError, MemberNotFoundError, PointsLedger


@pytest.mark.asyncio
async def test_earning_delta_grows_balance_and_lifetime_total(session_factory, create_brand, create_member) -> None:
    async with session_factory() as session:
        brand, tiers = await create_brand(session)
        member = await create_member(session, brand)
        ledger = PointsLedger(session)

        result = await ledger.apply_delta(member.id, Decimal("120"), TransactionType.POINTS_EARNED)

        assert result.balance_before == Decimal("0")
        assert result.balance_after == Decimal("120")
        assert result.earned_delta == Decimal("120")
        assert result.clamped is False
        assert Decimal(member.points_balance) == Decimal("120")
        assert Decimal(member.total_points_earned) == Decimal("120")
        assert member.last_activity_at is not None
        assert member.current_tier_id == tiers["bronze"].id


@pytest.mark.asyncio
async def test_balance_floors_at_zero_at_each_step(session_factory, create_brand, create_member) -> None:
    async with session_factory() as session:
        brand, _ = await create_brand(session)
        member = await create_member(session, brand)
        ledger = PointsLedger(session)

        balances = []
        for amount in ("50", "-80", "30"):
            result = await ledger.apply_delta(member.id, Decimal(amount), "points_earned")
            balances.append(result.balance_after)

        assert balances == [Decimal("50"), Decimal("0"), Decimal("30")]
        assert Decimal(member.total_points_earned) == Decimal("80")


@pytest.mark.asyncio
async def test_over_debit_reports_applied_delta(session_factory, create_brand, create_member) -> None:
    async with session_factory() as session:
        brand, _ = await create_brand(session)
        member = await create_member(session, brand, balance="50", total="50")

        result = await PointsLedger(session).apply_delta(member.id, Decimal("-80"), TransactionType.POINTS_SPENT)

        assert result.requested_amount == Decimal("-80")
        assert result.applied_delta == Decimal("-50")
        assert result.clamped is True
        assert result.balance_after == Decimal("0")
        assert result.total_points_earned == Decimal("50")


@pytest.mark.asyncio
async def test_non_earning_credit_leaves_lifetime_total(session_factory, create_brand, create_member) -> None:
    async with session_factory() as session:
        brand, _ = await create_brand(session)
        member = await create_member(session, brand, balance="10", total="10")
        ledger = PointsLedger(session)

        result = await ledger.apply_delta(member.id, Decimal("25"), TransactionType.ADMIN_ADJUSTMENT)

        assert ledger.is_earning_type("admin_adjustment") is False
        assert ledger.is_earning_type(TransactionType.WHEEL_WIN) is True
        assert result.balance_after == Decimal("35")
        assert result.total_points_earned == Decimal("10")


@pytest.mark.asyncio
async def test_unknown_member_raises(session_factory) -> None:
    async with session_factory() as session:
        with pytest.raises(MemberNotFoundError):
            await PointsLedger(session).apply_delta(uuid4(), Decimal("5"), "points_earned")


@pytest.mark.asyncio
async def test_post_transaction_records_internal_source(session_factory, create_brand, create_member) -> None:
    async with session_factory() as session:
        brand, _ = await create_brand(session)
        member = await create_member(session, brand)
        ledger = PointsLedger(session)

        transaction, result = await ledger.post_transaction(
            member.id,
            Decimal("15"),
            TransactionType.WHEEL_WIN,
            source=TransactionSource.WHEEL,
            description="Spin prize",
        )
        await session.commit()

        stored = (await session.execute(select(Transaction))).scalars().all()
        assert [row.id for row in stored] == [transaction.id]
        assert transaction.reference_id.startswith("wheel-")
        assert transaction.source == TransactionSource.WHEEL
        assert transaction.type == "wheel_win"
        assert Decimal(transaction.points_delta) == Decimal("15")
        assert result.total_points_earned == Decimal("15")


@pytest.mark.asyncio
async def test_post_transaction_refuses_sync_source(session_factory, create_brand, create_member) -> None:
    async with session_factory() as session:
        brand, _ = await create_brand(session)
        member = await create_member(session, brand)

        with pytest.raises(LedgerError):
            await PointsLedger(session).post_transaction(
                member.id,
                Decimal("15"),
                "points_earned",
                source=TransactionSource.EXTERNAL_SYNC,
            )


@pytest.mark.asyncio
async def test_admin_correction_lowers_total_and_rechecks_tier(session_factory, create_brand, create_member) -> None:
    async with session_factory() as session:
        brand, tiers = await create_brand(session)
        member = await create_member(session, brand, balance="1200", total="1200", tier=tiers["silver"])
        ledger = PointsLedger(session)

        transaction, result = await ledger.apply_admin_adjustment(
            member.id,
            Decimal("-500"),
            admin_user_id="admin-7",
            correct_total=True,
        )
        await session.commit()

        assert result.balance_after == Decimal("700")
        assert result.total_points_earned == Decimal("700")
        assert transaction.source == TransactionSource.ADMIN
        assert transaction.created_by == "admin-7"
        assert member.current_tier_id == tiers["bronze"].id

        history = (await session.execute(select(TierHistory))).scalars().all()
        assert len(history) == 1
        assert history[0].reason == "admin_adjustment"
        assert history[0].triggered_by == "admin-7"
        assert history[0].from_tier_id == tiers["silver"].id


@pytest.mark.asyncio
async def test_admin_correction_floors_total_at_zero(session_factory, create_brand, create_member) -> None:
    async with session_factory() as session:
        brand, _ = await create_brand(session)
        member = await create_member(session, brand, balance="100", total="100")

        _, result = await PointsLedger(session).apply_admin_adjustment(
            member.id,
            Decimal("-300"),
            admin_user_id="admin-1",
            correct_total=True,
        )

        assert result.balance_after == Decimal("0")
        assert result.total_points_earned == Decimal("0")
