from decimal import Decimal

import pytest
from sqlalchemy import func, select

from engagecore_api.models import Member
from engagecore_api.repositories import MemberRepository
from engagecore_api.services.loyalty.members import AUTO_CREATED_SOURCE, MemberResolver


class _StaleFirstLookup(MemberRepository):
    """Misses the row on the first lookup, like a reader racing a concurrent insert."""

    def __init__(self, session) -> None:
        super().__init__(session)
        self.lookups = 0

    async def find_by_external_user(self, external_user_id, brand_id):
        self.lookups += 1
        if self.lookups == 1:
            return None
        return await super().find_by_external_user(external_user_id, brand_id)


@pytest.mark.asyncio
async def test_resolve_creates_member_with_zero_balances(session_factory, create_brand) -> None:
    async with session_factory() as session:
        brand, _ = await create_brand(session)
        resolver = MemberResolver(session)

        member = await resolver.resolve("u-1", brand.id)
        again = await resolver.resolve("u-1", brand.id)
        await session.commit()

        assert again.id == member.id
        assert member.brand_id == brand.id
        assert member.external_user_id == "u-1"
        assert Decimal(member.points_balance) == Decimal("0")
        assert Decimal(member.total_points_earned) == Decimal("0")
        assert member.current_tier_id is None
        assert member.achievements == []
        assert member.source == AUTO_CREATED_SOURCE


@pytest.mark.asyncio
async def test_resolve_scopes_identity_per_brand(session_factory, create_brand) -> None:
    async with session_factory() as session:
        first, _ = await create_brand(session, name="First Brand")
        second, _ = await create_brand(session, name="Second Brand")
        resolver = MemberResolver(session)

        a = await resolver.resolve("shared-user", first.id)
        b = await resolver.resolve("shared-user", second.id)

        assert a.id != b.id


@pytest.mark.asyncio
async def test_resolve_recovers_from_unique_violation(session_factory, create_brand, create_member) -> None:
    async with session_factory() as session:
        brand, _ = await create_brand(session)
        existing = await create_member(session, brand, external_user_id="u-race", balance="40")
        await session.commit()
        brand_id, existing_id = brand.id, existing.id

    async with session_factory() as session:
        repository = _StaleFirstLookup(session)
        resolver = MemberResolver(session, members=repository)

        member = await resolver.resolve("u-race", brand_id)
        await session.commit()

        assert member.id == existing_id
        assert repository.lookups == 2
        count = await session.scalar(select(func.count()).select_from(Member).where(Member.brand_id == brand_id))
        assert count == 1
