import sys
from decimal import Decimal
from pathlib import Path
from typing import Any

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine


def _configure_path() -> None:
    src_path = Path(__file__).resolve().parents[1] / "src"
    if src_path.exists():
        sys.path.insert(0, str(src_path))


_configure_path()

from engagecore_api.app import create_app  # noqa: E402
from engagecore_api.db.base import Base  # noqa: E402
from engagecore_api.db.session import enable_sqlite_savepoints, get_session  # noqa: E402
from engagecore_api.models import Brand, BrandStatus, Member, MembershipTier  # noqa: E402

WINDOW_START = "2026-10-18 10:00:00"
WINDOW_END = "2026-10-18 10:05:00"
PROVIDER_URL = "https://provider.test/api"


def _external_api_block(**overrides: Any) -> dict[str, Any]:
    block: dict[str, Any] = {
        "url": PROVIDER_URL,
        "accessId": "access-1",
        "accessToken": "token-1",
        "queryStartDate": WINDOW_START,
        "queryEndDate": WINDOW_END,
        "sync_interval": 5,
        "retries": 2,
        "retry_delay_seconds": 0,
    }
    block.update(overrides)
    return block


@pytest.fixture
def external_api_block():
    """Factory for a brand's ``external_api`` settings block."""

    return _external_api_block


@pytest_asyncio.fixture
async def session_factory():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", future=True)
    enable_sqlite_savepoints(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

    try:
        yield factory
    finally:
        await engine.dispose()


@pytest.fixture
def create_brand():
    """Insert a brand with Bronze/Silver/Gold tiers and return ``(brand, tiers_by_slug)``."""

    async def _create(
        session: AsyncSession,
        *,
        name: str = "Acme Rewards",
        slug: str | None = None,
        status: BrandStatus = BrandStatus.ACTIVE,
        external_api: dict[str, Any] | None = None,
        with_tiers: bool = True,
    ) -> tuple[Brand, dict[str, MembershipTier]]:
        settings_payload: dict[str, Any] = {}
        if external_api is not None:
            settings_payload["external_api"] = external_api
        brand = Brand(
            name=name,
            slug=slug or name.lower().replace(" ", "-"),
            status=status,
            settings=settings_payload,
        )
        session.add(brand)
        await session.flush()

        tiers: dict[str, MembershipTier] = {}
        if with_tiers:
            for tier_slug, minimum, maximum, order in (
                ("bronze", "0", "999", 1),
                ("silver", "1000", "4999", 2),
                ("gold", "5000", None, 3),
            ):
                tier = MembershipTier(
                    brand_id=brand.id,
                    name=tier_slug.title(),
                    slug=tier_slug,
                    min_points_required=Decimal(minimum),
                    max_points_required=Decimal(maximum) if maximum is not None else None,
                    sort_order=order,
                    benefits=[],
                )
                session.add(tier)
                tiers[tier_slug] = tier
            await session.flush()
        return brand, tiers

    return _create


@pytest.fixture
def create_member():
    async def _create(
        session: AsyncSession,
        brand: Brand,
        *,
        external_user_id: str | None = "user-1",
        balance: str = "0",
        total: str = "0",
        tier: MembershipTier | None = None,
    ) -> Member:
        member = Member(
            brand_id=brand.id,
            external_user_id=external_user_id,
            points_balance=Decimal(balance),
            total_points_earned=Decimal(total),
            current_tier_id=tier.id if tier else None,
            achievements=[],
        )
        session.add(member)
        await session.flush()
        return member

    return _create


@pytest_asyncio.fixture
async def app_with_db(session_factory):
    app = create_app()

    async def override_get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session

    try:
        yield app, session_factory
    finally:
        app.dependency_overrides.clear()
