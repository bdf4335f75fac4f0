"""Resolve external user identities to brand members."""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from loguru import logger
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from engagecore_api.models.loyalty import Member
from engagecore_api.repositories import MemberRepository

AUTO_CREATED_SOURCE = "external_api_sync"


class MemberResolver:
    def __init__(self, session: AsyncSession, *, members: MemberRepository | None = None) -> None:
        self._db = session
        self._members = members or MemberRepository(session)

    async def resolve(self, external_user_id: str, brand_id: UUID) -> Member:
        """Fetch or create the member for ``(brand_id, external_user_id)``."""

        member = await self._members.find_by_external_user(external_user_id, brand_id)
        if member:
            return member

        try:
            # Savepoint keeps the caller's transaction usable if a concurrent insert wins.
            async with self._db.begin_nested():
                member = await self._members.create(
                    brand_id=brand_id,
                    external_user_id=external_user_id,
                    points_balance=Decimal("0"),
                    total_points_earned=Decimal("0"),
                    current_tier_id=None,
                    achievements=[],
                    source=AUTO_CREATED_SOURCE,
                )
        except IntegrityError:
            logger.warning(
                "Detected race when creating member",
                brand_id=str(brand_id),
                external_user_id=external_user_id,
            )
            member = await self._members.find_by_external_user(external_user_id, brand_id)
            if member is None:
                raise
            return member

        logger.info(
            "Created member from external identity",
            brand_id=str(brand_id),
            external_user_id=external_user_id,
            member_id=str(member.id),
        )
        return member


__all__ = ["AUTO_CREATED_SOURCE", "MemberResolver"]
