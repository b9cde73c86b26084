"""Campaign persistence used by discount issuance."""

from __future__ import annotations

from typing import Any, Protocol

from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from popboost_api.models.campaign import Campaign, CampaignDiscountGrant


class CampaignStore(Protocol):
    async def find_by_id(self, campaign_id: str) -> Campaign | None:
        """Return the campaign or ``None``."""

    async def update_discount_code(
        self,
        campaign_id: str,
        tier_index: int | None,
        code: str,
        discount_id: str | None,
        *,
        expected_version: int | None = None,
    ) -> Campaign | None:
        """Cache a code on the campaign; ``None`` when ``expected_version`` is stale."""

    async def find_grant(
        self, campaign_id: str, identity_key: str, tier_slot: int
    ) -> CampaignDiscountGrant | None:
        """Return the code already granted to ``identity_key``, if any."""

    async def save_grant(
        self,
        campaign_id: str,
        identity_key: str,
        tier_slot: int,
        *,
        code: str,
        discount_id: str | None,
        authorized_email: str | None = None,
    ) -> tuple[CampaignDiscountGrant, bool]:
        """Insert a grant; returns the stored grant and whether this call created it."""


def _with_cached_code(
    raw_config: Any, tier_index: int | None, code: str, discount_id: str | None
) -> dict[str, Any]:
    config = dict(raw_config or {})
    if tier_index is None:
        config["code"] = code
        config["discountId"] = discount_id
        return config

    # Tier indexes address threshold order, so the stored list is kept sorted.
    tiers = sorted(
        (dict(tier) for tier in config.get("tiers") or []),
        key=lambda tier: int(tier.get("minSubtotalCents") or 0),
    )
    if not 0 <= tier_index < len(tiers):
        raise IndexError(f"tier index {tier_index} out of range for {len(tiers)} tiers")
    tiers[tier_index]["code"] = code
    tiers[tier_index]["discountId"] = discount_id
    config["tiers"] = tiers
    return config


class SqlCampaignStore:
    """Campaign store backed by the application database."""

    def __init__(self, session: AsyncSession) -> None:
        self._db = session

    async def find_by_id(self, campaign_id: str) -> Campaign | None:
        stmt = (
            select(Campaign)
            .where(Campaign.id == campaign_id)
            .execution_options(populate_existing=True)
        )
        result = await self._db.execute(stmt)
        return result.scalar_one_or_none()

    async def update_discount_code(
        self,
        campaign_id: str,
        tier_index: int | None,
        code: str,
        discount_id: str | None,
        *,
        expected_version: int | None = None,
    ) -> Campaign | None:
        campaign = await self.find_by_id(campaign_id)
        if campaign is None:
            return None

        # The version predicate on the UPDATE is the only guard; the read above may already be stale.
        config = _with_cached_code(campaign.discount_config, tier_index, code, discount_id)
        stmt = (
            update(Campaign)
            .where(Campaign.id == campaign_id)
            .values(discount_config=config, discount_version=Campaign.discount_version + 1)
            .execution_options(synchronize_session=False)
        )
        if expected_version is not None:
            stmt = stmt.where(Campaign.discount_version == expected_version)

        result = await self._db.execute(stmt)
        if result.rowcount != 1:
            await self._db.rollback()
            logger.info(
                "Discount code write lost version race",
                campaign_id=campaign_id,
                tier_index=tier_index,
                expected_version=expected_version,
            )
            return None

        await self._db.commit()
        return await self.find_by_id(campaign_id)

    async def find_grant(
        self, campaign_id: str, identity_key: str, tier_slot: int
    ) -> CampaignDiscountGrant | None:
        stmt = select(CampaignDiscountGrant).where(
            CampaignDiscountGrant.campaign_id == campaign_id,
            CampaignDiscountGrant.identity_key == identity_key,
            CampaignDiscountGrant.tier_slot == tier_slot,
        )
        result = await self._db.execute(stmt)
        return result.scalar_one_or_none()

    async def save_grant(
        self,
        campaign_id: str,
        identity_key: str,
        tier_slot: int,
        *,
        code: str,
        discount_id: str | None,
        authorized_email: str | None = None,
    ) -> tuple[CampaignDiscountGrant, bool]:
        grant = CampaignDiscountGrant(
            campaign_id=campaign_id,
            identity_key=identity_key,
            tier_slot=tier_slot,
            code=code,
            discount_id=discount_id,
            authorized_email=authorized_email,
        )
        self._db.add(grant)
        try:
            await self._db.flush()
        except IntegrityError:
            await self._db.rollback()
            logger.warning(
                "Detected race when saving discount grant",
                campaign_id=campaign_id,
                identity_key=identity_key,
                tier_slot=tier_slot,
            )
            existing = await self.find_grant(campaign_id, identity_key, tier_slot)
            if existing is None:
                raise
            return existing, False

        await self._db.commit()
        await self._db.refresh(grant)
        return grant, True


__all__ = ["CampaignStore", "SqlCampaignStore"]
