"""Observability endpoints for discount issuance."""

from __future__ import annotations

from typing import Callable

from fastapi import APIRouter, Depends, HTTPException, status
from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from popboost_api.api.dependencies.discounts import get_discount_reader_factory
from popboost_api.api.dependencies.security import require_admin_api_key
from popboost_api.db.session import get_session
from popboost_api.models.store import Store
from popboost_api.observability.discounts import get_discount_store
from popboost_api.services.campaigns import SqlCampaignStore
from popboost_api.services.commerce import CommerceClientError, DiscountCodeReader
from popboost_api.services.discounts import DiscountConfigError, inspect_cached_codes


router = APIRouter(prefix="/observability", tags=["Observability"])


@router.get(
    "/discounts",
    dependencies=[Depends(require_admin_api_key)],
    summary="Discount issuance observability snapshot",
)
async def get_discount_snapshot() -> dict[str, object]:
    """Aggregated issuance outcomes (requires admin API key when configured)."""
    return get_discount_store().snapshot().as_dict()


@router.get(
    "/discounts/campaigns/{campaign_id}",
    dependencies=[Depends(require_admin_api_key)],
    summary="Cached discount codes for a campaign and their platform status",
)
async def get_campaign_cached_codes(
    campaign_id: str,
    db: AsyncSession = Depends(get_session),
    reader_factory: Callable[[Store], DiscountCodeReader] = Depends(get_discount_reader_factory),
) -> dict[str, object]:
    campaign = await SqlCampaignStore(db).find_by_id(campaign_id)
    if campaign is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Campaign not found")
    store = await db.get(Store, campaign.store_id)
    if store is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Store not found")

    try:
        statuses = await inspect_cached_codes(campaign.discount_config, reader_factory(store))
    except DiscountConfigError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.error) from exc
    except CommerceClientError as exc:
        logger.error("Discount code lookup failed", campaign_id=campaign_id, errors=exc.errors)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Commerce platform unavailable") from exc

    return {
        "campaignId": campaign_id,
        "discountVersion": campaign.discount_version,
        "codes": [entry.as_payload() for entry in statuses],
    }
