"""Operator view of the discount codes a campaign has cached."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from loguru import logger

from popboost_api.domain.discounts import sort_tiers
from popboost_api.schemas.discount import TieredDiscountConfig, parse_discount_config
from popboost_api.services.commerce.shopify_discounts import DiscountCodeReader

from .errors import DiscountConfigError

MISSING_ON_PLATFORM = "MISSING"


@dataclass(slots=True)
class CachedCodeStatus:
    code: str
    discount_id: str | None
    tier_index: int | None
    platform_status: str | None

    def as_payload(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "discountId": self.discount_id,
            "tierIndex": self.tier_index,
            "platformStatus": self.platform_status,
        }


def cached_codes(raw_config: Any) -> list[tuple[int | None, str, str | None]]:
    """``(tier_index, code, discount_id)`` for every cached slot, in threshold order."""

    try:
        config = parse_discount_config(raw_config)
    except ValueError as exc:
        raise DiscountConfigError(str(exc)) from exc

    if isinstance(config, TieredDiscountConfig):
        return [
            (index, tier.code, tier.discount_id)
            for index, tier in enumerate(sort_tiers(config.tiers))
            if tier.code
        ]
    if config.code:
        return [(None, config.code, config.discount_id)]
    return []


async def inspect_cached_codes(raw_config: Any, reader: DiscountCodeReader) -> list[CachedCodeStatus]:
    """Check each cached code against the platform.

    Codes cached without a discount id are reported with no status; a node the
    platform no longer has is reported as ``MISSING``. Raises
    ``CommerceClientError`` when the platform cannot be reached.
    """

    statuses: list[CachedCodeStatus] = []
    for tier_index, code, discount_id in cached_codes(raw_config):
        platform_status: str | None = None
        if discount_id:
            node = await reader.get_code(discount_id)
            if node is None:
                logger.warning("Cached discount code missing on platform", code=code, discount_id=discount_id)
                platform_status = MISSING_ON_PLATFORM
            else:
                platform_status = (node.get("codeDiscount") or {}).get("status")
        statuses.append(
            CachedCodeStatus(
                code=code,
                discount_id=discount_id,
                tier_index=tier_index,
                platform_status=platform_status,
            )
        )
    return statuses


__all__ = ["CachedCodeStatus", "MISSING_ON_PLATFORM", "cached_codes", "inspect_cached_codes"]
