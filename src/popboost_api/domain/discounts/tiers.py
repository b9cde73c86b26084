"""Cart-subtotal tier selection for progressive discounts."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from popboost_api.schemas.discount import DiscountTier


@dataclass(frozen=True, slots=True)
class TierSelection:
    """Chosen tier and its position in threshold order."""

    tier: DiscountTier
    index: int


def sort_tiers(tiers: Sequence[DiscountTier]) -> list[DiscountTier]:
    """Return tiers in ascending threshold order (stable for equal thresholds)."""

    return sorted(tiers, key=lambda tier: tier.min_subtotal_cents)


def select_tier(tiers: Sequence[DiscountTier], cart_subtotal_cents: int | None) -> TierSelection:
    """Pick the tier with the highest threshold the subtotal reaches.

    Tiers are sorted before choosing, so ``index`` always refers to the
    threshold-ordered list. A missing or zero subtotal, or one below every
    threshold, resolves to tier 0.
    """

    ordered = sort_tiers(tiers)
    if not ordered:
        raise ValueError("at least one tier is required")

    selected = 0
    if cart_subtotal_cents:
        for index, tier in enumerate(ordered):
            if tier.min_subtotal_cents <= cart_subtotal_cents:
                selected = index
            else:
                break

    return TierSelection(tier=ordered[selected], index=selected)


def describe_tier(tier: DiscountTier, index: int) -> str:
    """Human label such as ``Tier 2: $50.00+``."""

    return f"Tier {index + 1}: ${tier.min_subtotal_cents / 100:.2f}+"
