"""Discount domain helpers."""

from .tiers import TierSelection, describe_tier, select_tier, sort_tiers  # noqa: F401
