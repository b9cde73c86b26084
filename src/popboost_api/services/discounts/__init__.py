"""Discount issuance services."""

from .errors import (  # noqa: F401
    CampaignInactiveError,
    CampaignNotFoundError,
    DiscountConfigError,
    DiscountDisabledError,
    DiscountIssuanceError,
    DiscountIssuanceFailedError,
    InvalidChallengeTokenError,
    InvalidRequestError,
    InvalidSessionError,
    RateLimitedError,
)
from .issuance import DiscountIssuanceService, IssuanceResult, StorefrontSession  # noqa: F401
from .inspection import CachedCodeStatus, inspect_cached_codes  # noqa: F401
