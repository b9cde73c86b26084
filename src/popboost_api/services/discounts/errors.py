"""Failure taxonomy for discount issuance.

Each error carries the stable ``error`` string returned to the storefront and
the HTTP status the route layer answers with.
"""

from __future__ import annotations

from datetime import datetime


class DiscountIssuanceError(Exception):
    """Base class for issuance failures surfaced to the caller."""

    status_code = 500
    error = "Failed to issue discount"
    kind = "issuance_error"

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail or self.error)
        self.detail = detail or self.error


class InvalidSessionError(DiscountIssuanceError):
    status_code = 401
    error = "Invalid session"
    kind = "invalid_session"


class InvalidChallengeTokenError(DiscountIssuanceError):
    status_code = 403
    error = "Invalid challenge token"
    kind = "invalid_challenge_token"

    def __init__(self, reason: str = "invalid") -> None:
        super().__init__(f"Challenge rejected: {reason}")
        self.reason = reason


class RateLimitedError(DiscountIssuanceError):
    status_code = 429
    error = "Too many requests. Please try again later."
    kind = "rate_limited"

    def __init__(self, *, reset_at: datetime, remaining: int = 0) -> None:
        super().__init__(f"Rate limit exceeded until {reset_at.isoformat()}")
        self.reset_at = reset_at
        self.remaining = remaining


class InvalidRequestError(DiscountIssuanceError):
    status_code = 400
    error = "Invalid request"
    kind = "invalid_request"


class CampaignNotFoundError(DiscountIssuanceError):
    status_code = 404
    error = "Campaign not found"
    kind = "campaign_not_found"


class CampaignInactiveError(DiscountIssuanceError):
    status_code = 400
    error = "Campaign is not active"
    kind = "campaign_inactive"


class DiscountDisabledError(DiscountIssuanceError):
    status_code = 400
    error = "Discount not enabled for this campaign"
    kind = "discount_disabled"


class DiscountConfigError(DiscountIssuanceError):
    status_code = 500
    error = "Discount configuration is invalid"
    kind = "discount_config_invalid"


class DiscountIssuanceFailedError(DiscountIssuanceError):
    status_code = 500
    error = "Failed to generate discount code"
    kind = "issuance_failed"


__all__ = [
    "CampaignInactiveError",
    "CampaignNotFoundError",
    "DiscountConfigError",
    "DiscountDisabledError",
    "DiscountIssuanceError",
    "DiscountIssuanceFailedError",
    "InvalidChallengeTokenError",
    "InvalidRequestError",
    "InvalidSessionError",
    "RateLimitedError",
]
