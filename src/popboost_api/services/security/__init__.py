"""Storefront abuse controls."""

from .challenge_tokens import (  # noqa: F401
    ChallengeTokenValidator,
    IssuedChallenge,
    SignedChallengeTokens,
    evaluate_submission_signals,
)
from .rate_limit import (  # noqa: F401
    RateLimitResult,
    RateLimiter,
    RedisRateLimiter,
    UnlimitedRateLimiter,
    discount_issue_key,
)
