"""Discount code string generation."""

from __future__ import annotations

import re
import secrets
import string
import time

_NON_ALNUM = re.compile(r"[^a-zA-Z0-9]")
_SUFFIX_ALPHABET = string.ascii_uppercase + string.digits

CAMPAIGN_NAME_LENGTH = 6
TIMESTAMP_LENGTH = 4
EMAIL_HASH_LENGTH = 4
CACHED_CODE_SUFFIX_LENGTH = 3
RANDOM_SUFFIX_LENGTH = 6


def _clean(value: str, length: int) -> str:
    return _NON_ALNUM.sub("", value).upper()[:length]


def _random_suffix(length: int) -> str:
    return "".join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(length))


def generate_shared_code(prefix: str, campaign_name: str) -> str:
    """``WELCOME`` + ``SUMMER`` + last four digits of the epoch millis + random tail."""

    # Concurrent creators for one campaign must never submit the same code string.
    timestamp = str(int(time.time() * 1000))[-TIMESTAMP_LENGTH:]
    return (
        f"{prefix.upper()}{_clean(campaign_name, CAMPAIGN_NAME_LENGTH)}"
        f"{timestamp}{_random_suffix(CACHED_CODE_SUFFIX_LENGTH)}"
    )


def generate_tier_code(prefix: str | None, campaign_name: str, min_subtotal_cents: int) -> str:
    # Concurrent creators for one tier must never submit the same code string.
    threshold_dollars = min_subtotal_cents // 100
    return (
        f"{(prefix or 'TIER').upper()}-{_clean(campaign_name, CAMPAIGN_NAME_LENGTH)}-"
        f"{threshold_dollars}{_random_suffix(CACHED_CODE_SUFFIX_LENGTH)}"
    )


def generate_unique_code(prefix: str, email: str | None = None) -> str:
    """Per-shopper code: prefix, a hint of the email local part, random tail."""

    email_hint = _clean(email.split("@", 1)[0], EMAIL_HASH_LENGTH) if email else ""
    return f"{prefix.upper()}{email_hint or 'ANON'}{_random_suffix(RANDOM_SUFFIX_LENGTH)}"


__all__ = ["generate_shared_code", "generate_tier_code", "generate_unique_code"]
