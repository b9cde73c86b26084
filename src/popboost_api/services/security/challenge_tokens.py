"""Short-lived challenge tokens handed to popups when they render.

A token is ``<base64url payload>.<hex hmac>``; the payload binds it to the
storefront session that requested it and records when it was minted.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import secrets
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Protocol

from loguru import logger

from popboost_api.core.settings import settings


class ChallengeTokenValidator(Protocol):
    async def validate(self, token: str, session_id: str) -> bool:
        """Return ``True`` only for an authentic, unexpired token bound to ``session_id``."""


@dataclass(slots=True)
class IssuedChallenge:
    token: str
    expires_at: datetime


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64decode(encoded: str) -> bytes:
    padding = "=" * (-len(encoded) % 4)
    return base64.urlsafe_b64decode(encoded + padding)


class SignedChallengeTokens:
    """HMAC-signed challenge tokens scoped to a storefront session."""

    def __init__(
        self,
        secret: str | None = None,
        *,
        ttl_seconds: int | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._secret = (secret or settings.secret_key).encode("utf-8")
        self._ttl_seconds = ttl_seconds or settings.challenge_token_ttl_seconds
        self._clock = clock

    def _sign(self, payload: str) -> str:
        return hmac.new(self._secret, payload.encode("utf-8"), hashlib.sha256).hexdigest()

    def issue(self, session_id: str, campaign_id: str | None = None) -> IssuedChallenge:
        issued_at = int(self._clock())
        body = {"sid": session_id, "iat": issued_at, "nonce": secrets.token_hex(8)}
        if campaign_id:
            body["cid"] = campaign_id
        payload = _b64encode(json.dumps(body, separators=(",", ":"), sort_keys=True).encode("utf-8"))
        expires_at = datetime.fromtimestamp(issued_at + self._ttl_seconds, tz=timezone.utc)
        return IssuedChallenge(token=f"{payload}.{self._sign(payload)}", expires_at=expires_at)

    async def validate(self, token: str, session_id: str) -> bool:
        reason = self.rejection_reason(token, session_id)
        if reason is not None:
            logger.info("Challenge token rejected", reason=reason, session_id=session_id)
            return False
        return True

    def rejection_reason(self, token: str, session_id: str) -> str | None:
        """Why ``token`` is unacceptable for ``session_id``; ``None`` when it is valid."""

        if not token or "." not in token:
            return "missing"
        payload, _, signature = token.rpartition(".")
        if not signature.isascii() or not hmac.compare_digest(self._sign(payload), signature):
            return "bad_signature"
        try:
            body = json.loads(_b64decode(payload))
        except (binascii.Error, UnicodeDecodeError, ValueError):
            return "malformed"
        if not isinstance(body, dict):
            return "malformed"
        if body.get("sid") != session_id:
            return "session_mismatch"
        issued_at = body.get("iat")
        if not isinstance(issued_at, int):
            return "malformed"
        age = self._clock() - issued_at
        if age < 0 or age > self._ttl_seconds:
            return "expired"
        return None


def evaluate_submission_signals(
    *,
    honeypot: str | None,
    popup_shown_at: int | None,
    now_ms: int | None = None,
) -> str | None:
    """Bot heuristics on the submission itself; returns a rejection reason or ``None``.

    ``popup_shown_at`` is the client's epoch-millisecond render time. Humans need
    at least ``challenge_min_interaction_ms`` to act on a popup, and a popup left
    open longer than ``challenge_max_interaction_ms`` is treated as stale.
    """

    if honeypot:
        return "honeypot"
    if popup_shown_at:
        current = now_ms if now_ms is not None else int(time.time() * 1000)
        elapsed = current - popup_shown_at
        if elapsed < settings.challenge_min_interaction_ms:
            return "too_fast"
        if elapsed > settings.challenge_max_interaction_ms:
            return "session_expired"
    return None


__all__ = [
    "ChallengeTokenValidator",
    "IssuedChallenge",
    "SignedChallengeTokens",
    "evaluate_submission_signals",
]
