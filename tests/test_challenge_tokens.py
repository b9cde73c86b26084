import pytest

from popboost_api.core.settings import settings
from popboost_api.services.security import SignedChallengeTokens, evaluate_submission_signals


class FakeClock:
    def __init__(self, now: float) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.mark.asyncio
async def test_issued_token_validates_for_its_session():
    tokens = SignedChallengeTokens("secret", ttl_seconds=600)

    issued = tokens.issue("sess-1", "camp-1")

    assert await tokens.validate(issued.token, "sess-1") is True
    assert await tokens.validate(issued.token, "sess-2") is False
    assert tokens.rejection_reason(issued.token, "sess-2") == "session_mismatch"


def test_token_expires_after_ttl():
    clock = FakeClock(1_700_000_000)
    tokens = SignedChallengeTokens("secret", ttl_seconds=60, clock=clock)
    issued = tokens.issue("sess-1")

    clock.now += 60
    assert tokens.rejection_reason(issued.token, "sess-1") is None

    clock.now += 1
    assert tokens.rejection_reason(issued.token, "sess-1") == "expired"


def test_tampered_or_foreign_tokens_are_rejected():
    tokens = SignedChallengeTokens("secret")
    issued = tokens.issue("sess-1")
    payload, _, signature = issued.token.rpartition(".")

    assert tokens.rejection_reason("", "sess-1") == "missing"
    assert tokens.rejection_reason("no-dot", "sess-1") == "missing"
    assert tokens.rejection_reason(f"{payload}.{'0' * len(signature)}", "sess-1") == "bad_signature"
    assert tokens.rejection_reason(f"{payload}.sigé", "sess-1") == "bad_signature"
    assert SignedChallengeTokens("other").rejection_reason(issued.token, "sess-1") == "bad_signature"


def test_signed_garbage_payload_is_malformed():
    tokens = SignedChallengeTokens("secret")
    payload = "bm90LWpzb24"

    assert tokens.rejection_reason(f"{payload}.{tokens._sign(payload)}", "sess-1") == "malformed"


def test_submission_signals():
    now_ms = 1_700_000_000_000

    assert evaluate_submission_signals(honeypot="filled", popup_shown_at=None) == "honeypot"
    assert evaluate_submission_signals(honeypot=None, popup_shown_at=now_ms - 500, now_ms=now_ms) == "too_fast"
    stale = now_ms - settings.challenge_max_interaction_ms - 1
    assert evaluate_submission_signals(honeypot=None, popup_shown_at=stale, now_ms=now_ms) == "session_expired"
    assert evaluate_submission_signals(honeypot="", popup_shown_at=now_ms - 5000, now_ms=now_ms) is None
    assert evaluate_submission_signals(honeypot=None, popup_shown_at=None) is None
