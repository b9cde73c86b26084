import re

from popboost_api.services.discounts.codes import (
    generate_shared_code,
    generate_tier_code,
    generate_unique_code,
)


def test_shared_code_combines_prefix_name_timestamp_and_random_tail():
    code = generate_shared_code("welcome", "Summer Sale!")

    assert re.fullmatch(r"WELCOMESUMMER\d{4}[A-Z0-9]{3}", code)


def test_tier_code_includes_threshold_dollars_and_defaults_prefix():
    code = generate_tier_code(None, "Big Cart", 7500)

    assert re.fullmatch(r"TIER-BIGCAR-75[A-Z0-9]{3}", code)


def test_unique_code_uses_email_hint_or_anon():
    with_email = generate_unique_code("EMAIL", "jo.doe@example.com")
    anonymous = generate_unique_code("SINGLE")

    assert re.fullmatch(r"EMAILJODO[A-Z0-9]{6}", with_email)
    assert re.fullmatch(r"SINGLEANON[A-Z0-9]{6}", anonymous)
    assert generate_unique_code("SINGLE") != anonymous


def test_shared_codes_created_in_the_same_millisecond_differ(monkeypatch):
    monkeypatch.setattr("popboost_api.services.discounts.codes.time.time", lambda: 1_760_000_000.5)

    codes = {generate_shared_code("WELCOME", "Summer Sale") for _ in range(20)}

    assert len(codes) > 1
    assert all(code.startswith("WELCOMESUMMER0500") for code in codes)
