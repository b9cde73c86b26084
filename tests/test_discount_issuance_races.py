"""Concurrent issuance against the real SQL campaign store.

A competing request is simulated from inside the commerce call: it commits its
own code through a second session while ours is still being created.
"""

from __future__ import annotations

import pytest
import pytest_asyncio
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from popboost_api.db.base import Base
from popboost_api.models import Campaign, CampaignStatus, PopupEvent, Store
from popboost_api.observability.discounts import DiscountObservabilityStore
from popboost_api.schemas.discount import IssueDiscountRequest
from popboost_api.services.analytics import PopupEventService
from popboost_api.services.campaigns import SqlCampaignStore
from popboost_api.services.commerce import CreatedDiscountCode
from popboost_api.services.discounts import DiscountIssuanceService, StorefrontSession
from popboost_api.services.security import SignedChallengeTokens, UnlimitedRateLimiter


TOKENS = SignedChallengeTokens("race-secret")


@pytest_asyncio.fixture
async def shared_session_factory(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'races.db'}", future=True)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

    try:
        yield factory
    finally:
        await engine.dispose()


class CompetingDiscountClient:
    """Creates our code only after a concurrent request has committed its own."""

    def __init__(self, competitor) -> None:
        self._competitor = competitor
        self.codes: list[str] = []

    async def create_code(self, request):
        self.codes.append(request.code)
        if len(self.codes) == 1:
            await self._competitor()
        return CreatedDiscountCode(code=request.code, discount_id=f"gid://shopify/DiscountCodeNode/ours-{len(self.codes)}")


async def _seed(factory, discount_config) -> tuple[Store, str]:
    async with factory() as session:
        store = Store(shop_domain="demo.myshopify.com", access_token="shpat_test")
        session.add(store)
        await session.flush()
        campaign = Campaign(
            store_id=store.id,
            name="Summer Sale",
            status=CampaignStatus.ACTIVE,
            discount_config=discount_config,
        )
        session.add(campaign)
        await session.commit()
        return store, campaign.id


async def _issue(factory, store: Store, campaign_id: str, client, telemetry, **overrides):
    payload = {
        "campaignId": campaign_id,
        "sessionId": "sess-1",
        "challengeToken": TOKENS.issue("sess-1").token,
    }
    payload.update(overrides)
    async with factory() as session:
        service = DiscountIssuanceService(
            SqlCampaignStore(session),
            UnlimitedRateLimiter(),
            TOKENS,
            event_recorder=PopupEventService(session),
            telemetry=telemetry,
        )
        return await service.issue(
            IssueDiscountRequest.model_validate(payload),
            StorefrontSession(admin=client, store_id=store.id, shop_domain=store.shop_domain),
        )


async def _load(factory, campaign_id: str) -> Campaign:
    async with factory() as session:
        return await SqlCampaignStore(session).find_by_id(campaign_id)


async def _event_count(factory) -> int:
    async with factory() as session:
        result = await session.execute(select(func.count()).select_from(PopupEvent))
        return int(result.scalar_one())


@pytest.mark.asyncio
async def test_shared_code_written_first_by_another_request_is_returned(shared_session_factory) -> None:
    factory = shared_session_factory
    store, campaign_id = await _seed(factory, {"enabled": True, "valueType": "PERCENTAGE", "value": 10})

    async def cache_winner() -> None:
        async with factory() as other:
            winner = await SqlCampaignStore(other).update_discount_code(
                campaign_id, None, "WINNER10", "gid://shopify/DiscountCodeNode/winner", expected_version=0
            )
            assert winner is not None

    telemetry = DiscountObservabilityStore()
    client = CompetingDiscountClient(cache_winner)

    result = await _issue(factory, store, campaign_id, client, telemetry)

    assert result.discount_code == "WINNER10"
    assert result.discount_id == "gid://shopify/DiscountCodeNode/winner"
    assert result.is_new_discount is False
    assert result.expires_at is None
    assert len(client.codes) == 1
    assert telemetry.snapshot().outcomes["orphaned_code"] == 1
    stored = await _load(factory, campaign_id)
    assert stored.discount_config["code"] == "WINNER10"
    assert stored.discount_version == 1
    assert await _event_count(factory) == 1


@pytest.mark.asyncio
async def test_other_tier_written_concurrently_retries_and_keeps_both_codes(shared_session_factory) -> None:
    factory = shared_session_factory
    store, campaign_id = await _seed(
        factory,
        {
            "enabled": True,
            "valueType": "TIERED",
            "tiers": [{"minSubtotalCents": 0, "value": 10}, {"minSubtotalCents": 5000, "value": 15}],
        },
    )

    async def cache_lower_tier() -> None:
        async with factory() as other:
            await SqlCampaignStore(other).update_discount_code(
                campaign_id, 0, "TIER0CODE", "gid://shopify/DiscountCodeNode/tier0", expected_version=0
            )

    client = CompetingDiscountClient(cache_lower_tier)

    result = await _issue(factory, store, campaign_id, client, DiscountObservabilityStore(), cartSubtotalCents=9000)

    assert result.is_new_discount is True
    assert result.tier_used == 1
    stored = await _load(factory, campaign_id)
    assert stored.discount_version == 2
    assert stored.discount_config["tiers"][0]["code"] == "TIER0CODE"
    assert stored.discount_config["tiers"][1]["code"] == result.discount_code


@pytest.mark.asyncio
async def test_grant_saved_first_by_another_request_is_returned(shared_session_factory) -> None:
    factory = shared_session_factory
    store, campaign_id = await _seed(
        factory,
        {"enabled": True, "valueType": "PERCENTAGE", "value": 10, "deliveryMode": "show_in_popup_authorized_only"},
    )

    async def grant_winner() -> None:
        async with factory() as other:
            _, created = await SqlCampaignStore(other).save_grant(
                campaign_id,
                "email:a@x.com",
                -1,
                code="EMAILAWINNER",
                discount_id="gid://shopify/DiscountCodeNode/winner",
                authorized_email="a@x.com",
            )
            assert created is True

    telemetry = DiscountObservabilityStore()
    client = CompetingDiscountClient(grant_winner)

    result = await _issue(factory, store, campaign_id, client, telemetry, email="A@x.com")

    assert result.discount_code == "EMAILAWINNER"
    assert result.is_new_discount is False
    assert telemetry.snapshot().outcomes["orphaned_code"] == 1
    async with factory() as session:
        grant = await SqlCampaignStore(session).find_grant(campaign_id, "email:a@x.com", -1)
    assert grant.code == "EMAILAWINNER"
    assert await _event_count(factory) == 1
