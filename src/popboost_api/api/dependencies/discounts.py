"""Wiring for discount issuance collaborators."""

from __future__ import annotations

from functools import lru_cache
from typing import Callable

from fastapi import Depends
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from popboost_api.api.dependencies.session import get_storefront_session
from popboost_api.core.settings import settings
from popboost_api.db.session import get_session
from popboost_api.models.store import Store
from popboost_api.services.analytics import PopupEventService
from popboost_api.services.campaigns import SqlCampaignStore
from popboost_api.services.commerce import DiscountCodeReader, ShopifyDiscountClient
from popboost_api.services.discounts import DiscountIssuanceService, StorefrontSession
from popboost_api.services.security import (
    RateLimiter,
    RedisRateLimiter,
    SignedChallengeTokens,
    UnlimitedRateLimiter,
)


@lru_cache
def get_redis_client() -> Redis:
    return Redis.from_url(settings.redis_url, encoding="utf-8", decode_responses=True)


def _shopify_client_for(store: Store) -> ShopifyDiscountClient:
    return ShopifyDiscountClient(shop_domain=store.shop_domain, access_token=store.access_token)


def get_discount_reader_factory() -> Callable[[Store], DiscountCodeReader]:
    return _shopify_client_for


def get_challenge_tokens() -> SignedChallengeTokens:
    return SignedChallengeTokens()


def get_rate_limiter(
    storefront: StorefrontSession | None = Depends(get_storefront_session),
) -> RateLimiter:
    if settings.rate_limit_bypass:
        return UnlimitedRateLimiter()
    if storefront is not None and storefront.shop_domain in settings.rate_limit_bypass_shops:
        return UnlimitedRateLimiter()
    return RedisRateLimiter(get_redis_client())


def get_discount_issuance_service(
    db: AsyncSession = Depends(get_session),
    rate_limiter: RateLimiter = Depends(get_rate_limiter),
    challenge_tokens: SignedChallengeTokens = Depends(get_challenge_tokens),
) -> DiscountIssuanceService:
    return DiscountIssuanceService(
        SqlCampaignStore(db),
        rate_limiter,
        challenge_tokens,
        event_recorder=PopupEventService(db),
    )
