"""Storefront session resolution for app-proxy requests."""

from __future__ import annotations

import hashlib
import hmac

from fastapi import Depends, Request
from loguru import logger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.datastructures import QueryParams

from popboost_api.core.settings import settings
from popboost_api.db.session import get_session
from popboost_api.models.store import Store
from popboost_api.services.commerce import ShopifyDiscountClient
from popboost_api.services.discounts import StorefrontSession


def app_proxy_message(params: QueryParams) -> str:
    """Canonical string Shopify signs for app-proxy requests."""

    pairs = []
    for key in sorted({key for key in params.keys() if key != "signature"}):
        pairs.append(f"{key}={','.join(params.getlist(key))}")
    return "".join(pairs)


def verify_app_proxy_signature(params: QueryParams, secret: str) -> bool:
    signature = params.get("signature") or ""
    if not signature or not signature.isascii():
        return False
    expected = hmac.new(secret.encode("utf-8"), app_proxy_message(params).encode("utf-8"), hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature)


async def get_storefront_session(
    request: Request,
    db: AsyncSession = Depends(get_session),
) -> StorefrontSession | None:
    """Resolve the calling shop, or ``None`` when the request is not authenticated."""

    params = request.query_params
    shop = params.get("shop")
    if not shop:
        return None

    if settings.shopify_api_secret and not verify_app_proxy_signature(params, settings.shopify_api_secret):
        logger.warning("Rejected app proxy request with bad signature", shop=shop)
        return None

    stmt = select(Store).where(Store.shop_domain == shop, Store.is_active.is_(True))
    result = await db.execute(stmt)
    store = result.scalar_one_or_none()
    if store is None:
        logger.info("App proxy request for unknown shop", shop=shop)
        return None

    return StorefrontSession(
        admin=ShopifyDiscountClient(shop_domain=store.shop_domain, access_token=store.access_token),
        store_id=store.id,
        shop_domain=store.shop_domain,
    )
