"""Discount issuance for storefront popups.

Issuance validates the request in a fixed order (session, challenge, rate
limit, campaign, discount config) and only then resolves a code. Shared codes
are cached on the campaign behind a compare-and-swap on ``discount_version``;
email-locked and single-use codes are cached per shopper identity as grants.
Nothing is persisted unless the commerce platform confirmed the code.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import UUID

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError

from popboost_api.core.settings import settings
from popboost_api.domain.discounts import TierSelection, describe_tier, select_tier, sort_tiers
from popboost_api.models.campaign import Campaign, CampaignStatus
from popboost_api.observability.discounts import DiscountObservabilityStore, get_discount_store
from popboost_api.schemas.discount import (
    DeliveryMode,
    DiscountConfig,
    DiscountKind,
    DiscountValueType,
    IssueDiscountRequest,
    TieredDiscountConfig,
    discount_config_enabled,
    parse_discount_config,
)
from popboost_api.services.analytics.popup_events import PopupEventRecorder
from popboost_api.services.campaigns.store import CampaignStore
from popboost_api.services.commerce.shopify_discounts import (
    CommerceClientError,
    CreatedDiscountCode,
    DiscountCodeClient,
    DiscountCodeRequest,
)
from popboost_api.services.security.challenge_tokens import (
    ChallengeTokenValidator,
    evaluate_submission_signals,
)
from popboost_api.services.security.rate_limit import RateLimiter, discount_issue_key

from .codes import generate_shared_code, generate_tier_code, generate_unique_code
from .errors import (
    CampaignInactiveError,
    CampaignNotFoundError,
    DiscountConfigError,
    DiscountDisabledError,
    DiscountIssuanceError,
    DiscountIssuanceFailedError,
    InvalidChallengeTokenError,
    InvalidSessionError,
    RateLimitedError,
)

SHARED_CODE_PREFIX = "WELCOME"
EMAIL_LOCKED_CODE_PREFIX = "EMAIL"
SINGLE_USE_CODE_PREFIX = "SINGLE"
NO_TIER_SLOT = -1

_SUCCESS_MESSAGES = {
    DeliveryMode.SHOW_CODE: "Thanks for subscribing! Your discount code is ready to use at checkout.",
    DeliveryMode.SHOW_CODE_FALLBACK: "Thanks for subscribing! Your discount code will be automatically applied to your cart.",
    DeliveryMode.AUTO_APPLY_ONLY: "Thanks for subscribing! Your discount will be automatically applied to your cart.",
    DeliveryMode.AUTHORIZED_ONLY: "Thanks for subscribing! Your discount code is authorized for your email address only.",
}


@dataclass(slots=True)
class StorefrontSession:
    """Authenticated storefront context: the shop and its Admin API client."""

    admin: DiscountCodeClient
    store_id: UUID
    shop_domain: str


@dataclass
class IssuanceResult:
    """Outcome returned to the popup."""

    success: bool
    discount_code: str | None = None
    discount_id: str | None = None
    is_new_discount: bool = False
    tier_used: int | None = None
    message: str | None = None
    error: str | None = None
    value_type: str | None = None
    delivery_mode: str | None = None
    expires_at: datetime | None = None
    tier_label: str | None = None

    @classmethod
    def failure(cls, error: str) -> "IssuanceResult":
        return cls(success=False, error=error)

    def as_payload(self) -> dict[str, Any]:
        if not self.success:
            return {"success": False, "error": self.error}

        payload: dict[str, Any] = {
            "success": True,
            "discountCode": self.discount_code,
            "isNewDiscount": self.is_new_discount,
            "message": self.message,
            "valueType": self.value_type,
            "deliveryMode": self.delivery_mode,
        }
        optional = {
            "discountId": self.discount_id,
            "tierUsed": self.tier_used,
            "tierLabel": self.tier_label,
            "expiresAt": self.expires_at.isoformat() if self.expires_at else None,
        }
        payload.update({key: value for key, value in optional.items() if value is not None})
        return payload


@dataclass(slots=True)
class _ResolvedCode:
    code: str
    discount_id: str | None
    is_new: bool


@dataclass(frozen=True, slots=True)
class _CampaignSnapshot:
    """Campaign columns read once before any store write.

    A lost race rolls the store's session back, which expires every loaded
    ``Campaign``; code resolution only reads this copy.
    """

    id: str
    name: str
    discount_version: int


def success_message(config: DiscountConfig) -> str:
    message = _SUCCESS_MESSAGES.get(config.delivery_mode, "Thanks for subscribing!")
    if config.discount_value_type is DiscountValueType.FREE_SHIPPING:
        return f"{message} Enjoy free shipping on your order."
    return message


def grant_identity(config: DiscountConfig, request: IssueDiscountRequest) -> str | None:
    """Identity a per-shopper code is cached under, or ``None`` for shared codes."""

    if config.is_email_locked or config.kind is DiscountKind.SINGLE_USE:
        # Email-locked without an email degrades to one code per session.
        if request.email:
            return f"email:{request.email.lower()}"
        return f"session:{request.session_id}"
    return None


class DiscountIssuanceService:
    """Resolve, lazily create, and cache the discount code for a popup submission."""

    def __init__(
        self,
        store: CampaignStore,
        rate_limiter: RateLimiter,
        challenge_validator: ChallengeTokenValidator,
        *,
        event_recorder: PopupEventRecorder | None = None,
        telemetry: DiscountObservabilityStore | None = None,
        cas_max_attempts: int | None = None,
    ) -> None:
        self._store = store
        self._rate_limiter = rate_limiter
        self._challenges = challenge_validator
        self._events = event_recorder
        self._telemetry = telemetry or get_discount_store()
        self._cas_max_attempts = max(cas_max_attempts or settings.discount_cas_max_attempts, 1)

    async def issue(
        self,
        request: IssueDiscountRequest,
        session: StorefrontSession | None,
    ) -> IssuanceResult:
        """Issue a code for ``request``; raises a ``DiscountIssuanceError`` subclass on failure."""

        try:
            result = await self._issue(request, session)
        except DiscountIssuanceError as exc:
            self._telemetry.record_outcome(exc.kind)
            logger.info(
                "Discount issuance rejected",
                campaign_id=request.campaign_id,
                session_id=request.session_id,
                kind=exc.kind,
                detail=exc.detail,
            )
            raise

        self._telemetry.record_issued(value_type=result.value_type or "unknown", is_new=result.is_new_discount)
        if session is not None:
            await self._record_event(request, session, result)
        return result

    async def _issue(
        self,
        request: IssueDiscountRequest,
        session: StorefrontSession | None,
    ) -> IssuanceResult:
        if session is None:
            raise InvalidSessionError()

        signal = evaluate_submission_signals(honeypot=request.honeypot, popup_shown_at=request.popup_shown_at)
        if signal is not None:
            raise InvalidChallengeTokenError(signal)
        if not await self._challenges.validate(request.challenge_token, request.session_id):
            raise InvalidChallengeTokenError("invalid_token")

        limit = await self._rate_limiter.check_rate_limit(
            discount_issue_key(request.campaign_id, email=request.email, session_id=request.session_id)
        )
        if not limit.allowed:
            raise RateLimitedError(reset_at=limit.reset_at, remaining=limit.remaining)

        campaign = await self._store.find_by_id(request.campaign_id)
        if campaign is None or str(campaign.store_id) != str(session.store_id):
            raise CampaignNotFoundError()
        if campaign.status != CampaignStatus.ACTIVE:
            raise CampaignInactiveError()

        try:
            enabled = discount_config_enabled(campaign.discount_config)
        except ValueError as exc:
            raise DiscountConfigError(str(exc)) from exc
        if not enabled:
            raise DiscountDisabledError()
        config = self._load_config(campaign)
        snapshot = _CampaignSnapshot(
            id=campaign.id,
            name=campaign.name,
            discount_version=campaign.discount_version,
        )

        selection: TierSelection | None = None
        if isinstance(config, TieredDiscountConfig):
            selection = select_tier(config.tiers, request.cart_subtotal_cents)

        identity = grant_identity(config, request)
        if identity is None:
            resolved = await self._resolve_shared(snapshot, config, selection, session)
        else:
            resolved = await self._resolve_grant(snapshot, config, selection, session, request, identity)

        expiry_days = config.expiry_days or settings.discount_default_expiry_days
        expires_at: datetime | None = None
        # Reused codes keep the end date they were created with, which is not stored.
        if resolved.is_new and expiry_days:
            expires_at = datetime.now(timezone.utc) + timedelta(days=expiry_days)
        return IssuanceResult(
            success=True,
            discount_code=resolved.code,
            discount_id=resolved.discount_id,
            is_new_discount=resolved.is_new,
            tier_used=selection.index if selection else None,
            tier_label=describe_tier(selection.tier, selection.index) if selection else None,
            message=success_message(config),
            value_type=config.discount_value_type.value,
            delivery_mode=config.delivery_mode.value,
            expires_at=expires_at,
        )

    def _load_config(self, campaign: Campaign) -> DiscountConfig:
        try:
            return parse_discount_config(campaign.discount_config)
        except ValueError as exc:
            logger.error("Stored discount config failed validation", campaign_id=campaign.id, error=str(exc))
            raise DiscountConfigError(str(exc)) from exc

    def _build_request(
        self,
        campaign: _CampaignSnapshot,
        config: DiscountConfig,
        selection: TierSelection | None,
        code: str,
        *,
        authorized_email: str | None = None,
        single_use: bool = False,
    ) -> DiscountCodeRequest:
        if selection is not None and isinstance(config, TieredDiscountConfig):
            value_type = DiscountValueType(config.tier_value_type)
            value: float | None = selection.tier.value
            title = f"{campaign.name} - {describe_tier(selection.tier, selection.index)}"
        else:
            value_type = config.discount_value_type
            value = config.value
            title = campaign.name

        return DiscountCodeRequest(
            title=f"{title} ({code})" if single_use else title,
            code=code,
            value_type=value_type,
            value=value,
            expiry_days=config.expiry_days or settings.discount_default_expiry_days,
            minimum_amount_cents=config.minimum_amount_cents,
            usage_limit=1 if single_use else config.usage_limit,
            authorized_email=authorized_email,
            require_email_match=authorized_email is not None,
            customer_tags=("popboost",) if authorized_email else (),
        )

    async def _create(self, session: StorefrontSession, request: DiscountCodeRequest) -> CreatedDiscountCode:
        try:
            created = await session.admin.create_code(request)
        except CommerceClientError as exc:
            self._telemetry.record_commerce_call("failed")
            logger.error(
                "Commerce platform failed to create discount code",
                shop=session.shop_domain,
                code=request.code,
                errors=exc.errors,
            )
            raise DiscountIssuanceFailedError("; ".join(exc.errors)) from exc
        self._telemetry.record_commerce_call("created")
        return created

    def _cached_slot(self, campaign: Campaign, tier_index: int | None) -> tuple[str | None, str | None]:
        config = self._load_config(campaign)
        if tier_index is None:
            return config.code, config.discount_id
        if not isinstance(config, TieredDiscountConfig):
            return None, None
        tiers = sort_tiers(config.tiers)
        if tier_index >= len(tiers):
            return None, None
        return tiers[tier_index].code, tiers[tier_index].discount_id

    async def _resolve_shared(
        self,
        campaign: _CampaignSnapshot,
        config: DiscountConfig,
        selection: TierSelection | None,
        session: StorefrontSession,
    ) -> _ResolvedCode:
        tier_index = selection.index if selection else None
        cached_code, cached_id = (
            (selection.tier.code, selection.tier.discount_id) if selection else (config.code, config.discount_id)
        )
        if cached_code:
            return _ResolvedCode(code=cached_code, discount_id=cached_id, is_new=False)

        if selection is not None:
            code = generate_tier_code(config.prefix, campaign.name, selection.tier.min_subtotal_cents)
        else:
            code = generate_shared_code(config.prefix or SHARED_CODE_PREFIX, campaign.name)
        created = await self._create(session, self._build_request(campaign, config, selection, code))

        expected_version = campaign.discount_version
        for _attempt in range(self._cas_max_attempts):
            updated = await self._store.update_discount_code(
                campaign.id,
                tier_index,
                created.code,
                created.discount_id,
                expected_version=expected_version,
            )
            if updated is not None:
                logger.info(
                    "Cached new discount code on campaign",
                    campaign_id=campaign.id,
                    tier_index=tier_index,
                    code=created.code,
                )
                return _ResolvedCode(code=created.code, discount_id=created.discount_id, is_new=True)

            current = await self._store.find_by_id(campaign.id)
            if current is None:
                raise DiscountIssuanceFailedError("Campaign removed while caching discount code")
            winner_code, winner_id = self._cached_slot(current, tier_index)
            if winner_code:
                self._telemetry.record_outcome("orphaned_code")
                logger.warning(
                    "Concurrent issuance cached a code first; created code is orphaned",
                    campaign_id=campaign.id,
                    tier_index=tier_index,
                    orphaned_code=created.code,
                    orphaned_discount_id=created.discount_id,
                    winner_code=winner_code,
                )
                return _ResolvedCode(code=winner_code, discount_id=winner_id, is_new=False)
            expected_version = current.discount_version

        logger.error(
            "Gave up caching discount code after repeated version conflicts",
            campaign_id=campaign.id,
            tier_index=tier_index,
            orphaned_code=created.code,
        )
        raise DiscountIssuanceFailedError("Discount code could not be cached")

    async def _resolve_grant(
        self,
        campaign: _CampaignSnapshot,
        config: DiscountConfig,
        selection: TierSelection | None,
        session: StorefrontSession,
        request: IssueDiscountRequest,
        identity: str,
    ) -> _ResolvedCode:
        tier_slot = selection.index if selection else NO_TIER_SLOT
        existing = await self._store.find_grant(campaign.id, identity, tier_slot)
        if existing is not None:
            return _ResolvedCode(code=existing.code, discount_id=existing.discount_id, is_new=False)

        authorized_email = request.email if config.is_email_locked and request.email else None
        if authorized_email:
            prefix = config.prefix or EMAIL_LOCKED_CODE_PREFIX
        else:
            prefix = config.prefix or SINGLE_USE_CODE_PREFIX
        code = generate_unique_code(prefix, request.email)
        created = await self._create(
            session,
            self._build_request(
                campaign,
                config,
                selection,
                code,
                authorized_email=authorized_email,
                single_use=True,
            ),
        )

        grant, was_created = await self._store.save_grant(
            campaign.id,
            identity,
            tier_slot,
            code=created.code,
            discount_id=created.discount_id,
            authorized_email=authorized_email,
        )
        if not was_created:
            self._telemetry.record_outcome("orphaned_code")
            logger.warning(
                "Concurrent issuance granted a code first; created code is orphaned",
                campaign_id=campaign.id,
                identity=identity,
                orphaned_code=created.code,
                winner_code=grant.code,
            )
        return _ResolvedCode(code=grant.code, discount_id=grant.discount_id, is_new=was_created)

    async def _record_event(
        self,
        request: IssueDiscountRequest,
        session: StorefrontSession,
        result: IssuanceResult,
    ) -> None:
        if self._events is None:
            return
        try:
            await self._events.record_coupon_issued(
                store_id=session.store_id,
                campaign_id=request.campaign_id,
                session_id=request.session_id,
                metadata={
                    "discountCode": result.discount_code,
                    "isNewDiscount": result.is_new_discount,
                    "tierUsed": result.tier_used,
                    "visitorId": request.visitor_id,
                },
            )
        except SQLAlchemyError as exc:
            logger.warning(
                "Failed to record coupon issued event",
                campaign_id=request.campaign_id,
                error=str(exc),
            )


__all__ = [
    "DiscountIssuanceService",
    "IssuanceResult",
    "StorefrontSession",
    "grant_identity",
    "success_message",
]
