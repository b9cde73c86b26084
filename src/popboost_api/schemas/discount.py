"""Discount configuration and issuance payload schemas.

Stored campaign discount configs are camelCase JSON. They are validated once,
at the edge, into one of the ``valueType`` variants below; services only ever
see a concrete variant.
"""

from __future__ import annotations

import json
from enum import Enum
from typing import Annotated, Any, Literal, Mapping, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator, model_validator


class DiscountKind(str, Enum):
    SHARED = "SHARED"
    SINGLE_USE = "SINGLE_USE"


class DiscountValueType(str, Enum):
    PERCENTAGE = "PERCENTAGE"
    FIXED_AMOUNT = "FIXED_AMOUNT"
    FREE_SHIPPING = "FREE_SHIPPING"
    TIERED = "TIERED"


class DeliveryMode(str, Enum):
    SHOW_CODE = "show_code"
    SHOW_CODE_FALLBACK = "show_code_fallback"
    AUTO_APPLY_ONLY = "auto_apply_only"
    AUTHORIZED_ONLY = "show_in_popup_authorized_only"


class DiscountTier(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    min_subtotal_cents: int = Field(..., ge=0, alias="minSubtotalCents")
    value: float = Field(..., gt=0)
    code: str | None = None
    discount_id: str | None = Field(None, alias="discountId")


class _DiscountConfigBase(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    enabled: bool = False
    kind: DiscountKind = DiscountKind.SHARED
    delivery_mode: DeliveryMode = Field(DeliveryMode.SHOW_CODE, alias="deliveryMode")
    code: str | None = None
    discount_id: str | None = Field(None, alias="discountId")
    expiry_days: int | None = Field(None, ge=1, alias="expiryDays")
    minimum_amount_cents: int | None = Field(None, ge=0, alias="minimumAmountCents")
    prefix: str | None = Field(None, max_length=20)
    usage_limit: int | None = Field(None, ge=1, alias="usageLimit")

    @property
    def discount_value_type(self) -> DiscountValueType:
        return DiscountValueType(getattr(self, "value_type"))

    @property
    def is_email_locked(self) -> bool:
        return self.delivery_mode is DeliveryMode.AUTHORIZED_ONLY

    @property
    def is_tiered(self) -> bool:
        return False


class PercentageDiscountConfig(_DiscountConfigBase):
    value_type: Literal["PERCENTAGE"] = Field("PERCENTAGE", alias="valueType")
    value: float = Field(..., gt=0, le=100)


class FixedAmountDiscountConfig(_DiscountConfigBase):
    value_type: Literal["FIXED_AMOUNT"] = Field("FIXED_AMOUNT", alias="valueType")
    value: float = Field(..., gt=0)


class FreeShippingDiscountConfig(_DiscountConfigBase):
    value_type: Literal["FREE_SHIPPING"] = Field("FREE_SHIPPING", alias="valueType")
    value: float | None = None


class TieredDiscountConfig(_DiscountConfigBase):
    value_type: Literal["TIERED"] = Field("TIERED", alias="valueType")
    value: float | None = None
    tiers: list[DiscountTier] = Field(..., min_length=1)
    tier_value_type: Literal["PERCENTAGE", "FIXED_AMOUNT"] = Field("PERCENTAGE", alias="tierValueType")

    @property
    def is_tiered(self) -> bool:
        return True

    @model_validator(mode="after")
    def _check_tiers(self) -> "TieredDiscountConfig":
        if min(tier.min_subtotal_cents for tier in self.tiers) != 0:
            raise ValueError("the lowest tier must start at minSubtotalCents = 0")
        if self.tier_value_type == "PERCENTAGE" and any(tier.value > 100 for tier in self.tiers):
            raise ValueError("percentage tiers cannot exceed 100")
        return self


DiscountConfig = Annotated[
    Union[
        PercentageDiscountConfig,
        FixedAmountDiscountConfig,
        FreeShippingDiscountConfig,
        TieredDiscountConfig,
    ],
    Field(discriminator="value_type"),
]

_DISCOUNT_CONFIG_ADAPTER: TypeAdapter[DiscountConfig] = TypeAdapter(DiscountConfig)


def _as_mapping(raw: Any) -> Mapping[str, Any]:
    if isinstance(raw, str):
        raw = json.loads(raw) if raw.strip() else {}
    if raw is None:
        raw = {}
    if not isinstance(raw, Mapping):
        raise ValueError("discount config must be an object")
    return raw


def discount_config_enabled(raw: Any) -> bool:
    """Whether a stored config switches issuance on; an absent flag means off.

    Read before full validation so a disabled campaign never needs a valid
    config. Raises ``ValueError`` when the column is not an object.
    """

    return _as_mapping(raw).get("enabled") is True


def parse_discount_config(raw: Any) -> DiscountConfig:
    """Validate a stored discount config into its concrete variant.

    Accepts the JSON column value (mapping or serialized string). A config with
    no ``valueType`` is tiered when it carries tiers and a percentage otherwise.
    Raises ``ValueError`` (including pydantic's ``ValidationError``) when the
    config is malformed.
    """

    payload = dict(_as_mapping(raw))
    if not payload.get("valueType"):
        payload["valueType"] = (
            DiscountValueType.TIERED.value if payload.get("tiers") else DiscountValueType.PERCENTAGE.value
        )
    return _DISCOUNT_CONFIG_ADAPTER.validate_python(payload)


def dump_discount_config(config: DiscountConfig) -> dict[str, Any]:
    """Serialize a config back to its stored camelCase form."""

    return config.model_dump(mode="json", by_alias=True, exclude_none=True)


class LineItem(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    variant_id: str = Field(..., min_length=1, alias="variantId")
    quantity: int = Field(..., ge=1)


class IssueDiscountRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    campaign_id: str = Field(..., min_length=1, alias="campaignId")
    session_id: str = Field(..., min_length=1, alias="sessionId")
    challenge_token: str = Field("", alias="challengeToken")
    email: str | None = None
    cart_subtotal_cents: int | None = Field(None, ge=0, alias="cartSubtotalCents")
    line_items: list[LineItem] | None = Field(None, alias="lineItems")
    visitor_id: str | None = Field(None, alias="visitorId")
    popup_shown_at: int | None = Field(None, ge=0, alias="popupShownAt")
    honeypot: str | None = None

    @field_validator("email", mode="before")
    @classmethod
    def _normalize_email(cls, value: object) -> object:
        if value is None:
            return None
        if not isinstance(value, str):
            return value
        candidate = value.strip()
        if not candidate:
            return None
        local, _, domain = candidate.partition("@")
        if not local or "." not in domain or " " in candidate:
            raise ValueError("email must be a valid address")
        return candidate


class ChallengeRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(..., min_length=1, alias="sessionId")
    campaign_id: str | None = Field(None, alias="campaignId")


__all__ = [
    "ChallengeRequest",
    "DeliveryMode",
    "DiscountConfig",
    "DiscountKind",
    "DiscountTier",
    "DiscountValueType",
    "FixedAmountDiscountConfig",
    "FreeShippingDiscountConfig",
    "IssueDiscountRequest",
    "LineItem",
    "PercentageDiscountConfig",
    "TieredDiscountConfig",
    "discount_config_enabled",
    "dump_discount_config",
    "parse_discount_config",
]
