"""Shopify Admin GraphQL client for discount code management."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping, Protocol

import httpx
from loguru import logger

from popboost_api.core.settings import settings
from popboost_api.schemas.discount import DiscountValueType


class CommerceClientError(RuntimeError):
    """Raised when the commerce platform rejects or fails a discount call."""

    def __init__(
        self,
        message: str,
        *,
        errors: list[str] | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.errors = errors or [message]
        self.status_code = status_code


@dataclass(slots=True)
class DiscountCodeRequest:
    """Everything the platform needs to mint one discount code."""

    title: str
    code: str
    value_type: DiscountValueType
    value: float | None = None
    expiry_days: int | None = None
    minimum_amount_cents: int | None = None
    usage_limit: int | None = None
    applies_once_per_customer: bool = True
    authorized_email: str | None = None
    require_email_match: bool = False
    customer_tags: tuple[str, ...] = field(default_factory=tuple)

    def ends_at(self, now: datetime | None = None) -> datetime | None:
        if not self.expiry_days:
            return None
        return (now or datetime.now(timezone.utc)) + timedelta(days=self.expiry_days)


@dataclass(slots=True)
class CreatedDiscountCode:
    code: str
    discount_id: str


class DiscountCodeClient(Protocol):
    """The one operation issuance needs from the commerce platform."""

    async def create_code(self, request: DiscountCodeRequest) -> CreatedDiscountCode:
        """Create the code or raise ``CommerceClientError``."""


class DiscountCodeReader(Protocol):
    async def get_code(self, discount_id: str) -> dict[str, Any] | None:
        """Return the platform's discount node, ``None`` when it was deleted."""


DISCOUNT_CODE_BASIC_CREATE_MUTATION = """
mutation discountCodeBasicCreate($basicCodeDiscount: DiscountCodeBasicInput!) {
  discountCodeBasicCreate(basicCodeDiscount: $basicCodeDiscount) {
    codeDiscountNode { id }
    userErrors { field message }
  }
}
"""

DISCOUNT_CODE_FREE_SHIPPING_CREATE_MUTATION = """
mutation discountCodeFreeShippingCreate($freeShippingCodeDiscount: DiscountCodeFreeShippingInput!) {
  discountCodeFreeShippingCreate(freeShippingCodeDiscount: $freeShippingCodeDiscount) {
    codeDiscountNode { id }
    userErrors { field message }
  }
}
"""

DISCOUNT_CODE_GET_QUERY = """
query getDiscountCode($id: ID!) {
  codeDiscountNode(id: $id) {
    id
    codeDiscount {
      ... on DiscountCodeBasic { title status codes(first: 10) { nodes { id code } } }
      ... on DiscountCodeFreeShipping { title status codes(first: 10) { nodes { id code } } }
    }
  }
}
"""

CUSTOMER_LOOKUP_QUERY = """
query findCustomer($query: String!) {
  customers(first: 1, query: $query) { nodes { id email } }
}
"""

CUSTOMER_CREATE_MUTATION = """
mutation customerCreate($input: CustomerInput!) {
  customerCreate(input: $input) {
    customer { id email }
    userErrors { field message }
  }
}
"""


def _money(cents: int) -> str:
    return f"{cents / 100:.2f}"


def _user_errors(payload: Mapping[str, Any], operation: str) -> list[str]:
    node = (payload.get("data") or {}).get(operation) or {}
    return [str(error.get("message")) for error in node.get("userErrors") or [] if error.get("message")]


class ShopifyDiscountClient:
    """Discount and customer operations against one shop's Admin API."""

    def __init__(
        self,
        *,
        shop_domain: str,
        access_token: str,
        api_version: str | None = None,
        http_client: httpx.AsyncClient | None = None,
        timeout_seconds: float | None = None,
    ) -> None:
        if not shop_domain:
            raise ValueError("Shop domain must be provided")
        self._shop_domain = shop_domain
        self._access_token = access_token
        self._api_version = api_version or settings.shopify_api_version
        self._http_client = http_client
        self._timeout_seconds = timeout_seconds or settings.shopify_request_timeout_seconds

    @property
    def shop_domain(self) -> str:
        return self._shop_domain

    @property
    def endpoint(self) -> str:
        return f"https://{self._shop_domain}/admin/api/{self._api_version}/graphql.json"

    async def _graphql(self, query: str, variables: Mapping[str, Any]) -> Mapping[str, Any]:
        headers = {
            "X-Shopify-Access-Token": self._access_token,
            "Content-Type": "application/json",
        }
        body = {"query": query, "variables": dict(variables)}
        try:
            if self._http_client is not None:
                response = await self._http_client.post(
                    self.endpoint, json=body, headers=headers, timeout=self._timeout_seconds
                )
            else:
                async with httpx.AsyncClient(timeout=self._timeout_seconds) as client:
                    response = await client.post(self.endpoint, json=body, headers=headers)
        except httpx.HTTPError as exc:
            raise CommerceClientError(f"Shopify request failed: {exc}") from exc

        if response.status_code != 200:
            raise CommerceClientError(
                f"Shopify responded with status {response.status_code}",
                status_code=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise CommerceClientError("Shopify returned a non-JSON response") from exc

        errors = payload.get("errors")
        if errors:
            messages = [str(error.get("message", error)) if isinstance(error, Mapping) else str(error) for error in errors]
            raise CommerceClientError("Shopify GraphQL error", errors=messages)
        return payload

    async def find_customer_id(self, email: str) -> str | None:
        payload = await self._graphql(CUSTOMER_LOOKUP_QUERY, {"query": f"email:{email}"})
        nodes = (((payload.get("data") or {}).get("customers") or {}).get("nodes")) or []
        return nodes[0]["id"] if nodes else None

    async def ensure_customer(self, email: str, *, tags: tuple[str, ...] = ()) -> str:
        """Return the customer id for ``email``, creating the customer if needed."""

        existing = await self.find_customer_id(email)
        if existing:
            return existing

        payload = await self._graphql(
            CUSTOMER_CREATE_MUTATION,
            {"input": {"email": email, "tags": list(tags)}},
        )
        errors = _user_errors(payload, "customerCreate")
        if errors:
            if any("taken" in message for message in errors):
                # Created concurrently between lookup and create.
                existing = await self.find_customer_id(email)
                if existing:
                    return existing
            raise CommerceClientError("Unable to create customer for discount", errors=errors)

        customer = ((payload.get("data") or {}).get("customerCreate") or {}).get("customer") or {}
        customer_id = customer.get("id")
        if not customer_id:
            raise CommerceClientError("Customer creation returned no id")
        return customer_id

    def _customer_selection(self, customer_id: str | None) -> dict[str, Any]:
        if customer_id:
            return {"customers": {"add": [customer_id]}}
        return {"all": True}

    async def create_code(self, request: DiscountCodeRequest) -> CreatedDiscountCode:
        """Create a basic or free-shipping code, email-restricted when requested."""

        customer_id: str | None = None
        if request.require_email_match:
            if not request.authorized_email:
                raise CommerceClientError("Email-locked discount requires an authorized email")
            customer_id = await self.ensure_customer(request.authorized_email, tags=request.customer_tags)

        now = datetime.now(timezone.utc)
        ends_at = request.ends_at(now)
        minimum_requirement = (
            {"subtotal": {"greaterThanOrEqualToSubtotal": _money(request.minimum_amount_cents)}}
            if request.minimum_amount_cents
            else None
        )
        base_input: dict[str, Any] = {
            "title": request.title,
            "code": request.code,
            "startsAt": now.isoformat(),
            "endsAt": ends_at.isoformat() if ends_at else None,
            "customerSelection": self._customer_selection(customer_id),
            "usageLimit": request.usage_limit,
            "appliesOncePerCustomer": request.applies_once_per_customer,
            "minimumRequirement": minimum_requirement,
        }

        if request.value_type is DiscountValueType.FREE_SHIPPING:
            operation = "discountCodeFreeShippingCreate"
            variables = {
                "freeShippingCodeDiscount": {
                    **base_input,
                    "destination": {"all": True},
                    "appliesOnOneTimePurchase": True,
                    "appliesOnSubscription": True,
                }
            }
            mutation = DISCOUNT_CODE_FREE_SHIPPING_CREATE_MUTATION
        elif request.value_type in (DiscountValueType.PERCENTAGE, DiscountValueType.FIXED_AMOUNT):
            if request.value is None:
                raise CommerceClientError(f"{request.value_type.value} discount requires a value")
            if request.value_type is DiscountValueType.PERCENTAGE:
                value: dict[str, Any] = {"percentage": round(request.value / 100, 4)}
            else:
                value = {"discountAmount": {"amount": f"{request.value:.2f}", "appliesOnEachItem": False}}
            operation = "discountCodeBasicCreate"
            variables = {
                "basicCodeDiscount": {
                    **base_input,
                    "customerGets": {"value": value, "items": {"all": True}},
                }
            }
            mutation = DISCOUNT_CODE_BASIC_CREATE_MUTATION
        else:
            raise CommerceClientError(f"Unsupported discount value type: {request.value_type.value}")

        payload = await self._graphql(mutation, variables)
        errors = _user_errors(payload, operation)
        if errors:
            raise CommerceClientError("Shopify rejected the discount code", errors=errors)

        node = (((payload.get("data") or {}).get(operation) or {}).get("codeDiscountNode")) or {}
        discount_id = node.get("id")
        if not discount_id:
            raise CommerceClientError("Shopify returned no discount node")

        logger.info(
            "Created Shopify discount code",
            shop=self._shop_domain,
            code=request.code,
            discount_id=discount_id,
            value_type=request.value_type.value,
            email_locked=customer_id is not None,
        )
        return CreatedDiscountCode(code=request.code, discount_id=discount_id)

    async def get_code(self, discount_id: str) -> dict[str, Any] | None:
        """Fetch a discount node, or ``None`` when it no longer exists."""

        payload = await self._graphql(DISCOUNT_CODE_GET_QUERY, {"id": discount_id})
        node = (payload.get("data") or {}).get("codeDiscountNode")
        return dict(node) if node else None


__all__ = [
    "CommerceClientError",
    "CreatedDiscountCode",
    "DiscountCodeClient",
    "DiscountCodeReader",
    "DiscountCodeRequest",
    "ShopifyDiscountClient",
]
