"""Commerce platform clients."""

from .shopify_discounts import (  # noqa: F401
    CommerceClientError,
    CreatedDiscountCode,
    DiscountCodeClient,
    DiscountCodeReader,
    DiscountCodeRequest,
    ShopifyDiscountClient,
)
