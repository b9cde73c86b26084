"""Storefront discount issuance endpoint."""

from __future__ import annotations

import json
import math
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import ValidationError

from popboost_api.api.dependencies.discounts import get_discount_issuance_service
from popboost_api.api.dependencies.session import get_storefront_session
from popboost_api.schemas.discount import IssueDiscountRequest
from popboost_api.services.discounts import (
    DiscountIssuanceError,
    DiscountIssuanceService,
    InvalidRequestError,
    InvalidSessionError,
    IssuanceResult,
    RateLimitedError,
    StorefrontSession,
)


router = APIRouter(prefix="/discounts", tags=["Discounts"])


def _retry_after_seconds(reset_at: datetime) -> int:
    remaining = (reset_at - datetime.now(timezone.utc)).total_seconds()
    return max(math.ceil(remaining), 1)


def error_response(error: DiscountIssuanceError) -> JSONResponse:
    headers: dict[str, str] = {}
    if isinstance(error, RateLimitedError):
        headers["Retry-After"] = str(_retry_after_seconds(error.reset_at))
    return JSONResponse(
        status_code=error.status_code,
        content=IssuanceResult.failure(error.error).as_payload(),
        headers=headers,
    )


async def _parse_issue_request(request: Request) -> IssueDiscountRequest:
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise InvalidRequestError("Request body is not valid JSON") from exc
    try:
        return IssueDiscountRequest.model_validate(body)
    except ValidationError as exc:
        fields = ", ".join(".".join(str(part) for part in error["loc"]) for error in exc.errors())
        raise InvalidRequestError(f"Invalid fields: {fields}") from exc


@router.post("/issue", summary="Issue a discount code for a popup submission")
async def issue_discount(
    request: Request,
    storefront: StorefrontSession | None = Depends(get_storefront_session),
    service: DiscountIssuanceService = Depends(get_discount_issuance_service),
) -> JSONResponse:
    try:
        if storefront is None:
            raise InvalidSessionError()
        payload = await _parse_issue_request(request)
        result = await service.issue(payload, storefront)
    except DiscountIssuanceError as exc:
        if exc.status_code >= 500:
            logger.error("Discount issuance failed", kind=exc.kind, detail=exc.detail)
        return error_response(exc)
    except Exception:
        logger.exception("Unexpected error while issuing discount")
        raise

    return JSONResponse(status_code=status.HTTP_200_OK, content=result.as_payload())


@router.get("/issue", include_in_schema=False)
async def issue_discount_wrong_method() -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_405_METHOD_NOT_ALLOWED,
        content={"success": False, "error": "Method not allowed. Use POST to issue discounts."},
        headers={"Allow": "POST"},
    )
