from __future__ import annotations

from typing import Dict, Literal

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from popboost_api.core.settings import settings
from popboost_api.db.session import get_session


router = APIRouter()


class ComponentStatus(BaseModel):
    status: Literal["ready", "disabled", "error"]
    detail: str | None = Field(default=None, description="Human readable status detail")


class ReadinessPayload(BaseModel):
    status: Literal["ready", "degraded", "error"]
    components: Dict[str, ComponentStatus]


@router.get("/healthz", summary="Service health check")
async def service_health() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/readyz", summary="Service readiness", response_model=ReadinessPayload)
async def service_readiness(session: AsyncSession = Depends(get_session)) -> ReadinessPayload:
    components: Dict[str, ComponentStatus] = {}
    status: Literal["ready", "degraded", "error"] = "ready"

    try:
        await session.execute(text("SELECT 1"))
    except SQLAlchemyError as error:
        components["database"] = ComponentStatus(status="error", detail=f"Database unreachable ({error})")
        status = "error"
    else:
        components["database"] = ComponentStatus(status="ready")

    if settings.rate_limit_bypass:
        components["rate_limiter"] = ComponentStatus(
            status="disabled",
            detail="Discount rate limiting bypassed via settings",
        )
        if status == "ready":
            status = "degraded"
    else:
        components["rate_limiter"] = ComponentStatus(status="ready", detail="Redis fixed-window limiter")

    return ReadinessPayload(status=status, components=components)


@router.get("/health/readyz", include_in_schema=False)
async def service_readiness_alias(session: AsyncSession = Depends(get_session)) -> ReadinessPayload:
    """Alias for readiness checks under /health."""

    return await service_readiness(session)
