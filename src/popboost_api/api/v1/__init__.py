from fastapi import APIRouter

from .endpoints import (
    challenges,
    discounts,
    health,
    observability,
)

router = APIRouter()
router.include_router(health.router, tags=["Health"])
router.include_router(discounts.router)
router.include_router(challenges.router)
router.include_router(observability.router)
