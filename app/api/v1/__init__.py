"""
API v1 router configuration.

This module consolidates all API endpoints for version 1.
"""

from fastapi import APIRouter

from app.schemas.base_schemas import ErrorResponse

router = APIRouter(
    responses={
        400: {"model": ErrorResponse, "description": "Validation or business rule error"},
        401: {"model": ErrorResponse, "description": "Missing or invalid token"},
        403: {"model": ErrorResponse, "description": "Role not allowed"},
        404: {"model": ErrorResponse, "description": "Resource not found"},
    }
)

from .endpoints.auth import router as auth_router
from .endpoints.medicine_endpoints import router as medicines_router
from .endpoints.delegation_endpoints import router as delegations_router
from .endpoints.sales_endpoints import router as sales_router
from .endpoints.return_endpoints import router as returns_router
from .endpoints.stats import router as stats_router


router.include_router(auth_router, tags=["Authentication"])
router.include_router(medicines_router, tags=["Medicines"])
router.include_router(delegations_router, tags=["Delegations"])
router.include_router(sales_router, tags=["Sales"])
router.include_router(returns_router, tags=["Returns"])
router.include_router(stats_router, tags=["Dashboard"])

__all__ = ["router"]
