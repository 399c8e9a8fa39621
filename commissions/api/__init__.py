"""API router aggregation."""

from fastapi import APIRouter

from commissions.api.allocations import router as allocations_router
from commissions.api.commission import router as commission_router
from commissions.api.health import router as health_router
from commissions.api.payroll import router as payroll_router
from commissions.api.rates import router as rates_router

# Main API router (for /api/* endpoints)
api_router = APIRouter(prefix="/api")

api_router.include_router(health_router)
api_router.include_router(rates_router)
api_router.include_router(commission_router)
api_router.include_router(allocations_router)
api_router.include_router(payroll_router)

__all__ = ["api_router"]
