"""
Commissions - Commission Resolution & Payroll Service

Main FastAPI application with:
- Rate catalog administration
- Milestone commission calculator (preview and save)
- Allocation approval and reporting
- Payroll batch lifecycle
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from commissions.api import api_router
from commissions.config import settings
from commissions.db import engine
from commissions.exceptions import (
    CommissionError,
    ConcurrencyConflict,
    InvalidTransition,
    NotFoundError,
    ValidationFailure,
)

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

ERROR_STATUS = {
    NotFoundError: status.HTTP_404_NOT_FOUND,
    InvalidTransition: status.HTTP_409_CONFLICT,
    ValidationFailure: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ConcurrencyConflict: status.HTTP_409_CONFLICT,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info("Starting commissions service...")

    yield

    logger.info("Shutting down commissions service...")
    await engine.dispose()


# Create FastAPI application
app = FastAPI(
    title="Commissions",
    description="Commission Resolution & Payroll Service",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs" if not settings.is_production else None,
    redoc_url="/redoc" if not settings.is_production else None,
)


@app.exception_handler(CommissionError)
async def commission_error_handler(request: Request, exc: CommissionError):
    """Translate engine errors into HTTP responses."""
    status_code = status.HTTP_400_BAD_REQUEST
    for error_type, code in ERROR_STATUS.items():
        if isinstance(exc, error_type):
            status_code = code
            break

    if isinstance(exc, ConcurrencyConflict):
        logger.warning(f"{request.method} {request.url.path}: {exc.message}")

    return JSONResponse(
        status_code=status_code,
        content={"detail": exc.message, "context": exc.details},
    )


# Include routers
app.include_router(api_router)  # /api/* endpoints


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "commissions.main:app",
        host="0.0.0.0",
        port=8000,
        reload=not settings.is_production,
    )
