"""Commission rate catalog endpoints."""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from commissions.auth.dependencies import require_authority
from commissions.config import settings
from commissions.context import ActorContext
from commissions.db import get_db
from commissions.models import Industry
from commissions.schemas.common import Page
from commissions.schemas.rate import RateCreate, RateResponse, RateUpdate
from commissions.services import rates as rate_service

router = APIRouter(prefix="/rates", tags=["Rates"])


@router.get("/{industry}", response_model=Page[RateResponse])
async def list_rates(
    industry: Industry,
    db: AsyncSession = Depends(get_db),
    actor: ActorContext = Depends(require_authority(3)),
    user_id: Optional[int] = Query(None),
    role_id: Optional[int] = Query(None),
    state_code: Optional[str] = Query(None, min_length=2, max_length=2),
    is_active: Optional[bool] = Query(None),
    page: int = Query(1, ge=1),
    per_page: int = Query(settings.default_page_size, ge=1, le=settings.max_page_size),
):
    """List rates of one industry with filters."""
    items, total = await rate_service.list_rates(
        db,
        industry,
        user_id=user_id,
        role_id=role_id,
        state_code=state_code,
        is_active=is_active,
        page=page,
        per_page=per_page,
    )
    return Page[RateResponse](
        items=[RateResponse.model_validate(r) for r in items],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.get("/{industry}/{rate_id}", response_model=RateResponse)
async def get_rate(
    industry: Industry,
    rate_id: int,
    db: AsyncSession = Depends(get_db),
    actor: ActorContext = Depends(require_authority(3)),
):
    return await rate_service.get_rate(db, industry, rate_id)


@router.post("/{industry}", response_model=RateResponse, status_code=status.HTTP_201_CREATED)
async def create_rate(
    industry: Industry,
    data: RateCreate,
    db: AsyncSession = Depends(get_db),
    actor: ActorContext = Depends(require_authority(4)),
):
    return await rate_service.create_rate(db, industry, data, actor)


@router.patch("/{industry}/{rate_id}", response_model=RateResponse)
async def update_rate(
    industry: Industry,
    rate_id: int,
    data: RateUpdate,
    db: AsyncSession = Depends(get_db),
    actor: ActorContext = Depends(require_authority(4)),
):
    return await rate_service.update_rate(db, industry, rate_id, data, actor)


@router.delete("/{industry}/{rate_id}", response_model=RateResponse)
async def deactivate_rate(
    industry: Industry,
    rate_id: int,
    db: AsyncSession = Depends(get_db),
    actor: ActorContext = Depends(require_authority(4)),
):
    """Soft-delete: the rate stays in the catalog as inactive."""
    return await rate_service.deactivate_rate(db, industry, rate_id, actor)
