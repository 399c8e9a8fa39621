"""Allocation listing and approval endpoints."""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from commissions.auth.dependencies import get_actor, require_authority
from commissions.context import ActorContext
from commissions.db import get_db
from commissions.models import Industry
from commissions.schemas.allocation import (
    AllocationSummary,
    BatchApproveRequest,
    BatchApproveResult,
    OverrideResponse,
    UnifiedAllocation,
)
from commissions.schemas.common import Page
from commissions.services import allocation_view
from commissions.services.allocations import (
    approve_allocation,
    approve_override,
    batch_approve_allocations,
)

router = APIRouter(tags=["Allocations"])


@router.get("/allocations", response_model=Page[UnifiedAllocation])
async def list_allocations(
    db: AsyncSession = Depends(get_db),
    actor: ActorContext = Depends(require_authority(3)),
    industry: Optional[Industry] = Query(None),
    user_id: Optional[int] = Query(None),
    sale_id: Optional[int] = Query(None),
    is_approved: Optional[bool] = Query(None),
    is_paid: Optional[bool] = Query(None),
    payroll_batch_id: Optional[int] = Query(None),
    page: int = Query(1, ge=1),
    per_page: Optional[int] = Query(None, ge=1),
):
    """List allocations of every industry, newest first."""
    return await allocation_view.all_allocations(
        db,
        industry=industry,
        user_id=user_id,
        sale_id=sale_id,
        is_approved=is_approved,
        is_paid=is_paid,
        payroll_batch_id=payroll_batch_id,
        page=page,
        per_page=per_page,
    )


@router.get("/allocations/mine", response_model=Page[UnifiedAllocation])
async def my_allocations(
    db: AsyncSession = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
    is_paid: Optional[bool] = Query(None),
    page: int = Query(1, ge=1),
    per_page: Optional[int] = Query(None, ge=1),
):
    """The caller's own allocations; any authority level."""
    return await allocation_view.allocations_for_user(
        db, actor.user_id, is_paid=is_paid, page=page, per_page=per_page
    )


@router.get("/allocations/summary", response_model=AllocationSummary)
async def allocation_summary(
    db: AsyncSession = Depends(get_db),
    actor: ActorContext = Depends(require_authority(3)),
    user_id: Optional[int] = Query(None),
):
    return await allocation_view.summarize_allocations(db, user_id=user_id)


@router.get("/sales/{sale_id}/allocations", response_model=list[UnifiedAllocation])
async def sale_allocations(
    sale_id: int,
    db: AsyncSession = Depends(get_db),
    actor: ActorContext = Depends(require_authority(3)),
):
    return await allocation_view.allocations_for_sale(db, sale_id)


@router.post("/allocations/batch-approve", response_model=BatchApproveResult)
async def approve_many(
    data: BatchApproveRequest,
    db: AsyncSession = Depends(get_db),
    actor: ActorContext = Depends(require_authority(4)),
):
    """Approve many allocations; failures are reported per item."""
    return await batch_approve_allocations(db, data.allocations, actor)


@router.post("/allocations/{industry}/{allocation_id}/approve", response_model=UnifiedAllocation)
async def approve_one(
    industry: Industry,
    allocation_id: int,
    db: AsyncSession = Depends(get_db),
    actor: ActorContext = Depends(require_authority(4)),
):
    return await approve_allocation(db, industry, allocation_id, actor)


@router.get("/overrides", response_model=Page[OverrideResponse])
async def list_overrides(
    db: AsyncSession = Depends(get_db),
    actor: ActorContext = Depends(require_authority(3)),
    user_id: Optional[int] = Query(None),
    sale_id: Optional[int] = Query(None),
    is_approved: Optional[bool] = Query(None),
    is_paid: Optional[bool] = Query(None),
    payroll_batch_id: Optional[int] = Query(None),
    page: int = Query(1, ge=1),
    per_page: Optional[int] = Query(None, ge=1),
):
    return await allocation_view.list_overrides(
        db,
        user_id=user_id,
        sale_id=sale_id,
        is_approved=is_approved,
        is_paid=is_paid,
        payroll_batch_id=payroll_batch_id,
        page=page,
        per_page=per_page,
    )


@router.post("/overrides/{override_id}/approve", response_model=OverrideResponse)
async def approve_one_override(
    override_id: int,
    db: AsyncSession = Depends(get_db),
    actor: ActorContext = Depends(require_authority(4)),
):
    return await approve_override(db, override_id, actor)
