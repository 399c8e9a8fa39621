"""Commission calculator and sale cancellation endpoints."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from commissions.auth.dependencies import require_authority
from commissions.context import ActorContext
from commissions.db import get_db
from commissions.schemas.allocation import (
    CommissionSaveRequest,
    MilestonePreview,
    MilestoneSaveResponse,
    OverrideResponse,
    UnifiedAllocation,
)
from commissions.schemas.sale import CancelSaleRequest, SaleResponse
from commissions.services.allocations import preview_milestone, save_milestone_allocations
from commissions.services.sales import cancel_sale

router = APIRouter(prefix="/sales", tags=["Commission"])


@router.get("/{sale_id}/commission", response_model=MilestonePreview)
async def preview_commission(
    sale_id: int,
    milestone: int = Query(..., ge=1, le=2),
    db: AsyncSession = Depends(get_db),
    actor: ActorContext = Depends(require_authority(3)),
):
    """Show what saving a milestone would write."""
    return await preview_milestone(db, sale_id, milestone)


@router.post("/{sale_id}/commission", response_model=MilestoneSaveResponse)
async def save_commission(
    sale_id: int,
    data: CommissionSaveRequest,
    db: AsyncSession = Depends(get_db),
    actor: ActorContext = Depends(require_authority(4)),
):
    """Compute and persist allocations for one milestone. Safe to repeat."""
    result = await save_milestone_allocations(db, sale_id, data.milestone, actor)
    return MilestoneSaveResponse(
        sale_id=result.sale_id,
        milestone_number=result.milestone_number,
        commissionable_amount=result.commissionable_amount,
        allocations=[UnifiedAllocation.model_validate(a) for a in result.allocations],
        overrides=[OverrideResponse.model_validate(o) for o in result.overrides],
        warnings=result.warnings,
    )


@router.post("/{sale_id}/cancel", response_model=SaleResponse)
async def cancel(
    sale_id: int,
    data: CancelSaleRequest,
    db: AsyncSession = Depends(get_db),
    actor: ActorContext = Depends(require_authority(4)),
):
    return await cancel_sale(db, sale_id, data.reason, actor)
