"""Payroll batch endpoints."""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from commissions.auth.dependencies import require_authority
from commissions.config import settings
from commissions.context import ActorContext
from commissions.db import get_db
from commissions.models import BatchStatus
from commissions.schemas.common import Page
from commissions.schemas.payroll import (
    BatchCreate,
    BatchDetail,
    BatchItemsRequest,
    BatchItemsResult,
    BatchResponse,
    BatchUpdate,
)
from commissions.services import payroll

router = APIRouter(prefix="/payroll/batches", tags=["Payroll"])


@router.get("", response_model=Page[BatchResponse])
async def list_batches(
    db: AsyncSession = Depends(get_db),
    actor: ActorContext = Depends(require_authority(4)),
    batch_status: Optional[BatchStatus] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    per_page: int = Query(settings.default_page_size, ge=1, le=settings.max_page_size),
):
    items, total = await payroll.list_batches(db, status=batch_status, page=page, per_page=per_page)
    return Page[BatchResponse](
        items=[BatchResponse.model_validate(b) for b in items],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.post("", response_model=BatchResponse, status_code=status.HTTP_201_CREATED)
async def create_batch(
    data: BatchCreate,
    db: AsyncSession = Depends(get_db),
    actor: ActorContext = Depends(require_authority(4)),
):
    return await payroll.create_batch(db, data, actor)


@router.get("/{batch_id}", response_model=BatchDetail)
async def get_batch(
    batch_id: int,
    db: AsyncSession = Depends(get_db),
    actor: ActorContext = Depends(require_authority(4)),
):
    """Batch with its allocations and overrides."""
    return await payroll.get_batch_detail(db, batch_id)


@router.patch("/{batch_id}", response_model=BatchResponse)
async def update_batch(
    batch_id: int,
    data: BatchUpdate,
    db: AsyncSession = Depends(get_db),
    actor: ActorContext = Depends(require_authority(4)),
):
    return await payroll.update_batch(db, batch_id, data, actor)


@router.post("/{batch_id}/allocations", response_model=BatchItemsResult)
async def add_allocations(
    batch_id: int,
    data: BatchItemsRequest,
    db: AsyncSession = Depends(get_db),
    actor: ActorContext = Depends(require_authority(4)),
):
    """Attach approved, unpaid allocations to a DRAFT batch."""
    return await payroll.add_allocations_to_batch(
        db, batch_id, data.allocations, data.override_ids, actor
    )


@router.post("/{batch_id}/allocations/remove", response_model=BatchItemsResult)
async def remove_allocations(
    batch_id: int,
    data: BatchItemsRequest,
    db: AsyncSession = Depends(get_db),
    actor: ActorContext = Depends(require_authority(4)),
):
    return await payroll.remove_allocations_from_batch(
        db, batch_id, data.allocations, data.override_ids, actor
    )


@router.post("/{batch_id}/submit", response_model=BatchResponse)
async def submit_batch(
    batch_id: int,
    db: AsyncSession = Depends(get_db),
    actor: ActorContext = Depends(require_authority(4)),
):
    return await payroll.submit_batch(db, batch_id, actor)


@router.post("/{batch_id}/approve", response_model=BatchResponse)
async def approve_batch(
    batch_id: int,
    db: AsyncSession = Depends(get_db),
    actor: ActorContext = Depends(require_authority(5)),
):
    return await payroll.approve_batch(db, batch_id, actor)


@router.post("/{batch_id}/export", response_model=BatchResponse)
async def export_batch(
    batch_id: int,
    db: AsyncSession = Depends(get_db),
    actor: ActorContext = Depends(require_authority(5)),
):
    return await payroll.export_batch(db, batch_id, actor)


@router.post("/{batch_id}/paid", response_model=BatchResponse)
async def mark_paid(
    batch_id: int,
    db: AsyncSession = Depends(get_db),
    actor: ActorContext = Depends(require_authority(5)),
):
    """Mark an EXPORTED batch and everything in it paid."""
    return await payroll.mark_batch_paid(db, batch_id, actor)


@router.post("/{batch_id}/cancel", response_model=BatchResponse)
async def cancel_batch(
    batch_id: int,
    db: AsyncSession = Depends(get_db),
    actor: ActorContext = Depends(require_authority(5)),
):
    return await payroll.cancel_batch(db, batch_id, actor)
