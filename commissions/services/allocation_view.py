"""
Read-side view over allocations of every industry.

Participant allocations of all four industries live in one table and are
tagged by industry, so listings and totals never need to union tables.
"""

from decimal import Decimal
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from commissions.config import settings
from commissions.models import CommissionAllocation, Industry, OverrideAllocation
from commissions.schemas.allocation import (
    AllocationSummary,
    IndustryTotals,
    OverrideResponse,
    UnifiedAllocation,
)
from commissions.schemas.common import Page
from commissions.services.commission import to_money


def _page_bounds(page: int, per_page: Optional[int]) -> tuple[int, int]:
    page = max(page, 1)
    per_page = per_page or settings.default_page_size
    per_page = max(1, min(per_page, settings.max_page_size))
    return page, per_page


async def all_allocations(
    db: AsyncSession,
    industry: Optional[Industry] = None,
    user_id: Optional[int] = None,
    sale_id: Optional[int] = None,
    is_approved: Optional[bool] = None,
    is_paid: Optional[bool] = None,
    payroll_batch_id: Optional[int] = None,
    page: int = 1,
    per_page: Optional[int] = None,
) -> Page[UnifiedAllocation]:
    """
    List participant allocations across industries, newest first.

    Every filter is optional; None means "don't filter on this".
    """
    page, per_page = _page_bounds(page, per_page)
    query = select(CommissionAllocation)

    if industry is not None:
        query = query.where(CommissionAllocation.industry == industry)
    if user_id is not None:
        query = query.where(CommissionAllocation.user_id == user_id)
    if sale_id is not None:
        query = query.where(CommissionAllocation.sale_id == sale_id)
    if is_approved is not None:
        query = query.where(CommissionAllocation.is_approved.is_(is_approved))
    if is_paid is not None:
        query = query.where(CommissionAllocation.is_paid.is_(is_paid))
    if payroll_batch_id is not None:
        query = query.where(CommissionAllocation.payroll_batch_id == payroll_batch_id)

    total = await db.scalar(select(func.count()).select_from(query.subquery()))

    query = query.order_by(CommissionAllocation.created_at.desc(), CommissionAllocation.id.desc())
    query = query.offset((page - 1) * per_page).limit(per_page)
    result = await db.execute(query)

    return Page[UnifiedAllocation](
        items=[UnifiedAllocation.model_validate(row) for row in result.scalars().all()],
        total=total or 0,
        page=page,
        per_page=per_page,
    )


async def allocations_for_sale(db: AsyncSession, sale_id: int) -> list[UnifiedAllocation]:
    """All participant allocations of one sale, by milestone then user."""
    result = await db.execute(
        select(CommissionAllocation)
        .where(CommissionAllocation.sale_id == sale_id)
        .order_by(CommissionAllocation.milestone_number, CommissionAllocation.user_id)
    )
    return [UnifiedAllocation.model_validate(row) for row in result.scalars().all()]


async def allocations_for_user(
    db: AsyncSession,
    user_id: int,
    is_paid: Optional[bool] = None,
    page: int = 1,
    per_page: Optional[int] = None,
) -> Page[UnifiedAllocation]:
    return await all_allocations(db, user_id=user_id, is_paid=is_paid, page=page, per_page=per_page)


async def list_overrides(
    db: AsyncSession,
    user_id: Optional[int] = None,
    sale_id: Optional[int] = None,
    is_approved: Optional[bool] = None,
    is_paid: Optional[bool] = None,
    payroll_batch_id: Optional[int] = None,
    page: int = 1,
    per_page: Optional[int] = None,
) -> Page[OverrideResponse]:
    """List override allocations, newest first."""
    page, per_page = _page_bounds(page, per_page)
    query = select(OverrideAllocation)

    if user_id is not None:
        query = query.where(OverrideAllocation.user_id == user_id)
    if sale_id is not None:
        query = query.where(OverrideAllocation.sale_id == sale_id)
    if is_approved is not None:
        query = query.where(OverrideAllocation.is_approved.is_(is_approved))
    if is_paid is not None:
        query = query.where(OverrideAllocation.is_paid.is_(is_paid))
    if payroll_batch_id is not None:
        query = query.where(OverrideAllocation.payroll_batch_id == payroll_batch_id)

    total = await db.scalar(select(func.count()).select_from(query.subquery()))

    query = query.order_by(OverrideAllocation.created_at.desc(), OverrideAllocation.id.desc())
    query = query.offset((page - 1) * per_page).limit(per_page)
    result = await db.execute(query)

    return Page[OverrideResponse](
        items=[OverrideResponse.model_validate(row) for row in result.scalars().all()],
        total=total or 0,
        page=page,
        per_page=per_page,
    )


async def summarize_allocations(
    db: AsyncSession,
    user_id: Optional[int] = None,
) -> AllocationSummary:
    """
    Totals per industry split into pending, approved-unpaid and paid.

    Every industry is listed, with zeros when it has no allocations.
    """
    query = select(
        CommissionAllocation.industry,
        CommissionAllocation.is_approved,
        CommissionAllocation.is_paid,
        func.coalesce(func.sum(CommissionAllocation.allocated_amount), 0),
        func.count(CommissionAllocation.id),
    ).group_by(
        CommissionAllocation.industry,
        CommissionAllocation.is_approved,
        CommissionAllocation.is_paid,
    )
    if user_id is not None:
        query = query.where(CommissionAllocation.user_id == user_id)

    totals = {industry: IndustryTotals(industry=industry) for industry in Industry}
    result = await db.execute(query)
    for industry, is_approved, is_paid, amount, count in result.all():
        bucket = totals[Industry(industry)]
        amount = to_money(amount)
        if is_paid:
            bucket.paid += amount
        elif is_approved:
            bucket.approved_unpaid += amount
        else:
            bucket.pending += amount
        bucket.record_count += count

    override_query = select(func.coalesce(func.sum(OverrideAllocation.allocated_amount), 0))
    if user_id is not None:
        override_query = override_query.where(OverrideAllocation.user_id == user_id)
    overrides_total = to_money(await db.scalar(override_query))

    grand_total: Decimal = overrides_total
    for bucket in totals.values():
        grand_total += bucket.pending + bucket.approved_unpaid + bucket.paid

    return AllocationSummary(
        industries=list(totals.values()),
        overrides_total=overrides_total,
        grand_total=to_money(grand_total),
    )
