"""
Payroll batch state machine.

DRAFT -> SUBMITTED -> APPROVED -> EXPORTED -> PAID, and any non-terminal
state -> CANCELLED. Status changes go through a compare-and-swap UPDATE
so two concurrent requests can never both leave the same source state.
A batch's total_amount and record_count are only ever written by
recalculate_batch_totals, which sums every allocation and override that
currently carries the batch id.
"""

import logging
from datetime import timedelta
from decimal import Decimal
from typing import Optional, Sequence

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from commissions.config import settings
from commissions.context import ActorContext
from commissions.exceptions import (
    ConcurrencyConflict,
    InvalidTransition,
    NotFoundError,
    ValidationFailure,
)
from commissions.models import (
    AuditAction,
    BatchStatus,
    CommissionAllocation,
    Industry,
    OverrideAllocation,
    PayrollBatch,
    utcnow,
)
from commissions.schemas.allocation import AllocationRef, OverrideResponse, UnifiedAllocation
from commissions.schemas.payroll import (
    BatchCreate,
    BatchDetail,
    BatchItemsResult,
    BatchResponse,
    BatchUpdate,
    SkippedItem,
)
from commissions.services.commission import to_money
from commissions.utils.audit import log_action

logger = logging.getLogger(__name__)

VALID_TRANSITIONS: dict[BatchStatus, frozenset[BatchStatus]] = {
    BatchStatus.DRAFT: frozenset({BatchStatus.SUBMITTED, BatchStatus.CANCELLED}),
    BatchStatus.SUBMITTED: frozenset({BatchStatus.APPROVED, BatchStatus.CANCELLED}),
    BatchStatus.APPROVED: frozenset({BatchStatus.EXPORTED, BatchStatus.CANCELLED}),
    BatchStatus.EXPORTED: frozenset({BatchStatus.PAID, BatchStatus.CANCELLED}),
    BatchStatus.PAID: frozenset(),
    BatchStatus.CANCELLED: frozenset(),
}

# Stamp columns written when a batch enters each status
_STAMPS = {
    BatchStatus.SUBMITTED: ("submitted_at", "submitted_by"),
    BatchStatus.APPROVED: ("approved_at", "approved_by"),
    BatchStatus.EXPORTED: ("exported_at", "exported_by"),
    BatchStatus.PAID: ("paid_at", "paid_by"),
    BatchStatus.CANCELLED: ("cancelled_at", "cancelled_by"),
}


async def get_batch(db: AsyncSession, batch_id: int, for_update: bool = False) -> PayrollBatch:
    """Load a batch or raise NotFoundError."""
    query = select(PayrollBatch).where(PayrollBatch.id == batch_id)
    if for_update:
        query = query.with_for_update()
    result = await db.execute(query.execution_options(populate_existing=True))
    batch = result.scalar_one_or_none()
    if batch is None:
        raise NotFoundError(f"Payroll batch {batch_id} not found", {"batch_id": batch_id})
    return batch


def _require_draft(batch: PayrollBatch) -> None:
    if batch.status != BatchStatus.DRAFT:
        raise InvalidTransition(
            BatchStatus.DRAFT.value,
            BatchStatus(batch.status).value,
        )


# ── Totals ───────────────────────────────────────────────


async def recalculate_batch_totals(db: AsyncSession, batch_id: int) -> tuple[Decimal, int]:
    """
    Recompute total_amount and record_count from the tagged rows.

    Returns:
        (total_amount, record_count)
    """
    batch = await get_batch(db, batch_id)

    alloc_total, alloc_count = (
        await db.execute(
            select(
                func.coalesce(func.sum(CommissionAllocation.allocated_amount), 0),
                func.count(CommissionAllocation.id),
            ).where(CommissionAllocation.payroll_batch_id == batch_id)
        )
    ).one()
    override_total, override_count = (
        await db.execute(
            select(
                func.coalesce(func.sum(OverrideAllocation.allocated_amount), 0),
                func.count(OverrideAllocation.id),
            ).where(OverrideAllocation.payroll_batch_id == batch_id)
        )
    ).one()

    total = to_money(to_money(alloc_total) + to_money(override_total))
    count = int(alloc_count) + int(override_count)

    batch.total_amount = total
    batch.record_count = count
    await db.flush()

    logger.debug(f"Batch {batch_id} totals: {total} over {count} records")
    return total, count


# ── Administration ───────────────────────────────────────


async def create_batch(
    db: AsyncSession,
    data: BatchCreate,
    actor: ActorContext,
) -> PayrollBatch:
    """
    Create a DRAFT batch.

    Defaults: name "Batch YYYY-MM-DD", a pay period covering the last
    `batch_period_days` days, and a pay date `pay_date_offset_days` out.
    """
    today = utcnow().date()
    period_end = data.pay_period_end or today
    period_start = data.pay_period_start or period_end - timedelta(days=settings.batch_period_days)
    if period_end < period_start:
        raise ValidationFailure("pay_period_end must not be before pay_period_start")

    batch = PayrollBatch(
        batch_name=data.batch_name or f"Batch {today.isoformat()}",
        status=BatchStatus.DRAFT,
        pay_period_start=period_start,
        pay_period_end=period_end,
        pay_date=data.pay_date or today + timedelta(days=settings.pay_date_offset_days),
        total_amount=Decimal("0.00"),
        record_count=0,
        created_by=actor.user_id,
        updated_by=actor.user_id,
    )
    db.add(batch)
    await db.flush()

    await log_action(
        db,
        actor,
        action=AuditAction.CREATE_BATCH,
        target_type="batch",
        target_id=batch.id,
        action_metadata={"batch_name": batch.batch_name},
    )
    logger.info(f"Created payroll batch {batch.id} ({batch.batch_name})")
    return batch


async def update_batch(
    db: AsyncSession,
    batch_id: int,
    data: BatchUpdate,
    actor: ActorContext,
) -> PayrollBatch:
    """Edit name, period or pay date of a DRAFT batch."""
    batch = await get_batch(db, batch_id, for_update=True)
    _require_draft(batch)

    changes = data.model_dump(exclude_unset=True)
    for field, value in changes.items():
        setattr(batch, field, value)
    if batch.pay_period_end < batch.pay_period_start:
        raise ValidationFailure("pay_period_end must not be before pay_period_start")

    batch.updated_by = actor.user_id
    batch.updated_at = utcnow()
    await db.flush()

    await log_action(
        db,
        actor,
        action=AuditAction.UPDATE_BATCH,
        target_type="batch",
        target_id=batch.id,
        action_metadata={"fields": sorted(changes)},
    )
    return batch


async def list_batches(
    db: AsyncSession,
    status: Optional[BatchStatus] = None,
    page: int = 1,
    per_page: int = 25,
) -> tuple[list[PayrollBatch], int]:
    """List batches, newest first."""
    query = select(PayrollBatch)
    if status is not None:
        query = query.where(PayrollBatch.status == status)

    total = await db.scalar(select(func.count()).select_from(query.subquery()))

    query = query.order_by(PayrollBatch.created_at.desc(), PayrollBatch.id.desc())
    query = query.offset((page - 1) * per_page).limit(per_page)
    result = await db.execute(query)
    return list(result.scalars().all()), total or 0


async def get_batch_detail(db: AsyncSession, batch_id: int) -> BatchDetail:
    """A batch with its tagged allocations and overrides."""
    batch = await get_batch(db, batch_id)

    allocations = await db.execute(
        select(CommissionAllocation)
        .where(CommissionAllocation.payroll_batch_id == batch_id)
        .order_by(CommissionAllocation.industry, CommissionAllocation.id)
    )
    overrides = await db.execute(
        select(OverrideAllocation)
        .where(OverrideAllocation.payroll_batch_id == batch_id)
        .order_by(OverrideAllocation.id)
    )

    return BatchDetail(
        batch=BatchResponse.model_validate(batch),
        allocations=[UnifiedAllocation.model_validate(a) for a in allocations.scalars().all()],
        overrides=[OverrideResponse.model_validate(o) for o in overrides.scalars().all()],
    )


# ── Attaching allocations ────────────────────────────────


async def _check_source_batch(
    db: AsyncSession,
    row,
    batch_id: int,
    moved_from: set[int],
) -> Optional[str]:
    """Return a reason the row can't move into batch_id, or None."""
    if not row.is_approved:
        return "Allocation is not approved"
    if row.is_paid:
        return "Allocation is already paid"

    source_id = row.payroll_batch_id
    if source_id is None or source_id == batch_id:
        return None

    source = await get_batch(db, source_id)
    if source.status in (BatchStatus.DRAFT, BatchStatus.CANCELLED):
        moved_from.add(source_id)
        return None
    return f"Allocation belongs to batch {source_id} ({BatchStatus(source.status).value})"


async def add_allocations_to_batch(
    db: AsyncSession,
    batch_id: int,
    allocations: Sequence[AllocationRef],
    override_ids: Sequence[int],
    actor: ActorContext,
) -> BatchItemsResult:
    """
    Tag approved, unpaid allocations and overrides with a DRAFT batch.

    Ineligible items are skipped and reported. An item taken from another
    DRAFT or CANCELLED batch is moved, and that batch's totals are recomputed too.

    Raises:
        NotFoundError: batch does not exist
        InvalidTransition: batch is not DRAFT
    """
    batch = await get_batch(db, batch_id, for_update=True)
    _require_draft(batch)

    changed = 0
    skipped: list[SkippedItem] = []
    moved_from: set[int] = set()

    for ref in allocations:
        row = await db.get(CommissionAllocation, ref.allocation_id)
        if row is None or row.industry != Industry(ref.industry):
            reason = "Allocation not found"
        else:
            reason = await _check_source_batch(db, row, batch_id, moved_from)
        if reason:
            skipped.append(
                SkippedItem(kind="allocation", id=ref.allocation_id, industry=ref.industry, reason=reason)
            )
            continue
        row.payroll_batch_id = batch_id
        changed += 1

    for override_id in override_ids:
        row = await db.get(OverrideAllocation, override_id)
        if row is None:
            reason = "Override allocation not found"
        else:
            reason = await _check_source_batch(db, row, batch_id, moved_from)
        if reason:
            skipped.append(SkippedItem(kind="override", id=override_id, reason=reason))
            continue
        row.payroll_batch_id = batch_id
        changed += 1

    await db.flush()
    total, count = await recalculate_batch_totals(db, batch_id)
    for source_id in moved_from:
        await recalculate_batch_totals(db, source_id)

    await log_action(
        db,
        actor,
        action=AuditAction.ADD_TO_BATCH,
        target_type="batch",
        target_id=batch_id,
        action_metadata={
            "added": changed,
            "skipped": len(skipped),
            "moved_from": sorted(moved_from),
            "total_amount": total,
        },
    )
    logger.info(f"Batch {batch_id}: added {changed} items, skipped {len(skipped)}")

    return BatchItemsResult(
        batch_id=batch_id,
        changed=changed,
        skipped=skipped,
        total_amount=total,
        record_count=count,
    )


async def remove_allocations_from_batch(
    db: AsyncSession,
    batch_id: int,
    allocations: Sequence[AllocationRef],
    override_ids: Sequence[int],
    actor: ActorContext,
) -> BatchItemsResult:
    """Untag allocations and overrides from a DRAFT batch."""
    batch = await get_batch(db, batch_id, for_update=True)
    _require_draft(batch)

    changed = 0
    skipped: list[SkippedItem] = []

    for ref in allocations:
        row = await db.get(CommissionAllocation, ref.allocation_id)
        if row is None or row.industry != Industry(ref.industry) or row.payroll_batch_id != batch_id:
            skipped.append(
                SkippedItem(
                    kind="allocation",
                    id=ref.allocation_id,
                    industry=ref.industry,
                    reason="Allocation is not in this batch",
                )
            )
            continue
        row.payroll_batch_id = None
        changed += 1

    for override_id in override_ids:
        row = await db.get(OverrideAllocation, override_id)
        if row is None or row.payroll_batch_id != batch_id:
            skipped.append(SkippedItem(kind="override", id=override_id, reason="Override is not in this batch"))
            continue
        row.payroll_batch_id = None
        changed += 1

    await db.flush()
    total, count = await recalculate_batch_totals(db, batch_id)

    await log_action(
        db,
        actor,
        action=AuditAction.REMOVE_FROM_BATCH,
        target_type="batch",
        target_id=batch_id,
        action_metadata={"removed": changed, "total_amount": total},
    )

    return BatchItemsResult(
        batch_id=batch_id,
        changed=changed,
        skipped=skipped,
        total_amount=total,
        record_count=count,
    )


# ── Transitions ──────────────────────────────────────────


async def transition_batch(
    db: AsyncSession,
    batch_id: int,
    expected_status: BatchStatus,
    new_status: BatchStatus,
    actor: ActorContext,
) -> PayrollBatch:
    """
    Move a batch from expected_status to new_status.

    The status write is conditional on the row still holding
    expected_status; if another request changed it in between, nothing
    is written and ConcurrencyConflict is raised. Totals are recomputed
    after every successful transition.

    Raises:
        NotFoundError: batch does not exist
        ValidationFailure: the pair is not an allowed transition
        InvalidTransition: batch is not in expected_status
        ConcurrencyConflict: the status changed under us
    """
    expected_status = BatchStatus(expected_status)
    new_status = BatchStatus(new_status)
    if new_status not in VALID_TRANSITIONS[expected_status]:
        raise ValidationFailure(
            f"Cannot move a batch from {expected_status.value} to {new_status.value}",
            {"from": expected_status.value, "to": new_status.value},
        )

    batch = await get_batch(db, batch_id)
    if batch.status != expected_status:
        raise InvalidTransition(
            expected_status.value,
            BatchStatus(batch.status).value,
            new_status.value,
        )

    now = utcnow()
    at_field, by_field = _STAMPS[new_status]
    result = await db.execute(
        update(PayrollBatch)
        .where(
            PayrollBatch.id == batch_id,
            PayrollBatch.status == expected_status,
        )
        .values(
            {
                "status": new_status,
                "updated_at": now,
                "updated_by": actor.user_id,
                at_field: now,
                by_field: actor.user_id,
            }
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise ConcurrencyConflict(
            f"Batch {batch_id} changed status concurrently, retry",
            {"batch_id": batch_id, "expected": expected_status.value},
        )

    await db.refresh(batch)
    total, count = await recalculate_batch_totals(db, batch_id)

    await log_action(
        db,
        actor,
        action=AuditAction.TRANSITION_BATCH,
        target_type="batch",
        target_id=batch_id,
        action_metadata={
            "from": expected_status.value,
            "to": new_status.value,
            "total_amount": total,
            "record_count": count,
        },
    )
    logger.info(f"Batch {batch_id}: {expected_status.value} -> {new_status.value}")
    return batch


async def submit_batch(db: AsyncSession, batch_id: int, actor: ActorContext) -> PayrollBatch:
    return await transition_batch(db, batch_id, BatchStatus.DRAFT, BatchStatus.SUBMITTED, actor)


async def approve_batch(db: AsyncSession, batch_id: int, actor: ActorContext) -> PayrollBatch:
    return await transition_batch(db, batch_id, BatchStatus.SUBMITTED, BatchStatus.APPROVED, actor)


async def export_batch(db: AsyncSession, batch_id: int, actor: ActorContext) -> PayrollBatch:
    return await transition_batch(db, batch_id, BatchStatus.APPROVED, BatchStatus.EXPORTED, actor)


async def cancel_batch(db: AsyncSession, batch_id: int, actor: ActorContext) -> PayrollBatch:
    """Cancel a batch from any non-terminal state. Allocations keep their tag."""
    batch = await get_batch(db, batch_id)
    current = BatchStatus(batch.status)
    if current.is_terminal:
        raise InvalidTransition(
            "DRAFT, SUBMITTED, APPROVED or EXPORTED",
            current.value,
            BatchStatus.CANCELLED.value,
        )
    return await transition_batch(db, batch_id, current, BatchStatus.CANCELLED, actor)


async def mark_batch_paid(db: AsyncSession, batch_id: int, actor: ActorContext) -> PayrollBatch:
    """
    Move an EXPORTED batch to PAID and mark everything in it paid.

    Both happen in the caller's transaction, so a batch is never PAID
    while any of its allocations is unpaid.
    """
    batch = await transition_batch(db, batch_id, BatchStatus.EXPORTED, BatchStatus.PAID, actor)
    paid_at = batch.paid_at or utcnow()

    allocations = await db.execute(
        update(CommissionAllocation)
        .where(CommissionAllocation.payroll_batch_id == batch_id)
        .values(is_paid=True, paid_at=paid_at, updated_at=paid_at)
        .execution_options(synchronize_session="fetch")
    )
    overrides = await db.execute(
        update(OverrideAllocation)
        .where(OverrideAllocation.payroll_batch_id == batch_id)
        .values(is_paid=True, paid_at=paid_at, updated_at=paid_at)
        .execution_options(synchronize_session="fetch")
    )
    await db.flush()

    logger.info(
        f"Batch {batch_id} paid: {allocations.rowcount} allocations, "
        f"{overrides.rowcount} overrides, total {batch.total_amount}"
    )
    return batch
