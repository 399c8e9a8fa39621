"""
Milestone allocation pricing, idempotent persistence and approval.

save_milestone_allocations is safe to call any number of times for the
same sale and milestone: rows are keyed by (sale, user, milestone) for
participants and (sale, manager, level) for overrides, updated in place,
and never written for a zero amount.

A row that is paid, or tagged to a batch past DRAFT, keeps its amount and
the save reports a warning instead. A row in a DRAFT batch is updated and
that batch's totals are recomputed. Override levels that no longer pay
are deleted unless they are already paid or batched.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from commissions.context import ActorContext
from commissions.exceptions import ConcurrencyConflict, NotFoundError, ValidationFailure
from commissions.models import (
    AuditAction,
    BatchStatus,
    CommissionAllocation,
    Industry,
    OverrideAllocation,
    PayrollBatch,
    Sale,
    SaleStatus,
    utcnow,
)
from commissions.schemas.allocation import (
    AllocationRef,
    BatchApproveResult,
    ItemError,
    MilestonePreview,
    MilestoneTotals,
    OverrideLine,
    ParticipantLine,
)
from commissions.services.commission import (
    MILESTONE_NAMES,
    ZERO,
    calculate_allocation_amount,
    commissionable_amount,
    validate_milestone,
)
from commissions.services.overrides import HierarchyLookup, walk_overrides
from commissions.services.payroll import recalculate_batch_totals
from commissions.services.rates import resolve_rate
from commissions.services.sales import load_sale
from commissions.utils.audit import log_action

logger = logging.getLogger(__name__)

NO_RATE_WARNING = "No commission rate found for this user/role combination"
ZERO_KEPT_WARNING = "Amount is now zero but the allocation is already paid or batched"
LOCKED_WARNING = "Allocation is already paid or in a submitted batch, amount left unchanged"
STALE_OVERRIDE_WARNING = "Override no longer applies but is already paid or batched"


@dataclass
class MilestoneSaveResult:
    """Rows written by one save, plus participants that were skipped."""

    sale_id: int
    milestone_number: int
    commissionable_amount: Decimal
    allocations: list[CommissionAllocation] = field(default_factory=list)
    overrides: list[OverrideAllocation] = field(default_factory=list)
    warnings: list[ParticipantLine] = field(default_factory=list)


async def _price_milestone(
    db: AsyncSession,
    sale: Sale,
    milestone_number: int,
    hierarchy: Optional[HierarchyLookup],
) -> tuple[Decimal, list[ParticipantLine], list[OverrideLine]]:
    """Price every participant and every override level of a sale."""
    industry = Industry(sale.industry)
    base = commissionable_amount(sale, milestone_number)
    state_code = sale.state_code

    lines: list[ParticipantLine] = []
    for participant in sale.participants:
        rate = await resolve_rate(
            db,
            industry,
            participant.user_id,
            sale.sale_date,
            role_id=participant.role_id,
            installer_id=sale.installer_id,
            state_code=state_code,
        )
        if rate is None:
            lines.append(
                ParticipantLine(
                    user_id=participant.user_id,
                    role_id=participant.role_id,
                    warning=NO_RATE_WARNING,
                )
            )
            continue

        percent = rate.percent_mp1 if milestone_number == 1 else rate.percent_mp2
        flat = rate.flat_mp1 if milestone_number == 1 else rate.flat_mp2
        lines.append(
            ParticipantLine(
                user_id=participant.user_id,
                role_id=participant.role_id,
                rate_id=rate.id,
                percent_rate=percent,
                flat_rate=flat,
                allocated_amount=calculate_allocation_amount(base, milestone_number, rate),
            )
        )

    overrides: list[OverrideLine] = []
    for participant in sale.participants:
        chain = await walk_overrides(
            db,
            industry,
            participant.user_id,
            base,
            milestone_number,
            sale.sale_date,
            hierarchy=hierarchy,
        )
        overrides.extend(
            OverrideLine(
                source_user_id=participant.user_id,
                manager_user_id=link.manager_user_id,
                override_level=link.level,
                amount=link.amount,
                rate_id=link.rate_id,
            )
            for link in chain
        )

    return base, lines, overrides


def _check_sale(sale: Sale) -> None:
    if sale.status == SaleStatus.CANCELLED:
        raise ValidationFailure(
            "Cannot calculate commission for a cancelled sale",
            {"sale_id": sale.id},
        )


async def preview_milestone(
    db: AsyncSession,
    sale_id: int,
    milestone_number: int,
    hierarchy: Optional[HierarchyLookup] = None,
) -> MilestonePreview:
    """Price a milestone without writing anything."""
    milestone_number = validate_milestone(milestone_number)
    sale = await load_sale(db, sale_id)
    _check_sale(sale)

    base, lines, overrides = await _price_milestone(db, sale, milestone_number, hierarchy)

    participant_total = sum((line.allocated_amount for line in lines), ZERO)
    override_total = sum((line.amount for line in overrides), ZERO)

    return MilestonePreview(
        sale_id=sale.id,
        industry=sale.industry,
        milestone_number=milestone_number,
        milestone_name=MILESTONE_NAMES[milestone_number],
        commissionable_amount=base,
        participants=lines,
        overrides=overrides,
        totals=MilestoneTotals(
            participant_allocations=participant_total,
            manager_overrides=override_total,
            grand_total=participant_total + override_total,
        ),
    )


async def _batch_statuses(db: AsyncSession, rows) -> dict[int, BatchStatus]:
    """Status of every batch the rows are tagged to, locked until commit."""
    batch_ids = {row.payroll_batch_id for row in rows if row.payroll_batch_id is not None}
    if not batch_ids:
        return {}
    result = await db.execute(
        select(PayrollBatch.id, PayrollBatch.status)
        .where(PayrollBatch.id.in_(batch_ids))
        .with_for_update()
    )
    return {batch_id: BatchStatus(status) for batch_id, status in result.all()}


def _is_locked(row, statuses: dict[int, BatchStatus]) -> bool:
    """Paid, or tagged to a batch that has left DRAFT."""
    if row.is_paid:
        return True
    if row.payroll_batch_id is None:
        return False
    return statuses.get(row.payroll_batch_id) != BatchStatus.DRAFT


async def save_milestone_allocations(
    db: AsyncSession,
    sale_id: int,
    milestone_number: int,
    actor: ActorContext,
    hierarchy: Optional[HierarchyLookup] = None,
) -> MilestoneSaveResult:
    """
    Compute and persist participant and override allocations for a milestone.

    The sale row is locked for the rest of the transaction so concurrent
    recalculations of the same sale run one after the other. A unique-key
    collision on flush means another writer slipped in anyway and is
    reported as ConcurrencyConflict.

    Args:
        db: Database session (flushed, not committed)
        sale_id: Sale to compute
        milestone_number: 1 (MP1) or 2 (MP2)
        actor: Validated caller
        hierarchy: Reporting-chain source; defaults to the employees table

    Returns:
        MilestoneSaveResult with the rows written and skipped participants

    Raises:
        ValidationFailure: bad milestone number or cancelled sale
        NotFoundError: sale does not exist
        ConcurrencyConflict: a concurrent writer created the same rows
    """
    milestone_number = validate_milestone(milestone_number)
    sale = await load_sale(db, sale_id, for_update=True)
    _check_sale(sale)
    industry = Industry(sale.industry)

    base, lines, override_lines = await _price_milestone(db, sale, milestone_number, hierarchy)
    now = utcnow()
    result = MilestoneSaveResult(
        sale_id=sale.id,
        milestone_number=milestone_number,
        commissionable_amount=base,
    )

    existing_rows = await db.execute(
        select(CommissionAllocation).where(
            CommissionAllocation.sale_id == sale.id,
            CommissionAllocation.milestone_number == milestone_number,
        )
    )
    by_user = {row.user_id: row for row in existing_rows.scalars().all()}

    existing_overrides = await db.execute(
        select(OverrideAllocation).where(OverrideAllocation.sale_id == sale.id)
    )
    by_level = {
        (row.user_id, row.override_level): row
        for row in existing_overrides.scalars().all()
    }

    statuses = await _batch_statuses(db, [*by_user.values(), *by_level.values()])
    touched_batches: set[int] = set()
    written: dict[int, CommissionAllocation] = {}

    for line in lines:
        if line.warning:
            logger.warning(f"Sale {sale.id} MP{milestone_number}: user {line.user_id} skipped, {line.warning}")
            result.warnings.append(line)
            continue

        existing = by_user.get(line.user_id)
        if line.allocated_amount <= 0:
            if existing is not None:
                if existing.is_paid or existing.payroll_batch_id is not None:
                    result.warnings.append(line.model_copy(update={"warning": ZERO_KEPT_WARNING}))
                else:
                    await db.delete(existing)
                    by_user.pop(line.user_id)
                    written.pop(line.user_id, None)
                    logger.info(f"Removed zero allocation {existing.id} on sale {sale.id}")
            continue

        if existing is None:
            existing = CommissionAllocation(
                industry=industry,
                sale_id=sale.id,
                user_id=line.user_id,
                milestone_number=milestone_number,
                allocated_amount=line.allocated_amount,
                rate_id=line.rate_id,
                is_approved=False,
                is_paid=False,
                created_at=now,
                updated_at=now,
            )
            db.add(existing)
            by_user[line.user_id] = existing
        elif _is_locked(existing, statuses):
            if existing.allocated_amount != line.allocated_amount:
                logger.warning(
                    f"Sale {sale.id} MP{milestone_number}: allocation {existing.id} is locked, "
                    f"kept {existing.allocated_amount} instead of {line.allocated_amount}"
                )
                result.warnings.append(line.model_copy(update={"warning": LOCKED_WARNING}))
                continue
        else:
            if existing.payroll_batch_id is not None:
                touched_batches.add(existing.payroll_batch_id)
            existing.allocated_amount = line.allocated_amount
            existing.rate_id = line.rate_id
            existing.updated_at = now
        written[line.user_id] = existing

    result.allocations = list(written.values())

    written_overrides: dict[tuple[int, int], OverrideAllocation] = {}
    still_owed: set[tuple[int, int]] = set()

    for line in override_lines:
        if line.amount <= 0:
            continue
        key = (line.manager_user_id, line.override_level)
        still_owed.add(key)
        row = by_level.get(key)
        if row is None:
            row = OverrideAllocation(
                industry=industry,
                sale_id=sale.id,
                user_id=line.manager_user_id,
                override_level=line.override_level,
                source_user_id=line.source_user_id,
                milestone_number=milestone_number,
                allocated_amount=line.amount,
                rate_id=line.rate_id,
                is_approved=False,
                is_paid=False,
                created_at=now,
                updated_at=now,
            )
            db.add(row)
            by_level[key] = row
        elif _is_locked(row, statuses):
            if row.allocated_amount != line.amount:
                logger.warning(
                    f"Sale {sale.id}: override {row.id} is locked, "
                    f"kept {row.allocated_amount} instead of {line.amount}"
                )
                result.warnings.append(
                    ParticipantLine(
                        user_id=line.manager_user_id,
                        rate_id=line.rate_id,
                        allocated_amount=line.amount,
                        warning=LOCKED_WARNING,
                    )
                )
                continue
        else:
            if row.payroll_batch_id is not None:
                touched_batches.add(row.payroll_batch_id)
            row.allocated_amount = line.amount
            row.rate_id = line.rate_id
            row.source_user_id = line.source_user_id
            row.milestone_number = milestone_number
            row.updated_at = now
        written_overrides[key] = row

    # Levels that no longer pay anything
    for key, row in list(by_level.items()):
        if key in still_owed:
            continue
        if row.is_paid or row.payroll_batch_id is not None:
            result.warnings.append(
                ParticipantLine(user_id=row.user_id, rate_id=row.rate_id, warning=STALE_OVERRIDE_WARNING)
            )
        else:
            await db.delete(row)
            del by_level[key]
            logger.info(f"Removed override {row.id} (level {row.override_level}) on sale {sale.id}")

    result.overrides = list(written_overrides.values())

    try:
        await db.flush()
    except IntegrityError as e:
        raise ConcurrencyConflict(
            f"Allocations for sale {sale.id} were written concurrently, retry",
            {"sale_id": sale.id, "milestone": milestone_number},
        ) from e

    for batch_id in sorted(touched_batches):
        await recalculate_batch_totals(db, batch_id)

    await log_action(
        db,
        actor,
        action=AuditAction.SAVE_ALLOCATIONS,
        target_type="sale",
        target_id=sale.id,
        action_metadata={
            "milestone": milestone_number,
            "commissionable_amount": base,
            "allocations": len(result.allocations),
            "overrides": len(result.overrides),
            "skipped": len(result.warnings),
        },
    )
    logger.info(
        f"Saved MP{milestone_number} for sale {sale.id}: "
        f"{len(result.allocations)} allocations, {len(result.overrides)} overrides"
    )
    return result


# ── Approval ─────────────────────────────────────────────


def _stamp_approved(row, actor: ActorContext) -> None:
    if row.is_approved:
        return
    now = utcnow()
    row.is_approved = True
    row.approved_at = now
    row.approved_by = actor.user_id
    row.updated_at = now


async def _get_allocation(db: AsyncSession, industry: Industry, allocation_id: int) -> CommissionAllocation:
    allocation = await db.get(CommissionAllocation, allocation_id)
    if allocation is None or allocation.industry != Industry(industry):
        raise NotFoundError("Allocation not found", {"allocation_id": allocation_id})
    return allocation


async def approve_allocation(
    db: AsyncSession,
    industry: Industry,
    allocation_id: int,
    actor: ActorContext,
) -> CommissionAllocation:
    """Approve one participant allocation. Already-approved rows keep their stamp."""
    allocation = await _get_allocation(db, industry, allocation_id)
    _stamp_approved(allocation, actor)
    await db.flush()

    await log_action(
        db,
        actor,
        action=AuditAction.APPROVE_ALLOCATION,
        target_type="allocation",
        target_id=allocation.id,
        action_metadata={"industry": Industry(industry).value},
    )
    return allocation


async def approve_override(
    db: AsyncSession,
    override_id: int,
    actor: ActorContext,
) -> OverrideAllocation:
    """Approve one override allocation."""
    override = await db.get(OverrideAllocation, override_id)
    if override is None:
        raise NotFoundError("Override allocation not found", {"override_id": override_id})

    _stamp_approved(override, actor)
    await db.flush()

    await log_action(
        db,
        actor,
        action=AuditAction.APPROVE_OVERRIDE,
        target_type="override",
        target_id=override.id,
    )
    return override


async def batch_approve_allocations(
    db: AsyncSession,
    items: Sequence[AllocationRef],
    actor: ActorContext,
) -> BatchApproveResult:
    """
    Approve many allocations, reporting failures per item.

    A missing allocation is recorded in `errors` and the remaining
    items are still approved.
    """
    approved = 0
    errors: list[ItemError] = []

    for item in items:
        try:
            allocation = await _get_allocation(db, item.industry, item.allocation_id)
        except NotFoundError as e:
            errors.append(
                ItemError(
                    industry=item.industry,
                    allocation_id=item.allocation_id,
                    error=e.message,
                )
            )
            continue
        _stamp_approved(allocation, actor)
        approved += 1

    await db.flush()

    await log_action(
        db,
        actor,
        action=AuditAction.APPROVE_ALLOCATION,
        target_type="allocation",
        action_metadata={"approved": approved, "total": len(items), "errors": len(errors)},
    )
    if errors:
        logger.warning(f"Batch approve: {len(errors)} of {len(items)} items failed")

    return BatchApproveResult(approved=approved, total=len(items), errors=errors)
