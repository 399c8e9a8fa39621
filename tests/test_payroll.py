"""
Tests for the payroll batch state machine.

Covers:
- create/update defaults and DRAFT-only edits
- transitions, InvalidTransition naming the expected state, CAS conflicts
- attaching/detaching allocations and total recomputation
- mark_batch_paid atomically paying everything in the batch
"""

from datetime import timedelta
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy import select, update

from commissions.config import settings
from commissions.exceptions import (
    ConcurrencyConflict,
    InvalidTransition,
    NotFoundError,
    ValidationFailure,
)
from commissions.models import (
    AuditAction,
    AuditLog,
    BatchStatus,
    CommissionAllocation,
    Industry,
    OverrideAllocation,
    PayrollBatch,
    utcnow,
)
from commissions.schemas.allocation import AllocationRef
from commissions.schemas.payroll import BatchCreate, BatchUpdate
from commissions.services import payroll
from commissions.services.payroll import (
    add_allocations_to_batch,
    cancel_batch,
    create_batch,
    get_batch_detail,
    list_batches,
    mark_batch_paid,
    recalculate_batch_totals,
    remove_allocations_from_batch,
    transition_batch,
    update_batch,
)


async def _allocation(db, sale, user_id, amount, approved=True, paid=False):
    row = CommissionAllocation(
        industry=sale.industry,
        sale_id=sale.id,
        user_id=user_id,
        milestone_number=1,
        allocated_amount=Decimal(amount),
        is_approved=approved,
        is_paid=paid,
    )
    db.add(row)
    await db.flush()
    return row


def _refs(rows):
    return [AllocationRef(industry=r.industry, allocation_id=r.id) for r in rows]


@pytest_asyncio.fixture
async def three_allocations(db_session, make_sale):
    """Approved allocations of $100, $150 and $200 across three industries."""
    rows = []
    for user_id, (industry, amount) in enumerate(
        [(Industry.ROOFING, "100.00"), (Industry.SOLAR, "150.00"), (Industry.PEST, "200.00")],
        start=1,
    ):
        sale = await make_sale(industry, participants=((user_id, None),))
        rows.append(await _allocation(db_session, sale, user_id, amount))
    return rows


@pytest_asyncio.fixture
async def draft(db_session, actor):
    return await create_batch(db_session, BatchCreate(batch_name="Week 24"), actor)


async def _advance_to_exported(db, batch_id, actor):
    await payroll.submit_batch(db, batch_id, actor)
    await payroll.approve_batch(db, batch_id, actor)
    return await payroll.export_batch(db, batch_id, actor)


# ── Administration ────────────────────────────────────────


class TestBatchAdministration:
    @pytest.mark.asyncio
    async def test_create_defaults(self, db_session, actor):
        batch = await create_batch(db_session, BatchCreate(), actor)
        today = utcnow().date()

        assert batch.status == BatchStatus.DRAFT
        assert batch.batch_name == f"Batch {today.isoformat()}"
        assert batch.pay_period_end == today
        assert batch.pay_period_start == today - timedelta(days=settings.batch_period_days)
        assert batch.pay_date == today + timedelta(days=settings.pay_date_offset_days)
        assert batch.total_amount == Decimal("0.00")
        assert batch.record_count == 0

    def test_create_rejects_inverted_period(self):
        today = utcnow().date()
        with pytest.raises(ValueError):
            BatchCreate(pay_period_start=today, pay_period_end=today - timedelta(days=1))

    @pytest.mark.asyncio
    async def test_update_draft(self, db_session, actor, draft):
        updated = await update_batch(db_session, draft.id, BatchUpdate(batch_name="Renamed"), actor)
        assert updated.batch_name == "Renamed"

    @pytest.mark.asyncio
    async def test_update_requires_draft(self, db_session, actor, draft):
        await payroll.submit_batch(db_session, draft.id, actor)
        with pytest.raises(InvalidTransition) as exc:
            await update_batch(db_session, draft.id, BatchUpdate(batch_name="Late"), actor)
        assert exc.value.expected == "DRAFT"

    @pytest.mark.asyncio
    async def test_missing_batch(self, db_session, actor):
        with pytest.raises(NotFoundError):
            await payroll.submit_batch(db_session, 404, actor)

    @pytest.mark.asyncio
    async def test_list_by_status(self, db_session, actor, draft):
        other = await create_batch(db_session, BatchCreate(), actor)
        await payroll.submit_batch(db_session, other.id, actor)

        items, total = await list_batches(db_session, status=BatchStatus.DRAFT)
        assert total == 1
        assert items[0].id == draft.id


# ── Transitions ───────────────────────────────────────────


class TestTransitions:
    @pytest.mark.asyncio
    async def test_happy_path_stamps(self, db_session, actor, draft):
        batch = await _advance_to_exported(db_session, draft.id, actor)

        assert batch.status == BatchStatus.EXPORTED
        assert batch.submitted_by == actor.user_id
        assert batch.approved_by == actor.user_id
        assert batch.exported_by == actor.user_id
        assert batch.submitted_at is not None
        assert batch.exported_at is not None

    @pytest.mark.asyncio
    async def test_each_step_is_audited(self, db_session, actor, draft):
        await _advance_to_exported(db_session, draft.id, actor)

        rows = (await db_session.execute(
            select(AuditLog)
            .where(AuditLog.action == AuditAction.TRANSITION_BATCH)
            .order_by(AuditLog.id)
        )).scalars().all()

        assert [(r.action_metadata["from"], r.action_metadata["to"]) for r in rows] == [
            ("DRAFT", "SUBMITTED"),
            ("SUBMITTED", "APPROVED"),
            ("APPROVED", "EXPORTED"),
        ]
        assert all(r.target_id == draft.id and r.user_id == actor.user_id for r in rows)
        assert rows[0].action_metadata["total_amount"] == "0.00"

    @pytest.mark.asyncio
    async def test_double_submit_fails_citing_draft(self, db_session, actor, draft):
        await payroll.submit_batch(db_session, draft.id, actor)

        with pytest.raises(InvalidTransition) as exc:
            await payroll.submit_batch(db_session, draft.id, actor)

        assert exc.value.expected == "DRAFT"
        assert exc.value.actual == "SUBMITTED"
        assert "DRAFT" in str(exc.value)

    @pytest.mark.asyncio
    async def test_disallowed_pair(self, db_session, actor, draft):
        with pytest.raises(ValidationFailure):
            await transition_batch(db_session, draft.id, BatchStatus.DRAFT, BatchStatus.PAID, actor)

    @pytest.mark.asyncio
    async def test_failed_transition_leaves_batch_unchanged(self, db_session, actor, draft):
        with pytest.raises(InvalidTransition):
            await payroll.approve_batch(db_session, draft.id, actor)

        assert draft.status == BatchStatus.DRAFT
        assert draft.approved_at is None

    @pytest.mark.asyncio
    async def test_status_changed_underneath_is_conflict(self, db_session, actor, draft, monkeypatch):
        real_get_batch = payroll.get_batch

        async def stale_get_batch(db, batch_id, for_update=False):
            # Another writer submits the batch right after we read it
            batch = await real_get_batch(db, batch_id, for_update)
            await db.execute(
                update(PayrollBatch)
                .where(PayrollBatch.id == batch_id)
                .values(status=BatchStatus.SUBMITTED)
                .execution_options(synchronize_session=False)
            )
            return batch

        monkeypatch.setattr(payroll, "get_batch", stale_get_batch)

        with pytest.raises(ConcurrencyConflict):
            await payroll.submit_batch(db_session, draft.id, actor)

    @pytest.mark.asyncio
    async def test_cancel_from_any_open_state(self, db_session, actor, draft):
        await payroll.submit_batch(db_session, draft.id, actor)
        batch = await cancel_batch(db_session, draft.id, actor)

        assert batch.status == BatchStatus.CANCELLED
        assert batch.cancelled_by == actor.user_id

    @pytest.mark.asyncio
    async def test_terminal_states_are_final(self, db_session, actor, draft):
        await cancel_batch(db_session, draft.id, actor)

        with pytest.raises(InvalidTransition):
            await cancel_batch(db_session, draft.id, actor)
        with pytest.raises(InvalidTransition):
            await payroll.submit_batch(db_session, draft.id, actor)


# ── Attaching allocations ─────────────────────────────────


class TestBatchItems:
    @pytest.mark.asyncio
    async def test_add_recomputes_totals(self, db_session, actor, draft, three_allocations):
        result = await add_allocations_to_batch(db_session, draft.id, _refs(three_allocations), [], actor)

        assert result.changed == 3
        assert result.skipped == []
        assert result.total_amount == Decimal("450.00")
        assert result.record_count == 3
        assert draft.total_amount == Decimal("450.00")
        assert all(a.payroll_batch_id == draft.id for a in three_allocations)

    @pytest.mark.asyncio
    async def test_only_approved_unpaid_attach(self, db_session, actor, draft, make_sale):
        sale = await make_sale(participants=((1, None),))
        ok = await _allocation(db_session, sale, 1, "100.00")
        pending = await _allocation(db_session, sale, 2, "50.00", approved=False)
        paid = await _allocation(db_session, sale, 3, "75.00", paid=True)

        result = await add_allocations_to_batch(db_session, draft.id, _refs([ok, pending, paid]), [], actor)

        assert result.changed == 1
        assert {s.id for s in result.skipped} == {pending.id, paid.id}
        assert result.total_amount == Decimal("100.00")
        assert pending.payroll_batch_id is None
        assert paid.payroll_batch_id is None

    @pytest.mark.asyncio
    async def test_add_requires_draft(self, db_session, actor, draft, three_allocations):
        await payroll.submit_batch(db_session, draft.id, actor)
        with pytest.raises(InvalidTransition):
            await add_allocations_to_batch(db_session, draft.id, _refs(three_allocations), [], actor)

    @pytest.mark.asyncio
    async def test_overrides_count_towards_totals(self, db_session, actor, draft, make_sale):
        sale = await make_sale(participants=((1, None),))
        override = OverrideAllocation(
            industry=sale.industry,
            sale_id=sale.id,
            user_id=10,
            override_level=1,
            allocated_amount=Decimal("25.00"),
            is_approved=True,
            is_paid=False,
        )
        db_session.add(override)
        await db_session.flush()

        result = await add_allocations_to_batch(db_session, draft.id, [], [override.id], actor)
        assert result.total_amount == Decimal("25.00")
        assert result.record_count == 1

    @pytest.mark.asyncio
    async def test_move_between_drafts_recomputes_both(self, db_session, actor, draft, three_allocations):
        await add_allocations_to_batch(db_session, draft.id, _refs(three_allocations), [], actor)
        other = await create_batch(db_session, BatchCreate(batch_name="Other"), actor)

        result = await add_allocations_to_batch(db_session, other.id, _refs(three_allocations[:1]), [], actor)

        assert result.total_amount == Decimal("100.00")
        assert draft.total_amount == Decimal("350.00")
        assert draft.record_count == 2

    @pytest.mark.asyncio
    async def test_cannot_take_from_submitted_batch(self, db_session, actor, draft, three_allocations):
        await add_allocations_to_batch(db_session, draft.id, _refs(three_allocations), [], actor)
        await payroll.submit_batch(db_session, draft.id, actor)
        other = await create_batch(db_session, BatchCreate(), actor)

        result = await add_allocations_to_batch(db_session, other.id, _refs(three_allocations), [], actor)

        assert result.changed == 0
        assert len(result.skipped) == 3

    @pytest.mark.asyncio
    async def test_remove(self, db_session, actor, draft, three_allocations):
        await add_allocations_to_batch(db_session, draft.id, _refs(three_allocations), [], actor)
        result = await remove_allocations_from_batch(
            db_session, draft.id, _refs(three_allocations[2:]), [], actor
        )

        assert result.changed == 1
        assert result.total_amount == Decimal("250.00")
        assert three_allocations[2].payroll_batch_id is None

    @pytest.mark.asyncio
    async def test_totals_recomputed_not_drifted(self, db_session, actor, draft, three_allocations):
        await add_allocations_to_batch(db_session, draft.id, _refs(three_allocations), [], actor)
        draft.total_amount = Decimal("1.00")  # corrupt the cache
        await db_session.flush()

        total, count = await recalculate_batch_totals(db_session, draft.id)
        assert (total, count) == (Decimal("450.00"), 3)

    @pytest.mark.asyncio
    async def test_detail(self, db_session, actor, draft, three_allocations):
        await add_allocations_to_batch(db_session, draft.id, _refs(three_allocations), [], actor)
        detail = await get_batch_detail(db_session, draft.id)

        assert detail.batch.id == draft.id
        assert len(detail.allocations) == 3
        assert detail.overrides == []


# ── Payment ───────────────────────────────────────────────


class TestMarkBatchPaid:
    @pytest.mark.asyncio
    async def test_pays_everything_in_batch(self, db_session, actor, draft, three_allocations):
        await add_allocations_to_batch(db_session, draft.id, _refs(three_allocations), [], actor)
        await _advance_to_exported(db_session, draft.id, actor)

        batch = await mark_batch_paid(db_session, draft.id, actor)

        assert batch.status == BatchStatus.PAID
        assert batch.paid_by == actor.user_id
        assert batch.total_amount == Decimal("450.00")
        assert batch.record_count == 3
        for row in three_allocations:
            await db_session.refresh(row)
            assert row.is_paid is True
            assert row.paid_at is not None

    @pytest.mark.asyncio
    async def test_draft_cannot_be_paid(self, db_session, actor, draft, three_allocations):
        await add_allocations_to_batch(db_session, draft.id, _refs(three_allocations), [], actor)

        with pytest.raises(InvalidTransition) as exc:
            await mark_batch_paid(db_session, draft.id, actor)

        assert exc.value.expected == "EXPORTED"
        assert draft.status == BatchStatus.DRAFT
        assert not any(row.is_paid for row in three_allocations)

    @pytest.mark.asyncio
    async def test_cancelled_batch_keeps_tags(self, db_session, actor, draft, three_allocations):
        await add_allocations_to_batch(db_session, draft.id, _refs(three_allocations), [], actor)
        await cancel_batch(db_session, draft.id, actor)

        assert all(row.payroll_batch_id == draft.id for row in three_allocations)

        # Allocations of a cancelled batch may be picked up again
        fresh = await create_batch(db_session, BatchCreate(), actor)
        result = await add_allocations_to_batch(db_session, fresh.id, _refs(three_allocations), [], actor)
        assert result.changed == 3

        # The cancelled batch no longer carries them, so its totals drop to zero
        cancelled = await payroll.get_batch(db_session, draft.id)
        assert cancelled.status == BatchStatus.CANCELLED
        assert cancelled.total_amount == Decimal("0.00")
        assert cancelled.record_count == 0
        assert result.total_amount == Decimal("450.00")
