"""Commission engine services."""

from commissions.services.allocations import (
    approve_allocation,
    approve_override,
    batch_approve_allocations,
    preview_milestone,
    save_milestone_allocations,
)
from commissions.services.commission import calculate_allocation_amount, commissionable_amount
from commissions.services.overrides import walk_overrides
from commissions.services.payroll import recalculate_batch_totals, transition_batch
from commissions.services.rates import resolve_rate

__all__ = [
    "resolve_rate",
    "commissionable_amount",
    "calculate_allocation_amount",
    "walk_overrides",
    "preview_milestone",
    "save_milestone_allocations",
    "approve_allocation",
    "approve_override",
    "batch_approve_allocations",
    "transition_batch",
    "recalculate_batch_totals",
]
