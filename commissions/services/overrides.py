"""
Manager override chain walking.

Starting from a sales rep, walk up the reporting chain one manager at a
time and price an override for each manager that has an applicable rate.
The walk stops at the first missing or inactive manager, at any manager
already seen on this walk (which covers a chain pointing back at the rep),
and after MAX_OVERRIDE_LEVELS levels whatever the chain looks like.
"""

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Optional, Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from commissions.models import Employee, Industry
from commissions.services.commission import calculate_allocation_amount, validate_milestone
from commissions.services.rates import resolve_rate

logger = logging.getLogger(__name__)

MAX_OVERRIDE_LEVELS = 5


class HierarchyLookup(Protocol):
    """Source of reporting relationships."""

    async def manager_of(self, user_id: int) -> Optional[tuple[int, bool]]:
        """Return (manager_user_id, manager_is_active), or None if no manager."""
        ...


class EmployeeHierarchy:
    """HierarchyLookup backed by the employees table."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def manager_of(self, user_id: int) -> Optional[tuple[int, bool]]:
        """
        Manager of an active employee.

        An inactive (or unregistered) user has no manager here, so an
        inactive sales rep earns their managers no overrides.
        """
        result = await self.db.execute(
            select(Employee).where(
                Employee.user_id == user_id,
                Employee.is_active.is_(True),
            )
        )
        employee = result.scalar_one_or_none()
        if employee is None or employee.manager_user_id is None:
            return None

        result = await self.db.execute(
            select(Employee.is_active).where(Employee.user_id == employee.manager_user_id)
        )
        manager_active = result.scalar_one_or_none()
        # A manager id with no registry entry is treated as inactive
        return employee.manager_user_id, bool(manager_active)


@dataclass(frozen=True)
class OverrideResult:
    """One priced level of a manager chain."""

    manager_user_id: int
    level: int
    amount: Decimal
    rate_id: int


async def walk_overrides(
    db: AsyncSession,
    industry: Industry,
    sales_rep_user_id: int,
    commissionable: Decimal,
    milestone_number: int,
    on_date: date,
    hierarchy: Optional[HierarchyLookup] = None,
) -> list[OverrideResult]:
    """
    Price overrides for every manager above a sales rep.

    Override rates are resolved with role, installer and state all
    wildcarded. Levels without a rate, or whose amount is zero, are
    skipped but still count towards the level cap.

    Args:
        db: Database session (rate lookups)
        industry: Industry of the sale
        sales_rep_user_id: Participant whose chain is walked
        commissionable: Commissionable amount for the milestone
        milestone_number: 1 (MP1) or 2 (MP2)
        on_date: Date rates must be effective on
        hierarchy: Reporting-chain source; defaults to the employees table

    Returns:
        OverrideResult per paying level, in level order
    """
    milestone_number = validate_milestone(milestone_number)
    if hierarchy is None:
        hierarchy = EmployeeHierarchy(db)

    overrides: list[OverrideResult] = []
    visited = {sales_rep_user_id}
    current_user_id = sales_rep_user_id
    level = 1

    while level <= MAX_OVERRIDE_LEVELS:
        link = await hierarchy.manager_of(current_user_id)
        if link is None:
            break  # Top of the chain

        manager_user_id, manager_active = link
        if not manager_active:
            break

        if manager_user_id in visited:
            logger.warning(
                f"Manager chain of user {sales_rep_user_id} loops back to "
                f"user {manager_user_id} at level {level}, stopping"
            )
            break
        visited.add(manager_user_id)

        rate = await resolve_rate(db, industry, manager_user_id, on_date)
        if rate is not None:
            amount = calculate_allocation_amount(commissionable, milestone_number, rate)
            if amount > 0:
                overrides.append(
                    OverrideResult(
                        manager_user_id=manager_user_id,
                        level=level,
                        amount=amount,
                        rate_id=rate.id,
                    )
                )

        current_user_id = manager_user_id
        level += 1

    return overrides
