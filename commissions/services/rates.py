"""
Rate catalog and rate resolution.

Resolution picks the single best active rate for a user on a date:
- a rate scope (role, installer, state) that is NULL matches anything
- a non-NULL scope must equal the query value or the rate is excluded
- specificity = number of non-NULL scopes that matched
- highest specificity wins; ties go to the latest effective_start,
  then to the lowest rate id
"""

import logging
from datetime import date
from typing import Any, Iterable, Optional, Sequence

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from commissions.context import ActorContext
from commissions.exceptions import NotFoundError, ValidationFailure
from commissions.models import AuditAction, CommissionRate, Industry, utcnow
from commissions.schemas.rate import RateCreate, RateUpdate
from commissions.utils.audit import log_action

logger = logging.getLogger(__name__)

SCOPE_FIELDS = ("role_id", "installer_id", "state_code")


def _is_candidate(rate: Any, on_date: date, query: dict[str, Any]) -> bool:
    if not rate.is_active:
        return False
    if rate.effective_start > on_date:
        return False
    if rate.effective_end is not None and rate.effective_end < on_date:
        return False
    for field in SCOPE_FIELDS:
        scoped = getattr(rate, field)
        if scoped is not None and scoped != query[field]:
            return False
    return True


def specificity(rate: Any, role_id: Optional[int], installer_id: Optional[int], state_code: Optional[str]) -> int:
    """Count the rate's non-NULL scopes that equal the query values."""
    query = {"role_id": role_id, "installer_id": installer_id, "state_code": state_code}
    return sum(
        1
        for field in SCOPE_FIELDS
        if getattr(rate, field) is not None and getattr(rate, field) == query[field]
    )


def select_best_rate(
    candidates: Iterable[Any],
    on_date: date,
    role_id: Optional[int] = None,
    installer_id: Optional[int] = None,
    state_code: Optional[str] = None,
) -> Optional[Any]:
    """Pick the best matching rate from an in-memory list.

    Pure: filters on activity, date window and scopes, then ranks.
    Insertion order of `candidates` never affects the result.

    Returns:
        The winning rate, or None when nothing applies
    """
    query = {"role_id": role_id, "installer_id": installer_id, "state_code": state_code}
    matching = [r for r in candidates if _is_candidate(r, on_date, query)]
    if not matching:
        return None

    def rank(rate: Any) -> tuple:
        rate_id = rate.id if rate.id is not None else float("inf")
        return (
            -specificity(rate, role_id, installer_id, state_code),
            -rate.effective_start.toordinal(),
            rate_id,
        )

    return min(matching, key=rank)


async def resolve_rate(
    db: AsyncSession,
    industry: Industry,
    user_id: int,
    on_date: date,
    role_id: Optional[int] = None,
    installer_id: Optional[int] = None,
    state_code: Optional[str] = None,
) -> Optional[CommissionRate]:
    """
    Resolve the best matching commission rate.

    Args:
        db: Database session
        industry: Industry the rate must belong to
        user_id: User the rate is for
        on_date: Date the rate must be effective on (usually the sale date)
        role_id: Participant role, or None to only match role wildcards
        installer_id: Installer, or None to only match installer wildcards
        state_code: Customer state, or None to only match state wildcards

    Returns:
        The winning CommissionRate, or None meaning "no commission owed"
    """
    query = (
        select(CommissionRate)
        .where(
            CommissionRate.industry == industry,
            CommissionRate.user_id == user_id,
            CommissionRate.is_active.is_(True),
            CommissionRate.effective_start <= on_date,
            or_(
                CommissionRate.effective_end.is_(None),
                CommissionRate.effective_end >= on_date,
            ),
            or_(CommissionRate.role_id.is_(None), CommissionRate.role_id == role_id),
            or_(CommissionRate.installer_id.is_(None), CommissionRate.installer_id == installer_id),
            or_(CommissionRate.state_code.is_(None), CommissionRate.state_code == state_code),
        )
    )
    result = await db.execute(query)
    candidates: Sequence[CommissionRate] = result.scalars().all()

    rate = select_best_rate(candidates, on_date, role_id, installer_id, state_code)
    if rate is None:
        logger.debug(
            f"No {Industry(industry).value} rate for user {user_id} on {on_date} "
            f"(role={role_id}, installer={installer_id}, state={state_code})"
        )
    return rate


# ── Catalog administration ───────────────────────────────


async def get_rate(db: AsyncSession, industry: Industry, rate_id: int) -> CommissionRate:
    """Load a rate of the given industry or raise NotFoundError."""
    rate = await db.get(CommissionRate, rate_id)
    if rate is None or rate.industry != industry:
        raise NotFoundError("Rate not found", {"rate_id": rate_id})
    return rate


async def list_rates(
    db: AsyncSession,
    industry: Industry,
    user_id: Optional[int] = None,
    role_id: Optional[int] = None,
    state_code: Optional[str] = None,
    is_active: Optional[bool] = None,
    page: int = 1,
    per_page: int = 25,
) -> tuple[list[CommissionRate], int]:
    """List rates of one industry, newest effective start first."""
    query = select(CommissionRate).where(CommissionRate.industry == industry)

    if user_id is not None:
        query = query.where(CommissionRate.user_id == user_id)
    if role_id is not None:
        query = query.where(CommissionRate.role_id == role_id)
    if state_code:
        query = query.where(CommissionRate.state_code == state_code.upper())
    if is_active is not None:
        query = query.where(CommissionRate.is_active.is_(is_active))

    count_query = select(func.count()).select_from(query.subquery())
    total = await db.scalar(count_query)

    query = query.order_by(CommissionRate.effective_start.desc(), CommissionRate.id)
    query = query.offset((page - 1) * per_page).limit(per_page)

    result = await db.execute(query)
    return list(result.scalars().all()), total or 0


async def create_rate(
    db: AsyncSession,
    industry: Industry,
    data: RateCreate,
    actor: ActorContext,
) -> CommissionRate:
    """Create an active rate. effective_start defaults to today."""
    effective_start = data.effective_start or utcnow().date()
    if data.effective_end is not None and data.effective_end < effective_start:
        raise ValidationFailure("effective_end must not be before effective_start")

    rate = CommissionRate(
        industry=industry,
        user_id=data.user_id,
        role_id=data.role_id,
        installer_id=data.installer_id,
        state_code=data.state_code,
        percent_mp1=data.percent_mp1,
        flat_mp1=data.flat_mp1,
        percent_mp2=data.percent_mp2,
        flat_mp2=data.flat_mp2,
        effective_start=effective_start,
        effective_end=data.effective_end,
        is_active=True,
        created_by=actor.user_id,
        updated_by=actor.user_id,
    )
    db.add(rate)
    await db.flush()

    await log_action(
        db,
        actor,
        action=AuditAction.CREATE_RATE,
        target_type="rate",
        target_id=rate.id,
        action_metadata={"industry": Industry(industry).value, "user_id": data.user_id},
    )
    logger.info(f"Created {Industry(industry).value} rate {rate.id} for user {data.user_id}")
    return rate


async def update_rate(
    db: AsyncSession,
    industry: Industry,
    rate_id: int,
    data: RateUpdate,
    actor: ActorContext,
) -> CommissionRate:
    """Apply the fields that were set on `data`."""
    rate = await get_rate(db, industry, rate_id)

    changes = data.model_dump(exclude_unset=True)
    for field, value in changes.items():
        setattr(rate, field, value)

    if rate.effective_end is not None and rate.effective_end < rate.effective_start:
        raise ValidationFailure("effective_end must not be before effective_start")

    rate.updated_by = actor.user_id
    rate.updated_at = utcnow()
    await db.flush()

    await log_action(
        db,
        actor,
        action=AuditAction.UPDATE_RATE,
        target_type="rate",
        target_id=rate.id,
        action_metadata={"fields": sorted(changes)},
    )
    return rate


async def deactivate_rate(
    db: AsyncSession,
    industry: Industry,
    rate_id: int,
    actor: ActorContext,
) -> CommissionRate:
    """Soft-delete a rate. Rates are never removed from the catalog."""
    rate = await get_rate(db, industry, rate_id)
    rate.is_active = False
    rate.updated_by = actor.user_id
    rate.updated_at = utcnow()
    await db.flush()

    await log_action(
        db,
        actor,
        action=AuditAction.DEACTIVATE_RATE,
        target_type="rate",
        target_id=rate.id,
    )
    logger.info(f"Deactivated {Industry(industry).value} rate {rate.id}")
    return rate
