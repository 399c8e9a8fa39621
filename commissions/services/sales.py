"""
Sale loading and cancellation.
"""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from commissions.context import ActorContext
from commissions.exceptions import NotFoundError, ValidationFailure
from commissions.models import AuditAction, Sale, SaleStatus, utcnow
from commissions.utils.audit import log_action

logger = logging.getLogger(__name__)


async def load_sale(db: AsyncSession, sale_id: int, for_update: bool = False) -> Sale:
    """
    Load a sale with everything commission math needs.

    With for_update the sale row is locked (SELECT ... FOR UPDATE) until
    the surrounding transaction ends, which serializes recalculations of
    the same sale.

    Raises:
        NotFoundError: the sale does not exist
    """
    query = (
        select(Sale)
        .options(
            selectinload(Sale.participants),
            selectinload(Sale.customer),
            selectinload(Sale.solar_detail),
            selectinload(Sale.pest_detail),
            selectinload(Sale.roofing_detail),
            selectinload(Sale.fiber_detail),
        )
        .where(Sale.id == sale_id)
        .execution_options(populate_existing=True)
    )
    if for_update:
        query = query.with_for_update(of=Sale)

    result = await db.execute(query)
    sale = result.scalar_one_or_none()
    if sale is None:
        raise NotFoundError(f"Sale {sale_id} not found", {"sale_id": sale_id})
    return sale


async def cancel_sale(
    db: AsyncSession,
    sale_id: int,
    reason: str,
    actor: ActorContext,
) -> Sale:
    """Mark a sale CANCELLED. Cancelling twice is rejected."""
    sale = await load_sale(db, sale_id, for_update=True)
    if sale.status == SaleStatus.CANCELLED:
        raise ValidationFailure("Sale is already cancelled", {"sale_id": sale_id})

    now = utcnow()
    sale.status = SaleStatus.CANCELLED
    sale.cancelled_at = now
    sale.cancelled_by = actor.user_id
    sale.cancellation_reason = reason
    sale.updated_at = now
    await db.flush()

    await log_action(
        db,
        actor,
        action=AuditAction.CANCEL_SALE,
        target_type="sale",
        target_id=sale.id,
        action_metadata={"reason": reason},
    )
    logger.info(f"Sale {sale.id} cancelled by user {actor.user_id}")
    return sale
