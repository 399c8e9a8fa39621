"""
Audit trail helpers.

Every mutating engine operation leaves an AuditLog row naming the actor,
the entity touched and a JSON snapshot of what changed. The row is added
to the caller's session and committed with the rest of the operation.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from commissions.context import ActorContext
from commissions.models.audit import AuditAction, AuditLog


def _json_safe(value: Any) -> Any:
    """Make metadata storable in a JSON column (money stays exact as text)."""
    if isinstance(value, dict):
        return {str(k): _json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_json_safe(v) for v in value]
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return value


async def log_action(
    db: AsyncSession,
    actor: ActorContext,
    action: AuditAction,
    target_type: Optional[str] = None,
    target_id: Optional[int] = None,
    action_metadata: Optional[dict[str, Any]] = None,
) -> AuditLog:
    """
    Record an auditable action.

    Args:
        db: Database session (the entry is added, not committed)
        actor: Caller the action is attributed to
        action: Type of action being performed
        target_type: Kind of entity affected ("rate", "sale", "batch", ...)
        target_id: ID of the affected entity
        action_metadata: Extra context; Decimals and dates are stored as text

    Returns:
        The pending AuditLog entry
    """
    entry = AuditLog(
        user_id=actor.user_id,
        action=action,
        target_type=target_type,
        target_id=target_id,
        action_metadata=_json_safe(action_metadata) if action_metadata else None,
        ip_address=actor.ip_address,
    )
    db.add(entry)
    return entry


def get_client_ip(request) -> Optional[str]:
    """
    Best-effort client address for the audit trail.

    Proxies put the original client first in X-Forwarded-For; X-Real-IP
    is used when only that header is set.
    """
    for header in ("X-Forwarded-For", "X-Real-IP"):
        value = request.headers.get(header)
        if value:
            return value.split(",")[0].strip()

    client = getattr(request, "client", None)
    return client.host if client else None
