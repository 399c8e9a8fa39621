"""
Audit trail rows.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime, Index, Integer, JSON, String, func
from sqlalchemy import Enum as SQLAlchemyEnum
from sqlalchemy.orm import Mapped, mapped_column

from commissions.models.base import Base, utcnow


class AuditAction(str, Enum):
    CREATE_RATE = "create_rate"
    UPDATE_RATE = "update_rate"
    DEACTIVATE_RATE = "deactivate_rate"
    SAVE_ALLOCATIONS = "save_allocations"
    APPROVE_ALLOCATION = "approve_allocation"
    APPROVE_OVERRIDE = "approve_override"
    CREATE_BATCH = "create_batch"
    UPDATE_BATCH = "update_batch"
    ADD_TO_BATCH = "add_to_batch"
    REMOVE_FROM_BATCH = "remove_from_batch"
    TRANSITION_BATCH = "transition_batch"
    CANCEL_SALE = "cancel_sale"


class AuditLog(Base):
    """
    One row per mutating engine call.

    Users live in the host system, so user_id is a plain integer taken
    from the validated ActorContext rather than a foreign key.
    """

    __tablename__ = "audit_logs"
    __table_args__ = (
        Index("ix_audit_logs_target", "target_type", "target_id"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    action: Mapped[AuditAction] = mapped_column(
        SQLAlchemyEnum(
            AuditAction,
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
        index=True,
    )
    target_type: Mapped[Optional[str]] = mapped_column(
        String(50),
        comment="rate, sale, allocation, override or batch",
    )
    target_id: Mapped[Optional[int]] = mapped_column(Integer)
    action_metadata: Mapped[Optional[dict]] = mapped_column(
        JSON,
        comment="JSON snapshot; money and dates stored as strings",
    )
    ip_address: Mapped[Optional[str]] = mapped_column(String(45))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
        index=True,
    )

    def __repr__(self) -> str:
        return f"<AuditLog {self.action} {self.target_type}:{self.target_id} by {self.user_id}>"
