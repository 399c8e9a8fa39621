"""
Allocation models: participant commissions and manager overrides.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, Numeric, UniqueConstraint
from sqlalchemy import Enum as SQLAlchemyEnum
from sqlalchemy.orm import Mapped, declared_attr, mapped_column

from commissions.models.base import Base, TimestampMixin
from commissions.models.enums import Industry


class PayableMixin:
    """Approval, payment and payroll batch fields shared by both allocation kinds."""

    @declared_attr
    def industry(cls) -> Mapped[Industry]:
        return mapped_column(
            SQLAlchemyEnum(
                Industry,
                values_callable=lambda x: [e.value for e in x],
            ),
            nullable=False,
            index=True,
        )

    @declared_attr
    def sale_id(cls) -> Mapped[int]:
        return mapped_column(
            ForeignKey("sales.id"),
            nullable=False,
            index=True,
        )

    @declared_attr
    def payroll_batch_id(cls) -> Mapped[Optional[int]]:
        return mapped_column(
            ForeignKey("payroll_batches.id"),
            nullable=True,
            index=True,
        )

    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    allocated_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
    )
    rate_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        comment="Rate the amount was last computed from",
    )

    is_approved: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    approved_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    approved_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    is_paid: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    paid_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )


class CommissionAllocation(PayableMixin, Base, TimestampMixin):
    """
    A participant's commission for one milestone of one sale.

    All four industries share this table; `industry` tells them apart.
    At most one row exists per (sale, user, milestone) and recomputation
    updates it in place.
    """

    __tablename__ = "commission_allocations"
    __table_args__ = (
        UniqueConstraint(
            "sale_id", "user_id", "milestone_number",
            name="uq_commission_allocations_sale_user_milestone",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    milestone_number: Mapped[int] = mapped_column(Integer, nullable=False)

    def __repr__(self) -> str:
        return (
            f"<CommissionAllocation(id={self.id}, industry={self.industry}, "
            f"sale_id={self.sale_id}, user_id={self.user_id}, "
            f"mp={self.milestone_number}, amount={self.allocated_amount})>"
        )


class OverrideAllocation(PayableMixin, Base, TimestampMixin):
    """
    A manager's override on a subordinate's sale.

    override_level counts hops up the chain, 1 being the participant's
    direct manager. Keyed by (sale, manager, level).
    """

    __tablename__ = "override_allocations"
    __table_args__ = (
        UniqueConstraint(
            "sale_id", "user_id", "override_level",
            name="uq_override_allocations_sale_user_level",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    override_level: Mapped[int] = mapped_column(Integer, nullable=False)
    source_user_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        comment="Participant whose manager chain produced this override",
    )
    milestone_number: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        comment="Milestone of the most recent computation",
    )

    def __repr__(self) -> str:
        return (
            f"<OverrideAllocation(id={self.id}, sale_id={self.sale_id}, "
            f"user_id={self.user_id}, level={self.override_level}, "
            f"amount={self.allocated_amount})>"
        )
