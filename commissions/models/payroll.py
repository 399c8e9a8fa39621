"""
PayrollBatch model.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import Date, DateTime, Integer, Numeric, String
from sqlalchemy import Enum as SQLAlchemyEnum
from sqlalchemy.orm import Mapped, mapped_column

from commissions.models.base import Base, TimestampMixin
from commissions.models.enums import BatchStatus


class PayrollBatch(Base, TimestampMixin):
    """
    A group of approved, unpaid allocations processed together.

    Allocations reference the batch through payroll_batch_id; the batch
    never contains them. total_amount and record_count are a cache of
    the tagged rows and are only written by full recomputation.
    """

    __tablename__ = "payroll_batches"

    id: Mapped[int] = mapped_column(primary_key=True)
    batch_name: Mapped[str] = mapped_column(String(200), nullable=False)
    status: Mapped[BatchStatus] = mapped_column(
        SQLAlchemyEnum(
            BatchStatus,
            values_callable=lambda x: [e.value for e in x],
        ),
        default=BatchStatus.DRAFT,
        nullable=False,
        index=True,
    )

    pay_period_start: Mapped[date] = mapped_column(Date, nullable=False)
    pay_period_end: Mapped[date] = mapped_column(Date, nullable=False)
    pay_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    total_amount: Mapped[Decimal] = mapped_column(
        Numeric(14, 2),
        default=Decimal("0.00"),
        nullable=False,
    )
    record_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    created_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    updated_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # Transition stamps
    submitted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    submitted_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    approved_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    exported_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    exported_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    paid_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    def __repr__(self) -> str:
        return f"<PayrollBatch(id={self.id}, status={self.status}, total={self.total_amount})>"
