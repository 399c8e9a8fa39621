"""
CommissionRate model: per-user rate records scoped by role, installer and state.
"""

from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy import Boolean, Date, Index, Integer, Numeric, String
from sqlalchemy import Enum as SQLAlchemyEnum
from sqlalchemy.orm import Mapped, mapped_column

from commissions.models.base import Base, TimestampMixin
from commissions.models.enums import Industry


class CommissionRate(Base, TimestampMixin):
    """
    A commission rate for one user in one industry.

    role_id, installer_id and state_code are optional scopes: NULL is a
    wildcard, a value restricts the rate to matching sales. Each milestone
    has its own percent/flat pair. Rates are never hard-deleted; "delete"
    clears is_active.
    """

    __tablename__ = "commission_rates"
    __table_args__ = (
        Index("ix_commission_rates_lookup", "industry", "user_id", "is_active"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    industry: Mapped[Industry] = mapped_column(
        SQLAlchemyEnum(
            Industry,
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
    )
    user_id: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        index=True,
    )

    # Scopes (NULL = any)
    role_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    installer_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    state_code: Mapped[Optional[str]] = mapped_column(String(2), nullable=True)

    # Milestone 1 / milestone 2 components
    percent_mp1: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(7, 4),
        nullable=True,
        comment="Percent of commissionable amount paid at MP1",
    )
    flat_mp1: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(12, 2),
        nullable=True,
        comment="Flat amount paid at MP1",
    )
    percent_mp2: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(7, 4),
        nullable=True,
        comment="Percent of commissionable amount paid at MP2",
    )
    flat_mp2: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(12, 2),
        nullable=True,
        comment="Flat amount paid at MP2",
    )

    effective_start: Mapped[date] = mapped_column(Date, nullable=False)
    effective_end: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )

    created_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    updated_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    def __repr__(self) -> str:
        return (
            f"<CommissionRate(id={self.id}, industry={self.industry}, "
            f"user_id={self.user_id}, active={self.is_active})>"
        )
