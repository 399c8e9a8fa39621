"""
Sale models: the sale itself, its participants, customer and industry details.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional, Union

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy import Enum as SQLAlchemyEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from commissions.models.base import Base, TimestampMixin
from commissions.models.enums import Industry, SaleStatus


class Customer(Base, TimestampMixin):
    """Customer of a sale. Only the state code matters to rate resolution."""

    __tablename__ = "customers"

    id: Mapped[int] = mapped_column(primary_key=True)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    address_line1: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    city: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    state_code: Mapped[Optional[str]] = mapped_column(String(2), nullable=True)

    def __repr__(self) -> str:
        return f"<Customer(id={self.id}, state_code={self.state_code})>"


class Sale(Base, TimestampMixin):
    """
    An industry-tagged sale.

    Exactly one of the industry detail relationships is populated, the
    one matching `industry`. Commission allocations are owned by the sale.
    """

    __tablename__ = "sales"

    id: Mapped[int] = mapped_column(primary_key=True)
    industry: Mapped[Industry] = mapped_column(
        SQLAlchemyEnum(
            Industry,
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
        index=True,
    )
    status: Mapped[SaleStatus] = mapped_column(
        SQLAlchemyEnum(
            SaleStatus,
            values_callable=lambda x: [e.value for e in x],
        ),
        default=SaleStatus.PENDING,
        nullable=False,
        index=True,
    )
    sale_date: Mapped[date] = mapped_column(Date, nullable=False)
    contract_amount: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(12, 2),
        nullable=True,
    )
    customer_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("customers.id"),
        nullable=True,
    )
    installer_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        comment="Installer/partner, used as a rate scope",
    )

    # Cancellation
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    cancelled_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    cancellation_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Relationships
    customer: Mapped[Optional["Customer"]] = relationship("Customer")
    participants: Mapped[List["SaleParticipant"]] = relationship(
        "SaleParticipant",
        back_populates="sale",
        cascade="all, delete-orphan",
        order_by="SaleParticipant.id",
    )
    solar_detail: Mapped[Optional["SolarSale"]] = relationship(
        "SolarSale", uselist=False, cascade="all, delete-orphan",
    )
    pest_detail: Mapped[Optional["PestSale"]] = relationship(
        "PestSale", uselist=False, cascade="all, delete-orphan",
    )
    roofing_detail: Mapped[Optional["RoofingSale"]] = relationship(
        "RoofingSale", uselist=False, cascade="all, delete-orphan",
    )
    fiber_detail: Mapped[Optional["FiberSale"]] = relationship(
        "FiberSale", uselist=False, cascade="all, delete-orphan",
    )

    @property
    def state_code(self) -> Optional[str]:
        return self.customer.state_code if self.customer else None

    @property
    def detail(self) -> Optional[Union["SolarSale", "PestSale", "RoofingSale", "FiberSale"]]:
        """The industry detail record matching this sale's industry."""
        return getattr(self, f"{Industry(self.industry).value}_detail")

    def __repr__(self) -> str:
        return f"<Sale(id={self.id}, industry={self.industry}, status={self.status})>"


class SaleParticipant(Base):
    """A user credited on a sale in some role (closer, setter, ...)."""

    __tablename__ = "sale_participants"

    id: Mapped[int] = mapped_column(primary_key=True)
    sale_id: Mapped[int] = mapped_column(
        ForeignKey("sales.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    role_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    split_percent: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(5, 2),
        nullable=True,
    )
    is_primary: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )

    sale: Mapped["Sale"] = relationship("Sale", back_populates="participants")

    def __repr__(self) -> str:
        return f"<SaleParticipant(sale_id={self.sale_id}, user_id={self.user_id})>"


class SolarSale(Base):
    """Solar-specific sale details."""

    __tablename__ = "solar_sales"

    sale_id: Mapped[int] = mapped_column(
        ForeignKey("sales.id", ondelete="CASCADE"),
        primary_key=True,
    )
    system_size_kw: Mapped[Optional[Decimal]] = mapped_column(Numeric(8, 3), nullable=True)
    system_sold_value: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    adder_total: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    purchase_or_lease: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    install_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)


class PestSale(Base):
    """Pest-control-specific sale details."""

    __tablename__ = "pest_sales"

    sale_id: Mapped[int] = mapped_column(
        ForeignKey("sales.id", ondelete="CASCADE"),
        primary_key=True,
    )
    service_type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    contract_length_months: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    initial_service_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    recurring_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    contract_total_value: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)


class RoofingSale(Base):
    """Roofing-specific sale details, including received milestone payments."""

    __tablename__ = "roofing_sales"

    sale_id: Mapped[int] = mapped_column(
        ForeignKey("sales.id", ondelete="CASCADE"),
        primary_key=True,
    )
    project_value: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    frontend_received_amount: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(12, 2),
        nullable=True,
        comment="Amount received at MP1",
    )
    backend_received_amount: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(12, 2),
        nullable=True,
        comment="Amount received at MP2",
    )
    completion_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)


class FiberSale(Base):
    """Fiber-internet-specific sale details."""

    __tablename__ = "fiber_sales"

    sale_id: Mapped[int] = mapped_column(
        ForeignKey("sales.id", ondelete="CASCADE"),
        primary_key=True,
    )
    isp: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    fiber_plan: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    install_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
