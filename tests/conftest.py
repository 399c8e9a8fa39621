"""
Pytest configuration and fixtures.
"""

from datetime import date
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker

from commissions.context import ActorContext
from commissions.models import (
    Base,
    CommissionRate,
    Customer,
    Employee,
    FiberSale,
    Industry,
    PestSale,
    RoofingSale,
    Sale,
    SaleParticipant,
    SaleStatus,
    SolarSale,
)


# Test database URL (use SQLite for tests)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

SALE_DATE = date(2024, 6, 15)

_DETAIL_MODELS = {
    Industry.SOLAR: SolarSale,
    Industry.PEST: PestSale,
    Industry.ROOFING: RoofingSale,
    Industry.FIBER: FiberSale,
}


@pytest_asyncio.fixture
async def db_engine():
    """Create test database engine."""
    engine = create_async_engine(TEST_DATABASE_URL, echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(db_engine):
    """Create test database session."""
    async_session = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session() as session:
        yield session


@pytest.fixture
def actor():
    return ActorContext(user_id=900, authority_level=5, ip_address="127.0.0.1")


@pytest.fixture
def make_sale(db_session):
    """Factory: a sale with participants, a customer and an industry detail row."""

    async def _make_sale(
        industry=Industry.ROOFING,
        participants=((1, None),),
        contract_amount="10000.00",
        state_code="TX",
        installer_id=None,
        sale_date=SALE_DATE,
        status=SaleStatus.APPROVED,
        **detail_fields,
    ) -> Sale:
        customer = Customer(first_name="Pat", last_name="Doe", state_code=state_code)
        sale = Sale(
            industry=industry,
            status=status,
            sale_date=sale_date,
            contract_amount=Decimal(contract_amount) if contract_amount is not None else None,
            installer_id=installer_id,
            customer=customer,
        )
        for user_id, role_id in participants:
            sale.participants.append(SaleParticipant(user_id=user_id, role_id=role_id))
        detail = _DETAIL_MODELS[industry](**detail_fields)
        setattr(sale, f"{industry.value}_detail", detail)

        db_session.add(sale)
        await db_session.flush()
        return sale

    return _make_sale


@pytest.fixture
def make_rate(db_session):
    """Factory: an active commission rate effective from 2024-01-01."""

    async def _make_rate(
        user_id,
        industry=Industry.ROOFING,
        percent_mp1=None,
        flat_mp1=None,
        percent_mp2=None,
        flat_mp2=None,
        effective_start=date(2024, 1, 1),
        **fields,
    ) -> CommissionRate:
        def dec(value):
            return Decimal(str(value)) if value is not None else None

        rate = CommissionRate(
            industry=industry,
            user_id=user_id,
            percent_mp1=dec(percent_mp1),
            flat_mp1=dec(flat_mp1),
            percent_mp2=dec(percent_mp2),
            flat_mp2=dec(flat_mp2),
            effective_start=effective_start,
            is_active=fields.pop("is_active", True),
            **fields,
        )
        db_session.add(rate)
        await db_session.flush()
        return rate

    return _make_rate


@pytest.fixture
def make_employee(db_session):
    async def _make_employee(user_id, manager_user_id=None, is_active=True) -> Employee:
        employee = Employee(
            user_id=user_id,
            manager_user_id=manager_user_id,
            first_name="Emp",
            last_name=str(user_id),
            is_active=is_active,
        )
        db_session.add(employee)
        await db_session.flush()
        return employee

    return _make_employee
