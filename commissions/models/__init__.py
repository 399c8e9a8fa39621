"""
Database models for the commission engine.

All models are exported here for convenient imports:
    from commissions.models import CommissionRate, Sale, PayrollBatch, etc.
"""

from commissions.models.allocation import CommissionAllocation, OverrideAllocation
from commissions.models.audit import AuditAction, AuditLog
from commissions.models.base import Base, TimestampMixin, utcnow
from commissions.models.employee import Employee
from commissions.models.enums import BatchStatus, Industry, SaleStatus
from commissions.models.payroll import PayrollBatch
from commissions.models.rate import CommissionRate
from commissions.models.sale import (
    Customer,
    FiberSale,
    PestSale,
    RoofingSale,
    Sale,
    SaleParticipant,
    SolarSale,
)

__all__ = [
    # Base
    "Base",
    "TimestampMixin",
    "utcnow",
    # Enums
    "Industry",
    "SaleStatus",
    "BatchStatus",
    # Rates
    "CommissionRate",
    # Sales
    "Customer",
    "Sale",
    "SaleParticipant",
    "SolarSale",
    "PestSale",
    "RoofingSale",
    "FiberSale",
    # Hierarchy
    "Employee",
    # Allocations
    "CommissionAllocation",
    "OverrideAllocation",
    # Payroll
    "PayrollBatch",
    # Audit
    "AuditLog",
    "AuditAction",
]
