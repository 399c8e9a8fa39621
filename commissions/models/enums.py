"""
Enumerations shared by sales, rates, allocations and payroll batches.
"""

from enum import Enum


class Industry(str, Enum):
    """Industry vertical a sale, rate or allocation belongs to."""
    SOLAR = "solar"
    PEST = "pest"
    ROOFING = "roofing"
    FIBER = "fiber"


class SaleStatus(str, Enum):
    """Lifecycle status of a sale."""
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    INSTALLED = "INSTALLED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    ON_HOLD = "ON_HOLD"


class BatchStatus(str, Enum):
    """Payroll batch lifecycle status."""
    DRAFT = "DRAFT"              # Open, allocations can be attached
    SUBMITTED = "SUBMITTED"      # Waiting for approval
    APPROVED = "APPROVED"        # Approved, ready to export
    EXPORTED = "EXPORTED"        # Sent to the payroll provider
    PAID = "PAID"                # Terminal
    CANCELLED = "CANCELLED"      # Terminal

    @property
    def is_terminal(self) -> bool:
        return self in (BatchStatus.PAID, BatchStatus.CANCELLED)
