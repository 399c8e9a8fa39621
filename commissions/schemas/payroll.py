"""
Payroll batch schemas.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from commissions.models.enums import BatchStatus, Industry
from commissions.schemas.allocation import AllocationRef, OverrideResponse, UnifiedAllocation


class BatchCreate(BaseModel):
    """New batch; every field has a default."""

    batch_name: Optional[str] = Field(None, max_length=200)
    pay_period_start: Optional[date] = None
    pay_period_end: Optional[date] = None
    pay_date: Optional[date] = None

    @model_validator(mode="after")
    def check_period(self) -> "BatchCreate":
        if (
            self.pay_period_start is not None
            and self.pay_period_end is not None
            and self.pay_period_end < self.pay_period_start
        ):
            raise ValueError("pay_period_end must not be before pay_period_start")
        return self


class BatchUpdate(BaseModel):
    batch_name: Optional[str] = Field(None, min_length=1, max_length=200)
    pay_period_start: Optional[date] = None
    pay_period_end: Optional[date] = None
    pay_date: Optional[date] = None


class BatchResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    batch_name: str
    status: BatchStatus
    pay_period_start: date
    pay_period_end: date
    pay_date: Optional[date] = None
    total_amount: Decimal
    record_count: int
    created_by: Optional[int] = None
    created_at: datetime
    submitted_at: Optional[datetime] = None
    submitted_by: Optional[int] = None
    approved_at: Optional[datetime] = None
    approved_by: Optional[int] = None
    exported_at: Optional[datetime] = None
    exported_by: Optional[int] = None
    paid_at: Optional[datetime] = None
    paid_by: Optional[int] = None
    cancelled_at: Optional[datetime] = None
    cancelled_by: Optional[int] = None


class BatchDetail(BaseModel):
    """A batch with everything tagged to it."""

    batch: BatchResponse
    allocations: List[UnifiedAllocation]
    overrides: List[OverrideResponse]


class BatchItemsRequest(BaseModel):
    """Allocations and overrides to attach to or detach from a batch."""

    allocations: List[AllocationRef] = []
    override_ids: List[int] = []

    @model_validator(mode="after")
    def not_empty(self) -> "BatchItemsRequest":
        if not self.allocations and not self.override_ids:
            raise ValueError("Nothing to add or remove")
        return self


class SkippedItem(BaseModel):
    kind: Literal["allocation", "override"]
    id: int
    industry: Optional[Industry] = None
    reason: str


class BatchItemsResult(BaseModel):
    """Outcome of attaching or detaching items, with fresh batch totals."""

    batch_id: int
    changed: int
    skipped: List[SkippedItem] = []
    total_amount: Decimal
    record_count: int
