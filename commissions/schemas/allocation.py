"""
Allocation, override and commission calculator schemas.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from commissions.models.enums import Industry


class AllocationRef(BaseModel):
    """Points at one participant allocation."""

    industry: Industry
    allocation_id: int = Field(..., gt=0)


class BatchApproveRequest(BaseModel):
    allocations: List[AllocationRef] = Field(..., min_length=1)


class ItemError(BaseModel):
    industry: Optional[Industry] = None
    allocation_id: int
    error: str


class BatchApproveResult(BaseModel):
    """Per-item outcome of a bulk approval; one bad item never aborts the rest."""

    approved: int
    total: int
    errors: List[ItemError] = []


class UnifiedAllocation(BaseModel):
    """A participant allocation from any industry."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    industry: Industry
    sale_id: int
    user_id: int
    milestone_number: int
    allocated_amount: Decimal
    rate_id: Optional[int] = None
    is_approved: bool
    approved_at: Optional[datetime] = None
    approved_by: Optional[int] = None
    is_paid: bool
    paid_at: Optional[datetime] = None
    payroll_batch_id: Optional[int] = None
    created_at: datetime
    updated_at: Optional[datetime] = None


class OverrideResponse(BaseModel):
    """A manager override allocation."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    industry: Industry
    sale_id: int
    user_id: int
    override_level: int
    source_user_id: Optional[int] = None
    milestone_number: Optional[int] = None
    allocated_amount: Decimal
    is_approved: bool
    approved_at: Optional[datetime] = None
    is_paid: bool
    paid_at: Optional[datetime] = None
    payroll_batch_id: Optional[int] = None
    created_at: datetime


class IndustryTotals(BaseModel):
    """Aggregated allocation amounts for one industry."""

    industry: Industry
    pending: Decimal = Decimal("0.00")
    approved_unpaid: Decimal = Decimal("0.00")
    paid: Decimal = Decimal("0.00")
    record_count: int = 0


class AllocationSummary(BaseModel):
    industries: List[IndustryTotals]
    overrides_total: Decimal
    grand_total: Decimal


# ── Commission calculator ────────────────────────────────


class CommissionSaveRequest(BaseModel):
    milestone: int = Field(..., ge=1, le=2)


class ParticipantLine(BaseModel):
    """Priced participant, or a warning when no rate applies."""

    user_id: int
    role_id: Optional[int] = None
    rate_id: Optional[int] = None
    percent_rate: Optional[Decimal] = None
    flat_rate: Optional[Decimal] = None
    allocated_amount: Decimal = Decimal("0.00")
    warning: Optional[str] = None


class OverrideLine(BaseModel):
    source_user_id: int
    manager_user_id: int
    override_level: int
    amount: Decimal
    rate_id: int


class MilestoneTotals(BaseModel):
    participant_allocations: Decimal
    manager_overrides: Decimal
    grand_total: Decimal


class MilestonePreview(BaseModel):
    """What saving a milestone would write, without writing it."""

    sale_id: int
    industry: Industry
    milestone_number: int
    milestone_name: str
    commissionable_amount: Decimal
    participants: List[ParticipantLine]
    overrides: List[OverrideLine]
    totals: MilestoneTotals


class MilestoneSaveResponse(BaseModel):
    sale_id: int
    milestone_number: int
    commissionable_amount: Decimal
    allocations: List[UnifiedAllocation]
    overrides: List[OverrideResponse]
    warnings: List[ParticipantLine]
