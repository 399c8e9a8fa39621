"""Pydantic schemas for request/response validation."""

from commissions.schemas.allocation import (
    AllocationRef,
    AllocationSummary,
    BatchApproveRequest,
    BatchApproveResult,
    CommissionSaveRequest,
    IndustryTotals,
    ItemError,
    MilestonePreview,
    MilestoneSaveResponse,
    OverrideLine,
    OverrideResponse,
    ParticipantLine,
    UnifiedAllocation,
)
from commissions.schemas.common import Page
from commissions.schemas.payroll import (
    BatchCreate,
    BatchDetail,
    BatchItemsRequest,
    BatchItemsResult,
    BatchResponse,
    BatchUpdate,
    SkippedItem,
)
from commissions.schemas.rate import RateCreate, RateResponse, RateUpdate
from commissions.schemas.sale import CancelSaleRequest, SaleResponse

__all__ = [
    # Common
    "Page",
    # Rates
    "RateCreate",
    "RateUpdate",
    "RateResponse",
    # Allocations
    "AllocationRef",
    "AllocationSummary",
    "BatchApproveRequest",
    "BatchApproveResult",
    "IndustryTotals",
    "ItemError",
    "OverrideResponse",
    "UnifiedAllocation",
    # Calculator
    "CommissionSaveRequest",
    "MilestonePreview",
    "MilestoneSaveResponse",
    "OverrideLine",
    "ParticipantLine",
    # Payroll
    "BatchCreate",
    "BatchUpdate",
    "BatchResponse",
    "BatchDetail",
    "BatchItemsRequest",
    "BatchItemsResult",
    "SkippedItem",
    # Sales
    "CancelSaleRequest",
    "SaleResponse",
]
