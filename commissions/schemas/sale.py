"""
Sale schemas.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from commissions.models.enums import Industry, SaleStatus


class CancelSaleRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)


class SaleResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    industry: Industry
    status: SaleStatus
    sale_date: date
    contract_amount: Optional[Decimal] = None
    cancelled_at: Optional[datetime] = None
    cancelled_by: Optional[int] = None
    cancellation_reason: Optional[str] = None
