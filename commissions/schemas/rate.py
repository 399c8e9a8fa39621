"""
Commission rate schemas.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from commissions.models.enums import Industry


class RateCreate(BaseModel):
    """Request to create a commission rate."""

    user_id: int = Field(..., gt=0)
    role_id: Optional[int] = None
    installer_id: Optional[int] = None
    state_code: Optional[str] = Field(None, min_length=2, max_length=2)
    percent_mp1: Optional[Decimal] = Field(None, ge=0, le=100)
    flat_mp1: Optional[Decimal] = Field(None, ge=0)
    percent_mp2: Optional[Decimal] = Field(None, ge=0, le=100)
    flat_mp2: Optional[Decimal] = Field(None, ge=0)
    effective_start: Optional[date] = None
    effective_end: Optional[date] = None

    @field_validator("state_code")
    @classmethod
    def upper_state(cls, v: Optional[str]) -> Optional[str]:
        return v.upper() if v else v

    @model_validator(mode="after")
    def check_window(self) -> "RateCreate":
        if (
            self.effective_start is not None
            and self.effective_end is not None
            and self.effective_end < self.effective_start
        ):
            raise ValueError("effective_end must not be before effective_start")
        return self


class RateUpdate(BaseModel):
    """Partial update; only fields that are set are applied."""

    role_id: Optional[int] = None
    installer_id: Optional[int] = None
    state_code: Optional[str] = Field(None, min_length=2, max_length=2)
    percent_mp1: Optional[Decimal] = Field(None, ge=0, le=100)
    flat_mp1: Optional[Decimal] = Field(None, ge=0)
    percent_mp2: Optional[Decimal] = Field(None, ge=0, le=100)
    flat_mp2: Optional[Decimal] = Field(None, ge=0)
    is_active: Optional[bool] = None
    effective_start: Optional[date] = None
    effective_end: Optional[date] = None

    @field_validator("state_code")
    @classmethod
    def upper_state(cls, v: Optional[str]) -> Optional[str]:
        return v.upper() if v else v


class RateResponse(BaseModel):
    """Commission rate as returned by the catalog."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    industry: Industry
    user_id: int
    role_id: Optional[int]
    installer_id: Optional[int]
    state_code: Optional[str]
    percent_mp1: Optional[Decimal]
    flat_mp1: Optional[Decimal]
    percent_mp2: Optional[Decimal]
    flat_mp2: Optional[Decimal]
    is_active: bool
    effective_start: date
    effective_end: Optional[date]
    created_at: datetime
    updated_at: Optional[datetime]
