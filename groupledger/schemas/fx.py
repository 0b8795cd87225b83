"""
GroupLedger - FX Rate Schemas
"""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from groupledger.models.fx import FxRateType


class FxRateItem(BaseModel):
    """One rate in a bulk upsert."""
    rate_date: date
    from_currency_code: str = Field(..., min_length=3, max_length=3)
    to_currency_code: str = Field(..., min_length=3, max_length=3)
    rate_type: FxRateType
    rate: Decimal = Field(..., gt=0)
    source: Optional[str] = Field(None, max_length=100)

    @field_validator("from_currency_code", "to_currency_code")
    @classmethod
    def upper_currency(cls, v: str) -> str:
        return v.strip().upper()

    @field_validator("rate_type", mode="before")
    @classmethod
    def upper_rate_type(cls, v):
        return v.strip().upper() if isinstance(v, str) else v


class FxRateBulkUpsertRequest(BaseModel):
    """Schema for bulk upserting rates."""
    rates: List[FxRateItem] = Field(..., min_length=1)


class FxRateBulkUpsertResponse(BaseModel):
    tenant_id: str
    upserted: int
    inserted: int
    updated: int


class FxRateResponse(BaseModel):
    """Schema for a stored rate."""
    id: UUID
    rate_date: date
    from_currency_code: str
    to_currency_code: str
    rate_type: FxRateType
    rate: float
    source: Optional[str] = None
    is_locked: bool
    created_at: Optional[datetime] = None
