"""
GroupLedger - Consolidation Schemas

Pydantic schemas for group setup, runs, eliminations and adjustments.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, ConfigDict, field_validator, model_validator

from groupledger.models.consolidation import (
    ConsolidationMethod,
    PlaceholderDirection,
    RecordStatus,
)
from groupledger.models.fx import FxRateType


def _upper(value: Optional[str]) -> Optional[str]:
    return value.strip().upper() if isinstance(value, str) else value


# =============================================================================
# GROUP SETUP
# =============================================================================

class GroupUpsert(BaseModel):
    """Schema for creating or updating a consolidation group."""
    code: str = Field(..., min_length=1, max_length=50)
    name: str = Field(..., min_length=1, max_length=255)
    calendar_id: UUID
    presentation_currency_code: str = Field(..., min_length=3, max_length=3)
    group_company_id: Optional[UUID] = None

    @field_validator("presentation_currency_code")
    @classmethod
    def upper_currency(cls, v: str) -> str:
        return _upper(v)


class GroupResponse(BaseModel):
    """Schema for consolidation group response."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    tenant_id: UUID
    group_company_id: Optional[UUID] = None
    calendar_id: UUID
    code: str
    name: str
    presentation_currency_code: str
    status: RecordStatus
    created_at: Optional[datetime] = None


class MemberUpsert(BaseModel):
    """
    Schema for a membership window.

    ownership_pct is a fraction in [0, 1]; it only weights amounts for
    PROPORTIONATE members.
    """
    legal_entity_id: UUID
    consolidation_method: ConsolidationMethod = ConsolidationMethod.FULL
    ownership_pct: Decimal = Field(Decimal("1"), ge=0, le=1)
    effective_from: date
    effective_to: Optional[date] = None

    @field_validator("consolidation_method", mode="before")
    @classmethod
    def upper_method(cls, v):
        return _upper(v)

    @model_validator(mode="after")
    def check_window(self):
        if self.effective_to is not None and self.effective_to < self.effective_from:
            raise ValueError("effective_to must not be before effective_from")
        return self


class CoaMappingUpsert(BaseModel):
    """Schema for mapping a local chart onto the group chart."""
    legal_entity_id: UUID
    group_coa_id: UUID
    local_coa_id: UUID
    status: RecordStatus = RecordStatus.ACTIVE

    @field_validator("status", mode="before")
    @classmethod
    def upper_status(cls, v):
        return _upper(v)


class CoaMappingResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    consolidation_group_id: UUID
    legal_entity_id: UUID
    group_coa_id: UUID
    local_coa_id: UUID
    status: RecordStatus


class EliminationPlaceholderUpsert(BaseModel):
    """Schema for an elimination placeholder."""
    placeholder_code: str = Field(..., min_length=1, max_length=50)
    name: str = Field(..., min_length=1, max_length=255)
    account_id: Optional[UUID] = None
    default_direction: PlaceholderDirection = PlaceholderDirection.AUTO
    description: Optional[str] = None
    is_active: bool = True

    @field_validator("default_direction", mode="before")
    @classmethod
    def upper_direction(cls, v):
        return _upper(v)


class EliminationPlaceholderResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    consolidation_group_id: UUID
    placeholder_code: str
    name: str
    account_id: Optional[UUID] = None
    default_direction: PlaceholderDirection
    description: Optional[str] = None
    is_active: bool


# =============================================================================
# RUNS
# =============================================================================

class RunCreate(BaseModel):
    """Schema for creating a consolidation run."""
    consolidation_group_id: UUID
    fiscal_period_id: UUID
    run_name: str = Field(..., min_length=1, max_length=255)
    presentation_currency_code: Optional[str] = Field(None, min_length=3, max_length=3)

    @field_validator("presentation_currency_code")
    @classmethod
    def upper_currency(cls, v: Optional[str]) -> Optional[str]:
        return _upper(v)


class RunExecuteRequest(BaseModel):
    """Rate type preferred when translating member balances."""
    rate_type: Optional[FxRateType] = None

    @field_validator("rate_type", mode="before")
    @classmethod
    def upper_rate_type(cls, v):
        return _upper(v)


# =============================================================================
# ELIMINATIONS & ADJUSTMENTS
# =============================================================================

class EliminationLineCreate(BaseModel):
    account_id: UUID
    legal_entity_id: Optional[UUID] = None
    counterparty_legal_entity_id: Optional[UUID] = None
    debit_amount: Decimal = Field(Decimal("0"), ge=0)
    credit_amount: Decimal = Field(Decimal("0"), ge=0)
    currency_code: Optional[str] = Field(None, min_length=3, max_length=3)
    description: Optional[str] = Field(None, max_length=500)

    @field_validator("currency_code")
    @classmethod
    def upper_currency(cls, v: Optional[str]) -> Optional[str]:
        return _upper(v)


class EliminationEntryCreate(BaseModel):
    """Schema for a draft elimination entry. Balance is checked on posting."""
    description: str = Field(..., min_length=1, max_length=500)
    reference_no: Optional[str] = Field(None, max_length=100)
    lines: List[EliminationLineCreate] = Field(..., min_length=1)


class AdjustmentCreate(BaseModel):
    """Schema for a draft top-side adjustment. One-sidedness is checked on posting."""
    account_id: UUID
    legal_entity_id: Optional[UUID] = None
    adjustment_type: Optional[str] = Field(None, max_length=50)
    debit_amount: Decimal = Field(Decimal("0"), ge=0)
    credit_amount: Decimal = Field(Decimal("0"), ge=0)
    currency_code: Optional[str] = Field(None, min_length=3, max_length=3)
    description: str = Field(..., min_length=1, max_length=500)

    @field_validator("currency_code")
    @classmethod
    def upper_currency(cls, v: Optional[str]) -> Optional[str]:
        return _upper(v)


class PostingResponse(BaseModel):
    """Result of posting an elimination entry or adjustment."""
    id: UUID
    idempotent: bool
    status: str
    posted_by_user_id: Optional[UUID] = None
    posted_at: Optional[datetime] = None
