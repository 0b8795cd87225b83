"""
GroupLedger - FX Rate Model

Exchange rates per tenant, currency pair, rate type and date.
"""

import uuid
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Boolean, Date, Numeric, String, Uuid,
    Enum as SQLEnum, UniqueConstraint, Index,
)
from sqlalchemy.orm import Mapped, mapped_column

from groupledger.models.base import BaseModel


class FxRateType(str, Enum):
    """Stored rate types. IDENTITY is never stored, only returned for same-currency pairs."""
    SPOT = "SPOT"
    AVERAGE = "AVERAGE"
    CLOSING = "CLOSING"


class FxRate(BaseModel):
    """
    A conversion rate from one currency to another on a given date.

    Several rate types may exist for the same pair and date; the resolver
    chooses between them using a caller-supplied preference order.
    """

    __tablename__ = "fx_rates"

    tenant_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    rate_date: Mapped[date] = mapped_column(Date, nullable=False)
    from_currency_code: Mapped[str] = mapped_column(String(3), nullable=False)
    to_currency_code: Mapped[str] = mapped_column(String(3), nullable=False)
    rate_type: Mapped[FxRateType] = mapped_column(
        SQLEnum(FxRateType, name="fxratetype"),
        nullable=False,
    )
    rate: Mapped[Decimal] = mapped_column(Numeric(precision=20, scale=10), nullable=False)
    source: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    is_locked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    __table_args__ = (
        UniqueConstraint(
            'tenant_id', 'rate_date', 'from_currency_code', 'to_currency_code', 'rate_type',
            name='uq_fx_rate',
        ),
        Index('ix_fx_rate_lookup', 'tenant_id', 'from_currency_code', 'to_currency_code', 'rate_date'),
    )

    def __repr__(self) -> str:
        return (
            f"<FxRate({self.from_currency_code}->{self.to_currency_code} "
            f"{self.rate_type.value if self.rate_type else None} {self.rate_date}: {self.rate})>"
        )
