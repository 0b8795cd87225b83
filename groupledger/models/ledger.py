"""
GroupLedger - Ledger Reference Models

Tables owned by the surrounding ERP (legal entities, charts of accounts,
fiscal calendars and the posted general ledger). The consolidation engine
only reads them; they are mapped here so the engine can join against them.
"""

import uuid
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from sqlalchemy import (
    Boolean, Date, ForeignKey, Integer, Numeric, String, Uuid,
    Enum as SQLEnum, UniqueConstraint, Index,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from groupledger.models.base import BaseModel


# =============================================================================
# ENUMS
# =============================================================================

class AccountType(str, Enum):
    """Main account types."""
    ASSET = "ASSET"
    LIABILITY = "LIABILITY"
    EQUITY = "EQUITY"
    REVENUE = "REVENUE"
    EXPENSE = "EXPENSE"


class CoaScope(str, Enum):
    """Whether a chart of accounts belongs to one legal entity or to the group."""
    LEGAL_ENTITY = "LEGAL_ENTITY"
    GROUP = "GROUP"


class JournalEntryStatus(str, Enum):
    """Status of a journal entry in the local ledger."""
    DRAFT = "DRAFT"
    POSTED = "POSTED"
    REVERSED = "REVERSED"


# =============================================================================
# ORGANISATION
# =============================================================================

class LegalEntity(BaseModel):
    """A company that keeps its own books in a functional currency."""

    __tablename__ = "legal_entities"

    tenant_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    code: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    functional_currency_code: Mapped[str] = mapped_column(String(3), nullable=False)

    __table_args__ = (
        UniqueConstraint('tenant_id', 'code', name='uq_legal_entity_code'),
    )


# =============================================================================
# CHART OF ACCOUNTS
# =============================================================================

class ChartOfAccounts(BaseModel):
    """A chart of accounts, either local to a legal entity or group-wide."""

    __tablename__ = "charts_of_accounts"

    tenant_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    legal_entity_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("legal_entities.id", ondelete="CASCADE"),
        nullable=True,
    )
    scope: Mapped[CoaScope] = mapped_column(
        SQLEnum(CoaScope, name="coascope"),
        default=CoaScope.LEGAL_ENTITY,
        nullable=False,
    )
    code: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    accounts: Mapped[List["Account"]] = relationship("Account", back_populates="chart")


class Account(BaseModel):
    """A single ledger account within a chart of accounts."""

    __tablename__ = "accounts"

    tenant_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    coa_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("charts_of_accounts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    code: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    account_type: Mapped[AccountType] = mapped_column(
        SQLEnum(AccountType, name="accounttype"),
        nullable=False,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    chart: Mapped["ChartOfAccounts"] = relationship("ChartOfAccounts", back_populates="accounts")

    __table_args__ = (
        UniqueConstraint('coa_id', 'code', name='uq_account_code'),
    )


# =============================================================================
# FISCAL CALENDAR
# =============================================================================

class FiscalCalendar(BaseModel):
    """A fiscal calendar shared by the entities and groups that report on it."""

    __tablename__ = "fiscal_calendars"

    tenant_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    code: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)


class FiscalPeriod(BaseModel):
    """One period (usually a month) of a fiscal calendar."""

    __tablename__ = "fiscal_periods"

    calendar_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("fiscal_calendars.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    fiscal_year: Mapped[int] = mapped_column(Integer, nullable=False)
    period_no: Mapped[int] = mapped_column(Integer, nullable=False)
    period_name: Mapped[str] = mapped_column(String(50), nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)

    __table_args__ = (
        UniqueConstraint('calendar_id', 'fiscal_year', 'period_no', name='uq_fiscal_period'),
    )


# =============================================================================
# POSTED GENERAL LEDGER
# =============================================================================

class JournalEntry(BaseModel):
    """Journal entry header produced by the posting engine."""

    __tablename__ = "journal_entries"

    tenant_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    legal_entity_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("legal_entities.id", ondelete="RESTRICT"),
        nullable=False,
    )
    fiscal_period_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("fiscal_periods.id", ondelete="RESTRICT"),
        nullable=False,
    )
    entry_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[JournalEntryStatus] = mapped_column(
        SQLEnum(JournalEntryStatus, name="journalentrystatus"),
        default=JournalEntryStatus.DRAFT,
        nullable=False,
    )

    lines: Mapped[List["JournalLine"]] = relationship(
        "JournalLine",
        back_populates="journal_entry",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index('ix_je_entity_period', 'legal_entity_id', 'fiscal_period_id'),
    )


class JournalLine(BaseModel):
    """Journal line amounts in the legal entity's base (functional) currency."""

    __tablename__ = "journal_lines"

    journal_entry_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("journal_entries.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    account_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("accounts.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    debit_base: Mapped[Decimal] = mapped_column(
        Numeric(precision=20, scale=6),
        default=Decimal("0"),
        nullable=False,
    )
    credit_base: Mapped[Decimal] = mapped_column(
        Numeric(precision=20, scale=6),
        default=Decimal("0"),
        nullable=False,
    )

    journal_entry: Mapped["JournalEntry"] = relationship("JournalEntry", back_populates="lines")
