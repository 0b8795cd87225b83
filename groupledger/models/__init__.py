"""
GroupLedger - SQLAlchemy Models Package

This package contains all database models for the application.
"""

from groupledger.models.base import BaseModel, TimestampMixin, PostingMixin
from groupledger.models.ledger import (
    AccountType,
    CoaScope,
    JournalEntryStatus,
    LegalEntity,
    ChartOfAccounts,
    Account,
    FiscalCalendar,
    FiscalPeriod,
    JournalEntry,
    JournalLine,
)
from groupledger.models.fx import FxRate, FxRateType
from groupledger.models.consolidation import (
    ConsolidationMethod,
    RecordStatus,
    RunStatus,
    PostingStatus,
    PlaceholderDirection,
    ConsolidationGroup,
    ConsolidationGroupMember,
    GroupCoaMapping,
    EliminationPlaceholder,
    ConsolidationRun,
    ConsolidationRunEntry,
    EliminationEntry,
    EliminationLine,
    ConsolidationAdjustment,
)
from groupledger.models.audit import AuditLog, AuditAction

__all__ = [
    # Base
    "BaseModel",
    "TimestampMixin",
    "PostingMixin",
    # Ledger reference tables
    "AccountType",
    "CoaScope",
    "JournalEntryStatus",
    "LegalEntity",
    "ChartOfAccounts",
    "Account",
    "FiscalCalendar",
    "FiscalPeriod",
    "JournalEntry",
    "JournalLine",
    # FX
    "FxRate",
    "FxRateType",
    # Consolidation
    "ConsolidationMethod",
    "RecordStatus",
    "RunStatus",
    "PostingStatus",
    "PlaceholderDirection",
    "ConsolidationGroup",
    "ConsolidationGroupMember",
    "GroupCoaMapping",
    "EliminationPlaceholder",
    "ConsolidationRun",
    "ConsolidationRunEntry",
    "EliminationEntry",
    "EliminationLine",
    "ConsolidationAdjustment",
    # Audit
    "AuditLog",
    "AuditAction",
]
