"""
GroupLedger - Consolidation Models

Groups, memberships, chart mappings, consolidation runs and the
eliminations/adjustments that are layered on top of a run.
"""

from enum import Enum

from sqlalchemy import (
    Column, String, Text, Boolean, Date, DateTime, Numeric, Integer, Uuid,
    ForeignKey, Enum as SQLEnum, UniqueConstraint, Index,
)
from sqlalchemy.orm import relationship

from groupledger.models.base import BaseModel, PostingMixin


# ===========================================
# ENUMS
# ===========================================

class ConsolidationMethod(str, Enum):
    """How much of a member's ledger flows into the group."""
    FULL = "FULL"  # 100% of amounts
    PROPORTIONATE = "PROPORTIONATE"  # ownership share of amounts


class RecordStatus(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


class RunStatus(str, Enum):
    """Consolidation run lifecycle."""
    DRAFT = "DRAFT"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    LOCKED = "LOCKED"


class PostingStatus(str, Enum):
    """Lifecycle of eliminations and adjustments."""
    DRAFT = "DRAFT"
    POSTED = "POSTED"


class PlaceholderDirection(str, Enum):
    AUTO = "AUTO"
    DEBIT = "DEBIT"
    CREDIT = "CREDIT"


# ===========================================
# GROUP SETUP
# ===========================================

class ConsolidationGroup(BaseModel):
    """
    A reporting group consolidated into one presentation currency.
    """
    __tablename__ = "consolidation_groups"

    tenant_id = Column(Uuid, nullable=False, index=True)
    group_company_id = Column(Uuid, nullable=True, comment="Parent company owning the group")
    calendar_id = Column(Uuid, ForeignKey("fiscal_calendars.id"), nullable=False)

    code = Column(String(50), nullable=False)
    name = Column(String(255), nullable=False)
    presentation_currency_code = Column(String(3), nullable=False)
    status = Column(SQLEnum(RecordStatus, name="recordstatus"), default=RecordStatus.ACTIVE, nullable=False)

    # Relationships
    members = relationship("ConsolidationGroupMember", back_populates="group", cascade="all, delete-orphan")

    __table_args__ = (
        UniqueConstraint('tenant_id', 'code', name='uq_consolidation_group_code'),
    )


class ConsolidationGroupMember(BaseModel):
    """
    Membership of a legal entity in a group for an effective date window.

    effective_to NULL means open-ended. The same legal entity may appear in
    several rows as long as their windows do not overlap.
    """
    __tablename__ = "consolidation_group_members"

    consolidation_group_id = Column(Uuid, ForeignKey("consolidation_groups.id", ondelete="CASCADE"), nullable=False)
    legal_entity_id = Column(Uuid, ForeignKey("legal_entities.id"), nullable=False)

    consolidation_method = Column(
        SQLEnum(ConsolidationMethod, name="consolidationmethod"),
        default=ConsolidationMethod.FULL,
        nullable=False,
    )
    ownership_pct = Column(Numeric(9, 6), default=1, nullable=False, comment="Fraction in [0, 1]")

    effective_from = Column(Date, nullable=False)
    effective_to = Column(Date, nullable=True)

    group = relationship("ConsolidationGroup", back_populates="members")

    __table_args__ = (
        UniqueConstraint('consolidation_group_id', 'legal_entity_id', 'effective_from', name='uq_group_member_window'),
    )


class GroupCoaMapping(BaseModel):
    """
    Maps a legal entity's local chart of accounts to the group chart.
    Accounts are matched by code at translation time.
    """
    __tablename__ = "group_coa_mappings"

    tenant_id = Column(Uuid, nullable=False, index=True)
    consolidation_group_id = Column(Uuid, ForeignKey("consolidation_groups.id", ondelete="CASCADE"), nullable=False)
    legal_entity_id = Column(Uuid, ForeignKey("legal_entities.id"), nullable=False)
    group_coa_id = Column(Uuid, ForeignKey("charts_of_accounts.id"), nullable=False)
    local_coa_id = Column(Uuid, ForeignKey("charts_of_accounts.id"), nullable=False)

    status = Column(SQLEnum(RecordStatus, name="recordstatus"), default=RecordStatus.ACTIVE, nullable=False)

    __table_args__ = (
        UniqueConstraint(
            'consolidation_group_id', 'legal_entity_id', 'group_coa_id', 'local_coa_id',
            name='uq_group_coa_mapping',
        ),
    )


class EliminationPlaceholder(BaseModel):
    """Reusable elimination template for a group (e.g. IC receivable/payable)."""
    __tablename__ = "elimination_placeholders"

    tenant_id = Column(Uuid, nullable=False)
    consolidation_group_id = Column(Uuid, ForeignKey("consolidation_groups.id", ondelete="CASCADE"), nullable=False)

    placeholder_code = Column(String(50), nullable=False)
    name = Column(String(255), nullable=False)
    account_id = Column(Uuid, ForeignKey("accounts.id"), nullable=True)
    default_direction = Column(
        SQLEnum(PlaceholderDirection, name="placeholderdirection"),
        default=PlaceholderDirection.AUTO,
        nullable=False,
    )
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    __table_args__ = (
        UniqueConstraint('consolidation_group_id', 'placeholder_code', name='uq_elimination_placeholder'),
    )


# ===========================================
# RUNS
# ===========================================

class ConsolidationRun(BaseModel):
    """
    One execution attempt for a (group, fiscal period) pair.

    notes doubles as the execution log: start/completion summaries and the
    truncated error message of a failed execution land here.
    """
    __tablename__ = "consolidation_runs"

    consolidation_group_id = Column(Uuid, ForeignKey("consolidation_groups.id"), nullable=False, index=True)
    fiscal_period_id = Column(Uuid, ForeignKey("fiscal_periods.id"), nullable=False)

    run_name = Column(String(255), nullable=False)
    status = Column(SQLEnum(RunStatus, name="runstatus"), default=RunStatus.DRAFT, nullable=False)
    presentation_currency_code = Column(String(3), nullable=False)

    started_by_user_id = Column(Uuid, nullable=False)
    started_at = Column(DateTime(timezone=True), nullable=True)
    finished_at = Column(DateTime(timezone=True), nullable=True)
    notes = Column(Text, nullable=True)

    entries = relationship("ConsolidationRunEntry", back_populates="run", cascade="all, delete-orphan")

    __table_args__ = (
        Index('ix_run_group_period', 'consolidation_group_id', 'fiscal_period_id'),
    )


class ConsolidationRunEntry(BaseModel):
    """
    Translated balance of one group account for one legal entity in a run.
    Rebuilt from scratch every time the run executes.
    """
    __tablename__ = "consolidation_run_entries"

    consolidation_run_id = Column(Uuid, ForeignKey("consolidation_runs.id", ondelete="CASCADE"), nullable=False)
    tenant_id = Column(Uuid, nullable=False)
    consolidation_group_id = Column(Uuid, ForeignKey("consolidation_groups.id"), nullable=False)
    fiscal_period_id = Column(Uuid, ForeignKey("fiscal_periods.id"), nullable=False)
    legal_entity_id = Column(Uuid, ForeignKey("legal_entities.id"), nullable=False)
    group_account_id = Column(Uuid, ForeignKey("accounts.id"), nullable=False)

    source_currency_code = Column(String(3), nullable=False)
    presentation_currency_code = Column(String(3), nullable=False)
    consolidation_method = Column(SQLEnum(ConsolidationMethod, name="consolidationmethod"), nullable=False)
    ownership_pct = Column(Numeric(9, 6), nullable=False)
    translation_rate = Column(Numeric(20, 10), nullable=False)

    # Local (functional currency) amounts
    local_debit_base = Column(Numeric(20, 6), default=0, nullable=False)
    local_credit_base = Column(Numeric(20, 6), default=0, nullable=False)
    local_balance_base = Column(Numeric(20, 6), default=0, nullable=False)

    # Presentation currency amounts after rate and ownership weighting
    translated_debit = Column(Numeric(20, 6), default=0, nullable=False)
    translated_credit = Column(Numeric(20, 6), default=0, nullable=False)
    translated_balance = Column(Numeric(20, 6), default=0, nullable=False)

    run = relationship("ConsolidationRun", back_populates="entries")

    __table_args__ = (
        UniqueConstraint('consolidation_run_id', 'legal_entity_id', 'group_account_id', name='uq_run_entry'),
    )


# ===========================================
# ELIMINATIONS & ADJUSTMENTS
# ===========================================

class EliminationEntry(BaseModel, PostingMixin):
    """
    Double-entry elimination of intercompany balances within a run.
    Debits must equal credits before the entry can be posted.
    """
    __tablename__ = "elimination_entries"

    consolidation_run_id = Column(Uuid, ForeignKey("consolidation_runs.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(SQLEnum(PostingStatus, name="postingstatus"), default=PostingStatus.DRAFT, nullable=False)
    description = Column(Text, nullable=False)
    reference_no = Column(String(100), nullable=True)

    lines = relationship(
        "EliminationLine",
        back_populates="entry",
        cascade="all, delete-orphan",
        order_by="EliminationLine.line_no",
    )


class EliminationLine(BaseModel):
    __tablename__ = "elimination_lines"

    elimination_entry_id = Column(Uuid, ForeignKey("elimination_entries.id", ondelete="CASCADE"), nullable=False, index=True)
    line_no = Column(Integer, nullable=False)
    account_id = Column(Uuid, ForeignKey("accounts.id"), nullable=False)
    legal_entity_id = Column(Uuid, ForeignKey("legal_entities.id"), nullable=True)
    counterparty_legal_entity_id = Column(Uuid, ForeignKey("legal_entities.id"), nullable=True)

    debit_amount = Column(Numeric(20, 6), default=0, nullable=False)
    credit_amount = Column(Numeric(20, 6), default=0, nullable=False)
    currency_code = Column(String(3), nullable=False)
    description = Column(Text, nullable=True)

    entry = relationship("EliminationEntry", back_populates="lines")

    __table_args__ = (
        UniqueConstraint('elimination_entry_id', 'line_no', name='uq_elimination_line_no'),
    )


class ConsolidationAdjustment(BaseModel, PostingMixin):
    """
    Top-side, single-account adjustment. Exactly one of debit/credit must be
    non-zero when posted; drafts may hold anything.
    """
    __tablename__ = "consolidation_adjustments"

    consolidation_run_id = Column(Uuid, ForeignKey("consolidation_runs.id", ondelete="CASCADE"), nullable=False, index=True)
    adjustment_type = Column(String(50), default="TOPSIDE", nullable=False)
    status = Column(SQLEnum(PostingStatus, name="postingstatus"), default=PostingStatus.DRAFT, nullable=False)

    legal_entity_id = Column(Uuid, ForeignKey("legal_entities.id"), nullable=True)
    account_id = Column(Uuid, ForeignKey("accounts.id"), nullable=False)

    debit_amount = Column(Numeric(20, 6), default=0, nullable=False)
    credit_amount = Column(Numeric(20, 6), default=0, nullable=False)
    currency_code = Column(String(3), nullable=False)
    description = Column(Text, nullable=False)
