"""
GroupLedger - Consolidation Report Service

Read-side reports over a consolidation run:
- Trial balance and summary straight from the run entries
- Balance sheet and income statement from the merged account balances
  (run entries + adjustments + elimination lines)

Sign convention:
    Balances are stored debit-positive. LIABILITY, EQUITY and REVENUE
    balances are negated for presentation so that every statement line
    reads positive in its normal direction.

Amounts are accumulated as Decimal and converted to float only in the
returned payloads.
"""

import logging
import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from groupledger.config import get_settings
from groupledger.models.consolidation import (
    ConsolidationAdjustment,
    ConsolidationRunEntry,
    EliminationEntry,
    EliminationLine,
    PostingStatus,
)
from groupledger.models.fx import FxRateType
from groupledger.models.ledger import Account, AccountType, LegalEntity
from groupledger.services.consolidation_run_service import normalize_run_rate_type
from groupledger.services.fx_service import FXService, FxRateCache
from groupledger.services.tenant_guard import RunContext, TenantGuard
from groupledger.utils.error_handling import ValidationException

logger = logging.getLogger(__name__)
settings = get_settings()

CREDIT_NORMAL_TYPES = {AccountType.LIABILITY, AccountType.EQUITY, AccountType.REVENUE}
BALANCE_SHEET_TYPES = (AccountType.ASSET, AccountType.LIABILITY, AccountType.EQUITY)
INCOME_STATEMENT_TYPES = (AccountType.REVENUE, AccountType.EXPENSE)
SUMMARY_GROUPINGS = ("account", "entity", "account_entity")

ZERO = Decimal("0")


def normalize_balance_by_account_type(account_type: Any, balance: Any) -> Decimal:
    """Flip credit-normal balances so they present as positive amounts."""
    amount = Decimal(str(balance or 0))
    try:
        kind = AccountType(str(getattr(account_type, "value", account_type) or "").upper())
    except ValueError:
        return amount
    return -amount if kind in CREDIT_NORMAL_TYPES else amount


def _to_float(value: Optional[Decimal]) -> float:
    return float(value or 0)


@dataclass
class AccountBalance:
    """Merged balance of one group account within a run."""
    account_id: uuid.UUID
    account_code: str
    account_name: Optional[str]
    account_type: Optional[AccountType]
    base_debit: Decimal = ZERO
    base_credit: Decimal = ZERO
    base_balance: Decimal = ZERO
    adjustment_debit: Decimal = ZERO
    adjustment_credit: Decimal = ZERO
    adjustment_balance: Decimal = ZERO
    elimination_debit: Decimal = ZERO
    elimination_credit: Decimal = ZERO
    elimination_balance: Decimal = ZERO

    @property
    def final_debit(self) -> Decimal:
        return self.base_debit + self.adjustment_debit + self.elimination_debit

    @property
    def final_credit(self) -> Decimal:
        return self.base_credit + self.adjustment_credit + self.elimination_credit

    @property
    def final_balance(self) -> Decimal:
        return self.base_balance + self.adjustment_balance + self.elimination_balance

    def add(self, component: str, debit: Decimal, credit: Decimal, balance: Decimal) -> None:
        setattr(self, f"{component}_debit", getattr(self, f"{component}_debit") + debit)
        setattr(self, f"{component}_credit", getattr(self, f"{component}_credit") + credit)
        setattr(self, f"{component}_balance", getattr(self, f"{component}_balance") + balance)

    def normalized(self, amount: Decimal) -> Decimal:
        return normalize_balance_by_account_type(self.account_type, amount)

    def to_statement_row(self) -> Dict[str, Any]:
        return {
            "account_id": self.account_id,
            "account_code": self.account_code,
            "account_name": self.account_name,
            "account_type": self.account_type.value if self.account_type else None,
            "base_balance": _to_float(self.base_balance),
            "adjustment_balance": _to_float(self.adjustment_balance),
            "elimination_balance": _to_float(self.elimination_balance),
            "final_balance": _to_float(self.final_balance),
            "normalized_base_balance": _to_float(self.normalized(self.base_balance)),
            "normalized_adjustment_balance": _to_float(self.normalized(self.adjustment_balance)),
            "normalized_elimination_balance": _to_float(self.normalized(self.elimination_balance)),
            "normalized_final_balance": _to_float(self.normalized(self.final_balance)),
        }


@dataclass
class AccountBalanceReport:
    """Output of load_account_balances."""
    included_statuses: List[PostingStatus]
    accounts: List[AccountBalance] = field(default_factory=list)


class ConsolidationReportService:
    """Service for consolidation run reports."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.guard = TenantGuard(db)

    # =========================================================================
    # ACCOUNT BALANCE AGGREGATION
    # =========================================================================

    async def load_account_balances(
        self,
        context: RunContext,
        include_draft: bool = False,
        preferred_rate_type: Any = FxRateType.CLOSING,
    ) -> AccountBalanceReport:
        """
        Merge base run entries with adjustments and elimination lines per
        group account.

        Adjustment and elimination amounts are translated from their own
        currency into the run's presentation currency at the period end date.
        include_draft widens the included statuses from POSTED to DRAFT + POSTED.
        """
        run = context.run
        statuses = [PostingStatus.DRAFT, PostingStatus.POSTED] if include_draft else [PostingStatus.POSTED]
        rates: FxRateCache = FXService(self.db).build_cache(context.tenant_id)
        accounts: Dict[uuid.UUID, AccountBalance] = {}

        def ensure_account(account_id, code, name, account_type) -> AccountBalance:
            if account_id not in accounts:
                accounts[account_id] = AccountBalance(
                    account_id=account_id,
                    account_code=code or f"ACC-{account_id}",
                    account_name=name,
                    account_type=account_type,
                )
            return accounts[account_id]

        base_result = await self.db.execute(
            select(
                ConsolidationRunEntry.group_account_id,
                Account.code,
                Account.name,
                Account.account_type,
                func.sum(ConsolidationRunEntry.translated_debit),
                func.sum(ConsolidationRunEntry.translated_credit),
                func.sum(ConsolidationRunEntry.translated_balance),
            )
            .join(Account, Account.id == ConsolidationRunEntry.group_account_id)
            .where(ConsolidationRunEntry.consolidation_run_id == run.id)
            .group_by(ConsolidationRunEntry.group_account_id, Account.code, Account.name, Account.account_type)
        )
        for account_id, code, name, account_type, debit, credit, balance in base_result.all():
            ensure_account(account_id, code, name, account_type).add(
                "base",
                Decimal(str(debit or 0)),
                Decimal(str(credit or 0)),
                Decimal(str(balance or 0)),
            )

        adjustment_result = await self.db.execute(
            select(
                ConsolidationAdjustment.account_id,
                Account.code,
                Account.name,
                Account.account_type,
                ConsolidationAdjustment.currency_code,
                func.sum(ConsolidationAdjustment.debit_amount),
                func.sum(ConsolidationAdjustment.credit_amount),
            )
            .join(Account, Account.id == ConsolidationAdjustment.account_id)
            .where(
                ConsolidationAdjustment.consolidation_run_id == run.id,
                ConsolidationAdjustment.status.in_(statuses),
            )
            .group_by(
                ConsolidationAdjustment.account_id,
                Account.code,
                Account.name,
                Account.account_type,
                ConsolidationAdjustment.currency_code,
            )
        )
        for row in adjustment_result.all():
            await self._add_translated(ensure_account, "adjustment", row, context, rates, preferred_rate_type)

        elimination_result = await self.db.execute(
            select(
                EliminationLine.account_id,
                Account.code,
                Account.name,
                Account.account_type,
                EliminationLine.currency_code,
                func.sum(EliminationLine.debit_amount),
                func.sum(EliminationLine.credit_amount),
            )
            .join(EliminationEntry, EliminationEntry.id == EliminationLine.elimination_entry_id)
            .join(Account, Account.id == EliminationLine.account_id)
            .where(
                EliminationEntry.consolidation_run_id == run.id,
                EliminationEntry.status.in_(statuses),
            )
            .group_by(
                EliminationLine.account_id,
                Account.code,
                Account.name,
                Account.account_type,
                EliminationLine.currency_code,
            )
        )
        for row in elimination_result.all():
            await self._add_translated(ensure_account, "elimination", row, context, rates, preferred_rate_type)

        logger.debug(
            f"Loaded {len(accounts)} account balances for run {run.id} "
            f"({len(rates)} rates resolved)"
        )
        return AccountBalanceReport(included_statuses=statuses, accounts=list(accounts.values()))

    async def _add_translated(self, ensure_account, component, row, context, rates, preferred_rate_type) -> None:
        account_id, code, name, account_type, currency_code, debit_total, credit_total = row
        fx = await rates.get(
            currency_code,
            context.run.presentation_currency_code,
            context.period_end_date,
            preferred_rate_type,
        )
        debit = Decimal(str(debit_total or 0))
        credit = Decimal(str(credit_total or 0))
        ensure_account(account_id, code, name, account_type).add(
            component,
            debit * fx.rate,
            credit * fx.rate,
            (debit - credit) * fx.rate,
        )

    # =========================================================================
    # RUN ENTRY REPORTS
    # =========================================================================

    async def get_trial_balance(self, tenant_id: uuid.UUID, run_id: uuid.UUID) -> Dict[str, Any]:
        """Translated debit/credit/balance per group account, ordered by code."""
        await self.guard.require_run(tenant_id, run_id)

        result = await self.db.execute(
            select(
                ConsolidationRunEntry.group_account_id,
                Account.code,
                Account.name,
                func.sum(ConsolidationRunEntry.translated_debit),
                func.sum(ConsolidationRunEntry.translated_credit),
                func.sum(ConsolidationRunEntry.translated_balance),
            )
            .join(Account, Account.id == ConsolidationRunEntry.group_account_id)
            .where(ConsolidationRunEntry.consolidation_run_id == run_id)
            .group_by(ConsolidationRunEntry.group_account_id, Account.code, Account.name)
            .order_by(Account.code)
        )

        rows = [
            {
                "account_id": account_id,
                "account_code": code,
                "account_name": name,
                "debit_total": _to_float(debit),
                "credit_total": _to_float(credit),
                "balance": _to_float(balance),
            }
            for account_id, code, name, debit, credit, balance in result.all()
        ]
        return {"run_id": run_id, "rows": rows}

    async def get_summary(
        self,
        tenant_id: uuid.UUID,
        run_id: uuid.UUID,
        group_by: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Local and translated totals of the run entries grouped by account,
        entity or account + entity.
        """
        grouping = (group_by or "account_entity").strip().lower()
        if grouping not in SUMMARY_GROUPINGS:
            raise ValidationException("group_by must be one of account, entity, account_entity", field="group_by")

        context = await self.guard.require_run(tenant_id, run_id)

        amount_columns = [
            func.sum(ConsolidationRunEntry.local_debit_base),
            func.sum(ConsolidationRunEntry.local_credit_base),
            func.sum(ConsolidationRunEntry.local_balance_base),
            func.sum(ConsolidationRunEntry.translated_debit),
            func.sum(ConsolidationRunEntry.translated_credit),
            func.sum(ConsolidationRunEntry.translated_balance),
        ]

        key_columns = []
        if grouping in ("account", "account_entity"):
            key_columns += [ConsolidationRunEntry.group_account_id, Account.code, Account.name]
        if grouping in ("entity", "account_entity"):
            key_columns += [ConsolidationRunEntry.legal_entity_id, LegalEntity.code, LegalEntity.name]

        if grouping == "account":
            order_by = [Account.code]
        elif grouping == "entity":
            order_by = [LegalEntity.code]
        else:
            order_by = [Account.code, LegalEntity.code]

        result = await self.db.execute(
            select(*key_columns, *amount_columns)
            .select_from(ConsolidationRunEntry)
            .join(Account, Account.id == ConsolidationRunEntry.group_account_id)
            .join(LegalEntity, LegalEntity.id == ConsolidationRunEntry.legal_entity_id)
            .where(ConsolidationRunEntry.consolidation_run_id == run_id)
            .group_by(*key_columns)
            .order_by(*order_by)
        )

        rows = []
        for record in result.all():
            values = list(record)
            row: Dict[str, Any] = {
                "account_id": None,
                "account_code": None,
                "account_name": None,
                "legal_entity_id": None,
                "legal_entity_code": None,
                "legal_entity_name": None,
            }
            if grouping in ("account", "account_entity"):
                row["account_id"], row["account_code"], row["account_name"] = values[:3]
                values = values[3:]
            if grouping in ("entity", "account_entity"):
                row["legal_entity_id"], row["legal_entity_code"], row["legal_entity_name"] = values[:3]
                values = values[3:]
            row.update(self._amount_totals(values))
            rows.append(row)

        totals_result = await self.db.execute(
            select(*amount_columns).where(ConsolidationRunEntry.consolidation_run_id == run_id)
        )

        return {
            "run_id": run_id,
            "group_by": grouping,
            "run": context.to_dict(),
            "totals": self._amount_totals(list(totals_result.one())),
            "rows": rows,
        }

    @staticmethod
    def _amount_totals(values: List[Any]) -> Dict[str, float]:
        keys = (
            "local_debit_total",
            "local_credit_total",
            "local_balance_total",
            "translated_debit_total",
            "translated_credit_total",
            "translated_balance_total",
        )
        return {key: _to_float(value) for key, value in zip(keys, values)}

    # =========================================================================
    # FINANCIAL STATEMENTS
    # =========================================================================

    async def get_balance_sheet(
        self,
        tenant_id: uuid.UUID,
        run_id: uuid.UUID,
        include_draft: bool = False,
        include_zero: bool = False,
        rate_type: Any = None,
    ) -> Dict[str, Any]:
        """
        Consolidated balance sheet with the accounting equation check.

        equation_delta = assets - (liabilities + equity + current period
        earnings) and should be ~0. A non-zero delta points at a mapping or
        data problem and is reported as-is.
        """
        preferred = normalize_run_rate_type(rate_type)
        context = await self.guard.require_run(tenant_id, run_id)
        report = await self.load_account_balances(context, include_draft, preferred)
        epsilon = Decimal(str(settings.balance_epsilon))

        rows = self._statement_rows(report, BALANCE_SHEET_TYPES, include_zero, epsilon)

        assets_total = self._type_total(rows, AccountType.ASSET)
        liabilities_total = self._type_total(rows, AccountType.LIABILITY)
        equity_total = self._type_total(rows, AccountType.EQUITY)

        # Earnings come from every P&L account, independent of the zero filter
        pl_rows = [a for a in report.accounts if a.account_type in INCOME_STATEMENT_TYPES]
        revenue_total = self._type_total(pl_rows, AccountType.REVENUE)
        expense_total = self._type_total(pl_rows, AccountType.EXPENSE)
        current_period_earnings = revenue_total - expense_total

        equation_delta = assets_total - (liabilities_total + equity_total + current_period_earnings)

        if abs(equation_delta) >= epsilon:
            logger.warning(f"Balance sheet for run {run_id} does not balance: equation_delta={equation_delta}")

        return {
            "run_id": run_id,
            "run": context.to_dict(),
            "options": self._options(include_draft, include_zero, preferred, report),
            "totals": {
                "assets_total": _to_float(assets_total),
                "liabilities_total": _to_float(liabilities_total),
                "equity_total": _to_float(equity_total),
                "current_period_earnings": _to_float(current_period_earnings),
                "equation_delta": _to_float(equation_delta),
                "is_balanced": abs(equation_delta) < epsilon,
            },
            "rows": [account.to_statement_row() for account in rows],
        }

    async def get_income_statement(
        self,
        tenant_id: uuid.UUID,
        run_id: uuid.UUID,
        include_draft: bool = False,
        include_zero: bool = False,
        rate_type: Any = None,
    ) -> Dict[str, Any]:
        """Consolidated income statement with net income."""
        preferred = normalize_run_rate_type(rate_type)
        context = await self.guard.require_run(tenant_id, run_id)
        report = await self.load_account_balances(context, include_draft, preferred)
        epsilon = Decimal(str(settings.balance_epsilon))

        rows = self._statement_rows(report, INCOME_STATEMENT_TYPES, include_zero, epsilon)

        revenue_total = self._type_total(rows, AccountType.REVENUE)
        expense_total = self._type_total(rows, AccountType.EXPENSE)

        return {
            "run_id": run_id,
            "run": context.to_dict(),
            "options": self._options(include_draft, include_zero, preferred, report),
            "totals": {
                "revenue_total": _to_float(revenue_total),
                "expense_total": _to_float(expense_total),
                "net_income": _to_float(revenue_total - expense_total),
            },
            "rows": [account.to_statement_row() for account in rows],
        }

    @staticmethod
    def _statement_rows(
        report: AccountBalanceReport,
        account_types,
        include_zero: bool,
        epsilon: Decimal,
    ) -> List[AccountBalance]:
        rows = [
            account for account in report.accounts
            if account.account_type in account_types
            and (include_zero or abs(account.normalized(account.final_balance)) >= epsilon)
        ]
        return sorted(rows, key=lambda account: str(account.account_code))

    @staticmethod
    def _type_total(accounts: List[AccountBalance], account_type: AccountType) -> Decimal:
        return sum(
            (a.normalized(a.final_balance) for a in accounts if a.account_type == account_type),
            ZERO,
        )

    @staticmethod
    def _options(include_draft, include_zero, rate_type: FxRateType, report: AccountBalanceReport) -> Dict[str, Any]:
        return {
            "include_draft": include_draft,
            "include_zero": include_zero,
            "rate_type": rate_type.value,
            "included_statuses": [status.value for status in report.included_statuses],
        }
