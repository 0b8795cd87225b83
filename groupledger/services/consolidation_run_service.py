"""
GroupLedger - Consolidation Run Service

Run lifecycle and execution:
- Create / get / list runs
- Execute: translate every member's mapped balances into the run's
  presentation currency, weighted by ownership, rebuilding the run entries
- Finalize: lock a completed run against further changes

Run state machine:
    DRAFT -> IN_PROGRESS -> COMPLETED | FAILED
    COMPLETED -> LOCKED (terminal)
FAILED and COMPLETED runs may be executed again; LOCKED runs never.
"""

import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional, Set

from sqlalchemy import select, func, and_, delete, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from groupledger.config import get_settings
from groupledger.models.audit import AuditAction
from groupledger.models.consolidation import (
    ConsolidationGroup,
    ConsolidationRun,
    ConsolidationRunEntry,
    RunStatus,
)
from groupledger.models.ledger import FiscalPeriod
from groupledger.models.fx import FxRateType
from groupledger.services.audit_service import AuditService
from groupledger.services.balance_loader import BalanceLoader
from groupledger.services.fx_service import FXService, parse_rate_type
from groupledger.services.membership_service import MembershipService
from groupledger.services.tenant_guard import RunContext, TenantGuard
from groupledger.utils.error_handling import (
    AppException,
    ExecutionFailureException,
    InvalidRunStateException,
    RunLockedException,
    ValidationException,
)
from groupledger.utils.permissions import Actor, ScopeType

logger = logging.getLogger(__name__)
settings = get_settings()

AMOUNT_QUANTUM = Decimal("0.000001")


def translate_amount(local_amount: Decimal, rate: Decimal, factor: Decimal) -> Decimal:
    """local * rate * ownership factor, rounded to the stored amount scale."""
    return (local_amount * rate * factor).quantize(AMOUNT_QUANTUM, rounding=ROUND_HALF_UP)


def normalize_run_rate_type(value: Any) -> FxRateType:
    """Rate type for an execution or report; defaults to the configured type."""
    rate_type = parse_rate_type(value if value not in (None, "") else settings.default_rate_type)
    if rate_type is None:
        raise ValidationException("rate_type must be one of SPOT, AVERAGE, CLOSING", field="rate_type")
    return rate_type


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ConsolidationRunService:
    """Service for consolidation run lifecycle and execution."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.guard = TenantGuard(db)
        self.audit = AuditService(db)

    # =========================================================================
    # RUN MANAGEMENT
    # =========================================================================

    async def create_run(
        self,
        tenant_id: uuid.UUID,
        group_id: uuid.UUID,
        fiscal_period_id: uuid.UUID,
        run_name: str,
        started_by_user_id: uuid.UUID,
        presentation_currency_code: Optional[str] = None,
        actor: Optional[Actor] = None,
    ) -> ConsolidationRun:
        """Create a DRAFT run for a group and one period of the group's calendar."""
        group = await self.guard.require_group(tenant_id, group_id)
        if actor is not None and group.group_company_id is not None:
            actor.assert_scope_access(ScopeType.GROUP, group.group_company_id, field="group_company_id")
        await self.guard.require_period_in_calendar(group.calendar_id, fiscal_period_id)

        currency = (presentation_currency_code or group.presentation_currency_code or "").strip().upper()
        if not currency:
            currency = settings.default_presentation_currency

        run = ConsolidationRun(
            consolidation_group_id=group.id,
            fiscal_period_id=fiscal_period_id,
            run_name=run_name.strip(),
            status=RunStatus.DRAFT,
            presentation_currency_code=currency,
            started_by_user_id=started_by_user_id,
            started_at=_utcnow(),
        )
        self.db.add(run)
        await self.db.commit()
        await self.db.refresh(run)

        logger.info(f"Created consolidation run {run.id} ({run.run_name}) for group {group.code}")
        return run

    async def get_run(self, tenant_id: uuid.UUID, run_id: uuid.UUID) -> Dict[str, Any]:
        """Run with group/period context, entry count and translated totals."""
        context = await self.guard.require_run(tenant_id, run_id)

        count_result = await self.db.execute(
            select(func.count(ConsolidationRunEntry.id))
            .where(ConsolidationRunEntry.consolidation_run_id == run_id)
        )

        run_data = context.to_dict()
        run_data["entry_count"] = int(count_result.scalar() or 0)
        run_data["totals"] = await self._entry_totals(run_id)
        return run_data

    async def list_runs(
        self,
        tenant_id: uuid.UUID,
        group_id: Optional[uuid.UUID] = None,
        fiscal_period_id: Optional[uuid.UUID] = None,
        status: Optional[str] = None,
        group_company_ids: Optional[Set[str]] = None,
    ) -> List[Dict[str, Any]]:
        """Runs of a tenant, newest first."""
        conditions = [ConsolidationGroup.tenant_id == tenant_id]
        if group_id:
            conditions.append(ConsolidationRun.consolidation_group_id == group_id)
        if fiscal_period_id:
            conditions.append(ConsolidationRun.fiscal_period_id == fiscal_period_id)
        if status:
            try:
                conditions.append(ConsolidationRun.status == RunStatus(status.strip().upper()))
            except ValueError:
                raise ValidationException(f"Unknown run status '{status}'", field="status")
        if group_company_ids is not None:
            allowed = []
            for value in group_company_ids:
                try:
                    allowed.append(uuid.UUID(str(value)))
                except ValueError:
                    continue
            if not allowed:
                return []
            conditions.append(ConsolidationGroup.group_company_id.in_(allowed))

        result = await self.db.execute(
            select(ConsolidationRun, ConsolidationGroup, FiscalPeriod)
            .join(ConsolidationGroup, ConsolidationGroup.id == ConsolidationRun.consolidation_group_id)
            .join(FiscalPeriod, FiscalPeriod.id == ConsolidationRun.fiscal_period_id)
            .where(and_(*conditions))
            .order_by(ConsolidationRun.started_at.desc(), ConsolidationRun.created_at.desc())
        )
        return [
            RunContext(run=run, group=group, period=period).to_dict()
            for run, group, period in result.all()
        ]

    async def _entry_totals(self, run_id: uuid.UUID) -> Dict[str, float]:
        result = await self.db.execute(
            select(
                func.sum(ConsolidationRunEntry.translated_debit),
                func.sum(ConsolidationRunEntry.translated_credit),
                func.sum(ConsolidationRunEntry.translated_balance),
            ).where(ConsolidationRunEntry.consolidation_run_id == run_id)
        )
        debit, credit, balance = result.one()
        return {
            "translated_debit_total": float(debit or 0),
            "translated_credit_total": float(credit or 0),
            "translated_balance_total": float(balance or 0),
        }

    # =========================================================================
    # EXECUTION
    # =========================================================================

    async def execute_run(
        self,
        tenant_id: uuid.UUID,
        run_id: uuid.UUID,
        executed_by_user_id: uuid.UUID,
        preferred_rate_type: Any = None,
    ) -> Dict[str, Any]:
        """
        Rebuild the run's entries from the posted ledgers of its members.

        The rebuild happens in one transaction. A LOCKED run is rejected
        before anything changes. Any failure inside the rebuild rolls the
        transaction back and then marks the run FAILED in a separate commit,
        with the error message kept in notes.

        Raises:
            RunNotFoundException: run does not exist for the tenant
            RunLockedException: run is LOCKED
            RateNotFoundException: a member currency has no rate (run FAILED)
            ExecutionFailureException: any other failure (run FAILED)
        """
        rate_type = normalize_run_rate_type(preferred_rate_type)
        context = await self.guard.require_run(tenant_id, run_id)

        # Serialize concurrent executions of the same run
        await self.db.refresh(context.run, with_for_update=True)
        if context.run.status == RunStatus.LOCKED:
            await self.db.rollback()
            raise RunLockedException(run_id)

        try:
            outcome = await self._rebuild_entries(context, rate_type, executed_by_user_id)
            await self.db.commit()
        except Exception as exc:
            await self.db.rollback()
            await self._mark_failed(run_id, exc)
            if isinstance(exc, AppException):
                raise
            raise ExecutionFailureException(run_id, str(exc) or "Execution failed", original_error=exc) from exc

        outcome["totals"] = await self._entry_totals(run_id)

        logger.info(
            f"Consolidation run {run_id} completed: "
            f"inserted_rows={outcome['inserted_row_count']} rate_type={rate_type.value}"
        )

        await self.audit.log_action(
            tenant_id=tenant_id,
            action=AuditAction.EXECUTE,
            resource_type="consolidation_run",
            resource_id=run_id,
            user_id=executed_by_user_id,
            payload=outcome,
        )
        return outcome

    async def _rebuild_entries(
        self,
        context: RunContext,
        rate_type: FxRateType,
        executed_by_user_id: uuid.UUID,
    ) -> Dict[str, Any]:
        run = context.run
        tenant_id = context.tenant_id
        period_end = context.period_end_date

        logger.info(f"Executing consolidation run {run.id} for period ending {period_end}")

        run.status = RunStatus.IN_PROGRESS
        run.notes = f"Execution started by user {executed_by_user_id}"
        await self.db.flush()

        members = await MembershipService(self.db).resolve_members(
            run.consolidation_group_id,
            context.period_start_date,
            period_end,
        )

        await self.db.execute(
            delete(ConsolidationRunEntry).where(ConsolidationRunEntry.consolidation_run_id == run.id)
        )

        rates = FXService(self.db).build_cache(tenant_id)
        loader = BalanceLoader(self.db)
        entries: List[ConsolidationRunEntry] = []

        for member in members:
            fx = await rates.get(
                member.functional_currency_code,
                run.presentation_currency_code,
                period_end,
                rate_type,
            )
            factor = member.ownership_factor

            balances = await loader.load_member_mapped_balances(
                tenant_id=tenant_id,
                group_id=run.consolidation_group_id,
                fiscal_period_id=run.fiscal_period_id,
                legal_entity_id=member.legal_entity_id,
            )

            for balance in balances:
                entries.append(ConsolidationRunEntry(
                    consolidation_run_id=run.id,
                    tenant_id=tenant_id,
                    consolidation_group_id=run.consolidation_group_id,
                    fiscal_period_id=run.fiscal_period_id,
                    legal_entity_id=member.legal_entity_id,
                    group_account_id=balance.group_account_id,
                    source_currency_code=member.functional_currency_code.upper(),
                    presentation_currency_code=run.presentation_currency_code,
                    consolidation_method=member.consolidation_method,
                    ownership_pct=member.ownership_pct,
                    translation_rate=fx.rate,
                    local_debit_base=balance.local_debit_base,
                    local_credit_base=balance.local_credit_base,
                    local_balance_base=balance.local_balance_base,
                    translated_debit=translate_amount(balance.local_debit_base, fx.rate, factor),
                    translated_credit=translate_amount(balance.local_credit_base, fx.rate, factor),
                    translated_balance=translate_amount(balance.local_balance_base, fx.rate, factor),
                ))

        self.db.add_all(entries)

        run.status = RunStatus.COMPLETED
        run.finished_at = _utcnow()
        run.notes = (
            f"Execution completed by user {executed_by_user_id}; "
            f"inserted_rows={len(entries)}; rate_type={rate_type.value}"
        )
        await self.db.flush()

        return {
            "run_id": run.id,
            "status": RunStatus.COMPLETED.value,
            "preferred_rate_type": rate_type.value,
            "member_count": len(members),
            "inserted_row_count": len(entries),
        }

    async def _mark_failed(self, run_id: uuid.UUID, exc: Exception) -> None:
        message = (str(exc) or "Execution failed")[: settings.run_notes_max_length]
        logger.error(f"Consolidation run {run_id} failed: {message}")
        try:
            await self.db.execute(
                update(ConsolidationRun)
                .where(ConsolidationRun.id == run_id)
                .values(status=RunStatus.FAILED, finished_at=_utcnow(), notes=message)
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
        except SQLAlchemyError as mark_error:
            logger.error(f"Could not mark consolidation run {run_id} as FAILED: {mark_error}")
            await self.db.rollback()

    # =========================================================================
    # FINALIZATION
    # =========================================================================

    async def finalize_run(
        self,
        tenant_id: uuid.UUID,
        run_id: uuid.UUID,
        finalized_by_user_id: uuid.UUID,
    ) -> Dict[str, Any]:
        """
        Lock a COMPLETED run. Locking is irreversible; finalizing an already
        LOCKED run changes nothing.
        """
        context = await self.guard.require_run(tenant_id, run_id)
        run = context.run
        await self.db.refresh(run, with_for_update=True)

        if run.status == RunStatus.LOCKED:
            await self.db.rollback()
            return {"run_id": run_id, "status": RunStatus.LOCKED.value, "idempotent": True}

        if run.status != RunStatus.COMPLETED:
            current = run.status.value
            await self.db.rollback()
            raise InvalidRunStateException(run_id, current, RunStatus.COMPLETED.value)

        run.status = RunStatus.LOCKED
        run.finished_at = _utcnow()
        await self.db.commit()

        logger.info(f"Consolidation run {run_id} locked by user {finalized_by_user_id}")

        outcome = {"run_id": run_id, "status": RunStatus.LOCKED.value, "idempotent": False}
        await self.audit.log_action(
            tenant_id=tenant_id,
            action=AuditAction.FINALIZE,
            resource_type="consolidation_run",
            resource_id=run_id,
            user_id=finalized_by_user_id,
            payload=outcome,
        )
        return outcome
