"""
GroupLedger - Tenant Guard

Lookups that load a referenced record and verify it belongs to the
caller's tenant before a service acts on it.
"""

import uuid
from dataclasses import dataclass
from datetime import date
from typing import Optional

from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from groupledger.models.consolidation import ConsolidationGroup, ConsolidationRun
from groupledger.models.ledger import (
    Account,
    ChartOfAccounts,
    FiscalCalendar,
    FiscalPeriod,
    LegalEntity,
)
from groupledger.utils.error_handling import (
    NotFoundException,
    RunNotFoundException,
    ValidationException,
)


@dataclass
class RunContext:
    """A run joined with its group and fiscal period."""
    run: ConsolidationRun
    group: ConsolidationGroup
    period: FiscalPeriod

    @property
    def tenant_id(self) -> uuid.UUID:
        return self.group.tenant_id

    @property
    def period_start_date(self) -> date:
        return self.period.start_date

    @property
    def period_end_date(self) -> date:
        return self.period.end_date

    def to_dict(self) -> dict:
        return {
            "id": self.run.id,
            "consolidation_group_id": self.run.consolidation_group_id,
            "consolidation_group_code": self.group.code,
            "consolidation_group_name": self.group.name,
            "group_company_id": self.group.group_company_id,
            "fiscal_period_id": self.run.fiscal_period_id,
            "fiscal_year": self.period.fiscal_year,
            "period_no": self.period.period_no,
            "period_name": self.period.period_name,
            "period_start_date": self.period.start_date,
            "period_end_date": self.period.end_date,
            "run_name": self.run.run_name,
            "status": self.run.status.value,
            "presentation_currency_code": self.run.presentation_currency_code,
            "started_by_user_id": self.run.started_by_user_id,
            "started_at": self.run.started_at,
            "finished_at": self.run.finished_at,
            "notes": self.run.notes,
        }


class TenantGuard:
    """Loads records and checks tenant ownership."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def require_legal_entity(
        self,
        tenant_id: uuid.UUID,
        legal_entity_id: uuid.UUID,
        field: str = "legal_entity_id",
    ) -> LegalEntity:
        result = await self.db.execute(
            select(LegalEntity).where(and_(
                LegalEntity.id == legal_entity_id,
                LegalEntity.tenant_id == tenant_id,
            ))
        )
        entity = result.scalar_one_or_none()
        if entity is None:
            raise ValidationException("Legal entity not found for tenant", field=field)
        return entity

    async def require_account(
        self,
        tenant_id: uuid.UUID,
        account_id: uuid.UUID,
        field: str = "account_id",
    ) -> Account:
        result = await self.db.execute(
            select(Account).where(and_(
                Account.id == account_id,
                Account.tenant_id == tenant_id,
            ))
        )
        account = result.scalar_one_or_none()
        if account is None:
            raise ValidationException("Account not found for tenant", field=field)
        return account

    async def require_chart(
        self,
        tenant_id: uuid.UUID,
        coa_id: uuid.UUID,
        field: str = "coa_id",
    ) -> ChartOfAccounts:
        result = await self.db.execute(
            select(ChartOfAccounts).where(and_(
                ChartOfAccounts.id == coa_id,
                ChartOfAccounts.tenant_id == tenant_id,
            ))
        )
        chart = result.scalar_one_or_none()
        if chart is None:
            raise ValidationException("Chart of accounts not found for tenant", field=field)
        return chart

    async def require_calendar(
        self,
        tenant_id: uuid.UUID,
        calendar_id: uuid.UUID,
        field: str = "calendar_id",
    ) -> FiscalCalendar:
        result = await self.db.execute(
            select(FiscalCalendar).where(and_(
                FiscalCalendar.id == calendar_id,
                FiscalCalendar.tenant_id == tenant_id,
            ))
        )
        calendar = result.scalar_one_or_none()
        if calendar is None:
            raise ValidationException("Fiscal calendar not found for tenant", field=field)
        return calendar

    async def require_period_in_calendar(
        self,
        calendar_id: uuid.UUID,
        fiscal_period_id: uuid.UUID,
        field: str = "fiscal_period_id",
    ) -> FiscalPeriod:
        result = await self.db.execute(
            select(FiscalPeriod).where(and_(
                FiscalPeriod.id == fiscal_period_id,
                FiscalPeriod.calendar_id == calendar_id,
            ))
        )
        period = result.scalar_one_or_none()
        if period is None:
            raise ValidationException("Fiscal period does not belong to the group's calendar", field=field)
        return period

    async def require_group(
        self,
        tenant_id: uuid.UUID,
        group_id: uuid.UUID,
    ) -> ConsolidationGroup:
        result = await self.db.execute(
            select(ConsolidationGroup).where(and_(
                ConsolidationGroup.id == group_id,
                ConsolidationGroup.tenant_id == tenant_id,
            ))
        )
        group = result.scalar_one_or_none()
        if group is None:
            raise NotFoundException("Consolidation group", group_id)
        return group

    async def get_run_context(
        self,
        tenant_id: uuid.UUID,
        run_id: uuid.UUID,
    ) -> Optional[RunContext]:
        result = await self.db.execute(
            select(ConsolidationRun, ConsolidationGroup, FiscalPeriod)
            .join(ConsolidationGroup, ConsolidationGroup.id == ConsolidationRun.consolidation_group_id)
            .join(FiscalPeriod, FiscalPeriod.id == ConsolidationRun.fiscal_period_id)
            .where(and_(
                ConsolidationRun.id == run_id,
                ConsolidationGroup.tenant_id == tenant_id,
            ))
        )
        row = result.first()
        if row is None:
            return None
        run, group, period = row
        return RunContext(run=run, group=group, period=period)

    async def require_run(self, tenant_id: uuid.UUID, run_id: uuid.UUID) -> RunContext:
        context = await self.get_run_context(tenant_id, run_id)
        if context is None:
            raise RunNotFoundException(run_id)
        return context
