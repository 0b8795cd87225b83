"""
GroupLedger - Member Balance Loader

Aggregates a legal entity's posted local ledger activity into balances on
the group chart of accounts.
"""

import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import List

from sqlalchemy import select, and_, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from groupledger.models.consolidation import GroupCoaMapping, RecordStatus
from groupledger.models.ledger import Account, JournalEntry, JournalEntryStatus, JournalLine


@dataclass
class MappedBalance:
    """Local-currency totals for one group account."""
    group_account_id: uuid.UUID
    local_debit_base: Decimal
    local_credit_base: Decimal
    local_balance_base: Decimal


def _as_decimal(value) -> Decimal:
    if value is None:
        return Decimal("0")
    return value if isinstance(value, Decimal) else Decimal(str(value))


class BalanceLoader:
    """Loads mapped member balances from the posted general ledger."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def load_member_mapped_balances(
        self,
        tenant_id: uuid.UUID,
        group_id: uuid.UUID,
        fiscal_period_id: uuid.UUID,
        legal_entity_id: uuid.UUID,
    ) -> List[MappedBalance]:
        """
        Sum POSTED journal lines per group account for one legal entity
        and fiscal period.

        A local account reaches a group account only through an ACTIVE chart
        mapping for (group, legal entity) and only when an active group
        account carries exactly the same code. Unmapped activity is dropped.
        """
        local_acc = aliased(Account, name="local_acc")
        group_acc = aliased(Account, name="group_acc")

        stmt = (
            select(
                group_acc.id.label("group_account_id"),
                func.sum(JournalLine.debit_base).label("local_debit_base"),
                func.sum(JournalLine.credit_base).label("local_credit_base"),
                func.sum(JournalLine.debit_base - JournalLine.credit_base).label("local_balance_base"),
            )
            .select_from(JournalEntry)
            .join(JournalLine, JournalLine.journal_entry_id == JournalEntry.id)
            .join(local_acc, local_acc.id == JournalLine.account_id)
            .join(
                GroupCoaMapping,
                and_(
                    GroupCoaMapping.tenant_id == JournalEntry.tenant_id,
                    GroupCoaMapping.consolidation_group_id == group_id,
                    GroupCoaMapping.legal_entity_id == JournalEntry.legal_entity_id,
                    GroupCoaMapping.local_coa_id == local_acc.coa_id,
                    GroupCoaMapping.status == RecordStatus.ACTIVE,
                ),
            )
            .join(
                group_acc,
                and_(
                    group_acc.coa_id == GroupCoaMapping.group_coa_id,
                    group_acc.code == local_acc.code,
                    group_acc.is_active.is_(True),
                ),
            )
            .where(and_(
                JournalEntry.tenant_id == tenant_id,
                JournalEntry.status == JournalEntryStatus.POSTED,
                JournalEntry.fiscal_period_id == fiscal_period_id,
                JournalEntry.legal_entity_id == legal_entity_id,
            ))
            .group_by(group_acc.id)
            .order_by(group_acc.id)
        )

        result = await self.db.execute(stmt)
        return [
            MappedBalance(
                group_account_id=row.group_account_id,
                local_debit_base=_as_decimal(row.local_debit_base),
                local_credit_base=_as_decimal(row.local_credit_base),
                local_balance_base=_as_decimal(row.local_balance_base),
            )
            for row in result.all()
        ]
