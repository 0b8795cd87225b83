"""
GroupLedger - Elimination Service

Double-entry eliminations of intercompany balances within a run.

Entries are created as DRAFT and posted explicitly. Posting locks the entry
and its lines, requires debits to equal credits within the balance epsilon,
and is idempotent: posting an already POSTED entry returns the original
poster and timestamp without changing anything.
"""

import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import select, func, and_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from groupledger.config import get_settings
from groupledger.models.audit import AuditAction
from groupledger.models.consolidation import (
    ConsolidationGroup,
    ConsolidationRun,
    EliminationEntry,
    EliminationLine,
    PostingStatus,
    RunStatus,
)
from groupledger.models.ledger import Account, LegalEntity
from groupledger.services.audit_service import AuditService
from groupledger.services.tenant_guard import TenantGuard
from groupledger.utils.error_handling import (
    EmptyEntryException,
    NotFoundException,
    RunLockedException,
    UnbalancedEntryException,
    ValidationException,
)
from groupledger.utils.permissions import Actor, ScopeType

logger = logging.getLogger(__name__)
settings = get_settings()


def normalize_posting_status_filter(value: Optional[str]) -> Optional[PostingStatus]:
    """ALL (or nothing) lists everything; DRAFT / POSTED filter."""
    status = (value or "ALL").strip().upper()
    if status == "ALL":
        return None
    try:
        return PostingStatus(status)
    except ValueError:
        raise ValidationException("status must be one of ALL, DRAFT, POSTED", field="status")


def posting_result(record, record_id: uuid.UUID, idempotent: bool) -> Dict[str, Any]:
    return {
        "id": record_id,
        "idempotent": idempotent,
        "status": PostingStatus.POSTED.value,
        "posted_by_user_id": record.posted_by_user_id,
        "posted_at": record.posted_at,
    }


class EliminationService:
    """Service for elimination entries."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.guard = TenantGuard(db)
        self.audit = AuditService(db)

    async def create_elimination_entry(
        self,
        tenant_id: uuid.UUID,
        run_id: uuid.UUID,
        created_by_user_id: uuid.UUID,
        description: str,
        lines: List[Dict[str, Any]],
        reference_no: Optional[str] = None,
        actor: Optional[Actor] = None,
    ) -> Dict[str, Any]:
        """
        Create a DRAFT entry with its lines.

        Each line carries account_id, optional legal_entity_id and
        counterparty_legal_entity_id, debit_amount, credit_amount,
        currency_code and description. Line currency defaults to the run's
        presentation currency.
        """
        context = await self.guard.require_run(tenant_id, run_id)
        if context.run.status == RunStatus.LOCKED:
            raise RunLockedException(run_id)
        if not lines:
            raise ValidationException("lines must be a non-empty list", field="lines")

        entry = EliminationEntry(
            consolidation_run_id=run_id,
            status=PostingStatus.DRAFT,
            description=description,
            reference_no=reference_no,
            created_by_user_id=created_by_user_id,
        )

        for index, line in enumerate(lines):
            await self.guard.require_account(tenant_id, line["account_id"], field=f"lines[{index}].account_id")
            for key in ("legal_entity_id", "counterparty_legal_entity_id"):
                le_id = line.get(key)
                if le_id:
                    await self.guard.require_legal_entity(tenant_id, le_id, field=f"lines[{index}].{key}")
                    if actor is not None:
                        actor.assert_scope_access(ScopeType.LEGAL_ENTITY, le_id, field=key)

            currency = (line.get("currency_code") or context.run.presentation_currency_code).strip().upper()
            entry.lines.append(EliminationLine(
                line_no=index + 1,
                account_id=line["account_id"],
                legal_entity_id=line.get("legal_entity_id"),
                counterparty_legal_entity_id=line.get("counterparty_legal_entity_id"),
                debit_amount=Decimal(str(line.get("debit_amount") or 0)),
                credit_amount=Decimal(str(line.get("credit_amount") or 0)),
                currency_code=currency,
                description=line.get("description"),
            ))

        self.db.add(entry)
        await self.db.commit()
        await self.db.refresh(entry)

        logger.info(f"Created elimination entry {entry.id} with {len(lines)} lines on run {run_id}")

        created = {
            "id": entry.id,
            "consolidation_run_id": run_id,
            "status": entry.status.value,
            "description": entry.description,
            "reference_no": entry.reference_no,
            "created_by_user_id": entry.created_by_user_id,
            "created_at": entry.created_at,
            "line_count": len(lines),
        }
        await self.audit.log_action(
            tenant_id=tenant_id,
            action=AuditAction.CREATE,
            resource_type="elimination_entry",
            resource_id=entry.id,
            user_id=created_by_user_id,
            payload={"run_id": run_id, "line_count": len(lines)},
        )
        return created

    async def post_elimination_entry(
        self,
        tenant_id: uuid.UUID,
        run_id: uuid.UUID,
        entry_id: uuid.UUID,
        posted_by_user_id: uuid.UUID,
    ) -> Dict[str, Any]:
        """
        Post a DRAFT entry under a row lock on the entry and its lines.

        Raises:
            NotFoundException: entry does not exist on the run for the tenant
            RunLockedException: the run is LOCKED
            EmptyEntryException: the entry has no lines
            UnbalancedEntryException: |debits - credits| exceeds the epsilon
        """
        await self.guard.require_run(tenant_id, run_id)

        result = await self.db.execute(
            select(EliminationEntry, ConsolidationRun.status)
            .join(ConsolidationRun, ConsolidationRun.id == EliminationEntry.consolidation_run_id)
            .join(ConsolidationGroup, ConsolidationGroup.id == ConsolidationRun.consolidation_group_id)
            .where(and_(
                EliminationEntry.id == entry_id,
                EliminationEntry.consolidation_run_id == run_id,
                ConsolidationGroup.tenant_id == tenant_id,
            ))
            .with_for_update(of=EliminationEntry)
            .execution_options(populate_existing=True)
        )
        row = result.first()
        if row is None:
            await self.db.rollback()
            raise NotFoundException("Elimination entry", entry_id, message="Elimination entry not found for run and tenant")
        entry, run_status = row

        try:
            if run_status == RunStatus.LOCKED:
                raise RunLockedException(run_id)

            if entry.status == PostingStatus.POSTED:
                outcome = posting_result(entry, entry_id, idempotent=True)
                await self.db.rollback()
                return outcome

            line_result = await self.db.execute(
                select(EliminationLine.debit_amount, EliminationLine.credit_amount)
                .where(EliminationLine.elimination_entry_id == entry_id)
                .with_for_update()
            )
            lines = line_result.all()
            if not lines:
                raise EmptyEntryException()

            debit_total = sum((Decimal(str(line.debit_amount or 0)) for line in lines), Decimal("0"))
            credit_total = sum((Decimal(str(line.credit_amount or 0)) for line in lines), Decimal("0"))
            if abs(debit_total - credit_total) > Decimal(str(settings.balance_epsilon)):
                raise UnbalancedEntryException(float(debit_total), float(credit_total))
        except Exception:
            await self.db.rollback()
            raise

        entry.status = PostingStatus.POSTED
        entry.posted_by_user_id = posted_by_user_id
        entry.posted_at = datetime.now(timezone.utc)
        await self.db.commit()
        await self.db.refresh(entry)

        logger.info(f"Posted elimination entry {entry_id} on run {run_id} by user {posted_by_user_id}")

        outcome = posting_result(entry, entry_id, idempotent=False)
        await self.audit.log_action(
            tenant_id=tenant_id,
            action=AuditAction.POST,
            resource_type="elimination_entry",
            resource_id=entry_id,
            user_id=posted_by_user_id,
            payload=outcome,
        )
        return outcome

    async def list_elimination_entries(
        self,
        tenant_id: uuid.UUID,
        run_id: uuid.UUID,
        status: Optional[str] = None,
        include_lines: bool = False,
    ) -> Dict[str, Any]:
        """Entries of a run, newest first, with debit/credit totals and line counts."""
        await self.guard.require_run(tenant_id, run_id)
        status_filter = normalize_posting_status_filter(status)

        conditions = [EliminationEntry.consolidation_run_id == run_id]
        if status_filter is not None:
            conditions.append(EliminationEntry.status == status_filter)

        result = await self.db.execute(
            select(
                EliminationEntry,
                func.coalesce(func.sum(EliminationLine.debit_amount), 0).label("debit_total"),
                func.coalesce(func.sum(EliminationLine.credit_amount), 0).label("credit_total"),
                func.count(EliminationLine.id).label("line_count"),
            )
            .outerjoin(EliminationLine, EliminationLine.elimination_entry_id == EliminationEntry.id)
            .where(and_(*conditions))
            .group_by(EliminationEntry.id)
            .order_by(EliminationEntry.created_at.desc())
        )

        rows = []
        for entry, debit_total, credit_total, line_count in result.all():
            rows.append({
                "id": entry.id,
                "status": entry.status.value,
                "description": entry.description,
                "reference_no": entry.reference_no,
                "created_by_user_id": entry.created_by_user_id,
                "posted_by_user_id": entry.posted_by_user_id,
                "created_at": entry.created_at,
                "posted_at": entry.posted_at,
                "debit_total": float(debit_total or 0),
                "credit_total": float(credit_total or 0),
                "line_count": int(line_count or 0),
            })

        if include_lines and rows:
            lines_by_entry = await self._load_lines([row["id"] for row in rows])
            for row in rows:
                row["lines"] = lines_by_entry.get(row["id"], [])

        return {
            "run_id": run_id,
            "status": status_filter.value if status_filter else "ALL",
            "rows": rows,
        }

    async def _load_lines(self, entry_ids: List[uuid.UUID]) -> Dict[uuid.UUID, List[Dict[str, Any]]]:
        entity = aliased(LegalEntity, name="le")
        counterparty = aliased(LegalEntity, name="cle")

        result = await self.db.execute(
            select(
                EliminationLine,
                Account.code,
                Account.name,
                entity.code,
                entity.name,
                counterparty.code,
                counterparty.name,
            )
            .join(Account, Account.id == EliminationLine.account_id)
            .outerjoin(entity, entity.id == EliminationLine.legal_entity_id)
            .outerjoin(counterparty, counterparty.id == EliminationLine.counterparty_legal_entity_id)
            .where(EliminationLine.elimination_entry_id.in_(entry_ids))
            .order_by(EliminationLine.elimination_entry_id, EliminationLine.line_no)
        )

        lines: Dict[uuid.UUID, List[Dict[str, Any]]] = {}
        for line, acc_code, acc_name, le_code, le_name, cp_code, cp_name in result.all():
            lines.setdefault(line.elimination_entry_id, []).append({
                "line_no": line.line_no,
                "account_id": line.account_id,
                "account_code": acc_code,
                "account_name": acc_name,
                "legal_entity_id": line.legal_entity_id,
                "legal_entity_code": le_code,
                "legal_entity_name": le_name,
                "counterparty_legal_entity_id": line.counterparty_legal_entity_id,
                "counterparty_legal_entity_code": cp_code,
                "counterparty_legal_entity_name": cp_name,
                "debit_amount": float(line.debit_amount or 0),
                "credit_amount": float(line.credit_amount or 0),
                "currency_code": line.currency_code,
                "description": line.description,
            })
        return lines
