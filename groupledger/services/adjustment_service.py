"""
GroupLedger - Adjustment Service

Top-side, single-account adjustments layered on a consolidation run.

Drafts are not validated for one-sidedness so they can be edited freely;
the rule is enforced when the adjustment is posted.
"""

import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from groupledger.config import get_settings
from groupledger.models.audit import AuditAction
from groupledger.models.consolidation import (
    ConsolidationAdjustment,
    ConsolidationGroup,
    ConsolidationRun,
    PostingStatus,
    RunStatus,
)
from groupledger.models.ledger import Account, LegalEntity
from groupledger.services.audit_service import AuditService
from groupledger.services.elimination_service import (
    normalize_posting_status_filter,
    posting_result,
)
from groupledger.services.tenant_guard import TenantGuard
from groupledger.utils.error_handling import (
    NotFoundException,
    NotOneSidedException,
    RunLockedException,
)
from groupledger.utils.permissions import Actor, ScopeType

logger = logging.getLogger(__name__)
settings = get_settings()

DEFAULT_ADJUSTMENT_TYPE = "TOPSIDE"


def is_one_sided(debit_amount: Decimal, credit_amount: Decimal, epsilon: Decimal) -> bool:
    """Exactly one side positive, the other zero within epsilon."""
    return (
        (debit_amount > 0 and abs(credit_amount) < epsilon)
        or (credit_amount > 0 and abs(debit_amount) < epsilon)
    )


class AdjustmentService:
    """Service for consolidation adjustments."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.guard = TenantGuard(db)
        self.audit = AuditService(db)

    async def create_adjustment(
        self,
        tenant_id: uuid.UUID,
        run_id: uuid.UUID,
        created_by_user_id: uuid.UUID,
        account_id: uuid.UUID,
        description: str,
        debit_amount: Any = 0,
        credit_amount: Any = 0,
        legal_entity_id: Optional[uuid.UUID] = None,
        currency_code: Optional[str] = None,
        adjustment_type: Optional[str] = None,
        actor: Optional[Actor] = None,
    ) -> Dict[str, Any]:
        """Create a DRAFT adjustment on a run that is not LOCKED."""
        context = await self.guard.require_run(tenant_id, run_id)
        if context.run.status == RunStatus.LOCKED:
            raise RunLockedException(run_id)

        await self.guard.require_account(tenant_id, account_id)
        if legal_entity_id:
            await self.guard.require_legal_entity(tenant_id, legal_entity_id)
            if actor is not None:
                actor.assert_scope_access(ScopeType.LEGAL_ENTITY, legal_entity_id, field="legal_entity_id")

        adjustment = ConsolidationAdjustment(
            consolidation_run_id=run_id,
            adjustment_type=(adjustment_type or DEFAULT_ADJUSTMENT_TYPE).strip().upper(),
            status=PostingStatus.DRAFT,
            legal_entity_id=legal_entity_id,
            account_id=account_id,
            debit_amount=Decimal(str(debit_amount or 0)),
            credit_amount=Decimal(str(credit_amount or 0)),
            currency_code=(currency_code or context.run.presentation_currency_code).strip().upper(),
            description=description,
            created_by_user_id=created_by_user_id,
        )
        self.db.add(adjustment)
        await self.db.commit()
        await self.db.refresh(adjustment)

        logger.info(f"Created {adjustment.adjustment_type} adjustment {adjustment.id} on run {run_id}")

        created = self._to_dict(adjustment)
        await self.audit.log_action(
            tenant_id=tenant_id,
            action=AuditAction.CREATE,
            resource_type="consolidation_adjustment",
            resource_id=created["id"],
            user_id=created_by_user_id,
            payload={"run_id": run_id, "account_id": account_id},
        )
        return created

    async def post_adjustment(
        self,
        tenant_id: uuid.UUID,
        run_id: uuid.UUID,
        adjustment_id: uuid.UUID,
        posted_by_user_id: uuid.UUID,
    ) -> Dict[str, Any]:
        """
        Post a DRAFT adjustment under a row lock.

        Raises:
            NotFoundException: adjustment does not exist on the run for the tenant
            RunLockedException: the run is LOCKED
            NotOneSidedException: debit and credit are both set, or neither
        """
        await self.guard.require_run(tenant_id, run_id)

        result = await self.db.execute(
            select(ConsolidationAdjustment, ConsolidationRun.status)
            .join(ConsolidationRun, ConsolidationRun.id == ConsolidationAdjustment.consolidation_run_id)
            .join(ConsolidationGroup, ConsolidationGroup.id == ConsolidationRun.consolidation_group_id)
            .where(and_(
                ConsolidationAdjustment.id == adjustment_id,
                ConsolidationAdjustment.consolidation_run_id == run_id,
                ConsolidationGroup.tenant_id == tenant_id,
            ))
            .with_for_update(of=ConsolidationAdjustment)
            .execution_options(populate_existing=True)
        )
        row = result.first()
        if row is None:
            await self.db.rollback()
            raise NotFoundException("Adjustment", adjustment_id, message="Adjustment not found for run and tenant")
        adjustment, run_status = row

        if run_status == RunStatus.LOCKED:
            await self.db.rollback()
            raise RunLockedException(run_id)

        if adjustment.status == PostingStatus.POSTED:
            outcome = posting_result(adjustment, adjustment_id, idempotent=True)
            await self.db.rollback()
            return outcome

        debit = Decimal(str(adjustment.debit_amount or 0))
        credit = Decimal(str(adjustment.credit_amount or 0))
        if not is_one_sided(debit, credit, Decimal(str(settings.balance_epsilon))):
            await self.db.rollback()
            raise NotOneSidedException(float(debit), float(credit))

        adjustment.status = PostingStatus.POSTED
        adjustment.posted_by_user_id = posted_by_user_id
        adjustment.posted_at = datetime.now(timezone.utc)
        await self.db.commit()
        await self.db.refresh(adjustment)

        logger.info(f"Posted adjustment {adjustment_id} on run {run_id} by user {posted_by_user_id}")

        outcome = posting_result(adjustment, adjustment_id, idempotent=False)
        await self.audit.log_action(
            tenant_id=tenant_id,
            action=AuditAction.POST,
            resource_type="consolidation_adjustment",
            resource_id=adjustment_id,
            user_id=posted_by_user_id,
            payload=outcome,
        )
        return outcome

    async def list_adjustments(
        self,
        tenant_id: uuid.UUID,
        run_id: uuid.UUID,
        status: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Adjustments of a run with account and legal entity labels, newest first."""
        await self.guard.require_run(tenant_id, run_id)
        status_filter = normalize_posting_status_filter(status)

        conditions = [ConsolidationAdjustment.consolidation_run_id == run_id]
        if status_filter is not None:
            conditions.append(ConsolidationAdjustment.status == status_filter)

        result = await self.db.execute(
            select(
                ConsolidationAdjustment,
                Account.code,
                Account.name,
                Account.account_type,
                LegalEntity.code,
                LegalEntity.name,
            )
            .join(Account, Account.id == ConsolidationAdjustment.account_id)
            .outerjoin(LegalEntity, LegalEntity.id == ConsolidationAdjustment.legal_entity_id)
            .where(and_(*conditions))
            .order_by(ConsolidationAdjustment.created_at.desc())
        )

        rows = []
        for adjustment, acc_code, acc_name, acc_type, le_code, le_name in result.all():
            row = self._to_dict(adjustment)
            row.update({
                "account_code": acc_code,
                "account_name": acc_name,
                "account_type": acc_type.value if acc_type else None,
                "legal_entity_code": le_code,
                "legal_entity_name": le_name,
            })
            rows.append(row)

        return {
            "run_id": run_id,
            "status": status_filter.value if status_filter else "ALL",
            "rows": rows,
        }

    @staticmethod
    def _to_dict(adjustment: ConsolidationAdjustment) -> Dict[str, Any]:
        return {
            "id": adjustment.id,
            "consolidation_run_id": adjustment.consolidation_run_id,
            "adjustment_type": adjustment.adjustment_type,
            "status": adjustment.status.value,
            "legal_entity_id": adjustment.legal_entity_id,
            "account_id": adjustment.account_id,
            "debit_amount": float(adjustment.debit_amount or 0),
            "credit_amount": float(adjustment.credit_amount or 0),
            "currency_code": adjustment.currency_code,
            "description": adjustment.description,
            "created_by_user_id": adjustment.created_by_user_id,
            "posted_by_user_id": adjustment.posted_by_user_id,
            "created_at": adjustment.created_at,
            "posted_at": adjustment.posted_at,
        }
