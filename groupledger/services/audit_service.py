"""
GroupLedger - Audit Trail Service

Fire-and-forget audit logging for state-changing consolidation operations.
A failed audit write is logged and rolled back; it never fails the caller.
"""

import logging
import uuid
from typing import Any, Dict, List, Optional, Union

from fastapi.encoders import jsonable_encoder
from sqlalchemy import select, and_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from groupledger.models.audit import AuditLog, AuditAction

logger = logging.getLogger(__name__)


class AuditService:
    """Service for writing and reading the consolidation audit trail."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def log_action(
        self,
        tenant_id: uuid.UUID,
        action: AuditAction,
        resource_type: str,
        resource_id: Union[str, uuid.UUID],
        user_id: Optional[uuid.UUID] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> Optional[AuditLog]:
        """
        Log an audit action.

        Args:
            tenant_id: Tenant owning the resource
            action: Type of action performed
            resource_type: e.g. 'consolidation_run', 'elimination_entry'
            resource_id: ID of the affected resource
            user_id: ID of user who performed the action
            payload: Operation result or request summary

        Returns:
            Created AuditLog record, or None when the write failed
        """
        audit_log = AuditLog(
            tenant_id=tenant_id,
            user_id=user_id,
            action=action,
            resource_type=resource_type,
            resource_id=str(resource_id),
            payload=jsonable_encoder(payload) if payload is not None else None,
        )

        try:
            self.db.add(audit_log)
            await self.db.commit()
        except SQLAlchemyError as e:
            logger.warning(
                f"Audit write failed for {resource_type}/{resource_id} ({action.value}): {e}"
            )
            await self.db.rollback()
            return None

        return audit_log

    async def get_resource_history(
        self,
        tenant_id: uuid.UUID,
        resource_type: str,
        resource_id: Union[str, uuid.UUID],
        limit: int = 100,
    ) -> List[AuditLog]:
        """Audit history for one resource, newest first."""
        result = await self.db.execute(
            select(AuditLog)
            .where(and_(
                AuditLog.tenant_id == tenant_id,
                AuditLog.resource_type == resource_type,
                AuditLog.resource_id == str(resource_id),
            ))
            .order_by(AuditLog.created_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())
