"""
GroupLedger - Audit Log Model

Append-only record of state-changing consolidation operations.
"""

import enum
import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import DateTime, JSON, String, Uuid, Enum as SQLEnum, func
from sqlalchemy.orm import Mapped, mapped_column

from groupledger.database import Base


class AuditAction(str, enum.Enum):
    """Audit action types for consolidation operations."""
    CREATE = "create"
    UPDATE = "update"
    EXECUTE = "execute"
    POST = "post"
    FINALIZE = "finalize"


class AuditLog(Base):
    """
    Immutable audit log entry.

    This table should have no UPDATE or DELETE permissions.
    """

    __tablename__ = "audit_logs"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    tenant_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)

    action: Mapped[AuditAction] = mapped_column(
        SQLEnum(AuditAction, name="auditaction"),
        nullable=False,
    )
    resource_type: Mapped[str] = mapped_column(String(100), nullable=False)
    resource_id: Mapped[str] = mapped_column(String(100), nullable=False)
    payload: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<AuditLog({self.action}: {self.resource_type}/{self.resource_id})>"
