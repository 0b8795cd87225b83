"""
GroupLedger - FastAPI Dependencies

Shared dependencies for database sessions, the calling actor and
permission checks.

The upstream gateway authenticates the caller and forwards the resolved
identity as headers:
    X-Tenant-Id          tenant UUID
    X-User-Id            user UUID
    X-Actor-Permissions  comma-separated permission codes ("*" for all)
    X-Actor-Scopes       optional scope grants, e.g. "GROUP:<id>,LEGAL_ENTITY:<id>"
"""

import uuid
from typing import Optional

from fastapi import Depends, Header, Request
from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from groupledger.database import get_async_session
from groupledger.models.consolidation import ConsolidationGroup, ConsolidationRun
from groupledger.utils.error_handling import (
    AuthenticationException,
    RunNotFoundException,
    ValidationException,
)
from groupledger.utils.permissions import (
    Actor,
    ConsolidationPermission,
    ScopeType,
    parse_permissions,
    parse_scope_grants,
)


def _parse_uuid_header(value: Optional[str], header: str) -> uuid.UUID:
    if not value or not value.strip():
        raise AuthenticationException(f"{header} header is required")
    try:
        return uuid.UUID(value.strip())
    except ValueError:
        raise ValidationException(f"{header} must be a valid UUID", field=header)


async def get_current_actor(
    x_tenant_id: Optional[str] = Header(None, alias="X-Tenant-Id"),
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    x_actor_permissions: Optional[str] = Header(None, alias="X-Actor-Permissions"),
    x_actor_scopes: Optional[str] = Header(None, alias="X-Actor-Scopes"),
) -> Actor:
    """
    Build the Actor from gateway headers.

    Raises:
        AuthenticationException: tenant or user header missing
        ValidationException: malformed UUID or scope grant
    """
    return Actor(
        tenant_id=_parse_uuid_header(x_tenant_id, "X-Tenant-Id"),
        user_id=_parse_uuid_header(x_user_id, "X-User-Id"),
        permissions=parse_permissions(x_actor_permissions),
        scopes=parse_scope_grants(x_actor_scopes),
    )


async def resolve_run_group_company(
    db: AsyncSession,
    tenant_id: uuid.UUID,
    run_id: uuid.UUID,
) -> Optional[uuid.UUID]:
    """Parent company of the group a run belongs to (the run's GROUP scope)."""
    result = await db.execute(
        select(ConsolidationRun.id, ConsolidationGroup.group_company_id)
        .join(ConsolidationGroup, ConsolidationGroup.id == ConsolidationRun.consolidation_group_id)
        .where(and_(
            ConsolidationRun.id == run_id,
            ConsolidationGroup.tenant_id == tenant_id,
        ))
    )
    row = result.first()
    if row is None:
        raise RunNotFoundException(run_id)
    return row.group_company_id


def require_permission(permission: ConsolidationPermission, run_scope: bool = False):
    """
    Require a permission code.

    With run_scope=True the route's run_id path parameter is resolved to
    its group's parent company and checked against the actor's GROUP scope.

    Usage:
        @router.post("/runs/{run_id}/execute")
        async def execute_run(
            actor: Actor = Depends(require_permission(ConsolidationPermission.RUN_EXECUTE, run_scope=True)),
        ):
            ...
    """
    async def permission_checker(
        request: Request,
        actor: Actor = Depends(get_current_actor),
        db: AsyncSession = Depends(get_async_session),
    ) -> Actor:
        actor.assert_permission(permission)

        if run_scope and actor.scopes is not None:
            raw_run_id = request.path_params.get("run_id")
            try:
                run_id = uuid.UUID(str(raw_run_id))
            except ValueError:
                raise ValidationException("run_id must be a valid UUID", field="run_id")
            group_company_id = await resolve_run_group_company(db, actor.tenant_id, run_id)
            actor.assert_scope_access(ScopeType.GROUP, group_company_id, field="run_id")

        return actor

    return permission_checker
