"""
GroupLedger - Consolidation Setup Service

Group setup operations:
- Consolidation groups (upsert by code)
- Group memberships with ownership and effective windows
- Local-to-group chart of accounts mappings
- Elimination placeholders
"""

import logging
import uuid
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional, Set

from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from groupledger.models.consolidation import (
    ConsolidationGroup,
    ConsolidationGroupMember,
    ConsolidationMethod,
    EliminationPlaceholder,
    GroupCoaMapping,
    PlaceholderDirection,
    RecordStatus,
)
from groupledger.models.ledger import CoaScope, LegalEntity
from groupledger.services.tenant_guard import TenantGuard
from groupledger.utils.error_handling import ValidationException
from groupledger.utils.permissions import Actor, ScopeType

logger = logging.getLogger(__name__)


def _as_uuids(values) -> List[uuid.UUID]:
    ids = []
    for value in values:
        try:
            ids.append(uuid.UUID(str(value)))
        except ValueError:
            logger.warning(f"Ignoring malformed scope id {value!r}")
    return ids


def _check_scope(actor: Optional[Actor], scope_type: ScopeType, scope_id, field: str) -> None:
    if actor is not None and scope_id is not None:
        actor.assert_scope_access(scope_type, scope_id, field=field)


class ConsolidationService:
    """Service for consolidation group setup."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.guard = TenantGuard(db)

    # =========================================================================
    # GROUPS
    # =========================================================================

    async def create_group(
        self,
        tenant_id: uuid.UUID,
        code: str,
        name: str,
        calendar_id: uuid.UUID,
        presentation_currency_code: str,
        group_company_id: Optional[uuid.UUID] = None,
        actor: Optional[Actor] = None,
    ) -> ConsolidationGroup:
        """
        Create a group, or update the group already holding this code.

        Code is unique per tenant; an existing group gets its parent company,
        calendar, name and presentation currency replaced.
        """
        await self.guard.require_calendar(tenant_id, calendar_id)
        _check_scope(actor, ScopeType.GROUP, group_company_id, "group_company_id")

        code = code.strip()
        result = await self.db.execute(
            select(ConsolidationGroup).where(and_(
                ConsolidationGroup.tenant_id == tenant_id,
                ConsolidationGroup.code == code,
            ))
        )
        group = result.scalar_one_or_none()

        if group is None:
            group = ConsolidationGroup(tenant_id=tenant_id, code=code)
            self.db.add(group)
            logger.info(f"Creating consolidation group {code} for tenant {tenant_id}")
        else:
            _check_scope(actor, ScopeType.GROUP, group.group_company_id, "group_company_id")

        group.group_company_id = group_company_id
        group.calendar_id = calendar_id
        group.name = name.strip()
        group.presentation_currency_code = presentation_currency_code.strip().upper()

        await self.db.commit()
        await self.db.refresh(group)
        return group

    async def list_groups(
        self,
        tenant_id: uuid.UUID,
        group_company_ids: Optional[Set[str]] = None,
    ) -> List[ConsolidationGroup]:
        """
        List a tenant's groups.

        group_company_ids restricts the result to groups owned by those
        parent companies (used for scope-restricted actors).
        """
        conditions = [ConsolidationGroup.tenant_id == tenant_id]
        if group_company_ids is not None:
            if not group_company_ids:
                return []
            conditions.append(ConsolidationGroup.group_company_id.in_(_as_uuids(group_company_ids)))

        result = await self.db.execute(
            select(ConsolidationGroup)
            .where(and_(*conditions))
            .order_by(ConsolidationGroup.code)
        )
        return list(result.scalars().all())

    async def get_group(
        self,
        tenant_id: uuid.UUID,
        group_id: uuid.UUID,
        actor: Optional[Actor] = None,
    ) -> ConsolidationGroup:
        group = await self.guard.require_group(tenant_id, group_id)
        _check_scope(actor, ScopeType.GROUP, group.group_company_id, "group_company_id")
        return group

    # =========================================================================
    # MEMBERS
    # =========================================================================

    async def upsert_member(
        self,
        tenant_id: uuid.UUID,
        group_id: uuid.UUID,
        legal_entity_id: uuid.UUID,
        effective_from: date,
        effective_to: Optional[date] = None,
        consolidation_method: ConsolidationMethod = ConsolidationMethod.FULL,
        ownership_pct: Decimal = Decimal("1"),
        actor: Optional[Actor] = None,
    ) -> ConsolidationGroupMember:
        """
        Add a membership window, or update the window starting on
        effective_from for the same legal entity.
        """
        await self.get_group(tenant_id, group_id, actor)
        await self.guard.require_legal_entity(tenant_id, legal_entity_id)
        _check_scope(actor, ScopeType.LEGAL_ENTITY, legal_entity_id, "legal_entity_id")

        if effective_to is not None and effective_to < effective_from:
            raise ValidationException("effective_to must not be before effective_from", field="effective_to")

        result = await self.db.execute(
            select(ConsolidationGroupMember).where(and_(
                ConsolidationGroupMember.consolidation_group_id == group_id,
                ConsolidationGroupMember.legal_entity_id == legal_entity_id,
                ConsolidationGroupMember.effective_from == effective_from,
            ))
        )
        member = result.scalar_one_or_none()

        if member is None:
            member = ConsolidationGroupMember(
                consolidation_group_id=group_id,
                legal_entity_id=legal_entity_id,
                effective_from=effective_from,
            )
            self.db.add(member)

        member.consolidation_method = consolidation_method
        member.ownership_pct = ownership_pct
        member.effective_to = effective_to

        await self.db.commit()
        await self.db.refresh(member)
        return member

    async def list_members(
        self,
        tenant_id: uuid.UUID,
        group_id: uuid.UUID,
        legal_entity_id: Optional[uuid.UUID] = None,
        actor: Optional[Actor] = None,
    ) -> List[Dict[str, Any]]:
        """Membership windows of a group, most recent first."""
        await self.get_group(tenant_id, group_id, actor)

        conditions = [ConsolidationGroupMember.consolidation_group_id == group_id]
        if legal_entity_id:
            await self.guard.require_legal_entity(tenant_id, legal_entity_id)
            _check_scope(actor, ScopeType.LEGAL_ENTITY, legal_entity_id, "legal_entity_id")
            conditions.append(ConsolidationGroupMember.legal_entity_id == legal_entity_id)

        result = await self.db.execute(
            select(ConsolidationGroupMember, LegalEntity.code, LegalEntity.name)
            .join(LegalEntity, LegalEntity.id == ConsolidationGroupMember.legal_entity_id)
            .where(and_(*conditions))
            .order_by(ConsolidationGroupMember.effective_from.desc(), LegalEntity.code)
        )

        return [
            {
                "id": member.id,
                "consolidation_group_id": member.consolidation_group_id,
                "legal_entity_id": member.legal_entity_id,
                "legal_entity_code": le_code,
                "legal_entity_name": le_name,
                "consolidation_method": member.consolidation_method.value,
                "ownership_pct": float(member.ownership_pct),
                "effective_from": member.effective_from,
                "effective_to": member.effective_to,
            }
            for member, le_code, le_name in result.all()
        ]

    # =========================================================================
    # CHART OF ACCOUNTS MAPPINGS
    # =========================================================================

    async def upsert_coa_mapping(
        self,
        tenant_id: uuid.UUID,
        group_id: uuid.UUID,
        legal_entity_id: uuid.UUID,
        group_coa_id: uuid.UUID,
        local_coa_id: uuid.UUID,
        status: RecordStatus = RecordStatus.ACTIVE,
        actor: Optional[Actor] = None,
    ) -> GroupCoaMapping:
        """
        Map a legal entity's local chart onto the group chart.

        The group chart must be GROUP scoped and the local chart must belong
        to the legal entity.
        """
        await self.get_group(tenant_id, group_id, actor)
        await self.guard.require_legal_entity(tenant_id, legal_entity_id)
        _check_scope(actor, ScopeType.LEGAL_ENTITY, legal_entity_id, "legal_entity_id")

        group_coa = await self.guard.require_chart(tenant_id, group_coa_id, field="group_coa_id")
        local_coa = await self.guard.require_chart(tenant_id, local_coa_id, field="local_coa_id")

        if group_coa.scope != CoaScope.GROUP:
            raise ValidationException(
                "group_coa_id must reference a GROUP scoped chart of accounts",
                field="group_coa_id",
            )
        if local_coa.legal_entity_id != legal_entity_id:
            raise ValidationException("local_coa_id must belong to legal_entity_id", field="local_coa_id")

        result = await self.db.execute(
            select(GroupCoaMapping).where(and_(
                GroupCoaMapping.consolidation_group_id == group_id,
                GroupCoaMapping.legal_entity_id == legal_entity_id,
                GroupCoaMapping.group_coa_id == group_coa_id,
                GroupCoaMapping.local_coa_id == local_coa_id,
            ))
        )
        mapping = result.scalar_one_or_none()

        if mapping is None:
            mapping = GroupCoaMapping(
                tenant_id=tenant_id,
                consolidation_group_id=group_id,
                legal_entity_id=legal_entity_id,
                group_coa_id=group_coa_id,
                local_coa_id=local_coa_id,
            )
            self.db.add(mapping)

        mapping.status = status

        await self.db.commit()
        await self.db.refresh(mapping)
        return mapping

    async def list_coa_mappings(
        self,
        tenant_id: uuid.UUID,
        group_id: uuid.UUID,
        legal_entity_id: Optional[uuid.UUID] = None,
        actor: Optional[Actor] = None,
    ) -> List[GroupCoaMapping]:
        await self.get_group(tenant_id, group_id, actor)

        conditions = [
            GroupCoaMapping.tenant_id == tenant_id,
            GroupCoaMapping.consolidation_group_id == group_id,
        ]
        if legal_entity_id:
            await self.guard.require_legal_entity(tenant_id, legal_entity_id)
            _check_scope(actor, ScopeType.LEGAL_ENTITY, legal_entity_id, "legal_entity_id")
            conditions.append(GroupCoaMapping.legal_entity_id == legal_entity_id)

        result = await self.db.execute(
            select(GroupCoaMapping)
            .where(and_(*conditions))
            .order_by(GroupCoaMapping.created_at, GroupCoaMapping.id)
        )
        return list(result.scalars().all())

    # =========================================================================
    # ELIMINATION PLACEHOLDERS
    # =========================================================================

    async def upsert_elimination_placeholder(
        self,
        tenant_id: uuid.UUID,
        group_id: uuid.UUID,
        placeholder_code: str,
        name: str,
        account_id: Optional[uuid.UUID] = None,
        default_direction: PlaceholderDirection = PlaceholderDirection.AUTO,
        description: Optional[str] = None,
        is_active: bool = True,
        actor: Optional[Actor] = None,
    ) -> EliminationPlaceholder:
        """Create or update a placeholder, keyed by its upper-cased code within the group."""
        await self.get_group(tenant_id, group_id, actor)
        if account_id:
            await self.guard.require_account(tenant_id, account_id)

        code = placeholder_code.strip().upper()
        if not code:
            raise ValidationException("placeholder_code is required", field="placeholder_code")

        result = await self.db.execute(
            select(EliminationPlaceholder).where(and_(
                EliminationPlaceholder.consolidation_group_id == group_id,
                EliminationPlaceholder.placeholder_code == code,
            ))
        )
        placeholder = result.scalar_one_or_none()

        if placeholder is None:
            placeholder = EliminationPlaceholder(
                tenant_id=tenant_id,
                consolidation_group_id=group_id,
                placeholder_code=code,
            )
            self.db.add(placeholder)

        placeholder.name = name.strip()
        placeholder.account_id = account_id
        placeholder.default_direction = default_direction
        placeholder.description = description
        placeholder.is_active = is_active

        await self.db.commit()
        await self.db.refresh(placeholder)
        return placeholder

    async def list_elimination_placeholders(
        self,
        tenant_id: uuid.UUID,
        group_id: uuid.UUID,
        actor: Optional[Actor] = None,
    ) -> List[EliminationPlaceholder]:
        await self.get_group(tenant_id, group_id, actor)

        result = await self.db.execute(
            select(EliminationPlaceholder)
            .where(and_(
                EliminationPlaceholder.tenant_id == tenant_id,
                EliminationPlaceholder.consolidation_group_id == group_id,
            ))
            .order_by(EliminationPlaceholder.placeholder_code)
        )
        return list(result.scalars().all())
