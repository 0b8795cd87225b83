"""
GroupLedger - Membership Resolver

Resolves which legal entities belong to a consolidation group during a
fiscal period, and how much of each entity's ledger flows into the group.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from sqlalchemy import select, and_, or_
from sqlalchemy.ext.asyncio import AsyncSession

from groupledger.models.consolidation import ConsolidationGroupMember, ConsolidationMethod
from groupledger.models.ledger import LegalEntity

logger = logging.getLogger(__name__)

ONE = Decimal("1")
ZERO = Decimal("0")


@dataclass
class ResolvedMember:
    """A legal entity participating in a run, with its weighting inputs."""
    member_id: uuid.UUID
    legal_entity_id: uuid.UUID
    legal_entity_code: str
    functional_currency_code: str
    consolidation_method: ConsolidationMethod
    ownership_pct: Decimal
    effective_from: date
    effective_to: Optional[date]

    @property
    def ownership_factor(self) -> Decimal:
        return ownership_factor(self.consolidation_method, self.ownership_pct)


def ownership_factor(method: Any, ownership_pct: Any) -> Decimal:
    """
    Weight applied to a member's translated amounts.

    FULL members contribute 100%. PROPORTIONATE members contribute their
    ownership share clamped to [0, 1]; a missing or non-numeric share
    contributes 100%.
    """
    if method in (ConsolidationMethod.FULL, ConsolidationMethod.FULL.value):
        return ONE

    try:
        pct = Decimal(str(ownership_pct))
    except (InvalidOperation, ValueError, TypeError):
        return ONE
    if not pct.is_finite():
        return ONE

    if pct < ZERO or pct > ONE:
        clamped = min(max(pct, ZERO), ONE)
        logger.warning(f"Ownership pct {pct} outside [0, 1]; clamped to {clamped}")
        return clamped
    return pct


class MembershipService:
    """Service for resolving group membership."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def resolve_members(
        self,
        group_id: uuid.UUID,
        period_start: date,
        period_end: date,
    ) -> List[ResolvedMember]:
        """
        Members whose effective window overlaps [period_start, period_end].

        When overlapping windows exist for the same legal entity the one with
        the latest effective_from is used.
        """
        result = await self.db.execute(
            select(ConsolidationGroupMember, LegalEntity.code, LegalEntity.functional_currency_code)
            .join(LegalEntity, LegalEntity.id == ConsolidationGroupMember.legal_entity_id)
            .where(and_(
                ConsolidationGroupMember.consolidation_group_id == group_id,
                ConsolidationGroupMember.effective_from <= period_end,
                or_(
                    ConsolidationGroupMember.effective_to.is_(None),
                    ConsolidationGroupMember.effective_to >= period_start,
                ),
            ))
            .order_by(LegalEntity.code, ConsolidationGroupMember.effective_from)
        )

        members: Dict[uuid.UUID, ResolvedMember] = {}
        for member, le_code, currency_code in result.all():
            if member.legal_entity_id in members:
                logger.warning(
                    f"Overlapping membership windows for legal entity {le_code} in group {group_id}; "
                    f"using window starting {member.effective_from}"
                )
            members[member.legal_entity_id] = ResolvedMember(
                member_id=member.id,
                legal_entity_id=member.legal_entity_id,
                legal_entity_code=le_code,
                functional_currency_code=currency_code,
                consolidation_method=member.consolidation_method,
                ownership_pct=Decimal(str(member.ownership_pct)) if member.ownership_pct is not None else ONE,
                effective_from=member.effective_from,
                effective_to=member.effective_to,
            )

        return list(members.values())
