"""
GroupLedger - Permissions System

Permission codes and scope checks for the consolidation engine.

Identity and role evaluation live in the upstream gateway. The gateway
forwards the resolved actor (tenant, user, granted permission codes and
optional scope grants); this module only answers "may this actor perform
this action in this scope".

Scope model:
============

| Scope        | Scope id                     | Checked by                         |
|--------------|------------------------------|------------------------------------|
| TENANT       | tenant id                    | every route (tenant match)         |
| GROUP        | group_company_id of a group  | group setup, runs, reports         |
| LEGAL_ENTITY | legal entity id              | members, mappings, elim/adj lines  |

An actor without scope grants is unrestricted inside its tenant.
"""

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Set, Union

from groupledger.utils.error_handling import (
    InsufficientPermissionsException,
    ScopeAccessDeniedException,
    ValidationException,
)


# ===========================================
# PERMISSION ENUMS
# ===========================================

class ScopeType(str, Enum):
    TENANT = "TENANT"
    GROUP = "GROUP"
    LEGAL_ENTITY = "LEGAL_ENTITY"


class ConsolidationPermission(str, Enum):
    """Permission codes checked by the consolidation routes."""

    # Group setup
    GROUP_READ = "consolidation.group.read"
    GROUP_UPSERT = "consolidation.group.upsert"
    GROUP_MEMBER_UPSERT = "consolidation.group_member.upsert"
    COA_MAPPING_READ = "consolidation.coa_mapping.read"
    COA_MAPPING_UPSERT = "consolidation.coa_mapping.upsert"
    ELIMINATION_PLACEHOLDER_READ = "consolidation.elimination_placeholder.read"
    ELIMINATION_PLACEHOLDER_UPSERT = "consolidation.elimination_placeholder.upsert"

    # Runs
    RUN_READ = "consolidation.run.read"
    RUN_CREATE = "consolidation.run.create"
    RUN_EXECUTE = "consolidation.run.execute"
    RUN_FINALIZE = "consolidation.run.finalize"

    # Eliminations & adjustments
    ELIMINATION_CREATE = "consolidation.elimination.create"
    ELIMINATION_POST = "consolidation.elimination.post"
    ADJUSTMENT_CREATE = "consolidation.adjustment.create"
    ADJUSTMENT_POST = "consolidation.adjustment.post"

    # Reports
    REPORT_TRIAL_BALANCE_READ = "consolidation.report.trial_balance.read"
    REPORT_SUMMARY_READ = "consolidation.report.summary.read"
    REPORT_BALANCE_SHEET_READ = "consolidation.report.balance_sheet.read"
    REPORT_INCOME_STATEMENT_READ = "consolidation.report.income_statement.read"

    # FX
    FX_RATE_READ = "fx.rate.read"
    FX_RATE_BULK_UPSERT = "fx.rate.bulk_upsert"


WILDCARD = "*"


# ===========================================
# ACTOR
# ===========================================

@dataclass
class Actor:
    """The caller as resolved by the gateway."""

    tenant_id: uuid.UUID
    user_id: uuid.UUID
    permissions: Set[str] = field(default_factory=set)
    # None means unrestricted within the tenant
    scopes: Optional[Dict[ScopeType, Set[str]]] = None

    def has_permission(self, permission: Union[ConsolidationPermission, str]) -> bool:
        code = permission.value if isinstance(permission, ConsolidationPermission) else permission
        if WILDCARD in self.permissions or code in self.permissions:
            return True
        # "consolidation.*" grants every consolidation permission
        prefix = code.split(".", 1)[0]
        return f"{prefix}.{WILDCARD}" in self.permissions

    def assert_permission(self, permission: ConsolidationPermission) -> None:
        if not self.has_permission(permission):
            raise InsufficientPermissionsException(permission.value)

    def can_access_scope(self, scope_type: ScopeType, scope_id) -> bool:
        if scope_type == ScopeType.TENANT:
            return str(scope_id) == str(self.tenant_id)
        if scope_id is None or self.scopes is None:
            return True
        return str(scope_id) in self.scopes.get(scope_type, set())

    def assert_scope_access(self, scope_type: ScopeType, scope_id, field: Optional[str] = None) -> None:
        """Raise ScopeAccessDeniedException unless the actor may act in the scope."""
        if not self.can_access_scope(scope_type, scope_id):
            raise ScopeAccessDeniedException(scope_type.value, scope_id, field=field)

    def scope_filter(self, scope_type: ScopeType) -> Optional[Set[str]]:
        """Granted ids for list filtering, or None when unrestricted."""
        if self.scopes is None:
            return None
        return set(self.scopes.get(scope_type, set()))


def parse_permissions(raw: Optional[str]) -> Set[str]:
    """Parse a comma-separated permission header."""
    if not raw:
        return set()
    return {item.strip() for item in raw.split(",") if item.strip()}


def parse_scope_grants(raw: Optional[str]) -> Optional[Dict[ScopeType, Set[str]]]:
    """
    Parse a scope grant header such as "GROUP:<id>,LEGAL_ENTITY:<id>".

    A missing header or "*" means unrestricted.
    """
    if raw is None or raw.strip() in ("", WILDCARD):
        return None

    grants: Dict[ScopeType, Set[str]] = {}
    for item in raw.split(","):
        item = item.strip()
        if not item:
            continue
        scope_name, sep, scope_id = item.partition(":")
        try:
            scope_type = ScopeType(scope_name.strip().upper())
        except ValueError:
            raise ValidationException(f"Unknown scope type '{scope_name}'", field="X-Actor-Scopes")
        if not sep or not scope_id.strip():
            raise ValidationException(f"Scope grant '{item}' has no id", field="X-Actor-Scopes")
        grants.setdefault(scope_type, set()).add(scope_id.strip())
    return grants
