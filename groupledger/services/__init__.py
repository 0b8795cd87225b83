"""
GroupLedger - Services Package

Business logic services.
"""

from groupledger.services.adjustment_service import AdjustmentService
from groupledger.services.audit_service import AuditService
from groupledger.services.balance_loader import BalanceLoader
from groupledger.services.cache_service import CacheService
from groupledger.services.consolidation_report_service import ConsolidationReportService
from groupledger.services.consolidation_run_service import ConsolidationRunService
from groupledger.services.consolidation_service import ConsolidationService
from groupledger.services.elimination_service import EliminationService
from groupledger.services.fx_service import FXService
from groupledger.services.membership_service import MembershipService
from groupledger.services.tenant_guard import TenantGuard

__all__ = [
    "AdjustmentService",
    "AuditService",
    "BalanceLoader",
    "CacheService",
    "ConsolidationReportService",
    "ConsolidationRunService",
    "ConsolidationService",
    "EliminationService",
    "FXService",
    "MembershipService",
    "TenantGuard",
]
