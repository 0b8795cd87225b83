"""
GroupLedger - Consolidation Router

API endpoints for group consolidation:
- Group setup (groups, members, chart mappings, elimination placeholders)
- Consolidation runs (create, execute, finalize)
- Eliminations and top-side adjustments
- Run reports (trial balance, summary, balance sheet, income statement)
"""

import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from groupledger.database import get_db
from groupledger.dependencies import require_permission
from groupledger.schemas.consolidation import (
    AdjustmentCreate,
    CoaMappingResponse,
    CoaMappingUpsert,
    EliminationEntryCreate,
    EliminationPlaceholderResponse,
    EliminationPlaceholderUpsert,
    GroupResponse,
    GroupUpsert,
    MemberUpsert,
    PostingResponse,
    RunCreate,
    RunExecuteRequest,
)
from groupledger.services.adjustment_service import AdjustmentService
from groupledger.services.consolidation_report_service import ConsolidationReportService
from groupledger.services.consolidation_run_service import ConsolidationRunService
from groupledger.services.consolidation_service import ConsolidationService
from groupledger.services.elimination_service import EliminationService
from groupledger.utils.permissions import Actor, ConsolidationPermission as P, ScopeType

router = APIRouter(
    prefix="/api/v1/consolidation",
    tags=["Consolidation"],
)


# ============================================================================
# GROUPS
# ============================================================================

@router.get("/groups", response_model=List[GroupResponse])
async def list_groups(
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_permission(P.GROUP_READ)),
):
    """List consolidation groups visible to the caller."""
    service = ConsolidationService(db)
    return await service.list_groups(actor.tenant_id, actor.scope_filter(ScopeType.GROUP))


@router.post("/groups", response_model=GroupResponse, status_code=status.HTTP_201_CREATED)
async def upsert_group(
    data: GroupUpsert,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_permission(P.GROUP_UPSERT)),
):
    """Create a group, or update the group holding the same code."""
    service = ConsolidationService(db)
    return await service.create_group(
        tenant_id=actor.tenant_id,
        code=data.code,
        name=data.name,
        calendar_id=data.calendar_id,
        presentation_currency_code=data.presentation_currency_code,
        group_company_id=data.group_company_id,
        actor=actor,
    )


@router.get("/groups/{group_id}", response_model=GroupResponse)
async def get_group(
    group_id: uuid.UUID = Path(..., description="Consolidation group ID"),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_permission(P.GROUP_READ)),
):
    service = ConsolidationService(db)
    return await service.get_group(actor.tenant_id, group_id, actor=actor)


@router.get("/groups/{group_id}/members")
async def list_members(
    group_id: uuid.UUID = Path(..., description="Consolidation group ID"),
    legal_entity_id: Optional[uuid.UUID] = Query(None),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_permission(P.GROUP_READ)),
):
    service = ConsolidationService(db)
    rows = await service.list_members(actor.tenant_id, group_id, legal_entity_id, actor=actor)
    return {"group_id": group_id, "rows": rows}


@router.post("/groups/{group_id}/members", status_code=status.HTTP_201_CREATED)
async def upsert_member(
    data: MemberUpsert,
    group_id: uuid.UUID = Path(..., description="Consolidation group ID"),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_permission(P.GROUP_MEMBER_UPSERT)),
):
    """Add or update a membership window for a legal entity."""
    service = ConsolidationService(db)
    member = await service.upsert_member(
        tenant_id=actor.tenant_id,
        group_id=group_id,
        legal_entity_id=data.legal_entity_id,
        effective_from=data.effective_from,
        effective_to=data.effective_to,
        consolidation_method=data.consolidation_method,
        ownership_pct=data.ownership_pct,
        actor=actor,
    )
    return {
        "id": member.id,
        "consolidation_group_id": member.consolidation_group_id,
        "legal_entity_id": member.legal_entity_id,
        "consolidation_method": member.consolidation_method.value,
        "ownership_pct": float(member.ownership_pct),
        "effective_from": member.effective_from,
        "effective_to": member.effective_to,
    }


@router.get("/groups/{group_id}/coa-mappings", response_model=List[CoaMappingResponse])
async def list_coa_mappings(
    group_id: uuid.UUID = Path(..., description="Consolidation group ID"),
    legal_entity_id: Optional[uuid.UUID] = Query(None),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_permission(P.COA_MAPPING_READ)),
):
    service = ConsolidationService(db)
    return await service.list_coa_mappings(actor.tenant_id, group_id, legal_entity_id, actor=actor)


@router.post(
    "/groups/{group_id}/coa-mappings",
    response_model=CoaMappingResponse,
    status_code=status.HTTP_201_CREATED,
)
async def upsert_coa_mapping(
    data: CoaMappingUpsert,
    group_id: uuid.UUID = Path(..., description="Consolidation group ID"),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_permission(P.COA_MAPPING_UPSERT)),
):
    """Map a legal entity's local chart of accounts onto the group chart."""
    service = ConsolidationService(db)
    return await service.upsert_coa_mapping(
        tenant_id=actor.tenant_id,
        group_id=group_id,
        legal_entity_id=data.legal_entity_id,
        group_coa_id=data.group_coa_id,
        local_coa_id=data.local_coa_id,
        status=data.status,
        actor=actor,
    )


@router.get(
    "/groups/{group_id}/elimination-placeholders",
    response_model=List[EliminationPlaceholderResponse],
)
async def list_elimination_placeholders(
    group_id: uuid.UUID = Path(..., description="Consolidation group ID"),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_permission(P.ELIMINATION_PLACEHOLDER_READ)),
):
    service = ConsolidationService(db)
    return await service.list_elimination_placeholders(actor.tenant_id, group_id, actor=actor)


@router.post(
    "/groups/{group_id}/elimination-placeholders",
    response_model=EliminationPlaceholderResponse,
    status_code=status.HTTP_201_CREATED,
)
async def upsert_elimination_placeholder(
    data: EliminationPlaceholderUpsert,
    group_id: uuid.UUID = Path(..., description="Consolidation group ID"),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_permission(P.ELIMINATION_PLACEHOLDER_UPSERT)),
):
    service = ConsolidationService(db)
    return await service.upsert_elimination_placeholder(
        tenant_id=actor.tenant_id,
        group_id=group_id,
        placeholder_code=data.placeholder_code,
        name=data.name,
        account_id=data.account_id,
        default_direction=data.default_direction,
        description=data.description,
        is_active=data.is_active,
        actor=actor,
    )


# ============================================================================
# RUNS
# ============================================================================

@router.get("/runs")
async def list_runs(
    group_id: Optional[uuid.UUID] = Query(None),
    fiscal_period_id: Optional[uuid.UUID] = Query(None),
    run_status: Optional[str] = Query(None, alias="status"),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_permission(P.RUN_READ)),
):
    service = ConsolidationRunService(db)
    rows = await service.list_runs(
        tenant_id=actor.tenant_id,
        group_id=group_id,
        fiscal_period_id=fiscal_period_id,
        status=run_status,
        group_company_ids=actor.scope_filter(ScopeType.GROUP),
    )
    return {"rows": rows}


@router.post("/runs", status_code=status.HTTP_201_CREATED)
async def create_run(
    data: RunCreate,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_permission(P.RUN_CREATE)),
):
    """Create a DRAFT run for a group and fiscal period."""
    service = ConsolidationRunService(db)
    run = await service.create_run(
        tenant_id=actor.tenant_id,
        group_id=data.consolidation_group_id,
        fiscal_period_id=data.fiscal_period_id,
        run_name=data.run_name,
        started_by_user_id=actor.user_id,
        presentation_currency_code=data.presentation_currency_code,
        actor=actor,
    )
    return await service.get_run(actor.tenant_id, run.id)


@router.get("/runs/{run_id}")
async def get_run(
    run_id: uuid.UUID = Path(..., description="Consolidation run ID"),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_permission(P.RUN_READ, run_scope=True)),
):
    service = ConsolidationRunService(db)
    return await service.get_run(actor.tenant_id, run_id)


@router.post("/runs/{run_id}/execute")
async def execute_run(
    data: Optional[RunExecuteRequest] = None,
    run_id: uuid.UUID = Path(..., description="Consolidation run ID"),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_permission(P.RUN_EXECUTE, run_scope=True)),
):
    """
    Execute a run: translate member balances into the run's presentation
    currency and rebuild the run entries.
    """
    service = ConsolidationRunService(db)
    return await service.execute_run(
        tenant_id=actor.tenant_id,
        run_id=run_id,
        executed_by_user_id=actor.user_id,
        preferred_rate_type=data.rate_type if data else None,
    )


@router.post("/runs/{run_id}/finalize")
async def finalize_run(
    run_id: uuid.UUID = Path(..., description="Consolidation run ID"),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_permission(P.RUN_FINALIZE, run_scope=True)),
):
    """Lock a COMPLETED run."""
    service = ConsolidationRunService(db)
    return await service.finalize_run(actor.tenant_id, run_id, actor.user_id)


# ============================================================================
# ELIMINATIONS
# ============================================================================

@router.get("/runs/{run_id}/eliminations")
async def list_eliminations(
    run_id: uuid.UUID = Path(..., description="Consolidation run ID"),
    entry_status: Optional[str] = Query("ALL", alias="status"),
    include_lines: bool = Query(False),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_permission(P.RUN_READ, run_scope=True)),
):
    service = EliminationService(db)
    return await service.list_elimination_entries(actor.tenant_id, run_id, entry_status, include_lines)


@router.post("/runs/{run_id}/eliminations", status_code=status.HTTP_201_CREATED)
async def create_elimination(
    data: EliminationEntryCreate,
    run_id: uuid.UUID = Path(..., description="Consolidation run ID"),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_permission(P.ELIMINATION_CREATE, run_scope=True)),
):
    """Create a DRAFT elimination entry. Balance is checked when posting."""
    service = EliminationService(db)
    return await service.create_elimination_entry(
        tenant_id=actor.tenant_id,
        run_id=run_id,
        created_by_user_id=actor.user_id,
        description=data.description,
        lines=[line.model_dump() for line in data.lines],
        reference_no=data.reference_no,
        actor=actor,
    )


@router.post("/runs/{run_id}/eliminations/{entry_id}/post", response_model=PostingResponse)
async def post_elimination(
    run_id: uuid.UUID = Path(..., description="Consolidation run ID"),
    entry_id: uuid.UUID = Path(..., description="Elimination entry ID"),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_permission(P.ELIMINATION_POST, run_scope=True)),
):
    service = EliminationService(db)
    return await service.post_elimination_entry(actor.tenant_id, run_id, entry_id, actor.user_id)


# ============================================================================
# ADJUSTMENTS
# ============================================================================

@router.get("/runs/{run_id}/adjustments")
async def list_adjustments(
    run_id: uuid.UUID = Path(..., description="Consolidation run ID"),
    adjustment_status: Optional[str] = Query("ALL", alias="status"),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_permission(P.RUN_READ, run_scope=True)),
):
    service = AdjustmentService(db)
    return await service.list_adjustments(actor.tenant_id, run_id, adjustment_status)


@router.post("/runs/{run_id}/adjustments", status_code=status.HTTP_201_CREATED)
async def create_adjustment(
    data: AdjustmentCreate,
    run_id: uuid.UUID = Path(..., description="Consolidation run ID"),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_permission(P.ADJUSTMENT_CREATE, run_scope=True)),
):
    """Create a DRAFT top-side adjustment."""
    service = AdjustmentService(db)
    return await service.create_adjustment(
        tenant_id=actor.tenant_id,
        run_id=run_id,
        created_by_user_id=actor.user_id,
        account_id=data.account_id,
        description=data.description,
        debit_amount=data.debit_amount,
        credit_amount=data.credit_amount,
        legal_entity_id=data.legal_entity_id,
        currency_code=data.currency_code,
        adjustment_type=data.adjustment_type,
        actor=actor,
    )


@router.post("/runs/{run_id}/adjustments/{adjustment_id}/post", response_model=PostingResponse)
async def post_adjustment(
    run_id: uuid.UUID = Path(..., description="Consolidation run ID"),
    adjustment_id: uuid.UUID = Path(..., description="Adjustment ID"),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_permission(P.ADJUSTMENT_POST, run_scope=True)),
):
    service = AdjustmentService(db)
    return await service.post_adjustment(actor.tenant_id, run_id, adjustment_id, actor.user_id)


# ============================================================================
# REPORTS
# ============================================================================

@router.get("/runs/{run_id}/reports/trial-balance")
async def get_trial_balance(
    run_id: uuid.UUID = Path(..., description="Consolidation run ID"),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_permission(P.REPORT_TRIAL_BALANCE_READ, run_scope=True)),
):
    service = ConsolidationReportService(db)
    return await service.get_trial_balance(actor.tenant_id, run_id)


@router.get("/runs/{run_id}/reports/summary")
async def get_summary(
    run_id: uuid.UUID = Path(..., description="Consolidation run ID"),
    group_by: str = Query("account_entity", description="account, entity or account_entity"),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_permission(P.REPORT_SUMMARY_READ, run_scope=True)),
):
    service = ConsolidationReportService(db)
    return await service.get_summary(actor.tenant_id, run_id, group_by)


@router.get("/runs/{run_id}/reports/balance-sheet")
async def get_balance_sheet(
    run_id: uuid.UUID = Path(..., description="Consolidation run ID"),
    include_draft: bool = Query(False),
    include_zero: bool = Query(False),
    rate_type: Optional[str] = Query(None, description="SPOT, AVERAGE or CLOSING"),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_permission(P.REPORT_BALANCE_SHEET_READ, run_scope=True)),
):
    """
    Consolidated balance sheet.

    totals.equation_delta should be ~0; a non-zero value indicates a data
    or mapping problem.
    """
    service = ConsolidationReportService(db)
    return await service.get_balance_sheet(
        actor.tenant_id, run_id,
        include_draft=include_draft,
        include_zero=include_zero,
        rate_type=rate_type,
    )


@router.get("/runs/{run_id}/reports/income-statement")
async def get_income_statement(
    run_id: uuid.UUID = Path(..., description="Consolidation run ID"),
    include_draft: bool = Query(False),
    include_zero: bool = Query(False),
    rate_type: Optional[str] = Query(None, description="SPOT, AVERAGE or CLOSING"),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_permission(P.REPORT_INCOME_STATEMENT_READ, run_scope=True)),
):
    service = ConsolidationReportService(db)
    return await service.get_income_statement(
        actor.tenant_id, run_id,
        include_draft=include_draft,
        include_zero=include_zero,
        rate_type=rate_type,
    )
