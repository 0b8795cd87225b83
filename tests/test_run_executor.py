"""
GroupLedger - Consolidation Run Tests

Tests for run creation, execution and finalization.
"""

from datetime import date
from decimal import Decimal
from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest
from sqlalchemy import delete, select

from groupledger.models import (
    AuditAction,
    ConsolidationRunEntry,
    FxRate,
    RunStatus,
)
from groupledger.services.audit_service import AuditService
from groupledger.services.balance_loader import BalanceLoader
from groupledger.services.consolidation_run_service import (
    ConsolidationRunService,
    normalize_run_rate_type,
    translate_amount,
)
from groupledger.services.fx_service import FXService
from groupledger.utils.error_handling import (
    ExecutionFailureException,
    InvalidRunStateException,
    RateNotFoundException,
    RunLockedException,
    RunNotFoundException,
    ValidationException,
)


async def _entries(db_session, run_id):
    result = await db_session.execute(
        select(ConsolidationRunEntry).where(ConsolidationRunEntry.consolidation_run_id == run_id)
    )
    return list(result.scalars().all())


async def _entry_rows(db_session, run_id):
    result = await db_session.execute(
        select(
            ConsolidationRunEntry.legal_entity_id,
            ConsolidationRunEntry.group_account_id,
            ConsolidationRunEntry.local_balance_base,
            ConsolidationRunEntry.translation_rate,
            ConsolidationRunEntry.translated_debit,
            ConsolidationRunEntry.translated_credit,
            ConsolidationRunEntry.translated_balance,
        )
        .where(ConsolidationRunEntry.consolidation_run_id == run_id)
        .order_by(ConsolidationRunEntry.legal_entity_id, ConsolidationRunEntry.group_account_id)
    )
    return [tuple(row) for row in result.all()]


def test_translate_amount():
    assert translate_amount(Decimal("500"), Decimal("1.1"), Decimal("0.6")) == Decimal("330.00")


def test_run_rate_type_defaults_to_closing():
    assert normalize_run_rate_type(None).value == "CLOSING"
    assert normalize_run_rate_type("spot").value == "SPOT"

    with pytest.raises(ValidationException):
        normalize_run_rate_type("HISTORICAL")


class TestCreateRun:
    """Tests for run creation."""

    @pytest.mark.asyncio
    async def test_create_run_defaults(self, db_session, seed, run_id):
        run = await ConsolidationRunService(db_session).get_run(seed.tenant_id, run_id)

        assert run["status"] == "DRAFT"
        assert run["presentation_currency_code"] == "USD"
        assert run["period_name"] == "2026-03"
        assert run["entry_count"] == 0

    @pytest.mark.asyncio
    async def test_create_run_with_currency_override(self, db_session, seed):
        run = await ConsolidationRunService(db_session).create_run(
            tenant_id=seed.tenant_id,
            group_id=seed.group_id,
            fiscal_period_id=seed.period_id,
            run_name="EUR view",
            started_by_user_id=seed.user_id,
            presentation_currency_code="eur",
        )

        assert run.presentation_currency_code == "EUR"

    @pytest.mark.asyncio
    async def test_other_tenant_cannot_see_run(self, db_session, seed, run_id):
        with pytest.raises(RunNotFoundException):
            await ConsolidationRunService(db_session).get_run(uuid4(), run_id)

    @pytest.mark.asyncio
    async def test_list_runs(self, db_session, seed, run_id):
        service = ConsolidationRunService(db_session)

        rows = await service.list_runs(seed.tenant_id, group_id=seed.group_id)
        completed = await service.list_runs(seed.tenant_id, status="completed")
        restricted = await service.list_runs(seed.tenant_id, group_company_ids={"not-a-uuid"})

        assert [r["id"] for r in rows] == [run_id]
        assert completed == []
        assert restricted == []


class TestExecuteRun:
    """Tests for run execution."""

    @pytest.mark.asyncio
    async def test_execute_translates_and_weights(self, db_session, seed, run_id):
        outcome = await ConsolidationRunService(db_session).execute_run(
            seed.tenant_id, run_id, seed.user_id,
        )

        assert outcome["status"] == "COMPLETED"
        assert outcome["member_count"] == 2
        assert outcome["inserted_row_count"] == 4
        # Cash (1000 + 330) and equity (-1000 - 330) net to zero
        assert outcome["totals"]["translated_debit_total"] == pytest.approx(1330)
        assert outcome["totals"]["translated_credit_total"] == pytest.approx(1330)
        assert outcome["totals"]["translated_balance_total"] == pytest.approx(0)

        entries = await _entries(db_session, run_id)
        cash_b = [
            e for e in entries
            if e.legal_entity_id == seed.entity_b_id and e.group_account_id == seed.group_accounts["1000"]
        ]
        assert len(cash_b) == 1
        assert cash_b[0].translation_rate == Decimal("1.1")
        assert cash_b[0].source_currency_code == "EUR"
        assert cash_b[0].local_balance_base == Decimal("500")
        assert cash_b[0].translated_balance == Decimal("330")

    @pytest.mark.asyncio
    async def test_draft_journals_excluded(self, db_session, seed, run_id):
        await ConsolidationRunService(db_session).execute_run(seed.tenant_id, run_id, seed.user_id)

        entries = await _entries(db_session, run_id)
        cash_a = [
            e for e in entries
            if e.legal_entity_id == seed.entity_a_id and e.group_account_id == seed.group_accounts["1000"]
        ]
        assert cash_a[0].local_debit_base == Decimal("1000")

    @pytest.mark.asyncio
    async def test_reexecution_replaces_entries(self, db_session, seed, run_id):
        service = ConsolidationRunService(db_session)

        first = await service.execute_run(seed.tenant_id, run_id, seed.user_id)
        first_rows = await _entry_rows(db_session, run_id)
        second = await service.execute_run(seed.tenant_id, run_id, seed.user_id)
        second_rows = await _entry_rows(db_session, run_id)

        assert first["inserted_row_count"] == second["inserted_row_count"]
        assert len(first_rows) == 4
        assert len(second_rows) == second["inserted_row_count"]
        assert second_rows == first_rows
        assert second["totals"] == first["totals"]

    @pytest.mark.asyncio
    async def test_execute_writes_audit_log(self, db_session, seed, run_id):
        await ConsolidationRunService(db_session).execute_run(seed.tenant_id, run_id, seed.user_id)

        logs = await AuditService(db_session).get_resource_history(seed.tenant_id, "consolidation_run", run_id)
        assert len(logs) == 1
        assert logs[0].action == AuditAction.EXECUTE
        assert logs[0].payload["inserted_row_count"] == 4

    @pytest.mark.asyncio
    async def test_missing_rate_marks_run_failed(self, db_session, seed, run_id):
        await db_session.execute(delete(FxRate).where(FxRate.tenant_id == seed.tenant_id))
        await db_session.commit()
        service = ConsolidationRunService(db_session)

        with pytest.raises(RateNotFoundException):
            await service.execute_run(seed.tenant_id, run_id, seed.user_id)

        run = await service.get_run(seed.tenant_id, run_id)
        assert run["status"] == "FAILED"
        assert "EUR->USD" in run["notes"]
        assert run["entry_count"] == 0

    @pytest.mark.asyncio
    async def test_unexpected_error_marks_run_failed(self, db_session, seed, run_id):
        service = ConsolidationRunService(db_session)
        failing_load = AsyncMock(side_effect=RuntimeError("x" * 2000))

        with patch.object(BalanceLoader, "load_member_mapped_balances", failing_load):
            with pytest.raises(ExecutionFailureException):
                await service.execute_run(seed.tenant_id, run_id, seed.user_id)

        run = await service.get_run(seed.tenant_id, run_id)
        assert run["status"] == "FAILED"
        assert run["notes"] == "x" * 500
        assert run["entry_count"] == 0

    @pytest.mark.asyncio
    async def test_failed_run_can_be_reexecuted(self, db_session, seed, run_id):
        service = ConsolidationRunService(db_session)
        await db_session.execute(delete(FxRate).where(FxRate.tenant_id == seed.tenant_id))
        await db_session.commit()
        with pytest.raises(RateNotFoundException):
            await service.execute_run(seed.tenant_id, run_id, seed.user_id)

        await FXService(db_session, use_shared_cache=False).bulk_upsert_rates(seed.tenant_id, [{
            "rate_date": date(2026, 3, 31),
            "from_currency_code": "EUR",
            "to_currency_code": "USD",
            "rate_type": "CLOSING",
            "rate": "1.1",
        }])

        outcome = await service.execute_run(seed.tenant_id, run_id, seed.user_id)
        assert outcome["status"] == "COMPLETED"

    @pytest.mark.asyncio
    async def test_locked_run_rejected(self, db_session, seed, executed_run_id):
        service = ConsolidationRunService(db_session)
        await service.finalize_run(seed.tenant_id, executed_run_id, seed.user_id)
        before = len(await _entries(db_session, executed_run_id))

        with pytest.raises(RunLockedException):
            await service.execute_run(seed.tenant_id, executed_run_id, seed.user_id)

        run = await service.get_run(seed.tenant_id, executed_run_id)
        assert run["status"] == "LOCKED"
        assert len(await _entries(db_session, executed_run_id)) == before


class TestFinalizeRun:
    """Tests for run finalization."""

    @pytest.mark.asyncio
    async def test_finalize_completed_run(self, db_session, seed, executed_run_id):
        outcome = await ConsolidationRunService(db_session).finalize_run(
            seed.tenant_id, executed_run_id, seed.user_id,
        )

        assert outcome["status"] == RunStatus.LOCKED.value
        assert outcome["idempotent"] is False

    @pytest.mark.asyncio
    async def test_finalize_twice_is_idempotent(self, db_session, seed, executed_run_id):
        service = ConsolidationRunService(db_session)
        await service.finalize_run(seed.tenant_id, executed_run_id, seed.user_id)

        outcome = await service.finalize_run(seed.tenant_id, executed_run_id, seed.user_id)

        assert outcome["status"] == "LOCKED"
        assert outcome["idempotent"] is True

    @pytest.mark.asyncio
    async def test_finalize_draft_run_rejected(self, db_session, seed, run_id):
        with pytest.raises(InvalidRunStateException) as exc_info:
            await ConsolidationRunService(db_session).finalize_run(seed.tenant_id, run_id, seed.user_id)

        assert exc_info.value.status_code == 409
