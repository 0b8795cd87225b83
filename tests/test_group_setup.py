"""
GroupLedger - Group Setup Tests

Tests for groups, membership windows, chart mappings and elimination
placeholders.
"""

import uuid
from datetime import date
from decimal import Decimal

import pytest

from groupledger.models import ConsolidationMethod, PlaceholderDirection, RecordStatus
from groupledger.services.consolidation_service import ConsolidationService
from groupledger.utils.error_handling import (
    NotFoundException,
    ScopeAccessDeniedException,
    ValidationException,
)
from groupledger.utils.permissions import Actor, ScopeType


class TestGroups:
    """Tests for group creation and lookup."""

    @pytest.mark.asyncio
    async def test_upsert_by_code(self, db_session, seed):
        service = ConsolidationService(db_session)

        created = await service.create_group(
            tenant_id=seed.tenant_id,
            code="EMEA",
            name="EMEA sub-group",
            calendar_id=seed.calendar_id,
            presentation_currency_code="eur",
        )
        updated = await service.create_group(
            tenant_id=seed.tenant_id,
            code="EMEA",
            name="EMEA holding",
            calendar_id=seed.calendar_id,
            presentation_currency_code="GBP",
        )

        assert updated.id == created.id
        assert updated.name == "EMEA holding"
        assert updated.presentation_currency_code == "GBP"
        groups = await service.list_groups(seed.tenant_id)
        assert [g.code for g in groups] == ["EMEA", "GRP"]

    @pytest.mark.asyncio
    async def test_unknown_calendar_rejected(self, db_session, seed):
        with pytest.raises(ValidationException):
            await ConsolidationService(db_session).create_group(
                tenant_id=seed.tenant_id,
                code="X",
                name="X",
                calendar_id=uuid.uuid4(),
                presentation_currency_code="USD",
            )

    @pytest.mark.asyncio
    async def test_other_tenant_group_not_found(self, db_session, seed):
        with pytest.raises(NotFoundException):
            await ConsolidationService(db_session).get_group(uuid.uuid4(), seed.group_id)

    @pytest.mark.asyncio
    async def test_scope_filtered_listing(self, db_session, seed):
        service = ConsolidationService(db_session)

        visible = await service.list_groups(seed.tenant_id, {str(seed.group_company_id)})
        hidden = await service.list_groups(seed.tenant_id, {str(uuid.uuid4())})
        nothing = await service.list_groups(seed.tenant_id, set())

        assert [g.id for g in visible] == [seed.group_id]
        assert hidden == []
        assert nothing == []

    @pytest.mark.asyncio
    async def test_scoped_actor_denied(self, db_session, seed):
        actor = Actor(
            tenant_id=seed.tenant_id,
            user_id=seed.user_id,
            permissions={"*"},
            scopes={ScopeType.GROUP: {str(uuid.uuid4())}},
        )

        with pytest.raises(ScopeAccessDeniedException):
            await ConsolidationService(db_session).get_group(seed.tenant_id, seed.group_id, actor=actor)


class TestMembers:
    """Tests for membership windows."""

    @pytest.mark.asyncio
    async def test_upsert_updates_same_window(self, db_session, seed):
        service = ConsolidationService(db_session)

        member = await service.upsert_member(
            tenant_id=seed.tenant_id,
            group_id=seed.group_id,
            legal_entity_id=seed.entity_b_id,
            effective_from=date(2026, 1, 1),
            consolidation_method=ConsolidationMethod.PROPORTIONATE,
            ownership_pct=Decimal("0.75"),
        )

        rows = await service.list_members(seed.tenant_id, seed.group_id, legal_entity_id=seed.entity_b_id)
        assert len(rows) == 1
        assert rows[0]["id"] == member.id
        assert rows[0]["ownership_pct"] == pytest.approx(0.75)
        assert rows[0]["legal_entity_code"] == "LE-B"

    @pytest.mark.asyncio
    async def test_new_window_added(self, db_session, seed):
        service = ConsolidationService(db_session)

        await service.upsert_member(
            tenant_id=seed.tenant_id,
            group_id=seed.group_id,
            legal_entity_id=seed.entity_a_id,
            effective_from=date(2027, 1, 1),
        )

        rows = await service.list_members(seed.tenant_id, seed.group_id)
        assert len(rows) == 3
        assert rows[0]["effective_from"] == date(2027, 1, 1)

    @pytest.mark.asyncio
    async def test_inverted_window_rejected(self, db_session, seed):
        with pytest.raises(ValidationException) as exc_info:
            await ConsolidationService(db_session).upsert_member(
                tenant_id=seed.tenant_id,
                group_id=seed.group_id,
                legal_entity_id=seed.entity_a_id,
                effective_from=date(2026, 6, 1),
                effective_to=date(2026, 5, 31),
            )

        assert exc_info.value.field == "effective_to"


class TestCoaMappings:
    """Tests for chart mappings."""

    @pytest.mark.asyncio
    async def test_reupsert_changes_status(self, db_session, seed):
        service = ConsolidationService(db_session)

        mapping = await service.upsert_coa_mapping(
            tenant_id=seed.tenant_id,
            group_id=seed.group_id,
            legal_entity_id=seed.entity_a_id,
            group_coa_id=seed.group_coa_id,
            local_coa_id=seed.local_coa_a_id,
            status=RecordStatus.INACTIVE,
        )

        assert mapping.status == RecordStatus.INACTIVE
        mappings = await service.list_coa_mappings(seed.tenant_id, seed.group_id, legal_entity_id=seed.entity_a_id)
        assert [m.id for m in mappings] == [mapping.id]

    @pytest.mark.asyncio
    async def test_group_chart_must_be_group_scoped(self, db_session, seed):
        with pytest.raises(ValidationException) as exc_info:
            await ConsolidationService(db_session).upsert_coa_mapping(
                tenant_id=seed.tenant_id,
                group_id=seed.group_id,
                legal_entity_id=seed.entity_a_id,
                group_coa_id=seed.local_coa_b_id,
                local_coa_id=seed.local_coa_a_id,
            )

        assert exc_info.value.field == "group_coa_id"

    @pytest.mark.asyncio
    async def test_local_chart_must_belong_to_entity(self, db_session, seed):
        with pytest.raises(ValidationException) as exc_info:
            await ConsolidationService(db_session).upsert_coa_mapping(
                tenant_id=seed.tenant_id,
                group_id=seed.group_id,
                legal_entity_id=seed.entity_a_id,
                group_coa_id=seed.group_coa_id,
                local_coa_id=seed.local_coa_b_id,
            )

        assert exc_info.value.field == "local_coa_id"


class TestEliminationPlaceholders:
    """Tests for elimination placeholders."""

    @pytest.mark.asyncio
    async def test_upsert_by_upper_cased_code(self, db_session, seed):
        service = ConsolidationService(db_session)

        first = await service.upsert_elimination_placeholder(
            tenant_id=seed.tenant_id,
            group_id=seed.group_id,
            placeholder_code="ic_loan",
            name="Intercompany loan",
            account_id=seed.group_accounts["2000"],
        )
        second = await service.upsert_elimination_placeholder(
            tenant_id=seed.tenant_id,
            group_id=seed.group_id,
            placeholder_code="IC_LOAN",
            name="Intercompany loans",
            default_direction=PlaceholderDirection.DEBIT,
        )

        assert second.id == first.id
        assert second.placeholder_code == "IC_LOAN"
        assert second.account_id is None
        placeholders = await service.list_elimination_placeholders(seed.tenant_id, seed.group_id)
        assert len(placeholders) == 1
        assert placeholders[0].default_direction == PlaceholderDirection.DEBIT

    @pytest.mark.asyncio
    async def test_blank_code_rejected(self, db_session, seed):
        with pytest.raises(ValidationException):
            await ConsolidationService(db_session).upsert_elimination_placeholder(
                tenant_id=seed.tenant_id,
                group_id=seed.group_id,
                placeholder_code="  ",
                name="Blank",
            )
