"""
GroupLedger - Membership Tests

Tests for ownership weighting and effective-window resolution.
"""

from datetime import date
from decimal import Decimal

import pytest

from groupledger.models import ConsolidationGroupMember, ConsolidationMethod
from groupledger.services.membership_service import MembershipService, ownership_factor


class TestOwnershipFactor:
    """Tests for ownership_factor."""

    def test_full_ignores_pct(self):
        assert ownership_factor(ConsolidationMethod.FULL, Decimal("0.25")) == Decimal("1")

    def test_proportionate_uses_pct(self):
        assert ownership_factor(ConsolidationMethod.PROPORTIONATE, Decimal("0.6")) == Decimal("0.6")

    def test_string_method_accepted(self):
        assert ownership_factor("FULL", "0.4") == Decimal("1")

    @pytest.mark.parametrize("pct,expected", [
        (Decimal("1.5"), Decimal("1")),
        (Decimal("-0.2"), Decimal("0")),
        ("not-a-number", Decimal("1")),
        (None, Decimal("1")),
    ])
    def test_out_of_range_or_invalid(self, pct, expected):
        assert ownership_factor(ConsolidationMethod.PROPORTIONATE, pct) == expected


class TestResolveMembers:
    """Tests for MembershipService.resolve_members."""

    @pytest.mark.asyncio
    async def test_seeded_members(self, db_session, seed):
        members = await MembershipService(db_session).resolve_members(
            seed.group_id, date(2026, 3, 1), date(2026, 3, 31),
        )

        by_code = {m.legal_entity_code: m for m in members}
        assert set(by_code) == {"LE-A", "LE-B"}
        assert by_code["LE-B"].functional_currency_code == "EUR"
        assert by_code["LE-B"].ownership_factor == Decimal("0.6")
        assert by_code["LE-A"].ownership_factor == Decimal("1")

    @pytest.mark.asyncio
    async def test_window_outside_period_excluded(self, db_session, seed):
        members = await MembershipService(db_session).resolve_members(
            seed.group_id, date(2025, 11, 1), date(2025, 11, 30),
        )

        assert members == []

    @pytest.mark.asyncio
    async def test_open_window_covers_later_periods(self, db_session, seed):
        result = await MembershipService(db_session).resolve_members(
            seed.group_id, date(2026, 1, 1), date(2026, 1, 31),
        )

        assert len(result) == 2

    @pytest.mark.asyncio
    async def test_latest_overlapping_window_wins(self, db_session, seed):
        db_session.add(ConsolidationGroupMember(
            consolidation_group_id=seed.group_id,
            legal_entity_id=seed.entity_b_id,
            consolidation_method=ConsolidationMethod.PROPORTIONATE,
            ownership_pct=Decimal("0.8"),
            effective_from=date(2026, 3, 15),
        ))
        await db_session.commit()

        members = await MembershipService(db_session).resolve_members(
            seed.group_id, date(2026, 3, 1), date(2026, 3, 31),
        )

        entity_b = [m for m in members if m.legal_entity_id == seed.entity_b_id]
        assert len(entity_b) == 1
        assert entity_b[0].ownership_pct == Decimal("0.8")
