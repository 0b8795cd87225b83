"""
GroupLedger - FX Service Tests

Tests for rate resolution, fallback ordering and bulk maintenance.
"""

from datetime import date
from decimal import Decimal

import pytest

from groupledger.models import FxRateType
from groupledger.services.fx_service import FXService, build_rate_type_order
from groupledger.utils.error_handling import RateNotFoundException, ValidationException


@pytest.fixture
def fx_service(db_session):
    return FXService(db_session, use_shared_cache=False)


def _rate(rate_date, from_code, to_code, rate_type, value):
    return {
        "rate_date": rate_date,
        "from_currency_code": from_code,
        "to_currency_code": to_code,
        "rate_type": rate_type,
        "rate": value,
    }


class TestRateTypeOrder:
    """Tests for the fallback order of rate types."""

    def test_default_order(self):
        assert build_rate_type_order(None) == [FxRateType.CLOSING, FxRateType.SPOT, FxRateType.AVERAGE]

    def test_preferred_type_first(self):
        assert build_rate_type_order("average") == [FxRateType.AVERAGE, FxRateType.CLOSING, FxRateType.SPOT]

    def test_unknown_type_ignored(self):
        assert build_rate_type_order("HISTORICAL") == [FxRateType.CLOSING, FxRateType.SPOT, FxRateType.AVERAGE]


class TestResolveRate:
    """Tests for FXService.resolve_fx_rate."""

    @pytest.mark.asyncio
    async def test_same_currency_is_identity(self, fx_service, seed):
        resolved = await fx_service.resolve_fx_rate(seed.tenant_id, date(2026, 3, 31), "usd", "USD")

        assert resolved.rate == Decimal("1")
        assert resolved.is_identity

    @pytest.mark.asyncio
    async def test_seeded_closing_rate(self, fx_service, seed):
        resolved = await fx_service.resolve_fx_rate(seed.tenant_id, date(2026, 3, 31), "EUR", "USD")

        assert resolved.rate == Decimal("1.1")
        assert resolved.rate_type == "CLOSING"
        assert resolved.rate_date == date(2026, 3, 31)

    @pytest.mark.asyncio
    async def test_most_recent_date_wins_over_type(self, fx_service, seed):
        await fx_service.bulk_upsert_rates(seed.tenant_id, [
            _rate(date(2026, 3, 10), "GBP", "USD", "CLOSING", "1.20"),
            _rate(date(2026, 3, 20), "GBP", "USD", "AVERAGE", "1.25"),
        ])

        resolved = await fx_service.resolve_fx_rate(seed.tenant_id, date(2026, 3, 31), "GBP", "USD")

        assert resolved.rate == Decimal("1.25")
        assert resolved.rate_type == "AVERAGE"

    @pytest.mark.asyncio
    async def test_type_order_breaks_same_date_ties(self, fx_service, seed):
        await fx_service.bulk_upsert_rates(seed.tenant_id, [
            _rate(date(2026, 3, 31), "GBP", "USD", "SPOT", "1.30"),
            _rate(date(2026, 3, 31), "GBP", "USD", "AVERAGE", "1.28"),
        ])

        closing_first = await fx_service.resolve_fx_rate(seed.tenant_id, date(2026, 3, 31), "GBP", "USD")
        average_first = await fx_service.resolve_fx_rate(
            seed.tenant_id, date(2026, 3, 31), "GBP", "USD", preferred_rate_type=FxRateType.AVERAGE,
        )

        assert closing_first.rate_type == "SPOT"
        assert average_first.rate_type == "AVERAGE"
        assert average_first.rate == Decimal("1.28")

    @pytest.mark.asyncio
    async def test_future_rates_are_ignored(self, fx_service, seed):
        with pytest.raises(RateNotFoundException) as exc_info:
            await fx_service.resolve_fx_rate(seed.tenant_id, date(2026, 3, 30), "EUR", "USD")

        assert exc_info.value.details["from_currency_code"] == "EUR"
        assert exc_info.value.status_code == 422

    @pytest.mark.asyncio
    async def test_inverse_pair_not_derived(self, fx_service, seed):
        with pytest.raises(RateNotFoundException):
            await fx_service.resolve_fx_rate(seed.tenant_id, date(2026, 3, 31), "USD", "EUR")

    @pytest.mark.asyncio
    async def test_blank_currency_rejected(self, fx_service, seed):
        with pytest.raises(ValidationException):
            await fx_service.resolve_fx_rate(seed.tenant_id, date(2026, 3, 31), " ", "USD")

    @pytest.mark.asyncio
    async def test_rate_cache_memoizes_hits(self, fx_service, seed):
        rates = fx_service.build_cache(seed.tenant_id)

        first = await rates.get("EUR", "USD", date(2026, 3, 31))
        second = await rates.get("eur", "usd", date(2026, 3, 31))

        assert first == second
        assert len(rates) == 1


class TestRateMaintenance:
    """Tests for bulk upsert and listing."""

    @pytest.mark.asyncio
    async def test_bulk_upsert_inserts_then_updates(self, fx_service, seed):
        first = await fx_service.bulk_upsert_rates(seed.tenant_id, [
            _rate(date(2026, 4, 30), "EUR", "USD", "CLOSING", "1.12"),
            _rate(date(2026, 4, 30), "GBP", "USD", "CLOSING", "1.27"),
        ])
        second = await fx_service.bulk_upsert_rates(seed.tenant_id, [
            _rate(date(2026, 4, 30), "eur", "usd", "closing", "1.13"),
        ])

        assert first["inserted"] == 2
        assert first["updated"] == 0
        assert second["inserted"] == 0
        assert second["updated"] == 1

        resolved = await fx_service.resolve_fx_rate(seed.tenant_id, date(2026, 4, 30), "EUR", "USD")
        assert resolved.rate == Decimal("1.13")

    @pytest.mark.asyncio
    async def test_bulk_upsert_rejects_empty_list(self, fx_service, seed):
        with pytest.raises(ValidationException):
            await fx_service.bulk_upsert_rates(seed.tenant_id, [])

    @pytest.mark.asyncio
    async def test_bulk_upsert_rejects_unknown_type(self, fx_service, seed):
        with pytest.raises(ValidationException) as exc_info:
            await fx_service.bulk_upsert_rates(seed.tenant_id, [
                _rate(date(2026, 4, 30), "EUR", "USD", "HISTORICAL", "1.1"),
            ])

        assert exc_info.value.field == "rate_type"

    @pytest.mark.asyncio
    async def test_list_rates_filters(self, fx_service, seed):
        await fx_service.bulk_upsert_rates(seed.tenant_id, [
            _rate(date(2026, 2, 28), "EUR", "USD", "AVERAGE", "1.08"),
            _rate(date(2026, 2, 28), "GBP", "USD", "CLOSING", "1.26"),
        ])

        all_rates = await fx_service.list_rates(seed.tenant_id)
        eur_only = await fx_service.list_rates(seed.tenant_id, from_currency="eur")
        february = await fx_service.list_rates(
            seed.tenant_id, date_from=date(2026, 2, 1), date_to=date(2026, 2, 28), rate_type="closing",
        )

        assert len(all_rates) == 3
        assert all_rates[0].rate_date == date(2026, 3, 31)
        assert {r.from_currency_code for r in eur_only} == {"EUR"}
        assert len(february) == 1
        assert february[0].from_currency_code == "GBP"
