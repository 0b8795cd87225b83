"""
GroupLedger - Foreign Exchange (FX) Service

Exchange rate management for the consolidation engine:
- Rate resolution with a rate-type fallback order
- Per-build rate cache used while translating a run or a report
- Optional cross-request Redis cache of resolved rates
- Bulk upsert and listing of stored rates
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select, and_, case
from sqlalchemy.ext.asyncio import AsyncSession

from groupledger.config import get_settings
from groupledger.models.fx import FxRate, FxRateType
from groupledger.services.cache_service import CacheService, get_cache_service
from groupledger.utils.error_handling import RateNotFoundException, ValidationException

logger = logging.getLogger(__name__)
settings = get_settings()

IDENTITY_RATE_TYPE = "IDENTITY"
DEFAULT_FALLBACK_ORDER = [FxRateType.CLOSING, FxRateType.SPOT, FxRateType.AVERAGE]

LIST_DATE_FROM = date(1900, 1, 1)
LIST_DATE_TO = date(2999, 12, 31)


@dataclass(frozen=True)
class ResolvedRate:
    """Outcome of a rate lookup."""
    rate: Decimal
    rate_type: str
    rate_date: date

    @property
    def is_identity(self) -> bool:
        return self.rate_type == IDENTITY_RATE_TYPE


def parse_rate_type(value: Any) -> Optional[FxRateType]:
    """Return the FxRateType for a loosely-typed value, or None when it is not one."""
    if isinstance(value, FxRateType):
        return value
    if value is None:
        return None
    try:
        return FxRateType(str(value).strip().upper())
    except ValueError:
        return None


def build_rate_type_order(preferred_rate_type: Any) -> List[FxRateType]:
    """
    Fallback order for a lookup: the preferred type first, then
    CLOSING, SPOT, AVERAGE, each type appearing once.

    An unknown preferred type is ignored.
    """
    order: List[FxRateType] = []
    preferred = parse_rate_type(preferred_rate_type)
    for rate_type in [preferred] + DEFAULT_FALLBACK_ORDER:
        if rate_type is not None and rate_type not in order:
            order.append(rate_type)
    return order


def normalize_currency_code(value: Optional[str], field: str) -> str:
    code = (value or "").strip().upper()
    if not code:
        raise ValidationException(f"{field} is required", field=field)
    return code


class FXService:
    """Service for FX rate resolution and maintenance."""

    def __init__(
        self,
        db: AsyncSession,
        cache: Optional[CacheService] = None,
        use_shared_cache: Optional[bool] = None,
    ):
        self.db = db
        self.use_shared_cache = settings.fx_cache_enabled if use_shared_cache is None else use_shared_cache
        self._cache = cache

    @property
    def cache(self) -> CacheService:
        if self._cache is None:
            self._cache = get_cache_service()
        return self._cache

    # =========================================================================
    # RATE RESOLUTION
    # =========================================================================

    async def resolve_fx_rate(
        self,
        tenant_id: uuid.UUID,
        rate_date: date,
        from_currency: str,
        to_currency: str,
        preferred_rate_type: Any = FxRateType.CLOSING,
    ) -> ResolvedRate:
        """
        Resolve the rate converting from_currency into to_currency.

        The most recent rate dated on or before rate_date wins. Among rates
        sharing that date, the type appearing earliest in the fallback order
        wins. A same-currency pair resolves to 1 without touching the database.

        Raises:
            ValidationException: a currency code is blank
            RateNotFoundException: no candidate rate exists
        """
        from_code = normalize_currency_code(from_currency, "from_currency_code")
        to_code = normalize_currency_code(to_currency, "to_currency_code")

        if from_code == to_code:
            return ResolvedRate(rate=Decimal("1"), rate_type=IDENTITY_RATE_TYPE, rate_date=rate_date)

        order = build_rate_type_order(preferred_rate_type)
        cache_type = order[0].value

        if self.use_shared_cache:
            cached = await self.cache.get_fx_rate(tenant_id, from_code, to_code, rate_date, cache_type)
            if cached is not None:
                logger.debug(f"Cache hit for FX rate {from_code}/{to_code} on {rate_date}")
                return ResolvedRate(
                    rate=cached["rate"],
                    rate_type=cached["rate_type"],
                    rate_date=cached["rate_date"],
                )

        type_priority = case(
            *[(FxRate.rate_type == rate_type, position) for position, rate_type in enumerate(order)],
            else_=len(order),
        )

        result = await self.db.execute(
            select(FxRate.rate, FxRate.rate_type, FxRate.rate_date)
            .where(and_(
                FxRate.tenant_id == tenant_id,
                FxRate.from_currency_code == from_code,
                FxRate.to_currency_code == to_code,
                FxRate.rate_type.in_(order),
                FxRate.rate_date <= rate_date,
            ))
            .order_by(FxRate.rate_date.desc(), type_priority)
            .limit(1)
        )
        row = result.first()

        if row is None:
            raise RateNotFoundException(from_code, to_code, rate_date)

        resolved = ResolvedRate(
            rate=Decimal(row.rate),
            rate_type=FxRateType(row.rate_type).value,
            rate_date=row.rate_date,
        )

        if self.use_shared_cache:
            await self.cache.set_fx_rate(
                tenant_id, from_code, to_code, rate_date, cache_type,
                resolved.rate, resolved.rate_type, resolved.rate_date,
            )

        return resolved

    def build_cache(self, tenant_id: uuid.UUID) -> "FxRateCache":
        """Create a rate cache scoped to one execution or report build."""
        return FxRateCache(self, tenant_id)

    # =========================================================================
    # RATE MAINTENANCE
    # =========================================================================

    async def bulk_upsert_rates(
        self,
        tenant_id: uuid.UUID,
        rates: List[Dict[str, Any]],
    ) -> Dict[str, Any]:
        """
        Insert or update rates keyed by (tenant, date, from, to, type).
        Existing rows get their rate and source replaced.

        Each item carries rate_date, from_currency_code, to_currency_code,
        rate_type, rate and an optional source.
        """
        if not rates:
            raise ValidationException("rates must be a non-empty list", field="rates")

        inserted = 0
        updated = 0

        for item in rates:
            rate_type = parse_rate_type(item.get("rate_type"))
            if rate_type is None:
                raise ValidationException(
                    f"Unsupported rate_type '{item.get('rate_type')}'",
                    field="rate_type",
                )
            from_code = normalize_currency_code(item.get("from_currency_code"), "from_currency_code")
            to_code = normalize_currency_code(item.get("to_currency_code"), "to_currency_code")
            value = Decimal(str(item["rate"]))
            source = item.get("source")

            result = await self.db.execute(
                select(FxRate).where(and_(
                    FxRate.tenant_id == tenant_id,
                    FxRate.rate_date == item["rate_date"],
                    FxRate.from_currency_code == from_code,
                    FxRate.to_currency_code == to_code,
                    FxRate.rate_type == rate_type,
                ))
            )
            existing = result.scalar_one_or_none()

            if existing:
                existing.rate = value
                existing.source = source
                updated += 1
            else:
                self.db.add(FxRate(
                    tenant_id=tenant_id,
                    rate_date=item["rate_date"],
                    from_currency_code=from_code,
                    to_currency_code=to_code,
                    rate_type=rate_type,
                    rate=value,
                    source=source,
                ))
                inserted += 1

        await self.db.commit()

        if self.use_shared_cache:
            await self.cache.invalidate_fx_rates(tenant_id)

        logger.info(f"Upserted {len(rates)} FX rates for tenant {tenant_id} (inserted={inserted}, updated={updated})")

        return {
            "tenant_id": str(tenant_id),
            "upserted": len(rates),
            "inserted": inserted,
            "updated": updated,
        }

    async def list_rates(
        self,
        tenant_id: uuid.UUID,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        from_currency: Optional[str] = None,
        to_currency: Optional[str] = None,
        rate_type: Optional[str] = None,
    ) -> List[FxRate]:
        """List stored rates, newest first."""
        conditions = [
            FxRate.tenant_id == tenant_id,
            FxRate.rate_date >= (date_from or LIST_DATE_FROM),
            FxRate.rate_date <= (date_to or LIST_DATE_TO),
        ]
        if from_currency:
            conditions.append(FxRate.from_currency_code == from_currency.strip().upper())
        if to_currency:
            conditions.append(FxRate.to_currency_code == to_currency.strip().upper())
        if rate_type:
            parsed = parse_rate_type(rate_type)
            if parsed is None:
                raise ValidationException(f"Unsupported rate_type '{rate_type}'", field="rate_type")
            conditions.append(FxRate.rate_type == parsed)

        result = await self.db.execute(
            select(FxRate)
            .where(and_(*conditions))
            .order_by(
                FxRate.rate_date.desc(),
                FxRate.from_currency_code,
                FxRate.to_currency_code,
                FxRate.rate_type,
            )
        )
        return list(result.scalars().all())


class FxRateCache:
    """
    Memoizes resolved rates for the lifetime of one build.

    Keyed by (from, to, date, preferred type). Misses are not memoized, so a
    RateNotFoundException surfaces on every lookup of the same pair.
    """

    def __init__(self, service: FXService, tenant_id: uuid.UUID):
        self.service = service
        self.tenant_id = tenant_id
        self._rates: Dict[Tuple[str, str, date, str], ResolvedRate] = {}

    async def get(
        self,
        from_currency: str,
        to_currency: str,
        rate_date: date,
        preferred_rate_type: Any = FxRateType.CLOSING,
    ) -> ResolvedRate:
        preferred = parse_rate_type(preferred_rate_type)
        key = (
            (from_currency or "").strip().upper(),
            (to_currency or "").strip().upper(),
            rate_date,
            preferred.value if preferred else "",
        )
        if key not in self._rates:
            self._rates[key] = await self.service.resolve_fx_rate(
                self.tenant_id, rate_date, from_currency, to_currency, preferred_rate_type,
            )
        return self._rates[key]

    def __len__(self) -> int:
        return len(self._rates)
