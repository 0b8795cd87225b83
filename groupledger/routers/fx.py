"""
GroupLedger - Foreign Exchange (FX) Router

API endpoints for exchange rate maintenance:
- Bulk upsert of rates
- Rate listing with date window, currency and type filters
"""

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from groupledger.database import get_db
from groupledger.dependencies import require_permission
from groupledger.schemas.fx import FxRateBulkUpsertRequest, FxRateBulkUpsertResponse, FxRateResponse
from groupledger.services.fx_service import FXService
from groupledger.utils.permissions import Actor, ConsolidationPermission

router = APIRouter(
    prefix="/api/v1/fx",
    tags=["Foreign Exchange (FX)"],
)


@router.post("/rates/bulk-upsert", response_model=FxRateBulkUpsertResponse)
async def bulk_upsert_rates(
    data: FxRateBulkUpsertRequest,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_permission(ConsolidationPermission.FX_RATE_BULK_UPSERT)),
):
    """
    Insert or update rates keyed by (date, from, to, type).

    Existing rates get their value and source replaced.
    """
    service = FXService(db)
    return await service.bulk_upsert_rates(
        actor.tenant_id,
        [item.model_dump() for item in data.rates],
    )


@router.get("/rates", response_model=List[FxRateResponse])
async def list_rates(
    date_from: Optional[date] = Query(None, description="Earliest rate date"),
    date_to: Optional[date] = Query(None, description="Latest rate date"),
    from_currency_code: Optional[str] = Query(None, min_length=3, max_length=3),
    to_currency_code: Optional[str] = Query(None, min_length=3, max_length=3),
    rate_type: Optional[str] = Query(None, description="SPOT, AVERAGE or CLOSING"),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_permission(ConsolidationPermission.FX_RATE_READ)),
):
    """List stored rates, newest first."""
    service = FXService(db)
    rates = await service.list_rates(
        actor.tenant_id,
        date_from=date_from,
        date_to=date_to,
        from_currency=from_currency_code,
        to_currency=to_currency_code,
        rate_type=rate_type,
    )
    return [
        FxRateResponse(
            id=rate.id,
            rate_date=rate.rate_date,
            from_currency_code=rate.from_currency_code,
            to_currency_code=rate.to_currency_code,
            rate_type=rate.rate_type,
            rate=float(rate.rate),
            source=rate.source,
            is_locked=rate.is_locked,
            created_at=rate.created_at,
        )
        for rate in rates
    ]
