"""Halaxy passthrough routes."""

from fastapi import APIRouter, Depends, Query

from finops.api.deps import get_halaxy, require_admin
from finops.halaxy import HalaxyClient
from finops.operations.validation import validate_iso_date

router = APIRouter(prefix="/halaxy", tags=["halaxy"])

DATE_RANGE_REQUIRED = "fromDate and toDate query params required in YYYY-MM-DD format"


def _date_range(from_date: str | None, to_date: str | None) -> tuple[str, str]:
    return (
        validate_iso_date(from_date, DATE_RANGE_REQUIRED),
        validate_iso_date(to_date, DATE_RANGE_REQUIRED),
    )


@router.get("/payments")
async def payments(
    from_date: str | None = Query(None, alias="fromDate"),
    to_date: str | None = Query(None, alias="toDate"),
    enrich: bool = True,
    successful_only: bool = Query(False, alias="successfulOnly"),
    user: str = Depends(require_admin),
    halaxy: HalaxyClient = Depends(get_halaxy),
):
    start, end = _date_range(from_date, to_date)
    found = await halaxy.get_payment_transactions(start, end)
    if successful_only:
        found = [p for p in found if p.type == "Payment"]
    if enrich:
        found = await halaxy.enrich_payments_with_invoices(found)
    return {"from_date": start, "to_date": end, "total": len(found), "payments": found}


@router.get("/invoices")
async def invoices(
    from_date: str | None = Query(None, alias="fromDate"),
    to_date: str | None = Query(None, alias="toDate"),
    user: str = Depends(require_admin),
    halaxy: HalaxyClient = Depends(get_halaxy),
):
    start, end = _date_range(from_date, to_date)
    found = await halaxy.get_invoices(start, end)
    return {"from_date": start, "to_date": end, "total": len(found), "invoices": found}
