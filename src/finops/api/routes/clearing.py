"""Clearing-account routes: summary, apply, transfers, purge and report numbers."""

from fastapi import APIRouter, Depends, Query

from finops.api.deps import get_optional_halaxy, get_xero, require_admin
from finops.api.schemas import (
    ClearingApplyBody,
    ClearingPurgeBody,
    ClearingTransfersBody,
    ReportSummaryBody,
)
from finops.halaxy import HalaxyClient
from finops.operations import (
    SummaryQuery,
    clearing_apply,
    clearing_purge,
    clearing_summary,
    clearing_transfers,
)
from finops.reconciliation import summarise_clearing
from finops.xero.client import XeroClient

router = APIRouter(prefix="/xero/clearing", tags=["clearing"])


@router.get("/summary")
async def summary(
    from_date: str | None = Query(None, alias="fromDate"),
    to_date: str | None = Query(None, alias="toDate"),
    date: str | None = None,
    tolerance: str | None = None,
    mode: str | None = None,
    halaxy_flag: str | None = Query(None, alias="halaxy"),
    user: str = Depends(require_admin),
    xero: XeroClient = Depends(get_xero),
    halaxy: HalaxyClient | None = Depends(get_optional_halaxy),
):
    query = SummaryQuery(
        from_date=from_date,
        to_date=to_date,
        date=date,
        tolerance=tolerance,
        mode=mode,
        halaxy=halaxy_flag,
    )
    return await clearing_summary(xero, halaxy, query)


@router.post("/apply")
async def apply(
    body: ClearingApplyBody,
    user: str = Depends(require_admin),
    xero: XeroClient = Depends(get_xero),
):
    return await clearing_apply(
        xero,
        body.bank_transaction_id,
        body.clearing_transaction_ids,
        body.dry_run,
        user,
        fee_amount=body.fee_amount,
        fee_account_code=body.fee_account_code,
    )


@router.post("/transfers")
async def transfers(
    body: ClearingTransfersBody,
    user: str = Depends(require_admin),
    xero: XeroClient = Depends(get_xero),
):
    return await clearing_transfers(
        xero,
        [item.to_request() for item in body.items],
        body.target_account_id,
        body.dry_run,
        user,
    )


@router.post("/purge")
async def purge(
    body: ClearingPurgeBody,
    user: str = Depends(require_admin),
    xero: XeroClient = Depends(get_xero),
):
    """Delete unreconciled bank transactions dated before the cutoff. Dry run by default."""
    return await clearing_purge(xero, body.account_id, body.cutoff_date, user, dry_run=body.dry_run)


@router.post("/report-summary")
async def report_summary(
    body: ReportSummaryBody,
    user: str = Depends(require_admin),
    xero: XeroClient = Depends(get_xero),
    halaxy: HalaxyClient | None = Depends(get_optional_halaxy),
):
    query = SummaryQuery(
        from_date=body.from_date,
        to_date=body.to_date,
        date=body.date,
        tolerance=None if body.tolerance is None else str(body.tolerance),
        mode="legacy",
    )
    return summarise_clearing(await clearing_summary(xero, halaxy, query))
