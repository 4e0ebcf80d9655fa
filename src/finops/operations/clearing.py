"""Clearing-account workflows: summary, apply, transfers and purge."""

import asyncio
from dataclasses import dataclass
from decimal import Decimal

import structlog

from finops.audit import get_audit_log
from finops.config import get_settings, require_setting
from finops.halaxy.client import HalaxyClient
from finops.operations.models import ClearingApplyResponse
from finops.operations.validation import InvalidRequestError, is_iso_date, validate_iso_date
from finops.reconciliation import (
    build_fee_guide,
    enrich_with_halaxy,
    reconcile_medicare,
    reconcile_three_way,
    suggest_groupings,
)
from finops.reconciliation.models import (
    ClearingSummary,
    MedicareReconciliationResult,
    ReconciliationGuide,
    ReconciliationResult,
    SyncGaps,
)
from finops.xero.client import XeroClient
from finops.xero.models import BatchTransferOutcome, PurgeResult, TransferRequest, TransferResult

logger = structlog.get_logger(__name__)

DEFAULT_TOLERANCE_CENTS = 500
MEDICARE_TOLERANCE_CENTS = 200

ClearingSummaryResult = (
    ClearingSummary | ReconciliationResult | MedicareReconciliationResult | ReconciliationGuide
)


@dataclass
class SummaryQuery:
    """Query parameters of a clearing summary, as received."""

    from_date: str | None = None
    to_date: str | None = None
    date: str | None = None
    tolerance: str | None = None
    mode: str | None = None
    halaxy: str | None = None


def resolve_date_range(query: SummaryQuery) -> tuple[str, str]:
    from_date, to_date = query.from_date, query.to_date
    if not from_date and is_iso_date(query.date):
        from_date = to_date = query.date
    if not (is_iso_date(from_date) and is_iso_date(to_date)):
        raise InvalidRequestError(
            "fromDate and toDate (or date) query params required in YYYY-MM-DD format"
        )
    return from_date, to_date


def parse_tolerance(value: str | None, default: int = DEFAULT_TOLERANCE_CENTS) -> int:
    if value is None or value == "":
        return default
    try:
        return max(0, round(float(value)))
    except ValueError as e:
        raise InvalidRequestError("tolerance must be a number of cents", "tolerance") from e


async def clearing_summary(
    xero: XeroClient,
    halaxy: HalaxyClient | None,
    query: SummaryQuery,
) -> ClearingSummaryResult:
    """Reconcile the clearing account for a date range.

    ``mode`` picks the engine: ``guide``, ``medicare``, ``threeway`` or
    ``legacy``. With no mode, three-way is used whenever Halaxy is
    available unless ``halaxy=false``.
    """
    from_date, to_date = resolve_date_range(query)
    tolerance = parse_tolerance(query.tolerance)
    halaxy_ready = halaxy is not None
    mode = query.mode

    nab_id = require_setting(xero.nab_account_id, "XERO_NAB_ACCOUNT_ID", "clearing summary")
    clearing_id = require_setting(
        xero.clearing_account_id, "XERO_CLEARING_ACCOUNT_ID", "clearing summary"
    )

    if mode == "guide":
        if halaxy is None:
            raise InvalidRequestError("Halaxy credentials not configured; guide mode requires Halaxy")
        payments = await halaxy.get_payment_transactions(from_date, to_date)
        enriched = await halaxy.enrich_payments_with_invoices(
            [p for p in payments if p.type == "Payment"]
        )
        return build_fee_guide(enriched, from_date, to_date)

    if mode == "medicare":
        if halaxy is None:
            raise InvalidRequestError(
                "Halaxy credentials not configured; Medicare mode requires Halaxy"
            )
        savings_id = require_setting(
            xero.savings_account_id, "XERO_SAVINGS_ACCOUNT_ID", "Medicare mode"
        )
        savings, clearing, medicare = await asyncio.gather(
            xero.get_unreconciled_bank_transactions(savings_id, from_date, to_date),
            xero.get_clearing_transactions(clearing_id, from_date, to_date),
            halaxy.get_medicare_payments(from_date, to_date),
        )
        result = reconcile_medicare(
            clearing, savings, parse_tolerance(query.tolerance, MEDICARE_TOLERANCE_CENTS)
        )
        result.halaxy_payment_count = len(medicare)
        result.halaxy_payment_total = sum((p.amount for p in medicare), Decimal("0"))
        return result

    use_three_way = mode == "threeway" or (
        mode != "legacy" and halaxy_ready and query.halaxy != "false"
    )
    if use_three_way:
        if halaxy is None:
            raise InvalidRequestError(
                "Halaxy credentials not configured; three-way mode requires Halaxy"
            )
        deposits, clearing, payments = await asyncio.gather(
            xero.get_unreconciled_bank_transactions(nab_id, from_date, to_date),
            xero.get_clearing_transactions(clearing_id, from_date, to_date),
            halaxy.get_braintree_payments(from_date, to_date),
        )
        return reconcile_three_way(payments, clearing, deposits)

    deposits, clearing = await asyncio.gather(
        xero.get_unreconciled_bank_transactions(nab_id, from_date, to_date),
        xero.get_clearing_transactions(clearing_id, from_date, to_date),
    )

    halaxy_enriched = False
    sync_gaps: SyncGaps | None = None
    if halaxy is not None and query.halaxy != "false":
        try:
            payments = await halaxy.get_payment_transactions(from_date, to_date)
            payments = await halaxy.enrich_payments_with_invoices(payments)
            enrichment = enrich_with_halaxy(clearing, payments)
            clearing = enrichment.transactions
            sync_gaps = enrichment.sync_gaps
            halaxy_enriched = True
        except Exception:
            # Summary is still useful without Halaxy data
            logger.exception("halaxy_enrichment_failed", from_date=from_date, to_date=to_date)

    groupings = suggest_groupings(deposits, clearing, tolerance)
    return ClearingSummary(
        date=from_date if from_date == to_date else f"{from_date} to {to_date}",
        from_date=from_date,
        to_date=to_date,
        tolerance_cents=tolerance,
        deposits=groupings.matches,
        unmatched_deposits=groupings.unmatched_deposits,
        unmatched_clearing=groupings.unmatched_clearing,
        halaxy_enriched=halaxy_enriched,
        sync_gaps=sync_gaps,
    )


async def clearing_apply(
    client: XeroClient,
    bank_transaction_id: str | None,
    clearing_transaction_ids: list[str] | None,
    dry_run: bool,
    user: str,
    fee_amount: Decimal = Decimal("0"),
    fee_account_code: str | None = None,
) -> ClearingApplyResponse:
    if not bank_transaction_id or not clearing_transaction_ids:
        raise InvalidRequestError(
            "bankTransactionId and non-empty clearingTransactionIds[] required"
        )
    count = len(clearing_transaction_ids)

    if dry_run:
        return ClearingApplyResponse(
            bank_transaction_id=bank_transaction_id,
            matched=count,
            total=Decimal("0"),
            success=True,
            message=(
                f"Dry run: would link {count} clearing transactions "
                f"to deposit {bank_transaction_id}"
            ),
            dry_run=True,
        )

    result = await client.apply_clearing(
        bank_transaction_id,
        clearing_transaction_ids,
        fee_amount=fee_amount,
        fee_account_code=fee_account_code or get_settings().xero_fee_account_code,
    )
    get_audit_log().record(
        "clearing-apply",
        user,
        bank_transaction_id=bank_transaction_id,
        clearing=count,
        fee=str(fee_amount),
        success=result.success,
    )
    return ClearingApplyResponse(
        bank_transaction_id=bank_transaction_id,
        matched=count,
        total=Decimal("0"),
        success=result.success,
        message=result.message,
        dry_run=False,
    )


async def clearing_transfers(
    client: XeroClient,
    items: list[TransferRequest],
    target_account_id: str | None,
    dry_run: bool,
    user: str,
) -> BatchTransferOutcome:
    """Sweep the selected matched items from clearing into the target bank account."""
    if not items:
        raise InvalidRequestError("items must be a non-empty array", "items")

    if dry_run:
        return BatchTransferOutcome(
            total=len(items),
            succeeded=len(items),
            failed=0,
            results=[
                TransferResult(item.reference, True, f"Would transfer ${item.amount:.2f} (dry run)")
                for item in items
            ],
        )

    outcome = await client.create_batch_bank_transfers(items, target_account_id)
    get_audit_log().record(
        "clearing-transfers",
        user,
        total=outcome.total,
        succeeded=outcome.succeeded,
        failed=outcome.failed,
        amount=str(sum((i.amount for i in items), Decimal("0"))),
    )
    return outcome


def resolve_account(client: XeroClient, account_id: str | None) -> str | None:
    """Expand the ``savings``/``clearing``/``nab`` shortcuts."""
    shortcuts = {
        "savings": client.savings_account_id,
        "clearing": client.clearing_account_id,
        "nab": client.nab_account_id,
    }
    if account_id in shortcuts:
        return shortcuts[account_id]
    return account_id


async def clearing_purge(
    client: XeroClient,
    account_id: str | None,
    cutoff_date: object,
    user: str,
    dry_run: bool = True,
) -> PurgeResult:
    cutoff = validate_iso_date(cutoff_date, "cutoffDate required in YYYY-MM-DD format", "cutoffDate")
    resolved = resolve_account(client, account_id)
    if not resolved:
        raise InvalidRequestError(
            "accountId required (or set XERO_SAVINGS_ACCOUNT_ID / XERO_CLEARING_ACCOUNT_ID env vars)",
            "accountId",
        )

    result = await client.purge_account_before(resolved, cutoff, dry_run)
    if not dry_run:
        get_audit_log().record(
            "account-purge",
            user,
            account_id=resolved,
            cutoff_date=cutoff,
            found=result.found,
            deleted=result.deleted,
            skipped=result.skipped,
            failed=len(result.errors),
            stopped_early=result.stopped_early,
        )
    return result
