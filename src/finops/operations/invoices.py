"""Bulk void, bulk delete and paid-invoice wipe."""

from dataclasses import dataclass, field

import structlog

from finops.audit import get_audit_log
from finops.operations.models import (
    BulkDeleteResponse,
    BulkVoidResponse,
    InvoiceError,
    PaidWipeResponse,
    RemovedPayments,
)
from finops.operations.validation import (
    InvalidRequestError,
    sanitise_invoice_numbers,
    validate_iso_date,
)
from finops.xero.client import XeroClient, dry_run_delete
from finops.xero.models import DeleteAction, InvoiceWithPayments, OperationResult

logger = structlog.get_logger(__name__)

PAID_WIPE_PAUSE = 0.2
NUMBERS_REQUIRED = "invoiceNumbers must be a non-empty array of strings"


def _require_numbers(numbers: object) -> list[str]:
    cleaned = sanitise_invoice_numbers(numbers)
    if not cleaned:
        raise InvalidRequestError(NUMBERS_REQUIRED, "invoiceNumbers")
    return cleaned


@dataclass
class UnpayOutcome:
    success: bool
    message: str = ""
    payment_ids: list[str] = field(default_factory=list)


async def _remove_allocations(client: XeroClient, invoice: InvoiceWithPayments) -> OperationResult | None:
    """Remove credit-note, prepayment and overpayment allocations. Returns the first failure."""
    lookups = (
        (
            client.get_credit_note_allocations_to_invoice,
            client.delete_credit_note_allocation,
            invoice.applied_credit_notes,
        ),
        (
            client.get_prepayment_allocations_to_invoice,
            client.delete_prepayment_allocation,
            invoice.applied_prepayments,
        ),
        (
            client.get_overpayment_allocations_to_invoice,
            client.delete_overpayment_allocation,
            invoice.applied_overpayments,
        ),
    )
    for find, delete, applied in lookups:
        if not applied:
            continue
        refs = await find(invoice.invoice_id, invoice.contact_id, applied)
        for ref in refs:
            if not ref.allocation_id:
                continue
            result = await delete(ref.source_id, ref.allocation_id)
            if not result.success:
                return result
    return None


async def unpay_invoice(
    client: XeroClient, invoice: InvoiceWithPayments, payment_pause: float = 0.0
) -> UnpayOutcome:
    """Strip payments and allocations from an invoice so it can be voided.

    Stops at the first failure; payments already removed stay removed.
    """
    removed: list[str] = []
    for payment in invoice.payments:
        result = await client.delete_payment(payment.payment_id)
        if not result.success:
            return UnpayOutcome(False, f"Payment removal failed: {result.message}", removed)
        removed.append(payment.payment_id)
        if payment_pause:
            await client.pause(payment_pause)

    if invoice.has_allocations:
        failure = await _remove_allocations(client, invoice)
        if failure:
            return UnpayOutcome(False, f"Allocation removal failed: {failure.message}", removed)

    return UnpayOutcome(True, payment_ids=removed)


async def bulk_void(
    client: XeroClient, invoice_numbers: object, dry_run: bool, user: str
) -> BulkVoidResponse:
    cleaned = _require_numbers(invoice_numbers)

    if dry_run:
        return BulkVoidResponse(
            total=len(cleaned),
            attempted=0,
            voided=0,
            skipped=len(cleaned),
            errors=[],
            dry_run=True,
            user=user,
        )

    outcome = await client.bulk_void_invoices(cleaned)
    voided = sum(1 for r in outcome.results if r.success)
    errors = [InvoiceError(r.invoice_number, r.message) for r in outcome.results if not r.success]

    get_audit_log().record(
        "bulk-void",
        user,
        attempted=len(cleaned),
        voided=voided,
        failed=len(errors),
        stopped_early=outcome.stopped_early,
    )
    return BulkVoidResponse(
        total=len(cleaned),
        attempted=len(cleaned),
        voided=voided,
        skipped=0,
        errors=errors,
        dry_run=False,
        stopped_early=outcome.stopped_early,
        user=user,
    )


async def bulk_delete(
    client: XeroClient,
    cutoff_date: object,
    dry_run: bool,
    user: str,
    fetch_only: bool = False,
) -> BulkDeleteResponse:
    """Delete DRAFT/SUBMITTED and void AUTHORISED invoices dated before the cutoff."""
    cutoff = validate_iso_date(
        cutoff_date, "cutoffDate must be a valid ISO date (YYYY-MM-DD)", "cutoffDate"
    )
    invoices = await client.fetch_invoices_before_date(cutoff)

    if fetch_only:
        return BulkDeleteResponse(
            cutoff_date=cutoff,
            total_found=len(invoices),
            deleted=0,
            voided=0,
            skipped=0,
            errors=[],
            dry_run=True,
            user=user,
            invoices=invoices,
        )

    if not invoices:
        return BulkDeleteResponse(
            cutoff_date=cutoff,
            total_found=0,
            deleted=0,
            voided=0,
            skipped=0,
            errors=[],
            dry_run=dry_run,
            user=user,
        )

    if dry_run:
        results = dry_run_delete(invoices)
    else:
        outcome = await client.bulk_delete_invoices(invoices)
        results = outcome.results

    deleted = sum(1 for r in results if r.action is DeleteAction.DELETED and r.success)
    voided = sum(1 for r in results if r.action is DeleteAction.VOIDED and r.success)
    skipped = sum(1 for r in results if r.action is DeleteAction.SKIPPED)

    if dry_run:
        return BulkDeleteResponse(
            cutoff_date=cutoff,
            total_found=len(invoices),
            deleted=deleted,
            voided=voided,
            skipped=skipped,
            errors=[],
            dry_run=True,
            user=user,
            invoices=invoices,
        )

    errors = [InvoiceError(r.invoice_number, r.message) for r in results if not r.success]
    get_audit_log().record(
        "bulk-delete",
        user,
        cutoff_date=cutoff,
        total_found=len(invoices),
        deleted=deleted,
        voided=voided,
        skipped=skipped,
        failed=len(errors),
        stopped_early=outcome.stopped_early,
    )
    return BulkDeleteResponse(
        cutoff_date=cutoff,
        total_found=len(invoices),
        deleted=deleted,
        voided=voided,
        skipped=skipped,
        errors=errors,
        dry_run=False,
        stopped_early=outcome.stopped_early,
        user=user,
    )


async def paid_wipe(
    client: XeroClient, invoice_numbers: object, dry_run: bool, user: str
) -> PaidWipeResponse:
    """Un-pay each PAID invoice in turn, then void.

    The un-pay loop stops at the first invoice that cannot be found or
    un-paid; only the invoices un-paid before that point are voided.
    """
    cleaned = _require_numbers(invoice_numbers)

    if dry_run:
        return PaidWipeResponse(
            total=len(cleaned),
            attempted=0,
            voided=0,
            skipped=0,
            errors=[],
            payments_removed=[],
            dry_run=True,
            user=user,
        )

    errors: list[InvoiceError] = []
    payments_removed: list[RemovedPayments] = []
    unpaid: list[str] = []

    for number in cleaned:
        invoice = await client.get_invoice_by_number(number)
        if invoice is None:
            errors.append(InvoiceError(number, "Invoice not found in Xero"))
            break

        outcome = await unpay_invoice(client, invoice)
        if outcome.payment_ids:
            payments_removed.append(RemovedPayments(number, outcome.payment_ids))
        if not outcome.success:
            errors.append(InvoiceError(number, outcome.message))
            break

        unpaid.append(number)
        await client.pause(PAID_WIPE_PAUSE)

    void_target = unpaid if errors else cleaned
    void_outcome = await client.bulk_void_invoices(void_target)
    voided = sum(1 for r in void_outcome.results if r.success)
    void_errors = [
        InvoiceError(r.invoice_number, r.message) for r in void_outcome.results if not r.success
    ]

    stopped_early = bool(errors) or void_outcome.stopped_early
    reported = errors or void_errors
    get_audit_log().record(
        "paid-wipe",
        user,
        total=len(cleaned),
        payments_removed=sum(len(p.payment_ids) for p in payments_removed),
        voided=voided,
        failed=len(reported),
        stopped_early=stopped_early,
    )
    return PaidWipeResponse(
        total=len(cleaned),
        attempted=len(void_target),
        voided=voided,
        skipped=0,
        errors=reported,
        payments_removed=payments_removed,
        dry_run=False,
        stopped_early=stopped_early,
        user=user,
    )
