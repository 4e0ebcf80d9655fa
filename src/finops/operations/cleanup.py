"""Multi-step invoice cleanup: un-pay, void and delete in one workflow."""

import re

import structlog

from finops.audit import get_audit_log
from finops.operations.invoices import unpay_invoice
from finops.operations.models import (
    CleanupAction,
    CleanupItem,
    CleanupRequest,
    CleanupResponse,
    CleanupResultItem,
    CleanupStep,
    CleanupVerifyResponse,
    InvoiceError,
    VerifiedInvoice,
)
from finops.operations.validation import InvalidRequestError, is_iso_date, sanitise_invoice_numbers
from finops.xero.client import BATCH_DELAY, XeroClient
from finops.xero.models import DeleteAction, InvoiceSummary

logger = structlog.get_logger(__name__)

PAYMENT_PAUSE = 0.5
NOT_FOUND = "not found"


def normalise_status(status: str) -> str:
    upper = status.upper()
    return "AUTHORISED" if upper == "AUTHORIZED" else upper


def categorise(invoice: InvoiceSummary) -> CleanupAction:
    status = re.sub(r"\s+", " ", invoice.status.upper())
    if status in ("DRAFT", "SUBMITTED"):
        return CleanupAction.DELETE
    if status in ("AUTHORISED", "AUTHORIZED") or "AWAITING" in status:
        return CleanupAction.VOID
    if status == "PAID":
        return CleanupAction.UNPAY_VOID
    return CleanupAction.SKIP


def _to_item(invoice: InvoiceSummary) -> CleanupItem:
    return CleanupItem(
        invoice_number=invoice.invoice_number,
        invoice_id=invoice.invoice_id,
        date=invoice.date,
        total=invoice.total,
        status=invoice.status,
        action=categorise(invoice),
    )


async def verify_invoices(
    client: XeroClient,
    invoice_numbers: list[str],
    expected_by_invoice: dict[str, str] | None = None,
) -> CleanupVerifyResponse:
    """Re-read statuses from Xero and compare them with what a previous run expected."""
    cleaned = sanitise_invoice_numbers(invoice_numbers)
    found = await client.get_invoices_by_numbers_with_status(cleaned)
    by_number = {inv.invoice_number.upper(): inv for inv in found}

    verified = []
    for number in cleaned:
        invoice = by_number.get(number.upper())
        status = normalise_status(invoice.status) if invoice else NOT_FOUND
        expected = (expected_by_invoice or {}).get(number)
        if expected:
            wanted = NOT_FOUND if expected.lower() == NOT_FOUND else normalise_status(expected)
            ok = status == wanted
        else:
            ok = True
        verified.append(VerifiedInvoice(number, status, expected, ok))
    return CleanupVerifyResponse(verified=verified)


async def _load_invoices(client: XeroClient, request: CleanupRequest) -> list[InvoiceSummary]:
    if request.input_mode not in ("csv", "fetch"):
        raise InvalidRequestError('inputMode must be "csv" or "fetch"', "inputMode")

    if request.input_mode == "fetch":
        if not is_iso_date(request.cutoff_date):
            raise InvalidRequestError(
                "cutoffDate required and must be YYYY-MM-DD for fetch mode", "cutoffDate"
            )
        return await client.fetch_invoices_before_date(request.cutoff_date)

    cleaned = sanitise_invoice_numbers(request.invoice_numbers)
    if not cleaned:
        raise InvalidRequestError(
            "invoiceNumbers required and must be non-empty for csv mode", "invoiceNumbers"
        )
    return await client.get_invoices_by_numbers_with_status(cleaned)


async def invoice_cleanup(
    client: XeroClient, request: CleanupRequest, user: str
) -> CleanupResponse | CleanupVerifyResponse:
    """Categorise invoices and run the requested cleanup steps.

    Un-paying is rate limited, so at most ``batch_limit`` PAID invoices are
    processed per call; the rest come back in ``remaining_invoice_numbers``
    for the next call. Any failure stops the later steps.
    """
    if request.verify_only and request.invoice_numbers:
        return await verify_invoices(client, request.invoice_numbers, request.expected_by_invoice)

    invoices = await _load_invoices(client, request)
    items = [_to_item(inv) for inv in invoices]
    by_action: dict[CleanupAction, list[CleanupItem]] = {action: [] for action in CleanupAction}
    for item in items:
        by_action[item.action].append(item)

    response = CleanupResponse(
        input_mode=request.input_mode or "",
        cutoff_date=request.cutoff_date if request.input_mode == "fetch" else None,
        invoices=items,
        to_delete=len(by_action[CleanupAction.DELETE]),
        to_void=len(by_action[CleanupAction.VOID]),
        to_unpay_void=len(by_action[CleanupAction.UNPAY_VOID]),
        skipped=len(by_action[CleanupAction.SKIP]),
        user=user,
    )
    if request.dry_run:
        response.dry_run = True
        return response

    step = CleanupStep(request.step)
    results: list[CleanupResultItem] = []
    errors: list[InvoiceError] = []
    stopped = False

    # Step 1: un-pay
    unpaid: list[str] = []
    to_unpay = by_action[CleanupAction.UNPAY_VOID]
    remaining: list[str] = []
    if step in (CleanupStep.UNPAY, CleanupStep.ALL):
        batch = to_unpay[: max(request.batch_limit, 0)]
        remaining = [i.invoice_number for i in to_unpay[len(batch) :]]
        for item in batch:
            invoice = await client.get_invoice_by_number(item.invoice_number)
            if invoice is None:
                message = "Invoice not found in Xero"
                errors.append(InvoiceError(item.invoice_number, message))
                results.append(
                    CleanupResultItem(item.invoice_number, CleanupAction.UNPAY_VOID, False, message)
                )
                stopped = True
                break

            outcome = await unpay_invoice(client, invoice, payment_pause=PAYMENT_PAUSE)
            response.payments_removed += len(outcome.payment_ids)
            if not outcome.success:
                errors.append(InvoiceError(item.invoice_number, outcome.message))
                results.append(
                    CleanupResultItem(
                        item.invoice_number, CleanupAction.UNPAY_VOID, False, outcome.message
                    )
                )
                stopped = True
                break

            unpaid.append(item.invoice_number)
            results.append(CleanupResultItem(item.invoice_number, CleanupAction.UNPAY_VOID, True))
            await client.pause(BATCH_DELAY)

    # Step 2: void
    void_numbers: list[str] = []
    if step is CleanupStep.VOID:
        void_numbers = await _currently_voidable(client, request, invoices)
    elif step is CleanupStep.ALL:
        void_numbers = [i.invoice_number for i in by_action[CleanupAction.VOID]] + unpaid

    if void_numbers and not stopped:
        outcome = await client.bulk_void_invoices(void_numbers)
        for r in outcome.results:
            results.append(
                CleanupResultItem(
                    r.invoice_number, CleanupAction.VOID, r.success, None if r.success else r.message
                )
            )
            if r.success:
                response.voided += 1
            else:
                errors.append(InvoiceError(r.invoice_number, r.message))
        stopped = stopped or outcome.stopped_early

    # Step 3: delete
    to_delete = by_action[CleanupAction.DELETE]
    if step in (CleanupStep.DELETE, CleanupStep.ALL) and to_delete and not stopped:
        by_number = {inv.invoice_number: inv for inv in invoices}
        outcome = await client.bulk_delete_invoices([by_number[i.invoice_number] for i in to_delete])
        for r in outcome.results:
            results.append(
                CleanupResultItem(
                    r.invoice_number,
                    CleanupAction.DELETE,
                    r.success,
                    None if r.success else r.message,
                )
            )
            if r.success and r.action is DeleteAction.DELETED:
                response.deleted += 1
            elif not r.success:
                errors.append(InvoiceError(r.invoice_number, r.message))
        stopped = stopped or outcome.stopped_early
        await client.pause(BATCH_DELAY)

    response.errors = errors
    response.results = results
    response.stopped_early = stopped
    if remaining:
        response.partial = True
        response.remaining_invoice_numbers = remaining

    get_audit_log().record(
        "invoice-cleanup",
        user,
        input_mode=response.input_mode,
        step=step.value,
        deleted=response.deleted,
        voided=response.voided,
        payments_removed=response.payments_removed,
        failed=len(errors),
        stopped_early=stopped,
    )
    return response


async def _currently_voidable(
    client: XeroClient, request: CleanupRequest, invoices: list[InvoiceSummary]
) -> list[str]:
    """Re-read invoices so a void-only call picks up ones un-paid by an earlier call."""
    if request.input_mode == "fetch" and request.cutoff_date:
        fresh = await client.fetch_invoices_before_date(request.cutoff_date)
    else:
        numbers = sanitise_invoice_numbers(request.invoice_numbers) or [
            inv.invoice_number for inv in invoices
        ]
        fresh = await client.get_invoices_by_numbers_with_status(numbers)

    voidable = []
    for inv in fresh:
        status = normalise_status(inv.status)
        if status == "AUTHORISED" or "AWAITING" in status:
            voidable.append(inv.invoice_number)
    return voidable
