"""Cross-reference clearing transactions with Halaxy payments (legacy summary)."""

from dataclasses import dataclass

from finops.halaxy.models import HalaxyPayment
from finops.reconciliation.matching import to_cents
from finops.reconciliation.models import HalaxyMatchType, SyncGaps
from finops.xero.models import ClearingTransaction


@dataclass
class EnrichmentResult:
    transactions: list[ClearingTransaction]
    sync_gaps: SyncGaps


def _attach(txn: ClearingTransaction, payment: HalaxyPayment, match_type: HalaxyMatchType) -> None:
    txn.halaxy_invoice_number = payment.invoice_number
    txn.halaxy_patient_name = payment.patient_name
    txn.halaxy_payment_method = payment.method
    txn.halaxy_amount = payment.amount
    txn.halaxy_match_type = match_type.value


def enrich_with_halaxy(
    clearing: list[ClearingTransaction],
    payments: list[HalaxyPayment],
) -> EnrichmentResult:
    """Tag each clearing transaction with the Halaxy payment it came from.

    Invoice-number matches win; otherwise a payment with the same cents
    amount created on the same day is taken. Transactions are updated in
    place.
    """
    by_invoice: dict[str, list[HalaxyPayment]] = {}
    by_amount_date: dict[str, list[HalaxyPayment]] = {}
    successful = [p for p in payments if p.type == "Payment"]

    for payment in successful:
        if payment.invoice_number:
            by_invoice.setdefault(payment.invoice_number.upper(), []).append(payment)
        key = f"{to_cents(payment.amount)}:{payment.created_date}"
        by_amount_date.setdefault(key, []).append(payment)

    matched: set[str] = set()
    for txn in clearing:
        ref = (txn.reference or txn.invoice_number or "").upper()
        candidates = by_invoice.get(ref) if ref else None
        if candidates:
            # A reused reference still counts as an exact match
            payment = next((p for p in candidates if p.id not in matched), candidates[0])
            matched.add(payment.id)
            _attach(txn, payment, HalaxyMatchType.EXACT)
            continue

        candidates = by_amount_date.get(f"{to_cents(txn.amount)}:{txn.date}") or []
        payment = next((p for p in candidates if p.id not in matched), None)
        if payment:
            matched.add(payment.id)
            _attach(txn, payment, HalaxyMatchType.AMOUNT_ONLY)
        else:
            txn.halaxy_match_type = HalaxyMatchType.MISSING.value

    return EnrichmentResult(
        transactions=clearing,
        sync_gaps=SyncGaps(
            missing_from_xero=[p for p in successful if p.id not in matched],
            not_from_halaxy=[
                t for t in clearing if t.halaxy_match_type == HalaxyMatchType.MISSING.value
            ],
        ),
    )
