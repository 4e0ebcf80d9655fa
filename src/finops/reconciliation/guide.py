"""Fee-calculator guide and report summary numbers."""

from decimal import Decimal

from finops.halaxy.models import HalaxyPayment, is_medicare_method
from finops.reconciliation.matching import calculate_bronze_fee, round_money
from finops.reconciliation.models import (
    ClearingReportSummary,
    ClearingSummary,
    GuideDaySummary,
    GuideDayTotals,
    GuideGrandTotals,
    GuidePayment,
    MatchConfidence,
    ReconciliationGuide,
)

BRAINTREE = "Braintree"


def _guide_payment(payment: HalaxyPayment, day: str) -> GuidePayment:
    fee = calculate_bronze_fee(payment.amount) if payment.method == BRAINTREE else Decimal("0")
    return GuidePayment(
        id=payment.id,
        date=day,
        invoice_number=payment.invoice_number or "",
        patient_name=payment.patient_name or "",
        amount=payment.amount,
        method=payment.method,
        type=payment.type,
        estimated_fee=fee,
        expected_deposit=round_money(payment.amount - fee),
    )


def build_fee_guide(
    payments: list[HalaxyPayment], from_date: str, to_date: str
) -> ReconciliationGuide:
    """Day-by-day expected deposits for successful Halaxy payments.

    Braintree payments carry the Bronze fee; Medicare and DVA payments and
    everything else are totalled separately.
    """
    by_day: dict[str, list[HalaxyPayment]] = {}
    for payment in payments:
        if payment.type == "Payment":
            by_day.setdefault(payment.created_date, []).append(payment)

    days: list[GuideDaySummary] = []
    grand = GuideGrandTotals()
    count = 0

    for day in sorted(by_day):
        rows = [_guide_payment(p, day) for p in by_day[day]]
        totals = GuideDayTotals()
        for row in rows:
            totals.day_total += row.amount
            grand.payments += row.amount
            if row.method == BRAINTREE:
                totals.braintree += row.amount
                totals.braintree_fees += row.estimated_fee
                totals.braintree_net += row.expected_deposit
                grand.braintree_count += 1
                grand.braintree_amount += row.amount
                grand.estimated_fees += row.estimated_fee
            elif is_medicare_method(row.method):
                totals.medicare += row.amount
                grand.medicare_count += 1
                grand.medicare_amount += row.amount
            else:
                totals.other += row.amount
                grand.other_count += 1
                grand.other_amount += row.amount
        count += len(rows)
        days.append(GuideDaySummary(date=day, payments=rows, totals=totals))

    return ReconciliationGuide(
        from_date=from_date,
        to_date=to_date,
        days=days,
        grand_totals=grand,
        payment_count=count,
    )


def summarise_clearing(summary: ClearingSummary) -> ClearingReportSummary:
    """Headline numbers for a legacy clearing summary."""
    matches = summary.deposits
    return ClearingReportSummary(
        total_matched=len(matches),
        exact=sum(1 for m in matches if m.match_confidence is MatchConfidence.EXACT),
        fee_adjusted=sum(
            1 for m in matches if m.match_confidence is MatchConfidence.FEE_ADJUSTED
        ),
        matched_total=sum((m.deposit.amount for m in matches), Decimal("0")),
        unmatched_deposits=len(summary.unmatched_deposits),
        unmatched_clearing=len(summary.unmatched_clearing),
    )
