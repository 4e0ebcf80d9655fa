"""Matching engine for the clearing account.

Amounts are compared in integer cents; Decimal totals are rebuilt from the
matched transactions so reported sums carry no float error.
"""

from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Sequence

import structlog

from finops.halaxy.models import HalaxyPayment
from finops.reconciliation.models import (
    STATUS_ORDER,
    DepositMatch,
    GroupingResult,
    MatchConfidence,
    MatchMethod,
    MedicareBatchMatch,
    MedicareReconciliationResult,
    MedicareStats,
    ReconciliationResult,
    ReconciliationStats,
    ThreeWayMatch,
    ThreeWayMatchStatus,
)
from finops.xero.models import BankDeposit, ClearingTransaction

logger = structlog.get_logger(__name__)

CENT = Decimal("0.01")
BRONZE_RATE = Decimal("0.019")
BRONZE_FIXED = Decimal("1.00")
CLEARING_WINDOW_DAYS = 1
DEPOSIT_WINDOW_DAYS = 2


def to_cents(amount: Decimal | int | float | str) -> int:
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def round_money(amount: Decimal) -> Decimal:
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def calculate_bronze_fee(amount: Decimal) -> Decimal:
    """Braintree Bronze tier: 1.90% + $1.00, GST inclusive."""
    return round_money(amount * BRONZE_RATE + BRONZE_FIXED)


def _days_apart(a: str, b: str) -> int | None:
    try:
        return abs((date.fromisoformat(a[:10]) - date.fromisoformat(b[:10])).days)
    except ValueError:
        return None


def _within(a: str, b: str, days: int) -> bool:
    apart = _days_apart(a, b)
    return apart is not None and apart <= days


@dataclass
class SubsetMatch:
    subset: list[ClearingTransaction]
    diff_cents: int


def find_best_subset_match(
    txns: Sequence[ClearingTransaction],
    target_cents: int,
    tolerance_cents: int,
) -> SubsetMatch | None:
    """Closest non-empty subset whose sum is within tolerance of the target.

    Backtracks over amounts sorted descending. A branch is cut when it
    overshoots target + tolerance, and the scan stops once the remaining
    amounts cannot reach target - tolerance. An exact sum ends the search.
    """
    if not txns:
        return None

    ordered = sorted(txns, key=lambda t: t.amount, reverse=True)
    cents = [to_cents(t.amount) for t in ordered]

    suffix = [0] * (len(cents) + 1)
    for i in range(len(cents) - 1, -1, -1):
        suffix[i] = suffix[i + 1] + cents[i]

    best: list[int] | None = None
    best_abs = None
    current: list[int] = []

    def backtrack(idx: int, total: int) -> bool:
        nonlocal best, best_abs
        diff = abs(total - target_cents)
        if best_abs is None or diff < best_abs:
            best_abs = diff
            best = list(current)
            if diff == 0:
                return True

        for i in range(idx, len(cents)):
            new_total = total + cents[i]
            if new_total > target_cents + tolerance_cents:
                continue
            if new_total + suffix[i + 1] < target_cents - tolerance_cents:
                break
            current.append(i)
            if backtrack(i + 1, new_total):
                return True
            current.pop()
        return False

    backtrack(0, 0)

    if not best or best_abs is None or best_abs > tolerance_cents:
        return None
    return SubsetMatch(
        subset=[ordered[i] for i in best],
        diff_cents=target_cents - sum(cents[i] for i in best),
    )


def suggest_groupings(
    deposits: list[BankDeposit],
    clearing: list[ClearingTransaction],
    tolerance_cents: int = 500,
) -> GroupingResult:
    """Group clearing transactions under each deposit, in deposit order."""
    used: set[str] = set()
    matches: list[DepositMatch] = []
    unmatched_deposits: list[BankDeposit] = []

    for deposit in deposits:
        available = [c for c in clearing if c.transaction_id not in used]
        result = find_best_subset_match(available, to_cents(deposit.amount), tolerance_cents)
        if result is None:
            unmatched_deposits.append(deposit)
            continue

        used.update(c.transaction_id for c in result.subset)
        total = sum((c.amount for c in result.subset), Decimal("0"))
        abs_diff = abs(result.diff_cents)
        if abs_diff == 0:
            confidence = MatchConfidence.EXACT
        elif abs_diff <= tolerance_cents:
            confidence = MatchConfidence.FEE_ADJUSTED
        else:
            confidence = MatchConfidence.UNCERTAIN

        matches.append(
            DepositMatch(
                deposit=deposit,
                clearing_transactions=result.subset,
                total=round_money(total),
                difference=round_money(deposit.amount - total),
                is_exact_match=abs_diff == 0,
                implied_fee=round_money(Decimal(abs_diff) / 100),
                match_confidence=confidence,
            )
        )

    return GroupingResult(
        matches=matches,
        unmatched_deposits=unmatched_deposits,
        unmatched_clearing=[c for c in clearing if c.transaction_id not in used],
    )


def _first_present(*values: str | None) -> str:
    # only None falls through; "" is kept
    return next((v for v in values if v is not None), "")


def _clearing_ref(txn: ClearingTransaction) -> str:
    return (txn.reference or txn.invoice_number or "").upper().strip()


def _find_deposit(
    by_cents: dict[int, list[BankDeposit]],
    used: set[str],
    cents: int,
    ref_date: str,
) -> BankDeposit | None:
    for deposit in by_cents.get(cents, []):
        if deposit.bank_transaction_id in used:
            continue
        if _within(deposit.date, ref_date, DEPOSIT_WINDOW_DAYS):
            return deposit
    return None


def reconcile_three_way(
    halaxy_payments: list[HalaxyPayment],
    clearing: list[ClearingTransaction],
    deposits: list[BankDeposit],
) -> ReconciliationResult:
    """Match Halaxy card payments to clearing entries and NAB deposits one-to-one.

    Each Braintree payment settles as its own clearing entry and its own
    deposit of the same amount.
    """
    used_clearing: set[str] = set()
    used_deposits: set[str] = set()
    seen_payments: set[str] = set()
    matches: list[ThreeWayMatch] = []

    clearing_by_ref: dict[str, list[ClearingTransaction]] = {}
    for txn in clearing:
        ref = _clearing_ref(txn)
        if ref:
            clearing_by_ref.setdefault(ref, []).append(txn)

    deposits_by_cents: dict[int, list[BankDeposit]] = {}
    for deposit in deposits:
        deposits_by_cents.setdefault(to_cents(deposit.amount), []).append(deposit)

    braintree = [p for p in halaxy_payments if p.method == "Braintree" and p.type == "Payment"]
    for payment in braintree:
        if payment.id in seen_payments:
            continue
        seen_payments.add(payment.id)

        invoice_number = (payment.invoice_number or "").upper().strip()
        cents = to_cents(payment.amount)
        paid_on = payment.created_date

        clearing_match = None
        if invoice_number:
            clearing_match = next(
                (
                    c
                    for c in clearing_by_ref.get(invoice_number, [])
                    if c.transaction_id not in used_clearing
                ),
                None,
            )
        if clearing_match is None:
            clearing_match = next(
                (
                    c
                    for c in clearing
                    if c.transaction_id not in used_clearing
                    and to_cents(c.amount) == cents
                    and _within(c.date, paid_on, CLEARING_WINDOW_DAYS)
                ),
                None,
            )

        ref_date = clearing_match.date if clearing_match else paid_on
        deposit_match = _find_deposit(deposits_by_cents, used_deposits, cents, ref_date)

        if clearing_match and deposit_match:
            status = ThreeWayMatchStatus.MATCHED
        elif clearing_match:
            status = ThreeWayMatchStatus.AWAITING_DEPOSIT
        else:
            status = ThreeWayMatchStatus.SYNC_FAILED

        if clearing_match and invoice_number:
            method = MatchMethod.INVOICE_NUMBER
        elif clearing_match:
            method = MatchMethod.AMOUNT_DATE
        else:
            method = MatchMethod.UNMATCHED

        if clearing_match:
            used_clearing.add(clearing_match.transaction_id)
        if deposit_match:
            used_deposits.add(deposit_match.bank_transaction_id)

        matches.append(
            ThreeWayMatch(
                halaxy_payment=payment,
                clearing_txn=clearing_match,
                bank_deposit=deposit_match,
                invoice_number=_first_present(
                    payment.invoice_number,
                    clearing_match.invoice_number if clearing_match else None,
                ),
                patient_name=_first_present(
                    payment.patient_name, clearing_match.contact_name if clearing_match else None
                ),
                amount=payment.amount,
                date=paid_on,
                status=status,
                match_method=method,
                calculated_fee=calculate_bronze_fee(payment.amount),
            )
        )

    # Clearing entries with no Halaxy payment were keyed in by hand
    for txn in clearing:
        if txn.transaction_id in used_clearing:
            continue
        used_clearing.add(txn.transaction_id)
        deposit_match = _find_deposit(
            deposits_by_cents, used_deposits, to_cents(txn.amount), txn.date
        )
        if deposit_match:
            used_deposits.add(deposit_match.bank_transaction_id)
        matches.append(
            ThreeWayMatch(
                halaxy_payment=None,
                clearing_txn=txn,
                bank_deposit=deposit_match,
                invoice_number=txn.invoice_number or txn.reference,
                patient_name=txn.contact_name or "",
                amount=txn.amount,
                date=txn.date,
                status=ThreeWayMatchStatus.MANUAL_ENTRY,
                match_method=MatchMethod.UNMATCHED,
                calculated_fee=calculate_bronze_fee(txn.amount),
            )
        )

    for deposit in deposits:
        if deposit.bank_transaction_id in used_deposits:
            continue
        used_deposits.add(deposit.bank_transaction_id)
        matches.append(
            ThreeWayMatch(
                halaxy_payment=None,
                clearing_txn=None,
                bank_deposit=deposit,
                invoice_number=deposit.reference or "",
                patient_name="",
                amount=deposit.amount,
                date=deposit.date,
                status=ThreeWayMatchStatus.ORPHAN_DEPOSIT,
                match_method=MatchMethod.UNMATCHED,
            )
        )

    # Stable sorts: date descending within each status
    matches.sort(key=lambda m: m.date, reverse=True)
    matches.sort(key=lambda m: STATUS_ORDER[m.status])

    stats = ReconciliationStats(total=len(matches))
    for match in matches:
        stats.total_amount += match.amount
        if match.status is ThreeWayMatchStatus.MATCHED:
            stats.matched += 1
            stats.ready_amount += match.amount
        elif match.status is ThreeWayMatchStatus.AWAITING_DEPOSIT:
            stats.awaiting_deposit += 1
        elif match.status is ThreeWayMatchStatus.SYNC_FAILED:
            stats.sync_failed += 1
        elif match.status is ThreeWayMatchStatus.MANUAL_ENTRY:
            stats.manual_entry += 1
        else:
            stats.orphan_deposits += 1

    clearing_balance = sum((t.amount for t in clearing), Decimal("0"))
    logger.info(
        "three_way_reconciled",
        payments=len(braintree),
        clearing=len(clearing),
        deposits=len(deposits),
        matched=stats.matched,
    )
    return ReconciliationResult(
        matches=matches,
        stats=stats,
        clearing_balance=round_money(clearing_balance),
        expected_balance=round_money(clearing_balance - stats.ready_amount),
    )


def reconcile_medicare(
    clearing: list[ClearingTransaction],
    savings_deposits: list[BankDeposit],
    tolerance_cents: int = 200,
) -> MedicareReconciliationResult:
    """Match batched Medicare/DVA deposits in savings to the clearing entries they cover.

    Only RECEIVE entries are candidates; an entry with no type is treated
    as a receipt.
    """
    receipts = [c for c in clearing if (c.txn_type or "").upper() in ("RECEIVE", "")]
    used: set[str] = set()
    batch_matches: list[MedicareBatchMatch] = []
    unmatched_deposits: list[BankDeposit] = []

    for deposit in sorted(savings_deposits, key=lambda d: d.date):
        available = [c for c in receipts if c.transaction_id not in used]
        result = find_best_subset_match(available, to_cents(deposit.amount), tolerance_cents)
        if result is None:
            unmatched_deposits.append(deposit)
            continue
        used.update(c.transaction_id for c in result.subset)
        total = sum((c.amount for c in result.subset), Decimal("0"))
        batch_matches.append(
            MedicareBatchMatch(
                deposit=deposit,
                clearing_entries=result.subset,
                total=round_money(total),
                difference=round_money(deposit.amount - total),
                is_exact_match=result.diff_cents == 0,
            )
        )

    unmatched_clearing = [c for c in receipts if c.transaction_id not in used]
    clearing_balance = round_money(sum((c.amount for c in receipts), Decimal("0")))
    ready_amount = sum((m.deposit.amount for m in batch_matches), Decimal("0"))

    return MedicareReconciliationResult(
        batch_matches=batch_matches,
        unmatched_deposits=unmatched_deposits,
        unmatched_clearing=unmatched_clearing,
        clearing_balance=clearing_balance,
        stats=MedicareStats(
            total_deposits=len(savings_deposits),
            matched_deposits=len(batch_matches),
            unmatched_deposits=len(unmatched_deposits),
            total_clearing_entries=len(receipts),
            matched_clearing_entries=len(receipts) - len(unmatched_clearing),
            unmatched_clearing_entries=len(unmatched_clearing),
            ready_amount=round_money(ready_amount),
            total_clearing_amount=clearing_balance,
        ),
    )
