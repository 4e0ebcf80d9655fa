"""Result types for clearing-account reconciliation."""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum

from finops.halaxy.models import HalaxyPayment
from finops.xero.models import BankDeposit, ClearingTransaction


class MatchConfidence(str, Enum):
    EXACT = "exact"
    FEE_ADJUSTED = "fee-adjusted"
    UNCERTAIN = "uncertain"


class HalaxyMatchType(str, Enum):
    EXACT = "exact"
    AMOUNT_ONLY = "amount-only"
    MISSING = "missing"


class ThreeWayMatchStatus(str, Enum):
    """Reconciliation state of one payment, clearing entry or deposit."""

    MATCHED = "matched"
    AWAITING_DEPOSIT = "awaiting_deposit"
    SYNC_FAILED = "sync_failed"
    MANUAL_ENTRY = "manual_entry"
    ORPHAN_DEPOSIT = "orphan_deposit"


STATUS_ORDER = {
    ThreeWayMatchStatus.MATCHED: 0,
    ThreeWayMatchStatus.AWAITING_DEPOSIT: 1,
    ThreeWayMatchStatus.SYNC_FAILED: 2,
    ThreeWayMatchStatus.MANUAL_ENTRY: 3,
    ThreeWayMatchStatus.ORPHAN_DEPOSIT: 4,
}


class MatchMethod(str, Enum):
    INVOICE_NUMBER = "invoice_number"
    AMOUNT_DATE = "amount_date"
    UNMATCHED = "unmatched"


@dataclass
class DepositMatch:
    """A bank deposit and the clearing transactions that sum to it."""

    deposit: BankDeposit
    clearing_transactions: list[ClearingTransaction]
    total: Decimal
    difference: Decimal
    is_exact_match: bool
    implied_fee: Decimal
    match_confidence: MatchConfidence


@dataclass
class GroupingResult:
    matches: list[DepositMatch]
    unmatched_deposits: list[BankDeposit]
    unmatched_clearing: list[ClearingTransaction]


@dataclass
class ThreeWayMatch:
    halaxy_payment: HalaxyPayment | None
    clearing_txn: ClearingTransaction | None
    bank_deposit: BankDeposit | None
    invoice_number: str
    patient_name: str
    amount: Decimal
    date: str
    status: ThreeWayMatchStatus
    match_method: MatchMethod
    calculated_fee: Decimal | None = None


@dataclass
class ReconciliationStats:
    total: int = 0
    matched: int = 0
    awaiting_deposit: int = 0
    sync_failed: int = 0
    manual_entry: int = 0
    orphan_deposits: int = 0
    total_amount: Decimal = Decimal("0")
    ready_amount: Decimal = Decimal("0")


@dataclass
class ReconciliationResult:
    matches: list[ThreeWayMatch]
    stats: ReconciliationStats
    clearing_balance: Decimal
    expected_balance: Decimal
    three_way_mode: bool = True


@dataclass
class MedicareBatchMatch:
    """One savings-account deposit and the Medicare clearing entries batched into it."""

    deposit: BankDeposit
    clearing_entries: list[ClearingTransaction]
    total: Decimal
    difference: Decimal
    is_exact_match: bool


@dataclass
class MedicareStats:
    total_deposits: int
    matched_deposits: int
    unmatched_deposits: int
    total_clearing_entries: int
    matched_clearing_entries: int
    unmatched_clearing_entries: int
    ready_amount: Decimal
    total_clearing_amount: Decimal


@dataclass
class MedicareReconciliationResult:
    batch_matches: list[MedicareBatchMatch]
    unmatched_deposits: list[BankDeposit]
    unmatched_clearing: list[ClearingTransaction]
    clearing_balance: Decimal
    stats: MedicareStats
    halaxy_payment_count: int | None = None
    halaxy_payment_total: Decimal | None = None


@dataclass
class SyncGaps:
    missing_from_xero: list[HalaxyPayment] = field(default_factory=list)
    not_from_halaxy: list[ClearingTransaction] = field(default_factory=list)


@dataclass
class ClearingSummary:
    """Legacy subset-sum summary of a date range."""

    date: str
    from_date: str
    to_date: str
    tolerance_cents: int
    deposits: list[DepositMatch]
    unmatched_deposits: list[BankDeposit]
    unmatched_clearing: list[ClearingTransaction]
    halaxy_enriched: bool = False
    sync_gaps: SyncGaps | None = None


@dataclass
class GuidePayment:
    id: str
    date: str
    invoice_number: str
    patient_name: str
    amount: Decimal
    method: str
    type: str
    estimated_fee: Decimal
    expected_deposit: Decimal


@dataclass
class GuideDayTotals:
    braintree: Decimal = Decimal("0")
    braintree_fees: Decimal = Decimal("0")
    braintree_net: Decimal = Decimal("0")
    medicare: Decimal = Decimal("0")
    other: Decimal = Decimal("0")
    day_total: Decimal = Decimal("0")


@dataclass
class GuideDaySummary:
    date: str
    payments: list[GuidePayment]
    totals: GuideDayTotals


@dataclass
class GuideGrandTotals:
    payments: Decimal = Decimal("0")
    braintree_count: int = 0
    braintree_amount: Decimal = Decimal("0")
    medicare_count: int = 0
    medicare_amount: Decimal = Decimal("0")
    other_count: int = 0
    other_amount: Decimal = Decimal("0")
    estimated_fees: Decimal = Decimal("0")


@dataclass
class ReconciliationGuide:
    """Per-day fee calculator: what each day's payments should deposit."""

    from_date: str
    to_date: str
    days: list[GuideDaySummary]
    grand_totals: GuideGrandTotals
    payment_count: int


@dataclass
class ClearingReportSummary:
    total_matched: int
    exact: int
    fee_adjusted: int
    matched_total: Decimal
    unmatched_deposits: int
    unmatched_clearing: int
