"""Budget tracker types. Money is integer cents throughout."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Frequency(str, Enum):
    WEEKLY = "weekly"
    FORTNIGHTLY = "fortnightly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    ANNUALLY = "annually"


class PayoffStrategy(str, Enum):
    SNOWBALL = "snowball"
    AVALANCHE = "avalanche"


@dataclass
class SyncResponse:
    categories: int
    accounts: int
    transactions: int
    synced_at: str


@dataclass
class CategoryRule:
    """Maps descriptions containing ``pattern`` to a category."""

    id: str
    pattern: str
    category_up_id: str
    merchant_label: str | None = None
    is_active: bool = True

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "CategoryRule":
        return cls(
            id=str(row.get("id") or ""),
            pattern=row.get("pattern") or "",
            category_up_id=row.get("category_up_id") or "",
            merchant_label=row.get("merchant_label"),
            is_active=bool(row.get("is_active", True)),
        )


@dataclass
class RuleAssignment:
    transaction_up_id: str
    category_up_id: str
    rule_id: str


@dataclass
class CategorySpend:
    effective_id: str
    name: str
    parent_up_id: str | None
    parent_name: str | None
    total_spent_cents: int
    transaction_count: int
    monthly_limit_cents: int | None


@dataclass
class RecurringItem:
    name: str
    type: str
    amount_cents: int
    frequency: Frequency
    next_due_date: str | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "RecurringItem":
        return cls(
            name=row.get("name") or "",
            type=row.get("type") or "expense",
            amount_cents=int(row.get("amount_cents") or 0),
            frequency=Frequency(row.get("frequency") or "monthly"),
            next_due_date=row.get("next_due_date"),
        )


@dataclass
class Debt:
    lender: str
    balance_cents: int
    interest_rate: float
    min_payment_cents: int
    payment_frequency: Frequency = Frequency.MONTHLY
    compounding: str = "monthly"
    due_day: int | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Debt":
        return cls(
            lender=row.get("lender") or "",
            balance_cents=int(row.get("balance_cents") or 0),
            interest_rate=float(row.get("interest_rate") or 0),
            min_payment_cents=int(row.get("min_payment_cents") or 0),
            payment_frequency=Frequency(row.get("payment_frequency") or "monthly"),
            compounding=row.get("compounding") or "monthly",
            due_day=row.get("due_day"),
        )


@dataclass
class CashFlowEvent:
    date: str
    label: str
    amount: int
    type: str


@dataclass
class DayProjection:
    date: str
    balance: int
    events: list[CashFlowEvent]


@dataclass
class CashFlowAlert:
    date: str
    balance: int
    message: str


@dataclass
class CashFlowProjection:
    projections: list[DayProjection]
    alerts: list[CashFlowAlert]
    starting_balance: int


@dataclass
class PayoffEntry:
    lender: str
    month: int
    total_paid: int


@dataclass
class DebtPayment:
    lender: str
    payment: int
    interest: int
    balance: int


@dataclass
class MonthlyBreakdown:
    month: int
    payments: list[DebtPayment]
    total_balance: int


@dataclass
class DebtSimulation:
    strategy: PayoffStrategy
    total_months: int
    total_interest_paid: int
    payoff_order: list[PayoffEntry] = field(default_factory=list)
    monthly_breakdown: list[MonthlyBreakdown] = field(default_factory=list)
