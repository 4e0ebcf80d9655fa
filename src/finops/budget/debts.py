"""Month-by-month debt payoff simulation (snowball or avalanche)."""

import math
from dataclasses import dataclass

from finops.budget.models import (
    Debt,
    DebtPayment,
    DebtSimulation,
    Frequency,
    MonthlyBreakdown,
    PayoffEntry,
    PayoffStrategy,
)

MAX_MONTHS = 600
BREAKDOWN_MONTHS = 24
DAYS_PER_MONTH = 30.44


def _round(value: float) -> int:
    # half-up
    return math.floor(value + 0.5)


@dataclass
class _MonthlyDebt:
    lender: str
    balance: int
    rate: float
    min_payment: int


def monthly_rate(annual_percent: float, compounding: str) -> float:
    if annual_percent <= 0:
        return 0.0
    if compounding == "daily":
        return (1 + annual_percent / 100 / 365) ** DAYS_PER_MONTH - 1
    return annual_percent / 100 / 12


def monthly_minimum(debt: Debt) -> int:
    if debt.payment_frequency is Frequency.WEEKLY:
        return _round(debt.min_payment_cents * 52 / 12)
    if debt.payment_frequency is Frequency.FORTNIGHTLY:
        return _round(debt.min_payment_cents * 26 / 12)
    return debt.min_payment_cents


def simulate_debt_payoff(
    debts: list[Debt],
    strategy: PayoffStrategy | str = PayoffStrategy.AVALANCHE,
    extra_cents: int = 0,
) -> DebtSimulation:
    """Simulate repayments until every balance is cleared or 600 months pass.

    Each month interest accrues, minimums are paid, then ``extra_cents``
    goes to the target debt: smallest balance first for snowball, highest
    rate first for avalanche. Minimums freed by debts cleared this month
    roll on to the next target. Only the first 24 months of the breakdown
    are returned.
    """
    strategy = PayoffStrategy(strategy)
    if not debts:
        return DebtSimulation(strategy=strategy, total_months=0, total_interest_paid=0)

    state = [
        _MonthlyDebt(
            d.lender,
            d.balance_cents,
            monthly_rate(d.interest_rate, d.compounding),
            monthly_minimum(d),
        )
        for d in debts
    ]
    total_paid = [0] * len(state)
    total_interest = 0
    payoff_order: list[PayoffEntry] = []
    paid_off: set[int] = set()
    breakdown: list[MonthlyBreakdown] = []

    def pay(i: int, amount: int) -> int:
        payment = min(amount, state[i].balance)
        state[i].balance -= payment
        total_paid[i] += payment
        return payment

    for month in range(1, MAX_MONTHS + 1):
        for debt in state:
            if debt.balance > 0:
                interest = _round(debt.balance * debt.rate)
                debt.balance += interest
                total_interest += interest

        for i, debt in enumerate(state):
            if debt.balance > 0:
                pay(i, debt.min_payment)

        remaining = extra_cents
        if remaining > 0:
            active = [i for i, d in enumerate(state) if d.balance > 0]
            if strategy is PayoffStrategy.SNOWBALL:
                active.sort(key=lambda i: state[i].balance)
            else:
                active.sort(key=lambda i: state[i].rate, reverse=True)

            for i in active:
                if remaining <= 0:
                    break
                remaining -= pay(i, remaining)

            for i in active:
                if state[i].balance <= 0:
                    remaining += state[i].min_payment

            for i in active:
                if remaining <= 0:
                    break
                if state[i].balance > 0:
                    remaining -= pay(i, remaining)

        payments = [
            DebtPayment(
                lender=d.lender,
                payment=total_paid[i],
                interest=_round(d.balance * d.rate),
                balance=max(0, d.balance),
            )
            for i, d in enumerate(state)
        ]
        total_balance = sum(max(0, d.balance) for d in state)
        breakdown.append(MonthlyBreakdown(month, payments, total_balance))

        for i, debt in enumerate(state):
            if debt.balance <= 0 and i not in paid_off:
                paid_off.add(i)
                payoff_order.append(PayoffEntry(debt.lender, month, total_paid[i]))

        if total_balance <= 0:
            return DebtSimulation(
                strategy=strategy,
                total_months=month,
                total_interest_paid=total_interest,
                payoff_order=payoff_order,
                monthly_breakdown=breakdown[:BREAKDOWN_MONTHS],
            )

    return DebtSimulation(
        strategy=strategy,
        total_months=MAX_MONTHS,
        total_interest_paid=total_interest,
        payoff_order=payoff_order,
        monthly_breakdown=breakdown[:BREAKDOWN_MONTHS],
    )
