"""Day-by-day balance projection from recurring items and debt repayments."""

import calendar
from datetime import date, timedelta

from finops.budget.models import (
    CashFlowAlert,
    CashFlowEvent,
    CashFlowProjection,
    DayProjection,
    Debt,
    Frequency,
    RecurringItem,
)

DEFAULT_WEEKS = 8
MAX_WEEKS = 52
LOW_BALANCE_CENTS = 50_000
_MONTH_STEPS = {Frequency.MONTHLY: 1, Frequency.QUARTERLY: 3, Frequency.ANNUALLY: 12}


def clamp_weeks(weeks: int | str | None) -> int:
    try:
        value = int(weeks) if weeks not in (None, "") else DEFAULT_WEEKS
    except (TypeError, ValueError):
        value = DEFAULT_WEEKS
    return min(max(value or DEFAULT_WEEKS, 1), MAX_WEEKS)


def _add_months(day: date, months: int) -> date:
    index = day.month - 1 + months
    year, month = day.year + index // 12, index % 12 + 1
    return date(year, month, min(day.day, calendar.monthrange(year, month)[1]))


def advance(day: date, frequency: Frequency) -> date:
    """The next occurrence after ``day``. Month-end days clamp to the shorter month."""
    if frequency is Frequency.WEEKLY:
        return day + timedelta(days=7)
    if frequency is Frequency.FORTNIGHTLY:
        return day + timedelta(days=14)
    return _add_months(day, _MONTH_STEPS[frequency])


def occurrences(first: date, frequency: Frequency, start: date, end: date) -> list[date]:
    current = first
    while current < start:
        current = advance(current, frequency)
    found = []
    while current <= end:
        found.append(current)
        current = advance(current, frequency)
    return found


def first_debt_due(debt: Debt, today: date) -> date:
    if debt.due_day:
        last_day = calendar.monthrange(today.year, today.month)[1]
        due = date(today.year, today.month, min(debt.due_day, last_day))
        return advance(due, debt.payment_frequency) if due < today else due
    return advance(today, debt.payment_frequency)


def project_cash_flow(
    balance_cents: int,
    recurring: list[RecurringItem],
    debts: list[Debt],
    today: date,
    weeks: int | str | None = DEFAULT_WEEKS,
) -> CashFlowProjection:
    """Project the combined balance forward ``weeks`` weeks from ``today``.

    Income adds to the balance; expenses and debt minimums subtract. An
    alert is raised for each day with activity that ends below $500.
    """
    end = today + timedelta(days=clamp_weeks(weeks) * 7)
    events: list[CashFlowEvent] = []

    for item in recurring:
        first = date.fromisoformat(item.next_due_date[:10]) if item.next_due_date else today
        amount = item.amount_cents if item.type == "income" else -item.amount_cents
        for day in occurrences(first, item.frequency, today, end):
            events.append(CashFlowEvent(day.isoformat(), item.name, amount, item.type))

    for debt in debts:
        first = first_debt_due(debt, today)
        for day in occurrences(first, debt.payment_frequency, today, end):
            events.append(
                CashFlowEvent(day.isoformat(), f"{debt.lender} payment", -debt.min_payment_cents, "debt")
            )

    by_day: dict[str, list[CashFlowEvent]] = {}
    for event in sorted(events, key=lambda e: e.date):
        by_day.setdefault(event.date, []).append(event)

    projections = []
    alerts = []
    balance = balance_cents
    day = today
    while day <= end:
        key = day.isoformat()
        day_events = by_day.get(key, [])
        balance += sum(e.amount for e in day_events)
        projections.append(DayProjection(key, balance, day_events))
        if balance < LOW_BALANCE_CENTS and day_events:
            alerts.append(CashFlowAlert(key, balance, "Balance drops below $500"))
        day += timedelta(days=1)

    return CashFlowProjection(projections=projections, alerts=alerts, starting_balance=balance_cents)
