"""Store-backed loaders feeding the budget calculations."""

import asyncio
from datetime import date
from typing import Any

from finops.budget.cash_flow import project_cash_flow
from finops.budget.debts import simulate_debt_payoff
from finops.budget.models import (
    CashFlowProjection,
    CategorySpend,
    Debt,
    DebtSimulation,
    PayoffStrategy,
    RecurringItem,
)
from finops.budget.spend import category_spend, month_range
from finops.operations.validation import InvalidRequestError
from finops.store import PostgrestStore


async def get_accounts(store: PostgrestStore) -> list[dict[str, Any]]:
    return await store.select(
        "up_accounts",
        columns="display_name,account_type,balance_cents",
        order="account_type.asc,display_name.asc",
    )


async def list_accounts(store: PostgrestStore) -> list[dict[str, Any]]:
    return await store.select("up_accounts", order="account_type.asc,display_name.asc")


async def get_recurring_items(store: PostgrestStore) -> list[RecurringItem]:
    rows = await store.select("recurring_items", filters=[("is_active", "eq.true")])
    return [RecurringItem.from_row(r) for r in rows]


async def get_active_debts(store: PostgrestStore) -> list[Debt]:
    rows = await store.select(
        "debts", filters=[("is_active", "eq.true"), ("balance_cents", "gt.0")]
    )
    return [Debt.from_row(r) for r in rows]


async def get_budget_limits(store: PostgrestStore) -> dict[str, int]:
    rows = await store.select(
        "budget_limits", columns="category_up_id,monthly_limit_cents", order="category_up_id.asc"
    )
    return {r["category_up_id"]: int(r["monthly_limit_cents"]) for r in rows}


async def get_category_spend(store: PostgrestStore, month: str) -> list[CategorySpend]:
    start, end = month_range(month)
    transactions, categories, limits = await asyncio.gather(
        store.select(
            "up_transactions",
            columns="amount_cents,status,category_up_id,parent_category_up_id,category_override",
            filters=[
                ("settled_at", f"gte.{start}"),
                ("settled_at", f"lt.{end}"),
                ("status", "eq.SETTLED"),
                ("amount_cents", "lt.0"),
            ],
        ),
        store.select("up_categories", columns="up_id,name,parent_up_id"),
        get_budget_limits(store),
    )
    return category_spend(transactions, categories, limits)


async def load_cash_flow(
    store: PostgrestStore, today: date, weeks: int | str | None = None
) -> CashFlowProjection:
    accounts, recurring, debts = await asyncio.gather(
        store.select("up_accounts", columns="balance_cents"),
        get_recurring_items(store),
        get_active_debts(store),
    )
    balance = sum(int(a.get("balance_cents") or 0) for a in accounts)
    return project_cash_flow(balance, recurring, debts, today, weeks)


def parse_strategy(value: str | None) -> PayoffStrategy:
    try:
        return PayoffStrategy(value or PayoffStrategy.AVALANCHE.value)
    except ValueError as e:
        raise InvalidRequestError('strategy must be "snowball" or "avalanche"', "strategy") from e


def parse_extra_cents(value: str | int | None) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


async def load_debt_simulation(
    store: PostgrestStore, strategy: str | None = None, extra_cents: str | int | None = None
) -> DebtSimulation:
    return simulate_debt_payoff(
        await get_active_debts(store), parse_strategy(strategy), parse_extra_cents(extra_cents)
    )
