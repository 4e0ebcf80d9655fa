"""Household tax-planning summary over the last few complete months.

Income is recognised from salary credits whose description contains
TAX_INCOME_PATTERN. Deposits at or above TAX_INCOME_SPLIT_CENTS belong to
the primary earner and the rest to the secondary earner; each deposit is
treated as one week's pay.
"""

import asyncio
from datetime import date
from typing import Any

import structlog

from finops.budget.business import DEFAULT_CATEGORY, FLAGS_TABLE, RULES_TABLE, is_business_debit
from finops.budget.spend import UNCATEGORISED
from finops.config import get_settings, require_setting
from finops.store import PostgrestStore

logger = structlog.get_logger(__name__)

WEEKS_PER_MONTH = 52 / 12
DEFAULT_MONTHS = 3
MAX_MONTHS = 12


def report_period(today: date, months: int) -> tuple[date, date]:
    """First day of the month ``months`` back, and first day of the current month."""
    end = date(today.year, today.month, 1)
    index = end.year * 12 + end.month - 1 - months
    return date(index // 12, index % 12 + 1, 1), end


def parse_months(value: str | int | None) -> int:
    try:
        months = int(value) if value is not None else DEFAULT_MONTHS
    except (TypeError, ValueError):
        months = DEFAULT_MONTHS
    return min(max(months or DEFAULT_MONTHS, 1), MAX_MONTHS)


def earner_income(deposits: list[int]) -> dict[str, int]:
    weekly = sum(deposits) / len(deposits) if deposits else 0
    return {
        "weekly": round(weekly),
        "monthly": round(weekly * WEEKS_PER_MONTH),
        "annual": round(weekly * 52),
    }


def _sorted_averages(totals: dict[str, int], months: int, key: str) -> list[dict[str, Any]]:
    return [
        {key: name, "monthly_average": round(cents / months)}
        for name, cents in sorted(totals.items(), key=lambda kv: kv[1], reverse=True)
    ]


def build_tax_report(
    income: list[dict[str, Any]],
    debits: list[dict[str, Any]],
    categories: list[dict[str, Any]],
    rules: list[dict[str, Any]],
    flags: list[dict[str, Any]],
    months: int,
    split_cents: int,
) -> dict[str, Any]:
    """Average monthly income, personal spend and business spend.

    Business debits are left out of personal spend. Personal spend is
    grouped by override, then parent category, then category.
    """
    primary = [int(t["amount_cents"]) for t in income if int(t["amount_cents"]) >= split_cents]
    secondary = [int(t["amount_cents"]) for t in income if int(t["amount_cents"]) < split_cents]
    primary_income = earner_income(primary)
    secondary_income = earner_income(secondary)
    weekly_total = (sum(primary) / len(primary) if primary else 0) + (
        sum(secondary) / len(secondary) if secondary else 0
    )
    monthly_income = round(weekly_total * WEEKS_PER_MONTH)

    names = {c["up_id"]: c.get("name") for c in categories}
    flag_map = {f["transaction_up_id"]: bool(f["is_business"]) for f in flags}
    personal: dict[str, int] = {}
    business: dict[str, int] = {}
    for txn in debits:
        cents = abs(int(txn.get("amount_cents") or 0))
        is_business, rule = is_business_debit(txn, rules, flag_map)
        if is_business:
            category = rule["category"] if rule else DEFAULT_CATEGORY
            business[category] = business.get(category, 0) + cents
            continue
        category_id = (
            txn.get("category_override")
            or txn.get("parent_category_up_id")
            or txn.get("category_up_id")
            or UNCATEGORISED
        )
        name = names.get(category_id) or "Uncategorised"
        personal[name] = personal.get(name, 0) + cents

    expense_categories = _sorted_averages(personal, months, "name")
    monthly_expenses = sum(c["monthly_average"] for c in expense_categories)
    business_savings = round(sum(business.values()) / months)
    monthly_surplus = monthly_income - monthly_expenses

    return {
        "income": {
            "primary": primary_income,
            "secondary": secondary_income,
            "total_monthly": monthly_income,
            "total_annual": round(weekly_total * 52),
        },
        "expenses": {"categories": expense_categories, "total_monthly": monthly_expenses},
        "business_expenses": {
            "total_monthly": business_savings,
            "categories": _sorted_averages(business, months, "category"),
        },
        "summary": {
            "monthly_income": monthly_income,
            "monthly_expenses": monthly_expenses,
            "business_expense_savings": business_savings,
            "monthly_surplus": monthly_surplus,
            "weekly_surplus": round(monthly_surplus * 12 / 52),
        },
    }


async def load_tax_report(
    store: PostgrestStore, months: str | int | None = None, today: date | None = None
) -> dict[str, Any]:
    settings = get_settings()
    pattern = require_setting(settings.tax_income_pattern, "TAX_INCOME_PATTERN", "tax report")
    months = parse_months(months)
    start, end = report_period(today or date.today(), months)
    window = [("settled_at", f"gte.{start.isoformat()}"), ("settled_at", f"lt.{end.isoformat()}")]

    income, debits, categories, rules, flags = await asyncio.gather(
        store.select(
            "up_transactions",
            columns="description,amount_cents,settled_at",
            filters=[
                *window,
                ("status", "eq.SETTLED"),
                ("amount_cents", "gt.0"),
                ("description", f"ilike.*{pattern}*"),
            ],
            order="settled_at.asc",
        ),
        store.select(
            "up_transactions",
            columns=(
                "up_id,description,amount_cents,"
                "category_up_id,parent_category_up_id,category_override"
            ),
            filters=[*window, ("status", "eq.SETTLED"), ("amount_cents", "lt.0")],
        ),
        store.select("up_categories", columns="up_id,name,parent_up_id"),
        store.select(
            RULES_TABLE, columns="pattern,merchant_name,category", filters=[("is_active", "eq.true")]
        ),
        store.select(FLAGS_TABLE, columns="transaction_up_id,is_business"),
    )

    report = build_tax_report(
        income, debits, categories, rules, flags, months, settings.tax_income_split_cents
    )
    logger.info(
        "tax_report_built",
        months=months,
        deposits=len(income),
        monthly_surplus=report["summary"]["monthly_surplus"],
    )
    return {
        "period": {"from": start.isoformat(), "to": end.isoformat(), "months": months},
        **report,
    }
