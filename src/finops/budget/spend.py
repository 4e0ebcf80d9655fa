"""Monthly transaction listing and category spend aggregation."""

import re
from datetime import date
from typing import Any

from finops.budget.models import CategorySpend
from finops.operations.validation import InvalidRequestError
from finops.store import PostgrestStore

UNCATEGORISED = "uncategorised"
MONTH_PATTERN = re.compile(r"^\d{4}-\d{2}$")


def month_range(month: str | None) -> tuple[str, str]:
    """First day of ``month`` and first day of the following month, as ISO dates."""
    if not month or not MONTH_PATTERN.match(month):
        raise InvalidRequestError("month param required (YYYY-MM)", "month")
    year, mo = (int(part) for part in month.split("-"))
    if not 1 <= mo <= 12:
        raise InvalidRequestError("month param required (YYYY-MM)", "month")
    start = date(year, mo, 1)
    end = date(year + 1, 1, 1) if mo == 12 else date(year, mo + 1, 1)
    return start.isoformat(), end.isoformat()


def effective_category(txn: dict[str, Any]) -> str:
    return txn.get("category_override") or txn.get("category_up_id") or UNCATEGORISED


async def list_month_transactions(store: PostgrestStore, month: str | None) -> list[dict[str, Any]]:
    """Settled transactions in a month, newest first, with category names attached."""
    start, end = month_range(month)
    transactions = await store.select(
        "up_transactions",
        filters=[
            ("settled_at", f"gte.{start}"),
            ("settled_at", f"lt.{end}"),
            ("status", "eq.SETTLED"),
        ],
        order="settled_at.desc",
    )
    categories = await store.select("up_categories", columns="up_id,name,parent_up_id")
    by_id = {c["up_id"]: c for c in categories}

    enriched = []
    for txn in transactions:
        category_id = txn.get("category_override") or txn.get("category_up_id")
        category = by_id.get(category_id) if category_id else None
        parent = by_id.get(category.get("parent_up_id")) if category else None
        enriched.append(
            {
                **txn,
                "effective_category_id": category_id,
                "category_name": category["name"] if category else None,
                "parent_category_name": parent["name"] if parent else None,
            }
        )
    return enriched


def category_spend(
    transactions: list[dict[str, Any]],
    categories: list[dict[str, Any]],
    limits: dict[str, int] | None = None,
) -> list[CategorySpend]:
    """Aggregate settled debits by effective category, biggest spend first."""
    by_id = {c["up_id"]: c for c in categories}
    limits = limits or {}
    totals: dict[str, list[int]] = {}

    for txn in transactions:
        amount = int(txn.get("amount_cents") or 0)
        if amount >= 0 or txn.get("status", "SETTLED") != "SETTLED":
            continue
        bucket = totals.setdefault(effective_category(txn), [0, 0])
        bucket[0] += -amount
        bucket[1] += 1

    spend = []
    for category_id, (total, count) in totals.items():
        category = by_id.get(category_id) or {}
        parent_id = category.get("parent_up_id")
        parent = by_id.get(parent_id) if parent_id else None
        spend.append(
            CategorySpend(
                effective_id=category_id,
                name=category.get("name") or "Uncategorised",
                parent_up_id=parent_id,
                parent_name=parent["name"] if parent else None,
                total_spent_cents=total,
                transaction_count=count,
                monthly_limit_cents=limits.get(category_id),
            )
        )
    spend.sort(key=lambda s: s.total_spent_cents, reverse=True)
    return spend


async def month_debit_total(store: PostgrestStore, month: str) -> tuple[int, int]:
    """Total settled debits in a month, and how many there were."""
    start, end = month_range(month)
    rows = await store.select(
        "up_transactions",
        columns="amount_cents",
        filters=[
            ("settled_at", f"gte.{start}"),
            ("settled_at", f"lt.{end}"),
            ("status", "eq.SETTLED"),
            ("amount_cents", "lt.0"),
        ],
    )
    return sum(abs(int(r["amount_cents"])) for r in rows), len(rows)
