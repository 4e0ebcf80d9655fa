"""Business expense identification over personal bank debits.

Rules match descriptions word by word; a manual flag on a transaction
always beats the rules.
"""

import asyncio
from datetime import date
from typing import Any

import structlog

from finops.operations.validation import InvalidRequestError
from finops.store import PostgrestStore, StoreError

logger = structlog.get_logger(__name__)

RULES_TABLE = "business_expense_rules"
FLAGS_TABLE = "business_expense_flags"
DEFAULT_CATEGORY = "General"
MANUAL_CATEGORY = "Manual"


def match_business_rule(
    description: str | None, rules: list[dict[str, Any]]
) -> dict[str, Any] | None:
    """First rule whose every pattern word appears in the description.

    Patterns may carry SQL ``%`` wildcards, which are ignored. Case is ignored.
    """
    upper = (description or "").upper()
    for rule in rules:
        words = (rule.get("pattern") or "").replace("%", "").split()
        if words and all(word.upper() in upper for word in words):
            return rule
    return None


def is_business_debit(
    txn: dict[str, Any], rules: list[dict[str, Any]], flags: dict[str, bool]
) -> tuple[bool, dict[str, Any] | None]:
    """Whether a debit counts as business, and the rule that matched it (if any)."""
    rule = match_business_rule(txn.get("description"), rules)
    flag = flags.get(txn["up_id"])
    return (flag if flag is not None else rule is not None), rule


def identify_business_expenses(
    transactions: list[dict[str, Any]],
    rules: list[dict[str, Any]],
    flags: list[dict[str, Any]],
) -> tuple[list[dict[str, Any]], dict[str, Any]]:
    """Debits that a rule or a flag touches, plus a summary of the business ones."""
    active = [r for r in rules if r.get("is_active", True)]
    flag_map = {f["transaction_up_id"]: f for f in flags}

    matched = []
    totals: dict[str, int] = {}
    for txn in transactions:
        rule = match_business_rule(txn.get("description"), active)
        flag = flag_map.get(txn["up_id"])
        if rule is None and flag is None:
            continue

        is_business = bool(flag["is_business"]) if flag is not None else True
        category = rule["category"] if rule else MANUAL_CATEGORY
        matched.append(
            {
                "up_id": txn["up_id"],
                "description": txn.get("description"),
                "amount_cents": txn.get("amount_cents"),
                "settled_at": txn.get("settled_at"),
                "matched_rule": rule["merchant_name"] if rule else None,
                "matched_category": category,
                "is_business": is_business,
                "flag_override": flag is not None,
                "notes": flag.get("notes") if flag else None,
            }
        )
        if is_business:
            totals[category] = totals.get(category, 0) + abs(int(txn.get("amount_cents") or 0))

    business = [m for m in matched if m["is_business"]]
    summary = {
        "total_identified_cents": sum(abs(int(m["amount_cents"] or 0)) for m in business),
        "transaction_count": len(business),
        "categories": [
            {"category": category, "total_cents": cents}
            for category, cents in sorted(totals.items(), key=lambda kv: kv[1], reverse=True)
        ],
    }
    return matched, summary


def _iso_date(value: str, name: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError as e:
        raise InvalidRequestError(f"{name} must be YYYY-MM-DD", name) from e


class BusinessExpenseService:
    """Rules in ``business_expense_rules`` and per-transaction flags."""

    def __init__(self, store: PostgrestStore):
        self.store = store

    async def list_rules(self) -> list[dict[str, Any]]:
        return await self.store.select(
            RULES_TABLE,
            columns="id,pattern,merchant_name,category,is_active",
            order="category.asc,merchant_name.asc",
        )

    async def report(
        self, from_date: str | None = None, to_date: str | None = None, today: date | None = None
    ) -> dict[str, Any]:
        """Business debits between two dates, inclusive. Defaults to year to date."""
        today = today or date.today()
        start = _iso_date(from_date, "from") if from_date else date(today.year, 1, 1)
        end = _iso_date(to_date, "to") if to_date else today

        rules, transactions, flags = await asyncio.gather(
            self.list_rules(),
            self.store.select(
                "up_transactions",
                columns="up_id,description,amount_cents,settled_at",
                filters=[
                    ("settled_at", f"gte.{start.isoformat()}"),
                    ("settled_at", f"lte.{end.isoformat()}T23:59:59.999Z"),
                    ("status", "eq.SETTLED"),
                    ("amount_cents", "lt.0"),
                ],
                order="settled_at.desc",
            ),
            self.store.select(FLAGS_TABLE, columns="transaction_up_id,is_business,notes"),
        )
        matched, summary = identify_business_expenses(transactions, rules, flags)
        logger.info(
            "business_expenses_identified",
            matched=len(matched),
            business=summary["transaction_count"],
        )
        return {
            "period": {"from": start.isoformat(), "to": end.isoformat()},
            "rules": rules,
            "transactions": matched,
            "summary": summary,
        }

    async def flag(
        self, transaction_up_id: str | None, is_business: bool | None, notes: str | None = None
    ) -> None:
        if not transaction_up_id or not isinstance(is_business, bool):
            raise InvalidRequestError(
                "transactionUpId (string) and isBusiness (boolean) are required"
            )
        await self.store.upsert(
            FLAGS_TABLE,
            [{"transaction_up_id": transaction_up_id, "is_business": is_business, "notes": notes}],
            on_conflict="transaction_up_id",
        )

    async def add_rule(
        self, pattern: str | None, merchant_name: str | None, category: str | None = None
    ) -> dict[str, Any]:
        if not pattern or not merchant_name:
            raise InvalidRequestError("pattern and merchant_name are required")
        rows = await self.store.insert(
            RULES_TABLE,
            {
                "pattern": pattern,
                "merchant_name": merchant_name,
                "category": category or DEFAULT_CATEGORY,
            },
        )
        if not rows:
            raise StoreError(f"{RULES_TABLE} insert returned no row")
        return rows[0]
