"""Category mapping rules: CRUD and application to transactions."""

from typing import Any

import structlog

from finops.budget.models import CategoryRule, RuleAssignment
from finops.budget.spend import month_range
from finops.store import PostgrestStore, StoreError

logger = structlog.get_logger(__name__)

RULES_TABLE = "category_mapping_rules"
UPDATABLE_FIELDS = ("pattern", "category_up_id", "merchant_label", "is_active")


def _needle(pattern: str) -> str:
    # Rules may be written as SQL ILIKE patterns
    return pattern.replace("%", "").strip().lower()


def apply_category_rules(
    transactions: list[dict[str, Any]], rules: list[CategoryRule]
) -> list[RuleAssignment]:
    """Category overrides implied by the active rules.

    A rule matches when its pattern appears anywhere in the description,
    ignoring case. The first matching rule wins, and transactions that
    already carry an override are left alone.
    """
    active = [r for r in rules if r.is_active and _needle(r.pattern)]
    assignments = []
    for txn in transactions:
        if txn.get("category_override"):
            continue
        description = (txn.get("description") or "").lower()
        for rule in active:
            if _needle(rule.pattern) in description:
                assignments.append(RuleAssignment(txn["up_id"], rule.category_up_id, rule.id))
                break
    return assignments


class CategoryRuleService:
    """Rules stored in ``category_mapping_rules``. Deletes are soft."""

    def __init__(self, store: PostgrestStore):
        self.store = store

    async def list_rules(self, active_only: bool = False) -> list[dict[str, Any]]:
        filters = [("is_active", "eq.true")] if active_only else []
        return await self.store.select(RULES_TABLE, filters=filters, order="pattern.asc")

    async def create(
        self,
        pattern: str,
        category_up_id: str,
        merchant_label: str | None = None,
        is_active: bool = True,
    ) -> dict[str, Any]:
        rows = await self.store.insert(
            RULES_TABLE,
            {
                "pattern": pattern,
                "category_up_id": category_up_id,
                "merchant_label": merchant_label,
                "is_active": is_active,
            },
        )
        if not rows:
            raise StoreError(f"{RULES_TABLE} insert returned no row")
        return rows[0]

    async def update(self, rule_id: str, changes: dict[str, Any]) -> dict[str, Any]:
        values = {k: v for k, v in changes.items() if k in UPDATABLE_FIELDS}
        rows = await self.store.update(RULES_TABLE, values, [("id", f"eq.{rule_id}")])
        if not rows:
            raise StoreError(f"Rule {rule_id} not found", status_code=404)
        return rows[0]

    async def deactivate(self, rule_id: str) -> None:
        await self.store.update(RULES_TABLE, {"is_active": False}, [("id", f"eq.{rule_id}")])

    async def apply(self, month: str | None = None) -> list[RuleAssignment]:
        """Write overrides for un-overridden transactions, optionally within one month."""
        rules = [CategoryRule.from_row(r) for r in await self.list_rules(active_only=True)]
        filters = [("category_override", "is.null")]
        if month:
            start, end = month_range(month)
            filters += [("settled_at", f"gte.{start}"), ("settled_at", f"lt.{end}")]
        transactions = await self.store.select(
            "up_transactions", columns="up_id,description,category_override", filters=filters
        )

        assignments = apply_category_rules(transactions, rules)
        for assignment in assignments:
            await self.store.update(
                "up_transactions",
                {"category_override": assignment.category_up_id},
                [("up_id", f"eq.{assignment.transaction_up_id}")],
            )
        logger.info("category_rules_applied", month=month, assigned=len(assignments))
        return assignments
