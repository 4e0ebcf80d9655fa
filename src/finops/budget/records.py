"""Editable budget tables: recurring items, debts and category limits."""

from datetime import UTC, datetime
from typing import Any

import structlog

from finops.operations.validation import InvalidRequestError
from finops.store import PostgrestStore, StoreError

logger = structlog.get_logger(__name__)


def utc_now_iso() -> str:
    return datetime.now(UTC).isoformat()


class RecordTable:
    """Active rows of a table with soft deletes.

    Creates fill absent fields from ``defaults``. Updates only touch the
    fields a caller sent, and stamp ``updated_at``.
    """

    def __init__(
        self,
        store: PostgrestStore,
        table: str,
        defaults: dict[str, Any],
        order: str,
        required: tuple[str, ...] = ("name",),
    ):
        self.store = store
        self.table = table
        self.defaults = defaults
        self.order = order
        self.required = required

    async def list_active(self) -> list[dict[str, Any]]:
        return await self.store.select(
            self.table, filters=[("is_active", "eq.true")], order=self.order
        )

    async def create(self, values: dict[str, Any]) -> dict[str, Any]:
        missing = [f for f in self.required if not values.get(f)]
        if missing:
            raise InvalidRequestError(f"{' and '.join(missing)} required", missing[0])
        row = {
            field: values[field] if values.get(field) is not None else default
            for field, default in self.defaults.items()
        }
        for field in self.required:
            row[field] = values[field]
        rows = await self.store.insert(self.table, row)
        if not rows:
            raise StoreError(f"{self.table} insert returned no row")
        logger.info("budget_record_created", table=self.table, id=rows[0].get("id"))
        return rows[0]

    async def update(self, record_id: str | None, changes: dict[str, Any]) -> dict[str, Any]:
        if not record_id:
            raise InvalidRequestError("id required", "id")
        values = {k: v for k, v in changes.items() if k in self.defaults or k in self.required}
        values["updated_at"] = utc_now_iso()
        rows = await self.store.update(self.table, values, [("id", f"eq.{record_id}")])
        if not rows:
            raise StoreError(f"{self.table} row {record_id} not found", status_code=404)
        return rows[0]

    async def deactivate(self, record_id: str | None) -> None:
        if not record_id:
            raise InvalidRequestError("id required", "id")
        await self.store.update(
            self.table,
            {"is_active": False, "updated_at": utc_now_iso()},
            [("id", f"eq.{record_id}")],
        )
        logger.info("budget_record_deactivated", table=self.table, id=record_id)


def recurring_table(store: PostgrestStore) -> RecordTable:
    return RecordTable(
        store,
        "recurring_items",
        defaults={
            "type": "expense",
            "amount_cents": 0,
            "frequency": "monthly",
            "category_up_id": None,
            "account_up_id": None,
            "next_due_date": None,
            "is_active": True,
            "notes": None,
        },
        order="type.asc,name.asc",
    )


def debt_table(store: PostgrestStore) -> RecordTable:
    return RecordTable(
        store,
        "debts",
        defaults={
            "lender": None,
            "balance_cents": 0,
            "interest_rate": 0,
            "compounding": "monthly",
            "min_payment_cents": 0,
            "payment_frequency": "monthly",
            "due_day": None,
            "priority": 0,
            "account_up_id": None,
            "is_active": True,
            "notes": None,
        },
        order="priority.asc,balance_cents.desc",
    )


class BudgetLimits:
    """Monthly spending limits, one row per category."""

    TABLE = "budget_limits"

    def __init__(self, store: PostgrestStore):
        self.store = store

    async def list_limits(self) -> list[dict[str, Any]]:
        return await self.store.select(self.TABLE, order="category_up_id.asc")

    async def set_limit(
        self, category_up_id: str | None, monthly_limit_cents: int | None
    ) -> dict[str, Any]:
        if not category_up_id or monthly_limit_cents is None:
            raise InvalidRequestError("categoryUpId and monthlyLimitCents required")
        rows = await self.store.upsert(
            self.TABLE,
            [
                {
                    "category_up_id": category_up_id,
                    "monthly_limit_cents": monthly_limit_cents,
                    "updated_at": utc_now_iso(),
                }
            ],
            on_conflict="category_up_id",
            returning=True,
        )
        if not rows:
            raise StoreError(f"{self.TABLE} upsert returned no row")
        return rows[0]
