"""Envelope budgets: named groups of categories with a monthly allocation."""

from typing import Any

import structlog

from finops.budget.records import utc_now_iso
from finops.budget.spend import MONTH_PATTERN, effective_category, month_range
from finops.operations.validation import InvalidRequestError
from finops.store import PostgrestStore, StoreError

logger = structlog.get_logger(__name__)

ENVELOPES_TABLE = "budget_envelopes"
ENVELOPE_CATEGORIES_TABLE = "budget_envelope_categories"
DEFAULT_COLOUR = "#64748b"
UPDATABLE_FIELDS = ("name", "sort_order", "monthly_allocation_cents", "colour", "is_active")


def envelope_spend(
    envelopes: list[dict[str, Any]], transactions: list[dict[str, Any]]
) -> list[dict[str, Any]]:
    """Shape envelope rows and total the debits falling in each one's categories.

    A category belongs to at most one envelope; when two claim it, the later
    envelope in sort order wins.
    """
    owner: dict[str, Any] = {}
    for env in envelopes:
        for link in env.get(ENVELOPE_CATEGORIES_TABLE) or []:
            owner[link["category_up_id"]] = env["id"]

    spent: dict[Any, int] = {}
    for txn in transactions:
        env_id = owner.get(effective_category(txn))
        if env_id is not None:
            spent[env_id] = spent.get(env_id, 0) + abs(int(txn.get("amount_cents") or 0))

    return [
        {
            "id": env["id"],
            "name": env.get("name"),
            "sort_order": env.get("sort_order"),
            "monthly_allocation_cents": env.get("monthly_allocation_cents"),
            "colour": env.get("colour"),
            "categories": [
                link["category_up_id"] for link in env.get(ENVELOPE_CATEGORIES_TABLE) or []
            ],
            "actual_spend_cents": spent.get(env["id"], 0),
        }
        for env in envelopes
    ]


class EnvelopeService:
    """Envelopes in ``budget_envelopes`` with their category links. Deletes are soft."""

    def __init__(self, store: PostgrestStore):
        self.store = store

    async def list_envelopes(self, month: str | None = None) -> list[dict[str, Any]]:
        """Active envelopes. Spend is filled in only for a well-formed ``month``."""
        envelopes = await self.store.select(
            ENVELOPES_TABLE,
            columns=f"*,{ENVELOPE_CATEGORIES_TABLE}(category_up_id)",
            filters=[("is_active", "eq.true")],
            order="sort_order.asc",
        )
        transactions: list[dict[str, Any]] = []
        if month and MONTH_PATTERN.match(month):
            start, end = month_range(month)
            transactions = await self.store.select(
                "up_transactions",
                columns="amount_cents,category_up_id,category_override",
                filters=[
                    ("settled_at", f"gte.{start}"),
                    ("settled_at", f"lt.{end}"),
                    ("status", "eq.SETTLED"),
                    ("amount_cents", "lt.0"),
                ],
            )
        return envelope_spend(envelopes, transactions)

    async def _link_categories(self, envelope_id: str, categories: list[str]) -> None:
        if categories:
            await self.store.insert(
                ENVELOPE_CATEGORIES_TABLE,
                [{"envelope_id": envelope_id, "category_up_id": c} for c in categories],
            )

    async def create(
        self,
        name: str | None,
        sort_order: int | None = None,
        monthly_allocation_cents: int | None = None,
        colour: str | None = None,
        categories: list[str] | None = None,
    ) -> dict[str, Any]:
        if not name:
            raise InvalidRequestError("name required", "name")
        rows = await self.store.insert(
            ENVELOPES_TABLE,
            {
                "name": name,
                "sort_order": sort_order or 0,
                "monthly_allocation_cents": monthly_allocation_cents or 0,
                "colour": colour or DEFAULT_COLOUR,
            },
        )
        if not rows:
            raise StoreError(f"{ENVELOPES_TABLE} insert returned no row")
        envelope = rows[0]
        await self._link_categories(envelope["id"], categories or [])
        logger.info("envelope_created", id=envelope["id"], categories=len(categories or []))
        return envelope

    async def update(
        self,
        envelope_id: str | None,
        changes: dict[str, Any],
        categories: list[str] | None = None,
    ) -> dict[str, Any]:
        """Patch an envelope. A ``categories`` list replaces its links outright."""
        if not envelope_id:
            raise InvalidRequestError("id required", "id")
        values = {k: v for k, v in changes.items() if k in UPDATABLE_FIELDS}
        values["updated_at"] = utc_now_iso()
        rows = await self.store.update(ENVELOPES_TABLE, values, [("id", f"eq.{envelope_id}")])
        if not rows:
            raise StoreError(f"Envelope {envelope_id} not found", status_code=404)

        if categories is not None:
            await self.store.delete(
                ENVELOPE_CATEGORIES_TABLE, [("envelope_id", f"eq.{envelope_id}")]
            )
            await self._link_categories(envelope_id, categories)
        return rows[0]

    async def deactivate(self, envelope_id: str | None) -> None:
        if not envelope_id:
            raise InvalidRequestError("id required", "id")
        await self.store.update(
            ENVELOPES_TABLE,
            {"is_active": False, "updated_at": utc_now_iso()},
            [("id", f"eq.{envelope_id}")],
        )
