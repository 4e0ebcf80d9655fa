"""Sync Up Bank categories, accounts and settled transactions into the store."""

from datetime import UTC, datetime, timedelta
from typing import Any

import structlog

from finops.budget.models import SyncResponse
from finops.store import PostgrestStore
from finops.up import UpClient

logger = structlog.get_logger(__name__)

INITIAL_WINDOW = timedelta(days=90)
OVERLAP = timedelta(hours=1)


def _related_id(resource: dict[str, Any], name: str) -> str | None:
    data = ((resource.get("relationships") or {}).get(name) or {}).get("data")
    return data.get("id") if isinstance(data, dict) else None


def category_row(category: dict[str, Any], synced_at: str) -> dict[str, Any]:
    return {
        "up_id": category["id"],
        "name": (category.get("attributes") or {}).get("name"),
        "parent_up_id": _related_id(category, "parent"),
        "synced_at": synced_at,
    }


def account_row(account: dict[str, Any], synced_at: str) -> dict[str, Any]:
    attributes = account.get("attributes") or {}
    return {
        "up_id": account["id"],
        "display_name": attributes.get("displayName"),
        "account_type": attributes.get("accountType"),
        "ownership_type": attributes.get("ownershipType"),
        "balance_cents": (attributes.get("balance") or {}).get("valueInBaseUnits", 0),
        "synced_at": synced_at,
    }


def transaction_row(txn: dict[str, Any]) -> dict[str, Any]:
    """Row for ``up_transactions``. Leaves ``category_override`` out so upserts keep it."""
    attributes = txn.get("attributes") or {}
    return {
        "up_id": txn["id"],
        "account_up_id": _related_id(txn, "account"),
        "description": attributes.get("description"),
        "message": attributes.get("message"),
        "amount_cents": (attributes.get("amount") or {}).get("valueInBaseUnits", 0),
        "status": attributes.get("status"),
        "category_up_id": _related_id(txn, "category"),
        "parent_category_up_id": _related_id(txn, "parentCategory"),
        "settled_at": attributes.get("settledAt"),
        "created_at": attributes.get("createdAt"),
        "raw_json": txn,
    }


async def sync_window_start(store: PostgrestStore, now: datetime) -> str:
    """Last settled transaction minus an hour, or 90 days back on first sync."""
    rows = await store.select(
        "up_transactions",
        columns="settled_at",
        filters=[("settled_at", "not.is.null")],
        order="settled_at.desc",
        limit=1,
    )
    if rows and rows[0].get("settled_at"):
        last = datetime.fromisoformat(rows[0]["settled_at"].replace("Z", "+00:00"))
        return (last - OVERLAP).isoformat()
    return (now - INITIAL_WINDOW).isoformat()


async def sync_budget(
    up: UpClient, store: PostgrestStore, now: datetime | None = None
) -> SyncResponse:
    now = now or datetime.now(UTC)
    synced_at = now.isoformat()

    categories = [category_row(c, synced_at) for c in await up.get_categories()]
    await store.upsert("up_categories", categories, on_conflict="up_id")

    accounts = [account_row(a, synced_at) for a in await up.get_accounts()]
    await store.upsert("up_accounts", accounts, on_conflict="up_id")

    since = await sync_window_start(store, now)
    transactions = [
        transaction_row(t) for t in await up.get_transactions(since=since, status="SETTLED")
    ]
    await store.upsert("up_transactions", transactions, on_conflict="up_id")

    logger.info(
        "budget_synced",
        categories=len(categories),
        accounts=len(accounts),
        transactions=len(transactions),
        since=since,
    )
    return SyncResponse(
        categories=len(categories),
        accounts=len(accounts),
        transactions=len(transactions),
        synced_at=datetime.now(UTC).isoformat(),
    )
