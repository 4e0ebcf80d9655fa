"""Tool executors that bridge LLM tool calls to Xero and the budget store."""

from datetime import date
from typing import Any

import structlog

from finops.assistant.summaries import (
    format_cents,
    summarise_contacts,
    summarise_invoices,
    summarise_organisation,
    summarise_report_rows,
)
from finops.budget.queries import (
    get_accounts,
    get_active_debts,
    get_budget_limits,
    get_category_spend,
    get_recurring_items,
)
from finops.budget.spend import month_debit_total, month_range
from finops.operations.validation import InvalidRequestError
from finops.store import PostgrestStore, StoreError, in_filter
from finops.xero.client import XeroAPIError, XeroClient

logger = structlog.get_logger(__name__)

INVALID_MONTH = "Invalid month format. Use YYYY-MM."


class ToolExecutionError(Exception):
    """Error during tool execution."""

    def __init__(self, tool_name: str, message: str, details: Any = None):
        super().__init__(f"Tool '{tool_name}' failed: {message}")
        self.tool_name = tool_name
        self.details = details


def current_month(today: date | None = None) -> str:
    return (today or date.today()).strftime("%Y-%m")


def month_label(month: str) -> str:
    year, mo = (int(p) for p in month.split("-"))
    return date(year, mo, 1).strftime("%B %Y")


class BaseToolExecutor:
    """Dispatches a tool call to its handler and wraps the outcome."""

    _api_errors: tuple[type[Exception], ...] = ()

    def __init__(self) -> None:
        self._tool_handlers: dict[str, Any] = {}

    @property
    def tool_names(self) -> list[str]:
        return list(self._tool_handlers)

    async def execute(self, tool_name: str, arguments: dict[str, Any]) -> dict[str, Any]:
        """Execute a tool call and return the result."""
        handler = self._tool_handlers.get(tool_name)
        if not handler:
            raise ToolExecutionError(tool_name, f"Unknown tool: {tool_name}")

        logger.info("executing_tool", tool=tool_name, args=arguments)

        try:
            result = await handler(**arguments)
            logger.info("tool_executed", tool=tool_name, success=True)
            return {"success": True, "result": result}
        except self._api_errors as e:
            status = getattr(e, "status_code", None)
            logger.warning("tool_api_error", tool=tool_name, status=status)
            return {"success": False, "error": str(e), "status_code": status}
        except Exception as e:
            logger.exception("tool_execution_error", tool=tool_name)
            return {"success": False, "error": str(e)}


class XeroToolExecutor(BaseToolExecutor):
    """Read-only Xero reports and lists."""

    _api_errors = (XeroAPIError,)

    def __init__(self, client: XeroClient):
        super().__init__()
        self.client = client
        self._tool_handlers = {
            "get_profit_and_loss": self._get_profit_and_loss,
            "get_balance_sheet": self._get_balance_sheet,
            "get_trial_balance": self._get_trial_balance,
            "get_bank_summary": self._get_bank_summary,
            "list_invoices": self._list_invoices,
            "list_contacts": self._list_contacts,
            "get_organisation": self._get_organisation,
        }

    # === Report Handlers ===

    async def _get_profit_and_loss(
        self, from_date: str | None = None, to_date: str | None = None
    ) -> str:
        return summarise_report_rows(await self.client.get_profit_and_loss(from_date, to_date))

    async def _get_balance_sheet(self, date: str | None = None) -> str:
        return summarise_report_rows(await self.client.get_balance_sheet(date))

    async def _get_trial_balance(self, date: str | None = None) -> str:
        return summarise_report_rows(await self.client.get_trial_balance(date))

    async def _get_bank_summary(
        self, from_date: str | None = None, to_date: str | None = None
    ) -> str:
        return summarise_report_rows(await self.client.get_bank_summary(from_date, to_date))

    # === List Handlers ===

    async def _list_invoices(self, status: str | None = None, where: str | None = None) -> str:
        return summarise_invoices(await self.client.list_invoices(status=status, where=where))

    async def _list_contacts(self, where: str | None = None) -> str:
        return summarise_contacts(await self.client.list_contacts(where))

    async def _get_organisation(self) -> str:
        return summarise_organisation(await self.client.get_organisation())


class BudgetToolExecutor(BaseToolExecutor):
    """Read-only queries over the synced Up Bank data."""

    _api_errors = (StoreError,)

    def __init__(self, store: PostgrestStore, today: date | None = None):
        super().__init__()
        self.store = store
        self._today = today
        self._tool_handlers = {
            "get_account_balances": self._get_account_balances,
            "get_category_spend": self._get_category_spend,
            "search_transactions": self._search_transactions,
            "get_budget_limits": self._get_budget_limits,
            "get_month_comparison": self._get_month_comparison,
            "get_recurring_items": self._get_recurring_items,
            "get_debts": self._get_debts,
        }

    def _month(self, month: str | None) -> str:
        return month or current_month(self._today)

    async def _category_names(self, ids: list[str]) -> dict[str, str]:
        if not ids:
            return {}
        rows = await self.store.select(
            "up_categories", columns="up_id,name", filters=[("up_id", in_filter(ids))]
        )
        return {r["up_id"]: r["name"] for r in rows}

    async def _get_account_balances(self) -> str:
        accounts = await get_accounts(self.store)
        if not accounts:
            return "No accounts found."
        lines = [
            f"{a['display_name']} ({a['account_type']}): {format_cents(a['balance_cents'])}"
            for a in accounts
        ]
        total = sum(a["balance_cents"] for a in accounts)
        return "\n".join(lines) + f"\n\nTotal across all accounts: {format_cents(total)}"

    async def _get_category_spend(self, month: str | None = None) -> str:
        month = self._month(month)
        try:
            spend = await get_category_spend(self.store, month)
        except InvalidRequestError:
            return INVALID_MONTH

        lines = []
        for item in spend:
            line = f"{item.name}: {format_cents(item.total_spent_cents)} ({item.transaction_count} txns)"
            if item.monthly_limit_cents:
                pct = round(item.total_spent_cents / item.monthly_limit_cents * 100)
                status = " OVER BUDGET" if pct > 100 else f" ({pct}% of limit)"
                line += f" / limit {format_cents(item.monthly_limit_cents)}{status}"
            lines.append(line)
        total = sum(s.total_spent_cents for s in spend)
        return (
            f"Spending for {month_label(month)}:\n\n"
            + "\n".join(lines)
            + f"\n\nTotal spent: {format_cents(total)}"
        )

    async def _search_transactions(
        self,
        month: str | None = None,
        search: str | None = None,
        min_amount: float | None = None,
        max_amount: float | None = None,
    ) -> str:
        try:
            start, end = month_range(self._month(month))
        except InvalidRequestError:
            return INVALID_MONTH

        filters = [
            ("settled_at", f"gte.{start}"),
            ("settled_at", f"lt.{end}"),
            ("status", "eq.SETTLED"),
        ]
        if search:
            filters.append(("description", f"ilike.*{search}*"))
        # Debits are negative, so amount bounds flip sign
        if min_amount is not None:
            filters.append(("amount_cents", f"lte.{-round(min_amount * 100)}"))
        if max_amount is not None:
            filters.append(("amount_cents", f"gte.{-round(max_amount * 100)}"))

        rows = await self.store.select(
            "up_transactions",
            columns="description,amount_cents,settled_at,category_up_id,category_override",
            filters=filters,
            order="settled_at.desc",
            limit=50,
        )
        if not rows:
            return "No matching transactions found."

        ids = {r.get("category_override") or r.get("category_up_id") for r in rows}
        names = await self._category_names(sorted(i for i in ids if i))
        lines = []
        for r in rows:
            settled = r["settled_at"][:10] if r.get("settled_at") else "?"
            category = names.get(r.get("category_override") or r.get("category_up_id") or "", "")
            line = f"{settled} | {r['description']} | {format_cents(r['amount_cents'])}"
            lines.append(f"{line} | {category}" if category else line)
        net = sum(r["amount_cents"] for r in rows)
        return "\n".join(lines) + f"\n\n{len(rows)} transaction(s), net: {format_cents(net)}"

    async def _get_budget_limits(self) -> str:
        limits = await get_budget_limits(self.store)
        if not limits:
            return "No budget limits have been set."
        names = await self._category_names(list(limits))
        lines = [f"{names.get(cid, cid)}: {format_cents(cents)}/month" for cid, cents in limits.items()]
        return "\n".join(lines) + f"\n\nTotal monthly budget: {format_cents(sum(limits.values()))}"

    async def _get_month_comparison(self, month1: str, month2: str) -> str:
        try:
            first, first_count = await month_debit_total(self.store, month1)
            second, second_count = await month_debit_total(self.store, month2)
        except InvalidRequestError:
            return INVALID_MONTH

        diff = second - first
        pct = round(diff / first * 100) if first > 0 else 0
        direction = "more" if diff > 0 else "less" if diff < 0 else "the same"
        sign = "+" if diff > 0 else ""
        return "\n".join(
            [
                f"{month_label(month1)}: {format_cents(first)} ({first_count} transactions)",
                f"{month_label(month2)}: {format_cents(second)} ({second_count} transactions)",
                "",
                f"Difference: {format_cents(abs(diff))} {direction} ({sign}{pct}%)",
            ]
        )

    async def _get_recurring_items(self) -> str:
        items = await get_recurring_items(self.store)
        if not items:
            return "No recurring items set up."
        return "\n".join(
            f"{i.name} ({i.type}): {format_cents(i.amount_cents)} {i.frequency.value}"
            + (f", next due {i.next_due_date}" if i.next_due_date else "")
            for i in items
        )

    async def _get_debts(self) -> str:
        debts = await get_active_debts(self.store)
        if not debts:
            return "No active debts."
        lines = [
            f"{d.lender}: {format_cents(d.balance_cents)} at {d.interest_rate}% "
            f"({d.compounding}), minimum {format_cents(d.min_payment_cents)} {d.payment_frequency.value}"
            for d in debts
        ]
        total = sum(d.balance_cents for d in debts)
        return "\n".join(lines) + f"\n\nTotal debt: {format_cents(total)}"
