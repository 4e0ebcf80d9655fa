"""Tool definitions for the read-only Xero and budget assistants.

Each tool is a dict with ``name``, ``description`` and a JSON Schema
``input_schema``; the LLM client converts them to the provider's format.
"""

from typing import Any

_DATE = {"type": "string", "description": "Date in YYYY-MM-DD format"}
_MONTH = {
    "type": "string",
    "description": "Month in YYYY-MM format (e.g. 2026-02). Defaults to the current month.",
}
_NO_ARGS: dict[str, Any] = {"type": "object", "properties": {}, "required": []}

# === Xero Tools ===

GET_PROFIT_AND_LOSS_TOOL: dict[str, Any] = {
    "name": "get_profit_and_loss",
    "description": "Get the Profit and Loss (P&L) report for a date range. Use for questions about revenue, expenses, profit.",
    "input_schema": {
        "type": "object",
        "properties": {
            "from_date": {**_DATE, "description": "Start date YYYY-MM-DD (e.g. 2025-10-01 for Q4)"},
            "to_date": {**_DATE, "description": "End date YYYY-MM-DD (e.g. 2025-12-31 for Q4)"},
        },
        "required": [],
    },
}

GET_BALANCE_SHEET_TOOL: dict[str, Any] = {
    "name": "get_balance_sheet",
    "description": "Get the Balance Sheet report as at a specific date. Shows assets, liabilities, equity.",
    "input_schema": {
        "type": "object",
        "properties": {"date": {**_DATE, "description": "Date YYYY-MM-DD (defaults to current month end)"}},
        "required": [],
    },
}

GET_TRIAL_BALANCE_TOOL: dict[str, Any] = {
    "name": "get_trial_balance",
    "description": "Get the Trial Balance report as at a date. Shows all account balances to verify books balance.",
    "input_schema": {
        "type": "object",
        "properties": {"date": {**_DATE, "description": "Date YYYY-MM-DD (defaults to current)"}},
        "required": [],
    },
}

GET_BANK_SUMMARY_TOOL: dict[str, Any] = {
    "name": "get_bank_summary",
    "description": "Get the Bank Summary report: balances and cash movements for each bank account.",
    "input_schema": {
        "type": "object",
        "properties": {"from_date": _DATE, "to_date": _DATE},
        "required": [],
    },
}

LIST_INVOICES_TOOL: dict[str, Any] = {
    "name": "list_invoices",
    "description": "List invoices. Use status AUTHORISED for outstanding, or filter by overdue with a where clause.",
    "input_schema": {
        "type": "object",
        "properties": {
            "status": {
                "type": "string",
                "enum": ["DRAFT", "SUBMITTED", "AUTHORISED"],
                "description": "Invoice status filter",
            },
            "where": {
                "type": "string",
                "description": 'Xero where filter e.g. Status=="AUTHORISED" AND DueDate<DateTime(2025,2,1) for overdue',
            },
        },
        "required": [],
    },
}

LIST_CONTACTS_TOOL: dict[str, Any] = {
    "name": "list_contacts",
    "description": "List contacts (customers and suppliers).",
    "input_schema": {
        "type": "object",
        "properties": {"where": {"type": "string", "description": "Optional Xero where filter"}},
        "required": [],
    },
}

GET_ORGANISATION_TOOL: dict[str, Any] = {
    "name": "get_organisation",
    "description": "Get organisation details (name, legal name, base currency).",
    "input_schema": _NO_ARGS,
}

# === Budget Tools ===

GET_ACCOUNT_BALANCES_TOOL: dict[str, Any] = {
    "name": "get_account_balances",
    "description": "Get all Up Bank accounts with their current balances. Use for questions about how much money is available.",
    "input_schema": _NO_ARGS,
}

GET_CATEGORY_SPEND_TOOL: dict[str, Any] = {
    "name": "get_category_spend",
    "description": "Get monthly spending by category with budget limits. Shows how much was spent in each category and whether it is over/under budget.",
    "input_schema": {"type": "object", "properties": {"month": _MONTH}, "required": []},
}

SEARCH_TRANSACTIONS_TOOL: dict[str, Any] = {
    "name": "search_transactions",
    "description": "Search transactions by description text, amount range, or month. Returns matching transactions sorted by date.",
    "input_schema": {
        "type": "object",
        "properties": {
            "month": _MONTH,
            "search": {
                "type": "string",
                "description": "Text to search for in transaction descriptions (case-insensitive)",
            },
            "min_amount": {
                "type": "number",
                "description": "Minimum absolute amount in dollars (e.g. 50 means $50+)",
            },
            "max_amount": {"type": "number", "description": "Maximum absolute amount in dollars"},
        },
        "required": [],
    },
}

GET_BUDGET_LIMITS_TOOL: dict[str, Any] = {
    "name": "get_budget_limits",
    "description": "Get all category budget limits that have been set. Shows the monthly spending limit for each category.",
    "input_schema": _NO_ARGS,
}

GET_MONTH_COMPARISON_TOOL: dict[str, Any] = {
    "name": "get_month_comparison",
    "description": "Compare total spending between two months. Shows total spent in each month and the difference.",
    "input_schema": {
        "type": "object",
        "properties": {
            "month1": {"type": "string", "description": "First month in YYYY-MM format (e.g. 2026-01)"},
            "month2": {"type": "string", "description": "Second month in YYYY-MM format (e.g. 2026-02)"},
        },
        "required": ["month1", "month2"],
    },
}

GET_RECURRING_ITEMS_TOOL: dict[str, Any] = {
    "name": "get_recurring_items",
    "description": "List active recurring income and expenses with their frequency and next due date.",
    "input_schema": _NO_ARGS,
}

GET_DEBTS_TOOL: dict[str, Any] = {
    "name": "get_debts",
    "description": "List active debts with balances, interest rates and minimum repayments.",
    "input_schema": _NO_ARGS,
}

XERO_TOOLS: list[dict[str, Any]] = [
    GET_PROFIT_AND_LOSS_TOOL,
    GET_BALANCE_SHEET_TOOL,
    GET_TRIAL_BALANCE_TOOL,
    GET_BANK_SUMMARY_TOOL,
    LIST_INVOICES_TOOL,
    LIST_CONTACTS_TOOL,
    GET_ORGANISATION_TOOL,
]

BUDGET_TOOLS: list[dict[str, Any]] = [
    GET_ACCOUNT_BALANCES_TOOL,
    GET_CATEGORY_SPEND_TOOL,
    SEARCH_TRANSACTIONS_TOOL,
    GET_BUDGET_LIMITS_TOOL,
    GET_MONTH_COMPARISON_TOOL,
    GET_RECURRING_ITEMS_TOOL,
    GET_DEBTS_TOOL,
]


def get_tool_names(tools: list[dict[str, Any]]) -> list[str]:
    return [tool["name"] for tool in tools]
