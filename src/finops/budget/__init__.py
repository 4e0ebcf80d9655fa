"""Budget tracker over synced Up Bank data."""

from finops.budget.business import BusinessExpenseService, identify_business_expenses
from finops.budget.cash_flow import project_cash_flow
from finops.budget.debts import simulate_debt_payoff
from finops.budget.envelopes import EnvelopeService, envelope_spend
from finops.budget.models import (
    CashFlowProjection,
    CategoryRule,
    CategorySpend,
    Debt,
    DebtSimulation,
    Frequency,
    PayoffStrategy,
    RecurringItem,
    SyncResponse,
)
from finops.budget.queries import (
    get_category_spend,
    list_accounts,
    load_cash_flow,
    load_debt_simulation,
)
from finops.budget.records import BudgetLimits, RecordTable, debt_table, recurring_table
from finops.budget.rules import CategoryRuleService, apply_category_rules
from finops.budget.spend import category_spend, list_month_transactions, month_range
from finops.budget.sync import sync_budget
from finops.budget.tax import build_tax_report, load_tax_report

__all__ = [
    "BudgetLimits",
    "BusinessExpenseService",
    "CashFlowProjection",
    "CategoryRule",
    "CategoryRuleService",
    "CategorySpend",
    "Debt",
    "DebtSimulation",
    "EnvelopeService",
    "Frequency",
    "PayoffStrategy",
    "RecordTable",
    "RecurringItem",
    "SyncResponse",
    "apply_category_rules",
    "build_tax_report",
    "category_spend",
    "debt_table",
    "envelope_spend",
    "get_category_spend",
    "identify_business_expenses",
    "list_accounts",
    "list_month_transactions",
    "load_cash_flow",
    "load_debt_simulation",
    "load_tax_report",
    "month_range",
    "project_cash_flow",
    "recurring_table",
    "simulate_debt_payoff",
    "sync_budget",
]
