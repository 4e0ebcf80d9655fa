"""Budget routes over Up Bank data synced into the store."""

from datetime import date
from typing import Any

from fastapi import APIRouter, Depends, Query
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from finops.api.deps import get_llm, get_store, get_up, require_admin, run_assistant
from finops.api.schemas import (
    AssistantBody,
    BusinessFlagBody,
    BusinessRuleBody,
    DebtBody,
    EnvelopeBody,
    LimitBody,
    RecordIdBody,
    RecurringBody,
    RuleApplyBody,
    RuleCreateBody,
    RuleUpdateBody,
)
from finops.assistant import (
    BUDGET_TOOLS,
    Assistant,
    BudgetToolExecutor,
    OpenAIClient,
    budget_system_prompt,
)
from finops.budget import (
    BudgetLimits,
    BusinessExpenseService,
    CategoryRuleService,
    EnvelopeService,
    debt_table,
    get_category_spend,
    list_accounts,
    list_month_transactions,
    load_cash_flow,
    load_debt_simulation,
    load_tax_report,
    recurring_table,
    sync_budget,
)
from finops.config import get_settings
from finops.operations.validation import InvalidRequestError
from finops.store import PostgrestStore
from finops.up import UpClient

router = APIRouter(prefix="/budget", tags=["budget"])


def created(row: dict[str, Any]) -> JSONResponse:
    return JSONResponse(status_code=201, content=jsonable_encoder(row))


@router.post("/sync")
async def sync(
    user: str = Depends(require_admin),
    up: UpClient = Depends(get_up),
    store: PostgrestStore = Depends(get_store),
):
    return await sync_budget(up, store)


@router.get("/transactions")
async def transactions(
    month: str | None = None,
    user: str = Depends(require_admin),
    store: PostgrestStore = Depends(get_store),
):
    return await list_month_transactions(store, month)


@router.get("/accounts")
async def accounts(
    user: str = Depends(require_admin),
    store: PostgrestStore = Depends(get_store),
):
    return await list_accounts(store)


@router.get("/categories")
async def categories(
    month: str | None = None,
    user: str = Depends(require_admin),
    store: PostgrestStore = Depends(get_store),
):
    """Settled spend per category for a month, with any limit set on it."""
    return await get_category_spend(store, month)


# ── Limits, recurring items and debts ────────────────────────────────────


@router.get("/limits")
async def list_limits(
    user: str = Depends(require_admin),
    store: PostgrestStore = Depends(get_store),
):
    return await BudgetLimits(store).list_limits()


@router.post("/limits")
async def set_limit(
    body: LimitBody,
    user: str = Depends(require_admin),
    store: PostgrestStore = Depends(get_store),
):
    return await BudgetLimits(store).set_limit(body.category_up_id, body.monthly_limit_cents)


@router.get("/recurring")
async def list_recurring(
    user: str = Depends(require_admin),
    store: PostgrestStore = Depends(get_store),
):
    return await recurring_table(store).list_active()


@router.post("/recurring")
async def create_recurring(
    body: RecurringBody,
    user: str = Depends(require_admin),
    store: PostgrestStore = Depends(get_store),
):
    return created(await recurring_table(store).create(body.changes()))


@router.patch("/recurring")
async def update_recurring(
    body: RecurringBody,
    user: str = Depends(require_admin),
    store: PostgrestStore = Depends(get_store),
):
    return await recurring_table(store).update(body.id, body.changes())


@router.delete("/recurring")
async def delete_recurring(
    body: RecordIdBody,
    user: str = Depends(require_admin),
    store: PostgrestStore = Depends(get_store),
):
    await recurring_table(store).deactivate(body.id)
    return {"success": True}


@router.get("/debts")
async def list_debts(
    user: str = Depends(require_admin),
    store: PostgrestStore = Depends(get_store),
):
    return await debt_table(store).list_active()


@router.post("/debts")
async def create_debt(
    body: DebtBody,
    user: str = Depends(require_admin),
    store: PostgrestStore = Depends(get_store),
):
    return created(await debt_table(store).create(body.changes()))


@router.patch("/debts")
async def update_debt(
    body: DebtBody,
    user: str = Depends(require_admin),
    store: PostgrestStore = Depends(get_store),
):
    return await debt_table(store).update(body.id, body.changes())


@router.delete("/debts")
async def delete_debt(
    body: RecordIdBody,
    user: str = Depends(require_admin),
    store: PostgrestStore = Depends(get_store),
):
    await debt_table(store).deactivate(body.id)
    return {"success": True}


# ── Envelopes ────────────────────────────────────────────────────────────


@router.get("/envelopes")
async def list_envelopes(
    month: str | None = None,
    user: str = Depends(require_admin),
    store: PostgrestStore = Depends(get_store),
):
    return await EnvelopeService(store).list_envelopes(month)


@router.post("/envelopes")
async def create_envelope(
    body: EnvelopeBody,
    user: str = Depends(require_admin),
    store: PostgrestStore = Depends(get_store),
):
    envelope = await EnvelopeService(store).create(
        body.name, body.sort_order, body.monthly_allocation_cents, body.colour, body.categories
    )
    return created(envelope)


@router.patch("/envelopes")
async def update_envelope(
    body: EnvelopeBody,
    user: str = Depends(require_admin),
    store: PostgrestStore = Depends(get_store),
):
    return await EnvelopeService(store).update(body.id, body.changes(), body.categories)


@router.delete("/envelopes")
async def delete_envelope(
    body: RecordIdBody,
    user: str = Depends(require_admin),
    store: PostgrestStore = Depends(get_store),
):
    await EnvelopeService(store).deactivate(body.id)
    return {"success": True}


# ── Business expenses and tax ────────────────────────────────────────────


@router.get("/business-expenses")
async def business_expenses(
    from_date: str | None = Query(None, alias="from"),
    to_date: str | None = Query(None, alias="to"),
    user: str = Depends(require_admin),
    store: PostgrestStore = Depends(get_store),
):
    return await BusinessExpenseService(store).report(from_date, to_date)


@router.post("/business-expenses")
async def flag_business_expense(
    body: BusinessFlagBody,
    user: str = Depends(require_admin),
    store: PostgrestStore = Depends(get_store),
):
    await BusinessExpenseService(store).flag(body.transaction_up_id, body.is_business, body.notes)
    return {"success": True}


@router.post("/business-expenses/rules")
async def create_business_rule(
    body: BusinessRuleBody,
    user: str = Depends(require_admin),
    store: PostgrestStore = Depends(get_store),
):
    await BusinessExpenseService(store).add_rule(body.pattern, body.merchant_name, body.category)
    return {"success": True}


@router.get("/ato-report")
async def ato_report(
    months: str | None = None,
    user: str = Depends(require_admin),
    store: PostgrestStore = Depends(get_store),
):
    """Average monthly income, spend and surplus over the last complete months."""
    return await load_tax_report(store, months)


# ── Category rules ───────────────────────────────────────────────────────


@router.get("/category-rules")
async def list_rules(
    active: str | None = None,
    user: str = Depends(require_admin),
    store: PostgrestStore = Depends(get_store),
):
    return await CategoryRuleService(store).list_rules(active_only=active == "true")


@router.post("/category-rules")
async def create_rule(
    body: RuleCreateBody,
    user: str = Depends(require_admin),
    store: PostgrestStore = Depends(get_store),
):
    if not body.pattern or not body.category_up_id:
        raise InvalidRequestError("pattern and category_up_id required")
    row = await CategoryRuleService(store).create(
        body.pattern, body.category_up_id, body.merchant_label, body.is_active
    )
    return created(row)


@router.patch("/category-rules")
async def update_rule(
    body: RuleUpdateBody,
    user: str = Depends(require_admin),
    store: PostgrestStore = Depends(get_store),
):
    if not body.id:
        raise InvalidRequestError("id required")
    return await CategoryRuleService(store).update(body.id, body.changes())


@router.delete("/category-rules")
async def delete_rule(
    body: RecordIdBody,
    user: str = Depends(require_admin),
    store: PostgrestStore = Depends(get_store),
):
    if not body.id:
        raise InvalidRequestError("id required")
    await CategoryRuleService(store).deactivate(body.id)
    return {"success": True}


@router.post("/category-rules/apply")
async def apply_rules(
    body: RuleApplyBody,
    user: str = Depends(require_admin),
    store: PostgrestStore = Depends(get_store),
):
    """Categorise un-overridden transactions with the active rules."""
    assignments = await CategoryRuleService(store).apply(body.month)
    return {"assigned": len(assignments), "assignments": assignments}


# ── Projections ──────────────────────────────────────────────────────────


@router.get("/cash-flow")
async def cash_flow(
    weeks: str | None = None,
    user: str = Depends(require_admin),
    store: PostgrestStore = Depends(get_store),
):
    return await load_cash_flow(store, date.today(), weeks)


@router.get("/debts/simulation")
async def debt_simulation(
    strategy: str | None = None,
    extra_cents: str | None = Query(None, alias="extraCents"),
    user: str = Depends(require_admin),
    store: PostgrestStore = Depends(get_store),
):
    return await load_debt_simulation(store, strategy, extra_cents)


@router.post("/assistant")
async def assistant(
    body: AssistantBody,
    user: str = Depends(require_admin),
    store: PostgrestStore = Depends(get_store),
    llm: OpenAIClient = Depends(get_llm),
):
    return await run_assistant(
        Assistant(
            llm,
            BudgetToolExecutor(store),
            BUDGET_TOOLS,
            budget_system_prompt(),
            max_steps=get_settings().assistant_max_steps,
        ),
        body,
    )
