"""Tests for the read-only assistants: summaries, executors, OpenAI client and runner."""

import json
from datetime import date
from unittest.mock import AsyncMock, MagicMock

import pytest

from finops.assistant import (
    BUDGET_TOOLS,
    XERO_TOOLS,
    Assistant,
    BudgetToolExecutor,
    OpenAIClient,
    OpenAIResponse,
    ToolExecutionError,
    XeroToolExecutor,
    budget_system_prompt,
)
from finops.assistant.openai_client import to_openai_messages, to_openai_tools
from finops.assistant.summaries import (
    format_cents,
    summarise_contacts,
    summarise_invoices,
    summarise_organisation,
    summarise_report_rows,
)
from finops.assistant.tools import get_tool_names
from finops.store import StoreError
from finops.xero.client import XeroAPIError

PROFIT_AND_LOSS = {
    "Reports": [
        {
            "Rows": [
                {"RowType": "Header", "Cells": [{"Value": ""}, {"Value": "31 Mar 24"}]},
                {
                    "RowType": "Section",
                    "Title": "Income",
                    "Rows": [
                        {"RowType": "Row", "Cells": [{"Value": "Consulting"}, {"Value": "12000.00"}]},
                        {
                            "RowType": "SummaryRow",
                            "Cells": [{"Value": "Total Income"}, {"Value": "12000.00"}],
                        },
                    ],
                },
                {
                    "RowType": "Section",
                    "Title": "Less Operating Expenses",
                    "Rows": [{"RowType": "Row", "Cells": [{"Value": "Rent"}, {"Value": "3000.00"}]}],
                },
            ]
        }
    ]
}


class TestSummaries:
    """Tests for the text condensers."""

    def test_format_cents(self):
        assert format_cents(123456) == "$1,234.56"
        assert format_cents(-500) == "-$5.00"
        assert format_cents(0) == "$0.00"

    def test_report_rows_by_section(self):
        assert summarise_report_rows(PROFIT_AND_LOSS) == (
            "Income\n  Consulting: 12000.00\n  Total Income: 12000.00\n\n"
            "Less Operating Expenses\n  Rent: 3000.00"
        )

    def test_report_falls_back_to_json(self):
        assert summarise_report_rows({"Reports": []}) == '{"Reports": []}'

    def test_invoices(self):
        text = summarise_invoices(
            {
                "Invoices": [
                    {
                        "InvoiceNumber": "INV-1",
                        "Status": "AUTHORISED",
                        "Total": 120,
                        "DueDate": "2024-03-15T00:00:00",
                        "Contact": {"Name": "Jane Citizen"},
                    },
                    {"Status": "PAID", "Total": "80.5"},
                ]
            }
        )

        lines = text.split("\n")
        assert lines[0] == "#INV-1 | AUTHORISED | $120.00 | Due 2024-03-15 | Jane Citizen"
        assert lines[1].startswith("#? | PAID | $80.50")
        assert text.endswith("(2 invoice(s), total $200.50)")

    def test_empty_lists(self):
        assert summarise_invoices({}) == "No invoices found."
        assert summarise_contacts({"Contacts": []}) == "No contacts found."
        assert summarise_organisation({}) == "Organisation details not found."

    def test_contacts(self):
        text = summarise_contacts(
            {"Contacts": [{"Name": "Jane", "EmailAddress": "jane@example.com"}, {"Name": "Bob"}]}
        )

        assert text == "- Jane (jane@example.com)\n- Bob\n\n(2 contact(s) total)"

    def test_organisation(self):
        text = summarise_organisation(
            {"Organisations": [{"Name": "Practice", "BaseCurrency": "AUD", "CountryCode": "AU"}]}
        )

        assert "Name: Practice" in text
        assert "Legal Name: ?" in text
        assert "Base Currency: AUD" in text


class TestXeroToolExecutor:
    """Tests for XeroToolExecutor."""

    @pytest.fixture
    def xero(self):
        return AsyncMock()

    def test_tools_have_handlers(self, xero):
        """Every declared Xero tool is dispatchable."""
        executor = XeroToolExecutor(xero)

        assert sorted(get_tool_names(XERO_TOOLS)) == sorted(executor.tool_names)

    @pytest.mark.asyncio
    async def test_unknown_tool_raises(self, xero):
        with pytest.raises(ToolExecutionError) as exc_info:
            await XeroToolExecutor(xero).execute("create_invoice", {})

        assert exc_info.value.tool_name == "create_invoice"
        assert str(exc_info.value) == "Tool 'create_invoice' failed: Unknown tool: create_invoice"

    @pytest.mark.asyncio
    async def test_report_is_summarised(self, xero):
        xero.get_profit_and_loss.return_value = PROFIT_AND_LOSS

        result = await XeroToolExecutor(xero).execute(
            "get_profit_and_loss", {"from_date": "2024-01-01", "to_date": "2024-03-31"}
        )

        assert result["success"] is True
        assert result["result"].startswith("Income\n")
        xero.get_profit_and_loss.assert_awaited_once_with("2024-01-01", "2024-03-31")

    @pytest.mark.asyncio
    async def test_api_error_carries_status(self, xero):
        xero.list_invoices.side_effect = XeroAPIError("Xero API error: 503", status_code=503)

        result = await XeroToolExecutor(xero).execute("list_invoices", {"status": "PAID"})

        assert result == {"success": False, "error": "Xero API error: 503", "status_code": 503}

    @pytest.mark.asyncio
    async def test_unexpected_error(self, xero):
        xero.get_organisation.side_effect = RuntimeError("socket closed")

        result = await XeroToolExecutor(xero).execute("get_organisation", {})

        assert result == {"success": False, "error": "socket closed"}


def _budget_store(tables: dict) -> AsyncMock:
    """Store whose select answers per table; callables receive the filters."""

    def select(table, **kwargs):
        rows = tables.get(table, [])
        return rows(kwargs.get("filters") or []) if callable(rows) else rows

    store = AsyncMock()
    store.select = AsyncMock(side_effect=select)
    return store


class TestBudgetToolExecutor:
    """Tests for BudgetToolExecutor."""

    def test_tools_have_handlers(self):
        executor = BudgetToolExecutor(AsyncMock())

        assert sorted(get_tool_names(BUDGET_TOOLS)) == sorted(executor.tool_names)

    @pytest.mark.asyncio
    async def test_account_balances(self):
        store = _budget_store(
            {
                "up_accounts": [
                    {"display_name": "Spending", "account_type": "TRANSACTIONAL", "balance_cents": 123456},
                    {"display_name": "Rainy Day", "account_type": "SAVER", "balance_cents": -500},
                ]
            }
        )

        result = await BudgetToolExecutor(store).execute("get_account_balances", {})

        assert result["result"] == (
            "Spending (TRANSACTIONAL): $1,234.56\n"
            "Rainy Day (SAVER): -$5.00\n\n"
            "Total across all accounts: $1,229.56"
        )

    @pytest.mark.asyncio
    async def test_category_spend_flags_over_budget(self):
        store = _budget_store(
            {
                "up_transactions": [
                    {"amount_cents": -15000, "status": "SETTLED", "category_up_id": "groceries"}
                ],
                "up_categories": [{"up_id": "groceries", "name": "Groceries", "parent_up_id": None}],
                "budget_limits": [{"category_up_id": "groceries", "monthly_limit_cents": 10000}],
            }
        )

        result = await BudgetToolExecutor(store).execute("get_category_spend", {"month": "2024-02"})

        text = result["result"]
        assert text.startswith("Spending for February 2024:")
        assert "Groceries: $150.00 (1 txns) / limit $100.00 OVER BUDGET" in text
        assert text.endswith("Total spent: $150.00")

    @pytest.mark.asyncio
    async def test_category_spend_defaults_to_current_month(self):
        store = _budget_store({})
        executor = BudgetToolExecutor(store, today=date(2024, 7, 9))

        result = await executor.execute("get_category_spend", {})

        assert result["result"].startswith("Spending for July 2024:")

    @pytest.mark.asyncio
    async def test_invalid_month(self):
        result = await BudgetToolExecutor(_budget_store({})).execute(
            "search_transactions", {"month": "2024-13"}
        )

        assert result["result"] == "Invalid month format. Use YYYY-MM."

    @pytest.mark.asyncio
    async def test_search_transactions(self):
        store = _budget_store(
            {
                "up_transactions": [
                    {
                        "description": "Coles",
                        "amount_cents": -4550,
                        "settled_at": "2024-03-02T10:00:00+11:00",
                        "category_up_id": "groceries",
                        "category_override": None,
                    }
                ],
                "up_categories": [{"up_id": "groceries", "name": "Groceries"}],
            }
        )

        result = await BudgetToolExecutor(store).execute(
            "search_transactions",
            {"month": "2024-03", "search": "coles", "min_amount": 10, "max_amount": 100.5},
        )

        assert result["result"] == (
            "2024-03-02 | Coles | -$45.50 | Groceries\n\n1 transaction(s), net: -$45.50"
        )
        filters = store.select.call_args_list[0].kwargs["filters"]
        assert ("description", "ilike.*coles*") in filters
        assert ("amount_cents", "lte.-1000") in filters
        assert ("amount_cents", "gte.-10050") in filters

    @pytest.mark.asyncio
    async def test_month_comparison(self):
        def transactions(filters):
            if ("settled_at", "gte.2024-01-01") in filters:
                return [{"amount_cents": -10000}, {"amount_cents": -5000}]
            return [{"amount_cents": -20000}]

        store = _budget_store({"up_transactions": transactions})

        result = await BudgetToolExecutor(store).execute(
            "get_month_comparison", {"month1": "2024-01", "month2": "2024-02"}
        )

        assert result["result"].split("\n") == [
            "January 2024: $150.00 (2 transactions)",
            "February 2024: $200.00 (1 transactions)",
            "",
            "Difference: $50.00 more (+33%)",
        ]

    @pytest.mark.asyncio
    async def test_budget_limits_use_category_names(self):
        store = _budget_store(
            {
                "budget_limits": [
                    {"category_up_id": "groceries", "monthly_limit_cents": 60000},
                    {"category_up_id": "fuel", "monthly_limit_cents": 15000},
                ],
                "up_categories": [{"up_id": "groceries", "name": "Groceries"}],
            }
        )

        result = await BudgetToolExecutor(store).execute("get_budget_limits", {})

        assert result["result"] == (
            "Groceries: $600.00/month\nfuel: $150.00/month\n\nTotal monthly budget: $750.00"
        )

    @pytest.mark.asyncio
    async def test_debts_and_recurring(self):
        store = _budget_store(
            {
                "debts": [
                    {
                        "lender": "Visa",
                        "balance_cents": 250000,
                        "interest_rate": 19.99,
                        "min_payment_cents": 7500,
                        "payment_frequency": "monthly",
                        "compounding": "daily",
                    }
                ],
                "recurring_items": [
                    {
                        "name": "Rent",
                        "type": "expense",
                        "amount_cents": 220000,
                        "frequency": "monthly",
                        "next_due_date": "2024-04-01",
                    }
                ],
            }
        )
        executor = BudgetToolExecutor(store)

        debts = await executor.execute("get_debts", {})
        recurring = await executor.execute("get_recurring_items", {})

        assert debts["result"].startswith(
            "Visa: $2,500.00 at 19.99% (daily), minimum $75.00 monthly"
        )
        assert recurring["result"] == "Rent (expense): $2,200.00 monthly, next due 2024-04-01"

    @pytest.mark.asyncio
    async def test_store_error_carries_status(self):
        store = AsyncMock()
        store.select = AsyncMock(side_effect=StoreError("up_accounts GET failed", status_code=503))

        result = await BudgetToolExecutor(store).execute("get_account_balances", {})

        assert result == {
            "success": False,
            "error": "up_accounts GET failed",
            "status_code": 503,
        }


class FakeLLM:
    """Replays canned responses and records what it was sent."""

    def __init__(self, responses: list[OpenAIResponse]):
        self._responses = list(responses)
        self.calls: list[list[dict]] = []

    async def generate(self, system_prompt, messages, tools=None):
        self.calls.append([dict(m) for m in messages])
        if len(self._responses) > 1:
            return self._responses.pop(0)
        return self._responses[0]


def _response(content: str = "", tool_calls: list[dict] | None = None) -> OpenAIResponse:
    return OpenAIResponse(
        content=content,
        tool_calls=tool_calls or [],
        stop_reason="tool_use" if tool_calls else "end_turn",
        usage={"input_tokens": 10, "output_tokens": 5},
    )


class TestAssistantRunner:
    """Tests for the tool-calling loop."""

    @pytest.mark.asyncio
    async def test_runs_tools_then_answers(self):
        xero = AsyncMock()
        xero.get_organisation.return_value = {"Organisations": [{"Name": "Practice"}]}
        llm = FakeLLM(
            [
                _response(tool_calls=[{"id": "call_1", "name": "get_organisation", "arguments": {}}]),
                _response("The organisation is Practice."),
            ]
        )
        assistant = Assistant(llm, XeroToolExecutor(xero), XERO_TOOLS, "system")

        reply = await assistant.run(
            [{"role": "system", "content": "ignored"}, {"role": "user", "content": "Who are we?"}]
        )

        assert reply.text == "The organisation is Practice."
        assert reply.steps == 2
        assert [(t.name, t.success) for t in reply.tool_calls] == [("get_organisation", True)]

        assert llm.calls[0] == [{"role": "user", "content": "Who are we?"}]
        tool_result = llm.calls[1][-1]
        assert tool_result["role"] == "tool_result"
        assert tool_result["tool_call_id"] == "call_1"
        assert tool_result["content"].startswith("Name: Practice")

    @pytest.mark.asyncio
    async def test_tool_errors_fed_back(self):
        llm = FakeLLM(
            [
                _response(tool_calls=[{"id": "call_1", "name": "delete_everything", "arguments": {}}]),
                _response("I can't do that."),
            ]
        )
        assistant = Assistant(llm, XeroToolExecutor(AsyncMock()), XERO_TOOLS, "system")

        reply = await assistant.run([{"role": "user", "content": "Delete it all"}])

        trace = reply.tool_calls[0]
        assert trace.success is False
        assert trace.error == "Tool 'delete_everything' failed: Unknown tool: delete_everything"
        assert llm.calls[1][-1]["content"].startswith("Error: Tool 'delete_everything'")

    @pytest.mark.asyncio
    async def test_non_string_results_are_json(self):
        executor = MagicMock()
        executor.execute = AsyncMock(return_value={"success": True, "result": {"total": 5}})
        llm = FakeLLM(
            [
                _response(tool_calls=[{"id": "c1", "name": "anything", "arguments": {"a": 1}}]),
                _response("Done"),
            ]
        )

        await Assistant(llm, executor, [], "system").run([{"role": "user", "content": "Go"}])

        executor.execute.assert_awaited_once_with("anything", {"a": 1})
        assert json.loads(llm.calls[1][-1]["content"]) == {"total": 5}

    @pytest.mark.asyncio
    async def test_step_limit(self):
        executor = MagicMock()
        executor.execute = AsyncMock(return_value={"success": True, "result": "ok"})
        llm = FakeLLM(
            [_response("Still working", [{"id": "c", "name": "get_debts", "arguments": {}}])]
        )

        reply = await Assistant(llm, executor, BUDGET_TOOLS, "system", max_steps=2).run(
            [{"role": "user", "content": "Loop"}]
        )

        assert reply.steps == 2
        assert reply.text == "Still working"
        assert len(llm.calls) == 2
        assert len(reply.tool_calls) == 2


class TestOpenAIClient:
    """Tests for OpenAIClient."""

    @pytest.fixture
    def client(self):
        return OpenAIClient(api_key="sk-test", model="gpt-4o-mini", max_tokens=512, temperature=0)

    def test_initialization_with_custom_params(self, client):
        """Test client accepts custom parameters."""
        assert client.model == "gpt-4o-mini"
        assert client._max_tokens == 512
        assert client._temperature == 0

    def test_convert_tools(self):
        converted = to_openai_tools(BUDGET_TOOLS[:1])

        assert converted[0]["type"] == "function"
        assert converted[0]["function"]["name"] == BUDGET_TOOLS[0]["name"]
        assert converted[0]["function"]["parameters"] == BUDGET_TOOLS[0]["input_schema"]

    def test_convert_messages(self):
        """Test tool calls are serialised and tool results become tool messages."""
        converted = to_openai_messages(
            "System prompt",
            [
                {"role": "user", "content": "Spend?"},
                {
                    "role": "assistant",
                    "content": "",
                    "tool_calls": [
                        {"id": "call_1", "name": "get_category_spend", "arguments": {"month": "2024-02"}}
                    ],
                },
                {"role": "tool_result", "tool_call_id": "call_1", "content": "Groceries: $150.00"},
            ],
        )

        assert converted[0] == {"role": "system", "content": "System prompt"}
        assistant = converted[2]
        assert "content" not in assistant
        assert assistant["tool_calls"][0]["function"]["arguments"] == '{"month": "2024-02"}'
        assert converted[3] == {
            "role": "tool",
            "tool_call_id": "call_1",
            "content": "Groceries: $150.00",
        }

    def _completion(self, finish_reason: str, tool_calls: list | None = None, usage: bool = True):
        message = MagicMock()
        message.content = None if tool_calls else "Hello"
        message.tool_calls = tool_calls
        choice = MagicMock()
        choice.message = message
        choice.finish_reason = finish_reason
        response = MagicMock()
        response.choices = [choice]
        if usage:
            response.usage.prompt_tokens = 100
            response.usage.completion_tokens = 20
        else:
            response.usage = None
        return response

    def _tool_call(self, call_id: str, name: str, arguments: str) -> MagicMock:
        call = MagicMock()
        call.id = call_id
        call.function.name = name
        call.function.arguments = arguments
        return call

    def test_parse_tool_calls(self, client):
        response = self._completion(
            "tool_calls",
            [
                self._tool_call("call_1", "get_debts", ""),
                self._tool_call("call_2", "search_transactions", '{"search": "uber"}'),
                self._tool_call("call_3", "get_category_spend", "{not json"),
            ],
            usage=False,
        )

        parsed = client._parse_response(response)

        assert parsed.content == ""
        assert parsed.stop_reason == "tool_use"
        assert parsed.tool_calls == [
            {"id": "call_1", "name": "get_debts", "arguments": {}},
            {"id": "call_2", "name": "search_transactions", "arguments": {"search": "uber"}},
            {"id": "call_3", "name": "get_category_spend", "arguments": {}},
        ]
        assert parsed.usage == {"input_tokens": 0, "output_tokens": 0}

    @pytest.mark.asyncio
    async def test_generate_passes_tools(self, client):
        client._client = MagicMock()
        client._client.chat.completions.create = AsyncMock(return_value=self._completion("stop"))

        parsed = await client.generate("System", [{"role": "user", "content": "Hi"}], BUDGET_TOOLS)

        assert parsed.content == "Hello"
        assert parsed.stop_reason == "end_turn"
        assert parsed.usage == {"input_tokens": 100, "output_tokens": 20}
        kwargs = client._client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-4o-mini"
        assert kwargs["tool_choice"] == "auto"
        assert len(kwargs["tools"]) == len(BUDGET_TOOLS)


def test_budget_prompt_includes_date():
    prompt = budget_system_prompt(date(2024, 3, 5))

    assert "The current date is 05 March 2024." in prompt
    assert "## RESPONSE GUIDELINES" in prompt
