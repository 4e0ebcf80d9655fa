"""Read-only AI assistants over Xero and the budget data."""

from finops.assistant.executor import (
    BudgetToolExecutor,
    ToolExecutionError,
    XeroToolExecutor,
)
from finops.assistant.openai_client import OpenAIClient, OpenAIResponse
from finops.assistant.prompts import budget_system_prompt, xero_system_prompt
from finops.assistant.runner import Assistant, AssistantReply, ToolTrace
from finops.assistant.tools import BUDGET_TOOLS, XERO_TOOLS

__all__ = [
    "Assistant",
    "AssistantReply",
    "BUDGET_TOOLS",
    "BudgetToolExecutor",
    "OpenAIClient",
    "OpenAIResponse",
    "ToolExecutionError",
    "ToolTrace",
    "XERO_TOOLS",
    "XeroToolExecutor",
    "budget_system_prompt",
    "xero_system_prompt",
]
