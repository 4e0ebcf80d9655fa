"""Tool-using chat loop shared by the Xero and budget assistants."""

import json
from dataclasses import dataclass, field
from typing import Any, Protocol

import structlog

from finops.assistant.executor import BaseToolExecutor, ToolExecutionError

logger = structlog.get_logger(__name__)

DEFAULT_MAX_STEPS = 5


class LLMClient(Protocol):
    async def generate(
        self,
        system_prompt: str,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
    ) -> Any: ...


@dataclass
class ToolTrace:
    """One executed tool call."""

    name: str
    arguments: dict[str, Any]
    success: bool
    error: str | None = None


@dataclass
class AssistantReply:
    text: str
    steps: int
    tool_calls: list[ToolTrace] = field(default_factory=list)


class Assistant:
    """Think-act-observe loop: ask the model, run its tool calls, feed results back.

    Stops when the model answers without tool calls or after ``max_steps``
    model calls, whichever comes first.
    """

    def __init__(
        self,
        llm: LLMClient,
        executor: BaseToolExecutor,
        tools: list[dict[str, Any]],
        system_prompt: str,
        max_steps: int = DEFAULT_MAX_STEPS,
    ):
        self._llm = llm
        self._executor = executor
        self._tools = tools
        self._system_prompt = system_prompt
        self._max_steps = max(1, max_steps)
        self._logger = logger.bind(tools=len(tools))

    async def _run_tool(self, call: dict[str, Any]) -> tuple[str, ToolTrace]:
        name = call["name"]
        arguments = call.get("arguments") or {}
        try:
            outcome = await self._executor.execute(name, arguments)
        except ToolExecutionError as e:
            outcome = {"success": False, "error": str(e)}

        trace = ToolTrace(name, arguments, outcome["success"], outcome.get("error"))
        if outcome["success"]:
            result = outcome["result"]
            content = result if isinstance(result, str) else json.dumps(result, default=str)
        else:
            content = f"Error: {outcome.get('error')}"
        return content, trace

    async def run(self, messages: list[dict[str, Any]]) -> AssistantReply:
        """Answer the last user message given the prior ``messages``.

        Messages are ``{"role": "user" | "assistant", "content": str}``.
        """
        history = [
            {"role": m["role"], "content": m.get("content") or ""}
            for m in messages
            if m.get("role") in ("user", "assistant")
        ]
        traces: list[ToolTrace] = []
        text = ""

        for step in range(1, self._max_steps + 1):
            response = await self._llm.generate(self._system_prompt, history, self._tools)
            text = response.content or text
            history.append(
                {
                    "role": "assistant",
                    "content": response.content,
                    "tool_calls": response.tool_calls,
                }
            )
            if not response.tool_calls:
                self._logger.info("assistant_completed", steps=step, tool_calls=len(traces))
                return AssistantReply(text=text, steps=step, tool_calls=traces)

            for call in response.tool_calls:
                content, trace = await self._run_tool(call)
                traces.append(trace)
                history.append({"role": "tool_result", "tool_call_id": call["id"], "content": content})

        self._logger.warning("assistant_step_limit", max_steps=self._max_steps)
        return AssistantReply(text=text, steps=self._max_steps, tool_calls=traces)
