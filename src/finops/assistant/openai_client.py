"""Chat-completions client used by both assistants.

Works against OpenAI or any compatible endpoint set through OPENAI_BASE_URL.
Conversation history uses a provider-neutral shape:

- ``{"role": "user", "content": str}``
- ``{"role": "assistant", "content": str, "tool_calls": [{"id", "name", "arguments"}]}``
- ``{"role": "tool_result", "tool_call_id": str, "content": str}``
"""

import json
from dataclasses import dataclass
from typing import Any

import openai
import structlog

from finops.config import get_settings, require_setting

logger = structlog.get_logger(__name__)

FINISH_REASONS = {
    "stop": "end_turn",
    "tool_calls": "tool_use",
    "length": "max_tokens",
    "content_filter": "content_filter",
}


@dataclass
class OpenAIResponse:
    content: str
    tool_calls: list[dict[str, Any]]
    stop_reason: str
    usage: dict[str, int]


def to_openai_tools(tools: list[dict[str, Any]]) -> list[dict[str, Any]]:
    return [
        {
            "type": "function",
            "function": {
                "name": tool["name"],
                "description": tool["description"],
                "parameters": tool["input_schema"],
            },
        }
        for tool in tools
    ]


def _assistant_message(msg: dict[str, Any]) -> dict[str, Any]:
    out: dict[str, Any] = {"role": "assistant"}
    if msg.get("content"):
        out["content"] = msg["content"]
    if msg.get("tool_calls"):
        out["tool_calls"] = [
            {
                "id": call["id"],
                "type": "function",
                "function": {"name": call["name"], "arguments": json.dumps(call["arguments"])},
            }
            for call in msg["tool_calls"]
        ]
    return out


def to_openai_messages(system_prompt: str, messages: list[dict[str, Any]]) -> list[dict[str, Any]]:
    converted: list[dict[str, Any]] = [{"role": "system", "content": system_prompt}]
    for msg in messages:
        role = msg["role"]
        if role == "user":
            converted.append({"role": "user", "content": msg["content"]})
        elif role == "assistant":
            converted.append(_assistant_message(msg))
        elif role == "tool_result":
            converted.append(
                {"role": "tool", "tool_call_id": msg["tool_call_id"], "content": msg["content"]}
            )
    return converted


class OpenAIClient:
    """Async chat-completions client with function calling."""

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        model: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ):
        settings = get_settings()
        api_key = api_key or require_setting(settings.openai_api_key, "OPENAI_API_KEY", "assistant")
        self._model = model or settings.assistant_model
        self._max_tokens = max_tokens or settings.llm_max_tokens
        self._temperature = temperature if temperature is not None else settings.llm_temperature
        self._client = openai.AsyncOpenAI(
            api_key=api_key, base_url=base_url or settings.openai_base_url or None
        )
        self._logger = logger.bind(model=self._model)

    @property
    def model(self) -> str:
        return self._model

    def _decode_arguments(self, name: str, raw: str | None) -> dict[str, Any]:
        try:
            return json.loads(raw or "{}")
        except json.JSONDecodeError:
            # the model occasionally emits truncated JSON; run the tool with defaults
            self._logger.warning("tool_arguments_unparseable", tool=name)
            return {}

    def _parse_response(self, response: Any) -> OpenAIResponse:
        choice = response.choices[0]
        usage = response.usage
        return OpenAIResponse(
            content=choice.message.content or "",
            tool_calls=[
                {
                    "id": call.id,
                    "name": call.function.name,
                    "arguments": self._decode_arguments(call.function.name, call.function.arguments),
                }
                for call in choice.message.tool_calls or []
            ],
            stop_reason=FINISH_REASONS.get(choice.finish_reason or "stop", "end_turn"),
            usage={
                "input_tokens": usage.prompt_tokens if usage else 0,
                "output_tokens": usage.completion_tokens if usage else 0,
            },
        )

    async def generate(
        self,
        system_prompt: str,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
    ) -> OpenAIResponse:
        """Run one completion turn.

        Args:
            system_prompt: The assistant's system prompt.
            messages: Conversation history in the shape described above.
            tools: Tool definitions the model may call.

        Returns:
            The reply text, any tool calls, and token usage.
        """
        request: dict[str, Any] = {
            "model": self._model,
            "messages": to_openai_messages(system_prompt, messages),
            "temperature": self._temperature,
            "max_tokens": self._max_tokens,
        }
        if tools:
            request["tools"] = to_openai_tools(tools)
            request["tool_choice"] = "auto"

        try:
            response = await self._client.chat.completions.create(**request)
        except openai.APIError as e:
            self._logger.error("completion_failed", error=str(e))
            raise

        parsed = self._parse_response(response)
        self._logger.info(
            "completion_received",
            stop_reason=parsed.stop_reason,
            tool_calls=len(parsed.tool_calls),
            input_tokens=parsed.usage["input_tokens"],
            output_tokens=parsed.usage["output_tokens"],
        )
        return parsed
