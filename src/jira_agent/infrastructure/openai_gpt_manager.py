import json
from typing import Any, Protocol, cast

from openai import OpenAI, OpenAIError

from jira_agent.errors import ModelInvocationError
from jira_agent.infrastructure.data_models import Message, ToolCall
from jira_agent.services.tool_registry import parse_arguments


# Define response type directly because pyright is not correctly understanding the new GPT 5 API
class Response(Protocol):
    output_text: str | None
    output: list[Any]
    usage: Any
    model: str
    error: Any | None
    incomplete_details: Any | None


class ModelClient(Protocol):
    def invoke(self, system_prompt: str, history: list[Message]) -> Message: ...


# Default configuration constants for GPT-5
DEFAULT_MAX_OUTPUT_TOKENS_GPT5 = 4000
DEFAULT_REASONING_EFFORT = "low"
DEFAULT_VERBOSITY = "low"
DEFAULT_TOOL_CHOICE = "auto"
DEFAULT_TIMEOUT = 30.0


def to_input_items(history: list[Message]) -> list[dict[str, Any]]:
    """
    Translate conversation messages into Responses API input items.

    Assistant tool calls become `function_call` items and tool replies become
    `function_call_output` items linked by call id. System messages are not part of
    the history; the prompt is passed as `instructions`.
    """
    items: list[dict[str, Any]] = []
    for message in history:
        if message.role == "human":
            items.append({"role": "user", "content": message.content})
        elif message.role == "assistant":
            if message.content:
                items.append({"role": "assistant", "content": message.content})
            for call in message.tool_calls:
                items.append({
                    "type": "function_call",
                    "call_id": call.id,
                    "name": call.name,
                    "arguments": json.dumps(call.arguments, ensure_ascii=False),
                })
        elif message.role == "tool":
            items.append({
                "type": "function_call_output",
                "call_id": message.tool_call_id,
                "output": message.content,
            })
    return items


def from_response(resp: Any) -> Message:
    """Build the assistant message (text and/or tool calls) from a Responses API result."""
    tool_calls: list[ToolCall] = []
    for item in getattr(resp, "output", []) or []:
        if getattr(item, "type", "") == "function_call":
            tool_calls.append(
                ToolCall(
                    name=str(getattr(item, "name", "")),
                    id=str(getattr(item, "call_id", "") or getattr(item, "id", "")),
                    arguments=parse_arguments(getattr(item, "arguments", "{}")),
                )
            )

    content = getattr(resp, "output_text", None) or ""
    return Message.assistant(content=content, tool_calls=tool_calls)


def usage_from_response(resp: Any) -> dict[str, Any]:
    u = getattr(resp, "usage", None)
    reasoning_tokens = getattr(
        getattr(u, "output_tokens_details", None),
        "reasoning_tokens",
        None,
    )
    return {
        "input_tokens": getattr(u, "input_tokens", 0),
        "output_tokens": getattr(u, "output_tokens", 0),
        "total_tokens": getattr(u, "total_tokens", 0),
        "reasoning_tokens": reasoning_tokens,
    }


class OpenAIChat:
    """
    A client for OpenAI's GPT-5 models (Responses API) with tools bound to every call.

    The call is made once: the client is built with max_retries=0 and a timeout, and
    any failure is raised as ModelInvocationError for the caller to handle.
    """

    def __init__(
        self,
        model: str,
        api_key: str,
        tools: list[dict[str, Any]],
        *,
        timeout: float = DEFAULT_TIMEOUT,
        client: OpenAI | None = None,
        **kwargs: Any,
    ) -> None:
        """
        Initialize the OpenAI chat client.

        Args:
            model: The OpenAI model to use (e.g., 'gpt-5-mini')
            api_key: OpenAI API key
            tools: Function-tool specs bound to every request
            timeout: Request timeout in seconds
            client: Pre-built OpenAI client (tests)
            **kwargs: Overrides for max_output_tokens, verbosity, reasoning_effort, tool_choice

        Raises:
            ValueError: If the API key is missing or the model is not supported
        """
        if not api_key and client is None:
            raise ValueError("OPENAI_API_KEY not found in configuration")

        self.client: OpenAI = client or OpenAI(api_key=api_key, timeout=timeout, max_retries=0)
        self.model = model
        self.tools = tools
        self.last_usage: dict[str, Any] = {}
        self._request_params = self._params_for_model(model, **kwargs)

    def _params_for_model(self, model: str, **kwargs: Any) -> dict[str, Any]:
        """
        Return default parameters based on model family.

        Raises:
            ValueError: If the model is not supported
        """
        if model.startswith("gpt-5"):
            return {
                "max_output_tokens": kwargs.get(
                    "max_output_tokens", DEFAULT_MAX_OUTPUT_TOKENS_GPT5
                ),
                "text": {"verbosity": kwargs.get("verbosity", DEFAULT_VERBOSITY)},
                "reasoning": {"effort": kwargs.get("reasoning_effort", DEFAULT_REASONING_EFFORT)},
                "tool_choice": kwargs.get("tool_choice", DEFAULT_TOOL_CHOICE),
            }
        raise ValueError(f"Unsupported model: {model}")

    def invoke(self, system_prompt: str, history: list[Message]) -> Message:
        """
        Ask the model for the next assistant turn.

        Returns:
            Message: An assistant message with final text, tool calls, or both.

        Raises:
            ModelInvocationError: If the request fails or the response is unusable.
        """
        try:
            resp = self.client.responses.create(
                model=self.model,
                instructions=system_prompt,
                input=cast(Any, to_input_items(history)),
                tools=cast(Any, self.tools),
                **self._request_params,
            )
        except OpenAIError as e:
            raise ModelInvocationError(f"Fatal error calling {self.model}: {e}") from e

        if getattr(resp, "error", None):
            raise ModelInvocationError(f"{self.model} returned an error: {resp.error}")

        self.last_usage = usage_from_response(resp)
        message = from_response(resp)

        if not message.tool_calls and not message.content:
            details = getattr(resp, "incomplete_details", None)
            raise ModelInvocationError(
                f"{self.model} returned neither text nor tool calls"
                + (f" ({details})" if details else "")
            )
        return message
