"""
The agent loop: alternate model calls and tool execution until the model answers.

States:
    AWAITING_MODEL     -> call the model with the full history
    DISPATCHING_TOOLS  -> run every tool call of the last assistant turn
    DONE               -> the last assistant turn had no tool calls; its text is the answer
    FAILED             -> round cap or time budget exceeded, or the model call failed

Every assistant tool call is answered by exactly one tool message, appended in call
order, before the model is called again.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from enum import Enum

from jira_agent.errors import AgentLoopLimitError
from jira_agent.infrastructure.data_models import Message, pending_tool_call_ids
from jira_agent.infrastructure.openai_gpt_manager import ModelClient
from jira_agent.services.renderer_service import render_prompt
from jira_agent.services.tool_registry import ToolRegistry, describe_calls
from jira_shared.platform_manager import create_logger

logger = create_logger(logger_name="jira-agent")

DEFAULT_MAX_ROUNDS = 6
DEFAULT_BUDGET_SECONDS = 40.0

INTERRUPTED_TOOL_RESULT = "Error: la ejecución de esta herramienta fue interrumpida y no hay resultado."


class LoopState(str, Enum):
    AWAITING_MODEL = "awaiting_model"
    DISPATCHING_TOOLS = "dispatching_tools"
    DONE = "done"
    FAILED = "failed"


def close_dangling_tool_calls(history: list[Message]) -> list[Message]:
    """Tool messages answering calls left unanswered by an interrupted earlier run."""
    return [Message.tool(INTERRUPTED_TOOL_RESULT, call_id) for call_id in pending_tool_call_ids(history)]


class AgentLoop:
    """
    One run of the agent state machine over a conversation.

    Args:
        model: Model client; tools are already bound to it.
        tools: Registry used to execute tool calls.
        history: Messages loaded for the thread (not modified).
        user_name: Display name injected in the system prompt.
        max_rounds: Maximum number of model calls in this run.
        budget: Wall-clock budget in seconds for this run.
        clock: Monotonic clock (tests).
    """

    def __init__(
        self,
        model: ModelClient,
        tools: ToolRegistry,
        history: list[Message],
        *,
        user_name: str | None = None,
        max_rounds: int = DEFAULT_MAX_ROUNDS,
        budget: float = DEFAULT_BUDGET_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.model = model
        self.tools = tools
        self.user_name = user_name
        self.max_rounds = max_rounds
        self.budget = budget
        self._clock = clock

        self.messages: list[Message] = list(history)
        self.new_messages: list[Message] = []
        self.state = LoopState.AWAITING_MODEL
        self.rounds = 0

    def _append(self, *messages: Message) -> None:
        self.messages.extend(messages)
        self.new_messages.extend(messages)

    def _fail(self, reason: str) -> AgentLoopLimitError:
        self.state = LoopState.FAILED
        logger.error(f"Agent loop failed after {self.rounds} rounds: {reason}")
        return AgentLoopLimitError(reason)

    def run(self, user_message: Message) -> str:
        """
        Drive the loop to DONE and return the final assistant text.

        Raises:
            AgentLoopLimitError: When the round cap or the time budget is exceeded.
            ModelInvocationError: When a model call fails (the run is aborted).
        """
        self._append(user_message)
        deadline = self._clock() + self.budget

        while True:
            if self.state is LoopState.AWAITING_MODEL:
                if self.rounds >= self.max_rounds:
                    raise self._fail(f"round cap of {self.max_rounds} model calls reached")
                if self._clock() > deadline:
                    raise self._fail(f"time budget of {self.budget:.0f}s exceeded before model call")

                unanswered = pending_tool_call_ids(self.messages)
                if unanswered:
                    raise RuntimeError(f"Unanswered tool calls before model call: {unanswered}")

                self.rounds += 1
                try:
                    reply = self.model.invoke(render_prompt(self.user_name), self.messages)
                except Exception:
                    self.state = LoopState.FAILED
                    raise
                self._append(reply)

                logger.info(
                    f"Round {self.rounds}: model replied with {len(reply.tool_calls)} tool calls "
                    f"[{describe_calls(reply.tool_calls)}]"
                )
                usage = getattr(self.model, "last_usage", None)
                if usage:
                    logger.info(f"Round {self.rounds} usage: {usage}")
                self.state = LoopState.DISPATCHING_TOOLS if reply.tool_calls else LoopState.DONE

            elif self.state is LoopState.DISPATCHING_TOOLS:
                # Tools must not start once the budget is spent; the unanswered calls
                # are closed when the thread is next loaded
                if self._clock() > deadline:
                    raise self._fail(f"time budget of {self.budget:.0f}s exceeded before tool calls")
                self._append(*self.tools.dispatch_all(list(self.messages[-1].tool_calls)))
                self.state = LoopState.AWAITING_MODEL

            elif self.state is LoopState.DONE:
                return self.messages[-1].content

            else:
                raise self._fail(f"unexpected state {self.state}")
