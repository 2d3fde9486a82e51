from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest

from jira_agent.infrastructure.data_models import Message, ToolCall
from jira_agent.services.conversation_store import InMemoryConversationStore
from jira_agent.services.session_service import AgentClients
from jira_agent.services.tool_registry import ToolKind, ToolRegistry, ToolSpec


@pytest.fixture(autouse=True)
def _local_platform(monkeypatch):
    # Never reach SSM or Lambda from tests
    monkeypatch.setenv("JIRA_AGENT_PLATFORM", "local")


class FakeModel:
    """Scripted model: returns (or raises) the queued replies in order and records each call."""

    def __init__(self, replies: list[Message | Exception]) -> None:
        self.replies = list(replies)
        self.calls: list[tuple[str, list[Message]]] = []

    def invoke(self, system_prompt: str, history: list[Message]) -> Message:
        self.calls.append((system_prompt, list(history)))
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


class AlwaysCallsToolsModel:
    """A model that never stops asking for tools."""

    def __init__(self) -> None:
        self.calls = 0

    def invoke(self, system_prompt: str, history: list[Message]) -> Message:
        self.calls += 1
        return Message.assistant(tool_calls=[issue_call(f"call_{self.calls}")])


def issue_args(**overrides: Any) -> dict[str, Any]:
    args = {
        "projectKey": "PROJ",
        "summary": "Exponer comerceCode en el API de branches",
        "description": "### Objetivo\nExponer el campo comerceCode.",
        "assigneeEmailAddress": "ana@example.com",
        "issueType": "Epic",
    }
    args.update(overrides)
    return args


def issue_call(call_id: str, **overrides: Any) -> ToolCall:
    return ToolCall(name="create_issue", id=call_id, arguments=issue_args(**overrides))


def make_registry(
    create_issue: Callable[[dict[str, Any]], str] | None = None,
    delegate: Callable[[dict[str, Any]], str] | None = None,
) -> ToolRegistry:
    from jira_agent.services.tool_registry import CREATE_ISSUE_SCHEMA, DELEGATE_SCHEMA

    return ToolRegistry([
        ToolSpec(
            kind=ToolKind.CREATE_ISSUE,
            description="create",
            input_schema=CREATE_ISSUE_SCHEMA,
            execute=create_issue or (lambda args: f"Issue {args['projectKey']}-1 creado"),
        ),
        ToolSpec(
            kind=ToolKind.DELEGATE_TO_DEVELOPMENT,
            description="delegate",
            input_schema=DELEGATE_SCHEMA,
            execute=delegate or (lambda args: "delegado"),
        ),
    ])


@pytest.fixture
def store() -> InMemoryConversationStore:
    return InMemoryConversationStore()


@pytest.fixture
def make_clients(store) -> Callable[..., AgentClients]:
    def _make(model: Any, tools: ToolRegistry | None = None, **kwargs: Any) -> AgentClients:
        return AgentClients(
            store=kwargs.pop("conversation_store", store),
            model=model,
            tools=tools or make_registry(),
            **kwargs,
        )

    return _make
