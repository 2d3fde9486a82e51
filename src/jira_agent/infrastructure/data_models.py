"""
Shared data models.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

ROLES = ("system", "human", "assistant", "tool")


@dataclass(frozen=True)
class ToolCall:
    name: str
    id: str
    arguments: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "arguments": self.arguments}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ToolCall:
        arguments = data.get("arguments") or {}
        if not isinstance(arguments, dict):
            raise ValueError(f"Tool call arguments must be an object: {arguments!r}")
        return cls(name=str(data["name"]), id=str(data["id"]), arguments=arguments)


@dataclass(frozen=True)
class Message:
    role: str  # "system" | "human" | "assistant" | "tool"
    content: str = ""
    tool_calls: tuple[ToolCall, ...] = ()
    tool_call_id: str | None = None

    def __post_init__(self) -> None:
        if self.role not in ROLES:
            raise ValueError(f"Unknown message role: {self.role}")
        if self.role == "tool" and not self.tool_call_id:
            raise ValueError("Tool messages require a tool_call_id")

    @classmethod
    def human(cls, content: str) -> Message:
        return cls(role="human", content=content)

    @classmethod
    def assistant(cls, content: str = "", tool_calls: list[ToolCall] | None = None) -> Message:
        return cls(role="assistant", content=content, tool_calls=tuple(tool_calls or ()))

    @classmethod
    def tool(cls, content: str, tool_call_id: str) -> Message:
        return cls(role="tool", content=content, tool_call_id=tool_call_id)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"role": self.role, "content": self.content}
        if self.tool_calls:
            data["tool_calls"] = [call.to_dict() for call in self.tool_calls]
        if self.tool_call_id:
            data["tool_call_id"] = self.tool_call_id
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Message:
        return cls(
            role=str(data["role"]),
            content=str(data.get("content") or ""),
            tool_calls=tuple(ToolCall.from_dict(c) for c in data.get("tool_calls") or []),
            tool_call_id=data.get("tool_call_id"),
        )


def pending_tool_call_ids(messages: list[Message]) -> list[str]:
    """Return the call ids requested by assistant turns that have no tool reply yet."""
    pending: dict[str, None] = {}
    for message in messages:
        if message.role == "assistant":
            for call in message.tool_calls:
                pending[call.id] = None
        elif message.role == "tool" and message.tool_call_id in pending:
            del pending[message.tool_call_id]
    return list(pending)


@dataclass
class AgentContext:
    """Ephemeral context of a single end-to-end run."""

    text: str
    thread_id: str
    user_name: str | None = None
