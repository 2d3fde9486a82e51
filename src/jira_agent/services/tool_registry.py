"""
Tool registry and dispatch.

The set of tools is closed: every tool is a `ToolKind` paired with a description, a
JSON Schema for its input, and an execution function. Arguments are validated against
the schema before anything runs, and every outcome (result, validation error, remote
failure) comes back as a tool message so the model can react on the next round.
"""

from __future__ import annotations

import json
from collections.abc import Callable, Iterable, Iterator
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import Any

from jira_agent.errors import ToolValidationError
from jira_agent.infrastructure.data_models import Message, ToolCall
from jira_agent.services.development_service import DevelopmentClient
from jira_agent.services.jira_service import IssueRequest, JiraClient
from jira_shared.platform_manager import create_logger

logger = create_logger(logger_name="jira-agent")

# Set by the model client when the model produced arguments that are not a JSON object
INVALID_ARGUMENTS_KEY = "__invalid_arguments__"

_MAX_WORKERS = 4


class ToolKind(str, Enum):
    CREATE_ISSUE = "create_issue"
    DELEGATE_TO_DEVELOPMENT = "delegate_to_development"


@dataclass(frozen=True)
class ToolSpec:
    kind: ToolKind
    description: str
    input_schema: dict[str, Any]
    execute: Callable[[dict[str, Any]], str]

    @property
    def name(self) -> str:
        return self.kind.value


CREATE_ISSUE_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["projectKey", "summary", "description", "assigneeEmailAddress"],
    "additionalProperties": False,
    "properties": {
        "projectKey": {"type": "string", "description": "La clave del proyecto en Jira (ej. 'PROJ')."},
        "summary": {"type": "string", "description": "Un resumen conciso del issue."},
        "description": {
            "type": "string",
            "description": "Descripción detallada del issue en Markdown (párrafos, ### encabezados y tablas).",
        },
        "issueType": {
            "type": "string",
            "description": "El tipo de issue (ej. 'Epic', 'Story', 'Task', 'Sub-task'). Por defecto 'Task'.",
        },
        "assigneeEmailAddress": {"type": "string", "description": "Email del responsable."},
        "uatDeployDate": {"type": "string", "description": "Fecha de despliegue en UAT (YYYY-MM-DD)."},
        "prodDeployDate": {"type": "string", "description": "Fecha de despliegue en producción (YYYY-MM-DD)."},
        "priority": {"type": "string", "description": "Prioridad (ej. 'Highest', 'High', 'Medium', 'Low')."},
        "methodology": {
            "type": "array",
            "items": {"type": "string"},
            "description": "Etiquetas de metodología.",
        },
        "parentIssueKey": {"type": "string", "description": "Clave del issue padre para subtareas."},
    },
}

DELEGATE_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["query"],
    "additionalProperties": False,
    "properties": {
        "query": {
            "type": "string",
            "description": "La tarea de desarrollo, con todo el markdown de la épica, historia o subtarea.",
        },
        "issueKey": {"type": "string", "description": "Clave del issue de Jira relacionado, si existe."},
    },
}


def _matches_json_type(value: Any, expected: str) -> bool:
    """
    Check whether a Python value matches a basic JSON Schema type.

    Args:
        value: The value to check.
        expected: The JSON Schema type string (e.g., "string", "integer").

    Returns:
        True if the value matches the expected type, else False.
    """
    if expected == "string":
        return isinstance(value, str)
    if expected == "integer":
        return isinstance(value, int) and not isinstance(value, bool)
    if expected == "number":
        return isinstance(value, int | float) and not isinstance(value, bool)
    if expected == "boolean":
        return isinstance(value, bool)
    if expected == "object":
        return isinstance(value, dict)
    if expected == "array":
        return isinstance(value, list)
    if expected == "null":
        return value is None
    # Unknown type: be conservative
    return False


def _check_type(key: str, value: Any, prop: dict[str, Any]) -> None:
    expected_type = prop.get("type")
    if isinstance(expected_type, list):
        if not any(_matches_json_type(value, t) for t in expected_type if isinstance(t, str)):
            raise ToolValidationError(
                f"Argument '{key}' has wrong type; expected one of {expected_type}"
            )
    elif isinstance(expected_type, str) and not _matches_json_type(value, expected_type):
        raise ToolValidationError(f"Argument '{key}' has wrong type; expected {expected_type}")

    allowed = prop.get("enum")
    if isinstance(allowed, list) and value not in allowed:
        raise ToolValidationError(f"Argument '{key}' must be one of {allowed}")

    items = prop.get("items")
    if isinstance(value, list) and isinstance(items, dict):
        for index, item in enumerate(value):
            _check_type(f"{key}[{index}]", item, items)


def validate_arguments(args: dict[str, Any], schema: dict[str, Any]) -> None:
    """
    Validate tool arguments against a subset of JSON Schema.

    Checks required fields, unknown fields when additionalProperties is false, basic
    property types, enums and array item types.

    Raises:
        ToolValidationError: If any check fails.
    """
    if INVALID_ARGUMENTS_KEY in args:
        raise ToolValidationError(f"Arguments are not a JSON object: {args[INVALID_ARGUMENTS_KEY]}")

    properties = schema.get("properties")
    required = schema.get("required", [])
    if not isinstance(properties, dict):
        properties = {}
    if not isinstance(required, list):
        required = []

    missing = [field for field in required if field not in args]
    if missing:
        raise ToolValidationError(f"Missing required argument(s): {', '.join(missing)}")

    if schema.get("additionalProperties", True) is False:
        unknown = [k for k in args if k not in properties]
        if unknown:
            raise ToolValidationError(f"Unknown argument(s) not allowed: {', '.join(unknown)}")

    for key, val in args.items():
        prop = properties.get(key)
        if isinstance(prop, dict):
            _check_type(key, val, prop)


class ToolRegistry:
    """Mapping from tool kind to tool, with validation and ordered concurrent dispatch."""

    def __init__(self, tools: Iterable[ToolSpec], *, max_workers: int = _MAX_WORKERS) -> None:
        self._tools: dict[ToolKind, ToolSpec] = {tool.kind: tool for tool in tools}
        self._max_workers = max_workers

    def __iter__(self) -> Iterator[ToolSpec]:
        return iter(self._tools.values())

    def get(self, name: str) -> ToolSpec | None:
        try:
            return self._tools.get(ToolKind(name))
        except ValueError:
            return None

    def openai_tools(self) -> list[dict[str, Any]]:
        """Function-tool specs for the OpenAI Responses API."""
        return [
            {
                "type": "function",
                "name": tool.name,
                "description": tool.description,
                "parameters": tool.input_schema,
            }
            for tool in self
        ]

    def dispatch(self, call: ToolCall) -> Message:
        """Validate and run one tool call. Always returns the tool message answering it."""
        tool = self.get(call.name)
        if tool is None:
            logger.warning(f"Model requested unknown tool: {call.name}")
            return Message.tool(f"Error: unknown tool '{call.name}'", call.id)

        try:
            validate_arguments(call.arguments, tool.input_schema)
        except ToolValidationError as e:
            logger.warning(f"Invalid arguments for {call.name} ({call.id}): {e}")
            return Message.tool(f"Error: invalid arguments for {call.name}: {e}", call.id)

        try:
            result = tool.execute(call.arguments)
        except Exception as e:
            logger.exception(f"Tool {call.name} ({call.id}) failed: {e}")
            return Message.tool(f"Error: {e}", call.id)

        logger.info(f"Tool {call.name} ({call.id}) completed")
        return Message.tool(result, call.id)

    def dispatch_all(self, calls: list[ToolCall]) -> list[Message]:
        """
        Run all calls of one assistant turn and return their replies in call order.

        Calls are independent, so they run concurrently; map() keeps the original order
        regardless of which call finishes first.
        """
        if len(calls) <= 1:
            return [self.dispatch(call) for call in calls]

        workers = min(len(calls), self._max_workers)
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="tool") as executor:
            return list(executor.map(self.dispatch, calls))


def create_issue_tool(jira: JiraClient) -> ToolSpec:
    def execute(args: dict[str, Any]) -> str:
        issue = IssueRequest(
            project_key=args["projectKey"],
            summary=args["summary"],
            description=args["description"],
            assignee_email_address=args["assigneeEmailAddress"],
            issue_type=args.get("issueType") or "Task",
            uat_deploy_date=args.get("uatDeployDate"),
            prod_deploy_date=args.get("prodDeployDate"),
            priority=args.get("priority") or "Medium",
            methodology=list(args.get("methodology") or []),
            parent_issue_key=args.get("parentIssueKey"),
        )
        created = jira.create_issue(issue)
        return f"Issue {created.issue_key} creado exitosamente. URL: {created.issue_url}"

    return ToolSpec(
        kind=ToolKind.CREATE_ISSUE,
        description=(
            "Crea un nuevo issue en Jira (épica, historia, tarea o subtarea) con los detalles "
            "proporcionados. La descripción se escribe en Markdown."
        ),
        input_schema=CREATE_ISSUE_SCHEMA,
        execute=execute,
    )


def delegate_to_development_tool(development: DevelopmentClient) -> ToolSpec:
    def execute(args: dict[str, Any]) -> str:
        return development.delegate(args["query"], args.get("issueKey"))

    return ToolSpec(
        kind=ToolKind.DELEGATE_TO_DEVELOPMENT,
        description=(
            "Envía una tarea de desarrollo de código al agente de desarrollo y devuelve su "
            "resultado. Pregunta siempre al usuario antes de usarla."
        ),
        input_schema=DELEGATE_SCHEMA,
        execute=execute,
    )


def build_tool_registry(jira: JiraClient, development: DevelopmentClient) -> ToolRegistry:
    return ToolRegistry([create_issue_tool(jira), delegate_to_development_tool(development)])


def describe_calls(calls: Iterable[ToolCall]) -> str:
    """Compact one-line summary of tool calls for logs (argument names only)."""
    return ", ".join(f"{c.name}({', '.join(sorted(c.arguments))})" for c in calls) or "none"


def parse_arguments(raw: str | None) -> dict[str, Any]:
    """Decode model-produced JSON arguments; anything but an object is flagged for validation."""
    try:
        parsed = json.loads(raw or "{}")
    except json.JSONDecodeError as e:
        return {INVALID_ARGUMENTS_KEY: f"invalid JSON ({e})"}
    if not isinstance(parsed, dict):
        return {INVALID_ARGUMENTS_KEY: f"expected an object, got {type(parsed).__name__}"}
    return parsed
