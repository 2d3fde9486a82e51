"""
Error kinds raised by the agent.

Validation and tool errors are turned into tool messages by the dispatcher; the
remaining kinds abort the current run and are handled at the Lambda boundary.
"""


class StoreUnavailableError(RuntimeError):
    """The conversation store could not be reached or returned unreadable data."""


class ConversationBusyError(RuntimeError):
    """Another run currently holds the lock for this thread."""


class ToolValidationError(ValueError):
    """Tool arguments do not match the tool's input schema."""


class JiraApiError(RuntimeError):
    """The Jira REST API rejected a request or could not be reached."""


class NoMatchingAccountError(JiraApiError):
    """No Jira account matches the requested assignee."""


class DelegateStreamError(RuntimeError):
    """The development service stream failed or ended before its terminal event."""


class ModelInvocationError(RuntimeError):
    """The language model call failed."""


class AgentLoopLimitError(RuntimeError):
    """The agent loop exceeded its round cap or time budget."""
