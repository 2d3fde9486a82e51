from typing import Any

from jira_agent.app.main import process


def agent_lambda_handler(event: dict[str, Any], context: Any) -> dict[str, Any]:
    """AWS Lambda entry point for the Jira Agent."""
    try:
        return process(event)
    except Exception as e:
        import traceback

        traceback.print_exc()
        raise Exception(f"Error in processing Jira Agent: {e}") from e
