from typing import Any

from jira_agent_api.app.main import process


def lambda_handler(event: dict[str, Any], context: Any) -> dict[str, Any]:
    """AWS Lambda entry point for the Jira Agent events API."""
    try:
        return process(event)
    except Exception as e:
        import traceback

        traceback.print_exc()
        raise Exception(f"Error in processing Jira Agent API: {e}") from e
