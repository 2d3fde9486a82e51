from typing import Any

from jira_agent.app.config import get_settings
from jira_agent.app.logging import log_request
from jira_agent.app.process_event import process_event_data
from jira_agent.errors import ConversationBusyError
from jira_agent.services.session_service import AgentClients, run_agent
from jira_shared.platform_manager import create_logger
from jira_shared.slack_manager import get_user_name, post_to_slack

logger = create_logger(logger_name="jira-agent", log_level="INFO")

FAILURE_MESSAGE = (
    "Lo siento, ocurrió un error al procesar tu solicitud. Inténtalo de nuevo en unos minutos."
)
BUSY_MESSAGE = (
    "Todavía estoy trabajando en tu mensaje anterior en este hilo. "
    "Espera mi respuesta antes de enviar otro mensaje."
)


def create_response(
    status_code: int, body: str, content_type: str = "text/plain"
) -> dict[str, Any]:
    """
    Create a standard HTTP response.
    """
    return {
        "statusCode": status_code,
        "body": body,
        "headers": {"Content-Type": content_type},
        "isBase64Encoded": False,
    }


def _reply(data: dict[str, Any], bot_token: str, message: str) -> dict[str, Any]:
    response = post_to_slack(
        channel_id=data["channel_id"],
        slack_bot_token=bot_token,
        message=message,
        thread_ts=data["thread_ts"],
    )
    if not response.get("ok"):
        logger.error(f"Slack post failed: {response.get('error')}")
    return response


def process(event: dict[str, Any], clients: AgentClients | None = None) -> dict[str, Any]:
    """Process a Slack message event forwarded by the events Lambda."""

    # Extract the message, thread and user from the Slack event
    try:
        data = process_event_data(event)
    except ValueError as e:
        logger.error(e)
        return create_response(status_code=400, body=str(e))

    log_request(data, logger)
    settings = get_settings()
    bot_token = settings.slack_bot_token

    user_name = get_user_name(user_id=data["user_id"], slack_bot_token=bot_token)
    if not user_name:
        logger.warning(f"Could not resolve Slack user name for {data['user_id']}")

    # Run the agent for this thread
    try:
        answer = run_agent(data["message"], user_name, data["thread_ts"], clients=clients)
    except ConversationBusyError as e:
        logger.warning(e)
        _reply(data, bot_token, BUSY_MESSAGE)
        return create_response(status_code=409, body="Conversation busy")
    except Exception as e:
        logger.exception(f"Agent run failed for thread {data['thread_ts']}: {e}")
        _reply(data, bot_token, FAILURE_MESSAGE)
        return create_response(status_code=500, body="Internal server error")

    # Post the answer in the thread
    response = _reply(data, bot_token, answer)
    if not response.get("ok"):
        return create_response(status_code=502, body=f"Slack error: {response.get('error')}")

    logger.info(f"Answer posted to thread {data['thread_ts']}")
    return create_response(status_code=200, body=answer)
