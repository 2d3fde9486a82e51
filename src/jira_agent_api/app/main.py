import json
from typing import Any

from redis.exceptions import RedisError

from jira_agent_api.app.config import (
    EVENT_IDEMPOTENCY_TTL,
    INVOKE_LAMBDA_HANDLER,
    INVOKE_LAMBDA_MODULE,
    INVOKE_LAMBDA_NAME,
    REDIS_NAMESPACE,
    AgentAPISettings,
    get_settings,
)
from jira_agent_api.app.process_event import is_user_message, process_event_data
from jira_agent_api.auth.slack_auth import verify_slack_signature
from jira_shared.platform_manager import create_logger, invoke_lambda
from jira_shared.redis_manager import RedisManager, build_redis_manager
from jira_shared.slack_manager import get_user_name, post_to_slack, set_thread_status

logger = create_logger(logger_name="jira-agent-api", log_level="INFO")

GREETING_INTRO = (
    "Puedo ayudarte a convertir *texto libre o contexto de producto* en artefactos listos "
    "para Jira: épicas, historias de usuario, subtareas técnicas y más.\n\n"
    "Puedes empezar escribiendo algo como:\n"
    "• `Crea una épica para exponer comerceCode en el API de branches`\n"
    "• `Genera historias con criterios de aceptación para este flujo`\n\n"
    "¿Con qué quieres comenzar?"
)

_redis_manager: RedisManager | None = None


def get_redis_manager() -> RedisManager:
    """Create the Redis manager once per container."""
    global _redis_manager
    if _redis_manager is None:
        _redis_manager = build_redis_manager(
            get_settings().redis_url,
            namespace=REDIS_NAMESPACE,
            default_idem_ttl=EVENT_IDEMPOTENCY_TTL,
        )
    return _redis_manager


def create_slack_response() -> dict[str, Any]:
    """
    Create a standard Slack response for acknowledgement, with status code 200 and body 'ok'.
    """
    return create_response(200, "ok")


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


def greeting_blocks(user_name: str | None) -> list[dict[str, Any]]:
    """Header and intro blocks posted when a user opens an assistant thread."""
    greeting = f"🎯 ¡Hola, {user_name}! Soy tu asistente para Jira" if user_name else (
        "🎯 ¡Hola! Soy tu asistente para Jira"
    )
    return [
        {"type": "header", "text": {"type": "plain_text", "text": greeting}},
        {"type": "section", "text": {"type": "mrkdwn", "text": GREETING_INTRO}},
    ]


def _handle_thread_started(slack_event: dict[str, Any], settings: AgentAPISettings) -> dict[str, Any]:
    assistant_thread = slack_event.get("assistant_thread") or {}
    channel_id = assistant_thread.get("channel_id", "")
    thread_ts = assistant_thread.get("thread_ts") or slack_event.get("event_ts")
    user_name = get_user_name(
        user_id=assistant_thread.get("user_id", ""), slack_bot_token=settings.slack_bot_token
    )

    blocks = greeting_blocks(user_name)
    response = post_to_slack(
        channel_id=channel_id,
        slack_bot_token=settings.slack_bot_token,
        message=blocks[0]["text"]["text"],
        thread_ts=thread_ts,
        blocks=blocks,
    )
    if not response.get("ok"):
        logger.error(f"Could not post greeting: {response.get('error')}")
    return create_slack_response()


def _handle_user_message(body_json: dict[str, Any], settings: AgentAPISettings) -> dict[str, Any]:
    slack_event = body_json.get("event") or {}
    event_id = body_json.get("event_id")
    channel_id = slack_event.get("channel", "")
    thread_ts = slack_event.get("thread_ts") or slack_event.get("ts")

    # 1. Slack retries deliveries: only the first copy of an event is processed
    try:
        redis_manager = get_redis_manager()
        if event_id and redis_manager.has_idempotency(event_id):
            logger.info(f"Event {event_id} already processed. Ignoring.")
            return create_response(
                200, json.dumps({"message": "Event already processed"}), "application/json"
            )
    except RedisError as e:
        logger.error(f"Redis error while checking event {event_id}: {e}")
        return create_response(500, "Internal server error")

    # 2. Show the assistant status while the agent works
    status = set_thread_status(
        channel_id=channel_id, thread_ts=thread_ts, slack_bot_token=settings.slack_bot_token
    )
    if not status.get("ok"):
        logger.warning(f"Could not set thread status: {status.get('error')}")

    # 3. Invoke the agent lambda with the whole Slack body
    logger.info(f"Event {event_id} is new. Invoking {INVOKE_LAMBDA_NAME}")
    try:
        invoke_lambda(
            body_json,
            function_name=INVOKE_LAMBDA_NAME,
            lambda_handler=INVOKE_LAMBDA_HANDLER,
            local_module=INVOKE_LAMBDA_MODULE,  # <-- Unused in AWS deployment
        )
    except Exception as e:
        logger.error(f"Error invoking lambda function for event {event_id}: {e}")
        return create_response(
            500, json.dumps({"message": "Error invoking processing Lambda"}), "application/json"
        )

    # 4. Mark the event as processed so retries do not invoke the agent again
    if event_id:
        try:
            redis_manager.set_idempotency(event_id)
        except RedisError as e:
            logger.error(f"Could not mark event {event_id} as processed: {e}")

    return create_response(
        200, json.dumps({"message": "Event processed successfully"}), "application/json"
    )


def process(event: dict[str, Any]) -> dict[str, Any]:
    """
    Process the incoming HTTP Gateway event from the Slack Events API.
    """
    logger.info("Jira agent API lambda handler called")

    try:
        headers, body_raw, body_json = process_event_data(event)
    except ValueError as e:
        logger.error(e)
        return create_response(400, str(e))

    # 1. Handle Slack's initial API verification challenge
    if body_json.get("type") == "url_verification":
        logger.info("Returning Slack challenge")
        return create_response(
            200, json.dumps({"challenge": body_json.get("challenge")}), "application/json"
        )

    # 2. Verify the Slack signature
    if not verify_slack_signature(body_raw, headers):
        # Return 200 to Slack to acknowledge receipt, but log the error
        # This prevents Slack from retrying the request
        logger.error("Invalid Slack signature")
        logger.error(f"Timestamp: {headers.get('x-slack-request-timestamp', '')}")
        logger.error(f"Slack signature: {headers.get('x-slack-signature', '')}")
        return create_slack_response()
    logger.info("Slack signature verified")

    # 3. Route event callbacks
    if body_json.get("type") != "event_callback":
        return create_slack_response()

    settings = get_settings()
    slack_event = body_json.get("event") or {}

    if slack_event.get("type") == "assistant_thread_started":
        logger.info("Assistant thread started")
        return _handle_thread_started(slack_event, settings)

    if is_user_message(slack_event):
        return _handle_user_message(body_json, settings)

    logger.debug(f"Ignoring Slack event of type {slack_event.get('type')}")
    return create_slack_response()
