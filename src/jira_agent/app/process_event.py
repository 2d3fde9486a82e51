import re
from typing import Any

MENTION_PATTERN = re.compile(r"^<@[^>]+>\s*")


def _get_event_message(event: dict[str, Any]) -> str:
    # Extract the message from the Slack event
    raw_text = event.get("text")  # e.g. "<@U09KXC8V0M8> Crea una épica para ..."

    # Remove the first leading @mention token if present (common for app_mention)
    if isinstance(raw_text, str):
        return MENTION_PATTERN.sub("", raw_text).strip()
    return ""


def validate_data(data: dict[str, Any]) -> bool:
    """Validate the message data extracted from the Slack event."""
    if not data.get("message"):
        raise ValueError("No message provided")

    if not data.get("channel_id"):
        raise ValueError("No channel_id provided in the Slack request")

    if not data.get("thread_ts"):
        raise ValueError("No thread_ts or ts provided in the Slack request")

    return True


def process_event_data(event: dict[str, Any]) -> dict[str, Any]:
    """
    Build the agent input from the Slack event body forwarded by the events Lambda.

    The conversation is keyed by the thread timestamp, or by the message timestamp
    when the message starts a new thread.
    """
    slack_event = event.get("event")
    if not isinstance(slack_event, dict):
        raise ValueError("Invalid data: no Slack event in payload")

    data = {
        "message": _get_event_message(slack_event),
        "thread_ts": str(slack_event.get("thread_ts") or slack_event.get("ts") or ""),
        "channel_id": str(slack_event.get("channel", "")),
        "user_id": str(slack_event.get("user", "")),
        "event_id": event.get("event_id"),
    }

    try:
        validate_data(data)
    except ValueError as e:
        raise ValueError(f"Invalid data: {e}") from e
    return data
