import json
from typing import Any


def process_event_data(event: dict[str, Any]) -> tuple[dict[str, str], str | bytes, dict[str, Any]]:
    """Extract lower-cased headers, the raw body and the parsed JSON body."""
    # API Gateway HTTP APIs lower-case header names; FastAPI headers are case-insensitive
    headers = {str(k).lower(): str(v) for k, v in (event.get("headers") or {}).items()}

    body_raw = event.get("body") or ""
    # AWS API Gateway sends body as a string but FastAPI sends as bytes
    if not isinstance(body_raw, str | bytes):
        raise ValueError("Expecting string or bytes body")

    try:
        # Slack signature verification requires the raw bytes
        # but also parse JSON for easier processing
        if isinstance(body_raw, bytes):
            body_json = json.loads(body_raw.decode("utf-8"))
        else:
            body_json = json.loads(body_raw)
    except (json.JSONDecodeError, UnicodeDecodeError):
        body_json = {}

    if not isinstance(body_json, dict):
        body_json = {}

    return headers, body_raw, body_json


def is_user_message(slack_event: dict[str, Any]) -> bool:
    """True for human messages: no bot id, no subtype (edits, joins...) and some text."""
    return (
        slack_event.get("type") == "message"
        and not slack_event.get("bot_id")
        and not slack_event.get("subtype")
        and bool(slack_event.get("text"))
    )
