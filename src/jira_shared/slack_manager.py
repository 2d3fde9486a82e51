from typing import Any

from slack_sdk import WebClient
from slack_sdk.errors import SlackApiError

DEFAULT_THREAD_STATUS = "pensando..."


def post_to_slack(
    *,
    channel_id: str,
    slack_bot_token: str,
    message: str,
    thread_ts: str | None = None,
    blocks: list[dict[str, Any]] | None = None,
) -> dict[str, Any]:
    """Post a message (optionally in a thread) using the bot token from secrets."""
    if not channel_id:
        error_msg = (
            "Argument 'channel_id' is not set. You must provide a channel ID to post to Slack."
        )
        return {"ok": False, "error": error_msg}
    if not message and not blocks:
        error_msg = "Argument 'message' is not set. You must provide a message to post to Slack."
        return {"ok": False, "error": error_msg}
    if not slack_bot_token:
        return {"ok": False, "error": "SLACK_BOT_TOKEN not found in secrets"}

    try:
        client = WebClient(token=slack_bot_token)
        response = client.chat_postMessage(
            channel=channel_id, text=message, thread_ts=thread_ts, blocks=blocks
        )

        # Slack SDK returns a SlackResponse; convert minimal fields to dict-like for caller
        if response.get("ok"):
            return {
                "ok": True,
                "ts": response.get("ts"),
                "channel": response.get("channel"),
            }
        return {"ok": False, "error": f"Slack API error: {response.get('error')}"}

    except SlackApiError as e:
        error_msg = f"Slack API error: {e.response.get('error', str(e)) if e.response else str(e)}"
        return {"ok": False, "error": error_msg}


def get_user_name(*, user_id: str, slack_bot_token: str) -> str | None:
    """Return the user's normalized real name, or None when it cannot be resolved."""
    if not user_id or not slack_bot_token:
        return None

    try:
        client = WebClient(token=slack_bot_token)
        response = client.users_info(user=user_id)
    except SlackApiError:
        return None

    if not response.get("ok"):
        return None
    profile = (response.get("user") or {}).get("profile") or {}
    return profile.get("real_name_normalized") or profile.get("real_name") or None


def set_thread_status(
    *,
    channel_id: str,
    thread_ts: str,
    slack_bot_token: str,
    status: str = DEFAULT_THREAD_STATUS,
) -> dict[str, Any]:
    """Show the assistant 'typing' status in an assistant thread."""
    try:
        client = WebClient(token=slack_bot_token)
        response = client.assistant_threads_setStatus(
            channel_id=channel_id, thread_ts=thread_ts, status=status
        )
        return {"ok": bool(response.get("ok"))}
    except SlackApiError as e:
        error_msg = f"Slack API error: {e.response.get('error', str(e)) if e.response else str(e)}"
        return {"ok": False, "error": error_msg}
