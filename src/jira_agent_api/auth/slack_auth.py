from slack_sdk.signature import SignatureVerifier

from jira_agent_api.app.config import get_settings


def verify_slack_signature(body_raw: str | bytes, headers: dict[str, str]) -> bool:
    """Verify the Slack signature."""

    # Ensure body_raw is in bytes for Slack signature verification
    if isinstance(body_raw, str):
        body_raw = body_raw.encode("utf-8")

    # Verify Slack request (use raw body passed by Slack, not the parsed JSON)
    settings = get_settings()
    verifier = SignatureVerifier(settings.slack_signing_secret)
    return verifier.is_valid_request(body_raw, headers)
