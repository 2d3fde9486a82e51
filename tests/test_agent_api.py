from __future__ import annotations

import hashlib
import hmac
import json
import time

import pytest

from jira_agent_api.app import main
from jira_agent_api.app.config import AgentAPISettings
from jira_agent_api.auth import slack_auth
from jira_shared.redis_manager import RedisManager

SIGNING_SECRET = "test-signing-secret"


class FakeRedis:
    def __init__(self):
        self.values = {}

    def setex(self, key, ttl, value):
        self.values[key] = (value, ttl)

    def exists(self, key):
        return 1 if key in self.values else 0


def _slack_signature(*, secret: str, timestamp: str, body: bytes) -> str:
    base = b"v0:" + timestamp.encode("utf-8") + b":" + body
    digest = hmac.new(secret.encode("utf-8"), base, hashlib.sha256).hexdigest()
    return f"v0={digest}"


def _event(payload: dict, *, secret: str = SIGNING_SECRET) -> dict:
    body = json.dumps(payload).encode("utf-8")
    ts = str(int(time.time()))
    return {
        "body": body.decode("utf-8"),
        "headers": {
            "Content-Type": "application/json",
            "X-Slack-Request-Timestamp": ts,
            "X-Slack-Signature": _slack_signature(secret=secret, timestamp=ts, body=body),
        },
    }


def _message(event_id="Ev1", **event):
    slack_event = {
        "type": "message",
        "text": "Crea una épica",
        "user": "U123",
        "channel": "D456",
        "ts": "1700000000.000100",
    }
    slack_event.update(event)
    return {"type": "event_callback", "event_id": event_id, "event": slack_event}


@pytest.fixture
def calls(monkeypatch):
    settings = AgentAPISettings(
        slack_signing_secret=SIGNING_SECRET,
        slack_bot_token="xoxb-test",
        redis_host="localhost",
        redis_port="6379",
        redis_password="",
        redis_url="redis://localhost:6379",
    )
    recorded = {"invoke": [], "status": [], "posts": []}
    redis = FakeRedis()

    monkeypatch.setattr(main, "get_settings", lambda: settings)
    monkeypatch.setattr(slack_auth, "get_settings", lambda: settings)
    monkeypatch.setattr(main, "_redis_manager", RedisManager(redis, namespace="jira:agent"))
    monkeypatch.setattr(main, "invoke_lambda", lambda event, **kw: recorded["invoke"].append((event, kw)))
    monkeypatch.setattr(
        main, "set_thread_status", lambda **kw: recorded["status"].append(kw) or {"ok": True}
    )
    monkeypatch.setattr(main, "post_to_slack", lambda **kw: recorded["posts"].append(kw) or {"ok": True})
    monkeypatch.setattr(main, "get_user_name", lambda **kw: "Ana Pérez")
    recorded["redis"] = redis
    return recorded


def test_url_verification_returns_challenge(calls):
    response = main.process({"body": json.dumps({"type": "url_verification", "challenge": "abc123"})})

    assert response["statusCode"] == 200
    assert json.loads(response["body"]) == {"challenge": "abc123"}
    assert response["headers"]["Content-Type"] == "application/json"


def test_invalid_signature_is_acknowledged_but_ignored(calls):
    response = main.process(_event(_message(), secret="wrong-secret"))

    assert response["statusCode"] == 200
    assert response["body"] == "ok"
    assert calls["invoke"] == []


def test_new_message_invokes_agent_and_marks_event(calls):
    payload = _message()

    response = main.process(_event(payload))

    assert response["statusCode"] == 200
    assert len(calls["invoke"]) == 1
    event, kwargs = calls["invoke"][0]
    assert event == payload
    assert kwargs["function_name"] == "jira_agent"
    assert kwargs["local_module"] == "jira_agent.agent_handler"
    assert calls["status"] == [{
        "channel_id": "D456",
        "thread_ts": "1700000000.000100",
        "slack_bot_token": "xoxb-test",
    }]
    assert calls["redis"].values["jira:agent:idem:Ev1"] == ("1", 7 * 24 * 3600)


def test_redelivered_event_is_processed_once(calls):
    main.process(_event(_message()))
    response = main.process(_event(_message()))

    assert json.loads(response["body"]) == {"message": "Event already processed"}
    assert len(calls["invoke"]) == 1


def test_bot_messages_and_edits_are_ignored(calls):
    main.process(_event(_message(event_id="Ev2", bot_id="B1")))
    main.process(_event(_message(event_id="Ev3", subtype="message_changed")))

    assert calls["invoke"] == []
    assert calls["redis"].values == {}


def test_invoke_failure_leaves_event_unprocessed(calls, monkeypatch):
    def fail(event, **kwargs):
        raise RuntimeError("throttled")

    monkeypatch.setattr(main, "invoke_lambda", fail)

    response = main.process(_event(_message()))

    assert response["statusCode"] == 500
    assert calls["redis"].values == {}


def test_assistant_thread_started_posts_greeting(calls):
    payload = {
        "type": "event_callback",
        "event_id": "Ev9",
        "event": {
            "type": "assistant_thread_started",
            "assistant_thread": {"user_id": "U123", "channel_id": "D456", "thread_ts": "1700.1"},
            "event_ts": "1700.2",
        },
    }

    response = main.process(_event(payload))

    assert response["statusCode"] == 200
    post = calls["posts"][0]
    assert post["channel_id"] == "D456"
    assert post["thread_ts"] == "1700.1"
    assert post["blocks"][0]["type"] == "header"
    assert "Ana Pérez" in post["blocks"][0]["text"]["text"]
    assert post["blocks"][1]["type"] == "section"
    assert calls["invoke"] == []


def test_local_server_wraps_the_lambda(calls):
    from fastapi.testclient import TestClient

    from jira_agent_api.fast_api_server import app

    client = TestClient(app)

    assert client.get("/healthz").json() == {"ok": True}

    r = client.post("/slack/events", json={"type": "url_verification", "challenge": "xyz"})
    assert r.status_code == 200
    assert r.json() == {"challenge": "xyz"}
