from unittest.mock import MagicMock

import pytest
import requests

from jira_agent.errors import JiraApiError, NoMatchingAccountError
from jira_agent.services.jira_service import (
    METHODOLOGY_FIELD,
    PROD_DEPLOY_DATE_FIELD,
    UAT_DEPLOY_DATE_FIELD,
    IssueRequest,
    JiraClient,
)


def _response(payload, *, status_error=None):
    resp = MagicMock()
    resp.json.return_value = payload
    if status_error:
        resp.raise_for_status.side_effect = requests.HTTPError(status_error, response=resp)
    return resp


def _client(session):
    return JiraClient("acme", "bot@acme.com", "token", session=session)


def _issue(**overrides):
    data = {
        "project_key": "PROJ",
        "summary": "Exponer comerceCode",
        "description": "### Objetivo\nExponer comerceCode.",
        "assignee_email_address": "ana@acme.com",
    }
    data.update(overrides)
    return IssueRequest(**data)


def test_no_matching_account_never_posts_issue():
    session = MagicMock()
    session.get.return_value = _response([])

    with pytest.raises(NoMatchingAccountError):
        _client(session).create_issue(_issue())

    session.get.assert_called_once()
    assert session.get.call_args.kwargs["params"] == {"query": "ana@acme.com"}
    session.post.assert_not_called()


def test_first_matching_account_is_assignee():
    session = MagicMock()
    session.get.return_value = _response([{"accountId": "acc-1"}, {"accountId": "acc-2"}])
    session.post.return_value = _response({"key": "PROJ-42"})

    created = _client(session).create_issue(_issue())

    assert created.issue_key == "PROJ-42"
    assert created.issue_url == "https://acme.atlassian.net/browse/PROJ-42"
    fields = session.post.call_args.kwargs["json"]["fields"]
    assert fields["assignee"] == {"id": "acc-1"}


def test_issue_request_shape():
    session = MagicMock()
    session.get.return_value = _response([{"accountId": "acc-1"}])
    session.post.return_value = _response({"key": "PROJ-7"})

    _client(session).create_issue(
        _issue(
            issue_type="Sub-task",
            uat_deploy_date="2025-07-01",
            prod_deploy_date="2025-07-15",
            priority="High",
            methodology=["Kanban", "Scrum"],
            parent_issue_key="PROJ-1",
        )
    )

    url = session.post.call_args.args[0]
    fields = session.post.call_args.kwargs["json"]["fields"]
    assert url == "https://acme.atlassian.net/rest/api/3/issue"
    assert fields["project"] == {"key": "PROJ"}
    assert fields["issuetype"] == {"name": "Sub-task"}
    assert fields["priority"] == {"name": "High"}
    assert fields["parent"] == {"key": "PROJ-1"}
    assert fields[UAT_DEPLOY_DATE_FIELD] == "2025-07-01"
    assert fields[PROD_DEPLOY_DATE_FIELD] == "2025-07-15"
    assert fields[METHODOLOGY_FIELD] == [{"value": "Kanban"}, {"value": "Scrum"}]
    assert fields["description"]["type"] == "doc"
    assert fields["description"]["content"][0]["type"] == "heading"


def test_optional_fields_are_omitted():
    session = MagicMock()
    session.get.return_value = _response([{"accountId": "acc-1"}])
    session.post.return_value = _response({"key": "PROJ-8"})

    _client(session).create_issue(_issue(priority=None))

    fields = session.post.call_args.kwargs["json"]["fields"]
    for name in ("priority", "parent", UAT_DEPLOY_DATE_FIELD, PROD_DEPLOY_DATE_FIELD, METHODOLOGY_FIELD):
        assert name not in fields


def test_jira_error_detail_is_surfaced():
    session = MagicMock()
    session.get.return_value = _response([{"accountId": "acc-1"}])
    session.post.return_value = _response(
        {
            "errorMessages": ["Project does not exist", "Try again"],
            "errors": {"summary": "Summary is required"},
        },
        status_error="400 Client Error",
    )

    with pytest.raises(JiraApiError) as excinfo:
        _client(session).create_issue(_issue())

    assert str(excinfo.value) == (
        "Error al crear el issue en Jira: Project does not exist, Try again, "
        "summary: Summary is required"
    )


def test_transport_error_falls_back_to_its_message():
    session = MagicMock()
    session.get.side_effect = requests.ConnectionError("connection refused")

    with pytest.raises(JiraApiError, match="connection refused"):
        _client(session).create_issue(_issue())


def test_missing_configuration_is_rejected():
    with pytest.raises(ValueError):
        JiraClient("", "bot@acme.com", "token", session=MagicMock())
