from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import requests
from requests.auth import HTTPBasicAuth

from jira_agent.errors import JiraApiError, NoMatchingAccountError
from jira_agent.services.adf_renderer import markdown_to_adf

_TIMEOUT = 15.0

# Custom fields of the Jira Cloud instance
UAT_DEPLOY_DATE_FIELD = "customfield_11942"
PROD_DEPLOY_DATE_FIELD = "customfield_11896"
METHODOLOGY_FIELD = "customfield_12155"

ERROR_PREFIX = "Error al crear el issue en Jira"


@dataclass
class IssueRequest:
    project_key: str
    summary: str
    description: str
    assignee_email_address: str
    issue_type: str = "Task"
    uat_deploy_date: str | None = None
    prod_deploy_date: str | None = None
    priority: str | None = "Medium"
    methodology: list[str] = field(default_factory=list)
    parent_issue_key: str | None = None


@dataclass(frozen=True)
class CreatedIssue:
    issue_key: str
    issue_url: str


def _error_detail(err: requests.RequestException) -> str:
    """Extract Jira's own error text from a failed response, falling back to the transport error."""
    response = getattr(err, "response", None)
    if response is None:
        return str(err)

    try:
        payload = response.json()
    except ValueError:
        return str(err)

    if not isinstance(payload, dict):
        return str(err)

    details: list[str] = [str(m) for m in payload.get("errorMessages") or []]
    field_errors = payload.get("errors") or {}
    if isinstance(field_errors, dict):
        details.extend(f"{name}: {message}" for name, message in field_errors.items())

    return ", ".join(details) if details else str(err)


class JiraClient:
    """
    Thin client for the Jira Cloud REST API (v3).

    Args:
        domain: The Atlassian site name (``<domain>.atlassian.net``).
        email: Account e-mail used for basic auth.
        api_token: API token paired with ``email``.
        timeout: Per-request timeout in seconds.
        session: Optional pre-built session (tests).
    """

    def __init__(
        self,
        domain: str,
        email: str,
        api_token: str,
        *,
        timeout: float = _TIMEOUT,
        session: requests.Session | None = None,
    ) -> None:
        if not domain or not email or not api_token:
            raise ValueError("Missing required Jira configuration")

        self.base_url = f"https://{domain}.atlassian.net"
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.auth = HTTPBasicAuth(email, api_token)
        self.session.headers.update({
            "Accept": "application/json",
            "Content-Type": "application/json",
        })

    def browse_url(self, issue_key: str) -> str:
        return f"{self.base_url}/browse/{issue_key}"

    def find_account_id(self, email_address: str) -> str:
        """
        Resolve an e-mail address to a Jira account id.

        Raises:
            NoMatchingAccountError: If no account matches. The first match wins otherwise.
            JiraApiError: If the search request fails.
        """
        url = f"{self.base_url}/rest/api/3/user/search"
        try:
            resp = self.session.get(url, params={"query": email_address}, timeout=self.timeout)
            resp.raise_for_status()
        except requests.RequestException as e:
            raise JiraApiError(f"{ERROR_PREFIX}: {_error_detail(e)}") from e

        accounts = resp.json()
        if not isinstance(accounts, list) or not accounts:
            raise NoMatchingAccountError(
                f"No se encontró un usuario con el email: {email_address}"
            )
        return str(accounts[0]["accountId"])

    def build_issue_fields(self, issue: IssueRequest, assignee_id: str) -> dict[str, Any]:
        fields: dict[str, Any] = {
            "project": {"key": issue.project_key},
            "summary": issue.summary,
            "description": markdown_to_adf(issue.description),
            "issuetype": {"name": issue.issue_type},
            "assignee": {"id": assignee_id},
        }
        if issue.uat_deploy_date:
            fields[UAT_DEPLOY_DATE_FIELD] = issue.uat_deploy_date
        if issue.prod_deploy_date:
            fields[PROD_DEPLOY_DATE_FIELD] = issue.prod_deploy_date
        if issue.priority:
            fields["priority"] = {"name": issue.priority}
        if issue.methodology:
            fields[METHODOLOGY_FIELD] = [{"value": method} for method in issue.methodology]
        if issue.parent_issue_key:
            fields["parent"] = {"key": issue.parent_issue_key}
        return fields

    def create_issue(self, issue: IssueRequest) -> CreatedIssue:
        """
        Create an issue and return its key and browsable URL.

        Nothing is submitted when the assignee lookup fails.
        """
        assignee_id = self.find_account_id(issue.assignee_email_address)
        body = {"fields": self.build_issue_fields(issue, assignee_id)}

        url = f"{self.base_url}/rest/api/3/issue"
        try:
            resp = self.session.post(url, json=body, timeout=self.timeout)
            resp.raise_for_status()
        except requests.RequestException as e:
            raise JiraApiError(f"{ERROR_PREFIX}: {_error_detail(e)}") from e

        issue_key = str(resp.json()["key"])
        return CreatedIssue(issue_key=issue_key, issue_url=self.browse_url(issue_key))
