"""
Jira API Client - Low-level HTTP client for the Jira REST API (v2).

This handles the raw HTTP communication with Jira.
The JiraTracker uses this to implement the Tracker protocol.
"""

from __future__ import annotations

import logging
from typing import Any, BinaryIO, Final

import requests

from .exceptions import IssueNotFoundError, TrackerError

logger: logging.Logger = logging.getLogger(__name__)

_TIMEOUT_SECONDS: Final[int] = 60


class JiraApiClient:
    """
    Low-level Jira REST API client.

    Handles authentication, request/response, and error handling.
    """

    API_VERSION: Final[str] = "2"

    base_url: str
    api_url: str
    session: requests.Session

    def __init__(self, base_url: str, *, email: str | None = None, api_token: str | None = None) -> None:
        """
        Initialize the Jira client.

        Args:
            base_url: Jira instance URL (e.g., https://company.atlassian.net)
            email: User email (or user name) for basic authentication
            api_token: API token; used as a bearer token when no email is given
        """
        self.base_url = base_url.rstrip("/")
        self.api_url = f"{self.base_url}/rest/api/{self.API_VERSION}"

        self.session = requests.Session()
        self.session.headers["Accept"] = "application/json"
        if email and api_token:
            self.session.auth = (email, api_token)
        elif api_token:
            self.session.headers["Authorization"] = f"Bearer {api_token}"

    def request(self, method: str, endpoint: str, **kwargs: Any) -> Any:
        """
        Make an authenticated request to the Jira API.

        Args:
            method: HTTP method (GET, POST, PUT, DELETE)
            endpoint: API endpoint (e.g., 'issue/10001')
            **kwargs: Additional arguments for requests

        Returns:
            Decoded JSON response ({} for an empty body)

        Raises:
            TrackerError: On transport or API errors
        """
        url = f"{self.api_url}/{endpoint}"
        try:
            response = self.session.request(method, url, timeout=_TIMEOUT_SECONDS, **kwargs)
        except requests.RequestException as e:
            msg = f"Jira request {method} {endpoint} failed: {e}"
            raise TrackerError(msg) from e
        return self._handle_response(response, method, endpoint)

    def get(self, endpoint: str, **kwargs: Any) -> Any:
        return self.request("GET", endpoint, **kwargs)

    def post(self, endpoint: str, **kwargs: Any) -> Any:
        return self.request("POST", endpoint, **kwargs)

    @staticmethod
    def _handle_response(response: requests.Response, method: str, endpoint: str) -> Any:
        """Handle API response and errors."""
        if response.ok:
            if response.text:
                return response.json()
            return {}

        status = response.status_code
        error_body = response.text[:500] if response.text else ""
        if status == 404:  # noqa: PLR2004
            msg = f"Not found: {endpoint}"
            raise IssueNotFoundError(msg)
        if status == 401:  # noqa: PLR2004
            msg = "Jira authentication failed. Check JIRA_EMAIL and JIRA_API_TOKEN."
            raise TrackerError(msg)
        msg = f"Jira API error {status} on {method} {endpoint}: {error_body}"
        raise TrackerError(msg)

    # -------------------------------------------------------------------------
    # Convenience Methods
    # -------------------------------------------------------------------------

    def search(self, jql: str, fields: list[str], *, start_at: int = 0, max_results: int = 100) -> dict[str, Any]:
        """Execute one page of a JQL search."""
        return self.post(
            "search",
            json={"jql": jql, "startAt": start_at, "maxResults": max_results, "fields": fields},
        )

    def upload_attachment(self, issue_id: str, filename: str, body: BinaryIO, mime_type: str) -> list[dict[str, Any]]:
        """Attach a file to an issue; Jira requires the XSRF bypass header."""
        return self.post(
            f"issue/{issue_id}/attachments",
            headers={"X-Atlassian-Token": "no-check"},
            files={"file": (filename, body, mime_type)},
        )
