"""
MantisBT API Client - Low-level HTTP client for the MantisBT REST API.

This handles the raw HTTP communication with MantisBT (2.x, ``/api/rest``).
The MantisTracker uses this to implement the Tracker protocol.
"""

from __future__ import annotations

import logging
from typing import Any, Final

import requests

from .exceptions import IssueNotFoundError, TrackerError

logger: logging.Logger = logging.getLogger(__name__)

_TIMEOUT_SECONDS: Final[int] = 60


class MantisApiClient:
    """
    Low-level MantisBT REST API client.

    Handles token authentication, request/response, and error handling.
    """

    base_url: str
    api_url: str
    session: requests.Session

    def __init__(self, base_url: str, *, api_token: str | None = None) -> None:
        """
        Initialize the MantisBT client.

        Args:
            base_url: MantisBT installation URL (e.g., https://bugs.example.com/mantisbt)
            api_token: API token created on the user's "API Tokens" page
        """
        self.base_url = base_url.rstrip("/")
        self.api_url = f"{self.base_url}/api/rest"

        self.session = requests.Session()
        self.session.headers["Accept"] = "application/json"
        if api_token:
            # MantisBT expects the bare token, without an auth scheme
            self.session.headers["Authorization"] = api_token

    def request(self, method: str, endpoint: str, **kwargs: Any) -> Any:
        """
        Make an authenticated request to the MantisBT API.

        Args:
            method: HTTP method (GET, POST, PATCH, DELETE)
            endpoint: API endpoint (e.g., 'issues/42')
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
            msg = f"MantisBT request {method} {endpoint} failed: {e}"
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
        if status in (401, 403):
            msg = "MantisBT authentication failed. Check MANTISBT_API_TOKEN."
            raise TrackerError(msg)
        msg = f"MantisBT API error {status} on {method} {endpoint}: {error_body}"
        raise TrackerError(msg)

    # -------------------------------------------------------------------------
    # Convenience Methods
    # -------------------------------------------------------------------------

    def get_issue(self, issue_id: str) -> dict[str, Any]:
        """Fetch one issue with its notes and attachment metadata."""
        issues = self.get(f"issues/{issue_id}").get("issues", [])
        if not issues:
            msg = f"Not found: issues/{issue_id}"
            raise IssueNotFoundError(msg)
        return issues[0]

    def list_issues(self, *, project_id: str | None = None, page: int = 1, page_size: int = 50) -> list[dict[str, Any]]:
        """Fetch one page of issues, most recently updated first."""
        params: dict[str, Any] = {"page": page, "page_size": page_size}
        if project_id:
            params["project_id"] = project_id
        return self.get("issues", params=params).get("issues", [])

    def get_file(self, issue_id: str, file_id: str) -> dict[str, Any]:
        """Fetch one attachment; its ``content`` is base64 encoded."""
        files = self.get(f"issues/{issue_id}/files/{file_id}").get("files", [])
        if not files:
            msg = f"Not found: issues/{issue_id}/files/{file_id}"
            raise IssueNotFoundError(msg)
        return files[0]
