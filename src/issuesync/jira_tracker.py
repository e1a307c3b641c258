"""Jira tracker adapter built on the Jira REST API.

Tracker URL: ``https://[email:token@]host[/context]?project=KEY[&issuetype=Task]``.
The ``project`` parameter restricts listing to one project and is required to
create issues. Issues are addressed by their numeric Jira ID.
"""

from __future__ import annotations

import datetime as dt
import logging
from typing import TYPE_CHECKING, Any, BinaryIO, Final, Self
from urllib.parse import parse_qs, urlsplit, urlunsplit

from . import utils
from .attachments import HttpContent
from .exceptions import TrackerError
from .issue_builder import build_comment_body, build_issue_body, parse_timestamp
from .jira_client import JiraApiClient
from .models import Attachment, Comment, Issue, User
from .tracker import BaseTracker

if TYPE_CHECKING:
    from .models import AttachmentID, CommentID, IssueID

logger: logging.Logger = logging.getLogger(__name__)

MAX_LISTED_ISSUES: Final[int] = 1000
_PAGE_SIZE: Final[int] = 100
_EMAIL_ENV_VAR: Final[str] = "JIRA_EMAIL"
_TOKEN_ENV_VAR: Final[str] = "JIRA_API_TOKEN"  # noqa: S105
_DEFAULT_TOKEN_PASS_PATH: Final[str] = "jira/cli/token"  # noqa: S105
_ISSUE_FIELDS: Final[list[str]] = ["summary", "description", "reporter", "creator", "created", "status"]


def _to_user(*candidates: dict[str, Any] | None) -> User:
    """Return the first candidate carrying an account ID (or server user name)."""
    for candidate in candidates:
        if not candidate:
            continue
        user_id = candidate.get("accountId") or candidate.get("name") or candidate.get("key")
        if not user_id:
            continue
        return User(
            id=str(user_id),
            real_name=candidate.get("displayName") or "",
            email=candidate.get("emailAddress") or "",
        )
    return User()


def jql_timestamp(since: dt.datetime) -> str:
    """Format a timestamp for JQL (minute precision, UTC)."""
    return since.astimezone(dt.UTC).strftime("%Y/%m/%d %H:%M")


class JiraTracker(BaseTracker):
    """Tracker backed by a Jira instance (optionally one project of it)."""

    _client: JiraApiClient
    project_key: str | None
    issue_type: str

    def __init__(
        self,
        client: JiraApiClient,
        tracker_id: str,
        *,
        project_key: str | None = None,
        issue_type: str = "Task",
    ) -> None:
        super().__init__(tracker_id)
        self._client = client
        self.project_key = project_key
        self.issue_type = issue_type

    @classmethod
    def from_url(cls, base_url: str) -> Self:
        """Build the tracker from ``https://[email:token@]host?project=KEY``."""
        url, username, password = utils.split_credentials(base_url)
        parts = urlsplit(url)
        query = parse_qs(parts.query)
        server_url = urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))
        if not parts.netloc:
            msg = f"Invalid Jira URL: {url!r}. Expected format: 'https://host?project=KEY'"
            raise TrackerError(msg)

        email = username or utils.resolve_secret(None, _EMAIL_ENV_VAR, "jira/cli/email")
        token = utils.resolve_secret(password, _TOKEN_ENV_VAR, _DEFAULT_TOKEN_PASS_PATH)
        if token is None:
            logger.warning("No Jira API token specified nor found, using anonymous access")
        client = JiraApiClient(server_url, email=email, api_token=token)
        logger.info(f"Using Jira at {server_url}")
        return cls(
            client,
            url,
            project_key=query.get("project", [None])[0],
            issue_type=query.get("issuetype", ["Task"])[0],
        )

    def get_issue(self, issue_id: IssueID) -> Issue:
        data = self._client.get(f"issue/{issue_id}", params={"fields": ",".join(_ISSUE_FIELDS)})
        fields = data.get("fields", {})
        return Issue(
            id=str(data["id"]),
            summary=fields.get("summary") or "",
            body=fields.get("description") or "",
            author=_to_user(fields.get("reporter"), fields.get("creator")),
            created_at=parse_timestamp(fields.get("created")),
            state=(fields.get("status") or {}).get("name", ""),
        )

    def list_issues(self, since: dt.datetime) -> list[Issue]:
        """Page through a JQL search for issues updated at or after ``since``."""
        clauses = [f'updated >= "{jql_timestamp(since)}"']
        if self.project_key:
            clauses.insert(0, f'project = "{self.project_key}"')
        jql = " AND ".join(clauses) + " ORDER BY updated ASC"

        issues: list[Issue] = []
        while len(issues) < MAX_LISTED_ISSUES:
            page = self._client.search(jql, ["id"], start_at=len(issues), max_results=_PAGE_SIZE)
            found = page.get("issues", [])
            issues.extend(Issue(id=str(item["id"])) for item in found)
            if not found or len(issues) >= page.get("total", 0):
                break
        logger.debug(f"Listed {len(issues)} Jira issues changed since {since.isoformat()}")
        return issues[:MAX_LISTED_ISSUES]

    def create_issue(self, issue: Issue) -> IssueID:
        if not self.project_key:
            msg = f"Cannot create Jira issues on {self.tracker_id}: no 'project' parameter in the tracker URL"
            raise TrackerError(msg)
        data = self._client.post(
            "issue",
            json={
                "fields": {
                    "project": {"key": self.project_key},
                    "summary": issue.summary or f"Issue {issue.id}",
                    "description": build_issue_body(issue),
                    "issuetype": {"name": self.issue_type},
                }
            },
        )
        logger.debug(f"Created Jira issue {data.get('key')} ({data['id']})")
        return str(data["id"])

    def list_comments(self, issue_id: IssueID) -> list[Comment]:
        data = self._client.get(f"issue/{issue_id}/comment")
        return [
            Comment(
                id=str(item["id"]),
                body=item.get("body") or "",
                author=_to_user(item.get("author"), item.get("updateAuthor")),
                created_at=parse_timestamp(item.get("created")),
            )
            for item in data.get("comments", [])
        ]

    def add_comment(self, issue_id: IssueID, comment: Comment) -> CommentID:
        data = self._client.post(f"issue/{issue_id}/comment", json={"body": build_comment_body(comment)})
        return str(data["id"])

    def list_attachments(self, issue_id: IssueID) -> list[Attachment]:
        data = self._client.get(f"issue/{issue_id}", params={"fields": "attachment"})
        return [
            Attachment(
                id=str(item["id"]),
                name=item.get("filename", ""),
                mime_type=item.get("mimeType") or "application/octet-stream",
                author=_to_user(item.get("author")),
                created_at=parse_timestamp(item.get("created")),
                content=HttpContent(self._client.session, item["content"]),
            )
            for item in data.get("fields", {}).get("attachment", [])
        ]

    def add_attachment(self, issue_id: IssueID, attachment: Attachment, body: BinaryIO) -> AttachmentID:
        created = self._client.upload_attachment(issue_id, attachment.name, body, attachment.mime_type)
        if not created:
            msg = f"Jira returned no attachment for {attachment.name} on issue {issue_id}"
            raise TrackerError(msg)
        return str(created[0]["id"])
