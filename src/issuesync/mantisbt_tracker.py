"""MantisBT tracker adapter built on the MantisBT REST API.

Tracker URL: ``https://[token@]host[/path]?project=ID[&category=General]``.
The numeric ``project`` parameter restricts listing to one project and is
required to create issues. Notes are the comments of an issue; files are its
attachments, whose content the API returns base64 encoded.
"""

from __future__ import annotations

import base64
import binascii
import io
import logging
from typing import TYPE_CHECKING, Any, BinaryIO, Final, Self
from urllib.parse import parse_qs, urlsplit, urlunsplit

from . import utils
from .exceptions import TrackerError
from .issue_builder import build_comment_body, build_issue_body, parse_timestamp
from .mantisbt_client import MantisApiClient
from .models import EPOCH, Attachment, Comment, Issue, User
from .tracker import BaseTracker

if TYPE_CHECKING:
    import datetime as dt

    from .models import AttachmentID, CommentID, IssueID

logger: logging.Logger = logging.getLogger(__name__)

MAX_LISTED_ISSUES: Final[int] = 1000
_PAGE_SIZE: Final[int] = 50
_TOKEN_ENV_VAR: Final[str] = "MANTISBT_API_TOKEN"  # noqa: S105
_DEFAULT_TOKEN_PASS_PATH: Final[str] = "mantisbt/cli/token"  # noqa: S105


def _to_user(*candidates: dict[str, Any] | None) -> User:
    """Return the first candidate account carrying an ID."""
    for candidate in candidates:
        if not candidate or not candidate.get("id"):
            continue
        return User(
            id=str(candidate["id"]),
            real_name=candidate.get("real_name") or candidate.get("name") or "",
            email=candidate.get("email") or "",
        )
    return User()


def _to_issue(data: dict[str, Any]) -> Issue:
    return Issue(
        id=str(data["id"]),
        summary=data.get("summary") or "",
        body=data.get("description") or "",
        author=_to_user(data.get("reporter"), data.get("handler")),
        created_at=parse_timestamp(data.get("created_at")),
        state=(data.get("status") or {}).get("name", ""),
    )


class MantisFileContent:
    """Attachment content fetched from the issue files endpoint on each ``open()``."""

    _client: MantisApiClient
    issue_id: str
    file_id: str

    def __init__(self, client: MantisApiClient, issue_id: str, file_id: str) -> None:
        self._client = client
        self.issue_id = issue_id
        self.file_id = file_id

    def open(self) -> BinaryIO:
        data = self._client.get_file(self.issue_id, self.file_id)
        try:
            return io.BytesIO(base64.b64decode(data.get("content") or "", validate=True))
        except binascii.Error as e:
            msg = f"Malformed content of MantisBT file {self.file_id} on issue {self.issue_id}: {e}"
            raise TrackerError(msg) from e


class MantisTracker(BaseTracker):
    """Tracker backed by a MantisBT installation (optionally one project of it).

    Issue states are not mirrored onto MantisBT and the counterpart ID is not
    stored on its issues; both capabilities stay unimplemented.
    """

    _client: MantisApiClient
    project_id: str | None
    category: str

    def __init__(
        self,
        client: MantisApiClient,
        tracker_id: str,
        *,
        project_id: str | None = None,
        category: str = "General",
    ) -> None:
        super().__init__(tracker_id)
        self._client = client
        self.project_id = project_id
        self.category = category

    @classmethod
    def from_url(cls, base_url: str) -> Self:
        """Build the tracker from ``https://[token@]host/path?project=ID``.

        A password in the URL userinfo (or a bare username) is used as the API
        token and removed from the URL.
        """
        url, username, password = utils.split_credentials(base_url)
        parts = urlsplit(url)
        if not parts.netloc:
            msg = f"Invalid MantisBT URL: {url!r}. Expected format: 'https://host/mantisbt?project=ID'"
            raise TrackerError(msg)
        query = parse_qs(parts.query)
        project_id = query.get("project", [None])[0]
        if project_id is not None and not project_id.isdigit():
            msg = f"Invalid MantisBT project ID: {project_id!r}"
            raise TrackerError(msg)

        server_url = urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))
        token = utils.resolve_secret(password or username, _TOKEN_ENV_VAR, _DEFAULT_TOKEN_PASS_PATH)
        if token is None:
            logger.warning("No MantisBT API token specified nor found, using anonymous access")
        logger.info(f"Using MantisBT at {server_url}")
        return cls(
            MantisApiClient(server_url, api_token=token),
            url,
            project_id=project_id,
            category=query.get("category", ["General"])[0],
        )

    def get_issue(self, issue_id: IssueID) -> Issue:
        return _to_issue(self._client.get_issue(issue_id))

    def list_issues(self, since: dt.datetime) -> list[Issue]:
        """Page through the issues, newest update first, until one is older than ``since``."""
        issues: list[Issue] = []
        page = 1
        while len(issues) < MAX_LISTED_ISSUES:
            found = self._client.list_issues(project_id=self.project_id, page=page, page_size=_PAGE_SIZE)
            for item in found:
                updated_at = parse_timestamp(item.get("updated_at")) or EPOCH
                if updated_at < since:
                    found = []
                    break
                issues.append(_to_issue(item))
            if len(found) < _PAGE_SIZE:
                break
            page += 1
        logger.debug(f"Listed {len(issues)} MantisBT issues changed since {since.isoformat()}")
        return issues[:MAX_LISTED_ISSUES]

    def create_issue(self, issue: Issue) -> IssueID:
        if not self.project_id:
            msg = f"Cannot create MantisBT issues on {self.tracker_id}: no 'project' parameter in the tracker URL"
            raise TrackerError(msg)
        data = self._client.post(
            "issues",
            json={
                "summary": issue.summary or f"Issue {issue.id}",
                "description": build_issue_body(issue),
                "category": {"name": self.category},
                "project": {"id": int(self.project_id)},
            },
        )
        new_id = str(data.get("issue", {}).get("id", ""))
        logger.debug(f"Created MantisBT issue {new_id}")
        return new_id

    def list_comments(self, issue_id: IssueID) -> list[Comment]:
        return [
            Comment(
                id=str(note["id"]),
                body=note.get("text") or "",
                author=_to_user(note.get("reporter")),
                created_at=parse_timestamp(note.get("created_at")),
            )
            for note in self._client.get_issue(issue_id).get("notes", [])
        ]

    def add_comment(self, issue_id: IssueID, comment: Comment) -> CommentID:
        data = self._client.post(
            f"issues/{issue_id}/notes",
            json={"text": build_comment_body(comment), "view_state": {"name": "public"}},
        )
        return str(data.get("note", {}).get("id", ""))

    def list_attachments(self, issue_id: IssueID) -> list[Attachment]:
        return [
            Attachment(
                id=str(item["id"]),
                name=item.get("filename", ""),
                mime_type=item.get("content_type") or "application/octet-stream",
                author=_to_user(item.get("reporter")),
                created_at=parse_timestamp(item.get("created_at")),
                content=MantisFileContent(self._client, issue_id, str(item["id"])),
            )
            for item in self._client.get_issue(issue_id).get("attachments", [])
        ]

    def add_attachment(self, issue_id: IssueID, attachment: Attachment, body: BinaryIO) -> AttachmentID:
        """Upload the file, then find its ID among the attachments of the issue.

        The files endpoint does not return the created attachment.
        """
        before = {str(item["id"]) for item in self._client.get_issue(issue_id).get("attachments", [])}
        content = base64.b64encode(body.read()).decode("ascii")
        _ = self._client.post(f"issues/{issue_id}/files", json={"files": [{"name": attachment.name, "content": content}]})

        added = [
            str(item["id"])
            for item in self._client.get_issue(issue_id).get("attachments", [])
            if str(item["id"]) not in before and item.get("filename") == attachment.name
        ]
        if not added:
            msg = f"MantisBT returned no attachment for {attachment.name} on issue {issue_id}"
            raise TrackerError(msg)
        return max(added, key=int)
