"""GitLab tracker adapter built on python-gitlab.

Issues are addressed by their project-scoped IID. Comments are the non-system
notes of an issue. GitLab has no per-issue attachment list: the attachments of
an issue are the project uploads referenced from its description and notes.
"""

from __future__ import annotations

import itertools
import logging
from typing import TYPE_CHECKING, Any, BinaryIO, Final, Self
from urllib.parse import unquote

from . import gitlab_utils as glu
from .attachments import guess_mime_type
from .exceptions import IssueNotFoundError, TrackerError
from .issue_builder import build_attachment_note, build_comment_body, build_issue_body, parse_timestamp
from .models import Attachment, Comment, Issue, User
from .tracker import BaseTracker
from .utils import split_credentials

if TYPE_CHECKING:
    import datetime as dt

    from gitlab import Gitlab
    from gitlab.v4.objects import Project as GitlabProject
    from gitlab.v4.objects import ProjectIssue as GitlabProjectIssue

    from .models import AttachmentID, CommentID, IssueID, State

logger: logging.Logger = logging.getLogger(__name__)

MAX_LISTED_ISSUES: Final[int] = 1000
_CLOSED_STATES: Final[frozenset[str]] = frozenset({"closed", "done", "resolved", "fixed", "rejected", "wontfix"})


def _to_user(author: dict[str, Any] | None) -> User:
    if not author:
        return User()
    return User(id=str(author.get("id", "")), real_name=author.get("name") or author.get("username") or "")


def gitlab_state(state: State) -> str:
    """Map a tracker-agnostic state name onto GitLab's opened/closed."""
    return "closed" if state.strip().lower() in _CLOSED_STATES else "opened"


class GitlabTracker(BaseTracker):
    """Tracker backed by the issues of one GitLab project."""

    _client: Gitlab
    _project: GitlabProject

    def __init__(self, client: Gitlab, project: GitlabProject, tracker_id: str) -> None:
        super().__init__(tracker_id)
        self._client = client
        self._project = project

    @classmethod
    def from_url(cls, base_url: str) -> Self:
        """Build the tracker from ``https://[token@]host/namespace/project``.

        A password in the URL userinfo (or a bare username) is used as the
        private token and removed from the URL.
        """
        url, username, password = split_credentials(base_url)
        server_url, project_path = glu.split_project_url(url)
        client = glu.get_client(server_url, glu.get_token(password or username))
        with glu.api_errors(f"access to project {project_path}"):
            project = client.projects.get(project_path)
        logger.info(f"Connected to GitLab project {project_path} at {server_url}")
        return cls(client, project, url)

    def _get_gitlab_issue(self, issue_id: IssueID) -> GitlabProjectIssue:
        if not issue_id.isdigit():
            msg = f"Invalid GitLab issue IID: {issue_id!r}"
            raise IssueNotFoundError(msg)
        with glu.api_errors(f"get issue #{issue_id}"):
            return self._project.issues.get(int(issue_id))

    def get_issue(self, issue_id: IssueID) -> Issue:
        gitlab_issue = self._get_gitlab_issue(issue_id)
        return Issue(
            id=str(gitlab_issue.iid),
            summary=gitlab_issue.title,
            body=gitlab_issue.description or "",
            author=_to_user(gitlab_issue.author),
            created_at=parse_timestamp(gitlab_issue.created_at),
            state=gitlab_issue.state,
        )

    def list_issues(self, since: dt.datetime) -> list[Issue]:
        with glu.api_errors("list issues"):
            listed = self._project.issues.list(
                updated_after=since.isoformat(),
                order_by="updated_at",
                sort="asc",
                per_page=100,
                iterator=True,
            )
            issues = [Issue(id=str(i.iid), state=i.state) for i in itertools.islice(listed, MAX_LISTED_ISSUES)]
        logger.debug(f"Listed {len(issues)} GitLab issues changed since {since.isoformat()}")
        return issues

    def create_issue(self, issue: Issue) -> IssueID:
        with glu.api_errors(f"create issue for {issue.id}"):
            gitlab_issue = self._project.issues.create(
                {"title": issue.summary or f"Issue {issue.id}", "description": build_issue_body(issue)}
            )
            if issue.state and gitlab_state(issue.state) == "closed":
                gitlab_issue.state_event = "close"
                gitlab_issue.save()
        logger.debug(f"Created GitLab issue #{gitlab_issue.iid}: {gitlab_issue.title}")
        return str(gitlab_issue.iid)

    def update_issue_state(self, issue_id: IssueID, state: State) -> None:
        if not state:
            return
        target = gitlab_state(state)
        gitlab_issue = self._get_gitlab_issue(issue_id)
        if gitlab_issue.state == target:
            return
        with glu.api_errors(f"update state of issue #{issue_id}"):
            gitlab_issue.state_event = "close" if target == "closed" else "reopen"
            gitlab_issue.save()
        logger.debug(f"Set GitLab issue #{issue_id} state to {target}")

    def list_comments(self, issue_id: IssueID) -> list[Comment]:
        gitlab_issue = self._get_gitlab_issue(issue_id)
        with glu.api_errors(f"list notes of issue #{issue_id}"):
            notes = gitlab_issue.notes.list(get_all=True, order_by="created_at", sort="asc")
        return [
            Comment(
                id=str(note.id),
                body=note.body or "",
                author=_to_user(note.author),
                created_at=parse_timestamp(note.created_at),
            )
            for note in notes
            if not note.system
        ]

    def add_comment(self, issue_id: IssueID, comment: Comment) -> CommentID:
        gitlab_issue = self._get_gitlab_issue(issue_id)
        with glu.api_errors(f"add note to issue #{issue_id}"):
            note = gitlab_issue.notes.create({"body": build_comment_body(comment)})
        return str(note.id)

    def list_attachments(self, issue_id: IssueID) -> list[Attachment]:
        gitlab_issue = self._get_gitlab_issue(issue_id)
        with glu.api_errors(f"list notes of issue #{issue_id}"):
            notes = [note for note in gitlab_issue.notes.list(get_all=True) if not note.system]

        sources: list[tuple[str | None, dict[str, Any] | None, str | None]] = [
            (gitlab_issue.description, gitlab_issue.author, gitlab_issue.created_at),
            *((note.body, note.author, note.created_at) for note in notes),
        ]
        attachments: dict[str, Attachment] = {}
        for content, author, created_at in sources:
            for secret, filename in glu.find_uploads(content):
                attachment_id = f"{secret}/{filename}"
                if attachment_id in attachments:
                    continue
                name = unquote(filename)
                attachments[attachment_id] = Attachment(
                    id=attachment_id,
                    name=name,
                    mime_type=guess_mime_type(name),
                    author=_to_user(author),
                    created_at=parse_timestamp(created_at),
                    content=glu.GitlabUploadContent(self._client, self._project.id, secret, filename),
                )
        return list(attachments.values())

    def add_attachment(self, issue_id: IssueID, attachment: Attachment, body: BinaryIO) -> AttachmentID:
        """Upload the file to the project and link it from the issue description."""
        gitlab_issue = self._get_gitlab_issue(issue_id)
        with glu.api_errors(f"upload {attachment.name} to issue #{issue_id}"):
            upload = self._project.upload(attachment.name, filedata=body)
            uploads = glu.find_uploads(upload["url"])
            if not uploads:
                msg = f"GitLab returned an unexpected upload URL: {upload['url']!r}"
                raise TrackerError(msg)
            gitlab_issue.description = (
                f"{gitlab_issue.description or ''}\n\n{build_attachment_note(attachment, upload['url'])}"
            )
            gitlab_issue.save()
        secret, filename = uploads[0]
        logger.debug(f"Uploaded {attachment.name} to GitLab issue #{issue_id}")
        return f"{secret}/{filename}"
