"""GitHub tracker adapter built on PyGithub.

GitHub issues have no file attachments in the API. Mirrored files are stored as
assets of a draft release, named ``issue-<number>-<file name>``, and linked
from the issue body; the assets carrying an issue's prefix are its attachments.
"""

from __future__ import annotations

import itertools
import logging
import shutil
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING, BinaryIO, Final, Self

import requests

from . import github_utils as ghu
from .attachments import HttpContent
from .exceptions import IssueNotFoundError, TrackerError
from .issue_builder import build_attachment_note, build_comment_body, build_issue_body
from .models import Attachment, Comment, Issue, User
from .tracker import BaseTracker
from .utils import split_credentials

if TYPE_CHECKING:
    import datetime as dt

    import github.Issue
    from github import Github
    from github.NamedUser import NamedUser
    from github.Repository import Repository

    from .models import AttachmentID, CommentID, IssueID, State

logger: logging.Logger = logging.getLogger(__name__)

MAX_LISTED_ISSUES: Final[int] = 1000
_CLOSED_STATES: Final[frozenset[str]] = frozenset({"closed", "done", "resolved", "fixed", "rejected", "wontfix"})


def _to_user(user: NamedUser | None) -> User:
    if user is None:
        return User()
    return User(id=str(user.id), real_name=user.login)


def github_state(state: State) -> str:
    """Map a tracker-agnostic state name onto GitHub's open/closed."""
    return "closed" if state.strip().lower() in _CLOSED_STATES else "open"


def asset_prefix(issue_id: IssueID) -> str:
    return f"issue-{issue_id}-"


class GithubTracker(BaseTracker):
    """Tracker backed by the issues of one GitHub repository."""

    _client: Github
    _repo: Repository
    _session: requests.Session

    def __init__(self, client: Github, repo: Repository, tracker_id: str, *, token: str | None = None) -> None:
        super().__init__(tracker_id)
        self._client = client
        self._repo = repo
        self._session = requests.Session()
        if token:
            self._session.headers["Authorization"] = f"Bearer {token}"

    @classmethod
    def from_url(cls, base_url: str) -> Self:
        """Build the tracker from ``https://[token@]host/owner/repo``.

        A password in the URL userinfo (or a bare username) is used as the
        token and removed from the URL.
        """
        url, username, password = split_credentials(base_url)
        api_url, repo_path = ghu.split_repo_url(url)
        token = ghu.get_token(password or username)
        client = ghu.get_client(api_url, token)
        with ghu.api_errors(f"access to repository {repo_path}"):
            repo = client.get_repo(repo_path)
        logger.info(f"Connected to GitHub repository {repo_path}")
        return cls(client, repo, url, token=token)

    def _get_github_issue(self, issue_id: IssueID) -> github.Issue.Issue:
        if not issue_id.isdigit():
            msg = f"Invalid GitHub issue number: {issue_id!r}"
            raise IssueNotFoundError(msg)
        with ghu.api_errors(f"get issue #{issue_id}"):
            return self._repo.get_issue(int(issue_id))

    def get_issue(self, issue_id: IssueID) -> Issue:
        github_issue = self._get_github_issue(issue_id)
        return Issue(
            id=str(github_issue.number),
            summary=github_issue.title,
            body=github_issue.body or "",
            author=_to_user(github_issue.user),
            created_at=github_issue.created_at,
            state=github_issue.state,
        )

    def list_issues(self, since: dt.datetime) -> list[Issue]:
        with ghu.api_errors("list issues"):
            listed = self._repo.get_issues(state="all", since=since, sort="updated", direction="asc")
            issues = [
                Issue(id=str(i.number), state=i.state)
                for i in itertools.islice((i for i in listed if i.pull_request is None), MAX_LISTED_ISSUES)
            ]
        logger.debug(f"Listed {len(issues)} GitHub issues changed since {since.isoformat()}")
        return issues

    def create_issue(self, issue: Issue) -> IssueID:
        with ghu.api_errors(f"create issue for {issue.id}"):
            github_issue = self._repo.create_issue(
                title=issue.summary or f"Issue {issue.id}",
                body=build_issue_body(issue),
            )
            if issue.state and github_state(issue.state) == "closed":
                github_issue.edit(state="closed")
        logger.debug(f"Created GitHub issue #{github_issue.number}: {github_issue.title}")
        return str(github_issue.number)

    def update_issue_state(self, issue_id: IssueID, state: State) -> None:
        if not state:
            return
        target = github_state(state)
        github_issue = self._get_github_issue(issue_id)
        if github_issue.state == target:
            return
        with ghu.api_errors(f"update state of issue #{issue_id}"):
            github_issue.edit(state=target)
        logger.debug(f"Set GitHub issue #{issue_id} state to {target}")

    def list_comments(self, issue_id: IssueID) -> list[Comment]:
        github_issue = self._get_github_issue(issue_id)
        with ghu.api_errors(f"list comments of issue #{issue_id}"):
            return [
                Comment(
                    id=str(comment.id),
                    body=comment.body or "",
                    author=_to_user(comment.user),
                    created_at=comment.created_at,
                )
                for comment in github_issue.get_comments()
            ]

    def add_comment(self, issue_id: IssueID, comment: Comment) -> CommentID:
        github_issue = self._get_github_issue(issue_id)
        with ghu.api_errors(f"add comment to issue #{issue_id}"):
            created = github_issue.create_comment(build_comment_body(comment))
        return str(created.id)

    def list_attachments(self, issue_id: IssueID) -> list[Attachment]:
        with ghu.api_errors(f"list attachments of issue #{issue_id}"):
            release = ghu.find_attachments_release(self._repo)
            if release is None:
                return []
            prefix = asset_prefix(issue_id)
            return [
                Attachment(
                    id=str(asset.id),
                    name=asset.name.removeprefix(prefix),
                    mime_type=asset.content_type,
                    author=_to_user(asset.uploader),
                    created_at=asset.created_at,
                    content=HttpContent(self._session, asset.url, headers={"Accept": "application/octet-stream"}),
                )
                for asset in release.get_assets()
                if asset.name.startswith(prefix)
            ]

    def add_attachment(self, issue_id: IssueID, attachment: Attachment, body: BinaryIO) -> AttachmentID:
        """Upload the file as a release asset and link it from the issue body."""
        github_issue = self._get_github_issue(issue_id)
        temp_path = None
        try:
            with tempfile.NamedTemporaryFile(delete=False, suffix=Path(attachment.name).suffix) as f:
                temp_path = f.name
                shutil.copyfileobj(body, f)

            with ghu.api_errors(f"upload {attachment.name} to issue #{issue_id}"):
                release = ghu.get_or_create_attachments_release(self._repo)
                asset = release.upload_asset(
                    path=temp_path,
                    name=f"{asset_prefix(issue_id)}{attachment.name}",
                    content_type=attachment.mime_type,
                )
                note = build_attachment_note(attachment, asset.browser_download_url)
                github_issue.edit(body=f"{github_issue.body or ''}\n\n{note}")
        except OSError as e:
            msg = f"Failed to buffer attachment {attachment.name}: {e}"
            raise TrackerError(msg) from e
        finally:
            if temp_path:
                Path(temp_path).unlink(missing_ok=True)

        logger.debug(f"Uploaded {attachment.name} to release assets: {asset.browser_download_url}")
        return str(asset.id)
