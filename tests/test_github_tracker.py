"""
Tests for the GitHub tracker adapter.
"""

from __future__ import annotations

import datetime as dt
import io
from pathlib import Path
from unittest.mock import Mock, patch

import pytest
from github import GithubException

from issuesync.attachments import HttpContent
from issuesync.exceptions import IssueNotFoundError, TrackerError
from issuesync.github_tracker import GithubTracker, asset_prefix, github_state
from issuesync.github_utils import ATTACHMENTS_RELEASE_NAME, get_or_create_attachments_release, split_repo_url
from issuesync.models import Attachment, Comment, Issue


def _user(user_id: int, login: str) -> Mock:
    user = Mock()
    user.id = user_id
    user.login = login
    return user


def _asset(asset_id: int, name: str) -> Mock:
    asset = Mock()
    asset.id = asset_id
    asset.name = name
    asset.content_type = "text/plain"
    asset.uploader = _user(2, "bot")
    asset.created_at = dt.datetime(2024, 5, 1, tzinfo=dt.UTC)
    asset.url = f"https://api.github.com/repos/o/r/releases/assets/{asset_id}"
    return asset


@pytest.mark.unit
class TestGithubUtils:
    @pytest.mark.parametrize(
        ("url", "expected"),
        [
            ("https://github.com/owner/repo", ("https://api.github.com", "owner/repo")),
            ("https://github.com/owner/repo.git/", ("https://api.github.com", "owner/repo")),
            ("https://ghe.example.com/owner/repo", ("https://ghe.example.com/api/v3", "owner/repo")),
        ],
    )
    def test_split_repo_url(self, url: str, expected: tuple[str, str]) -> None:
        assert split_repo_url(url) == expected

    @pytest.mark.parametrize("url", ["https://github.com/just-owner", "https://github.com/a/b/c", "owner/repo"])
    def test_split_invalid_repo_url(self, url: str) -> None:
        with pytest.raises(TrackerError, match="Invalid GitHub repository URL"):
            _ = split_repo_url(url)

    def test_existing_attachments_release_is_reused(self) -> None:
        release = Mock()
        release.name = ATTACHMENTS_RELEASE_NAME
        repo = Mock()
        repo.get_releases.return_value = [release]

        assert get_or_create_attachments_release(repo) is release
        repo.create_git_release.assert_not_called()

    def test_attachments_release_is_created_as_draft(self) -> None:
        repo = Mock()
        repo.get_releases.return_value = []

        release = get_or_create_attachments_release(repo)

        assert release is repo.create_git_release.return_value
        _, kwargs = repo.create_git_release.call_args
        assert kwargs["draft"] is True

    @pytest.mark.parametrize(("state", "expected"), [("opened", "open"), ("Resolved", "closed"), ("", "open")])
    def test_state_mapping(self, state: str, expected: str) -> None:
        assert github_state(state) == expected


@pytest.mark.unit
class TestGithubTracker:
    """Test GithubTracker against a mocked PyGithub repository."""

    def setup_method(self) -> None:
        self.mock_client: Mock = Mock()
        self.mock_repo: Mock = Mock()
        self.mock_issue: Mock = Mock()
        self.mock_issue.number = 4
        self.mock_issue.title = "Typo in README"
        self.mock_issue.body = None
        self.mock_issue.user = _user(1, "octocat")
        self.mock_issue.created_at = dt.datetime(2024, 1, 2, 3, 4, 5, tzinfo=dt.UTC)
        self.mock_issue.state = "open"
        self.mock_repo.get_issue.return_value = self.mock_issue
        self.tracker = GithubTracker(self.mock_client, self.mock_repo, "https://github.com/o/r", token="tok")

    def test_from_url_strips_token(self) -> None:
        with (
            patch("issuesync.github_tracker.ghu.get_client") as mock_get_client,
            patch("issuesync.github_tracker.ghu.get_token", return_value="ghp_x") as mock_get_token,
        ):
            tracker = GithubTracker.from_url("https://ghp_x@github.com/o/r")

        mock_get_token.assert_called_once_with("ghp_x")
        mock_get_client.assert_called_once_with("https://api.github.com", "ghp_x")
        mock_get_client.return_value.get_repo.assert_called_once_with("o/r")
        assert tracker.tracker_id == "https://github.com/o/r"

    def test_get_issue(self) -> None:
        issue = self.tracker.get_issue("4")

        self.mock_repo.get_issue.assert_called_once_with(4)
        assert issue.id == "4"
        assert issue.summary == "Typo in README"
        assert issue.body == ""
        assert issue.author.real_name == "octocat"
        assert issue.state == "open"

    def test_get_issue_not_found(self) -> None:
        self.mock_repo.get_issue.side_effect = GithubException(404, {"message": "Not Found"}, None)

        with pytest.raises(IssueNotFoundError):
            _ = self.tracker.get_issue("404")

    def test_list_issues_excludes_pull_requests(self) -> None:
        self.mock_repo.get_issues.return_value = [
            Mock(number=1, pull_request=None, state="open"),
            Mock(number=2, pull_request=Mock()),
            Mock(number=3, pull_request=None, state="closed"),
        ]
        since = dt.datetime(2024, 1, 1, tzinfo=dt.UTC)

        issues = self.tracker.list_issues(since)

        assert [(i.id, i.state) for i in issues] == [("1", "open"), ("3", "closed")]
        self.mock_repo.get_issues.assert_called_once_with(state="all", since=since, sort="updated", direction="asc")

    def test_create_closed_issue(self) -> None:
        created = Mock()
        created.number = 11
        created.title = "Crash"
        self.mock_repo.create_issue.return_value = created

        new_id = self.tracker.create_issue(Issue(id="42", summary="Crash", body="boom", state="closed"))

        assert new_id == "11"
        _, kwargs = self.mock_repo.create_issue.call_args
        assert kwargs["title"] == "Crash"
        assert kwargs["body"].endswith("boom")
        created.edit.assert_called_once_with(state="closed")

    def test_create_issue_failure(self) -> None:
        self.mock_repo.create_issue.side_effect = GithubException(410, {"message": "Issues are disabled"}, None)

        with pytest.raises(TrackerError, match="create issue"):
            _ = self.tracker.create_issue(Issue(id="42", summary="x"))

    def test_update_issue_state(self) -> None:
        self.tracker.update_issue_state("4", "fixed")
        self.tracker.update_issue_state("4", "open")

        self.mock_issue.edit.assert_called_once_with(state="closed")

    def test_comments(self) -> None:
        existing = Mock()
        existing.id = 900
        existing.body = "Nice"
        existing.user = _user(3, "hubot")
        existing.created_at = dt.datetime(2024, 1, 3, tzinfo=dt.UTC)
        self.mock_issue.get_comments.return_value = [existing]
        self.mock_issue.create_comment.return_value = Mock(id=901)

        comments = self.tracker.list_comments("4")
        new_id = self.tracker.add_comment("4", Comment(id="c", body="Thanks"))

        assert [(c.id, c.body, c.author.real_name) for c in comments] == [("900", "Nice", "hubot")]
        assert new_id == "901"
        assert self.mock_issue.create_comment.call_args.args[0].endswith("Thanks")

    def test_list_attachments_without_release(self) -> None:
        self.mock_repo.get_releases.return_value = []

        assert self.tracker.list_attachments("4") == []

    def test_list_attachments_filters_by_issue_prefix(self) -> None:
        release = Mock()
        release.name = ATTACHMENTS_RELEASE_NAME
        release.get_assets.return_value = [_asset(1, "issue-4-notes.txt"), _asset(2, "issue-40-other.txt")]
        self.mock_repo.get_releases.return_value = [release]

        attachments = self.tracker.list_attachments("4")

        assert [(a.id, a.name) for a in attachments] == [("1", "notes.txt")]
        content = attachments[0].content
        assert isinstance(content, HttpContent)
        assert content.url == "https://api.github.com/repos/o/r/releases/assets/1"

    def test_add_attachment_uploads_asset_and_links_it(self) -> None:
        release = Mock()
        release.name = ATTACHMENTS_RELEASE_NAME
        asset = _asset(55, "issue-4-trace.log")
        asset.browser_download_url = "https://github.com/o/r/releases/download/x/issue-4-trace.log"
        release.upload_asset.return_value = asset
        self.mock_repo.get_releases.return_value = [release]
        uploaded: dict[str, bytes] = {}

        def capture(path: str, **_kwargs: str) -> Mock:
            uploaded["data"] = Path(path).read_bytes()
            uploaded["path"] = path.encode()
            return asset

        release.upload_asset.side_effect = capture

        new_id = self.tracker.add_attachment(
            "4", Attachment(id="x", name="trace.log", mime_type="text/plain"), io.BytesIO(b"trace")
        )

        assert new_id == "55"
        _, kwargs = release.upload_asset.call_args
        assert kwargs["name"] == f"{asset_prefix('4')}trace.log"
        assert kwargs["content_type"] == "text/plain"
        assert uploaded["data"] == b"trace"
        assert not Path(uploaded["path"].decode()).exists()
        body = self.mock_issue.edit.call_args.kwargs["body"]
        assert asset.browser_download_url in body

    def test_add_attachment_upload_failure(self) -> None:
        release = Mock()
        release.name = ATTACHMENTS_RELEASE_NAME
        release.upload_asset.side_effect = GithubException(422, {"message": "already_exists"}, None)
        self.mock_repo.get_releases.return_value = [release]

        with pytest.raises(TrackerError, match="upload"):
            _ = self.tracker.add_attachment("4", Attachment(id="x", name="a.txt"), io.BytesIO(b"a"))
