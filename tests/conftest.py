"""
Pytest configuration and fixtures.

This module configures pytest behavior for different test types:
- Integration tests: Fail on any warnings from the code under test
- Unit tests: Allow warnings

It also provides an in-memory FakeTracker that records every call, used to
drive the Synchronizer through complete passes without any network access.
"""

from __future__ import annotations

import dataclasses
import itertools
import logging
from typing import TYPE_CHECKING, BinaryIO

from typing_extensions import override

import pytest

from issuesync.attachments import BytesContent
from issuesync.models import Attachment, Comment, Issue
from issuesync.store import FileStore
from issuesync.tracker import BaseTracker

if TYPE_CHECKING:
    import datetime as dt
    from collections.abc import Generator
    from pathlib import Path

# Store warning records during test execution
_integration_test_warnings: dict[str, list[logging.LogRecord]] = {}


class FakeTracker(BaseTracker):
    """In-memory tracker recording every call as ``(capability, *args)``.

    Capabilities named in ``unsupported`` raise CapabilityNotImplementedError,
    those in ``failures`` raise the given exception.
    """

    issues: dict[str, Issue]
    comments: dict[str, list[Comment]]
    attachments: dict[str, list[Attachment]]
    calls: list[tuple[str, ...]]
    unsupported: set[str]
    failures: dict[str, Exception]

    def __init__(self, tracker_id: str, prefix: str) -> None:
        super().__init__(tracker_id)
        self._prefix = prefix
        self._ids = itertools.count(1)
        self.issues = {}
        self.comments = {}
        self.attachments = {}
        self.calls = []
        self.unsupported = set()
        self.failures = {}

    def _call(self, capability: str, *args: str) -> None:
        self.calls.append((capability, *args))
        if capability in self.unsupported:
            raise self._not_implemented(capability)
        if capability in self.failures:
            raise self.failures[capability]

    def _next_id(self, kind: str) -> str:
        return f"{self._prefix}{kind}{next(self._ids)}"

    def called(self, capability: str) -> list[tuple[str, ...]]:
        return [call for call in self.calls if call[0] == capability]

    def add_native_issue(self, issue_id: str, summary: str = "", **fields: str) -> Issue:
        issue = Issue(id=issue_id, summary=summary or f"Summary of {issue_id}", **fields)
        self.issues[issue_id] = issue
        self.comments.setdefault(issue_id, [])
        self.attachments.setdefault(issue_id, [])
        return issue

    @override
    def get_issue(self, issue_id: str) -> Issue:
        self._call("get_issue", issue_id)
        return dataclasses.replace(self.issues[issue_id])

    @override
    def list_issues(self, since: dt.datetime) -> list[Issue]:
        self._call("list_issues", since.isoformat())
        return [Issue(id=issue.id, secondary_id=issue.secondary_id) for issue in self.issues.values()]

    @override
    def create_issue(self, issue: Issue) -> str:
        self._call("create_issue", issue.id)
        new_id = self._next_id("I")
        self.add_native_issue(new_id, summary=issue.summary, body=issue.body, state=issue.state)
        return new_id

    @override
    def update_issue_state(self, issue_id: str, state: str) -> None:
        self._call("update_issue_state", issue_id, state)
        self.issues[issue_id].state = state

    @override
    def set_secondary_id(self, primary: str, secondary: str) -> None:
        self._call("set_secondary_id", primary, secondary)
        self.issues[primary].secondary_id = secondary

    @override
    def list_comments(self, issue_id: str) -> list[Comment]:
        self._call("list_comments", issue_id)
        return list(self.comments[issue_id])

    @override
    def add_comment(self, issue_id: str, comment: Comment) -> str:
        self._call("add_comment", issue_id, comment.id)
        new_id = self._next_id("C")
        self.comments[issue_id].append(Comment(id=new_id, body=comment.body, author=comment.author))
        return new_id

    @override
    def list_attachments(self, issue_id: str) -> list[Attachment]:
        self._call("list_attachments", issue_id)
        return list(self.attachments[issue_id])

    @override
    def add_attachment(self, issue_id: str, attachment: Attachment, body: BinaryIO) -> str:
        self._call("add_attachment", issue_id, attachment.id)
        new_id = self._next_id("A")
        self.attachments[issue_id].append(
            Attachment(id=new_id, name=attachment.name, mime_type=attachment.mime_type, content=BytesContent(body.read()))
        )
        return new_id


@pytest.fixture
def primary() -> FakeTracker:
    return FakeTracker("P", "p")


@pytest.fixture
def secondary() -> FakeTracker:
    return FakeTracker("S", "s")


@pytest.fixture
def store(tmp_path: Path) -> Generator[FileStore]:
    """An empty correspondence store in a temporary directory."""
    file_store = FileStore.create(tmp_path / "sync.db.json")
    yield file_store
    file_store.close()


class IntegrationTestWarningHandler(logging.Handler):
    """Custom logging handler to capture warnings during integration tests."""

    test_nodeid: str

    def __init__(self, test_nodeid: str) -> None:
        super().__init__()
        self.test_nodeid = test_nodeid
        self.setLevel(logging.WARNING)

    @override
    def emit(self, record: logging.LogRecord) -> None:
        """Capture WARNING and above level logs."""
        _integration_test_warnings.setdefault(self.test_nodeid, []).append(record)


@pytest.fixture(autouse=True)
def fail_on_log_warnings_for_integration_tests(
    request: pytest.FixtureRequest,
) -> Generator[None]:
    """
    Fail integration tests if the synchronizer or an adapter logs a WARNING or above.

    Against a real tracker pair a clean pass should not need to skip attachments
    or fall back to anonymous access, so any such log is treated as a failure.
    Unit tests are not checked.
    """
    if request.node.get_closest_marker("integration") is None:
        yield
        return

    test_nodeid = request.node.nodeid
    _integration_test_warnings[test_nodeid] = []

    handler = IntegrationTestWarningHandler(test_nodeid)
    root_logger = logging.getLogger()
    root_logger.addHandler(handler)

    try:
        yield
    finally:
        root_logger.removeHandler(handler)


@pytest.hookimpl(tryfirst=True, hookwrapper=True)
def pytest_runtest_makereport(
    item: pytest.Item, call: pytest.CallInfo[None]
) -> Generator[None]:  # type: ignore[misc]
    """Mark a passed integration test as failed when warnings were captured during its call phase."""
    outcome = yield
    report = outcome.get_result()

    if call.when == "call" and report.outcome == "passed":
        test_nodeid = item.nodeid
        warning_records = _integration_test_warnings.get(test_nodeid, [])

        if warning_records:
            warning_messages = [
                f"{record.levelname}: {record.getMessage()} (in {record.name}:{record.lineno})"
                for record in warning_records
            ]
            report.outcome = "failed"
            report.longrepr = f"Integration test failed: {len(warning_records)} warning(s) detected:\n" + "\n".join(
                f"  - {msg}" for msg in warning_messages
            )

        _integration_test_warnings.pop(test_nodeid, None)
