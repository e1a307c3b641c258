"""Base class for tracker adapters.

Every capability of BaseTracker raises CapabilityNotImplementedError, so an
adapter only overrides what its tracker supports. The Synchronizer turns the
missing optional capabilities into no-ops.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, BinaryIO

from .exceptions import CapabilityNotImplementedError

if TYPE_CHECKING:
    import datetime as dt

    from .models import (
        Attachment,
        AttachmentID,
        Comment,
        CommentID,
        Issue,
        IssueID,
        State,
        TrackerID,
    )

logger: logging.Logger = logging.getLogger(__name__)


class BaseTracker:
    """Tracker supporting nothing but its own identity."""

    _tracker_id: TrackerID

    def __init__(self, tracker_id: TrackerID) -> None:
        self._tracker_id = tracker_id

    @property
    def tracker_id(self) -> TrackerID:
        return self._tracker_id

    def _not_implemented(self, capability: str) -> CapabilityNotImplementedError:
        return CapabilityNotImplementedError(f"{type(self).__name__} does not implement {capability}")

    def get_issue(self, issue_id: IssueID) -> Issue:
        raise self._not_implemented("get_issue")

    def list_issues(self, since: dt.datetime) -> list[Issue]:
        raise self._not_implemented("list_issues")

    def create_issue(self, issue: Issue) -> IssueID:
        raise self._not_implemented("create_issue")

    def update_issue_state(self, issue_id: IssueID, state: State) -> None:
        raise self._not_implemented("update_issue_state")

    def set_secondary_id(self, primary: IssueID, secondary: IssueID) -> None:
        raise self._not_implemented("set_secondary_id")

    def add_comment(self, issue_id: IssueID, comment: Comment) -> CommentID:
        raise self._not_implemented("add_comment")

    def list_comments(self, issue_id: IssueID) -> list[Comment]:
        raise self._not_implemented("list_comments")

    def add_attachment(self, issue_id: IssueID, attachment: Attachment, body: BinaryIO) -> AttachmentID:
        raise self._not_implemented("add_attachment")

    def list_attachments(self, issue_id: IssueID) -> list[Attachment]:
        raise self._not_implemented("list_attachments")

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._tracker_id!r})"
