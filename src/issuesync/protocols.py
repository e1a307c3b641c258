"""Protocols defining the contracts between trackers, the store and the Synchronizer.

The synchronization architecture separates concerns into three components:

1. Tracker: Reads and writes issues, comments and attachments on one issue
   tracker (GitLab, GitHub, Jira, ...)
2. CorrespondenceStore: Durably remembers which entity on one tracker
   corresponds to which entity on the other
3. Synchronizer: Decides, per entity, whether a counterpart has to be created
   or already exists, and records the pairs it creates

This separation allows:
- Adding new trackers without touching the synchronization logic
- Testing the Synchronizer with in-memory fakes
- Treating either tracker as primary in a later run
"""

from __future__ import annotations

from typing import TYPE_CHECKING, BinaryIO, Protocol

if TYPE_CHECKING:
    import datetime as dt
    from collections.abc import Iterable

    from .models import (
        Attachment,
        AttachmentID,
        Comment,
        CommentID,
        Issue,
        IssueID,
        State,
        StoreItem,
        TrackerID,
    )


class ContentSource(Protocol):
    """Lazily retrievable attachment content.

    Every ``open()`` call returns a fresh stream positioned at the start of the
    content. The caller owns the stream and must close it.
    """

    def open(self) -> BinaryIO:
        """Open the content for reading.

        Raises:
            TrackerError: If the content cannot be retrieved
        """
        ...


class Tracker(Protocol):
    """Protocol for an issue tracker taking part in a synchronization.

    Every capability may be unsupported by a given tracker. Unsupported
    capabilities raise CapabilityNotImplementedError; the Synchronizer treats
    that as a no-op except for ``list_issues`` on the primary and
    ``create_issue`` on the secondary. Any other exception is fatal to the pass.
    """

    @property
    def tracker_id(self) -> TrackerID:
        """Identifier of this tracker instance (its base URL, without credentials)."""
        ...

    def get_issue(self, issue_id: IssueID) -> Issue:
        """Return the full data of the issue.

        Raises:
            IssueNotFoundError: If the issue does not exist
        """
        ...

    def list_issues(self, since: dt.datetime) -> list[Issue]:
        """List the issues created or changed at or after ``since``.

        Only ``id`` and, if the tracker stores it natively, ``secondary_id``
        have to be filled. May return a capped subset.
        """
        ...

    def create_issue(self, issue: Issue) -> IssueID:
        """Create a counterpart of the issue and return its ID."""
        ...

    def update_issue_state(self, issue_id: IssueID, state: State) -> None:
        """Set the state of the issue (best effort)."""
        ...

    def set_secondary_id(self, primary: IssueID, secondary: IssueID) -> None:
        """Record the ID of the counterpart on the issue itself."""
        ...

    def add_comment(self, issue_id: IssueID, comment: Comment) -> CommentID:
        """Add the comment to the issue and return the new comment's ID."""
        ...

    def list_comments(self, issue_id: IssueID) -> list[Comment]:
        """List the comments of the issue."""
        ...

    def add_attachment(self, issue_id: IssueID, attachment: Attachment, body: BinaryIO) -> AttachmentID:
        """Attach a file to the issue and return the new attachment's ID.

        Args:
            issue_id: Issue on this tracker
            attachment: Metadata (name, MIME type, author) of the source attachment
            body: Open stream with the content; the caller closes it
        """
        ...

    def list_attachments(self, issue_id: IssueID) -> list[Attachment]:
        """List the attachments of the issue; contents are fetched lazily."""
        ...


class CorrespondenceStore(Protocol):
    """Protocol for the durable (bucket, key) -> value mapping of ID pairs."""

    def get(self, bucket: str, key: str) -> str:
        """Return the stored value, or an empty string if there is none."""
        ...

    def put(self, bucket: str, key: str, value: str) -> None:
        """Store a single value durably."""
        ...

    def put_many(self, items: Iterable[StoreItem]) -> None:
        """Store all items durably, or none of them."""
        ...

    def close(self) -> None:
        """Flush pending state. Safe to call more than once."""
        ...
