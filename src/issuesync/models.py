"""Data models exchanged between trackers, the store and the Synchronizer.

These models are the normalized, tracker-agnostic view of issues, comments and
attachments. Trackers build them from their own API objects; the Synchronizer
only reads them and never mutates what a tracker returned.
"""

from __future__ import annotations

import datetime as dt
import enum
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .protocols import ContentSource

TrackerID = str
IssueID = str
CommentID = str
AttachmentID = str
UserID = str
State = str

# Timestamp used as the "since" boundary when every issue should be listed.
EPOCH: dt.datetime = dt.datetime(1970, 1, 1, tzinfo=dt.UTC)


class EntityKind(enum.Enum):
    """Kind of mirrored entity; the value is the code used in bucket names."""

    ISSUE = "I"
    COMMENT = "C"
    ATTACHMENT = "A"


# Bucket code for the per-pair high-water mark (see Synchronizer).
WATERMARK_CODE = "W"


def bucket_name(first: TrackerID, second: TrackerID, kind: EntityKind | str) -> str:
    """Return the store bucket for the (first, second, kind) triple."""
    code = kind.value if isinstance(kind, EntityKind) else kind
    return f"{first}\t{second}\t{code}"


@dataclass(frozen=True)
class User:
    """Author of an issue, comment or attachment."""

    id: UserID = ""
    real_name: str = ""
    email: str = ""

    def display_name(self) -> str:
        return self.real_name or self.email or self.id


@dataclass
class Issue:
    """An issue as listed or fetched from a tracker.

    ``secondary_id`` is only filled when the tracker itself stores the ID of the
    counterpart on the other tracker. ``list_issues`` results may carry only
    ``id`` (and ``secondary_id``); ``get_issue`` returns the full view.
    """

    id: IssueID
    secondary_id: IssueID = ""
    summary: str = ""
    body: str = ""
    author: User = field(default_factory=User)
    created_at: dt.datetime | None = None
    state: State = ""


@dataclass
class Comment:
    """A comment owned by exactly one issue. Comments are never edited."""

    id: CommentID
    body: str = ""
    author: User = field(default_factory=User)
    created_at: dt.datetime | None = None


@dataclass
class Attachment:
    """A file attached to an issue.

    The bytes are not loaded: ``content`` is opened on demand and every opened
    stream must be closed by whoever opened it.
    """

    id: AttachmentID
    name: str
    mime_type: str = "application/octet-stream"
    author: User = field(default_factory=User)
    created_at: dt.datetime | None = None
    content: ContentSource | None = None


@dataclass(frozen=True)
class StoreItem:
    """One correspondence record written by ``put_many``."""

    bucket: str
    key: str
    value: str
