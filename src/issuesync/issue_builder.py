"""Build the text of mirrored issues, comments and attachment notes."""

from __future__ import annotations

import datetime as dt
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import Attachment, Comment, Issue


def format_timestamp(timestamp: dt.datetime | str | None) -> str:
    """Format a timestamp to human-readable format.

    Args:
        timestamp: datetime or ISO 8601 formatted timestamp string

    Returns:
        Formatted timestamp (e.g., "2024-01-15 10:30:45Z").
        Returns the original string if parsing fails, "" for None.
    """
    if not timestamp:
        return ""
    if isinstance(timestamp, str):
        try:
            timestamp = dt.datetime.fromisoformat(timestamp)
        except ValueError:
            return str(timestamp)
    return timestamp.isoformat(sep=" ", timespec="seconds").replace("+00:00", "Z")


def parse_timestamp(value: str | None) -> dt.datetime | None:
    """Parse an ISO 8601 timestamp as returned by tracker APIs; None if unparsable."""
    if not value:
        return None
    try:
        parsed = dt.datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=dt.UTC)
    return parsed


def build_issue_body(issue: Issue) -> str:
    """Build the body of a mirrored issue with an attribution header.

    Args:
        issue: Source issue (hydrated)

    Returns:
        Complete body for the counterpart issue
    """
    body = f"**Mirrored issue {issue.id}**\n"
    if issue.author.display_name():
        body += f"**Original Author:** {issue.author.display_name()}\n"
    if issue.created_at:
        body += f"**Created:** {format_timestamp(issue.created_at)}\n"
    body += "\n---\n\n"
    body += issue.body
    return body


def build_comment_body(comment: Comment) -> str:
    """Build the body of a mirrored comment with an attribution header."""
    author = comment.author.display_name() or "unknown author"
    body = f"**Comment by** {author}"
    if comment.created_at:
        body += f" **on** {format_timestamp(comment.created_at)}"
    body += "\n\n---\n\n"
    body += comment.body
    return body


def build_attachment_note(attachment: Attachment, link: str) -> str:
    """Build the line linking a mirrored attachment from the issue text."""
    author = attachment.author.display_name() or "unknown author"
    return f"**Attachment** [{attachment.name}]({link}) **uploaded by** {author}"
