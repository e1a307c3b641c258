"""Synchronizer that mirrors issues, comments and attachments between two trackers.

The Synchronizer is the central coordinator of a sync pass. It:
1. Lists the recently changed issues of the primary tracker
2. Resolves or creates the counterpart of each issue on the secondary tracker
3. Reconciles the comments and attachments of every issue pair, both ways
4. Records every created counterpart in the correspondence store

Correspondence Records
----------------------
Every created counterpart is recorded twice, forward and reverse, in one
``put_many`` call, so either tracker can be the primary of a later run:

    (P,S)_I: I -> I'        (S,P)_I: I' -> I
    (B,A)_C: C -> C'        (A,B)_C: C' -> C
    (B,A)_A: X -> X'        (A,B)_A: X' -> X

For an issue pair (A, B), the comment and attachment bucket ``(B,A,kind)``
maps an A-native ID to its B-native counterpart. Before creating anything the
Synchronizer checks the forward bucket, which makes re-runs idempotent.

Pass Flow
---------
    list_issues(primary, since)
           │
           ▼  for each issue (cancellation checked first)
    ┌──────────────────────┐
    │ secondary ID known?  │ ── tracker hint, else store lookup
    └──────────────────────┘
      yes │            │ no
          ▼            ▼
    update_issue_   create_issue(secondary)
    state (best     put_many(forward, reverse)
    effort)            │
          │            │
          └─────┬──────┘
                ▼
    set_secondary_id(primary) (best effort, only
    when the listing carried no secondary ID)
                │
                ▼
    sync_comments(P, I, S, I')   A→B then B→A
    sync_attachments(P, I, S, I')

Error Handling
--------------
- CapabilityNotImplementedError is a no-op everywhere except ``list_issues``
  on the primary and ``create_issue`` on the secondary.
- Any other TrackerError or StoreError stops the pass with a SyncAbortedError
  naming the phase and the entity. Records committed before stay valid.
- Cancellation raises SyncCancelled before the next issue is started.
- There are no retries: re-running the pass is the recovery.
"""

from __future__ import annotations

import contextlib
import datetime as dt
import enum
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from .exceptions import (
    CapabilityNotImplementedError,
    StoreError,
    SyncAbortedError,
    SyncCancelled,
    TrackerError,
)
from .models import EPOCH, WATERMARK_CODE, EntityKind, StoreItem, bucket_name

if TYPE_CHECKING:
    import threading
    from collections.abc import Callable, Iterator, Sequence

    from .models import Attachment, Issue, IssueID, State
    from .protocols import CorrespondenceStore, Tracker

logger: logging.Logger = logging.getLogger(__name__)

WATERMARK_KEY = "last_sync"


class SinceMode(enum.StrEnum):
    """How the "changed since" boundary of a pass is chosen."""

    FULL = "full"  # always list from the earliest timestamp
    WATERMARK = "watermark"  # list from the start of the last clean pass


@dataclass
class SyncStats:
    """Statistics collected during a sync pass."""

    issues_seen: int = 0
    issues_created: int = 0
    issues_updated: int = 0
    comments_created: int = 0
    attachments_created: int = 0
    skipped_existing: int = 0


@contextlib.contextmanager
def _phase(phase: str, entity_id: str) -> Iterator[None]:
    """Turn tracker and store failures into a SyncAbortedError with context."""
    try:
        yield
    except SyncAbortedError:
        raise
    except (TrackerError, StoreError) as e:
        raise SyncAbortedError(phase, entity_id, e) from e


class Synchronizer:
    """Mirrors a primary tracker onto a secondary tracker.

    Usage:
        with FileStore("sync.db.json") as store:
            synchronizer = Synchronizer(store, primary, secondary)
            stats = synchronizer.sync(cancel_event)

    The only state kept between runs is the correspondence store.
    """

    _store: CorrespondenceStore
    _primary: Tracker
    _secondary: Tracker
    since_mode: SinceMode
    stats: SyncStats

    def __init__(
        self,
        store: CorrespondenceStore,
        primary: Tracker,
        secondary: Tracker,
        *,
        since_mode: SinceMode = SinceMode.FULL,
    ) -> None:
        """Initialize the synchronizer.

        Args:
            store: Correspondence store shared by all passes
            primary: Tracker whose issues are listed and mirrored
            secondary: Tracker receiving the counterparts
            since_mode: How the "changed since" boundary is chosen
        """
        self._store = store
        self._primary = primary
        self._secondary = secondary
        self.since_mode = since_mode
        self.stats = SyncStats()

    def sync(self, cancel_event: threading.Event | None = None) -> SyncStats:
        """Run one sync pass.

        Args:
            cancel_event: Set by the caller to stop the pass before the next issue

        Returns:
            Statistics of the pass

        Raises:
            SyncAbortedError: If a tracker or the store fails
            SyncCancelled: If ``cancel_event`` is set
        """
        self.stats = SyncStats()
        self._check_cancelled(cancel_event)

        primary_id = self._primary.tracker_id
        started_at = dt.datetime.now(dt.UTC)
        since = self._since()
        logger.info(f"Starting sync {primary_id} -> {self._secondary.tracker_id} (changed since {since.isoformat()})")

        with _phase("list issues of", primary_id):
            issues = self._primary.list_issues(since)
        logger.info(f"Found {len(issues)} issues to synchronize")

        for issue in issues:
            self._check_cancelled(cancel_event)
            self._sync_issue(issue)

        if self.since_mode is SinceMode.WATERMARK:
            with _phase("store watermark of", primary_id):
                self._store.put(self._watermark_bucket(), WATERMARK_KEY, started_at.isoformat())

        logger.info(f"Sync finished: {self.stats}")
        return self.stats

    def _sync_issue(self, issue: Issue) -> None:
        """Resolve or create the counterpart of one issue, then reconcile its children."""
        self.stats.issues_seen += 1
        primary_id = self._primary.tracker_id
        secondary_id = self._secondary.tracker_id
        bucket = bucket_name(primary_id, secondary_id, EntityKind.ISSUE)
        bucket_reverse = bucket_name(secondary_id, primary_id, EntityKind.ISSUE)

        counterpart_id = issue.secondary_id
        if not counterpart_id:
            with _phase("look up issue", issue.id):
                counterpart_id = self._lookup_issue(bucket, issue.id)

        if counterpart_id:
            state = self._state_of(issue)
            if state:
                with _phase("update state of issue", counterpart_id):
                    try:
                        self._secondary.update_issue_state(counterpart_id, state)
                        self.stats.issues_updated += 1
                    except CapabilityNotImplementedError as e:
                        logger.debug(f"State of issue {counterpart_id} not updated: {e}")
            logger.debug(f"Issue {issue.id} already mirrored as {counterpart_id}")
        else:
            source = self._hydrate(issue)
            with _phase("create issue", issue.id):
                counterpart_id = self._secondary.create_issue(source)
                if not counterpart_id:
                    msg = f"{secondary_id} returned no ID for the counterpart of issue {issue.id}"
                    raise TrackerError(msg)
                self._store.put_many(
                    [
                        StoreItem(bucket, issue.id, counterpart_id),
                        StoreItem(bucket_reverse, counterpart_id, issue.id),
                    ]
                )
            self.stats.issues_created += 1
            logger.info(f"Created issue {counterpart_id} on {secondary_id} for {issue.id}")

        if not issue.secondary_id:
            with _phase("set secondary ID of issue", issue.id):
                try:
                    self._primary.set_secondary_id(issue.id, counterpart_id)
                except CapabilityNotImplementedError as e:
                    logger.debug(f"Secondary ID of issue {issue.id} not recorded by tracker: {e}")

        with _phase("sync comments of issue", issue.id):
            self.sync_comments(self._primary, issue.id, self._secondary, counterpart_id)
        with _phase("sync attachments of issue", issue.id):
            self.sync_attachments(self._primary, issue.id, self._secondary, counterpart_id)

    def sync_comments(self, a: Tracker, a_id: IssueID, b: Tracker, b_id: IssueID) -> int:
        """Mirror comments missing on either side of the (a_id, b_id) issue pair.

        Returns:
            Number of comments created on both sides
        """
        a_comments = self._list_children(a.list_comments, a_id, "comments")
        b_comments = self._list_children(b.list_comments, b_id, "comments")
        created = self._mirror_children(EntityKind.COMMENT, a, a_comments, b, b_id, b_comments, b.add_comment)
        created += self._mirror_children(EntityKind.COMMENT, b, b_comments, a, a_id, a_comments, a.add_comment)
        self.stats.comments_created += created
        return created

    def sync_attachments(self, a: Tracker, a_id: IssueID, b: Tracker, b_id: IssueID) -> int:
        """Mirror attachments missing on either side of the (a_id, b_id) issue pair.

        Returns:
            Number of attachments created on both sides
        """
        a_attachments = self._list_children(a.list_attachments, a_id, "attachments")
        b_attachments = self._list_children(b.list_attachments, b_id, "attachments")
        created = self._mirror_children(
            EntityKind.ATTACHMENT,
            a,
            a_attachments,
            b,
            b_id,
            b_attachments,
            lambda issue_id, attachment: self._transfer_attachment(b, issue_id, attachment),
        )
        created += self._mirror_children(
            EntityKind.ATTACHMENT,
            b,
            b_attachments,
            a,
            a_id,
            a_attachments,
            lambda issue_id, attachment: self._transfer_attachment(a, issue_id, attachment),
        )
        self.stats.attachments_created += created
        return created

    def _mirror_children(
        self,
        kind: EntityKind,
        source: Tracker,
        source_items: Sequence[Any],
        target: Tracker,
        target_issue_id: IssueID,
        target_items: Sequence[Any],
        add: Callable[[IssueID, Any], str | None],
    ) -> int:
        """Create on ``target`` every source item that has no recorded counterpart."""
        label = kind.name.lower()
        forward = bucket_name(target.tracker_id, source.tracker_id, kind)
        reverse = bucket_name(source.tracker_id, target.tracker_id, kind)
        target_ids = {item.id for item in target_items}

        created = 0
        for item in source_items:
            if item.id in target_ids:
                continue
            with _phase(f"look up {label}", item.id):
                existing = self._store.get(forward, item.id)
            if existing:
                self.stats.skipped_existing += 1
                logger.debug(f"Skipping {label} {item.id}: already mirrored as {existing}")
                continue

            with _phase(f"add {label}", item.id):
                try:
                    new_id = add(target_issue_id, item)
                except CapabilityNotImplementedError as e:
                    logger.debug(f"{target.tracker_id} does not accept {label}s: {e}")
                    break
                if new_id is None:
                    continue
                if not new_id:
                    msg = f"{target.tracker_id} returned no ID for {label} {item.id}"
                    raise TrackerError(msg)
                self._store.put_many([StoreItem(forward, item.id, new_id), StoreItem(reverse, new_id, item.id)])
            created += 1
            logger.debug(f"Mirrored {label} {item.id} as {new_id} on issue {target_issue_id}")
        return created

    @staticmethod
    def _transfer_attachment(target: Tracker, issue_id: IssueID, attachment: Attachment) -> str | None:
        """Stream the attachment content into ``target``, always closing the stream."""
        if attachment.content is None:
            logger.warning(f"Skipping attachment {attachment.id} ({attachment.name}): no content available")
            return None
        with contextlib.closing(attachment.content.open()) as body:
            return target.add_attachment(issue_id, attachment, body)

    @staticmethod
    def _list_children(list_fn: Callable[[IssueID], list[Any]], issue_id: IssueID, label: str) -> list[Any]:
        """List comments or attachments; a tracker that cannot list them has none."""
        with _phase(f"list {label} of issue", issue_id):
            try:
                return list_fn(issue_id)
            except CapabilityNotImplementedError as e:
                logger.debug(f"Cannot list {label} of issue {issue_id}: {e}")
                return []

    def _lookup_issue(self, bucket: str, issue_id: IssueID) -> str:
        try:
            return self._store.get(bucket, issue_id)
        except CapabilityNotImplementedError:
            return ""

    def _state_of(self, issue: Issue) -> State:
        """Return the state of the issue, fetching it when the listing left it out."""
        if issue.state:
            return issue.state
        with _phase("get issue", issue.id):
            try:
                return self._primary.get_issue(issue.id).state
            except CapabilityNotImplementedError as e:
                logger.debug(f"State of issue {issue.id} unknown: {e}")
                return ""

    def _hydrate(self, issue: Issue) -> Issue:
        """Fetch the full issue from the primary when the listing only carried its ID."""
        if issue.summary:
            return issue
        with _phase("get issue", issue.id):
            try:
                full = self._primary.get_issue(issue.id)
            except CapabilityNotImplementedError as e:
                logger.debug(f"Using listed data of issue {issue.id}: {e}")
                return issue
        full.id = issue.id
        full.secondary_id = full.secondary_id or issue.secondary_id
        return full

    def _since(self) -> dt.datetime:
        if self.since_mode is SinceMode.FULL:
            return EPOCH
        with _phase("read watermark of", self._primary.tracker_id):
            value = self._store.get(self._watermark_bucket(), WATERMARK_KEY)
        if not value:
            return EPOCH
        try:
            return dt.datetime.fromisoformat(value)
        except ValueError:
            logger.warning(f"Ignoring malformed watermark {value!r}; listing all issues")
            return EPOCH

    def _watermark_bucket(self) -> str:
        return bucket_name(self._primary.tracker_id, self._secondary.tracker_id, WATERMARK_CODE)

    @staticmethod
    def _check_cancelled(cancel_event: threading.Event | None) -> None:
        if cancel_event is not None and cancel_event.is_set():
            msg = "Sync pass cancelled"
            raise SyncCancelled(msg)
