"""
Command-line interface for the issue tracker synchronization tool.
"""

from __future__ import annotations

import argparse
import logging
import signal
import sys
import threading
from pathlib import Path
from typing import TYPE_CHECKING

from .exceptions import SyncCancelled, SyncError
from .registry import default_registry
from .store import FileStore
from .synchronizer import SinceMode, Synchronizer
from .utils import setup_logging

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import FrameType

    from .synchronizer import SyncStats

logger: logging.Logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = "sync.db.json"
EXIT_CANCELLED = 130


def parse_arguments(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Mirror issues, comments and attachments between two issue trackers"
    )

    # Positional arguments
    _ = parser.add_argument("primary", help="Primary tracker as scheme:URL (e.g. gitlab:https://gitlab.com/ns/proj)")
    _ = parser.add_argument("secondary", help="Secondary tracker as scheme:URL (e.g. github:https://github.com/o/r)")

    _ = parser.add_argument(
        "--db", default=DEFAULT_DB_PATH, help=f"Correspondence store file (default: {DEFAULT_DB_PATH})"
    )
    _ = parser.add_argument(
        "--init-db", action="store_true", help="Create an empty correspondence store if the file does not exist"
    )
    _ = parser.add_argument(
        "--since-mode",
        choices=[mode.value for mode in SinceMode],
        default=SinceMode.FULL.value,
        help="full: list all issues each run; watermark: only issues changed since the last clean run",
    )
    _ = parser.add_argument(
        "--verbose", "-v", action="count", default=0, help="Increase console verbosity (-v: INFO, -vv: DEBUG)"
    )

    return parser.parse_args(argv)


def _install_signal_handlers(cancel_event: threading.Event) -> None:
    """Make SIGINT and SIGTERM stop the pass before the next issue."""

    def _request_cancel(signum: int, _frame: FrameType | None) -> None:
        logger.warning(f"Received {signal.Signals(signum).name}, stopping after the current issue")
        cancel_event.set()

    _ = signal.signal(signal.SIGINT, _request_cancel)
    _ = signal.signal(signal.SIGTERM, _request_cancel)


def _open_store(path: str, *, init: bool) -> FileStore:
    if init and not Path(path).exists():
        return FileStore.create(path)
    return FileStore(path)


def _print_sync_report(primary: str, secondary: str, stats: SyncStats) -> None:
    print(  # noqa: T201
        f"Synchronized {primary} -> {secondary}: "
        f"{stats.issues_seen} issues seen, {stats.issues_created} created, {stats.issues_updated} updated, "
        f"{stats.comments_created} comments, {stats.attachments_created} attachments, "
        f"{stats.skipped_existing} already mirrored"
    )


def main(argv: Sequence[str] | None = None) -> None:
    """Main entry point."""
    args = parse_arguments(argv)
    setup_logging(verbosity=args.verbose)

    cancel_event = threading.Event()
    _install_signal_handlers(cancel_event)

    try:
        registry = default_registry()
        primary = registry.create(args.primary)
        secondary = registry.create(args.secondary)

        with _open_store(args.db, init=args.init_db) as store:
            synchronizer = Synchronizer(store, primary, secondary, since_mode=SinceMode(args.since_mode))
            stats = synchronizer.sync(cancel_event)
    except SyncCancelled:
        logger.warning("Synchronization cancelled; re-run to resume")
        sys.exit(EXIT_CANCELLED)
    except SyncError:
        logger.exception("Synchronization failed")
        sys.exit(1)
    except Exception:
        logger.exception("Synchronization failed unexpectedly")
        sys.exit(1)

    _print_sync_report(primary.tracker_id, secondary.tracker_id, stats)
    sys.exit(0)
