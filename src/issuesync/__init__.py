"""
Issue Tracker Synchronization Tool

Mirrors issues, comments and attachments between two issue trackers, keeping a
persistent correspondence store so that repeated runs never duplicate anything.
"""

from __future__ import annotations

from .cli import main
from .exceptions import (
    CapabilityNotImplementedError,
    StoreError,
    SyncAbortedError,
    SyncCancelled,
    SyncError,
    TrackerError,
)
from .registry import TrackerRegistry, default_registry
from .store import FileStore
from .synchronizer import SinceMode, Synchronizer, SyncStats
from .tracker import BaseTracker
from .utils import setup_logging

# Package version
__version__ = "0.1.0"

__all__ = [
    "BaseTracker",
    "CapabilityNotImplementedError",
    "FileStore",
    "SinceMode",
    "StoreError",
    "SyncAbortedError",
    "SyncCancelled",
    "SyncError",
    "SyncStats",
    "Synchronizer",
    "TrackerError",
    "TrackerRegistry",
    "default_registry",
    "main",
    "setup_logging",
]
