"""
Custom exception classes for the issue tracker synchronization tool.
"""

from __future__ import annotations


class SyncError(Exception):
    """Base exception for synchronization errors."""


class TrackerError(SyncError):
    """Raised when a tracker call fails (network or remote API error)."""


class CapabilityNotImplementedError(TrackerError):
    """Raised by a tracker adapter for a capability it does not support."""


class IssueNotFoundError(TrackerError):
    """Raised when a tracker does not know the requested issue."""


class StoreError(SyncError):
    """Raised when the correspondence store cannot be read or written."""


class StoreDecodeError(StoreError):
    """Raised when the correspondence store file holds malformed content."""


class RegistryError(SyncError):
    """Base exception for tracker registry errors."""


class AlreadyRegisteredError(RegistryError):
    """Raised when a tracker scheme is registered twice."""


class UnknownTrackerError(RegistryError):
    """Raised when a tracker spec names no scheme or an unregistered one."""


class SyncAbortedError(SyncError):
    """Raised by the synchronizer when a non-tolerated failure stops the pass.

    Carries the phase and the entity being processed so the failure can be
    diagnosed from the log without re-running.
    """

    phase: str
    entity_id: str

    def __init__(self, phase: str, entity_id: str, cause: BaseException) -> None:
        super().__init__(f"{phase} {entity_id!r}: {cause}")
        self.phase = phase
        self.entity_id = entity_id


class SyncCancelled(Exception):  # noqa: N818
    """Raised when the caller's cancellation signal stops a pass."""
