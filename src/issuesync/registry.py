"""Tracker registry: maps a scheme name to the factory building that tracker.

The registry is an explicit table built once by the composition root
(``default_registry()`` or the caller) and passed to whoever needs to turn a
``scheme:URL`` spec into a tracker.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .exceptions import AlreadyRegisteredError, UnknownTrackerError
from .github_tracker import GithubTracker
from .gitlab_tracker import GitlabTracker
from .jira_tracker import JiraTracker
from .mantisbt_tracker import MantisTracker

if TYPE_CHECKING:
    from collections.abc import Callable

    from .protocols import Tracker

logger: logging.Logger = logging.getLogger(__name__)


class TrackerRegistry:
    """Lookup table from scheme name to tracker factory."""

    _factories: dict[str, Callable[[str], Tracker]]

    def __init__(self) -> None:
        self._factories = {}

    def register(self, scheme: str, factory: Callable[[str], Tracker]) -> None:
        """Register ``factory`` for ``scheme``.

        Raises:
            AlreadyRegisteredError: If the scheme already has a factory
        """
        if scheme in self._factories:
            msg = f"{scheme!r}: already registered"
            raise AlreadyRegisteredError(msg)
        self._factories[scheme] = factory

    @property
    def schemes(self) -> list[str]:
        return sorted(self._factories)

    def create(self, spec: str) -> Tracker:
        """Build the tracker described by ``scheme:URL``.

        The URL may carry basic-auth credentials as userinfo; the factory is
        responsible for stripping them.

        Raises:
            UnknownTrackerError: If the spec has no scheme or an unregistered one
        """
        scheme, sep, base_url = spec.partition(":")
        if not sep or not scheme:
            msg = f"{spec!r}: no tracker scheme found (expected 'scheme:URL')"
            raise UnknownTrackerError(msg)
        factory = self._factories.get(scheme)
        if factory is None:
            msg = f"{scheme!r} is not a known tracker (known: {', '.join(self.schemes) or 'none'})"
            raise UnknownTrackerError(msg)
        logger.debug(f"Creating {scheme} tracker")
        return factory(base_url)


def default_registry() -> TrackerRegistry:
    """Build the registry of the bundled tracker adapters."""
    registry = TrackerRegistry()
    registry.register("gitlab", GitlabTracker.from_url)
    registry.register("github", GithubTracker.from_url)
    registry.register("jira", JiraTracker.from_url)
    registry.register("mantisbt", MantisTracker.from_url)
    return registry
