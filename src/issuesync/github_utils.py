from __future__ import annotations

import contextlib
import logging
from typing import TYPE_CHECKING, Final
from urllib.parse import urlsplit

from github import Auth, Github, GithubException

from . import utils
from .exceptions import IssueNotFoundError, TrackerError

if TYPE_CHECKING:
    from collections.abc import Iterator

    from github.GitRelease import GitRelease
    from github.Repository import Repository

# Module-wide logger
logger: logging.Logger = logging.getLogger(__name__)

_TOKEN_ENV_VAR: Final[str] = "GITHUB_TOKEN"  # noqa: S105
_DEFAULT_TOKEN_PASS_PATH: Final[str] = "github/cli/token"  # noqa: S105
_PUBLIC_HOST: Final[str] = "github.com"

ATTACHMENTS_RELEASE_TAG: Final[str] = "issuesync-attachments"
ATTACHMENTS_RELEASE_NAME: Final[str] = "Synchronized issue attachments"


def get_token(explicit: str | None = None) -> str | None:
    """Get GitHub token from the URL, env var GITHUB_TOKEN, or default pass location."""
    token = utils.resolve_secret(explicit, _TOKEN_ENV_VAR, _DEFAULT_TOKEN_PASS_PATH)
    if token is None:
        logger.warning("No GitHub token specified nor found, using anonymous access")
    return token


def get_client(api_url: str, token: str | None = None) -> Github:
    """Get a GitHub client for the API at ``api_url`` using the token."""
    auth = Auth.Token(token) if token else None
    return Github(base_url=api_url, auth=auth)


def split_repo_url(url: str) -> tuple[str, str]:
    """Split ``https://host/owner/repo`` into API base URL and ``owner/repo``.

    github.com repositories use the public API, any other host is treated as
    GitHub Enterprise with its API under ``/api/v3``.
    """
    parts = urlsplit(url)
    repo_path = parts.path.strip("/").removesuffix(".git")
    if not parts.netloc or repo_path.count("/") != 1:
        msg = f"Invalid GitHub repository URL: {url!r}. Expected format: 'https://host/owner/repository'"
        raise TrackerError(msg)
    if parts.hostname in (_PUBLIC_HOST, f"www.{_PUBLIC_HOST}", f"api.{_PUBLIC_HOST}"):
        return "https://api.github.com", repo_path
    return f"{parts.scheme or 'https'}://{parts.netloc}/api/v3", repo_path


@contextlib.contextmanager
def api_errors(action: str) -> Iterator[None]:
    """Convert PyGithub errors raised while performing ``action``."""
    try:
        yield
    except GithubException as e:
        msg = f"GitHub {action} failed: {e.status} {e.data}"
        if e.status == 404:  # noqa: PLR2004
            raise IssueNotFoundError(msg) from e
        raise TrackerError(msg) from e


def find_attachments_release(repo: Repository) -> GitRelease | None:
    """Find the draft release holding attachment files (draft releases can't be found by tag)."""
    for release in repo.get_releases():
        if release.name == ATTACHMENTS_RELEASE_NAME:
            logger.debug(f"Using existing attachments release: {release.name}")
            return release
    return None


def get_or_create_attachments_release(repo: Repository) -> GitRelease:
    """Get or create the draft release for storing attachment files."""
    release = find_attachments_release(repo)
    if release is not None:
        return release

    logger.info(f"Creating new '{ATTACHMENTS_RELEASE_NAME}' release for storing attachment files")
    release = repo.create_git_release(
        tag=ATTACHMENTS_RELEASE_TAG,
        name=ATTACHMENTS_RELEASE_NAME,
        message="Storage for synchronized issue attachments. Do not delete.",
        draft=True,
    )
    logger.info(f"Created attachments release: {release.name}")
    return release
