from __future__ import annotations

import contextlib
import logging
import re
from typing import TYPE_CHECKING, BinaryIO, Final
from urllib.parse import urlsplit, urlunsplit

from gitlab import Gitlab
from gitlab.exceptions import GitlabError

from . import utils
from .exceptions import IssueNotFoundError, TrackerError

if TYPE_CHECKING:
    from collections.abc import Iterator

# Module-wide logger
logger: logging.Logger = logging.getLogger(__name__)

_TOKEN_ENV_VAR: Final[str] = "GITLAB_TOKEN"  # noqa: S105
_DEFAULT_TOKEN_PASS_PATH: Final[str] = "gitlab/cli/token"  # noqa: S105

# Markdown upload references: /uploads/<32 hex secret>/<file name>
UPLOAD_PATTERN: Final[re.Pattern[str]] = re.compile(r"/uploads/([a-f0-9]{32})/([^)\s]+)")


def get_token(explicit: str | None = None) -> str | None:
    """Get GitLab token from the URL, env var GITLAB_TOKEN, or default pass location."""
    token = utils.resolve_secret(explicit, _TOKEN_ENV_VAR, _DEFAULT_TOKEN_PASS_PATH)
    if token is None:
        logger.warning("No GitLab token specified nor found, using anonymous access")
    return token


def get_client(url: str, token: str | None = None) -> Gitlab:
    """Get a GitLab client for the server at ``url`` using the token."""
    return Gitlab(url=url, private_token=token)


def split_project_url(url: str) -> tuple[str, str]:
    """Split ``https://host/group/project`` into server URL and project path."""
    parts = urlsplit(url)
    project_path = parts.path.strip("/").removesuffix(".git")
    if not parts.netloc or not project_path:
        msg = f"Invalid GitLab project URL: {url!r}. Expected format: 'https://host/namespace/project'"
        raise TrackerError(msg)
    return urlunsplit((parts.scheme or "https", parts.netloc, "", "", "")), project_path


def find_uploads(content: str | None) -> list[tuple[str, str]]:
    """Return the (secret, filename) pairs of the uploads referenced in ``content``."""
    return UPLOAD_PATTERN.findall(content or "")


@contextlib.contextmanager
def api_errors(action: str) -> Iterator[None]:
    """Convert python-gitlab errors raised while performing ``action``."""
    try:
        yield
    except GitlabError as e:
        msg = f"GitLab {action} failed: {e}"
        if e.response_code == 404:  # noqa: PLR2004
            raise IssueNotFoundError(msg) from e
        raise TrackerError(msg) from e


class GitlabUploadContent:
    """Content of a project upload, downloaded through the uploads API."""

    _client: Gitlab
    _project_id: int
    secret: str
    filename: str

    def __init__(self, client: Gitlab, project_id: int, secret: str, filename: str) -> None:
        self._client = client
        self._project_id = project_id
        self.secret = secret
        self.filename = filename

    def open(self) -> BinaryIO:
        path = f"/projects/{self._project_id}/uploads/{self.secret}/{self.filename}"
        with api_errors(f"download of upload {self.secret}/{self.filename}"):
            response = self._client.http_get(path, streamed=True, raw=True)
        response.raw.decode_content = True
        return response.raw
