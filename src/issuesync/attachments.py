"""Lazy attachment content sources.

An attachment's bytes are never loaded while listing. Each source below opens a
fresh stream on demand; whoever calls ``open()`` closes the stream.
"""

from __future__ import annotations

import io
import logging
import mimetypes
from typing import TYPE_CHECKING, BinaryIO

import requests

from .exceptions import TrackerError

if TYPE_CHECKING:
    from collections.abc import Mapping

logger: logging.Logger = logging.getLogger(__name__)

_DOWNLOAD_TIMEOUT_SECONDS = 60


class BytesContent:
    """Content already held in memory (e.g. inlined by the tracker API)."""

    _data: bytes

    def __init__(self, data: bytes) -> None:
        self._data = data

    def open(self) -> BinaryIO:
        return io.BytesIO(self._data)


class HttpContent:
    """Content downloaded from a URL, streamed on each ``open()``."""

    url: str
    _session: requests.Session
    _headers: dict[str, str]

    def __init__(self, session: requests.Session, url: str, headers: Mapping[str, str] | None = None) -> None:
        self._session = session
        self.url = url
        self._headers = dict(headers or {})

    def open(self) -> BinaryIO:
        """Start the download and return the response body as a stream."""
        try:
            response = self._session.get(self.url, headers=self._headers, stream=True, timeout=_DOWNLOAD_TIMEOUT_SECONDS)
            response.raise_for_status()
        except requests.RequestException as e:
            msg = f"Failed to download attachment {self.url}: {e}"
            raise TrackerError(msg) from e
        response.raw.decode_content = True
        logger.debug(f"Streaming attachment from {self.url}")
        return response.raw


def guess_mime_type(filename: str) -> str:
    """Guess the MIME type from the file name, defaulting to octet-stream."""
    mime_type, _ = mimetypes.guess_type(filename)
    return mime_type or "application/octet-stream"
