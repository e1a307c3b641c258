"""
Tests for lazy attachment content sources.
"""

from __future__ import annotations

from unittest.mock import Mock

import pytest
import requests

from issuesync.attachments import BytesContent, HttpContent, guess_mime_type
from issuesync.exceptions import TrackerError


@pytest.mark.unit
class TestBytesContent:
    def test_each_open_is_a_fresh_stream(self) -> None:
        content = BytesContent(b"abc")

        first = content.open()
        assert first.read() == b"abc"
        first.close()
        assert content.open().read() == b"abc"


@pytest.mark.unit
class TestHttpContent:
    def test_open_streams_response_body(self) -> None:
        session = Mock()
        response = session.get.return_value

        stream = HttpContent(session, "https://files.example.com/a.bin", headers={"Accept": "application/octet-stream"}).open()

        session.get.assert_called_once_with(
            "https://files.example.com/a.bin", headers={"Accept": "application/octet-stream"}, stream=True, timeout=60
        )
        response.raise_for_status.assert_called_once()
        assert stream is response.raw
        assert response.raw.decode_content is True

    def test_http_error_becomes_tracker_error(self) -> None:
        session = Mock()
        session.get.return_value.raise_for_status.side_effect = requests.HTTPError("403 Forbidden")

        with pytest.raises(TrackerError, match="403 Forbidden"):
            _ = HttpContent(session, "https://files.example.com/a.bin").open()

    def test_download_is_deferred_until_open(self) -> None:
        session = Mock()

        _ = HttpContent(session, "https://files.example.com/a.bin")

        session.get.assert_not_called()


@pytest.mark.unit
class TestGuessMimeType:
    @pytest.mark.parametrize(
        ("filename", "expected"),
        [("shot.png", "image/png"), ("notes.txt", "text/plain"), ("blob", "application/octet-stream")],
    )
    def test_guess(self, filename: str, expected: str) -> None:
        assert guess_mime_type(filename) == expected
