#!/usr/bin/env python3
"""
Tests for the clickup-download utility

Run with: python -m pytest tests/test_clickup_download.py -v
"""

import os
import sys
from unittest.mock import MagicMock, patch

import pytest
import requests

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from clickup_download import (
    DownloadFailed,
    build_parser,
    download_file,
    format_bytes,
    main,
)


def _stream(chunks=(b"data",), status=200, headers=None):
    resp = MagicMock()
    resp.status_code = status
    resp.headers = headers or {}
    resp.iter_content.return_value = list(chunks)
    resp.__enter__.return_value = resp
    return resp


@pytest.fixture(autouse=True)
def no_sleep(monkeypatch):
    monkeypatch.delenv("CLICKUP_DOWNLOAD_RETRIES", raising=False)
    monkeypatch.delenv("CLICKUP_DOWNLOAD_TIMEOUT", raising=False)
    with patch("clickup_download.time.sleep") as mock_sleep:
        yield mock_sleep


@pytest.fixture
def session():
    return MagicMock()


class TestDownloadFile:
    """Tests for download_file retry, resume and cleanup behavior."""

    def test_success(self, session, tmp_path):
        session.get.return_value = _stream([b"hello ", b"world"])
        out = download_file("https://example.com/f.txt", tmp_path / "f.txt", session=session, quiet=True)
        assert out.read_bytes() == b"hello world"
        assert session.get.call_count == 1
        kwargs = session.get.call_args.kwargs
        assert kwargs["timeout"] == 30
        assert kwargs["stream"] is True
        assert "Range" not in kwargs["headers"]

    def test_creates_parent_directory(self, session, tmp_path):
        session.get.return_value = _stream()
        out = download_file("https://example.com/f", tmp_path / "a" / "b" / "f", session=session, quiet=True)
        assert out.exists()

    def test_succeeds_on_third_attempt(self, session, tmp_path, no_sleep):
        session.get.side_effect = [
            requests.ConnectionError("reset"),
            requests.Timeout("slow"),
            _stream([b"ok"]),
        ]
        out = download_file("https://example.com/f", tmp_path / "f", retries=3, session=session, quiet=True)
        assert out.read_bytes() == b"ok"
        assert session.get.call_count == 3
        assert no_sleep.call_count == 2

    def test_gives_up_after_retries(self, session, tmp_path):
        session.get.side_effect = requests.ConnectionError("down")
        with pytest.raises(DownloadFailed, match="after 2 attempts"):
            download_file("https://example.com/f", tmp_path / "f", retries=2, session=session, quiet=True)
        assert session.get.call_count == 2

    def test_server_errors_are_retried(self, session, tmp_path):
        session.get.side_effect = [_stream(status=503), _stream([b"ok"])]
        download_file("https://example.com/f", tmp_path / "f", retries=3, session=session, quiet=True)
        assert session.get.call_count == 2

    def test_client_error_not_retried(self, session, tmp_path):
        session.get.return_value = _stream(status=404)
        with pytest.raises(DownloadFailed, match="HTTP 404"):
            download_file("https://example.com/f", tmp_path / "f", retries=3, session=session, quiet=True)
        assert session.get.call_count == 1

    def test_timeout_passed_per_attempt(self, session, tmp_path):
        session.get.return_value = _stream()
        download_file("https://example.com/f", tmp_path / "f", timeout=5, session=session, quiet=True)
        assert session.get.call_args.kwargs["timeout"] == 5

    def test_partial_file_removed_without_resume(self, session, tmp_path):
        target = tmp_path / "f"
        broken = _stream()
        broken.iter_content.side_effect = requests.exceptions.ChunkedEncodingError("cut")
        target.write_bytes(b"partial")
        session.get.return_value = broken
        with pytest.raises(DownloadFailed):
            download_file("https://example.com/f", target, retries=2, session=session, quiet=True)
        assert not target.exists()

    def test_partial_file_kept_with_resume(self, session, tmp_path):
        target = tmp_path / "f"
        target.write_bytes(b"partial")
        session.get.side_effect = requests.ConnectionError("down")
        with pytest.raises(DownloadFailed):
            download_file("https://example.com/f", target, retries=2, resume=True, session=session, quiet=True)
        assert target.read_bytes() == b"partial"

    def test_resume_appends_on_206(self, session, tmp_path):
        target = tmp_path / "f"
        target.write_bytes(b"abc")
        session.get.return_value = _stream([b"def"], status=206)
        download_file("https://example.com/f", target, resume=True, session=session, quiet=True)
        assert target.read_bytes() == b"abcdef"
        assert session.get.call_args.kwargs["headers"]["Range"] == "bytes=3-"

    def test_resume_restarts_on_200(self, session, tmp_path):
        target = tmp_path / "f"
        target.write_bytes(b"stale")
        session.get.return_value = _stream([b"fresh"], status=200)
        download_file("https://example.com/f", target, resume=True, session=session, quiet=True)
        assert target.read_bytes() == b"fresh"

    def test_resume_already_complete(self, session, tmp_path):
        target = tmp_path / "f"
        target.write_bytes(b"done")
        session.get.return_value = _stream(status=416)
        download_file("https://example.com/f", target, resume=True, session=session, quiet=True)
        assert target.read_bytes() == b"done"

    def test_empty_download_fails(self, session, tmp_path):
        target = tmp_path / "f"
        session.get.return_value = _stream([])
        with pytest.raises(DownloadFailed, match="empty"):
            download_file("https://example.com/f", target, session=session, quiet=True)
        assert not target.exists()

    def test_request_error_not_retried(self, session, tmp_path, no_sleep):
        session.get.side_effect = requests.exceptions.InvalidURL("No host supplied")
        with pytest.raises(DownloadFailed, match="No host supplied"):
            download_file("http://", tmp_path / "f", retries=3, session=session, quiet=True)
        assert session.get.call_count == 1
        no_sleep.assert_not_called()

    def test_unwritable_target(self, session, tmp_path):
        target = tmp_path / "taken"
        target.mkdir()
        session.get.return_value = _stream([b"data"])
        with pytest.raises(DownloadFailed, match="Cannot write"):
            download_file("https://example.com/f", target, session=session, quiet=True)
        assert target.is_dir()

    def test_parent_is_a_file(self, session, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_bytes(b"x")
        with pytest.raises(DownloadFailed, match="Cannot create"):
            download_file("https://example.com/f", blocker / "f", session=session, quiet=True)
        session.get.assert_not_called()

    def test_rejects_non_http_url(self, session, tmp_path):
        with pytest.raises(DownloadFailed, match="Invalid URL"):
            download_file("ftp://example.com/f", tmp_path / "f", session=session)
        session.get.assert_not_called()


class TestFormatBytes:
    """Tests for human readable sizes."""

    def test_units(self):
        assert format_bytes(512) == "512B"
        assert format_bytes(2048) == "2KB"
        assert format_bytes(5 * 1024 ** 2) == "5MB"
        assert format_bytes(3 * 1024 ** 3) == "3GB"


class TestMain:
    """Tests for the command line entry point."""

    def test_parser_flags(self):
        args = build_parser().parse_args(["-r", "5", "-t", "60", "-v", "-q", "-c", "https://x/f", "out"])
        assert args.retries == 5
        assert args.timeout == 60
        assert args.verbose is True
        assert args.quiet is True
        assert args.resume is True
        assert args.url == "https://x/f"
        assert args.output == "out"

    def test_parser_defaults(self):
        args = build_parser().parse_args(["https://x/f", "out"])
        assert args.retries == 3
        assert args.timeout == 30
        assert args.resume is False

    def test_env_defaults(self, monkeypatch):
        monkeypatch.setenv("CLICKUP_DOWNLOAD_RETRIES", "7")
        monkeypatch.setenv("CLICKUP_DOWNLOAD_TIMEOUT", "12")
        args = build_parser().parse_args(["https://x/f", "out"])
        assert args.retries == 7
        assert args.timeout == 12

    def test_bad_env_value_exits(self, monkeypatch):
        monkeypatch.setenv("CLICKUP_DOWNLOAD_RETRIES", "many")
        with pytest.raises(SystemExit, match="CLICKUP_DOWNLOAD_RETRIES must be an integer"):
            build_parser()

    def test_rejects_zero_retries(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["-r", "0", "https://x/f", "out"])

    def test_requires_url_and_output(self):
        with pytest.raises(SystemExit) as exc_info:
            build_parser().parse_args(["https://x/f"])
        assert exc_info.value.code != 0

    @patch("clickup_download.requests.Session")
    def test_success_prints_path(self, mock_session_class, tmp_path, capsys):
        sess = MagicMock()
        mock_session_class.return_value = sess
        sess.get.return_value = _stream([b"bytes"])
        target = tmp_path / "out.bin"
        assert main(["-q", "https://example.com/f", str(target)]) == 0
        assert capsys.readouterr().out.strip() == str(target)
        assert target.read_bytes() == b"bytes"

    @patch("clickup_download.requests.Session")
    def test_exhausted_retries_exit_nonzero(self, mock_session_class, tmp_path):
        sess = MagicMock()
        mock_session_class.return_value = sess
        sess.get.side_effect = requests.ConnectionError("down")
        assert main(["-q", "-r", "2", "https://example.com/f", str(tmp_path / "f")]) == 1
        assert sess.get.call_count == 2

    def test_invalid_url_exit_nonzero(self, tmp_path):
        assert main(["-q", "example.com/f", str(tmp_path / "f")]) == 1


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
