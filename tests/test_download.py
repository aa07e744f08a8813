"""
Tests for m365pkg.io.download module.

Tests download functionality including:
- Basic downloads
- Redirects
- Content-Disposition headers
- Forced file names
- Checksum validation
- Atomic writes
"""

from __future__ import annotations

import hashlib
from pathlib import Path

import pytest
import requests_mock

from m365pkg.exceptions import NetworkError
from m365pkg.io.download import download_file

pytestmark = pytest.mark.unit


def _sha256(data: bytes) -> str:
    """Helper to compute SHA-256 hash."""
    return hashlib.sha256(data).hexdigest()


def test_download_success(tmp_test_dir: Path) -> None:
    """Test basic successful download."""
    url = "https://example.com/setup.exe"
    data = b"MZ installer"

    with requests_mock.Mocker() as m:
        m.get(url, content=data)
        path, digest = download_file(url, tmp_test_dir)

    assert path == tmp_test_dir / "setup.exe"
    assert path.read_bytes() == data
    assert digest == _sha256(data)
    assert not (tmp_test_dir / "setup.exe.part").exists()


def test_download_follows_redirect(tmp_test_dir: Path) -> None:
    """Test that the final URL names the file after a redirect."""
    start = "https://example.com/latest"
    final = "https://cdn.example.com/files/setup.exe"

    with requests_mock.Mocker() as m:
        m.get(start, status_code=302, headers={"Location": final})
        m.get(final, content=b"data")
        path, _ = download_file(start, tmp_test_dir)

    assert path.name == "setup.exe"


def test_content_disposition_filename(tmp_test_dir: Path) -> None:
    url = "https://example.com/download?id=1"

    with requests_mock.Mocker() as m:
        m.get(
            url,
            content=b"data",
            headers={"Content-Disposition": 'attachment; filename="officedeploymenttool.exe"'},
        )
        path, _ = download_file(url, tmp_test_dir)

    assert path.name == "officedeploymenttool.exe"


def test_forced_filename(tmp_test_dir: Path) -> None:
    url = "https://example.com/download?id=1"

    with requests_mock.Mocker() as m:
        m.get(
            url,
            content=b"data",
            headers={"Content-Disposition": 'attachment; filename="other.exe"'},
        )
        path, _ = download_file(url, tmp_test_dir / "cache", filename="setup.exe")

    assert path == tmp_test_dir / "cache" / "setup.exe"


def test_checksum_match(tmp_test_dir: Path) -> None:
    url = "https://example.com/setup.exe"
    data = b"payload"

    with requests_mock.Mocker() as m:
        m.get(url, content=data)
        _, digest = download_file(
            url, tmp_test_dir, expected_sha256=_sha256(data).upper()
        )

    assert digest == _sha256(data)


def test_checksum_mismatch_removes_file(tmp_test_dir: Path) -> None:
    """Test that a mismatched download is deleted."""
    url = "https://example.com/setup.exe"

    with requests_mock.Mocker() as m:
        m.get(url, content=b"tampered")
        with pytest.raises(NetworkError, match="sha256 mismatch"):
            download_file(url, tmp_test_dir, expected_sha256="0" * 64)

    assert not (tmp_test_dir / "setup.exe").exists()


def test_http_error(tmp_test_dir: Path) -> None:
    url = "https://example.com/missing.exe"

    with requests_mock.Mocker() as m:
        m.get(url, status_code=404)
        with pytest.raises(NetworkError, match="download failed"):
            download_file(url, tmp_test_dir)

    assert list(tmp_test_dir.iterdir()) == []
