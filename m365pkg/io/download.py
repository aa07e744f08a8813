# Copyright 2025 Roger Cibrian
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""HTTP(S) file download for m365pkg.

Used to fetch the Office Deployment Tool (setup.exe) and
IntuneWinAppUtil.exe when they are not supplied locally.

Key Features:

- **Retry Logic with Exponential Backoff** - Retries on 429/5xx via
  urllib3.util.Retry mounted on the session.
- **Atomic Writes** - Downloads to a temporary .part file and renames on
  success, so a partial file never appears at the target path.
- **Integrity Verification** - SHA-256 computed while streaming, with optional
  checksum validation. Mismatched files are removed.
- **Smart Filename Detection** - Content-Disposition beats the URL path.

Example:
    >>> from pathlib import Path
    >>> from m365pkg.io import download_file
    >>> path, sha256 = download_file(
    ...     url="https://officecdn.microsoft.com/pr/wsus/setup.exe",
    ...     destination_folder=Path("./cache"),
    ... )
"""

from __future__ import annotations

import hashlib
from pathlib import Path
import time
from urllib.parse import urlparse

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from m365pkg.exceptions import NetworkError

# Stream size per chunk (1 MiB)
DEFAULT_CHUNK = 1024 * 1024

USER_AGENT = "m365pkg/0.1"


def _filename_from_cd(content_disposition: str) -> str | None:
    """
    Extract a filename from a Content-Disposition header if present.

    Example header:
      'attachment; filename="setup.exe"'
    """
    if not content_disposition:
        return None
    for part in (s.strip() for s in content_disposition.split(";")):
        if part.lower().startswith("filename="):
            value = part.split("=", 1)[1].strip().strip('"')
            return value or None
    return None


def _filename_from_url(url: str) -> str:
    """Derive a filename from the URL path, or a generic name if empty."""
    name = Path(urlparse(url).path).name
    return name or "download.bin"


def make_session(
    allowed_methods: tuple[str, ...] = ("GET", "HEAD"),
) -> requests.Session:
    """
    Create a requests.Session with retry/backoff defaults.

    - Retries on common transient status codes (429, 500, 502, 503, 504).
    - Applies exponential backoff and honors Retry-After.
    - Sets a User-Agent identifying m365pkg.

    Args:
        allowed_methods: HTTP methods that may be retried. The Graph client
            passes its own set; downloads only retry idempotent reads.
    """
    s = requests.Session()
    retries = Retry(
        total=5,
        backoff_factor=0.5,
        status_forcelist=(429, 500, 502, 503, 504),
        allowed_methods=allowed_methods,
        respect_retry_after_header=True,
        raise_on_status=False,
    )
    s.headers.update({"User-Agent": USER_AGENT})
    s.mount("http://", HTTPAdapter(max_retries=retries))
    s.mount("https://", HTTPAdapter(max_retries=retries))
    return s


def download_file(
    url: str,
    destination_folder: Path,
    *,
    filename: str | None = None,
    expected_sha256: str | None = None,
    timeout: int = 60,
) -> tuple[Path, str]:
    """Download a URL to destination_folder.

    Follows redirects and retries transient failures. Writes to
    <filename>.part then renames to <filename> on success.

    Args:
        url: Source URL.
        destination_folder: Folder to save into (created if missing).
        filename: Force the target file name instead of deriving it.
        expected_sha256: Optional known SHA-256 (hex). A mismatch removes the
            file and raises NetworkError.
        timeout: Per-request timeout (seconds).

    Returns:
        A tuple (file_path, sha256_hex).

    Raises:
        NetworkError: For HTTP failures or checksum mismatch.
    """
    from m365pkg.logging import get_global_logger

    logger = get_global_logger()
    destination_folder = Path(destination_folder)
    destination_folder.mkdir(parents=True, exist_ok=True)

    logger.verbose("HTTP", f"GET {url}")

    with make_session() as session:
        try:
            resp = session.get(url, stream=True, allow_redirects=True, timeout=timeout)
            resp.raise_for_status()
        except requests.RequestException as err:
            raise NetworkError(f"download failed for {url}: {err}") from err

        for hist in resp.history:
            logger.debug(
                "HTTP",
                f"Redirect {hist.status_code} -> {hist.headers.get('Location', 'unknown')}",
            )
        logger.verbose("HTTP", f"Response: {resp.status_code} {resp.reason}")

        name = (
            filename
            or _filename_from_cd(resp.headers.get("Content-Disposition", ""))
            or _filename_from_url(resp.url)
        )
        target = destination_folder / name
        tmp = target.with_suffix(target.suffix + ".part")
        logger.debug("FILE", f"Downloading to: {tmp}")

        sha = hashlib.sha256()
        started_at = time.time()
        try:
            with tmp.open("wb") as f:
                for chunk in resp.iter_content(chunk_size=DEFAULT_CHUNK):
                    if not chunk:
                        continue
                    f.write(chunk)
                    sha.update(chunk)
        except requests.RequestException as err:
            tmp.unlink(missing_ok=True)
            raise NetworkError(f"download interrupted for {url}: {err}") from err
        finally:
            resp.close()

    digest = sha.hexdigest()
    tmp.replace(target)

    if expected_sha256 and digest.lower() != expected_sha256.lower():
        target.unlink(missing_ok=True)
        raise NetworkError(
            f"sha256 mismatch for {name}: got {digest}, expected {expected_sha256}"
        )

    elapsed = time.time() - started_at
    logger.verbose("FILE", f"Download complete: {target} ({digest}) in {elapsed:.1f}s")
    return target, digest
