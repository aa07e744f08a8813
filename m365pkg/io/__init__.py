"""Input/Output operations for m365pkg.

Modules:

download : module
    HTTP(S) file download with retries, atomic writes, and checksums.

Public API:

download_file : function
    Download a file from a URL.
make_session : function
    Build a requests.Session with retry/backoff defaults.

Example:
    from pathlib import Path
    from m365pkg.io import download_file

    file_path, sha256 = download_file(
        url="https://officecdn.microsoft.com/pr/wsus/setup.exe",
        destination_folder=Path("./cache"),
    )

"""

from .download import download_file, make_session

__all__ = ["download_file", "make_session"]
