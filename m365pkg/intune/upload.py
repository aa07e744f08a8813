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

"""Intune content upload helpers for m365pkg.

A .intunewin file is a zip archive holding the encrypted payload and a
Detection.xml describing it:

    IntuneWinPackage/Metadata/Detection.xml
    IntuneWinPackage/Contents/IntunePackage.intunewin

This module reads that metadata and uploads the encrypted payload to the
Azure Storage SAS URI Intune hands out, as a block blob.

Example:
    ```python
    from pathlib import Path
    from m365pkg.intune.upload import read_intunewin_metadata

    metadata = read_intunewin_metadata(Path("build/output/setup.intunewin"))
    print(metadata.setup_file, metadata.unencrypted_size)
    ```
"""

from __future__ import annotations

import base64
from dataclasses import dataclass
from pathlib import Path
from typing import Any, BinaryIO
from urllib.parse import quote
import xml.etree.ElementTree as ET
import zipfile

import requests

from m365pkg.exceptions import NetworkError, PackagingError

DETECTION_XML_ENTRY = "IntuneWinPackage/Metadata/Detection.xml"
CONTENT_ENTRY = "IntuneWinPackage/Contents/IntunePackage.intunewin"

# Azure Storage block size (6 MiB)
BLOCK_SIZE = 6 * 1024 * 1024

# Detection.xml EncryptionInfo element -> Graph fileEncryptionInfo property
_ENCRYPTION_FIELDS = {
    "EncryptionKey": "encryptionKey",
    "MacKey": "macKey",
    "InitializationVector": "initializationVector",
    "Mac": "mac",
    "ProfileIdentifier": "profileIdentifier",
    "FileDigest": "fileDigest",
    "FileDigestAlgorithm": "fileDigestAlgorithm",
}


@dataclass(frozen=True)
class IntuneWinMetadata:
    """Facts about a .intunewin archive needed to publish it.

    Attributes:
        file_name: Name of the encrypted payload (Detection.xml FileName).
        setup_file: Setup file the package was built with.
        unencrypted_size: Size of the content before encryption.
        encrypted_size: Size of the encrypted payload inside the archive.
        encryption_info: Graph fileEncryptionInfo body.
    """

    file_name: str
    setup_file: str
    unencrypted_size: int
    encrypted_size: int
    encryption_info: dict[str, str]


def _text(root: ET.Element, path: str) -> str:
    element = root.find(path)
    if element is None or element.text is None:
        raise PackagingError(f"Detection.xml is missing {path}")
    return element.text.strip()


def read_intunewin_metadata(package_path: Path) -> IntuneWinMetadata:
    """Read Detection.xml and payload size from a .intunewin archive.

    Raises:
        PackagingError: If the archive or its metadata is malformed.
    """
    package_path = Path(package_path)
    try:
        with zipfile.ZipFile(package_path) as zf:
            root = ET.fromstring(zf.read(DETECTION_XML_ENTRY))
            encrypted_size = zf.getinfo(CONTENT_ENTRY).file_size
    except (zipfile.BadZipFile, KeyError) as err:
        raise PackagingError(f"Not a valid .intunewin archive: {package_path}: {err}") from err
    except ET.ParseError as err:
        raise PackagingError(f"Malformed Detection.xml in {package_path}: {err}") from err

    encryption_info = {
        graph_name: _text(root, f"EncryptionInfo/{xml_name}")
        for xml_name, graph_name in _ENCRYPTION_FIELDS.items()
    }
    try:
        unencrypted_size = int(_text(root, "UnencryptedContentSize"))
    except ValueError as err:
        raise PackagingError(f"Invalid UnencryptedContentSize in {package_path}") from err

    return IntuneWinMetadata(
        file_name=_text(root, "FileName"),
        setup_file=_text(root, "SetupFile"),
        unencrypted_size=unencrypted_size,
        encrypted_size=encrypted_size,
        encryption_info=encryption_info,
    )


def block_id(index: int) -> str:
    """Base64 block id; every id in a blob has the same length."""
    return base64.b64encode(f"block-{index:08d}".encode("ascii")).decode("ascii")


def block_list_xml(block_ids: list[str]) -> str:
    latest = "".join(f"<Latest>{b}</Latest>" for b in block_ids)
    return f'<?xml version="1.0" encoding="utf-8"?><BlockList>{latest}</BlockList>'


def _put(session: requests.Session, url: str, timeout: int, **kwargs: Any) -> None:
    try:
        resp = session.put(url, timeout=timeout, **kwargs)
        resp.raise_for_status()
    except requests.RequestException as err:
        raise NetworkError(f"Azure Storage upload failed: {err}") from err


def upload_blocks(
    session: requests.Session,
    sas_uri: str,
    stream: BinaryIO,
    *,
    block_size: int = BLOCK_SIZE,
    timeout: int = 120,
) -> list[str]:
    """Upload stream to sas_uri as blocks and commit the block list.

    Returns:
        The committed block ids, in order.

    Raises:
        NetworkError: If a block or the block list is rejected.
    """
    from m365pkg.logging import get_global_logger

    logger = get_global_logger()
    block_ids: list[str] = []
    while True:
        chunk = stream.read(block_size)
        if not chunk:
            break
        bid = block_id(len(block_ids))
        _put(
            session,
            f"{sas_uri}&comp=block&blockid={quote(bid, safe='')}",
            timeout,
            data=chunk,
            headers={"x-ms-blob-type": "BlockBlob"},
        )
        block_ids.append(bid)
        logger.debug("UPLOAD", f"Block {len(block_ids)} uploaded ({len(chunk)} bytes)")

    _put(
        session,
        f"{sas_uri}&comp=blocklist",
        timeout,
        data=block_list_xml(block_ids).encode("utf-8"),
        headers={"Content-Type": "application/xml"},
    )
    logger.verbose("UPLOAD", f"[OK] Uploaded {len(block_ids)} block(s)")
    return block_ids


def upload_package_content(
    session: requests.Session,
    sas_uri: str,
    package_path: Path,
    *,
    block_size: int = BLOCK_SIZE,
    timeout: int = 120,
) -> list[str]:
    """Upload the encrypted payload of package_path to sas_uri."""
    with zipfile.ZipFile(package_path) as zf, zf.open(CONTENT_ENTRY) as stream:
        return upload_blocks(
            session, sas_uri, stream, block_size=block_size, timeout=timeout
        )
