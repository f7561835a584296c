"""Release archive download, extraction and validation."""

from __future__ import annotations

import gzip
import logging
import tarfile
import zlib
from pathlib import Path, PurePosixPath
from typing import BinaryIO
from urllib.parse import urlsplit, urlunsplit

import requests  # type: ignore[import-untyped]

from ..core.errors import FetchError, InvalidArchiveError, InvalidManifestUrlError

logger = logging.getLogger(__name__)

REQUIRED_SCRIPTS = frozenset({"run.sh", "id.sh"})
DOWNLOAD_CHUNK_SIZE = 8192


# --------------------------
# URLs
# --------------------------
def parent_uri(url: str) -> str:
    """Drop the last path segment of ``url``, keeping scheme and authority.

    ``http://foo/manifest.yaml`` gives ``http://foo/`` and
    ``https://foo/bar/manifest.yaml`` gives ``https://foo/bar``.
    """
    parts = urlsplit(url)
    if not parts.scheme or not parts.netloc:
        raise InvalidManifestUrlError(f"Invalid manifest URL: {url}")
    if not parts.path:
        raise InvalidManifestUrlError(f"Invalid manifest URL (no path): {url}")

    segments = parts.path.split("/")[:-1]
    parent_path = "".join(f"/{seg}" for seg in segments if seg) or "/"
    return urlunsplit((parts.scheme, parts.netloc, parent_path, "", ""))


def archive_url(manifest_url: str, app_name: str, release: str) -> str:
    parent = parent_uri(manifest_url).rstrip("/")
    return f"{parent}/{app_name}-{release}.tar.gz"


# --------------------------
# Download
# --------------------------
def download_archive(
    url: str,
    fileobj: BinaryIO,
    timeout: float = 60.0,
    user_agent: str = "orm-agent/1.0",
) -> int:
    """Stream the archive at ``url`` into ``fileobj``; return the byte count."""
    headers = {"User-Agent": user_agent}
    written = 0
    try:
        with requests.get(url, headers=headers, stream=True, timeout=timeout) as r:
            status = int(r.status_code)
            if status != 200:
                raise FetchError(f"Fails to fetch archive {url}: status = {status} != 200")
            for chunk in r.iter_content(chunk_size=DOWNLOAD_CHUNK_SIZE):
                if chunk:
                    fileobj.write(chunk)
                    written += len(chunk)
    except requests.RequestException as e:
        raise FetchError(f"Fails to download archive {url}: {e}") from e

    fileobj.flush()
    logger.debug("Archive size = %s", written)
    return written


# --------------------------
# Extract + validate
# --------------------------
def _extract_members(tar: tarfile.TarFile, staging_dir: Path) -> list[PurePosixPath]:
    extracted: list[PurePosixPath] = []
    for member in tar:
        try:
            tar.extract(member, path=staging_dir, filter="data")
        except (tarfile.FilterError, tarfile.ExtractError, OSError) as e:
            logger.warning("Skipping archive entry %s: %s", member.name, e)
            continue
        extracted.append(PurePosixPath(member.name))
    return extracted


def extract_archive(fileobj: BinaryIO, staging_dir: Path, app_name: str) -> list[str]:
    """Extract the gzip+tar stream into ``staging_dir`` and check entry points.

    Returns the archive paths of the required scripts. Raises
    ``InvalidArchiveError`` unless both ``<app_name>/run.sh`` and
    ``<app_name>/id.sh`` were extracted.
    """
    fileobj.seek(0)
    try:
        with tarfile.open(fileobj=fileobj, mode="r:gz") as tar:
            extracted = _extract_members(tar, Path(staging_dir))
    except (tarfile.TarError, EOFError, zlib.error, gzip.BadGzipFile) as e:
        raise InvalidArchiveError(f"Invalid archive: {e}") from e

    prefix = PurePosixPath(app_name)
    scripts = sorted(
        {str(path) for path in extracted if path.parent == prefix and path.name in REQUIRED_SCRIPTS}
    )
    if len(scripts) != len(REQUIRED_SCRIPTS):
        raise InvalidArchiveError(f"Invalid archive; Missing script(s): {scripts}")

    logger.debug("Archive entry points: %s", scripts)
    return scripts
