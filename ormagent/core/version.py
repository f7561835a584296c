"""Installed-version marker handling."""

from __future__ import annotations

import logging
from pathlib import Path

from packaging import version

from .config import VERSION_MARKER_NAME
from .errors import InvalidVersionError

logger = logging.getLogger(__name__)

ZERO_VERSION = version.Version("0.0.0")


def parse_version(value: str) -> version.Version:
    try:
        return version.Version(str(value).strip())
    except version.InvalidVersion as e:
        raise InvalidVersionError(f"Invalid version {value!r}: {e}") from e


def read_installed_version(app_dir: Path) -> version.Version:
    """Return the version recorded in ``app_dir``; 0.0.0 when unknown.

    A missing or unparsable marker only logs a warning, so a first run on
    a freshly provisioned device always accepts the manifest version.
    """
    marker = Path(app_dir) / VERSION_MARKER_NAME
    try:
        content = marker.read_text(encoding="utf-8")
    except FileNotFoundError:
        logger.warning("Missing version marker %s, assuming %s", marker, ZERO_VERSION)
        return ZERO_VERSION
    except (OSError, UnicodeDecodeError) as e:
        logger.warning("Could not read version marker %s: %s", marker, e)
        return ZERO_VERSION

    try:
        return parse_version(content)
    except InvalidVersionError as e:
        logger.warning("Corrupt version marker %s: %s", marker, e)
        return ZERO_VERSION


def write_installed_version(app_dir: Path, installed: str) -> None:
    marker = Path(app_dir) / VERSION_MARKER_NAME
    marker.write_text(installed, encoding="utf-8")
    logger.debug("Version marker %s = %s", marker, installed)
