"""Version gate and the failed-version ledger."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from packaging import version

from ..core.errors import LedgerError
from ..core.version import parse_version
from ..utils.fs import find_line
from .status import ExecutionStatus

logger = logging.getLogger(__name__)


class FailedVersionLedger:
    """Append-only record of versions that failed to start after install."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def contains(self, candidate: version.Version) -> bool:
        def _matches(line: str) -> bool:
            text = line.strip()
            if not text:
                return False
            try:
                return version.Version(text) == candidate
            except version.InvalidVersion:
                logger.debug("Ignoring unparsable ledger line %r", text)
                return False

        try:
            return find_line(self.path, _matches) is not None
        except FileNotFoundError:
            return False
        except UnicodeDecodeError as e:
            raise LedgerError(f"Failed-version ledger {self.path} is not valid UTF-8: {e}") from e

    def append(self, failed_version: str) -> None:
        with open(self.path, "a", encoding="utf-8") as f:
            f.write(f"{failed_version}\n")
        logger.info("Recorded failed version %s in %s", failed_version, self.path)


def check_candidate(
    candidate: str,
    current: version.Version,
    ledger: FailedVersionLedger,
) -> Optional[ExecutionStatus]:
    """Return a ``NoUpdate`` status when ``candidate`` must not be installed.

    Updates are strictly forward-only: equal or older versions are refused,
    as are versions recorded in the ledger. ``None`` means proceed.
    """
    new_version = parse_version(candidate)

    logger.debug("Check update version %s against current %s", new_version, current)

    if new_version <= current:
        return ExecutionStatus.no_update(
            f"Application version is already up-to-date: {current} (manifest: {new_version})"
        )

    if ledger.contains(new_version):
        logger.warning("Version %s previously failed; skipping", new_version)
        return ExecutionStatus.no_update(f"Skipping failed version: {new_version}")

    return None
