"""Retention of the previous application generation."""

from __future__ import annotations

import logging
import os
import shutil
import tarfile
from pathlib import Path

from ..utils.fs import list_file_names

logger = logging.getLogger(__name__)

ARCHIVE_SUFFIX = ".tar.gz"


class ArchivePruner:
    """Keeps at most one compressed previous generation per application."""

    def __init__(self, local_prefix: Path, app_name: str):
        self.local_prefix = Path(local_prefix)
        self.app_name = app_name

    def retained_archives(self) -> list[Path]:
        names = list_file_names(
            self.local_prefix,
            lambda name: name.startswith(self.app_name) and name.endswith(ARCHIVE_SUFFIX),
        )
        return [self.local_prefix / name for name in names]

    def archive_path(self, archived_dir: Path) -> Path:
        archived_dir = Path(archived_dir)
        return archived_dir.with_name(archived_dir.name + ARCHIVE_SUFFIX)

    def compress(self, archived_dir: Path) -> Path:
        archived_dir = Path(archived_dir)
        tarball = self.archive_path(archived_dir)
        partial = tarball.with_name(tarball.name + ".partial")
        with tarfile.open(partial, "w:gz") as tar:
            tar.add(str(archived_dir), arcname=archived_dir.name)
        os.replace(partial, tarball)
        logger.debug("Compressed %s into %s", archived_dir, tarball)
        return tarball

    def rotate(self, archived_dir: Path) -> Path:
        """Compress ``archived_dir``, drop it, and delete older archives.

        Older archives are listed before compressing so the new one is never
        among the deleted. A tarball already present for ``archived_dir`` is
        complete and is never rewritten; only the leftover directory goes.
        """
        archived_dir = Path(archived_dir)
        tarball = self.archive_path(archived_dir)
        stale = [path for path in self.retained_archives() if path != tarball]

        if tarball.is_file():
            logger.warning("Keeping existing archive %s", tarball)
        else:
            self.compress(archived_dir)
        if archived_dir.exists():
            shutil.rmtree(archived_dir)

        for path in stale:
            logger.info("Removing stale archive %s", path)
            path.unlink()

        logger.info("Previous generation archived as %s", tarball)
        return tarball
