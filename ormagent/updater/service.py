"""Update orchestration: gate, fetch, swap, supervise, roll back.

Every stage before the swap can abort without touching the live
application directory. Once the swap has begun, an attempt only ends by
completing (previous generation archived, version marker written) or by
rolling back (failed version recorded, previous directory restored).
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import tarfile
import tempfile
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Optional, Union

from packaging import version

from ..core.config import AgentConfig
from ..core.errors import NoDeviceMatchError, RevertError, SwapError, UpdaterError
from ..core.version import write_installed_version
from .archive import REQUIRED_SCRIPTS, archive_url, download_archive, extract_archive
from .journal import SwapJournal, SwapRecord, SwapState
from .ledger import FailedVersionLedger, check_candidate
from .manifest import device_settings, resolve_thing_id
from .retention import ArchivePruner
from .status import ExecutionStatus

logger = logging.getLogger(__name__)

STAGING_PREFIX = ".orm_staging_"


class RecoveryAction(str, Enum):
    NONE = "none"
    COMPLETED = "completed"
    ROLLED_BACK = "rolled_back"
    CLEARED = "cleared"


def run_application(app_dir: Path) -> int:
    """Run ``app_dir/run.sh`` with the inherited environment until it exits."""
    run_script = Path(app_dir) / "run.sh"
    logger.debug("Run script: %s", run_script)
    process = subprocess.Popen([str(run_script)])
    logger.info("Successfully started %s ...", app_dir)
    return process.wait()


class Updater:
    def __init__(self, config: AgentConfig):
        self.config = config
        self.ledger = FailedVersionLedger(config.ledger_path)
        self.pruner = ArchivePruner(config.prefix_dir, config.app_name)
        self.journal = SwapJournal(config.journal_path)
        self.state: Optional[SwapState] = None
        self._record: Optional[SwapRecord] = None

    @property
    def app_dir(self) -> Path:
        return self.config.app_dir

    def _transition(self, state: SwapState) -> None:
        logger.debug("Swap state: %s -> %s", self.state.value if self.state else "-", state.value)
        self.state = state
        if self._record is None:
            return
        if state is SwapState.DONE:
            self.journal.clear()
            self._record = None
        else:
            self._record = self.journal.mark(self._record, state)

    # --------------------------
    # Attempt
    # --------------------------
    def execute(self, current_version: version.Version) -> ExecutionStatus:
        """Run one update attempt; only ``RevertError`` escapes."""
        try:
            return self._attempt(current_version)
        except RevertError:
            raise
        except (UpdaterError, OSError) as e:
            logger.warning("Fails to update software for %s: %s", self.config.object_type, e)
            return ExecutionStatus.no_update(str(e))

    def _attempt(self, current_version: version.Version) -> ExecutionStatus:
        cfg = self.config
        thing_id = resolve_thing_id(self.app_dir)

        device = device_settings(
            cfg.object_type,
            cfg.manifest_url,
            thing_id,
            timeout=cfg.http_timeout,
            user_agent=cfg.user_agent,
        )
        if device is None:
            raise NoDeviceMatchError(f"No device matching {thing_id}")

        gated = check_candidate(device.version, current_version, self.ledger)
        if gated is not None:
            return gated

        url = archive_url(cfg.manifest_url, cfg.app_name, device.version)
        logger.info("Updating %s from %s to %s (%s)", cfg.app_name, current_version, device.version, url)

        staging_dir = Path(tempfile.mkdtemp(prefix=STAGING_PREFIX, dir=cfg.prefix_dir))
        try:
            with tempfile.TemporaryFile(prefix="orm_archive_") as ar_file:
                size = download_archive(url, ar_file, timeout=cfg.http_timeout, user_agent=cfg.user_agent)
                logger.info("Downloaded %s bytes from %s", size, url)
                extract_archive(ar_file, staging_dir, cfg.app_name)
            self._transition(SwapState.STAGED)
            return self.install(staging_dir / cfg.app_name, device.version)
        finally:
            self._remove_staging(staging_dir)

    def _remove_staging(self, staging_dir: Path) -> None:
        try:
            shutil.rmtree(staging_dir)
        except FileNotFoundError:
            pass
        except OSError as cleanup_error:
            logger.warning("Could not remove staging directory %s: %s", staging_dir, cleanup_error)

    # --------------------------
    # Swap & supervise
    # --------------------------
    def _archived_path(self) -> Path:
        ts = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")
        return self.config.prefix_dir / f"{self.config.app_name}-{ts}"

    def install(self, staged_app_dir: Path, new_version: str) -> ExecutionStatus:
        """Swap ``staged_app_dir`` into place and run it."""
        archived_dir = self._archived_path()
        self._swap(staged_app_dir, archived_dir, new_version)

        self._transition(SwapState.RUNNING)
        try:
            exit_status = run_application(self.app_dir)
            self._transition(SwapState.TERMINATED)
            logger.info("Updated application exited with status %s", exit_status)
            self._finish(archived_dir, new_version)
        except (OSError, tarfile.TarError) as e:
            return self._revert(archived_dir, new_version, e)

        self._transition(SwapState.DONE)
        return ExecutionStatus.app_terminated(exit_status)

    def _swap(self, staged_app_dir: Path, archived_dir: Path, new_version: str) -> None:
        self._transition(SwapState.SWAPPING)
        self._record = self.journal.begin(new_version, self.app_dir, archived_dir)

        logger.info("Renaming previous application directory to %s", archived_dir)
        try:
            os.rename(self.app_dir, archived_dir)
        except OSError as e:
            self._transition(SwapState.DONE)
            raise SwapError(f"Fails to move {self.app_dir} to {archived_dir}: {e}") from e

        try:
            os.rename(staged_app_dir, self.app_dir)
        except OSError as e:
            try:
                os.rename(archived_dir, self.app_dir)
            except OSError as restore_error:
                raise RevertError(
                    f"Fails to restore {archived_dir} to {self.app_dir} after swap failure: {restore_error}"
                ) from restore_error
            self._transition(SwapState.DONE)
            raise SwapError(f"Fails to move {staged_app_dir} to {self.app_dir}: {e}") from e

    def _finish(self, archived_dir: Path, new_version: str) -> None:
        self.pruner.rotate(archived_dir)
        write_installed_version(self.app_dir, new_version)

    def _restore_archived_dir(self, archived_dir: Path) -> None:
        """Re-inflate the archived generation if it was already compressed."""
        if archived_dir.is_dir():
            return
        tarball = self.pruner.archive_path(archived_dir)
        if not tarball.is_file():
            return
        logger.warning("Restoring %s from %s", archived_dir, tarball)
        with tarfile.open(tarball, "r:gz") as tar:
            tar.extractall(path=archived_dir.parent, filter="data")

    def _revert(
        self,
        archived_dir: Path,
        failed_version: str,
        error: Union[BaseException, str],
    ) -> ExecutionStatus:
        self._transition(SwapState.REVERTING)
        msg = f"Reverts due to failed execution of application from update archive: {error}"

        try:
            self.ledger.append(failed_version)
        except OSError as ledger_error:
            msg = f"{msg} (could not record failed version {failed_version}: {ledger_error})"

        logger.warning("%s", msg)

        try:
            self._restore_archived_dir(archived_dir)
            if self.app_dir.is_dir():
                shutil.rmtree(self.app_dir)
            elif self.app_dir.exists():
                self.app_dir.unlink()
            os.rename(archived_dir, self.app_dir)
        except (OSError, tarfile.TarError) as e:
            raise RevertError(
                f"Fails to restore {archived_dir} to {self.app_dir}: {e}; manual intervention required"
            ) from e

        self._transition(SwapState.DONE)
        return ExecutionStatus.no_update(msg)

    # --------------------------
    # Recovery
    # --------------------------
    def recover_interrupted_swap(self) -> RecoveryAction:
        """Finish or roll back a swap left in flight by a previous run.

        The previous generation survives either as the archived directory or
        as its tarball. A complete ``app_dir`` gets the success bookkeeping
        finished unless the journal says a rollback had started; anything
        else is rolled back.
        """
        record = self.journal.load()
        if record is None:
            return RecoveryAction.NONE

        archived_dir = Path(record.archived_dir)
        tarball = self.pruner.archive_path(archived_dir)
        if not archived_dir.is_dir() and not tarball.is_file():
            logger.warning("Clearing stale swap journal %s (started %s)", self.journal.path, record.started_at)
            self.journal.clear()
            return RecoveryAction.CLEARED

        self._record = record
        self.state = SwapState(record.state)
        complete = all((self.app_dir / name).is_file() for name in REQUIRED_SCRIPTS)

        if complete and self.state is not SwapState.REVERTING:
            logger.warning("Completing interrupted update to %s", record.version)
            self._transition(SwapState.TERMINATED)
            try:
                self._finish(archived_dir, record.version)
            except (OSError, tarfile.TarError) as e:
                self._revert(archived_dir, record.version, e)
                return RecoveryAction.ROLLED_BACK
            self._transition(SwapState.DONE)
            return RecoveryAction.COMPLETED

        logger.warning("Rolling back interrupted update to %s (%s)", record.version, self.state.value)
        self._revert(archived_dir, record.version, "interrupted swap")
        return RecoveryAction.ROLLED_BACK
