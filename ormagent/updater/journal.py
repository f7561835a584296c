from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


class SwapState(str, Enum):
    STAGED = "staged"
    SWAPPING = "swapping"
    RUNNING = "running"
    TERMINATED = "terminated"
    REVERTING = "reverting"
    DONE = "done"


@dataclass(frozen=True)
class SwapRecord:
    version: str
    app_dir: str
    archived_dir: str
    started_at: str = ""
    state: str = SwapState.SWAPPING.value


class SwapJournal:
    """On-disk marker for a swap in flight.

    Written right before the live directory is renamed away, updated at each
    later state transition, and cleared once the attempt completes or is
    rolled back. A journal found at start means the last attempt was
    interrupted in the recorded state.
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    def _write(self, record: SwapRecord) -> None:
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        tmp_path.write_text(json.dumps(asdict(record), indent=2, sort_keys=True), encoding="utf-8")
        os.replace(tmp_path, self.path)
        logger.debug("Swap journal written: %s", record)

    def begin(self, version: str, app_dir: Path, archived_dir: Path) -> SwapRecord:
        record = SwapRecord(
            version=version,
            app_dir=str(app_dir),
            archived_dir=str(archived_dir),
            started_at=datetime.now(timezone.utc).isoformat(),
        )
        self._write(record)
        return record

    def mark(self, record: SwapRecord, state: SwapState) -> SwapRecord:
        """Record ``state`` for the swap in flight; write failures are logged."""
        updated = replace(record, state=state.value)
        try:
            self._write(updated)
        except OSError as e:
            logger.warning("Could not update swap journal %s to %s: %s", self.path, state.value, e)
        return updated

    def load(self) -> Optional[SwapRecord]:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            logger.warning("Unreadable swap journal %s: %s", self.path, e)
            return None

        try:
            return SwapRecord(
                version=str(data["version"]),
                app_dir=str(data["app_dir"]),
                archived_dir=str(data["archived_dir"]),
                started_at=str(data.get("started_at", "")),
                state=SwapState(data.get("state", SwapState.SWAPPING.value)).value,
            )
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Malformed swap journal %s: %s", self.path, e)
            return None

    def clear(self) -> None:
        try:
            self.path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning("Could not remove swap journal %s: %s", self.path, e)
