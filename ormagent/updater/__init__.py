"""OTA update pipeline: manifest, gating, archive, swap and supervision."""

from .service import Updater
from .status import ExecutionStatus, UpdateOutcome

__all__ = ["Updater", "ExecutionStatus", "UpdateOutcome"]
