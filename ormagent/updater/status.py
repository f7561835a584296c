from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class UpdateOutcome(str, Enum):
    NO_UPDATE = "no_update"
    APP_TERMINATED = "app_terminated"


@dataclass(frozen=True)
class ExecutionStatus:
    """Terminal outcome of one update attempt.

    ``NO_UPDATE`` carries a human readable ``message``; ``APP_TERMINATED``
    carries the ``exit_status`` of the updated application.
    """

    outcome: UpdateOutcome
    message: str = ""
    exit_status: Optional[int] = None

    @classmethod
    def no_update(cls, message: str) -> "ExecutionStatus":
        return cls(UpdateOutcome.NO_UPDATE, message=message)

    @classmethod
    def app_terminated(cls, exit_status: int) -> "ExecutionStatus":
        return cls(UpdateOutcome.APP_TERMINATED, exit_status=exit_status)

    @property
    def updated(self) -> bool:
        return self.outcome is UpdateOutcome.APP_TERMINATED

    def __str__(self) -> str:
        if self.updated:
            return f"AppTerminated({self.exit_status})"
        return f"NoUpdate({self.message})"
