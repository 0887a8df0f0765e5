"""Background job state model."""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from dashsync.domain.models.enums import JobStatus


@dataclass(frozen=True)
class JobState:
    """
    Server-reported progress of a long-running job.

    Transitions: PENDING -> RUNNING -> {COMPLETED, FAILED}.
    """

    id: str
    universe: str
    status: JobStatus
    cursor_index: int = 0
    total: int = 0
    last_error: Optional[str] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        if isinstance(self.status, str):
            object.__setattr__(self, "status", JobStatus(self.status))

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def progress(self) -> float:
        """Fraction of the universe processed, in [0, 1]."""
        if self.total <= 0:
            return 1.0 if self.status is JobStatus.COMPLETED else 0.0
        return min(1.0, max(0.0, self.cursor_index / self.total))
