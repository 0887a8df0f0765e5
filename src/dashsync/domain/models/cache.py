"""Cache entry model for server-derived snapshots."""

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Generic, Optional, TypeVar

from dashsync.core.exceptions import AppError
from dashsync.domain.models.enums import CacheStatus

T = TypeVar("T")


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    """
    Snapshot of one cached resource.

    status == LOADING iff a fetch is in flight for key. On ERROR the last
    good data is kept. sequence is the newest write applied to this key.
    """

    key: str
    data: Optional[T] = None
    status: CacheStatus = CacheStatus.IDLE
    fetched_at: Optional[datetime] = None
    error: Optional[AppError] = None
    sequence: int = 0

    @property
    def has_data(self) -> bool:
        return self.fetched_at is not None

    @property
    def is_loading(self) -> bool:
        return self.status is CacheStatus.LOADING

    @property
    def display_state(self) -> str:
        """
        How a view should present this entry.

        Last-good data with an error gets a passive indicator; only a
        first-ever load failure is blocking.
        """
        if self.status is CacheStatus.ERROR:
            return "stale_with_error" if self.has_data else "blocking_error"
        if self.status is CacheStatus.LOADING and not self.has_data:
            return "loading"
        return "ok"

    def evolve(self, **changes: Any) -> "CacheEntry[T]":
        """Return a copy with the given fields changed."""
        return replace(self, **changes)
