"""Domain models package."""

from dashsync.domain.models.enums import (
    CacheStatus,
    AssetType,
    JobStatus,
    TimeRange,
    DisplayMode,
)
from dashsync.domain.models.portfolio import Portfolio, Position, PositionDraft
from dashsync.domain.models.job import JobState
from dashsync.domain.models.cache import CacheEntry

__all__ = [
    "CacheStatus",
    "AssetType",
    "JobStatus",
    "TimeRange",
    "DisplayMode",
    "Portfolio",
    "Position",
    "PositionDraft",
    "JobState",
    "CacheEntry",
]
