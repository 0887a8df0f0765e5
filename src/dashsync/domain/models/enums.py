"""Enumerations for domain models."""

from enum import Enum


class CacheStatus(str, Enum):
    """Lifecycle state of a cache entry."""

    IDLE = "IDLE"  # created, never fetched
    LOADING = "LOADING"
    FRESH = "FRESH"
    STALE = "STALE"
    ERROR = "ERROR"


class AssetType(str, Enum):
    """Kinds of tradable assets."""

    STOCK = "STOCK"
    CRYPTO = "CRYPTO"


class JobStatus(str, Enum):
    """Status of a long-running server job (e.g. a screener run)."""

    PENDING = "PENDING"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        """RUNNING is the only status that still transitions on its own."""
        return self is not JobStatus.RUNNING


class TimeRange(str, Enum):
    """Display ranges for portfolio P&L."""

    ONE_MONTH = "1M"
    THREE_MONTHS = "3M"
    SIX_MONTHS = "6M"
    YEAR_TO_DATE = "YTD"
    ONE_YEAR = "1Y"
    ALL_TIME = "ALL_TIME"

    @property
    def is_all_time(self) -> bool:
        return self is TimeRange.ALL_TIME


class DisplayMode(str, Enum):
    """Dashboard density preference."""

    BASIC = "BASIC"
    ADVANCED = "ADVANCED"
