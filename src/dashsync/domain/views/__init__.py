"""View models for service outputs."""

from dashsync.domain.views.valuation import (
    Quote,
    HistoryPoint,
    PositionValuation,
    ValuationSnapshot,
    RangePnlView,
)

__all__ = [
    "Quote",
    "HistoryPoint",
    "PositionValuation",
    "ValuationSnapshot",
    "RangePnlView",
]
