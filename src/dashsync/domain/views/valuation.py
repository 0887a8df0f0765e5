"""View models for quotes and valuation outputs."""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Optional

from dashsync.domain.models.enums import TimeRange


@dataclass(frozen=True)
class Quote:
    """Market quote for a symbol in its native currency."""

    symbol: str
    price: Optional[Decimal]
    is_stale: bool = False
    source: str = ""


@dataclass(frozen=True)
class HistoryPoint:
    """One point of a portfolio's historical total-value series."""

    timestamp: datetime
    total_value: Decimal


@dataclass(frozen=True)
class PositionValuation:
    """Valuation of a single position in the portfolio's base currency."""

    position_id: str
    symbol: str
    native_currency: str
    quantity: Decimal
    native_price: Optional[Decimal]
    base_price: Optional[Decimal]
    market_value_base: Decimal
    cost_basis_base: Decimal
    pnl_base: Decimal
    pnl_percent: Decimal
    is_invalid: bool = False
    shows_dual_currency: bool = False


@dataclass(frozen=True)
class ValuationSnapshot:
    """Portfolio-level aggregates. Derived on demand, never persisted."""

    base_currency: str
    total_value_base: Decimal
    cost_basis_base: Decimal
    pnl_base: Decimal
    pnl_percent: Decimal
    best_performer: Optional[PositionValuation] = None
    worst_performer: Optional[PositionValuation] = None
    positions: tuple[PositionValuation, ...] = field(default_factory=tuple)
    invalid_symbols: tuple[str, ...] = field(default_factory=tuple)
    # Cost basis of positions without a usable quote, excluded from cost_basis_base
    unpriced_cost_basis_base: Decimal = Decimal("0")


@dataclass(frozen=True)
class RangePnlView:
    """P&L over a selected display range."""

    time_range: TimeRange
    start_value: Decimal
    current_value: Decimal
    pnl: Decimal
    pnl_percent: Decimal
    used_fallback: bool = False
