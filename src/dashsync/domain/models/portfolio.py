"""Portfolio and Position domain models."""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Optional

from dashsync.core.exceptions import ValidationError
from dashsync.domain.models.enums import AssetType


def _normalize_currency(code: str) -> str:
    code = (code or "").strip().upper()
    if len(code) != 3 or not code.isalpha():
        raise ValidationError(f"Invalid currency code: '{code}'")
    return code


@dataclass(frozen=True)
class Portfolio:
    """
    Named container of positions.

    Aggregates are reported in base_currency regardless of each
    position's native trading currency.
    """

    id: str
    name: str
    base_currency: str = "USD"

    def __post_init__(self) -> None:
        object.__setattr__(self, "base_currency", _normalize_currency(self.base_currency))


@dataclass(frozen=True)
class Position:
    """
    A holding inside exactly one portfolio.

    Immutable once created; changed only by explicit update/delete on the server.
    quantity, average_cost and fees are never negative.
    """

    id: str
    portfolio_id: str
    symbol: str
    quantity: Decimal
    average_cost: Decimal
    asset_type: AssetType = AssetType.STOCK
    native_currency: str = "USD"
    acquired_at: Optional[date] = None
    fees: Decimal = field(default_factory=lambda: Decimal("0"))

    def __post_init__(self) -> None:
        if isinstance(self.asset_type, str):
            object.__setattr__(self, "asset_type", AssetType(self.asset_type))
        object.__setattr__(self, "symbol", self.symbol.strip().upper())
        object.__setattr__(self, "native_currency", _normalize_currency(self.native_currency))
        for name in ("quantity", "average_cost", "fees"):
            value = Decimal(str(getattr(self, name)))
            if value < 0:
                raise ValidationError(f"{name} must be non-negative, got {value}")
            object.__setattr__(self, name, value)


@dataclass(frozen=True)
class PositionDraft:
    """Input data for creating a position (no id yet)."""

    symbol: str
    quantity: Decimal
    average_cost: Decimal
    asset_type: AssetType = AssetType.STOCK
    native_currency: str = "USD"
    acquired_at: Optional[date] = None
    fees: Decimal = field(default_factory=lambda: Decimal("0"))

    def to_position(self, position_id: str, portfolio_id: str) -> Position:
        """Materialize the draft as a Position (validates on construction)."""
        return Position(
            id=position_id,
            portfolio_id=portfolio_id,
            symbol=self.symbol,
            quantity=self.quantity,
            average_cost=self.average_cost,
            asset_type=self.asset_type,
            native_currency=self.native_currency,
            acquired_at=self.acquired_at,
            fees=self.fees,
        )
