"""Pydantic schemas for the dashboard API wire format (camelCase JSON)."""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from dashsync.core.timezone import parse_date, parse_datetime_utc
from dashsync.domain.models import AssetType, JobState, JobStatus, Portfolio, Position, PositionDraft
from dashsync.domain.views import HistoryPoint, Quote


class WireModel(BaseModel):
    """Base for wire schemas: accepts camelCase aliases and ignores unknown keys."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class PortfolioSchema(WireModel):
    """Wire schema for a portfolio."""

    id: str
    name: str
    base_currency: str = Field("USD", alias="baseCurrency")

    def to_domain(self) -> Portfolio:
        return Portfolio(id=self.id, name=self.name, base_currency=self.base_currency)


class PositionSchema(WireModel):
    """Wire schema for a position."""

    id: str
    portfolio_id: Optional[str] = Field(None, alias="portfolioId")
    symbol: str
    asset_type: AssetType = Field(AssetType.STOCK, alias="assetType")
    quantity: Decimal
    average_cost: Decimal = Field(alias="averageCost")
    currency: str = "USD"
    acquired_at: Optional[Union[datetime, date, str]] = Field(None, alias="acquiredAt")
    fees: Decimal = Decimal("0")

    def to_domain(self, portfolio_id: str) -> Position:
        return Position(
            id=self.id,
            portfolio_id=self.portfolio_id or portfolio_id,
            symbol=self.symbol,
            quantity=self.quantity,
            average_cost=self.average_cost,
            asset_type=self.asset_type,
            native_currency=self.currency,
            acquired_at=parse_date(self.acquired_at) if self.acquired_at else None,
            fees=self.fees,
        )


class HistoryPointSchema(WireModel):
    """Wire schema for one historical total-value point."""

    timestamp: Union[int, float, str]
    total_value: Decimal = Field(alias="totalValue")

    def to_domain(self) -> HistoryPoint:
        return HistoryPoint(
            timestamp=parse_datetime_utc(self.timestamp),
            total_value=self.total_value,
        )


class JobStateSchema(WireModel):
    """Wire schema for a background job state."""

    id: str = ""
    universe: str = Field("", alias="universeName")
    status: JobStatus
    cursor_index: int = Field(0, alias="cursorIndex")
    total: int = 0
    last_error: Optional[str] = Field(None, alias="lastError")
    updated_at: Optional[Union[int, float, str]] = Field(None, alias="updatedAt")

    def to_domain(self, universe: str) -> JobState:
        return JobState(
            id=self.id,
            universe=self.universe or universe,
            status=self.status,
            cursor_index=self.cursor_index,
            total=self.total,
            last_error=self.last_error,
            updated_at=parse_datetime_utc(self.updated_at) if self.updated_at is not None else None,
        )


class QuoteSchema(WireModel):
    """Wire schema for a quote."""

    symbol: Optional[str] = None
    price: Optional[Decimal] = None
    is_stale: bool = Field(False, alias="isStale")
    source: str = ""

    def to_domain(self, symbol: str) -> Quote:
        return Quote(
            symbol=(self.symbol or symbol).upper(),
            price=self.price,
            is_stale=self.is_stale,
            source=self.source,
        )


def position_draft_payload(portfolio_id: str, draft: PositionDraft) -> dict:
    """Build the JSON body for creating a position."""
    acquired_at = draft.acquired_at or date.today()
    return {
        "portfolioId": portfolio_id,
        "symbol": draft.symbol.strip().upper(),
        "assetType": AssetType(draft.asset_type).value,
        "quantity": float(draft.quantity),
        "averageCost": float(draft.average_cost),
        "currency": draft.native_currency.upper(),
        "acquiredAt": acquired_at.isoformat(),
        "fees": float(draft.fees),
    }
