"""Valuation engine for portfolio aggregates and P&L."""

from decimal import ROUND_HALF_UP, Decimal
from typing import Mapping, Optional, Sequence, Union

from dashsync.core.exceptions import ValidationError
from dashsync.domain.models import Position, TimeRange
from dashsync.domain.views import HistoryPoint, PositionValuation, Quote, RangePnlView, ValuationSnapshot

ZERO = Decimal("0")
ONE = Decimal("1")
HUNDRED = Decimal("100")
CENT = Decimal("0.01")

PriceInput = Union[Quote, Decimal, int, str, None]


def _to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _percent(pnl: Decimal, basis: Decimal) -> Decimal:
    if basis == 0:
        return Decimal("0")
    return pnl / basis * HUNDRED


def format_money(amount: Decimal, currency: str = "USD") -> str:
    """Format a money amount for display, rounded half-up to cents."""
    value = _to_decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)
    return f"{value:,} {currency.upper()}"


class ValuationEngine:
    """
    Computes portfolio valuation from positions, prices and FX rates.

    Pure and deterministic: the same inputs always produce identical
    snapshots. All arithmetic stays in Decimal; rounding happens only in
    format_money.

    FX rates map a currency code to the rate converting one unit of that
    currency into the base currency. The base currency converts at 1; any
    other missing rate is a ValidationError.
    """

    def __init__(self, include_fees_in_cost_basis: bool = False):
        self._include_fees = include_fees_in_cost_basis

    def value_positions(
        self,
        positions: Sequence[Position],
        prices: Mapping[str, PriceInput],
        fx_rates: Mapping[str, Decimal],
        base_currency: str,
    ) -> list[PositionValuation]:
        """Value each position in the base currency."""
        base = base_currency.upper()
        return [self._value_position(p, prices, fx_rates, base) for p in positions]

    def compute_snapshot(
        self,
        positions: Sequence[Position],
        prices: Mapping[str, PriceInput],
        fx_rates: Mapping[str, Decimal],
        base_currency: str,
    ) -> ValuationSnapshot:
        """
        Aggregate a portfolio's positions into a valuation snapshot.

        Args:
            positions: Positions of one portfolio
            prices: Symbol -> Quote or native price; None marks a missing quote
            fx_rates: Currency -> rate into base_currency
            base_currency: Currency the aggregates are expressed in

        Returns:
            ValuationSnapshot with totals, P&L and best/worst performers
        """
        base = base_currency.upper()
        valuations = self.value_positions(positions, prices, fx_rates, base)

        total_value = sum((v.market_value_base for v in valuations), ZERO)
        # Unpriced positions stay out of the basis so the aggregate P&L equals
        # the sum of per-position P&L
        cost_basis = sum((v.cost_basis_base for v in valuations if not v.is_invalid), ZERO)
        unpriced_cost = sum((v.cost_basis_base for v in valuations if v.is_invalid), ZERO)
        pnl = total_value - cost_basis

        best: Optional[PositionValuation] = None
        worst: Optional[PositionValuation] = None
        for valuation in valuations:
            # Strict comparisons keep the first-encountered position on ties
            if best is None or valuation.pnl_percent > best.pnl_percent:
                best = valuation
            if worst is None or valuation.pnl_percent < worst.pnl_percent:
                worst = valuation

        return ValuationSnapshot(
            base_currency=base,
            total_value_base=total_value,
            cost_basis_base=cost_basis,
            pnl_base=pnl,
            pnl_percent=_percent(pnl, cost_basis),
            best_performer=best,
            worst_performer=worst,
            positions=tuple(valuations),
            invalid_symbols=tuple(v.symbol for v in valuations if v.is_invalid),
            unpriced_cost_basis_base=unpriced_cost,
        )

    def range_pnl(
        self,
        snapshot: ValuationSnapshot,
        time_range: TimeRange,
        series: Sequence[HistoryPoint],
    ) -> RangePnlView:
        """
        P&L over a display range.

        ALL_TIME equals the snapshot's P&L. Other ranges measure from the first
        point of the series; with no usable start point the all-time cost basis
        is used instead and the result is flagged used_fallback.
        """
        time_range = TimeRange(time_range)
        current = snapshot.total_value_base
        if time_range.is_all_time:
            return RangePnlView(
                time_range=time_range,
                start_value=snapshot.cost_basis_base,
                current_value=current,
                pnl=snapshot.pnl_base,
                pnl_percent=snapshot.pnl_percent,
            )

        ordered = sorted(series, key=lambda point: point.timestamp)
        if ordered and ordered[0].total_value != 0:
            start = ordered[0].total_value
            used_fallback = False
        else:
            start = snapshot.cost_basis_base
            used_fallback = True

        pnl = current - start
        return RangePnlView(
            time_range=time_range,
            start_value=start,
            current_value=current,
            pnl=pnl,
            pnl_percent=_percent(pnl, start),
            used_fallback=used_fallback,
        )

    def _value_position(
        self,
        position: Position,
        prices: Mapping[str, PriceInput],
        fx_rates: Mapping[str, Decimal],
        base: str,
    ) -> PositionValuation:
        native = position.native_currency.upper()
        rate = self._fx_rate(native, fx_rates, base)

        cost_native = position.quantity * position.average_cost
        if self._include_fees:
            cost_native += position.fees
        cost_basis = cost_native * rate

        native_price = self._price_of(position.symbol, prices)
        if native_price is None:
            return PositionValuation(
                position_id=position.id,
                symbol=position.symbol,
                native_currency=native,
                quantity=position.quantity,
                native_price=None,
                base_price=None,
                market_value_base=ZERO,
                cost_basis_base=cost_basis,
                pnl_base=ZERO,
                pnl_percent=Decimal("0"),
                is_invalid=True,
                shows_dual_currency=native != base,
            )

        base_price = native_price * rate
        market_value = position.quantity * native_price * rate
        pnl = market_value - cost_basis
        return PositionValuation(
            position_id=position.id,
            symbol=position.symbol,
            native_currency=native,
            quantity=position.quantity,
            native_price=native_price,
            base_price=base_price,
            market_value_base=market_value,
            cost_basis_base=cost_basis,
            pnl_base=pnl,
            pnl_percent=_percent(pnl, cost_basis),
            shows_dual_currency=native != base,
        )

    @staticmethod
    def _fx_rate(currency: str, fx_rates: Mapping[str, Decimal], base: str) -> Decimal:
        if currency == base:
            return ONE
        rate = fx_rates.get(currency)
        if rate is None:
            rate = fx_rates.get(currency.lower())
        if rate is None:
            raise ValidationError(
                f"No FX rate from {currency} to {base}",
                field_errors={"fx_rates": f"missing {currency}"},
            )
        return _to_decimal(rate)

    @staticmethod
    def _price_of(symbol: str, prices: Mapping[str, PriceInput]) -> Optional[Decimal]:
        value = prices.get(symbol)
        if isinstance(value, Quote):
            value = value.price
        if value is None:
            return None
        return _to_decimal(value)
