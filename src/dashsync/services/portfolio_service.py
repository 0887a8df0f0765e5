"""Portfolio service for selection, positions, history and valuation."""

import asyncio
import logging
from decimal import Decimal
from typing import Optional

from dashsync.core.exceptions import NotFoundError
from dashsync.domain.models import CacheEntry, CacheStatus, Portfolio, Position, PositionDraft, TimeRange
from dashsync.domain.views import HistoryPoint, Quote, RangePnlView, ValuationSnapshot
from dashsync.providers import ResourceClient
from dashsync.repositories.protocols import PreferenceRepository
from dashsync.services.cache_store import CacheStore
from dashsync.services.keys import (
    PORTFOLIOS_KEY,
    fx_rates_key,
    historical_key,
    portfolio_scope,
    positions_key,
    quote_key,
)
from dashsync.services.mutation_coordinator import MutationCoordinator
from dashsync.services.ordering_manager import OrderingManager
from dashsync.services.valuation_engine import ValuationEngine

logger = logging.getLogger(__name__)

SELECTED_PORTFOLIO_PREF = "selected_portfolio_id"


def data_or_raise(entry: CacheEntry):
    """Return entry data, raising the recorded error if there is nothing to show."""
    if entry.status is CacheStatus.ERROR and not entry.has_data:
        raise entry.error
    return entry.data


class PortfolioService:
    """
    Service for the portfolio dashboard.

    Reads go through the cache store so every view of the same resource shares
    one snapshot. Position writes go through the mutation coordinator and
    invalidate everything derived from the portfolio.
    """

    def __init__(
        self,
        client: ResourceClient,
        store: CacheStore,
        coordinator: MutationCoordinator,
        preferences: PreferenceRepository,
        valuation_engine: ValuationEngine,
        ordering: Optional[OrderingManager] = None,
    ):
        self._client = client
        self._store = store
        self._coordinator = coordinator
        self._preferences = preferences
        self._engine = valuation_engine
        self._ordering = ordering or OrderingManager(store, coordinator)

    # Portfolios and selection

    async def list_portfolios(self, force: bool = False) -> list[Portfolio]:
        entry = await self._load(PORTFOLIOS_KEY, self._client.list_portfolios, force)
        return list(data_or_raise(entry) or [])

    async def get_selected_portfolio(self) -> Optional[Portfolio]:
        """
        Resolve the persisted selection.

        A persisted id that no longer exists falls back to the first
        portfolio, and the fallback is persisted. Returns None when the user
        has no portfolios.
        """
        portfolios = await self.list_portfolios()
        if not portfolios:
            return None

        selected_id = self._preferences.get(SELECTED_PORTFOLIO_PREF)
        for portfolio in portfolios:
            if portfolio.id == selected_id:
                return portfolio

        fallback = portfolios[0]
        if selected_id is not None:
            logger.info("Selected portfolio %s no longer exists; using %s", selected_id, fallback.id)
        self._preferences.set(SELECTED_PORTFOLIO_PREF, fallback.id)
        return fallback

    async def select_portfolio(self, portfolio_id: str) -> Portfolio:
        portfolios = await self.list_portfolios()
        for portfolio in portfolios:
            if portfolio.id == portfolio_id:
                self._preferences.set(SELECTED_PORTFOLIO_PREF, portfolio.id)
                return portfolio
        raise NotFoundError("Portfolio", portfolio_id)

    # Positions

    async def get_positions(self, portfolio_id: str, force: bool = False) -> list[Position]:
        entry = await self._load(
            positions_key(portfolio_id),
            lambda: self._client.get_positions(portfolio_id),
            force,
        )
        return list(data_or_raise(entry) or [])

    async def add_position(self, portfolio_id: str, draft: PositionDraft) -> Position:
        """
        Create a position on the server.

        The draft is validated locally first. The list is not updated
        optimistically; the server's copy arrives through the invalidation
        of every key derived from the portfolio.
        """
        draft.to_position("draft", portfolio_id)
        return await self._coordinator.mutate(
            positions_key(portfolio_id),
            lambda: self._client.create_position(portfolio_id, draft),
            invalidates=[portfolio_scope(portfolio_id)],
        )

    async def delete_position(self, portfolio_id: str, position_id: str) -> None:
        """Delete a position, removing it from the cached list right away."""
        await self._coordinator.mutate(
            positions_key(portfolio_id),
            lambda: self._client.delete_position(position_id),
            optimistic_updater=lambda positions: [
                p for p in positions or [] if p.id != position_id
            ],
            invalidates=[portfolio_scope(portfolio_id)],
        )

    async def reorder_positions(self, portfolio_id: str, from_index: int, to_index: int) -> list[Position]:
        """Move a position within the portfolio's user-defined order."""
        await self.get_positions(portfolio_id)
        return await self._ordering.reorder(
            positions_key(portfolio_id),
            from_index,
            to_index,
            lambda ids: self._client.reorder(f"portfolio:{portfolio_id}", ids),
            id_getter=lambda position: position.id,
        )

    # History and valuation

    async def get_historical(self, portfolio_id: str, time_range: TimeRange) -> list[HistoryPoint]:
        entry = await self._load(
            historical_key(portfolio_id, time_range),
            lambda: self._client.get_historical(portfolio_id, time_range),
        )
        return list(data_or_raise(entry) or [])

    async def get_quotes(self, positions: list[Position]) -> dict[str, Optional[Quote]]:
        """
        Current quote per symbol.

        A quote that cannot be loaded maps to None so the position is valued
        as invalid instead of failing the whole portfolio.
        """
        unique = {p.symbol: p.asset_type for p in positions}
        symbols = list(unique)
        entries = await asyncio.gather(
            *(
                self._load(quote_key(symbol, unique[symbol]), self._quote_fetcher(symbol, unique[symbol]))
                for symbol in symbols
            )
        )
        return {symbol: entry.data if entry.has_data else None for symbol, entry in zip(symbols, entries)}

    async def get_fx_rates(self, base_currency: str) -> dict[str, Decimal]:
        entry = await self._load(
            fx_rates_key(base_currency),
            lambda: self._client.get_fx_rates(base_currency),
        )
        return dict(data_or_raise(entry) or {})

    async def valuation(self, portfolio_id: Optional[str] = None) -> Optional[ValuationSnapshot]:
        """Value a portfolio (the selected one by default) in its base currency."""
        portfolio = await self._resolve(portfolio_id)
        if portfolio is None:
            return None
        positions = await self.get_positions(portfolio.id)
        quotes = await self.get_quotes(positions)
        fx_rates: dict[str, Decimal] = {}
        if any(p.native_currency != portfolio.base_currency for p in positions):
            fx_rates = await self.get_fx_rates(portfolio.base_currency)
        return self._engine.compute_snapshot(positions, quotes, fx_rates, portfolio.base_currency)

    async def range_pnl(self, time_range: TimeRange, portfolio_id: Optional[str] = None) -> Optional[RangePnlView]:
        portfolio = await self._resolve(portfolio_id)
        if portfolio is None:
            return None
        snapshot = await self.valuation(portfolio.id)
        series: list[HistoryPoint] = []
        if not TimeRange(time_range).is_all_time:
            series = await self.get_historical(portfolio.id, time_range)
        return self._engine.range_pnl(snapshot, time_range, series)

    # Internals

    async def _resolve(self, portfolio_id: Optional[str]) -> Optional[Portfolio]:
        if portfolio_id is None:
            return await self.get_selected_portfolio()
        for portfolio in await self.list_portfolios():
            if portfolio.id == portfolio_id:
                return portfolio
        raise NotFoundError("Portfolio", portfolio_id)

    def _quote_fetcher(self, symbol, asset_type):
        return lambda: self._client.get_quote(symbol, asset_type)

    async def _load(self, key: str, fetcher, force: bool = False) -> CacheEntry:
        if force:
            return await self._store.fetch(key, fetcher)
        return await self._store.read(key, fetcher)
