"""Tracked asset overview: ordered list, untracking and quotes."""

from dashsync.domain.models import AssetType
from dashsync.domain.views import Quote
from dashsync.providers import ResourceClient
from dashsync.services.cache_store import CacheStore
from dashsync.services.keys import TRACKED_ASSETS_KEY, quote_key
from dashsync.services.mutation_coordinator import MutationCoordinator
from dashsync.services.ordering_manager import OrderingManager
from dashsync.services.portfolio_service import data_or_raise

TRACKED_ASSETS_COLLECTION = "tracked-assets"


class TrackedAssetsService:
    """User's tracked symbols, in the user's order."""

    def __init__(
        self,
        client: ResourceClient,
        store: CacheStore,
        coordinator: MutationCoordinator,
        ordering: OrderingManager,
    ):
        self._client = client
        self._store = store
        self._coordinator = coordinator
        self._ordering = ordering

    async def list_tracked(self, force: bool = False) -> list[str]:
        if force:
            entry = await self._store.fetch(TRACKED_ASSETS_KEY, self._client.list_tracked_assets)
        else:
            entry = await self._store.read(TRACKED_ASSETS_KEY, self._client.list_tracked_assets)
        return list(data_or_raise(entry) or [])

    async def reorder(self, from_index: int, to_index: int) -> list[str]:
        await self.list_tracked()
        return await self._ordering.reorder(
            TRACKED_ASSETS_KEY,
            from_index,
            to_index,
            lambda ids: self._client.reorder(TRACKED_ASSETS_COLLECTION, ids),
        )

    async def untrack(self, symbol: str) -> None:
        symbol = symbol.strip().upper()
        await self._coordinator.mutate(
            TRACKED_ASSETS_KEY,
            lambda: self._client.untrack_asset(symbol),
            optimistic_updater=lambda symbols: [s for s in symbols or [] if s != symbol],
            invalidates=[TRACKED_ASSETS_KEY],
        )

    async def get_quote(self, symbol: str, asset_type: AssetType = AssetType.STOCK) -> Quote:
        entry = await self._store.read(
            quote_key(symbol, asset_type),
            lambda: self._client.get_quote(symbol, asset_type),
        )
        return data_or_raise(entry)
