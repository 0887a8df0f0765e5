"""Optimistic reordering of user-ordered collections."""

import asyncio
import logging
from collections import Counter
from typing import Any, Awaitable, Callable, Sequence

from dashsync.core.exceptions import ValidationError
from dashsync.services.cache_store import CacheStore
from dashsync.services.mutation_coordinator import MutationCoordinator

logger = logging.getLogger(__name__)


def move_item(items: Sequence[Any], from_index: int, to_index: int) -> list:
    """
    Return a copy of items with the element at from_index moved to to_index.

    Raises:
        ValidationError: If either index is outside the list
    """
    size = len(items)
    for name, index in (("from_index", from_index), ("to_index", to_index)):
        if not 0 <= index < size:
            raise ValidationError(
                f"{name} {index} is out of range for {size} item(s)",
                field_errors={name: "out of range"},
            )
    moved = list(items)
    moved.insert(to_index, moved.pop(from_index))
    return moved


def _identity(item: Any) -> Any:
    return item


class OrderingManager:
    """
    Applies drag-and-drop moves locally first, then persists them.

    The new order is visible in the cache before the request leaves; a failed
    request rolls back to the order before the move. Moves on the same
    collection run one after another so each computes from the previous
    result.
    """

    def __init__(self, store: CacheStore, coordinator: MutationCoordinator):
        self._store = store
        self._coordinator = coordinator
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: Counter = Counter()

    async def reorder(
        self,
        collection_key: str,
        from_index: int,
        to_index: int,
        persist: Callable[[list], Awaitable[Any]],
        id_getter: Callable[[Any], Any] = _identity,
    ) -> list:
        """
        Move one item of a cached collection and persist the new order.

        Args:
            collection_key: Cache key holding the ordered list
            from_index: Current position of the item
            to_index: Target position of the item
            persist: Coroutine function receiving the ordered id list
            id_getter: Maps a list item to the id sent to persist

        Returns:
            The collection's order after the move
        """
        lock = self._locks.setdefault(collection_key, asyncio.Lock())
        self._lock_users[collection_key] += 1
        try:
            async with lock:
                return await self._move(collection_key, from_index, to_index, persist, id_getter)
        finally:
            # The lock lives only while some move on the collection holds or awaits it
            self._lock_users[collection_key] -= 1
            if self._lock_users[collection_key] <= 0:
                del self._lock_users[collection_key]
                del self._locks[collection_key]

    def active_collections(self) -> list[str]:
        """Collections with a move running or queued."""
        return list(self._locks)

    async def _move(
        self,
        collection_key: str,
        from_index: int,
        to_index: int,
        persist: Callable[[list], Awaitable[Any]],
        id_getter: Callable[[Any], Any],
    ) -> list:
        current = list(self._store.get(collection_key).data or [])
        reordered = move_item(current, from_index, to_index)
        if from_index == to_index:
            return current

        ordered_ids = [id_getter(item) for item in reordered]
        logger.debug("Reordering '%s': %d -> %d", collection_key, from_index, to_index)
        await self._coordinator.mutate(
            collection_key,
            lambda: persist(ordered_ids),
            optimistic_updater=lambda _previous: reordered,
            invalidates=(),
        )
        return reordered
