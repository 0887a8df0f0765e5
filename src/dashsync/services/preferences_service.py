"""User preferences with optimistic updates."""

import logging
from typing import Any

import pytz

from dashsync.core.exceptions import ValidationError
from dashsync.domain.models import DisplayMode
from dashsync.providers import ResourceClient
from dashsync.services.cache_store import CacheStore
from dashsync.services.keys import PREFERENCES_KEY
from dashsync.services.mutation_coordinator import MutationCoordinator

logger = logging.getLogger(__name__)

DEFAULT_PREFERENCES = {"mode": DisplayMode.BASIC.value, "timezone": "UTC"}


class PreferencesService:
    """Display mode and timezone, applied locally before the server confirms."""

    def __init__(self, client: ResourceClient, store: CacheStore, coordinator: MutationCoordinator):
        self._client = client
        self._store = store
        self._coordinator = coordinator

    def current(self) -> dict[str, Any]:
        return {**DEFAULT_PREFERENCES, **(self._store.get(PREFERENCES_KEY).data or {})}

    async def set_mode(self, mode: DisplayMode) -> dict[str, Any]:
        try:
            mode = DisplayMode(mode)
        except ValueError:
            raise ValidationError(f"Unknown display mode: {mode}", field_errors={"mode": "invalid"})
        return await self._update({"mode": mode.value})

    async def set_timezone(self, timezone: str) -> dict[str, Any]:
        try:
            pytz.timezone(timezone)
        except pytz.UnknownTimeZoneError:
            raise ValidationError(f"Unknown timezone: {timezone}", field_errors={"timezone": "invalid"})
        return await self._update({"timezone": timezone})

    async def _update(self, changes: dict[str, Any]) -> dict[str, Any]:
        logger.debug("Updating preferences: %s", changes)
        await self._coordinator.mutate(
            PREFERENCES_KEY,
            lambda: self._client.update_preferences(changes),
            optimistic_updater=lambda current: {**DEFAULT_PREFERENCES, **(current or {}), **changes},
            reconcile=lambda current, stored: {**(current or {}), **(stored or {})},
        )
        return self.current()
