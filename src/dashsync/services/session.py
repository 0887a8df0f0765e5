"""Session termination on authentication loss."""

import logging
from typing import Callable

from dashsync.core.exceptions import AuthError
from dashsync.services.adaptive_poller import AdaptivePoller
from dashsync.services.cache_store import CacheStore

logger = logging.getLogger(__name__)


class SessionManager:
    """
    Ends the client session when the server reports it unauthenticated.

    Installed as the store's session handler: polling stops, every cached
    entry is dropped, then listeners (the re-authentication flow) are called.
    """

    def __init__(self, store: CacheStore, poller: AdaptivePoller):
        self._store = store
        self._poller = poller
        self._listeners: list[Callable[[AuthError], None]] = []
        self.terminated = False
        store.set_session_handler(self.handle_auth_error)

    def add_listener(self, listener: Callable[[AuthError], None]) -> None:
        self._listeners.append(listener)

    def handle_auth_error(self, error: AuthError) -> None:
        logger.warning("Session ended: %s", error.message)
        self.terminated = True
        self._poller.stop_all()
        self._store.clear()
        for listener in list(self._listeners):
            try:
                listener(error)
            except Exception:
                logger.exception("Session listener failed")

    def reset(self) -> None:
        """Mark the session as active again after re-authentication."""
        self.terminated = False
