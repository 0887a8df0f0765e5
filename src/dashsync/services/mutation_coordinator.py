"""Optimistic writes with rollback and invalidation."""

import asyncio
import logging
from collections import Counter
from typing import Any, Awaitable, Callable, Iterable, Optional, Union

from dashsync.core.exceptions import AppError, AuthError, NetworkError, ServerFault
from dashsync.domain.models import CacheEntry
from dashsync.services.cache_store import CacheStore
from dashsync.services.keys import KeyPredicate

logger = logging.getLogger(__name__)


class MutationCoordinator:
    """
    Runs user-initiated writes against the server.

    An optional optimistic update is applied to the cache before the remote
    call; if the call fails, the entry captured before it (data, status and
    fetch time) is restored exactly once and the typed error is re-raised.
    On success, authoritative data from the response (via reconcile) replaces
    the optimistic value and the listed keys are invalidated so dependent
    views re-fetch.

    Rollback restores the entry captured before the optimistic write, so a
    server update landing on the same key during the call is lost on failure
    until the next fetch.
    """

    def __init__(self, store: CacheStore, request_timeout_seconds: float = 10.0):
        self._store = store
        self._timeout = request_timeout_seconds
        self._pending: Counter = Counter()

    def is_pending(self, key: str) -> bool:
        """True while a mutation on key is in flight."""
        return self._pending[key] > 0

    def pending_keys(self) -> list[str]:
        return [key for key, count in self._pending.items() if count > 0]

    async def mutate(
        self,
        key: str,
        remote_call: Callable[[], Awaitable[Any]],
        *,
        optimistic_updater: Optional[Callable[[Any], Any]] = None,
        invalidates: Iterable[Union[str, KeyPredicate]] = (),
        reconcile: Optional[Callable[[Any, Any], Any]] = None,
    ) -> Any:
        """
        Perform a mutation on key.

        Args:
            key: Cache key the mutation affects
            remote_call: Zero-argument coroutine function issuing the request
            optimistic_updater: Maps the current data to the expected new data
            invalidates: Keys or key predicates to invalidate after success
            reconcile: Maps (current data, response) to authoritative data

        Returns:
            The raw server response

        Raises:
            AppError: The typed failure, after any rollback
        """
        invalidates = list(invalidates)
        previous: Optional[CacheEntry] = None
        if optimistic_updater is not None:
            previous = self._store.get(key)
            self._store.set(key, optimistic_updater(previous.data))

        self._pending[key] += 1
        try:
            try:
                response = await asyncio.wait_for(remote_call(), timeout=self._timeout)
            except asyncio.TimeoutError as exc:
                raise NetworkError(f"Mutation of '{key}' timed out after {self._timeout}s") from exc
            except AppError:
                raise
            except Exception as exc:
                logger.exception("Unexpected error during mutation of '%s'", key)
                raise ServerFault(str(exc)) from exc
        except AppError as exc:
            if previous is not None:
                logger.info("Rolling back optimistic update of '%s' after %s", key, exc.code)
                self._store.restore(previous)
            if isinstance(exc, AuthError):
                self._store.report_auth_error(exc)
            raise
        except asyncio.CancelledError:
            if previous is not None:
                self._store.restore(previous)
            raise
        finally:
            self._pending[key] -= 1
            if self._pending[key] <= 0:
                del self._pending[key]

        if reconcile is not None:
            self._store.set(key, reconcile(self._store.get(key).data, response))
        for target in invalidates:
            self._store.invalidate(target)
        return response
