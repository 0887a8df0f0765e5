"""Keyed store of server-derived snapshots with subscriptions."""

import asyncio
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional, Union

from dashsync.core.exceptions import AppError, AuthError, NetworkError, ServerFault
from dashsync.core.timezone import now_utc
from dashsync.domain.models import CacheEntry, CacheStatus
from dashsync.services.keys import KeyPredicate

logger = logging.getLogger(__name__)

Subscriber = Callable[[CacheEntry], None]
Fetcher = Callable[[], Awaitable[Any]]
SessionHandler = Callable[[AuthError], None]


class CacheStore:
    """
    Single source of truth for server-derived state.

    Every key follows the state machine IDLE -> LOADING -> {FRESH, ERROR},
    with FRESH -> STALE on invalidation. Writes carry a per-key sequence
    number; a write older than the newest applied one is discarded, so an
    out-of-order network response can never overwrite newer state.

    The store runs on a single event loop: all mutations and subscriber
    notifications complete without interleaving, so no locks are needed.
    """

    def __init__(
        self,
        request_timeout_seconds: float = 10.0,
        gc_grace_seconds: float = 300.0,
        clock: Callable[[], datetime] = now_utc,
    ):
        self._timeout = request_timeout_seconds
        self._gc_grace = gc_grace_seconds
        self._clock = clock

        self._entries: dict[str, CacheEntry] = {}
        # Identity of the current entry for a key; a fetch whose entry was
        # removed in the meantime must not resurrect it.
        self._tokens: dict[str, object] = {}
        self._sequences: dict[str, int] = {}
        self._stale_through: dict[str, int] = {}
        self._subscribers: dict[str, dict[int, Subscriber]] = {}
        self._next_subscription_id = 0
        self._in_flight: dict[str, list[asyncio.Future]] = {}
        self._gc_handles: dict[str, asyncio.TimerHandle] = {}

        self._session_handler: Optional[SessionHandler] = None
        self._release_listeners: list[Callable[[str], None]] = []
        self._invalidation_listeners: list[Callable[[list[str]], None]] = []

    # Reading

    def get(self, key: str) -> CacheEntry:
        """Return the entry for key, creating an IDLE one on first access."""
        entry = self._entries.get(key)
        if entry is None:
            entry = CacheEntry(key=key)
            self._entries[key] = entry
            self._tokens[key] = object()
        return entry

    def peek(self, key: str) -> Optional[CacheEntry]:
        """Return the entry for key without creating it."""
        return self._entries.get(key)

    def keys(self) -> list[str]:
        return list(self._entries)

    def is_fetching(self, key: str) -> bool:
        return bool(self._in_flight.get(key))

    def has_subscribers(self, key: str) -> bool:
        return bool(self._subscribers.get(key))

    def subscriber_count(self, key: str) -> int:
        return len(self._subscribers.get(key, {}))

    # Writing

    def next_sequence(self, key: str) -> int:
        """Claim the next sequence number for key."""
        sequence = self._sequences.get(key, 0) + 1
        self._sequences[key] = sequence
        return sequence

    def set(self, key: str, data: Any, *, sequence: Optional[int] = None) -> bool:
        """
        Write data for key and notify subscribers.

        Without an explicit sequence the write is the newest event for the
        key. With one, the write is applied only if it is newer than the last
        applied write. Returns False when the write was discarded.
        """
        if sequence is None:
            sequence = self.next_sequence(key)
        entry = self.get(key)
        if sequence <= entry.sequence:
            logger.debug(
                "Discarding write #%d for '%s' (already at #%d)", sequence, key, entry.sequence
            )
            return False

        if self._in_flight.get(key):
            status = CacheStatus.LOADING
        elif sequence <= self._stale_through.get(key, 0):
            status = CacheStatus.STALE
        else:
            status = CacheStatus.FRESH
        self._commit(
            entry.evolve(
                data=data,
                status=status,
                fetched_at=self._clock(),
                error=None,
                sequence=sequence,
            )
        )
        return True

    def restore(self, snapshot: CacheEntry) -> None:
        """
        Put back a previously captured entry as the newest write for its key.

        Data, status, fetched_at and error come from the snapshot, so a key
        that was STALE or never fetched is still refetched on the next read.
        An invalidation that happened after the capture still applies.
        """
        key = snapshot.key
        self.get(key)
        sequence = self.next_sequence(key)
        if self._in_flight.get(key):
            status = CacheStatus.LOADING
        elif snapshot.status is CacheStatus.LOADING:
            status = self._resting_status(snapshot)
        elif snapshot.status is CacheStatus.FRESH and snapshot.sequence <= self._stale_through.get(key, 0):
            status = CacheStatus.STALE
        else:
            status = snapshot.status
        self._commit(snapshot.evolve(status=status, sequence=sequence))

    def invalidate(self, target: Union[str, KeyPredicate]) -> list[str]:
        """
        Mark matching entries STALE, keeping their data (stale-while-revalidate).

        A fetch issued before the invalidation lands as STALE too, since it may
        predate the change that caused the invalidation. Returns matched keys.
        """
        if isinstance(target, str):
            matched = [target] if target in self._entries else []
        else:
            matched = [key for key in list(self._entries) if target(key)]

        for key in matched:
            self._stale_through[key] = self._sequences.get(key, 0)
            entry = self._entries[key]
            if entry.status is CacheStatus.FRESH:
                self._commit(entry.evolve(status=CacheStatus.STALE))

        if matched:
            logger.debug("Invalidated %d key(s): %s", len(matched), matched)
            for listener in list(self._invalidation_listeners):
                listener(matched)
        return matched

    def remove(self, key: str) -> None:
        """Drop the entry for key; in-flight results for it are discarded."""
        self._cancel_gc(key)
        self._entries.pop(key, None)
        self._tokens.pop(key, None)
        self._stale_through.pop(key, None)
        self._in_flight.pop(key, None)

    def clear(self) -> None:
        """
        Drop every entry (session ended).

        Keys that still have subscribers get a fresh IDLE entry so mounted
        views blank out instead of showing the previous session's data.
        """
        for handle in self._gc_handles.values():
            handle.cancel()
        self._gc_handles.clear()
        self._entries.clear()
        self._tokens.clear()
        self._stale_through.clear()
        self._in_flight.clear()
        for key in list(self._subscribers):
            self._commit(self.get(key))

    # Subscriptions

    def subscribe(self, key: str, callback: Subscriber) -> Callable[[], None]:
        """
        Register callback for changes to key; returns an idempotent unsubscribe.

        When the last subscriber leaves, the entry is collected after the
        grace period (never, if the grace period is not positive).
        """
        self.get(key)
        self._cancel_gc(key)
        subscription_id = self._next_subscription_id
        self._next_subscription_id += 1
        self._subscribers.setdefault(key, {})[subscription_id] = callback

        def unsubscribe() -> None:
            subscribers = self._subscribers.get(key)
            if not subscribers or subscription_id not in subscribers:
                return
            del subscribers[subscription_id]
            if not subscribers:
                del self._subscribers[key]
                self._on_released(key)

        return unsubscribe

    def add_release_listener(self, listener: Callable[[str], None]) -> None:
        """Call listener(key) whenever the last subscriber of a key unsubscribes."""
        self._release_listeners.append(listener)

    def add_invalidation_listener(self, listener: Callable[[list[str]], None]) -> None:
        """Call listener(keys) after every invalidation that matched something."""
        self._invalidation_listeners.append(listener)

    def set_session_handler(self, handler: Optional[SessionHandler]) -> None:
        """Install the process-wide handler that AuthError is routed to."""
        self._session_handler = handler

    # Fetching

    async def fetch(self, key: str, fetcher: Fetcher, *, force: bool = False) -> CacheEntry:
        """
        Fetch key through fetcher and store the result.

        Concurrent fetches for the same key share the in-flight request unless
        force is set, in which case a newer request is issued and the older
        one can no longer overwrite its result. NetworkError and ServerFault
        (including timeouts) leave the entry in ERROR with its last good data;
        AuthError is routed to the session handler and re-raised.
        """
        in_flight = self._in_flight.get(key)
        if in_flight and not force:
            await asyncio.shield(in_flight[-1])
            return self._current(key)

        entry = self.get(key)
        sequence = self.next_sequence(key)
        token = self._tokens[key]
        had_subscribers = self.has_subscribers(key)
        task = asyncio.ensure_future(self._run_fetch(key, fetcher, sequence, token, had_subscribers))
        self._in_flight.setdefault(key, []).append(task)
        if entry.status is not CacheStatus.LOADING:
            self._commit(entry.evolve(status=CacheStatus.LOADING))

        await asyncio.shield(task)
        return self._current(key)

    async def read(self, key: str, fetcher: Fetcher) -> CacheEntry:
        """Return the entry, fetching first if it is IDLE, STALE or ERROR."""
        entry = self.get(key)
        if entry.status is CacheStatus.FRESH:
            return entry
        return await self.fetch(key, fetcher)

    async def _run_fetch(
        self,
        key: str,
        fetcher: Fetcher,
        sequence: int,
        token: object,
        had_subscribers: bool,
    ) -> None:
        error: Optional[AppError] = None
        data: Any = None
        try:
            try:
                data = await asyncio.wait_for(fetcher(), timeout=self._timeout)
            finally:
                self._forget_task(key, asyncio.current_task())
        except asyncio.TimeoutError:
            error = NetworkError(f"Fetch of '{key}' timed out after {self._timeout}s")
        except AuthError as exc:
            self._settle(key, token)
            self.report_auth_error(exc)
            raise
        except AppError as exc:
            error = exc
        except asyncio.CancelledError:
            self._settle(key, token)
            raise
        except Exception as exc:
            logger.exception("Unexpected error fetching '%s'", key)
            error = ServerFault(str(exc))

        if error is not None:
            self._record_error(key, error, sequence, token)
            return

        if self._tokens.get(key) is not token:
            logger.debug("Discarding result for '%s': entry was removed", key)
            return
        if had_subscribers and not self.has_subscribers(key):
            logger.debug("Discarding result for '%s': no subscriber remains", key)
            self._settle(key, token)
            return
        if not self.set(key, data, sequence=sequence):
            self._settle(key, token)

    def _record_error(self, key: str, error: AppError, sequence: int, token: object) -> None:
        if self._tokens.get(key) is not token:
            return
        logger.warning("Fetch of '%s' failed: %s (%s)", key, error.message, error.code)
        entry = self._entries[key]
        if sequence <= entry.sequence:
            # Newer data already landed; the failure is irrelevant
            self._settle(key, token)
            return
        status = CacheStatus.LOADING if self._in_flight.get(key) else CacheStatus.ERROR
        self._commit(entry.evolve(status=status, error=error))

    def _settle(self, key: str, token: object) -> None:
        """Move a LOADING entry to its resting status once nothing is in flight."""
        if self._tokens.get(key) is not token or self._in_flight.get(key):
            return
        entry = self._entries[key]
        if entry.status is not CacheStatus.LOADING:
            return
        self._commit(entry.evolve(status=self._resting_status(entry)))

    def _resting_status(self, entry: CacheEntry) -> CacheStatus:
        if entry.error is not None:
            return CacheStatus.ERROR
        if not entry.has_data:
            return CacheStatus.IDLE
        if entry.sequence <= self._stale_through.get(entry.key, 0):
            return CacheStatus.STALE
        return CacheStatus.FRESH

    def _forget_task(self, key: str, task: Optional[asyncio.Future]) -> None:
        tasks = self._in_flight.get(key)
        if not tasks:
            return
        if task in tasks:
            tasks.remove(task)
        if not tasks:
            del self._in_flight[key]

    def report_auth_error(self, exc: AuthError) -> None:
        """Route an authentication failure to the session handler."""
        if self._session_handler is None:
            logger.warning("Authentication lost and no session handler installed: %s", exc.message)
            return
        self._session_handler(exc)

    # Internals

    def _current(self, key: str) -> CacheEntry:
        # A removed key is reported as IDLE without being recreated
        return self._entries.get(key) or CacheEntry(key=key)

    def _commit(self, entry: CacheEntry) -> None:
        self._entries[entry.key] = entry
        for callback in list(self._subscribers.get(entry.key, {}).values()):
            try:
                callback(entry)
            except Exception:
                logger.exception("Subscriber for '%s' failed", entry.key)

    def _on_released(self, key: str) -> None:
        for listener in list(self._release_listeners):
            listener(key)
        self._schedule_gc(key)

    def _schedule_gc(self, key: str) -> None:
        if self._gc_grace <= 0:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._cancel_gc(key)
        self._gc_handles[key] = loop.call_later(self._gc_grace, self._collect, key)

    def _cancel_gc(self, key: str) -> None:
        handle = self._gc_handles.pop(key, None)
        if handle is not None:
            handle.cancel()

    def _collect(self, key: str) -> None:
        self._gc_handles.pop(key, None)
        if self.has_subscribers(key):
            return
        logger.debug("Collecting unused cache entry '%s'", key)
        self.remove(key)
