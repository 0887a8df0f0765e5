"""Adaptive polling of cache keys driven by the fetched data."""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from dashsync.config import get_settings
from dashsync.core.exceptions import AuthError, NotFoundError
from dashsync.domain.models import CacheEntry, CacheStatus, JobState, JobStatus
from dashsync.services.cache_store import CacheStore

logger = logging.getLogger(__name__)

IntervalPolicy = Callable[[Any], Optional[int]]


def make_job_status_policy(interval_ms: int) -> IntervalPolicy:
    """Poll every interval_ms while the job is RUNNING; stop on anything else."""

    def policy(state: Any) -> Optional[int]:
        if isinstance(state, JobState) and state.status is JobStatus.RUNNING:
            return interval_ms
        return None

    return policy


def job_status_policy(state: Any) -> Optional[int]:
    """Default job policy using the configured job poll interval."""
    return make_job_status_policy(get_settings().effective_job_poll_interval_ms)(state)


class PollHandle:
    """Caller's view of one watch."""

    def __init__(self, poller: "AdaptivePoller", key: str):
        self._poller = poller
        self.key = key
        self.active = True
        self.fetch_count = 0
        self.scheduled_intervals: list[int] = []

    def cancel(self) -> None:
        self._poller._cancel(self)

    def __repr__(self) -> str:
        return (
            f"PollHandle(key={self.key!r}, active={self.active}, "
            f"fetch_count={self.fetch_count}, scheduled={self.scheduled_intervals})"
        )


class _Watch:
    def __init__(self, key: str, fetcher: Callable[[], Awaitable[Any]], policy: IntervalPolicy, handle: PollHandle):
        self.key = key
        self.fetcher = fetcher
        self.policy = policy
        self.handle = handle
        self.due: Optional[float] = None
        self.interval_ms: Optional[int] = None
        self.running = False


class AdaptivePoller:
    """
    Re-fetches watched keys on intervals chosen by a per-watch policy.

    After every fetch the policy is applied to the entry's data and returns
    the next interval in milliseconds, or None to stop. A single scheduler
    task sleeps until the earliest due watch and dispatches it; fetches go
    through the cache store, so they share deduplication, sequencing and
    error handling with every other reader.

    Args:
        store: Cache store the fetched data is written to
        coordinator: Optional mutation coordinator; keys with a pending
            mutation are skipped and rescheduled
        error_retry_ms: Retry interval after a failure with no data
    """

    def __init__(self, store: CacheStore, coordinator=None, error_retry_ms: int = 10000):
        self._store = store
        self._coordinator = coordinator
        self._error_retry_ms = error_retry_ms
        self._watches: dict[str, _Watch] = {}
        self._visible = True
        self._wake: Optional[asyncio.Event] = None
        self._loop_task: Optional[asyncio.Task] = None
        self._poll_tasks: set[asyncio.Task] = set()
        self._closed = False

        store.add_release_listener(self._on_released)
        store.add_invalidation_listener(self._on_invalidated)

    @property
    def visible(self) -> bool:
        return self._visible

    def watched_keys(self) -> list[str]:
        return list(self._watches)

    def handle_for(self, key: str) -> Optional[PollHandle]:
        watch = self._watches.get(key)
        return watch.handle if watch else None

    def watch(
        self,
        key: str,
        fetcher: Callable[[], Awaitable[Any]],
        interval_policy: IntervalPolicy,
        *,
        immediate: bool = True,
    ) -> PollHandle:
        """
        Start polling key; replaces any existing watch on the same key.

        With immediate=False the first fetch waits for the interval the policy
        gives for the currently cached data; if that is None nothing is
        scheduled and the handle is returned inactive.
        """
        self.unwatch(key)
        handle = PollHandle(self, key)
        watch = _Watch(key, fetcher, interval_policy, handle)
        self._watches[key] = watch
        self._ensure_loop()

        if immediate:
            watch.due = self._now()
            self._notify()
        else:
            interval = interval_policy(self._store.get(key).data)
            if interval is None:
                self.unwatch(key)
            else:
                self._schedule(watch, interval)
        logger.debug("Watching '%s' (immediate=%s)", key, immediate)
        return handle

    async def refresh(self, key: str) -> CacheEntry:
        """Fetch a watched key now and reschedule it from the result."""
        watch = self._watches.get(key)
        if watch is None:
            raise NotFoundError("Watch", key)
        if watch.running:
            return await self._store.fetch(key, watch.fetcher)
        watch.due = None
        await self._poll(watch)
        return self._store.get(key)

    def unwatch(self, key: str) -> None:
        watch = self._watches.pop(key, None)
        if watch is None:
            return
        watch.handle.active = False
        watch.due = None
        logger.debug("Stopped watching '%s'", key)
        self._notify()

    def stop_all(self) -> None:
        """Cancel every watch."""
        for key in list(self._watches):
            self.unwatch(key)

    def set_visible(self, visible: bool) -> None:
        """
        Suspend or resume polling.

        Hidden: watches keep their schedule but nothing is fetched. Shown
        again: every idle watch is fetched immediately.
        """
        if visible == self._visible:
            return
        self._visible = visible
        if visible:
            now = self._now()
            for watch in self._watches.values():
                if not watch.running:
                    watch.due = now
        logger.debug("Polling %s", "resumed" if visible else "suspended")
        self._notify()

    async def close(self) -> None:
        """
        Stop every watch and the scheduler task.

        The scheduler exits through the closed flag rather than cancellation:
        on Python < 3.12 wait_for can swallow a cancel that arrives together
        with the wake event.
        """
        self._closed = True
        self.stop_all()
        self._notify()
        poll_tasks = list(self._poll_tasks)
        for task in poll_tasks:
            task.cancel()
        tasks = poll_tasks
        if self._loop_task is not None:
            tasks.append(self._loop_task)
            self._loop_task = None
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # Scheduling

    def _cancel(self, handle: PollHandle) -> None:
        watch = self._watches.get(handle.key)
        if watch is not None and watch.handle is handle:
            self.unwatch(handle.key)
        handle.active = False

    def _on_released(self, key: str) -> None:
        if key in self._watches:
            logger.debug("Last subscriber of '%s' left; cancelling its watch", key)
            self.unwatch(key)

    def _on_invalidated(self, keys: list[str]) -> None:
        now = None
        for key in keys:
            watch = self._watches.get(key)
            if watch is None or watch.running:
                continue
            now = now if now is not None else self._now()
            watch.due = now
        if now is not None:
            self._notify()

    def _schedule(self, watch: _Watch, interval_ms: int) -> None:
        watch.interval_ms = interval_ms
        watch.handle.scheduled_intervals.append(interval_ms)
        watch.due = self._now() + interval_ms / 1000.0
        self._notify()

    def _ensure_loop(self) -> None:
        if self._loop_task is None or self._loop_task.done():
            self._closed = False
            self._wake = asyncio.Event()
            self._loop_task = asyncio.ensure_future(self._run())

    def _notify(self) -> None:
        if self._wake is not None:
            self._wake.set()

    @staticmethod
    def _now() -> float:
        return asyncio.get_running_loop().time()

    async def _run(self) -> None:
        while not self._closed:
            self._wake.clear()
            timeout: Optional[float] = None
            if self._visible:
                now = self._now()
                for watch in list(self._watches.values()):
                    if watch.due is None or watch.running:
                        continue
                    if watch.due <= now:
                        self._dispatch(watch)
                    else:
                        wait = watch.due - now
                        timeout = wait if timeout is None else min(timeout, wait)
            try:
                await asyncio.wait_for(self._wake.wait(), timeout)
            except asyncio.TimeoutError:
                pass

    def _dispatch(self, watch: _Watch) -> None:
        watch.due = None
        if self._coordinator is not None and self._coordinator.is_pending(watch.key):
            logger.debug("Skipping poll of '%s': mutation pending", watch.key)
            self._schedule(watch, watch.interval_ms or self._error_retry_ms)
            return
        task = asyncio.ensure_future(self._poll(watch))
        self._poll_tasks.add(task)
        task.add_done_callback(self._poll_tasks.discard)

    async def _poll(self, watch: _Watch) -> None:
        if self._watches.get(watch.key) is not watch:
            return
        watch.running = True
        watch.handle.fetch_count += 1
        try:
            entry = await self._store.fetch(watch.key, watch.fetcher)
        except AuthError:
            self.stop_all()
            return
        finally:
            watch.running = False

        if self._watches.get(watch.key) is not watch:
            return

        if entry.status is CacheStatus.ERROR or not entry.has_data:
            if entry.has_data and watch.interval_ms is not None:
                interval = watch.interval_ms
            else:
                interval = self._error_retry_ms
        else:
            interval = watch.policy(entry.data)
            if interval is None:
                logger.debug("Policy stopped polling '%s'", watch.key)
                self.unwatch(watch.key)
                return
        self._schedule(watch, interval)
