"""Background job status tracking."""

import logging
from typing import Optional

from dashsync.domain.models import JobState
from dashsync.providers import ResourceClient
from dashsync.services.adaptive_poller import AdaptivePoller, IntervalPolicy, PollHandle, job_status_policy
from dashsync.services.cache_store import CacheStore
from dashsync.services.keys import job_status_key
from dashsync.services.mutation_coordinator import MutationCoordinator

logger = logging.getLogger(__name__)


class JobTracker:
    """
    Watches long-running server jobs such as screener runs.

    A watched job is polled while RUNNING and stops on any other status.
    Triggering a job re-watches it so progress shows up without a manual
    refresh.
    """

    def __init__(
        self,
        client: ResourceClient,
        store: CacheStore,
        coordinator: MutationCoordinator,
        poller: AdaptivePoller,
        interval_policy: IntervalPolicy = job_status_policy,
    ):
        self._client = client
        self._store = store
        self._coordinator = coordinator
        self._poller = poller
        self._policy = interval_policy

    def watch_job(self, job_kind: str, universe: str, immediate: bool = True) -> PollHandle:
        key = job_status_key(job_kind, universe)
        return self._poller.watch(
            key,
            lambda: self._client.get_job_status(job_kind, universe),
            self._policy,
            immediate=immediate,
        )

    async def trigger_job(self, job_kind: str, universe: str) -> JobState:
        """Start a job, show its acknowledgement and start watching it."""
        key = job_status_key(job_kind, universe)
        ack = await self._coordinator.mutate(
            key,
            lambda: self._client.trigger_job(job_kind, universe),
            reconcile=lambda _current, state: state,
            invalidates=[key],
        )
        logger.info("Triggered %s job for %s (%s)", job_kind, universe, ack.status.value)
        self.watch_job(job_kind, universe)
        return ack

    def job_state(self, job_kind: str, universe: str) -> Optional[JobState]:
        """Last known state of a job, if any."""
        return self._store.get(job_status_key(job_kind, universe)).data
