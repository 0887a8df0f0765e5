"""Sync context wiring the client, cache and services together.

One context owns one cache store and everything that writes to it. Build a
fresh context per session (and per test); nothing here is a module-level
singleton.
"""

from typing import Optional

from sqlalchemy.orm import Session

from dashsync.config.logging_config import setup_logging
from dashsync.config.settings import Settings, get_settings, set_settings
from dashsync.providers import HttpResourceClient, ResourceClient
from dashsync.repositories.protocols import PreferenceRepository
from dashsync.repositories.sqlalchemy import (
    SqlAlchemyPreferenceRepository,
    get_session,
    init_db,
    reset_database,
)
from dashsync.services import (
    AdaptivePoller,
    CacheStore,
    JobTracker,
    MutationCoordinator,
    OrderingManager,
    PortfolioService,
    PreferencesService,
    SessionManager,
    TrackedAssetsService,
    ValuationEngine,
    make_job_status_policy,
)


class SyncContext:
    """
    Explicit wiring of the dashboard sync core.

    The store, coordinator, poller and session manager are created eagerly
    because they register with each other; feature services are created on
    first access.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        client: Optional[ResourceClient] = None,
        preferences: Optional[PreferenceRepository] = None,
    ):
        """
        Initialize the context.

        Args:
            settings: Settings to use. Defaults to the global settings.
            client: Resource client. Defaults to an HttpResourceClient for
                settings.api_base_url, closed with the context.
            preferences: Durable key-value store. Defaults to the SQLite
                database from settings.
        """
        self.settings = settings or get_settings()
        self._owns_client = client is None
        self.client = client or HttpResourceClient(
            self.settings.api_base_url,
            token=self.settings.api_token,
            timeout_seconds=self.settings.request_timeout_seconds,
        )

        self._db_session: Optional[Session] = None
        if preferences is None:
            # The database location comes from the global settings
            set_settings(self.settings)
            reset_database()
            init_db()
            self._db_session = get_session()
            preferences = SqlAlchemyPreferenceRepository(self._db_session)
        self.preferences = preferences

        self.store = CacheStore(
            request_timeout_seconds=self.settings.request_timeout_seconds,
            gc_grace_seconds=self.settings.cache_gc_grace_seconds,
        )
        self.coordinator = MutationCoordinator(
            self.store, request_timeout_seconds=self.settings.request_timeout_seconds
        )
        self.poller = AdaptivePoller(
            self.store, self.coordinator, error_retry_ms=self.settings.error_retry_ms
        )
        self.session = SessionManager(self.store, self.poller)
        self.ordering = OrderingManager(self.store, self.coordinator)
        self.valuation_engine = ValuationEngine(
            include_fees_in_cost_basis=self.settings.include_fees_in_cost_basis
        )

        self._portfolio_service: Optional[PortfolioService] = None
        self._job_tracker: Optional[JobTracker] = None
        self._tracked_assets: Optional[TrackedAssetsService] = None
        self._preferences_service: Optional[PreferencesService] = None

    @classmethod
    def create(cls, settings: Optional[Settings] = None) -> "SyncContext":
        """Build a production context with logging configured."""
        context = cls(settings=settings)
        setup_logging(context.settings)
        return context

    # Service accessors
    @property
    def portfolio(self) -> PortfolioService:
        if self._portfolio_service is None:
            self._portfolio_service = PortfolioService(
                client=self.client,
                store=self.store,
                coordinator=self.coordinator,
                preferences=self.preferences,
                valuation_engine=self.valuation_engine,
                ordering=self.ordering,
            )
        return self._portfolio_service

    @property
    def jobs(self) -> JobTracker:
        if self._job_tracker is None:
            self._job_tracker = JobTracker(
                client=self.client,
                store=self.store,
                coordinator=self.coordinator,
                poller=self.poller,
                interval_policy=make_job_status_policy(self.settings.effective_job_poll_interval_ms),
            )
        return self._job_tracker

    @property
    def tracked_assets(self) -> TrackedAssetsService:
        if self._tracked_assets is None:
            self._tracked_assets = TrackedAssetsService(
                client=self.client,
                store=self.store,
                coordinator=self.coordinator,
                ordering=self.ordering,
            )
        return self._tracked_assets

    @property
    def user_preferences(self) -> PreferencesService:
        if self._preferences_service is None:
            self._preferences_service = PreferencesService(
                client=self.client, store=self.store, coordinator=self.coordinator
            )
        return self._preferences_service

    async def close(self) -> None:
        """Stop polling and release the client and database session."""
        await self.poller.close()
        if self._owns_client:
            await self.client.close()
        if self._db_session is not None:
            self._db_session.close()
            self._db_session = None
