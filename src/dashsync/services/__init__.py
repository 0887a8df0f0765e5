"""Service layer - cache, synchronization and dashboard orchestration."""

from dashsync.services.cache_store import CacheStore
from dashsync.services.mutation_coordinator import MutationCoordinator
from dashsync.services.adaptive_poller import (
    AdaptivePoller,
    PollHandle,
    job_status_policy,
    make_job_status_policy,
)
from dashsync.services.valuation_engine import ValuationEngine, format_money
from dashsync.services.ordering_manager import OrderingManager, move_item
from dashsync.services.portfolio_service import PortfolioService
from dashsync.services.job_tracker import JobTracker
from dashsync.services.tracked_assets import TrackedAssetsService
from dashsync.services.preferences_service import PreferencesService
from dashsync.services.session import SessionManager

__all__ = [
    "CacheStore",
    "MutationCoordinator",
    "AdaptivePoller",
    "PollHandle",
    "job_status_policy",
    "make_job_status_policy",
    "ValuationEngine",
    "format_money",
    "OrderingManager",
    "move_item",
    "PortfolioService",
    "JobTracker",
    "TrackedAssetsService",
    "PreferencesService",
    "SessionManager",
]
