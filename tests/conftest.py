"""
Pytest configuration and fixtures for the dashboard sync core tests.

This module provides:
- In-memory SQLite database fixtures
- An in-memory fake of the remote resource client with scripted failures
- Cache store, coordinator, poller and service fixtures
- Helpers for driving asyncio code from plain tests
"""

import asyncio
from collections import defaultdict
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Optional

import pytest
from sqlalchemy import create_engine, StaticPool
from sqlalchemy.orm import sessionmaker, Session

from dashsync.config.settings import Settings, reset_settings
from dashsync.core.exceptions import NotFoundError
from dashsync.core.timezone import UTC_TZ
from dashsync.domain.models import (
    AssetType,
    JobState,
    JobStatus,
    Portfolio,
    Position,
    PositionDraft,
    TimeRange,
)
from dashsync.domain.views import HistoryPoint, Quote
from dashsync.repositories.sqlalchemy.database import Base
# Import ORM models to register them with Base before creating tables
from dashsync.repositories.sqlalchemy import orm_models  # noqa: F401
from dashsync.repositories.sqlalchemy import SqlAlchemyPreferenceRepository
from dashsync.services import (
    AdaptivePoller,
    CacheStore,
    MutationCoordinator,
    OrderingManager,
    ValuationEngine,
)


# =============================================================================
# TIME HELPERS
# =============================================================================


def utc_datetime(year: int, month: int, day: int, hour: int = 0) -> datetime:
    """Create a localized datetime in UTC."""
    return UTC_TZ.localize(datetime(year, month, day, hour))


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Yield to the event loop until predicate() holds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached before timeout")
        await asyncio.sleep(0.002)


# =============================================================================
# DATABASE FIXTURES
# =============================================================================


@pytest.fixture(scope="function")
def test_engine():
    """Create test database engine with shared in-memory SQLite."""
    reset_settings()

    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def test_session(test_engine) -> Session:
    """Create test database session."""
    TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)
    session = TestSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def preference_repo(test_session) -> SqlAlchemyPreferenceRepository:
    """Provide test PreferenceRepository."""
    return SqlAlchemyPreferenceRepository(test_session)


# =============================================================================
# SETTINGS FIXTURES
# =============================================================================


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    """Settings isolated from the environment and the user's home directory."""
    reset_settings()
    return Settings(
        api_base_url="http://dashboard.test/api",
        request_timeout_seconds=1.0,
        error_retry_ms=20,
        cache_gc_grace_seconds=0,
        data_dir=tmp_path,
    )


# =============================================================================
# FAKE REMOTE RESOURCE CLIENT
# =============================================================================


class FakeResourceClient:
    """
    In-memory stand-in for the dashboard API.

    Every call is recorded in ``calls``. ``fail_next(name, error)`` makes the
    next call of a method raise; ``gate(name)`` returns an event that the
    next calls of that method wait on, to hold requests in flight.
    """

    def __init__(self):
        self.portfolios: list[Portfolio] = []
        self.positions: dict[str, list[Position]] = {}
        self.history: dict[tuple[str, str], list[HistoryPoint]] = {}
        self.job_script: dict[tuple[str, str], list[JobState]] = {}
        self.quotes: dict[str, Quote] = {}
        self.fx_rates: dict[str, dict[str, Decimal]] = {}
        self.tracked: list[str] = []
        self.orders: dict[str, list[str]] = {}
        self.preferences: dict[str, Any] = {}
        self.calls: list[tuple] = []
        self._failures: dict[str, list[Exception]] = defaultdict(list)
        self._gates: dict[str, asyncio.Event] = {}
        self._next_id = 1

    def fail_next(self, name: str, error: Exception, times: int = 1) -> None:
        self._failures[name].extend([error] * times)

    def gate(self, name: str) -> asyncio.Event:
        event = asyncio.Event()
        self._gates[name] = event
        return event

    def call_count(self, name: str) -> int:
        return sum(1 for call in self.calls if call[0] == name)

    async def _enter(self, name: str, *args) -> None:
        self.calls.append((name, *args))
        gate = self._gates.get(name)
        if gate is not None:
            await gate.wait()
        else:
            await asyncio.sleep(0)
        if self._failures[name]:
            raise self._failures[name].pop(0)

    async def list_portfolios(self) -> list[Portfolio]:
        await self._enter("list_portfolios")
        return list(self.portfolios)

    async def get_positions(self, portfolio_id: str) -> list[Position]:
        await self._enter("get_positions", portfolio_id)
        return list(self.positions.get(portfolio_id, []))

    async def create_position(self, portfolio_id: str, draft: PositionDraft) -> Position:
        await self._enter("create_position", portfolio_id, draft)
        position = draft.to_position(f"pos-{self._next_id}", portfolio_id)
        self._next_id += 1
        self.positions.setdefault(portfolio_id, []).append(position)
        return position

    async def delete_position(self, position_id: str) -> None:
        await self._enter("delete_position", position_id)
        for portfolio_id, positions in self.positions.items():
            self.positions[portfolio_id] = [p for p in positions if p.id != position_id]

    async def get_historical(self, portfolio_id: str, time_range: TimeRange) -> list[HistoryPoint]:
        await self._enter("get_historical", portfolio_id, time_range)
        return list(self.history.get((portfolio_id, TimeRange(time_range).value), []))

    async def get_job_status(self, job_kind: str, universe: str) -> JobState:
        await self._enter("get_job_status", job_kind, universe)
        script = self.job_script.get((job_kind, universe))
        if not script:
            raise NotFoundError("Job", f"{job_kind}/{universe}")
        # The last scripted state repeats once the script runs out
        return script.pop(0) if len(script) > 1 else script[0]

    async def trigger_job(self, job_kind: str, universe: str) -> JobState:
        await self._enter("trigger_job", job_kind, universe)
        return JobState(id="job-1", universe=universe, status=JobStatus.PENDING)

    async def reorder(self, collection_key: str, ordered_ids: list[str]) -> None:
        await self._enter("reorder", collection_key, list(ordered_ids))
        self.orders[collection_key] = list(ordered_ids)

    async def get_quote(self, symbol: str, asset_type: AssetType) -> Quote:
        await self._enter("get_quote", symbol, asset_type)
        quote = self.quotes.get(symbol.upper())
        if quote is None:
            raise NotFoundError("Quote", symbol)
        return quote

    async def get_fx_rates(self, base_currency: str) -> dict[str, Decimal]:
        await self._enter("get_fx_rates", base_currency)
        return dict(self.fx_rates.get(base_currency.upper(), {}))

    async def list_tracked_assets(self) -> list[str]:
        await self._enter("list_tracked_assets")
        return list(self.tracked)

    async def untrack_asset(self, symbol: str) -> None:
        await self._enter("untrack_asset", symbol)
        self.tracked = [s for s in self.tracked if s != symbol]

    async def update_preferences(self, changes: dict[str, Any]) -> dict[str, Any]:
        await self._enter("update_preferences", dict(changes))
        self.preferences.update(changes)
        return dict(self.preferences)


@pytest.fixture
def fake_client() -> FakeResourceClient:
    """Provide an empty fake resource client."""
    return FakeResourceClient()


# =============================================================================
# SYNC CORE FIXTURES
# =============================================================================


@pytest.fixture
def store() -> CacheStore:
    """Provide a cache store that never collects entries."""
    return CacheStore(request_timeout_seconds=1.0, gc_grace_seconds=0)


@pytest.fixture
def coordinator(store) -> MutationCoordinator:
    return MutationCoordinator(store, request_timeout_seconds=1.0)


@pytest.fixture
def poller(store, coordinator) -> AdaptivePoller:
    return AdaptivePoller(store, coordinator, error_retry_ms=20)


@pytest.fixture
def ordering(store, coordinator) -> OrderingManager:
    return OrderingManager(store, coordinator)


@pytest.fixture
def valuation_engine() -> ValuationEngine:
    return ValuationEngine()


# =============================================================================
# FACTORY HELPERS
# =============================================================================


def make_position(
    symbol: str,
    quantity: str = "10",
    average_cost: str = "100",
    currency: str = "USD",
    position_id: Optional[str] = None,
    portfolio_id: str = "p1",
    fees: str = "0",
) -> Position:
    """Helper to build a Position from string amounts."""
    return Position(
        id=position_id or f"pos-{symbol.lower()}",
        portfolio_id=portfolio_id,
        symbol=symbol,
        quantity=Decimal(quantity),
        average_cost=Decimal(average_cost),
        native_currency=currency,
        fees=Decimal(fees),
    )


def make_job(status: JobStatus, cursor_index: int = 0, total: int = 100) -> JobState:
    return JobState(id="job-1", universe="sp500", status=status, cursor_index=cursor_index, total=total)


# =============================================================================
# HELPER FUNCTIONS (exported for use in tests)
# =============================================================================


def assert_decimal_equal(
    actual: Decimal,
    expected: Decimal,
    tolerance: Decimal = Decimal("0.01"),
) -> None:
    """Assert two Decimals are equal within tolerance."""
    diff = abs(actual - expected)
    assert diff <= tolerance, f"Expected {expected}, got {actual} (diff={diff})"
