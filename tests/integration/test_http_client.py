"""
Integration tests for HttpResourceClient against an in-process fake API.

The fake dashboard API is a FastAPI app mounted through httpx.ASGITransport,
so requests exercise real routing, JSON encoding and status codes.

Tests cover:
- Every resource path and its decoding into domain objects
- HTTP status mapping onto the error taxonomy
- Transport failures and timeouts
"""

import asyncio
import json
from decimal import Decimal

import httpx
import pytest
from fastapi import FastAPI, HTTPException, Request, Response

from dashsync.core.exceptions import (
    AuthError,
    NetworkError,
    NotFoundError,
    ServerFault,
    ValidationError,
)
from dashsync.domain.models import AssetType, JobStatus, PositionDraft, TimeRange
from dashsync.providers import HttpResourceClient

TOKEN = "test-token"


def build_fake_api(recorded: dict) -> FastAPI:
    """Fake dashboard API that records write requests in recorded."""
    app = FastAPI()

    @app.middleware("http")
    async def require_token(request: Request, call_next):
        if request.headers.get("Authorization") != f"Bearer {TOKEN}":
            return Response(
                content=json.dumps({"message": "Unauthenticated"}),
                status_code=401,
                media_type="application/json",
            )
        return await call_next(request)

    @app.get("/api/portfolio/list")
    async def list_portfolios():
        return [
            {"id": "p1", "name": "Main", "baseCurrency": "USD"},
            {"id": "p2", "name": "Canada", "baseCurrency": "cad"},
        ]

    @app.get("/api/portfolio")
    async def get_positions(portfolioId: str):
        if portfolioId == "missing":
            raise HTTPException(status_code=404, detail="Portfolio not found")
        return [
            {
                "id": "a1",
                "symbol": "aapl",
                "assetType": "STOCK",
                "quantity": 10,
                "averageCost": 100.10,
                "currency": "USD",
                "acquiredAt": "2024-01-15T00:00:00Z",
                "fees": 1.5,
                "unknownField": True,
            }
        ]

    @app.post("/api/portfolio")
    async def create_position(request: Request):
        body = await request.json()
        recorded["create_position"] = body
        if body["quantity"] <= 0:
            raise HTTPException(status_code=422, detail="quantity must be positive")
        return {**body, "id": "new-1"}

    @app.delete("/api/portfolio/position/{position_id}")
    async def delete_position(position_id: str):
        recorded["delete_position"] = position_id
        return Response(status_code=204)

    @app.get("/api/portfolio/historical")
    async def historical(range: str, portfolioId: str):
        recorded["historical"] = (range, portfolioId)
        return [
            {"timestamp": 1717200000000, "totalValue": 1150.25},
            {"timestamp": 1714521600000, "totalValue": 1100},
        ]

    @app.get("/api/jobs/{kind}/{universe}")
    async def job_status(kind: str, universe: str):
        return {
            "state": {
                "id": "job-9",
                "universeName": universe,
                "status": "RUNNING",
                "cursorIndex": 120,
                "total": 500,
                "updatedAt": "2024-06-15T14:30:00Z",
            }
        }

    @app.post("/api/jobs/{kind}/run")
    async def run_job(kind: str, request: Request):
        body = await request.json()
        return {"id": "job-10", "universeName": body["universe"], "status": "PENDING"}

    @app.put("/api/collections/{key}/order")
    async def reorder(key: str, request: Request):
        recorded["reorder"] = (key, await request.json())
        return Response(status_code=204)

    @app.get("/api/data/quote")
    async def quote(symbol: str, assetType: str):
        if symbol == "FAIL":
            raise HTTPException(status_code=503, detail="Quote provider down")
        return {"symbol": symbol, "price": 185.5, "isStale": assetType == "CRYPTO", "source": "fake"}

    @app.get("/api/data/fx")
    async def fx(base: str):
        return {"usd": 1.35, "EUR": 1.47}

    @app.get("/api/tracked-assets")
    async def tracked():
        return [{"symbol": "AAPL"}, "BTC"]

    @app.delete("/api/tracked-assets/{symbol}")
    async def untrack(symbol: str):
        recorded["untrack"] = symbol
        return Response(status_code=204)

    @app.post("/api/settings/preferences")
    async def preferences(request: Request):
        body = await request.json()
        if body.get("timezone") == "conflict":
            raise HTTPException(status_code=409, detail="Preference conflict")
        return {"mode": "BASIC", "timezone": "UTC", **body}

    return app


@pytest.fixture
def recorded() -> dict:
    return {}


@pytest.fixture
def make_client(recorded):
    def _make(token: str = TOKEN) -> HttpResourceClient:
        transport = httpx.ASGITransport(app=build_fake_api(recorded))
        return HttpResourceClient("http://testserver/api", token=token, transport=transport)

    return _make


def run_with(client: HttpResourceClient, operation):
    async def scenario():
        try:
            return await operation(client)
        finally:
            await client.close()

    return asyncio.run(scenario())


# =============================================================================
# RESOURCE TESTS
# =============================================================================


class TestPortfolioResources:
    """Tests for portfolio paths."""

    def test_list_portfolios(self, make_client):
        portfolios = run_with(make_client(), lambda c: c.list_portfolios())

        assert [p.id for p in portfolios] == ["p1", "p2"]
        assert portfolios[1].base_currency == "CAD"

    def test_get_positions_decodes_decimals(self, make_client):
        """
        GIVEN a positions response with JSON numbers
        WHEN positions are fetched
        THEN money values are exact Decimals and unknown fields are ignored
        """
        positions = run_with(make_client(), lambda c: c.get_positions("p1"))

        position = positions[0]
        assert position.portfolio_id == "p1"
        assert position.symbol == "AAPL"
        assert position.average_cost == Decimal("100.10")
        assert position.fees == Decimal("1.5")
        assert position.acquired_at.isoformat() == "2024-01-15"

    def test_create_position_sends_camel_case(self, make_client, recorded):
        draft = PositionDraft(symbol="msft", quantity=Decimal("2"), average_cost=Decimal("300"))

        position = run_with(make_client(), lambda c: c.create_position("p1", draft))

        assert position.id == "new-1"
        assert recorded["create_position"]["portfolioId"] == "p1"
        assert recorded["create_position"]["averageCost"] == 300
        assert recorded["create_position"]["symbol"] == "MSFT"

    def test_delete_position(self, make_client, recorded):
        assert run_with(make_client(), lambda c: c.delete_position("a 1")) is None
        assert recorded["delete_position"] == "a 1"

    def test_historical_is_sorted_by_timestamp(self, make_client, recorded):
        points = run_with(make_client(), lambda c: c.get_historical("p1", TimeRange.ONE_MONTH))

        assert recorded["historical"] == ("1M", "p1")
        assert points[0].total_value == Decimal("1100")
        assert points[0].timestamp < points[1].timestamp


class TestOtherResources:
    """Tests for job, collection, market data and preference paths."""

    def test_job_status_unwraps_state(self, make_client):
        state = run_with(make_client(), lambda c: c.get_job_status("screener", "sp500"))

        assert state.status is JobStatus.RUNNING
        assert state.universe == "sp500"
        assert state.progress == pytest.approx(0.24)
        assert state.updated_at.tzinfo is not None

    def test_trigger_job(self, make_client):
        ack = run_with(make_client(), lambda c: c.trigger_job("screener", "nasdaq"))

        assert ack.status is JobStatus.PENDING
        assert ack.universe == "nasdaq"

    def test_reorder_sends_positions(self, make_client, recorded):
        run_with(make_client(), lambda c: c.reorder("tracked-assets", ["B", "A"]))

        assert recorded["reorder"] == ("tracked-assets", [{"id": "B", "order": 0}, {"id": "A", "order": 1}])

    def test_quote_and_fx(self, make_client):
        async def operation(client):
            return await client.get_quote("btc", AssetType.CRYPTO), await client.get_fx_rates("CAD")

        quote, rates = run_with(make_client(), operation)

        assert quote.symbol == "BTC"
        assert quote.price == Decimal("185.5")
        assert quote.is_stale is True
        assert rates == {"USD": Decimal("1.35"), "EUR": Decimal("1.47")}

    def test_tracked_assets_and_untrack(self, make_client, recorded):
        async def operation(client):
            symbols = await client.list_tracked_assets()
            await client.untrack_asset("BTC")
            return symbols

        assert run_with(make_client(), operation) == ["AAPL", "BTC"]
        assert recorded["untrack"] == "BTC"

    def test_update_preferences_returns_stored(self, make_client):
        stored = run_with(make_client(), lambda c: c.update_preferences({"mode": "ADVANCED"}))

        assert stored == {"mode": "ADVANCED", "timezone": "UTC"}


# =============================================================================
# ERROR MAPPING TESTS
# =============================================================================


class TestErrorMapping:
    """Tests for HTTP status and transport error mapping."""

    def test_missing_token_is_auth_error(self, make_client):
        with pytest.raises(AuthError) as exc_info:
            run_with(make_client(token=""), lambda c: c.list_portfolios())

        assert exc_info.value.code == "UNAUTHENTICATED"

    def test_404_is_not_found(self, make_client):
        with pytest.raises(NotFoundError):
            run_with(make_client(), lambda c: c.get_positions("missing"))

    def test_422_is_validation_error(self, make_client):
        draft = PositionDraft(symbol="X", quantity=Decimal("0"), average_cost=Decimal("1"))

        with pytest.raises(ValidationError) as exc_info:
            run_with(make_client(), lambda c: c.create_position("p1", draft))

        assert "positive" in exc_info.value.message

    def test_409_is_validation_error(self, make_client):
        with pytest.raises(ValidationError):
            run_with(make_client(), lambda c: c.update_preferences({"timezone": "conflict"}))

    def test_5xx_is_server_fault(self, make_client):
        with pytest.raises(ServerFault) as exc_info:
            run_with(make_client(), lambda c: c.get_quote("FAIL", AssetType.STOCK))

        assert exc_info.value.status_code == 503
        assert exc_info.value.retryable is True

    def test_timeout_is_network_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        client = HttpResourceClient("http://testserver/api", transport=httpx.MockTransport(handler))

        with pytest.raises(NetworkError):
            run_with(client, lambda c: c.list_portfolios())

    def test_connection_failure_is_network_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = HttpResourceClient("http://testserver/api", transport=httpx.MockTransport(handler))

        with pytest.raises(NetworkError):
            run_with(client, lambda c: c.get_fx_rates("USD"))

    def test_malformed_body_is_server_fault(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html>maintenance</html>")

        client = HttpResourceClient("http://testserver/api", transport=httpx.MockTransport(handler))

        with pytest.raises(ServerFault):
            run_with(client, lambda c: c.list_portfolios())

    def test_unexpected_shape_is_server_fault(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=[{"name": "no id"}])

        client = HttpResourceClient("http://testserver/api", transport=httpx.MockTransport(handler))

        with pytest.raises(ServerFault):
            run_with(client, lambda c: c.list_portfolios())
