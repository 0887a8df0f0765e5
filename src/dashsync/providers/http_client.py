"""HTTP implementation of the remote resource client."""

import json
import logging
from decimal import Decimal
from typing import Any, Optional
from urllib.parse import quote as url_quote

import httpx
from pydantic import ValidationError as SchemaError

from dashsync.core.exceptions import (
    AppError,
    AuthError,
    NetworkError,
    NotFoundError,
    ServerFault,
    ValidationError,
)
from dashsync.domain.models import AssetType, JobState, Portfolio, Position, PositionDraft, TimeRange
from dashsync.domain.views import HistoryPoint, Quote
from dashsync.providers.schemas import (
    HistoryPointSchema,
    JobStateSchema,
    PortfolioSchema,
    PositionSchema,
    QuoteSchema,
    position_draft_payload,
)

logger = logging.getLogger(__name__)


class HttpResourceClient:
    """
    Talks to the dashboard API over HTTP.

    Transport failures and timeouts become NetworkError; HTTP error statuses
    are mapped onto the client error taxonomy. JSON numbers are decoded as
    Decimal so money values never pass through float.
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout_seconds: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=httpx.Timeout(timeout_seconds),
            headers=headers,
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    # Portfolio resources

    async def list_portfolios(self) -> list[Portfolio]:
        payload = await self._request("GET", "/portfolio/list")
        return [self._parse(PortfolioSchema, item).to_domain() for item in payload or []]

    async def get_positions(self, portfolio_id: str) -> list[Position]:
        payload = await self._request("GET", "/portfolio", params={"portfolioId": portfolio_id})
        return [self._parse(PositionSchema, item).to_domain(portfolio_id) for item in payload or []]

    async def create_position(self, portfolio_id: str, draft: PositionDraft) -> Position:
        payload = await self._request(
            "POST", "/portfolio", json_body=position_draft_payload(portfolio_id, draft)
        )
        return self._parse(PositionSchema, payload).to_domain(portfolio_id)

    async def delete_position(self, position_id: str) -> None:
        await self._request("DELETE", f"/portfolio/position/{url_quote(position_id, safe='')}")

    async def get_historical(self, portfolio_id: str, time_range: TimeRange) -> list[HistoryPoint]:
        payload = await self._request(
            "GET",
            "/portfolio/historical",
            params={"range": TimeRange(time_range).value, "portfolioId": portfolio_id},
        )
        points = [self._parse(HistoryPointSchema, item).to_domain() for item in payload or []]
        points.sort(key=lambda p: p.timestamp)
        return points

    # Jobs

    async def get_job_status(self, job_kind: str, universe: str) -> JobState:
        payload = await self._request("GET", f"/jobs/{url_quote(job_kind, safe='')}/{url_quote(universe, safe='')}")
        # The screener endpoint wraps the job under "state"
        if isinstance(payload, dict) and isinstance(payload.get("state"), dict):
            payload = payload["state"]
        return self._parse(JobStateSchema, payload).to_domain(universe)

    async def trigger_job(self, job_kind: str, universe: str) -> JobState:
        payload = await self._request(
            "POST", f"/jobs/{url_quote(job_kind, safe='')}/run", json_body={"universe": universe}
        )
        return self._parse(JobStateSchema, payload).to_domain(universe)

    # Collections

    async def reorder(self, collection_key: str, ordered_ids: list[str]) -> None:
        body = [{"id": item_id, "order": idx} for idx, item_id in enumerate(ordered_ids)]
        await self._request("PUT", f"/collections/{url_quote(collection_key, safe='')}/order", json_body=body)

    async def list_tracked_assets(self) -> list[str]:
        payload = await self._request("GET", "/tracked-assets")
        return [item["symbol"] if isinstance(item, dict) else str(item) for item in payload or []]

    async def untrack_asset(self, symbol: str) -> None:
        await self._request("DELETE", f"/tracked-assets/{url_quote(symbol, safe='')}")

    # Market data

    async def get_quote(self, symbol: str, asset_type: AssetType) -> Quote:
        payload = await self._request(
            "GET", "/data/quote", params={"symbol": symbol, "assetType": AssetType(asset_type).value}
        )
        return self._parse(QuoteSchema, payload).to_domain(symbol)

    async def get_fx_rates(self, base_currency: str) -> dict[str, Decimal]:
        payload = await self._request("GET", "/data/fx", params={"base": base_currency})
        if not isinstance(payload, dict):
            raise ServerFault("FX response was not an object")
        return {str(code).upper(): Decimal(str(rate)) for code, rate in payload.items()}

    # Preferences

    async def update_preferences(self, changes: dict[str, Any]) -> dict[str, Any]:
        payload = await self._request("POST", "/settings/preferences", json_body=changes)
        return payload if isinstance(payload, dict) else dict(changes)

    # Transport

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[dict[str, Any]] = None,
        json_body: Any = None,
    ) -> Any:
        """Issue a request and return the decoded JSON body (None when empty)."""
        logger.debug("%s %s params=%s", method, path, params)
        try:
            response = await self._client.request(method, path, params=params, json=json_body)
        except httpx.TimeoutException as exc:
            raise NetworkError(f"{method} {path} timed out") from exc
        except httpx.TransportError as exc:
            raise NetworkError(f"{method} {path} failed: {exc}") from exc

        if response.is_error:
            error = self._error_for(response, method, path)
            logger.warning("%s %s -> %s (%s)", method, path, response.status_code, error.code)
            raise error

        if not response.content:
            return None
        try:
            return json.loads(response.text, parse_float=Decimal)
        except json.JSONDecodeError as exc:
            raise ServerFault(f"{method} {path}: response was not valid JSON") from exc

    @staticmethod
    def _error_for(response: httpx.Response, method: str, path: str) -> AppError:
        """Map an HTTP error response onto the client error taxonomy."""
        status = response.status_code
        try:
            payload = response.json()
            message = payload.get("message") or payload.get("error") or payload.get("detail")
        except (ValueError, AttributeError):
            message = None
        message = str(message or response.reason_phrase or f"HTTP {status}")

        if status in (401, 403):
            return AuthError(message)
        if status == 404:
            return NotFoundError("Resource", f"{method} {path}")
        if status in (400, 409, 422):
            return ValidationError(message)
        return ServerFault(message, status_code=status)

    @staticmethod
    def _parse(schema: type, payload: Any) -> Any:
        try:
            return schema.model_validate(payload)
        except SchemaError as exc:
            raise ServerFault(f"Unexpected response shape for {schema.__name__}: {exc}") from exc
