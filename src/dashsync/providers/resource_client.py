"""Remote resource client protocol."""

from decimal import Decimal
from typing import Any, Protocol

from dashsync.domain.models import AssetType, JobState, Portfolio, Position, PositionDraft, TimeRange
from dashsync.domain.views import HistoryPoint, Quote


class ResourceClient(Protocol):
    """
    Typed access to the dashboard's server resources.

    Implementations must raise only dashsync.core.exceptions.AppError
    subclasses: AuthError, ValidationError, NotFoundError, NetworkError,
    ServerFault.
    """

    async def list_portfolios(self) -> list[Portfolio]:
        """List the user's portfolios."""
        ...

    async def get_positions(self, portfolio_id: str) -> list[Position]:
        """Fetch the position list of a portfolio."""
        ...

    async def create_position(self, portfolio_id: str, draft: PositionDraft) -> Position:
        """Create a position; returns the server's stored copy."""
        ...

    async def delete_position(self, position_id: str) -> None:
        """Delete a position."""
        ...

    async def get_historical(self, portfolio_id: str, time_range: TimeRange) -> list[HistoryPoint]:
        """Fetch the total-value series of a portfolio for a range."""
        ...

    async def get_job_status(self, job_kind: str, universe: str) -> JobState:
        """Fetch the current state of a background job."""
        ...

    async def trigger_job(self, job_kind: str, universe: str) -> JobState:
        """Start a background job; the acknowledgement is PENDING or RUNNING."""
        ...

    async def reorder(self, collection_key: str, ordered_ids: list[str]) -> None:
        """Persist a new order for a collection."""
        ...

    async def get_quote(self, symbol: str, asset_type: AssetType) -> Quote:
        """Fetch a quote in the symbol's native currency."""
        ...

    async def get_fx_rates(self, base_currency: str) -> dict[str, Decimal]:
        """Fetch currency -> rate-to-base conversion rates."""
        ...

    async def list_tracked_assets(self) -> list[str]:
        """Fetch the ordered list of tracked asset symbols."""
        ...

    async def untrack_asset(self, symbol: str) -> None:
        """Remove a symbol from the tracked list."""
        ...

    async def update_preferences(self, changes: dict[str, Any]) -> dict[str, Any]:
        """Save user preferences; returns the stored preferences."""
        ...
