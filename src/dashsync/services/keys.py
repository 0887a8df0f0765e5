"""Canonical cache keys for dashboard resources."""

from typing import Callable, Optional

from dashsync.domain.models import AssetType, TimeRange

KeyPredicate = Callable[[str], bool]

PORTFOLIOS_KEY = "portfolios"
PREFERENCES_KEY = "preferences"


def positions_key(portfolio_id: str) -> str:
    return f"portfolio-positions:{portfolio_id}"


def historical_key(portfolio_id: str, time_range: TimeRange) -> str:
    return f"portfolio-historical:{portfolio_id}:{TimeRange(time_range).value}"


def job_status_key(job_kind: str, universe: str) -> str:
    return f"job-status:{job_kind}:{universe}"


def quote_key(symbol: str, asset_type: AssetType) -> str:
    return f"quote:{AssetType(asset_type).value}:{symbol.upper()}"


def fx_rates_key(base_currency: str) -> str:
    return f"fx-rates:{base_currency.upper()}"


def collection_key(owner_kind: str, owner_id: Optional[str] = None) -> str:
    """Key of an ordered collection owned by a portfolio, a universe or the global tracked list."""
    if owner_id is None:
        return f"collection:{owner_kind}"
    return f"collection:{owner_kind}:{owner_id}"


TRACKED_ASSETS_KEY = collection_key("tracked-assets")


def with_prefix(prefix: str) -> KeyPredicate:
    """Predicate matching every key that starts with prefix."""
    return lambda key: key.startswith(prefix)


def portfolio_scope(portfolio_id: str) -> KeyPredicate:
    """Predicate matching every cached resource derived from one portfolio."""
    positions = positions_key(portfolio_id)
    history_prefix = f"portfolio-historical:{portfolio_id}:"
    return lambda key: key == positions or key.startswith(history_prefix)
