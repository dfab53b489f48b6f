"""Data layer for fetching market data and persisting snapshots."""

from rerating_mcp.data.snapshot_store import (
    EstimateSnapshot,
    InstitutionalSnapshot,
    ShortInterestSnapshot,
    SnapshotStore,
    snapshot_at_or_before,
    snapshot_store,
)
from rerating_mcp.data.yfinance_client import (
    RetryResult,
    ServerShuttingDownError,
    YFinanceRetryError,
    fetch_info,
    fetch_prices,
    market_today,
    shutdown_executor,
)

__all__ = [
    # Snapshots
    "EstimateSnapshot",
    "InstitutionalSnapshot",
    "ShortInterestSnapshot",
    "SnapshotStore",
    "snapshot_at_or_before",
    "snapshot_store",
    # yfinance
    "RetryResult",
    "ServerShuttingDownError",
    "YFinanceRetryError",
    "fetch_info",
    "fetch_prices",
    "market_today",
    "shutdown_executor",
]
