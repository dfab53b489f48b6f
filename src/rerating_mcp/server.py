"""Re-rating Signal MCP Server using FastMCP."""

import json
import logging
import os

from fastmcp import FastMCP

from rerating_mcp import SCHEMA_VERSION, SERVER_VERSION
from rerating_mcp.data.snapshot_store import (
    ESTIMATES,
    INSTITUTIONAL,
    SHORT_INTEREST,
    SnapshotStore,
    snapshot_store,
)
from rerating_mcp.tools import daily_check, primary_card, signal_feed

# Configure logging
log_level = os.environ.get("LOG_LEVEL", "INFO").upper()
logging.basicConfig(level=getattr(logging, log_level, logging.INFO))
logger = logging.getLogger(__name__)

# Create FastMCP server instance
mcp = FastMCP(
    name="rerating-signals",
)

SNAPSHOT_SERIES = (ESTIMATES, SHORT_INTEREST, INSTITUTIONAL)
RESOURCE_MAX_ENTRIES = 365


# ============================================================================
# TOOLS
# ============================================================================


@mcp.tool
async def get_daily_check(symbol: str, as_of: str | None = None) -> str:
    """
    Run the daily re-rating check for a stock.

    Computes estimate revisions (7d/30d), the four scoring pillars, the
    daily pulse (-10..+10), thesis status, structural and flow risk, and
    every signal detector's severity.

    Args:
        symbol: Stock ticker symbol (e.g., AAPL, MSFT)
        as_of: Run date YYYY-MM-DD (default: today, US market time)

    Returns:
        JSON with instrument state, signals, dominant signal and provenance
    """
    result = await daily_check(symbol=symbol, as_of=as_of)
    return json.dumps(result, indent=2, default=str)


@mcp.tool
async def get_primary_card(symbol: str, as_of: str | None = None) -> str:
    """
    Get the single most important signal card for a stock today.

    Args:
        symbol: Stock ticker symbol
        as_of: Run date YYYY-MM-DD (default: today, US market time)

    Returns:
        JSON with the card (title, summary, key metric, tone, severity),
        or stable=true when nothing crosses the severity floor
    """
    result = await primary_card(symbol=symbol, as_of=as_of)
    return json.dumps(result, indent=2, default=str)


@mcp.tool
async def get_signal_feed(symbols: list[str], as_of: str | None = None, max_cards: int = 5) -> str:
    """
    Build a clustered signal feed for a watch list.

    At most one signal per stock; two or more stocks sharing a themed
    signal type are merged into one themed card.

    Args:
        symbols: List of ticker symbols
        as_of: Run date YYYY-MM-DD (default: today, US market time)
        max_cards: Maximum number of cards (default: 5)

    Returns:
        JSON with cards sorted by severity, all_stable flag and per-symbol failures
    """
    result = await signal_feed(symbols=symbols, as_of=as_of, max_cards=max_cards)
    return json.dumps(result, indent=2, default=str)


# ============================================================================
# RESOURCES
# ============================================================================


@mcp.resource("snapshots://{series}/{symbol}")
def get_snapshot_series(series: str, symbol: str) -> str:
    """
    Get the stored daily snapshot series for a symbol as JSON.

    Populated by get_daily_check / get_primary_card / get_signal_feed runs.

    Args:
        series: estimates, short_interest or institutional
        symbol: Stock ticker symbol

    Returns:
        JSON list of snapshots, newest-first
    """
    return snapshot_series_json(series, symbol)


def snapshot_series_json(series: str, symbol: str, store: SnapshotStore | None = None) -> str:
    """Stored series as JSON, or a plain-text message when unknown or empty."""
    if series not in SNAPSHOT_SERIES:
        return f"Error: unknown series '{series}'. Must be one of: {', '.join(SNAPSHOT_SERIES)}"
    store = store or snapshot_store
    try:
        entries = store.load_series(series, symbol, max_days=RESOURCE_MAX_ENTRIES)
    except ValueError as e:
        return f"Error: {e}"
    if not entries:
        return f"No {series} snapshots stored for {symbol.upper()}. Call get_daily_check('{symbol}') first."
    return json.dumps(entries, indent=2, default=str)


def main() -> None:
    """Run the MCP server."""
    logger.info(f"Starting Re-rating Signal MCP Server v{SERVER_VERSION} (schema v{SCHEMA_VERSION})")
    mcp.run()


if __name__ == "__main__":
    main()
