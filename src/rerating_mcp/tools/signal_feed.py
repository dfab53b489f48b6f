"""Watch-list signal feed tool."""

import asyncio
import logging
from time import perf_counter
from typing import Any

from rerating_mcp.data.inputs import BENCHMARK_SYMBOL, fetch_benchmark_prices
from rerating_mcp.data.snapshot_store import SnapshotStore, snapshot_store
from rerating_mcp.engine.feed import MAX_FEED_CARDS, build_feed
from rerating_mcp.engine.models import InstrumentState
from rerating_mcp.tools.daily_check import evaluate_instrument, parse_as_of
from rerating_mcp.utils.provenance import build_error_response, build_meta, build_provenance, elapsed_ms
from rerating_mcp.utils.validators import normalize_symbol

logger = logging.getLogger(__name__)

MAX_SYMBOLS = 50


async def signal_feed(
    symbols: list[str],
    as_of: str | None = None,
    store: SnapshotStore | None = None,
    max_cards: int = MAX_FEED_CARDS,
) -> dict[str, Any]:
    """
    Build the clustered feed for a watch list.

    One failing symbol is reported under `failures` and never aborts the
    rest of the feed.

    Args:
        symbols: Ticker symbols to evaluate
        as_of: Run date (YYYY-MM-DD); defaults to today in the market timezone
        store: Snapshot store (defaults to the shared on-disk store)
        max_cards: Maximum cards in the feed

    Returns:
        Dict with cards, all_stable flag, failures, meta and data provenance
    """
    start_time = perf_counter()
    store = store or snapshot_store

    if not symbols:
        return build_error_response(
            error_type="invalid_parameters", message="symbols list cannot be empty", tool="signal_feed"
        )
    if len(symbols) > MAX_SYMBOLS:
        return build_error_response(
            error_type="invalid_parameters",
            message=f"At most {MAX_SYMBOLS} symbols per feed, got {len(symbols)}",
            tool="signal_feed",
        )
    if max_cards <= 0:
        return build_error_response(error_type="invalid_parameters", message="max_cards must be positive", tool="signal_feed")

    try:
        run_date = parse_as_of(as_of)
    except ValueError:
        return build_error_response(
            error_type="invalid_request", message=f"as_of must be YYYY-MM-DD, got '{as_of}'", tool="signal_feed"
        )

    failures: list[dict[str, Any]] = []
    normalized: list[str] = []
    for symbol in symbols:
        try:
            sym = normalize_symbol(symbol)
        except ValueError as e:
            failures.append({"symbol": symbol, "error": "invalid_symbol", "message": str(e)})
            continue
        if sym not in normalized:
            normalized.append(sym)

    benchmark, benchmark_warning = await fetch_benchmark_prices(run_date)

    async def evaluate(sym: str) -> tuple[str, InstrumentState | Exception]:
        try:
            state, _ = await evaluate_instrument(sym, run_date, store, benchmark_prices=benchmark)
            return sym, state
        except Exception as e:
            return sym, e

    results = await asyncio.gather(*[evaluate(sym) for sym in normalized])

    states: list[InstrumentState] = []
    for sym, result in results:
        if isinstance(result, Exception):
            logger.warning(f"Feed: {sym} failed: {type(result).__name__}: {result}")
            failures.append({"symbol": sym, "error": type(result).__name__, "message": str(result)})
        else:
            states.append(result)

    feed = build_feed(states, max_cards)
    response = feed.to_dict()
    response.update(
        {
            "as_of": run_date.isoformat(),
            "evaluated": [s.symbol for s in states],
            "failures": failures,
            "meta": build_meta("signal_feed", elapsed_ms(start_time), as_of=run_date.isoformat()),
            "data_provenance": {
                "yfinance": build_provenance(
                    "yfinance",
                    as_of=run_date.isoformat(),
                    warnings=[benchmark_warning] if benchmark_warning else [],
                    benchmark=BENCHMARK_SYMBOL,
                ),
            },
        }
    )
    return response
