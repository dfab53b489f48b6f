"""Daily check and primary card tools."""

import logging
from datetime import date
from time import perf_counter
from typing import Any

import pandas as pd

from rerating_mcp.data.inputs import DataUnavailableError, resolve_inputs
from rerating_mcp.data.snapshot_store import SnapshotStore, snapshot_store
from rerating_mcp.data.yfinance_client import market_today
from rerating_mcp.engine.cards import render_card
from rerating_mcp.engine.detectors import MIN_SEVERITY, run_detectors
from rerating_mcp.engine.models import InstrumentState
from rerating_mcp.engine.selector import select_dominant_signal
from rerating_mcp.engine.state import build_instrument_state
from rerating_mcp.utils.provenance import build_error_response, build_meta, build_provenance, elapsed_ms
from rerating_mcp.utils.validators import normalize_symbol

logger = logging.getLogger(__name__)


def parse_as_of(as_of: str | None) -> date:
    """ISO date string or today in the market timezone."""
    if not as_of:
        return market_today()
    return date.fromisoformat(as_of)


async def evaluate_instrument(
    symbol: str,
    as_of: date,
    store: SnapshotStore,
    benchmark_prices: pd.DataFrame | None = None,
) -> tuple[InstrumentState, dict[str, Any]]:
    """
    Fetch inputs and compute today's state for one instrument.

    Returns:
        (state, data_provenance)

    Raises:
        DataUnavailableError: If no price or profile data is available
    """
    inputs, yf_provenance = await resolve_inputs(symbol, as_of, benchmark_prices)
    state = build_instrument_state(inputs, store, as_of)

    store_warnings = []
    if not state.has_stored_revision_history:
        store_warnings.append("no estimate snapshot 7+ days old; revisions use prior fiscal period")
    provenance = {
        "yfinance": yf_provenance,
        "snapshot_store": build_provenance(
            "snapshot_store",
            as_of=as_of.isoformat(),
            warnings=store_warnings,
            has_stored_revision_history=state.has_stored_revision_history,
        ),
    }
    return state, provenance


async def _evaluate_or_error(
    symbol: str,
    as_of: str | None,
    store: SnapshotStore | None,
    tool: str,
) -> tuple[InstrumentState, dict[str, Any]] | dict[str, Any]:
    try:
        normalized_symbol = normalize_symbol(symbol)
    except ValueError as e:
        return build_error_response(error_type="invalid_symbol", message=str(e), symbol=symbol, tool=tool)

    try:
        run_date = parse_as_of(as_of)
    except ValueError:
        return build_error_response(
            error_type="invalid_request",
            message=f"as_of must be YYYY-MM-DD, got '{as_of}'",
            symbol=normalized_symbol,
            tool=tool,
        )

    try:
        return await evaluate_instrument(normalized_symbol, run_date, store or snapshot_store)
    except DataUnavailableError as e:
        return build_error_response(
            error_type="data_unavailable", message=str(e), symbol=normalized_symbol, tool=tool
        )


async def daily_check(
    symbol: str,
    as_of: str | None = None,
    store: SnapshotStore | None = None,
) -> dict[str, Any]:
    """
    Full daily re-rating check for a symbol.

    Args:
        symbol: Stock ticker symbol
        as_of: Run date (YYYY-MM-DD); defaults to today in the market timezone
        store: Snapshot store (defaults to the shared on-disk store)

    Returns:
        Dict with instrument state, every detector output, the dominant
        signal (or None when stable), meta, and data provenance
    """
    start_time = perf_counter()
    evaluated = await _evaluate_or_error(symbol, as_of, store, "daily_check")
    if isinstance(evaluated, dict):
        return evaluated
    state, provenance = evaluated

    signals = run_detectors(state)
    dominant = select_dominant_signal(signals)

    return {
        "symbol": state.symbol,
        "as_of": state.as_of,
        "state": state.to_dict(),
        "signals": [s.to_dict() for s in signals],
        "min_severity": MIN_SEVERITY,
        "dominant_signal": dominant.to_dict() if dominant else None,
        "meta": build_meta("daily_check", elapsed_ms(start_time), as_of=state.as_of),
        "data_provenance": provenance,
    }


async def primary_card(
    symbol: str,
    as_of: str | None = None,
    store: SnapshotStore | None = None,
) -> dict[str, Any]:
    """
    The one card shown for a symbol today, or stable when nothing qualifies.
    """
    start_time = perf_counter()
    evaluated = await _evaluate_or_error(symbol, as_of, store, "primary_card")
    if isinstance(evaluated, dict):
        return evaluated
    state, provenance = evaluated

    signal = select_dominant_signal(run_detectors(state))
    card = render_card(state, signal) if signal else None

    return {
        "symbol": state.symbol,
        "as_of": state.as_of,
        "stable": card is None,
        "card": card.to_dict() if card else None,
        "meta": build_meta("primary_card", elapsed_ms(start_time), as_of=state.as_of),
        "data_provenance": provenance,
    }
