"""Parallel fetch of every engine input for one instrument."""

import asyncio
import logging
import os
from collections.abc import Awaitable
from datetime import date
from time import perf_counter
from typing import Any

import pandas as pd

from rerating_mcp.data import parsers
from rerating_mcp.data.yfinance_client import (
    fetch_analyst_actions,
    fetch_earnings_calendar,
    fetch_earnings_dates,
    fetch_estimates,
    fetch_info,
    fetch_insider_transactions,
    fetch_prices,
    fetch_quarterly_cashflow,
)
from rerating_mcp.engine.models import InstrumentInputs
from rerating_mcp.utils.ohlcv import empty_prices
from rerating_mcp.utils.provenance import build_provenance, elapsed_ms, source_warning
from rerating_mcp.utils.validators import FetchParams, safe_float

logger = logging.getLogger(__name__)

FETCH_TIMEOUT_SECONDS = float(os.environ.get("FETCH_TIMEOUT_SECONDS", "15"))
BENCHMARK_SYMBOL = os.environ.get("BENCHMARK_SYMBOL", "^GSPC")

# 200-day momentum needs a base close on or before as_of - 200
PRICE_LOOKBACK_DAYS = 220


class DataUnavailableError(Exception):
    """Raised when neither prices nor info could be fetched for a symbol."""


async def run_with_timing(name: str, coro: Awaitable[Any]) -> tuple[str, Any | Exception, float]:
    """Await one source with a timeout; exceptions are returned, not raised."""
    started = perf_counter()
    try:
        result = await asyncio.wait_for(coro, timeout=FETCH_TIMEOUT_SECONDS)
    except TimeoutError:
        result = TimeoutError(f"exceeded {FETCH_TIMEOUT_SECONDS}s")
    except Exception as e:
        result = e
    return name, result, elapsed_ms(started)


async def fetch_benchmark_prices(as_of: date) -> tuple[pd.DataFrame, str | None]:
    """Benchmark closes, or an empty frame plus a warning on failure."""
    _, result, _ = await run_with_timing(
        "benchmark", fetch_prices(FetchParams(BENCHMARK_SYMBOL, PRICE_LOOKBACK_DAYS, as_of))
    )
    if isinstance(result, Exception):
        logger.warning(f"Benchmark {BENCHMARK_SYMBOL} unavailable: {result}")
        return empty_prices(), source_warning("benchmark", result)
    return result, None


def inputs_from_sources(symbol: str, sources: dict[str, Any], as_of: date) -> InstrumentInputs:
    """
    Convert raw source payloads into InstrumentInputs.

    Any source may be None (failed or missing); the matching fields stay empty.
    """
    info: dict[str, Any] = sources.get("info") or {}
    prices = sources.get("prices")
    if not isinstance(prices, pd.DataFrame):
        prices = empty_prices()
    benchmark = sources.get("benchmark")
    if not isinstance(benchmark, pd.DataFrame):
        benchmark = empty_prices()

    earnings_est, revenue_est = sources.get("estimates") or (None, None)
    market_cap = safe_float(info.get("marketCap"))
    fcf_now, fcf_prior = parsers.fcf_yields(sources.get("cashflow"), market_cap, prices, as_of)

    held_pct = safe_float(info.get("heldPercentInstitutions"))

    return InstrumentInputs(
        symbol=symbol,
        company_name=info.get("longName") or info.get("shortName"),
        sector=info.get("sector"),
        industry=info.get("industry"),
        market_cap=market_cap,
        beta=safe_float(info.get("beta")),
        next_fy=parsers.parse_estimate_row(earnings_est, revenue_est, parsers.NEXT_FY_PERIOD),
        prior_fy=parsers.parse_estimate_row(earnings_est, revenue_est, parsers.PRIOR_PERIOD),
        fcf_yield_now=fcf_now,
        fcf_yield_prior=fcf_prior,
        net_debt_to_ebitda=parsers.net_debt_to_ebitda(info),
        ebitda=safe_float(info.get("ebitda")),
        prices=prices,
        benchmark_prices=benchmark,
        analyst_actions=parsers.parse_analyst_actions(sources.get("analyst_actions")),
        insider_transactions=parsers.parse_insider_transactions(sources.get("insider_transactions")),
        earnings_events=parsers.parse_earnings_events(sources.get("earnings_dates"), sources.get("calendar")),
        short_pct_float=safe_float(info.get("shortPercentOfFloat")),
        short_ratio=safe_float(info.get("shortRatio")),
        shares_short=safe_float(info.get("sharesShort")),
        float_shares=safe_float(info.get("floatShares")),
        institutional_pct=held_pct,
    )


async def resolve_inputs(
    symbol: str,
    as_of: date,
    benchmark_prices: pd.DataFrame | None = None,
) -> tuple[InstrumentInputs, dict[str, Any]]:
    """
    Fetch all sources in parallel and build InstrumentInputs.

    Args:
        symbol: Normalized ticker symbol
        as_of: Anchor date of the run
        benchmark_prices: Pre-fetched benchmark closes (shared across a feed run)

    Returns:
        (inputs, provenance dict for the yfinance source)

    Raises:
        DataUnavailableError: If both prices and info failed
    """
    source_specs: list[tuple[str, Awaitable[Any]]] = [
        ("prices", fetch_prices(FetchParams(symbol, PRICE_LOOKBACK_DAYS, as_of))),
        ("info", fetch_info(symbol)),
        ("estimates", fetch_estimates(symbol)),
        ("analyst_actions", fetch_analyst_actions(symbol)),
        ("insider_transactions", fetch_insider_transactions(symbol)),
        ("earnings_dates", fetch_earnings_dates(symbol)),
        ("calendar", fetch_earnings_calendar(symbol)),
        ("cashflow", fetch_quarterly_cashflow(symbol)),
    ]
    if benchmark_prices is None:
        source_specs.append(
            ("benchmark", fetch_prices(FetchParams(BENCHMARK_SYMBOL, PRICE_LOOKBACK_DAYS, as_of)))
        )

    results = await asyncio.gather(*[run_with_timing(name, coro) for name, coro in source_specs])

    sources: dict[str, Any] = {}
    warnings: list[str] = []
    timings: dict[str, float] = {}
    failed: list[str] = []
    for name, result, duration_ms in results:
        timings[name] = round(duration_ms, 1)
        if isinstance(result, Exception):
            warning = source_warning(name, result)
            logger.warning(f"{symbol}: {warning}")
            warnings.append(warning)
            failed.append(name)
            sources[name] = None
        else:
            sources[name] = result

    if benchmark_prices is not None:
        sources["benchmark"] = benchmark_prices

    if "prices" in failed and "info" in failed:
        raise DataUnavailableError(f"No price or profile data for {symbol}")

    inputs = inputs_from_sources(symbol, sources, as_of)
    if inputs.next_fy is None or inputs.next_fy.eps_avg is None:
        warnings.append("estimates: no next fiscal year consensus; revision pillar neutral")
    inputs.warnings = warnings

    provenance = build_provenance(
        "yfinance",
        as_of=as_of.isoformat(),
        warnings=warnings,
        sources_failed=failed,
        timings_ms=timings,
        benchmark=BENCHMARK_SYMBOL,
    )
    return inputs, provenance
