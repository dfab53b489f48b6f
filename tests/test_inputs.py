"""Tests for parallel input resolution."""

import asyncio
from contextlib import ExitStack
from unittest.mock import AsyncMock, patch

import pandas as pd
import pytest

from conftest import AS_OF, daily_prices
from rerating_mcp.data.inputs import (
    BENCHMARK_SYMBOL,
    DataUnavailableError,
    fetch_benchmark_prices,
    inputs_from_sources,
    resolve_inputs,
    run_with_timing,
)
from rerating_mcp.data.yfinance_client import YFinanceRetryError

INPUTS = "rerating_mcp.data.inputs"

INFO = {
    "longName": "Apple Inc.",
    "sector": "Technology",
    "industry": "Consumer Electronics",
    "marketCap": 3e12,
    "beta": 1.24,
    "ebitda": 130e9,
    "totalDebt": 100e9,
    "totalCash": 60e9,
    "shortPercentOfFloat": 0.007,
    "shortRatio": 1.9,
    "heldPercentInstitutions": 0.62,
}


def _estimates() -> tuple[pd.DataFrame, pd.DataFrame]:
    index = ["0y", "+1y"]
    earnings = pd.DataFrame({"avg": [6.1, 7.0], "low": [5.8, 6.2], "high": [6.5, 7.6]}, index=index)
    revenue = pd.DataFrame({"avg": [3.9e11, 4.2e11]}, index=index)
    return earnings, revenue


def _patch_sources(stack: ExitStack, **overrides) -> dict[str, AsyncMock]:
    defaults = {
        "fetch_prices": daily_prices([100.0] * 31),
        "fetch_info": INFO,
        "fetch_estimates": _estimates(),
        "fetch_analyst_actions": None,
        "fetch_insider_transactions": None,
        "fetch_earnings_dates": None,
        "fetch_earnings_calendar": None,
        "fetch_quarterly_cashflow": None,
    }
    mocks = {}
    for name, value in defaults.items():
        value = overrides.get(name, value)
        mock = AsyncMock(side_effect=value) if isinstance(value, Exception) else AsyncMock(return_value=value)
        mocks[name] = stack.enter_context(patch(f"{INPUTS}.{name}", mock))
    return mocks


class TestRunWithTiming:
    def test_result(self) -> None:
        async def ok() -> int:
            return 42

        name, result, duration = asyncio.run(run_with_timing("ok", ok()))
        assert (name, result) == ("ok", 42)
        assert duration >= 0

    def test_exception_is_returned(self) -> None:
        async def broken() -> None:
            raise ValueError("boom")

        _, result, _ = asyncio.run(run_with_timing("broken", broken()))
        assert isinstance(result, ValueError)

    def test_timeout(self) -> None:
        with patch(f"{INPUTS}.FETCH_TIMEOUT_SECONDS", 0.01):
            _, result, _ = asyncio.run(run_with_timing("slow", asyncio.sleep(1)))
        assert isinstance(result, TimeoutError)


class TestInputsFromSources:
    """Tests for mapping raw payloads onto InstrumentInputs."""

    def test_info_fields(self) -> None:
        inputs = inputs_from_sources("AAPL", {"info": INFO, "estimates": _estimates()}, AS_OF)

        assert inputs.company_name == "Apple Inc."
        assert inputs.market_cap == 3e12
        assert inputs.next_fy.eps_avg == 7.0
        assert inputs.prior_fy.eps_avg == 6.1
        assert inputs.net_debt_to_ebitda == pytest.approx(40e9 / 130e9)
        assert inputs.short_pct_float == 0.007
        assert inputs.institutional_pct == 0.62
        assert inputs.prices.empty
        assert inputs.benchmark_prices.empty

    def test_all_sources_missing(self) -> None:
        inputs = inputs_from_sources("AAPL", {}, AS_OF)
        assert inputs.next_fy is None
        assert inputs.fcf_yield_now is None
        assert inputs.earnings_events == []


class TestResolveInputs:
    """Tests for the parallel fetch with failures degraded to warnings."""

    def test_all_sources(self) -> None:
        benchmark = daily_prices([4000.0] * 31)
        with ExitStack() as stack:
            _patch_sources(stack)
            inputs, provenance = asyncio.run(resolve_inputs("AAPL", AS_OF, benchmark_prices=benchmark))

        assert inputs.symbol == "AAPL"
        assert len(inputs.prices) == 31
        assert inputs.benchmark_prices is benchmark
        assert provenance["source"] == "yfinance"
        assert provenance["sources_failed"] == []
        assert provenance["warnings"] == []
        assert "benchmark" not in provenance["timings_ms"]

    def test_fetches_benchmark_when_not_supplied(self) -> None:
        with ExitStack() as stack:
            mocks = _patch_sources(stack)
            inputs, provenance = asyncio.run(resolve_inputs("AAPL", AS_OF))

        assert mocks["fetch_prices"].await_count == 2
        assert "benchmark" in provenance["timings_ms"]
        assert len(inputs.benchmark_prices) == 31

    def test_failed_source_becomes_warning(self) -> None:
        with ExitStack() as stack:
            _patch_sources(stack, fetch_insider_transactions=YFinanceRetryError("Failed after 4 attempts"))
            inputs, provenance = asyncio.run(resolve_inputs("AAPL", AS_OF, benchmark_prices=daily_prices([1.0])))

        assert provenance["sources_failed"] == ["insider_transactions"]
        assert provenance["warnings"] == ["insider_transactions: YFinanceRetryError: Failed after 4 attempts"]
        assert inputs.insider_transactions == []
        assert inputs.warnings == provenance["warnings"]

    def test_missing_consensus_is_flagged(self) -> None:
        with ExitStack() as stack:
            _patch_sources(stack, fetch_estimates=(None, None))
            _, provenance = asyncio.run(resolve_inputs("AAPL", AS_OF, benchmark_prices=daily_prices([1.0])))

        assert any(w.startswith("estimates: no next fiscal year consensus") for w in provenance["warnings"])

    def test_prices_and_info_both_failing(self) -> None:
        with ExitStack() as stack:
            _patch_sources(
                stack,
                fetch_prices=ValueError("No data returned for ZZZZ"),
                fetch_info=ValueError("Invalid symbol: ZZZZ"),
            )
            with pytest.raises(DataUnavailableError):
                asyncio.run(resolve_inputs("ZZZZ", AS_OF, benchmark_prices=daily_prices([1.0])))


class TestFetchBenchmarkPrices:
    def test_success(self) -> None:
        prices = daily_prices([4000.0] * 5)
        with patch(f"{INPUTS}.fetch_prices", AsyncMock(return_value=prices)) as fetch:
            result, warning = asyncio.run(fetch_benchmark_prices(AS_OF))

        assert result is prices
        assert warning is None
        assert fetch.await_args.args[0].symbol == BENCHMARK_SYMBOL

    def test_failure_returns_empty_frame_and_warning(self) -> None:
        failing = AsyncMock(side_effect=YFinanceRetryError("rate limited"))
        with patch(f"{INPUTS}.fetch_prices", failing):
            result, warning = asyncio.run(fetch_benchmark_prices(AS_OF))

        assert result.empty
        assert warning == "benchmark: YFinanceRetryError: rate limited"
