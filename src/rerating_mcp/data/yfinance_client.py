"""Async yfinance client: bounded executor, retry with backoff, fetch wrappers."""

import asyncio
import logging
import os
import random
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Generic, TypeVar

import pandas as pd
import pytz
import yfinance as yf
from requests.exceptions import HTTPError

from rerating_mcp.utils.ohlcv import standardize_prices
from rerating_mcp.utils.validators import FetchParams, normalize_symbol

logger = logging.getLogger(__name__)

# One executor slot per concurrent yfinance call
_max_workers = int(os.environ.get("YF_MAX_WORKERS", "4"))
_executor = ThreadPoolExecutor(max_workers=_max_workers, thread_name_prefix="yfinance")
_fetch_semaphore = asyncio.Semaphore(_max_workers)

_max_retries = int(os.environ.get("YF_MAX_RETRIES", "3"))
_base_delay = float(os.environ.get("YF_BASE_DELAY", "1.0"))  # seconds
_max_delay = float(os.environ.get("YF_MAX_DELAY", "30.0"))  # seconds
_JITTER = 0.25

MARKET_TZ = os.environ.get("MARKET_TZ", "America/New_York")

# yfinance surfaces throttling and network trouble as plain exception text
RETRYABLE_MESSAGES = ("rate limit", "too many requests", "connection", "timeout", "timed out", "temporar")

shutdown_event = asyncio.Event()

T = TypeVar("T")


class ServerShuttingDownError(Exception):
    """Raised when a fetch is attempted after shutdown began."""


class YFinanceRetryError(Exception):
    """Raised when a transient yfinance failure outlives every retry."""

    def __init__(self, message: str, last_error: Exception | None = None):
        super().__init__(message)
        self.last_error = last_error


def _is_retryable_error(error: Exception) -> bool:
    """Throttling (429), server errors (5xx), and connection or timeout failures."""
    response = getattr(error, "response", None)
    if isinstance(error, HTTPError) and response is not None:
        status = response.status_code
        if status == 429 or 500 <= status < 600:
            return True
    message = str(error).lower()
    return any(pattern in message for pattern in RETRYABLE_MESSAGES)


def _calculate_backoff(attempt: int) -> float:
    """Exponential delay for a zero-based attempt, +/-25% jitter, capped at YF_MAX_DELAY."""
    delay = _base_delay * 2**attempt
    delay += delay * _JITTER * random.uniform(-1, 1)
    return min(delay, _max_delay)


@dataclass
class RetryResult(Generic[T]):
    """Value of a fetch plus how hard it was to get."""

    result: T
    attempts: int
    total_backoff_seconds: float


def _ensure_running() -> None:
    if shutdown_event.is_set():
        raise ServerShuttingDownError("Server is shutting down")


async def _retry_with_backoff(
    operation_name: str,
    sync_func: Callable[[], T],
    max_retries: int = _max_retries,
) -> RetryResult[T]:
    """
    Run a blocking yfinance call in the executor, retrying transient failures.

    Non-retryable errors (bad symbol, empty payload) propagate on the first
    attempt.

    Raises:
        YFinanceRetryError: If the call still fails after max_retries retries
        ServerShuttingDownError: If shutdown begins between attempts
    """
    loop = asyncio.get_running_loop()
    total_backoff = 0.0
    attempt = 0
    while True:
        _ensure_running()
        try:
            result = await loop.run_in_executor(_executor, sync_func)
        except Exception as e:
            if not _is_retryable_error(e):
                raise
            if attempt >= max_retries:
                logger.warning(f"{operation_name}: giving up after {attempt + 1} attempts: {e}")
                raise YFinanceRetryError(f"Failed after {attempt + 1} attempts: {e}", last_error=e) from e
            delay = _calculate_backoff(attempt)
            total_backoff += delay
            logger.info(f"{operation_name}: attempt {attempt + 1} failed ({e}); retrying in {delay:.1f}s")
            await asyncio.sleep(delay)
            attempt += 1
            continue
        return RetryResult(result=result, attempts=attempt + 1, total_backoff_seconds=round(total_backoff, 2))


async def _run(operation_name: str, sync_func: Callable[[], T]) -> T:
    _ensure_running()
    async with _fetch_semaphore:
        outcome = await _retry_with_backoff(operation_name, sync_func)
    if outcome.attempts > 1:
        logger.info(
            f"{operation_name}: recovered on attempt {outcome.attempts} "
            f"after {outcome.total_backoff_seconds}s backoff"
        )
    return outcome.result


def market_today() -> date:
    """Current calendar date in the market timezone."""
    return datetime.now(pytz.timezone(MARKET_TZ)).date()


async def fetch_prices(params: FetchParams) -> pd.DataFrame:
    """
    Fetch daily closes ending at params.as_of.

    Returns:
        Standardized (date, close, volume) DataFrame, oldest-first

    Raises:
        ServerShuttingDownError: If server is shutting down
        YFinanceRetryError: If all retries exhausted for retryable errors
        ValueError: If no data returned
    """

    def _fetch() -> pd.DataFrame:
        df = yf.download(**params.to_yf_kwargs())
        if df is None or df.empty:
            raise ValueError(f"No data returned for {params.symbol}")
        return standardize_prices(df)

    return await _run(f"fetch_prices({params.symbol})", _fetch)


async def fetch_info(symbol: str) -> dict[str, Any]:
    """
    Fetch ticker info (market cap, beta, sector, leverage, ownership fields).

    Raises:
        ValueError: If yfinance returns nothing for the symbol
    """
    normalized_symbol = normalize_symbol(symbol)

    def _fetch() -> dict[str, Any]:
        info = yf.Ticker(normalized_symbol).info
        if not info:
            raise ValueError(f"Invalid symbol: {symbol}")
        return info

    return await _run(f"fetch_info({normalized_symbol})", _fetch)


async def _fetch_ticker_attr(symbol: str, attr: str) -> Any:
    normalized_symbol = normalize_symbol(symbol)

    def _fetch() -> Any:
        return getattr(yf.Ticker(normalized_symbol), attr)

    return await _run(f"fetch_{attr}({normalized_symbol})", _fetch)


async def fetch_estimates(symbol: str) -> tuple[pd.DataFrame | None, pd.DataFrame | None]:
    """
    Fetch consensus EPS and revenue estimates.

    Returns:
        (earnings_estimate, revenue_estimate) frames indexed by period
        ("0q", "+1q", "0y", "+1y") with avg/low/high/numberOfAnalysts columns
    """
    earnings = await _fetch_ticker_attr(symbol, "earnings_estimate")
    revenue = await _fetch_ticker_attr(symbol, "revenue_estimate")
    return earnings, revenue


async def fetch_analyst_actions(symbol: str) -> pd.DataFrame | None:
    """Analyst rating changes (Firm, ToGrade, FromGrade, Action) indexed by GradeDate."""
    return await _fetch_ticker_attr(symbol, "upgrades_downgrades")


async def fetch_insider_transactions(symbol: str) -> pd.DataFrame | None:
    """Insider transactions with Text, Value and Start Date columns."""
    return await _fetch_ticker_attr(symbol, "insider_transactions")


async def fetch_earnings_dates(symbol: str) -> pd.DataFrame | None:
    """Past and scheduled earnings dates with EPS Estimate / Reported EPS."""
    return await _fetch_ticker_attr(symbol, "earnings_dates")


async def fetch_earnings_calendar(symbol: str) -> dict[str, Any] | pd.DataFrame | None:
    """Upcoming events calendar (dict in current yfinance, DataFrame in older releases)."""
    return await _fetch_ticker_attr(symbol, "calendar")


async def fetch_quarterly_cashflow(symbol: str) -> pd.DataFrame | None:
    """Quarterly cash flow statement (line items as rows, newest quarter first)."""
    return await _fetch_ticker_attr(symbol, "quarterly_cashflow")


async def shutdown_executor() -> None:
    """Cleanup on server shutdown."""
    shutdown_event.set()
    _executor.shutdown(wait=False, cancel_futures=True)
