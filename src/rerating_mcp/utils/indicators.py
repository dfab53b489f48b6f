"""Price-derived indicator calculations."""

import math
from datetime import date, timedelta

import numpy as np
import pandas as pd

from rerating_mcp.utils.validators import round_or_none

TRADING_DAYS_PER_YEAR = 252
VOL_WINDOW_RETURNS = 30
VOL_MIN_OBSERVATIONS = 5


def price_change_pct(prices: pd.DataFrame, days: int, as_of: date) -> float | None:
    """
    Calculate the calendar-day price change ending at the latest close.

    The base is the most recent close on or before (as_of - days), so
    weekends and holidays resolve to the prior session.

    Args:
        prices: Standardized price frame (date, close, volume), oldest-first
        days: Calendar-day lookback
        as_of: Anchor date of the run

    Returns:
        Change in percent (5.0 = +5%), or None if insufficient data
    """
    if prices is None or prices.empty:
        return None

    latest = float(prices["close"].iloc[-1])
    target = (as_of - timedelta(days=days)).isoformat()

    prior_rows = prices[prices["date"] <= target]
    if prior_rows.empty:
        return None
    prior = float(prior_rows["close"].iloc[-1])

    if pd.isna(latest) or pd.isna(prior) or prior <= 0:
        return None
    return (latest - prior) / prior * 100


def annualized_vol_30d(prices: pd.DataFrame) -> float | None:
    """
    Calculate 30-day annualized historical volatility.

    Uses log returns of the last 30 sessions and population variance.

    Args:
        prices: Standardized price frame, oldest-first

    Returns:
        Annualized volatility in percent rounded to 0.1 (45.3 = 45.3%), or None
    """
    if prices is None or len(prices) < VOL_MIN_OBSERVATIONS:
        return None

    closes = prices["close"].astype(float)
    closes = closes[closes > 0]
    if len(closes) < VOL_MIN_OBSERVATIONS:
        return None

    log_returns = np.log(closes / closes.shift(1)).dropna()
    recent = log_returns.iloc[-VOL_WINDOW_RETURNS:]
    if len(recent) < VOL_MIN_OBSERVATIONS:
        return None

    std = float(recent.std(ddof=0))
    annualized = std * math.sqrt(TRADING_DAYS_PER_YEAR) * 100
    if not math.isfinite(annualized):
        return None
    return round_or_none(annualized, 1)


def average_volume(prices: pd.DataFrame, sessions: int = 20) -> float | None:
    """
    Average positive volume over the most recent sessions.

    Returns:
        Average shares traded per session, or None if no volume data
    """
    if prices is None or prices.empty:
        return None
    volumes = pd.to_numeric(prices["volume"], errors="coerce").iloc[-sessions:]
    volumes = volumes[volumes > 0]
    if volumes.empty:
        return None
    return float(volumes.mean())


def relative_strength(change_pct: float | None, benchmark_change_pct: float | None) -> float | None:
    """Outperformance vs benchmark in percentage points, rounded to 0.1."""
    if change_pct is None or benchmark_change_pct is None:
        return None
    return round_or_none(change_pct - benchmark_change_pct, 1)


def price_on_or_before(prices: pd.DataFrame, target: date) -> float | None:
    """Close of the most recent session on or before target."""
    if prices is None or prices.empty:
        return None
    rows = prices[prices["date"] <= target.isoformat()]
    if rows.empty:
        return None
    return float(rows["close"].iloc[-1])
