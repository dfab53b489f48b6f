"""Short interest and institutional ownership with 30-day stored deltas."""

import logging
from datetime import date, timedelta

import pandas as pd

from rerating_mcp.data.snapshot_store import (
    InstitutionalSnapshot,
    ShortInterestSnapshot,
    SnapshotStore,
    snapshot_at_or_before,
)
from rerating_mcp.engine.models import InstitutionalOwnership, ShortInterest
from rerating_mcp.utils.indicators import average_volume
from rerating_mcp.utils.validators import pct_change, round_or_none

logger = logging.getLogger(__name__)

POSITIONING_WINDOW_SNAPSHOTS = 40
DELTA_DAYS = 30
MIN_VOLUME_SESSIONS = 5
VOLUME_SESSIONS = 20


def short_interest_pct(
    short_pct_float: float | None,
    shares_short: float | None,
    float_shares: float | None,
) -> float | None:
    """Percent of float sold short; yfinance reports a fraction (0.05 = 5%)."""
    if short_pct_float is not None:
        return short_pct_float * 100
    if shares_short is not None and float_shares is not None and float_shares > 0:
        return round_or_none(shares_short / float_shares * 100, 1)
    return None


def days_to_cover(
    short_ratio: float | None,
    shares_short: float | None,
    prices: pd.DataFrame,
) -> float | None:
    """Reported short ratio, else shares short over 20-session average volume."""
    if short_ratio is not None:
        return short_ratio
    if shares_short is None or prices is None or len(prices) < MIN_VOLUME_SESSIONS:
        return None
    avg_volume = average_volume(prices, VOLUME_SESSIONS)
    if not avg_volume:
        return None
    return round_or_none(shares_short / avg_volume, 1)


def resolve_short_interest(
    store: SnapshotStore,
    symbol: str,
    pct_float_short: float | None,
    cover_days: float | None,
    as_of: date,
) -> ShortInterest:
    """Persist today's short interest and compare with the snapshot 30 days back (% change)."""
    if pct_float_short is None:
        return ShortInterest(None, None, cover_days, data_available=False)

    store.save_short_interest_snapshot(
        symbol,
        ShortInterestSnapshot(date=as_of.isoformat(), pct_float_short=pct_float_short, days_to_cover=cover_days),
    )
    series = store.load_short_interest_snapshots(symbol, max_days=POSITIONING_WINDOW_SNAPSHOTS)
    base = snapshot_at_or_before(series, as_of - timedelta(days=DELTA_DAYS))
    change = pct_change(pct_float_short, base.pct_float_short) if base else None
    if base is None:
        logger.debug(f"{symbol}: no short interest snapshot {DELTA_DAYS}d back")
    return ShortInterest(pct_float_short, change, cover_days, data_available=True)


def resolve_institutional(
    store: SnapshotStore,
    symbol: str,
    held_pct: float | None,
    as_of: date,
) -> InstitutionalOwnership:
    """Persist today's institutional ownership and compare with 30 days back (percentage points)."""
    if held_pct is None:
        return InstitutionalOwnership(None, None, data_available=False)

    pct = held_pct * 100
    store.save_institutional_snapshot(symbol, InstitutionalSnapshot(date=as_of.isoformat(), pct_institutional=pct))
    series = store.load_institutional_snapshots(symbol, max_days=POSITIONING_WINDOW_SNAPSHOTS)
    base = snapshot_at_or_before(series, as_of - timedelta(days=DELTA_DAYS))
    change = round_or_none(pct - base.pct_institutional, 1) if base else None
    return InstitutionalOwnership(pct, change, data_available=True)
