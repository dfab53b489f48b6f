"""Last-quarter earnings recap and when it is worth showing."""

from datetime import date, timedelta

import pandas as pd

from rerating_mcp.engine.models import EarningsEvent, EarningsRecap, EarningsRecapRelevance
from rerating_mcp.utils.validators import pct_change, round_or_none

RECENT_WINDOW_DAYS = 7
POST_EARNINGS_WINDOW_DAYS = 30
REACTION_WINDOW_DAYS = 7
REACTION_SESSION_INDEX = 3
BEAT_THRESHOLD_PCT = 2.0


def quarter_label(report_date: str) -> str:
    """Calendar quarter of the report date, e.g. 'Q1 FY2025'."""
    d = date.fromisoformat(report_date)
    return f"Q{(d.month - 1) // 3 + 1} FY{d.year}"


def market_reaction_pct(prices: pd.DataFrame, report_date: str) -> float | None:
    """
    Close-to-close move from the report session to the third session after.

    Falls back to the last available session within a week of the report.
    """
    if prices is None or prices.empty:
        return None
    end = (date.fromisoformat(report_date) + timedelta(days=REACTION_WINDOW_DAYS)).isoformat()
    window = prices[(prices["date"] >= report_date) & (prices["date"] <= end)]
    if len(window) < 2:
        return None
    first = float(window["close"].iloc[0])
    last = float(window["close"].iloc[min(REACTION_SESSION_INDEX, len(window) - 1)])
    return pct_change(last, first) if first > 0 else None


def _narrative(eps_beat_pct: float | None) -> str:
    if eps_beat_pct is None:
        return "Last quarter results are available."
    if eps_beat_pct > BEAT_THRESHOLD_PCT:
        return "The company delivered an earnings beat."
    if eps_beat_pct < -BEAT_THRESHOLD_PCT:
        return "The company missed expectations."
    return "Results were roughly in line with expectations."


def build_earnings_recap(
    events: list[EarningsEvent],
    prices: pd.DataFrame,
    as_of: date,
) -> EarningsRecap | None:
    """
    Recap of the most recent reported quarter on or before as_of.

    Returns:
        EarningsRecap, or None if no event carries a reported EPS
    """
    cutoff = as_of.isoformat()
    reported_events = [e for e in events if e.eps_actual is not None and e.date <= cutoff]
    reported = max(reported_events, key=lambda e: e.date, default=None)
    if reported is None:
        return None

    beat = pct_change(reported.eps_actual, reported.eps_estimate)
    beat = round_or_none(beat, 1)
    return EarningsRecap(
        quarter=quarter_label(reported.date),
        report_date=reported.date,
        eps_actual=reported.eps_actual,
        eps_estimate=reported.eps_estimate,
        eps_beat_pct=beat,
        market_reaction_pct=round_or_none(market_reaction_pct(prices, reported.date), 1),
        narrative=_narrative(beat),
    )


def earnings_recap_relevance(
    recap: EarningsRecap,
    as_of: date,
    revision_spike: bool,
    price_move: bool,
) -> EarningsRecapRelevance:
    """
    Show the recap within a week of the report, or up to 30 days after it
    when a revision spike or a large price move followed.
    """
    days_since = (as_of - date.fromisoformat(recap.report_date)).days

    if 0 <= days_since <= RECENT_WINDOW_DAYS:
        return EarningsRecapRelevance(recap, True, days_since, "within_7d")
    in_window = RECENT_WINDOW_DAYS < days_since <= POST_EARNINGS_WINDOW_DAYS
    if in_window and revision_spike:
        return EarningsRecapRelevance(recap, True, days_since, "revision_spike_post_earnings")
    if in_window and price_move:
        return EarningsRecapRelevance(recap, True, days_since, "price_move_post_earnings")
    return EarningsRecapRelevance(recap, False, days_since, "stale")


def earnings_upcoming(events: list[EarningsEvent], as_of: date, days: int) -> bool:
    """True if an earnings date falls within [as_of, as_of + days]."""
    start = as_of.isoformat()
    end = (as_of + timedelta(days=days)).isoformat()
    return any(start <= e.date <= end for e in events)
