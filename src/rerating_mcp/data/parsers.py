"""Conversion of raw yfinance payloads into engine inputs."""

import re
from datetime import date, timedelta
from typing import Any

import pandas as pd

from rerating_mcp.engine.models import AnalystAction, EarningsEvent, EstimateRow, InsiderTransaction
from rerating_mcp.utils.indicators import price_on_or_before
from rerating_mcp.utils.validators import safe_float

NEXT_FY_PERIOD = "+1y"
PRIOR_PERIOD = "0y"
FCF_ROW = "Free Cash Flow"
QUARTER_DAYS = 91

_SELL_RE = re.compile(r"\b(sale|sell|sold|disposition)", re.IGNORECASE)


def to_iso_date(value: Any) -> str | None:
    """Format a timestamp-like value as YYYY-MM-DD, or None if unparseable."""
    if value is None:
        return None
    try:
        ts = pd.Timestamp(value)
    except (ValueError, TypeError):
        return None
    if pd.isna(ts):
        return None
    return ts.strftime("%Y-%m-%d")


def parse_estimate_row(
    earnings: pd.DataFrame | None,
    revenue: pd.DataFrame | None,
    period: str,
) -> EstimateRow | None:
    """
    Extract one fiscal period from yfinance earnings/revenue estimate frames.

    Returns:
        EstimateRow, or None if neither frame carries the period
    """
    eps_row = _row(earnings, period)
    rev_row = _row(revenue, period)
    if eps_row is None and rev_row is None:
        return None

    def _get(row: pd.Series | None, col: str) -> float | None:
        return safe_float(row.get(col)) if row is not None else None

    return EstimateRow(
        eps_avg=_get(eps_row, "avg"),
        revenue_avg=_get(rev_row, "avg"),
        eps_high=_get(eps_row, "high"),
        eps_low=_get(eps_row, "low"),
        analyst_count=_get(eps_row, "numberOfAnalysts"),
    )


def _row(df: pd.DataFrame | None, period: str) -> pd.Series | None:
    if df is None or not isinstance(df, pd.DataFrame) or df.empty:
        return None
    if period not in df.index:
        return None
    return df.loc[period]


def parse_analyst_actions(df: pd.DataFrame | None) -> list[AnalystAction]:
    """Upgrades/downgrades, newest-first."""
    if df is None or not isinstance(df, pd.DataFrame) or df.empty:
        return []

    actions: list[AnalystAction] = []
    for idx, row in df.iterrows():
        action_date = to_iso_date(idx) or to_iso_date(row.get("GradeDate"))
        if action_date is None:
            continue
        actions.append(
            AnalystAction(
                date=action_date,
                action=str(row.get("Action") or "").lower(),
                to_grade=_str_or_none(row.get("ToGrade")),
                firm=_str_or_none(row.get("Firm")),
            )
        )
    actions.sort(key=lambda a: a.date, reverse=True)
    return actions


def _str_or_none(value: Any) -> str | None:
    return value if isinstance(value, str) and value else None


def parse_insider_transactions(df: pd.DataFrame | None) -> list[InsiderTransaction]:
    """Insider transactions, newest-first. Value is the absolute dollar amount."""
    if df is None or not isinstance(df, pd.DataFrame) or df.empty:
        return []

    transactions: list[InsiderTransaction] = []
    for _, row in df.iterrows():
        tx_date = to_iso_date(row.get("Start Date"))
        if tx_date is None:
            continue
        text = " ".join(
            str(row.get(col)) for col in ("Transaction", "Text") if isinstance(row.get(col), str)
        )
        value = safe_float(row.get("Value"))
        transactions.append(
            InsiderTransaction(
                date=tx_date,
                transaction=text.strip(),
                value=abs(value) if value is not None else None,
            )
        )
    transactions.sort(key=lambda t: t.date, reverse=True)
    return transactions


def is_insider_sale(transaction: InsiderTransaction) -> bool:
    return bool(_SELL_RE.search(transaction.transaction))


def parse_earnings_events(
    earnings_dates: pd.DataFrame | None,
    calendar: dict[str, Any] | pd.DataFrame | None = None,
) -> list[EarningsEvent]:
    """
    Merge reported and scheduled earnings into one list, newest-first.

    Reported rows carry eps_actual; scheduled dates from the calendar are
    added when earnings_dates does not already list them.
    """
    by_date: dict[str, EarningsEvent] = {}

    if isinstance(earnings_dates, pd.DataFrame) and not earnings_dates.empty:
        for idx, row in earnings_dates.iterrows():
            event_date = to_iso_date(idx)
            if event_date is None:
                continue
            by_date[event_date] = EarningsEvent(
                date=event_date,
                eps_estimate=safe_float(row.get("EPS Estimate")),
                eps_actual=safe_float(row.get("Reported EPS")),
            )

    for scheduled in _calendar_earnings_dates(calendar):
        by_date.setdefault(scheduled, EarningsEvent(date=scheduled))

    return sorted(by_date.values(), key=lambda e: e.date, reverse=True)


def _calendar_earnings_dates(calendar: dict[str, Any] | pd.DataFrame | None) -> list[str]:
    raw: Any = None
    if isinstance(calendar, dict):
        raw = calendar.get("Earnings Date")
    elif isinstance(calendar, pd.DataFrame) and "Earnings Date" in calendar.index:
        raw = list(calendar.loc["Earnings Date"].values)

    if raw is None:
        return []
    values = raw if isinstance(raw, (list, tuple)) else [raw]
    return [d for d in (to_iso_date(v) for v in values) if d is not None]


def ttm_free_cash_flow(cashflow: pd.DataFrame | None, offset: int = 0) -> float | None:
    """
    Sum of four quarters of free cash flow starting `offset` quarters back.

    Returns None unless all four quarters are present.
    """
    if cashflow is None or not isinstance(cashflow, pd.DataFrame) or FCF_ROW not in cashflow.index:
        return None

    row = cashflow.loc[FCF_ROW]
    # Columns are quarter-end timestamps; order newest-first explicitly
    row = row.reindex(sorted(row.index, reverse=True))
    window = [safe_float(v) for v in row.iloc[offset : offset + 4]]
    if len(window) < 4 or any(v is None for v in window):
        return None
    return float(sum(window))


def fcf_yields(
    cashflow: pd.DataFrame | None,
    market_cap: float | None,
    prices: pd.DataFrame,
    as_of: date,
) -> tuple[float | None, float | None]:
    """
    Current and one-quarter-prior trailing FCF yield in percent.

    The prior market cap is scaled by the close one quarter back relative
    to the latest close.
    """
    if market_cap is None or market_cap <= 0:
        return None, None

    fcf_now = ttm_free_cash_flow(cashflow, 0)
    yield_now = fcf_now / market_cap * 100 if fcf_now is not None else None

    fcf_prior = ttm_free_cash_flow(cashflow, 1)
    yield_prior = None
    if fcf_prior is not None and not prices.empty:
        close_now = float(prices["close"].iloc[-1])
        close_prior = price_on_or_before(prices, as_of - timedelta(days=QUARTER_DAYS))
        if close_prior is not None and close_now > 0:
            prior_cap = market_cap * close_prior / close_now
            if prior_cap > 0:
                yield_prior = fcf_prior / prior_cap * 100

    return yield_now, yield_prior


def net_debt_to_ebitda(info: dict[str, Any]) -> float | None:
    """(totalDebt - totalCash) / ebitda; negative for net cash or negative EBITDA."""
    ebitda = safe_float(info.get("ebitda"))
    debt = safe_float(info.get("totalDebt"))
    if ebitda is None or ebitda == 0 or debt is None:
        return None
    cash = safe_float(info.get("totalCash")) or 0.0
    return (debt - cash) / ebitda
