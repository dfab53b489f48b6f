"""Price series standardization utilities."""

import pandas as pd

PRICE_COLUMNS = ["date", "close", "volume"]


def standardize_prices(df: pd.DataFrame | None) -> pd.DataFrame:
    """
    Standardize a yfinance download to the daily close schema.

    Output columns (always, in this order): date, close, volume.
    `date` is an ISO YYYY-MM-DD string, rows are oldest-first, and rows
    without a positive close are dropped.

    Args:
        df: Raw DataFrame from yfinance (may be None or empty)

    Returns:
        Standardized DataFrame (possibly empty, never None)
    """
    if df is None or df.empty:
        return empty_prices()

    df = df.copy()

    # Single-ticker yf.download still returns (field, ticker) columns
    if isinstance(df.columns, pd.MultiIndex):
        df.columns = df.columns.get_level_values(0)

    df.columns = [str(c).lower() for c in df.columns]
    df = df.reset_index()

    date_cols = [c for c in df.columns if str(c).lower() in ("date", "datetime", "index")]
    if date_cols:
        df = df.rename(columns={date_cols[0]: "date"})
    if "date" not in df.columns:
        return empty_prices()

    # Prefer adjusted closes when the frame carries both
    if "adj close" in df.columns:
        df["close"] = df["adj close"]

    for col in ("close", "volume"):
        if col not in df.columns:
            df[col] = pd.NA
        df[col] = pd.to_numeric(df[col], errors="coerce")

    df["date"] = pd.to_datetime(df["date"], errors="coerce", utc=True).dt.strftime("%Y-%m-%d")
    df = df.dropna(subset=["date", "close"])
    df = df[df["close"] > 0]

    df = df[PRICE_COLUMNS].drop_duplicates(subset="date", keep="last")
    return df.sort_values("date").reset_index(drop=True)


def empty_prices() -> pd.DataFrame:
    """Empty frame with the canonical price schema."""
    return pd.DataFrame({"date": pd.Series(dtype=str), "close": pd.Series(dtype=float), "volume": pd.Series(dtype=float)})


def prices_from_rows(rows: list[tuple[str, float, float | None]]) -> pd.DataFrame:
    """Build a standardized frame from (date, close, volume) tuples."""
    if not rows:
        return empty_prices()
    df = pd.DataFrame(rows, columns=PRICE_COLUMNS)
    df["close"] = pd.to_numeric(df["close"], errors="coerce")
    df["volume"] = pd.to_numeric(df["volume"], errors="coerce")
    df = df.dropna(subset=["close"])
    df = df[df["close"] > 0]
    return df.sort_values("date").reset_index(drop=True)
