"""Validation utilities and parameter classes."""

import math
import operator
import re
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any

VALID_INTERVALS = {"1d", "1wk"}

# Tickers, index symbols (^GSPC) and share classes (BRK-B, RDS.A)
_SYMBOL_RE = re.compile(r"^\^?[A-Z0-9][A-Z0-9.\-=]{0,14}$")


def normalize_symbol(symbol: str) -> str:
    """
    Normalize and validate a ticker symbol.

    Raises:
        ValueError: If the symbol is empty or contains unexpected characters
    """
    normalized = (symbol or "").upper().strip()
    if not _SYMBOL_RE.match(normalized):
        raise ValueError(f"Invalid symbol '{symbol}'")
    return normalized


@dataclass(frozen=True)
class FetchParams:
    """Immutable price-history fetch parameters anchored on an as-of date."""

    symbol: str
    lookback_days: int
    as_of: date
    interval: str = "1d"

    def __post_init__(self) -> None:
        object.__setattr__(self, "symbol", normalize_symbol(self.symbol))

        interval = self.interval.lower().strip()
        if interval not in VALID_INTERVALS:
            raise ValueError(
                f"Invalid interval '{self.interval}'. Must be one of: {VALID_INTERVALS}"
            )
        if self.lookback_days <= 0:
            raise ValueError(f"lookback_days must be positive, got {self.lookback_days}")

        object.__setattr__(self, "interval", interval)

    @property
    def start(self) -> date:
        return self.as_of - timedelta(days=self.lookback_days)

    def to_yf_kwargs(self) -> dict[str, Any]:
        """Kwargs for yf.download(). `end` is exclusive, so include as_of."""
        return {
            "tickers": self.symbol,
            "start": self.start.isoformat(),
            "end": (self.as_of + timedelta(days=1)).isoformat(),
            "interval": self.interval,
            "auto_adjust": True,
            "progress": False,
        }


def safe_float(value: Any) -> float | None:
    """Convert to a finite float or return None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(result) or math.isinf(result):
        return None
    return result


def pct_change(current: float | None, base: float | None) -> float | None:
    """
    Percentage change of current vs base, relative to |base|.

    Returns None when either side is missing or the base is zero.
    """
    if current is None or base is None or base == 0:
        return None
    result = (current - base) / abs(base) * 100
    return result if math.isfinite(result) else None


def round_half_up(value: float) -> int:
    """Round to the nearest integer with .5 going up (2.5 -> 3, -2.5 -> -2)."""
    return math.floor(value + 0.5)


def round_or_none(value: float | None, ndigits: int = 1) -> float | None:
    """Half-up round to ndigits or return None. Handles 0 correctly (unlike truthiness)."""
    if value is None:
        return None
    factor = 10**ndigits
    return round_half_up(value * factor) / factor


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def check_rule(
    value: float | None,
    threshold: float,
    comparator: Callable[[float, float], bool] = operator.gt,
) -> bool:
    """
    Check a rule where a missing value never qualifies.

    Qualifying flags are booleans on the instrument state, so None
    collapses to False here.
    """
    if value is None:
        return False
    return comparator(value, threshold)


def check_abs_rule(value: float | None, threshold: float) -> bool:
    """True when |value| > threshold; False for missing values."""
    return check_rule(None if value is None else abs(value), threshold, operator.gt)
