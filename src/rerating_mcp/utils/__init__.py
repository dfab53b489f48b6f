"""Utility modules."""

from rerating_mcp.utils.indicators import (
    annualized_vol_30d,
    average_volume,
    price_change_pct,
    relative_strength,
)
from rerating_mcp.utils.ohlcv import prices_from_rows, standardize_prices
from rerating_mcp.utils.provenance import build_error_response, build_meta, build_provenance
from rerating_mcp.utils.validators import FetchParams, check_rule, pct_change, safe_float

__all__ = [
    "annualized_vol_30d",
    "average_volume",
    "price_change_pct",
    "relative_strength",
    "prices_from_rows",
    "standardize_prices",
    "build_error_response",
    "build_meta",
    "build_provenance",
    "FetchParams",
    "check_rule",
    "pct_change",
    "safe_float",
]
