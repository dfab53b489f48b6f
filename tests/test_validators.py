"""Tests for validators and FetchParams."""

import math
import operator
from datetime import date

import pytest

from rerating_mcp.utils.validators import (
    VALID_INTERVALS,
    FetchParams,
    check_abs_rule,
    check_rule,
    clamp,
    normalize_symbol,
    pct_change,
    round_half_up,
    round_or_none,
    safe_float,
)


class TestNormalizeSymbol:
    """Tests for normalize_symbol."""

    def test_uppercases_and_strips(self) -> None:
        assert normalize_symbol("  nvda ") == "NVDA"

    @pytest.mark.parametrize("symbol", ["^GSPC", "BRK-B", "RDS.A", "EURUSD=X"])
    def test_accepts_index_and_share_classes(self, symbol: str) -> None:
        assert normalize_symbol(symbol) == symbol

    @pytest.mark.parametrize("symbol", ["", "   ", "AAPL;DROP", "A B", "../etc"])
    def test_rejects_invalid(self, symbol: str) -> None:
        with pytest.raises(ValueError, match="Invalid symbol"):
            normalize_symbol(symbol)


class TestFetchParams:
    """Tests for FetchParams dataclass."""

    def test_symbol_normalization(self) -> None:
        """Test symbol is normalized to uppercase."""
        params = FetchParams(symbol="aapl", lookback_days=30, as_of=date(2025, 6, 30))
        assert params.symbol == "AAPL"

    def test_interval_normalization(self) -> None:
        """Test interval is normalized to lowercase."""
        params = FetchParams(symbol="AAPL", lookback_days=30, as_of=date(2025, 6, 30), interval="1D")
        assert params.interval == "1d"

    def test_invalid_interval_raises(self) -> None:
        """Test invalid interval raises ValueError."""
        with pytest.raises(ValueError, match="Invalid interval"):
            FetchParams(symbol="AAPL", lookback_days=30, as_of=date(2025, 6, 30), interval="5m")

    def test_non_positive_lookback_raises(self) -> None:
        with pytest.raises(ValueError, match="lookback_days"):
            FetchParams(symbol="AAPL", lookback_days=0, as_of=date(2025, 6, 30))

    def test_all_valid_intervals(self) -> None:
        """Test all valid intervals are accepted."""
        for interval in VALID_INTERVALS:
            params = FetchParams(symbol="AAPL", lookback_days=30, as_of=date(2025, 6, 30), interval=interval)
            assert params.interval == interval

    def test_start_date(self) -> None:
        params = FetchParams(symbol="AAPL", lookback_days=30, as_of=date(2025, 6, 30))
        assert params.start == date(2025, 5, 31)

    def test_to_yf_kwargs(self) -> None:
        """Test yfinance kwargs: end is exclusive so as_of is included."""
        params = FetchParams(symbol="AAPL", lookback_days=10, as_of=date(2025, 6, 30))
        kwargs = params.to_yf_kwargs()

        assert kwargs["tickers"] == "AAPL"
        assert kwargs["start"] == "2025-06-20"
        assert kwargs["end"] == "2025-07-01"
        assert kwargs["interval"] == "1d"
        assert kwargs["auto_adjust"] is True
        assert kwargs["progress"] is False

    def test_immutable(self) -> None:
        """Test FetchParams is immutable."""
        params = FetchParams(symbol="AAPL", lookback_days=30, as_of=date(2025, 6, 30))

        with pytest.raises(AttributeError):
            params.symbol = "NVDA"


class TestSafeFloat:
    """Tests for safe_float."""

    @pytest.mark.parametrize(
        "value,expected",
        [(1, 1.0), ("2.5", 2.5), (0, 0.0), (-3.25, -3.25)],
    )
    def test_converts(self, value: object, expected: float) -> None:
        assert safe_float(value) == expected

    @pytest.mark.parametrize("value", [None, True, "abc", math.nan, math.inf, -math.inf, [1]])
    def test_rejects(self, value: object) -> None:
        assert safe_float(value) is None


class TestPctChange:
    """Tests for pct_change."""

    def test_positive_base(self) -> None:
        assert pct_change(110.0, 100.0) == pytest.approx(10.0)

    def test_negative_base_uses_absolute_value(self) -> None:
        """-0.5 -> -0.25 is an improvement, so the change is positive."""
        assert pct_change(-0.25, -0.5) == pytest.approx(50.0)

    def test_zero_base_is_none(self) -> None:
        assert pct_change(1.0, 0.0) is None

    @pytest.mark.parametrize("current,base", [(None, 1.0), (1.0, None), (None, None)])
    def test_missing_side_is_none(self, current: float | None, base: float | None) -> None:
        assert pct_change(current, base) is None


class TestRounding:
    """Tests for half-up rounding helpers."""

    @pytest.mark.parametrize(
        "value,expected",
        [(2.5, 3), (3.5, 4), (-2.5, -2), (-2.6, -3), (0.49, 0), (7.0, 7)],
    )
    def test_round_half_up(self, value: float, expected: int) -> None:
        assert round_half_up(value) == expected

    def test_round_or_none_handles_zero(self) -> None:
        """Test zero is rounded, not treated as missing."""
        assert round_or_none(0.0) == 0.0

    def test_round_or_none_none(self) -> None:
        assert round_or_none(None) is None

    def test_round_or_none_precision(self) -> None:
        assert round_or_none(1.25, 1) == pytest.approx(1.3)
        assert round_or_none(12.345, 2) == pytest.approx(12.35)

    @pytest.mark.parametrize("value,expected", [(-5.0, 0.0), (5.0, 5.0), (50.0, 40.0)])
    def test_clamp(self, value: float, expected: float) -> None:
        assert clamp(value, 0, 40) == expected


class TestCheckRule:
    """Threshold rules behind the qualifying flags."""

    @pytest.mark.parametrize(
        "market_cap,expected",
        [(200e9, True), (199.9e9, False), (3e12, True), (None, False)],
    )
    def test_mega_cap_inclusive(self, market_cap: float | None, expected: bool) -> None:
        assert check_rule(market_cap, 200e9, operator.ge) is expected

    def test_negative_fcf_at_zero(self) -> None:
        """Test a zero FCF yield counts as non-positive."""
        assert check_rule(0.0, 0.0, operator.le) is True
        assert check_rule(0.1, 0.0, operator.le) is False

    def test_default_comparator_is_strict(self) -> None:
        assert check_rule(1.2, 1.2) is False
        assert check_rule(1.21, 1.2) is True

    @pytest.mark.parametrize(
        "value,expected",
        [(10.0, False), (10.01, True), (-10.01, True), (-10.0, False), (None, False)],
    )
    def test_check_abs_rule_strict(self, value: float | None, expected: bool) -> None:
        assert check_abs_rule(value, 10.0) is expected
