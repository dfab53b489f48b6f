"""Tests for earnings recap construction and relevance."""

from datetime import date

import pytest

from conftest import AS_OF
from rerating_mcp.engine.models import EarningsEvent, EarningsRecap
from rerating_mcp.engine.recap import (
    build_earnings_recap,
    earnings_recap_relevance,
    earnings_upcoming,
    market_reaction_pct,
    quarter_label,
)
from rerating_mcp.utils.ohlcv import empty_prices, prices_from_rows


def _recap(report_date: str) -> EarningsRecap:
    return EarningsRecap("Q2 FY2025", report_date, 1.1, 1.0, 10.0, None, "")


class TestBuildEarningsRecap:
    """Tests for the last reported quarter."""

    def test_picks_latest_reported_event(self) -> None:
        events = [
            EarningsEvent("2025-07-30", eps_estimate=1.3),
            EarningsEvent("2025-04-28", eps_estimate=1.0, eps_actual=1.1),
            EarningsEvent("2025-01-27", eps_estimate=0.9, eps_actual=0.8),
        ]
        prices = prices_from_rows(
            [
                ("2025-04-28", 100.0, 1),
                ("2025-04-29", 102.0, 1),
                ("2025-04-30", 103.0, 1),
                ("2025-05-01", 105.0, 1),
                ("2025-05-02", 90.0, 1),
            ]
        )
        recap = build_earnings_recap(events, prices, AS_OF)

        assert recap.report_date == "2025-04-28"
        assert recap.quarter == "Q2 FY2025"
        assert recap.eps_beat_pct == pytest.approx(10.0)
        assert recap.market_reaction_pct == pytest.approx(5.0)
        assert recap.narrative == "The company delivered an earnings beat."

    def test_ignores_reports_after_as_of(self) -> None:
        events = [EarningsEvent("2025-07-30", 1.0, 1.2), EarningsEvent("2025-04-28", 1.0, 0.9)]
        recap = build_earnings_recap(events, empty_prices(), AS_OF)

        assert recap.report_date == "2025-04-28"
        assert recap.narrative == "The company missed expectations."
        assert recap.market_reaction_pct is None

    def test_in_line(self) -> None:
        recap = build_earnings_recap([EarningsEvent("2025-04-28", 1.0, 1.01)], empty_prices(), AS_OF)
        assert recap.narrative == "Results were roughly in line with expectations."

    def test_no_estimate(self) -> None:
        recap = build_earnings_recap([EarningsEvent("2025-04-28", None, 1.01)], empty_prices(), AS_OF)
        assert recap.eps_beat_pct is None
        assert recap.narrative == "Last quarter results are available."

    def test_nothing_reported(self) -> None:
        assert build_earnings_recap([EarningsEvent("2025-07-30", 1.0)], empty_prices(), AS_OF) is None


class TestMarketReaction:
    def test_short_window_uses_last_session(self) -> None:
        prices = prices_from_rows([("2025-04-28", 100.0, 1), ("2025-04-29", 97.0, 1)])
        assert market_reaction_pct(prices, "2025-04-28") == pytest.approx(-3.0)

    def test_single_session(self) -> None:
        prices = prices_from_rows([("2025-04-28", 100.0, 1)])
        assert market_reaction_pct(prices, "2025-04-28") is None


class TestQuarterLabel:
    @pytest.mark.parametrize(
        "report_date,label",
        [("2025-01-30", "Q1 FY2025"), ("2025-04-01", "Q2 FY2025"), ("2025-12-31", "Q4 FY2025")],
    )
    def test_calendar_quarter(self, report_date, label) -> None:
        assert quarter_label(report_date) == label


class TestRecapRelevance:
    """Tests for when a recap is shown."""

    @pytest.mark.parametrize("report_date,days", [("2025-06-30", 0), ("2025-06-23", 7)])
    def test_within_week(self, report_date, days) -> None:
        relevance = earnings_recap_relevance(_recap(report_date), AS_OF, False, False)
        assert relevance.should_show is True
        assert relevance.reason == "within_7d"
        assert relevance.days_since_earnings == days

    def test_revision_spike_after_earnings(self) -> None:
        relevance = earnings_recap_relevance(_recap("2025-06-10"), AS_OF, True, True)
        assert relevance.should_show is True
        assert relevance.reason == "revision_spike_post_earnings"

    def test_price_move_after_earnings(self) -> None:
        relevance = earnings_recap_relevance(_recap("2025-06-10"), AS_OF, False, True)
        assert relevance.reason == "price_move_post_earnings"

    def test_stale_without_trigger(self) -> None:
        relevance = earnings_recap_relevance(_recap("2025-06-10"), AS_OF, False, False)
        assert relevance.should_show is False
        assert relevance.reason == "stale"

    def test_stale_after_thirty_days(self) -> None:
        relevance = earnings_recap_relevance(_recap("2025-05-30"), AS_OF, True, True)
        assert relevance.should_show is False
        assert relevance.days_since_earnings == 31


class TestEarningsUpcoming:
    def test_window_is_inclusive(self) -> None:
        events = [EarningsEvent("2025-07-14")]
        assert earnings_upcoming(events, AS_OF, 14) is True
        assert earnings_upcoming(events, AS_OF, 13) is False

    def test_past_events_do_not_count(self) -> None:
        assert earnings_upcoming([EarningsEvent("2025-06-29")], AS_OF, 14) is False

    def test_today_counts(self) -> None:
        assert earnings_upcoming([EarningsEvent(AS_OF.isoformat())], AS_OF, 7) is True

    def test_no_events(self) -> None:
        assert earnings_upcoming([], date(2025, 6, 30), 14) is False
