"""Tests for the four scoring pillars, pulse, confidence, and flags."""

import pytest

from rerating_mcp.engine.models import Confidence, ThesisStatus
from rerating_mcp.engine.pillars import (
    compute_confidence,
    compute_flags,
    compute_pulse,
    eps_7d_score,
    eps_30d_score,
    ma_trend,
    revenue_30d_score,
    score_divergence,
    score_revisions,
    score_risk_change,
    score_valuation,
    signed_pct,
    thesis_status,
)


class TestRevisionsPillar:
    """Boundary tests for the revisions pillar components."""

    @pytest.mark.parametrize(
        "eps_7d,expected",
        [
            (None, 7.5),
            (0.5, 7.5),
            (-0.5, 7.5),
            (1.0, 10.0),
            (2.0, 11.0),
            (2.5, 12.5),
            (10.0, 15.0),
            (-1.0, 5.0),
            (-2.0, 4.0),
            (-3.0, 1.5),
            (-10.0, 0.0),
        ],
    )
    def test_eps_7d_score(self, eps_7d, expected) -> None:
        assert eps_7d_score(eps_7d) == pytest.approx(expected)

    @pytest.mark.parametrize(
        "eps_30d,expected",
        [
            (None, 5.0),
            (0.0, 5.0),
            (1.0, 6.0),
            (2.0, 6.0),
            (3.0, 8.0),
            (8.0, 10.0),
            (-1.0, 4.0),
            (-2.0, 4.0),
            (-4.0, 3.0),
            (-20.0, 0.0),
        ],
    )
    def test_eps_30d_score(self, eps_30d, expected) -> None:
        assert eps_30d_score(eps_30d) == pytest.approx(expected)

    @pytest.mark.parametrize(
        "revenue_30d,expected",
        [(None, 2.5), (1.0, 2.5), (-1.0, 2.5), (2.0, 3.5), (10.0, 5.0), (-2.0, 1.5), (-10.0, 0.0)],
    )
    def test_revenue_30d_score(self, revenue_30d, expected) -> None:
        assert revenue_30d_score(revenue_30d) == pytest.approx(expected)

    def test_neutral_total(self) -> None:
        """Test missing revisions give 7.5 + 5 + 2.5 + 5 = 20."""
        assert score_revisions(None, None, None, "flat") == 20

    def test_maximum(self) -> None:
        assert score_revisions(50.0, 50.0, 50.0, "up") == 40

    def test_minimum(self) -> None:
        assert score_revisions(-50.0, -50.0, -50.0, "down") == 0

    def test_half_rounds_up(self) -> None:
        # 12.5 + 8 + 2.5 + 10 = 33.0; 2.5 -> 12.5, 3 -> 8
        assert score_revisions(2.5, 3.0, None, "up") == 33
        # 10.0 + 6 + 2.5 + 10 = 28.5 -> 29
        assert score_revisions(1.0, 1.0, None, "up") == 29


class TestDivergencePillar:
    """Tests for the asymmetric divergence branches."""

    def test_no_price_data(self) -> None:
        result = score_divergence(None, 5.0, 5.0, "up")
        assert result.score == 10
        assert result.signal == "Neutral"
        assert result.explanation.lines == []

    def test_positive_divergence(self) -> None:
        result = score_divergence(-3.0, 1.0, 4.0, "up")
        assert result.score == 20
        assert result.signal == "Positive divergence"
        assert result.explanation.emoji == "🟢"
        assert result.explanation.lines == ["Price -3.0% (7d)", "EPS revisions +4.0% (30d)"]

    def test_positive_divergence_7d_only(self) -> None:
        result = score_divergence(-3.0, 1.0, None, "up")
        assert result.explanation.lines[1] == "EPS revisions +1.0% (7d)"

    def test_flat_revisions_falling_price(self) -> None:
        result = score_divergence(-2.5, 0.1, 0.2, "flat")
        assert result.score == 13
        assert result.signal == "Neutral"
        assert result.explanation.lines == ["Price -2.5% (7d)", "EPS revisions flat"]

    @pytest.mark.parametrize("price_7d,expected", [(0.5, 5), (3.0, 5), (3.1, 0)])
    def test_risk_divergence(self, price_7d, expected) -> None:
        result = score_divergence(price_7d, -2.0, -3.0, "down")
        assert result.score == expected
        assert result.signal == "Risk divergence"
        assert result.explanation.type == "Risk Divergence"

    def test_down_with_flat_price_is_neutral(self) -> None:
        result = score_divergence(0.0, -2.0, None, "down")
        assert result.score == 10
        assert result.signal == "Neutral"
        assert result.explanation.lines == ["Price +0.0% (7d)", "EPS revisions -2.0%"]

    def test_neutral_without_revisions(self) -> None:
        result = score_divergence(1.0, None, None, "flat")
        assert result.explanation.lines == ["Price +1.0% (7d)", "Direction: flat"]

    def test_price_exactly_minus_two_is_not_divergence(self) -> None:
        assert score_divergence(-2.0, 5.0, 5.0, "up").score == 10

    def test_signed_pct(self) -> None:
        assert signed_pct(0.0) == "+0.0%"
        assert signed_pct(-1.0) == "-1.0%"
        assert signed_pct(4.0) == "+4.0%"


class TestValuationPillar:
    """Tests for FCF-yield valuation compression."""

    @pytest.mark.parametrize(
        "change,now,direction,expected",
        [
            (None, None, "up", 12.0),
            (1.0, 5.0, "up", 15.0),
            (1.0, 5.0, "flat", 15.0),
            (1.0, 5.0, "down", 12.0),
            (10.0, 5.0, "up", 25.0),
            (-0.5, 5.0, "up", 12.0),
            (-1.0, 5.0, "up", 12.0),
            (-2.0, 5.0, "up", 8.0),
            (-10.0, 5.0, "up", 0.0),
            (2.0, 0.0, "up", 10.0),
            (None, -1.0, "flat", 10.0),
            (-2.0, -1.0, "flat", 8.0),
        ],
    )
    def test_score_valuation(self, change, now, direction, expected) -> None:
        assert score_valuation(change, now, direction) == pytest.approx(expected)

    def test_unrounded(self) -> None:
        assert score_valuation(0.25, 3.0, "up") == pytest.approx(12.75)


class TestRiskChangePillar:
    """Tests for the flow-driven risk pillar."""

    @pytest.mark.parametrize("flow,expected", [(0, 8), (-3, 5), (-6, 2), (-10, 0), (10, 15)])
    def test_score_risk_change(self, flow, expected) -> None:
        assert score_risk_change(flow) == expected


class TestPulseAndThesis:
    """Tests for pulse mapping and thesis thresholds."""

    @pytest.mark.parametrize(
        "total,expected",
        [(50, 0), (75, 5), (74, 5), (72.4, 4), (25, -5), (0, -10), (100, 10), (110, 10), (52.5, 1)],
    )
    def test_compute_pulse(self, total, expected) -> None:
        assert compute_pulse(total) == expected

    @pytest.mark.parametrize(
        "pulse,expected",
        [
            (5, ThesisStatus.IMPROVING),
            (4, ThesisStatus.STABLE),
            (-4, ThesisStatus.STABLE),
            (-5, ThesisStatus.DETERIORATING),
            (10, ThesisStatus.IMPROVING),
        ],
    )
    def test_thesis_status(self, pulse, expected) -> None:
        assert thesis_status(pulse) == expected


class TestConfidence:
    """Tests for confidence from thesis and long-term momentum."""

    @pytest.mark.parametrize(
        "status,trend,nd,vol_alert,expected",
        [
            (ThesisStatus.IMPROVING, "above", 1.0, False, Confidence.HIGH),
            (ThesisStatus.IMPROVING, "above", 5.5, False, Confidence.MEDIUM),
            (ThesisStatus.IMPROVING, "above", None, True, Confidence.MEDIUM),
            (ThesisStatus.IMPROVING, "below", 1.0, False, Confidence.MEDIUM),
            (ThesisStatus.DETERIORATING, "below", 1.0, False, Confidence.LOW),
            (ThesisStatus.DETERIORATING, "below", 1.0, True, Confidence.LOW),
            (ThesisStatus.DETERIORATING, "above", 1.0, False, Confidence.MEDIUM),
            (ThesisStatus.STABLE, "above", 1.0, False, Confidence.MEDIUM),
            (ThesisStatus.IMPROVING, None, 1.0, False, Confidence.MEDIUM),
        ],
    )
    def test_compute_confidence(self, status, trend, nd, vol_alert, expected) -> None:
        assert compute_confidence(status, trend, nd, vol_alert) == expected

    def test_ma_trend(self) -> None:
        assert ma_trend(5.0, 2.0) == "above"
        assert ma_trend(2.0, 2.0) == "below"
        assert ma_trend(None, 2.0) is None


class TestQualifyingFlags:
    """Threshold tests for qualifying flags."""

    def test_all_missing_never_qualifies(self) -> None:
        flags = compute_flags(None, None, None, None, None, None)
        assert not any(vars(flags).values())

    @pytest.mark.parametrize("eps_7d,magnitude,major", [(10.0, False, False), (10.1, True, False), (-20.1, True, True)])
    def test_revision_flags(self, eps_7d, magnitude, major) -> None:
        flags = compute_flags(eps_7d, 2.0, None, None, None, None)
        assert flags.revision_magnitude is magnitude
        assert flags.major_recalibration is major

    def test_unusual_spike_needs_mega_cap(self) -> None:
        assert compute_flags(12.0, 2.0, None, 200e9, None, None).unusual_revision_spike is True
        assert compute_flags(12.0, 2.0, None, 199e9, None, None).unusual_revision_spike is False

    def test_reliability_warning(self) -> None:
        assert compute_flags(60.0, 0.05, None, None, None, None).revision_reliability_warning is True
        assert compute_flags(60.0, 0.10, None, None, None, None).revision_reliability_warning is False
        assert compute_flags(50.0, 0.05, None, None, None, None).revision_reliability_warning is False

    @pytest.mark.parametrize("price_30d,alert,uncertain", [(20.0, False, False), (-21.0, True, False), (31.0, True, True)])
    def test_price_flags(self, price_30d, alert, uncertain) -> None:
        flags = compute_flags(None, None, price_30d, None, None, None)
        assert flags.volatility_alert is alert
        assert flags.uncertainty_elevated is uncertain

    def test_negative_fcf_includes_zero(self) -> None:
        assert compute_flags(None, None, None, None, 0.0, None).negative_fcf is True
        assert compute_flags(None, None, None, None, 0.1, None).negative_fcf is False

    def test_volatility_exceeds_beta(self) -> None:
        assert compute_flags(None, None, 25.0, None, None, 1.1).volatility_exceeds_beta is True
        assert compute_flags(None, None, 25.0, None, None, 1.2).volatility_exceeds_beta is False
        assert compute_flags(None, None, 25.0, None, None, None).volatility_exceeds_beta is False

    def test_high_uncertainty_temper(self) -> None:
        flags = compute_flags(None, None, -25.0, None, -1.0, 1.0)
        assert flags.high_uncertainty_temper_confidence is True
        assert compute_flags(None, None, -5.0, None, -1.0, 1.0).high_uncertainty_temper_confidence is False

    def test_cyclical_passthrough(self) -> None:
        assert compute_flags(None, None, None, None, None, None, cyclical=True).cyclical_sector is True
