"""Four bounded scoring pillars, daily pulse, thesis status, and confidence."""

from dataclasses import dataclass

from rerating_mcp.engine.models import (
    Confidence,
    DivergenceSignal,
    QualifyingFlags,
    RevisionDirection,
    SignalExplanation,
    ThesisStatus,
)
from rerating_mcp.utils.validators import check_abs_rule, clamp, round_half_up

# Pillar bounds
REVISIONS_MAX = 40
VALUATION_MAX = 25
RISK_CHANGE_MAX = 15

NEUTRAL_TOTAL = 20 + 12 + 10 + 8
PULSE_BOUND = 10
THESIS_THRESHOLD = 5

NEUTRAL_EPS_7D = 7.5
NEUTRAL_EPS_30D = 5.0
NEUTRAL_REVENUE_30D = 2.5
DIRECTIONAL_SCORES = {"up": 10, "flat": 5, "down": 0}

NEUTRAL_DIVERGENCE = 10
NEUTRAL_VALUATION = 12.0
NEUTRAL_RISK_CHANGE = 8
NEGATIVE_FCF_VALUATION_CAP = 10.0

HIGH_LEVERAGE_ND = 5.0

# Qualifying flag thresholds
REVISION_MAGNITUDE_PCT = 10.0
MAJOR_RECALIBRATION_PCT = 20.0
MEGA_CAP_USD = 200e9
RELIABILITY_PRIOR_EPS = 0.1
RELIABILITY_EPS_7D_PCT = 50.0
VOLATILITY_ALERT_PCT = 20.0
UNCERTAINTY_ELEVATED_PCT = 30.0
LOW_BETA = 1.2

_EMOJI = {"positive": "🟢", "neutral": "🟡", "risk": "🔴"}


# ============================================================================
# PILLAR 1: REVISIONS (0-40)
# ============================================================================


def eps_7d_score(eps_7d: float | None) -> float:
    if eps_7d is None:
        return NEUTRAL_EPS_7D
    if eps_7d > 2:
        return min(15.0, 7.5 + eps_7d * 2)
    if eps_7d > 0.5:
        return 9 + eps_7d
    if eps_7d < -2:
        return max(0.0, 7.5 + eps_7d * 2)
    if eps_7d < -0.5:
        return 6 + eps_7d
    return NEUTRAL_EPS_7D


def eps_30d_score(eps_30d: float | None) -> float:
    if eps_30d is None:
        return NEUTRAL_EPS_30D
    if eps_30d > 2:
        return min(10.0, 5 + eps_30d)
    if eps_30d > 0.5:
        return 6.0
    if eps_30d < -2:
        return max(0.0, 5 + eps_30d * 0.5)
    if eps_30d < -0.5:
        return 4.0
    return NEUTRAL_EPS_30D


def revenue_30d_score(revenue_30d: float | None) -> float:
    if revenue_30d is None:
        return NEUTRAL_REVENUE_30D
    if revenue_30d > 1:
        return min(5.0, 2.5 + revenue_30d * 0.5)
    if revenue_30d < -1:
        return max(0.0, 2.5 + revenue_30d * 0.5)
    return NEUTRAL_REVENUE_30D


def score_revisions(
    eps_7d: float | None,
    eps_30d: float | None,
    revenue_30d: float | None,
    direction: RevisionDirection,
) -> int:
    """Earnings and estimate movement pillar, 0-40."""
    total = (
        eps_7d_score(eps_7d)
        + eps_30d_score(eps_30d)
        + revenue_30d_score(revenue_30d)
        + DIRECTIONAL_SCORES[direction]
    )
    return round_half_up(clamp(total, 0, REVISIONS_MAX))


# ============================================================================
# PILLAR 2: PRICE VS FUNDAMENTALS DIVERGENCE (0-20)
# ============================================================================


@dataclass
class DivergenceResult:
    score: int
    signal: DivergenceSignal
    explanation: SignalExplanation


def signed_pct(value: float) -> str:
    """Format as +x.x% / -x.x% (zero gets a plus sign)."""
    return f"{'+' if value >= 0 else ''}{value:.1f}%"


def score_divergence(
    price_7d: float | None,
    eps_7d: float | None,
    eps_30d: float | None,
    direction: RevisionDirection,
) -> DivergenceResult:
    """
    Asymmetric divergence between price and estimate revisions.

    Falling price against rising estimates scores highest; rising price
    against falling estimates scores lowest. Branch order matters.
    """
    if price_7d is None:
        return DivergenceResult(NEUTRAL_DIVERGENCE, "Neutral", SignalExplanation("Neutral", _EMOJI["neutral"], []))

    price_line = f"Price {signed_pct(price_7d)} (7d)"
    if eps_30d is not None:
        eps_rev = signed_pct(eps_30d)
    elif eps_7d is not None:
        eps_rev = signed_pct(eps_7d)
    else:
        eps_rev = None

    if direction == "up" and price_7d < -2:
        window = "30d" if eps_30d is not None else "7d"
        return DivergenceResult(
            20,
            "Positive divergence",
            SignalExplanation(
                "Positive Divergence",
                _EMOJI["positive"],
                [price_line, f"EPS revisions {eps_rev} ({window})" if eps_rev else "EPS revisions up"],
            ),
        )

    if direction == "flat" and price_7d < -2:
        return DivergenceResult(
            13,
            "Neutral",
            SignalExplanation("Neutral", _EMOJI["neutral"], [price_line, "EPS revisions flat"]),
        )

    if direction == "down" and price_7d > 0:
        return DivergenceResult(
            0 if price_7d > 3 else 5,
            "Risk divergence",
            SignalExplanation(
                "Risk Divergence",
                _EMOJI["risk"],
                [price_line, f"EPS revisions {eps_rev} (30d)" if eps_rev else "EPS revisions down"],
            ),
        )

    return DivergenceResult(
        NEUTRAL_DIVERGENCE,
        "Neutral",
        SignalExplanation(
            "Neutral",
            _EMOJI["neutral"],
            [price_line, f"EPS revisions {eps_rev}" if eps_rev else f"Direction: {direction}"],
        ),
    )


# ============================================================================
# PILLAR 3: VALUATION COMPRESSION (0-25)
# ============================================================================


def score_valuation(
    fcf_yield_change: float | None,
    fcf_yield_now: float | None,
    direction: RevisionDirection,
) -> float:
    """
    FCF-yield expansion pillar, 0-25. Unrounded; the pulse uses the raw value.
    """
    score = NEUTRAL_VALUATION
    if fcf_yield_change is not None:
        if fcf_yield_change > 0:
            if direction in ("up", "flat"):
                score = min(float(VALUATION_MAX), NEUTRAL_VALUATION + fcf_yield_change * 3)
        elif fcf_yield_change < -1:
            score = max(0.0, NEUTRAL_VALUATION + fcf_yield_change * 2)
    if fcf_yield_now is not None and fcf_yield_now <= 0:
        score = min(NEGATIVE_FCF_VALUATION_CAP, score)
    return score


# ============================================================================
# PILLAR 4: RISK CHANGE (0-15)
# ============================================================================


def score_risk_change(flow_score: int) -> int:
    """Neutral 8 plus flow risk only; structural leverage stays out of the daily pulse."""
    return int(clamp(NEUTRAL_RISK_CHANGE + flow_score, 0, RISK_CHANGE_MAX))


# ============================================================================
# PULSE, THESIS, CONFIDENCE
# ============================================================================


def compute_pulse(pillar_total: float) -> int:
    """Map the pillar total onto -10..+10 around the neutral total of 50."""
    return round_half_up(clamp((pillar_total - NEUTRAL_TOTAL) / 5, -PULSE_BOUND, PULSE_BOUND))


def thesis_status(pulse: int) -> ThesisStatus:
    if pulse >= THESIS_THRESHOLD:
        return ThesisStatus.IMPROVING
    if pulse <= -THESIS_THRESHOLD:
        return ThesisStatus.DETERIORATING
    return ThesisStatus.STABLE


def ma_trend(price_50d: float | None, price_200d: float | None) -> str | None:
    """'above' when the 50-day change beats the 200-day change, None if either is missing."""
    if price_50d is None or price_200d is None:
        return None
    return "above" if price_50d > price_200d else "below"


def compute_confidence(
    status: ThesisStatus,
    trend: str | None,
    nd_to_ebitda: float | None,
    volatility_alert: bool,
) -> Confidence:
    """Confidence from thesis direction and long-term momentum context."""
    confidence = Confidence.MEDIUM
    if status == ThesisStatus.IMPROVING and trend == "above":
        high_leverage = nd_to_ebitda is not None and nd_to_ebitda > HIGH_LEVERAGE_ND
        confidence = Confidence.MEDIUM if high_leverage else Confidence.HIGH
    elif status == ThesisStatus.DETERIORATING and trend == "below":
        confidence = Confidence.LOW

    if volatility_alert and confidence == Confidence.HIGH:
        confidence = Confidence.MEDIUM
    return confidence


def compute_flags(
    eps_7d: float | None,
    prior_eps_7d: float | None,
    price_30d: float | None,
    market_cap: float | None,
    fcf_yield_now: float | None,
    beta: float | None,
    cyclical: bool = False,
) -> QualifyingFlags:
    """Boolean qualifiers consumed by detectors and card rendering. Missing inputs never qualify."""
    magnitude = check_abs_rule(eps_7d, REVISION_MAGNITUDE_PCT)
    mega_cap = market_cap is not None and market_cap >= MEGA_CAP_USD
    volatility_alert = check_abs_rule(price_30d, VOLATILITY_ALERT_PCT)
    uncertainty = check_abs_rule(price_30d, UNCERTAINTY_ELEVATED_PCT)
    reliability = (
        prior_eps_7d is not None
        and abs(prior_eps_7d) < RELIABILITY_PRIOR_EPS
        and check_abs_rule(eps_7d, RELIABILITY_EPS_7D_PCT)
    )
    negative_fcf = fcf_yield_now is not None and fcf_yield_now <= 0

    return QualifyingFlags(
        revision_magnitude=magnitude,
        major_recalibration=check_abs_rule(eps_7d, MAJOR_RECALIBRATION_PCT),
        mega_cap=mega_cap,
        unusual_revision_spike=magnitude and mega_cap,
        revision_reliability_warning=reliability,
        volatility_alert=volatility_alert,
        uncertainty_elevated=uncertainty,
        negative_fcf=negative_fcf,
        volatility_exceeds_beta=volatility_alert and beta is not None and beta < LOW_BETA,
        high_uncertainty_temper_confidence=(reliability or negative_fcf) and (volatility_alert or uncertainty),
        cyclical_sector=cyclical,
    )
