"""
Signal severity detectors.

Each detector reads one InstrumentState and returns a SignalScore or None.
Detectors are pure and independent; the minimum-severity floor is applied
by the selector after all of them have run.
"""

import math
from collections.abc import Callable

from rerating_mcp.engine.models import (
    Confidence,
    DivergenceEvidence,
    EstimateShiftEvidence,
    ForcedRepricingEvidence,
    InstrumentState,
    PositioningShiftEvidence,
    RiskChangeEvidence,
    SignalCategory,
    SignalScore,
    ValuationShiftEvidence,
    VolatilityEvidence,
)
from rerating_mcp.utils.validators import round_half_up

MIN_SEVERITY = 25
MAX_SEVERITY = 100

SUPER_MEGA_CAP_USD = 500e9
SUPER_MEGA_CAP_DAMPING = 0.7
REVISION_STD_FLOOR = 2.0

LARGE_REVISION_PCT = 20.0
DEFAULT_HIST_VOL = 30.0
MONTHS_PER_YEAR = 12
UNDERPERFORMANCE_PCT = -15.0

LEVERAGE_BREACH_ND = 3.0
ABNORMAL_VOL = 50.0
EXTREME_VOL = 60.0
HIGH_BETA = 1.5

Detector = Callable[[InstrumentState], SignalScore | None]


def _cap(severity: float) -> float:
    return min(float(MAX_SEVERITY), severity)


def _revision_tilt(state: InstrumentState) -> tuple[bool, bool]:
    """(revisions up, revisions down) using direction or a >2% move in either window."""
    eps_7d = state.revisions.eps_7d or 0.0
    eps_30d = state.revisions.eps_30d or 0.0
    direction = state.revisions.direction
    rev_up = direction == "up" or eps_7d > 2 or eps_30d > 2
    rev_down = direction == "down" or eps_7d < -2 or eps_30d < -2
    return rev_up, rev_down


def _price_tilt(state: InstrumentState) -> tuple[bool, bool]:
    """(price down, price up) with asymmetric -2% / +3% thresholds."""
    price_7d = state.price.change_7d or 0.0
    price_30d = state.price.change_30d or 0.0
    return price_7d < -2 or price_30d < -2, price_7d > 3 or price_30d > 3


def score_estimate_shift(state: InstrumentState) -> SignalScore | None:
    """
    Revision surprise normalized by the instrument's own revision volatility.

    A 10% revision on a volatile name is less surprising than the same
    move on a stable one.
    """
    eps_7d = state.revisions.eps_7d or 0.0
    eps_30d = state.revisions.eps_30d or 0.0
    if eps_7d == 0 and eps_30d == 0:
        return None

    magnitude = abs(eps_7d) * 2 + abs(eps_30d) * 1.2
    std_7d = state.revisions.std_dev_7d
    std_30d = state.revisions.std_dev_30d
    if std_7d is not None and std_30d is not None:
        effective_std = (std_7d + std_30d) / 2
    elif std_7d is not None:
        effective_std = std_7d
    elif std_30d is not None:
        effective_std = std_30d
    else:
        effective_std = REVISION_STD_FLOOR

    surprise = magnitude / max(REVISION_STD_FLOOR, effective_std)
    severity = min(MAX_SEVERITY, round_half_up(surprise * 25))

    if abs(eps_7d) > LARGE_REVISION_PCT or abs(eps_30d) > LARGE_REVISION_PCT:
        severity = min(MAX_SEVERITY, severity + 15)
    if state.revision_breadth.dispersion_trend == "narrowing":
        severity = min(MAX_SEVERITY, severity + 10)

    if (state.market_cap or 0) > SUPER_MEGA_CAP_USD:
        severity = round_half_up(severity * SUPER_MEGA_CAP_DAMPING)

    return SignalScore(
        category=SignalCategory.ESTIMATE_SHIFT,
        severity=severity,
        confidence=state.revision_breadth.conviction or Confidence.MEDIUM,
        evidence=EstimateShiftEvidence(
            eps_7d=eps_7d,
            eps_30d=eps_30d,
            direction=state.revisions.direction,
            std_dev_7d=std_7d,
            std_dev_30d=std_30d,
            surprise_score=surprise,
        ),
    )


def score_forced_repricing(state: InstrumentState) -> SignalScore | None:
    """
    Price move that matters: unusually large vs historical volatility,
    unaccompanied by revisions, or against the revision direction.
    """
    price_7d = state.price.change_7d or 0.0
    price_30d = state.price.change_30d or 0.0
    if price_7d == 0 and price_30d == 0:
        return None

    eps_7d = state.revisions.eps_7d or 0.0
    eps_30d = state.revisions.eps_30d or 0.0
    rev_up, rev_down = _revision_tilt(state)
    rev_flat = state.revisions.direction == "flat" and abs(eps_7d) <= 2 and abs(eps_30d) <= 2
    price_down, price_up = _price_tilt(state)

    hist_vol = state.volatility.historical_vol_30d
    if hist_vol is None:
        hist_vol = DEFAULT_HIST_VOL
    expected_30d = hist_vol / math.sqrt(MONTHS_PER_YEAR)
    unusual = abs(price_30d) > 2 * expected_30d

    against = (price_down and rev_up) or (price_up and rev_down)
    if not (unusual or rev_flat or against):
        return None

    severity = _cap(abs(price_30d) * 2 + abs(price_7d) * 3)
    if unusual:
        severity = _cap(severity + 15)
    vs_benchmark = state.relative_strength.vs_benchmark_30d or 0.0
    if vs_benchmark < UNDERPERFORMANCE_PCT:
        severity = _cap(severity + 10)

    return SignalScore(
        category=SignalCategory.FORCED_REPRICING,
        severity=round_half_up(severity),
        confidence=state.confidence,
        evidence=ForcedRepricingEvidence(
            price_7d=price_7d,
            price_30d=price_30d,
            vs_benchmark_30d=vs_benchmark,
            unusual_move=unusual,
            revisions_flat=rev_flat,
        ),
    )


def score_divergence(state: InstrumentState) -> SignalScore | None:
    """Price and revisions moving in opposite directions."""
    price_7d = state.price.change_7d or 0.0
    price_30d = state.price.change_30d or 0.0
    eps_7d = state.revisions.eps_7d or 0.0
    eps_30d = state.revisions.eps_30d or 0.0
    rev_up, rev_down = _revision_tilt(state)
    price_down, price_up = _price_tilt(state)

    if not ((price_down and rev_up) or (price_up and rev_down)):
        return None

    magnitude = min(30.0, abs(eps_7d) + abs(eps_30d) + abs(price_7d) + abs(price_30d))
    return SignalScore(
        category=SignalCategory.DIVERGENCE,
        severity=round_half_up(_cap(70 + magnitude * 0.5)),
        confidence=state.confidence,
        evidence=DivergenceEvidence(price_7d=price_7d, price_30d=price_30d, direction=state.revisions.direction),
    )


def score_risk_change(state: InstrumentState) -> SignalScore | None:
    """Additive risk events: leverage breach, downgrades, insider spike, earnings with negative revisions."""
    nd = state.structural_risk.nd_to_ebitda or 0.0
    leverage_breach = nd > LEVERAGE_BREACH_ND
    downgrades = state.flow_risk.downgrade_count
    downgrade_cluster = downgrades >= 2
    insider_spike = state.flow_risk.insider_spike
    earnings_negative = any(a.kind == "earnings_negative_revisions" for a in state.risk_alerts)

    severity = 0
    if leverage_breach:
        severity += 60
    if downgrade_cluster:
        severity += 40
    elif downgrades >= 1:
        severity += 20
    if insider_spike:
        severity += 30
    if earnings_negative:
        severity += 35
    severity = min(MAX_SEVERITY, severity)

    if severity == 0:
        return None

    return SignalScore(
        category=SignalCategory.RISK_CHANGE,
        severity=severity,
        confidence=state.confidence,
        evidence=RiskChangeEvidence(
            leverage_breach=leverage_breach,
            downgrade_cluster=downgrade_cluster,
            downgrade_count=downgrades,
            insider_spike=insider_spike,
            earnings_negative_revisions=earnings_negative,
        ),
    )


def score_valuation_shift(state: InstrumentState) -> SignalScore | None:
    """FCF yield jump or negative free cash flow."""
    change = state.valuation.fcf_yield_change or 0.0
    now = state.valuation.fcf_yield_now or 0.0
    negative_fcf = state.flags.negative_fcf

    severity = 0.0
    if abs(change) > 2:
        severity = _cap(40 + abs(change) * 10)
    if negative_fcf:
        severity = _cap(severity + 35)
    if severity == 0 and abs(change) > 1:
        severity = _cap(abs(change) * 15)

    if severity == 0:
        return None

    return SignalScore(
        category=SignalCategory.VALUATION_SHIFT,
        severity=round_half_up(severity),
        confidence=state.confidence,
        evidence=ValuationShiftEvidence(fcf_yield_change=change, fcf_yield_now=now, negative_fcf=negative_fcf),
    )


def score_positioning_shift(state: InstrumentState) -> SignalScore | None:
    """Short-interest or institutional-ownership change over 30 days."""
    short_change = state.short_interest.change_30d_pct or 0.0
    inst_change = state.institutional.change_30d_pp or 0.0
    if short_change == 0 and inst_change == 0:
        return None
    if not state.short_interest.data_available and not state.institutional.data_available:
        return None

    return SignalScore(
        category=SignalCategory.POSITIONING_SHIFT,
        severity=round_half_up(_cap(abs(short_change) * 2 + abs(inst_change) * 5)),
        confidence=Confidence.MEDIUM,
        evidence=PositioningShiftEvidence(short_change_30d=short_change, institutional_change_30d=inst_change),
    )


def score_volatility_event(state: InstrumentState) -> SignalScore | None:
    """Abnormal realized volatility (>50% annualized) on a high-beta or large-move name."""
    vol = state.volatility.historical_vol_30d or 0.0
    beta = state.volatility.beta if state.volatility.beta is not None else 1.0
    price_30d = state.price.change_30d or 0.0

    if vol < ABNORMAL_VOL:
        return None
    if beta < HIGH_BETA and abs(price_30d) < 25:
        return None

    severity = 0
    if vol > ABNORMAL_VOL:
        severity += 50
    if vol > EXTREME_VOL:
        severity += 20
    if abs(price_30d) > 30:
        severity += 20

    if severity == 0:
        return None

    return SignalScore(
        category=SignalCategory.VOLATILITY_EVENT,
        severity=min(MAX_SEVERITY, severity),
        confidence=state.confidence,
        evidence=VolatilityEvidence(historical_vol_30d=vol, beta=beta, price_30d=price_30d),
    )


# Tie-break order for equal severities: earlier wins
EVALUATION_ORDER: tuple[tuple[SignalCategory, Detector], ...] = (
    (SignalCategory.ESTIMATE_SHIFT, score_estimate_shift),
    (SignalCategory.FORCED_REPRICING, score_forced_repricing),
    (SignalCategory.DIVERGENCE, score_divergence),
    (SignalCategory.RISK_CHANGE, score_risk_change),
    (SignalCategory.VALUATION_SHIFT, score_valuation_shift),
    (SignalCategory.POSITIONING_SHIFT, score_positioning_shift),
    (SignalCategory.VOLATILITY_EVENT, score_volatility_event),
)


def run_detectors(state: InstrumentState) -> list[SignalScore]:
    """All non-null detector outputs, in evaluation order (floor not yet applied)."""
    return [signal for _, detect in EVALUATION_ORDER if (signal := detect(state)) is not None]
