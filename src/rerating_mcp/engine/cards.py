"""Render the dominant signal into a user-facing primary card."""

from collections.abc import Callable

from rerating_mcp.engine.models import (
    Confidence,
    DivergenceEvidence,
    EstimateShiftEvidence,
    ForcedRepricingEvidence,
    InstrumentState,
    PositioningShiftEvidence,
    PrimaryCard,
    RiskChangeEvidence,
    SignalCategory,
    SignalScore,
    Tone,
    ValuationShiftEvidence,
    VolatilityEvidence,
)
from rerating_mcp.engine.pillars import signed_pct
from rerating_mcp.engine.selector import dominant_signal
from rerating_mcp.utils.validators import round_half_up

HIGH_DISPERSION_PCT = 35.0


def _card(
    state: InstrumentState,
    signal: SignalScore,
    title: str,
    summary: str,
    key_metric: str,
    tone: Tone,
    confidence_note: str | None = None,
) -> PrimaryCard:
    return PrimaryCard(
        symbol=state.symbol,
        category=signal.category,
        title=title,
        summary=summary,
        key_metric=key_metric,
        tone=tone,
        severity=signal.severity,
        confidence_note=confidence_note,
    )


def _render_estimate_shift(state: InstrumentState, signal: SignalScore) -> PrimaryCard:
    evidence = signal.evidence
    assert isinstance(evidence, EstimateShiftEvidence)
    eps_7d, eps_30d = evidence.eps_7d, evidence.eps_30d

    rev_up = evidence.direction == "up" or eps_7d > 0 or eps_30d > 0
    tone = Tone.BULLISH if rev_up else Tone.BEARISH
    if abs(eps_7d) >= abs(eps_30d):
        primary, period = eps_7d, "7d"
    else:
        primary, period = eps_30d, "30d"

    if state.flags.major_recalibration:
        title = "Major Estimate Recalibration"
    elif abs(primary) > 15:
        title = "Significant Estimate Revision"
    elif abs(primary) > 10:
        title = "Upward Estimate Trend"
    else:
        title = "Estimate Shift"

    eps_now = state.revisions.eps_now
    prior = state.revisions.prior_eps
    if eps_now is not None and prior is not None and prior != 0:
        pct = (eps_now - prior) / abs(prior) * 100
        tail = " in 7 days." if period == "7d" else "."
        summary = f"EPS revised from ${prior:.2f} → ${eps_now:.2f} ({signed_pct(pct)}){tail}"
    else:
        verb = "raised" if rev_up else "cut"
        if abs(primary) > 20:
            when = " this week." if period == "7d" else " over the month."
            summary = f"Analysts {verb} EPS {round_half_up(abs(primary))}%{when}"
        else:
            summary = f"Analysts {verb} earnings expectations by {abs(primary):.1f}%."

    breadth = state.revision_breadth
    confidence_note = None
    if breadth.dispersion_pct is not None and breadth.dispersion_pct > HIGH_DISPERSION_PCT:
        confidence_note = "Confidence: Medium (Dispersion high)"
    elif breadth.conviction == Confidence.LOW:
        confidence_note = "Revision broad but not unanimous."

    return _card(state, signal, title, summary, f"{signed_pct(primary)} EPS ({period})", tone, confidence_note)


def _render_forced_repricing(state: InstrumentState, signal: SignalScore) -> PrimaryCard:
    evidence = signal.evidence
    assert isinstance(evidence, ForcedRepricingEvidence)
    if abs(evidence.price_30d) >= abs(evidence.price_7d):
        move, period = evidence.price_30d, "30d"
    else:
        move, period = evidence.price_7d, "7d"

    tone = Tone.BULLISH if move > 5 else Tone.BEARISH if move < -5 else Tone.NEUTRAL
    moved = f"Price moved {signed_pct(move)}"
    if evidence.unusual_move:
        title = "Forced Repricing (Unusual Move)"
        summary = f"{moved}, more than 2x historical volatility."
    elif evidence.revisions_flat:
        title = "Forced Repricing (No Revision Change)"
        summary = f"{moved} with no revision change."
    else:
        title = "Forced Repricing"
        summary = f"{moved} against revision trend."
    return _card(state, signal, title, summary, f"{signed_pct(move)} ({period})", tone)


def _render_divergence(state: InstrumentState, signal: SignalScore) -> PrimaryCard:
    evidence = signal.evidence
    assert isinstance(evidence, DivergenceEvidence)
    price_7d, price_30d = evidence.price_7d, evidence.price_30d
    eps_7d = state.revisions.eps_7d or 0.0
    eps_30d = state.revisions.eps_30d or 0.0

    price_down = price_7d < -2 or price_30d < -2
    bullish = price_down and (evidence.direction == "up" or eps_7d > 0)
    price_move = price_30d if abs(price_30d) >= abs(price_7d) else price_7d
    rev_move = eps_30d if abs(eps_30d) >= abs(eps_7d) else eps_7d

    if bullish:
        trend = "improved" if rev_move >= 0 else "deteriorated"
        return _card(
            state,
            signal,
            "Price Weakness vs Rising Estimates",
            f"Price {signed_pct(price_move)} while EPS revisions {trend} {signed_pct(rev_move)}.",
            "Price down / Revisions up",
            Tone.BULLISH,
        )
    trend = "rising" if rev_move >= 0 else "falling"
    return _card(
        state,
        signal,
        "Price Strength vs Falling Estimates",
        f"Price {signed_pct(price_move)} despite {trend} EPS revisions.",
        "Price up / Revisions down",
        Tone.BEARISH,
    )


def _render_risk_change(state: InstrumentState, signal: SignalScore) -> PrimaryCard:
    evidence = signal.evidence
    assert isinstance(evidence, RiskChangeEvidence)
    parts: list[str] = []
    if evidence.leverage_breach:
        parts.append("elevated leverage")
    if evidence.downgrade_cluster:
        parts.append("analyst downgrades")
    if evidence.insider_spike:
        parts.append("insider selling")
    if evidence.earnings_negative_revisions:
        parts.append("earnings + negative revisions")

    title = "Multiple Risk Factors" if len(parts) > 1 else "Risk Change"
    key_metric = "; ".join(parts[:2]) or "Risk elevated"
    return _card(state, signal, title, f"Risk elevated: {', '.join(parts)}.", key_metric, Tone.BEARISH)


def _render_valuation_shift(state: InstrumentState, signal: SignalScore) -> PrimaryCard:
    evidence = signal.evidence
    assert isinstance(evidence, ValuationShiftEvidence)
    change, negative = evidence.fcf_yield_change, evidence.negative_fcf

    if change > 1 and not negative:
        tone = Tone.BULLISH
    elif negative or change < -1:
        tone = Tone.BEARISH
    else:
        tone = Tone.NEUTRAL

    if negative:
        return _card(state, signal, "Negative FCF", "Company flipped to negative free cash flow.", "Negative FCF", tone)
    pp = f"{'+' if change >= 0 else ''}{change:.1f}pp"
    return _card(state, signal, "Valuation Shift", f"FCF yield changed {pp}.", f"{pp} FCF yield", tone)


def _render_positioning_shift(state: InstrumentState, signal: SignalScore) -> PrimaryCard:
    assert isinstance(signal.evidence, PositioningShiftEvidence)
    return _card(
        state,
        signal,
        "Positioning Shift",
        "Notable change in short interest or institutional ownership.",
        "Short / institutional change",
        Tone.NEUTRAL,
    )


def _render_volatility_event(state: InstrumentState, signal: SignalScore) -> PrimaryCard:
    evidence = signal.evidence
    assert isinstance(evidence, VolatilityEvidence)
    vol, beta = evidence.historical_vol_30d, evidence.beta
    title = "High Volatility" if vol > 30 else "Volatility Event"
    if vol > 0:
        key_metric = f"30d vol {vol:.1f}%"
        summary = f"Elevated volatility: {round_half_up(vol)}% 30d historical vol."
    else:
        key_metric = f"Beta {beta:g}x"
        summary = f"Elevated volatility: beta {beta:g}x."
    return _card(state, signal, title, summary, key_metric, Tone.NEUTRAL)


_RENDERERS: dict[SignalCategory, Callable[[InstrumentState, SignalScore], PrimaryCard]] = {
    SignalCategory.ESTIMATE_SHIFT: _render_estimate_shift,
    SignalCategory.FORCED_REPRICING: _render_forced_repricing,
    SignalCategory.DIVERGENCE: _render_divergence,
    SignalCategory.RISK_CHANGE: _render_risk_change,
    SignalCategory.VALUATION_SHIFT: _render_valuation_shift,
    SignalCategory.POSITIONING_SHIFT: _render_positioning_shift,
    SignalCategory.VOLATILITY_EVENT: _render_volatility_event,
}

if set(_RENDERERS) != set(SignalCategory):
    raise RuntimeError(f"Missing card renderers: {set(SignalCategory) - set(_RENDERERS)}")


def render_card(state: InstrumentState, signal: SignalScore) -> PrimaryCard:
    """
    Render one signal into a card.

    The earnings recap is attached only when it is flagged relevant.
    """
    card = _RENDERERS[signal.category](state, signal)
    if state.earnings_recap is not None and state.earnings_recap.should_show:
        card.earnings_recap = state.earnings_recap
    return card


def build_primary_card(state: InstrumentState) -> PrimaryCard | None:
    """Card for the dominant signal, or None when the instrument is silent today."""
    signal = dominant_signal(state)
    if signal is None:
        return None
    return render_card(state, signal)
