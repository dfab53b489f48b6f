"""Assemble the full daily InstrumentState from resolved inputs."""

import logging
from datetime import date

from rerating_mcp.data.snapshot_store import SnapshotStore
from rerating_mcp.engine import pillars, positioning, recap, revisions, risk
from rerating_mcp.engine.models import (
    InstrumentInputs,
    InstrumentState,
    Pillars,
    PriceMoves,
    RelativeStrength,
    Revisions,
    ValuationMoves,
    Volatility,
)
from rerating_mcp.engine.setup import build_setup_context
from rerating_mcp.utils.indicators import annualized_vol_30d, price_change_pct, relative_strength
from rerating_mcp.utils.validators import round_half_up, round_or_none

logger = logging.getLogger(__name__)

EARNINGS_CARD_WINDOW_DAYS = 7


def _price_moves(inputs: InstrumentInputs, as_of: date) -> tuple[PriceMoves, RelativeStrength]:
    change_7d = price_change_pct(inputs.prices, 7, as_of)
    change_30d = price_change_pct(inputs.prices, 30, as_of)
    bench_7d = price_change_pct(inputs.benchmark_prices, 7, as_of)
    bench_30d = price_change_pct(inputs.benchmark_prices, 30, as_of)
    return (
        PriceMoves(change_7d=change_7d, change_30d=change_30d),
        RelativeStrength(
            vs_benchmark_7d=relative_strength(change_7d, bench_7d),
            vs_benchmark_30d=relative_strength(change_30d, bench_30d),
        ),
    )


def build_instrument_state(
    inputs: InstrumentInputs,
    store: SnapshotStore,
    as_of: date,
) -> InstrumentState:
    """
    Run the daily computation for one instrument.

    Writes today's estimate, short-interest and institutional snapshots to
    the store as a side effect. Missing inputs degrade to neutral scores.

    Args:
        inputs: Resolved market data for the instrument
        store: Snapshot store holding the per-instrument history
        as_of: Anchor date of the run

    Returns:
        InstrumentState with pillars, pulse, risk and all derived context
    """
    symbol = inputs.symbol
    next_fy = inputs.next_fy

    # Revisions
    deltas = revisions.resolve_revision_deltas(store, symbol, next_fy, inputs.prior_fy, as_of)
    eps_7d, eps_30d, revenue_30d = deltas.eps_7d_pct, deltas.eps_30d_pct, deltas.revenue_30d_pct
    direction = revisions.revision_direction(eps_7d, eps_30d)
    history = store.load_estimate_snapshots(symbol, max_days=revisions.STD_WINDOW_SNAPSHOTS)
    std_7d, std_30d = revisions.compute_revision_std_dev(history)

    eps_now = next_fy.eps_avg if next_fy else None
    prior_eps = deltas.prior_eps_7d
    if prior_eps is None and inputs.prior_fy is not None:
        prior_eps = inputs.prior_fy.eps_avg

    # Price, benchmark, valuation
    price, rel_strength = _price_moves(inputs, as_of)
    fcf_change = None
    if inputs.fcf_yield_now is not None and inputs.fcf_yield_prior is not None:
        fcf_change = inputs.fcf_yield_now - inputs.fcf_yield_prior

    # Pillars 1-3
    revisions_score = pillars.score_revisions(eps_7d, eps_30d, revenue_30d, direction)
    divergence = pillars.score_divergence(price.change_7d, eps_7d, eps_30d, direction)
    valuation_score = pillars.score_valuation(fcf_change, inputs.fcf_yield_now, direction)

    # Risk
    cyclical = risk.is_cyclical_sector(inputs.sector, inputs.industry)
    structural = risk.classify_structural_risk(inputs.net_debt_to_ebitda, inputs.ebitda)
    downgrades = risk.count_recent_downgrades(inputs.analyst_actions, as_of)
    insider = risk.summarize_insider_selling(inputs.insider_transactions, as_of)
    flow = risk.classify_flow_risk(downgrades, insider)
    risk_score = pillars.score_risk_change(flow.score)

    upcoming_14d = recap.earnings_upcoming(inputs.earnings_events, as_of, risk.EARNINGS_ALERT_WINDOW_DAYS)
    upcoming_7d = recap.earnings_upcoming(inputs.earnings_events, as_of, EARNINGS_CARD_WINDOW_DAYS)
    alerts = risk.build_risk_alerts(
        inputs.net_debt_to_ebitda, cyclical, eps_30d, flow, upcoming_14d, direction, price.change_7d
    )

    # Pulse and thesis; valuation enters the total unrounded
    pulse = pillars.compute_pulse(revisions_score + divergence.score + valuation_score + risk_score)
    status = pillars.thesis_status(pulse)

    beta = round_or_none(inputs.beta, 1)
    flags = pillars.compute_flags(
        eps_7d, prior_eps, price.change_30d, inputs.market_cap, inputs.fcf_yield_now, beta, cyclical
    )
    trend = pillars.ma_trend(
        price_change_pct(inputs.prices, 50, as_of),
        price_change_pct(inputs.prices, 200, as_of),
    )
    confidence = pillars.compute_confidence(status, trend, inputs.net_debt_to_ebitda, flags.volatility_alert)

    # Breadth, positioning, volatility, setup
    breadth = revisions.compute_revision_breadth(next_fy, deltas, direction)
    short_pct = positioning.short_interest_pct(inputs.short_pct_float, inputs.shares_short, inputs.float_shares)
    cover = positioning.days_to_cover(inputs.short_ratio, inputs.shares_short, inputs.prices)
    short_interest = positioning.resolve_short_interest(store, symbol, short_pct, cover, as_of)
    institutional = positioning.resolve_institutional(store, symbol, inputs.institutional_pct, as_of)
    volatility = Volatility(historical_vol_30d=annualized_vol_30d(inputs.prices), beta=beta)
    setup = build_setup_context(status, divergence.signal, flags, structural.level, eps_7d, inputs.fcf_yield_now)

    last_quarter = recap.build_earnings_recap(inputs.earnings_events, inputs.prices, as_of)
    recap_relevance = None
    if last_quarter is not None:
        recap_relevance = recap.earnings_recap_relevance(
            last_quarter,
            as_of,
            revision_spike=flags.major_recalibration,
            price_move=flags.volatility_alert,
        )

    logger.debug(f"{symbol}: pulse={pulse} status={status.value} direction={direction}")

    return InstrumentState(
        symbol=symbol,
        as_of=as_of.isoformat(),
        company_name=inputs.company_name,
        daily_pulse=pulse,
        thesis_status=status,
        confidence=confidence,
        pillars=Pillars(
            revisions=revisions_score,
            divergence=divergence.score,
            valuation_compression=round_half_up(valuation_score),
            risk_change=risk_score,
        ),
        revisions=Revisions(
            eps_7d=eps_7d,
            eps_30d=eps_30d,
            revenue_30d=revenue_30d,
            direction=direction,
            eps_now=eps_now,
            prior_eps=prior_eps,
            std_dev_7d=std_7d,
            std_dev_30d=std_30d,
        ),
        price=price,
        relative_strength=rel_strength,
        valuation=ValuationMoves(fcf_yield_change=fcf_change, fcf_yield_now=inputs.fcf_yield_now),
        divergence_signal=divergence.signal,
        signal_explanation=divergence.explanation,
        structural_risk=structural,
        flow_risk=flow,
        risk_alerts=alerts,
        cluster_risk_detected=risk.cluster_detected(flow),
        cluster_interaction_note=risk.cluster_interaction_note(flow, structural),
        sensitivity_note=risk.sensitivity_note(inputs.net_debt_to_ebitda, cyclical),
        flags=flags,
        has_stored_revision_history=deltas.has_stored_history,
        market_cap=inputs.market_cap,
        revision_breadth=breadth,
        short_interest=short_interest,
        institutional=institutional,
        volatility=volatility,
        setup=setup,
        earnings_recap=recap_relevance,
        earnings_upcoming_7d=upcoming_7d,
    )
