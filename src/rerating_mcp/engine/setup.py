"""Setup type, positioning suggestion, and time-horizon bias."""

from rerating_mcp.engine.models import (
    DivergenceSignal,
    QualifyingFlags,
    SetupContext,
    StructuralLevel,
    ThesisStatus,
)

EVENT_DRIVEN = "Event-Driven Rebound"
LEVERAGED_CYCLICAL = "Leveraged Cyclical Rebound"
DEFENSIVE_DIVERGENCE = "Defensive Divergence"
LEVERAGED_RERATING = "Leveraged Re-rating"
RISK_DIVERGENCE = "Risk Divergence"
EARNINGS_INFLECTION = "Earnings Inflection Candidate"
STANDARD = "Standard"

INFLECTION_EPS_7D_PCT = 50.0
INFLECTION_MAX_FCF_YIELD = 2.0

TIME_HORIZONS = {
    EVENT_DRIVEN: "Short–Medium term reassessment",
    LEVERAGED_CYCLICAL: "Short–Medium term tactical opportunity; long-term dependent on deleveraging path",
    EARNINGS_INFLECTION: "Short–Medium term; profitability transition",
}


def classify_setup_type(
    status: ThesisStatus,
    divergence_signal: DivergenceSignal | None,
    flags: QualifyingFlags,
    structural: StructuralLevel,
    eps_7d: float | None,
    fcf_yield_now: float | None,
) -> str:
    """What kind of risk the position carries."""
    if status == ThesisStatus.IMPROVING and divergence_signal == "Positive divergence":
        if flags.volatility_alert and flags.revision_magnitude:
            return EVENT_DRIVEN
        if structural == StructuralLevel.HIGH:
            return LEVERAGED_CYCLICAL if flags.cyclical_sector else LEVERAGED_RERATING
        return DEFENSIVE_DIVERGENCE

    if divergence_signal == "Risk divergence":
        return RISK_DIVERGENCE

    large_revision = flags.major_recalibration or (
        flags.revision_magnitude and eps_7d is not None and abs(eps_7d) > INFLECTION_EPS_7D_PCT
    )
    thin_cash_flow = fcf_yield_now is None or fcf_yield_now < INFLECTION_MAX_FCF_YIELD
    if large_revision and thin_cash_flow:
        return EARNINGS_INFLECTION
    return STANDARD


def suggest_positioning(
    status: ThesisStatus,
    setup_type: str,
    structural: StructuralLevel,
    cyclical: bool,
) -> str:
    if setup_type == EARNINGS_INFLECTION:
        return "Watchlist / speculative"
    if status == ThesisStatus.DETERIORATING:
        return "Reduce / trim"
    if status == ThesisStatus.STABLE:
        return "Watchlist"

    if setup_type == EVENT_DRIVEN:
        return "Tactical / opportunistic allocation"
    if structural == StructuralLevel.HIGH:
        return "Tactical / high-volatility allocation" if cyclical else "Concentrated / monitor leverage"
    return "Core position candidate"


def time_horizon_bias(setup_type: str, structural: StructuralLevel) -> str | None:
    if setup_type == DEFENSIVE_DIVERGENCE and structural == StructuralLevel.LOW:
        return "Core hold; no time constraint"
    return TIME_HORIZONS.get(setup_type)


def build_setup_context(
    status: ThesisStatus,
    divergence_signal: DivergenceSignal | None,
    flags: QualifyingFlags,
    structural: StructuralLevel,
    eps_7d: float | None,
    fcf_yield_now: float | None,
) -> SetupContext:
    setup_type = classify_setup_type(status, divergence_signal, flags, structural, eps_7d, fcf_yield_now)
    return SetupContext(
        setup_type=setup_type,
        positioning=suggest_positioning(status, setup_type, structural, flags.cyclical_sector),
        time_horizon_bias=time_horizon_bias(setup_type, structural),
    )
