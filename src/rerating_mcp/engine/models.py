"""Typed records flowing through the re-rating signal engine."""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Literal

import pandas as pd

from rerating_mcp.utils.ohlcv import empty_prices

RevisionDirection = Literal["up", "flat", "down"]
DivergenceSignal = Literal["Positive divergence", "Risk divergence", "Neutral"]
DispersionTrend = Literal["narrowing", "widening", "stable"]
AlertSeverity = Literal["high", "medium", "low"]


class SignalCategory(str, Enum):
    ESTIMATE_SHIFT = "ESTIMATE_SHIFT"
    FORCED_REPRICING = "FORCED_REPRICING"
    DIVERGENCE = "DIVERGENCE"
    RISK_CHANGE = "RISK_CHANGE"
    VALUATION_SHIFT = "VALUATION_SHIFT"
    POSITIONING_SHIFT = "POSITIONING_SHIFT"
    VOLATILITY_EVENT = "VOLATILITY_EVENT"


class Confidence(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


class Tone(str, Enum):
    BULLISH = "Bullish"
    BEARISH = "Bearish"
    NEUTRAL = "Neutral"


class ThesisStatus(str, Enum):
    IMPROVING = "Improving"
    STABLE = "Stable"
    DETERIORATING = "Deteriorating"


class StructuralLevel(str, Enum):
    LOW = "Low"
    ELEVATED = "Elevated"
    HIGH = "High"


class FlowLevel(str, Enum):
    LOW = "Low"
    INCREASING = "Increasing"
    ELEVATED = "Elevated"


# ============================================================================
# INPUTS (resolved by the data layer before scoring starts)
# ============================================================================


@dataclass(frozen=True)
class EstimateRow:
    """Consensus for one fiscal period."""

    eps_avg: float | None
    revenue_avg: float | None
    eps_high: float | None = None
    eps_low: float | None = None
    analyst_count: float | None = None


@dataclass(frozen=True)
class AnalystAction:
    date: str
    action: str
    to_grade: str | None = None
    firm: str | None = None


@dataclass(frozen=True)
class InsiderTransaction:
    date: str
    transaction: str
    value: float | None


@dataclass(frozen=True)
class EarningsEvent:
    date: str
    eps_estimate: float | None = None
    eps_actual: float | None = None


@dataclass
class InstrumentInputs:
    """Everything the engine consumes for one instrument; any field may be missing."""

    symbol: str
    company_name: str | None = None
    sector: str | None = None
    industry: str | None = None
    market_cap: float | None = None
    beta: float | None = None
    next_fy: EstimateRow | None = None
    prior_fy: EstimateRow | None = None
    fcf_yield_now: float | None = None
    fcf_yield_prior: float | None = None
    net_debt_to_ebitda: float | None = None
    ebitda: float | None = None
    prices: pd.DataFrame = field(default_factory=empty_prices)
    benchmark_prices: pd.DataFrame = field(default_factory=empty_prices)
    analyst_actions: list[AnalystAction] = field(default_factory=list)
    insider_transactions: list[InsiderTransaction] = field(default_factory=list)
    earnings_events: list[EarningsEvent] = field(default_factory=list)
    short_pct_float: float | None = None
    short_ratio: float | None = None
    shares_short: float | None = None
    float_shares: float | None = None
    institutional_pct: float | None = None
    warnings: list[str] = field(default_factory=list)


# ============================================================================
# DERIVED STATE
# ============================================================================


@dataclass
class RevisionDeltas:
    eps_7d_pct: float | None = None
    eps_30d_pct: float | None = None
    revenue_30d_pct: float | None = None
    has_stored_history: bool = False
    prior_eps_7d: float | None = None
    prior_dispersion_7d: float | None = None
    prior_dispersion_30d: float | None = None


@dataclass
class Revisions:
    eps_7d: float | None
    eps_30d: float | None
    revenue_30d: float | None
    direction: RevisionDirection
    eps_now: float | None
    prior_eps: float | None
    std_dev_7d: float | None
    std_dev_30d: float | None


@dataclass
class PriceMoves:
    change_7d: float | None
    change_30d: float | None


@dataclass
class RelativeStrength:
    vs_benchmark_7d: float | None
    vs_benchmark_30d: float | None


@dataclass
class ValuationMoves:
    fcf_yield_change: float | None
    fcf_yield_now: float | None


@dataclass
class SignalExplanation:
    type: str
    emoji: str
    lines: list[str] = field(default_factory=list)


@dataclass
class RiskAlert:
    severity: AlertSeverity
    message: str
    kind: str


@dataclass
class FlowItem:
    kind: Literal["downgrades", "insider_selling", "cluster"]
    label: str
    delta: int
    count: int | None = None


@dataclass
class StructuralRisk:
    level: StructuralLevel
    nd_to_ebitda: float | None
    score: int
    note: str | None


@dataclass
class FlowRisk:
    level: FlowLevel
    items: list[FlowItem]
    score: int

    @property
    def downgrade_count(self) -> int:
        for item in self.items:
            if item.kind == "downgrades":
                return item.count or 1
        return 0

    @property
    def insider_spike(self) -> bool:
        return any(item.kind == "insider_selling" for item in self.items)


@dataclass
class Pillars:
    revisions: int
    divergence: int
    valuation_compression: int
    risk_change: int


@dataclass
class QualifyingFlags:
    revision_magnitude: bool = False
    major_recalibration: bool = False
    mega_cap: bool = False
    unusual_revision_spike: bool = False
    revision_reliability_warning: bool = False
    volatility_alert: bool = False
    uncertainty_elevated: bool = False
    negative_fcf: bool = False
    volatility_exceeds_beta: bool = False
    high_uncertainty_temper_confidence: bool = False
    cyclical_sector: bool = False


@dataclass
class RevisionBreadth:
    analyst_count: float | None
    dispersion_pct: float | None
    dispersion_trend: DispersionTrend | None
    conviction: Confidence | None


@dataclass
class ShortInterest:
    pct_float_short: float | None
    change_30d_pct: float | None
    days_to_cover: float | None
    data_available: bool


@dataclass
class InstitutionalOwnership:
    pct_institutional: float | None
    change_30d_pp: float | None
    data_available: bool


@dataclass
class Volatility:
    historical_vol_30d: float | None
    beta: float | None


@dataclass
class EarningsRecap:
    quarter: str
    report_date: str
    eps_actual: float | None
    eps_estimate: float | None
    eps_beat_pct: float | None
    market_reaction_pct: float | None
    narrative: str


@dataclass
class EarningsRecapRelevance:
    recap: EarningsRecap
    should_show: bool
    days_since_earnings: int
    reason: Literal["within_7d", "revision_spike_post_earnings", "price_move_post_earnings", "stale"]


@dataclass
class SetupContext:
    setup_type: str
    positioning: str
    time_horizon_bias: str | None


@dataclass
class InstrumentState:
    """Full daily computation result for one instrument. Never persisted."""

    symbol: str
    as_of: str
    company_name: str | None
    daily_pulse: int
    thesis_status: ThesisStatus
    confidence: Confidence
    pillars: Pillars
    revisions: Revisions
    price: PriceMoves
    relative_strength: RelativeStrength
    valuation: ValuationMoves
    divergence_signal: DivergenceSignal | None
    signal_explanation: SignalExplanation
    structural_risk: StructuralRisk
    flow_risk: FlowRisk
    risk_alerts: list[RiskAlert]
    cluster_risk_detected: bool
    cluster_interaction_note: str | None
    sensitivity_note: str | None
    flags: QualifyingFlags
    has_stored_revision_history: bool
    market_cap: float | None
    revision_breadth: RevisionBreadth
    short_interest: ShortInterest
    institutional: InstitutionalOwnership
    volatility: Volatility
    setup: SetupContext
    earnings_recap: EarningsRecapRelevance | None = None
    earnings_upcoming_7d: bool = False

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


# ============================================================================
# SIGNALS AND CARDS
# ============================================================================


@dataclass(frozen=True)
class EstimateShiftEvidence:
    eps_7d: float
    eps_30d: float
    direction: RevisionDirection
    std_dev_7d: float | None
    std_dev_30d: float | None
    surprise_score: float


@dataclass(frozen=True)
class ForcedRepricingEvidence:
    price_7d: float
    price_30d: float
    vs_benchmark_30d: float
    unusual_move: bool
    revisions_flat: bool


@dataclass(frozen=True)
class DivergenceEvidence:
    price_7d: float
    price_30d: float
    direction: RevisionDirection


@dataclass(frozen=True)
class RiskChangeEvidence:
    leverage_breach: bool
    downgrade_cluster: bool
    downgrade_count: int
    insider_spike: bool
    earnings_negative_revisions: bool


@dataclass(frozen=True)
class ValuationShiftEvidence:
    fcf_yield_change: float
    fcf_yield_now: float
    negative_fcf: bool


@dataclass(frozen=True)
class PositioningShiftEvidence:
    short_change_30d: float
    institutional_change_30d: float


@dataclass(frozen=True)
class VolatilityEvidence:
    historical_vol_30d: float
    beta: float
    price_30d: float


Evidence = (
    EstimateShiftEvidence
    | ForcedRepricingEvidence
    | DivergenceEvidence
    | RiskChangeEvidence
    | ValuationShiftEvidence
    | PositioningShiftEvidence
    | VolatilityEvidence
)


@dataclass(frozen=True)
class SignalScore:
    category: SignalCategory
    severity: int
    confidence: Confidence
    evidence: Evidence

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class PrimaryCard:
    symbol: str
    category: SignalCategory
    title: str
    summary: str
    key_metric: str
    tone: Tone
    severity: int
    confidence_note: str | None = None
    earnings_recap: EarningsRecapRelevance | None = None
    type: Literal["primary"] = "primary"

    @property
    def effective_severity(self) -> int:
        return self.severity

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class ThemedCardItem:
    symbol: str
    key_metric: str
    severity: int
    earnings_recap: EarningsRecapRelevance | None = None


@dataclass
class ThemedCard:
    category: SignalCategory
    theme: str
    items: list[ThemedCardItem]
    tone: Tone
    max_severity: int
    type: Literal["themed"] = "themed"

    @property
    def effective_severity(self) -> int:
        return self.max_severity

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


FeedCard = PrimaryCard | ThemedCard
