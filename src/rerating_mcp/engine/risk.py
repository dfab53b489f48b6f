"""Structural (balance sheet) and flow (7-day) risk classification."""

import re
from dataclasses import dataclass
from datetime import date, timedelta

from rerating_mcp.data.parsers import is_insider_sale
from rerating_mcp.engine.models import (
    AnalystAction,
    FlowItem,
    FlowLevel,
    FlowRisk,
    InsiderTransaction,
    RevisionDirection,
    RiskAlert,
    StructuralLevel,
    StructuralRisk,
)

FLOW_WINDOW_DAYS = 7
INSIDER_HISTORY_DAYS = 365
WEEKS_PER_YEAR = 52
EARNINGS_ALERT_WINDOW_DAYS = 14

# (threshold, level, score), first match wins; ND/EBITDA < 0 is handled separately
STRUCTURAL_TIERS = (
    (7.0, StructuralLevel.HIGH, -8),
    (5.0, StructuralLevel.HIGH, -6),
    (3.0, StructuralLevel.HIGH, -4),
)
ELEVATED_ND = 2.0

INSIDER_SPIKE_MULTIPLES = ((4, -2), (2, -1))

_CYCLICAL_RE = re.compile(r"travel|leisure|cruise|airline|lodging|consumer cyclical|hospitality", re.IGNORECASE)
_DOWNGRADE_RE = re.compile(r"down|sell|underperform", re.IGNORECASE)

ALERT_SEVERITY_ORDER = {"high": 0, "medium": 1, "low": 2}


def is_cyclical_sector(sector: str | None, industry: str | None) -> bool:
    return bool(_CYCLICAL_RE.search(f"{sector or ''} {industry or ''}"))


def classify_structural_risk(nd_to_ebitda: float | None, ebitda: float | None) -> StructuralRisk:
    """
    Leverage tier from Net Debt / EBITDA.

    A negative ratio means either net cash or negative EBITDA; the note
    tells them apart.
    """
    if nd_to_ebitda is None:
        return StructuralRisk(StructuralLevel.LOW, None, 0, None)

    if nd_to_ebitda < 0:
        note = "Negative EBITDA Risk" if ebitda is not None and ebitda <= 0 else "Net Cash Position"
        return StructuralRisk(StructuralLevel.LOW, nd_to_ebitda, 0, note)

    for threshold, level, score in STRUCTURAL_TIERS:
        if nd_to_ebitda > threshold:
            return StructuralRisk(level, nd_to_ebitda, score, None)
    if nd_to_ebitda >= ELEVATED_ND:
        return StructuralRisk(StructuralLevel.ELEVATED, nd_to_ebitda, -2, None)
    return StructuralRisk(StructuralLevel.LOW, nd_to_ebitda, 0, None)


def count_recent_downgrades(actions: list[AnalystAction], as_of: date, days: int = FLOW_WINDOW_DAYS) -> int:
    cutoff = (as_of - timedelta(days=days)).isoformat()
    end = as_of.isoformat()
    return sum(1 for a in actions if cutoff <= a.date <= end and _DOWNGRADE_RE.search(a.action))


@dataclass
class InsiderActivity:
    recent_value: float
    weekly_average: float


def summarize_insider_selling(transactions: list[InsiderTransaction], as_of: date) -> InsiderActivity:
    """Last-7-day insider sale value vs the 12-month weekly average."""
    year_cutoff = (as_of - timedelta(days=INSIDER_HISTORY_DAYS)).isoformat()
    week_cutoff = (as_of - timedelta(days=FLOW_WINDOW_DAYS)).isoformat()
    end = as_of.isoformat()

    sales = [t for t in transactions if is_insider_sale(t) and year_cutoff <= t.date <= end]
    total = sum(t.value or 0.0 for t in sales)
    recent = sum(t.value or 0.0 for t in sales if t.date >= week_cutoff)
    return InsiderActivity(recent_value=recent, weekly_average=total / WEEKS_PER_YEAR)


def classify_flow_risk(downgrade_count: int, insider: InsiderActivity) -> FlowRisk:
    """
    Seven-day flow risk: downgrades, insider selling spikes, and cluster escalation.
    """
    items: list[FlowItem] = []

    if downgrade_count >= 4:
        items.append(FlowItem("downgrades", f"Downgrades ({downgrade_count} in 7d)", -3, downgrade_count))
    elif downgrade_count >= 2:
        items.append(FlowItem("downgrades", f"Downgrades ({downgrade_count} in 7d)", -2, downgrade_count))
    elif downgrade_count >= 1:
        items.append(FlowItem("downgrades", "Analyst downgrade", -1, downgrade_count))

    insider_delta = 0
    if insider.weekly_average > 0:
        for multiple, delta in INSIDER_SPIKE_MULTIPLES:
            if insider.recent_value > multiple * insider.weekly_average:
                insider_delta = delta
                items.append(FlowItem("insider_selling", f"Insider selling > {multiple}x 12m weekly avg", delta))
                break

    medium_items = (1 if downgrade_count >= 2 else 0) + (1 if insider_delta != 0 else 0)
    if medium_items >= 2:
        items.append(FlowItem("cluster", "Cluster escalation (≥2 medium in 7d)", -1))

    score = sum(item.delta for item in items)
    if score <= -4:
        level = FlowLevel.ELEVATED
    elif score <= -1:
        level = FlowLevel.INCREASING
    else:
        level = FlowLevel.LOW
    return FlowRisk(level=level, items=items, score=score)


def cluster_detected(flow: FlowRisk) -> bool:
    return any(item.kind == "cluster" for item in flow.items)


def cluster_interaction_note(flow: FlowRisk, structural: StructuralRisk) -> str | None:
    if cluster_detected(flow) and structural.level != StructuralLevel.LOW:
        return "Elevated leverage combined with downgrade activity increases downside sensitivity."
    return None


def sensitivity_note(nd_to_ebitda: float | None, cyclical: bool) -> str | None:
    if nd_to_ebitda is None or nd_to_ebitda < ELEVATED_ND:
        return None
    sector = " (cyclical sector)" if cyclical else ""
    return f"At {nd_to_ebitda:.1f}x leverage{sector}, earnings volatility may amplify equity volatility."


def build_risk_alerts(
    nd_to_ebitda: float | None,
    cyclical: bool,
    eps_30d: float | None,
    flow: FlowRisk,
    earnings_upcoming_14d: bool,
    direction: RevisionDirection,
    price_7d: float | None,
) -> list[RiskAlert]:
    """Severity-tiered alerts, sorted high -> medium -> low."""
    alerts: list[RiskAlert] = []

    nd = nd_to_ebitda
    if nd is not None and nd > 5:
        suffix = " (cyclical sensitivity)" if cyclical else ""
        alerts.append(RiskAlert("high", f"Elevated leverage: Net Debt/EBITDA {nd:.1f}x{suffix}", "leverage"))
    elif nd is not None and nd > 3:
        alerts.append(RiskAlert("high", f"High leverage: Net Debt/EBITDA {nd:.1f}x", "leverage"))
    elif nd is not None and nd >= ELEVATED_ND:
        alerts.append(RiskAlert("medium", f"Elevated leverage: Net Debt/EBITDA {nd:.1f}x", "leverage"))

    if eps_30d is not None and eps_30d <= -5:
        alerts.append(RiskAlert("high", f"5%+ downward EPS revision (30d): {eps_30d:.1f}%", "negative_revision"))

    downgrades = flow.downgrade_count
    if downgrades >= 2:
        alerts.append(RiskAlert("medium", f"{downgrades} analyst downgrades (7d)", "downgrades"))
    elif downgrades == 1:
        alerts.append(RiskAlert("low", "1 analyst downgrade (7d)", "downgrades"))

    for item in flow.items:
        if item.kind == "insider_selling":
            multiple = 4 if item.delta <= -2 else 2
            alerts.append(
                RiskAlert("medium", f"Insider selling > {multiple}x 12m weekly average", "insider_selling")
            )

    if earnings_upcoming_14d and direction == "down":
        alerts.append(
            RiskAlert("medium", "Earnings within 14 days + negative revisions", "earnings_negative_revisions")
        )

    if price_7d is not None and price_7d > 5 and direction != "up":
        alerts.append(
            RiskAlert("low", f"Price +{price_7d:.1f}% (7d) without positive revisions", "unconfirmed_rally")
        )

    alerts.sort(key=lambda a: ALERT_SEVERITY_ORDER[a.severity])
    return alerts
