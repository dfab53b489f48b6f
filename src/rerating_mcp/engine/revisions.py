"""Estimate revision deltas, dispersion, and historical revision volatility."""

import logging
import math
from datetime import date, timedelta
from itertools import combinations

from rerating_mcp.data.snapshot_store import EstimateSnapshot, SnapshotStore, snapshot_at_or_before
from rerating_mcp.engine.models import (
    Confidence,
    EstimateRow,
    RevisionBreadth,
    RevisionDeltas,
    RevisionDirection,
)
from rerating_mcp.utils.validators import pct_change, round_or_none

logger = logging.getLogger(__name__)

DELTA_WINDOW_SNAPSHOTS = 35
STD_WINDOW_SNAPSHOTS = 90
MIN_SNAPSHOTS_FOR_STD = 4
MIN_BUCKET_VALUES = 2
MIN_BASE = 1e-9

# Day-gap buckets for historical revision volatility (inclusive)
STD_BUCKETS = {
    "7d": (5, 10),
    "30d": (25, 35),
}

DIRECTION_DEADBAND_PCT = 0.5

DISPERSION_STABLE_BAND = 2.0
NARROW_DISPERSION_PCT = 25.0
WIDE_DISPERSION_PCT = 50.0


def dispersion_pct(eps_high: float | None, eps_low: float | None, eps_avg: float | None) -> float | None:
    """Analyst range as % of consensus: (high - low) / |avg| * 100."""
    if eps_high is None or eps_low is None or eps_avg is None:
        return None
    if not all(math.isfinite(v) for v in (eps_high, eps_low, eps_avg)):
        return None
    if abs(eps_avg) < MIN_BASE:
        return None
    return (eps_high - eps_low) / abs(eps_avg) * 100


def _snapshot_dispersion(snap: EstimateSnapshot | None) -> float | None:
    if snap is None or snap.eps_next_fy == 0:
        return None
    return dispersion_pct(snap.eps_high, snap.eps_low, snap.eps_next_fy)


def compute_revision_deltas(
    snapshots: list[EstimateSnapshot],
    eps_now: float,
    revenue_now: float,
    as_of: date,
) -> RevisionDeltas:
    """
    Compare today's consensus against stored snapshots 7 and 30 days back.

    Args:
        snapshots: Stored estimate snapshots, newest-first
        eps_now: Today's next-FY EPS consensus
        revenue_now: Today's next-FY revenue consensus
        as_of: Anchor date of the run

    Returns:
        RevisionDeltas; percentages are None when the base snapshot is
        missing or zero
    """
    snap_7 = snapshot_at_or_before(snapshots, as_of - timedelta(days=7))
    snap_30 = snapshot_at_or_before(snapshots, as_of - timedelta(days=30))

    return RevisionDeltas(
        eps_7d_pct=pct_change(eps_now, snap_7.eps_next_fy) if snap_7 else None,
        eps_30d_pct=pct_change(eps_now, snap_30.eps_next_fy) if snap_30 else None,
        revenue_30d_pct=pct_change(revenue_now, snap_30.revenue_next_fy) if snap_30 else None,
        has_stored_history=snap_7 is not None,
        prior_eps_7d=snap_7.eps_next_fy if snap_7 else None,
        prior_dispersion_7d=_snapshot_dispersion(snap_7),
        prior_dispersion_30d=_snapshot_dispersion(snap_30),
    )


def apply_prior_period_fallback(
    deltas: RevisionDeltas,
    eps_now: float | None,
    revenue_now: float | None,
    prior: EstimateRow | None,
) -> RevisionDeltas:
    """
    Cold start: with no stored history, the prior fiscal period stands in
    for both EPS windows and the revenue window.

    This compares different fiscal periods, so it approximates growth
    rather than measuring a revision.
    """
    if deltas.has_stored_history:
        return deltas

    prior_eps = prior.eps_avg if prior else None
    prior_revenue = prior.revenue_avg if prior else None

    if eps_now is not None and revenue_now is not None:
        eps_vs_prior = pct_change(eps_now, prior_eps)
        if eps_vs_prior is not None:
            deltas.eps_7d_pct = eps_vs_prior
            deltas.eps_30d_pct = eps_vs_prior
        revenue_vs_prior = pct_change(revenue_now, prior_revenue)
        if revenue_vs_prior is not None:
            deltas.revenue_30d_pct = revenue_vs_prior

    deltas.prior_eps_7d = prior_eps
    return deltas


def resolve_revision_deltas(
    store: SnapshotStore,
    symbol: str,
    next_fy: EstimateRow | None,
    prior: EstimateRow | None,
    as_of: date,
) -> RevisionDeltas:
    """
    Persist today's consensus, then derive deltas from the stored series.

    Nothing is written when either EPS or revenue consensus is missing.
    """
    eps_now = next_fy.eps_avg if next_fy else None
    revenue_now = next_fy.revenue_avg if next_fy else None

    if eps_now is None or revenue_now is None:
        logger.debug(f"{symbol}: no next-FY consensus, skipping snapshot")
        return apply_prior_period_fallback(RevisionDeltas(), eps_now, revenue_now, prior)

    store.save_estimate_snapshot(
        symbol,
        EstimateSnapshot(
            date=as_of.isoformat(),
            eps_next_fy=eps_now,
            revenue_next_fy=revenue_now,
            analyst_count=next_fy.analyst_count,
            eps_high=next_fy.eps_high,
            eps_low=next_fy.eps_low,
        ),
    )
    snapshots = store.load_estimate_snapshots(symbol, max_days=DELTA_WINDOW_SNAPSHOTS)
    deltas = compute_revision_deltas(snapshots, eps_now, revenue_now, as_of)
    return apply_prior_period_fallback(deltas, eps_now, revenue_now, prior)


def sample_std_dev(values: list[float]) -> float | None:
    """Sample standard deviation (n - 1), None for fewer than two values."""
    if len(values) < MIN_BUCKET_VALUES:
        return None
    mean = sum(values) / len(values)
    variance = sum((v - mean) ** 2 for v in values) / (len(values) - 1)
    return math.sqrt(variance)


def compute_revision_std_dev(snapshots: list[EstimateSnapshot]) -> tuple[float | None, float | None]:
    """
    Historical volatility of EPS revisions, for normalizing revision surprise.

    Every pair of snapshots contributes its % change to the bucket its
    day gap falls in (5-10 days -> 7d, 25-35 days -> 30d).

    Returns:
        (std_7d, std_30d); each None without enough history
    """
    if len(snapshots) < MIN_SNAPSHOTS_FOR_STD:
        return None, None

    ordered = sorted(snapshots, key=lambda s: s.date)
    buckets: dict[str, list[float]] = {name: [] for name in STD_BUCKETS}

    for base, current in combinations(ordered, 2):
        if abs(base.eps_next_fy) < MIN_BASE:
            continue
        gap = (date.fromisoformat(current.date) - date.fromisoformat(base.date)).days
        change = (current.eps_next_fy - base.eps_next_fy) / abs(base.eps_next_fy) * 100
        for name, (low, high) in STD_BUCKETS.items():
            if low <= gap <= high:
                buckets[name].append(change)

    return sample_std_dev(buckets["7d"]), sample_std_dev(buckets["30d"])


def revision_direction(eps_7d: float | None, eps_30d: float | None) -> RevisionDirection:
    """Direction from the 7d delta (else 30d) with a +/-0.5% deadband."""
    value = eps_7d if eps_7d is not None else eps_30d
    if value is None:
        return "flat"
    if value > DIRECTION_DEADBAND_PCT:
        return "up"
    if value < -DIRECTION_DEADBAND_PCT:
        return "down"
    return "flat"


def compute_revision_breadth(
    next_fy: EstimateRow | None,
    deltas: RevisionDeltas,
    direction: RevisionDirection,
) -> RevisionBreadth:
    """Analyst count, dispersion and its trend, and consensus conviction."""
    eps_now = next_fy.eps_avg if next_fy else None
    analyst_count = next_fy.analyst_count if next_fy else None

    current = None
    if next_fy is not None:
        current = round_or_none(dispersion_pct(next_fy.eps_high, next_fy.eps_low, eps_now), 1)

    prior = deltas.prior_dispersion_7d if deltas.prior_dispersion_7d is not None else deltas.prior_dispersion_30d
    trend = None
    if current is not None and prior is not None:
        diff = current - prior
        if abs(diff) < DISPERSION_STABLE_BAND:
            trend = "stable"
        else:
            trend = "narrowing" if diff < 0 else "widening"

    narrow = current is not None and current < NARROW_DISPERSION_PCT
    wide = current is not None and current > WIDE_DISPERSION_PCT

    conviction: Confidence | None = None
    if deltas.eps_7d_pct is not None or deltas.eps_30d_pct is not None:
        if direction == "flat":
            conviction = Confidence.MEDIUM
        elif narrow and trend in ("narrowing", "stable"):
            conviction = Confidence.HIGH
        elif wide and trend == "widening":
            conviction = Confidence.LOW
        else:
            conviction = Confidence.MEDIUM
    elif current is not None and analyst_count is not None:
        conviction = Confidence.HIGH if narrow else Confidence.LOW if wide else Confidence.MEDIUM

    return RevisionBreadth(
        analyst_count=analyst_count,
        dispersion_pct=current,
        dispersion_trend=trend,
        conviction=conviction,
    )
