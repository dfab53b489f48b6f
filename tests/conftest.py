"""Pytest configuration and fixtures."""

import dataclasses
from collections.abc import Callable, Iterator
from datetime import date
from typing import Any

import pandas as pd
import pytest

from rerating_mcp.data.snapshot_store import SnapshotStore
from rerating_mcp.engine.models import (
    Confidence,
    FlowLevel,
    FlowRisk,
    InstitutionalOwnership,
    InstrumentState,
    Pillars,
    PriceMoves,
    QualifyingFlags,
    RelativeStrength,
    RevisionBreadth,
    Revisions,
    SetupContext,
    ShortInterest,
    SignalExplanation,
    StructuralLevel,
    StructuralRisk,
    ThesisStatus,
    ValuationMoves,
    Volatility,
)
from rerating_mcp.utils.ohlcv import prices_from_rows

AS_OF = date(2025, 6, 30)


def daily_prices(closes: list[float], end: date = AS_OF, volume: float = 1_000_000) -> pd.DataFrame:
    """Standardized frame with one close per calendar day, ending at `end`."""
    dates = pd.date_range(end=pd.Timestamp(end), periods=len(closes), freq="D")
    return prices_from_rows([(d.strftime("%Y-%m-%d"), c, volume) for d, c in zip(dates, closes)])


def neutral_state(**overrides: Any) -> InstrumentState:
    """InstrumentState with every input missing or neutral."""
    state = InstrumentState(
        symbol="TEST",
        as_of=AS_OF.isoformat(),
        company_name="Test Corp",
        daily_pulse=0,
        thesis_status=ThesisStatus.STABLE,
        confidence=Confidence.MEDIUM,
        pillars=Pillars(revisions=23, divergence=10, valuation_compression=12, risk_change=8),
        revisions=Revisions(
            eps_7d=None,
            eps_30d=None,
            revenue_30d=None,
            direction="flat",
            eps_now=None,
            prior_eps=None,
            std_dev_7d=None,
            std_dev_30d=None,
        ),
        price=PriceMoves(change_7d=None, change_30d=None),
        relative_strength=RelativeStrength(vs_benchmark_7d=None, vs_benchmark_30d=None),
        valuation=ValuationMoves(fcf_yield_change=None, fcf_yield_now=None),
        divergence_signal="Neutral",
        signal_explanation=SignalExplanation("Neutral", "🟡", []),
        structural_risk=StructuralRisk(StructuralLevel.LOW, None, 0, None),
        flow_risk=FlowRisk(FlowLevel.LOW, [], 0),
        risk_alerts=[],
        cluster_risk_detected=False,
        cluster_interaction_note=None,
        sensitivity_note=None,
        flags=QualifyingFlags(),
        has_stored_revision_history=True,
        market_cap=None,
        revision_breadth=RevisionBreadth(None, None, None, None),
        short_interest=ShortInterest(None, None, None, data_available=False),
        institutional=InstitutionalOwnership(None, None, data_available=False),
        volatility=Volatility(historical_vol_30d=None, beta=None),
        setup=SetupContext("Standard", "Watchlist", None),
    )
    return dataclasses.replace(state, **overrides)


def revisions(eps_7d: float | None = None, eps_30d: float | None = None, **kwargs: Any) -> Revisions:
    """Revisions record with the given deltas; direction defaults to flat."""
    fields: dict[str, Any] = {
        "eps_7d": eps_7d,
        "eps_30d": eps_30d,
        "revenue_30d": None,
        "direction": "flat",
        "eps_now": None,
        "prior_eps": None,
        "std_dev_7d": None,
        "std_dev_30d": None,
    }
    fields.update(kwargs)
    return Revisions(**fields)


@pytest.fixture
def store(tmp_path: Any) -> Iterator[SnapshotStore]:
    """Snapshot store in a per-test temporary directory."""
    s = SnapshotStore(cache_dir=str(tmp_path / "snapshots"))
    yield s
    s.cache.close()


@pytest.fixture
def make_state() -> Callable[..., InstrumentState]:
    return neutral_state


@pytest.fixture
def sample_ohlcv_df() -> pd.DataFrame:
    """Sample yfinance-style OHLCV DataFrame for testing."""
    return pd.DataFrame(
        {
            "Date": pd.date_range("2024-01-01", periods=10, freq="D"),
            "Open": [100.0, 101.0, 102.0, 101.5, 103.0, 104.0, 103.5, 105.0, 106.0, 105.5],
            "High": [101.0, 102.5, 103.0, 102.5, 104.5, 105.5, 105.0, 106.5, 107.0, 106.5],
            "Low": [99.5, 100.5, 101.0, 100.5, 102.0, 103.0, 102.5, 104.0, 105.0, 104.5],
            "Close": [100.5, 102.0, 101.5, 102.0, 104.0, 103.5, 104.5, 106.0, 105.5, 106.0],
            "Volume": [1000000] * 10,
        }
    ).set_index("Date")


@pytest.fixture
def sample_ohlcv_df_with_adj_close(sample_ohlcv_df: pd.DataFrame) -> pd.DataFrame:
    """Sample OHLCV DataFrame with Adj Close column."""
    df = sample_ohlcv_df.copy()
    df["Adj Close"] = [100.0, 101.5, 101.0, 101.5, 103.5, 103.0, 104.0, 105.5, 105.0, 105.5]
    return df
