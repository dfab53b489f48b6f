"""Per-instrument daily snapshot persistence."""

import logging
import os
from dataclasses import asdict, dataclass
from datetime import date
from typing import Any, Protocol, TypeVar

import diskcache

from rerating_mcp.utils.validators import normalize_symbol, safe_float

logger = logging.getLogger(__name__)

DEFAULT_RETENTION_DAYS = int(os.environ.get("SNAPSHOT_RETENTION_DAYS", "365"))
LOCK_EXPIRE_SECONDS = 30

ESTIMATES = "estimates"
SHORT_INTEREST = "short_interest"
INSTITUTIONAL = "institutional"

# An entry without this numeric field is unusable for deltas and is skipped on read
SERIES_REQUIRED_FIELD = {
    ESTIMATES: "eps_next_fy",
    SHORT_INTEREST: "pct_float_short",
    INSTITUTIONAL: "pct_institutional",
}


class _Dated(Protocol):
    date: str


D = TypeVar("D", bound=_Dated)


@dataclass(frozen=True)
class EstimateSnapshot:
    """Next-fiscal-year consensus captured once per calendar day."""

    date: str
    eps_next_fy: float
    revenue_next_fy: float
    analyst_count: float | None = None
    eps_high: float | None = None
    eps_low: float | None = None

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "EstimateSnapshot":
        return cls(
            date=str(raw["date"]),
            eps_next_fy=float(raw["eps_next_fy"]),
            revenue_next_fy=safe_float(raw.get("revenue_next_fy")) or 0.0,
            analyst_count=safe_float(raw.get("analyst_count")),
            eps_high=safe_float(raw.get("eps_high")),
            eps_low=safe_float(raw.get("eps_low")),
        )


@dataclass(frozen=True)
class ShortInterestSnapshot:
    date: str
    pct_float_short: float
    days_to_cover: float | None = None

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "ShortInterestSnapshot":
        return cls(
            date=str(raw["date"]),
            pct_float_short=float(raw["pct_float_short"]),
            days_to_cover=safe_float(raw.get("days_to_cover")),
        )


@dataclass(frozen=True)
class InstitutionalSnapshot:
    date: str
    pct_institutional: float

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "InstitutionalSnapshot":
        return cls(date=str(raw["date"]), pct_institutional=float(raw["pct_institutional"]))


class SnapshotStore:
    """
    Key-value store of per-instrument, per-day snapshot series.

    Each (series, symbol) key holds a list of plain dicts sorted newest-first,
    at most one entry per date. Writes are read-modify-write under a
    per-key lock so overlapping runs for the same instrument do not lose
    updates; different instruments never contend.
    """

    def __init__(self, cache_dir: str | None = None, retention_days: int | None = None):
        if cache_dir is None:
            cache_dir = os.environ.get("SNAPSHOT_DIR", ".cache/snapshots")
        self.cache: diskcache.Cache = diskcache.Cache(cache_dir)
        self.retention_days = retention_days if retention_days is not None else DEFAULT_RETENTION_DAYS

    @staticmethod
    def key(series: str, symbol: str) -> str:
        """Canonical key for a symbol's series."""
        if series not in SERIES_REQUIRED_FIELD:
            raise ValueError(f"Unknown snapshot series '{series}'")
        return f"{series}://{normalize_symbol(symbol)}"

    def load_series(self, series: str, symbol: str, max_days: int = 35) -> list[dict[str, Any]]:
        """
        Load entries newest-first, deduplicated by date.

        Args:
            series: Series name (estimates, short_interest, institutional)
            symbol: Ticker symbol
            max_days: Maximum number of entries to return

        Returns:
            List of entry dicts (empty when nothing is stored)
        """
        raw = self.cache.get(self.key(series, symbol))
        if not isinstance(raw, list):
            return []

        required = SERIES_REQUIRED_FIELD[series]
        ordered = sorted(
            (e for e in raw if isinstance(e, dict) and e.get("date")),
            key=lambda e: str(e["date"]),
            reverse=True,
        )

        seen: set[str] = set()
        out: list[dict[str, Any]] = []
        for entry in ordered:
            entry_date = str(entry["date"])
            if entry_date in seen or safe_float(entry.get(required)) is None:
                continue
            seen.add(entry_date)
            out.append(entry)
            if len(out) >= max_days:
                break
        return out

    def upsert(self, series: str, symbol: str, entry: dict[str, Any]) -> None:
        """
        Insert or overwrite the entry for entry["date"].

        The series is rewritten newest-first and pruned oldest-first
        beyond the retention window.
        """
        if not entry.get("date"):
            raise ValueError("Snapshot entry requires a date")

        key = self.key(series, symbol)
        with diskcache.Lock(self.cache, f"lock:{key}", expire=LOCK_EXPIRE_SECONDS):
            existing = self.load_series(series, symbol, max_days=self.retention_days)
            by_date = {str(e["date"]): e for e in existing}
            by_date[str(entry["date"])] = dict(entry)
            ordered = sorted(by_date.values(), key=lambda e: str(e["date"]), reverse=True)
            self.cache.set(key, ordered[: self.retention_days])

        logger.debug(f"upsert {key} date={entry['date']} entries={min(len(ordered), self.retention_days)}")

    # Typed wrappers

    def save_estimate_snapshot(self, symbol: str, snapshot: EstimateSnapshot) -> None:
        self.upsert(ESTIMATES, symbol, asdict(snapshot))

    def load_estimate_snapshots(self, symbol: str, max_days: int = 35) -> list[EstimateSnapshot]:
        return [EstimateSnapshot.from_dict(e) for e in self.load_series(ESTIMATES, symbol, max_days)]

    def save_short_interest_snapshot(self, symbol: str, snapshot: ShortInterestSnapshot) -> None:
        self.upsert(SHORT_INTEREST, symbol, asdict(snapshot))

    def load_short_interest_snapshots(self, symbol: str, max_days: int = 40) -> list[ShortInterestSnapshot]:
        return [ShortInterestSnapshot.from_dict(e) for e in self.load_series(SHORT_INTEREST, symbol, max_days)]

    def save_institutional_snapshot(self, symbol: str, snapshot: InstitutionalSnapshot) -> None:
        self.upsert(INSTITUTIONAL, symbol, asdict(snapshot))

    def load_institutional_snapshots(self, symbol: str, max_days: int = 40) -> list[InstitutionalSnapshot]:
        return [InstitutionalSnapshot.from_dict(e) for e in self.load_series(INSTITUTIONAL, symbol, max_days)]

    def clear(self) -> None:
        """Clear all stored series."""
        self.cache.clear()


def snapshot_at_or_before(series: list[D], target: date | str) -> D | None:
    """
    Most recent entry whose date is not after target.

    Args:
        series: Entries sorted newest-first
        target: Target date (date or ISO string)

    Returns:
        The matching entry, or None if every entry is newer than target
    """
    target_str = target.isoformat() if isinstance(target, date) else target
    for entry in series:
        if entry.date <= target_str:
            return entry
    return None


# Global instance
snapshot_store = SnapshotStore()
