"""Dominant signal selection: at most one visible signal per instrument per day."""

from rerating_mcp.engine.detectors import EVALUATION_ORDER, MIN_SEVERITY, run_detectors
from rerating_mcp.engine.models import InstrumentState, SignalScore

_ORDER_INDEX = {category: i for i, (category, _) in enumerate(EVALUATION_ORDER)}


def select_dominant_signal(candidates: list[SignalScore]) -> SignalScore | None:
    """
    Highest-severity candidate at or above the floor.

    Ties go to the category evaluated first. None means the instrument
    stays silent today.
    """
    eligible = [c for c in candidates if c.severity >= MIN_SEVERITY]
    if not eligible:
        return None
    return min(eligible, key=lambda c: (-c.severity, _ORDER_INDEX[c.category]))


def dominant_signal(state: InstrumentState) -> SignalScore | None:
    return select_dominant_signal(run_detectors(state))
