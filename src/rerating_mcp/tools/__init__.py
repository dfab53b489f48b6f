"""Re-rating signal tools."""

from rerating_mcp.tools.daily_check import daily_check, primary_card
from rerating_mcp.tools.signal_feed import signal_feed

__all__ = [
    "daily_check",
    "primary_card",
    "signal_feed",
]
