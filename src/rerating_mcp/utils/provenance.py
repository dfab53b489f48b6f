"""Response envelope: run metadata, per-source provenance, error payloads."""

from datetime import date, datetime
from time import perf_counter
from typing import Any

from rerating_mcp import SCHEMA_VERSION, SERVER_VERSION


def elapsed_ms(started: float) -> float:
    """Milliseconds since a perf_counter() reading."""
    return (perf_counter() - started) * 1000


def _iso(value: date | str) -> str:
    return value.isoformat() if isinstance(value, (date, datetime)) else value


def build_meta(
    tool: str,
    duration_ms: float | None = None,
    as_of: date | str | None = None,
) -> dict[str, Any]:
    """
    Metadata block attached to every tool result.

    Args:
        tool: Tool that produced the result
        duration_ms: Wall time of the run, rounded to 0.1 ms
        as_of: Anchor date of the run

    Returns:
        Dict with server/schema versions, tool name and optional timing
    """
    meta: dict[str, Any] = {
        "server_version": SERVER_VERSION,
        "schema_version": SCHEMA_VERSION,
        "tool": tool,
    }
    if duration_ms is not None:
        meta["duration_ms"] = round(duration_ms, 1)
    if as_of is not None:
        meta["as_of"] = _iso(as_of)
    return meta


def source_warning(source: str, error: BaseException) -> str:
    """One-line degradation note for a failed input source."""
    return f"{source}: {type(error).__name__}: {error}"


def build_provenance(
    source: str,
    as_of: date | str | None = None,
    warnings: list[str] | None = None,
    **fields: Any,
) -> dict[str, Any]:
    """
    Provenance for one input source (yfinance fetches, the snapshot store).

    The warnings list is always present and is a copy of the caller's.
    """
    prov: dict[str, Any] = {"source": source}
    if as_of is not None:
        prov["as_of"] = _iso(as_of)
    prov.update(fields)
    prov["warnings"] = list(warnings or [])
    return prov


def build_error_response(
    error_type: str,
    message: str,
    symbol: str | None = None,
    tool: str = "error",
) -> dict[str, Any]:
    """
    Error payload returned by tools instead of raising.

    error_type is one of invalid_symbol, invalid_request, invalid_parameters
    or data_unavailable.
    """
    response: dict[str, Any] = {
        "error": True,
        "error_type": error_type,
        "message": message,
        "meta": build_meta(tool),
    }
    if symbol is not None:
        response["symbol"] = symbol
    return response
