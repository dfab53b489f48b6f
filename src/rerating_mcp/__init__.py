"""Re-rating Signal MCP Server."""

import os


def get_server_version() -> str:
    """Get version with fallback for dev mode."""
    if version := os.environ.get("SERVER_VERSION"):
        return version
    try:
        from importlib.metadata import version as pkg_version

        return pkg_version("rerating-mcp")
    except Exception:
        return "dev"


SERVER_VERSION = get_server_version()
# Bump when output schema changes materially (new fields, renamed fields, structure changes)
# v1: Daily check state, primary card, clustered feed
# v2: Short interest / institutional series, earnings recap relevance, setup context
SCHEMA_VERSION = "2"
