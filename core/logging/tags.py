"""Standard logging tags for consistent log filtering.

Usage:
    from core.logging.tags import TAG_RELAY
    logger.info(f"{TAG_RELAY} allorigins answered in {elapsed:.2f}s")
"""

# =============================================================================
# Pipeline stages
# =============================================================================

TAG_COORD = "[COORD]"
"""Acquisition coordinator state changes."""

TAG_RELAY = "[RELAY]"
"""Single relay attempts (request, status, decode)."""

TAG_RETRY = "[RETRY]"
"""Retry wrapper decisions."""

TAG_PARSER = "[PARSER]"
"""Feed document parsing."""

TAG_CACHE = "[CACHE]"
"""Cache operations (get, set, purge)."""

# =============================================================================
# Status Tags
# =============================================================================

TAG_FALLBACK = "[FALLBACK]"
"""Sequential relay fallback after a failed race. Highlighted on the console."""

TAG_CLI = "[CLI]"
"""Command-line front end."""
