"""
Error taxonomy for the feed acquisition pipeline.

Every relay failure is a ``RelayError``; the retry wrapper and the coordinator
treat all of them as recoverable. ``StorageFullError`` belongs to the cache
medium and never leaves ``feeds.cache``.
"""
from typing import Optional


class RelayError(Exception):
    """Base class for a failed relay attempt."""


class NetworkError(RelayError):
    """Relay unreachable, non-success status, or deadline exceeded."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class ShapeError(RelayError):
    """Response arrived but does not look like the expected envelope."""


class ParseError(RelayError):
    """Envelope recognised but no usable post items could be extracted."""


class StorageFullError(Exception):
    """Cache storage medium refused a write because it is at capacity."""
