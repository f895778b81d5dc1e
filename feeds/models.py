"""
Data model shared by the cache, parser, relay client and coordinator.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union
from urllib.parse import quote

NO_DATE = "No date"
NO_TITLE = "No title"
NO_LINK = "#"
CACHE_SOURCE = "cache"

# rss2json style services reject counts above this.
MAX_RELAY_COUNT = 100


@dataclass(frozen=True)
class Post:
    """One normalised feed entry, ready for display."""

    domain: str
    date: str
    title: str
    link: str

    def to_dict(self) -> Dict[str, str]:
        return {
            "domain": self.domain,
            "date": self.date,
            "title": self.title,
            "link": self.link,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Post":
        """Rebuild a Post from its cached form. Raises on missing fields."""
        return cls(
            domain=str(data["domain"]),
            date=str(data["date"]),
            title=str(data["title"]),
            link=str(data["link"]),
        )


class ResponseShape(Enum):
    """Transport wrapper a relay puts around the feed."""
    RAW_XML = "raw_xml"
    WRAPPED_JSON = "wrapped_json"
    JSON_FEED = "json_feed"


@dataclass(frozen=True)
class RelayDescriptor:
    """Static configuration for one relay service.

    ``endpoint_template`` is a ``str.format`` template. ``{url}`` receives the
    percent-encoded feed URL and ``{count}`` the requested post count, capped
    at ``MAX_RELAY_COUNT``.
    """

    name: str
    endpoint_template: str
    timeout: float
    response_shape: ResponseShape

    def build_url(self, feed_url: str, max_posts: Optional[int] = None) -> str:
        if max_posts is None or max_posts <= 0:
            count = MAX_RELAY_COUNT
        else:
            count = min(max_posts, MAX_RELAY_COUNT)
        return self.endpoint_template.format(url=quote(feed_url, safe=""), count=count)


@dataclass(frozen=True)
class AttemptError:
    """Final error of one relay, kept for diagnostics."""

    relay: str
    message: str


@dataclass(frozen=True)
class Success:
    posts: List[Post]
    source_relay: str

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Failure:
    errors: Tuple[AttemptError, ...] = field(default_factory=tuple)
    reason: str = "Failed to load"

    @property
    def ok(self) -> bool:
        return False

    @property
    def message(self) -> str:
        """Single human-readable line naming every relay that was tried."""
        if not self.errors:
            return self.reason
        relays = ", ".join(err.relay for err in self.errors)
        details = "; ".join(f"{err.relay}: {err.message}" for err in self.errors)
        return f"{self.reason} (tried {relays}) - {details}"


AcquisitionOutcome = Union[Success, Failure]
