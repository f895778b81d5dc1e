"""
Feed acquisition through CORS relays - Modular Architecture

Modules:
    models      - Post, RelayDescriptor, Success / Failure outcomes
    constants   - Default relays, retry policy, cache TTL
    errors      - NetworkError / ShapeError / ParseError taxonomy
    cache       - FeedCache: URL-keyed post cache with expiry
    parser      - FeedParser: XML and JSON feeds to posts
    client      - RelayClient: one bounded-time relay attempt (aiohttp)
    retry       - with_retries: fixed-delay retry around an attempt
    coordinator - FeedCoordinator: cache, race, fallback, write-back
"""
from feeds.constants import DEFAULT_RELAYS
from feeds.coordinator import CoordinatorState, FeedCoordinator
from feeds.models import Failure, Post, RelayDescriptor, ResponseShape, Success

__all__ = [
    "DEFAULT_RELAYS",
    "CoordinatorState",
    "FeedCoordinator",
    "Failure",
    "Post",
    "RelayDescriptor",
    "ResponseShape",
    "Success",
]
