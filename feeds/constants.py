"""
Feed pipeline constants - default relays, retry policy, cache settings.

Centralised here so every sub-module imports from one place. Everything below
is a tunable default; ``core.settings.models`` can override each value.
"""
from feeds.models import RelayDescriptor, ResponseShape

# ---------------------------------------------------------------------------
# Default relays, in fallback priority order
# ---------------------------------------------------------------------------
DEFAULT_RELAYS = (
    # Generic CORS unwrapper: {"contents": "<rss ..."} (may be a data: URI)
    RelayDescriptor(
        name="allorigins",
        endpoint_template="https://api.allorigins.win/get?url={url}",
        timeout=3.5,
        response_shape=ResponseShape.WRAPPED_JSON,
    ),
    # Raw passthrough proxy: feed text verbatim
    RelayDescriptor(
        name="corsproxy",
        endpoint_template="https://corsproxy.io/?url={url}",
        timeout=3.0,
        response_shape=ResponseShape.RAW_XML,
    ),
    # Feed-to-JSON conversion: {"status": "ok", "items": [...]}
    RelayDescriptor(
        name="rss2json",
        endpoint_template="https://api.rss2json.com/v1/api.json?rss_url={url}&count={count}",
        timeout=2.0,
        response_shape=ResponseShape.JSON_FEED,
    ),
)

# ---------------------------------------------------------------------------
# Retry policy
# ---------------------------------------------------------------------------
DEFAULT_MAX_RETRIES = 2          # Extra attempts per relay after the first
DEFAULT_RETRY_DELAY_SECONDS = 0.5

# ---------------------------------------------------------------------------
# Relay response validation
# ---------------------------------------------------------------------------
MIN_PAYLOAD_LENGTH = 100         # Anything shorter is an error page, not a feed

# ---------------------------------------------------------------------------
# Post filtering
# ---------------------------------------------------------------------------
MIN_TITLE_LENGTH = 4             # Titles of 3 chars or fewer are placeholders
DOMAIN_PREFIXES = ("www.", "rss.", "feeds.", "api.")

# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------
CACHE_TTL_SECONDS = 30 * 60
CACHE_DIR_NAME = "tickerfeed_cache"

# ---------------------------------------------------------------------------
# Coordinator lifecycle
# ---------------------------------------------------------------------------
DEFAULT_DEBOUNCE_SECONDS = 0.3
