"""
Retry wrapper around a single relay attempt.
"""
from typing import List, Optional

from feeds.constants import DEFAULT_MAX_RETRIES, DEFAULT_RETRY_DELAY_SECONDS
from feeds.errors import RelayError
from feeds.models import Post, RelayDescriptor
from core.logging.logger import get_logger
from core.utils.decorators import async_retry

logger = get_logger(__name__)


async def with_retries(
    client,
    descriptor: RelayDescriptor,
    feed_url: str,
    max_retries: int = DEFAULT_MAX_RETRIES,
    delay: float = DEFAULT_RETRY_DELAY_SECONDS,
    max_posts: Optional[int] = None,
) -> List[Post]:
    """Run ``client.attempt`` up to ``max_retries + 1`` times.

    Waits *delay* seconds between failures. The final RelayError propagates
    unchanged.
    """
    attempt = async_retry(
        max_retries=max_retries,
        delay=delay,
        exceptions=(RelayError,),
        logger_instance=logger,
        label=descriptor.name,
    )(client.attempt)
    return await attempt(descriptor, feed_url, max_posts)
