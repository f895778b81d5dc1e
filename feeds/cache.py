"""
FeedCache - Short-lived post cache keyed by feed URL.

Responsibilities:
    - Map a feed URL to a storage-safe key (MD5 hex digest)
    - Serialise post lists with a write timestamp
    - Remember the post limit an entry was fetched under
    - Purge entries that are expired or corrupt on read
    - Swallow write failures: caching is an optimisation, never required
    - Storage medium is pluggable (disk directory or in-memory dict)
"""
import hashlib
import json
import os
import tempfile
import time
from pathlib import Path
from typing import Callable, Dict, List, Optional

from feeds.constants import CACHE_DIR_NAME, CACHE_TTL_SECONDS
from feeds.errors import StorageFullError
from feeds.models import Post
from core.logging.logger import get_logger
from core.logging.tags import TAG_CACHE
from core.utils.decorators import suppress_exceptions

logger = get_logger(__name__)


class MemoryStorage:
    """Dict-backed storage. ``max_entries`` emulates a quota."""

    def __init__(self, max_entries: Optional[int] = None):
        self._data: Dict[str, str] = {}
        self.max_entries = max_entries

    def read(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def write(self, key: str, raw: str) -> None:
        if (
            self.max_entries is not None
            and key not in self._data
            and len(self._data) >= self.max_entries
        ):
            raise StorageFullError(f"storage full ({self.max_entries} entries)")
        self._data[key] = raw

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def clear(self) -> int:
        removed = len(self._data)
        self._data.clear()
        return removed

    def __len__(self) -> int:
        return len(self._data)


class DiskStorage:
    """One JSON file per key inside ``cache_dir``, written atomically."""

    def __init__(self, cache_dir: Optional[Path] = None):
        if cache_dir:
            self.cache_dir = Path(cache_dir)
        else:
            self.cache_dir = Path(tempfile.gettempdir()) / CACHE_DIR_NAME
        self.cache_dir.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        return self.cache_dir / f"{key}.json"

    def read(self, key: str) -> Optional[str]:
        path = self._path(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

    def write(self, key: str, raw: str) -> None:
        path = self._path(key)
        temp_file = self.cache_dir / f".tmp.{key}.json"
        try:
            temp_file.write_text(raw, encoding="utf-8")
            os.replace(str(temp_file), str(path))
        except OSError as e:
            temp_file.unlink(missing_ok=True)
            # ENOSPC / EDQUOT are the disk flavour of a full quota
            if getattr(e, "errno", None) in (28, 122):
                raise StorageFullError(str(e)) from e
            raise

    def delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)

    def clear(self) -> int:
        removed = 0
        for f in self.cache_dir.glob("*.json"):
            if f.is_file():
                f.unlink()
                removed += 1
        return removed


class FeedCache:
    """Caches post lists per feed URL with a fixed time-to-live."""

    def __init__(
        self,
        storage=None,
        ttl_seconds: float = CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self._storage = storage if storage is not None else DiskStorage()
        self.ttl_seconds = ttl_seconds
        self._clock = clock

    @property
    def storage(self):
        return self._storage

    @staticmethod
    def key_for(url: str) -> str:
        """Deterministic, storage-safe key for a feed URL."""
        return hashlib.md5(url.encode("utf-8")).hexdigest()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def get(self, url: str, max_posts: Optional[int] = None) -> Optional[List[Post]]:
        """Return cached posts for *url*, or None if absent, stale or corrupt.

        An entry fetched under a post limit only answers requests for at most
        that many posts; anything wider is a miss.
        """
        key = self.key_for(url)
        try:
            raw = self._storage.read(key)
        except UnicodeDecodeError as e:
            logger.info(f"{TAG_CACHE} Undecodable entry for {url[:60]} removed: {e}")
            self.delete(url)
            return None
        except OSError as e:
            logger.warning(f"{TAG_CACHE} Read failed for {url[:60]}: {e}")
            return None
        if raw is None:
            return None

        try:
            entry = json.loads(raw)
            timestamp = float(entry["timestamp"])
            posts = [Post.from_dict(p) for p in entry["posts"]]
            limit = entry.get("limit")
            if limit is not None:
                limit = int(limit)
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            logger.info(f"{TAG_CACHE} Corrupt entry for {url[:60]} removed: {e}")
            self.delete(url)
            return None

        age = self._clock() - timestamp
        if age >= self.ttl_seconds:
            logger.debug(f"{TAG_CACHE} Entry for {url[:60]} expired ({age:.0f}s old)")
            self.delete(url)
            return None

        if limit is not None and (max_posts is None or max_posts > limit):
            logger.debug(
                f"{TAG_CACHE} Entry for {url[:60]} holds at most {limit} posts, "
                f"{max_posts or 'all'} wanted"
            )
            return None

        logger.debug(f"{TAG_CACHE} Hit for {url[:60]}: {len(posts)} posts, {age:.0f}s old")
        return posts

    @suppress_exceptions(logger, f"{TAG_CACHE} Cache write skipped", log_level="warning")
    def set(self, url: str, posts: List[Post], max_posts: Optional[int] = None) -> None:
        """Store *posts* for *url*, overwriting any previous entry.

        *max_posts* is the limit the posts were fetched under (None for all).
        """
        raw = json.dumps({
            "posts": [p.to_dict() for p in posts],
            "limit": max_posts,
            "timestamp": self._clock(),
        })
        self._storage.write(self.key_for(url), raw)
        logger.debug(f"{TAG_CACHE} Stored {len(posts)} posts for {url[:60]}")

    @suppress_exceptions(logger, f"{TAG_CACHE} Cache delete failed", log_level="debug")
    def delete(self, url: str) -> None:
        self._storage.delete(self.key_for(url))

    def clear(self) -> int:
        """Remove every cached entry. Returns count removed."""
        try:
            removed = self._storage.clear()
        except OSError as e:
            logger.error(f"{TAG_CACHE} clear failed: {e}")
            return 0
        logger.info(f"{TAG_CACHE} Cleared {removed} entries")
        return removed
