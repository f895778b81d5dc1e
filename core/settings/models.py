"""
Typed settings models.

Each dataclass reads its values from anything exposing ``get(key, default)``
(a SettingsManager or a plain dict keyed by dotted names) and can write them
back with ``to_dict()``. Invalid values fall back to the defaults.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from feeds.constants import (
    CACHE_TTL_SECONDS,
    DEFAULT_DEBOUNCE_SECONDS,
    DEFAULT_MAX_RETRIES,
    DEFAULT_RELAYS,
    DEFAULT_RETRY_DELAY_SECONDS,
)
from feeds.models import RelayDescriptor, ResponseShape
from core.logging.logger import get_logger
from core.settings.settings_manager import SettingsManager

logger = get_logger(__name__)


def _to_number(value: Any, default, cast=float):
    if isinstance(value, bool):
        return default
    try:
        return cast(value)
    except (TypeError, ValueError):
        return default


# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------

@dataclass
class CacheSettings:
    enabled: bool = True
    directory: str = ""
    ttl_seconds: float = CACHE_TTL_SECONDS

    @classmethod
    def from_settings(cls, settings) -> "CacheSettings":
        ttl = _to_number(settings.get("cache.ttl_seconds", CACHE_TTL_SECONDS), CACHE_TTL_SECONDS)
        return cls(
            enabled=SettingsManager.to_bool(settings.get("cache.enabled", True), True),
            directory=str(settings.get("cache.directory", "") or ""),
            ttl_seconds=ttl if ttl > 0 else CACHE_TTL_SECONDS,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cache.enabled": self.enabled,
            "cache.directory": self.directory,
            "cache.ttl_seconds": self.ttl_seconds,
        }


# ---------------------------------------------------------------------------
# Fetch policy
# ---------------------------------------------------------------------------

@dataclass
class FetchSettings:
    max_retries: int = DEFAULT_MAX_RETRIES
    retry_delay: float = DEFAULT_RETRY_DELAY_SECONDS
    debounce: float = DEFAULT_DEBOUNCE_SECONDS
    max_posts: Optional[int] = None

    @classmethod
    def from_settings(cls, settings) -> "FetchSettings":
        retries = _to_number(settings.get("fetch.max_retries", DEFAULT_MAX_RETRIES), DEFAULT_MAX_RETRIES, int)
        delay = _to_number(settings.get("fetch.retry_delay", DEFAULT_RETRY_DELAY_SECONDS), DEFAULT_RETRY_DELAY_SECONDS)
        debounce = _to_number(settings.get("fetch.debounce", DEFAULT_DEBOUNCE_SECONDS), DEFAULT_DEBOUNCE_SECONDS)
        max_posts = _to_number(settings.get("fetch.max_posts", None), None, int)
        return cls(
            max_retries=max(0, retries),
            retry_delay=max(0.0, delay),
            debounce=max(0.0, debounce),
            max_posts=max_posts if max_posts and max_posts > 0 else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fetch.max_retries": self.max_retries,
            "fetch.retry_delay": self.retry_delay,
            "fetch.debounce": self.debounce,
            "fetch.max_posts": self.max_posts,
        }


# ---------------------------------------------------------------------------
# Relays
# ---------------------------------------------------------------------------

@dataclass
class RelaySettings:
    relays: List[RelayDescriptor] = field(default_factory=lambda: list(DEFAULT_RELAYS))

    @classmethod
    def from_settings(cls, settings) -> "RelaySettings":
        raw = settings.get("relays", None)
        if not raw:
            return cls()

        relays: List[RelayDescriptor] = []
        for entry in raw:
            relay = cls._descriptor_from_dict(entry)
            if relay is not None:
                relays.append(relay)
        if not relays:
            logger.warning("No valid relays configured, using defaults")
            return cls()
        return cls(relays=relays)

    @staticmethod
    def _descriptor_from_dict(entry: Any) -> Optional[RelayDescriptor]:
        if not isinstance(entry, dict):
            return None
        name = entry.get("name")
        template = entry.get("endpoint")
        if not name or not template or "{url}" not in str(template):
            logger.warning("Skipping relay without name or {url} endpoint: %r", entry)
            return None
        try:
            shape = ResponseShape(entry.get("shape", ResponseShape.RAW_XML.value))
        except ValueError:
            shape = ResponseShape.RAW_XML
        timeout = _to_number(entry.get("timeout", 3.0), 3.0)
        return RelayDescriptor(
            name=str(name),
            endpoint_template=str(template),
            timeout=timeout if timeout > 0 else 3.0,
            response_shape=shape,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "relays": [
                {
                    "name": r.name,
                    "endpoint": r.endpoint_template,
                    "timeout": r.timeout,
                    "shape": r.response_shape.value,
                }
                for r in self.relays
            ]
        }


# ---------------------------------------------------------------------------
# Aggregate
# ---------------------------------------------------------------------------

@dataclass
class AppSettings:
    cache: CacheSettings = field(default_factory=CacheSettings)
    fetch: FetchSettings = field(default_factory=FetchSettings)
    relays: RelaySettings = field(default_factory=RelaySettings)

    @classmethod
    def from_settings(cls, settings) -> "AppSettings":
        return cls(
            cache=CacheSettings.from_settings(settings),
            fetch=FetchSettings.from_settings(settings),
            relays=RelaySettings.from_settings(settings),
        )

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {}
        result.update(self.cache.to_dict())
        result.update(self.fetch.to_dict())
        result.update(self.relays.to_dict())
        return result
