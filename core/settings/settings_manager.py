"""
Settings manager implementation for TickerFeed.

Stores dotted keys in a JSON file. Thread-safe with change notifications.
"""
from typing import Any, Callable, Dict, List, Optional
import json
import os
import threading
from pathlib import Path
from core.logging.logger import get_logger, is_verbose_logging

logger = get_logger(__name__)

# Environment variables that override persisted values: env name -> key
_ENV_OVERRIDES = {
    "TICKERFEED_CACHE_DIR": "cache.directory",
    "TICKERFEED_CACHE_ENABLED": "cache.enabled",
    "TICKERFEED_MAX_RETRIES": "fetch.max_retries",
}


class SettingsManager:
    """
    Centralized settings management.

    Values live in memory under dotted keys ('cache.enabled') and are
    persisted to an optional JSON file. Defaults come from
    ``AppSettings().to_dict()``.
    """

    def __init__(self, path: Optional[Path] = None, apply_env: bool = True):
        """
        Initialize the settings manager.

        Args:
            path: JSON file to load from and save to. None keeps settings
                in memory only.
            apply_env: Apply TICKERFEED_* environment overrides after loading.
        """
        self._path = Path(path) if path else None
        self._values: Dict[str, Any] = {}
        self._lock = threading.RLock()
        self._change_handlers: Dict[str, List[Callable]] = {}

        self._set_defaults()
        if self._path is not None and self._path.exists():
            self.load()
        if apply_env:
            self._apply_env_overrides()

        logger.info("SettingsManager initialized (%s)", self._path or "memory")

    def _set_defaults(self) -> None:
        from core.settings.models import AppSettings

        with self._lock:
            for key, value in AppSettings().to_dict().items():
                self._values.setdefault(key, value)

    def _apply_env_overrides(self) -> None:
        for env_name, key in _ENV_OVERRIDES.items():
            raw = os.getenv(env_name)
            if raw is not None and raw.strip():
                with self._lock:
                    self._values[key] = raw.strip()
                logger.debug("Setting %s overridden by %s", key, env_name)

    @property
    def path(self) -> Optional[Path]:
        return self._path

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get a setting value.

        Args:
            key: Setting key in dot notation (e.g., 'cache.enabled')
            default: Default value if key not found
        """
        with self._lock:
            return self._values.get(key, default)

    @staticmethod
    def to_bool(value: Any, default: bool = False) -> bool:
        """Normalize a stored setting value to bool.

        Accepts common string forms ("true", "1", "yes", "on") as True and
        ("false", "0", "no", "off") as False.
        """
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            v = value.strip().lower()
            if v in ("true", "1", "yes", "on"):
                return True
            if v in ("false", "0", "no", "off"):
                return False
            return default
        if value is None:
            return default
        return bool(value)

    def get_bool(self, key: str, default: bool = False) -> bool:
        """Convenience wrapper around get() that normalizes to bool."""
        return self.to_bool(self.get(key, default), default)

    def set(self, key: str, value: Any) -> None:
        """
        Set a setting value and notify handlers registered for *key*.
        """
        with self._lock:
            old_value = self._values.get(key)
            self._values[key] = value
            handlers = list(self._change_handlers.get(key, ()))

        for handler in handlers:
            try:
                handler(value, old_value)
            except Exception as e:
                logger.error(f"Error in change handler for {key}: {e}")

        if is_verbose_logging():
            logger.debug("Setting changed: %s: %r -> %r", key, old_value, value)
        else:
            logger.debug("Setting changed: %s", key)

    def save(self) -> None:
        """Write settings to the JSON file (no-op for memory-only managers)."""
        if self._path is None:
            return
        with self._lock:
            snapshot = dict(self._values)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        temp_file = self._path.with_suffix(self._path.suffix + ".tmp")
        temp_file.write_text(json.dumps(snapshot, indent=2, sort_keys=True), encoding="utf-8")
        os.replace(str(temp_file), str(self._path))
        logger.debug("Settings saved to %s", self._path)

    def load(self) -> None:
        """Load settings from the JSON file, keeping defaults for missing keys."""
        if self._path is None:
            return
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning("Failed to load settings from %s: %s", self._path, e)
            return
        if not isinstance(data, dict):
            logger.warning("Ignoring settings file %s: not a JSON object", self._path)
            return
        with self._lock:
            self._values.update(data)
        logger.debug("Settings loaded from %s (%d keys)", self._path, len(data))

    def on_changed(self, key: str, handler: Callable[[Any, Any], None]) -> None:
        """
        Register a handler for when a specific setting changes.

        Args:
            key: Setting key to watch
            handler: Callback function(new_value, old_value)
        """
        with self._lock:
            self._change_handlers.setdefault(key, []).append(handler)
        logger.debug(f"Registered change handler for {key}")

    def contains(self, key: str) -> bool:
        with self._lock:
            return key in self._values

    def get_all_keys(self) -> List[str]:
        with self._lock:
            return sorted(self._values)

    def clear(self) -> None:
        """Drop every value and restore defaults."""
        with self._lock:
            self._values.clear()
        self._set_defaults()
        logger.debug("Settings cleared")
