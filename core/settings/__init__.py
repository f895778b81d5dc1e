"""Settings storage and typed settings models."""

from .settings_manager import SettingsManager
from .models import AppSettings, CacheSettings, FetchSettings, RelaySettings

__all__ = ['SettingsManager', 'AppSettings', 'CacheSettings', 'FetchSettings', 'RelaySettings']
