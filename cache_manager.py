from typing import Any, Callable, Dict, Optional
import copy
import logging

from advanced_config import CACHE_SETTINGS
from utils import now_ms

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS = {
    'welcome_message': '',
    'daily_limit': 0,
    'button_labels': {},
    'disabled_buttons': {},
}


class TTLCache:
    """Memo of one value per key with a maximum age.

    The clock returns milliseconds and is injectable so expiry is testable.
    """

    def __init__(self, max_age_seconds: float = None, clock: Callable[[], int] = now_ms):
        if max_age_seconds is None:
            max_age_seconds = CACHE_SETTINGS['settings_max_age']
        self.max_age_ms = max_age_seconds * 1000
        self.clock = clock
        self.memory_cache: Dict[str, Dict[str, Any]] = {}

    def get(self, key: str) -> Optional[Any]:
        data = self.memory_cache.get(key)
        if data is None:
            return None
        if self.clock() - data['fetched_at'] < self.max_age_ms:
            return data['value']
        del self.memory_cache[key]
        return None

    def set(self, key: str, value: Any):
        self.memory_cache[key] = {'value': value, 'fetched_at': self.clock()}

        if len(self.memory_cache) > CACHE_SETTINGS['max_size']:
            oldest_key = min(self.memory_cache.items(), key=lambda x: x[1]['fetched_at'])[0]
            del self.memory_cache[oldest_key]

    def invalidate(self, key: str = None):
        if key is None:
            self.memory_cache.clear()
        else:
            self.memory_cache.pop(key, None)


class SettingsStore:
    """Global bot settings and service flags"""

    KEY = 'bot:settings'

    def __init__(self, db, cache: TTLCache = None):
        self.db = db
        self.cache = cache or TTLCache()

    def get(self) -> Dict[str, Any]:
        cached = self.cache.get(self.KEY)
        if cached is not None:
            return copy.deepcopy(cached)
        raw = self.db.get(self.KEY) or {}
        try:
            daily_limit = max(0, int(raw.get('daily_limit') or 0))
        except (TypeError, ValueError):
            daily_limit = 0
        settings = {
            'welcome_message': raw.get('welcome_message') or '',
            'daily_limit': daily_limit,
            'button_labels': raw.get('button_labels') or {},
            'disabled_buttons': raw.get('disabled_buttons') or {},
        }
        self.cache.set(self.KEY, settings)
        return copy.deepcopy(settings)

    def save(self, settings: Dict[str, Any]):
        merged = dict(DEFAULT_SETTINGS)
        merged.update(settings or {})
        self.db.put(self.KEY, merged)
        self.cache.set(self.KEY, copy.deepcopy(merged))

    def update(self, **changes) -> Dict[str, Any]:
        settings = self.get()
        settings.update(changes)
        self.save(settings)
        return settings

    def is_button_disabled(self, key: str) -> bool:
        return bool(self.get()['disabled_buttons'].get(key))

    def toggle_button(self, key: str) -> bool:
        settings = self.get()
        disabled = dict(settings['disabled_buttons'])
        disabled[key] = not disabled.get(key)
        self.update(disabled_buttons=disabled)
        return disabled[key]

    def label(self, key: str, fallback: str) -> str:
        value = self.get()['button_labels'].get(key)
        return str(value).strip() if value and str(value).strip() else fallback

    # Service flags are read straight from the store
    def is_enabled(self) -> bool:
        value = self.db.get('bot:enabled')
        return True if value is None else bool(value)

    def set_enabled(self, enabled: bool):
        self.db.put('bot:enabled', bool(enabled))

    def is_update_mode(self) -> bool:
        return bool(self.db.get('bot:update_mode'))

    def toggle_update_mode(self) -> bool:
        mode = not self.is_update_mode()
        self.db.put('bot:update_mode', mode)
        logger.info(f"Update mode {'enabled' if mode else 'disabled'}")
        return mode
