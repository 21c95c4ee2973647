"""
Local sync state store.

Persists credentials (config.json) and the last sync time (cache.json) as
two independent pretty-printed JSON documents under the storage directory.
"""

import json
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Optional

from ccgh_stats.config.loader import SyncSettings
from .models import SyncCache, SyncConfig


def _read_json(path: Path) -> Optional[Any]:
    """Decode a JSON document, or None if it is missing or unreadable.

    Missing state is the normal first-run condition and a half-written file
    is what an interrupted run leaves behind; neither may crash a caller.
    """
    try:
        with open(path, 'r', encoding='utf-8') as f:
            return json.load(f)
    except (OSError, ValueError):
        return None


class SyncStateStore:
    """Repository for the agent's local credentials and sync cache.

    The clock returns epoch seconds and is injectable for tests.
    """

    def __init__(self, settings: SyncSettings, clock: Callable[[], float] = time.time):
        """Initialize the store.

        Args:
            settings: Runtime settings holding the storage paths and interval
            clock: Callable returning the current time in epoch seconds
        """
        self.settings = settings
        self.clock = clock

    def now_ms(self) -> int:
        return int(self.clock() * 1000)

    def _ensure_storage_dir(self) -> None:
        self.settings.storage_dir.mkdir(parents=True, exist_ok=True)

    def _write_json(self, path: Path, data: Any) -> None:
        self._ensure_storage_dir()
        path.write_text(json.dumps(data, indent=2), encoding='utf-8')

    # Config (secrets only)

    def read_config(self) -> Optional[SyncConfig]:
        """Load stored credentials, or None if absent or corrupt."""
        return SyncConfig.from_dict(_read_json(self.settings.config_file))

    def write_config(self, config: SyncConfig) -> None:
        self._write_json(self.settings.config_file, config.to_dict())

    def is_registered(self) -> bool:
        """True iff credentials exist and both fields are non-empty."""
        config = self.read_config()
        return config is not None and config.is_complete

    def widget_url(self) -> Optional[str]:
        config = self.read_config()
        if config is None or not config.public_id:
            return None
        return self.settings.widget_url(config.public_id)

    # Cache (last sync time)

    def read_cache(self) -> SyncCache:
        """Load the sync cache; an empty cache if absent or corrupt."""
        data = _read_json(self.settings.cache_file)
        if not isinstance(data, dict):
            data = {}
        return SyncCache(data=data)

    def write_cache(self, cache: SyncCache) -> None:
        self._write_json(self.settings.cache_file, cache.data)

    def last_sync_time(self) -> int:
        """Epoch milliseconds of the last sync, 0 if never synced."""
        return self.read_cache().last_sync_time

    def last_sync_date(self) -> Optional[str]:
        """UTC calendar day (YYYY-MM-DD) of the last sync, or None."""
        last_sync = self.last_sync_time()
        if not last_sync:
            return None
        return datetime.fromtimestamp(last_sync / 1000, tz=timezone.utc).strftime("%Y-%m-%d")

    def should_sync(self) -> bool:
        """True iff never synced or the sync interval has fully elapsed."""
        last_sync = self.last_sync_time()
        if not last_sync:
            return True
        return self.now_ms() - last_sync >= self.settings.sync_interval_ms

    def update_sync_time(self) -> None:
        """Stamp the cache with the current time, keeping any other fields."""
        cache = self.read_cache()
        cache.last_sync_time = self.now_ms()
        self.write_cache(cache)

    # Migration from the single-file format

    def migrate_legacy_state(self) -> bool:
        """Move credentials out of the legacy state file and delete it.

        Existing credentials are never overwritten. A malformed or unreadable
        legacy file counts as nothing to migrate and is left in place.

        Returns:
            True if a legacy file was consumed
        """
        legacy_file = self.settings.legacy_state_file
        if not legacy_file.exists():
            return False

        old_state = _read_json(legacy_file)
        if not isinstance(old_state, dict):
            return False

        legacy_config = SyncConfig.from_dict(old_state)
        try:
            if legacy_config is not None and legacy_config.is_complete and not self.is_registered():
                self.write_config(legacy_config)
            legacy_file.unlink()
        except OSError:
            return False
        return True
