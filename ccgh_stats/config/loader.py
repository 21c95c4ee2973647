"""
Settings management and loading.

Builds the immutable settings value shared by every component: API base URL,
sync interval, storage locations and the session log root.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml


DEFAULT_API_URL = "https://claude-github-stats.vercel.app"
DEFAULT_SYNC_INTERVAL_MS = 10 * 60 * 1000
DEFAULT_LOG_MAX_BYTES = 1024 * 1024
DEFAULT_LOG_EXTENSION = ".jsonl"


def _default_storage_dir() -> Path:
    return Path.home() / ".claude-stats"


def _default_logs_root() -> Path:
    return Path.home() / ".claude" / "projects"


def _default_legacy_state_file() -> Path:
    return Path.home() / ".claude-stats-state"


@dataclass(frozen=True)
class SyncSettings:
    """Immutable runtime settings, constructed once at process start."""
    api_url: str = DEFAULT_API_URL
    sync_interval_ms: int = DEFAULT_SYNC_INTERVAL_MS
    storage_dir: Path = field(default_factory=_default_storage_dir)
    logs_root: Path = field(default_factory=_default_logs_root)
    log_extension: str = DEFAULT_LOG_EXTENSION
    legacy_state_file: Path = field(default_factory=_default_legacy_state_file)
    log_max_bytes: int = DEFAULT_LOG_MAX_BYTES

    def __post_init__(self):
        """Validate settings values."""
        if not self.api_url.startswith(("http://", "https://")):
            raise ValueError("api_url must start with http:// or https://")
        if self.sync_interval_ms <= 0:
            raise ValueError("sync interval must be > 0")
        if self.log_max_bytes <= 0:
            raise ValueError("log_max_bytes must be > 0")
        if not self.log_extension.startswith("."):
            raise ValueError("log_extension must start with '.'")
        # Trailing slash would produce '//api/...' URLs
        object.__setattr__(self, "api_url", self.api_url.rstrip("/"))

    @property
    def config_file(self) -> Path:
        return self.storage_dir / "config.json"

    @property
    def cache_file(self) -> Path:
        return self.storage_dir / "cache.json"

    @property
    def log_file(self) -> Path:
        return self.storage_dir / "sync.log"

    def widget_url(self, public_id: str) -> str:
        """Public SVG widget URL for a registered user."""
        return f"{self.api_url}/api/w/{public_id}.svg"


def default_settings_path() -> Path:
    """Location of the optional user settings file."""
    return _default_storage_dir() / "settings.yaml"


def load_settings(path: Optional[str] = None) -> SyncSettings:
    """Load settings, applying overrides from a YAML file when present.

    A missing file is not an error: the built-in defaults apply. A file that
    exists is validated strictly so a typo never silently points the agent
    at the wrong server or log directory.

    Args:
        path: Path to YAML settings file (defaults to ~/.claude-stats/settings.yaml)

    Returns:
        Validated SyncSettings object

    Raises:
        yaml.YAMLError: If YAML is invalid
        ValueError: If settings are invalid
    """
    settings_path = Path(path) if path else default_settings_path()
    if not settings_path.exists():
        return SyncSettings()

    with open(settings_path, 'r', encoding='utf-8') as f:
        try:
            raw_settings = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in settings file {settings_path}: {e}")

    if raw_settings is None:
        return SyncSettings()
    if not isinstance(raw_settings, dict):
        raise ValueError("Settings file must contain a mapping")

    return SyncSettings(**_parse_overrides(raw_settings))


def _parse_overrides(data: Dict[str, Any]) -> Dict[str, Any]:
    """Translate and validate raw YAML keys into SyncSettings arguments.

    Args:
        data: Raw settings mapping

    Returns:
        Keyword arguments for SyncSettings

    Raises:
        ValueError: If a key is unknown or a value has the wrong type
    """
    allowed_keys = {
        'api_url', 'sync_interval_minutes', 'storage_dir',
        'logs_root', 'log_extension', 'log_max_bytes'
    }
    unknown_keys = set(data.keys()) - allowed_keys
    if unknown_keys:
        raise ValueError(f"Unknown settings keys: {unknown_keys}")

    overrides: Dict[str, Any] = {}

    for key in ('api_url', 'log_extension'):
        if key in data:
            if not isinstance(data[key], str):
                raise ValueError(f"'{key}' must be a string")
            overrides[key] = data[key]

    for key in ('storage_dir', 'logs_root'):
        if key in data:
            if not isinstance(data[key], str):
                raise ValueError(f"'{key}' must be a string path")
            overrides[key] = Path(data[key]).expanduser()

    if 'sync_interval_minutes' in data:
        minutes = data['sync_interval_minutes']
        if isinstance(minutes, bool) or not isinstance(minutes, (int, float)):
            raise ValueError("'sync_interval_minutes' must be a number")
        overrides['sync_interval_ms'] = int(minutes * 60 * 1000)

    if 'log_max_bytes' in data:
        max_bytes = data['log_max_bytes']
        if isinstance(max_bytes, bool) or not isinstance(max_bytes, int):
            raise ValueError("'log_max_bytes' must be an integer")
        overrides['log_max_bytes'] = max_bytes

    return overrides
