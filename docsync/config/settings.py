#region Imports
import json
import logging
import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Optional

from docsync.config.user_config import get_app_data_dir
#endregion


#region Constants
SETTINGS_FILE = "settings.json"
ENV_PREFIX = "DOCSYNC_"
#endregion

logger = logging.getLogger(__name__)


#region Data Structure
@dataclass(frozen=True)
class SyncSettings:
    """Tuning constants for version history and the retry queue."""
    version_history_max: int = 200
    version_history_dedupe: bool = True
    retry_initial_delay: float = 10.0  # seconds
    retry_backoff_factor: float = 2.0
    retry_backoff_cap: float = 120.0  # seconds
    retry_max_attempts: int = 5
    branch: str = "main"

    def backoff_delay(self, attempt: int) -> float:
        """
        Delay before the next retry, without jitter.

        Args:
            attempt: Attempt counter after increment

        Returns:
            Delay in seconds, capped at retry_backoff_cap
        """
        return min(
            self.retry_initial_delay * (self.retry_backoff_factor ** attempt),
            self.retry_backoff_cap,
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SyncSettings":
        """
        Build settings from a mapping, ignoring unknown keys.

        Values are coerced to the field's default type.
        """
        values = {}
        for field in fields(cls):
            if field.name not in data or data[field.name] is None:
                continue
            values[field.name] = _coerce(data[field.name], type(getattr(cls, field.name)))
        return cls(**values)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
#endregion


#region Helpers
def _coerce(value: Any, target: type) -> Any:
    if target is bool and isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return target(value)


def _env_overrides() -> dict[str, str]:
    """Collect DOCSYNC_<FIELD> environment overrides."""
    overrides = {}
    for field in fields(SyncSettings):
        value = os.getenv(ENV_PREFIX + field.name.upper())
        if value is not None:
            overrides[field.name] = value
    return overrides
#endregion


#region File Operations

def _get_settings_path() -> Path:
    """Get the path to the settings JSON file."""
    return get_app_data_dir() / SETTINGS_FILE


def load_settings(path: Optional[Path] = None) -> SyncSettings:
    """
    Load settings from disk, then apply environment overrides.

    Missing keys fall back to defaults; a corrupt file is ignored.

    Args:
        path: Settings file (default: settings.json in app data dir)

    Returns:
        SyncSettings instance
    """
    path = path or _get_settings_path()
    data: dict[str, Any] = {}

    if path.exists():
        try:
            with open(path, "r") as f:
                loaded = json.load(f)
            if isinstance(loaded, dict):
                data.update(loaded)
        except (json.JSONDecodeError, IOError) as e:
            logger.warning("Ignoring unreadable settings file %s: %s", path, e)

    data.update(_env_overrides())

    try:
        return SyncSettings.from_dict(data)
    except (TypeError, ValueError) as e:
        logger.warning("Invalid settings, using defaults: %s", e)
        return SyncSettings()


def save_settings(settings: SyncSettings, path: Optional[Path] = None) -> None:
    """
    Save settings to disk.

    Args:
        settings: Settings to persist
        path: Settings file (default: settings.json in app data dir)
    """
    path = path or _get_settings_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        json.dump(settings.to_dict(), f, indent=2)

#endregion
