"""Configuration management for packsync."""

import json
import logging
import os
from pathlib import Path
from typing import Any, Optional, Protocol

from .exceptions import ConfigError
from .utils import DEFAULT_THREAD_COUNT, DEFAULT_TIMEOUT

logger = logging.getLogger(__name__)

# Maximum number of remembered target directories
MAX_RECENT_DIRECTORIES = 10

DEFAULTS: dict[str, Any] = {
    "thread_count": DEFAULT_THREAD_COUNT,
    "recent_directories": [],
    "disable_hash_check": False,
    "disable_size_check": False,
    "use_trash": True,
    "timeout": DEFAULT_TIMEOUT,
}


class SettingsStore(Protocol):
    """Key-value settings interface used by the sync orchestrator."""

    def get(self, key: str, default: Any = None) -> Any: ...

    def set(self, key: str, value: Any) -> None: ...


class MemorySettings:
    """In-memory settings store, never persisted."""

    def __init__(self, initial: Optional[dict[str, Any]] = None):
        self._values: dict[str, Any] = dict(initial or {})

    def get(self, key: str, default: Any = None) -> Any:
        return self._values.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._values[key] = value


def remember_directory(settings: SettingsStore, directory: str) -> list[str]:
    """Move a directory to the front of the recent directory list.

    Args:
        settings: Store to update
        directory: Target directory that was selected

    Returns:
        Updated list, most recent first
    """
    recent = [d for d in settings.get("recent_directories", []) or [] if d != directory]
    recent.insert(0, directory)
    recent = recent[:MAX_RECENT_DIRECTORIES]
    settings.set("recent_directories", recent)
    return recent


class Config:
    """Persistent settings stored as JSON in the user's config directory.

    The file is read lazily on first access and rewritten on every change.
    The environment variable PACKSYNC_CONFIG_DIR overrides the directory and
    PACKSYNC_THREADS overrides the stored thread count.
    """

    CONFIG_FILE_NAME = "config.json"

    def __init__(self, config_dir: Optional[Path] = None):
        """Initialize configuration.

        Args:
            config_dir: Directory holding config.json. Defaults to
                PACKSYNC_CONFIG_DIR or ~/.config/packsync
        """
        if config_dir is None:
            env_dir = os.environ.get("PACKSYNC_CONFIG_DIR")
            config_dir = (
                Path(env_dir) if env_dir else Path.home() / ".config" / "packsync"
            )
        self.config_dir = config_dir
        self._values: Optional[dict[str, Any]] = None

    def get_config_path(self) -> Path:
        """Get the path to the config file."""
        return self.config_dir / self.CONFIG_FILE_NAME

    def _load(self) -> dict[str, Any]:
        if self._values is not None:
            return self._values

        path = self.get_config_path()
        values: dict[str, Any] = {}
        if path.exists():
            try:
                with open(path, encoding="utf-8") as f:
                    data = json.load(f)
            except (OSError, json.JSONDecodeError) as e:
                raise ConfigError(f"Failed to read config file {path}: {e}") from e
            if not isinstance(data, dict):
                raise ConfigError(f"Config file {path} must contain a JSON object")
            values = data
            logger.debug(f"Loaded config from {path}")
        self._values = values
        return values

    def _save(self) -> None:
        path = self.get_config_path()
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "w", encoding="utf-8") as f:
                json.dump(self._load(), f, indent=2)
        except OSError as e:
            raise ConfigError(f"Failed to write config file {path}: {e}") from e
        logger.debug(f"Saved config to {path}")

    def get(self, key: str, default: Any = None) -> Any:
        values = self._load()
        if key in values:
            return values[key]
        if default is not None:
            return default
        return DEFAULTS.get(key)

    def set(self, key: str, value: Any) -> None:
        values = self._load()
        if key in values and values[key] == value:
            return
        values[key] = value
        self._save()

    def as_dict(self) -> dict[str, Any]:
        """Return effective settings with defaults filled in."""
        merged = dict(DEFAULTS)
        merged.update(self._load())
        merged["thread_count"] = self.thread_count
        return merged

    @property
    def thread_count(self) -> int:
        """Number of concurrent downloads."""
        env_threads = os.environ.get("PACKSYNC_THREADS")
        if env_threads:
            try:
                return max(1, int(env_threads))
            except ValueError:
                logger.warning(f"Ignoring invalid PACKSYNC_THREADS={env_threads!r}")
        value = self.get("thread_count")
        try:
            return max(1, int(value))
        except (TypeError, ValueError):
            return DEFAULT_THREAD_COUNT

    @thread_count.setter
    def thread_count(self, value: int) -> None:
        if value < 1:
            raise ConfigError("thread_count must be at least 1")
        self.set("thread_count", value)

    @property
    def use_trash(self) -> bool:
        """Whether removed files go to the system trash."""
        return bool(self.get("use_trash"))

    @property
    def timeout(self) -> float:
        return float(self.get("timeout"))

    @property
    def recent_directories(self) -> list[str]:
        return list(self.get("recent_directories") or [])


# Global config instance
config = Config()
