"""
Singleton configuration loader for the asset catalog.

Layered config: system config.yaml + per-user user-settings.yaml + env vars.
User settings take precedence over system defaults; environment variables
take precedence over both.
"""

import os
import logging
import platform
from pathlib import Path
from typing import Any, Optional

import yaml

logger = logging.getLogger(__name__)

_PROJECT_ROOT = Path(__file__).parent.parent.parent
_CONFIG_PATH = _PROJECT_ROOT / "config.yaml"

# env key → config.yaml dotted path
_ENV_OVERRIDES = {
    "CATALOG_DB_PATH": "database.path",
    "OLLAMA_HOST": "embedding.host",
    "EMBEDDING_MODEL": "embedding.model",
}

_instance: Optional["AppConfig"] = None


def _resolve_user_settings_path() -> Optional[Path]:
    """Resolve user-settings.yaml path from env var or platform default."""
    env_path = os.environ.get("CATALOG_USER_SETTINGS_PATH")
    if env_path:
        return Path(env_path)

    system = platform.system()
    if system == "Darwin":
        base = Path.home() / "Library" / "Application Support" / "AssetCatalog"
    elif system == "Windows":
        base = Path(os.environ.get("APPDATA", str(Path.home()))) / "AssetCatalog"
    else:
        xdg = os.environ.get("XDG_CONFIG_HOME", str(Path.home() / ".config"))
        base = Path(xdg) / "asset-catalog"

    return base / "user-settings.yaml"


class AppConfig:
    """Layered configuration: env > user-settings.yaml > config.yaml."""

    def __init__(self, path: Path = _CONFIG_PATH,
                 user_settings_path: Optional[Path] = None):
        if path.exists():
            with open(path, "r", encoding="utf-8") as f:
                self._data: dict = yaml.safe_load(f) or {}
            logger.info(f"Loaded system config from {path}")
        else:
            self._data = {}
            logger.warning(f"config.yaml not found at {path}, using defaults")

        self._user_data: dict = {}
        self._user_settings_path = user_settings_path or _resolve_user_settings_path()
        self._load_user_settings()

        self._env_data: dict = {}
        self._apply_env_overrides()

    # ── public API ──────────────────────────────────────

    def get(self, dotted_key: str, default: Any = None) -> Any:
        """
        Retrieve a value by dotted path.

        Example:
            cfg.get("embedding.model")          -> "nomic-embed-text"
            cfg.get("search.hybrid_limit", 50)  -> 50
        """
        for layer in (self._env_data, self._user_data, self._data):
            val = self._get_from_dict(layer, dotted_key)
            if val is not None:
                return val
        return default

    def section(self, key: str) -> dict:
        """Return a top-level section as a dict, with user overrides merged."""
        merged: dict = {}
        for layer in (self._data, self._user_data, self._env_data):
            val = layer.get(key, {})
            if isinstance(val, dict):
                merged.update(val)
        return merged

    def set_user_settings_path(self, path: Path):
        """Set user settings path at runtime and reload."""
        self._user_settings_path = path
        self._load_user_settings()

    @property
    def user_settings_path(self) -> Optional[Path]:
        return self._user_settings_path

    # ── internals ───────────────────────────────────────

    def _load_user_settings(self):
        """Load user-settings.yaml if it exists."""
        if self._user_settings_path and self._user_settings_path.exists():
            try:
                with open(self._user_settings_path, "r", encoding="utf-8") as f:
                    self._user_data = yaml.safe_load(f) or {}
                logger.info(f"Loaded user settings from {self._user_settings_path}")
            except (OSError, yaml.YAMLError) as e:
                logger.warning(f"Failed to load user settings: {e}")
                self._user_data = {}
        else:
            self._user_data = {}

    @staticmethod
    def _get_from_dict(data: dict, dotted_key: str) -> Any:
        """Traverse nested dict by dotted key. Returns None if not found."""
        node = data
        for p in dotted_key.split("."):
            if not isinstance(node, dict):
                return None
            node = node.get(p)
            if node is None:
                return None
        return node

    def _apply_env_overrides(self):
        for env_key, dotted_path in _ENV_OVERRIDES.items():
            val = os.environ.get(env_key)
            if val is not None:
                self._set_dotted(self._env_data, dotted_path, val)
                logger.debug(f"env override: {env_key} -> {dotted_path}")

    @staticmethod
    def _set_dotted(data: dict, dotted_key: str, value: Any):
        parts = dotted_key.split(".")
        node = data
        for p in parts[:-1]:
            node = node.setdefault(p, {})
        node[parts[-1]] = value


def get_config() -> AppConfig:
    """Return the singleton AppConfig instance."""
    global _instance
    if _instance is None:
        _instance = AppConfig()
    return _instance


def reset_config(config: Optional[AppConfig] = None) -> None:
    """Replace (or drop) the singleton; the next get_config() reloads."""
    global _instance
    _instance = config
