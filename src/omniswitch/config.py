from __future__ import annotations

import json
import os
import shlex
import sys
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from .common_utils import atomic_write_json, safe_print
from .i18n import _
from .linker import LINK_STRATEGIES

APP_NAME = "omniswitch"
ROOT_ENV_VAR = "OMNISWITCH_ROOT"
CONFIG_DIR_ENV_VAR = "OMNISWITCH_CONFIG_DIR"


def default_data_dir(env: Mapping[str, str]) -> Path:
    """Per-user data directory that holds the store when nothing overrides it."""
    if sys.platform == "win32" and env.get("LOCALAPPDATA"):
        return Path(env["LOCALAPPDATA"]) / APP_NAME
    base = env.get("XDG_DATA_HOME")
    if base:
        return Path(base) / APP_NAME
    return Path.home() / ".local" / "share" / APP_NAME


def default_config_dir(env: Mapping[str, str]) -> Path:
    if env.get(CONFIG_DIR_ENV_VAR):
        return Path(env[CONFIG_DIR_ENV_VAR])
    base = env.get("XDG_CONFIG_HOME")
    if base:
        return Path(base) / APP_NAME
    return Path.home() / ".config" / APP_NAME


class ConfigManager:
    """
    Loads omniswitch's JSON config file and layers it over sensible defaults.

    The store root is resolved here once (``--root`` > ``OMNISWITCH_ROOT`` >
    ``store_root`` from the file > per-user data dir) and then handed to the
    components explicitly.
    """

    def __init__(
        self,
        env: Optional[Mapping[str, str]] = None,
        config_dir: Optional[Path] = None,
        suppress_init_messages: bool = False,
    ):
        self.env = os.environ if env is None else env
        self.suppress_init_messages = suppress_init_messages
        self.config_dir = Path(config_dir) if config_dir else default_config_dir(self.env)
        self.config_path = self.config_dir / "config.json"
        self.config = self._load_config()

    def _get_sensible_defaults(self) -> Dict[str, Any]:
        return {
            "store_root": str(default_data_dir(self.env)),
            "cargo_executable": "cargo",
            "cargo_install_args": [],
            "link_strategy": "auto",
            "lock_timeout": 0,
            "language": "en",
        }

    def _load_config(self) -> Dict[str, Any]:
        config = self._get_sensible_defaults()
        if not self.config_path.exists():
            return config
        try:
            with open(self.config_path, "r", encoding="utf-8") as f:
                stored = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            if not self.suppress_init_messages:
                safe_print(
                    _("⚠️ Warning: config file {} is unreadable ({}), using defaults.").format(
                        self.config_path, e
                    ),
                    file=sys.stderr,
                )
            return config
        if not isinstance(stored, dict):
            self._warn_invalid(_("top level is not an object"))
            return config
        defaults = self._get_sensible_defaults()
        for key, value in stored.items():
            if key not in defaults:
                continue
            try:
                config[key] = self._coerce(key, value, defaults[key])
            except (TypeError, ValueError) as e:
                self._warn_invalid(_("{}: {}").format(key, e), key)
        return config

    def _warn_invalid(self, reason, key=None):
        if self.suppress_init_messages:
            return
        if key is None:
            message = _("⚠️ Warning: config file {} is invalid ({}), using defaults.")
            safe_print(message.format(self.config_path, reason), file=sys.stderr)
        else:
            message = _("⚠️ Warning: bad value in config file {} ({}), using the default for '{}'.")
            safe_print(message.format(self.config_path, reason, key), file=sys.stderr)

    def get(self, key, default=None):
        """Get a configuration value, with an optional default."""
        return self.config.get(key, default)

    def set(self, key, value):
        """Validate and set a configuration value, then save the file atomically."""
        defaults = self._get_sensible_defaults()
        if key not in defaults:
            raise KeyError(key)
        self.config[key] = self._coerce(key, value, defaults[key])
        atomic_write_json(self.config_path, self.config)
        return self.config[key]

    def _coerce(self, key, value, default):
        """Convert ``value`` to the type of ``default``; TypeError/ValueError when it cannot be."""
        if isinstance(default, list):
            if isinstance(value, str):
                return shlex.split(value)
            if isinstance(value, (list, tuple)) and all(isinstance(v, str) for v in value):
                return list(value)
            raise TypeError(_("expected a list of strings, got {!r}").format(value))
        if value is None or isinstance(value, (bool, dict, list)):
            raise TypeError(_("unexpected value {!r}").format(value))
        if key == "lock_timeout":
            timeout = float(value)
            if timeout < 0:
                raise ValueError(_("lock_timeout must not be negative"))
            return timeout
        if key == "link_strategy" and value not in LINK_STRATEGIES:
            raise ValueError(
                _("link_strategy must be one of: {}").format(", ".join(LINK_STRATEGIES))
            )
        return str(value)

    def store_root(self, override: Optional[str] = None) -> Path:
        if override:
            return Path(override).expanduser()
        if self.env.get(ROOT_ENV_VAR):
            return Path(self.env[ROOT_ENV_VAR]).expanduser()
        return Path(self.config["store_root"]).expanduser()
