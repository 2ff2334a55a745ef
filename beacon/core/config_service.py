"""Layered configuration service for beacon.

Priority (highest to lowest):
1. Environment variables (BEACON_*)
2. Project config (.beacon.toml in current directory)
3. Global config (~/.config/beacon/config.toml)
4. Built-in defaults

The telemetry opt-out flag is deliberately not part of these layers; it is read
by beacon.telemetry.consent straight from the process environment.
"""
from __future__ import annotations

import copy
import logging
import math
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from beacon.errors import ConfigError

logger = logging.getLogger("beacon.config")

# TOML reading: stdlib in 3.11+, tomli on 3.10
if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib


DEFAULT_ENDPOINT = "https://dc.services.visualstudio.com/v2/track"
DEFAULT_PROJECT_KEY = "5c0a6f3e-8d41-4b7e-9a2c-1f7e3b9d6a40"

# Default configuration values
DEFAULTS: dict[str, Any] = {
    "telemetry": {
        "transport": "http",
        "endpoint": DEFAULT_ENDPOINT,
        "project_key": DEFAULT_PROJECT_KEY,
        "timeout": 2.0,
        "flush_timeout": 3.0,
        "max_queue_size": 2048,
        "batch_size": 50,
        "schedule_delay": 1.0,
        "cache_dir": "",
    },
    "host": {
        "version": "",
    },
}

# Mapping of env vars to config paths
ENV_VAR_MAP = {
    "BEACON_TELEMETRY_TRANSPORT": "telemetry.transport",
    "BEACON_TELEMETRY_ENDPOINT": "telemetry.endpoint",
    "BEACON_PROJECT_KEY": "telemetry.project_key",
    "BEACON_FLUSH_TIMEOUT": "telemetry.flush_timeout",
    "BEACON_CACHE_DIR": "telemetry.cache_dir",
    "BEACON_HOST_VERSION": "host.version",
}

TRANSPORTS = ("http", "otlp")


def _global_config_dir() -> Path:
    """Return the global config directory: ~/.config/beacon/."""
    return Path.home() / ".config" / "beacon"


def _global_config_path() -> Path:
    """Return the global config file path."""
    return _global_config_dir() / "config.toml"


def _project_config_path() -> Path:
    """Return the project config file path (.beacon.toml in cwd)."""
    return Path.cwd() / ".beacon.toml"


def _read_toml(path: Path) -> dict:
    """Read a TOML file, returning empty dict if missing or unreadable."""
    if not path.is_file():
        return {}
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except Exception as e:
        logger.debug("Failed to read %s: %s", path, e)
        return {}


def _deep_merge(base: dict, override: dict) -> dict:
    """Deep merge override into base (override wins)."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _get_nested(data: dict, dotted_key: str, default: Any = None) -> Any:
    """Get a value from a nested dict using dotted key notation."""
    keys = dotted_key.split(".")
    current = data
    for key in keys:
        if not isinstance(current, dict):
            return default
        current = current.get(key)
        if current is None:
            return default
    return current


def _set_nested(data: dict, dotted_key: str, value: Any) -> None:
    """Set a value in a nested dict using dotted key notation."""
    keys = dotted_key.split(".")
    current = data
    for key in keys[:-1]:
        if key not in current or not isinstance(current[key], dict):
            current[key] = {}
        current = current[key]
    current[keys[-1]] = value


def _coerce_positive(key: str, value: Any, kind: type) -> Any:
    """Convert a config value to a positive int/float or raise ConfigError."""
    if isinstance(value, bool):
        raise ConfigError(key, value, "expected a number")
    try:
        number = kind(value)
    except (TypeError, ValueError, OverflowError):
        raise ConfigError(key, value, "expected a number")
    if not math.isfinite(number):
        raise ConfigError(key, value, "must be finite")
    if number <= 0:
        raise ConfigError(key, value, "must be positive")
    return number


@dataclass(frozen=True)
class TelemetrySettings:
    """Validated telemetry settings consumed by the pipeline."""

    transport: str
    endpoint: str
    project_key: str
    timeout: float
    flush_timeout: float
    max_queue_size: int
    batch_size: int
    schedule_delay: float
    cache_dir: Path
    host_version: str = ""


@dataclass
class ResolvedConfig:
    """Fully resolved configuration after merging all layers."""
    data: dict = field(default_factory=dict)
    global_config_path: Optional[Path] = None
    project_config_path: Optional[Path] = None

    def get(self, dotted_key: str, default: Any = None) -> Any:
        """Get a config value using dotted key notation."""
        return _get_nested(self.data, dotted_key, default)


class ConfigService:
    """Layered configuration service.

    Resolves config from multiple sources with clear precedence:
    1. Environment variables (BEACON_*)
    2. Project config (.beacon.toml)
    3. Global config (~/.config/beacon/config.toml)
    4. Built-in defaults
    """

    def __init__(self):
        self._resolved: Optional[ResolvedConfig] = None

    def resolve(self, force: bool = False) -> ResolvedConfig:
        """Resolve the full config from all layers."""
        if self._resolved is not None and not force:
            return self._resolved

        merged = copy.deepcopy(DEFAULTS)

        global_path = _global_config_path()
        global_data = _read_toml(global_path)
        if global_data:
            merged = _deep_merge(merged, global_data)
            logger.debug("Loaded global config from %s", global_path)

        project_path = _project_config_path()
        project_data = _read_toml(project_path)
        if project_data:
            merged = _deep_merge(merged, project_data)
            logger.debug("Loaded project config from %s", project_path)

        for env_var, config_path in ENV_VAR_MAP.items():
            env_value = os.environ.get(env_var)
            if env_value:
                _set_nested(merged, config_path, env_value)

        self._resolved = ResolvedConfig(
            data=merged,
            global_config_path=global_path if global_path.is_file() else None,
            project_config_path=project_path if project_path.is_file() else None,
        )
        return self._resolved

    def get(self, dotted_key: str, default: Any = None) -> Any:
        """Get a resolved config value."""
        return self.resolve().get(dotted_key, default)

    def get_cache_dir(self) -> Path:
        """Get the directory holding the persisted node identifier."""
        config_dir = self.get("telemetry.cache_dir", "")
        if config_dir:
            return Path(config_dir).expanduser()

        xdg_cache = os.environ.get("XDG_CACHE_HOME")
        if xdg_cache:
            return Path(xdg_cache) / "beacon"

        if sys.platform == "win32":
            local_app_data = os.environ.get("LOCALAPPDATA")
            if local_app_data:
                return Path(local_app_data) / "beacon"

        return Path.home() / ".cache" / "beacon"

    def _number(self, key: str, kind: type, strict: bool) -> Any:
        """Read a positive number, falling back to the built-in default."""
        value = self.get(key)
        try:
            return _coerce_positive(key, value, kind)
        except ConfigError as e:
            if strict:
                raise
            logger.debug("%s, using default", e)
            return _get_nested(DEFAULTS, key)

    def telemetry_settings(self, strict: bool = False) -> TelemetrySettings:
        """Build validated telemetry settings.

        Bad values fall back to defaults, or raise ConfigError when ``strict``.
        """
        transport = str(self.get("telemetry.transport", "http")).lower()
        if transport not in TRANSPORTS:
            error = ConfigError("telemetry.transport", transport, f"expected one of {', '.join(TRANSPORTS)}")
            if strict:
                raise error
            logger.debug("%s, using default", error)
            transport = DEFAULTS["telemetry"]["transport"]

        return TelemetrySettings(
            transport=transport,
            endpoint=str(self.get("telemetry.endpoint") or DEFAULT_ENDPOINT),
            project_key=str(self.get("telemetry.project_key") or DEFAULT_PROJECT_KEY),
            timeout=self._number("telemetry.timeout", float, strict),
            flush_timeout=self._number("telemetry.flush_timeout", float, strict),
            max_queue_size=self._number("telemetry.max_queue_size", int, strict),
            batch_size=self._number("telemetry.batch_size", int, strict),
            schedule_delay=self._number("telemetry.schedule_delay", float, strict),
            cache_dir=self.get_cache_dir(),
            host_version=str(self.get("host.version", "") or ""),
        )

    def show(self) -> dict:
        """Return the resolved config as a dict with its source files."""
        resolved = self.resolve(force=True)
        return {
            "resolved": resolved.data,
            "sources": {
                "global_config": str(resolved.global_config_path) if resolved.global_config_path else None,
                "project_config": str(resolved.project_config_path) if resolved.project_config_path else None,
            },
        }


# Module-level singleton
_config_service: Optional[ConfigService] = None


def get_config_service() -> ConfigService:
    """Get or create the global ConfigService instance."""
    global _config_service
    if _config_service is None:
        _config_service = ConfigService()
    return _config_service


def reset_config_service() -> None:
    """Reset the global config service (useful for testing)."""
    global _config_service
    _config_service = None
