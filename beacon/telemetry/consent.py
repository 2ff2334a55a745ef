"""Telemetry consent - opt-out via a single environment variable."""

from __future__ import annotations

import logging
import os
from typing import Mapping, Optional

logger = logging.getLogger("beacon.telemetry.consent")

# If this env var is true, yes, or 1, telemetry will NOT be sent.
OPTOUT_ENV_VAR = "BEACON_TELEMETRY_OPTOUT"

# What we collect (shown by `beacon status`)
COLLECTED = [
    "Application type (e.g. 'ConsoleHost', 'Hosted')",
    "Names and versions of well-known modules when they load",
    "Activation of built-in experimental features",
    "Startup mode and which command-line parameters were used",
    "A random installation ID and a random per-process session ID",
]

# What we NEVER collect
NEVER_COLLECTED = [
    "Names or versions of modules that are not on the public allowlist",
    "File paths, script contents, or command arguments",
    "Environment variables, credentials, or API keys",
    "Hostnames, machine names, cloud role or instance names",
    "Usernames, IP addresses, or account identifiers",
]

_TRUE = ("1", "yes", "true")
_FALSE = ("0", "no", "false")


def _parse(value: Optional[str]) -> Optional[bool]:
    if not value or not isinstance(value, str):
        return None
    lowered = value.lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    return None


def parse_bool(value: Optional[str], default: bool) -> bool:
    """Parse a boolean-like env value with a lenient, case-insensitive grammar.

    Accepts exactly ``1``/``0``, ``yes``/``no`` and ``true``/``false`` in any
    case. Anything else, including an empty or missing value, yields
    ``default``. Never raises.
    """
    parsed = _parse(value)
    return default if parsed is None else parsed


class ConsentGate:
    """Decides once whether telemetry may be collected in this process."""

    def __init__(
        self,
        env_var: str = OPTOUT_ENV_VAR,
        environ: Optional[Mapping[str, str]] = None,
    ):
        self._env_var = env_var
        self._environ = environ if environ is not None else os.environ
        self._enabled: Optional[bool] = None

    @property
    def env_var(self) -> str:
        return self._env_var

    def is_enabled(self) -> bool:
        """Check if telemetry is enabled. Computed once and cached.

        Priority:
        1. Opt-out env var, when it parses as true/false
        2. Default: enabled
        """
        if self._enabled is None:
            opted_out = parse_bool(self._environ.get(self._env_var), default=False)
            self._enabled = not opted_out
            if opted_out:
                logger.debug("Telemetry disabled by %s", self._env_var)
        return self._enabled

    def status(self) -> dict:
        """Get current telemetry status with details."""
        raw = self._environ.get(self._env_var, "")
        source = "default" if _parse(raw) is None else "environment"

        return {
            "enabled": self.is_enabled(),
            "source": source,
            "env_var": self._env_var,
            "env_value": raw or None,
            "collected": COLLECTED,
            "never_collected": NEVER_COLLECTED,
        }
