"""Custom exception hierarchy for beacon.

All beacon-specific exceptions derive from BeaconError. Each exception
carries an optional ``context`` dict with structured metadata (file path,
endpoint, status code, etc.) that log records can include.

These errors are raised inside the telemetry pipeline only. Every component
boundary catches them and falls back, so none of them ever reaches the host
application's control flow.

Exception hierarchy::

    BeaconError
    ├── ConfigError
    ├── IdentityPersistError
    └── TransportError
"""
from __future__ import annotations

from typing import Optional


class BeaconError(Exception):
    """Base class for all beacon exceptions.

    Args:
        message: Human-readable error description.
        context: Optional dict of structured metadata.
    """

    def __init__(self, message: str, context: Optional[dict] = None):
        self.context = context or {}
        super().__init__(message)


class ConfigError(BeaconError):
    """Raised when a configuration value is invalid."""

    def __init__(self, key: str, value: object, reason: str = ""):
        msg = f"Invalid value for '{key}': {value!r}"
        if reason:
            msg += f" ({reason})"
        super().__init__(msg, context={"key": key, "value": value})


class IdentityPersistError(BeaconError):
    """Raised when the node identifier cannot be written or read back."""

    def __init__(self, message: str, path: str = ""):
        super().__init__(message, context={"path": path})


class TransportError(BeaconError):
    """Raised when a batch cannot be delivered to the collector."""

    def __init__(
        self,
        message: str,
        transport: str = "",
        status_code: Optional[int] = None,
        context: Optional[dict] = None,
    ):
        ctx = {"transport": transport, "status_code": status_code}
        if context:
            ctx.update(context)
        super().__init__(message, context=ctx)
