"""Telemetry subsystem for beacon - opt-out, allowlist-scrubbed, fire-and-forget."""

from beacon.telemetry.consent import ConsentGate
from beacon.telemetry.models import ModuleInfo, TelemetryEvent, TelemetryKind
from beacon.telemetry.service import Telemetry, get_telemetry, reset_telemetry

__all__ = [
    "ConsentGate",
    "ModuleInfo",
    "Telemetry",
    "TelemetryEvent",
    "TelemetryKind",
    "get_telemetry",
    "reset_telemetry",
]
