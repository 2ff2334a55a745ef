"""Telemetry data types shared by the shaper, dispatcher and transports."""

from __future__ import annotations

import enum
import time
from dataclasses import dataclass, field
from typing import Any


class TelemetryKind(str, enum.Enum):
    """The categories of signal the pipeline understands.

    The value is the event name sent to the collector.
    """

    APPLICATION_TYPE = "ApplicationType"
    MODULE_LOAD = "ModuleLoad"
    WIN_COMPAT_MODULE_LOAD = "WinCompatModuleLoad"
    EXPERIMENTAL_ENGINE_FEATURE_ACTIVATION = "ExperimentalEngineFeatureActivation"
    EXPERIMENTAL_ENGINE_FEATURE_DEACTIVATION = "ExperimentalEngineFeatureDeactivation"
    EXPERIMENTAL_MODULE_FEATURE_ACTIVATION = "ExperimentalModuleFeatureActivation"
    EXPERIMENTAL_MODULE_FEATURE_DEACTIVATION = "ExperimentalModuleFeatureDeactivation"
    EXPERIMENTAL_FEATURE_USE = "ExperimentalFeatureUse"
    API_CREATE = "ApiCreate"
    REMOTE_SESSION_OPEN = "RemoteSessionOpen"
    STARTUP = "ConsoleHostStartup"
    METRIC = "Metric"


MODULE_LOAD_KINDS = frozenset({TelemetryKind.MODULE_LOAD, TelemetryKind.WIN_COMPAT_MODULE_LOAD})


@dataclass(frozen=True)
class ModuleInfo:
    """Descriptor of a module the host has loaded."""

    name: str
    version: Any = None
    tags: tuple[str, ...] = ()


@dataclass(frozen=True)
class TelemetryEvent:
    """A shaped record. Property values have already been scrubbed."""

    kind: TelemetryKind
    properties: dict[str, str] = field(default_factory=dict)
    measurements: dict[str, float] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)

    @property
    def name(self) -> str:
        return self.kind.value

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "properties": dict(self.properties),
            "measurements": dict(self.measurements),
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class DispatchQueueEntry:
    """An event waiting in the dispatcher queue."""

    event: TelemetryEvent
    enqueued_at: float = field(default_factory=time.monotonic)
