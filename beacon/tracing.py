"""Health, lifecycle and audit event sinks consumed by the host.

The host logs engine/command/provider events through a LogProvider. When no
real sink is configured it gets a NullLogProvider, whose every call is a
no-op: it performs no I/O and never fails.
"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Callable, Optional

logger = logging.getLogger("beacon.tracing")


class EngineState(str, enum.Enum):
    NONE = "None"
    AVAILABLE = "Available"
    DEGRADED = "Degraded"
    OUT_OF_SERVICE = "OutOfService"
    STOPPED = "Stopped"


class CommandState(str, enum.Enum):
    STARTED = "Started"
    STOPPED = "Stopped"
    TERMINATED = "Terminated"


class ProviderState(str, enum.Enum):
    STARTED = "Started"
    STOPPED = "Stopped"


@dataclass
class LogContext:
    """Where an event happened. Filled in by the host."""

    severity: str = "Informational"
    command_name: str = ""
    command_type: str = ""
    script_name: str = ""
    sequence_number: int = 0
    extra: dict = field(default_factory=dict)


class LogProvider:
    """Entry points for health/lifecycle/audit events. Subclasses override."""

    def is_enabled(self) -> bool:
        return False

    def use_logging_variables(self) -> bool:
        return False

    def log_engine_health_event(
        self,
        log_context: LogContext,
        event_id: int,
        exception: Optional[BaseException],
        additional_info: Optional[dict] = None,
    ) -> None: ...

    def log_engine_lifecycle_event(
        self, log_context: LogContext, new_state: EngineState, previous_state: EngineState
    ) -> None: ...

    def log_command_health_event(self, log_context: LogContext, exception: BaseException) -> None: ...

    def log_command_lifecycle_event(
        self, get_log_context: Callable[[], LogContext], new_state: CommandState
    ) -> None: ...

    def log_pipeline_execution_detail_event(self, log_context: LogContext, details: list[str]) -> None: ...

    def log_provider_health_event(
        self, log_context: LogContext, provider_name: str, exception: BaseException
    ) -> None: ...

    def log_provider_lifecycle_event(
        self, log_context: LogContext, provider_name: str, new_state: ProviderState
    ) -> None: ...

    def log_settings_event(
        self, log_context: LogContext, variable_name: str, value: str, previous_value: str
    ) -> None: ...


class NullLogProvider(LogProvider):
    """Sink used when nothing is configured. Every call does nothing."""


class LoggingLogProvider(LogProvider):
    """Forwards events to the stdlib ``logging`` tree under ``beacon.tracing``."""

    def __init__(self, log: Optional[logging.Logger] = None):
        self._log = log or logger

    def is_enabled(self) -> bool:
        return self._log.isEnabledFor(logging.INFO)

    def use_logging_variables(self) -> bool:
        return True

    def log_engine_health_event(self, log_context, event_id, exception, additional_info=None):
        self._log.warning(
            "Engine health event %s: %s %s",
            event_id,
            type(exception).__name__ if exception else "",
            additional_info or {},
        )

    def log_engine_lifecycle_event(self, log_context, new_state, previous_state):
        self._log.info("Engine state changed from %s to %s", previous_state.value, new_state.value)

    def log_command_health_event(self, log_context, exception):
        self._log.warning("Command %s failed: %s", log_context.command_name, type(exception).__name__)

    def log_command_lifecycle_event(self, get_log_context, new_state):
        # The context is only built when the record will be emitted.
        if self._log.isEnabledFor(logging.INFO):
            self._log.info("Command %s %s", get_log_context().command_name, new_state.value)

    def log_pipeline_execution_detail_event(self, log_context, details):
        for detail in details:
            self._log.info("Pipeline %s: %s", log_context.command_name, detail)

    def log_provider_health_event(self, log_context, provider_name, exception):
        self._log.warning("Provider %s failed: %s", provider_name, type(exception).__name__)

    def log_provider_lifecycle_event(self, log_context, provider_name, new_state):
        self._log.info("Provider %s %s", provider_name, new_state.value)

    def log_settings_event(self, log_context, variable_name, value, previous_value):
        self._log.info("Setting %s changed from %r to %r", variable_name, previous_value, value)


def get_log_provider(enabled: bool = False) -> LogProvider:
    """Return a forwarding provider when enabled, otherwise the no-op one."""
    return LoggingLogProvider() if enabled else NullLogProvider()
