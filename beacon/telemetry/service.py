"""Telemetry service - the narrow API the host calls.

Key constraints:
- Zero work when the user has opted out (no identity I/O, no transport)
- No call ever raises into the host or blocks it, except ``flush`` at exit,
  which waits at most ``telemetry.flush_timeout`` seconds
"""

from __future__ import annotations

import atexit
import logging
import threading
from typing import Any, Callable, Optional

from beacon.core.config_service import ConfigService, get_config_service
from beacon.errors import TransportError
from beacon.telemetry import shaper
from beacon.telemetry.allowlists import AllowlistSet
from beacon.telemetry.consent import ConsentGate
from beacon.telemetry.context import TelemetryContext
from beacon.telemetry.dispatch import Dispatcher
from beacon.telemetry.identity import IdentityManager
from beacon.telemetry.models import ModuleInfo, TelemetryEvent, TelemetryKind
from beacon.telemetry.transport import Transport, create_transport

logger = logging.getLogger("beacon.telemetry.service")

# Singleton instance
_telemetry: "Telemetry | None" = None
_telemetry_lock = threading.Lock()


class Telemetry:
    """Usage telemetry for a host application."""

    def __init__(self, context: TelemetryContext, dispatcher: Dispatcher, flush_timeout: float = 3.0):
        self._context = context
        self._dispatcher = dispatcher
        self._flush_timeout = flush_timeout
        self._startup_lock = threading.Lock()
        self._startup_sent = False

    @classmethod
    def create(
        cls,
        config: Optional[ConfigService] = None,
        consent: Optional[ConsentGate] = None,
        transport: Optional[Transport] = None,
        allowlists: Optional[AllowlistSet] = None,
    ) -> "Telemetry":
        """Build the pipeline from configuration.

        ``transport`` replaces the configured one, which is useful for tests
        and for hosts with their own delivery mechanism.
        """
        consent = consent or ConsentGate()
        if not consent.is_enabled():
            return cls(TelemetryContext.disabled(allowlists), Dispatcher(None, consent))

        try:
            config = config or get_config_service()
            settings = config.telemetry_settings()
            identity = IdentityManager(settings.cache_dir)
            context = TelemetryContext.create(consent, identity, allowlists, host_version=settings.host_version)
        except Exception:
            logger.debug("Failed to initialize telemetry, disabling it", exc_info=True)
            return cls(TelemetryContext.disabled(allowlists), Dispatcher(None, consent))

        if transport is None:
            try:
                transport = create_transport(settings)
            except TransportError as e:
                logger.debug("Telemetry transport unavailable: %s", e)
            except Exception:
                # e.g. httpx rejecting a proxy setting from the environment
                logger.debug("Failed to build telemetry transport", exc_info=True)

        dispatcher = Dispatcher(
            transport,
            consent,
            max_queue_size=settings.max_queue_size,
            max_batch_size=settings.batch_size,
            schedule_delay=settings.schedule_delay,
        )
        return cls(context, dispatcher, flush_timeout=settings.flush_timeout)

    @property
    def enabled(self) -> bool:
        return self._context.enabled

    @property
    def context(self) -> TelemetryContext:
        return self._context

    @property
    def dispatcher(self) -> Dispatcher:
        return self._dispatcher

    def _send(self, build: Callable[..., TelemetryEvent], *args: Any) -> None:
        if not self._context.enabled:
            return
        try:
            self._dispatcher.enqueue(build(self._context, *args))
        except Exception:
            logger.debug("Failed to send telemetry", exc_info=True)

    def report_application_type(self, app_type: str) -> None:
        """Report how the host is being used (console, hosted, ...)."""
        self._send(shaper.application_type, app_type)

    def report_module_load(
        self,
        module: Optional[ModuleInfo],
        kind: TelemetryKind = TelemetryKind.MODULE_LOAD,
    ) -> None:
        """Report a module load. Unknown modules are reported as 'anonymous'."""
        self._send(shaper.module_load, module, kind)

    def report_module_load_by_name(
        self,
        name: str,
        kind: TelemetryKind = TelemetryKind.MODULE_LOAD,
    ) -> None:
        self._send(shaper.module_load_by_name, name, kind)

    def report_experimental_feature(
        self,
        feature: str,
        activated: bool = True,
        module_scoped: bool = False,
    ) -> None:
        """Report an experimental feature being switched on or off."""
        self._send(shaper.experimental_feature, feature, activated, module_scoped)

    def report_experimental_use(self, feature: str, detail: str) -> None:
        """Report additional information about an experimental feature as it is used."""
        self._send(shaper.experimental_use, feature, detail)

    def report_startup(self, mode: str, parameters_used: float) -> None:
        """Report the startup payload. Only the first call per process is sent."""
        if not self._context.enabled:
            return
        with self._startup_lock:
            if self._startup_sent:
                return
            self._startup_sent = True
        self._send(shaper.startup, mode, parameters_used)

    def report_metric(self, kind: TelemetryKind, data: str) -> None:
        """Report a generic named metric with a string payload."""
        self._send(shaper.metric, kind, data)

    def flush(self, timeout: Optional[float] = None) -> bool:
        """Give queued events a bounded chance to leave before exit."""
        try:
            return self._dispatcher.flush(self._flush_timeout if timeout is None else timeout)
        except Exception:
            logger.debug("Telemetry flush failed", exc_info=True)
            return False


def get_telemetry() -> Telemetry:
    """Get the singleton telemetry instance, flushed automatically at exit."""
    global _telemetry
    with _telemetry_lock:
        if _telemetry is None:
            _telemetry = Telemetry.create()
            if _telemetry.enabled:
                atexit.register(_telemetry.flush)
    return _telemetry


def reset_telemetry() -> None:
    """Reset the singleton (for testing)."""
    global _telemetry
    with _telemetry_lock:
        if _telemetry is not None:
            atexit.unregister(_telemetry.flush)
            _telemetry.flush(timeout=0)
        _telemetry = None
