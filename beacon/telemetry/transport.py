"""Transports that deliver batches of telemetry to a collector.

Both transports fill in some machine context on their own (hostnames, role
and instance names). ``anonymize_platform`` masks that context right before
anything is sent.
"""

from __future__ import annotations

import logging
import socket
from datetime import datetime, timezone
from typing import Optional, Protocol, Sequence, runtime_checkable

import httpx

from beacon import __version__
from beacon.core.config_service import DEFAULT_ENDPOINT, TelemetrySettings
from beacon.errors import TransportError
from beacon.telemetry.models import DispatchQueueEntry, TelemetryEvent
from beacon.telemetry.scrubber import anonymize_platform

logger = logging.getLogger("beacon.telemetry.transport")


@runtime_checkable
class Transport(Protocol):
    """Protocol that all transports must satisfy."""

    name: str

    def send(self, entries: Sequence[DispatchQueueEntry]) -> None: ...
    def close(self, timeout: float) -> None: ...


def _hostname() -> str:
    try:
        return socket.gethostname()
    except OSError:
        return ""


class HttpTransport:
    """Posts JSON envelopes in the Application Insights track format."""

    name = "http"

    def __init__(
        self,
        endpoint: str,
        project_key: str,
        timeout: float = 2.0,
        client: Optional[httpx.Client] = None,
    ):
        self.endpoint = endpoint
        self.project_key = project_key
        self._client = client or httpx.Client(timeout=timeout)
        self._envelope_name = f"Microsoft.ApplicationInsights.{project_key.replace('-', '')}.Event"
        host = _hostname()
        self._platform_tags = {
            "ai.cloud.role": host,
            "ai.cloud.roleInstance": host,
            "ai.internal.nodeName": host,
            "ai.internal.sdkVersion": f"beacon:{__version__}",
        }

    def envelope(self, event: TelemetryEvent) -> dict:
        """Build the wire envelope for one event."""
        tags = dict(self._platform_tags)
        tags["ai.session.id"] = event.properties.get("sessionId", "")
        tags["ai.user.id"] = event.properties.get("nodeId", "")
        return {
            "name": self._envelope_name,
            "time": datetime.fromtimestamp(event.timestamp, tz=timezone.utc).isoformat(),
            "iKey": self.project_key,
            "tags": anonymize_platform(tags),
            "data": {
                "baseType": "EventData",
                "baseData": {
                    "ver": 2,
                    "name": event.name,
                    "properties": dict(event.properties),
                    "measurements": dict(event.measurements),
                },
            },
        }

    def send(self, entries: Sequence[DispatchQueueEntry]) -> None:
        body = [self.envelope(entry.event) for entry in entries]
        try:
            response = self._client.post(
                self.endpoint,
                json=body,
                headers={"Content-Type": "application/json"},
            )
        except httpx.TimeoutException as e:
            raise TransportError(
                f"Timed out sending telemetry to {self.endpoint}", transport=self.name
            ) from e
        except httpx.HTTPError as e:
            raise TransportError(
                f"Cannot reach telemetry endpoint {self.endpoint}", transport=self.name
            ) from e

        if not response.is_success:
            raise TransportError(
                f"Telemetry endpoint rejected batch of {len(body)}",
                transport=self.name,
                status_code=response.status_code,
            )

    def close(self, _timeout: float) -> None:
        """Close the connection pool. Nothing is buffered here, so this never waits."""
        self._client.close()


class OtelTransport:
    """Exports events as OpenTelemetry spans plus counters.

    Designed for short-lived hosts: strict 2-second exporter timeout and a
    bounded flush on close.
    """

    name = "otlp"

    def __init__(
        self,
        endpoint: Optional[str] = None,
        timeout: float = 2.0,
        span_exporter=None,
        metric_reader=None,
    ):
        try:
            from opentelemetry.sdk.metrics import MeterProvider
            from opentelemetry.sdk.resources import Resource
            from opentelemetry.sdk.trace import TracerProvider
            from opentelemetry.sdk.trace.export import BatchSpanProcessor, SimpleSpanProcessor
        except ImportError as e:
            raise TransportError("OpenTelemetry SDK not installed", transport=self.name) from e

        detected = Resource.create(
            {
                "service.name": "beacon",
                "service.version": __version__,
            }
        )
        resource = Resource(anonymize_platform(detected.attributes), detected.schema_url)

        if span_exporter is None:
            span_exporter, metric_reader = self._otlp_exporters(endpoint, timeout)
            processor = BatchSpanProcessor(
                span_exporter,
                max_queue_size=100,
                max_export_batch_size=50,
                schedule_delay_millis=1000,
            )
        else:
            processor = SimpleSpanProcessor(span_exporter)

        self._tracer_provider = TracerProvider(resource=resource)
        self._tracer_provider.add_span_processor(processor)
        self._tracer = self._tracer_provider.get_tracer("beacon", __version__)

        readers = [metric_reader] if metric_reader is not None else []
        self._meter_provider = MeterProvider(resource=resource, metric_readers=readers)
        meter = self._meter_provider.get_meter("beacon", __version__)
        self._events = meter.create_counter(
            "beacon.events",
            description="Number of telemetry events by name",
        )
        self._measurements = meter.create_histogram(
            "beacon.measurement",
            description="Numeric measurements attached to telemetry events",
        )

    @property
    def resource(self):
        return self._tracer_provider.resource

    def _otlp_exporters(self, endpoint: Optional[str], timeout: float):
        try:
            from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
            from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
            from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
        except ImportError as e:
            raise TransportError("OTLP exporter not installed", transport=self.name) from e

        span_exporter = OTLPSpanExporter(endpoint=endpoint, timeout=timeout)
        metric_reader = PeriodicExportingMetricReader(
            OTLPMetricExporter(endpoint=endpoint, timeout=timeout),
            export_timeout_millis=timeout * 1000,
        )
        return span_exporter, metric_reader

    def send(self, entries: Sequence[DispatchQueueEntry]) -> None:
        try:
            for entry in entries:
                self._record(entry.event)
        except Exception as e:
            raise TransportError("Failed to record telemetry span", transport=self.name) from e

    def _record(self, event: TelemetryEvent) -> None:
        attributes: dict = {f"beacon.{key}": value for key, value in event.properties.items()}
        for key, value in event.measurements.items():
            attributes[f"beacon.measurement.{key}"] = value

        timestamp = int(event.timestamp * 1_000_000_000)
        span = self._tracer.start_span(event.name, attributes=attributes, start_time=timestamp)
        span.end(end_time=timestamp)

        self._events.add(1, {"event": event.name})
        for key, value in event.measurements.items():
            self._measurements.record(value, {"event": event.name, "measurement": key})

    def close(self, timeout: float) -> None:
        millis = int(timeout * 1000)
        try:
            self._tracer_provider.force_flush(timeout_millis=millis)
            self._meter_provider.shutdown(timeout_millis=millis)
            self._tracer_provider.shutdown()
        except Exception:
            logger.debug("OpenTelemetry shutdown failed", exc_info=True)


def create_transport(settings: TelemetrySettings) -> Transport:
    """Create the transport named by ``telemetry.transport``.

    Raises TransportError if the transport's libraries are unavailable.
    """
    if settings.transport == "otlp":
        # The default endpoint speaks the HTTP track format, not OTLP;
        # let OTEL_EXPORTER_OTLP_ENDPOINT decide instead.
        endpoint = None if settings.endpoint == DEFAULT_ENDPOINT else settings.endpoint
        return OtelTransport(endpoint=endpoint, timeout=settings.timeout)
    return HttpTransport(settings.endpoint, settings.project_key, timeout=settings.timeout)
