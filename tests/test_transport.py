"""Tests for the HTTP and OpenTelemetry transports."""

import json

import httpx
import pytest
from opentelemetry.sdk.metrics.export import InMemoryMetricReader
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from beacon.core.config_service import ConfigService
from beacon.errors import TransportError
from beacon.telemetry.consent import ConsentGate
from beacon.telemetry.dispatch import Dispatcher
from beacon.telemetry.models import DispatchQueueEntry, TelemetryEvent, TelemetryKind
from beacon.telemetry.scrubber import NOT_AVAILABLE
from beacon.telemetry.transport import (
    HttpTransport,
    OtelTransport,
    Transport,
    create_transport,
)

PROJECT_KEY = "5c0a6f3e-8d41-4b7e-9a2c-1f7e3b9d6a40"
ENDPOINT = "https://collector.test/v2/track"


def _entries():
    event = TelemetryEvent(
        TelemetryKind.MODULE_LOAD,
        {"nodeId": "node-1", "sessionId": "session-1", "moduleName": "Pester", "moduleVersion": "5.5.0"},
        {"count": 1.0, "moduleVersion": 5.5},
        timestamp=1_700_000_000.0,
    )
    return [DispatchQueueEntry(event)]


def _http(handler):
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return HttpTransport(ENDPOINT, PROJECT_KEY, client=client)


class TestHttpTransport:
    def test_satisfies_protocol(self):
        assert isinstance(_http(lambda request: httpx.Response(200)), Transport)

    def test_posts_envelopes(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"itemsAccepted": 1})

        _http(handler).send(_entries())

        assert len(seen) == 1
        request = seen[0]
        assert str(request.url) == ENDPOINT
        assert request.method == "POST"
        body = json.loads(request.content)
        assert len(body) == 1
        envelope = body[0]
        assert envelope["name"] == f"Microsoft.ApplicationInsights.{PROJECT_KEY.replace('-', '')}.Event"
        assert envelope["iKey"] == PROJECT_KEY
        assert envelope["time"].startswith("2023-11-14T22:13:20")
        base = envelope["data"]["baseData"]
        assert base["name"] == "ModuleLoad"
        assert base["properties"]["moduleName"] == "Pester"
        assert base["measurements"]["moduleVersion"] == 5.5

    def test_machine_names_are_masked(self):
        transport = _http(lambda request: httpx.Response(200))
        tags = transport.envelope(_entries()[0].event)["tags"]
        assert tags["ai.cloud.role"] == NOT_AVAILABLE
        assert tags["ai.cloud.roleInstance"] == NOT_AVAILABLE
        assert tags["ai.internal.nodeName"] == NOT_AVAILABLE
        assert tags["ai.session.id"] == "session-1"
        assert tags["ai.user.id"] == "node-1"

    def test_rejected_batch(self):
        transport = _http(lambda request: httpx.Response(500))
        with pytest.raises(TransportError) as exc_info:
            transport.send(_entries())
        assert exc_info.value.context["status_code"] == 500
        assert exc_info.value.context["transport"] == "http"

    def test_unreachable(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(TransportError, match="Cannot reach"):
            _http(handler).send(_entries())

    def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("too slow", request=request)

        with pytest.raises(TransportError, match="Timed out"):
            _http(handler).send(_entries())

    def test_close(self):
        client = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(200)))
        HttpTransport(ENDPOINT, PROJECT_KEY, client=client).close(1.0)
        assert client.is_closed

    def test_dispatcher_flush_closes_client(self):
        client = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(200)))
        transport = HttpTransport(ENDPOINT, PROJECT_KEY, client=client)
        dispatcher = Dispatcher(transport, ConsentGate(environ={}), schedule_delay=0.05)
        dispatcher.enqueue(_entries()[0].event)
        assert dispatcher.flush(timeout=5.0) is True
        assert dispatcher.stats.sent == 1
        assert client.is_closed


@pytest.fixture
def otel():
    exporter = InMemorySpanExporter()
    reader = InMemoryMetricReader()
    transport = OtelTransport(span_exporter=exporter, metric_reader=reader)
    yield transport, exporter, reader
    transport.close(1.0)


def _metric_points(reader, name):
    points = []
    data = reader.get_metrics_data()
    for resource_metrics in data.resource_metrics:
        for scope_metrics in resource_metrics.scope_metrics:
            for metric in scope_metrics.metrics:
                if metric.name == name:
                    points.extend(metric.data.data_points)
    return points


class TestOtelTransport:
    def test_records_span(self, otel):
        transport, exporter, _ = otel
        transport.send(_entries())

        spans = exporter.get_finished_spans()
        assert len(spans) == 1
        span = spans[0]
        assert span.name == "ModuleLoad"
        assert span.attributes["beacon.moduleName"] == "Pester"
        assert span.attributes["beacon.measurement.moduleVersion"] == 5.5

    def test_counts_events(self, otel):
        transport, _, reader = otel
        transport.send(_entries() + _entries())

        points = _metric_points(reader, "beacon.events")
        assert sum(p.value for p in points) == 2
        assert dict(points[0].attributes) == {"event": "ModuleLoad"}

    def test_resource_identity(self, otel):
        transport, _, _ = otel
        attributes = transport.resource.attributes
        assert attributes["service.name"] == "beacon"

    def test_detected_host_attributes_are_masked(self, monkeypatch):
        monkeypatch.setenv("OTEL_RESOURCE_ATTRIBUTES", "host.name=build-agent-07,service.instance.id=abc")
        transport = OtelTransport(span_exporter=InMemorySpanExporter(), metric_reader=InMemoryMetricReader())
        try:
            attributes = transport.resource.attributes
            assert attributes["host.name"] == NOT_AVAILABLE
            assert attributes["service.instance.id"] == NOT_AVAILABLE
        finally:
            transport.close(1.0)


class TestCreateTransport:
    def test_default_is_http(self):
        transport = create_transport(ConfigService().telemetry_settings())
        try:
            assert isinstance(transport, HttpTransport)
            assert transport.project_key == PROJECT_KEY
        finally:
            transport.close(0)

    def test_endpoint_from_env(self, monkeypatch):
        monkeypatch.setenv("BEACON_TELEMETRY_ENDPOINT", ENDPOINT)
        transport = create_transport(ConfigService().telemetry_settings())
        try:
            assert transport.endpoint == ENDPOINT
        finally:
            transport.close(0)

    def test_otlp(self, monkeypatch):
        monkeypatch.setenv("BEACON_TELEMETRY_TRANSPORT", "otlp")
        transport = create_transport(ConfigService().telemetry_settings())
        assert isinstance(transport, OtelTransport)
