"""
Logging and OpenTelemetry setup shared by the whole service.
"""

import logging

from opentelemetry import metrics, trace
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import ConsoleMetricExporter, PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter

from .config import Config


def setup_logging(level=logging.INFO):
    """Structured one-line log records for the audit trail."""
    logging.basicConfig(
        level=level,
        format='{"timestamp":"%(asctime)s","level":"%(levelname)s","service":"'
        + Config.SERVICE_NAME
        + '","logger":"%(name)s","message":"%(message)s"}',
    )


def setup_telemetry():
    """Initialize OpenTelemetry tracing and metrics."""
    resource = Resource.create({
        "service.name": Config.SERVICE_NAME,
        "service.version": Config.SERVICE_VERSION,
    })

    trace_provider = TracerProvider(resource=resource)
    metric_readers = []
    if Config.TELEMETRY_CONSOLE_EXPORT:
        trace_provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))
        metric_readers.append(
            PeriodicExportingMetricReader(ConsoleMetricExporter(), export_interval_millis=60000)
        )
    trace.set_tracer_provider(trace_provider)

    meter_provider = MeterProvider(resource=resource, metric_readers=metric_readers)
    metrics.set_meter_provider(meter_provider)

    return trace.get_tracer(Config.SERVICE_NAME), metrics.get_meter(Config.SERVICE_NAME)


tracer, meter = setup_telemetry()

request_counter = meter.create_counter("carrental_requests_total", description="Total requests", unit="1")
latency_histogram = meter.create_histogram("carrental_request_duration_ms", description="Request duration", unit="ms")
reservation_counter = meter.create_counter("carrental_reservations_total", description="Reservations placed", unit="1")
fleet_counter = meter.create_counter("carrental_fleet_changes_total", description="Cars added or removed", unit="1")
status_counter = meter.create_counter("carrental_status_changes_total", description="Car status transitions", unit="1")
