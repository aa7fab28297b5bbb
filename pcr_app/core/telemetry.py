"""
OpenTelemetry wiring.

Telemetry is off unless ``OTEL_EXPORTER_OTLP_ENDPOINT`` is configured (OTLP
over gRPC) or ``OTEL_DEBUG`` is true (console exporters).  When it is on, the
tracer and meter providers are installed once per process and every app built
by the factory gets its Flask app and database engine instrumented.

Module-level meters and tracers obtained through :func:`get_meter` and
:func:`get_tracer` before the providers exist are proxies and start
recording once they are installed.
"""

import logging
from typing import Mapping, Optional

from flask import Flask
from opentelemetry import metrics, trace
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.flask import FlaskInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import ConsoleMetricExporter, PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from sqlalchemy.engine import Engine

logger = logging.getLogger(__name__)

SERVICE_NAME = "pcr-portal"

_providers_installed = False


def telemetry_enabled(config: Mapping) -> bool:
    return bool(config.get("OTEL_EXPORTER_OTLP_ENDPOINT")) or bool(config.get("OTEL_DEBUG"))


def build_resource(config: Mapping) -> Resource:
    """Resource describing this deployment, taken from the app config."""
    return Resource.create(
        {
            "service.name": config.get("OTEL_SERVICE_NAME") or SERVICE_NAME,
            "deployment.environment": config.get("APP_ENV", "development"),
        }
    )


def _install_providers(resource: Resource, endpoint: Optional[str]) -> None:
    if endpoint:
        span_exporter = OTLPSpanExporter(endpoint=endpoint)
        metric_exporter = OTLPMetricExporter(endpoint=endpoint)
    else:
        span_exporter = ConsoleSpanExporter()
        metric_exporter = ConsoleMetricExporter()

    tracer_provider = TracerProvider(resource=resource)
    tracer_provider.add_span_processor(BatchSpanProcessor(span_exporter))
    trace.set_tracer_provider(tracer_provider)

    reader = PeriodicExportingMetricReader(metric_exporter)
    metrics.set_meter_provider(MeterProvider(resource=resource, metric_readers=[reader]))


def init_telemetry(app: Flask, engine: Engine) -> bool:
    """Enable tracing and metrics for *app* and *engine* if configured.

    Returns True when telemetry is active.
    """
    global _providers_installed

    config = app.config
    if not telemetry_enabled(config):
        logger.info("OpenTelemetry is disabled (set OTEL_EXPORTER_OTLP_ENDPOINT to enable).")
        return False

    # Providers can only be set once per process; the factory may run again.
    if not _providers_installed:
        resource = build_resource(config)
        logger.info(
            f"Initializing OpenTelemetry for {resource.attributes['service.name']}",
            extra={"environment": resource.attributes["deployment.environment"]},
        )
        _install_providers(resource, config.get("OTEL_EXPORTER_OTLP_ENDPOINT"))
        _providers_installed = True

    FlaskInstrumentor().instrument_app(app)
    SQLAlchemyInstrumentor().instrument(engine=engine)
    return True


def get_meter():
    """Meter for the portal's counters."""
    return metrics.get_meter(f"{SERVICE_NAME}.metrics")


def get_tracer():
    return trace.get_tracer(f"{SERVICE_NAME}.tracer")
