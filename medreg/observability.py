"""
MEDREG Observability (OpenTelemetry)

Enabled via environment variables:
- MEDREG_OTEL_ENABLED=true
- MEDREG_OTEL_SERVICE_NAME=medreg-api
- MEDREG_OTEL_EXPORTER=console|otlp
- MEDREG_OTEL_OTLP_ENDPOINT=https://... (only if exporter=otlp)

The OpenTelemetry packages ship in the ``otel`` extra; without them both
hooks report False and the service runs untraced.
"""

from __future__ import annotations

import os

from .logger import get_logger

logger = get_logger(__name__)


def _bool_env(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def configure_observability() -> bool:
    if not _bool_env("MEDREG_OTEL_ENABLED", False):
        return False

    service_name = os.environ.get("MEDREG_OTEL_SERVICE_NAME", "medreg-api")
    exporter = os.environ.get("MEDREG_OTEL_EXPORTER", "console").lower()

    try:
        from opentelemetry import trace
        from opentelemetry.sdk.resources import Resource
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
    except ImportError:
        logger.warning("MEDREG_OTEL_ENABLED is set but opentelemetry-sdk is not installed")
        return False

    resource = Resource.create({"service.name": service_name})
    provider = TracerProvider(resource=resource)

    if exporter == "otlp":
        try:
            from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
        except ImportError:
            logger.warning("OTLP exporter not installed, falling back to console spans")
            provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))
        else:
            endpoint = os.environ.get("MEDREG_OTEL_OTLP_ENDPOINT")
            span_exporter = OTLPSpanExporter(endpoint=endpoint) if endpoint else OTLPSpanExporter()
            provider.add_span_processor(BatchSpanProcessor(span_exporter))
    else:
        provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))

    trace.set_tracer_provider(provider)
    return True


def instrument_app(app) -> bool:
    if not _bool_env("MEDREG_OTEL_ENABLED", False):
        return False
    try:
        from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
        from opentelemetry.instrumentation.logging import LoggingInstrumentor
    except ImportError:
        logger.warning("OpenTelemetry instrumentation packages are not installed")
        return False

    LoggingInstrumentor().instrument(set_logging_format=True)
    FastAPIInstrumentor.instrument_app(app)
    return True
