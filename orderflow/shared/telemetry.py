# orderflow/shared/telemetry.py
from typing import Optional

import structlog
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter

from orderflow import __version__
from orderflow.shared.config import settings

logger = structlog.get_logger()

# Health checks are polled every few seconds and would drown the real traces.
UNTRACED_URLS = "health/live,health/ready"

_provider: Optional[TracerProvider] = None


def setup_telemetry(service_name: str) -> None:
    """
    Installs the OTLP/HTTP span exporter for this process (api or worker).

    Without OTEL_EXPORTER_OTLP_ENDPOINT tracing stays a no-op: use cases still
    open spans, they are simply not recorded.
    """
    global _provider
    endpoint = settings.OTEL_EXPORTER_OTLP_ENDPOINT
    if not endpoint:
        logger.info("telemetry_disabled", reason="no OTEL_EXPORTER_OTLP_ENDPOINT")
        return
    if _provider is not None:
        return

    provider = TracerProvider(
        resource=Resource.create({
            "service.name": service_name,
            "service.namespace": "orderflow",
            "service.version": __version__,
            "deployment.environment": settings.APP_ENV.value,
        })
    )
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=f"{endpoint.rstrip('/')}/v1/traces")))
    if settings.DEBUG:
        provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))

    trace.set_tracer_provider(provider)
    _provider = provider
    logger.info("telemetry_enabled", service=service_name, endpoint=endpoint)


def instrument_fastapi(app) -> None:
    """Traces every HTTP request except the health checks."""
    if settings.OTEL_EXPORTER_OTLP_ENDPOINT:
        FastAPIInstrumentor.instrument_app(app, excluded_urls=UNTRACED_URLS)


def get_tracer(name: str):
    return trace.get_tracer(name)
