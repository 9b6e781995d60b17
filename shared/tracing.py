"""Tracing utilities built on OpenTelemetry."""

from typing import Optional, Dict, Any
import os
from contextlib import contextmanager

from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.trace import Status, StatusCode


def _otlp_exporter_kwargs(endpoint: Optional[str] = None) -> Dict[str, Any]:
    """Exporter arguments; headers and certificates come from the standard OTEL_* variables."""
    endpoint = endpoint or os.getenv("OTEL_EXPORTER_OTLP_TRACES_ENDPOINT") or os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")
    if not endpoint:
        return {}
    return {"endpoint": endpoint, "insecure": endpoint.startswith("http://")}


def configure_tracing(service_name: str, otel_exporter: Optional[str] = None,
                      enable_console: bool = False, environment: str = "local") -> TracerProvider:
    """Configure OpenTelemetry tracing for a service.

    Installs a global ``TracerProvider`` exporting over OTLP/gRPC and
    instruments FastAPI and SQLAlchemy. Must run before the FastAPI app and
    the SQLAlchemy engine are created.
    """
    resource = Resource.create({
        "service.name": service_name,
        "service.version": "1.0.0",
        "service.instance.id": os.getenv("HOSTNAME", "unknown"),
        "deployment.environment": environment
    })

    provider = TracerProvider(resource=resource)
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(**_otlp_exporter_kwargs(otel_exporter))))

    if enable_console:
        provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))

    trace.set_tracer_provider(provider)

    FastAPIInstrumentor().instrument()
    SQLAlchemyInstrumentor().instrument()

    return provider


def get_tracer(name: str) -> trace.Tracer:
    """Get a tracer instance from the global provider."""
    return trace.get_tracer(name)


@contextmanager
def trace_operation(tracer: trace.Tracer, operation_name: str, **attributes):
    """Run the block inside a span, marking it failed on any exception."""
    with tracer.start_as_current_span(operation_name, set_status_on_exception=False) as span:
        for key, value in attributes.items():
            span.set_attribute(key, value)

        try:
            yield span
        except Exception as exc:
            span.set_status(Status(StatusCode.ERROR, str(exc)))
            span.set_attribute("error", True)
            span.set_attribute("error.message", str(exc))
            raise
