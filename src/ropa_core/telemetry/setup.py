"""Central OTel setup: TracerProvider with an OTLP gRPC span exporter."""

from __future__ import annotations

import logging

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.propagate import set_global_textmap
from opentelemetry.propagators.composite import CompositePropagator
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace.propagation.tracecontext import TraceContextTextMapPropagator

from ropa_core.settings import OTelSettings

logger = logging.getLogger(__name__)

_tracer_provider: TracerProvider | None = None


def init_telemetry(service_name: str | None = None, settings: OTelSettings | None = None) -> bool:
    """Install the global tracer provider.

    Returns True when tracing is active afterwards. Repeated calls are no-ops;
    with OTEL_ENABLED=false the default no-op tracer stays in place and the
    spans opened by the transfer engine cost nothing.
    """
    global _tracer_provider

    if _tracer_provider is not None:
        return True

    settings = settings or OTelSettings()
    if not settings.enabled:
        logger.info("OTel telemetry disabled via OTEL_ENABLED=false")
        return False

    name = service_name or settings.service_name
    resource = Resource.create({SERVICE_NAME: name})
    endpoint = settings.exporter_otlp_endpoint

    _tracer_provider = TracerProvider(resource=resource)
    _tracer_provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint, insecure=True)))
    trace.set_tracer_provider(_tracer_provider)

    # W3C Trace Context propagation
    set_global_textmap(CompositePropagator([TraceContextTextMapPropagator()]))

    logger.info("OTel telemetry initialized for '%s' -> %s", name, endpoint)
    return True


def shutdown_telemetry() -> None:
    """Flush and shut down the tracer provider. Call at application shutdown."""
    global _tracer_provider

    if _tracer_provider is None:
        return
    _tracer_provider.shutdown()
    _tracer_provider = None
    logger.info("OTel telemetry shut down")
