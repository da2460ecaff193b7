"""OpenTelemetry tracing setup.

Spans wrap the classifier and dispatch calls. Without an endpoint the
provider is a no-op, so call sites never branch on configuration.
"""

from __future__ import annotations

import logging
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as pkg_version

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace import NoOpTracerProvider

logger = logging.getLogger(__name__)

_tracer_provider: TracerProvider | NoOpTracerProvider | None = None


def init_tracing(
    *,
    service_name: str = "clixen-gateway",
    env: str = "dev",
    endpoint: str | None = None,
) -> TracerProvider | NoOpTracerProvider:
    """Install a tracer provider exporting over OTLP gRPC when ``endpoint`` is set."""
    global _tracer_provider  # noqa: PLW0603

    if not endpoint:
        provider = NoOpTracerProvider()
        trace.set_tracer_provider(provider)
        _tracer_provider = provider
        logger.info("Tracing disabled (no endpoint configured)")
        return provider

    try:
        service_version = pkg_version("clixen-gateway")
    except PackageNotFoundError:
        service_version = "0.0.0"

    resource = Resource.create(
        {
            "service.name": service_name,
            "deployment.environment": env,
            "service.version": service_version,
        }
    )
    provider = TracerProvider(resource=resource)

    # The OTLP exporter ships in the optional "otlp" extra.
    try:
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
    except ImportError:
        logger.warning("OTLP exporter not installed; spans will not be exported")
    else:
        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint, insecure=True)))
        logger.info("Tracing enabled -> %s (env=%s)", endpoint, env)

    trace.set_tracer_provider(provider)
    _tracer_provider = provider
    return provider


def get_tracer(name: str) -> trace.Tracer:
    return trace.get_tracer(name)


def shutdown_tracing() -> None:
    if isinstance(_tracer_provider, TracerProvider):
        _tracer_provider.shutdown()


__all__ = ["get_tracer", "init_tracing", "shutdown_tracing"]
