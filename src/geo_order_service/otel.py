"""OpenTelemetry instrumentation for geo-order-service.

Tracing is switched on by ``otel_exporter_endpoint``. Incoming requests get a
span from the aiohttp server instrumentor; outbound calls (provider API,
webhook targets) are wrapped in :func:`outbound_span`. With tracing disabled
every span comes from the no-op tracer, so callers never branch on it.
"""
from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator

import structlog
from aiohttp import web

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource, SERVICE_NAME
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.aiohttp_server import AioHttpServerInstrumentor
from opentelemetry.trace import SpanKind, Status, StatusCode

from geo_order_service.settings import settings

logger = structlog.get_logger(__name__)

_provider: TracerProvider | None = None


def tracing_enabled() -> bool:
    return _provider is not None


def setup_otel(app: web.Application) -> None:
    global _provider

    endpoint = settings.otel_exporter_endpoint
    if not endpoint:
        logger.info("otel_exporter_endpoint not set, tracing disabled")
        return
    if _provider is not None:
        # create_app may run more than once per process (tests, reloads)
        return

    _provider = TracerProvider(resource=Resource.create({SERVICE_NAME: settings.app_name}))
    _provider.add_span_processor(
        BatchSpanProcessor(OTLPSpanExporter(endpoint=f"{str(endpoint).rstrip('/')}/v1/traces"))
    )
    trace.set_tracer_provider(_provider)
    AioHttpServerInstrumentor().instrument(server=app)
    logger.info("OpenTelemetry tracing enabled", endpoint=str(endpoint), service=settings.app_name)


async def shutdown_otel(_app: web.Application) -> None:
    """Flush pending spans on application cleanup."""
    global _provider
    if _provider is None:
        return
    _provider.shutdown()
    _provider = None
    logger.info("OpenTelemetry tracer provider shut down")


def get_tracer(name: str = __name__) -> trace.Tracer:
    return trace.get_tracer(name)


@contextmanager
def outbound_span(
    tracer: trace.Tracer, name: str, **attributes: Any
) -> Iterator[trace.Span]:
    """Client span for one outbound HTTP call.

    Non-``None`` attributes are set up front. An exception escaping the block
    is recorded and marks the span as failed before it propagates.
    """
    with tracer.start_as_current_span(
        name, kind=SpanKind.CLIENT, record_exception=False, set_status_on_exception=False
    ) as span:
        for key, value in attributes.items():
            if value is not None:
                span.set_attribute(key, value)
        try:
            yield span
        except Exception as exc:
            span.record_exception(exc)
            span.set_status(Status(StatusCode.ERROR, str(exc)))
            raise
