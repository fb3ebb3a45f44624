"""Tracing setup and span helpers for request handling and background jobs."""

from __future__ import annotations

import os
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter, SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.trace import Span, Tracer

if TYPE_CHECKING:
    from refined_crm.core.config import Settings
    from refined_crm.platform.security.context import AuthContext


_CORRELATION_HEADERS = (b"x-correlation-id", b"x-request-id")

_state: dict[str, Any] = {"provider": None, "exporters_attached": False}


def _provider_for(service_name: str) -> TracerProvider:
    provider = _state["provider"]
    if provider is None:
        provider = TracerProvider(
            resource=Resource.create(
                {
                    "service.name": service_name,
                    "service.namespace": "refined-crm",
                    "service.version": os.getenv("APP_VERSION", "0.1.0"),
                }
            )
        )
        trace.set_tracer_provider(provider)
        _state["provider"] = provider
    return provider


def setup_otel(settings: Settings) -> TracerProvider | None:
    """Install the tracer provider and its exporters once per process."""

    if not settings.otel_enabled:
        return None

    provider = _provider_for(settings.otel_service_name)
    if _state["exporters_attached"]:
        return provider

    endpoint = settings.otel_exporter_otlp_endpoint or os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")
    if endpoint:
        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint)))
    if os.getenv("OTEL_CONSOLE_EXPORTER", "false").lower() == "true":
        provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))

    _state["exporters_attached"] = True
    return provider


def setup_inmemory_otel(service_name: str = "api") -> InMemorySpanExporter:
    exporter = InMemorySpanExporter()
    _provider_for(service_name).add_span_processor(SimpleSpanProcessor(exporter))
    return exporter


def get_tracer(name: str) -> Tracer:
    return trace.get_tracer(name)


@contextmanager
def start_span(tracer: Tracer, name: str, ctx: AuthContext | None = None, **attributes: Any) -> Iterator[Span]:
    """Open a span tagged with the acting user and any extra attributes.

    ``None`` attribute values are skipped.
    """

    with tracer.start_as_current_span(name) as span:
        if ctx is not None:
            span.set_attribute("enduser.id", str(ctx.user_id))
            span.set_attribute("enduser.role", ctx.role.value if ctx.role is not None else ctx.claimed_role or "unknown")
        for key, value in attributes.items():
            if value is not None:
                span.set_attribute(key, value)
        yield span


def get_fastapi_server_request_hook() -> Callable[[Span | None, dict[str, Any]], None]:
    def server_request_hook(span: Span | None, scope: dict[str, Any]) -> None:
        if span is None or not span.is_recording():
            return
        headers = dict(scope.get("headers", []))
        for header in _CORRELATION_HEADERS:
            raw = headers.get(header)
            if raw:
                span.set_attribute("correlation_id", raw.decode("latin-1"))
                return

    return server_request_hook
