"""OpenTelemetry tracing for outbound calls.

Spans wrap the calls TubeNote makes to other systems (YouTube Data API,
Google OAuth, SMTP) so slow upstreams show up next to request logs. The
provider exports over OTLP gRPC and is only installed when tracing is enabled;
until then spans go to the no-op tracer.
"""

import functools
import inspect
from typing import Any, Callable, Mapping, Optional, TypeVar

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.trace.sampling import ParentBased, TraceIdRatioBased
from opentelemetry.trace import Status, StatusCode

F = TypeVar("F", bound=Callable[..., Any])

_provider: Optional[TracerProvider] = None


def configure_tracing(
    service_name: str,
    service_version: str,
    otlp_endpoint: str,
    sampling_rate: float = 0.1,
    environment: Optional[str] = None,
) -> TracerProvider:
    """Install the global tracer provider.

    Args:
        service_name: ``service.name`` resource attribute
        service_version: ``service.version`` resource attribute
        otlp_endpoint: OTLP gRPC collector endpoint
        sampling_rate: Ratio of root traces kept (0.0 to 1.0)
        environment: ``deployment.environment`` resource attribute

    Returns:
        The installed TracerProvider
    """
    global _provider

    attributes = {
        "service.name": service_name,
        "service.namespace": "tubenote",
        "service.version": service_version,
    }
    if environment:
        attributes["deployment.environment"] = environment

    provider = TracerProvider(
        resource=Resource(attributes=attributes),
        sampler=ParentBased(TraceIdRatioBased(sampling_rate)),
    )
    provider.add_span_processor(
        BatchSpanProcessor(OTLPSpanExporter(endpoint=otlp_endpoint, insecure=True))
    )

    trace.set_tracer_provider(provider)
    _provider = provider
    return provider


def shutdown_tracing() -> None:
    """Flush pending spans and stop the exporter, if tracing was configured."""
    global _provider
    if _provider is not None:
        _provider.shutdown()
        _provider = None


def get_tracer(name: str) -> trace.Tracer:
    return trace.get_tracer(name)


def trace_function(
    span_name: Optional[str] = None,
    attributes: Optional[Mapping[str, str]] = None,
) -> Callable[[F], F]:
    """Run an async function inside a span.

    ``attributes`` maps span attribute names to parameter names of the wrapped
    call, so ``{"youtube.video_id": "youtube_id"}`` records the
    ``youtube_id`` argument. Exceptions are recorded on the span and re-raised.

    Args:
        span_name: Span name (defaults to the function's qualified name)
        attributes: Span attribute name to parameter name

    Returns:
        Decorator for coroutine functions
    """

    def decorator(func: F) -> F:
        name = span_name or func.__qualname__
        signature = inspect.signature(func)

        @functools.wraps(func)
        async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
            tracer = get_tracer(func.__module__)

            with tracer.start_as_current_span(name, kind=trace.SpanKind.CLIENT) as span:
                if attributes:
                    bound = signature.bind_partial(*args, **kwargs).arguments
                    for attribute, parameter in attributes.items():
                        if bound.get(parameter) is not None:
                            span.set_attribute(attribute, str(bound[parameter]))
                try:
                    result = await func(*args, **kwargs)
                except Exception as exc:
                    span.record_exception(exc)
                    span.set_status(Status(StatusCode.ERROR, type(exc).__name__))
                    raise
                span.set_status(Status(StatusCode.OK))
                return result

        return async_wrapper  # type: ignore

    return decorator
