"""
OpenTelemetry tracing helpers for the analysis pipeline.
"""

import functools
import os
import threading
import time
from collections.abc import Callable
from contextlib import contextmanager
from typing import Any

from opentelemetry import trace as otel_trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace import Status, StatusCode

# The gRPC exporter is an optional extra
try:
    from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (  # type: ignore
        OTLPSpanExporter,
    )

    OTLP_AVAILABLE = True
except ImportError:
    OTLP_AVAILABLE = False

from .logging_config import SERVICE_NAME


class TelemetryManager:
    """Manages OpenTelemetry setup and span creation."""

    def __init__(self, service_name: str = SERVICE_NAME, enabled: bool | None = None):
        """
        Initialize telemetry manager.

        Args:
            service_name: Name of the service for telemetry identification
            enabled: Force tracing on or off, defaults to PR_BOT_TRACING
                (enabled unless set to "false")
        """
        self.service_name = service_name
        if enabled is None:
            enabled = os.getenv("PR_BOT_TRACING", "true").lower() != "false"
        self.enabled = enabled
        self.tracer = None

        if self.enabled:
            self._setup_telemetry()

    def _setup_telemetry(self) -> None:
        resource = Resource.create({"service.name": self.service_name})
        provider = TracerProvider(resource=resource)

        # Spans are only exported when a collector endpoint is configured
        endpoint = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")
        if endpoint and OTLP_AVAILABLE:
            provider.add_span_processor(
                BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint))
            )

        otel_trace.set_tracer_provider(provider)
        self.tracer = otel_trace.get_tracer(__name__)

    @contextmanager
    def trace_operation(
        self, operation_name: str, attributes: dict[str, Any] | None = None
    ):
        """
        Context manager for tracing operations.

        Args:
            operation_name: Name of the operation being traced
            attributes: Additional attributes to add to the span

        Yields:
            The current span, or None when tracing is disabled
        """
        if not self.enabled or not self.tracer:
            yield None
            return

        with self.tracer.start_as_current_span(operation_name) as span:
            for key, value in (attributes or {}).items():
                span.set_attribute(key, str(value))

            try:
                yield span
            except Exception as e:
                span.set_status(Status(StatusCode.ERROR, str(e)))
                span.record_exception(e)
                raise

    def trace_function(
        self, operation_name: str | None = None, include_args: bool = False
    ):
        """
        Decorator for tracing function calls.

        Args:
            operation_name: Custom operation name (defaults to module.function)
            include_args: Record positional and keyword arguments on the span

        Returns:
            Decorated function
        """

        def decorator(func: Callable) -> Callable:
            name = operation_name or f"{func.__module__}.{func.__name__}"

            @functools.wraps(func)
            def wrapper(*args, **kwargs):
                with self.trace_operation(name) as span:
                    if span is not None and include_args:
                        # Skip self for methods
                        for i, arg in enumerate(args[1:], start=1):
                            span.set_attribute(f"arg.{i}", str(arg)[:100])
                        for key, value in kwargs.items():
                            span.set_attribute(f"kwarg.{key}", str(value)[:100])

                    start_time = time.time()
                    result = func(*args, **kwargs)
                    if span is not None:
                        span.set_attribute("duration_seconds", time.time() - start_time)
                    return result

            return wrapper

        return decorator


_telemetry_manager: TelemetryManager | None = None
_telemetry_lock = threading.Lock()


def get_telemetry_manager() -> TelemetryManager:
    """Return the process-wide manager, creating it on first use.

    Worker threads of a fan-out may race here; only one provider is installed.
    """
    global _telemetry_manager
    with _telemetry_lock:
        if _telemetry_manager is None:
            _telemetry_manager = TelemetryManager()
        return _telemetry_manager


def trace_operation(operation_name: str, attributes: dict[str, Any] | None = None):
    """
    Convenience function for tracing operations.

    Args:
        operation_name: Name of the operation
        attributes: Additional attributes
    """
    return get_telemetry_manager().trace_operation(operation_name, attributes)


def trace_function(operation_name: str | None = None, include_args: bool = False):
    """
    Convenience decorator for tracing functions.

    The telemetry manager is resolved when the decorated function runs, so
    importing a module does not set up tracing.
    """

    def decorator(func: Callable) -> Callable:
        name = operation_name or f"{func.__module__}.{func.__name__}"

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            traced = get_telemetry_manager().trace_function(name, include_args)(func)
            return traced(*args, **kwargs)

        return wrapper

    return decorator
