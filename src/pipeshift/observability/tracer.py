"""
Tracer protocol and implementations for composition-based tracing.

The controller and adapter take a tracer as a dependency instead of calling
OpenTelemetry directly. Production uses OpenTelemetryTracer, disabled
tracing uses NullTracer, and tests use MockTracer to inspect spans.

Example:
    >>> from pipeshift.observability import create_tracer
    >>>
    >>> tracer = create_tracer(__name__, enable_tracing=True)
    >>> with tracer.span("pipeshift.controller.configure", {"pct": 10}):
    ...     apply(config)
"""

from __future__ import annotations

import contextlib
from collections.abc import Generator
from contextlib import AbstractContextManager
from typing import Any, Protocol, runtime_checkable

from opentelemetry import trace


@runtime_checkable
class SpanLike(Protocol):
    """The part of a span the pipeshift components write to."""

    def set_attribute(self, key: str, value: Any) -> None: ...


@runtime_checkable
class Tracer(Protocol):
    """
    Protocol for tracers that can create tracing spans.

    Implementations:
    - NullTracer: Tracing disabled
    - OpenTelemetryTracer: Spans through the OpenTelemetry API
    - MockTracer: Records spans for assertions in tests
    """

    def span(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
    ) -> AbstractContextManager[SpanLike | None]:
        """
        Create a tracing span context manager.

        Args:
            name: Span name (e.g., "pipeshift.controller.configure")
            attributes: Span attributes (optional)

        Returns:
            Context manager yielding the span, or None when not tracing
        """
        ...


class NullTracer:
    """No-op tracer; spans yield None."""

    @contextlib.contextmanager
    def span(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
    ) -> Generator[None, None, None]:
        yield None


class OpenTelemetryTracer:
    """
    Tracer backed by the OpenTelemetry API.

    Spans go to whatever TracerProvider the application installed; with only
    the API package present they are non-recording.

    Args:
        tracer_name: Name for the tracer (typically __name__)
    """

    def __init__(self, tracer_name: str) -> None:
        self._tracer = trace.get_tracer(tracer_name)

    def span(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
    ) -> AbstractContextManager[SpanLike | None]:
        return self._tracer.start_as_current_span(name, attributes=attributes or {})


class MockSpan:
    """Span recorded by MockTracer; set_attribute() writes into its attributes."""

    def __init__(self, name: str, attributes: dict[str, Any]) -> None:
        self.name = name
        self.attributes = attributes

    def set_attribute(self, key: str, value: Any) -> None:
        self.attributes[key] = value


class MockTracer:
    """
    Tracer for tests that records every span with its attributes.

    Example:
        >>> tracer = MockTracer()
        >>> with tracer.span("pipeshift.adapter.execute", {"pipeshift.pipeline": "new"}):
        ...     pass
        >>> tracer.span_names
        ['pipeshift.adapter.execute']
    """

    def __init__(self) -> None:
        self.spans: list[tuple[str, dict[str, Any]]] = []

    @contextlib.contextmanager
    def span(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
    ) -> Generator[MockSpan, None, None]:
        recorded = dict(attributes or {})
        self.spans.append((name, recorded))
        yield MockSpan(name, recorded)

    @property
    def span_names(self) -> list[str]:
        return [name for name, _ in self.spans]

    def clear(self) -> None:
        self.spans.clear()


def create_tracer(
    name: str,
    enable_tracing: bool = True,
) -> Tracer:
    """
    Create the tracer for a component.

    Args:
        name: Tracer name (typically __name__)
        enable_tracing: Whether tracing should be enabled (default True)

    Returns:
        OpenTelemetryTracer if enabled, NullTracer otherwise
    """
    if enable_tracing:
        return OpenTelemetryTracer(name)
    return NullTracer()


__all__ = [
    "MockSpan",
    "MockTracer",
    "NullTracer",
    "OpenTelemetryTracer",
    "SpanLike",
    "Tracer",
    "create_tracer",
]
