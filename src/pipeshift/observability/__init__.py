"""
Observability utilities for pipeshift.

Provides the composition-based Tracer API and the standard attribute
names used on spans and metrics.

Example:
    >>> from pipeshift.observability import create_tracer
    >>> tracer = create_tracer(__name__, enable_tracing=True)
    >>> with tracer.span("pipeshift.controller.route"):
    ...     pass
"""

from pipeshift.observability.attributes import (
    ATTR_ENTITY_ID,
    ATTR_FELL_BACK,
    ATTR_IS_CANARY,
    ATTR_MANUAL_OVERRIDE,
    ATTR_NEW_PIPELINE_PERCENTAGE,
    ATTR_PIPELINE,
    ATTR_ROLLBACK_TRIGGER,
    ATTR_ROUTING_REASON,
)
from pipeshift.observability.tracer import (
    MockSpan,
    MockTracer,
    NullTracer,
    OpenTelemetryTracer,
    SpanLike,
    Tracer,
    create_tracer,
)

__all__ = [
    # Tracer (composition-based API)
    "Tracer",
    "SpanLike",
    "NullTracer",
    "OpenTelemetryTracer",
    "MockSpan",
    "MockTracer",
    "create_tracer",
    # Attributes
    "ATTR_ENTITY_ID",
    "ATTR_FELL_BACK",
    "ATTR_IS_CANARY",
    "ATTR_MANUAL_OVERRIDE",
    "ATTR_NEW_PIPELINE_PERCENTAGE",
    "ATTR_PIPELINE",
    "ATTR_ROLLBACK_TRIGGER",
    "ATTR_ROUTING_REASON",
]
