"""
OpenTelemetry metrics for progressive migration.

This module instruments routing decisions, execution outcomes, circuit
breaker trips and rollbacks, and keeps a bounded buffer of execution
duration samples for the controller's performance report.

Instruments go to the meter provider installed by the application. With
only opentelemetry-api present they are non-recording, and the in-process
snapshot still works.

Example:
    >>> from pipeshift.metrics import MigrationMetrics
    >>>
    >>> metrics = MigrationMetrics()
    >>> metrics.record_decision(decision)
    >>> metrics.record_outcome(Pipeline.NEW, success=True, duration_seconds=0.12)
    >>> metrics.performance_statistics()["total_samples"]
    1

Metrics Exposed:
    - pipeshift.routing.decisions (Counter): Decisions by pipeline and reason
    - pipeshift.outcomes (Counter): Reported outcomes by pipeline and success
    - pipeshift.execution.duration (Histogram): Execution duration in seconds
    - pipeshift.circuit_breaker.trips (Counter): Transitions into OPEN
    - pipeshift.rollbacks (Counter): Rollbacks by trigger
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Any

from opentelemetry import metrics

from pipeshift.models import Pipeline, RoutingDecision

DEFAULT_MAX_SAMPLES = 1000
"""Duration samples retained for the performance report."""

_meter: Any = None


def _get_meter() -> Any:
    """Get or create the meter for the pipeshift namespace."""
    global _meter
    if _meter is None:
        _meter = metrics.get_meter("pipeshift.migration", version="1.0.0")
    return _meter


def reset_meter() -> None:
    """
    Reset the global meter instance.

    Useful for testing to ensure fresh meter state between tests.
    """
    global _meter
    _meter = None


@dataclass(frozen=True)
class DurationSample:
    """A single execution duration measurement."""

    pipeline: Pipeline
    duration_seconds: float
    success: bool


@dataclass
class MigrationMetrics:
    """
    Container for migration metric instruments and duration samples.

    Attributes:
        enable_metrics: Whether to emit OpenTelemetry instruments
        max_samples: Duration samples retained for performance statistics
    """

    enable_metrics: bool = True
    max_samples: int = DEFAULT_MAX_SAMPLES

    _decision_counter: Any = field(default=None, init=False, repr=False)
    _outcome_counter: Any = field(default=None, init=False, repr=False)
    _duration_histogram: Any = field(default=None, init=False, repr=False)
    _trip_counter: Any = field(default=None, init=False, repr=False)
    _rollback_counter: Any = field(default=None, init=False, repr=False)

    _samples: deque[DurationSample] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        """Initialize metric instruments."""
        if self.max_samples < 1:
            raise ValueError(f"max_samples must be >= 1, got {self.max_samples}.")
        self._samples = deque(maxlen=self.max_samples)
        if self.enable_metrics:
            self._setup_metrics()

    def _setup_metrics(self) -> None:
        meter = _get_meter()

        self._decision_counter = meter.create_counter(
            name="pipeshift.routing.decisions",
            unit="decisions",
            description="Routing decisions by pipeline and reason",
        )
        self._outcome_counter = meter.create_counter(
            name="pipeshift.outcomes",
            unit="executions",
            description="Reported execution outcomes by pipeline and success",
        )
        self._duration_histogram = meter.create_histogram(
            name="pipeshift.execution.duration",
            unit="s",
            description="Generation run duration in seconds",
        )
        self._trip_counter = meter.create_counter(
            name="pipeshift.circuit_breaker.trips",
            unit="trips",
            description="Circuit breaker transitions into the open state",
        )
        self._rollback_counter = meter.create_counter(
            name="pipeshift.rollbacks",
            unit="rollbacks",
            description="Rollbacks by trigger",
        )

    @property
    def metrics_enabled(self) -> bool:
        """True when OpenTelemetry instruments are active."""
        return self.enable_metrics

    def record_decision(self, decision: RoutingDecision) -> None:
        """Count a routing decision."""
        if self._decision_counter is not None:
            self._decision_counter.add(
                1,
                {
                    "pipeline": decision.pipeline.value,
                    "reason": decision.reason.value,
                    "canary": str(decision.is_canary).lower(),
                },
            )

    def record_outcome(
        self,
        pipeline: Pipeline,
        success: bool,
        duration_seconds: float | None = None,
    ) -> None:
        """Count an outcome and record its duration when known."""
        attrs = {"pipeline": pipeline.value, "success": str(success).lower()}
        if self._outcome_counter is not None:
            self._outcome_counter.add(1, attrs)
        if duration_seconds is not None and self._duration_histogram is not None:
            self._duration_histogram.record(duration_seconds, attrs)

    def record_sample(
        self,
        pipeline: Pipeline,
        duration_seconds: float,
        success: bool = True,
    ) -> None:
        """Add a duration sample to the bounded performance buffer."""
        self._samples.append(DurationSample(pipeline, duration_seconds, success))

    def record_trip(self, reason: str) -> None:
        """Count a circuit breaker trip."""
        if self._trip_counter is not None:
            self._trip_counter.add(1, {"reason": reason})

    def record_rollback(self, trigger: str) -> None:
        """Count a rollback."""
        if self._rollback_counter is not None:
            self._rollback_counter.add(1, {"trigger": trigger})

    def performance_statistics(self) -> dict[str, Any]:
        """
        Summarize retained duration samples per pipeline.

        Returns:
            Dictionary with total_samples, avg_legacy_time, avg_new_time and a
            per-pipeline breakdown (count, avg, min, max seconds).
        """
        per_pipeline: dict[str, dict[str, Any]] = {}
        for pipeline in Pipeline:
            durations = [s.duration_seconds for s in self._samples if s.pipeline is pipeline]
            per_pipeline[pipeline.value] = _summarize(durations)

        return {
            "total_samples": len(self._samples),
            "max_samples": self.max_samples,
            "avg_legacy_time": per_pipeline[Pipeline.LEGACY.value]["avg"],
            "avg_new_time": per_pipeline[Pipeline.NEW.value]["avg"],
            "pipelines": per_pipeline,
        }

    def clear(self) -> None:
        """Drop all retained samples."""
        self._samples.clear()


def _summarize(durations: list[float]) -> dict[str, Any]:
    if not durations:
        return {"count": 0, "avg": None, "min": None, "max": None}
    return {
        "count": len(durations),
        "avg": sum(durations) / len(durations),
        "min": min(durations),
        "max": max(durations),
    }


__all__ = [
    "DEFAULT_MAX_SAMPLES",
    "DurationSample",
    "MigrationMetrics",
    "reset_meter",
]
