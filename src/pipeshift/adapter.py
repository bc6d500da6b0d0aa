"""
MigrationAdapter - Runs generation work through the controller.

The adapter packages the route -> execute -> report loop so the generation
entry point only has to hand it an entity and a request. Both pipelines are
external collaborators reached through the PipelineExecutor protocol.

Execution Flow:
    1. controller.route(entity_id) picks a pipeline
    2. The chosen executor runs the request (timed)
    3. controller.report_outcome() records success or failure
    4. If the new pipeline raised and fallback_to_legacy_on_error is set,
       the legacy pipeline runs the same request as a separate unit of work

force_execute() skips the routing rules and never falls back; an open
breaker still refuses the new pipeline unless bypass_circuit_breaker is set.

Timeouts belong to the executors; the adapter never abandons a call.

Usage:
    >>> adapter = MigrationAdapter(controller, legacy=legacy_generator,
    ...                            new=new_generator)
    >>> result = adapter.execute("users", request)
    >>> result.pipeline
    <Pipeline.LEGACY: 'legacy'>
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from pipeshift.controller import MigrationController
from pipeshift.models import Pipeline, RoutingDecision
from pipeshift.observability import (
    ATTR_ENTITY_ID,
    ATTR_FELL_BACK,
    ATTR_IS_CANARY,
    ATTR_PIPELINE,
    ATTR_ROUTING_REASON,
    Tracer,
    create_tracer,
)

logger = logging.getLogger(__name__)


@runtime_checkable
class PipelineExecutor(Protocol):
    """
    Protocol for generation backends.

    Example:
        >>> class LegacyGenerator:
        ...     def execute(self, request: GenerationRequest) -> GenerationResult:
        ...         return render_and_write(request)
    """

    def execute(self, request: Any) -> Any:
        """
        Run one generation request.

        Args:
            request: Backend-specific request (tables, output directory, ...).

        Returns:
            Backend-specific result.

        Raises:
            Exception: Any failure; the adapter reports it to the controller.
        """
        ...


@dataclass(frozen=True)
class ExecutionResult:
    """
    Result of running a request through the adapter.

    Attributes:
        entity_id: Entity the request was for.
        pipeline: Pipeline that produced the result.
        result: The executor's return value.
        duration_seconds: Duration of the run that produced the result.
        decision: The original routing decision.
        fell_back: True if the new pipeline failed and legacy produced the result.
    """

    entity_id: str
    pipeline: Pipeline
    result: Any
    duration_seconds: float
    decision: RoutingDecision
    fell_back: bool = False


@dataclass
class _ExecutionCounts:
    legacy: int = 0
    new: int = 0
    failures: int = 0
    fallbacks: int = 0
    forced: int = 0


class MigrationAdapter:
    """
    Dispatches generation requests to the legacy or new pipeline.

    Attributes:
        controller: The MigrationController making routing decisions.
    """

    def __init__(
        self,
        controller: MigrationController,
        legacy: PipelineExecutor,
        new: PipelineExecutor,
        *,
        timer: Callable[[], float] = time.perf_counter,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize the adapter.

        Args:
            controller: Controller used for routing and outcome reports.
            legacy: Legacy generation backend.
            new: New generation backend.
            timer: Clock used to time executions.
            tracer: Optional custom Tracer instance.
            enable_tracing: Whether to enable OpenTelemetry tracing.
        """
        self.controller = controller
        self._executors = {Pipeline.LEGACY: legacy, Pipeline.NEW: new}
        self._timer = timer
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._lock = threading.Lock()
        self._counts = _ExecutionCounts()

    def execute(self, entity_id: str, request: Any) -> ExecutionResult:
        """
        Route, run and report one unit of work.

        Args:
            entity_id: Entity being generated (e.g., table name).
            request: Request passed unchanged to the chosen executor.

        Returns:
            ExecutionResult from whichever pipeline succeeded.

        Raises:
            Exception: The executor's error when no fallback applies, or the
                legacy error when the fallback also fails.
        """
        decision = self.controller.route(entity_id)
        with self._tracer.span(
            "pipeshift.adapter.execute",
            {
                ATTR_ENTITY_ID: decision.entity_id,
                ATTR_PIPELINE: decision.pipeline.value,
                ATTR_ROUTING_REASON: decision.reason.value,
                ATTR_IS_CANARY: decision.is_canary,
            },
        ) as span:
            try:
                result, duration = self._run(decision, request)
            except Exception as e:
                if not self._should_fall_back(decision):
                    raise
                logger.warning(
                    "New pipeline failed for %r, falling back to legacy: %s",
                    decision.entity_id,
                    e,
                    extra={"entity_id": decision.entity_id},
                )
                with self._lock:
                    self._counts.fallbacks += 1
                fallback = self.controller.route_fallback(decision.entity_id)
                result, duration = self._run(fallback, request)
                if span is not None:
                    span.set_attribute(ATTR_FELL_BACK, True)
                return ExecutionResult(
                    entity_id=decision.entity_id,
                    pipeline=Pipeline.LEGACY,
                    result=result,
                    duration_seconds=duration,
                    decision=decision,
                    fell_back=True,
                )

        return ExecutionResult(
            entity_id=decision.entity_id,
            pipeline=decision.pipeline,
            result=result,
            duration_seconds=duration,
            decision=decision,
        )

    def force_execute(
        self,
        pipeline: Pipeline | str,
        request: Any,
        *,
        entity_id: str = "",
        bypass_circuit_breaker: bool = False,
    ) -> ExecutionResult:
        """
        Run a request on a named pipeline, skipping the routing rules.

        There is no legacy fallback for forced work. The outcome is still
        reported, so forced failures count toward the circuit breaker.

        Args:
            pipeline: Pipeline.LEGACY or Pipeline.NEW (or "legacy"/"new").
            request: Request passed unchanged to the executor.
            entity_id: Entity the request is for, for statistics and logs.
            bypass_circuit_breaker: Run the new pipeline even while the
                breaker is open.

        Raises:
            ValueError: If pipeline is not a known pipeline.
            CircuitBreakerOpenError: If the new pipeline is requested while
                the breaker is open and not bypassed.
        """
        decision = self.controller.route_forced(
            entity_id,
            Pipeline(pipeline),
            bypass_circuit_breaker=bypass_circuit_breaker,
        )
        with self._lock:
            self._counts.forced += 1
        with self._tracer.span(
            "pipeshift.adapter.force_execute",
            {
                ATTR_ENTITY_ID: decision.entity_id,
                ATTR_PIPELINE: decision.pipeline.value,
                ATTR_ROUTING_REASON: decision.reason.value,
            },
        ):
            result, duration = self._run(decision, request)

        return ExecutionResult(
            entity_id=decision.entity_id,
            pipeline=decision.pipeline,
            result=result,
            duration_seconds=duration,
            decision=decision,
        )

    def statistics(self) -> dict[str, int]:
        """
        Get counts of executions run by this adapter.

        A request that fell back counts one execution on each pipeline.
        """
        with self._lock:
            counts = self._counts
            return {
                "executions_total": counts.legacy + counts.new,
                "executions_legacy": counts.legacy,
                "executions_new": counts.new,
                "execution_failures": counts.failures,
                "fallback_count": counts.fallbacks,
                "forced_executions": counts.forced,
            }

    def _run(self, decision: RoutingDecision, request: Any) -> tuple[Any, float]:
        """Execute on the decided pipeline and report the outcome exactly once."""
        executor = self._executors[decision.pipeline]
        with self._lock:
            if decision.pipeline is Pipeline.NEW:
                self._counts.new += 1
            else:
                self._counts.legacy += 1

        started = self._timer()
        try:
            result = executor.execute(request)
        except Exception as e:
            with self._lock:
                self._counts.failures += 1
            self.controller.report_outcome(
                decision.entity_id,
                success=False,
                duration=self._timer() - started,
                error=e,
                decision=decision,
            )
            raise
        duration = self._timer() - started
        self.controller.report_outcome(
            decision.entity_id,
            success=True,
            duration=duration,
            decision=decision,
        )
        return result, duration

    def _should_fall_back(self, decision: RoutingDecision) -> bool:
        return (
            decision.pipeline is Pipeline.NEW
            and self.controller.config.fallback_to_legacy_on_error
        )


__all__ = [
    "ExecutionResult",
    "MigrationAdapter",
    "PipelineExecutor",
]
