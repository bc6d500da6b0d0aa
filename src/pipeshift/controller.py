"""
MigrationController - Process-wide coordinator for progressive migration.

The controller owns the live MigrationConfig, the CircuitBreaker, the
RollbackManager and cumulative statistics. Callers ask it where a unit of
work should go, run the chosen pipeline, then report the outcome back.

Responsibilities:
    - Route entities through the RoutingPolicy using a consistent
      config/breaker snapshot
    - Feed outcomes to the circuit breaker and roll back automatically
      when it trips (if enabled)
    - Keep exact statistics under concurrent callers
    - Report aggregate health and configuration

Concurrency:
    Every entry point takes the controller's lock, so a concurrent route()
    sees either the old or the new config in full, breaker transitions are
    serialized, and counters never lose updates. Nothing here blocks on I/O.

Usage:
    >>> controller = MigrationController(MigrationConfig(new_pipeline_percentage=10))
    >>> decision = controller.route("users")
    >>> started = time.perf_counter()
    >>> result = run_generation(decision.pipeline)
    >>> controller.report_outcome("users", success=True,
    ...                           duration=time.perf_counter() - started)
    >>> controller.health_check()["system_health"]
    'healthy'
"""

from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict, deque
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from pipeshift.circuit_breaker import CircuitBreaker, CircuitTransition
from pipeshift.config import MigrationConfig
from pipeshift.exceptions import (
    CircuitBreakerOpenError,
    ConfigurationError,
    ErrorSeverity,
    ExecutionOutcomeError,
    RollbackStateError,
    RoutingError,
)
from pipeshift.metrics import MigrationMetrics
from pipeshift.models import (
    CircuitState,
    ManualOverride,
    Pipeline,
    RollbackResult,
    RoutingDecision,
    RoutingReason,
    StateSnapshot,
    SystemHealth,
)
from pipeshift.observability import (
    ATTR_MANUAL_OVERRIDE,
    ATTR_NEW_PIPELINE_PERCENTAGE,
    ATTR_ROLLBACK_TRIGGER,
    Tracer,
    create_tracer,
)
from pipeshift.rollback import RollbackManager
from pipeshift.routing import RoutingPolicy

logger = logging.getLogger(__name__)

MIGRATION_VERSION = "1.0.0"

TRIGGER_MANUAL = "manual"
TRIGGER_CIRCUIT_BREAKER = "circuit_breaker_tripped"
TRIGGER_EMERGENCY = "emergency_manual"
TRIGGER_AUTOMATIC = "automatic"

# Routes never reported are dropped past these bounds
MAX_PENDING_PER_ENTITY = 64
MAX_PENDING_ENTITIES = 10_000


@dataclass
class _Statistics:
    """Mutable counters; only touched under the controller lock."""

    routed_legacy_count: int = 0
    routed_new_count: int = 0
    canary_count: int = 0
    success_count_total: int = 0
    failure_count_total: int = 0
    unmatched_outcome_count: int = 0
    abandoned_route_count: int = 0
    timed_count: int = 0
    total_duration: float = 0.0
    min_duration: float | None = None
    max_duration: float | None = None

    @property
    def total_routed(self) -> int:
        return self.routed_legacy_count + self.routed_new_count + self.canary_count

    @property
    def total_outcomes(self) -> int:
        return self.success_count_total + self.failure_count_total

    @property
    def failure_rate(self) -> float:
        total = self.total_outcomes
        return self.failure_count_total / total if total else 0.0

    def add_duration(self, duration: float) -> None:
        self.timed_count += 1
        self.total_duration += duration
        self.min_duration = duration if self.min_duration is None else min(self.min_duration, duration)
        self.max_duration = duration if self.max_duration is None else max(self.max_duration, duration)


class MigrationController:
    """
    Routes generation work between the legacy and new pipelines.

    Construct one per process (or per test) and pass it to callers by
    reference.

    Example:
        >>> controller = MigrationController.from_env()
        >>> if controller.use_new_pipeline("orders"):
        ...     ...

    Attributes:
        circuit_breaker: The owned CircuitBreaker (read access only).
        rollback_manager: The owned RollbackManager (read access only).
        metrics: OpenTelemetry instruments and duration samples.
    """

    def __init__(
        self,
        config: MigrationConfig | Mapping[str, Any] | None = None,
        *,
        policy: RoutingPolicy | None = None,
        rollback_manager: RollbackManager | None = None,
        metrics: MigrationMetrics | None = None,
        clock: Callable[[], float] = time.monotonic,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
        enable_metrics: bool = True,
    ) -> None:
        """
        Initialize the controller.

        Args:
            config: Initial config, or a raw settings mapping to parse.
                Defaults to MigrationConfig().
            policy: Routing policy (defaults to RoutingPolicy()).
            rollback_manager: Rollback manager (defaults to a new one).
            metrics: Metrics container (defaults to a new one).
            clock: Monotonic clock used by the circuit breaker.
            tracer: Optional custom Tracer instance.
            enable_tracing: Whether to enable OpenTelemetry tracing.
            enable_metrics: Whether to emit OpenTelemetry metrics.

        Raises:
            ConfigurationError: If the initial config is invalid.
        """
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._lock = threading.RLock()
        self._config = self._coerce_config(config)
        self._policy = policy or RoutingPolicy()
        self._breaker = CircuitBreaker.from_config(self._config, clock=clock)
        self._rollback_manager = rollback_manager or RollbackManager()
        self._metrics = metrics or MigrationMetrics(enable_metrics=enable_metrics)

        self._stats = _Statistics()
        self._pending: OrderedDict[str, deque[RoutingDecision]] = OrderedDict()
        # Config that was live before an emergency rollback forced legacy
        self._emergency_previous: MigrationConfig | None = None

        self._checkpoint_if_healthy()

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        **kwargs: Any,
    ) -> MigrationController:
        """
        Create a controller configured from MIGRATION_* environment variables.

        Raises:
            ConfigurationError: If the environment holds invalid settings, so
                generation never starts with a bad rollout.
        """
        return cls(MigrationConfig.from_env(environ), **kwargs)

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def config(self) -> MigrationConfig:
        """The live configuration."""
        return self._config

    @property
    def circuit_breaker(self) -> CircuitBreaker:
        return self._breaker

    @property
    def circuit_breaker_state(self) -> CircuitState:
        """Current circuit breaker state."""
        return self._breaker.state

    @property
    def rollback_manager(self) -> RollbackManager:
        return self._rollback_manager

    @property
    def metrics(self) -> MigrationMetrics:
        return self._metrics

    @property
    def is_rolled_back(self) -> bool:
        """True while an emergency rollback is forcing legacy routing."""
        return self._emergency_previous is not None

    # =========================================================================
    # Configuration
    # =========================================================================

    def configure(self, config: MigrationConfig | Mapping[str, Any]) -> MigrationConfig:
        """
        Atomically replace the live configuration.

        Breaker state and rollback history are kept.

        Args:
            config: New config, or a raw settings mapping to parse.

        Returns:
            The config now live.

        Raises:
            ConfigurationError: If the config is invalid; nothing is applied.
        """
        new_config = self._coerce_config(config)
        with self._tracer.span(
            "pipeshift.controller.configure",
            {
                ATTR_NEW_PIPELINE_PERCENTAGE: new_config.new_pipeline_percentage,
                ATTR_MANUAL_OVERRIDE: new_config.manual_override.value,
            },
        ):
            with self._lock:
                previous = self._config
                self._apply_config(new_config)
                self._checkpoint_if_healthy()

        logger.info(
            "Migration config updated: new_pipeline_percentage %d -> %d, override %s -> %s",
            previous.new_pipeline_percentage,
            new_config.new_pipeline_percentage,
            previous.manual_override.value,
            new_config.manual_override.value,
            extra={"migration_config": new_config.to_dict()},
        )
        return new_config

    def update_config(self, **changes: Any) -> MigrationConfig:
        """
        Change individual config fields.

        Example:
            >>> controller.update_config(new_pipeline_percentage=50)

        Raises:
            ConfigurationError: If a field is unknown or a value invalid.
        """
        with self._lock:
            return self.configure(self._config.with_changes(**changes))

    # =========================================================================
    # Routing and outcomes
    # =========================================================================

    def route(self, entity_id: str | None) -> RoutingDecision:
        """
        Decide which pipeline handles an entity.

        Must be called once per unit of work before dispatch; the matching
        report_outcome() call consumes the pending route.

        Args:
            entity_id: Entity being generated (e.g., table name).

        Returns:
            RoutingDecision. Falls back to legacy if routing fails.
        """
        entity = entity_id or ""
        with self._lock:
            try:
                decision = self._policy.decide(entity, self._config, self._breaker.state)
            except RoutingError as e:
                logger.log(
                    e.severity.log_level,
                    "Routing failed for %r, using legacy pipeline: %s",
                    entity,
                    e,
                    extra={
                        "entity_id": entity,
                        "error_code": e.error_code,
                        "should_alert": e.severity.should_alert,
                    },
                )
                decision = RoutingDecision(entity, Pipeline.LEGACY, RoutingReason.FALLBACK)

            self._register(decision)
            self._checkpoint_if_healthy()

        logger.debug(
            "Routed %r to %s pipeline (%s)",
            entity,
            decision.pipeline.value,
            decision.reason.value,
        )
        return decision

    def route_fallback(self, entity_id: str | None) -> RoutingDecision:
        """
        Register a legacy retry of work that failed on the new pipeline.

        The retry counts as its own unit of work and needs its own
        report_outcome() call.
        """
        decision = RoutingDecision(entity_id or "", Pipeline.LEGACY, RoutingReason.FALLBACK)
        with self._lock:
            self._register(decision)
        return decision

    def route_forced(
        self,
        entity_id: str | None,
        pipeline: Pipeline,
        *,
        bypass_circuit_breaker: bool = False,
    ) -> RoutingDecision:
        """
        Register work sent to a pipeline chosen by the caller.

        Routing rules are skipped, but an open breaker still guards the new
        pipeline unless bypass_circuit_breaker is set.

        Raises:
            CircuitBreakerOpenError: If the new pipeline is requested while
                the breaker is open and not bypassed.
        """
        entity = entity_id or ""
        decision = RoutingDecision(entity, Pipeline(pipeline), RoutingReason.FORCED)
        with self._lock:
            if (
                decision.pipeline is Pipeline.NEW
                and not bypass_circuit_breaker
                and self._breaker.state == CircuitState.OPEN
            ):
                raise CircuitBreakerOpenError(
                    self._breaker.get_time_until_retry(),
                    entity_id=entity,
                )
            self._register(decision)

        logger.info(
            "Forced %r to %s pipeline%s",
            entity,
            decision.pipeline.value,
            " (circuit breaker bypassed)" if bypass_circuit_breaker else "",
            extra={"entity_id": entity, "bypass_circuit_breaker": bypass_circuit_breaker},
        )
        return decision

    def use_new_pipeline(self, entity_id: str | None) -> bool:
        """Route an entity and return True if it goes to the new pipeline."""
        return self.route(entity_id).use_new_pipeline

    def report_outcome(
        self,
        entity_id: str | None,
        success: bool,
        duration: float | None = None,
        *,
        error: BaseException | None = None,
        decision: RoutingDecision | None = None,
    ) -> bool:
        """
        Record the outcome of an executed route.

        Args:
            entity_id: Entity previously passed to route().
            success: Whether the generation run succeeded.
            duration: Run duration in seconds, if measured.
            error: The exception that caused a failure, for logging.
            decision: The decision returned by route(). Without it the most
                recent pending route for the entity is used.

        Returns:
            True if the outcome matched a pending route. Unmatched outcomes
            are logged and ignored: they touch neither the statistics nor
            the circuit breaker. A successful legacy retry from
            route_fallback() is kept from the breaker.
        """
        entity = entity_id or ""
        with self._lock:
            matched = self._pop_pending(entity, decision)
            config = self._config

            if matched is None:
                unmatched = ExecutionOutcomeError(
                    "Outcome reported for an entity with no pending route",
                    entity_id=entity,
                )
                self._stats.unmatched_outcome_count += 1
                logger.log(
                    unmatched.severity.log_level,
                    "%s",
                    unmatched,
                    extra={"entity_id": entity, "error_code": unmatched.error_code},
                )
                return False

            if success:
                self._stats.success_count_total += 1
            else:
                self._stats.failure_count_total += 1
                logger.warning(
                    "Generation failed for %r on %s pipeline%s",
                    entity,
                    matched.pipeline.value,
                    f": {error}" if error is not None else "",
                    extra={"entity_id": entity, "pipeline": matched.pipeline.value},
                )
            self._metrics.record_outcome(matched.pipeline, success, duration)
            if duration is not None and config.track_performance_metrics:
                self._stats.add_duration(duration)
                self._metrics.record_sample(matched.pipeline, duration, success)

            if not success:
                transition = self._breaker.record_failure()
            elif matched.reason is RoutingReason.FALLBACK:
                # A legacy retry succeeding must not end a new-pipeline failure streak
                transition = None
            else:
                transition = self._breaker.record_success()
            if transition is not None and transition.tripped:
                self._handle_trip(transition)

        return True

    # =========================================================================
    # Circuit breaker operations
    # =========================================================================

    def trip_circuit_breaker(self) -> CircuitState:
        """Force the breaker open; all traffic goes to legacy."""
        with self._lock:
            transition = self._breaker.trip()
            if transition is not None:
                self._handle_trip(transition)
            return self._breaker.state

    def reset_circuit_breaker(self) -> CircuitState:
        """Force the breaker closed and clear its counters."""
        with self._lock:
            self._breaker.reset()
            self._checkpoint_if_healthy()
            return self._breaker.state

    # =========================================================================
    # Rollback
    # =========================================================================

    def rollback(self, reason: str, operator: str | None = None) -> RollbackResult:
        """
        Restore the config from the most recent checkpoint.

        Returns:
            RollbackResult; success=False with reason "nothing to roll back"
            when no checkpoint exists.
        """
        with self._tracer.span(
            "pipeshift.controller.rollback",
            {ATTR_ROLLBACK_TRIGGER: TRIGGER_MANUAL},
        ):
            with self._lock:
                return self._rollback(reason, TRIGGER_MANUAL, operator)

    def emergency_rollback(self, reason: str, operator: str | None = None) -> RollbackResult:
        """
        Force all traffic to legacy immediately.

        Sets manual_override to LEGACY, trips the breaker and records a
        history entry. clear_rollback() undoes it.
        """
        with self._tracer.span(
            "pipeshift.controller.emergency_rollback",
            {ATTR_ROLLBACK_TRIGGER: TRIGGER_EMERGENCY},
        ):
            with self._lock:
                previous_state = self._snapshot()
                if self._emergency_previous is None:
                    self._emergency_previous = self._config
                self._apply_config(self._config.with_changes(manual_override=ManualOverride.LEGACY))
                transition = self._breaker.trip()
                if transition is not None:
                    self._metrics.record_trip(transition.reason)
                entry = self._rollback_manager.record(
                    reason,
                    trigger=TRIGGER_EMERGENCY,
                    operator=operator,
                    previous_state=previous_state,
                )
                self._metrics.record_rollback(TRIGGER_EMERGENCY)

        logger.warning(
            "Emergency rollback to legacy pipeline: %s",
            reason,
            extra={"operator": operator, "trigger": TRIGGER_EMERGENCY},
        )
        return RollbackResult(
            success=True,
            reason=reason,
            restored_state=previous_state,
            entry=entry,
        )

    def clear_rollback(self, operator: str | None = None) -> MigrationConfig:
        """
        Undo an emergency rollback.

        Restores the config that was live before the emergency rollback and
        resets the breaker.

        Raises:
            RollbackStateError: If no emergency rollback is active.
        """
        with self._lock:
            previous = self._emergency_previous
            if previous is None:
                raise RollbackStateError(
                    "Not in rolled back state; nothing to clear",
                    current_state="active",
                )
            self._emergency_previous = None
            self._apply_config(previous)
            self._breaker.reset()
            self._checkpoint_if_healthy()

        logger.info(
            "Emergency rollback cleared",
            extra={"operator": operator},
        )
        return previous

    def rollback_recommendation(self) -> dict[str, Any]:
        """
        Assess whether the rollout should be rolled back.

        Read-only. An open breaker is a critical reason; a failure rate
        above degraded_failure_rate is a warning. Nothing is recommended
        while an emergency rollback is already active.

        Returns:
            Dictionary with recommended (bool), severity (info, warning or
            critical) and the list of reasons found.
        """
        reasons: list[dict[str, Any]] = []
        with self._lock:
            if self._emergency_previous is None:
                if self._breaker.snapshot()["state"] == CircuitState.OPEN.value:
                    reasons.append(
                        {
                            "trigger": TRIGGER_CIRCUIT_BREAKER,
                            "severity": ErrorSeverity.CRITICAL.value,
                            "message": "Circuit breaker is open",
                        }
                    )
                failure_rate = self._stats.failure_rate
                threshold = self._config.degraded_failure_rate
                if failure_rate > threshold:
                    reasons.append(
                        {
                            "trigger": "failure_rate",
                            "severity": ErrorSeverity.WARNING.value,
                            "message": f"Failure rate {failure_rate:.1%} above {threshold:.1%}",
                        }
                    )

        if any(r["severity"] == ErrorSeverity.CRITICAL.value for r in reasons):
            severity = ErrorSeverity.CRITICAL
        elif reasons:
            severity = ErrorSeverity.WARNING
        else:
            severity = ErrorSeverity.INFO
        return {
            "recommended": bool(reasons),
            "severity": severity.value,
            "reasons": reasons,
        }

    @property
    def rollback_recommended(self) -> bool:
        """True when rollback_recommendation() finds a reason to roll back."""
        return bool(self.rollback_recommendation()["recommended"])

    def execute_automatic_rollback(self, *, dry_run: bool = False) -> RollbackResult:
        """
        Roll back to the last checkpoint if a rollback is recommended.

        Args:
            dry_run: Report what would be restored without changing state.

        Returns:
            RollbackResult; success=False when no rollback is recommended.
        """
        with self._lock:
            recommendation = self.rollback_recommendation()
            if not recommendation["recommended"]:
                return RollbackResult(success=False, reason="rollback not recommended")

            reason = "; ".join(r["message"] for r in recommendation["reasons"])
            if dry_run:
                logger.info("Automatic rollback dry run: %s", reason)
                return RollbackResult(
                    success=True,
                    reason=reason,
                    restored_state=self._rollback_manager.current_state,
                    dry_run=True,
                )
            return self._rollback(reason, TRIGGER_AUTOMATIC, None)

    # =========================================================================
    # Reporting
    # =========================================================================

    def health_check(self) -> dict[str, Any]:
        """
        Report aggregate health without changing any state.

        Returns:
            Status snapshot with migration_version, config, circuit breaker,
            rollback summary and system_health (healthy/degraded/unhealthy).

        Raises:
            ConfigurationError: If the live config is invalid.
        """
        with self._lock:
            config = self._config
            config.validate()
            breaker = self._breaker.snapshot()
            breaker_state = CircuitState(breaker["state"])
            failure_rate = self._stats.failure_rate

            if breaker_state == CircuitState.OPEN:
                health = SystemHealth.UNHEALTHY
            elif (
                breaker_state == CircuitState.HALF_OPEN
                or failure_rate > config.degraded_failure_rate
            ):
                health = SystemHealth.DEGRADED
            else:
                health = SystemHealth.HEALTHY

            return {
                "migration_version": MIGRATION_VERSION,
                "system_health": health.value,
                "config": config.to_dict(),
                "circuit_breaker": breaker,
                "rollback": {
                    **self._rollback_manager.summary(),
                    "emergency_rollback_active": self._emergency_previous is not None,
                },
                "failure_rate": failure_rate,
            }

    def statistics(self) -> dict[str, Any]:
        """
        Get cumulative counters and derived rates.

        Returns:
            Dictionary of counters, rates and, when track_performance_metrics
            is enabled, a performance_metrics sub-map.
        """
        with self._lock:
            stats = self._stats
            total = stats.total_routed
            result: dict[str, Any] = {
                "routed_legacy_count": stats.routed_legacy_count,
                "routed_new_count": stats.routed_new_count,
                "canary_count": stats.canary_count,
                "total_routed": total,
                "success_count_total": stats.success_count_total,
                "failure_count_total": stats.failure_count_total,
                "unmatched_outcome_count": stats.unmatched_outcome_count,
                "pending_outcomes": sum(len(q) for q in self._pending.values()),
                "abandoned_route_count": stats.abandoned_route_count,
                "new_pipeline_adoption_rate": (
                    (stats.routed_new_count + stats.canary_count) / total if total else 0.0
                ),
                "canary_hit_rate": stats.canary_count / total if total else 0.0,
                "failure_rate": stats.failure_rate,
                "average_duration": (
                    stats.total_duration / stats.timed_count if stats.timed_count else None
                ),
                "circuit_breaker_state": self._breaker.state.value,
                "circuit_breaker_trips": self._breaker.trip_count,
            }
            if self._config.track_performance_metrics:
                result["performance_metrics"] = {
                    "timed_count": stats.timed_count,
                    "total_duration": stats.total_duration,
                    "min_duration": stats.min_duration,
                    "max_duration": stats.max_duration,
                    **self._metrics.performance_statistics(),
                }
            return result

    def configuration_summary(self) -> dict[str, Any]:
        """Short summary of the rollout for logs and status pages."""
        with self._lock:
            return {
                "new_pipeline_percentage": self._config.new_pipeline_percentage,
                "manual_override": self._config.manual_override.value,
                "canary_testing_enabled": self._config.enable_canary_testing,
                "canary_sample_rate": self._config.canary_sample_rate,
                "new_pipeline_entities": list(self._config.new_pipeline_entities),
                "circuit_breaker_enabled": self._config.circuit_breaker_enabled,
                "circuit_breaker_state": self._breaker.state.value,
                "error_count": self._breaker.failure_count,
                "auto_rollback_enabled": self._config.auto_rollback_enabled,
            }

    def reset(self) -> None:
        """
        Restore every piece of state to defaults.

        Intended for test isolation and operational tooling.
        """
        with self._lock:
            self._config = MigrationConfig()
            self._breaker.apply_config(self._config)
            self._breaker.reset()
            self._rollback_manager.reset()
            self._metrics.clear()
            self._stats = _Statistics()
            self._pending.clear()
            self._emergency_previous = None
            self._checkpoint_if_healthy()
        logger.debug("Migration controller reset to defaults")

    # =========================================================================
    # Internals (caller holds the lock)
    # =========================================================================

    @staticmethod
    def _coerce_config(config: MigrationConfig | Mapping[str, Any] | None) -> MigrationConfig:
        if config is None:
            return MigrationConfig()
        if isinstance(config, MigrationConfig):
            config.validate()
            return config
        if isinstance(config, Mapping):
            return MigrationConfig.parse(config)
        raise ConfigurationError(
            f"Expected MigrationConfig or mapping, got {type(config).__name__}",
            value=config,
        )

    def _apply_config(self, config: MigrationConfig) -> None:
        self._config = config
        self._breaker.apply_config(config)

    def _snapshot(self) -> StateSnapshot:
        return StateSnapshot(config=self._config, breaker_state=self._breaker.state)

    def _checkpoint_if_healthy(self) -> None:
        """Checkpoint the live config while the breaker is closed."""
        if self._breaker.state != CircuitState.CLOSED:
            return
        current = self._rollback_manager.current_state
        if current is None or current.config is not self._config:
            self._rollback_manager.checkpoint(self._snapshot())

    def _register(self, decision: RoutingDecision) -> None:
        if decision.is_canary:
            self._stats.canary_count += 1
        elif decision.pipeline is Pipeline.NEW:
            self._stats.routed_new_count += 1
        else:
            self._stats.routed_legacy_count += 1
        self._metrics.record_decision(decision)

        queue = self._pending.get(decision.entity_id)
        if queue is None:
            queue = self._pending[decision.entity_id] = deque(maxlen=MAX_PENDING_PER_ENTITY)
        elif len(queue) == queue.maxlen:
            self._stats.abandoned_route_count += 1
        queue.append(decision)
        self._pending.move_to_end(decision.entity_id)

        while len(self._pending) > MAX_PENDING_ENTITIES:
            _, dropped = self._pending.popitem(last=False)
            self._stats.abandoned_route_count += len(dropped)

    def _pop_pending(
        self,
        entity: str,
        decision: RoutingDecision | None,
    ) -> RoutingDecision | None:
        queue = self._pending.get(entity)
        if not queue:
            return None
        if decision is None:
            # Newest first; older entries are most likely abandoned work
            return self._drop_if_empty(entity, queue.pop())
        try:
            queue.remove(decision)
        except ValueError:
            return None
        return self._drop_if_empty(entity, decision)

    def _drop_if_empty(self, entity: str, decision: RoutingDecision) -> RoutingDecision:
        if not self._pending[entity]:
            del self._pending[entity]
        return decision

    def _handle_trip(self, transition: CircuitTransition) -> None:
        self._metrics.record_trip(transition.reason)
        logger.warning(
            "Circuit breaker open (%s); routing all traffic to legacy pipeline",
            transition.reason,
            extra={"from_state": transition.from_state.value, "trip_reason": transition.reason},
        )
        if self._config.auto_rollback_enabled:
            self._rollback(
                f"Circuit breaker tripped ({transition.reason})",
                TRIGGER_CIRCUIT_BREAKER,
                None,
            )

    def _rollback(self, reason: str, trigger: str, operator: str | None) -> RollbackResult:
        result = self._rollback_manager.rollback(reason, trigger=trigger, operator=operator)
        if result.success and result.restored_state is not None:
            self._apply_config(result.restored_state.config)
            self._metrics.record_rollback(trigger)
        return result


__all__ = [
    "MAX_PENDING_ENTITIES",
    "MAX_PENDING_PER_ENTITY",
    "MIGRATION_VERSION",
    "MigrationController",
    "TRIGGER_AUTOMATIC",
    "TRIGGER_CIRCUIT_BREAKER",
    "TRIGGER_EMERGENCY",
    "TRIGGER_MANUAL",
]
