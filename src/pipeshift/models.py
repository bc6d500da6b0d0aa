"""
Data models for the progressive migration controller.

Models in this module:

Enums:
    - Pipeline: The two generation backends traffic can be routed to
    - ManualOverride: Operator override of all sampling rules
    - CircuitState: Circuit breaker states
    - RoutingReason: Which routing rule produced a decision
    - SystemHealth: Aggregate health reported by health_check()

Core Models:
    - RoutingDecision: Result of a routing decision for one entity
    - StateSnapshot: Config plus breaker state captured at a checkpoint
    - RollbackEntry: Audit record appended on every rollback
    - RollbackResult: Outcome of a rollback request
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field

if TYPE_CHECKING:
    from pipeshift.config import MigrationConfig


class Pipeline(Enum):
    """
    Generation backends.

    Attributes:
        LEGACY: The pre-existing backend, kept as the safety fallback.
        NEW: The candidate backend being rolled out.
    """

    LEGACY = "legacy"
    NEW = "new"


class ManualOverride(Enum):
    """
    Operator override of percentage and canary routing.

    When set to anything other than NONE, the override wins over every
    rule except an open circuit breaker.
    """

    NONE = "none"
    LEGACY = "legacy"
    NEW = "new"

    @property
    def pipeline(self) -> Pipeline | None:
        """The pipeline this override forces, or None."""
        if self is ManualOverride.LEGACY:
            return Pipeline.LEGACY
        if self is ManualOverride.NEW:
            return Pipeline.NEW
        return None


class CircuitState(Enum):
    """
    Circuit breaker state.

    State machine transitions:
        CLOSED -> OPEN: failure threshold reached within the window, or trip()
        OPEN -> HALF_OPEN: recovery timeout elapsed since the trip
        OPEN -> CLOSED: reset()
        HALF_OPEN -> CLOSED: next outcome is a success
        HALF_OPEN -> OPEN: next outcome is a failure

    Attributes:
        CLOSED: Normal routing.
        OPEN: All traffic forced to legacy.
        HALF_OPEN: Probing whether the new pipeline recovered.
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class RoutingReason(Enum):
    """Which routing rule produced a decision (first match wins)."""

    BREAKER_OPEN = "breaker_open"
    MANUAL_OVERRIDE = "manual_override"
    FORCED_ENTITY = "forced_entity"
    CANARY = "canary"
    PERCENTAGE = "percentage"
    FALLBACK = "fallback"
    FORCED = "forced"


class SystemHealth(Enum):
    """
    Aggregate health reported by the controller.

    Attributes:
        HEALTHY: Breaker closed and failure rate below the warning threshold.
        DEGRADED: Breaker half-open, or failure rate above the threshold.
        UNHEALTHY: Breaker open; all traffic is on legacy.
    """

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


@dataclass(frozen=True)
class RoutingDecision:
    """
    Routing decision for a single unit of work.

    Attributes:
        entity_id: The entity the decision was made for.
        pipeline: The pipeline the work should be dispatched to.
        reason: The rule that produced the decision.
        is_canary: True when the entity fell in the canary band.
    """

    entity_id: str
    pipeline: Pipeline
    reason: RoutingReason
    is_canary: bool = False

    @property
    def use_new_pipeline(self) -> bool:
        """True when the decision routes to the new pipeline."""
        return self.pipeline is Pipeline.NEW

    def to_dict(self) -> dict[str, Any]:
        return {
            "entity_id": self.entity_id,
            "pipeline": self.pipeline.value,
            "reason": self.reason.value,
            "is_canary": self.is_canary,
        }


@dataclass(frozen=True)
class StateSnapshot:
    """
    Controller state captured by a rollback checkpoint.

    Attributes:
        config: The live MigrationConfig at checkpoint time.
        breaker_state: Circuit breaker state at checkpoint time.
        taken_at: When the checkpoint was taken (UTC).
    """

    config: MigrationConfig
    breaker_state: CircuitState
    taken_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        return {
            "config": self.config.to_dict(),
            "breaker_state": self.breaker_state.value,
            "taken_at": self.taken_at.isoformat(),
        }


class RollbackEntry(BaseModel):
    """
    Audit record for a single rollback.

    Entries are immutable and appended to the rollback history in order.

    Attributes:
        timestamp: When the rollback happened (UTC)
        reason: Operator or system supplied reason
        trigger: What caused the rollback (manual, circuit_breaker_tripped, emergency_manual)
        operator: Who requested it, when known
        previous_state: Serialized StateSnapshot that was restored
    """

    model_config = ConfigDict(frozen=True)

    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="When the rollback happened (UTC)",
    )
    reason: str = Field(..., description="Why the rollback happened")
    trigger: str = Field(default="manual", description="What caused the rollback")
    operator: str | None = Field(default=None, description="Who requested the rollback")
    previous_state: dict[str, Any] = Field(
        default_factory=dict,
        description="Serialized snapshot that was restored",
    )


@dataclass(frozen=True)
class RollbackResult:
    """
    Outcome of a rollback request.

    Attributes:
        success: Whether a snapshot was restored.
        reason: Why the rollback happened, or why nothing happened.
        restored_state: The snapshot restored, None when there was nothing to restore.
        entry: History entry appended, None when nothing happened.
        dry_run: True when the rollback was only evaluated, not applied.
    """

    success: bool
    reason: str
    restored_state: StateSnapshot | None = None
    entry: RollbackEntry | None = None
    dry_run: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "reason": self.reason,
            "restored_state": self.restored_state.to_dict() if self.restored_state else None,
            "dry_run": self.dry_run,
        }


__all__ = [
    "CircuitState",
    "ManualOverride",
    "Pipeline",
    "RollbackEntry",
    "RollbackResult",
    "RoutingDecision",
    "RoutingReason",
    "StateSnapshot",
    "SystemHealth",
]
