"""
pipeshift - Progressive migration between legacy and new generation pipelines.

This package decides, per unit of work, whether a code-generation run goes
to the legacy or the new pipeline, and keeps that rollout safe.

Key Components:
    - MigrationConfig: Immutable rollout settings (percentage, override, canary)
    - RoutingPolicy: Stable, hash-based routing rules
    - CircuitBreaker: Forces legacy routing after repeated failures
    - RollbackManager: Checkpoints and restores rollout state
    - MigrationController: Coordinates all of the above for concurrent callers
    - MigrationAdapter: Runs requests through the controller with fallback

Usage:
    >>> from pipeshift import MigrationAdapter, MigrationController
    >>>
    >>> controller = MigrationController.from_env()
    >>> adapter = MigrationAdapter(controller, legacy=legacy_gen, new=new_gen)
    >>> result = adapter.execute("users", request)
    >>>
    >>> controller.health_check()["system_health"]
    'healthy'
"""

from pipeshift.adapter import ExecutionResult, MigrationAdapter, PipelineExecutor
from pipeshift.circuit_breaker import CircuitBreaker, CircuitTransition
from pipeshift.config import ENV_VARS, MigrationConfig
from pipeshift.controller import MIGRATION_VERSION, MigrationController
from pipeshift.exceptions import (
    CircuitBreakerOpenError,
    ConfigurationError,
    ErrorClassification,
    ErrorSeverity,
    ExecutionOutcomeError,
    InvalidPercentageError,
    PipeshiftError,
    RollbackStateError,
    RoutingError,
)
from pipeshift.metrics import MigrationMetrics
from pipeshift.models import (
    CircuitState,
    ManualOverride,
    Pipeline,
    RollbackEntry,
    RollbackResult,
    RoutingDecision,
    RoutingReason,
    StateSnapshot,
    SystemHealth,
)
from pipeshift.rollback import RollbackManager
from pipeshift.routing import RoutingPolicy, stable_bucket

__version__ = "0.1.0"

__all__ = [
    # Controller
    "MIGRATION_VERSION",
    "MigrationController",
    # Adapter
    "ExecutionResult",
    "MigrationAdapter",
    "PipelineExecutor",
    # Components
    "CircuitBreaker",
    "CircuitTransition",
    "MigrationMetrics",
    "RollbackManager",
    "RoutingPolicy",
    "stable_bucket",
    # Configuration
    "ENV_VARS",
    "MigrationConfig",
    # Models
    "CircuitState",
    "ManualOverride",
    "Pipeline",
    "RollbackEntry",
    "RollbackResult",
    "RoutingDecision",
    "RoutingReason",
    "StateSnapshot",
    "SystemHealth",
    # Exceptions
    "CircuitBreakerOpenError",
    "ConfigurationError",
    "ErrorClassification",
    "ErrorSeverity",
    "ExecutionOutcomeError",
    "InvalidPercentageError",
    "PipeshiftError",
    "RollbackStateError",
    "RoutingError",
]
