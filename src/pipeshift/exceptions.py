"""
Exceptions for the pipeshift migration controller.

This module defines all exceptions raised while routing generation work
between the legacy and new pipelines, organized by the component that
raises them.

Exception Hierarchy:
    PipeshiftError (base)
    +-- ConfigurationError
    |   +-- InvalidPercentageError
    +-- RoutingError
    +-- ExecutionOutcomeError
    +-- CircuitBreakerOpenError
    +-- RollbackStateError

Error Classification:
    Every exception carries an ErrorClassification with a severity level,
    a stable error code and a suggested action for operators. Callers use
    the severity to pick a log level and to decide whether to alert.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any


class ErrorSeverity(Enum):
    """
    Severity level of controller errors.

    Attributes:
        CRITICAL: System-level failure requiring immediate attention.
        ERROR: Significant failure that may require operator intervention.
        WARNING: Issue that should be monitored but is absorbed locally.
        INFO: Informational condition, not a failure.
    """

    CRITICAL = "critical"
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"

    @property
    def should_alert(self) -> bool:
        """True for CRITICAL and ERROR levels."""
        return self in (ErrorSeverity.CRITICAL, ErrorSeverity.ERROR)

    @property
    def log_level(self) -> int:
        """Get the corresponding Python logging level."""
        level_map = {
            ErrorSeverity.CRITICAL: logging.CRITICAL,
            ErrorSeverity.ERROR: logging.ERROR,
            ErrorSeverity.WARNING: logging.WARNING,
            ErrorSeverity.INFO: logging.INFO,
        }
        return level_map[self]


@dataclass(frozen=True)
class ErrorClassification:
    """
    Metadata describing how an error should be handled.

    Attributes:
        severity: The severity level of the error.
        error_code: Unique error code for programmatic handling.
        category: Error category for grouping related errors.
        suggested_action: Human-readable guidance for operators.
    """

    severity: ErrorSeverity
    error_code: str
    category: str
    suggested_action: str

    def to_dict(self) -> dict[str, Any]:
        """Convert classification to dictionary for serialization."""
        return {
            "severity": self.severity.value,
            "error_code": self.error_code,
            "category": self.category,
            "suggested_action": self.suggested_action,
        }


class PipeshiftError(Exception):
    """
    Base exception for all migration controller errors.

    Attributes:
        message: Human-readable error description.
        entity_id: The entity (table, schema object) involved, if applicable.
        suggested_action: Suggested action overriding the classification default.
    """

    _default_classification: ErrorClassification = ErrorClassification(
        severity=ErrorSeverity.ERROR,
        error_code="PIPESHIFT_ERROR",
        category="general",
        suggested_action="Review controller logs for details",
    )

    def __init__(
        self,
        message: str,
        *,
        entity_id: str | None = None,
        suggested_action: str | None = None,
    ) -> None:
        self.message = message
        self.entity_id = entity_id
        self.suggested_action = suggested_action or self._default_classification.suggested_action
        super().__init__(message)

    def __str__(self) -> str:
        if self.entity_id is not None:
            return f"{self.message} entity_id={self.entity_id}"
        return self.message

    @property
    def classification(self) -> ErrorClassification:
        """Classification metadata for this error type."""
        return self._default_classification

    @property
    def severity(self) -> ErrorSeverity:
        """Severity level of this error."""
        return self.classification.severity

    @property
    def error_code(self) -> str:
        """Unique error code (e.g., "CONFIGURATION_ERROR")."""
        return self.classification.error_code

    def to_dict(self) -> dict[str, Any]:
        """
        Convert the exception to a dictionary for serialization.

        Returns:
            Dictionary representation of the error.
        """
        return {
            "message": self.message,
            "entity_id": self.entity_id,
            "error_code": self.error_code,
            "suggested_action": self.suggested_action,
            "classification": self.classification.to_dict(),
        }


class ConfigurationError(PipeshiftError):
    """
    Raised when migration settings are malformed or out of range.

    Configuration errors are always surfaced to the caller: a bad rollout
    percentage or override must stop generation from starting rather than
    be silently corrected.

    Attributes:
        field_name: The setting that failed validation, if known.
        value: The rejected value.
    """

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.ERROR,
        error_code="CONFIGURATION_ERROR",
        category="configuration",
        suggested_action=(
            "Fix the migration settings (environment variables or config "
            "mapping) and restart or reconfigure the controller."
        ),
    )

    def __init__(
        self,
        message: str,
        *,
        field_name: str | None = None,
        value: Any = None,
    ) -> None:
        self.field_name = field_name
        self.value = value
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["field_name"] = self.field_name
        result["value"] = repr(self.value)
        return result


class InvalidPercentageError(ConfigurationError):
    """
    Raised when a percentage setting falls outside 0-100.

    Applies to new_pipeline_percentage and canary_sample_rate.
    """

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.ERROR,
        error_code="INVALID_PERCENTAGE",
        category="configuration",
        suggested_action="Use an integer percentage between 0 and 100.",
    )

    def __init__(self, field_name: str, value: Any) -> None:
        super().__init__(
            f"{field_name} must be between 0 and 100, got {value!r}",
            field_name=field_name,
            value=value,
        )


class RoutingError(PipeshiftError):
    """
    Raised when a routing decision cannot be computed.

    Routing is a pure function over a valid config and breaker state, so
    this indicates a programming error (a missing config or breaker
    reference). The controller absorbs it and falls back to legacy.
    """

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.CRITICAL,
        error_code="ROUTING_ERROR",
        category="routing",
        suggested_action=(
            "Routing inputs were missing. Traffic was sent to the legacy "
            "pipeline; check controller wiring."
        ),
    )


class ExecutionOutcomeError(PipeshiftError):
    """
    Raised for a malformed outcome report.

    The typical case is reporting an outcome for an entity that has no
    outstanding route. The controller logs and ignores it: losing one
    statistics update must not abort a generation run.
    """

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.WARNING,
        error_code="EXECUTION_OUTCOME_ERROR",
        category="statistics",
        suggested_action="Call report_outcome exactly once per executed route().",
    )


class CircuitBreakerOpenError(PipeshiftError):
    """
    Raised when forced work on the new pipeline is rejected by an open breaker.

    Attributes:
        time_until_retry: Seconds until the breaker lets new-pipeline work through.
    """

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.WARNING,
        error_code="CIRCUIT_BREAKER_OPEN",
        category="circuit_breaker",
        suggested_action=(
            "The new pipeline is failing. Wait for the recovery timeout, "
            "or pass bypass_circuit_breaker=True to run it anyway."
        ),
    )

    def __init__(self, time_until_retry: float, *, entity_id: str | None = None) -> None:
        self.time_until_retry = time_until_retry
        super().__init__(
            f"Circuit breaker open for the new pipeline. Retry after {time_until_retry:.1f}s",
            entity_id=entity_id,
        )


class RollbackStateError(PipeshiftError):
    """
    Raised when a rollback operation is not valid in the current state.

    Attributes:
        current_state: Description of the state that rejected the operation.
    """

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.WARNING,
        error_code="ROLLBACK_STATE_ERROR",
        category="rollback",
        suggested_action="Check rollback status before clearing or repeating a rollback.",
    )

    def __init__(self, message: str, current_state: str) -> None:
        self.current_state = current_state
        super().__init__(message)


__all__ = [
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
